import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Paths
DATA_DIR = Path(os.getenv("DATA_DIR", BASE_DIR / "data"))
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", BASE_DIR / "output"))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'premiums.db'}")

# Application settings
DEBUG = os.getenv("DEBUG", "False").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")

# Bonus caps (yen)
BONUS_ANNUAL_CAP = int(os.getenv("BONUS_ANNUAL_CAP", "5730000"))  # health, April-March cumulative
PENSION_BONUS_CAP = int(os.getenv("PENSION_BONUS_CAP", "1500000"))  # pension, per payment
STANDARD_BONUS_UNIT = int(os.getenv("STANDARD_BONUS_UNIT", "1000"))
BONUS_ADVISORY_THRESHOLD = int(os.getenv("BONUS_ADVISORY_THRESHOLD", "4"))

# Leave rules
EXEMPT_MIN_LEAVE_DAYS = int(os.getenv("EXEMPT_MIN_LEAVE_DAYS", "14"))
DEFAULT_LEAVE_COLLECTION_METHOD = os.getenv("DEFAULT_LEAVE_COLLECTION_METHOD", "postpaid")

# Age thresholds
CARE_AGE_FROM = 40
CARE_AGE_TO = 65  # exclusive
PENSION_EXEMPT_AGE = 70
INELIGIBLE_AGE = 75
