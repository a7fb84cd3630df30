import logging
import sys
from datetime import date
from config.settings import LOG_LEVEL
from database.db import init_db, SessionLocal
from database.repository import PremiumRepository
from api.mock_hr_system import MockHRSystem
from models.calculation import CalculationKind
from processors.calculation_lifecycle import CalculationLifecycleManager
from utils.formatters import format_currency, format_period

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(year: int = None, month: int = None):
    """Seed mock HR data, run the monthly calculation and print the summary"""
    today = date.today()
    year = year or today.year
    month = month or today.month

    logger.info("Starting social insurance premium calculation")

    # Initialize database
    logger.info("Initializing database...")
    init_db()

    db = SessionLocal()
    try:
        repo = PremiumRepository(db)
        hr = MockHRSystem()
        hr.seed(repo, year, month)
        org_id = hr.ORGANIZATION["organization_id"]

        lifecycle = CalculationLifecycleManager(repo)
        result = lifecycle.run_bulk(org_id, year, month, actor="batch")
        summary = lifecycle.summarize(org_id, CalculationKind.MONTHLY, year, month)

        print("=" * 60)
        print(f"Monthly premiums {format_period(year, month)} - {hr.ORGANIZATION['name']}")
        print("=" * 60)
        for record in sorted(result.calculations, key=lambda r: r.employee_number):
            print(f"  {record.employee_number}  {record.employee_name:<16} "
                  f"total {format_currency(record.total_premium):>10}  "
                  f"employee {format_currency(record.employee_share):>10}")
        for skipped in result.skipped:
            print(f"  {skipped.employee_number}  skipped: {skipped.kind}")
        print("-" * 60)
        print(f"  Employees:      {summary.employee_count}")
        print(f"  Total premium:  {format_currency(summary.total_premium)}")
        print(f"  Company share:  {format_currency(summary.company_share)}")
        print(f"  Employee share: {format_currency(summary.employee_share)}")
        print("=" * 60)
    finally:
        db.close()


if __name__ == "__main__":
    args = [int(a) for a in sys.argv[1:3]]
    main(*args)
