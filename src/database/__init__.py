from .db import engine, SessionLocal, Base, init_db
from .models import (
    OrganizationDB,
    EmployeeDB,
    RateTableEntryDB,
    MonthlySalaryDB,
    BonusPaymentDB,
    OtherCompanyCompensationDB,
    PremiumCalculationDB
)
from .repository import PremiumRepository

__all__ = [
    'engine',
    'SessionLocal',
    'Base',
    'init_db',
    'OrganizationDB',
    'EmployeeDB',
    'RateTableEntryDB',
    'MonthlySalaryDB',
    'BonusPaymentDB',
    'OtherCompanyCompensationDB',
    'PremiumCalculationDB',
    'PremiumRepository'
]
