from datetime import date
from decimal import Decimal


def validate_period(year: int, month: int) -> bool:
    """Validate a calculation period"""
    return 1900 <= year <= 2999 and 1 <= month <= 12


def validate_rate(rate: Decimal) -> bool:
    """Validate premium rate (percent) is within reasonable bounds"""
    return Decimal('0') <= rate <= Decimal('100')


def validate_leave_range(start_date: date, end_date) -> bool:
    """A leave spell may be open-ended but may not end before it starts"""
    return end_date is None or end_date >= start_date
