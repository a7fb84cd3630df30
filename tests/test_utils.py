from datetime import date
from decimal import Decimal

from utils.dates import add_months, return_month, iter_months, age_on, month_of
from utils.formatters import format_currency, format_period, format_status
from utils.validators import validate_period, validate_rate, validate_leave_range


def test_add_months_crosses_years():
    assert add_months(2024, 12, 1) == (2025, 1)
    assert add_months(2025, 1, -1) == (2024, 12)
    assert add_months(2024, 4, -13) == (2023, 3)


def test_return_month():
    assert return_month(date(2024, 9, 30)) == date(2024, 10, 1)
    assert return_month(date(2024, 9, 29)) == date(2024, 9, 1)
    assert return_month(date(2024, 12, 31)) == date(2025, 1, 1)
    assert month_of(date(2024, 2, 29)) == date(2024, 2, 1)


def test_iter_months():
    assert list(iter_months((2024, 11), (2025, 2))) == [(2024, 11), (2024, 12), (2025, 1), (2025, 2)]
    assert list(iter_months((2025, 3), (2025, 2))) == []


def test_age_on():
    assert age_on(date(1984, 10, 2), date(2024, 10, 1)) == 39
    assert age_on(date(1984, 10, 1), date(2024, 10, 1)) == 40
    assert age_on(date(2000, 2, 29), date(2024, 2, 28)) == 23


def test_formatters():
    assert format_currency(Decimal('84840')) == "¥84,840"
    assert format_currency(Decimal('12.5')) == "¥12.50"
    assert format_period(2024, 3) == "2024-03"
    assert format_status("confirmed") == "Confirmed"
    assert format_status("unknown") == "unknown"


def test_validators():
    assert validate_period(2024, 12)
    assert not validate_period(2024, 13)
    assert validate_rate(Decimal('18.3'))
    assert not validate_rate(Decimal('-1'))
    assert validate_leave_range(date(2024, 1, 1), None)
    assert not validate_leave_range(date(2024, 1, 2), date(2024, 1, 1))
