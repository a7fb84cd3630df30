from datetime import date, timedelta
from typing import Iterator, Tuple


def first_day_of_month(year: int, month: int) -> date:
    return date(year, month, 1)


def month_of(d: date) -> date:
    """Truncate a date to the first day of its month"""
    return d.replace(day=1)


def add_months(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def return_month(end_date: date) -> date:
    """First day of the month that contains the day after end_date"""
    return month_of(end_date + timedelta(days=1))


def iter_months(start: Tuple[int, int], end: Tuple[int, int]) -> Iterator[Tuple[int, int]]:
    """Yield (year, month) from start to end inclusive"""
    year, month = start
    while (year, month) <= end:
        yield year, month
        year, month = add_months(year, month, 1)


def age_on(birth_date: date, as_of: date) -> int:
    """Age in completed years on as_of"""
    age = as_of.year - birth_date.year
    if (as_of.month, as_of.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age
