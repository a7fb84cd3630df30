from calendar import monthrange
from datetime import date
from typing import List

from models.employee import EmployeeInsuranceProfile
from utils.dates import first_day_of_month, return_month, age_on
from config.settings import INELIGIBLE_AGE


def is_calculation_target(profile: EmployeeInsuranceProfile, year: int, month: int) -> bool:
    """Whether an employee belongs in a bulk run for (year, month).

    Requires a standard reward, employment during the month (joined by the
    last day; the month containing the day after retirement is already out),
    age under 75 at month start, and this organization as primary workplace.
    """
    if not profile.standard_reward:
        return False

    month_start = first_day_of_month(year, month)
    month_end = date(year, month, monthrange(year, month)[1])

    if profile.join_date > month_end:
        return False
    if profile.retirement_date and month_start >= return_month(profile.retirement_date):
        return False
    if age_on(profile.birth_date, month_start) >= INELIGIBLE_AGE:
        return False
    return profile.is_primary_here


def calculation_targets(profiles: List[EmployeeInsuranceProfile], year: int,
                        month: int) -> List[EmployeeInsuranceProfile]:
    return [p for p in profiles if is_calculation_target(p, year, month)]
