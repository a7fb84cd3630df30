import logging
from typing import Optional, Tuple

from models.calculation import CalculationKind, PremiumCalculation
from processors.rate_table_resolver import RateTableResolver
from processors.premium_allocator import PremiumAllocator
from processors.monthly_premium_calculator import compute_premium
from utils.dates import add_months
from config.settings import (
    BONUS_ANNUAL_CAP, PENSION_BONUS_CAP, STANDARD_BONUS_UNIT, BONUS_ADVISORY_THRESHOLD
)

logger = logging.getLogger(__name__)

Period = Tuple[int, int]

ADVISORY_NOTE = ("Bonuses have been paid four or more times in this determination period. "
                 "If bonuses will be paid four or more times next year as well, "
                 "complete the required procedures.")


def standard_bonus_amount(bonus_amount: int, unit: int = STANDARD_BONUS_UNIT) -> int:
    """Bonus rounded down to the standard bonus unit (1,000 yen)"""
    return (bonus_amount // unit) * unit


def fiscal_year_window(year: int, month: int) -> Tuple[Period, Period]:
    """April of the current fiscal year through the month before (year, month).

    The window is empty (start after end) for an April payment.
    """
    start_year = year if month >= 4 else year - 1
    return (start_year, 4), add_months(year, month, -1)


def determination_period_window(year: int, month: int) -> Tuple[Period, Period]:
    """The July-June period containing (year, month)"""
    start_year = year if month >= 7 else year - 1
    return (start_year, 7), (start_year + 1, 6)


def clamp_to_annual_cap(amount: int, prior_total: int, cap: int = BONUS_ANNUAL_CAP) -> int:
    """Part of amount that still fits under the fiscal-year cumulative cap"""
    if prior_total + amount <= cap:
        return amount
    return max(0, cap - prior_total)


def pension_bonus_amount(amount: int, cap: int = PENSION_BONUS_CAP) -> int:
    """Per-payment pension cap, independent of the cumulative health cap"""
    return min(amount, cap)


def is_fourth_or_later(prior_count: int, threshold: int = BONUS_ADVISORY_THRESHOLD) -> bool:
    return prior_count + 1 >= threshold


class BonusPremiumCalculator:
    """Bonus premium for one employee and one payment month"""

    kind = CalculationKind.BONUS

    def __init__(self, resolver: RateTableResolver, allocator: Optional[PremiumAllocator] = None):
        self.resolver = resolver
        self.allocator = allocator or PremiumAllocator()

    def calculate(self, source, year: int, month: int, calculated_by: str) -> PremiumCalculation:
        inputs = source.bonus_inputs(year, month)
        subject = source.subject
        tables = self.resolver.tables_for(subject.organization_id, year, month, subject.employee_number)
        record = compute_premium(self.kind, subject, year, month, inputs, tables,
                                 self.allocator, calculated_by)

        if inputs.standard_bonus_amount is not None and inputs.standard_amount < inputs.standard_bonus_amount:
            record.add_note(
                f"Standard bonus amount limited to {inputs.standard_amount:,} yen by the annual cap "
                f"({inputs.prior_cumulative_standard_bonus:,} yen already accrued this fiscal year)"
            )
        if inputs.prior_bonus_count is not None and is_fourth_or_later(inputs.prior_bonus_count):
            record.add_note(ADVISORY_NOTE)

        logger.debug(f"Bonus premium {subject.employee_number} {year}-{month:02d}: "
                     f"standard={inputs.standard_amount} total={record.total_premium}")
        return record
