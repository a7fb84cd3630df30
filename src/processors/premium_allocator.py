from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
import logging

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HALF = Decimal('0.5')
ONE = Decimal('1')


def round_half_share(half: Decimal, inverted: bool = False) -> Decimal:
    """Round an employee half-share to whole yen.

    Normal rule: a fraction up to and including 0.50 is dropped, above it
    rounds up. Inverted rule (direct transfer during unapproved leave):
    0.50 and above rounds up, below it is dropped.
    """
    floor = half.to_integral_value(rounding=ROUND_FLOOR)
    fraction = half - floor
    if inverted:
        return floor + 1 if fraction >= HALF else floor
    return floor if fraction <= HALF else floor + 1


@dataclass
class Allocation:
    """Premium split for one employee and one month, before leave handling"""
    health_premium: Decimal
    pension_premium: Decimal
    health_employee_share: Decimal
    pension_employee_share: Decimal
    dependent_health_premium: Decimal = ZERO
    dependent_pension_premium: Decimal = ZERO

    @property
    def health_company_share(self) -> Decimal:
        return self.health_premium - self.health_employee_share

    @property
    def pension_company_share(self) -> Decimal:
        return self.pension_premium - self.pension_employee_share

    @property
    def total_premium(self) -> Decimal:
        return self.health_premium + self.pension_premium

    @property
    def employee_share(self) -> Decimal:
        return self.health_employee_share + self.pension_employee_share

    @property
    def company_share(self) -> Decimal:
        # Dependents' premiums are borne entirely by the employer
        return (self.health_company_share + self.pension_company_share
                + self.dependent_health_premium + self.dependent_pension_premium)


def allocate(health_half: Decimal, pension_half: Decimal, dependent_count: int = 0,
             inverted: bool = False) -> Allocation:
    health_share = round_half_share(health_half, inverted)
    pension_share = round_half_share(pension_half, inverted)
    return Allocation(
        health_premium=health_share * 2,
        pension_premium=pension_share * 2,
        health_employee_share=health_share,
        pension_employee_share=pension_share,
        dependent_health_premium=health_half * 2 * dependent_count,
        dependent_pension_premium=pension_half * 2 * dependent_count,
    )


def salary_ratio(own: int, other_total: int) -> Decimal:
    total = own + other_total
    if total <= 0:
        return ONE
    return Decimal(own) / Decimal(total)


def _scaled(value: Decimal, ratio: Decimal) -> Decimal:
    return (value * ratio).quantize(ONE, rounding=ROUND_HALF_UP)


def scale_allocation(allocation: Allocation, own: int, other_total: int) -> Allocation:
    """Attribute only this employer's part of a dual-employment premium.

    Each figure is scaled by own / (own + other) and rounded to whole yen on
    its own; company shares follow as scaled premium minus scaled share.
    """
    ratio = salary_ratio(own, other_total)
    logger.debug(f"Dual employment ratio {own}/{own + other_total} = {ratio:.4f}")
    return replace(
        allocation,
        health_premium=_scaled(allocation.health_premium, ratio),
        pension_premium=_scaled(allocation.pension_premium, ratio),
        health_employee_share=_scaled(allocation.health_employee_share, ratio),
        pension_employee_share=_scaled(allocation.pension_employee_share, ratio),
        dependent_health_premium=_scaled(allocation.dependent_health_premium, ratio),
        dependent_pension_premium=_scaled(allocation.dependent_pension_premium, ratio),
    )


class PremiumAllocator:
    """Rounding and employer/employee split of per-capita half-shares"""

    def allocate(self, health_half: Decimal, pension_half: Decimal, dependent_count: int = 0,
                 inverted: bool = False, own_compensation: int = None,
                 other_compensation_total: int = None) -> Allocation:
        allocation = allocate(health_half, pension_half, dependent_count, inverted)
        if own_compensation is not None and other_compensation_total is not None:
            allocation = scale_allocation(allocation, own_compensation, other_compensation_total)
        return allocation
