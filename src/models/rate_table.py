from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


@dataclass
class PremiumAmounts:
    """Premium for one insurance line at one grade"""
    rate: Decimal  # percent, e.g. Decimal('9.91')
    total_premium: Decimal
    half_share: Decimal


@dataclass
class RateTableEntry:
    """One bracket of an organization's standard-reward grade table"""
    organization_id: str
    grade: int
    standard_reward_amount: int
    min_amount: int
    max_amount: Optional[int]  # None or 0 means open-ended
    health_without_care: PremiumAmounts
    health_with_care: PremiumAmounts
    pension: PremiumAmounts
    effective_from: date
    effective_to: Optional[date] = None
    pension_grade: Optional[int] = None

    def covers(self, amount: int) -> bool:
        if amount < self.min_amount:
            return False
        return not self.max_amount or amount <= self.max_amount

    def health(self, with_care: bool) -> PremiumAmounts:
        return self.health_with_care if with_care else self.health_without_care
