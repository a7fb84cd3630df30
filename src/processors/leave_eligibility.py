import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional

from models.employee import LeaveRecord, LeaveCollectionMethod
from models.calculation import LeaveState, PostpaidLeaveAmount, PremiumCalculation
from utils.dates import first_day_of_month, month_of, return_month, iter_months
from config.settings import EXEMPT_MIN_LEAVE_DAYS

logger = logging.getLogger(__name__)

LEAVE_TYPE_LABELS = {
    'maternity': 'maternity leave',
    'childcare': 'childcare leave',
}


def leave_type_label(leave_type: Optional[str]) -> str:
    if not leave_type:
        return 'leave'
    return LEAVE_TYPE_LABELS.get(leave_type, leave_type)


@dataclass
class LeaveEvaluation:
    """Leave classification of one employee for one target month"""
    state: LeaveState
    collection_method: LeaveCollectionMethod
    leave_type: Optional[str] = None
    # Unapproved spells whose return month is the target month
    returning_spells: List[LeaveRecord] = field(default_factory=list)

    @property
    def is_exempt(self) -> bool:
        return self.state is LeaveState.ON_LEAVE_APPROVED_EXEMPT

    @property
    def is_on_leave(self) -> bool:
        return self.state is not LeaveState.ACTIVE

    @property
    def defers_employee_share(self) -> bool:
        return (self.state is LeaveState.ON_LEAVE_UNAPPROVED
                and self.collection_method is LeaveCollectionMethod.POSTPAID)

    @property
    def is_direct_transfer(self) -> bool:
        return (self.state is LeaveState.ON_LEAVE_UNAPPROVED
                and self.collection_method is LeaveCollectionMethod.DIRECT_TRANSFER)

    @property
    def collects_carried_forward(self) -> bool:
        return bool(self.returning_spells) and self.collection_method is LeaveCollectionMethod.POSTPAID


def leave_days(record: LeaveRecord) -> int:
    """Inclusive length of a closed spell"""
    return (record.end_date - record.start_date).days + 1


def approved_spell_exempts(record: LeaveRecord, year: int, month: int,
                           min_days: int = EXEMPT_MIN_LEAVE_DAYS) -> bool:
    """Exemption rule for an approved spell the employee is on in (year, month).

    Open-ended spells exempt. A spell whose start month differs from its
    return month exempts. A spell that starts and returns in the same month
    exempts that month only when it lasts at least min_days.
    """
    if record.end_date is None:
        return True
    start_month = month_of(record.start_date)
    if start_month != return_month(record.end_date):
        return True
    if first_day_of_month(year, month) != start_month:
        return True
    return leave_days(record) >= min_days


def evaluate_leave(records: List[LeaveRecord], year: int, month: int,
                   method: LeaveCollectionMethod,
                   min_days: int = EXEMPT_MIN_LEAVE_DAYS) -> LeaveEvaluation:
    """Classify (year, month) against the employee's leave spells, first match wins"""
    target = first_day_of_month(year, month)
    state = LeaveState.ACTIVE
    leave_type = None

    for record in records:
        start_month = month_of(record.start_date)
        if target < start_month:
            continue
        if record.end_date is not None:
            back = return_month(record.end_date)
            if record.is_approved and back == start_month:
                # Approved spell inside one month: only that month is judged
                if target != start_month:
                    continue
            elif target >= back:
                continue

        if record.is_approved:
            if approved_spell_exempts(record, year, month, min_days):
                state = LeaveState.ON_LEAVE_APPROVED_EXEMPT
                leave_type = record.leave_type
                break
            # Short same-month spell: this month is calculated normally
            continue

        state = LeaveState.ON_LEAVE_UNAPPROVED
        leave_type = record.leave_type
        break

    returning = [
        r for r in records
        if not r.is_approved and r.end_date is not None and return_month(r.end_date) == target
    ]
    return LeaveEvaluation(state=state, collection_method=method,
                           leave_type=leave_type, returning_spells=returning)


def collect_postpaid_amounts(spells: List[LeaveRecord], year: int, month: int,
                             lookup: Callable[[int, int], Optional[PremiumCalculation]]
                             ) -> List[PostpaidLeaveAmount]:
    """Deferred employee shares of every leave month of the returning spells.

    lookup(year, month) returns the newest calculation of that month or None.
    The return month itself is never collected.
    """
    target = (year, month)
    collected = []
    for spell in spells:
        start = (spell.start_date.year, spell.start_date.month)
        end = (spell.end_date.year, spell.end_date.month)
        for y, m in iter_months(start, end):
            if (y, m) == target:
                continue
            calculation = lookup(y, m)
            if calculation is None or calculation.postpaid_leave_amount is None:
                continue
            collected.append(PostpaidLeaveAmount(
                year=y,
                month=m,
                employee_share=calculation.postpaid_leave_amount,
                company_share=calculation.postpaid_leave_company_amount or Decimal('0'),
                total_premium=calculation.total_premium,
                leave_type=leave_type_label(spell.leave_type),
            ))
    if collected:
        logger.debug(f"Collected {len(collected)} deferred leave month(s) for {year}-{month:02d}")
    return collected


class LeaveEligibilityEvaluator:
    """Leave state lookups for an employee profile"""

    def __init__(self, min_exempt_days: int = EXEMPT_MIN_LEAVE_DAYS):
        self.min_exempt_days = min_exempt_days

    def evaluate(self, leave_records: List[LeaveRecord], year: int, month: int,
                 method: LeaveCollectionMethod) -> LeaveEvaluation:
        return evaluate_leave(leave_records, year, month, method, self.min_exempt_days)
