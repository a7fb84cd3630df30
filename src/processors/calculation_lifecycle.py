import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from models.calculation import (
    CalculationKind, CalculationStatus, RecalculationMode, PremiumCalculation,
    RecalculationHistoryEntry, PremiumDifference, RetroactiveDeduction, effective_amounts
)
from models.employee import EmployeeInsuranceProfile
from models.errors import (
    PremiumCalculationError, AlreadyFinalized, RecordNotFound, InvalidStatusTransition
)
from processors.rate_table_resolver import RateTableResolver
from processors.premium_allocator import PremiumAllocator
from processors.leave_eligibility import LeaveEligibilityEvaluator
from processors.monthly_premium_calculator import MonthlyPremiumCalculator
from processors.bonus_premium_calculator import BonusPremiumCalculator
from processors.input_sources import LiveInputSource, FrozenInputSource
from processors.calculation_targets import calculation_targets

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


@dataclass
class SkippedEmployee:
    employee_id: str
    employee_number: str
    kind: str
    message: str


@dataclass
class BulkRunResult:
    calculations: List[PremiumCalculation] = field(default_factory=list)
    skipped: List[SkippedEmployee] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class PeriodSummary:
    """Totals of an organization's calculations for one period"""
    organization_id: str
    kind: CalculationKind
    year: int
    month: int
    employee_count: int = 0
    total_premium: Decimal = ZERO
    company_share: Decimal = ZERO
    employee_share: Decimal = ZERO
    status_counts: Dict[str, int] = field(default_factory=dict)


class CalculationLifecycleManager:
    """Runs calculations and moves records through draft -> confirmed -> exported"""

    def __init__(self, repository, resolver: Optional[RateTableResolver] = None,
                 allocator: Optional[PremiumAllocator] = None,
                 leave_evaluator: Optional[LeaveEligibilityEvaluator] = None):
        self.repo = repository
        self.resolver = resolver or RateTableResolver(repository)
        self.leave_evaluator = leave_evaluator or LeaveEligibilityEvaluator()
        self.calculators = {
            CalculationKind.MONTHLY: MonthlyPremiumCalculator(self.resolver, allocator),
            CalculationKind.BONUS: BonusPremiumCalculator(self.resolver, allocator),
        }

    # ========== Calculation Runs ==========

    def run_calculation(self, employee_id: str, year: int, month: int, actor: str,
                        kind: CalculationKind = CalculationKind.MONTHLY) -> PremiumCalculation:
        """Calculate and store a draft, replacing an existing draft for the period"""
        profile = self._profile(employee_id)
        existing = self.repo.list_employee_calculations(employee_id, kind, year, month)
        finalized = [r for r in existing if r.status.is_finalized]
        if finalized:
            raise AlreadyFinalized(profile.employee_number, year, month, finalized[0].status.value)

        source = LiveInputSource(self.repo, profile, self.leave_evaluator)
        record = self.calculators[kind].calculate(source, year, month, actor)
        record = self.repo.save_calculation(record)
        logger.info(f"Calculated {kind.value} premium {record.id} for {profile.employee_number} "
                    f"{year}-{month:02d} by {actor}")
        return record

    def run_bulk(self, organization_id: str, year: int, month: int, actor: str,
                 kind: CalculationKind = CalculationKind.MONTHLY,
                 should_cancel: Optional[Callable[[], bool]] = None) -> BulkRunResult:
        """Calculate every eligible employee; failures are skipped, not raised.

        should_cancel is polled between employees.
        """
        result = BulkRunResult()
        targets = self.list_eligible_employees(organization_id, year, month)

        for profile in targets:
            if should_cancel and should_cancel():
                result.cancelled = True
                logger.warning(f"Bulk {kind.value} run for {organization_id} {year}-{month:02d} cancelled")
                break
            try:
                result.calculations.append(
                    self.run_calculation(profile.employee_id, year, month, actor, kind)
                )
            except PremiumCalculationError as e:
                result.skipped.append(
                    SkippedEmployee(profile.employee_id, profile.employee_number, e.kind, e.message)
                )
                logger.warning(f"Skipped {profile.employee_number} {year}-{month:02d}: {e.kind}: {e.message}")

        logger.info(f"Bulk {kind.value} run for {organization_id} {year}-{month:02d}: "
                    f"{len(result.calculations)} calculated, {len(result.skipped)} skipped")
        return result

    def list_eligible_employees(self, organization_id: str, year: int,
                                month: int) -> List[EmployeeInsuranceProfile]:
        return calculation_targets(self.repo.list_employees(organization_id), year, month)

    # ========== Status Transitions ==========

    def confirm(self, calculation_id: int, actor: str) -> PremiumCalculation:
        record = self.get(calculation_id)
        if record.status is not CalculationStatus.DRAFT:
            raise self._transition_error(record, "confirm")
        record.status = CalculationStatus.CONFIRMED
        record.confirmed_at = datetime.utcnow()
        record.confirmed_by = actor
        record = self.repo.save_calculation(record)
        logger.info(f"Confirmed calculation {calculation_id} by {actor}")
        return record

    def confirm_many(self, calculation_ids: List[int], actor: str) -> BulkRunResult:
        return self._apply_many(calculation_ids, lambda cid: self.confirm(cid, actor))

    def mark_exported(self, calculation_id: int, actor: str) -> PremiumCalculation:
        record = self.get(calculation_id)
        if not record.status.is_finalized:
            raise self._transition_error(record, "export")
        record.status = CalculationStatus.EXPORTED
        record.exported_at = datetime.utcnow()
        record.exported_by = actor
        record = self.repo.save_calculation(record)
        logger.info(f"Marked calculation {calculation_id} exported by {actor}")
        return record

    def mark_exported_many(self, calculation_ids: List[int], actor: str) -> BulkRunResult:
        return self._apply_many(calculation_ids, lambda cid: self.mark_exported(cid, actor))

    def delete(self, calculation_id: int):
        record = self.get(calculation_id)
        if record.status.is_finalized:
            raise AlreadyFinalized(record.employee_number, record.year, record.month, record.status.value)
        self.repo.delete_calculation(calculation_id)
        logger.info(f"Deleted draft calculation {calculation_id}")

    # ========== Recalculation ==========

    def recalculate(self, calculation_id: int, mode: RecalculationMode, actor: str,
                    reason: Optional[str] = None) -> PremiumCalculation:
        """Recompute a finalized record in place, keeping its status.

        HISTORICAL replays the inputs frozen in the record; CURRENT reloads
        them from master data. The previous figures go into the history log.
        """
        record = self.get(calculation_id)
        if not record.status.is_finalized:
            raise self._transition_error(record, "recalculate")

        if mode is RecalculationMode.HISTORICAL:
            source = FrozenInputSource(record)
        else:
            source = LiveInputSource(self.repo, self._profile(record.employee_id), self.leave_evaluator)

        fresh = self.calculators[record.kind].calculate(source, record.year, record.month, actor)

        now = datetime.utcnow()
        fresh.id = record.id
        fresh.status = record.status
        fresh.confirmed_at = record.confirmed_at
        fresh.confirmed_by = record.confirmed_by
        fresh.exported_at = record.exported_at
        fresh.exported_by = record.exported_by
        fresh.created_at = record.created_at
        fresh.retroactive_deductions = list(record.retroactive_deductions)
        fresh.recalculation_history = record.recalculation_history + [
            RecalculationHistoryEntry(
                recalculated_at=now,
                recalculated_by=actor,
                mode=mode,
                snapshot=record.monetary_snapshot(),
                reason=reason,
            )
        ]
        fresh.premium_difference = PremiumDifference(
            previous_health_premium=record.health_premium,
            previous_pension_premium=record.pension_premium,
            previous_company_share=record.company_share,
            previous_employee_share=record.employee_share,
            new_health_premium=fresh.health_premium,
            new_pension_premium=fresh.pension_premium,
            new_company_share=fresh.company_share,
            new_employee_share=fresh.employee_share,
        )

        fresh = self.repo.save_calculation(fresh)
        logger.info(f"Recalculated {calculation_id} ({mode.value}) by {actor}; "
                    f"history now {len(fresh.recalculation_history)}")
        return fresh

    def apply_retroactive_deduction(self, calculation_id: int, target_months: List[Tuple[int, int]],
                                    diff: PremiumDifference, actor: str) -> List[PremiumCalculation]:
        """Tag diff onto the same employee's calculations for each target month"""
        source = self.get(calculation_id)

        targets = []
        for year, month in target_months:
            found = self.repo.list_employee_calculations(source.employee_id, source.kind, year, month)
            if not found:
                raise RecordNotFound("Calculation", f"{source.employee_number} {year}-{month:02d}",
                                     source.employee_number, year, month)
            targets.append(found[0])

        now = datetime.utcnow()
        updated = []
        for target in targets:
            target.retroactive_deductions.append(RetroactiveDeduction(
                year=target.year,
                month=target.month,
                health_premium_diff=diff.health_premium_diff,
                pension_premium_diff=diff.pension_premium_diff,
                company_share_diff=diff.company_share_diff,
                employee_share_diff=diff.employee_share_diff,
                applied_at=now,
                applied_by=actor,
                source_calculation_id=calculation_id,
            ))
            updated.append(self.repo.save_calculation(target))
            logger.info(f"Retroactive deduction from {calculation_id} applied to {target.id} "
                        f"({target.period}) by {actor}")
        return updated

    # ========== Queries ==========

    def summarize(self, organization_id: str, kind: CalculationKind, year: int, month: int) -> PeriodSummary:
        summary = PeriodSummary(organization_id, kind, year, month)
        for record in self.repo.list_calculations(organization_id, kind, year, month):
            amounts = effective_amounts(record)
            summary.employee_count += 1
            summary.total_premium += amounts.total_premium
            summary.company_share += amounts.company_share
            summary.employee_share += amounts.employee_share
            status = record.status.value
            summary.status_counts[status] = summary.status_counts.get(status, 0) + 1
        return summary

    # ========== Helper Methods ==========

    def get(self, calculation_id: int) -> PremiumCalculation:
        record = self.repo.get_calculation(calculation_id)
        if record is None:
            raise RecordNotFound("Calculation", calculation_id)
        return record

    def _profile(self, employee_id: str) -> EmployeeInsuranceProfile:
        profile = self.repo.get_employee(employee_id)
        if profile is None:
            raise RecordNotFound("Employee", employee_id)
        return profile

    def _apply_many(self, calculation_ids: List[int], action) -> BulkRunResult:
        result = BulkRunResult()
        for calculation_id in calculation_ids:
            try:
                result.calculations.append(action(calculation_id))
            except PremiumCalculationError as e:
                result.skipped.append(SkippedEmployee("", e.employee_number or "", e.kind, e.message))
                logger.warning(f"Skipped calculation {calculation_id}: {e.kind}: {e.message}")
        return result

    @staticmethod
    def _transition_error(record: PremiumCalculation, action: str) -> InvalidStatusTransition:
        return InvalidStatusTransition(record.id, record.status.value, action,
                                       record.employee_number, record.year, record.month)
