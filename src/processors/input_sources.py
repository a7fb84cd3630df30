"""Where a calculation gets its inputs from.

LiveInputSource reads current master data through the repository and
enforces the data preconditions. FrozenInputSource replays the inputs
stored inside an existing record. The calculators treat both the same.
"""
import copy
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from models.employee import EmployeeInsuranceProfile
from models.calculation import (
    CalculationInputs, CalculationKind, CalculationStatus, PremiumCalculation
)
from models.errors import (
    MissingStandardReward, SalaryNotConfirmed, BonusNotConfirmed, OtherCompanyDataNotConfirmed
)
from processors.leave_eligibility import LeaveEligibilityEvaluator, collect_postpaid_amounts
from processors.bonus_premium_calculator import (
    standard_bonus_amount, fiscal_year_window, determination_period_window,
    clamp_to_annual_cap, pension_bonus_amount
)
from utils.dates import first_day_of_month, age_on
from config.settings import CARE_AGE_FROM, CARE_AGE_TO, PENSION_EXEMPT_AGE, INELIGIBLE_AGE

logger = logging.getLogger(__name__)

FINALIZED = [CalculationStatus.CONFIRMED, CalculationStatus.EXPORTED]


@dataclass
class CalculationSubject:
    """Who a calculation is for"""
    organization_id: str
    employee_id: str
    employee_number: str
    employee_name: str
    department_name: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: EmployeeInsuranceProfile) -> 'CalculationSubject':
        return cls(profile.organization_id, profile.employee_id, profile.employee_number,
                   profile.name, profile.department_name)

    @classmethod
    def from_record(cls, record: PremiumCalculation) -> 'CalculationSubject':
        return cls(record.organization_id, record.employee_id, record.employee_number,
                   record.employee_name, record.department_name)


def age_flags(birth_date, year: int, month: int) -> Tuple[int, bool, bool]:
    """(age at month start, care insurance applies, pension is waived)"""
    age = age_on(birth_date, first_day_of_month(year, month))
    care = CARE_AGE_FROM <= age < CARE_AGE_TO
    pension_exempt = PENSION_EXEMPT_AGE <= age < INELIGIBLE_AGE
    return age, care, pension_exempt


class LiveInputSource:
    """Inputs derived from live master data"""

    def __init__(self, repository, profile: EmployeeInsuranceProfile,
                 leave_evaluator: Optional[LeaveEligibilityEvaluator] = None):
        self.repo = repository
        self.profile = profile
        self.subject = CalculationSubject.from_profile(profile)
        self.leave_evaluator = leave_evaluator or LeaveEligibilityEvaluator()

    # ========== Monthly ==========

    def monthly_inputs(self, year: int, month: int) -> CalculationInputs:
        p = self.profile
        if not p.standard_reward:
            raise MissingStandardReward(p.employee_number, year, month)

        age, care, pension_exempt = age_flags(p.birth_date, year, month)

        salary = self.repo.get_monthly_salary(p.employee_id, year, month)
        monthly_payment = salary.total_payment if salary and salary.is_confirmed else None

        own = other_total = None
        if p.is_dual_employed:
            if not salary or not salary.is_confirmed:
                raise SalaryNotConfirmed(p.employee_number, year, month)
            reports = self.repo.list_other_company_compensations(p.employee_id, year, month)
            if not reports or not all(r.is_confirmed for r in reports):
                raise OtherCompanyDataNotConfirmed(p.employee_number, year, month, "salary")
            own = salary.total_payment
            other_total = sum(r.monthly_reward for r in reports)

        evaluation = self._evaluate_leave(year, month)
        carried = self._carried_forward(evaluation, CalculationKind.MONTHLY, year, month)

        return CalculationInputs(
            standard_amount=p.standard_reward,
            pension_standard_amount=p.standard_reward,
            age=age,
            care_included=care,
            pension_exempt=pension_exempt,
            dependent_count=len(p.dependents),
            is_dual_employment=p.is_dual_employed,
            own_compensation=own,
            other_compensation_total=other_total,
            leave_state=evaluation.state,
            leave_type=evaluation.leave_type,
            collection_method=evaluation.collection_method,
            carried_forward=carried,
            monthly_payment_amount=monthly_payment,
        )

    # ========== Bonus ==========

    def bonus_inputs(self, year: int, month: int) -> CalculationInputs:
        p = self.profile
        bonus = self.repo.get_bonus(p.employee_id, year, month)
        if not bonus or not bonus.is_confirmed:
            raise BonusNotConfirmed(p.employee_number, year, month)

        age, care, pension_exempt = age_flags(p.birth_date, year, month)

        standard_bonus = standard_bonus_amount(bonus.bonus_amount)
        start, end = fiscal_year_window(year, month)
        prior_total = self._standard_bonus_total(start, end)
        used = clamp_to_annual_cap(standard_bonus, prior_total)
        prior_count = self._finalized_bonus_count(year, month)

        own = other_total = None
        if p.is_dual_employed:
            reports = self.repo.list_other_company_compensations(p.employee_id, year, month)
            paid = [r for r in reports if r.bonus]
            if any(not r.is_confirmed for r in paid):
                raise OtherCompanyDataNotConfirmed(p.employee_number, year, month, "bonus")
            own = bonus.bonus_amount
            other_total = sum(r.bonus for r in paid)

        evaluation = self._evaluate_leave(year, month)
        carried = self._carried_forward(evaluation, CalculationKind.BONUS, year, month)

        return CalculationInputs(
            standard_amount=used,
            pension_standard_amount=pension_bonus_amount(standard_bonus),
            age=age,
            care_included=care,
            pension_exempt=pension_exempt,
            dependent_count=len(p.dependents),
            is_dual_employment=p.is_dual_employed,
            own_compensation=own,
            other_compensation_total=other_total,
            leave_state=evaluation.state,
            leave_type=evaluation.leave_type,
            collection_method=evaluation.collection_method,
            carried_forward=carried,
            bonus_amount=bonus.bonus_amount,
            standard_bonus_amount=standard_bonus,
            prior_cumulative_standard_bonus=prior_total,
            prior_bonus_count=prior_count,
        )

    # ========== Helper Methods ==========

    def _evaluate_leave(self, year: int, month: int):
        org = self.repo.get_organization_config(self.profile.organization_id)
        return self.leave_evaluator.evaluate(self.profile.leave_records, year, month,
                                             org.leave_collection_method)

    def _carried_forward(self, evaluation, kind: CalculationKind, year: int, month: int):
        """Deferred shares of the same kind of calculation, billed in the return month"""
        if not evaluation.collects_carried_forward or evaluation.is_exempt:
            return []
        return collect_postpaid_amounts(
            evaluation.returning_spells, year, month,
            lambda y, m: self._latest(kind, y, m)
        )

    def _latest(self, kind: CalculationKind, year: int, month: int) -> Optional[PremiumCalculation]:
        records = self.repo.list_employee_calculations(self.profile.employee_id, kind, year, month)
        return records[0] if records else None

    def _latest_per_month(self, start, end, statuses=None) -> List[PremiumCalculation]:
        if start > end:
            return []
        records = self.repo.list_employee_calculations_between(
            self.profile.employee_id, CalculationKind.BONUS, start, end, statuses
        )
        latest = {}
        for record in records:  # newest first
            latest.setdefault((record.year, record.month), record)
        return list(latest.values())

    def _standard_bonus_total(self, start, end) -> int:
        """Standard bonus amounts already accrued this fiscal year by finalized calculations"""
        return sum(r.standard_amount for r in self._latest_per_month(start, end, FINALIZED))

    def _finalized_bonus_count(self, year: int, month: int) -> int:
        """Finalized bonus calculations in the July-June period, this month excluded"""
        start, end = determination_period_window(year, month)
        return sum(
            1 for r in self._latest_per_month(start, end, FINALIZED)
            if (r.year, r.month) != (year, month)
        )


class FrozenInputSource:
    """Inputs replayed from an existing calculation record"""

    def __init__(self, record: PremiumCalculation):
        self.record = record
        self.subject = CalculationSubject.from_record(record)

    def monthly_inputs(self, year: int, month: int) -> CalculationInputs:
        return copy.deepcopy(self.record.inputs)

    def bonus_inputs(self, year: int, month: int) -> CalculationInputs:
        return copy.deepcopy(self.record.inputs)
