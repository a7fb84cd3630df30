from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .employee import LeaveCollectionMethod

SCHEMA_VERSION = 2

ZERO = Decimal('0')


class CalculationKind(str, Enum):
    MONTHLY = "monthly"
    BONUS = "bonus"


class CalculationStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    EXPORTED = "exported"

    @property
    def is_finalized(self) -> bool:
        return self is not CalculationStatus.DRAFT


class LeaveState(str, Enum):
    ACTIVE = "active"
    ON_LEAVE_UNAPPROVED = "on_leave_unapproved"
    ON_LEAVE_APPROVED_EXEMPT = "on_leave_approved_exempt"


class RecalculationMode(str, Enum):
    HISTORICAL = "historical"  # replay the inputs frozen in the record
    CURRENT = "current"        # reload inputs from live master data


# ---------- serialization helpers ----------

def _money(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _dt(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _encode(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


# ---------- nested records ----------

@dataclass
class PostpaidLeaveAmount:
    """Employee share deferred during one month of unapproved leave"""
    year: int
    month: int
    employee_share: Decimal
    company_share: Decimal
    total_premium: Decimal
    leave_type: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PostpaidLeaveAmount':
        return cls(
            year=data['year'],
            month=data['month'],
            employee_share=_money(data['employee_share']),
            company_share=_money(data['company_share']),
            total_premium=_money(data['total_premium']),
            leave_type=data['leave_type'],
        )


@dataclass
class MonetarySnapshot:
    """Monetary fields of a calculation captured before it is recalculated"""
    standard_amount: int
    grade: Optional[int]
    pension_grade: Optional[int]
    health_premium: Decimal
    pension_premium: Decimal
    dependent_health_premium: Decimal
    dependent_pension_premium: Decimal
    total_premium: Decimal
    company_share: Decimal
    employee_share: Decimal
    calculated_by: str
    calculated_at: Optional[datetime]
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MonetarySnapshot':
        return cls(
            standard_amount=data['standard_amount'],
            grade=data['grade'],
            pension_grade=data.get('pension_grade'),
            health_premium=_money(data['health_premium']),
            pension_premium=_money(data['pension_premium']),
            dependent_health_premium=_money(data['dependent_health_premium']),
            dependent_pension_premium=_money(data['dependent_pension_premium']),
            total_premium=_money(data['total_premium']),
            company_share=_money(data['company_share']),
            employee_share=_money(data['employee_share']),
            calculated_by=data['calculated_by'],
            calculated_at=_dt(data.get('calculated_at')),
            notes=data.get('notes', ""),
        )


@dataclass
class RecalculationHistoryEntry:
    recalculated_at: datetime
    recalculated_by: str
    mode: RecalculationMode
    snapshot: MonetarySnapshot
    reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecalculationHistoryEntry':
        return cls(
            recalculated_at=_dt(data['recalculated_at']),
            recalculated_by=data['recalculated_by'],
            mode=RecalculationMode(data['mode']),
            snapshot=MonetarySnapshot.from_dict(data['snapshot']),
            reason=data.get('reason'),
        )


@dataclass
class PremiumDifference:
    """Difference between a calculation before and after recalculation (new - previous)"""
    previous_health_premium: Decimal
    previous_pension_premium: Decimal
    previous_company_share: Decimal
    previous_employee_share: Decimal
    new_health_premium: Decimal
    new_pension_premium: Decimal
    new_company_share: Decimal
    new_employee_share: Decimal

    @property
    def health_premium_diff(self) -> Decimal:
        return self.new_health_premium - self.previous_health_premium

    @property
    def pension_premium_diff(self) -> Decimal:
        return self.new_pension_premium - self.previous_pension_premium

    @property
    def company_share_diff(self) -> Decimal:
        return self.new_company_share - self.previous_company_share

    @property
    def employee_share_diff(self) -> Decimal:
        return self.new_employee_share - self.previous_employee_share

    @property
    def has_difference(self) -> bool:
        return any([self.health_premium_diff, self.pension_premium_diff,
                    self.company_share_diff, self.employee_share_diff])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PremiumDifference':
        return cls(**{k: _money(v) for k, v in data.items()})


@dataclass
class RetroactiveDeduction:
    """Premium difference to be added to the (year, month) calculation it is tagged with"""
    year: int
    month: int
    health_premium_diff: Decimal
    pension_premium_diff: Decimal
    company_share_diff: Decimal
    employee_share_diff: Decimal
    applied_at: datetime
    applied_by: str
    source_calculation_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetroactiveDeduction':
        return cls(
            year=data['year'],
            month=data['month'],
            health_premium_diff=_money(data['health_premium_diff']),
            pension_premium_diff=_money(data['pension_premium_diff']),
            company_share_diff=_money(data['company_share_diff']),
            employee_share_diff=_money(data['employee_share_diff']),
            applied_at=_dt(data['applied_at']),
            applied_by=data['applied_by'],
            source_calculation_id=data.get('source_calculation_id'),
        )


@dataclass
class CalculationInputs:
    """Everything a calculation was derived from, frozen inside the record.

    Replaying these against the month's rate table reproduces the figures
    that were known when the record was first calculated.
    """
    standard_amount: int
    pension_standard_amount: int
    age: int
    care_included: bool
    pension_exempt: bool
    dependent_count: int = 0
    is_dual_employment: bool = False
    own_compensation: Optional[int] = None
    other_compensation_total: Optional[int] = None
    leave_state: LeaveState = LeaveState.ACTIVE
    leave_type: Optional[str] = None
    collection_method: LeaveCollectionMethod = LeaveCollectionMethod.POSTPAID
    carried_forward: List[PostpaidLeaveAmount] = field(default_factory=list)
    monthly_payment_amount: Optional[int] = None
    # bonus only
    bonus_amount: Optional[int] = None
    standard_bonus_amount: Optional[int] = None
    prior_cumulative_standard_bonus: Optional[int] = None
    prior_bonus_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalculationInputs':
        data = dict(data)
        data['leave_state'] = LeaveState(data.get('leave_state', LeaveState.ACTIVE.value))
        data['collection_method'] = LeaveCollectionMethod(
            data.get('collection_method', LeaveCollectionMethod.POSTPAID.value))
        data['carried_forward'] = [PostpaidLeaveAmount.from_dict(p) for p in data.get('carried_forward', [])]
        return cls(**data)


# ---------- the calculation record ----------

@dataclass
class PremiumCalculation:
    """Premium calculation for one employee and one month (monthly or bonus)"""
    kind: CalculationKind
    organization_id: str
    employee_id: str
    employee_number: str
    employee_name: str
    year: int
    month: int
    standard_amount: int
    grade: Optional[int]
    pension_grade: Optional[int]
    inputs: CalculationInputs
    health_premium: Decimal = ZERO
    pension_premium: Decimal = ZERO
    dependent_health_premium: Decimal = ZERO
    dependent_pension_premium: Decimal = ZERO
    total_premium: Decimal = ZERO
    company_share: Decimal = ZERO
    employee_share: Decimal = ZERO
    health_rate: Optional[Decimal] = None
    pension_rate: Optional[Decimal] = None
    status: CalculationStatus = CalculationStatus.DRAFT
    notes: str = ""
    department_name: Optional[str] = None
    bonus_amount: Optional[int] = None
    monthly_payment_amount: Optional[int] = None
    # leave
    is_on_leave: bool = False
    postpaid_leave_amount: Optional[Decimal] = None
    postpaid_leave_company_amount: Optional[Decimal] = None
    postpaid_leave_amounts: List[PostpaidLeaveAmount] = field(default_factory=list)
    postpaid_leave_total: Optional[Decimal] = None
    postpaid_leave_company_total: Optional[Decimal] = None
    # history and corrections
    recalculation_history: List[RecalculationHistoryEntry] = field(default_factory=list)
    premium_difference: Optional[PremiumDifference] = None
    retroactive_deductions: List[RetroactiveDeduction] = field(default_factory=list)
    # audit
    calculated_by: str = ""
    calculated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    exported_at: Optional[datetime] = None
    exported_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None
    schema_version: int = SCHEMA_VERSION

    @property
    def employer_dependent_premium(self) -> Decimal:
        return self.dependent_health_premium + self.dependent_pension_premium

    @property
    def period(self) -> str:
        return f"{self.year}-{self.month:02d}"

    def add_note(self, note: str):
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def monetary_snapshot(self) -> MonetarySnapshot:
        return MonetarySnapshot(
            standard_amount=self.standard_amount,
            grade=self.grade,
            pension_grade=self.pension_grade,
            health_premium=self.health_premium,
            pension_premium=self.pension_premium,
            dependent_health_premium=self.dependent_health_premium,
            dependent_pension_premium=self.dependent_pension_premium,
            total_premium=self.total_premium,
            company_share=self.company_share,
            employee_share=self.employee_share,
            calculated_by=self.calculated_by,
            calculated_at=self.calculated_at,
            notes=self.notes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _encode(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PremiumCalculation':
        diff = data.get('premium_difference')
        return cls(
            kind=CalculationKind(data['kind']),
            organization_id=data['organization_id'],
            employee_id=data['employee_id'],
            employee_number=data['employee_number'],
            employee_name=data['employee_name'],
            year=data['year'],
            month=data['month'],
            standard_amount=data['standard_amount'],
            grade=data['grade'],
            pension_grade=data.get('pension_grade'),
            inputs=CalculationInputs.from_dict(data['inputs']),
            health_premium=_money(data['health_premium']),
            pension_premium=_money(data['pension_premium']),
            dependent_health_premium=_money(data['dependent_health_premium']),
            dependent_pension_premium=_money(data['dependent_pension_premium']),
            total_premium=_money(data['total_premium']),
            company_share=_money(data['company_share']),
            employee_share=_money(data['employee_share']),
            health_rate=_money(data.get('health_rate')),
            pension_rate=_money(data.get('pension_rate')),
            status=CalculationStatus(data['status']),
            notes=data.get('notes', ""),
            department_name=data.get('department_name'),
            bonus_amount=data.get('bonus_amount'),
            monthly_payment_amount=data.get('monthly_payment_amount'),
            is_on_leave=data.get('is_on_leave', False),
            postpaid_leave_amount=_money(data.get('postpaid_leave_amount')),
            postpaid_leave_company_amount=_money(data.get('postpaid_leave_company_amount')),
            postpaid_leave_amounts=[PostpaidLeaveAmount.from_dict(p)
                                    for p in data.get('postpaid_leave_amounts', [])],
            postpaid_leave_total=_money(data.get('postpaid_leave_total')),
            postpaid_leave_company_total=_money(data.get('postpaid_leave_company_total')),
            recalculation_history=[RecalculationHistoryEntry.from_dict(h)
                                   for h in data.get('recalculation_history', [])],
            premium_difference=PremiumDifference.from_dict(diff) if diff else None,
            retroactive_deductions=[RetroactiveDeduction.from_dict(d)
                                    for d in data.get('retroactive_deductions', [])],
            calculated_by=data.get('calculated_by', ""),
            calculated_at=_dt(data.get('calculated_at')),
            confirmed_at=_dt(data.get('confirmed_at')),
            confirmed_by=data.get('confirmed_by'),
            exported_at=_dt(data.get('exported_at')),
            exported_by=data.get('exported_by'),
            created_at=_dt(data.get('created_at')),
            updated_at=_dt(data.get('updated_at')),
            id=data.get('id'),
            schema_version=data.get('schema_version', SCHEMA_VERSION),
        )

    def __repr__(self):
        return (f"<PremiumCalculation(id={self.id}, kind={self.kind.value}, "
                f"employee={self.employee_number}, period={self.period}, status={self.status.value})>")


@dataclass
class EffectiveAmounts:
    total_premium: Decimal
    company_share: Decimal
    employee_share: Decimal


def effective_amounts(record: PremiumCalculation) -> EffectiveAmounts:
    """Record amounts plus the retroactive deductions tagged with its own period"""
    total = record.total_premium
    company = record.company_share
    employee = record.employee_share
    for d in record.retroactive_deductions:
        if (d.year, d.month) != (record.year, record.month):
            continue
        total += d.health_premium_diff + d.pension_premium_diff
        company += d.company_share_diff
        employee += d.employee_share_diff
    return EffectiveAmounts(total, company, employee)
