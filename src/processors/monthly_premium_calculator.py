import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from models.calculation import (
    CalculationInputs, CalculationKind, LeaveState, PremiumCalculation
)
from models.employee import LeaveCollectionMethod
from models.rate_table import RateTableEntry
from processors.rate_table_resolver import RateTableResolver
from processors.premium_allocator import PremiumAllocator
from processors.leave_eligibility import leave_type_label
from utils.formatters import format_currency

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def compute_premium(kind: CalculationKind, subject, year: int, month: int,
                    inputs: CalculationInputs, tables: List[RateTableEntry],
                    allocator: PremiumAllocator, calculated_by: str,
                    now: Optional[datetime] = None) -> PremiumCalculation:
    """Derive a calculation record from its inputs and the month's rate table.

    Shared by the monthly and bonus calculators and by both live and frozen
    input sources.
    """
    emp_no = subject.employee_number

    # Health grade
    health_row = None
    health_half = ZERO
    if inputs.standard_amount > 0:
        health_row = RateTableResolver.grade_for(inputs.standard_amount, tables, emp_no, year, month)
        health_half = health_row.health(inputs.care_included).half_share

    # Pension grade (waived from 70 until 75)
    pension_row = None
    pension_half = ZERO
    if not inputs.pension_exempt and inputs.pension_standard_amount > 0:
        pension_row = RateTableResolver.pension_grade_for(
            inputs.pension_standard_amount, tables, emp_no, year, month)
        pension_half = pension_row.pension.half_share

    unapproved = inputs.leave_state is LeaveState.ON_LEAVE_UNAPPROVED
    direct_transfer = unapproved and inputs.collection_method is LeaveCollectionMethod.DIRECT_TRANSFER

    allocation = allocator.allocate(
        health_half, pension_half,
        dependent_count=inputs.dependent_count,
        inverted=direct_transfer,
        own_compensation=inputs.own_compensation if inputs.is_dual_employment else None,
        other_compensation_total=inputs.other_compensation_total if inputs.is_dual_employment else None,
    )

    record = PremiumCalculation(
        kind=kind,
        organization_id=subject.organization_id,
        employee_id=subject.employee_id,
        employee_number=emp_no,
        employee_name=subject.employee_name,
        department_name=subject.department_name,
        year=year,
        month=month,
        standard_amount=inputs.standard_amount,
        bonus_amount=inputs.bonus_amount,
        grade=health_row.grade if health_row else None,
        pension_grade=pension_row.pension_grade if pension_row else None,
        inputs=inputs,
        health_premium=allocation.health_premium,
        pension_premium=allocation.pension_premium,
        dependent_health_premium=allocation.dependent_health_premium,
        dependent_pension_premium=allocation.dependent_pension_premium,
        total_premium=allocation.total_premium,
        company_share=allocation.company_share,
        employee_share=allocation.employee_share,
        health_rate=health_row.health(inputs.care_included).rate if health_row else None,
        pension_rate=pension_row.pension.rate if pension_row else None,
        is_on_leave=inputs.leave_state is not LeaveState.ACTIVE,
        calculated_by=calculated_by,
        calculated_at=now or datetime.utcnow(),
    )

    if inputs.leave_state is LeaveState.ON_LEAVE_APPROVED_EXEMPT:
        _apply_exemption(record, inputs)
        return record

    if unapproved:
        if direct_transfer:
            record.add_note("Not deducted from payroll (paid by the employee via direct transfer)")
        else:
            _defer_employee_share(record)

    if inputs.carried_forward:
        _collect_carried_forward(record, inputs)

    return record


def _apply_exemption(record: PremiumCalculation, inputs: CalculationInputs):
    record.health_premium = ZERO
    record.pension_premium = ZERO
    record.dependent_health_premium = ZERO
    record.dependent_pension_premium = ZERO
    record.total_premium = ZERO
    record.company_share = ZERO
    record.employee_share = ZERO
    record.add_note(f"Exempt from all premiums during approved {leave_type_label(inputs.leave_type)}")


def _defer_employee_share(record: PremiumCalculation):
    # Employer advances the whole premium; the employee's part is billed after return
    deferred = record.employee_share
    record.postpaid_leave_amount = deferred
    record.postpaid_leave_company_amount = record.total_premium
    record.company_share += deferred
    record.employee_share = ZERO
    record.add_note(
        f"Collected after return from leave (deferred: {format_currency(deferred)}, "
        f"advanced by employer: {format_currency(record.total_premium)})"
    )


def _collect_carried_forward(record: PremiumCalculation, inputs: CalculationInputs):
    amounts = inputs.carried_forward
    total = sum((a.employee_share for a in amounts), ZERO)
    record.postpaid_leave_amounts = list(amounts)
    record.postpaid_leave_total = total
    record.postpaid_leave_company_total = sum((a.company_share for a in amounts), ZERO)
    record.employee_share += total
    months = ", ".join(f"{a.year}-{a.month:02d}" for a in amounts)
    record.add_note(f"Uncollected leave-period amounts added ({months}: {format_currency(total)})")


class MonthlyPremiumCalculator:
    """Monthly premium for one employee and one month"""

    kind = CalculationKind.MONTHLY

    def __init__(self, resolver: RateTableResolver, allocator: Optional[PremiumAllocator] = None):
        self.resolver = resolver
        self.allocator = allocator or PremiumAllocator()

    def calculate(self, source, year: int, month: int, calculated_by: str) -> PremiumCalculation:
        inputs = source.monthly_inputs(year, month)
        subject = source.subject
        tables = self.resolver.tables_for(subject.organization_id, year, month, subject.employee_number)
        record = compute_premium(self.kind, subject, year, month, inputs, tables,
                                 self.allocator, calculated_by)
        record.monthly_payment_amount = inputs.monthly_payment_amount
        logger.debug(f"Monthly premium {subject.employee_number} {year}-{month:02d}: "
                     f"total={record.total_premium} employee={record.employee_share}")
        return record
