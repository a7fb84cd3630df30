from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_
from typing import List, Optional, Tuple
from datetime import date, datetime
from decimal import Decimal
import json
import logging

from .models import (
    OrganizationDB, EmployeeDB, RateTableEntryDB, MonthlySalaryDB,
    BonusPaymentDB, OtherCompanyCompensationDB, PremiumCalculationDB
)
from models.employee import (
    EmployeeInsuranceProfile, Dependent, OtherCompanyEmployment, LeaveRecord,
    OrganizationConfig, LeaveCollectionMethod, MonthlySalary, BonusPayment,
    OtherCompanyCompensation
)
from models.rate_table import RateTableEntry, PremiumAmounts
from models.calculation import PremiumCalculation, CalculationKind, CalculationStatus
from models.errors import RecordNotFound
from utils.validators import validate_rate, validate_leave_range
from config.settings import DEFAULT_LEAVE_COLLECTION_METHOD

logger = logging.getLogger(__name__)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _month_index(year: int, month: int) -> int:
    return year * 12 + month


DRAFT_INDEX = 'uq_calc_one_draft'
DRAFT_INDEX_COLUMNS = ('premium_calculations.organization_id, premium_calculations.employee_id, '
                       'premium_calculations.kind, premium_calculations.year, premium_calculations.month')


def _is_draft_conflict(error: IntegrityError) -> bool:
    """Whether error is a violation of the one-draft-per-period index"""
    message = str(error.orig)
    # PostgreSQL names the index, SQLite lists its columns
    return DRAFT_INDEX in message or ('UNIQUE' in message and DRAFT_INDEX_COLUMNS in message)


class PremiumRepository:
    """Repository for premium calculation data.

    Serves every lookup the calculation engine needs (employees, rate
    tables, compensation, organization policy) and stores calculation
    records.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    # ========== Organization Operations ==========

    def save_organization(self, config: OrganizationConfig) -> OrganizationDB:
        """Save or update organization"""
        db_org = self.db.query(OrganizationDB).filter_by(id=config.organization_id).first()
        if not db_org:
            db_org = OrganizationDB(id=config.organization_id)
            self.db.add(db_org)
        db_org.name = config.name
        db_org.leave_collection_method = config.leave_collection_method.value
        self.db.commit()
        self.db.refresh(db_org)
        return db_org

    def get_organization_config(self, organization_id: str) -> OrganizationConfig:
        db_org = self.db.query(OrganizationDB).filter_by(id=organization_id).first()
        if not db_org:
            raise RecordNotFound("Organization", organization_id)
        method = db_org.leave_collection_method or DEFAULT_LEAVE_COLLECTION_METHOD
        return OrganizationConfig(
            organization_id=db_org.id,
            name=db_org.name,
            leave_collection_method=LeaveCollectionMethod(method),
        )

    # ========== Employee Operations ==========

    def save_employee(self, profile: EmployeeInsuranceProfile) -> EmployeeDB:
        """Save or update employee profile"""
        for leave in profile.leave_records:
            if not validate_leave_range(leave.start_date, leave.end_date):
                raise ValueError(f"Leave of employee {profile.employee_number} ends before it starts")
        db_employee = self.db.query(EmployeeDB).filter_by(id=profile.employee_id).first()
        if not db_employee:
            db_employee = EmployeeDB(id=profile.employee_id)
            self.db.add(db_employee)
        db_employee.organization_id = profile.organization_id
        db_employee.employee_number = profile.employee_number
        db_employee.name = profile.name
        db_employee.birth_date = profile.birth_date
        db_employee.join_date = profile.join_date
        db_employee.retirement_date = profile.retirement_date
        db_employee.standard_reward = profile.standard_reward
        db_employee.department_name = profile.department_name
        db_employee.dependents_json = json.dumps([
            {'name': d.name, 'relationship': d.relationship, 'birth_date': _iso(d.birth_date)}
            for d in profile.dependents
        ])
        db_employee.other_companies_json = json.dumps([
            {'company_id': o.company_id, 'company_name': o.company_name, 'is_primary': o.is_primary}
            for o in profile.other_company_employments
        ])
        db_employee.leave_records_json = json.dumps([
            {'leave_type': l.leave_type, 'start_date': _iso(l.start_date),
             'end_date': _iso(l.end_date), 'is_approved': l.is_approved}
            for l in profile.leave_records
        ])
        self.db.commit()
        self.db.refresh(db_employee)
        return db_employee

    def get_employee(self, employee_id: str) -> Optional[EmployeeInsuranceProfile]:
        """Get employee by ID"""
        db_employee = self.db.query(EmployeeDB).filter_by(id=employee_id).first()
        return self._to_profile(db_employee) if db_employee else None

    def list_employees(self, organization_id: str) -> List[EmployeeInsuranceProfile]:
        """Get all employees of an organization"""
        rows = (self.db.query(EmployeeDB)
                .filter_by(organization_id=organization_id)
                .order_by(EmployeeDB.employee_number)
                .all())
        return [self._to_profile(r) for r in rows]

    # ========== Rate Table Operations ==========

    def save_rate_table_entries(self, entries: List[RateTableEntry]):
        for entry in entries:
            rates = (entry.health_without_care.rate, entry.health_with_care.rate, entry.pension.rate)
            if not all(validate_rate(r) for r in rates):
                raise ValueError(f"Invalid premium rate in grade {entry.grade} of {entry.organization_id}")
            self.db.add(RateTableEntryDB(
                organization_id=entry.organization_id,
                grade=entry.grade,
                pension_grade=entry.pension_grade,
                standard_reward_amount=entry.standard_reward_amount,
                min_amount=entry.min_amount,
                max_amount=entry.max_amount,
                health_rate=entry.health_without_care.rate,
                health_total=entry.health_without_care.total_premium,
                health_half=entry.health_without_care.half_share,
                health_care_rate=entry.health_with_care.rate,
                health_care_total=entry.health_with_care.total_premium,
                health_care_half=entry.health_with_care.half_share,
                pension_rate=entry.pension.rate,
                pension_total=entry.pension.total_premium,
                pension_half=entry.pension.half_share,
                effective_from=entry.effective_from,
                effective_to=entry.effective_to,
            ))
        self.db.commit()

    def list_rate_tables(self, organization_id: str) -> List[RateTableEntry]:
        """All rate table rows of an organization, across every effective period"""
        rows = (self.db.query(RateTableEntryDB)
                .filter_by(organization_id=organization_id)
                .order_by(RateTableEntryDB.effective_from, RateTableEntryDB.grade)
                .all())
        return [self._to_rate_entry(r) for r in rows]

    # ========== Compensation Operations ==========

    def save_monthly_salary(self, salary: MonthlySalary) -> MonthlySalaryDB:
        row = self._period_row(MonthlySalaryDB, salary.employee_id, salary.year, salary.month)
        if not row:
            row = MonthlySalaryDB(employee_id=salary.employee_id, year=salary.year, month=salary.month)
            self.db.add(row)
        row.total_payment = salary.total_payment
        row.is_confirmed = salary.is_confirmed
        self.db.commit()
        return row

    def get_monthly_salary(self, employee_id: str, year: int, month: int) -> Optional[MonthlySalary]:
        row = self._period_row(MonthlySalaryDB, employee_id, year, month)
        if not row:
            return None
        return MonthlySalary(row.employee_id, row.year, row.month, row.total_payment, row.is_confirmed)

    def save_bonus_payment(self, bonus: BonusPayment) -> BonusPaymentDB:
        row = self._period_row(BonusPaymentDB, bonus.employee_id, bonus.year, bonus.month)
        if not row:
            row = BonusPaymentDB(employee_id=bonus.employee_id, year=bonus.year, month=bonus.month)
            self.db.add(row)
        row.bonus_amount = bonus.bonus_amount
        row.is_confirmed = bonus.is_confirmed
        self.db.commit()
        return row

    def get_bonus(self, employee_id: str, year: int, month: int) -> Optional[BonusPayment]:
        row = self._period_row(BonusPaymentDB, employee_id, year, month)
        if not row:
            return None
        return BonusPayment(row.employee_id, row.year, row.month, row.bonus_amount, row.is_confirmed)

    def save_other_company_compensation(self, comp: OtherCompanyCompensation) -> OtherCompanyCompensationDB:
        row = self.db.query(OtherCompanyCompensationDB).filter(
            and_(
                OtherCompanyCompensationDB.employee_id == comp.employee_id,
                OtherCompanyCompensationDB.company_id == comp.company_id,
                OtherCompanyCompensationDB.year == comp.year,
                OtherCompanyCompensationDB.month == comp.month
            )
        ).first()
        if not row:
            row = OtherCompanyCompensationDB(
                employee_id=comp.employee_id, company_id=comp.company_id,
                year=comp.year, month=comp.month
            )
            self.db.add(row)
        row.company_name = comp.company_name
        row.monthly_reward = comp.monthly_reward
        row.bonus = comp.bonus
        row.is_confirmed = comp.is_confirmed
        self.db.commit()
        return row

    def list_other_company_compensations(self, employee_id: str, year: int, month: int,
                                         confirmed_only: bool = False) -> List[OtherCompanyCompensation]:
        """Compensation reported by other employers for the month"""
        query = self.db.query(OtherCompanyCompensationDB).filter(
            and_(
                OtherCompanyCompensationDB.employee_id == employee_id,
                OtherCompanyCompensationDB.year == year,
                OtherCompanyCompensationDB.month == month
            )
        )
        if confirmed_only:
            query = query.filter(OtherCompanyCompensationDB.is_confirmed.is_(True))
        return [
            OtherCompanyCompensation(
                employee_id=r.employee_id, company_id=r.company_id, company_name=r.company_name,
                year=r.year, month=r.month, monthly_reward=r.monthly_reward,
                bonus=r.bonus, is_confirmed=r.is_confirmed,
            )
            for r in query.order_by(OtherCompanyCompensationDB.company_id).all()
        ]

    # ========== Calculation Operations ==========

    def get_calculation(self, calculation_id: int) -> Optional[PremiumCalculation]:
        row = self.db.query(PremiumCalculationDB).filter_by(id=calculation_id).first()
        return self._to_calculation(row) if row else None

    def list_calculations(self, organization_id: str, kind: CalculationKind, year: int, month: int,
                          statuses: Optional[List[CalculationStatus]] = None) -> List[PremiumCalculation]:
        """Calculations of an organization for one period, newest first"""
        query = self.db.query(PremiumCalculationDB).filter(
            and_(
                PremiumCalculationDB.organization_id == organization_id,
                PremiumCalculationDB.kind == kind.value,
                PremiumCalculationDB.year == year,
                PremiumCalculationDB.month == month
            )
        )
        if statuses:
            query = query.filter(PremiumCalculationDB.status.in_([s.value for s in statuses]))
        rows = query.order_by(PremiumCalculationDB.created_at.desc(), PremiumCalculationDB.id.desc()).all()
        return [self._to_calculation(r) for r in rows]

    def list_employee_calculations(self, employee_id: str, kind: CalculationKind,
                                   year: int, month: int) -> List[PremiumCalculation]:
        """Calculations of one employee for one period, newest first"""
        return self.list_employee_calculations_between(employee_id, kind, (year, month), (year, month))

    def list_employee_calculations_between(self, employee_id: str, kind: CalculationKind,
                                           start: Tuple[int, int], end: Tuple[int, int],
                                           statuses: Optional[List[CalculationStatus]] = None
                                           ) -> List[PremiumCalculation]:
        """Calculations of one employee whose period lies in [start, end], newest first"""
        period = PremiumCalculationDB.year * 12 + PremiumCalculationDB.month
        query = self.db.query(PremiumCalculationDB).filter(
            and_(
                PremiumCalculationDB.employee_id == employee_id,
                PremiumCalculationDB.kind == kind.value,
                period >= _month_index(*start),
                period <= _month_index(*end)
            )
        )
        if statuses:
            query = query.filter(PremiumCalculationDB.status.in_([s.value for s in statuses]))
        rows = query.order_by(PremiumCalculationDB.created_at.desc(), PremiumCalculationDB.id.desc()).all()
        return [self._to_calculation(r) for r in rows]

    def save_calculation(self, calculation: PremiumCalculation) -> PremiumCalculation:
        """Insert or replace a calculation record.

        A record without an id that is a draft replaces the existing draft
        for the same employee and period, if any. A concurrent insert that
        trips the one-draft index is retried as an overwrite; any other
        integrity error propagates.
        """
        try:
            row = self._write_calculation(calculation)
        except IntegrityError as e:
            self.db.rollback()
            if not _is_draft_conflict(e):
                raise
            logger.warning(f"Concurrent draft for {calculation.employee_number} {calculation.period}, "
                           f"overwriting")
            row = self._write_calculation(calculation)
        calculation.id = row.id
        calculation.created_at = row.created_at
        calculation.updated_at = row.updated_at
        return calculation

    def delete_calculation(self, calculation_id: int):
        row = self.db.query(PremiumCalculationDB).filter_by(id=calculation_id).first()
        if not row:
            raise RecordNotFound("Calculation", calculation_id)
        self.db.delete(row)
        self.db.commit()

    # ========== Helper Methods ==========

    def _write_calculation(self, calculation: PremiumCalculation) -> PremiumCalculationDB:
        row = None
        if calculation.id is not None:
            row = self.db.query(PremiumCalculationDB).filter_by(id=calculation.id).first()
            if not row:
                raise RecordNotFound("Calculation", calculation.id)
        elif calculation.status is CalculationStatus.DRAFT:
            row = self._find_draft(calculation)

        if row is None:
            # Placeholder until the id is known
            row = PremiumCalculationDB(created_at=datetime.utcnow(), data_json='{}')
            self.db.add(row)

        row.organization_id = calculation.organization_id
        row.employee_id = calculation.employee_id
        row.employee_number = calculation.employee_number
        row.kind = calculation.kind.value
        row.year = calculation.year
        row.month = calculation.month
        row.status = calculation.status.value
        row.total_premium = calculation.total_premium
        row.company_share = calculation.company_share
        row.employee_share = calculation.employee_share
        row.schema_version = calculation.schema_version
        row.updated_at = datetime.utcnow()
        self.db.flush()

        # data_json carries the id so the stored record is self-contained
        calculation.id = row.id
        calculation.created_at = row.created_at
        calculation.updated_at = row.updated_at
        row.data_json = json.dumps(calculation.to_dict(), ensure_ascii=False)
        self.db.commit()
        self.db.refresh(row)
        return row

    def _find_draft(self, calculation: PremiumCalculation) -> Optional[PremiumCalculationDB]:
        return self.db.query(PremiumCalculationDB).filter(
            and_(
                PremiumCalculationDB.organization_id == calculation.organization_id,
                PremiumCalculationDB.employee_id == calculation.employee_id,
                PremiumCalculationDB.kind == calculation.kind.value,
                PremiumCalculationDB.year == calculation.year,
                PremiumCalculationDB.month == calculation.month,
                PremiumCalculationDB.status == CalculationStatus.DRAFT.value
            )
        ).first()

    def _period_row(self, model, employee_id: str, year: int, month: int):
        return self.db.query(model).filter(
            and_(
                model.employee_id == employee_id,
                model.year == year,
                model.month == month
            )
        ).first()

    def _to_calculation(self, row: PremiumCalculationDB) -> PremiumCalculation:
        calculation = PremiumCalculation.from_dict(json.loads(row.data_json))
        calculation.id = row.id
        return calculation

    def _to_profile(self, row: EmployeeDB) -> EmployeeInsuranceProfile:
        return EmployeeInsuranceProfile(
            employee_id=row.id,
            organization_id=row.organization_id,
            employee_number=row.employee_number,
            name=row.name,
            birth_date=row.birth_date,
            join_date=row.join_date,
            standard_reward=row.standard_reward,
            retirement_date=row.retirement_date,
            department_name=row.department_name,
            dependents=[
                Dependent(d['name'], d['relationship'], _date(d.get('birth_date')))
                for d in json.loads(row.dependents_json or '[]')
            ],
            other_company_employments=[
                OtherCompanyEmployment(o['company_id'], o['company_name'], o.get('is_primary', False))
                for o in json.loads(row.other_companies_json or '[]')
            ],
            leave_records=[
                LeaveRecord(l['leave_type'], _date(l['start_date']), _date(l.get('end_date')),
                            l.get('is_approved', False))
                for l in json.loads(row.leave_records_json or '[]')
            ],
        )

    def _to_rate_entry(self, row: RateTableEntryDB) -> RateTableEntry:
        def amounts(rate, total, half) -> PremiumAmounts:
            return PremiumAmounts(rate=Decimal(str(rate)), total_premium=Decimal(str(total)),
                                  half_share=Decimal(str(half)))

        return RateTableEntry(
            organization_id=row.organization_id,
            grade=row.grade,
            standard_reward_amount=row.standard_reward_amount,
            min_amount=row.min_amount,
            max_amount=row.max_amount,
            health_without_care=amounts(row.health_rate, row.health_total, row.health_half),
            health_with_care=amounts(row.health_care_rate, row.health_care_total, row.health_care_half),
            pension=amounts(row.pension_rate, row.pension_total, row.pension_half),
            effective_from=row.effective_from,
            effective_to=row.effective_to,
            pension_grade=row.pension_grade,
        )
