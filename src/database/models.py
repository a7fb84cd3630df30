from sqlalchemy import (
    Column, Integer, String, Date, Numeric, Text, DateTime, Boolean, ForeignKey, Index, text
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class OrganizationDB(Base):
    """Organization and its premium collection policy"""
    __tablename__ = "organizations"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    leave_collection_method = Column(String(20), nullable=False, default='postpaid')
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employees = relationship("EmployeeDB", back_populates="organization")

    def __repr__(self):
        return f"<Organization(id={self.id}, name={self.name})>"


class EmployeeDB(Base):
    """Employee insurance profile"""
    __tablename__ = "employees"

    id = Column(String, primary_key=True)
    organization_id = Column(String, ForeignKey('organizations.id'), nullable=False, index=True)
    employee_number = Column(String(50), nullable=False)
    name = Column(String, nullable=False)
    birth_date = Column(Date, nullable=False)
    join_date = Column(Date, nullable=False)
    retirement_date = Column(Date)
    standard_reward = Column(Integer)
    department_name = Column(String)

    # Lists stored as JSON
    dependents_json = Column(Text, nullable=False, default='[]')
    other_companies_json = Column(Text, nullable=False, default='[]')
    leave_records_json = Column(Text, nullable=False, default='[]')

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("OrganizationDB", back_populates="employees")

    def __repr__(self):
        return f"<Employee(id={self.id}, number={self.employee_number}, name={self.name})>"


class RateTableEntryDB(Base):
    """One grade bracket of an organization's premium rate table"""
    __tablename__ = "rate_table_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey('organizations.id'), nullable=False, index=True)

    grade = Column(Integer, nullable=False)
    pension_grade = Column(Integer)
    standard_reward_amount = Column(Integer, nullable=False)
    min_amount = Column(Integer, nullable=False)
    max_amount = Column(Integer)  # NULL or 0: open-ended

    # Health insurance without care insurance
    health_rate = Column(Numeric(8, 3), nullable=False)
    health_total = Column(Numeric(14, 3), nullable=False)
    health_half = Column(Numeric(14, 3), nullable=False)

    # Health insurance including care insurance (age 40-64)
    health_care_rate = Column(Numeric(8, 3), nullable=False)
    health_care_total = Column(Numeric(14, 3), nullable=False)
    health_care_half = Column(Numeric(14, 3), nullable=False)

    # Employees' pension
    pension_rate = Column(Numeric(8, 3), nullable=False)
    pension_total = Column(Numeric(14, 3), nullable=False)
    pension_half = Column(Numeric(14, 3), nullable=False)

    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<RateTableEntry(org={self.organization_id}, grade={self.grade}, from={self.effective_from})>"


class MonthlySalaryDB(Base):
    """Salary paid by this organization for one month"""
    __tablename__ = "monthly_salaries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String, ForeignKey('employees.id'), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False, index=True)
    total_payment = Column(Integer, nullable=False)
    is_confirmed = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<MonthlySalary(employee={self.employee_id}, period={self.year}-{self.month:02d})>"


class BonusPaymentDB(Base):
    """Bonus paid by this organization in one month"""
    __tablename__ = "bonus_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String, ForeignKey('employees.id'), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False, index=True)
    bonus_amount = Column(Integer, nullable=False)
    is_confirmed = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<BonusPayment(employee={self.employee_id}, period={self.year}-{self.month:02d})>"


class OtherCompanyCompensationDB(Base):
    """Compensation reported by another employer of a dual-employed employee"""
    __tablename__ = "other_company_compensations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String, ForeignKey('employees.id'), nullable=False)
    company_id = Column(String, nullable=False)
    company_name = Column(String, nullable=False)
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False, index=True)
    monthly_reward = Column(Integer, nullable=False, default=0)
    bonus = Column(Integer)
    is_confirmed = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return (f"<OtherCompanyCompensation(employee={self.employee_id}, company={self.company_id}, "
                f"period={self.year}-{self.month:02d})>")


class PremiumCalculationDB(Base):
    """Premium calculation record (monthly or bonus)"""
    __tablename__ = "premium_calculations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, ForeignKey('organizations.id'), nullable=False)
    employee_id = Column(String, ForeignKey('employees.id'), nullable=False)
    employee_number = Column(String(50), nullable=False)
    kind = Column(String(10), nullable=False)  # 'monthly', 'bonus'

    # Period information
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False, index=True)

    status = Column(String(20), nullable=False, default='draft')  # 'draft', 'confirmed', 'exported'

    # Totals, queryable without decoding the record
    total_premium = Column(Numeric(14, 3), nullable=False, default=0)
    company_share = Column(Numeric(14, 3), nullable=False, default=0)
    employee_share = Column(Numeric(14, 3), nullable=False, default=0)

    # Full record as versioned JSON
    schema_version = Column(Integer, nullable=False)
    data_json = Column(Text, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)  # set by the repository, mirrored in data_json

    __table_args__ = (
        Index('ix_calc_org_period', 'organization_id', 'kind', 'year', 'month'),
        Index('ix_calc_employee_period', 'employee_id', 'kind', 'year', 'month'),
        # At most one draft per employee and period
        Index(
            'uq_calc_one_draft',
            'organization_id', 'employee_id', 'kind', 'year', 'month',
            unique=True,
            sqlite_where=text("status = 'draft'"),
            postgresql_where=text("status = 'draft'"),
        ),
    )

    def __repr__(self):
        return (f"<PremiumCalculation(id={self.id}, employee={self.employee_number}, "
                f"kind={self.kind}, period={self.year}-{self.month:02d}, status={self.status})>")
