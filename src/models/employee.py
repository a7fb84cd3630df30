from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional


@dataclass
class Dependent:
    """Dependent covered by the employee's health insurance"""
    name: str
    relationship: str
    birth_date: Optional[date] = None


@dataclass
class OtherCompanyEmployment:
    """Concurrent employment at another company"""
    company_id: str
    company_name: str
    is_primary: bool = False  # True when the other company is the primary workplace


@dataclass
class LeaveRecord:
    """One leave spell. Approved leave can exempt premiums; unapproved leave defers them."""
    leave_type: str
    start_date: date
    end_date: Optional[date] = None
    is_approved: bool = False


@dataclass
class EmployeeInsuranceProfile:
    """Employee master data relevant to premium calculation"""
    employee_id: str
    organization_id: str
    employee_number: str
    name: str
    birth_date: date
    join_date: date
    standard_reward: Optional[int] = None
    retirement_date: Optional[date] = None
    department_name: Optional[str] = None
    dependents: List[Dependent] = field(default_factory=list)
    other_company_employments: List[OtherCompanyEmployment] = field(default_factory=list)
    leave_records: List[LeaveRecord] = field(default_factory=list)

    @property
    def is_dual_employed(self) -> bool:
        return len(self.other_company_employments) > 0

    @property
    def is_primary_here(self) -> bool:
        return not any(e.is_primary for e in self.other_company_employments)

    def __str__(self):
        return f"Employee({self.employee_number}, {self.name})"


class LeaveCollectionMethod(str, Enum):
    POSTPAID = "postpaid"
    DIRECT_TRANSFER = "direct_transfer"


@dataclass
class OrganizationConfig:
    organization_id: str
    name: str
    leave_collection_method: LeaveCollectionMethod = LeaveCollectionMethod.POSTPAID


@dataclass
class MonthlySalary:
    employee_id: str
    year: int
    month: int
    total_payment: int
    is_confirmed: bool = False


@dataclass
class BonusPayment:
    employee_id: str
    year: int
    month: int
    bonus_amount: int
    is_confirmed: bool = False


@dataclass
class OtherCompanyCompensation:
    """Compensation reported by another employer for one month"""
    employee_id: str
    company_id: str
    company_name: str
    year: int
    month: int
    monthly_reward: int = 0
    bonus: Optional[int] = None
    is_confirmed: bool = False
