from datetime import date
from decimal import Decimal
from typing import List, Optional

from models.employee import (
    EmployeeInsuranceProfile, Dependent, OtherCompanyEmployment, LeaveRecord,
    OrganizationConfig, LeaveCollectionMethod, MonthlySalary, BonusPayment,
    OtherCompanyCompensation
)
from models.rate_table import RateTableEntry, PremiumAmounts

# (grade, standard reward, bracket min, next bracket min) of the health insurance scale
STANDARD_REWARD_BRACKETS = [
    (1, 58000, 0, 63000), (2, 68000, 63000, 73000), (3, 78000, 73000, 83000),
    (4, 88000, 83000, 93000), (5, 98000, 93000, 101000), (6, 104000, 101000, 107000),
    (7, 110000, 107000, 114000), (8, 118000, 114000, 122000), (9, 126000, 122000, 130000),
    (10, 134000, 130000, 138000), (11, 142000, 138000, 146000), (12, 150000, 146000, 155000),
    (13, 160000, 155000, 165000), (14, 170000, 165000, 175000), (15, 180000, 175000, 185000),
    (16, 190000, 185000, 195000), (17, 200000, 195000, 210000), (18, 220000, 210000, 230000),
    (19, 240000, 230000, 250000), (20, 260000, 250000, 270000), (21, 280000, 270000, 290000),
    (22, 300000, 290000, 310000), (23, 320000, 310000, 330000), (24, 340000, 330000, 350000),
    (25, 360000, 350000, 370000), (26, 380000, 370000, 395000), (27, 410000, 395000, 425000),
    (28, 440000, 425000, 455000), (29, 470000, 455000, 485000), (30, 500000, 485000, 515000),
    (31, 530000, 515000, 545000), (32, 560000, 545000, 575000), (33, 590000, 575000, 605000),
    (34, 620000, 605000, 635000), (35, 650000, 635000, 665000), (36, 680000, 665000, 695000),
    (37, 710000, 695000, 730000), (38, 750000, 730000, 770000), (39, 790000, 770000, 810000),
    (40, 830000, 810000, 855000), (41, 880000, 855000, 905000), (42, 930000, 905000, 955000),
    (43, 980000, 955000, 1005000), (44, 1030000, 1005000, 1055000), (45, 1090000, 1055000, 1115000),
    (46, 1150000, 1115000, 1175000), (47, 1210000, 1175000, 1235000), (48, 1270000, 1235000, 1295000),
    (49, 1330000, 1295000, 1355000), (50, 1390000, 1355000, None),
]

PENSION_FLOOR = 88000     # pension grade 1
PENSION_CEILING = 650000  # pension grade 32

HUNDRED = Decimal('100')


def _amounts(standard: int, rate: Decimal) -> PremiumAmounts:
    total = Decimal(standard) * rate / HUNDRED
    return PremiumAmounts(rate=rate, total_premium=total, half_share=total / 2)


def _pension_grade(standard: int) -> int:
    if standard <= PENSION_FLOOR:
        return 1
    if standard >= PENSION_CEILING:
        return 32
    # Health grades 5..34 line up with pension grades 2..31
    return next(g for g, s, _, _ in STANDARD_REWARD_BRACKETS if s == standard) - 3


def build_rate_table(organization_id: str, effective_from: date, effective_to: Optional[date] = None,
                     health_rate: Decimal = Decimal('9.98'), care_rate: Decimal = Decimal('1.60'),
                     pension_rate: Decimal = Decimal('18.30')) -> List[RateTableEntry]:
    """Standard grade table with premiums precomputed from the given rates (percent)"""
    entries = []
    for grade, standard, low, high in STANDARD_REWARD_BRACKETS:
        pension_standard = min(max(standard, PENSION_FLOOR), PENSION_CEILING)
        entries.append(RateTableEntry(
            organization_id=organization_id,
            grade=grade,
            standard_reward_amount=standard,
            min_amount=low,
            max_amount=high - 1 if high else None,
            health_without_care=_amounts(standard, health_rate),
            health_with_care=_amounts(standard, health_rate + care_rate),
            pension=_amounts(pension_standard, pension_rate),
            effective_from=effective_from,
            effective_to=effective_to,
            pension_grade=_pension_grade(standard),
        ))
    return entries


class MockHRSystem:
    """Mock HR/payroll source used for demos and fixtures"""

    ORGANIZATION = {
        "organization_id": "org-001",
        "name": "Sakura Trading Co., Ltd.",
        "leave_collection_method": "postpaid",
    }

    # Sample employee data
    MOCK_EMPLOYEES = [
        {
            "employee_id": "emp-001", "employee_number": "E001", "name": "Yamada Taro",
            "birth_date": date(1990, 5, 12), "join_date": date(2015, 4, 1),
            "standard_reward": 300000, "department_name": "Sales",
        },
        {
            "employee_id": "emp-002", "employee_number": "E002", "name": "Suzuki Hanako",
            "birth_date": date(1978, 11, 3), "join_date": date(2008, 4, 1),
            "standard_reward": 410000, "department_name": "Accounting",
            "dependents": [Dependent("Suzuki Ken", "child", date(2012, 6, 1))],
        },
        {
            "employee_id": "emp-003", "employee_number": "E003", "name": "Tanaka Ichiro",
            "birth_date": date(1953, 2, 20), "join_date": date(1990, 4, 1),
            "standard_reward": 260000, "department_name": "Advisory",
        },
        {
            "employee_id": "emp-004", "employee_number": "E004", "name": "Sato Misaki",
            "birth_date": date(1992, 8, 30), "join_date": date(2018, 10, 1),
            "standard_reward": 240000, "department_name": "Sales",
            "leave_records": [LeaveRecord("childcare", date(2024, 3, 1), date(2025, 2, 28), True)],
        },
        {
            "employee_id": "emp-005", "employee_number": "E005", "name": "Ito Kenji",
            "birth_date": date(1985, 1, 15), "join_date": date(2020, 7, 1),
            "standard_reward": 360000, "department_name": "Engineering",
            "other_company_employments": [OtherCompanyEmployment("oc-01", "Kaede Systems")],
        },
        {
            "employee_id": "emp-006", "employee_number": "E006", "name": "Watanabe Yuki",
            "birth_date": date(1995, 4, 4), "join_date": date(2024, 9, 16),
            "department_name": "Engineering",
        },
    ]

    MONTHLY_PAYMENTS = {
        "emp-001": 305000, "emp-002": 412000, "emp-003": 258000,
        "emp-004": 0, "emp-005": 240000, "emp-006": 150000,
    }

    BONUS_PAYMENTS = {
        "emp-001": 612345, "emp-002": 850000, "emp-005": 400000,
    }

    def get_organization(self) -> OrganizationConfig:
        org = self.ORGANIZATION
        return OrganizationConfig(org["organization_id"], org["name"],
                                  LeaveCollectionMethod(org["leave_collection_method"]))

    def get_employees(self) -> List[EmployeeInsuranceProfile]:
        org_id = self.ORGANIZATION["organization_id"]
        return [EmployeeInsuranceProfile(organization_id=org_id, **emp) for emp in self.MOCK_EMPLOYEES]

    def get_rate_table(self) -> List[RateTableEntry]:
        return build_rate_table(self.ORGANIZATION["organization_id"], date(2024, 3, 1))

    def get_monthly_salaries(self, year: int, month: int) -> List[MonthlySalary]:
        return [MonthlySalary(emp_id, year, month, amount, is_confirmed=True)
                for emp_id, amount in self.MONTHLY_PAYMENTS.items()]

    def get_bonus_payments(self, year: int, month: int) -> List[BonusPayment]:
        return [BonusPayment(emp_id, year, month, amount, is_confirmed=True)
                for emp_id, amount in self.BONUS_PAYMENTS.items()]

    def get_other_company_compensations(self, year: int, month: int) -> List[OtherCompanyCompensation]:
        return [OtherCompanyCompensation("emp-005", "oc-01", "Kaede Systems", year, month,
                                         monthly_reward=160000, bonus=100000, is_confirmed=True)]

    def seed(self, repository, year: int, month: int, with_bonus: bool = False):
        """Load the mock organization, rate table and one month of compensation"""
        repository.save_organization(self.get_organization())
        for profile in self.get_employees():
            repository.save_employee(profile)
        if not repository.list_rate_tables(self.ORGANIZATION["organization_id"]):
            repository.save_rate_table_entries(self.get_rate_table())
        for salary in self.get_monthly_salaries(year, month):
            repository.save_monthly_salary(salary)
        for comp in self.get_other_company_compensations(year, month):
            repository.save_other_company_compensation(comp)
        if with_bonus:
            for bonus in self.get_bonus_payments(year, month):
                repository.save_bonus_payment(bonus)
