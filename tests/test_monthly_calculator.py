from datetime import date
from decimal import Decimal

import pytest

from models.calculation import LeaveState
from models.employee import (
    LeaveRecord, OrganizationConfig, LeaveCollectionMethod, OtherCompanyEmployment,
    OtherCompanyCompensation, EmployeeInsuranceProfile
)
from models.errors import (
    MissingStandardReward, SalaryNotConfirmed, OtherCompanyDataNotConfirmed, RateTableNotFound
)
from models.rate_table import RateTableEntry, PremiumAmounts
from processors.input_sources import LiveInputSource, age_flags
from processors.monthly_premium_calculator import MonthlyPremiumCalculator
from processors.rate_table_resolver import RateTableResolver


def _calculate(repo, employee_id, year=2024, month=10):
    profile = repo.get_employee(employee_id)
    calculator = MonthlyPremiumCalculator(RateTableResolver(repo))
    return calculator.calculate(LiveInputSource(repo, profile), year, month, "tester")


def _assert_shares_balance(record):
    assert record.company_share + record.employee_share == (
        record.total_premium + record.employer_dependent_premium
    )


def test_age_flags():
    assert age_flags(date(1984, 10, 2), 2024, 10) == (39, False, False)
    assert age_flags(date(1984, 10, 1), 2024, 10) == (40, True, False)
    assert age_flags(date(1959, 10, 1), 2024, 10) == (65, False, False)
    assert age_flags(date(1954, 10, 1), 2024, 10) == (70, False, True)


def test_standard_employee(seeded_repo):
    record = _calculate(seeded_repo, "emp-001")
    assert record.grade == 22
    assert record.pension_grade == 19
    assert record.health_premium == Decimal('29940')
    assert record.pension_premium == Decimal('54900')
    assert record.total_premium == Decimal('84840')
    assert record.employee_share == Decimal('42420')
    assert record.company_share == Decimal('42420')
    assert record.health_rate == Decimal('9.98')
    assert record.monthly_payment_amount == 305000
    assert not record.inputs.care_included
    _assert_shares_balance(record)


def test_care_insurance_and_dependents(seeded_repo):
    record = _calculate(seeded_repo, "emp-002")
    assert record.inputs.age == 45
    assert record.inputs.care_included
    assert record.health_rate == Decimal('11.58')
    assert record.health_premium == Decimal('47478')
    assert record.pension_premium == Decimal('75030')
    assert record.employee_share == Decimal('61254')
    assert record.dependent_health_premium == Decimal('47478')
    assert record.dependent_pension_premium == Decimal('75030')
    assert record.total_premium == Decimal('122508')
    assert record.company_share == Decimal('183762')
    _assert_shares_balance(record)


def test_pension_waived_from_seventy(seeded_repo):
    record = _calculate(seeded_repo, "emp-003")
    assert record.inputs.pension_exempt
    assert record.pension_premium == Decimal('0')
    assert record.pension_grade is None
    assert record.health_premium == Decimal('25948')
    assert record.total_premium == Decimal('25948')
    _assert_shares_balance(record)


def test_approved_leave_is_exempt(seeded_repo):
    record = _calculate(seeded_repo, "emp-004")
    assert record.is_on_leave
    assert record.inputs.leave_state is LeaveState.ON_LEAVE_APPROVED_EXEMPT
    assert record.total_premium == Decimal('0')
    assert record.company_share == Decimal('0')
    assert record.employee_share == Decimal('0')
    assert record.grade == 19
    assert "childcare leave" in record.notes


def test_dual_employment_uses_salary_ratio(seeded_repo):
    record = _calculate(seeded_repo, "emp-005")
    assert record.inputs.own_compensation == 240000
    assert record.inputs.other_compensation_total == 160000
    assert record.health_premium == Decimal('21557')
    assert record.pension_premium == Decimal('39528')
    assert record.total_premium == Decimal('61085')
    assert record.employee_share == Decimal('30542')
    assert record.company_share == Decimal('30543')
    _assert_shares_balance(record)


def test_missing_standard_reward(seeded_repo):
    with pytest.raises(MissingStandardReward) as exc:
        _calculate(seeded_repo, "emp-006")
    assert exc.value.employee_number == "E006"


def test_dual_employment_requires_confirmed_salary(seeded_repo, add_salary):
    add_salary("emp-005", 2024, 10, 240000, confirmed=False)
    with pytest.raises(SalaryNotConfirmed):
        _calculate(seeded_repo, "emp-005")


def test_dual_employment_requires_other_company_report(seeded_repo, add_salary):
    add_salary("emp-005", 2024, 11, 240000)
    with pytest.raises(OtherCompanyDataNotConfirmed):
        _calculate(seeded_repo, "emp-005", 2024, 11)

    seeded_repo.save_other_company_compensation(OtherCompanyCompensation(
        "emp-005", "oc-01", "Kaede Systems", 2024, 11, monthly_reward=160000, is_confirmed=False))
    with pytest.raises(OtherCompanyDataNotConfirmed):
        _calculate(seeded_repo, "emp-005", 2024, 11)


def test_no_rate_table_for_month(seeded_repo):
    with pytest.raises(RateTableNotFound) as exc:
        _calculate(seeded_repo, "emp-001", 2024, 1)
    assert exc.value.employee_number == "E001"


def test_postpaid_leave_defers_and_collects_on_return(seeded_repo, make_employee):
    profile = make_employee(leave_records=[
        LeaveRecord("childcare", date(2024, 7, 10), date(2024, 9, 20), False)
    ])
    repo = seeded_repo
    calculator = MonthlyPremiumCalculator(RateTableResolver(repo))

    for month in (7, 8):
        record = calculator.calculate(LiveInputSource(repo, profile), 2024, month, "tester")
        assert record.inputs.leave_state is LeaveState.ON_LEAVE_UNAPPROVED
        assert record.employee_share == Decimal('0')
        assert record.postpaid_leave_amount == Decimal('42420')
        assert record.postpaid_leave_company_amount == Decimal('84840')
        assert record.company_share == Decimal('84840')
        _assert_shares_balance(record)
        repo.save_calculation(record)

    returned = calculator.calculate(LiveInputSource(repo, profile), 2024, 9, "tester")
    assert returned.inputs.leave_state is LeaveState.ACTIVE
    assert [(a.year, a.month) for a in returned.postpaid_leave_amounts] == [(2024, 7), (2024, 8)]
    assert returned.postpaid_leave_total == Decimal('84840')
    assert returned.postpaid_leave_company_total == Decimal('169680')
    assert returned.total_premium == Decimal('84840')
    assert returned.company_share == Decimal('42420')
    assert returned.employee_share == Decimal('42420') + Decimal('84840')
    assert "2024-07, 2024-08" in returned.notes


def _half_yen_table(org_id):
    health = PremiumAmounts(Decimal('10.000'), Decimal('20001'), Decimal('10000.5'))
    pension = PremiumAmounts(Decimal('20.000'), Decimal('40001'), Decimal('20000.5'))
    return [RateTableEntry(org_id, 1, 200000, 0, None, health, health, pension,
                           date(2024, 4, 1), None, pension_grade=1)]


def test_direct_transfer_uses_inverted_rounding(seeded_repo):
    repo = seeded_repo
    repo.save_organization(OrganizationConfig("org-dt", "Direct Transfer Inc.",
                                              LeaveCollectionMethod.DIRECT_TRANSFER))
    repo.save_rate_table_entries(_half_yen_table("org-dt"))
    base = dict(organization_id="org-dt", birth_date=date(1990, 1, 1),
                join_date=date(2020, 4, 1), standard_reward=200000)
    on_leave = EmployeeInsuranceProfile(
        employee_id="dt-1", employee_number="D1", name="On Leave",
        leave_records=[LeaveRecord("childcare", date(2024, 9, 1), None, False)], **base)
    working = EmployeeInsuranceProfile(employee_id="dt-2", employee_number="D2", name="Working", **base)
    repo.save_employee(on_leave)
    repo.save_employee(working)

    calculator = MonthlyPremiumCalculator(RateTableResolver(repo))
    leave_record = calculator.calculate(LiveInputSource(repo, on_leave), 2024, 10, "tester")
    normal_record = calculator.calculate(LiveInputSource(repo, working), 2024, 10, "tester")

    assert leave_record.employee_share == Decimal('10001') + Decimal('20001')
    assert leave_record.total_premium == Decimal('60004')
    assert leave_record.postpaid_leave_amount is None
    assert "direct transfer" in leave_record.notes
    assert normal_record.employee_share == Decimal('10000') + Decimal('20000')
    assert normal_record.total_premium == Decimal('60000')


def test_dual_employment_primary_elsewhere_is_not_blocked_for_single_run(seeded_repo, make_employee, add_salary):
    profile = make_employee(other_company_employments=[OtherCompanyEmployment("oc-09", "Elsewhere", True)])
    add_salary(profile.employee_id, 2024, 10, 100000)
    seeded_repo.save_other_company_compensation(OtherCompanyCompensation(
        profile.employee_id, "oc-09", "Elsewhere", 2024, 10, monthly_reward=300000, is_confirmed=True))
    record = _calculate(seeded_repo, profile.employee_id)
    assert record.inputs.is_dual_employment
    assert record.health_premium == Decimal('7485')
