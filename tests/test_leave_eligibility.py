from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from models.calculation import LeaveState
from models.employee import LeaveRecord, LeaveCollectionMethod
from processors.leave_eligibility import (
    evaluate_leave, approved_spell_exempts, collect_postpaid_amounts, leave_type_label,
    LeaveEligibilityEvaluator
)

POSTPAID = LeaveCollectionMethod.POSTPAID
DIRECT = LeaveCollectionMethod.DIRECT_TRANSFER


def test_no_leave_is_active():
    evaluation = evaluate_leave([], 2024, 10, POSTPAID)
    assert evaluation.state is LeaveState.ACTIVE
    assert not evaluation.is_on_leave
    assert evaluation.returning_spells == []


def test_short_same_month_approved_spell_below_threshold():
    # 13 days, starting and ending in the same month
    spell = LeaveRecord("maternity", date(2024, 10, 1), date(2024, 10, 13), True)
    assert not approved_spell_exempts(spell, 2024, 10)
    assert evaluate_leave([spell], 2024, 10, POSTPAID).state is LeaveState.ACTIVE


def test_same_month_approved_spell_at_threshold():
    spell = LeaveRecord("maternity", date(2024, 10, 1), date(2024, 10, 14), True)
    evaluation = evaluate_leave([spell], 2024, 10, POSTPAID)
    assert evaluation.state is LeaveState.ON_LEAVE_APPROVED_EXEMPT
    assert evaluation.leave_type == "maternity"


def test_threshold_is_configurable():
    spell = LeaveRecord("maternity", date(2024, 10, 1), date(2024, 10, 14), True)
    evaluator = LeaveEligibilityEvaluator(min_exempt_days=20)
    assert evaluator.evaluate([spell], 2024, 10, POSTPAID).state is LeaveState.ACTIVE


def test_open_ended_approved_spell_exempts():
    spell = LeaveRecord("childcare", date(2024, 10, 25), None, True)
    assert evaluate_leave([spell], 2024, 10, POSTPAID).is_exempt
    assert evaluate_leave([spell], 2025, 6, POSTPAID).is_exempt
    assert not evaluate_leave([spell], 2024, 9, POSTPAID).is_exempt


def test_cross_month_approved_spell_exempts_until_return_month():
    spell = LeaveRecord("childcare", date(2024, 3, 1), date(2025, 2, 28), True)
    assert evaluate_leave([spell], 2024, 3, POSTPAID).is_exempt
    assert evaluate_leave([spell], 2024, 10, POSTPAID).is_exempt
    assert evaluate_leave([spell], 2025, 2, POSTPAID).is_exempt
    # The day after the end date falls in March, so March is the return month
    assert evaluate_leave([spell], 2025, 3, POSTPAID).state is LeaveState.ACTIVE


def test_spell_ending_mid_month_returns_that_month():
    spell = LeaveRecord("childcare", date(2024, 6, 10), date(2024, 9, 20), True)
    assert evaluate_leave([spell], 2024, 8, POSTPAID).is_exempt
    assert evaluate_leave([spell], 2024, 9, POSTPAID).state is LeaveState.ACTIVE


def test_unapproved_leave():
    spell = LeaveRecord("childcare", date(2024, 7, 10), date(2024, 9, 20), False)
    evaluation = evaluate_leave([spell], 2024, 8, POSTPAID)
    assert evaluation.state is LeaveState.ON_LEAVE_UNAPPROVED
    assert evaluation.defers_employee_share
    assert not evaluation.is_direct_transfer

    direct = evaluate_leave([spell], 2024, 8, DIRECT)
    assert direct.is_direct_transfer
    assert not direct.defers_employee_share


def test_return_month_lists_returning_spells():
    spell = LeaveRecord("childcare", date(2024, 7, 10), date(2024, 9, 20), False)
    evaluation = evaluate_leave([spell], 2024, 9, POSTPAID)
    assert evaluation.state is LeaveState.ACTIVE
    assert evaluation.returning_spells == [spell]
    assert evaluation.collects_carried_forward
    assert not evaluate_leave([spell], 2024, 9, DIRECT).collects_carried_forward


def test_short_approved_spell_falls_through_to_next_spell():
    short = LeaveRecord("maternity", date(2024, 10, 1), date(2024, 10, 5), True)
    unapproved = LeaveRecord("childcare", date(2024, 10, 6), None, False)
    evaluation = evaluate_leave([short, unapproved], 2024, 10, POSTPAID)
    assert evaluation.state is LeaveState.ON_LEAVE_UNAPPROVED
    assert evaluation.leave_type == "childcare"


def test_collect_postpaid_amounts_skips_return_month_and_missing_months():
    spell = LeaveRecord("childcare", date(2024, 7, 10), date(2024, 9, 20), False)
    deferred = {
        (2024, 7): SimpleNamespace(postpaid_leave_amount=Decimal('42420'),
                                   postpaid_leave_company_amount=Decimal('84840'),
                                   total_premium=Decimal('84840')),
        (2024, 8): None,
        (2024, 9): SimpleNamespace(postpaid_leave_amount=Decimal('1'),
                                   postpaid_leave_company_amount=Decimal('1'),
                                   total_premium=Decimal('1')),
    }
    collected = collect_postpaid_amounts([spell], 2024, 9, lambda y, m: deferred.get((y, m)))
    assert [(a.year, a.month) for a in collected] == [(2024, 7)]
    assert collected[0].employee_share == Decimal('42420')
    assert collected[0].company_share == Decimal('84840')
    assert collected[0].leave_type == "childcare leave"


def test_leave_type_label():
    assert leave_type_label("maternity") == "maternity leave"
    assert leave_type_label("sabbatical") == "sabbatical"
    assert leave_type_label(None) == "leave"
