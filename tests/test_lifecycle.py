from dataclasses import replace
from decimal import Decimal

import pytest

from models.calculation import (
    CalculationKind, CalculationStatus, RecalculationMode, effective_amounts
)
from models.errors import AlreadyFinalized, InvalidStatusTransition, RecordNotFound
from database.models import PremiumCalculationDB

ORG = "org-001"
MONTHLY = CalculationKind.MONTHLY


def test_run_creates_draft(lifecycle):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    assert record.id is not None
    assert record.status is CalculationStatus.DRAFT
    assert record.calculated_by == "tester"
    assert lifecycle.get(record.id).total_premium == Decimal('84840')


def test_rerun_overwrites_draft(lifecycle, seeded_repo, db_session):
    first = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    second = lifecycle.run_calculation("emp-001", 2024, 10, "someone-else")
    assert second.id == first.id
    assert db_session.query(PremiumCalculationDB).count() == 1
    assert lifecycle.get(first.id).calculated_by == "someone-else"


def test_finalized_record_blocks_new_run(lifecycle):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    confirmed = lifecycle.confirm(record.id, "approver")
    assert confirmed.status is CalculationStatus.CONFIRMED
    assert confirmed.confirmed_by == "approver"
    assert confirmed.confirmed_at is not None

    with pytest.raises(AlreadyFinalized) as exc:
        lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    assert exc.value.status == "confirmed"


def test_status_transitions(lifecycle):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    with pytest.raises(InvalidStatusTransition):
        lifecycle.mark_exported(record.id, "exporter")

    lifecycle.confirm(record.id, "approver")
    with pytest.raises(InvalidStatusTransition):
        lifecycle.confirm(record.id, "approver")

    exported = lifecycle.mark_exported(record.id, "exporter")
    assert exported.status is CalculationStatus.EXPORTED
    assert exported.exported_by == "exporter"
    assert exported.confirmed_by == "approver"


def test_delete_only_drafts(lifecycle):
    draft = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    lifecycle.delete(draft.id)
    with pytest.raises(RecordNotFound):
        lifecycle.get(draft.id)

    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    lifecycle.confirm(record.id, "approver")
    with pytest.raises(AlreadyFinalized):
        lifecycle.delete(record.id)


def test_unknown_employee(lifecycle):
    with pytest.raises(RecordNotFound):
        lifecycle.run_calculation("emp-999", 2024, 10, "tester")


def test_confirm_many_reports_failures(lifecycle):
    a = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    b = lifecycle.run_calculation("emp-002", 2024, 10, "tester")
    lifecycle.confirm(b.id, "approver")
    result = lifecycle.confirm_many([a.id, b.id, 9999], "approver")
    assert [r.id for r in result.calculations] == [a.id]
    assert [s.kind for s in result.skipped] == ["InvalidStatusTransition", "RecordNotFound"]


def test_recalculate_requires_finalized(lifecycle):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    with pytest.raises(InvalidStatusTransition):
        lifecycle.recalculate(record.id, RecalculationMode.CURRENT, "tester")


def test_recalculate_historical_and_current(lifecycle, seeded_repo):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    record = lifecycle.confirm(record.id, "approver")

    profile = seeded_repo.get_employee("emp-001")
    seeded_repo.save_employee(replace(profile, standard_reward=410000))

    historical = lifecycle.recalculate(record.id, RecalculationMode.HISTORICAL, "auditor", "check")
    assert historical.id == record.id
    assert historical.status is CalculationStatus.CONFIRMED
    assert historical.confirmed_by == "approver"
    assert historical.standard_amount == 300000
    assert historical.total_premium == Decimal('84840')
    assert len(historical.recalculation_history) == 1
    entry = historical.recalculation_history[0]
    assert entry.mode is RecalculationMode.HISTORICAL
    assert entry.reason == "check"
    assert entry.snapshot.total_premium == Decimal('84840')
    assert not historical.premium_difference.has_difference

    current = lifecycle.recalculate(record.id, RecalculationMode.CURRENT, "auditor")
    assert current.status is CalculationStatus.CONFIRMED
    assert current.standard_amount == 410000
    assert current.total_premium == Decimal('115948')
    assert current.employee_share == Decimal('57974')
    assert len(current.recalculation_history) == 2
    diff = current.premium_difference
    assert diff.health_premium_diff == Decimal('10978')
    assert diff.pension_premium_diff == Decimal('20130')
    assert diff.employee_share_diff == Decimal('15554')
    assert diff.company_share_diff == Decimal('15554')

    stored = lifecycle.get(record.id)
    assert stored.total_premium == Decimal('115948')
    assert len(stored.recalculation_history) == 2


def test_exported_record_stays_exported_after_recalculation(lifecycle):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    lifecycle.confirm(record.id, "approver")
    lifecycle.mark_exported(record.id, "exporter")
    recalculated = lifecycle.recalculate(record.id, RecalculationMode.HISTORICAL, "auditor")
    assert recalculated.status is CalculationStatus.EXPORTED
    assert recalculated.exported_by == "exporter"


def test_retroactive_deduction(lifecycle, seeded_repo):
    october = lifecycle.confirm(lifecycle.run_calculation("emp-001", 2024, 10, "tester").id, "approver")
    seeded_repo.save_employee(replace(seeded_repo.get_employee("emp-001"), standard_reward=410000))
    october = lifecycle.recalculate(october.id, RecalculationMode.CURRENT, "auditor")
    november = lifecycle.run_calculation("emp-001", 2024, 11, "tester")

    diff = october.premium_difference
    updated = lifecycle.apply_retroactive_deduction(october.id, [(2024, 11)], diff, "auditor")
    assert [u.id for u in updated] == [november.id]

    stored = lifecycle.get(november.id)
    assert len(stored.retroactive_deductions) == 1
    deduction = stored.retroactive_deductions[0]
    assert (deduction.year, deduction.month) == (2024, 11)
    assert deduction.source_calculation_id == october.id

    amounts = effective_amounts(stored)
    assert amounts.employee_share == stored.employee_share + Decimal('15554')
    assert amounts.total_premium == stored.total_premium + Decimal('10978') + Decimal('20130')


def test_retroactive_deduction_validates_all_targets_first(lifecycle):
    october = lifecycle.confirm(lifecycle.run_calculation("emp-001", 2024, 10, "tester").id, "approver")
    november = lifecycle.run_calculation("emp-001", 2024, 11, "tester")
    october = lifecycle.recalculate(october.id, RecalculationMode.HISTORICAL, "auditor")

    with pytest.raises(RecordNotFound):
        lifecycle.apply_retroactive_deduction(
            october.id, [(2024, 11), (2025, 1)], october.premium_difference, "auditor")
    assert lifecycle.get(november.id).retroactive_deductions == []


def test_bulk_run_calculates_eligible_employees(lifecycle):
    result = lifecycle.run_bulk(ORG, 2024, 10, "batch")
    assert not result.cancelled
    assert result.skipped == []
    assert sorted(r.employee_number for r in result.calculations) == ["E001", "E002", "E003", "E004", "E005"]


def test_bulk_run_skips_failures(lifecycle, add_salary):
    add_salary("emp-005", 2024, 10, 240000, confirmed=False)
    result = lifecycle.run_bulk(ORG, 2024, 10, "batch")
    assert len(result.calculations) == 4
    assert [(s.employee_number, s.kind) for s in result.skipped] == [("E005", "SalaryNotConfirmed")]


def test_bulk_run_skips_finalized(lifecycle):
    record = lifecycle.run_calculation("emp-001", 2024, 10, "tester")
    lifecycle.confirm(record.id, "approver")
    result = lifecycle.run_bulk(ORG, 2024, 10, "batch")
    assert [s.kind for s in result.skipped] == ["AlreadyFinalized"]


def test_bulk_run_can_be_cancelled(lifecycle):
    polls = []

    def should_cancel():
        polls.append(1)
        return len(polls) > 2

    result = lifecycle.run_bulk(ORG, 2024, 10, "batch", should_cancel=should_cancel)
    assert result.cancelled
    assert len(result.calculations) == 2


def test_eligible_employees(lifecycle):
    numbers = [p.employee_number for p in lifecycle.list_eligible_employees(ORG, 2024, 10)]
    assert numbers == ["E001", "E002", "E003", "E004", "E005"]
    # E006 has no standard reward yet
    assert "E006" not in numbers


def test_summary(lifecycle):
    lifecycle.run_bulk(ORG, 2024, 10, "batch")
    summary = lifecycle.summarize(ORG, MONTHLY, 2024, 10)
    assert summary.employee_count == 5
    assert summary.total_premium == Decimal('294381')
    assert summary.employee_share == Decimal('147190')
    assert summary.company_share == Decimal('269699')
    assert summary.status_counts == {"draft": 5}
