import json
from datetime import date
from decimal import Decimal

from models.calculation import (
    PremiumCalculation, CalculationStatus, RecalculationMode, LeaveState, SCHEMA_VERSION
)
from models.employee import LeaveRecord


def test_record_survives_json_round_trip(lifecycle, seeded_repo, make_employee):
    record = lifecycle.run_calculation("emp-002", 2024, 10, "tester")
    record = lifecycle.confirm(record.id, "approver")
    record = lifecycle.recalculate(record.id, RecalculationMode.HISTORICAL, "auditor", "yearly audit")

    restored = PremiumCalculation.from_dict(json.loads(json.dumps(record.to_dict())))
    assert restored == record
    assert restored.status is CalculationStatus.CONFIRMED
    assert restored.recalculation_history[0].mode is RecalculationMode.HISTORICAL
    assert isinstance(restored.company_share, Decimal)


def test_encoded_values_are_json_friendly(lifecycle):
    record = lifecycle.run_calculation("emp-004", 2024, 10, "tester")
    data = record.to_dict()
    assert data["kind"] == "monthly"
    assert data["status"] == "draft"
    assert data["total_premium"] == "0"
    assert data["inputs"]["leave_state"] == LeaveState.ON_LEAVE_APPROVED_EXEMPT.value
    assert data["schema_version"] == SCHEMA_VERSION
    assert isinstance(data["calculated_at"], str)


def test_carried_forward_amounts_round_trip(seeded_repo, lifecycle, make_employee):
    profile = make_employee(leave_records=[
        LeaveRecord("childcare", date(2024, 8, 1), date(2024, 9, 10), False)
    ])
    lifecycle.run_calculation(profile.employee_id, 2024, 8, "tester")
    returned = lifecycle.run_calculation(profile.employee_id, 2024, 9, "tester")

    stored = lifecycle.get(returned.id)
    assert len(stored.postpaid_leave_amounts) == 1
    assert stored.postpaid_leave_amounts[0].employee_share == Decimal('42420')
    assert stored.inputs.carried_forward == stored.postpaid_leave_amounts
