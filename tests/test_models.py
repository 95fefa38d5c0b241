"""Tests for domain models."""

from datetime import UTC, datetime

import pytest

from plugsync.errors import InvalidChargepointRef, UnsupportedRegistry
from plugsync.models import (
    ChargeEventSource,
    ChargepointRef,
    CheckInRecord,
    ReasonCode,
    Registry,
)


@pytest.mark.unit
class TestChargepointRef:
    """Test parsing of chargepoint references."""

    def test_parse_going_electric(self):
        ref = ChargepointRef.parse("chargepoint-0-1234")

        assert ref.registry is Registry.GOING_ELECTRIC
        assert ref.local_id == 1234
        assert str(ref) == "chargepoint-0-1234"

    def test_parse_open_charge_map(self):
        ref = ChargepointRef.parse("chargepoint-1-5")

        assert ref.registry is Registry.OPEN_CHARGE_MAP
        assert ref.local_id == 5

    @pytest.mark.parametrize(
        "value", ["", "cp-0-1", "chargepoint-0-", "chargepoint-a-1", "chargepoint-0-1-2"]
    )
    def test_invalid_format(self, value):
        with pytest.raises(InvalidChargepointRef):
            ChargepointRef.parse(value)

    def test_unknown_registry(self):
        with pytest.raises(UnsupportedRegistry):
            ChargepointRef.parse("chargepoint-7-1")


@pytest.mark.unit
class TestReasonCode:
    """Test reason code classification and escalation."""

    def test_positive_codes(self):
        assert ReasonCode.OK.is_positive
        assert ReasonCode.RECOVERY.is_positive
        assert not ReasonCode.EQUIPMENT_PROBLEM.is_positive

    def test_escalation_pairs(self):
        assert ReasonCode.OK.escalated() is ReasonCode.RECOVERY
        assert ReasonCode.EQUIPMENT_PROBLEM.escalated() is ReasonCode.EQUIPMENT_PROBLEM_ESCALATED
        assert ReasonCode.NOT_COMPATIBLE.escalated() is ReasonCode.NOT_COMPATIBLE_ESCALATED
        assert (
            ReasonCode.NO_CHARGING_EQUIPMENT.escalated()
            is ReasonCode.NO_CHARGING_EQUIPMENT_ESCALATED
        )

    def test_escalated_and_admin_codes_do_not_escalate(self):
        assert ReasonCode.EQUIPMENT_PROBLEM_ESCALATED.escalated() is ReasonCode.EQUIPMENT_PROBLEM_ESCALATED
        assert ReasonCode.NOT_FOUND.escalated() is ReasonCode.NOT_FOUND
        assert not ReasonCode.DUPLICATE.can_escalate


@pytest.mark.unit
def test_check_in_record_str():
    record = CheckInRecord(
        record_name="chargev-db-1",
        chargepoint="chargepoint-0-1",
        location=None,
        reason=100,
        timestamp=datetime(2024, 5, 1, tzinfo=UTC),
        modified_at=datetime(2024, 5, 1, tzinfo=UTC),
        source=ChargeEventSource.UPSTREAM,
    )

    assert str(record) == "CheckIn [reason: 100, timestamp: 2024-05-01T00:00:00+00:00]"
