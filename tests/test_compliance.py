"""Tests for the policy compliance gate."""

from datetime import datetime
from unittest.mock import patch

import pytest

from reset_toolkit.core.exceptions import (
    LockTimeoutError,
    MaintenanceWindowError,
    PolicyStoreError,
    PolicyViolationError,
)
from reset_toolkit.core.locking import FileLock
from reset_toolkit.core.models import AuditStatus, ComplianceStatus, OperationType
from reset_toolkit.policy.compliance import GATE_LOCK_NAME, ComplianceGate
from reset_toolkit.policy.store import JsonPolicyStore, MemoryPolicyStore, PolicyScope


def at_hour(hour: int):
    return lambda: datetime(2026, 10, 18, hour, 30, 0)


@pytest.fixture
def make_gate(test_config, audit_logger):
    """Build a gate over an in-memory store at a fixed hour."""

    def _make(computer=None, user=None, hour=12):
        store = MemoryPolicyStore(computer=computer, user=user)
        return ComplianceGate(config=test_config, store=store, audit=audit_logger, clock=at_hour(hour))

    return _make


class TestCheckCompliance:
    """Tests for ComplianceGate.check_compliance."""

    def test_no_policy_is_compliant(self, make_gate):
        """Test that every operation type is allowed without policy."""
        gate = make_gate()

        for op in OperationType:
            if op == OperationType.ALL:
                continue
            result = gate.check_compliance(op.value)
            assert result.status == ComplianceStatus.COMPLIANT
            assert result.allowed is True
            assert result.restrictions == []

    def test_computer_disallow_blocks(self, make_gate):
        gate = make_gate(computer={"DisallowedOperations": "Defender"})

        result = gate.check_compliance("Defender")

        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert result.allowed is False
        assert "disallowed by computer policy" in result.message

    def test_other_types_unaffected(self, make_gate):
        gate = make_gate(computer={"DisallowedOperations": "Defender"})

        assert gate.check_compliance("Network").allowed is True

    def test_all_wildcard_blocks_everything(self, make_gate):
        gate = make_gate(computer={"DisallowedOperations": ["All"]})

        assert gate.check_compliance("Audio").allowed is False
        assert gate.check_compliance("Network").allowed is False

    def test_disabled_operations_block(self, make_gate):
        gate = make_gate(computer={"Enabled": 0})

        result = gate.check_compliance("Network")

        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert "disabled by computer policy" in result.message

    def test_operation_type_case_insensitive(self, make_gate):
        gate = make_gate(computer={"DisallowedOperations": "Network"})

        result = gate.check_compliance("network")

        assert result.operation_type == "Network"
        assert result.allowed is False

    def test_user_disallow_is_advisory(self, make_gate):
        """Test that a user-only disallow is reported but does not block."""
        gate = make_gate(computer={}, user={"DisallowedOperations": "Network"})

        result = gate.check_compliance("Network")

        assert result.allowed is True
        assert result.status == ComplianceStatus.COMPLIANT
        assert len(result.restrictions) == 1
        assert "computer policy takes precedence" in result.restrictions[0]

    def test_user_scope_cannot_allow_computer_disallow(self, make_gate):
        gate = make_gate(
            computer={"DisallowedOperations": "Network"},
            user={"DisallowedOperations": ""},
        )

        assert gate.check_compliance("Network").allowed is False

    def test_outside_window_blocks(self, make_gate):
        gate = make_gate(computer={"MaintenanceWindow": "22-06"}, hour=14)

        result = gate.check_compliance("Network")

        assert result.allowed is False
        assert "Outside maintenance window 22-06" in result.message

    def test_window_can_be_excluded(self, make_gate):
        gate = make_gate(computer={"MaintenanceWindow": "22-06"}, hour=14)

        result = gate.check_compliance("Network", include_maintenance_window=False)

        assert result.allowed is True

    def test_restrictions_accumulate(self, make_gate):
        """Test that every applicable restriction is listed."""
        gate = make_gate(
            computer={"DisallowedOperations": "Network", "MaintenanceWindow": "22-06"},
            user={"DisallowedOperations": "Network"},
            hour=14,
        )

        result = gate.check_compliance("Network")

        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert len(result.restrictions) == 3
        assert "; " in result.message

    def test_unknown_operation_type_fails_closed(self, make_gate):
        gate = make_gate()

        result = gate.check_compliance("Teleport")

        assert result.status == ComplianceStatus.ERROR
        assert result.allowed is False
        assert "Teleport" in result.message

    def test_store_failure_fails_closed(self, make_gate):
        gate = make_gate(computer={})

        with patch.object(MemoryPolicyStore, "read", side_effect=PolicyStoreError("access denied")):
            result = gate.check_compliance("Network")

        assert result.status == ComplianceStatus.ERROR
        assert result.allowed is False
        assert result.restrictions == ["Policy evaluation failed: access denied"]

    def test_truncated_policy_file_fails_closed(self, test_config, audit_logger, temp_dir):
        """Test that a policy file cut off mid-write blocks instead of allowing."""
        path = temp_dir / "policy.json"
        path.write_text('{"computer": {"DisallowedOperations": "All"', encoding="utf-8")
        gate = ComplianceGate(
            config=test_config, store=JsonPolicyStore(path), audit=audit_logger, clock=at_hour(12)
        )

        result = gate.check_compliance("Network")

        assert result.status == ComplianceStatus.ERROR
        assert result.allowed is False
        assert result.message.startswith("Policy evaluation failed")

        with pytest.raises(PolicyViolationError):
            gate.assert_compliance("Network", "Reset-Network", ignore_maintenance_window=True)
        assert [e.status for e in audit_logger.read_entries()] == [AuditStatus.BLOCKED]

    def test_invalid_disallow_list_fails_closed(self, make_gate):
        gate = make_gate(computer={"DisallowedOperations": "Network,Bogus"})

        result = gate.check_compliance("Audio")

        assert result.status == ComplianceStatus.ERROR
        assert result.allowed is False


class TestApproval:
    """Tests for approval markers."""

    def test_pending_without_marker(self, make_gate):
        gate = make_gate(computer={"RequireApproval": 1})

        result = gate.check_compliance("Network")

        assert result.status == ComplianceStatus.PENDING
        assert result.allowed is False
        assert "Network.approved" in result.message

    def test_type_marker_approves(self, make_gate, test_config):
        gate = make_gate(computer={"RequireApproval": 1})
        (test_config.approvals_dir / "Network.approved").touch()

        assert gate.check_compliance("Network").status == ComplianceStatus.COMPLIANT
        assert gate.check_compliance("Audio").status == ComplianceStatus.PENDING

    def test_all_marker_approves_every_type(self, make_gate, test_config):
        gate = make_gate(computer={"RequireApproval": 1})
        (test_config.approvals_dir / "All.approved").touch()

        assert gate.check_compliance("Audio").allowed is True

    def test_user_scope_cannot_require_approval(self, make_gate):
        gate = make_gate(computer={}, user={"RequireApproval": 1})

        assert gate.check_compliance("Network").allowed is True

    def test_block_outranks_pending(self, make_gate):
        gate = make_gate(computer={"RequireApproval": 1, "DisallowedOperations": "Network"})

        assert gate.check_compliance("Network").status == ComplianceStatus.NON_COMPLIANT


class TestCheckMaintenanceWindow:
    """Tests for ComplianceGate.check_maintenance_window."""

    def test_no_window_configured(self, make_gate):
        result = make_gate().check_maintenance_window()

        assert result.in_window is True
        assert result.message == "No maintenance window configured"

    @pytest.mark.parametrize("hour,expected", [(8, False), (9, True), (17, True), (18, False)])
    def test_daytime_boundaries(self, make_gate, hour, expected):
        gate = make_gate(computer={"MaintenanceWindow": "9-17"}, hour=hour)

        assert gate.check_maintenance_window().in_window is expected

    @pytest.mark.parametrize("hour,expected", [(21, False), (22, True), (3, True), (6, True), (7, False)])
    def test_overnight_boundaries(self, make_gate, hour, expected):
        gate = make_gate(computer={"MaintenanceWindow": "22-06"}, hour=hour)

        assert gate.check_maintenance_window().in_window is expected

    def test_explicit_time_overrides_clock(self, make_gate):
        gate = make_gate(computer={"MaintenanceWindow": "22-06"}, hour=12)

        result = gate.check_maintenance_window(now=datetime(2026, 10, 18, 23, 0, 0))

        assert result.in_window is True
        assert result.message == "Within maintenance window 22-06"

    def test_malformed_window_fails_open(self, make_gate):
        gate = make_gate(computer={"MaintenanceWindow": "whenever"})

        result = gate.check_maintenance_window()

        assert result.in_window is True
        assert "Invalid maintenance window format" in result.message

    def test_only_computer_scope_counts(self, make_gate):
        gate = make_gate(computer={}, user={"MaintenanceWindow": "22-06"}, hour=12)

        assert gate.check_maintenance_window().in_window is True

    def test_store_error_is_outside_window(self, make_gate):
        gate = make_gate(computer={})

        with patch.object(MemoryPolicyStore, "read", side_effect=PolicyStoreError("boom")):
            result = gate.check_maintenance_window()

        assert result.in_window is False


class TestAssertCompliance:
    """Tests for ComplianceGate.assert_compliance."""

    def test_allowed_writes_started_entry(self, make_gate, audit_logger):
        gate = make_gate()

        result = gate.assert_compliance("network", "Reset-Network")

        assert result.allowed
        entries = audit_logger.read_entries()
        assert len(entries) == 1
        assert entries[0].status == AuditStatus.STARTED
        assert entries[0].operation_type == "Network"
        assert entries[0].operation_name == "Reset-Network"
        assert entries[0].computer == "WS-0042"

    def test_blocked_writes_entry_before_raising(self, make_gate, audit_logger):
        gate = make_gate(computer={"DisallowedOperations": "Network"})

        with pytest.raises(PolicyViolationError) as exc_info:
            gate.assert_compliance("Network", "Reset-Network")

        assert exc_info.value.result.status == ComplianceStatus.NON_COMPLIANT
        entries = audit_logger.read_entries()
        assert [e.status for e in entries] == [AuditStatus.BLOCKED]
        assert "disallowed" in entries[0].details

    def test_pending_approval_raises_violation(self, make_gate, audit_logger):
        gate = make_gate(computer={"RequireApproval": 1})

        with pytest.raises(PolicyViolationError):
            gate.assert_compliance("Network", "Reset-Network")

        assert audit_logger.read_entries()[0].status == AuditStatus.BLOCKED

    def test_outside_window_raises_window_error(self, make_gate, audit_logger):
        gate = make_gate(computer={"MaintenanceWindow": "22-06"}, hour=14)

        with pytest.raises(MaintenanceWindowError) as exc_info:
            gate.assert_compliance("Network", "Reset-Network")

        assert exc_info.value.result.in_window is False
        entries = audit_logger.read_entries()
        assert [e.status for e in entries] == [AuditStatus.BLOCKED]
        assert "Outside maintenance window" in entries[0].details

    def test_ignore_window(self, make_gate, audit_logger):
        gate = make_gate(computer={"MaintenanceWindow": "22-06"}, hour=14)

        gate.assert_compliance("Network", "Reset-Network", ignore_maintenance_window=True)

        assert audit_logger.read_entries()[0].status == AuditStatus.STARTED

    def test_ignore_window_does_not_bypass_disallow(self, make_gate):
        gate = make_gate(computer={"DisallowedOperations": "Network"})

        with pytest.raises(PolicyViolationError):
            gate.assert_compliance("Network", "Reset-Network", ignore_maintenance_window=True)

    def test_advisory_restrictions_recorded(self, make_gate, audit_logger):
        gate = make_gate(computer={}, user={"DisallowedOperations": "Network"})

        gate.assert_compliance("Network", "Reset-Network")

        assert "User policy restricts" in audit_logger.read_entries()[0].details

    def test_policy_changes_take_effect_immediately(self, test_config, audit_logger):
        """Test that no policy is cached between checks."""
        store = MemoryPolicyStore(computer={})
        gate = ComplianceGate(config=test_config, store=store, audit=audit_logger, clock=at_hour(12))
        gate.assert_compliance("Network", "Reset-Network")

        store.set(PolicyScope.COMPUTER, "DisallowedOperations", "Network")

        with pytest.raises(PolicyViolationError):
            gate.assert_compliance("Network", "Reset-Network")

    def test_gate_lock_contention(self, make_gate, test_config):
        gate = make_gate()

        with FileLock(test_config.locks_dir / GATE_LOCK_NAME):
            with pytest.raises(LockTimeoutError):
                gate.assert_compliance("Network", "Reset-Network")
