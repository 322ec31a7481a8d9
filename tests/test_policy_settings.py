"""Tests for policy stores, settings parsing and effective policy."""

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from reset_toolkit.core.exceptions import PolicyStoreError, PolicyValueError
from reset_toolkit.policy.settings import (
    MaintenanceWindow,
    PolicyReader,
    PolicySettings,
    parse_bool,
    parse_log_level,
    parse_maintenance_window,
    parse_operation_list,
)
from reset_toolkit.policy.store import JsonPolicyStore, MemoryPolicyStore, PolicyScope, RegistryPolicyStore


def _fake_winreg(open_error: OSError) -> MagicMock:
    """A winreg stand-in whose OpenKey raises the given error."""
    fake = MagicMock()
    fake.OpenKey.side_effect = open_error
    return fake


class TestMaintenanceWindow:
    """Tests for maintenance window parsing and evaluation."""

    def test_parse_daytime_window(self):
        window = parse_maintenance_window("09-17")
        assert window == MaintenanceWindow(start=9, end=17)
        assert not window.overnight
        assert str(window) == "09-17"

    def test_parse_tolerates_spaces(self):
        assert parse_maintenance_window(" 22 - 6 ") == MaintenanceWindow(start=22, end=6)

    @pytest.mark.parametrize("text", ["", "22", "22-06-01", "a-b", "24-06", "22--1", "9:00-17:00"])
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(PolicyValueError):
            parse_maintenance_window(text)

    @pytest.mark.parametrize(
        "hour,expected",
        [(8, False), (9, True), (12, True), (17, True), (18, False), (0, False), (23, False)],
    )
    def test_daytime_window_is_inclusive(self, hour, expected):
        """Test that both bounds of a same-day window are inclusive."""
        assert MaintenanceWindow(9, 17).contains(hour) is expected

    @pytest.mark.parametrize(
        "hour,expected",
        [(21, False), (22, True), (23, True), (0, True), (6, True), (7, False), (12, False)],
    )
    def test_overnight_window_wraps(self, hour, expected):
        """Test that a window with end < start wraps past midnight."""
        window = MaintenanceWindow(22, 6)
        assert window.overnight
        assert window.contains(hour) is expected

    def test_single_hour_window(self):
        window = MaintenanceWindow(3, 3)
        assert window.contains(3)
        assert not window.contains(4)


class TestValueParsers:
    """Tests for individual policy value parsers."""

    def test_operation_list_from_text(self):
        assert parse_operation_list("network; Defender ,UAC") == ["Network", "Defender", "UAC"]

    def test_operation_list_from_multi_string(self):
        assert parse_operation_list(["All", "all"]) == ["All"]

    def test_operation_list_none(self):
        assert parse_operation_list(None) == []

    def test_operation_list_unknown_entry(self):
        with pytest.raises(PolicyValueError, match="Teleport"):
            parse_operation_list("Network,Teleport")

    @pytest.mark.parametrize(
        "value,expected",
        [(1, True), (0, False), ("true", True), ("No", False), (None, None), (True, True)],
    )
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_parse_bool_rejects_garbage(self):
        with pytest.raises(PolicyValueError):
            parse_bool("maybe")

    def test_parse_log_level(self):
        assert parse_log_level("verbose") == "Verbose"
        assert parse_log_level("") is None
        with pytest.raises(PolicyValueError):
            parse_log_level("Chatty")


class TestPolicyStores:
    """Tests for the JSON and in-memory policy stores."""

    def test_json_store_missing_file(self, temp_dir):
        """Test that a missing policy file means no policy."""
        store = JsonPolicyStore(temp_dir / "policy.json")
        assert not store.exists(PolicyScope.COMPUTER)
        assert store.read(PolicyScope.COMPUTER, "Enabled") is None

    def test_json_store_reads_case_insensitively(self, temp_dir):
        path = temp_dir / "policy.json"
        path.write_text(json.dumps({"computer": {"maintenancewindow": "22-06"}}), encoding="utf-8")
        store = JsonPolicyStore(path)

        assert store.exists(PolicyScope.COMPUTER)
        assert not store.exists(PolicyScope.USER)
        assert store.read(PolicyScope.COMPUTER, "MaintenanceWindow") == "22-06"

    def test_json_store_rereads_on_each_call(self, temp_dir):
        """Test that edits to the policy file are seen without a restart."""
        path = temp_dir / "policy.json"
        path.write_text(json.dumps({"computer": {"Enabled": 1}}), encoding="utf-8")
        store = JsonPolicyStore(path)
        assert store.read(PolicyScope.COMPUTER, "Enabled") == 1

        path.write_text(json.dumps({"computer": {"Enabled": 0}}), encoding="utf-8")
        assert store.read(PolicyScope.COMPUTER, "Enabled") == 0

    def test_json_store_corrupt_file_raises(self, temp_dir):
        path = temp_dir / "policy.json"
        path.write_text("{broken", encoding="utf-8")
        store = JsonPolicyStore(path)

        with pytest.raises(PolicyStoreError):
            store.read(PolicyScope.COMPUTER, "Enabled")

    def test_json_store_corrupt_file_is_not_absent(self, temp_dir):
        """Test that an unreadable policy file is an error, not \"no policy\"."""
        path = temp_dir / "policy.json"
        path.write_text('{"computer": {"DisallowedOperations": "All"', encoding="utf-8")
        store = JsonPolicyStore(path)

        with pytest.raises(PolicyStoreError):
            store.exists(PolicyScope.COMPUTER)

    def test_json_store_non_object_scope_raises(self, temp_dir):
        path = temp_dir / "policy.json"
        path.write_text(json.dumps({"computer": ["Network"]}), encoding="utf-8")

        with pytest.raises(PolicyStoreError):
            JsonPolicyStore(path).exists(PolicyScope.COMPUTER)

    def test_registry_store_missing_key_is_absent(self):
        fake_winreg = _fake_winreg(FileNotFoundError(2, "not found"))

        with patch.dict(sys.modules, {"winreg": fake_winreg}):
            assert RegistryPolicyStore().exists(PolicyScope.COMPUTER) is False

    def test_registry_store_access_denied_raises(self):
        fake_winreg = _fake_winreg(PermissionError(5, "Access is denied"))

        with patch.dict(sys.modules, {"winreg": fake_winreg}):
            with pytest.raises(PolicyStoreError, match="Access is denied"):
                RegistryPolicyStore().exists(PolicyScope.COMPUTER)

    def test_memory_store_set_creates_scope(self):
        store = MemoryPolicyStore()
        assert not store.exists(PolicyScope.USER)

        store.set(PolicyScope.USER, "DisallowedOperations", "Network")

        assert store.exists(PolicyScope.USER)
        assert store.read(PolicyScope.USER, "disallowedoperations") == "Network"


class TestPolicyReader:
    """Tests for PolicyReader and scope precedence."""

    def test_no_policy_defaults(self, memory_store):
        """Test the effective settings when no policy is deployed."""
        policy = PolicyReader(memory_store).get_effective_policy()

        assert not policy.computer_policy.present
        assert not policy.user_policy.present
        effective = policy.effective_settings
        assert effective.operations_enabled is True
        assert effective.require_backup is False
        assert effective.audit_mode is False
        assert effective.log_level == "Info"
        assert effective.maintenance_window_active is False
        assert effective.require_approval is False

    def test_computer_policy_values(self):
        store = MemoryPolicyStore(
            computer={
                "Enabled": 1,
                "RequireBackup": 1,
                "AuditMode": 0,
                "LogLevel": "Warning",
                "MaintenanceWindow": "22-06",
                "DisallowedOperations": ["Defender", "UAC"],
                "RequireApproval": 1,
            }
        )

        policy = PolicyReader(store).get_effective_policy()

        assert policy.computer_policy.disallowed_operations == ["Defender", "UAC"]
        effective = policy.effective_settings
        assert effective.require_backup is True
        assert effective.log_level == "Warning"
        assert effective.maintenance_window_active is True
        assert effective.maintenance_window == "22-06"
        assert effective.require_approval is True

    def test_user_scope_cannot_relax_computer_scope(self):
        """Test that user values never override computer values."""
        store = MemoryPolicyStore(
            computer={"Enabled": 0, "RequireBackup": 1},
            user={"Enabled": 1, "RequireBackup": 0, "MaintenanceWindow": "00-23"},
        )

        effective = PolicyReader(store).get_effective_policy().effective_settings

        assert effective.operations_enabled is False
        assert effective.require_backup is True
        assert effective.maintenance_window_active is False

    def test_idempotent_reads(self):
        """Test that two reads of an unchanged store are equal."""
        store = MemoryPolicyStore(
            computer={"MaintenanceWindow": "09-17", "DisallowedOperations": "Network"},
            user={"DisallowedOperations": "Audio"},
        )
        reader = PolicyReader(store)

        assert reader.get_effective_policy() == reader.get_effective_policy()
        assert reader.get_effective_policy().to_dict() == reader.refresh().to_dict()

    def test_refresh_sees_changes(self):
        store = MemoryPolicyStore(computer={})
        reader = PolicyReader(store)
        assert reader.get_effective_policy().effective_settings.audit_mode is False

        store.set(PolicyScope.COMPUTER, "AuditMode", 1)

        assert reader.refresh().effective_settings.audit_mode is True

    def test_malformed_window_does_not_fail_read(self):
        """Test that the raw window text is kept for the gate to judge."""
        store = MemoryPolicyStore(computer={"MaintenanceWindow": "late-night"})

        policy = PolicyReader(store).get_effective_policy()

        assert policy.effective_settings.maintenance_window == "late-night"

    def test_invalid_disallow_list_raises(self):
        store = MemoryPolicyStore(computer={"DisallowedOperations": "Nonsense"})

        with pytest.raises(PolicyValueError):
            PolicyReader(store).get_effective_policy()

    def test_disallows_wildcard(self):
        settings = PolicySettings(present=True, disallowed_operations=["All"])
        assert settings.disallows("Network")
        assert settings.disallows("Audio")

    def test_to_dict_shape(self, memory_store):
        data = PolicyReader(memory_store).get_effective_policy().to_dict()

        assert set(data) == {"computerPolicy", "userPolicy", "effectiveSettings"}
        assert data["effectiveSettings"]["operations_enabled"] is True
