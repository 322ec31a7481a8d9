"""Integration tests for registry backup and restore through reg.exe.

These tests write only under HKCU\\Software\\ReSetToolkitTests and need
no admin privileges.
"""

import sys

import pytest

pytestmark = [
    pytest.mark.skipif(sys.platform != "win32", reason="Requires Windows"),
    pytest.mark.slow,
]


def _read_value(key: str, name: str):
    import winreg

    subkey = key.split("\\", 1)[1]
    with winreg.OpenKey(winreg.HKEY_CURRENT_USER, subkey) as handle:
        return winreg.QueryValueEx(handle, name)[0]


def _write_value(key: str, name: str, value: int) -> None:
    import winreg

    subkey = key.split("\\", 1)[1]
    with winreg.OpenKey(winreg.HKEY_CURRENT_USER, subkey, 0, winreg.KEY_SET_VALUE) as handle:
        winreg.SetValueEx(handle, name, 0, winreg.REG_DWORD, value)


class TestRegistryBackupLive:
    """Back up, modify and restore a real registry key."""

    def test_key_exists(self, scratch_key):
        from reset_toolkit.backup.registry import RegExeBackend

        backend = RegExeBackend(timeout=30)

        assert backend.key_exists(scratch_key)
        assert not backend.key_exists(scratch_key + "\\Missing")

    def test_round_trip(self, real_config, scratch_key):
        from reset_toolkit.backup.manager import BackupManager

        manager = BackupManager(real_config)
        result = manager.create_backup("LiveProxy", [scratch_key])
        assert result.succeeded == 1

        _write_value(scratch_key, "ProxyEnable", 0)
        assert _read_value(scratch_key, "ProxyEnable") == 0

        restore = manager.restore_backup("LiveProxy", force=True, verify=True)

        assert restore.success
        assert restore.verification_passed is True
        assert _read_value(scratch_key, "ProxyEnable") == 1
        assert _read_value(scratch_key, "ProxyServer") == "proxy:8080"

    def test_missing_key_skipped(self, real_config, scratch_key):
        from reset_toolkit.backup.manager import BackupManager

        manager = BackupManager(real_config)
        result = manager.create_backup("LiveProxy", [scratch_key, scratch_key + "\\Missing"])

        assert result.succeeded == 1
        assert result.skipped == 1


class TestHostIdentityLive:
    """Host identity lookup on a real Windows host."""

    def test_identity_populated(self):
        from reset_toolkit.core.host import get_host_identity

        identity = get_host_identity()

        assert identity.computer
        assert identity.user
