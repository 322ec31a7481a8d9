"""Shared fixtures for integration tests.

All integration tests require Windows and are skipped on other platforms.
"""

import sys
import tempfile
import uuid
from pathlib import Path

import pytest

# Skip entire directory on non-Windows
pytestmark = pytest.mark.skipif(
    sys.platform != "win32",
    reason="Integration tests require Windows",
)

SCRATCH_ROOT = "Software\\ReSetToolkitTests"


@pytest.fixture
def real_config():
    """Create a real Config pointing to a temporary directory."""
    from reset_toolkit.core.config import Config

    with tempfile.TemporaryDirectory(prefix="resettk_test_") as tmpdir:
        config = Config(config_dir=Path(tmpdir))
        config.audit.event_log_enabled = False
        config.ensure_directories()
        yield config


@pytest.fixture
def scratch_key():
    """Create a throwaway HKCU key with two values; removed afterwards."""
    if sys.platform != "win32":
        pytest.skip("Requires Windows")

    import winreg

    subkey = f"{SCRATCH_ROOT}\\{uuid.uuid4().hex[:8]}"
    with winreg.CreateKey(winreg.HKEY_CURRENT_USER, subkey) as handle:
        winreg.SetValueEx(handle, "ProxyEnable", 0, winreg.REG_DWORD, 1)
        winreg.SetValueEx(handle, "ProxyServer", 0, winreg.REG_SZ, "proxy:8080")

    yield f"HKCU\\{subkey}"

    try:
        winreg.DeleteKey(winreg.HKEY_CURRENT_USER, subkey)
        winreg.DeleteKey(winreg.HKEY_CURRENT_USER, SCRATCH_ROOT)
    except OSError:
        pass
