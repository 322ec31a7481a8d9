"""Pytest configuration and shared fixtures."""

import json
import sys
import tempfile
from pathlib import Path

import pytest

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reset_toolkit.backup.registry import RegistryBackend, RegistryOperationError, normalize_key  # noqa: E402


class FakeRegistryBackend(RegistryBackend):
    """In-memory registry for testing backup and restore.

    Keys map to a dict of values. Exports are JSON documents so that
    import_file can replay them.
    """

    def __init__(self, keys: dict[str, dict] | None = None, fail_exports: set[str] | None = None):
        self.keys: dict[str, dict] = {normalize_key(k): dict(v) for k, v in (keys or {}).items()}
        self.fail_exports = {normalize_key(k) for k in (fail_exports or set())}
        self.imported: list[Path] = []

    def key_exists(self, key: str) -> bool:
        return normalize_key(key) in self.keys

    def export_key(self, key: str, destination: Path) -> None:
        normalized = normalize_key(key)
        if normalized in self.fail_exports:
            raise RegistryOperationError(f"Access is denied: {normalized}")
        payload = {"key": normalized, "values": self.keys[normalized]}
        destination.write_text(json.dumps(payload), encoding="utf-8")

    def import_file(self, source: Path) -> None:
        payload = json.loads(source.read_text(encoding="utf-8"))
        self.keys[payload["key"]] = dict(payload["values"])
        self.imported.append(source)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir):
    """Create a test configuration rooted in a temporary directory."""
    from reset_toolkit.core.config import Config

    config = Config(config_dir=temp_dir)
    config.audit.event_log_enabled = False
    config.backup.lock_timeout_seconds = 1.0
    config.ensure_directories()
    return config


@pytest.fixture
def identity():
    """Fixed host identity for provenance fields."""
    from reset_toolkit.core.host import HostIdentity

    return HostIdentity(computer="WS-0042", user="admin", domain="CORP")


@pytest.fixture
def fake_registry():
    """Registry with one existing key."""
    return FakeRegistryBackend(
        keys={
            "HKCU\\Software\\ReSetTest\\Network": {"ProxyEnable": 1, "ProxyServer": "proxy:8080"},
        }
    )


@pytest.fixture
def backup_manager(test_config, fake_registry, identity, audit_logger):
    """Backup manager using the fake registry."""
    from reset_toolkit.backup.manager import BackupManager

    return BackupManager(config=test_config, registry=fake_registry, identity=identity, audit=audit_logger)


@pytest.fixture
def memory_store():
    """Empty in-memory policy store (no policy deployed)."""
    from reset_toolkit.policy.store import MemoryPolicyStore

    return MemoryPolicyStore()


@pytest.fixture
def audit_logger(test_config, identity):
    """Audit logger writing to the temporary audit directory only."""
    from reset_toolkit.policy.audit import AuditLogger

    return AuditLogger(config=test_config, identity=identity)


@pytest.fixture
def make_registry():
    """Factory for fake registries with custom keys or failing exports."""
    return FakeRegistryBackend
