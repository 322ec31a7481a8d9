"""Registry export/import backends for the backup manager.

The backup manager never touches the registry directly. It goes through a
RegistryBackend, so tests and non-Windows hosts can substitute their own.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger("resettk.backup.registry")

HIVE_ALIASES = {
    "HKEY_LOCAL_MACHINE": "HKLM",
    "HKEY_CURRENT_USER": "HKCU",
    "HKEY_CLASSES_ROOT": "HKCR",
    "HKEY_USERS": "HKU",
    "HKEY_CURRENT_CONFIG": "HKCC",
}


class RegistryOperationError(OSError):
    """A registry export, import or query failed."""


def normalize_key(key: str) -> str:
    """Normalize a registry key path to reg.exe form.

    Accepts PowerShell drive paths ("HKLM:\\Software\\X"), long hive names
    and forward slashes.

    Examples:
        >>> normalize_key("HKCU:/Software/Foo")
        'HKCU\\\\Software\\\\Foo'
    """
    text = key.strip().replace("/", "\\")
    if text.lower().startswith("registry::"):
        text = text[len("registry::"):]
    hive, _, rest = text.partition("\\")
    hive = hive.rstrip(":").upper()
    hive = HIVE_ALIASES.get(hive, hive)
    rest = rest.strip("\\")
    return f"{hive}\\{rest}" if rest else hive


class RegistryBackend(ABC):
    """Abstract registry access used by backup and restore.

    Subclasses must implement:
        - key_exists(): Whether a key resolves
        - export_key(): Write a key subtree to a file
        - import_file(): Replay a previously exported file
    """

    @abstractmethod
    def key_exists(self, key: str) -> bool:
        """Return True if the registry key exists."""

    @abstractmethod
    def export_key(self, key: str, destination: Path) -> None:
        """Export a key subtree to ``destination``.

        Raises:
            RegistryOperationError: If the export fails.
        """

    @abstractmethod
    def import_file(self, source: Path) -> None:
        """Import an exported file back into the registry.

        Raises:
            RegistryOperationError: If the import fails.
        """

    def is_available(self) -> bool:
        return True


class RegExeBackend(RegistryBackend):
    """Registry backend built on reg.exe export/import/query.

    The .reg format written by reg.exe is the host's native export and
    round-trips bit-exactly through reg.exe import.
    """

    def __init__(self, timeout: int = 60) -> None:
        self.timeout = timeout
        self._is_windows = os.name == "nt"

    def is_available(self) -> bool:
        return self._is_windows

    def key_exists(self, key: str) -> bool:
        result = self._run(["reg.exe", "query", normalize_key(key)])
        return result.returncode == 0

    def export_key(self, key: str, destination: Path) -> None:
        normalized = normalize_key(key)
        result = self._run(["reg.exe", "export", normalized, str(destination), "/y"])
        if result.returncode != 0:
            raise RegistryOperationError(
                f"reg export {normalized} failed: {(result.stderr or result.stdout).strip()}"
            )

    def import_file(self, source: Path) -> None:
        result = self._run(["reg.exe", "import", str(source)])
        if result.returncode != 0:
            raise RegistryOperationError(
                f"reg import {source} failed: {(result.stderr or result.stdout).strip()}"
            )

    def _run(self, args: list[str]) -> subprocess.CompletedProcess:
        if not self._is_windows:
            raise RegistryOperationError("Registry operations are only available on Windows")

        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                creationflags=subprocess.CREATE_NO_WINDOW if hasattr(subprocess, "CREATE_NO_WINDOW") else 0,
            )
        except subprocess.TimeoutExpired as e:
            raise RegistryOperationError(f"{args[1]} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise RegistryOperationError("reg.exe not found") from e


def create_registry_backend(timeout: int = 60) -> RegistryBackend:
    """Create the default registry backend for this host."""
    return RegExeBackend(timeout=timeout)
