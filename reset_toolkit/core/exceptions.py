"""Exception hierarchy for the ReSet Toolkit.

Blocking failures raise one of these; best-effort steps log and record
per-item results instead.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reset_toolkit.core.models import ComplianceResult, MaintenanceWindowResult


class ReSetError(Exception):
    """Base class for all toolkit errors."""


class BackupError(ReSetError):
    """A backup could not be created or used."""


class BackupNotFoundError(BackupError):
    """No backup matches the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No backup found for name: {name}")
        self.name = name


class ManifestError(BackupError):
    """A backup manifest is missing, unreadable or unwritable."""


class RestoreCancelledError(BackupError):
    """The operator declined the restore confirmation."""


class PolicyError(ReSetError):
    """Base class for policy gate failures."""


class PolicyValueError(PolicyError, ValueError):
    """A policy value could not be parsed."""


class PolicyStoreError(PolicyError):
    """The policy store could not be read."""


class PolicyViolationError(PolicyError):
    """Policy blocks the requested operation."""

    def __init__(self, result: "ComplianceResult") -> None:
        message = result.message or f"Operation blocked by policy ({result.status.value})"
        super().__init__(message)
        self.result = result


class MaintenanceWindowError(PolicyError):
    """The operation was requested outside the maintenance window."""

    def __init__(self, result: "MaintenanceWindowResult") -> None:
        super().__init__(result.message)
        self.result = result


class LockTimeoutError(ReSetError):
    """A file lock could not be acquired in time."""
