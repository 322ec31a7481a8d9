"""Core module - configuration, models, logging and shared infrastructure."""

from .config import Config, load_config, save_config
from .exceptions import (
    BackupError,
    BackupNotFoundError,
    LockTimeoutError,
    MaintenanceWindowError,
    ManifestError,
    PolicyError,
    PolicyStoreError,
    PolicyValueError,
    PolicyViolationError,
    ReSetError,
    RestoreCancelledError,
)
from .host import HostIdentity, get_host_identity
from .locking import FileLock
from .logging_config import setup_logging
from .models import (
    AuditEntry,
    AuditStatus,
    BackupItem,
    BackupItemKind,
    BackupManifest,
    BackupResult,
    BackupSummary,
    ComplianceResult,
    ComplianceStatus,
    ItemStatus,
    MaintenanceWindowResult,
    OperationResult,
    OperationType,
    RestoreResult,
)

__all__ = [
    # Models
    "OperationType",
    "BackupItemKind",
    "ItemStatus",
    "ComplianceStatus",
    "AuditStatus",
    "BackupItem",
    "BackupManifest",
    "BackupResult",
    "BackupSummary",
    "RestoreResult",
    "ComplianceResult",
    "MaintenanceWindowResult",
    "AuditEntry",
    "OperationResult",
    # Config
    "Config",
    "load_config",
    "save_config",
    "setup_logging",
    # Infrastructure
    "FileLock",
    "HostIdentity",
    "get_host_identity",
    # Errors
    "ReSetError",
    "BackupError",
    "BackupNotFoundError",
    "ManifestError",
    "RestoreCancelledError",
    "PolicyError",
    "PolicyValueError",
    "PolicyStoreError",
    "PolicyViolationError",
    "MaintenanceWindowError",
    "LockTimeoutError",
]
