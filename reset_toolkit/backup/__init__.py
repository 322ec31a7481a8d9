"""Backup module - manifest-based registry and file backups."""

from .manager import BackupManager, create_backup_manager, format_manifest_summary
from .registry import RegExeBackend, RegistryBackend, RegistryOperationError, normalize_key

__all__ = [
    "BackupManager",
    "create_backup_manager",
    "format_manifest_summary",
    "RegistryBackend",
    "RegExeBackend",
    "RegistryOperationError",
    "normalize_key",
]
