"""Core data models for the ReSet Toolkit.

This module defines the enums and data classes shared by the backup
manager, the policy compliance gate and the operation runner.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

MANIFEST_SCHEMA_VERSION = 2
MANIFEST_FILENAME = "manifest.json"


class OperationType(Enum):
    """Reset operation categories that policy can allow or disallow.

    ALL is the wildcard used in disallow lists and approval markers.
    """

    NETWORK = "Network"
    AUDIO = "Audio"
    DISPLAY = "Display"
    PRIVACY = "Privacy"
    DEFENDER = "Defender"
    ACTIVE_DIRECTORY = "ActiveDirectory"
    SEARCH = "Search"
    UAC = "UAC"
    FONTS = "Fonts"
    POWER = "Power"
    WINDOWS_UPDATE = "WindowsUpdate"
    START_MENU = "StartMenu"
    EXPLORER = "Explorer"
    FIREWALL = "Firewall"
    BROWSER = "Browser"
    PERFORMANCE = "Performance"
    INPUT = "Input"
    TIME = "Time"
    STORE = "Store"
    SHELL = "Shell"
    SYSTEM_REPAIR = "SystemRepair"
    BACKUP = "Backup"
    RESTORE = "Restore"
    ALL = "All"

    @classmethod
    def parse(cls, value: "str | OperationType") -> "OperationType":
        """Resolve an operation type by value, case-insensitively.

        Raises:
            ValueError: If the value names no known operation type.
        """
        if isinstance(value, OperationType):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown operation type: {value!r}")


class BackupItemKind(Enum):
    """What a backup item archives."""

    REGISTRY = "Registry"
    FILE = "File"


class ItemStatus(Enum):
    """Outcome of archiving a single backup item.

    Statuses:
        SUCCEEDED: Payload archived and restorable
        FAILED: Archiving was attempted and raised an error
        SKIPPED: Source did not exist at backup time
    """

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class ComplianceStatus(Enum):
    """Result of a policy compliance check."""

    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"
    PENDING = "Pending"
    ERROR = "Error"


class AuditStatus(Enum):
    """Lifecycle status recorded in an audit entry."""

    STARTED = "Started"
    COMPLETED = "Completed"
    FAILED = "Failed"
    BLOCKED = "Blocked"


@dataclass
class BackupItem:
    """A single registry key or file recorded in a backup manifest.

    Attributes:
        kind: Registry or File
        source_path: Original location (registry key or filesystem path)
        archived_path: Payload location relative to the backup directory
        status: Whether archiving succeeded, failed or was skipped
        error: Error text for failed/skipped items
    """

    kind: BackupItemKind
    source_path: str
    archived_path: str = ""
    status: ItemStatus = ItemStatus.SUCCEEDED
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ItemStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "sourcePath": self.source_path,
            "archivedPath": self.archived_path,
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupItem":
        # Version 1 manifests only listed archived items and had no status
        return cls(
            kind=BackupItemKind(data["kind"]),
            source_path=data["sourcePath"],
            archived_path=data.get("archivedPath") or "",
            status=ItemStatus(data.get("status", ItemStatus.SUCCEEDED.value)),
            error=data.get("error"),
        )


@dataclass
class BackupManifest:
    """Write-once description of a backup and its archived payload.

    Attributes:
        backup_name: Caller-chosen category, e.g. "NetworkSettings"
        timestamp: Creation time at second precision
        items: Ordered backup items, including failed and skipped ones
        computer_name: Host the backup was taken on
        user_name: Account that took the backup
        schema_version: Manifest schema version
    """

    backup_name: str
    timestamp: datetime
    items: list[BackupItem] = field(default_factory=list)
    computer_name: str = ""
    user_name: str = ""
    schema_version: int = MANIFEST_SCHEMA_VERSION

    @property
    def succeeded_items(self) -> list[BackupItem]:
        return [item for item in self.items if item.succeeded]

    @property
    def failed_items(self) -> list[BackupItem]:
        return [item for item in self.items if item.status == ItemStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "backupName": self.backup_name,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "computerName": self.computer_name,
            "userName": self.user_name,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupManifest":
        """Build a manifest from its JSON form.

        Raises:
            KeyError, ValueError, TypeError: If required fields are missing
                or malformed.
        """
        return cls(
            backup_name=data["backupName"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            items=[BackupItem.from_dict(item) for item in data.get("items", [])],
            computer_name=data.get("computerName", ""),
            user_name=data.get("userName", ""),
            schema_version=int(data.get("schemaVersion", 1)),
        )


@dataclass
class BackupResult:
    """Outcome of creating a backup.

    Attributes:
        backup_path: Directory holding the manifest and payload
        manifest: The manifest that was written
    """

    backup_path: Path
    manifest: BackupManifest

    @property
    def succeeded(self) -> int:
        return len(self.manifest.succeeded_items)

    @property
    def failed(self) -> int:
        return len(self.manifest.failed_items)

    @property
    def skipped(self) -> int:
        return sum(1 for item in self.manifest.items if item.status == ItemStatus.SKIPPED)


@dataclass
class ItemRestoreResult:
    """Restore outcome for one manifest item."""

    item: BackupItem
    restored: bool
    verified: bool | None = None
    error: str | None = None


@dataclass
class RestoreResult:
    """Outcome of restoring a backup.

    Attributes:
        backup_path: Directory the backup was restored from
        manifest: Manifest that drove the restore
        items: Per-item restore results
        verification_passed: Aggregate verification, None when not requested
    """

    backup_path: Path
    manifest: BackupManifest
    items: list[ItemRestoreResult] = field(default_factory=list)
    verification_passed: bool | None = None

    @property
    def success(self) -> bool:
        return all(result.restored for result in self.items)

    @property
    def restored_count(self) -> int:
        return sum(1 for result in self.items if result.restored)


@dataclass
class BackupSummary:
    """Listing entry for a stored backup.

    A corrupted manifest still yields a summary with ``corrupted`` set and
    ``item_count`` of None so operators can see it needs attention.
    """

    name: str
    path: Path
    timestamp: datetime
    item_count: int | None
    size_bytes: int = 0
    computer_name: str = ""
    corrupted: bool = False
    error: str | None = None


@dataclass
class ComplianceResult:
    """Decision of a policy compliance check.

    Attributes:
        status: Compliant, NonCompliant, Pending or Error
        allowed: False blocks the operation
        restrictions: Every reason found, in evaluation order
        operation_type: Operation type that was checked
        checked_at: When the check ran
        policy: Effective policy the decision was made on; None when it
            could not be read
    """

    status: ComplianceStatus
    allowed: bool
    restrictions: list[str] = field(default_factory=list)
    operation_type: str = ""
    checked_at: datetime = field(default_factory=datetime.now)
    policy: Any = field(default=None, repr=False, compare=False)

    @property
    def message(self) -> str:
        return "; ".join(self.restrictions)


@dataclass
class MaintenanceWindowResult:
    """Whether the current time falls in the configured maintenance window."""

    in_window: bool
    message: str
    window: str | None = None


@dataclass
class AuditEntry:
    """Append-only audit record for a gated operation."""

    operation_type: str
    operation_name: str
    status: AuditStatus
    details: str = ""
    computer: str = ""
    user: str = ""
    domain: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now().replace(microsecond=0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "Timestamp": self.timestamp.isoformat(timespec="seconds"),
            "Computer": self.computer,
            "User": self.user,
            "Domain": self.domain,
            "OperationType": self.operation_type,
            "OperationName": self.operation_name,
            "Status": self.status.value,
            "Details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        return cls(
            operation_type=data["OperationType"],
            operation_name=data["OperationName"],
            status=AuditStatus(data["Status"]),
            details=data.get("Details", ""),
            computer=data.get("Computer", ""),
            user=data.get("User", ""),
            domain=data.get("Domain", ""),
            timestamp=datetime.fromisoformat(data["Timestamp"]),
        )


@dataclass
class OperationResult:
    """Result of a gated reset operation run through the OperationRunner."""

    operation_type: str
    operation_name: str
    compliance: ComplianceResult
    backup: BackupResult | None = None
    value: Any = None
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None
