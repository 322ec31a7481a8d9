"""Output formatters for CLI output.

This module provides formatters for displaying backups, restore
results, policy and compliance decisions in text or JSON.
"""

import json
import sys
from abc import ABC, abstractmethod
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from reset_toolkit.core.models import (
    AuditEntry,
    AuditStatus,
    BackupResult,
    BackupSummary,
    ComplianceResult,
    ComplianceStatus,
    MaintenanceWindowResult,
    RestoreResult,
)
from reset_toolkit.policy.settings import PolicyConfiguration


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    SUCCESS = "\033[92m"  # Green
    FAILURE = "\033[91m"  # Red
    WARNING = "\033[93m"  # Yellow
    INFO = "\033[94m"     # Blue

    @classmethod
    def is_supported(cls) -> bool:
        """Check if terminal supports colors."""
        return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def colorize(text: str, color: str, force: bool = False) -> str:
    """Apply color to text if supported.

    Args:
        text: Text to colorize
        color: ANSI color code
        force: Force color even if not supported

    Returns:
        Colored text or plain text
    """
    if force or Colors.is_supported():
        return f"{color}{text}{Colors.RESET}"
    return text


def get_compliance_color(status: ComplianceStatus) -> str:
    """Get color for a compliance status."""
    color_map = {
        ComplianceStatus.COMPLIANT: Colors.SUCCESS,
        ComplianceStatus.NON_COMPLIANT: Colors.FAILURE,
        ComplianceStatus.PENDING: Colors.WARNING,
        ComplianceStatus.ERROR: Colors.FAILURE,
    }
    return color_map.get(status, Colors.RESET)


def get_audit_color(status: AuditStatus) -> str:
    """Get color for an audit status."""
    color_map = {
        AuditStatus.STARTED: Colors.INFO,
        AuditStatus.COMPLETED: Colors.SUCCESS,
        AuditStatus.FAILED: Colors.FAILURE,
        AuditStatus.BLOCKED: Colors.WARNING,
    }
    return color_map.get(status, Colors.RESET)


class OutputFormatter(ABC):
    """Abstract base class for output formatters."""

    @abstractmethod
    def format_backup_list(self, backups: list[BackupSummary]) -> str:
        """Format a list of backup summaries."""
        pass

    @abstractmethod
    def format_backup_result(self, result: BackupResult) -> str:
        """Format the outcome of creating a backup."""
        pass

    @abstractmethod
    def format_restore_result(self, result: RestoreResult) -> str:
        """Format the outcome of a restore."""
        pass

    @abstractmethod
    def format_compliance(self, result: ComplianceResult) -> str:
        """Format a compliance decision."""
        pass

    @abstractmethod
    def format_window(self, result: MaintenanceWindowResult) -> str:
        """Format a maintenance window check."""
        pass

    @abstractmethod
    def format_policy(self, policy: PolicyConfiguration) -> str:
        """Format effective policy."""
        pass

    @abstractmethod
    def format_audit_entries(self, entries: list[AuditEntry]) -> str:
        """Format audit log entries."""
        pass


class TextFormatter(OutputFormatter):
    """Plain text formatter with optional colors."""

    def __init__(self, use_colors: bool = True, verbose: bool = False):
        self.use_colors = use_colors and Colors.is_supported()
        self.verbose = verbose

    def _colorize(self, text: str, color: str) -> str:
        if self.use_colors:
            return colorize(text, color, force=True)
        return text

    def format_backup_list(self, backups: list[BackupSummary]) -> str:
        if not backups:
            return "No backups found."

        lines = []
        header = f"{'Name':<28} {'Created':<20} {'Items':>7} {'Size':>10}  Location"
        lines.append(self._colorize(header, Colors.BOLD))
        lines.append("-" * 90)

        for backup in backups:
            name = backup.name[:26] if len(backup.name) > 26 else backup.name
            created = backup.timestamp.strftime("%Y-%m-%d %H:%M:%S")
            if backup.corrupted:
                items = self._colorize(f"{'unknown':>7}", Colors.FAILURE)
            else:
                items = f"{backup.item_count:>7}"
            lines.append(f"{name:<28} {created:<20} {items} {_format_size(backup.size_bytes):>10}  {backup.path}")

        lines.append("-" * 90)
        corrupted = sum(1 for b in backups if b.corrupted)
        total = f"Total: {len(backups)} backups"
        if corrupted:
            total += " " + self._colorize(f"({corrupted} with unreadable manifests)", Colors.WARNING)
        lines.append(total)
        return "\n".join(lines)

    def format_backup_result(self, result: BackupResult) -> str:
        if result.failed:
            status = self._colorize("PARTIAL", Colors.WARNING)
        else:
            status = self._colorize("SUCCESS", Colors.SUCCESS)

        lines = [
            f"Backup: {result.manifest.backup_name} [{status}]",
            f"  Location: {result.backup_path}",
            f"  Archived: {result.succeeded}  Failed: {result.failed}  Skipped: {result.skipped}",
        ]
        for item in result.manifest.items:
            if item.succeeded and not self.verbose:
                continue
            marker = item.status.value
            color = Colors.SUCCESS if item.succeeded else Colors.WARNING
            text = f"    [{self._colorize(marker, color)}] {item.kind.value}: {item.source_path}"
            if item.error:
                text += f" ({item.error})"
            lines.append(text)
        return "\n".join(lines)

    def format_restore_result(self, result: RestoreResult) -> str:
        if result.success:
            status = self._colorize("SUCCESS", Colors.SUCCESS)
        else:
            status = self._colorize("PARTIAL", Colors.WARNING)

        lines = [
            f"Restore: {result.manifest.backup_name} [{status}]",
            f"  From: {result.backup_path}",
            f"  Restored: {result.restored_count}/{len(result.items)}",
        ]
        for item_result in result.items:
            marker = "OK" if item_result.restored else "FAILED"
            color = Colors.SUCCESS if item_result.restored else Colors.FAILURE
            text = f"    [{self._colorize(marker, color)}] {item_result.item.source_path}"
            if item_result.verified is not None:
                text += " (verified)" if item_result.verified else " (verification failed)"
            if item_result.error:
                text += f": {item_result.error}"
            lines.append(text)

        if result.verification_passed is not None:
            verdict = "PASSED" if result.verification_passed else "FAILED"
            color = Colors.SUCCESS if result.verification_passed else Colors.FAILURE
            lines.append(f"  Verification: {self._colorize(verdict, color)}")
        return "\n".join(lines)

    def format_compliance(self, result: ComplianceResult) -> str:
        status = self._colorize(result.status.value, get_compliance_color(result.status))
        allowed = "yes" if result.allowed else "no"
        lines = [
            f"Compliance: {result.operation_type} [{status}]",
            f"  Allowed: {allowed}",
        ]
        if result.restrictions:
            lines.append("  Restrictions:")
            for restriction in result.restrictions:
                lines.append(f"    - {restriction}")
        return "\n".join(lines)

    def format_window(self, result: MaintenanceWindowResult) -> str:
        verdict = "IN WINDOW" if result.in_window else "OUTSIDE WINDOW"
        color = Colors.SUCCESS if result.in_window else Colors.WARNING
        return f"Maintenance window: [{self._colorize(verdict, color)}] {result.message}"

    def format_policy(self, policy: PolicyConfiguration) -> str:
        effective = policy.effective_settings
        lines = [
            self._colorize("Effective policy", Colors.BOLD),
            f"  Operations enabled: {effective.operations_enabled}",
            f"  Require backup: {effective.require_backup}",
            f"  Require approval: {effective.require_approval}",
            f"  Audit mode: {effective.audit_mode}",
            f"  Log level: {effective.log_level}",
            f"  Maintenance window: {effective.maintenance_window or '(none)'}",
            "",
            f"  Computer policy present: {policy.computer_policy.present}",
            f"  Computer disallowed: {', '.join(policy.computer_policy.disallowed_operations) or '(none)'}",
            f"  User policy present: {policy.user_policy.present}",
            f"  User restricted: {', '.join(policy.user_policy.disallowed_operations) or '(none)'}",
        ]
        return "\n".join(lines)

    def format_audit_entries(self, entries: list[AuditEntry]) -> str:
        if not entries:
            return "No audit entries found."

        lines = []
        for entry in entries:
            status = self._colorize(f"{entry.status.value:<9}", get_audit_color(entry.status))
            line = f"{entry.timestamp.isoformat(sep=' ')} {status} {entry.operation_type:<15} {entry.operation_name}"
            if entry.details:
                line += f" - {entry.details}"
            lines.append(line)
        return "\n".join(lines)


class JsonFormatter(OutputFormatter):
    """JSON output formatter."""

    def __init__(self, indent: int = 2, compact: bool = False):
        self.indent = None if compact else indent

    def _serialize(self, obj: Any) -> Any:
        """Serialize an object for JSON output."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Path):
            return str(obj)
        if hasattr(obj, "__dataclass_fields__"):
            return asdict(obj)
        return str(obj)

    def _dump(self, data: Any) -> str:
        return json.dumps(data, indent=self.indent, default=self._serialize)

    def format_backup_list(self, backups: list[BackupSummary]) -> str:
        return self._dump({"count": len(backups), "backups": [asdict(b) for b in backups]})

    def format_backup_result(self, result: BackupResult) -> str:
        return self._dump(
            {
                "backupPath": str(result.backup_path),
                "succeeded": result.succeeded,
                "failed": result.failed,
                "skipped": result.skipped,
                "manifest": result.manifest.to_dict(),
            }
        )

    def format_restore_result(self, result: RestoreResult) -> str:
        return self._dump(
            {
                "backupPath": str(result.backup_path),
                "success": result.success,
                "verificationPassed": result.verification_passed,
                "items": [
                    {
                        "sourcePath": r.item.source_path,
                        "kind": r.item.kind.value,
                        "restored": r.restored,
                        "verified": r.verified,
                        "error": r.error,
                    }
                    for r in result.items
                ],
            }
        )

    def format_compliance(self, result: ComplianceResult) -> str:
        data = asdict(result)
        data.pop("policy", None)
        return self._dump(data)

    def format_window(self, result: MaintenanceWindowResult) -> str:
        return self._dump(asdict(result))

    def format_policy(self, policy: PolicyConfiguration) -> str:
        return self._dump(policy.to_dict())

    def format_audit_entries(self, entries: list[AuditEntry]) -> str:
        return self._dump([entry.to_dict() for entry in entries])


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
