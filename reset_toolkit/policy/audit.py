"""Audit logging for gated operations.

Every gate decision and operation outcome is recorded twice:

    - Windows Application event log (best effort, bounded by a timeout)
    - <logs_dir>/audit/audit_YYYY-MM.jsonl, one compact JSON record per line

Audit logging never raises: a failing audit sink must not block the
operation being audited.
"""

import json
import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional

from reset_toolkit.core.config import Config, get_default_config
from reset_toolkit.core.host import HostIdentity, get_host_identity
from reset_toolkit.core.models import AuditEntry, AuditStatus

logger = logging.getLogger("resettk.audit")

EVENT_LOG_NAME = "Application"
EVENT_IDS = {
    AuditStatus.STARTED: 1000,
    AuditStatus.COMPLETED: 1000,
    AuditStatus.FAILED: 1001,
    AuditStatus.BLOCKED: 1002,
}
EVENT_ENTRY_TYPES = {
    AuditStatus.STARTED: "Information",
    AuditStatus.COMPLETED: "Information",
    AuditStatus.FAILED: "Error",
    AuditStatus.BLOCKED: "Warning",
}


def _ps_quote(text: str) -> str:
    """Quote text as a single-quoted PowerShell string literal."""
    return "'" + text.replace("'", "''") + "'"


class EventLogSink:
    """Writes audit entries to the Windows event log via PowerShell.

    The event source is registered on first use if it does not exist,
    which needs administrator rights; without them the write fails and
    the caller falls back to the file sink.
    """

    def __init__(self, source: str = "ReSetToolkit", timeout: float = 5.0) -> None:
        self.source = source
        self.timeout = timeout
        self._is_windows = os.name == "nt"

    def is_available(self) -> bool:
        return self._is_windows

    def build_script(self, entry: AuditEntry) -> str:
        message = json.dumps(entry.to_dict(), separators=(",", ":"))
        source = _ps_quote(self.source)
        return (
            f"if (-not [System.Diagnostics.EventLog]::SourceExists({source})) "
            f"{{ New-EventLog -LogName {EVENT_LOG_NAME} -Source {source} }}; "
            f"Write-EventLog -LogName {EVENT_LOG_NAME} -Source {source} "
            f"-EntryType {EVENT_ENTRY_TYPES[entry.status]} -EventId {EVENT_IDS[entry.status]} "
            f"-Message {_ps_quote(message)}"
        )

    def emit(self, entry: AuditEntry) -> bool:
        """Write one entry. Returns False on any failure or timeout."""
        if not self._is_windows:
            return False

        try:
            result = subprocess.run(
                ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", self.build_script(entry)],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                creationflags=subprocess.CREATE_NO_WINDOW if hasattr(subprocess, "CREATE_NO_WINDOW") else 0,
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"Event log write timed out after {self.timeout}s")
            return False
        except Exception as e:
            logger.debug(f"Event log write failed: {e}")
            return False

        if result.returncode != 0:
            logger.debug(f"Event log write failed: {result.stderr.strip()}")
            return False
        return True


class AuditLogger:
    """Dual-sink audit logger.

    Example:
        audit = AuditLogger(config)
        audit.write("Network", "Reset-Network", AuditStatus.STARTED)
        entries = audit.read_entries("2026-10")
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        identity: Optional[HostIdentity] = None,
        event_sink: Optional[EventLogSink] = None,
        audit_dir: Optional[Path] = None,
    ) -> None:
        """Initialize the audit logger.

        Args:
            config: Configuration object
            identity: Computer/user/domain stamped on entries (detected if omitted)
            event_sink: Event log sink; built from config if omitted
            audit_dir: Override directory for audit files
        """
        self.config = config or get_default_config()
        self.audit_dir = Path(audit_dir or self.config.audit_dir)
        self._identity = identity
        if event_sink is None and self.config.audit.event_log_enabled:
            event_sink = EventLogSink(
                source=self.config.audit.event_source,
                timeout=self.config.audit.event_log_timeout_seconds,
            )
        self.event_sink = event_sink

    @property
    def identity(self) -> HostIdentity:
        if self._identity is None:
            self._identity = get_host_identity()
        return self._identity

    def log_path(self, when: Optional[datetime] = None) -> Path:
        """Audit file for the calendar month of ``when``."""
        when = when or datetime.now()
        return self.audit_dir / f"audit_{when.strftime('%Y-%m')}.jsonl"

    def write(
        self,
        operation_type: str,
        operation_name: str,
        status: AuditStatus,
        details: str = "",
    ) -> Optional[AuditEntry]:
        """Record an audit entry in every available sink.

        Returns:
            The entry written, or None if it could not even be built.
        """
        try:
            identity = self.identity
            entry = AuditEntry(
                operation_type=str(operation_type),
                operation_name=operation_name,
                status=status,
                details=details or "",
                computer=identity.computer,
                user=identity.user,
                domain=identity.domain,
            )
        except Exception as e:
            logger.error(f"Failed to build audit entry for {operation_name}: {e}")
            return None

        level = logging.WARNING if status in (AuditStatus.BLOCKED, AuditStatus.FAILED) else logging.INFO
        logger.log(level, f"{entry.status.value} | {entry.operation_type} | {entry.operation_name} | {entry.details}")

        if self.event_sink is not None:
            try:
                if not self.event_sink.emit(entry):
                    logger.debug("Event log unavailable, audit entry written to file only")
            except Exception as e:
                logger.debug(f"Event log sink raised: {e}")

        self._append(entry)
        return entry

    def _append(self, entry: AuditEntry) -> None:
        try:
            path = self.log_path(entry.timestamp)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), separators=(",", ":")) + "\n")
        except Exception as e:
            logger.error(f"Failed to write audit log: {e}")

    def read_entries(self, month: Optional[str] = None) -> list[AuditEntry]:
        """Read the audit entries of one calendar month.

        Args:
            month: "YYYY-MM"; defaults to the current month

        Returns:
            Entries in file order. Unparsable lines are skipped with a warning.
        """
        if month:
            when = datetime.strptime(month, "%Y-%m")
        else:
            when = datetime.now()
        path = self.log_path(when)
        if not path.exists():
            return []

        entries: list[AuditEntry] = []
        with open(path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping malformed audit line {path.name}:{line_number}: {e}")
        return entries


def create_audit_logger(config: Optional[Config] = None) -> AuditLogger:
    """Create an audit logger with default or provided configuration."""
    return AuditLogger(config=config)
