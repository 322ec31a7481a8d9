"""Compliance Gate - decides whether a reset operation may run.

The gate resolves effective Group Policy, checks the disallow lists,
the maintenance window and approval markers, and writes an audit entry
for every decision it enforces.

Failure policy:
    - Anything that could let a destructive reset run when policy is
      unknown fails closed (store read errors, unparsable policy values,
      unknown operation types): the result is Error / not allowed.
    - A malformed maintenance window string fails open: the operation is
      allowed and a warning is logged, so one bad policy value cannot
      block every managed host.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from reset_toolkit.core.config import Config, get_default_config
from reset_toolkit.core.exceptions import (
    MaintenanceWindowError,
    PolicyError,
    PolicyViolationError,
)
from reset_toolkit.core.locking import FileLock
from reset_toolkit.core.models import (
    AuditStatus,
    ComplianceResult,
    ComplianceStatus,
    MaintenanceWindowResult,
    OperationType,
)
from reset_toolkit.policy.audit import AuditLogger
from reset_toolkit.policy.settings import (
    KEY_MAINTENANCE_WINDOW,
    PolicyConfiguration,
    PolicyReader,
    parse_maintenance_window,
)
from reset_toolkit.policy.store import PolicyScope, PolicyStore, create_policy_store

logger = logging.getLogger("resettk.policy.compliance")

APPROVAL_SUFFIX = ".approved"
GATE_LOCK_NAME = "policy-gate.lock"


class ComplianceGate:
    """Policy compliance gate for reset operations.

    Example:
        gate = ComplianceGate(config)
        result = gate.check_compliance("Network")
        if result.allowed:
            ...

        # Or enforce, writing audit entries and raising on block
        gate.assert_compliance("Network", "Reset-Network")
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[PolicyStore] = None,
        audit: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the gate.

        Args:
            config: Configuration object
            store: Policy store (registry on Windows, JSON file elsewhere)
            audit: Audit logger used by assert_compliance
            clock: Source of the current local time
        """
        self.config = config or get_default_config()
        self.store = store or create_policy_store(self.config)
        self.reader = PolicyReader(self.store)
        self.audit = audit or AuditLogger(self.config)
        self._clock = clock or datetime.now

    def get_effective_policy(self) -> PolicyConfiguration:
        """Read and resolve policy. Always re-reads the store."""
        return self.reader.get_effective_policy()

    def approval_marker_paths(self, operation_type: str) -> list[Path]:
        """Marker files that approve an operation type; any one suffices."""
        return [
            self.config.approvals_dir / f"{operation_type}{APPROVAL_SUFFIX}",
            self.config.approvals_dir / f"{OperationType.ALL.value}{APPROVAL_SUFFIX}",
        ]

    def has_approval(self, operation_type: str) -> bool:
        return any(path.exists() for path in self.approval_marker_paths(operation_type))

    def check_maintenance_window(self, now: Optional[datetime] = None) -> MaintenanceWindowResult:
        """Check whether the current hour is inside the maintenance window.

        No configured window means always in window; a malformed window
        string also yields in-window, with a warning.
        """
        try:
            raw = self.store.read(PolicyScope.COMPUTER, KEY_MAINTENANCE_WINDOW)
        except PolicyError as e:
            logger.error(f"Cannot read maintenance window policy: {e}")
            return MaintenanceWindowResult(
                in_window=False,
                message=f"Maintenance window policy could not be read: {e}",
            )

        text = str(raw).strip() if raw is not None else ""
        if not text:
            return MaintenanceWindowResult(in_window=True, message="No maintenance window configured")

        try:
            window = parse_maintenance_window(text)
        except ValueError as e:
            logger.warning(f"Invalid maintenance window '{text}', allowing operation: {e}")
            return MaintenanceWindowResult(
                in_window=True,
                message=f"Invalid maintenance window format '{text}'; operation allowed",
                window=text,
            )

        hour = (now or self._clock()).hour
        if window.contains(hour):
            return MaintenanceWindowResult(
                in_window=True,
                message=f"Within maintenance window {window}",
                window=str(window),
            )
        return MaintenanceWindowResult(
            in_window=False,
            message=f"Outside maintenance window {window} (current hour {hour:02d})",
            window=str(window),
        )

    def check_compliance(
        self,
        operation_type: str,
        include_maintenance_window: bool = True,
    ) -> ComplianceResult:
        """Evaluate policy for an operation type.

        All applicable restrictions are collected rather than stopping at
        the first. User-scope restrictions are advisory: they are listed
        but never change ``allowed``.

        Args:
            operation_type: Operation category, e.g. "Network"
            include_maintenance_window: Also enforce the maintenance window

        Returns:
            ComplianceResult describing the decision
        """
        try:
            op = OperationType.parse(operation_type).value
        except ValueError as e:
            logger.error(str(e))
            return ComplianceResult(
                status=ComplianceStatus.ERROR,
                allowed=False,
                restrictions=[str(e)],
                operation_type=str(operation_type),
            )

        try:
            policy = self.reader.get_effective_policy()
        except Exception as e:
            logger.error(f"Compliance check failed for {op}: {e}")
            return ComplianceResult(
                status=ComplianceStatus.ERROR,
                allowed=False,
                restrictions=[f"Policy evaluation failed: {e}"],
                operation_type=op,
            )

        computer = policy.computer_policy
        user = policy.user_policy
        effective = policy.effective_settings

        restrictions: list[str] = []
        blocked = False
        pending = False

        if not effective.operations_enabled:
            blocked = True
            restrictions.append("Reset operations are disabled by computer policy")

        if computer.disallows(op):
            blocked = True
            restrictions.append(f"Operation type '{op}' is disallowed by computer policy")

        if include_maintenance_window and effective.maintenance_window_active:
            window = self.check_maintenance_window()
            if not window.in_window:
                blocked = True
                restrictions.append(window.message)

        if effective.require_approval and not self.has_approval(op):
            pending = True
            marker = self.approval_marker_paths(op)[0]
            restrictions.append(f"Operation type '{op}' requires approval (marker file not found: {marker})")

        if user.disallows(op):
            restrictions.append(f"User policy restricts operation type '{op}' (computer policy takes precedence)")

        if blocked:
            status = ComplianceStatus.NON_COMPLIANT
        elif pending:
            status = ComplianceStatus.PENDING
        else:
            status = ComplianceStatus.COMPLIANT

        result = ComplianceResult(
            status=status,
            allowed=not (blocked or pending),
            restrictions=restrictions,
            operation_type=op,
            policy=policy,
        )
        logger.debug(f"Compliance for {op}: {status.value}, restrictions={restrictions}")
        return result

    def assert_compliance(
        self,
        operation_type: str,
        operation_name: str,
        ignore_maintenance_window: bool = False,
    ) -> ComplianceResult:
        """Enforce policy for an operation, auditing the decision.

        A Blocked audit entry is written before any error is raised; on
        success a Started entry is written before returning.

        Raises:
            PolicyViolationError: If policy blocks the operation.
            MaintenanceWindowError: If outside the maintenance window.
            LockTimeoutError: If another process holds the gate lock.
        """
        with FileLock(self.config.locks_dir / GATE_LOCK_NAME, timeout=self.config.backup.lock_timeout_seconds):
            result = self.check_compliance(operation_type, include_maintenance_window=False)
            if not result.allowed:
                self.audit.write(result.operation_type, operation_name, AuditStatus.BLOCKED, result.message)
                raise PolicyViolationError(result)

            if not ignore_maintenance_window:
                window = self.check_maintenance_window()
                if not window.in_window:
                    self.audit.write(result.operation_type, operation_name, AuditStatus.BLOCKED, window.message)
                    raise MaintenanceWindowError(window)

            details = "Compliance check passed"
            if result.restrictions:
                details += f" with restrictions: {result.message}"
            self.audit.write(result.operation_type, operation_name, AuditStatus.STARTED, details)
            return result


def create_compliance_gate(config: Optional[Config] = None) -> ComplianceGate:
    """Create a compliance gate with default or provided configuration."""
    return ComplianceGate(config=config)
