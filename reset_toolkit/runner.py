"""Operation Runner - the gate -> backup -> reset -> audit sequence.

Each reset routine hands the runner its target registry keys and files
plus a callable that performs the actual change.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from reset_toolkit.backup.manager import BackupManager
from reset_toolkit.core.config import Config, get_default_config
from reset_toolkit.core.exceptions import BackupError
from reset_toolkit.core.logging_config import log_operation
from reset_toolkit.core.models import AuditStatus, OperationResult
from reset_toolkit.policy.compliance import ComplianceGate

logger = logging.getLogger("resettk.runner")


class OperationRunner:
    """Runs reset operations behind the policy gate.

    Example:
        runner = OperationRunner(config)
        runner.run(
            "Network",
            "Reset-Network",
            action=reset_tcp_ip,
            registry_paths=["HKLM\\\\SYSTEM\\\\CurrentControlSet\\\\Services\\\\Tcpip\\\\Parameters"],
        )
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        gate: Optional[ComplianceGate] = None,
        backup_manager: Optional[BackupManager] = None,
    ) -> None:
        self.config = config or get_default_config()
        self.gate = gate or ComplianceGate(self.config)
        self.backup_manager = backup_manager or BackupManager(self.config, audit=self.gate.audit)

    def run(
        self,
        operation_type: str,
        operation_name: str,
        action: Callable[[], Any],
        registry_paths: Sequence[str] = (),
        file_paths: Sequence[str | Path] = (),
        ignore_maintenance_window: bool = False,
        backup_name: Optional[str] = None,
    ) -> OperationResult:
        """Run one gated reset operation.

        Args:
            operation_type: Policy category, e.g. "Network"
            operation_name: Name recorded in the audit log
            action: Callable performing the reset
            registry_paths: Registry keys to back up first
            file_paths: Files to back up first
            ignore_maintenance_window: Skip the maintenance window check
            backup_name: Backup name, defaults to "<operation_type>Settings"

        Returns:
            OperationResult with compliance, backup and action outcome

        Raises:
            PolicyViolationError, MaintenanceWindowError: Gate blocked the run.
            PolicyStoreError: Policy could not be re-read after the gate passed.
            BackupError: Policy requires a backup and none could be taken.
            Exception: Whatever the action raised, after auditing it.
        """
        compliance = self.gate.assert_compliance(
            operation_type,
            operation_name,
            ignore_maintenance_window=ignore_maintenance_window,
        )
        op = compliance.operation_type
        result = OperationResult(operation_type=op, operation_name=operation_name, compliance=compliance)

        policy = compliance.policy
        if policy is None:
            try:
                policy = self.gate.get_effective_policy()
            except Exception as e:
                logger.error(f"Cannot read effective policy for {operation_name}: {e}")
                self.gate.audit.write(op, operation_name, AuditStatus.FAILED, f"Policy read failed: {e}")
                raise
        settings = policy.effective_settings

        if settings.require_backup or registry_paths or file_paths:
            name = backup_name or f"{op}Settings"
            try:
                result.backup = self.backup_manager.create_backup(name, registry_paths, file_paths)
            except Exception as e:
                self.gate.audit.write(op, operation_name, AuditStatus.FAILED, f"Backup failed: {e}")
                raise

            if settings.require_backup and result.backup.succeeded == 0:
                message = f"Policy requires a backup but no item of '{name}' could be archived"
                self.gate.audit.write(op, operation_name, AuditStatus.FAILED, message)
                raise BackupError(message)

        if settings.audit_mode:
            logger.info(f"Audit mode: {operation_name} not executed")
            details = "Audit mode: action not executed"
        else:
            try:
                result.value = action()
            except Exception as e:
                logger.error(f"{operation_name} failed: {e}")
                self.gate.audit.write(op, operation_name, AuditStatus.FAILED, str(e))
                log_operation("RESET", operation_name, False, str(e))
                raise
            details = "Operation completed"

        if result.backup is not None:
            details += f"; backup at {result.backup.backup_path}"
        self.gate.audit.write(op, operation_name, AuditStatus.COMPLETED, details)
        log_operation("RESET", operation_name, True, details)

        result.ended_at = datetime.now()
        return result


def create_operation_runner(config: Optional[Config] = None) -> OperationRunner:
    """Create an operation runner with default or provided configuration."""
    return OperationRunner(config=config)
