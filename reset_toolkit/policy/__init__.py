"""Policy module - Group Policy compliance gate and audit logging."""

from .audit import AuditLogger, EventLogSink, create_audit_logger
from .compliance import ComplianceGate, create_compliance_gate
from .settings import (
    EffectiveSettings,
    MaintenanceWindow,
    PolicyConfiguration,
    PolicyReader,
    PolicySettings,
    parse_maintenance_window,
    parse_operation_list,
)
from .store import (
    JsonPolicyStore,
    MemoryPolicyStore,
    PolicyScope,
    PolicyStore,
    RegistryPolicyStore,
    create_policy_store,
)

__all__ = [
    # Stores
    "PolicyScope",
    "PolicyStore",
    "RegistryPolicyStore",
    "JsonPolicyStore",
    "MemoryPolicyStore",
    "create_policy_store",
    # Settings
    "PolicySettings",
    "EffectiveSettings",
    "PolicyConfiguration",
    "PolicyReader",
    "MaintenanceWindow",
    "parse_maintenance_window",
    "parse_operation_list",
    # Gate
    "ComplianceGate",
    "create_compliance_gate",
    # Audit
    "AuditLogger",
    "EventLogSink",
    "create_audit_logger",
]
