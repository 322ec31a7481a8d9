"""Typed policy settings and effective-policy resolution.

Policy values arrive from the store as loosely typed registry data
(DWORDs, strings, multi-strings). This module parses them into typed
records and combines the computer and user scopes:

    - Computer scope takes precedence for every field.
    - User scope may only add restrictions; it never relaxes computer
      policy and never grants an approval.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from reset_toolkit.core.exceptions import PolicyValueError
from reset_toolkit.core.models import OperationType
from reset_toolkit.policy.store import PolicyScope, PolicyStore

logger = logging.getLogger("resettk.policy.settings")

DEFAULT_LOG_LEVEL = "Info"
VALID_LOG_LEVELS = ("Error", "Warning", "Info", "Verbose", "Debug")

# Registry value names
KEY_ENABLED = "Enabled"
KEY_REQUIRE_BACKUP = "RequireBackup"
KEY_AUDIT_MODE = "AuditMode"
KEY_LOG_LEVEL = "LogLevel"
KEY_MAINTENANCE_WINDOW = "MaintenanceWindow"
KEY_DISALLOWED_OPERATIONS = "DisallowedOperations"
KEY_REQUIRE_APPROVAL = "RequireApproval"

_TRUE_WORDS = ("1", "true", "yes", "on", "enabled")
_FALSE_WORDS = ("0", "false", "no", "off", "disabled", "")


@dataclass(frozen=True)
class MaintenanceWindow:
    """Hours of day (24h, local time) during which resets may run.

    Both bounds are inclusive. When ``end < start`` the window wraps
    past midnight, e.g. 22-06 covers 22:00 through 06:59.
    """

    start: int
    end: int

    @property
    def overnight(self) -> bool:
        return self.end < self.start

    def contains(self, hour: int) -> bool:
        if self.overnight:
            return hour >= self.start or hour <= self.end
        return self.start <= hour <= self.end

    def __str__(self) -> str:
        return f"{self.start:02d}-{self.end:02d}"


def parse_maintenance_window(text: str) -> MaintenanceWindow:
    """Parse a "start-end" hour window such as "22-06".

    Raises:
        PolicyValueError: If the text is not two hours 0-23 joined by '-'.
    """
    tokens = [token.strip() for token in str(text).split("-")]
    if len(tokens) != 2:
        raise PolicyValueError(f"Maintenance window must be 'start-end', got {text!r}")
    try:
        start, end = int(tokens[0]), int(tokens[1])
    except ValueError as e:
        raise PolicyValueError(f"Maintenance window hours must be integers, got {text!r}") from e
    for hour in (start, end):
        if not 0 <= hour <= 23:
            raise PolicyValueError(f"Maintenance window hour out of range 0-23: {hour}")
    return MaintenanceWindow(start=start, end=end)


def parse_operation_list(value: Any) -> list[str]:
    """Parse a disallow list into canonical operation type names.

    Accepts comma/semicolon separated text or a multi-string list.

    Raises:
        PolicyValueError: If an entry names no known operation type.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        raw = [str(v) for v in value]
    else:
        raw = str(value).replace(";", ",").split(",")

    operations: list[str] = []
    for entry in raw:
        entry = entry.strip()
        if not entry:
            continue
        try:
            canonical = OperationType.parse(entry).value
        except ValueError as e:
            raise PolicyValueError(f"Unknown operation type in policy: {entry!r}") from e
        if canonical not in operations:
            operations.append(canonical)
    return operations


def parse_bool(value: Any) -> Optional[bool]:
    """Parse a DWORD or text flag; None stays None.

    Raises:
        PolicyValueError: If the value is not recognisable as a flag.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise PolicyValueError(f"Expected a boolean policy value, got {value!r}")


def parse_log_level(value: Any) -> Optional[str]:
    """Normalise a LogLevel policy value."""
    if value is None or str(value).strip() == "":
        return None
    text = str(value).strip()
    for level in VALID_LOG_LEVELS:
        if level.lower() == text.lower():
            return level
    raise PolicyValueError(f"Unknown log level in policy: {value!r}")


@dataclass
class PolicySettings:
    """Typed policy values for one scope. None means "not set"."""

    present: bool = False
    enabled: Optional[bool] = None
    require_backup: Optional[bool] = None
    audit_mode: Optional[bool] = None
    log_level: Optional[str] = None
    maintenance_window: Optional[str] = None
    disallowed_operations: list[str] = field(default_factory=list)
    require_approval: Optional[bool] = None

    @classmethod
    def read(cls, store: PolicyStore, scope: PolicyScope) -> "PolicySettings":
        """Read one scope from the store.

        Raises:
            PolicyStoreError: If the store cannot be read.
            PolicyValueError: If a value cannot be parsed.
        """
        if not store.exists(scope):
            return cls(present=False)

        window = store.read(scope, KEY_MAINTENANCE_WINDOW)
        return cls(
            present=True,
            enabled=parse_bool(store.read(scope, KEY_ENABLED)),
            require_backup=parse_bool(store.read(scope, KEY_REQUIRE_BACKUP)),
            audit_mode=parse_bool(store.read(scope, KEY_AUDIT_MODE)),
            log_level=parse_log_level(store.read(scope, KEY_LOG_LEVEL)),
            # Kept as raw text; a malformed window must not fail the whole read
            maintenance_window=str(window).strip() if window is not None else None,
            disallowed_operations=parse_operation_list(store.read(scope, KEY_DISALLOWED_OPERATIONS)),
            require_approval=parse_bool(store.read(scope, KEY_REQUIRE_APPROVAL)),
        )

    def disallows(self, operation_type: str) -> bool:
        return OperationType.ALL.value in self.disallowed_operations or operation_type in self.disallowed_operations


@dataclass
class EffectiveSettings:
    """Settings after applying scope precedence."""

    operations_enabled: bool = True
    require_backup: bool = False
    audit_mode: bool = False
    log_level: str = DEFAULT_LOG_LEVEL
    maintenance_window_active: bool = False
    maintenance_window: Optional[str] = None
    require_approval: bool = False


@dataclass
class PolicyConfiguration:
    """Snapshot of both policy scopes and the effective result."""

    computer_policy: PolicySettings
    user_policy: PolicySettings
    effective_settings: EffectiveSettings

    def to_dict(self) -> dict[str, Any]:
        return {
            "computerPolicy": asdict(self.computer_policy),
            "userPolicy": asdict(self.user_policy),
            "effectiveSettings": asdict(self.effective_settings),
        }


def resolve_effective_settings(computer: PolicySettings, user: PolicySettings) -> EffectiveSettings:
    """Combine the two scopes. Only computer scope decides these fields."""
    window = computer.maintenance_window or None
    return EffectiveSettings(
        operations_enabled=True if computer.enabled is None else computer.enabled,
        require_backup=bool(computer.require_backup),
        audit_mode=bool(computer.audit_mode),
        log_level=computer.log_level or DEFAULT_LOG_LEVEL,
        maintenance_window_active=bool(window),
        maintenance_window=window,
        require_approval=bool(computer.require_approval),
    )


class PolicyReader:
    """Reads policy from a store. Nothing is cached between calls.

    Example:
        reader = PolicyReader(create_policy_store(config))
        policy = reader.get_effective_policy()
        if policy.effective_settings.require_backup:
            ...
    """

    def __init__(self, store: PolicyStore) -> None:
        self.store = store

    def get_effective_policy(self) -> PolicyConfiguration:
        """Read both scopes and resolve the effective settings.

        Raises:
            PolicyStoreError: If the store cannot be read.
            PolicyValueError: If a value cannot be parsed.
        """
        computer = PolicySettings.read(self.store, PolicyScope.COMPUTER)
        user = PolicySettings.read(self.store, PolicyScope.USER)
        return PolicyConfiguration(
            computer_policy=computer,
            user_policy=user,
            effective_settings=resolve_effective_settings(computer, user),
        )

    def refresh(self) -> PolicyConfiguration:
        """Re-read policy after an external change."""
        logger.debug(f"Refreshing policy from {self.store.describe()}")
        return self.get_effective_policy()
