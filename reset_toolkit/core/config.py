"""Configuration management for the ReSet Toolkit.

This module handles loading, saving, and validating configuration
from JSON files and environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Default paths
if os.name == "nt":
    _BASE_DIR = Path(os.environ.get("PROGRAMDATA", "C:/ProgramData")) / "ReSetToolkit"
else:
    _BASE_DIR = Path("~/.resettoolkit")

DEFAULT_CONFIG_DIR = Path(os.environ.get("RESET_TOOLKIT_HOME", str(_BASE_DIR)))
DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_BACKUPS_DIR = "backups"
DEFAULT_LOGS_DIR = "logs"
DEFAULT_APPROVALS_DIR = "approvals"
DEFAULT_POLICY_FILE = "policy.json"

MIN_BACKUP_DAYS = 1
MAX_BACKUP_DAYS = 365


@dataclass
class BackupConfig:
    """Configuration for backup behavior."""

    max_backup_days: int = 30  # Retention used when pruning without an explicit value
    compress_exports: bool = True
    lock_timeout_seconds: float = 10.0


@dataclass
class PolicyConfig:
    """Configuration for the policy store."""

    use_registry: bool = True  # Only honoured on Windows
    policy_file: str = DEFAULT_POLICY_FILE


@dataclass
class AuditConfig:
    """Configuration for audit logging."""

    event_log_enabled: bool = True
    event_source: str = "ReSetToolkit"
    event_log_timeout_seconds: float = 5.0


@dataclass
class Config:
    """Main configuration container for the ReSet Toolkit.

    Attributes:
        config_dir: Base directory for all toolkit data
        backups_dir: Directory holding backup snapshots
        logs_dir: Directory for log files (audit logs live under logs_dir/audit)
        approvals_dir: Directory scanned for approval marker files
        backup: Backup configuration
        policy: Policy store configuration
        audit: Audit logging configuration
        command_timeout_seconds: Timeout for reg.exe/PowerShell invocations
    """

    config_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR.expanduser())
    backups_dir: Path = field(default_factory=lambda: Path(DEFAULT_BACKUPS_DIR))
    logs_dir: Path = field(default_factory=lambda: Path(DEFAULT_LOGS_DIR))
    approvals_dir: Path = field(default_factory=lambda: Path(DEFAULT_APPROVALS_DIR))

    backup: BackupConfig = field(default_factory=BackupConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)

    command_timeout_seconds: int = 60

    def __post_init__(self) -> None:
        """Resolve relative paths to absolute paths."""
        if not self.backups_dir.is_absolute():
            self.backups_dir = self.config_dir / self.backups_dir
        if not self.logs_dir.is_absolute():
            self.logs_dir = self.config_dir / self.logs_dir
        if not self.approvals_dir.is_absolute():
            self.approvals_dir = self.config_dir / self.approvals_dir

    @property
    def audit_dir(self) -> Path:
        return self.logs_dir / "audit"

    @property
    def locks_dir(self) -> Path:
        return self.config_dir / "locks"

    @property
    def policy_file(self) -> Path:
        path = Path(self.policy.policy_file)
        if path.is_absolute():
            return path
        return self.config_dir / path

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        for directory in [
            self.config_dir,
            self.backups_dir,
            self.logs_dir,
            self.audit_dir,
            self.approvals_dir,
        ]:
            directory.mkdir(parents=True, exist_ok=True)

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If a setting is outside its allowed range.
        """
        days = self.backup.max_backup_days
        if isinstance(days, bool) or not isinstance(days, int):
            raise ValueError(f"max_backup_days must be an integer, got {days!r}")
        if not MIN_BACKUP_DAYS <= days <= MAX_BACKUP_DAYS:
            raise ValueError(
                f"max_backup_days must be between {MIN_BACKUP_DAYS} and {MAX_BACKUP_DAYS}, got {days}"
            )
        if self.command_timeout_seconds <= 0:
            raise ValueError("command_timeout_seconds must be positive")
        if self.audit.event_log_timeout_seconds <= 0:
            raise ValueError("event_log_timeout_seconds must be positive")
        if self.backup.lock_timeout_seconds < 0:
            raise ValueError("lock_timeout_seconds must not be negative")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary for JSON serialization."""
        return {
            "config_dir": str(self.config_dir),
            "backups_dir": str(self.backups_dir),
            "logs_dir": str(self.logs_dir),
            "approvals_dir": str(self.approvals_dir),
            "backup": {
                "max_backup_days": self.backup.max_backup_days,
                "compress_exports": self.backup.compress_exports,
                "lock_timeout_seconds": self.backup.lock_timeout_seconds,
            },
            "policy": {
                "use_registry": self.policy.use_registry,
                "policy_file": self.policy.policy_file,
            },
            "audit": {
                "event_log_enabled": self.audit.event_log_enabled,
                "event_source": self.audit.event_source,
                "event_log_timeout_seconds": self.audit.event_log_timeout_seconds,
            },
            "command_timeout_seconds": self.command_timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        config_dir = Path(data["config_dir"]) if "config_dir" in data else DEFAULT_CONFIG_DIR.expanduser()

        config = cls(
            config_dir=config_dir,
            backups_dir=Path(data.get("backups_dir", DEFAULT_BACKUPS_DIR)),
            logs_dir=Path(data.get("logs_dir", DEFAULT_LOGS_DIR)),
            approvals_dir=Path(data.get("approvals_dir", DEFAULT_APPROVALS_DIR)),
        )

        if "backup" in data:
            backup_data = data["backup"]
            config.backup = BackupConfig(
                max_backup_days=backup_data.get("max_backup_days", 30),
                compress_exports=backup_data.get("compress_exports", True),
                lock_timeout_seconds=backup_data.get("lock_timeout_seconds", 10.0),
            )

        if "policy" in data:
            policy_data = data["policy"]
            config.policy = PolicyConfig(
                use_registry=policy_data.get("use_registry", True),
                policy_file=policy_data.get("policy_file", DEFAULT_POLICY_FILE),
            )

        if "audit" in data:
            audit_data = data["audit"]
            config.audit = AuditConfig(
                event_log_enabled=audit_data.get("event_log_enabled", True),
                event_source=audit_data.get("event_source", "ReSetToolkit"),
                event_log_timeout_seconds=audit_data.get("event_log_timeout_seconds", 5.0),
            )

        config.command_timeout_seconds = data.get("command_timeout_seconds", 60)

        return config


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        Config object with loaded settings.

    Raises:
        json.JSONDecodeError: If config file contains invalid JSON.
        ValueError: If a setting is out of range.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_DIR.expanduser() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        # Return default config if no config file exists
        return Config()

    with open(config_path, encoding="utf-8") as f:
        data = json.load(f)

    config = Config.from_dict(data)
    config.validate()
    return config


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Save configuration to file.

    Args:
        config: Config object to save.
        config_path: Path to config file. If None, uses default location.

    Returns:
        Path the configuration was written to.
    """
    if config_path is None:
        config_path = config.config_dir / DEFAULT_CONFIG_FILE

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)

    return config_path


def get_default_config() -> Config:
    """Get the default configuration.

    Returns:
        A new Config object with default settings.
    """
    return Config()
