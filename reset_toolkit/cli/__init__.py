"""CLI module for the ReSet Toolkit."""

from .commands import (
    run_audit_command,
    run_backup_command,
    run_config_command,
    run_policy_command,
)
from .formatters import (
    JsonFormatter,
    OutputFormatter,
    TextFormatter,
)

__all__ = [
    # Formatters
    "OutputFormatter",
    "TextFormatter",
    "JsonFormatter",
    # Commands
    "run_backup_command",
    "run_policy_command",
    "run_audit_command",
    "run_config_command",
]
