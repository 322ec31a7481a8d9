"""CLI command implementations.

This module provides the command handlers for all CLI commands. Each
handler returns the process exit code.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from reset_toolkit.backup.manager import BackupManager
from reset_toolkit.core.config import Config, save_config
from reset_toolkit.core.exceptions import RestoreCancelledError
from reset_toolkit.policy.audit import AuditLogger
from reset_toolkit.policy.compliance import ComplianceGate

from .formatters import JsonFormatter, TextFormatter

logger = logging.getLogger("resettk.cli")


def _get_formatter(args: argparse.Namespace) -> TextFormatter | JsonFormatter:
    """Get the appropriate formatter based on args."""
    if getattr(args, "json", False):
        return JsonFormatter()
    return TextFormatter(verbose=getattr(args, "verbose", 0) > 0)


def run_backup_command(
    args: argparse.Namespace,
    config: Config,
    manager: BackupManager | None = None,
) -> int:
    """Execute a backup subcommand."""
    manager = manager or BackupManager(config)
    formatter = _get_formatter(args)
    action = args.backup_command

    if action == "create":
        result = manager.create_backup(args.name, args.registry or [], args.file or [])
        print(formatter.format_backup_result(result))
        return 0

    if action == "list":
        print(formatter.format_backup_list(list(manager.list_backups(args.filter))))
        return 0

    if action == "restore":
        try:
            result = manager.restore_backup(args.name, force=args.force, verify=args.verify)
        except RestoreCancelledError as e:
            print(str(e))
            return 1
        print(formatter.format_restore_result(result))
        if result.verification_passed is False or not result.success:
            return 1
        return 0

    if action == "verify":
        valid = manager.verify_backup(args.name)
        if getattr(args, "json", False):
            print(json.dumps({"name": args.name, "valid": valid}))
        else:
            print(f"Backup '{args.name}': {'VALID' if valid else 'INVALID'}")
        return 0 if valid else 1

    if action == "prune":
        days = args.days if args.days is not None else config.backup.max_backup_days
        deleted = manager.prune_backups(days, name_filter=args.filter, force=args.force)
        print(f"Deleted {deleted} backup(s) older than {days} days")
        return 0

    if action == "export":
        path = manager.export_backup(args.name, Path(args.destination))
        print(f"Backup exported to {path}")
        return 0

    print("Use one of: create, list, restore, verify, prune, export", file=sys.stderr)
    return 1


def run_policy_command(
    args: argparse.Namespace,
    config: Config,
    gate: ComplianceGate | None = None,
) -> int:
    """Execute a policy subcommand."""
    gate = gate or ComplianceGate(config)
    formatter = _get_formatter(args)
    action = args.policy_command

    if action == "show":
        print(formatter.format_policy(gate.get_effective_policy()))
        return 0

    if action == "check":
        result = gate.check_compliance(
            args.operation_type,
            include_maintenance_window=not args.ignore_window,
        )
        print(formatter.format_compliance(result))
        return 0 if result.allowed else 1

    if action == "window":
        result = gate.check_maintenance_window()
        print(formatter.format_window(result))
        return 0 if result.in_window else 1

    print("Use one of: show, check, window", file=sys.stderr)
    return 1


def run_audit_command(
    args: argparse.Namespace,
    config: Config,
    audit: AuditLogger | None = None,
) -> int:
    """Execute the audit command."""
    audit = audit or AuditLogger(config)
    formatter = _get_formatter(args)

    try:
        entries = audit.read_entries(args.month)
    except ValueError:
        print(f"Invalid month '{args.month}', expected YYYY-MM", file=sys.stderr)
        return 1

    if args.operation_type:
        wanted = args.operation_type.lower()
        entries = [e for e in entries if e.operation_type.lower() == wanted]
    if args.status:
        entries = [e for e in entries if e.status.value.lower() == args.status.lower()]

    print(formatter.format_audit_entries(entries))
    return 0


def run_config_command(args: argparse.Namespace, config: Config) -> int:
    """Execute the config command."""
    if args.init:
        path = save_config(config)
        print(f"Configuration saved to {path}")
        return 0

    if args.show:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    print("Use --init to create config or --show to display current config")
    return 1
