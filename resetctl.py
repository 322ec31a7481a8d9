#!/usr/bin/env python3
"""ReSet Toolkit - policy-gated settings reset with backup and restore.

Entry point for the command-line interface.
"""

import argparse
import logging
import sys
from pathlib import Path

from reset_toolkit.cli.commands import (
    run_audit_command,
    run_backup_command,
    run_config_command,
    run_policy_command,
)
from reset_toolkit.core.config import Config, load_config
from reset_toolkit.core.exceptions import ReSetError
from reset_toolkit.core.logging_config import (
    get_logger,
    level_from_policy,
    set_file_log_level,
    setup_logging,
)
from reset_toolkit.policy.compliance import ComplianceGate


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="resetctl",
        description="Policy-gated Windows settings reset: backups, restore and compliance",
        epilog="For more information, see the documentation.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for debug)",
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress console logging",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Backup commands
    backup_parser = subparsers.add_parser("backup", help="Create, list, restore and prune backups")
    backup_sub = backup_parser.add_subparsers(dest="backup_command")

    create_parser = backup_sub.add_parser("create", help="Back up registry keys and files")
    create_parser.add_argument("name", help="Backup name, e.g. NetworkSettings")
    create_parser.add_argument(
        "--registry", "-r",
        action="append",
        help="Registry key to back up (can be repeated)",
    )
    create_parser.add_argument(
        "--file", "-f",
        action="append",
        help="File or directory to back up (can be repeated)",
    )

    list_parser = backup_sub.add_parser("list", help="List backups, newest first")
    list_parser.add_argument("--filter", help="Name or wildcard pattern")

    restore_parser = backup_sub.add_parser("restore", help="Restore the newest backup with a name")
    restore_parser.add_argument("name", help="Backup name")
    restore_parser.add_argument("--force", action="store_true", help="Do not ask for confirmation")
    restore_parser.add_argument("--verify", action="store_true", help="Verify restored paths afterwards")

    verify_parser = backup_sub.add_parser("verify", help="Check a backup's manifest and payload")
    verify_parser.add_argument("name", help="Backup name")

    prune_parser = backup_sub.add_parser("prune", help="Delete backups older than the retention period")
    prune_parser.add_argument("--days", type=int, help="Retention in days (default: max_backup_days)")
    prune_parser.add_argument("--filter", help="Name or wildcard pattern")
    prune_parser.add_argument("--force", action="store_true", help="Do not ask for confirmation")

    export_parser = backup_sub.add_parser("export", help="Export a backup to a zip archive")
    export_parser.add_argument("name", help="Backup name")
    export_parser.add_argument("destination", help="Target .zip file or directory")

    # Policy commands
    policy_parser = subparsers.add_parser("policy", help="Inspect Group Policy compliance")
    policy_sub = policy_parser.add_subparsers(dest="policy_command")
    policy_sub.add_parser("show", help="Show effective policy")
    check_parser = policy_sub.add_parser("check", help="Check compliance for an operation type")
    check_parser.add_argument("operation_type", help="Operation type, e.g. Network")
    check_parser.add_argument(
        "--ignore-window",
        action="store_true",
        help="Do not evaluate the maintenance window",
    )
    policy_sub.add_parser("window", help="Check the maintenance window")

    # Audit command
    audit_parser = subparsers.add_parser("audit", help="Show audit log entries")
    audit_parser.add_argument("--month", help="Month to show as YYYY-MM (default: current)")
    audit_parser.add_argument("--type", dest="operation_type", help="Filter by operation type")
    audit_parser.add_argument(
        "--status",
        choices=["started", "completed", "failed", "blocked"],
        help="Filter by status",
    )

    # Config command
    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument(
        "--init",
        action="store_true",
        help="Create default configuration file",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )

    return parser


def get_log_level(verbose: int) -> int:
    """Get logging level from verbosity count."""
    if verbose >= 2:
        return logging.DEBUG
    elif verbose >= 1:
        return logging.INFO
    return logging.WARNING


def apply_policy_log_level(config: Config) -> None:
    """Raise or lower file logging to the level deployed by policy."""
    try:
        level_name = ComplianceGate(config).get_effective_policy().effective_settings.log_level
    except ReSetError as e:
        get_logger("main").warning(f"Could not read policy log level: {e}")
        return
    set_file_log_level(level_from_policy(level_name))


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else load_config()
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    config.ensure_directories()

    setup_logging(
        config.logs_dir,
        log_level=get_log_level(args.verbose),
        console_output=not args.quiet,
    )
    if args.verbose == 0 and args.command in ("backup", "policy"):
        apply_policy_log_level(config)

    try:
        if args.command == "backup":
            return run_backup_command(args, config)
        elif args.command == "policy":
            return run_policy_command(args, config)
        elif args.command == "audit":
            return run_audit_command(args, config)
        elif args.command == "config":
            return run_config_command(args, config)
        elif args.command is None:
            parser.print_help()
            return 0
    except ReSetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Unknown command '{args.command}'", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
