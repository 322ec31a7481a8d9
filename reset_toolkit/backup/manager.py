"""Backup Manager - Snapshots registry keys and files before a reset runs.

This module provides the BackupManager class for creating, listing,
verifying, restoring, exporting and pruning manifest-based backups.

Each backup lives in its own directory under the backups directory:

    <backups_dir>/NetworkSettings_20261018_142501/
        manifest.json
        registry/001_HKCU_Software_X.reg
        files/001_hosts
"""

import fnmatch
import json
import logging
import os
import re
import shutil
import zipfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, Optional, Sequence

from reset_toolkit.backup.registry import RegistryBackend, create_registry_backend, normalize_key
from reset_toolkit.core.config import Config, get_default_config
from reset_toolkit.core.exceptions import (
    BackupError,
    BackupNotFoundError,
    ManifestError,
    RestoreCancelledError,
)
from reset_toolkit.core.host import HostIdentity, get_host_identity
from reset_toolkit.core.locking import FileLock, safe_lock_name
from reset_toolkit.core.logging_config import log_operation
from reset_toolkit.core.models import (
    MANIFEST_FILENAME,
    AuditStatus,
    BackupItem,
    BackupItemKind,
    BackupManifest,
    BackupResult,
    BackupSummary,
    ItemRestoreResult,
    ItemStatus,
    OperationType,
    RestoreResult,
)
from reset_toolkit.policy.audit import AuditLogger

logger = logging.getLogger("resettk.backup.manager")

REGISTRY_SUBDIR = "registry"
FILES_SUBDIR = "files"
LOCKS_SUBDIR = ".locks"
DELETING_SUFFIX = ".deleting"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

_DIR_PATTERN = re.compile(r"^(?P<name>.+)_(?P<ts>\d{8}_\d{6})(?:_(?P<counter>\d+))?$")

ConfirmCallback = Callable[[str], bool]


def safe_backup_name(name: str) -> str:
    """Reduce a backup name to characters safe for a directory name."""
    cleaned = "".join(c for c in name if c.isalnum() or c in "-_")[:50]
    return cleaned or "backup"


def prompt_confirm(message: str) -> bool:
    """Ask the operator for a yes/no answer on the console."""
    print(message)
    try:
        answer = input("Continue? [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class _BackupDir:
    """A backup directory entry parsed from its name.

    The manifest's backup name identifies the backup. The directory
    prefix is a sanitised guess, shared by names that differ only in
    stripped characters, and only narrows lookups.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        match = _DIR_PATTERN.match(path.name)
        if match:
            self.name_guess = match.group("name")
            try:
                self.timestamp: datetime | None = datetime.strptime(match.group("ts"), TIMESTAMP_FORMAT)
            except ValueError:
                self.timestamp = None
            self.counter = int(match.group("counter") or 0)
        else:
            self.name_guess = path.name
            self.timestamp = None
            self.counter = 0
        try:
            self.mtime = path.stat().st_mtime
        except OSError:
            self.mtime = 0.0
        self.error: ManifestError | None = None
        self._manifest: BackupManifest | None = None
        self._loaded = False

    @property
    def created(self) -> datetime:
        return self.timestamp or datetime.fromtimestamp(self.mtime)

    def sort_key(self) -> tuple:
        return (self.created, self.counter, self.mtime)

    def load(self) -> BackupManifest | None:
        """Read the manifest once; None (with ``error`` set) if unreadable."""
        if not self._loaded:
            self._loaded = True
            try:
                self._manifest = BackupManager.read_manifest(self.path)
            except ManifestError as e:
                self.error = e
        return self._manifest

    @property
    def backup_name(self) -> str:
        """Name recorded in the manifest, or the directory prefix if unreadable."""
        manifest = self.load()
        return manifest.backup_name if manifest is not None else self.name_guess

    def matches(self, pattern: str) -> bool:
        return fnmatch.fnmatchcase(self.backup_name.casefold(), pattern)


class BackupManager:
    """Manager for manifest-based configuration backups.

    Backups are best-effort per item: an item that cannot be archived is
    logged and recorded in the manifest as Failed or Skipped, and the rest
    of the backup continues. Only an unwritable manifest aborts a backup.

    Example:
        manager = BackupManager(config)
        result = manager.create_backup(
            "NetworkSettings",
            registry_paths=["HKLM\\\\SYSTEM\\\\CurrentControlSet\\\\Services\\\\Tcpip\\\\Parameters"],
            file_paths=["C:/Windows/System32/drivers/etc/hosts"],
        )

        # Later
        manager.restore_backup("NetworkSettings", force=True, verify=True)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[RegistryBackend] = None,
        backups_dir: Optional[Path] = None,
        identity: Optional[HostIdentity] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize the backup manager.

        Args:
            config: Configuration object
            registry: Registry backend (reg.exe on Windows by default)
            backups_dir: Override directory for backups
            identity: Provenance recorded in manifests (detected if omitted)
            clock: Source of the current time
            audit: Audit trail for restores and failures
        """
        self.config = config or get_default_config()
        self.backups_dir = Path(backups_dir or self.config.backups_dir)
        self.registry = registry or create_registry_backend(self.config.command_timeout_seconds)
        self._identity = identity
        self._clock = clock or datetime.now
        self.audit = audit or AuditLogger(self.config, identity=identity)

        self.backups_dir.mkdir(parents=True, exist_ok=True)

    @property
    def identity(self) -> HostIdentity:
        if self._identity is None:
            self._identity = get_host_identity()
        return self._identity

    def _lock(self, name: str) -> FileLock:
        return FileLock(
            self.backups_dir / LOCKS_SUBDIR / f"{safe_lock_name(safe_backup_name(name))}.lock",
            timeout=self.config.backup.lock_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_backup(
        self,
        name: str,
        registry_paths: Sequence[str] = (),
        file_paths: Sequence[str | Path] = (),
    ) -> BackupResult:
        """Back up registry keys and files under a named snapshot.

        Args:
            name: Backup category, e.g. "NetworkSettings"
            registry_paths: Registry keys to export
            file_paths: Files or directories to copy

        Returns:
            BackupResult with the backup directory and manifest

        Raises:
            ValueError: If name is empty.
            ManifestError: If the manifest cannot be written.
        """
        if not name or not name.strip():
            raise ValueError("Backup name must not be empty")

        if not registry_paths and not file_paths:
            logger.warning(f"Backup '{name}' requested with no registry or file paths")

        with self._lock(name):
            timestamp = self._clock().replace(microsecond=0)
            backup_dir = self._allocate_directory(name, timestamp)
            logger.info(f"Creating backup '{name}' in {backup_dir}")

            items: list[BackupItem] = []
            for index, key in enumerate(registry_paths, 1):
                items.append(self._backup_registry_item(backup_dir, index, key))
            for index, path in enumerate(file_paths, 1):
                items.append(self._backup_file_item(backup_dir, index, Path(path)))

            manifest = BackupManifest(
                backup_name=name,
                timestamp=timestamp,
                items=items,
                computer_name=self.identity.computer,
                user_name=self.identity.user,
            )

            try:
                self._write_manifest(backup_dir, manifest)
            except OSError as e:
                shutil.rmtree(backup_dir, ignore_errors=True)
                log_operation("BACKUP", name, False, f"manifest write failed: {e}")
                self.audit.write(OperationType.BACKUP.value, name, AuditStatus.FAILED, f"Manifest write failed: {e}")
                raise ManifestError(f"Failed to write manifest for backup '{name}': {e}") from e

        result = BackupResult(backup_path=backup_dir, manifest=manifest)
        log_operation(
            "BACKUP",
            name,
            result.failed == 0,
            f"{result.succeeded} archived, {result.failed} failed, {result.skipped} skipped | {backup_dir}",
        )
        return result

    def _allocate_directory(self, name: str, timestamp: datetime) -> Path:
        """Create a fresh backup directory, appending a counter on collision."""
        base = f"{safe_backup_name(name)}_{timestamp.strftime(TIMESTAMP_FORMAT)}"
        counter = 0
        while True:
            dirname = base if counter == 0 else f"{base}_{counter}"
            candidate = self.backups_dir / dirname
            try:
                candidate.mkdir(parents=False, exist_ok=False)
                return candidate
            except FileExistsError:
                counter += 1

    def _backup_registry_item(self, backup_dir: Path, index: int, key: str) -> BackupItem:
        item = BackupItem(kind=BackupItemKind.REGISTRY, source_path=key)
        try:
            if not self.registry.key_exists(key):
                logger.warning(f"Registry key not found, skipping: {key}")
                item.status = ItemStatus.SKIPPED
                item.error = "Registry key not found"
                return item

            safe_key = re.sub(r"[^A-Za-z0-9_-]", "_", normalize_key(key))[:60]
            relative = Path(REGISTRY_SUBDIR) / f"{index:03d}_{safe_key}.reg"
            (backup_dir / REGISTRY_SUBDIR).mkdir(exist_ok=True)
            self.registry.export_key(key, backup_dir / relative)
            item.archived_path = relative.as_posix()
            logger.debug(f"Exported registry key {key} -> {relative}")
        except Exception as e:
            logger.error(f"Failed to back up registry key {key}: {e}")
            item.status = ItemStatus.FAILED
            item.error = str(e)
            item.archived_path = ""
        return item

    def _backup_file_item(self, backup_dir: Path, index: int, path: Path) -> BackupItem:
        item = BackupItem(kind=BackupItemKind.FILE, source_path=str(path))
        try:
            if not path.exists():
                logger.warning(f"File not found, skipping: {path}")
                item.status = ItemStatus.SKIPPED
                item.error = "File not found"
                return item

            relative = Path(FILES_SUBDIR) / f"{index:03d}_{path.name or 'root'}"
            (backup_dir / FILES_SUBDIR).mkdir(exist_ok=True)
            if path.is_dir():
                shutil.copytree(path, backup_dir / relative)
            else:
                shutil.copy2(path, backup_dir / relative)
            item.archived_path = relative.as_posix()
            logger.debug(f"Copied {path} -> {relative}")
        except Exception as e:
            logger.error(f"Failed to back up file {path}: {e}")
            item.status = ItemStatus.FAILED
            item.error = str(e)
            item.archived_path = ""
        return item

    def _write_manifest(self, backup_dir: Path, manifest: BackupManifest) -> None:
        target = backup_dir / MANIFEST_FILENAME
        temp = backup_dir / f"{MANIFEST_FILENAME}.tmp"
        with open(temp, "w", encoding="utf-8") as f:
            json.dump(manifest.to_dict(), f, indent=2)
        os.replace(temp, target)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _scan_directories(self) -> list[_BackupDir]:
        entries: list[_BackupDir] = []
        if not self.backups_dir.exists():
            return entries
        for path in self.backups_dir.iterdir():
            if not path.is_dir() or path.name.startswith("."):
                continue
            entries.append(_BackupDir(path))
        entries.sort(key=lambda e: e.sort_key(), reverse=True)
        return entries

    def _find_directories(self, name: str) -> list[_BackupDir]:
        prefix = safe_backup_name(name).casefold()
        wanted = name.casefold()
        return [
            e
            for e in self._scan_directories()
            if e.name_guess.casefold() == prefix and e.backup_name.casefold() == wanted
        ]

    @staticmethod
    def read_manifest(backup_dir: Path) -> BackupManifest:
        """Read the manifest of a backup directory.

        Raises:
            ManifestError: If the manifest is missing or malformed.
        """
        manifest_path = backup_dir / MANIFEST_FILENAME
        if not manifest_path.exists():
            raise ManifestError(f"Manifest not found: {manifest_path}")
        try:
            with open(manifest_path, encoding="utf-8") as f:
                return BackupManifest.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ManifestError(f"Manifest unreadable: {manifest_path}: {e}") from e

    def get_backup(self, name: str) -> tuple[Path, BackupManifest]:
        """Return the newest backup directory and manifest for a name.

        Raises:
            BackupNotFoundError: If no backup matches.
            ManifestError: If the newest match has no readable manifest.
        """
        matches = self._find_directories(name)
        if not matches:
            raise BackupNotFoundError(name)
        newest = matches[0]
        manifest = newest.load()
        if manifest is None:
            raise newest.error
        return newest.path, manifest

    def list_backups(self, name_filter: Optional[str] = None) -> Iterator[BackupSummary]:
        """Yield backup summaries, newest first.

        Each call rescans the backups directory. Corrupted manifests are
        reported as degraded entries rather than hidden.

        Args:
            name_filter: Optional name or shell wildcard pattern
        """
        pattern = name_filter.casefold() if name_filter else None

        for entry in self._scan_directories():
            if pattern and not entry.matches(pattern):
                continue
            manifest = entry.load()
            if manifest is None:
                logger.warning(f"Corrupted backup {entry.path.name}: {entry.error}")
                yield BackupSummary(
                    name=entry.backup_name,
                    path=entry.path,
                    timestamp=entry.created,
                    item_count=None,
                    size_bytes=_directory_size(entry.path),
                    corrupted=True,
                    error=str(entry.error),
                )
                continue

            yield BackupSummary(
                name=manifest.backup_name,
                path=entry.path,
                timestamp=manifest.timestamp,
                item_count=len(manifest.succeeded_items),
                size_bytes=_directory_size(entry.path),
                computer_name=manifest.computer_name,
            )

    # ------------------------------------------------------------------
    # Restore / verify
    # ------------------------------------------------------------------

    def restore_backup(
        self,
        name: str,
        force: bool = False,
        verify: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> RestoreResult:
        """Restore the newest backup with the given name.

        Args:
            name: Backup name
            force: Skip the confirmation prompt
            verify: Check each original path afterwards (diagnostic only)
            confirm: Confirmation callback, defaults to a console prompt

        Returns:
            RestoreResult with per-item outcomes

        Raises:
            BackupNotFoundError: If no backup matches.
            ManifestError: If the manifest is missing or unreadable.
            RestoreCancelledError: If the operator declines.
        """
        restore_type = OperationType.RESTORE.value
        with self._lock(name):
            try:
                backup_dir, manifest = self.get_backup(name)
            except BackupError as e:
                self.audit.write(restore_type, name, AuditStatus.FAILED, str(e))
                raise

            if not force:
                ask = confirm or prompt_confirm
                if not ask(format_manifest_summary(manifest, backup_dir)):
                    logger.info(f"Restore of '{name}' cancelled by operator")
                    raise RestoreCancelledError(f"Restore of '{name}' cancelled")

            logger.info(f"Restoring backup '{name}' from {backup_dir}")
            self.audit.write(restore_type, name, AuditStatus.STARTED, f"Restoring from {backup_dir}")
            result = RestoreResult(backup_path=backup_dir, manifest=manifest)

            for item in manifest.succeeded_items:
                result.items.append(self._restore_item(backup_dir, item))

            if verify:
                for item_result in result.items:
                    item_result.verified = self._source_exists(item_result.item)
                    if item_result.verified:
                        logger.info(f"Verified: {item_result.item.source_path}")
                    else:
                        logger.warning(f"Verification failed: {item_result.item.source_path}")
                result.verification_passed = all(r.verified for r in result.items)

        details = f"{result.restored_count}/{len(result.items)} items restored | {backup_dir}"
        if result.verification_passed is False:
            details += " | verification failed"
        status = AuditStatus.COMPLETED if result.success else AuditStatus.FAILED
        self.audit.write(restore_type, name, status, details)
        log_operation("RESTORE", name, result.success, details)
        return result

    def _restore_item(self, backup_dir: Path, item: BackupItem) -> ItemRestoreResult:
        archived = backup_dir / item.archived_path
        try:
            if not archived.exists():
                raise FileNotFoundError(f"Archived payload missing: {archived}")

            if item.kind == BackupItemKind.REGISTRY:
                self.registry.import_file(archived)
            else:
                target = Path(item.source_path)
                target.parent.mkdir(parents=True, exist_ok=True)
                if archived.is_dir():
                    shutil.copytree(archived, target, dirs_exist_ok=True)
                else:
                    shutil.copy2(archived, target)

            logger.info(f"Restored {item.kind.value} item: {item.source_path}")
            return ItemRestoreResult(item=item, restored=True)
        except Exception as e:
            logger.error(f"Failed to restore {item.source_path}: {e}")
            return ItemRestoreResult(item=item, restored=False, error=str(e))

    def _source_exists(self, item: BackupItem) -> bool:
        try:
            if item.kind == BackupItemKind.REGISTRY:
                return self.registry.key_exists(item.source_path)
            return Path(item.source_path).exists()
        except Exception as e:
            logger.warning(f"Could not verify {item.source_path}: {e}")
            return False

    def verify_backup(self, name: str) -> bool:
        """Check that the newest backup's manifest and payload are intact.

        Returns:
            True if the manifest is readable and every archived item exists.
        """
        try:
            backup_dir, manifest = self.get_backup(name)
        except BackupError as e:
            logger.warning(f"Backup verification failed for '{name}': {e}")
            return False

        valid = True
        for item in manifest.succeeded_items:
            if not item.archived_path or not (backup_dir / item.archived_path).exists():
                logger.warning(f"Archived item missing: {item.archived_path} ({item.source_path})")
                valid = False

        logger.info(f"Backup '{name}' verification {'passed' if valid else 'failed'}")
        return valid

    # ------------------------------------------------------------------
    # Export / prune
    # ------------------------------------------------------------------

    def export_backup(self, name: str, destination: Path) -> Path:
        """Write the newest backup with the given name to a zip archive.

        Args:
            name: Backup name
            destination: Target .zip file, or a directory to place it in

        Returns:
            Path of the written archive
        """
        try:
            backup_dir, _ = self.get_backup(name)
        except BackupError as e:
            self.audit.write(OperationType.BACKUP.value, name, AuditStatus.FAILED, f"Export failed: {e}")
            raise

        destination = Path(destination)
        if destination.suffix.lower() != ".zip":
            destination.mkdir(parents=True, exist_ok=True)
            destination = destination / f"{backup_dir.name}.zip"
        else:
            destination.parent.mkdir(parents=True, exist_ok=True)

        compression = zipfile.ZIP_DEFLATED if self.config.backup.compress_exports else zipfile.ZIP_STORED
        with zipfile.ZipFile(destination, "w", compression=compression) as archive:
            for path in sorted(backup_dir.rglob("*")):
                if path.is_file():
                    archive.write(path, Path(backup_dir.name) / path.relative_to(backup_dir))

        log_operation("EXPORT", name, True, str(destination))
        return destination

    def prune_backups(
        self,
        retention_days: int,
        name_filter: Optional[str] = None,
        force: bool = False,
        confirm: Optional[ConfirmCallback] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete backups older than the retention period.

        A backup is deleted only when it is strictly older than
        ``retention_days``; one aged exactly the retention period is kept.

        Args:
            retention_days: Positive number of days to keep
            name_filter: Optional name or shell wildcard pattern
            force: Skip the confirmation prompt
            confirm: Confirmation callback, defaults to a console prompt
            now: Reference time (defaults to the manager clock)

        Returns:
            Number of backups deleted

        Raises:
            ValueError: If retention_days is not a positive integer.
        """
        if isinstance(retention_days, bool) or not isinstance(retention_days, int):
            raise ValueError(f"retention_days must be an integer, got {retention_days!r}")
        if retention_days <= 0:
            raise ValueError(f"retention_days must be positive, got {retention_days}")

        self._purge_leftovers()

        reference = (now or self._clock()).replace(microsecond=0)
        cutoff = reference - timedelta(days=retention_days)
        pattern = name_filter.casefold() if name_filter else None

        candidates: list[_BackupDir] = []
        for entry in self._scan_directories():
            if pattern and not entry.matches(pattern):
                continue
            modified = datetime.fromtimestamp(round(entry.mtime))
            if modified < cutoff:
                candidates.append(entry)

        if not candidates:
            logger.info(f"No backups older than {retention_days} days")
            return 0

        if not force:
            lines = [f"The following {len(candidates)} backup(s) will be deleted:"]
            lines.extend(f"  {c.path.name}" for c in candidates)
            ask = confirm or prompt_confirm
            if not ask("\n".join(lines)):
                logger.info("Backup pruning cancelled by operator")
                return 0

        deleted = 0
        for entry in candidates:
            if self._delete_backup_dir(entry):
                deleted += 1

        if deleted:
            self.audit.write(
                OperationType.BACKUP.value,
                f"Prune {name_filter or '*'}",
                AuditStatus.COMPLETED,
                f"{deleted}/{len(candidates)} backup(s) older than {retention_days} days deleted",
            )
        log_operation("PRUNE", name_filter or "*", True, f"{deleted}/{len(candidates)} deleted")
        return deleted

    def _delete_backup_dir(self, entry: _BackupDir) -> bool:
        """Remove a backup so it is never observed half-deleted.

        The directory is renamed out of the listing first, then removed.
        """
        staging = entry.path.with_name(f".{entry.path.name}{DELETING_SUFFIX}")
        try:
            with self._lock(entry.backup_name):
                entry.path.rename(staging)
        except Exception as e:
            logger.error(f"Failed to delete backup {entry.path.name}: {e}")
            return False

        try:
            shutil.rmtree(staging)
        except OSError as e:
            logger.error(f"Backup {entry.path.name} unlisted but payload removal failed: {e}")
            return False

        logger.info(f"Deleted backup {entry.path.name}")
        return True

    def _purge_leftovers(self) -> None:
        for path in self.backups_dir.glob(f".*{DELETING_SUFFIX}"):
            try:
                shutil.rmtree(path)
                logger.info(f"Removed leftover {path.name}")
            except OSError as e:
                logger.warning(f"Could not remove leftover {path.name}: {e}")


def format_manifest_summary(manifest: BackupManifest, backup_dir: Path) -> str:
    """Describe a manifest for a restore confirmation prompt."""
    lines = [
        f"Backup: {manifest.backup_name}",
        f"  Created: {manifest.timestamp.isoformat(sep=' ')}",
        f"  Computer: {manifest.computer_name}  User: {manifest.user_name}",
        f"  Location: {backup_dir}",
        f"  Items to restore: {len(manifest.succeeded_items)}",
    ]
    for item in manifest.succeeded_items:
        lines.append(f"    [{item.kind.value}] {item.source_path}")
    return "\n".join(lines)


def _directory_size(path: Path) -> int:
    total = 0
    for child in path.rglob("*"):
        try:
            if child.is_file():
                total += child.stat().st_size
        except OSError:
            continue
    return total


def create_backup_manager(
    config: Optional[Config] = None,
    registry: Optional[RegistryBackend] = None,
) -> BackupManager:
    """Create a backup manager with default or provided configuration.

    Args:
        config: Optional configuration object
        registry: Optional registry backend

    Returns:
        BackupManager instance
    """
    return BackupManager(config=config, registry=registry)
