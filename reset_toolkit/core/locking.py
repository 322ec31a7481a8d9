"""Cross-process file locks.

Backups for one name, and gate checks, may be triggered by more than one
process on the same host. A lock is a file created with O_EXCL; its
existence is the lock. Its content is a token naming the holder,
and only the holder of that token removes it.
"""

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Optional

from reset_toolkit.core.exceptions import LockTimeoutError

logger = logging.getLogger("resettk.core.locking")

DEFAULT_TIMEOUT = 10.0
DEFAULT_STALE_AFTER = 600.0  # seconds
POLL_INTERVAL = 0.1


def safe_lock_name(name: str) -> str:
    """Reduce a name to characters that are safe in a file name."""
    cleaned = re.sub(r"[^A-Za-z0-9_.-]", "_", name).strip("._")
    return cleaned[:80] or "lock"


class FileLock:
    """Exclusive lock backed by a lock file.

    Example:
        with FileLock(locks_dir / "NetworkSettings.lock"):
            ...  # create or prune the backup
    """

    def __init__(
        self,
        path: Path,
        timeout: float = DEFAULT_TIMEOUT,
        stale_after: float = DEFAULT_STALE_AFTER,
    ) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.stale_after = stale_after
        self._held = False
        self._token = ""

    @property
    def is_held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Acquire the lock, waiting up to ``timeout`` seconds.

        Raises:
            LockTimeoutError: If the lock is still held by someone else.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL

        while True:
            try:
                fd = os.open(self.path, flags, 0o644)
            except FileExistsError:
                if self._break_if_stale():
                    continue
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(f"Timed out waiting for lock: {self.path}")
                time.sleep(POLL_INTERVAL)
                continue

            token = f"{os.getpid()}:{uuid.uuid4().hex}"
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(token)
            self._token = token
            self._held = True
            logger.debug(f"Acquired lock {self.path}")
            return

    def release(self) -> None:
        """Release the lock if held and still owned by this instance."""
        if not self._held:
            return
        self._held = False
        try:
            owner = self._read_owner()
        except OSError as e:
            logger.warning(f"Cannot read lock {self.path}, leaving it in place: {e}")
            return
        if owner is None:
            logger.warning(f"Lock file already removed: {self.path}")
            return
        if owner != self._token:
            logger.warning(f"Lock {self.path} was taken over by {owner!r}, leaving it in place")
            return
        try:
            self.path.unlink()
            logger.debug(f"Released lock {self.path}")
        except FileNotFoundError:
            logger.warning(f"Lock file already removed: {self.path}")

    def _read_owner(self, path: Optional[Path] = None) -> Optional[str]:
        try:
            return (path or self.path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _break_if_stale(self) -> bool:
        try:
            age = time.time() - self.path.stat().st_mtime
            observed = self._read_owner()
        except FileNotFoundError:
            return True
        if age < self.stale_after:
            return False

        # Move the lock aside, then check it is still the file judged stale
        grave = self.path.with_name(f".{self.path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(self.path, grave)
        except FileNotFoundError:
            return True

        taken = self._read_owner(grave)
        if taken != observed:
            logger.warning(f"Lock {self.path} changed hands while breaking it, restoring it")
            try:
                os.link(grave, self.path)
            except OSError as e:
                logger.warning(f"Could not restore lock {self.path}: {e}")
        else:
            logger.warning(f"Removed stale lock {self.path} held by {observed!r} ({age:.0f}s old)")
        grave.unlink(missing_ok=True)
        return True

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.release()
        return None
