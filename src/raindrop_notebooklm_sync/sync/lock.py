"""Run-level lock: at most one reconciliation run per state file.

Two layers are combined:

* an in-process ``threading.Lock`` per lock path, for engines sharing a
  process;
* an exclusive lock file (``O_CREAT | O_EXCL``) holding the owner pid,
  for separate processes.  A lock file whose pid is no longer alive, or
  one still without a pid after ``UNOWNED_LOCK_GRACE`` seconds, is
  treated as stale and removed.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path

from raindrop_notebooklm_sync.errors import SyncInProgressError

logger = logging.getLogger(__name__)

# An owner writes its pid right after creating the file; an empty lock
# older than this was left by a process that died in between.
UNOWNED_LOCK_GRACE = 10.0

_local_locks: dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def _local_lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _local_locks_guard:
        return _local_locks.setdefault(key, threading.Lock())


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class RunLock:
    """Context manager guarding one sync run.

    Args:
        path: Lock file path (usually the state file plus ``.lock``).
        timeout: Seconds to wait for the lock.  ``0`` fails immediately.
        poll_interval: Seconds between attempts while waiting.

    Raises:
        SyncInProgressError: If the lock is not acquired within *timeout*.
    """

    def __init__(
        self,
        path: Path,
        timeout: float = 0.0,
        poll_interval: float = 0.1,
    ) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._local = _local_lock_for(self.path)
        self._held = False

    def acquire(self) -> None:
        deadline = time.monotonic() + self.timeout
        if self.timeout > 0:
            got_local = self._local.acquire(timeout=self.timeout)
        else:
            got_local = self._local.acquire(blocking=False)
        if not got_local:
            raise SyncInProgressError(
                f"Another sync run in this process holds {self.path}"
            )
        try:
            while not self._try_create_lock_file():
                if time.monotonic() >= deadline:
                    raise SyncInProgressError(
                        f"Another sync run holds {self.path}"
                    )
                time.sleep(self.poll_interval)
        except BaseException:
            self._local.release()
            raise
        self._held = True
        logger.debug("Acquired run lock %s", self.path)

    def release(self) -> None:
        if not self._held:
            return
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            logger.warning("Run lock %s vanished before release", self.path)
        finally:
            self._held = False
            self._local.release()
        logger.debug("Released run lock %s", self.path)

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _try_create_lock_file(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(
                self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
            )
        except FileExistsError:
            if self._remove_if_stale():
                return self._try_create_lock_file()
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(str(os.getpid()))
        return True

    def _remove_if_stale(self) -> bool:
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return True
        except OSError:
            return False
        if not content.isdigit():
            try:
                age = time.time() - self.path.stat().st_mtime
            except FileNotFoundError:
                return True
            if age < UNOWNED_LOCK_GRACE:
                # Owner is still writing its pid.
                return False
            logger.warning(
                "Removing stale run lock %s (no owner pid after %.0fs)",
                self.path,
                age,
            )
        else:
            owner = int(content)
            if _pid_alive(owner):
                return False
            logger.warning(
                "Removing stale run lock %s (pid %d is gone)", self.path, owner
            )
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        return True
