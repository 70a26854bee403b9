"""Cross-process mutual exclusion with an exclusive-create lock file.

The lock file holds ``{"pid": ..., "createdAt": ...}``. A contender that
finds the file already present reclaims it when the owning process is
gone, or when no owner can be read and the file is older than the stale
threshold. Otherwise it sleeps for a fixed delay and retries until the
timeout runs out.
"""

from __future__ import annotations

import errno
import json
import os
import threading
import time
from pathlib import Path
from typing import NamedTuple

from loguru import logger

from pairguard.errors import LockTimeoutError

LOCK_TIMEOUT_SECONDS = 5.0
LOCK_RETRY_DELAY_SECONDS = 0.05


def pid_alive(pid: int) -> bool:
    """Check whether a process with this pid exists."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    except OSError as e:
        return e.errno != errno.ESRCH
    return True


class LockHandle:
    """A held lock. Release closes the descriptor and deletes the file."""

    def __init__(self, path: Path, fd: int):
        self.path = path
        self._fd: int | None = fd

    @property
    def released(self) -> bool:
        return self._fd is None

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.close(fd)
        finally:
            self.path.unlink(missing_ok=True)

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class FileLock:
    """Lock manager for a single lock file.

    Usage::

        with FileLock(store_path.with_suffix(".lock")).acquire():
            ...  # read-modify-write the store
    """

    def __init__(
        self,
        path: Path,
        timeout: float = LOCK_TIMEOUT_SECONDS,
        retry_delay: float = LOCK_RETRY_DELAY_SECONDS,
        stale_after: float | None = None,
    ):
        self.path = Path(path)
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.stale_after = timeout if stale_after is None else stale_after

    def acquire(self) -> LockHandle:
        """Block until the lock is held or the timeout is exceeded.

        Raises:
            LockTimeoutError: the lock stayed held by a live owner for
                longer than ``timeout`` seconds.
        """
        start = time.monotonic()
        while True:
            try:
                fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                if self._reclaim_if_stale():
                    continue
                if time.monotonic() - start > self.timeout:
                    logger.warning("Timed out waiting for lock {}", self.path)
                    raise LockTimeoutError(self.path, self.timeout) from None
                time.sleep(self.retry_delay)
                continue
            except FileNotFoundError:
                self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
                continue

            try:
                owner = {"pid": os.getpid(), "createdAt": int(time.time() * 1000)}
                os.write(fd, (json.dumps(owner) + "\n").encode("utf-8"))
            except BaseException:
                os.close(fd)
                self.path.unlink(missing_ok=True)
                raise
            return LockHandle(self.path, fd)

    def _reclaim_if_stale(self) -> bool:
        """Remove the lock file if its owner is gone. True if the caller may retry now.

        The file judged stale is renamed aside first and only deleted if it
        is still the same file. A lock that another contender re-created in
        the meantime is linked back into place.
        """
        judged = _snapshot(self.path)
        if judged is None:
            return True
        pid = _owner_pid(judged.raw)
        if pid is not None:
            if pid_alive(pid):
                return False
            reason = f"owner pid {pid} is not running"
        elif time.time() - judged.mtime_ns / 1e9 > self.stale_after:
            reason = f"no readable owner and older than {self.stale_after:.1f}s"
        else:
            return False

        aside = self.path.with_name(
            f"{self.path.name}.stale.{os.getpid()}.{threading.get_ident()}"
        )
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            return True
        except PermissionError:
            return False

        try:
            moved = _snapshot(aside)
            if moved is None:
                return True
            if moved != judged:
                try:
                    os.link(aside, self.path)
                except FileExistsError:
                    logger.warning("Lock {} changed hands while being reclaimed", self.path)
                return False
        finally:
            aside.unlink(missing_ok=True)

        logger.warning("Reclaimed stale lock {} ({})", self.path, reason)
        return True


class _Snapshot(NamedTuple):
    ino: int
    mtime_ns: int
    raw: bytes


def _snapshot(path: Path) -> _Snapshot | None:
    try:
        with open(path, "rb") as f:
            st = os.fstat(f.fileno())
            raw = f.read()
    except FileNotFoundError:
        return None
    return _Snapshot(st.st_ino, st.st_mtime_ns, raw)


def _owner_pid(raw: bytes) -> int | None:
    """Return the pid recorded in a lock file body, if one can be parsed."""
    try:
        data = json.loads(raw.decode("utf-8"))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    pid = data.get("pid")
    if isinstance(pid, int) and not isinstance(pid, bool) and pid > 0:
        return pid
    return None
