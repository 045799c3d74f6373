"""Per-environment promotion lease backed by an exclusive file lock.

Two operators promoting into the same environment from one host (a shared
bastion or CI runner) would otherwise interleave tag writes and launch
template versions. Holding the lease serializes them. Hosts do not see each
other's locks.

The lock file records the holder's PID and operation so a blocked operator
can see who is in the way.

Public API:
    acquire_file_lock: Context manager for an exclusive lock on a file
    environment_lease: Context manager for the lease of one environment
    LockTimeoutError: Raised when a lock cannot be acquired within timeout

Example:
    >>> with environment_lease(Path("~/.amipromote/locks").expanduser(), "staging"):
    ...     controller.execute_rollback(...)
"""

import logging
import os
import platform
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from amipromote.errors import LeaseUnavailable

_system = platform.system()
if TYPE_CHECKING or _system == "Windows":
    import msvcrt  # type: ignore[import-not-found]
if TYPE_CHECKING or _system != "Windows":
    import fcntl  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

__all__ = ["LockTimeoutError", "acquire_file_lock", "environment_lease"]

POLL_INITIAL = 0.1
POLL_MAX = 2.0


class LockTimeoutError(Exception):
    """Raised when file lock cannot be acquired within timeout period."""


@contextmanager
def acquire_file_lock(
    file_path: Path,
    timeout: float = 5.0,
    operation: str = "file operation",
) -> Generator[None, None, None]:
    """Hold an exclusive lock on file_path for the duration of the block.

    Polls with a doubling interval (0.1s up to 2s) until timeout.

    Raises:
        PermissionError: If the lock file cannot be opened
        LockTimeoutError: If another process keeps the lock past timeout
    """
    with open(file_path, "a+") as handle:
        deadline = time.monotonic() + timeout
        interval = POLL_INITIAL

        while not _try_lock(handle):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(
                    f"Could not lock {file_path} for {operation} within {timeout}s "
                    f"(held by {_read_holder(file_path) or 'another process'})"
                )
            time.sleep(min(interval, remaining))
            interval = min(interval * 2, POLL_MAX)

        try:
            _write_holder(handle, operation)
            yield
        finally:
            _unlock(handle)


@contextmanager
def environment_lease(
    lock_dir: Path, environment: str, timeout: float = 10.0
) -> Generator[None, None, None]:
    """Hold the promotion lease of an environment.

    Raises:
        LeaseUnavailable: If another promotion holds the lease past timeout
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    lock_path = lock_dir / f"{environment}.lock"

    try:
        with acquire_file_lock(lock_path, timeout=timeout, operation=f"{environment} promotion"):
            logger.debug(f"Acquired promotion lease {lock_path}")
            yield
    except LockTimeoutError as e:
        raise LeaseUnavailable(
            f"Another deploy or rollback of {environment} is in progress ({e})"
        ) from e


def _try_lock(handle: TextIO) -> bool:
    try:
        if _system == "Windows":
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    except PermissionError:
        # msvcrt reports contention as EACCES
        if _system == "Windows":
            return False
        raise
    return True


def _unlock(handle: TextIO) -> None:
    try:
        if _system == "Windows":
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        logger.debug(f"Error releasing lock: {e}")


def _write_holder(handle: TextIO, operation: str) -> None:
    handle.seek(0)
    handle.truncate()
    handle.write(f"pid {os.getpid()}: {operation}\n")
    handle.flush()


def _read_holder(file_path: Path) -> str | None:
    try:
        return file_path.read_text().strip() or None
    except OSError:
        return None
