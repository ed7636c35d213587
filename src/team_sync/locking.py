"""Inter-process locks guarding read-check-write cycles on store files."""

import contextlib
import os
import sys
import time
from collections.abc import Generator
from pathlib import Path

try:
    import fcntl  # Unix file locking
except ImportError:
    fcntl = None  # type: ignore[assignment]

try:
    import msvcrt  # Windows file locking
except ImportError:
    msvcrt = None  # type: ignore[assignment]


class LockTimeout(Exception):  # noqa: N818
    """Raised when a store lock cannot be acquired in time."""

    pass


def lock_path_for(path: Path) -> Path:
    """Return the companion lock file for a store file.

    The lock lives beside the data file rather than on it: data files are
    replaced by rename, which would silently drop a lock held on the old inode.
    """
    return path.with_name(path.name + ".lock")


@contextlib.contextmanager
def file_lock(path: Path, timeout: float = 5.0) -> Generator[None, None, None]:
    """Hold an exclusive OS-level lock for ``path`` while the block runs.

    Uses flock on Unix and msvcrt.locking on Windows, polling with capped
    exponential backoff until ``timeout`` seconds have elapsed.

    Args:
        path: Store file to protect (the lock file is derived from it)
        timeout: Maximum seconds to wait for the lock

    Raises:
        LockTimeout: If the lock cannot be acquired within timeout
        OSError: If the lock file cannot be created

    Example:
        >>> with file_lock(doc_path):
        ...     history = load(doc_path)
        ...     save(doc_path, history + [revision])
    """
    lock_file = lock_path_for(path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    handle = open(lock_file, "a+", encoding="utf-8")
    try:
        fd = handle.fileno()
        _acquire(fd, timeout)
        try:
            yield
        finally:
            _release(fd)
    finally:
        handle.close()


def _try_lock(fd: int) -> bool:
    if sys.platform == "win32":
        try:
            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
            return True
        except OSError:
            return False
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return True
    except BlockingIOError:
        return False


def _acquire(fd: int, timeout: float) -> None:
    start_time = time.monotonic()
    while not _try_lock(fd):
        elapsed = time.monotonic() - start_time
        if elapsed >= timeout:
            raise LockTimeout(f"Failed to acquire store lock after {timeout:.1f} seconds")
        # Exponential backoff, at most 100ms between attempts
        time.sleep(min(0.01 * (2 ** min(int(elapsed * 10), 10)), 0.1))


def _release(fd: int) -> None:
    try:
        if sys.platform == "win32":
            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        else:
            fcntl.flock(fd, fcntl.LOCK_UN)
    except OSError:
        # Closing the handle releases the lock anyway
        pass
