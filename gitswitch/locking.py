"""Exclusive advisory locks for files shared with other processes."""

import fcntl
import logging
import os
import stat
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .config import DEFAULT_LOCK_TIMEOUT
from .exceptions import LockTimeoutError, StoreError

logger = logging.getLogger(__name__)


def lock_path_for(path: Path) -> Path:
    """Get the lock file that guards ``path``."""
    return path.with_name(path.name + ".lock")


@contextmanager
def file_lock(path: Path, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
    """Hold an exclusive lock on ``path`` for the duration of the block.

    The lock lives on a ``<path>.lock`` sibling so that ``path`` itself can be
    replaced atomically while the lock is held.

    Raises:
        LockTimeoutError: If the lock is still held elsewhere after ``timeout``
        StoreError: If the lock file cannot be opened
    """
    lock_file = lock_path_for(path)
    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(lock_file, "a")
    except OSError as e:
        raise StoreError(f"Failed to open lock file {lock_file}: {e}") from e

    try:
        start_time = time.monotonic()
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start_time >= timeout:
                    raise LockTimeoutError(
                        f"Failed to acquire lock on {path} within {timeout} seconds"
                    )
                time.sleep(0.1)

        logger.debug(f"Acquired lock {lock_file}")
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug(f"Released lock {lock_file}")
    finally:
        handle.close()


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """Replace ``path`` with ``content`` in one step.

    Readers see either the old file or the new one, never a partial write.
    A symlinked ``path`` is followed so the link itself survives. An existing
    file keeps its permissions; ``mode`` only applies to a new file. Bytes
    that are not valid UTF-8 round-trip through ``surrogateescape``.
    """
    target = Path(path).resolve()
    tmp_path = target.with_name(target.name + ".tmp")
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        existing_mode = stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        existing_mode = None
    try:
        tmp_path.write_text(content, encoding="utf-8", errors="surrogateescape")
        if existing_mode is not None:
            tmp_path.chmod(existing_mode)
        elif mode is not None:
            tmp_path.chmod(mode)
        os.replace(tmp_path, target)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
