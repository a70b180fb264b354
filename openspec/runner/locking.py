"""
Lock management for openspec.

Uses flock for per-change locking. validate/apply/archive on the same change
id are serialised; a second invocation fails immediately with ChangeLocked
instead of waiting.
"""

import atexit
import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path

from openspec.lib.constants import LOCKS_DIR
from openspec.lib.errors import ChangeLocked

logger = logging.getLogger(__name__)


def lock_path(root: Path, change_id: str) -> Path:
    # Outside the change directory so the lock never moves into the archive
    return root / LOCKS_DIR / "changes" / f"{change_id}.lock"


def is_locked(root: Path, change_id: str) -> bool:
    """Check whether another process currently holds a change's lock."""
    path = lock_path(root, change_id)
    if not path.exists():
        return False

    with open(path, 'r') as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


@contextmanager
def change_lock(root: Path, change_id: str):
    """
    Acquire the exclusive lock for a change, yield, release on exit.

    Lock files are never deleted: deleting creates a race where two
    processes hold "exclusive" locks on different inodes with the same path.

    Raises:
        ChangeLocked: if another process holds the lock
    """
    path = lock_path(root, change_id)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = open(path, 'a+')
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        fd.close()
        raise ChangeLocked(change_id) from None

    def cleanup():
        if fd.closed:
            return
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()

    atexit.register(cleanup)
    try:
        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        logger.debug(f"Acquired lock {path}")
        yield
    finally:
        atexit.unregister(cleanup)
        cleanup()
        logger.debug(f"Released lock {path}")
