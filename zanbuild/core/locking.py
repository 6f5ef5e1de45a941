"""
Cache-root locking.

The run itself is single-threaded, but two runs started against the same
cache root would race on the staging and download directories. The cache
lock makes the second run fail fast instead.

Usage:
    from zanbuild.core.locking import cache_lock

    with cache_lock(cache_root):
        provisioner.provision_all(specs)
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

from zanbuild.core.exceptions import CacheLockTimeout

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".zanbuild.lock"


@contextmanager
def cache_lock(cache_root: Path, timeout: float = 0):
    """
    Acquire the lock guarding a cache root.

    Args:
        cache_root: Cache directory (created if missing)
        timeout: Seconds to wait; 0 fails immediately if the lock is held

    Yields:
        None

    Raises:
        CacheLockTimeout: If another process holds the lock
    """
    cache_root = Path(cache_root)
    cache_root.mkdir(parents=True, exist_ok=True)
    lock_path = cache_root / LOCK_FILE_NAME
    lock = FileLock(str(lock_path), timeout=timeout)

    try:
        with lock:
            logger.debug(f"Acquired cache lock: {lock_path}")
            yield
            logger.debug(f"Released cache lock: {lock_path}")
    except LockTimeout as e:
        raise CacheLockTimeout(
            f"Cache {cache_root} is locked by another zanbuild process "
            f"({lock_path})"
        ) from e
