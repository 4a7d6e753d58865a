"""
Per-file-name serialization of backup mutations.

Every mutation of one file's backup directory (create, delete, rotate,
restore) runs under a ``BackupLock`` for that directory. The lock combines
a re-entrant thread lock, for threads in this process, with an advisory
``filelock`` lock file, for other processes sharing the directory. Both
are re-entrant, so a restore can take a pre-restore backup while holding
the lock.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Tuple, Union

from filelock import FileLock, Timeout

from ..core.exceptions import BackupLockError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".manifest.lock"
DEFAULT_LOCK_TIMEOUT = 10.0

_registry: Dict[str, Tuple[threading.RLock, FileLock]] = {}
_registry_lock = threading.Lock()


def _locks_for(backup_dir: Path) -> Tuple[threading.RLock, FileLock]:
    key = str(backup_dir.resolve())
    with _registry_lock:
        locks = _registry.get(key)
        if locks is None:
            locks = (threading.RLock(), FileLock(str(backup_dir / LOCK_FILE_NAME)))
            _registry[key] = locks
        return locks


class BackupLock:
    """
    Context manager holding the lock for one file's backup directory.
    
    Example:
        >>> with BackupLock(backup_dir):
        ...     manifest = BackupManifest.load(...)
    """

    def __init__(self, backup_dir: Union[str, Path], timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.backup_dir = Path(backup_dir)
        self.timeout = timeout
        self._thread_lock = None
        self._file_lock = None

    def __enter__(self) -> "BackupLock":
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        thread_lock, file_lock = _locks_for(self.backup_dir)
        
        if not thread_lock.acquire(timeout=self.timeout):
            raise BackupLockError(f"Timed out waiting for backup lock on {self.backup_dir}")
        try:
            file_lock.acquire(timeout=self.timeout)
        except Timeout as e:
            thread_lock.release()
            raise BackupLockError(f"Timed out waiting for backup lock file {file_lock.lock_file}") from e
        
        self._thread_lock = thread_lock
        self._file_lock = file_lock
        return self

    def __exit__(self, *args) -> None:
        try:
            self._file_lock.release()
        finally:
            self._thread_lock.release()
            self._thread_lock = None
            self._file_lock = None
