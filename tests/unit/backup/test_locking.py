"""
Unit tests for per-file backup locking.
"""

import threading

import pytest

from lrm.backup.locking import LOCK_FILE_NAME, BackupLock
from lrm.core.exceptions import BackupLockError


@pytest.mark.unit
class TestBackupLock:
    """Tests for BackupLock."""

    def test_creates_directory_and_lock_file(self, tmp_path):
        backup_dir = tmp_path / "Strings.resx"
        with BackupLock(backup_dir):
            assert backup_dir.is_dir()
            assert (backup_dir / LOCK_FILE_NAME).exists()

    def test_reentrant_in_same_thread(self, tmp_path):
        with BackupLock(tmp_path / "a"):
            with BackupLock(tmp_path / "a"):
                pass

    def test_other_thread_times_out(self, tmp_path):
        errors = []
        
        def contender():
            try:
                with BackupLock(tmp_path / "a", timeout=0.1):
                    pass
            except BackupLockError as e:
                errors.append(e)
        
        with BackupLock(tmp_path / "a"):
            thread = threading.Thread(target=contender)
            thread.start()
            thread.join()
        
        assert len(errors) == 1

    def test_different_files_independent(self, tmp_path):
        acquired = []
        
        def other():
            with BackupLock(tmp_path / "b", timeout=1):
                acquired.append(True)
        
        with BackupLock(tmp_path / "a"):
            thread = threading.Thread(target=other)
            thread.start()
            thread.join()
        
        assert acquired == [True]

    def test_released_after_exit(self, tmp_path):
        with BackupLock(tmp_path / "a"):
            pass
        
        acquired = []
        
        def later():
            with BackupLock(tmp_path / "a", timeout=1):
                acquired.append(True)
        
        thread = threading.Thread(target=later)
        thread.start()
        thread.join()
        assert acquired == [True]
