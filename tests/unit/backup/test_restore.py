"""
Unit tests for RestoreEngine.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from lrm.backup.restore import PRE_RESTORE_OPERATION, RestoreEngine
from lrm.core.exceptions import BackupNotFoundError, IntegrityMismatchError
from lrm.backup.store import SnapshotStore
from lrm.resources import ResxResourceFormat

FILE_NAME = "TestResource.resx"


@pytest.fixture
def engine(store) -> RestoreEngine:
    return RestoreEngine(store)


def read_values(path) -> dict:
    return {k: e.value for k, e in ResxResourceFormat().parse(path).items()}


@pytest.mark.unit
class TestRestore:
    """Tests for full restores."""

    def test_round_trip_bytes(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Original", "Key2": "Two"})
        original = target.read_bytes()
        store.create_backup(target, "edit", backup_root)
        
        make_resx({"Key1": "Edited"})
        engine.restore(FILE_NAME, 1, target, backup_root)
        
        assert target.read_bytes() == original

    def test_pre_restore_backup_created(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Original"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "Edited"})
        edited = target.read_bytes()
        
        result = engine.restore(FILE_NAME, 1, target, backup_root)
        
        assert result.pre_restore_backup.version == 2
        assert result.pre_restore_backup.operation == PRE_RESTORE_OPERATION
        assert store.get_backup_file_path(FILE_NAME, 2, backup_root).read_bytes() == edited

    def test_no_pre_restore_backup_when_disabled(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Original"})
        store.create_backup(target, "edit", backup_root)
        
        result = engine.restore(FILE_NAME, 1, target, backup_root, create_backup_before_restore=False)
        
        assert result.pre_restore_backup is None
        assert len(store.list_backups(FILE_NAME, backup_root)) == 1

    def test_restore_to_missing_target(self, engine, store, backup_root, make_resx):
        source = make_resx({"Key1": "Original"})
        store.create_backup(source, "edit", backup_root)
        source.unlink()
        
        result = engine.restore(FILE_NAME, 1, source, backup_root)
        
        assert result.pre_restore_backup is None
        assert read_values(source) == {"Key1": "Original"}

    def test_missing_version_raises(self, engine, backup_root, make_resx):
        target = make_resx({"Key1": "Value"})
        with pytest.raises(BackupNotFoundError):
            engine.restore(FILE_NAME, 9, target, backup_root)

    def test_corrupt_payload_blocks_restore(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Original"})
        store.create_backup(target, "edit", backup_root)
        store.get_backup_file_path(FILE_NAME, 1, backup_root).write_bytes(b"garbage")
        make_resx({"Key1": "Edited"})
        before = target.read_bytes()
        
        with pytest.raises(IntegrityMismatchError):
            engine.restore(FILE_NAME, 1, target, backup_root)
        
        assert target.read_bytes() == before
        assert len(store.list_backups(FILE_NAME, backup_root)) == 1

    def test_verification_can_be_disabled(self, store, backup_root, make_resx):
        target = make_resx({"Key1": "Original"})
        store.create_backup(target, "edit", backup_root)
        store.get_backup_file_path(FILE_NAME, 1, backup_root).write_bytes(b"garbage")
        
        RestoreEngine(store, verify_integrity=False).restore(
            FILE_NAME, 1, target, backup_root, create_backup_before_restore=False,
        )
        assert target.read_bytes() == b"garbage"


@pytest.mark.unit
class TestRestoreKeys:
    """Tests for partial restores."""

    def test_only_selected_key_changes(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Old1", "Key2": "Old2"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "New1", "Key2": "New2", "Key3": "OnlyCurrent"})
        
        result = engine.restore_keys(FILE_NAME, 1, {"Key1"}, target, backup_root)
        
        assert result.restored_keys == ["Key1"]
        assert read_values(target) == {"Key1": "Old1", "Key2": "New2", "Key3": "OnlyCurrent"}

    def test_restores_comment_too(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": ("Value", "old note")})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": ("Value", "new note")})
        
        engine.restore_keys(FILE_NAME, 1, ["Key1"], target, backup_root)
        
        assert ResxResourceFormat().parse(target)["Key1"].comment == "old note"

    def test_key_missing_from_current_is_appended(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "V1", "Deleted": "D"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "V1"})
        
        engine.restore_keys(FILE_NAME, 1, ["Deleted"], target, backup_root)
        
        assert list(ResxResourceFormat().parse(target)) == ["Key1", "Deleted"]

    def test_missing_keys_reported(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Old"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "New"})
        
        result = engine.restore_keys(FILE_NAME, 1, ["Key1", "Nope"], target, backup_root)
        
        assert result.restored_keys == ["Key1"]
        assert result.missing_keys == ["Nope"]

    def test_nothing_to_restore_writes_nothing(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Old"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "New"})
        before = target.read_bytes()
        
        result = engine.restore_keys(FILE_NAME, 1, ["Nope"], target, backup_root)
        
        assert result.restored_keys == []
        assert result.pre_restore_backup is None
        assert target.read_bytes() == before
        assert len(store.list_backups(FILE_NAME, backup_root)) == 1

    def test_pre_restore_backup(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Old"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "New"})
        
        result = engine.restore_keys(FILE_NAME, 1, ["Key1"], target, backup_root)
        
        assert result.pre_restore_backup.operation == PRE_RESTORE_OPERATION
        assert [b.version for b in store.list_backups(FILE_NAME, backup_root)] == [2, 1]

    def test_missing_target_raises(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Old"})
        store.create_backup(target, "edit", backup_root)
        target.unlink()
        
        with pytest.raises(BackupNotFoundError):
            engine.restore_keys(FILE_NAME, 1, ["Key1"], target, backup_root)

    def test_missing_version_raises(self, engine, backup_root, make_resx):
        target = make_resx({"Key1": "Old"})
        with pytest.raises(BackupNotFoundError):
            engine.restore_keys(FILE_NAME, 4, ["Key1"], target, backup_root)


@pytest.mark.unit
class TestPreviewAndValidate:
    """Tests for read-only restore helpers."""

    def test_preview_does_not_mutate(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Old"})
        store.create_backup(target, "edit", backup_root)
        make_resx({"Key1": "New", "Key2": "Added"})
        target_before = target.read_bytes()
        manifest_path = backup_root / FILE_NAME / "manifest.json"
        manifest_before = manifest_path.read_bytes()
        
        diff = engine.preview_restore(FILE_NAME, 1, target, backup_root)
        
        assert diff.statistics.modified_count == 1
        assert diff.statistics.added_count == 1
        assert target.read_bytes() == target_before
        assert manifest_path.read_bytes() == manifest_before

    def test_preview_missing_version_raises(self, engine, backup_root, make_resx):
        with pytest.raises(BackupNotFoundError):
            engine.preview_restore(FILE_NAME, 1, make_resx({"Key1": "V"}), backup_root)

    def test_validate_missing_version_is_invalid(self, engine, backup_root, tmp_path):
        result = engine.validate_restore(FILE_NAME, 5, tmp_path / "whatever.resx", backup_root)
        
        assert result.is_valid is False
        assert result.errors

    def test_validate_existing_version(self, engine, store, backup_root, make_resx, tmp_path):
        store.create_backup(make_resx({"Key1": "V"}), "edit", backup_root)
        
        result = engine.validate_restore(FILE_NAME, 1, tmp_path / "not-there.resx", backup_root)
        
        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings

    def test_get_backup_keys(self, engine, store, backup_root, make_resx):
        store.create_backup(make_resx({"B": "1", "A": "2"}), "edit", backup_root)
        assert engine.get_backup_keys(FILE_NAME, 1, backup_root) == ["B", "A"]


class PausingStore(SnapshotStore):
    """Store whose pre-restore backups wait for a second caller to arrive."""

    def __init__(self, barrier: threading.Barrier, **kwargs):
        super().__init__(**kwargs)
        self.barrier = barrier

    def create_backup(self, source_file_path, operation, backup_root):
        if operation == PRE_RESTORE_OPERATION:
            try:
                self.barrier.wait()
            except threading.BrokenBarrierError:
                pass
        return super().create_backup(source_file_path, operation, backup_root)


@pytest.mark.unit
class TestCrossedRestores:
    """Tests for restores that write into another file's history."""

    def test_crossed_restores_both_complete(self, clock, backup_root, make_json_resource):
        barrier = threading.Barrier(2, timeout=0.5)
        store = PausingStore(barrier, lock_timeout=5, clock=clock)
        engine = RestoreEngine(store)
        first = make_json_resource({"Key": "A"}, name="A.json")
        second = make_json_resource({"Key": "B"}, name="B.json")
        store.create_backup(first, "edit", backup_root)
        store.create_backup(second, "edit", backup_root)
        
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(engine.restore, "A.json", 1, second, backup_root),
                pool.submit(engine.restore, "B.json", 1, first, backup_root),
            ]
            results = [f.result(timeout=30) for f in futures]
        
        assert [r.pre_restore_backup.operation for r in results] == [PRE_RESTORE_OPERATION] * 2
        assert len(store.list_backups("A.json", backup_root)) == 2
        assert len(store.list_backups("B.json", backup_root)) == 2

    def test_same_file_restore_takes_one_lock(self, engine, store, backup_root, make_resx):
        target = make_resx({"Key1": "Original"})
        store.create_backup(target, "edit", backup_root)
        
        result = engine.restore(FILE_NAME, 1, target, backup_root)
        
        assert result.pre_restore_backup.version == 2
        assert store.list_backed_up_files(backup_root) == [FILE_NAME]
