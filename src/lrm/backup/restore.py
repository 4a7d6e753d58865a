"""
Restore engine.

Rolls a live resource file back to a retained snapshot, either fully
(byte-for-byte) or for a selected set of keys. Restores take the same
per-file lock as backup creation, optionally snapshot the live file first
(operation ``pre-restore``) and write the target atomically.
"""

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..core.exceptions import BackupNotFoundError, BackupStorageError
from ..core.logging import BackupLogContext
from .atomic import atomic_write_bytes, atomic_write_with
from .diff import DiffEngine, DiffResult
from .models import BackupRecord
from .store import SnapshotStore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

PRE_RESTORE_OPERATION = "pre-restore"


@dataclass
class RestoreResult:
    """Outcome of a full or partial restore."""
    file_name: str
    version: int
    target_path: str
    pre_restore_backup: Optional[BackupRecord] = None
    restored_keys: List[str] = field(default_factory=list)
    missing_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "version": self.version,
            "targetPath": self.target_path,
            "preRestoreBackup": self.pre_restore_backup.to_dict() if self.pre_restore_backup else None,
            "restoredKeys": list(self.restored_keys),
            "missingKeys": list(self.missing_keys),
        }


@dataclass
class RestoreValidationResult:
    """
    Whether a restore can proceed.
    
    ``is_valid`` only reflects whether the version exists in the manifest;
    ``errors`` and ``warnings`` are informational.
    """
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class RestoreEngine:
    """
    Restores resource files from snapshots held by a SnapshotStore.
    
    Args:
        store: Snapshot store holding the backups
        diff_engine: Diff engine for previews (defaults to one sharing the
            store's format resolver)
        verify_integrity: Check a payload's hash before restoring from it
    """

    def __init__(
        self,
        store: SnapshotStore,
        diff_engine: Optional[DiffEngine] = None,
        verify_integrity: bool = True,
    ):
        self.store = store
        self.diff_engine = diff_engine or DiffEngine(store.format_resolver)
        self.verify_integrity = verify_integrity

    def _payload_for(self, file_name: str, version: int, backup_root: PathLike):
        if self.verify_integrity:
            record = self.store.verify_backup(file_name, version, backup_root)
        else:
            record = self.store.require_backup(file_name, version, backup_root)
        payload = self.store.payload_path(file_name, record, backup_root)
        if not payload.is_file():
            raise BackupNotFoundError(
                f"Backup payload missing for {file_name} v{version}: {payload}",
                file_name=file_name,
                version=version,
            )
        return record, payload

    def _restore_lock(self, file_name: str, target: Path, backup_root: PathLike, pre_restore: bool) -> ExitStack:
        # A pre-restore backup also locks the target's history; locks are
        # always taken in name order.
        names = {file_name}
        if pre_restore:
            names.add(target.name)
        stack = ExitStack()
        try:
            for name in sorted(names):
                stack.enter_context(self.store.lock(name, backup_root))
        except BaseException:
            stack.close()
            raise
        return stack

    def _pre_restore_backup(self, target: Path, backup_root: PathLike) -> Optional[BackupRecord]:
        if not target.exists():
            logger.info(f"No pre-restore backup: {target} does not exist")
            return None
        return self.store.create_backup(target, PRE_RESTORE_OPERATION, backup_root)

    def restore(
        self,
        file_name: str,
        version: int,
        target_file_path: PathLike,
        backup_root: PathLike,
        create_backup_before_restore: bool = True,
    ) -> RestoreResult:
        """
        Replace the target file with the exact bytes of a backup.
        
        Args:
            file_name: Logical resource file name the backup belongs to
            version: Backup version to restore
            target_file_path: File to overwrite
            backup_root: Root directory of all backups
            create_backup_before_restore: Snapshot the target first
            
        Returns:
            RestoreResult
            
        Raises:
            BackupNotFoundError: If the version or its payload does not exist
            IntegrityMismatchError: If the payload fails verification
        """
        target = Path(target_file_path)
        
        with BackupLogContext(file_name=file_name, version=version, operation="restore"):
            with self._restore_lock(file_name, target, backup_root, create_backup_before_restore):
                record, payload = self._payload_for(file_name, version, backup_root)
                try:
                    data = payload.read_bytes()
                except OSError as e:
                    raise BackupStorageError(f"Failed to read {payload}: {e}", path=str(payload)) from e
                
                pre_restore = None
                if create_backup_before_restore:
                    pre_restore = self._pre_restore_backup(target, backup_root)
                
                try:
                    atomic_write_bytes(target, data)
                except OSError as e:
                    raise BackupStorageError(f"Failed to write {target}: {e}", path=str(target)) from e
            
            logger.info(f"Restored {file_name} v{version} to {target}")
        
        return RestoreResult(
            file_name=file_name,
            version=record.version,
            target_path=str(target),
            pre_restore_backup=pre_restore,
        )

    def restore_keys(
        self,
        file_name: str,
        version: int,
        keys: Iterable[str],
        target_file_path: PathLike,
        backup_root: PathLike,
        create_backup_before_restore: bool = True,
    ) -> RestoreResult:
        """
        Restore selected keys from a backup into the live file.
        
        Entries whose key is requested and present in the backup take the
        backup's value and comment; every other entry of the live file is
        left untouched. Requested keys the live file lacks are appended.
        The target is not written when none of the keys exist in the backup.
        
        Raises:
            BackupNotFoundError: If the version, its payload or the target file does not exist
            ResourceFormatError: If either file cannot be parsed
        """
        target = Path(target_file_path)
        requested = set(keys)
        
        with BackupLogContext(file_name=file_name, version=version, operation="restore-keys"):
            with self._restore_lock(file_name, target, backup_root, create_backup_before_restore):
                _, payload = self._payload_for(file_name, version, backup_root)
                if not target.is_file():
                    raise BackupNotFoundError(
                        f"Target file not found: {target}",
                        file_name=file_name,
                        version=version,
                    )
                
                backup_entries = self.diff_engine.parse(payload)
                merged = dict(self.diff_engine.parse(target))
                
                restored = []
                for key, entry in backup_entries.items():
                    if key in requested:
                        merged[key] = entry
                        restored.append(key)
                missing = sorted(requested - set(backup_entries))
                
                if missing:
                    logger.warning(f"Keys not in {file_name} v{version}: {', '.join(missing)}")
                
                result = RestoreResult(
                    file_name=file_name,
                    version=version,
                    target_path=str(target),
                    restored_keys=restored,
                    missing_keys=missing,
                )
                if not restored:
                    logger.info(f"Nothing to restore from {file_name} v{version}")
                    return result
                
                if create_backup_before_restore:
                    result.pre_restore_backup = self._pre_restore_backup(target, backup_root)
                
                fmt = self.store.format_resolver(target)
                try:
                    atomic_write_with(target, lambda tmp: fmt.serialize(merged, tmp))
                except OSError as e:
                    raise BackupStorageError(f"Failed to write {target}: {e}", path=str(target)) from e
            
            logger.info(f"Restored {len(restored)} keys of {file_name} from v{version}")
            for key in restored:
                logger.debug(f"Restored key {key}")
        
        return result

    def preview_restore(
        self,
        file_name: str,
        version: int,
        current_file_path: PathLike,
        backup_root: PathLike,
        include_unchanged: bool = False,
    ) -> DiffResult:
        """
        Diff a backup (A) against the live file (B) without touching either.
        
        Raises:
            BackupNotFoundError: If the version does not exist
        """
        record = self.store.require_backup(file_name, version, backup_root)
        payload = self.store.payload_path(file_name, record, backup_root)
        return self.diff_engine.compare_with_current(
            record, payload, current_file_path, include_unchanged,
        )

    def validate_restore(
        self,
        file_name: str,
        version: int,
        file_path: PathLike,
        backup_root: PathLike,
    ) -> RestoreValidationResult:
        """
        Check whether ``version`` can be restored. Never raises for a missing version.
        """
        record = self.store.get_backup(file_name, version, backup_root)
        if record is None:
            return RestoreValidationResult(
                is_valid=False,
                errors=[f"Backup version {version} not found for {file_name}"],
            )
        
        result = RestoreValidationResult(is_valid=True)
        if not self.store.payload_path(file_name, record, backup_root).is_file():
            result.warnings.append(f"Backup payload for v{version} is missing")
        if not Path(file_path).exists():
            result.warnings.append(f"Target file {file_path} does not exist and will be created")
        return result

    def get_backup_keys(self, file_name: str, version: int, backup_root: PathLike) -> List[str]:
        """Keys stored in a backup, in file order."""
        record = self.store.require_backup(file_name, version, backup_root)
        payload = self.store.payload_path(file_name, record, backup_root)
        return list(self.diff_engine.parse(payload))
