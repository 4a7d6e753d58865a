"""
Resource snapshot store.

Keeps versioned, content-hashed copies of resource files. Layout under a
backup root:

    {backup_root}/{file_name}/
        manifest.json
        .manifest.lock
        {stem}.v001{ext}
        {stem}.v002{ext}

Every mutation of one file's directory runs under that directory's
``BackupLock``; payloads and the manifest are written atomically.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..core.exceptions import (
    BackupNotFoundError,
    BackupStorageError,
    IntegrityMismatchError,
    ResourceFormatError,
)
from ..core.logging import BackupLogContext
from ..resources import get_resource_format
from .atomic import atomic_write_bytes
from .diff import DiffEngine, FormatResolver, compare_entries
from .hashing import compute_bytes_hash, compute_file_hash
from .locking import DEFAULT_LOCK_TIMEOUT, LOCK_FILE_NAME, BackupLock
from .models import MANIFEST_FILE_NAME, BackupManifest, BackupRecord, current_user
from .rotation import RotationPolicy, delete_payloads, plan_rotation

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def payload_file_name(file_name: str, version: int) -> str:
    """
    Stored payload name for a version, e.g. ``Strings.v001.resx``.
    
    Versions below 1000 are zero-padded to three digits.
    """
    path = Path(file_name)
    return f"{path.stem}.v{version:03d}{path.suffix}"


class SnapshotStore:
    """
    Creates, lists, verifies and deletes backups of resource files.
    
    Args:
        rotation_policy: Retention applied after every backup (default policy if None)
        format_resolver: Resource format lookup used for key counts
        lock_timeout: Seconds to wait for a file's backup lock
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        rotation_policy: Optional[RotationPolicy] = None,
        format_resolver: Optional[FormatResolver] = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.rotation_policy = rotation_policy or RotationPolicy.default()
        self.format_resolver = format_resolver or get_resource_format
        self.lock_timeout = lock_timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._diff = DiffEngine(self.format_resolver)

    # =========================================================================
    # Paths and locking
    # =========================================================================

    def backup_dir(self, file_name: str, backup_root: PathLike) -> Path:
        """Directory holding all backups of ``file_name``."""
        return Path(backup_root) / file_name

    def manifest_path(self, file_name: str, backup_root: PathLike) -> Path:
        return self.backup_dir(file_name, backup_root) / MANIFEST_FILE_NAME

    def get_backup_file_path(self, file_name: str, version: int, backup_root: PathLike) -> Path:
        """Payload path of a version by naming convention; does not check existence."""
        return self.backup_dir(file_name, backup_root) / payload_file_name(file_name, version)

    def payload_path(self, file_name: str, record: BackupRecord, backup_root: PathLike) -> Path:
        """Payload path of an existing record, as stored in the manifest."""
        return self.backup_dir(file_name, backup_root) / record.stored_file_name

    def lock(self, file_name: str, backup_root: PathLike) -> BackupLock:
        """The lock serializing mutations of ``file_name``'s backups."""
        return BackupLock(self.backup_dir(file_name, backup_root), timeout=self.lock_timeout)

    def load_manifest(self, file_name: str, backup_root: PathLike) -> BackupManifest:
        return BackupManifest.load(self.manifest_path(file_name, backup_root), file_name=file_name)

    # =========================================================================
    # Core operations
    # =========================================================================

    def create_backup(
        self,
        source_file_path: PathLike,
        operation: str,
        backup_root: PathLike,
    ) -> BackupRecord:
        """
        Snapshot a resource file.
        
        Copies the file's bytes verbatim into the backup directory under the
        next version number, records it in the manifest and applies rotation.
        
        Args:
            source_file_path: File to back up
            operation: Label of the triggering action (e.g. "edit", "pre-restore")
            backup_root: Root directory of all backups
            
        Returns:
            The new BackupRecord
            
        Raises:
            BackupNotFoundError: If the source file does not exist
            BackupStorageError: If reading the source or writing the backup fails
        """
        source = Path(source_file_path)
        file_name = source.name
        if not source.is_file():
            raise BackupNotFoundError(f"File not found: {source}", file_name=file_name)
        
        with BackupLogContext(file_name=file_name, operation=operation):
            with self.lock(file_name, backup_root):
                try:
                    data = source.read_bytes()
                except OSError as e:
                    raise BackupStorageError(f"Failed to read {source}: {e}", path=str(source)) from e
                
                backup_dir = self.backup_dir(file_name, backup_root)
                manifest = self.load_manifest(file_name, backup_root)
                previous = manifest.get_latest()
                version = manifest.next_version()
                
                stored_name = payload_file_name(file_name, version)
                payload = backup_dir / stored_name
                try:
                    atomic_write_bytes(payload, data)
                except OSError as e:
                    raise BackupStorageError(f"Failed to write backup {payload}: {e}", path=str(payload)) from e
                
                try:
                    key_count, changed = self._summarize(
                        payload,
                        self.payload_path(file_name, previous, backup_root) if previous else None,
                    )
                except Exception:
                    payload.unlink(missing_ok=True)
                    raise
                
                record = BackupRecord(
                    version=version,
                    timestamp=self.clock(),
                    stored_file_name=stored_name,
                    operation=operation,
                    key_count=key_count,
                    content_hash=compute_bytes_hash(data),
                    user=current_user(),
                    changed_keys=len(changed),
                    changed_key_names=changed,
                )
                manifest.add(record)
                
                removed = plan_rotation(manifest, self.rotation_policy, now=self.clock())
                manifest.save(self.manifest_path(file_name, backup_root))
                delete_payloads(backup_dir, removed)
        
        logger.info(f"Created backup v{version} of {file_name} ({operation}, {key_count} keys)")
        return record

    def list_backups(self, file_name: str, backup_root: PathLike) -> List[BackupRecord]:
        """All retained backups of ``file_name``, most recent version first."""
        return self.load_manifest(file_name, backup_root).sorted_backups()

    def get_backup(self, file_name: str, version: int, backup_root: PathLike) -> Optional[BackupRecord]:
        """The record for ``version``, or None if it is not in the manifest."""
        return self.load_manifest(file_name, backup_root).get_by_version(version)

    def require_backup(self, file_name: str, version: int, backup_root: PathLike) -> BackupRecord:
        """Like ``get_backup`` but raises BackupNotFoundError when absent."""
        record = self.get_backup(file_name, version, backup_root)
        if record is None:
            raise BackupNotFoundError(
                f"Backup version {version} not found for {file_name}",
                file_name=file_name,
                version=version,
            )
        return record

    def delete_backup(self, file_name: str, version: int, backup_root: PathLike) -> bool:
        """
        Delete one backup (manifest entry and payload).
        
        Returns:
            True if the version existed and was removed
        """
        if not self.backup_dir(file_name, backup_root).is_dir():
            return False
        
        with BackupLogContext(file_name=file_name, version=version, operation="delete"):
            with self.lock(file_name, backup_root):
                manifest = self.load_manifest(file_name, backup_root)
                record = manifest.remove(version)
                if record is None:
                    return False
                manifest.save(self.manifest_path(file_name, backup_root))
                delete_payloads(self.backup_dir(file_name, backup_root), [record])
        
        logger.info(f"Deleted backup v{version} of {file_name}")
        return True

    # =========================================================================
    # Maintenance
    # =========================================================================

    def delete_all_backups(self, file_name: str, backup_root: PathLike) -> int:
        """
        Delete every backup of ``file_name`` including its manifest.
        
        Returns:
            Number of backups removed
        """
        backup_dir = self.backup_dir(file_name, backup_root)
        if not backup_dir.is_dir():
            return 0
        
        with self.lock(file_name, backup_root):
            manifest = self.load_manifest(file_name, backup_root)
            count = len(manifest.backups)
            try:
                for path in backup_dir.iterdir():
                    if path.is_file() and path.name != LOCK_FILE_NAME:
                        path.unlink()
            except OSError as e:
                raise BackupStorageError(f"Failed to clear {backup_dir}: {e}", path=str(backup_dir)) from e
        
        logger.info(f"Deleted all {count} backups of {file_name}")
        return count

    def list_backed_up_files(self, backup_root: PathLike) -> List[str]:
        """File names that have a manifest under ``backup_root``, sorted."""
        root = Path(backup_root)
        if not root.is_dir():
            return []
        return sorted(
            d.name for d in root.iterdir()
            if d.is_dir() and (d / MANIFEST_FILE_NAME).exists()
        )

    def verify_backup(self, file_name: str, version: int, backup_root: PathLike) -> BackupRecord:
        """
        Check a payload against its recorded hash.
        
        Returns:
            The verified record
            
        Raises:
            BackupNotFoundError: If the version or its payload is missing
            IntegrityMismatchError: If the payload hash differs from the record
        """
        record = self.require_backup(file_name, version, backup_root)
        payload = self.payload_path(file_name, record, backup_root)
        if not payload.is_file():
            raise BackupNotFoundError(
                f"Backup payload missing for {file_name} v{version}: {payload}",
                file_name=file_name,
                version=version,
            )
        
        actual = compute_file_hash(payload)
        if actual != record.content_hash:
            logger.warning(
                f"Integrity check failed for {file_name} v{version}: "
                f"expected {record.content_hash}, got {actual}"
            )
            raise IntegrityMismatchError(
                f"Backup {file_name} v{version} does not match its recorded hash",
                file_name=file_name,
                version=version,
                expected=record.content_hash,
                actual=actual,
            )
        return record

    def prune_backups(
        self,
        file_name: str,
        backup_root: PathLike,
        version: Optional[int] = None,
        older_than_days: Optional[int] = None,
        keep: Optional[int] = None,
        dry_run: bool = False,
    ) -> List[BackupRecord]:
        """
        Manually delete backups by one criterion.
        
        Exactly one of ``version``, ``older_than_days`` or ``keep`` must be given.
        
        Args:
            file_name: Resource file name
            backup_root: Root directory of all backups
            version: Delete this version
            older_than_days: Delete backups older than this many days
            keep: Keep only the N most recent versions
            dry_run: Only report what would be deleted
            
        Returns:
            Records deleted (or that would be deleted), most recent first
        """
        criteria = [c for c in (version, older_than_days, keep) if c is not None]
        if len(criteria) != 1:
            raise ValueError("Specify exactly one of version, older_than_days or keep")
        
        with BackupLogContext(file_name=file_name, operation="prune"):
            with self.lock(file_name, backup_root):
                manifest = self.load_manifest(file_name, backup_root)
                ordered = manifest.sorted_backups()
                
                if version is not None:
                    selected = [b for b in ordered if b.version == version]
                    if not selected:
                        raise BackupNotFoundError(
                            f"Backup version {version} not found for {file_name}",
                            file_name=file_name,
                            version=version,
                        )
                elif older_than_days is not None:
                    cutoff = self.clock() - timedelta(days=older_than_days)
                    selected = [b for b in ordered if b.timestamp < cutoff]
                else:
                    selected = ordered[max(keep, 0):]
                
                if dry_run or not selected:
                    return selected
                
                for record in selected:
                    manifest.remove(record.version)
                manifest.save(self.manifest_path(file_name, backup_root))
                delete_payloads(self.backup_dir(file_name, backup_root), selected)
        
        logger.info(f"Pruned {len(selected)} backups of {file_name}")
        return selected

    # =========================================================================
    # Helpers
    # =========================================================================

    def _summarize(self, payload: Path, previous_payload: Optional[Path]):
        """
        Key count of a new payload and the keys changed since the previous one.
        
        Best-effort: a file the resource collaborator cannot read is still
        backed up, with a key count of 0 and no changed keys.
        """
        try:
            entries = self._diff.parse(payload)
        except (ResourceFormatError, OSError, ValueError) as e:
            logger.warning(f"Could not count keys in {payload.name}: {e}")
            return 0, []
        
        if previous_payload is None or not previous_payload.is_file():
            return len(entries), []
        
        try:
            previous_entries = self._diff.parse(previous_payload)
        except (ResourceFormatError, OSError, ValueError) as e:
            logger.warning(f"Could not compare with previous backup {previous_payload.name}: {e}")
            return len(entries), []
        
        changes = compare_entries(previous_entries, entries)
        return len(entries), [c.key for c in changes]
