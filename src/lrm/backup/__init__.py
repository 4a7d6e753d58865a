"""
Versioned backup, diff and restore of resource files.

Components:
- SnapshotStore: content-hashed, versioned copies plus a per-file manifest
- RotationPolicy: tiered retention applied after every backup
- DiffEngine: key-level comparison of two snapshots or a snapshot and the live file
- RestoreEngine: full or per-key restore with preview and validation
- BackupPacker/BackupUnpacker: portable (optionally encrypted) archives
"""

from .archive import BackupPacker, BackupUnpacker, get_encryption_key
from .diff import ChangeType, DiffEngine, DiffResult, DiffStatistics, KeyChange, compare_entries
from .diff_formatter import format_diff
from .hashing import compute_bytes_hash, compute_file_hash, verify_file_hash
from .locking import BackupLock
from .models import BackupManifest, BackupRecord
from .restore import RestoreEngine, RestoreResult, RestoreValidationResult
from .rotation import RotationPolicy, apply_rotation, select_retained
from .store import SnapshotStore, payload_file_name

__all__ = [
    "BackupLock",
    "BackupManifest",
    "BackupPacker",
    "BackupRecord",
    "BackupUnpacker",
    "ChangeType",
    "DiffEngine",
    "DiffResult",
    "DiffStatistics",
    "KeyChange",
    "RestoreEngine",
    "RestoreResult",
    "RestoreValidationResult",
    "RotationPolicy",
    "SnapshotStore",
    "apply_rotation",
    "compare_entries",
    "compute_bytes_hash",
    "compute_file_hash",
    "format_diff",
    "get_encryption_key",
    "payload_file_name",
    "select_retained",
    "verify_file_hash",
]
