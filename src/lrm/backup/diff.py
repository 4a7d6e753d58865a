"""
Key-level diff between two resource snapshots.

Both sides are parsed through the resource format collaborator into
ordered key → entry mappings and every key of their union is classified
as Added, Deleted, Modified, CommentChanged or Unchanged. Changes are
ordered by A's keys followed by the keys only B has.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..resources import ResourceFormat, ResourceMap, get_resource_format
from .models import BackupRecord

logger = logging.getLogger(__name__)

FormatResolver = Callable[[Path], ResourceFormat]


class ChangeType(str, Enum):
    """Classification of one key between two snapshots."""
    ADDED = "Added"
    DELETED = "Deleted"
    MODIFIED = "Modified"
    UNCHANGED = "Unchanged"
    COMMENT_CHANGED = "CommentChanged"


@dataclass
class KeyChange:
    """
    Change of a single key between snapshot A (old) and B (new).
    
    ``old_*`` fields are None for Added keys, ``new_*`` fields are None
    for Deleted keys.
    """
    key: str
    change_type: ChangeType
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    old_comment: Optional[str] = None
    new_comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "changeType": self.change_type.value,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "oldComment": self.old_comment,
            "newComment": self.new_comment,
        }


@dataclass
class DiffStatistics:
    """Counts per change class; ``total_changes`` excludes Unchanged."""
    total_keys: int = 0
    added_count: int = 0
    deleted_count: int = 0
    modified_count: int = 0
    comment_changed_count: int = 0
    unchanged_count: int = 0

    @property
    def total_changes(self) -> int:
        return (
            self.added_count
            + self.deleted_count
            + self.modified_count
            + self.comment_changed_count
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalKeys": self.total_keys,
            "addedCount": self.added_count,
            "deletedCount": self.deleted_count,
            "modifiedCount": self.modified_count,
            "commentChangedCount": self.comment_changed_count,
            "unchangedCount": self.unchanged_count,
            "totalChanges": self.total_changes,
        }


@dataclass
class DiffResult:
    """Result of comparing snapshot A with snapshot B."""
    version_a: Optional[BackupRecord]
    version_b: Optional[BackupRecord]
    changes: List[KeyChange] = field(default_factory=list)
    statistics: DiffStatistics = field(default_factory=DiffStatistics)

    def changed_keys(self) -> List[str]:
        """Keys whose change class is anything but Unchanged."""
        return [c.key for c in self.changes if c.change_type != ChangeType.UNCHANGED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "versionA": self.version_a.to_dict() if self.version_a else None,
            "versionB": self.version_b.to_dict() if self.version_b else None,
            "statistics": self.statistics.to_dict(),
            "changes": [c.to_dict() for c in self.changes],
        }


def _same_comment(a: Optional[str], b: Optional[str]) -> bool:
    # An empty comment and a missing one are the same thing.
    return (a or None) == (b or None)


def compare_entries(
    entries_a: ResourceMap,
    entries_b: ResourceMap,
    include_unchanged: bool = False,
) -> List[KeyChange]:
    """
    Classify every key of two resource mappings.
    
    Args:
        entries_a: Old side
        entries_b: New side
        include_unchanged: Whether Unchanged keys appear in the result
        
    Returns:
        Changes in A's key order, then B-only keys in B's order
    """
    changes: List[KeyChange] = []
    
    for key, entry_a in entries_a.items():
        entry_b = entries_b.get(key)
        if entry_b is None:
            changes.append(KeyChange(
                key=key,
                change_type=ChangeType.DELETED,
                old_value=entry_a.value,
                old_comment=entry_a.comment,
            ))
            continue
        
        if entry_a.value != entry_b.value:
            change_type = ChangeType.MODIFIED
        elif not _same_comment(entry_a.comment, entry_b.comment):
            change_type = ChangeType.COMMENT_CHANGED
        elif include_unchanged:
            change_type = ChangeType.UNCHANGED
        else:
            continue
        
        changes.append(KeyChange(
            key=key,
            change_type=change_type,
            old_value=entry_a.value,
            new_value=entry_b.value,
            old_comment=entry_a.comment,
            new_comment=entry_b.comment,
        ))
    
    for key, entry_b in entries_b.items():
        if key not in entries_a:
            changes.append(KeyChange(
                key=key,
                change_type=ChangeType.ADDED,
                new_value=entry_b.value,
                new_comment=entry_b.comment,
            ))
    
    return changes


def build_statistics(
    entries_a: ResourceMap,
    entries_b: ResourceMap,
    changes: List[KeyChange],
) -> DiffStatistics:
    """Tally changes; Unchanged is counted even when not listed."""
    total_keys = len(entries_a.keys() | entries_b.keys())
    stats = DiffStatistics(total_keys=total_keys)
    for change in changes:
        if change.change_type == ChangeType.ADDED:
            stats.added_count += 1
        elif change.change_type == ChangeType.DELETED:
            stats.deleted_count += 1
        elif change.change_type == ChangeType.MODIFIED:
            stats.modified_count += 1
        elif change.change_type == ChangeType.COMMENT_CHANGED:
            stats.comment_changed_count += 1
    stats.unchanged_count = total_keys - stats.total_changes
    return stats


class DiffEngine:
    """
    Compares backup snapshots with each other or with the live file.
    
    Args:
        format_resolver: Returns the resource format for a path
            (default: resolve by file extension)
    """

    def __init__(self, format_resolver: Optional[FormatResolver] = None):
        self.format_resolver = format_resolver or get_resource_format

    def parse(self, path: Union[str, Path]) -> ResourceMap:
        """Parse a resource file through the format collaborator."""
        path = Path(path)
        return self.format_resolver(path).parse(path)

    def compare_mappings(
        self,
        version_a: Optional[BackupRecord],
        version_b: Optional[BackupRecord],
        entries_a: ResourceMap,
        entries_b: ResourceMap,
        include_unchanged: bool = False,
    ) -> DiffResult:
        changes = compare_entries(entries_a, entries_b, include_unchanged)
        stats = build_statistics(entries_a, entries_b, changes)
        logger.debug(
            f"Diff {_label(version_a)} -> {_label(version_b)}: "
            f"{stats.total_changes} changes across {stats.total_keys} keys"
        )
        return DiffResult(
            version_a=version_a,
            version_b=version_b,
            changes=changes,
            statistics=stats,
        )

    def compare(
        self,
        version_a: Optional[BackupRecord],
        version_b: Optional[BackupRecord],
        file_a: Union[str, Path],
        file_b: Union[str, Path],
        include_unchanged: bool = False,
    ) -> DiffResult:
        """
        Compare two snapshot files.
        
        Args:
            version_a: Record of the old snapshot
            version_b: Record of the new snapshot
            file_a: Payload path of the old snapshot
            file_b: Payload path of the new snapshot
            include_unchanged: Whether Unchanged keys appear in the result
        """
        return self.compare_mappings(
            version_a,
            version_b,
            self.parse(file_a),
            self.parse(file_b),
            include_unchanged,
        )

    def compare_with_current(
        self,
        backup_record: BackupRecord,
        backup_file_path: Union[str, Path],
        current_file_path: Union[str, Path],
        include_unchanged: bool = False,
    ) -> DiffResult:
        """
        Compare a snapshot (A) with the live file (B).
        
        The live side gets a synthetic record labelled ``current`` with
        version ``backup_record.version + 1``.
        """
        entries_a = self.parse(backup_file_path)
        entries_b = self.parse(current_file_path)
        current = BackupRecord(
            version=backup_record.version + 1,
            timestamp=datetime.now(timezone.utc),
            stored_file_name=Path(current_file_path).name,
            operation="current",
            key_count=len(entries_b),
            content_hash="",
        )
        return self.compare_mappings(
            backup_record, current, entries_a, entries_b, include_unchanged,
        )


def _label(record: Optional[BackupRecord]) -> str:
    if record is None:
        return "?"
    if record.operation == "current":
        return "current"
    return f"v{record.version}"
