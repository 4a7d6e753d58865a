"""
Data models for resource backups.

A ``BackupRecord`` describes one immutable snapshot of a resource file; a
``BackupManifest`` is the durable list of records for one logical file
name, persisted as ``manifest.json`` in that file's backup directory.
"""

import getpass
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.exceptions import BackupStorageError
from .atomic import atomic_write_json

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "manifest.json"
MANIFEST_SCHEMA_VERSION = 1


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def current_user() -> str:
    """Best-effort name of the OS user creating a backup."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


@dataclass
class BackupRecord:
    """
    One snapshot of a resource file.
    
    Attributes:
        version: Sequential version number, unique per file name, never reused
        timestamp: UTC creation time
        stored_file_name: Payload file name inside the backup directory
        operation: Label of the action that triggered the backup
        key_count: Number of resource entries at snapshot time
        content_hash: Lowercase hex SHA-256 of the stored payload bytes
        user: OS user that created the backup
        changed_keys: Number of keys changed since the previous backup
        changed_key_names: Names of those keys
    """
    version: int
    timestamp: datetime
    stored_file_name: str
    operation: str
    key_count: int
    content_hash: str
    user: str = ""
    changed_keys: int = 0
    changed_key_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the manifest JSON representation."""
        return {
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "filePath": self.stored_file_name,
            "operation": self.operation,
            "keyCount": self.key_count,
            "hash": self.content_hash,
            "user": self.user,
            "changedKeys": self.changed_keys,
            "changedKeyNames": self.changed_key_names,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupRecord":
        """Create from the manifest JSON representation."""
        return cls(
            version=int(data["version"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            stored_file_name=data.get("filePath") or data["storedFileName"],
            operation=data.get("operation", ""),
            key_count=int(data.get("keyCount", 0)),
            content_hash=str(data.get("hash", "")).lower(),
            user=data.get("user") or "",
            changed_keys=int(data.get("changedKeys") or 0),
            changed_key_names=list(data.get("changedKeyNames") or []),
        )


@dataclass
class BackupManifest:
    """
    The durable list of backups for one logical resource file.
    
    ``last_version`` is the highest version ever handed out, so versions
    stay unique after the newest backup is deleted.
    """
    file_name: str
    backups: List[BackupRecord] = field(default_factory=list)
    last_version: int = 0

    def next_version(self) -> int:
        """Return the version the next backup will get."""
        highest = max((b.version for b in self.backups), default=0)
        return max(self.last_version, highest) + 1

    def add(self, record: BackupRecord) -> None:
        """Append a record and advance the version high-water mark."""
        self.backups.append(record)
        self.last_version = max(self.last_version, record.version)

    def remove(self, version: int) -> Optional[BackupRecord]:
        """Remove and return the record for ``version``, if present."""
        for i, record in enumerate(self.backups):
            if record.version == version:
                return self.backups.pop(i)
        return None

    def get_by_version(self, version: int) -> Optional[BackupRecord]:
        for record in self.backups:
            if record.version == version:
                return record
        return None

    def get_latest(self) -> Optional[BackupRecord]:
        return max(self.backups, key=lambda b: b.version, default=None)

    def sorted_backups(self) -> List[BackupRecord]:
        """Records ordered by version, most recent first."""
        return sorted(self.backups, key=lambda b: b.version, reverse=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": MANIFEST_SCHEMA_VERSION,
            "fileName": self.file_name,
            "lastVersion": self.last_version,
            "backups": [b.to_dict() for b in self.sorted_backups()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupManifest":
        backups = [BackupRecord.from_dict(b) for b in data.get("backups", [])]
        manifest = cls(
            file_name=data.get("fileName", ""),
            backups=backups,
            last_version=int(data.get("lastVersion") or 0),
        )
        manifest.last_version = max(
            manifest.last_version,
            max((b.version for b in backups), default=0),
        )
        return manifest

    def save(self, path: Path) -> None:
        """Atomically write the manifest to ``path``."""
        try:
            atomic_write_json(path, self.to_dict())
        except OSError as e:
            raise BackupStorageError(f"Failed to write manifest {path}: {e}", path=str(path)) from e
        logger.debug(f"Saved manifest with {len(self.backups)} backups to: {path}")

    @classmethod
    def load(cls, path: Path, file_name: str = "") -> "BackupManifest":
        """
        Load a manifest from ``path``.
        
        A missing file yields an empty manifest. A corrupt file raises
        ``BackupStorageError`` rather than silently starting over, which
        would reuse version numbers.
        """
        path = Path(path)
        if not path.exists():
            return cls(file_name=file_name)
        
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            manifest = cls.from_dict(data)
        except OSError as e:
            raise BackupStorageError(f"Failed to read manifest {path}: {e}", path=str(path)) from e
        except (ValueError, KeyError, TypeError) as e:
            raise BackupStorageError(f"Corrupt manifest {path}: {e}", path=str(path)) from e
        
        if not manifest.file_name:
            manifest.file_name = file_name
        return manifest
