"""
Core subpackage: exceptions and logging utilities.
"""

from .exceptions import (
    LrmError,
    BackupNotFoundError,
    IntegrityMismatchError,
    BackupStorageError,
    BackupLockError,
    ResourceFormatError,
    ConfigError,
)

__all__ = [
    "LrmError",
    "BackupNotFoundError",
    "IntegrityMismatchError",
    "BackupStorageError",
    "BackupLockError",
    "ResourceFormatError",
    "ConfigError",
]
