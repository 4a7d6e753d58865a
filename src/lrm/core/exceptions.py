"""
Custom exceptions for the localization resource manager.
"""

from typing import Optional


class LrmError(Exception):
    """Base exception for all lrm errors."""
    pass


class BackupNotFoundError(LrmError, FileNotFoundError):
    """
    A requested backup, source file or manifest entry does not exist.
    
    Raised when:
    - The source file of a backup does not exist
    - A backup version is not present in the manifest
    - A payload referenced by the manifest is missing on disk
    """
    
    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        version: Optional[int] = None,
    ):
        super().__init__(message)
        self.file_name = file_name
        self.version = version

    def __str__(self) -> str:
        return self.args[0] if self.args else ""


class IntegrityMismatchError(LrmError):
    """
    A stored payload no longer matches its recorded content hash.
    """
    
    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        version: Optional[int] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ):
        super().__init__(message)
        self.file_name = file_name
        self.version = version
        self.expected = expected
        self.actual = actual


class BackupStorageError(LrmError):
    """
    Error reading or writing backup payloads or the manifest.
    
    Raised when:
    - A read/write/rename on the backup directory fails
    - The manifest file is not valid JSON or is missing fields
    """
    
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class BackupLockError(LrmError):
    """The per-file backup lock could not be acquired in time."""
    pass


class ResourceFormatError(LrmError):
    """
    Error parsing or serializing a resource file.
    
    Raised when:
    - No resource format is registered for the file extension
    - The file content is malformed
    """
    pass


class ConfigError(LrmError):
    """Invalid configuration values."""
    pass
