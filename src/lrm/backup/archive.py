"""
Pack and unpack operations for a file's backup history.

Packs one file's backup directory (manifest and payloads) into a zip
archive with a ``_pack_meta.json`` entry, optionally encrypted with
AES-256-GCM. Unpacking restores the directory under a backup root.
"""

import hashlib
import io
import json
import logging
import os
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import BackupNotFoundError, BackupStorageError
from ..core.logging import BackupLogContext
from .atomic import atomic_write_bytes
from .locking import DEFAULT_LOCK_TIMEOUT, LOCK_FILE_NAME, BackupLock
from .models import MANIFEST_FILE_NAME, BackupManifest

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

PACK_META_NAME = "_pack_meta.json"
NONCE_SIZE = 12
ENCRYPTED_SUFFIX = ".enc"


def _normalize_key(key: bytes) -> bytes:
    # AES-256 needs exactly 32 bytes; anything else is hashed down to 32.
    if len(key) != 32:
        return hashlib.sha256(key).digest()
    return key


def encrypt_bytes(data: bytes, key: bytes) -> bytes:
    """Encrypt with AES-256-GCM; output is nonce + ciphertext."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(_normalize_key(key)).encrypt(nonce, data, None)


def decrypt_bytes(data: bytes, key: bytes) -> bytes:
    """
    Reverse ``encrypt_bytes``.
    
    Raises:
        BackupStorageError: If the key is wrong or the data was tampered with
    """
    nonce, ciphertext = data[:NONCE_SIZE], data[NONCE_SIZE:]
    try:
        return AESGCM(_normalize_key(key)).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise BackupStorageError("Failed to decrypt archive: wrong key or corrupted data") from e


class BackupPacker:
    """
    Packs the backup directory of one resource file into a zip archive.
    
    Args:
        backup_root: Root directory of all backups
        file_name: Resource file name whose backups are packed
        encrypt: Whether to encrypt the archive
        encryption_key: Key used when ``encrypt`` is set
    """

    def __init__(
        self,
        backup_root: PathLike,
        file_name: str,
        encrypt: bool = False,
        encryption_key: Optional[bytes] = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        self.backup_dir = Path(backup_root) / file_name
        self.file_name = file_name
        self.encrypt = encrypt
        self.encryption_key = encryption_key
        self.lock_timeout = lock_timeout
        
        if not (self.backup_dir / MANIFEST_FILE_NAME).exists():
            raise BackupNotFoundError(f"No backups found for {file_name}", file_name=file_name)
        if encrypt and not encryption_key:
            raise ValueError("Encryption key is required for encryption")

    def pack(self, output_path: PathLike) -> Path:
        """
        Write the archive.
        
        Returns:
            Path of the created archive (``.zip`` or ``.zip.enc``)
        """
        output_path = Path(output_path)
        if output_path.suffix != ".zip":
            output_path = output_path.with_suffix(".zip")
        if self.encrypt:
            output_path = output_path.with_suffix(".zip" + ENCRYPTED_SUFFIX)
        
        with BackupLogContext(file_name=self.file_name, operation="pack"):
            logger.info(f"Packing backups of {self.file_name} to {output_path}")
            
            buffer = io.BytesIO()
            with BackupLock(self.backup_dir, timeout=self.lock_timeout):
                manifest = BackupManifest.load(self.backup_dir / MANIFEST_FILE_NAME, self.file_name)
                with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
                    for path in sorted(self.backup_dir.iterdir()):
                        if path.is_file() and path.name != LOCK_FILE_NAME:
                            zf.write(path, path.name)
                            logger.debug(f"  Added: {path.name}")
                    
                    pack_meta = {
                        "packed_at": datetime.now(timezone.utc).isoformat(),
                        "file_name": self.file_name,
                        "backup_count": len(manifest.backups),
                        "last_version": manifest.last_version,
                        "encrypted": self.encrypt,
                    }
                    zf.writestr(PACK_META_NAME, json.dumps(pack_meta, indent=2))
            
            data = buffer.getvalue()
            if self.encrypt:
                data = encrypt_bytes(data, self.encryption_key)
            
            output_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                atomic_write_bytes(output_path, data)
            except OSError as e:
                raise BackupStorageError(f"Failed to write archive {output_path}: {e}", path=str(output_path)) from e
        
        logger.info(f"Created archive: {output_path} ({len(data)} bytes)")
        return output_path


class BackupUnpacker:
    """
    Unpacks an archive created by BackupPacker into a backup root.
    
    Args:
        archive_path: Path to the ``.zip`` or ``.zip.enc`` archive
        decryption_key: Key for encrypted archives
    """

    def __init__(
        self,
        archive_path: PathLike,
        decryption_key: Optional[bytes] = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        self.archive_path = Path(archive_path)
        self.decryption_key = decryption_key
        self.lock_timeout = lock_timeout
        
        if not self.archive_path.exists():
            raise BackupNotFoundError(f"Archive not found: {self.archive_path}")
        
        self.is_encrypted = self.archive_path.suffix == ENCRYPTED_SUFFIX

    def _read_archive(self) -> bytes:
        data = self.archive_path.read_bytes()
        if self.is_encrypted:
            if not self.decryption_key:
                raise ValueError("Decryption key is required")
            data = decrypt_bytes(data, self.decryption_key)
        return data

    def unpack(self, backup_root: PathLike, force: bool = False) -> Path:
        """
        Extract the archive to ``backup_root/<file_name>``.
        
        Args:
            backup_root: Root directory of all backups
            force: Overwrite an existing manifest for the same file
            
        Returns:
            The restored backup directory
            
        Raises:
            BackupStorageError: If the archive is invalid or backups already exist
        """
        try:
            zf = zipfile.ZipFile(io.BytesIO(self._read_archive()), "r")
        except zipfile.BadZipFile as e:
            raise BackupStorageError(f"Invalid archive {self.archive_path}: {e}", path=str(self.archive_path)) from e
        
        with zf:
            names = zf.namelist()
            if PACK_META_NAME not in names or MANIFEST_FILE_NAME not in names:
                raise BackupStorageError(
                    f"Archive {self.archive_path} is not a backup pack",
                    path=str(self.archive_path),
                )
            for name in names:
                if Path(name).name != name or name in (".", "..", LOCK_FILE_NAME):
                    raise BackupStorageError(f"Unsafe archive entry: {name}", path=str(self.archive_path))

            try:
                manifest = BackupManifest.from_dict(json.loads(zf.read(MANIFEST_FILE_NAME)))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise BackupStorageError(f"Invalid manifest in {self.archive_path}: {e}", path=str(self.archive_path)) from e
            for record in manifest.backups:
                stored = record.stored_file_name
                if Path(stored).name != stored or stored in (".", "..", MANIFEST_FILE_NAME, LOCK_FILE_NAME):
                    raise BackupStorageError(
                        f"Unsafe payload name for v{record.version} in archive: {stored}",
                        path=str(self.archive_path),
                    )

            pack_meta = json.loads(zf.read(PACK_META_NAME))
            file_name = pack_meta["file_name"]
            if Path(file_name).name != file_name:
                raise BackupStorageError(f"Unsafe file name in archive: {file_name}", path=str(self.archive_path))
            backup_dir = Path(backup_root) / file_name
            
            with BackupLogContext(file_name=file_name, operation="unpack"):
                with BackupLock(backup_dir, timeout=self.lock_timeout):
                    if (backup_dir / MANIFEST_FILE_NAME).exists() and not force:
                        raise BackupStorageError(
                            f"Backups for {file_name} already exist in {backup_dir} (use force to overwrite)",
                            path=str(backup_dir),
                        )
                    # A forced unpack replaces the whole history.
                    try:
                        for path in backup_dir.iterdir():
                            if path.is_file() and path.name != LOCK_FILE_NAME:
                                path.unlink()
                    except OSError as e:
                        raise BackupStorageError(f"Failed to clear {backup_dir}: {e}", path=str(backup_dir)) from e
                    
                    # Payloads first, manifest last, so a partial unpack never
                    # lists versions whose files are missing.
                    members = [n for n in names if n not in (PACK_META_NAME, MANIFEST_FILE_NAME)]
                    for name in members + [MANIFEST_FILE_NAME]:
                        atomic_write_bytes(backup_dir / name, zf.read(name))
                        logger.debug(f"  Extracted: {name}")
                
                logger.info(f"Unpacked {len(members)} backups of {file_name} into {backup_dir}")
        
        return backup_dir


def get_encryption_key(
    key_source: str = "env",
    key_env_var: str = "LRM_BACKUP_ENCRYPTION_KEY",
    key_file_path: Optional[str] = None,
) -> Optional[bytes]:
    """
    Get the archive encryption key from its configured source.
    
    Args:
        key_source: Source type ('env' or 'file')
        key_env_var: Environment variable name
        key_file_path: Path to key file
        
    Returns:
        Encryption key as bytes, or None if not available
    """
    if key_source == "env":
        key_str = os.environ.get(key_env_var)
        if key_str:
            return key_str.encode("utf-8")
    
    elif key_source == "file" and key_file_path:
        key_path = Path(key_file_path)
        if key_path.exists():
            return key_path.read_bytes().strip()
    
    return None
