"""
Content hashing for backup payloads.

Hashes are SHA-256 over the exact bytes of a file, hex-encoded in
lowercase (64 characters). Nothing is normalized: a snapshot's hash must
match the bytes stored on disk.
"""

import hashlib
from pathlib import Path
from typing import Union

HASH_BUFFER_SIZE = 65536
HASH_HEX_LENGTH = 64


def compute_bytes_hash(data: bytes) -> str:
    """Return the hex SHA-256 digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_file_hash(path: Union[str, Path]) -> str:
    """
    Return the hex SHA-256 digest of a file's raw bytes.
    
    Reads in fixed-size chunks so large files are not loaded at once.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_BUFFER_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_file_hash(path: Union[str, Path], expected: str) -> bool:
    """Return True if the file hashes to ``expected`` (case-insensitive)."""
    return compute_file_hash(path) == expected.lower()
