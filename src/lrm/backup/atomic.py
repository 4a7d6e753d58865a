"""
Crash-safe file writes.

Content is written to a temporary file in the destination directory and
then renamed over the destination, so readers see either the old or the
new file, never a truncated one.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Union


def atomic_write_bytes(path: Union[str, Path], data: bytes) -> None:
    """Atomically replace ``path`` with ``data``."""
    atomic_write_with(path, lambda tmp: tmp.write_bytes(data))


def atomic_write_json(path: Union[str, Path], obj: Any) -> None:
    """Atomically replace ``path`` with ``obj`` serialized as indented JSON."""
    text = json.dumps(obj, indent=2, ensure_ascii=False) + "\n"
    atomic_write_bytes(path, text.encode("utf-8"))


def atomic_write_with(path: Union[str, Path], writer: Callable[[Path], None]) -> None:
    """
    Atomically replace ``path`` with whatever ``writer`` puts in a temp file.
    
    ``writer`` receives the temporary path and must write the full content
    to it. If it raises, the temp file is removed and ``path`` is untouched.
    """
    dst = Path(path)
    dst.parent.mkdir(parents=True, exist_ok=True)
    
    fd, tmp_name = tempfile.mkstemp(dir=dst.parent, prefix=f".{dst.name}.", suffix=".tmp")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        writer(tmp_path)
        with open(tmp_path, "rb+") as f:
            os.fsync(f.fileno())
        os.replace(tmp_path, dst)
    except BaseException:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise
