"""
Resource file formats.

The backup engine parses and serializes resource files only through
``ResourceFormat``; ``get_resource_format`` picks one by file extension.
"""

from pathlib import Path
from typing import Dict, Union

from ..core.exceptions import ResourceFormatError
from .base import ResourceEntry, ResourceFormat, ResourceMap, entries_to_map
from .json_format import JsonResourceFormat
from .resx import ResxResourceFormat

_FORMATS: Dict[str, ResourceFormat] = {}


def register_format(fmt: ResourceFormat) -> None:
    """Register a format for each of its extensions (later wins)."""
    for ext in fmt.extensions:
        _FORMATS[ext.lower()] = fmt


def get_resource_format(path: Union[str, Path]) -> ResourceFormat:
    """
    Resolve the resource format for a file by its extension.
    
    Raises:
        ResourceFormatError: If no format handles the extension
    """
    suffix = Path(path).suffix.lower()
    fmt = _FORMATS.get(suffix)
    if fmt is None:
        raise ResourceFormatError(f"No resource format registered for '{suffix or path}'")
    return fmt


register_format(ResxResourceFormat())
register_format(JsonResourceFormat())

__all__ = [
    "ResourceEntry",
    "ResourceFormat",
    "ResourceMap",
    "entries_to_map",
    "JsonResourceFormat",
    "ResxResourceFormat",
    "register_format",
    "get_resource_format",
]
