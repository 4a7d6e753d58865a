"""
JSON resource format.

A JSON resource file is a single object. Each member is either a plain
string value or an object with ``value`` and optional ``comment``:

    {
        "Greeting": "Hello",
        "Farewell": {"value": "Bye", "comment": "Shown on logout"}
    }
"""

import json
from pathlib import Path
from typing import Any, Dict

from ..core.exceptions import ResourceFormatError
from .base import ResourceEntry, ResourceFormat, ResourceMap


class JsonResourceFormat(ResourceFormat):
    """Reads and writes flat JSON resource files."""

    extensions = [".json"]

    def get_name(self) -> str:
        return "json"

    def parse(self, path: Path) -> ResourceMap:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResourceFormatError(f"Invalid JSON resource file {path}: {e}") from e
        
        if not isinstance(data, dict):
            raise ResourceFormatError(f"Invalid JSON resource file {path}: top level must be an object")
        
        entries: ResourceMap = {}
        for key, raw in data.items():
            if isinstance(raw, str):
                entries[key] = ResourceEntry(key=key, value=raw)
            elif isinstance(raw, dict) and "value" in raw:
                entries[key] = ResourceEntry(
                    key=key,
                    value=str(raw["value"]),
                    comment=raw.get("comment"),
                )
            else:
                raise ResourceFormatError(f"Invalid entry '{key}' in {path}")
        
        return entries

    def serialize(self, entries: ResourceMap, path: Path) -> None:
        data: Dict[str, Any] = {}
        for entry in entries.values():
            if entry.comment:
                data[entry.key] = {"value": entry.value, "comment": entry.comment}
            else:
                data[entry.key] = entry.value
        
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
