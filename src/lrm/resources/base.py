"""
Resource format interface.

A resource format turns a resource file into an ordered mapping of
key → ResourceEntry and back. The backup engine only talks to this
interface; it never assumes a concrete serialization.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional


@dataclass
class ResourceEntry:
    """
    One translatable entry of a resource file.
    
    Attributes:
        key: Resource key, unique within one file
        value: Translated text
        comment: Optional translator comment
    """
    key: str
    value: str
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"key": self.key, "value": self.value, "comment": self.comment}


# Ordered key → entry; insertion order is file order.
ResourceMap = Dict[str, ResourceEntry]


def entries_to_map(entries: Iterable[ResourceEntry]) -> ResourceMap:
    """Build an ordered mapping from entries; a later duplicate key wins."""
    mapping: ResourceMap = {}
    for entry in entries:
        mapping[entry.key] = entry
    return mapping


class ResourceFormat(ABC):
    """
    Abstract base class for resource file formats.
    """

    #: File extensions (lowercase, with dot) handled by this format
    extensions: List[str] = []

    @abstractmethod
    def parse(self, path: Path) -> ResourceMap:
        """
        Parse a resource file.
        
        Args:
            path: Path to the resource file
            
        Returns:
            Ordered mapping of key → ResourceEntry
            
        Raises:
            ResourceFormatError: If the file is malformed
        """
        pass

    @abstractmethod
    def serialize(self, entries: ResourceMap, path: Path) -> None:
        """
        Write entries to a resource file, replacing its content.
        
        Args:
            entries: Ordered mapping of key → ResourceEntry
            path: Destination path
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the format name."""
        pass
