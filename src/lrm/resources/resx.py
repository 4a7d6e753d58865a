"""
.NET resx resource format.

Only ``<data>`` elements with a ``<value>`` child are treated as string
resources; typed resources (``type=`` or ``mimetype=`` attributes) are
skipped when parsing.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from ..core.exceptions import ResourceFormatError
from .base import ResourceEntry, ResourceFormat, ResourceMap

logger = logging.getLogger(__name__)

XML_SPACE_ATTR = "{http://www.w3.org/XML/1998/namespace}space"

RESX_HEADERS = [
    ("resmimetype", "text/microsoft-resx"),
    ("version", "2.0"),
    ("reader", "System.Resources.ResXResourceReader, System.Windows.Forms, "
               "Version=4.0.0.0, Culture=neutral, PublicKeyToken=b77a5c561934e089"),
    ("writer", "System.Resources.ResXResourceWriter, System.Windows.Forms, "
               "Version=4.0.0.0, Culture=neutral, PublicKeyToken=b77a5c561934e089"),
]


class ResxResourceFormat(ResourceFormat):
    """Reads and writes .resx XML resource files."""

    extensions = [".resx"]

    def get_name(self) -> str:
        return "resx"

    def parse(self, path: Path) -> ResourceMap:
        try:
            tree = ET.parse(str(path))
        except ET.ParseError as e:
            raise ResourceFormatError(f"Invalid resx file {path}: {e}") from e
        
        root = tree.getroot()
        if root.tag != "root":
            raise ResourceFormatError(f"Invalid resx file {path}: root element is <{root.tag}>")
        
        entries: ResourceMap = {}
        for data in root.findall("data"):
            key = data.get("name")
            if not key:
                logger.debug(f"Skipping unnamed <data> element in {path}")
                continue
            if data.get("type") or data.get("mimetype"):
                continue
            
            value_el = data.find("value")
            if value_el is None:
                continue
            comment_el = data.find("comment")
            
            entries[key] = ResourceEntry(
                key=key,
                value=value_el.text or "",
                comment=comment_el.text if comment_el is not None else None,
            )
        
        return entries

    def serialize(self, entries: ResourceMap, path: Path) -> None:
        root = ET.Element("root")
        
        for name, value in RESX_HEADERS:
            header = ET.SubElement(root, "resheader", {"name": name})
            ET.SubElement(header, "value").text = value
        
        for entry in entries.values():
            data = ET.SubElement(root, "data", {"name": entry.key, XML_SPACE_ATTR: "preserve"})
            ET.SubElement(data, "value").text = entry.value
            if entry.comment:
                ET.SubElement(data, "comment").text = entry.comment
        
        ET.indent(root, space="  ")
        tree = ET.ElementTree(root)
        with open(path, "wb") as f:
            tree.write(f, encoding="utf-8", xml_declaration=True)
