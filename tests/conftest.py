"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lrm.backup.rotation import RotationPolicy
from lrm.backup.store import SnapshotStore
from lrm.resources import JsonResourceFormat, ResourceEntry, ResxResourceFormat


logger = logging.getLogger(__name__)

# Value, or (value, comment)
EntryValue = Union[str, Tuple[str, Optional[str]]]


def _to_entries(entries: Dict[str, EntryValue]) -> Dict[str, ResourceEntry]:
    result = {}
    for key, raw in entries.items():
        if isinstance(raw, tuple):
            value, comment = raw
        else:
            value, comment = raw, None
        result[key] = ResourceEntry(key=key, value=value, comment=comment)
    return result


class FakeClock:
    """Deterministic clock for stores; advance it explicitly."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (real files, multiple components)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def backup_root(tmp_path) -> Path:
    """Empty backup root directory."""
    root = tmp_path / "backups"
    root.mkdir()
    return root


@pytest.fixture
def resource_dir(tmp_path) -> Path:
    """Directory holding live resource files."""
    path = tmp_path / "resources"
    path.mkdir()
    return path


@pytest.fixture
def make_resx(resource_dir) -> Callable[..., Path]:
    """
    Factory writing a .resx file.
    
    Usage: make_resx({"Key1": "Value1", "Key2": ("Value2", "comment")}, name="Strings.resx")
    """
    fmt = ResxResourceFormat()

    def _make(entries: Dict[str, EntryValue], name: str = "TestResource.resx") -> Path:
        path = resource_dir / name
        fmt.serialize(_to_entries(entries), path)
        return path

    return _make


@pytest.fixture
def make_json_resource(resource_dir) -> Callable[..., Path]:
    """Factory writing a JSON resource file."""
    fmt = JsonResourceFormat()

    def _make(entries: Dict[str, EntryValue], name: str = "strings.json") -> Path:
        path = resource_dir / name
        fmt.serialize(_to_entries(entries), path)
        return path

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> SnapshotStore:
    """Store with the default policy and a fake clock."""
    return SnapshotStore(rotation_policy=RotationPolicy.default(), clock=clock)
