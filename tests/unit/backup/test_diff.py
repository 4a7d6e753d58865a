"""
Unit tests for the key-level diff.
"""

from datetime import datetime, timezone

import pytest

from lrm.backup.diff import ChangeType, DiffEngine, compare_entries
from lrm.backup.models import BackupRecord
from lrm.resources import ResourceEntry


def entries(**values) -> dict:
    """Build a resource map; a tuple value is (value, comment)."""
    result = {}
    for key, raw in values.items():
        value, comment = raw if isinstance(raw, tuple) else (raw, None)
        result[key] = ResourceEntry(key=key, value=value, comment=comment)
    return result


def record(version: int) -> BackupRecord:
    return BackupRecord(
        version=version,
        timestamp=datetime(2025, 1, version, tzinfo=timezone.utc),
        stored_file_name=f"TestResource.v{version:03d}.resx",
        operation="edit",
        key_count=0,
        content_hash="0" * 64,
    )


@pytest.mark.unit
class TestCompareEntries:
    """Tests for change classification."""

    def test_added_key(self):
        changes = compare_entries(entries(Key1="Value1"), entries(Key1="Value1", Key2="Value2"))
        
        assert len(changes) == 1
        assert changes[0].key == "Key2"
        assert changes[0].change_type == ChangeType.ADDED
        assert changes[0].old_value is None
        assert changes[0].new_value == "Value2"

    def test_deleted_key(self):
        changes = compare_entries(entries(Key1="Value1", Key2="Value2"), entries(Key1="Value1"))
        
        assert [(c.key, c.change_type) for c in changes] == [("Key2", ChangeType.DELETED)]
        assert changes[0].old_value == "Value2"
        assert changes[0].new_value is None

    def test_modified_key(self):
        changes = compare_entries(entries(Key1="OldValue"), entries(Key1="NewValue"))
        
        assert len(changes) == 1
        assert changes[0].change_type == ChangeType.MODIFIED
        assert changes[0].old_value == "OldValue"
        assert changes[0].new_value == "NewValue"

    def test_value_change_wins_over_comment_change(self):
        changes = compare_entries(
            entries(Key1=("Old", "note a")),
            entries(Key1=("New", "note b")),
        )
        assert changes[0].change_type == ChangeType.MODIFIED

    def test_comment_changed(self):
        changes = compare_entries(
            entries(Key1=("Same", "old note")),
            entries(Key1=("Same", "new note")),
        )
        
        assert changes[0].change_type == ChangeType.COMMENT_CHANGED
        assert changes[0].old_comment == "old note"
        assert changes[0].new_comment == "new note"

    def test_empty_comment_equals_missing_comment(self):
        changes = compare_entries(
            entries(Key1=("Same", "")),
            entries(Key1=("Same", None)),
            include_unchanged=True,
        )
        assert changes[0].change_type == ChangeType.UNCHANGED

    def test_unchanged_excluded_by_default(self):
        assert compare_entries(entries(Key1="V"), entries(Key1="V")) == []

    def test_unchanged_included_on_request(self):
        changes = compare_entries(entries(Key1="V"), entries(Key1="V"), include_unchanged=True)
        assert [(c.key, c.change_type) for c in changes] == [("Key1", ChangeType.UNCHANGED)]

    def test_order_is_a_keys_then_new_b_keys(self):
        a = entries(Zeta="1", Alpha="1", Mid="1")
        b = entries(New2="2", Alpha="2", New1="2")
        
        changes = compare_entries(a, b)
        
        assert [c.key for c in changes] == ["Zeta", "Alpha", "Mid", "New2", "New1"]

    def test_symmetry(self):
        """Swapping sides swaps Added/Deleted and old/new values."""
        a = entries(Key1="A", Key2="same", Key3=("v", "c1"), OnlyA="x")
        b = entries(Key1="B", Key2="same", Key3=("v", "c2"), OnlyB="y")
        
        forward = {c.key: c for c in compare_entries(a, b)}
        backward = {c.key: c for c in compare_entries(b, a)}
        
        assert forward["OnlyA"].change_type == ChangeType.DELETED
        assert backward["OnlyA"].change_type == ChangeType.ADDED
        assert forward["OnlyB"].change_type == ChangeType.ADDED
        assert backward["OnlyB"].change_type == ChangeType.DELETED
        
        assert (forward["Key1"].old_value, forward["Key1"].new_value) == ("A", "B")
        assert (backward["Key1"].old_value, backward["Key1"].new_value) == ("B", "A")
        assert (forward["Key3"].old_comment, forward["Key3"].new_comment) == ("c1", "c2")
        assert (backward["Key3"].old_comment, backward["Key3"].new_comment) == ("c2", "c1")
        assert set(forward) == set(backward)


@pytest.mark.unit
class TestDiffEngine:
    """Tests for DiffEngine on files."""

    def test_added_statistics(self, make_resx):
        old = make_resx({"Key1": "Value1"}, name="Old.resx")
        new = make_resx({"Key1": "Value1", "Key2": "Value2"}, name="New.resx")
        
        result = DiffEngine().compare(record(1), record(2), old, new)
        
        assert result.statistics.added_count == 1
        assert result.statistics.total_changes == 1
        assert result.statistics.unchanged_count == 1
        assert result.statistics.total_keys == 2
        assert result.changed_keys() == ["Key2"]

    def test_statistics_tally_every_class(self, make_resx):
        old = make_resx({
            "Same": "s",
            "Mod": "old",
            "Gone": "g",
            "Note": ("n", "before"),
        }, name="Old.resx")
        new = make_resx({
            "Same": "s",
            "Mod": "new",
            "Note": ("n", "after"),
            "Fresh": "f",
        }, name="New.resx")
        
        result = DiffEngine().compare(record(1), record(2), old, new, include_unchanged=True)
        stats = result.statistics
        
        assert stats.added_count == 1
        assert stats.deleted_count == 1
        assert stats.modified_count == 1
        assert stats.comment_changed_count == 1
        assert stats.unchanged_count == 1
        assert stats.total_changes == 4
        assert stats.total_keys == 5
        assert len(result.changes) == 5

    def test_compare_with_current(self, make_resx, make_json_resource):
        backup = make_json_resource({"Key1": "Old"}, name="backup.json")
        current = make_json_resource({"Key1": "New"}, name="current.json")
        
        result = DiffEngine().compare_with_current(record(3), backup, current)
        
        assert result.version_a.version == 3
        assert result.version_b.operation == "current"
        assert result.version_b.version == 4
        assert result.changes[0].change_type == ChangeType.MODIFIED

    def test_to_dict(self, make_resx):
        old = make_resx({"Key1": "OldValue"}, name="Old.resx")
        new = make_resx({"Key1": "NewValue"}, name="New.resx")
        
        data = DiffEngine().compare(record(1), record(2), old, new).to_dict()
        
        assert data["versionA"]["version"] == 1
        assert data["statistics"]["modifiedCount"] == 1
        assert data["statistics"]["totalChanges"] == 1
        assert data["changes"][0] == {
            "key": "Key1",
            "changeType": "Modified",
            "oldValue": "OldValue",
            "newValue": "NewValue",
            "oldComment": None,
            "newComment": None,
        }
