"""
Unit tests for logging helpers.
"""

import json
import logging

import pytest

from lrm.core.logging import (
    BackupContextFilter,
    BackupLogContext,
    HumanReadableFormatter,
    StructuredFormatter,
)


def make_record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("lrm.test", logging.INFO, __file__, 1, message, None, None)


@pytest.mark.unit
class TestBackupLogContext:
    """Tests for context propagation."""

    def test_empty_outside_context(self):
        assert BackupLogContext.get_current() == {}

    def test_nested_contexts_merge(self):
        with BackupLogContext(file_name="Strings.resx", operation="restore"):
            with BackupLogContext(version=3):
                assert BackupLogContext.get_current() == {
                    "file_name": "Strings.resx",
                    "operation": "restore",
                    "version": 3,
                }
            assert "version" not in BackupLogContext.get_current()
        assert BackupLogContext.get_current() == {}

    def test_filter_copies_context(self):
        record = make_record()
        with BackupLogContext(file_name="Strings.resx", version=2):
            BackupContextFilter().filter(record)
        
        assert record.file_name == "Strings.resx"
        assert record.version == 2


@pytest.mark.unit
class TestFormatters:
    """Tests for log formatters."""

    def test_human_readable_appends_context(self):
        record = make_record("Created backup")
        record.file_name = "Strings.resx"
        record.version = 4
        
        line = HumanReadableFormatter(include_timestamp=False).format(record)
        
        assert line == "lrm.test - INFO - Created backup [file_name=Strings.resx version=4]"

    def test_human_readable_without_context(self):
        line = HumanReadableFormatter(include_timestamp=False).format(make_record("plain"))
        assert line == "lrm.test - INFO - plain"

    def test_structured_is_json(self):
        record = make_record("Restored")
        record.operation = "restore"
        
        data = json.loads(StructuredFormatter().format(record))
        
        assert data["message"] == "Restored"
        assert data["level"] == "INFO"
        assert data["operation"] == "restore"
        assert "timestamp" in data
