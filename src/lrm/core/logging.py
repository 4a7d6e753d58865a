"""
Logging utilities for the localization resource manager.

Provides human-readable and JSON-structured formatters plus a context
manager that tags log records with the backup being worked on
(file name → version → operation).
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ("file_name", "version", "operation")


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.
    
    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Backup context fields if present (file_name, version, operation)
    - Exception text if the record carries one
    """
    
    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp
    
    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        
        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()
        
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        
        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with backup context.
    
    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [file_name=X version=Y]
    """
    
    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)
    
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        
        context_parts = []
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")
        
        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


class BackupContextFilter(logging.Filter):
    """Copies the active BackupLogContext onto every record that passes."""
    
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in BackupLogContext.get_current().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def configure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    structured: bool = False,
) -> None:
    """
    Configure logging for the lrm package.
    
    Attaches a single stream handler to the ``lrm`` logger. Calling it again
    only adjusts the level.
    
    Args:
        level: Logging level (default: INFO)
        format_string: Custom format string (ignored if structured=True)
        include_timestamp: Whether to include timestamp in log messages
        structured: If True, output JSON-structured logs; if False, human-readable
    """
    lrm_logger = logging.getLogger("lrm")
    lrm_logger.setLevel(level)
    
    if not lrm_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        
        if structured:
            formatter = StructuredFormatter(include_timestamp=include_timestamp)
        elif format_string:
            formatter = logging.Formatter(format_string)
        else:
            formatter = HumanReadableFormatter(include_timestamp=include_timestamp)
        
        handler.setFormatter(formatter)
        handler.addFilter(BackupContextFilter())
        lrm_logger.addHandler(handler)
    else:
        for handler in lrm_logger.handlers:
            handler.setLevel(level)


class BackupLogContext:
    """
    Context manager for tagging log records with the backup being handled.
    
    Example:
        >>> with BackupLogContext(file_name="Strings.resx", operation="restore"):
        ...     logger.info("Restoring")  # record carries file_name and operation
    """
    
    _state = threading.local()
    
    def __init__(
        self,
        file_name: Optional[str] = None,
        version: Optional[int] = None,
        operation: Optional[str] = None,
    ):
        self.context: Dict[str, Any] = {
            "file_name": file_name,
            "version": version,
            "operation": operation,
        }
        self.context = {k: v for k, v in self.context.items() if v is not None}
        self._previous: Optional["BackupLogContext"] = None
    
    def __enter__(self) -> "BackupLogContext":
        self._previous = getattr(BackupLogContext._state, "current", None)
        BackupLogContext._state.current = self
        return self
    
    def __exit__(self, *args) -> None:
        BackupLogContext._state.current = self._previous
    
    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current backup context (merged with enclosing contexts)."""
        merged: Dict[str, Any] = {}
        chain = []
        node = getattr(cls._state, "current", None)
        while node is not None:
            chain.append(node)
            node = node._previous
        for ctx in reversed(chain):
            merged.update(ctx.context)
        return merged
