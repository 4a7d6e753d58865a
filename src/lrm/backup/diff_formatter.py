"""
Renderers for diff results: plain text, JSON and a standalone HTML report.
"""

import html
import json
from typing import List, Optional

from .diff import ChangeType, DiffResult
from .models import BackupRecord

MAX_VALUE_LENGTH = 100

TEXT_MARKERS = {
    ChangeType.ADDED: "+ ",
    ChangeType.MODIFIED: "~ ",
    ChangeType.DELETED: "- ",
    ChangeType.COMMENT_CHANGED: "# ",
    ChangeType.UNCHANGED: "  ",
}

HTML_CLASSES = {
    ChangeType.ADDED: "added",
    ChangeType.MODIFIED: "modified",
    ChangeType.DELETED: "deleted",
    ChangeType.COMMENT_CHANGED: "comment",
    ChangeType.UNCHANGED: "",
}

FORMATS = ("text", "json", "html")

_HTML_STYLE = """\
    body { font-family: Arial, sans-serif; margin: 20px; }
    h1 { color: #333; }
    .stats { background: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0; }
    .stats td { padding: 5px 15px; }
    .change { margin: 10px 0; padding: 10px; border-left: 4px solid #ccc; }
    .added { border-color: #28a745; background: #d4edda; }
    .modified { border-color: #ffc107; background: #fff3cd; }
    .deleted { border-color: #dc3545; background: #f8d7da; }
    .comment { border-color: #17a2b8; background: #d1ecf1; }
    .key { font-weight: bold; color: #333; }
    .value { font-family: monospace; color: #666; margin: 5px 0; }
    .old { text-decoration: line-through; color: #999; }"""


def truncate_value(value: Optional[str], max_length: int = MAX_VALUE_LENGTH) -> str:
    """Shorten long values to ``max_length`` characters plus an ellipsis."""
    if not value:
        return ""
    if len(value) <= max_length:
        return value
    return value[:max_length] + "..."


def _version_label(record: Optional[BackupRecord]) -> str:
    if record is None:
        return "?"
    if record.operation == "current":
        return "Current"
    return f"Version {record.version}"


def _time_label(record: Optional[BackupRecord]) -> str:
    if record is None:
        return "?"
    return record.timestamp.strftime("%Y-%m-%d %H:%M:%S")


def format_as_text(diff: DiffResult) -> str:
    """Plain-text report with one ``+ ~ - #`` marked block per change."""
    stats = diff.statistics
    lines: List[str] = [
        f"Diff: {_version_label(diff.version_a)} -> {_version_label(diff.version_b)}",
        f"Time: {_time_label(diff.version_a)} -> {_time_label(diff.version_b)}",
        "",
        "Statistics:",
        f"  Total keys: {stats.total_keys}",
        f"  Added:      {stats.added_count}",
        f"  Modified:   {stats.modified_count}",
        f"  Deleted:    {stats.deleted_count}",
        f"  Comments:   {stats.comment_changed_count}",
        f"  Unchanged:  {stats.unchanged_count}",
        "",
    ]
    
    if diff.changes:
        lines.extend(["Changes:", ""])
    
    for change in diff.changes:
        lines.append(f"{TEXT_MARKERS[change.change_type]}{change.key}")
        if change.change_type == ChangeType.ADDED:
            lines.append(f"    New: {truncate_value(change.new_value)}")
            if change.new_comment:
                lines.append(f"    Comment: {change.new_comment}")
        elif change.change_type == ChangeType.DELETED:
            lines.append(f"    Old: {truncate_value(change.old_value)}")
        elif change.change_type == ChangeType.MODIFIED:
            lines.append(f"    Old: {truncate_value(change.old_value)}")
            lines.append(f"    New: {truncate_value(change.new_value)}")
        elif change.change_type == ChangeType.COMMENT_CHANGED:
            lines.append(f"    Old comment: {change.old_comment or ''}")
            lines.append(f"    New comment: {change.new_comment or ''}")
        lines.append("")
    
    return "\n".join(lines) + "\n"


def format_as_json(diff: DiffResult) -> str:
    return json.dumps(diff.to_dict(), indent=2, ensure_ascii=False)


def format_as_html(diff: DiffResult) -> str:
    """Standalone HTML report; every value is escaped."""
    esc = lambda s: html.escape(s or "")
    stats = diff.statistics
    
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '  <meta charset="utf-8">',
        "  <title>Backup Diff Report</title>",
        "  <style>",
        _HTML_STYLE,
        "  </style>",
        "</head>",
        "<body>",
        "  <h1>Backup Diff Report</h1>",
        f"  <p><strong>{_version_label(diff.version_a)}</strong> ({_time_label(diff.version_a)}) -&gt; "
        f"<strong>{_version_label(diff.version_b)}</strong> ({_time_label(diff.version_b)})</p>",
        '  <div class="stats">',
        "    <h2>Statistics</h2>",
        "    <table>",
        f"      <tr><td>Total keys:</td><td><strong>{stats.total_keys}</strong></td></tr>",
        f"      <tr><td>Added:</td><td><strong>{stats.added_count}</strong></td></tr>",
        f"      <tr><td>Modified:</td><td><strong>{stats.modified_count}</strong></td></tr>",
        f"      <tr><td>Deleted:</td><td><strong>{stats.deleted_count}</strong></td></tr>",
        f"      <tr><td>Comment changes:</td><td><strong>{stats.comment_changed_count}</strong></td></tr>",
        f"      <tr><td>Unchanged:</td><td>{stats.unchanged_count}</td></tr>",
        "    </table>",
        "  </div>",
    ]
    
    if diff.changes:
        lines.append("  <h2>Changes</h2>")
    
    for change in diff.changes:
        lines.append(f'  <div class="change {HTML_CLASSES[change.change_type]}">')
        lines.append(f'    <div class="key">{esc(change.key)}</div>')
        if change.change_type == ChangeType.ADDED:
            lines.append(f'    <div class="value">+ {esc(change.new_value)}</div>')
            if change.new_comment:
                lines.append(f"    <div><em>Comment: {esc(change.new_comment)}</em></div>")
        elif change.change_type == ChangeType.DELETED:
            lines.append(f'    <div class="value old">- {esc(change.old_value)}</div>')
        elif change.change_type == ChangeType.MODIFIED:
            lines.append(f'    <div class="value old">- {esc(change.old_value)}</div>')
            lines.append(f'    <div class="value">+ {esc(change.new_value)}</div>')
        elif change.change_type == ChangeType.COMMENT_CHANGED:
            lines.append(f'    <div class="value old"><em>- {esc(change.old_comment)}</em></div>')
            lines.append(f'    <div class="value"><em>+ {esc(change.new_comment)}</em></div>')
        lines.append("  </div>")
    
    lines.extend(["</body>", "</html>"])
    return "\n".join(lines) + "\n"


def format_diff(diff: DiffResult, output_format: str = "text") -> str:
    """
    Render a diff in one of ``FORMATS``.
    
    Raises:
        ValueError: If the format is unknown
    """
    if output_format == "text":
        return format_as_text(diff)
    if output_format == "json":
        return format_as_json(diff)
    if output_format == "html":
        return format_as_html(diff)
    raise ValueError(f"Unknown diff format: {output_format}. Use one of: {', '.join(FORMATS)}")
