"""
Localization resource manager.

Tooling for translation resource files (resx, JSON). The ``backup``
subpackage protects those files against destructive edits with versioned,
content-hashed snapshots, tiered rotation, key-level diffs and restore.
"""

__version__ = "0.1.0"
