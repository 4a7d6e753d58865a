"""
Configuration loading for the backup engine.
"""

from .config_loader import BackupConfig, DEFAULT_CONFIG

__all__ = ["BackupConfig", "DEFAULT_CONFIG"]
