"""
Configuration loader for the backup engine.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..backup.rotation import RotationPolicy
from ..core.exceptions import ConfigError

logger = logging.getLogger(__name__)

ROTATION_FIELDS = (
    "keep_all_for_hours",
    "keep_daily_for_days",
    "keep_weekly_for_weeks",
    "keep_monthly_for_months",
    "max_total_backups",
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "backup": {
        "root_dir": ".lrm/backups",
        "lock_timeout_seconds": 10,
        "verify_on_restore": True,
        "create_backup_before_restore": True,
        "rotation": {
            "preset": "default",
        },
    },
    "archive": {
        "key_env_var": "LRM_BACKUP_ENCRYPTION_KEY",
    },
    "logging": {
        "level": "INFO",
        "structured": False,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class BackupConfig:
    """
    Configuration for the backup engine.
    
    Loads a YAML file over the built-in defaults, then applies
    environment overrides (LRM_BACKUP_DIR, LRM_BACKUP_MAX_TOTAL, LRM_LOG_LEVEL).
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize configuration.
        
        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = _merge(DEFAULT_CONFIG, self._load_config() if self.config_path else {})
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")
        
        logger.info(f"Loading config from: {self.config_path}")
        
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
        
        if config is not None and not isinstance(config, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        return config or {}

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        backup = self.config.setdefault("backup", {})
        
        root_dir = os.environ.get("LRM_BACKUP_DIR")
        if root_dir:
            backup["root_dir"] = root_dir
        
        max_total = os.environ.get("LRM_BACKUP_MAX_TOTAL")
        if max_total:
            try:
                backup.setdefault("rotation", {})["max_total_backups"] = int(max_total)
            except ValueError as e:
                raise ConfigError(f"LRM_BACKUP_MAX_TOTAL must be an integer, got '{max_total}'") from e
        
        log_level = os.environ.get("LRM_LOG_LEVEL")
        if log_level:
            self.config.setdefault("logging", {})["level"] = log_level.upper()

    def get_backup_config(self) -> Dict[str, Any]:
        """Get backup configuration."""
        return self.config.get("backup", {})

    def get_archive_config(self) -> Dict[str, Any]:
        """Get archive configuration."""
        return self.config.get("archive", {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.config.get("logging", {})

    @property
    def backup_root(self) -> Path:
        return Path(self.get("backup.root_dir", ".lrm/backups"))

    @property
    def lock_timeout(self) -> float:
        return float(self.get("backup.lock_timeout_seconds", 10))

    def get_rotation_policy(self) -> RotationPolicy:
        """
        Build the rotation policy: the preset, then any explicit tier values.
        
        Raises:
            ConfigError: On an unknown preset or a negative/non-integer value
        """
        rotation = self.get("backup.rotation", {}) or {}
        policy = RotationPolicy.from_preset(rotation.get("preset", "default"))
        
        values = policy.to_dict()
        for name in ROTATION_FIELDS:
            if rotation.get(name) is None:
                continue
            try:
                values[name] = int(rotation[name])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"backup.rotation.{name} must be an integer") from e
        
        return RotationPolicy(**values)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config
        
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        
        return value if value is not None else default
