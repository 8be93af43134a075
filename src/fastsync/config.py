"""Configuration management for fastsync.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.

CRITICAL: This module must have NO network dependencies.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .validation import ValidationError, validate_base_url, validate_positive_number

logger = logging.getLogger(__name__)

__all__ = ["Config", "DEFAULT_CONFIG_DIR"]

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "fastsync"

DEFAULT_SYNC_CONFIG: Dict[str, Any] = {
    "interval_seconds": 300,
    "min_interval_seconds": 60,
    "status_reset_seconds": 3,
    "tombstone_ttl_days": 30,
}


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
        config_file: Path to config.json inside config_dir
        config_data: The loaded configuration
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/fastsync/
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.config_data = self.load_config()

    def _defaults(self) -> Dict[str, Any]:
        return {
            "database_file": str(self.config_dir / "fastsync.db"),
            "api_base_url": "http://localhost:3000",
            "request_timeout": 30,
            "sync": copy.deepcopy(DEFAULT_SYNC_CONFIG),
        }

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, filling in defaults for missing keys.

        Creates the file with defaults if it doesn't exist. A file that is not
        valid JSON is logged and replaced by defaults in memory.
        """
        config = self._defaults()
        if not self.config_file.exists():
            self.save_config(config)
            return config

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read {self.config_file}: {e}. Using defaults.")
            return config

        if not isinstance(loaded, dict):
            logger.warning(f"Ignoring {self.config_file}: expected a JSON object")
            return config

        sync_section = loaded.pop("sync", None)
        config.update(loaded)
        if isinstance(sync_section, dict):
            config["sync"].update(sync_section)
        return config

    def save_config(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Write configuration to file."""
        if config is not None:
            self.config_data = config
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.config_data, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        value = self.config_data.get(key)
        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file.

        Raises:
            ValidationError: If the value is invalid for a known key
        """
        if key == "api_base_url":
            value = validate_base_url(value)
        elif key == "request_timeout":
            value = validate_positive_number(value, key)
        elif key == "sync":
            raise ValidationError(key, "use set_sync_value() for sync settings")
        self.config_data[key] = value
        self.save_config()

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    # ===== Convenience accessors =====

    def get_database_file(self) -> Path:
        return Path(self.get("database_file"))

    def get_api_base_url(self) -> str:
        return str(self.get("api_base_url")).rstrip("/")

    def get_request_timeout(self) -> float:
        return float(self.get("request_timeout", 30))

    def get_sync_config(self) -> Dict[str, Any]:
        """Get the sync section (interval, throttle, status delay, tombstone TTL)."""
        return dict(self.config_data.get("sync") or DEFAULT_SYNC_CONFIG)

    def set_sync_value(self, key: str, value: Any) -> None:
        """Set one sync setting and save to file."""
        if key not in DEFAULT_SYNC_CONFIG:
            raise ValidationError(key, "unknown sync setting")
        number = validate_positive_number(value, key)
        self.config_data.setdefault("sync", copy.deepcopy(DEFAULT_SYNC_CONFIG))[key] = number
        self.save_config()
