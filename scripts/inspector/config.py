"""
Configuration management for the inspector.

Provides configuration with:
- JSON file loading with defaults
- Environment variable overrides
- Dot-notation access
- Per-instance batch settings (no shared global state)
"""

import copy
import json
import os
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional


DEFAULT_CONFIG_PATH = Path("~/.inspector/inspector_config.json")
DEFAULT_ENDPOINT = "https://api.avo.app/inspector/v1/track"
LIB_VERSION = "1.0.0"


class InspectorEnv(Enum):
    """Deployment environment of the host application."""
    PROD = "prod"
    DEV = "dev"
    STAGING = "staging"

    @classmethod
    def parse(cls, value: Any) -> Optional["InspectorEnv"]:
        """
        Parse an environment name or instance.

        Args:
            value: InspectorEnv, its string value, or None/""

        Returns:
            InspectorEnv, or None when no environment was given

        Raises:
            ValueError: If value names an unknown environment
        """
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass
class BatchConfig:
    """Batching thresholds for one Inspector instance."""
    batch_size_threshold: int = 30
    batch_flush_interval_seconds: float = 30.0
    max_queue_size: int = 1000
    last_flush_at: Optional[float] = None  # epoch seconds; None until restored or first flush

    def __post_init__(self):
        if self.batch_size_threshold < 1:
            raise ValueError("batch_size_threshold must be at least 1")
        if self.batch_flush_interval_seconds < 0:
            raise ValueError("batch_flush_interval_seconds must not be negative")
        if self.max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")


class InspectorConfig:
    """
    Configuration loader for the inspector.

    Usage:
        config = InspectorConfig()
        config.load()

        batch = config.batch_config(InspectorEnv.PROD)
        storage_dir = config.get('storage.dir')
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration (not loaded until first access).

        Args:
            config_path: Path to inspector_config.json (optional)
        """
        self.config_path = config_path
        self._config = None
        self._config_loaded = False

    def load(self, config_path: Optional[Path] = None):
        """
        Load configuration from file.

        Args:
            config_path: Path to inspector_config.json (optional)
        """
        if self._config_loaded:
            return  # Already loaded

        config_path = config_path or self.config_path
        if config_path is None:
            config_path = Path(os.environ.get("INSPECTOR_CONFIG", DEFAULT_CONFIG_PATH))
        config_path = Path(config_path).expanduser()

        self._config = self._get_defaults()
        if config_path.exists():
            try:
                with open(config_path) as f:
                    self._merge(self._config, json.load(f))
            except Exception as e:
                print(f"Warning: Failed to load config from {config_path}: {e}",
                      file=sys.stderr)
                self._config = self._get_defaults()

        # Apply environment variable overrides
        self._apply_env_overrides()

        self._config_loaded = True

    def _get_defaults(self) -> dict:
        """
        Get default configuration.

        Returns:
            Dictionary with default settings
        """
        return {
            "version": "1.0.0",
            "batch": {
                "size": 30,
                "flush_interval_sec": 30.0,
                "dev_flush_interval_sec": 1.0,
                "max_queue_size": 1000
            },
            "session": {
                "inactivity_threshold_sec": 300.0
            },
            "storage": {
                "dir": "~/.inspector/storage",
                "hydration_timeout_seconds": 2.0
            },
            "delivery": {
                "endpoint": DEFAULT_ENDPOINT,
                "timeout_sec": 10.0
            },
            "schema": {
                "max_depth": 32
            },
            "logging": {
                "enabled": None  # None = follow environment (on in dev)
            }
        }

    def _merge(self, target: dict, source: dict):
        """Deep merge source dictionary into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge(target[key], value)
            else:
                target[key] = value

    def _apply_env_overrides(self):
        """Apply environment variable overrides to configuration."""
        # INSPECTOR_BATCH_SIZE=50
        if "INSPECTOR_BATCH_SIZE" in os.environ:
            try:
                self._config["batch"]["size"] = int(os.environ["INSPECTOR_BATCH_SIZE"])
            except ValueError:
                print("Warning: Ignoring non-integer INSPECTOR_BATCH_SIZE", file=sys.stderr)

        if "INSPECTOR_BATCH_FLUSH_SECONDS" in os.environ:
            try:
                self._config["batch"]["flush_interval_sec"] = float(
                    os.environ["INSPECTOR_BATCH_FLUSH_SECONDS"]
                )
            except ValueError:
                print("Warning: Ignoring non-numeric INSPECTOR_BATCH_FLUSH_SECONDS",
                      file=sys.stderr)

        if "INSPECTOR_STORAGE_DIR" in os.environ:
            self._config["storage"]["dir"] = os.environ["INSPECTOR_STORAGE_DIR"]

        if "INSPECTOR_ENDPOINT" in os.environ:
            self._config["delivery"]["endpoint"] = os.environ["INSPECTOR_ENDPOINT"]

        # INSPECTOR_LOGGING_ENABLED=false
        if "INSPECTOR_LOGGING_ENABLED" in os.environ:
            value = os.environ["INSPECTOR_LOGGING_ENABLED"].lower()
            self._config["logging"]["enabled"] = value in ("true", "1", "yes")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value with dot notation.

        Args:
            key: Configuration key (e.g., "batch.size")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if not self._config_loaded:
            self.load()

        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def set(self, key: str, value: Any):
        """
        Set configuration value (runtime only, not persisted).

        Args:
            key: Configuration key (dot notation)
            value: Value to set
        """
        if not self._config_loaded:
            self.load()

        keys = key.split('.')
        config = self._config

        # Navigate to parent
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def batch_config(self, env: InspectorEnv) -> BatchConfig:
        """
        Build the batch settings for one Inspector.

        Args:
            env: Environment of the Inspector (dev flushes every second)

        Returns:
            New BatchConfig instance
        """
        if env is InspectorEnv.DEV:
            interval = self.get("batch.dev_flush_interval_sec", 1.0)
        else:
            interval = self.get("batch.flush_interval_sec", 30.0)

        return BatchConfig(
            batch_size_threshold=int(self.get("batch.size", 30)),
            batch_flush_interval_seconds=float(interval),
            max_queue_size=int(self.get("batch.max_queue_size", 1000)),
        )

    def logging_enabled(self, env: InspectorEnv) -> bool:
        """Whether verbose logging starts enabled for this environment."""
        enabled = self.get("logging.enabled")
        if enabled is None:
            return env is InspectorEnv.DEV
        return bool(enabled)

    def get_all(self) -> dict:
        """
        Get entire configuration dictionary.

        Returns:
            Deep copy of the full configuration
        """
        if not self._config_loaded:
            self.load()
        return copy.deepcopy(self._config)
