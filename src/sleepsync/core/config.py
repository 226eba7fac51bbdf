"""
Hierarchical configuration management.

Loads configuration from multiple sources with this precedence (highest wins):
    1. Environment variables (PREFIX_SECTION__KEY)
    2. Config file (YAML or JSON)
    3. Built-in defaults

Usage:
    config = Config(config_file="~/.sleepsync/config.yaml")

    config.get("journal.folder")          # dot-notation access
    config.get("sync.auto_sync_minutes")
    settings = config.validated()         # typed SleepSyncSettings
"""

from __future__ import annotations

import copy
import json
import os
from typing import TYPE_CHECKING, Any

import yaml

from sleepsync.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from sleepsync.core.config_schema import SleepSyncSettings

_DEFAULT_ENV_PREFIX = "SLEEPSYNC_"
_DEFAULT_DATA_DIR_NAME = ".sleepsync"

DEFAULT_CONFIG: dict[str, Any] = {
    "vault": {
        "path": "~/vault",
    },
    "users": [],
    "default_user": "",
    "journal": {
        "enabled": True,
        "folder": "Journal",
        "subfolder": "YYYY/YYYY-MM",
        "name_format": "YYYY-MM-DD_ddd",
        "template": "",
        "sleep_entry": "(time:: <mtime>) (type:: 💤) Asleep",
        "wake_entry": "(time:: <mtime>) (type:: ⏰) Awake ((duration:: <duration>) hours of sleep)",
        "prefix_letter": "s",
        "per_day": True,
    },
    "running_log": {
        "enabled": False,
        "folder": "Sleep",
        "subfolder": "",
        "name_format": "sleep-tracking",
        "template": "",
        "sleep_entry": "| <date> | <time> (<mtime>) | 💤 Asleep | |",
        "wake_entry": "| <date> | <time> (<mtime>) | ⏰ Awake | <duration> |",
        "prefix_letter": "",
        "per_day": False,
    },
    "measurements": {
        "enabled": True,
        "folder": "Sleep",
        "template": "",
        "entry": "| <date> | <user> | <measure> <unit> |",
        "name_format": "<measure>",
        "track": [
            {"name": "Total Sleep", "kind": "duration", "unit": "hours"},
            {"name": "Deep Sleep", "kind": "duration", "unit": "hours"},
            {"name": "Sleep Quality", "kind": "quality", "unit": "percent"},
        ],
    },
    "session_notes": {
        "folder": "Sleep",
    },
    "sources": {
        "calendar": {
            "enabled": False,
            "plugin": "calendar",
            "url": "",
            "summary_marker": "Sleep as Android",
        },
        "google_fit": {
            "enabled": False,
            "plugin": "google_fit",
            "callback_port": 16321,
            "callback_timeout": 300,
            "min_request_interval": 1.0,
        },
    },
    "sync": {
        "default_days": 7,
        "auto_sync_minutes": 60,
    },
}


class Config:
    """
    Central configuration manager.

    Loads and merges configuration from defaults, a config file, and
    environment variables. Env vars use double-underscore to denote nesting:
    SLEEPSYNC_JOURNAL__FOLDER=Daily -> config["journal"]["folder"] = "Daily"
    """

    def __init__(
        self,
        config_file: str | None = None,
        env_prefix: str = _DEFAULT_ENV_PREFIX,
        data_dir: str | None = None,
        defaults: dict[str, Any] | None = None,
    ):
        """
        Args:
            config_file: Path to YAML or JSON configuration file.
            env_prefix: Prefix for environment variable overrides.
            data_dir: Base directory for tokens and logs. Defaults to ~/.sleepsync.
            defaults: Additional default values to merge.
        """
        self.config_file = os.path.expanduser(config_file) if config_file else None
        self.env_prefix = env_prefix or ""
        self._data_dir = data_dir or os.path.join("~", _DEFAULT_DATA_DIR_NAME)
        self._extra_defaults = defaults or {}
        self.config_data: dict[str, Any] = {}

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from all sources."""
        self.config_data = self._get_default_config()

        if self._extra_defaults:
            self._update_dict(self.config_data, self._extra_defaults)

        if self.config_file and os.path.exists(self.config_file):
            file_config = self._load_file(self.config_file)
            self._update_dict(self.config_data, file_config)

        # Env vars override everything
        self._load_from_env()

    def _get_default_config(self) -> dict[str, Any]:
        data_dir = os.path.expanduser(self._data_dir)
        config = copy.deepcopy(DEFAULT_CONFIG)
        config["paths"] = {
            "data_dir": data_dir,
            "token_file": os.path.join(data_dir, "google_token.yaml"),
            "log_dir": os.path.join(data_dir, "logs"),
        }
        return config

    @staticmethod
    def _load_file(path: str) -> dict[str, Any]:
        """Load a YAML or JSON config file."""
        ext = os.path.splitext(path)[1].lower()
        try:
            with open(path, encoding="utf-8") as f:
                if ext in (".yaml", ".yml"):
                    return yaml.safe_load(f) or {}
                elif ext == ".json":
                    return json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not parse config file {path}: {e}") from e
        return {}

    def _update_dict(self, target: dict, source: dict) -> None:
        """Recursively merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._update_dict(target[key], value)
            else:
                target[key] = value

    def _load_from_env(self) -> None:
        """Override config values from environment variables."""
        if not self.env_prefix:
            return
        for env_key, env_value in os.environ.items():
            if not env_key.startswith(self.env_prefix):
                continue
            config_key = env_key[len(self.env_prefix) :].lower()
            key_parts = config_key.split("__")

            current = self.config_data
            for part in key_parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]
            current[key_parts[-1]] = env_value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a config value by dot-notation path.

        Args:
            key_path: e.g. "journal.folder", "sources.calendar.url"
            default: Returned when key is not found.
        """
        parts = key_path.split(".")
        current = self.config_data
        for part in parts:
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def set(self, key_path: str, value: Any) -> None:
        """Set a config value by dot-notation path, creating intermediate dicts."""
        parts = key_path.split(".")
        current = self.config_data
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def validated(self) -> SleepSyncSettings:
        """Validate the merged data and return typed settings."""
        from pydantic import ValidationError

        from sleepsync.core.config_schema import SleepSyncSettings

        try:
            return SleepSyncSettings.model_validate(self.config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
