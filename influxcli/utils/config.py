"""Configuration management for the influx shell."""
from __future__ import annotations
from typing import Dict, Any, Optional
import os
import json
import logging

from influxcli.utils.constants import (
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_FORMAT, DEFAULT_PRECISION,
    DEFAULT_CONSISTENCY, DEFAULT_PPS, HISTORY_FILE,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "host": DEFAULT_HOST,
    "port": DEFAULT_PORT,
    "username": "",
    "password": "",
    "database": "",
    "ssl": False,
    "unsafe_ssl": False,
    "format": DEFAULT_FORMAT,
    "precision": DEFAULT_PRECISION,
    "consistency": DEFAULT_CONSISTENCY,
    "pretty": False,
    "pps": DEFAULT_PPS,
    "history_file": HISTORY_FILE,
}

# Environment variable -> config key
ENV_OVERRIDES = {
    "INFLUX_HOST": "host",
    "INFLUX_PORT": "port",
    "INFLUX_USERNAME": "username",
    "INFLUX_PASSWORD": "password",
    "INFLUX_DATABASE": "database",
}


class Config:
    """Layered settings: defaults, then the JSON config file, then environment."""

    def __init__(self, config_file: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        self.settings: Dict[str, Any] = DEFAULT_CONFIG.copy()
        self.config_file = os.path.expanduser(config_file or "~/.influxcli.json")
        self._load_config()
        self._apply_env(os.environ if environ is None else environ)

    def _load_config(self) -> None:
        """Load configuration from file if exists."""
        if not os.path.exists(self.config_file):
            return
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load config %s: %s", self.config_file, e)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: expected a JSON object", self.config_file)
            return
        unknown = sorted(set(data) - set(DEFAULT_CONFIG))
        if unknown:
            logger.warning("Unknown config keys ignored: %s", ", ".join(unknown))
        self.settings.update({k: v for k, v in data.items() if k in DEFAULT_CONFIG})

    def _apply_env(self, environ: Dict[str, str]) -> None:
        for var, key in ENV_OVERRIDES.items():
            value = environ.get(var)
            if not value:
                continue
            if key == "port":
                try:
                    self.settings[key] = int(value)
                except ValueError:
                    logger.warning("Ignoring %s=%r: not an integer", var, value)
                continue
            self.settings[key] = value

    def save(self) -> None:
        """Save current configuration to file (password excluded)."""
        data = {k: v for k, v in self.settings.items() if k != "password"}
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning("Failed to save config: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self.settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self.settings[key] = value

    def history_path(self) -> str:
        return os.path.expanduser(self.settings.get("history_file") or HISTORY_FILE)
