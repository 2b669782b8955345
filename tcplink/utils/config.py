"""
tcplink - Configuration Management

Handles loading, saving, and validating client settings.
Settings persist to ~/.config/tcplink/settings.json
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "server_address": "192.168.4.1",
    "server_port": 8080,
    "connect_timeout": 5.0,
    "poll_interval": 0.05,
    "receive_chunk_size": 1024,
    "start_view": "pickup",
}

VIEWS = ("pickup", "console")


def _valid_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 65535


def _positive_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and value > 0)


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


# Per-key validators; a value failing its validator is rejected by set()
_VALIDATORS: Dict[str, Callable[[Any], bool]] = {
    "server_address": lambda v: isinstance(v, str) and bool(v.strip()),
    "server_port": _valid_port,
    "connect_timeout": _positive_number,
    "poll_interval": _positive_number,
    "receive_chunk_size": _positive_int,
    "start_view": lambda v: v in VIEWS,
}


def default_config_path() -> Path:
    return Path.home() / ".config" / "tcplink" / "settings.json"


class ClientConfig:
    """Configuration manager for the tcplink client."""

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path or default_config_path()
        self._settings: Dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self) -> Path:
        return self._config_path

    def load(self) -> None:
        """Load settings from disk, falling back to defaults."""
        if not self._config_path.exists():
            logger.info("No settings file found, using defaults")
            return
        try:
            with open(self._config_path, "r") as f:
                saved = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load settings: %s, using defaults", e)
            return
        if not isinstance(saved, dict):
            logger.warning("Settings file %s is not a JSON object, using defaults",
                           self._config_path)
            return
        for key, value in saved.items():
            self.set(key, value)
        logger.info("Loaded settings from %s", self._config_path)

    def save(self) -> None:
        """Persist current settings to disk."""
        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._config_path, "w") as f:
                json.dump(self._settings, f, indent=2)
            logger.info("Saved settings to %s", self._config_path)
        except OSError as e:
            logger.error("Failed to save settings: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> bool:
        """Store *value* if *key* is known and the value is valid."""
        if key not in DEFAULT_CONFIG:
            logger.debug("Ignoring unknown setting %r", key)
            return False
        validator = _VALIDATORS.get(key)
        if validator is not None and not validator(value):
            logger.warning("Rejected invalid value for %s: %r", key, value)
            return False
        self._settings[key] = value
        return True

    def update(self, settings: Dict[str, Any]) -> None:
        for key, value in settings.items():
            self.set(key, value)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._settings)

    def remember_server(self, address: str, port: int) -> None:
        """Record the last server target so the next start offers it."""
        self.set("server_address", address)
        self.set("server_port", port)
