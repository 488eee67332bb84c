"""
Client configuration.

Settings are layered, later layers winning key by key:
1. config/default.yaml shipped with the repo
2. A YAML file named explicitly or through DOCSTORE_CONFIG
3. DOCSTORE_* environment variables (see ENV_OVERRIDES)

Numeric client and transaction settings are checked once every layer is
applied, so a bad value fails at startup rather than on the first RPC.
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from docstore.errors import InvalidArgumentError

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "default.yaml"

CONFIG_FILE_ENV = "DOCSTORE_CONFIG"

# Environment variable -> (dotted key, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "DOCSTORE_PROJECT": ("database.project_id", str),
    "DOCSTORE_DATABASE": ("database.database_id", str),
    "DOCSTORE_TARGET": ("client.target", str),
    "DOCSTORE_REQUEST_TIMEOUT_MS": ("client.request_timeout_ms", int),
    "DOCSTORE_MAX_ATTEMPTS": ("transactions.max_attempts", int),
    "DOCSTORE_BACKOFF_MS": ("transactions.backoff_ms", int),
    "LOG_LEVEL": ("logging.level", str),
}

# Dotted key -> smallest accepted value
NUMERIC_SETTINGS: Dict[str, int] = {
    "client.request_timeout_ms": 1,
    "client.max_message_length": 1,
    "transactions.max_attempts": 1,
    "transactions.backoff_ms": 0,
    "transactions.backoff_max_ms": 0,
    "transactions.jitter_ms": 0,
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base, recursing into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_yaml(path: str) -> Dict[str, Any]:
    """
    Read one YAML settings file.

    Args:
        path: File to read

    Returns:
        Top-level mapping ({} for an empty file)

    Raises:
        InvalidArgumentError: The document is not a mapping
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError(f"Configuration file {path} must contain a mapping")
    return data


class Config:
    """Layered settings for the document client, transactions and logging."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: YAML file layered over the defaults. Falls back to
                DOCSTORE_CONFIG when None.
        """
        self._settings: Dict[str, Any] = {}

        if DEFAULT_CONFIG_PATH.exists():
            self._settings = load_yaml(str(DEFAULT_CONFIG_PATH))

        config_file = config_file or os.getenv(CONFIG_FILE_ENV)
        if config_file:
            self._settings = deep_merge(self._settings, load_yaml(config_file))

        self._apply_environment()
        self._validate()

    def _apply_environment(self) -> None:
        for name, (key, convert) in ENV_OVERRIDES.items():
            raw = os.getenv(name)
            if not raw:
                continue
            try:
                self.set(key, convert(raw))
            except ValueError:
                raise InvalidArgumentError(f"{name}={raw!r} is not a valid value for {key}") from None

    def _validate(self) -> None:
        for key, minimum in NUMERIC_SETTINGS.items():
            value = self.get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
                raise InvalidArgumentError(f"{key} must be an integer >= {minimum}, got {value!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a dotted key such as "client.target".

        Args:
            key: Dotted key
            default: Returned when any segment is missing

        Returns:
            Setting value
        """
        node: Any = self._settings
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Store a value under a dotted key, creating sections on the way."""
        *sections, leaf = key.split(".")
        node = self._settings
        for part in sections:
            node = node.setdefault(part, {})
        node[leaf] = value

    def section(self, name: str) -> Dict[str, Any]:
        """Copy of one top-level section ({} when absent)."""
        return dict(self._settings.get(name) or {})

    def to_dict(self) -> Dict[str, Any]:
        return deep_merge({}, self._settings)


_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """Process-wide configuration, built on first use."""
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    global _config
    _config = None
