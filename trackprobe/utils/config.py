"""
Configuration management for trackprobe.

Loads YAML configuration with environment variable interpolation and
layers it over the built-in defaults, so a config file only needs to
name the keys it changes.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from trackprobe.utils.errors import ConfigurationError

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')

# Searched relative to the working directory; the defaults live in code
DEFAULT_CONFIG_LOCATIONS = (
    Path("config/config.yaml"),
    Path("config.yaml"),
)


class ConfigManager:
    """
    Manages configuration loaded from YAML files.

    Features:
    - YAML configuration loading
    - Environment variable interpolation (${VAR_NAME})
    - Nested key access with dot notation
    - Schema validation
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        self._config: Dict[str, Any] = config_dict or {}

    @classmethod
    def from_file(cls, file_path: Path) -> "ConfigManager":
        """
        Create ConfigManager from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparsable, or not a mapping
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {file_path}",
                config_key=str(file_path)
            )

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config_dict = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML configuration: {e}",
                config_key=str(file_path)
            ) from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping, got {type(config_dict).__name__}",
                config_key=str(file_path)
            )

        return cls(_interpolate(config_dict))

    def get(self, key: str, default: Any = None, required: bool = False) -> Any:
        """
        Get configuration value using dot notation.

        Example:
            config.get("queue.max_concurrent", default=2)

        Raises:
            ConfigurationError: If required key is not found
        """
        value: Any = self._config
        for part in key.split('.'):
            if isinstance(value, dict) and part in value:
                value = value[part]
            elif required:
                raise ConfigurationError(
                    f"Required configuration key not found: {key}",
                    config_key=key
                )
            else:
                return default
        return value

    def get_section(self, key: str) -> Dict[str, Any]:
        """Return a whole section as a dict (empty dict if absent)."""
        value = self.get(key, default={})
        return value if isinstance(value, dict) else {}

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        parts = key.split('.')
        current = self._config
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = value

    def merged_with_defaults(self) -> Dict[str, Any]:
        """Return the defaults with this configuration layered on top."""
        return deep_merge(get_default_config(), self._config)

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return copy.deepcopy(self._config)

    def validate(self, schema: Dict[str, Dict[str, Any]]) -> None:
        """
        Validate configuration against a schema.

        Schema format:
            {
                "queue.max_concurrent": {"type": int, "required": True},
                "logging.level": {"type": str},
            }

        Raises:
            ConfigurationError: If validation fails
        """
        for key, rules in schema.items():
            value = self.get(key)

            if value is None:
                if rules.get("required", False):
                    raise ConfigurationError(
                        f"Required configuration missing: {key}",
                        config_key=key
                    )
                continue

            expected_type = rules.get("type")
            if expected_type and not isinstance(value, expected_type):
                raise ConfigurationError(
                    f"Invalid type for {key}: expected {expected_type.__name__}, "
                    f"got {type(value).__name__}",
                    config_key=key
                )


def _interpolate(value: Any) -> Any:
    """Replace ${ENV_VAR} patterns in every string inside value."""
    if isinstance(value, dict):
        return {k: _interpolate(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate(v) for v in value]
    if isinstance(value, str):
        # unknown variables are left as written
        return _ENV_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)), value
        )
    return value


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def validate_queue_config(config: Dict[str, Any]) -> int:
    """
    Check the queue section and return max_concurrent.

    Raises:
        ConfigurationError: If max_concurrent is not a positive integer
    """
    manager = ConfigManager(config)
    manager.validate({"queue.max_concurrent": {"type": int, "required": True}})
    max_concurrent = manager.get("queue.max_concurrent")
    # bool is an int subclass
    if isinstance(max_concurrent, bool) or max_concurrent < 1:
        raise ConfigurationError(
            f"queue.max_concurrent must be a positive integer, got {max_concurrent!r}",
            config_key="queue.max_concurrent"
        )
    return max_concurrent


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file layered over the defaults.

    Args:
        config_path: Optional path to config file. If None, the
            DEFAULT_CONFIG_LOCATIONS are tried in order.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    load_dotenv()

    if config_path is None:
        for path in DEFAULT_CONFIG_LOCATIONS:
            if path.exists():
                config_path = str(path)
                break

    if config_path is None:
        return get_default_config()

    return ConfigManager.from_file(Path(config_path)).merged_with_defaults()


def get_default_config() -> Dict[str, Any]:
    """Return default configuration values."""
    return {
        "audio": {
            "pcm_extensions": [".wav", ".wave", ".bwf"],
            "fallback_extensions": [
                ".mp3", ".flac", ".aiff", ".aif", ".ogg", ".m4a", ".aac", ".opus",
            ],
            "max_file_size": 524288000,  # 500 MB
        },
        "queue": {
            "max_concurrent": 2,
        },
        "logging": {
            "level": "INFO",
            "format": "json",
            "file": None,
        },
    }
