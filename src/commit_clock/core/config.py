"""Configuration management for Commit Clock."""

import copy
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml  # type: ignore[import-untyped]
from jsonschema import ValidationError, validate  # type: ignore[import-untyped]

from commit_clock.core.errors import ConfigurationError


class ConfigManager:
    """Manage application configuration."""

    DEFAULT_CONFIG = {
        "version": "1.0",
        "general": {
            "data_file": "~/.commit-clock/projects.json",
            "date_format": "%a %m/%d/%y %H:%M",
        },
        "git": {
            "binary": "git",
            "timeout": 10,
        },
        "storage": {
            "save_retries": 1,
        },
        "tracking": {
            "on_count_failure": "zero",
            "refresh_interval": 1,
        },
        "advanced": {
            "log_level": "WARNING",
        },
    }

    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "version": {"type": "string"},
            "general": {
                "type": "object",
                "properties": {
                    "data_file": {"type": "string", "minLength": 1},
                    "date_format": {"type": "string", "minLength": 1},
                },
            },
            "git": {
                "type": "object",
                "properties": {
                    "binary": {"type": "string", "minLength": 1},
                    "timeout": {"type": "number", "exclusiveMinimum": 0, "maximum": 600},
                },
            },
            "storage": {
                "type": "object",
                "properties": {
                    "save_retries": {"type": "integer", "minimum": 0, "maximum": 10},
                },
            },
            "tracking": {
                "type": "object",
                "properties": {
                    "on_count_failure": {"type": "string", "enum": ["zero", "abort"]},
                    "refresh_interval": {"type": "number", "exclusiveMinimum": 0, "maximum": 60},
                },
            },
            "advanced": {
                "type": "object",
                "properties": {
                    "log_level": {
                        "type": "string",
                        "enum": ["DEBUG", "INFO", "WARNING", "ERROR"],
                    },
                },
            },
        },
        "required": ["version"],
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to config file. Defaults to ~/.commit-clock/config.yml

        Raises:
            ConfigurationError: If an existing config file is unreadable or invalid
        """
        if config_path is None:
            config_path = Path.home() / ".commit-clock" / "config.yml"
        self.config_path = config_path
        self._config: dict[str, Any] = {}
        self._load_or_create()

    def _load_or_create(self) -> None:
        """Load existing config or create default."""
        if not self.config_path.exists():
            self._config = copy.deepcopy(self.DEFAULT_CONFIG)
            self.save()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Config file {self.config_path} is not valid YAML: {e}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {self.config_path}: {e}")
        if not isinstance(loaded_config, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")

        # Keys missing from an older file fall back to their defaults
        self._config = copy.deepcopy(self.DEFAULT_CONFIG)
        _overlay(self._config, loaded_config)
        try:
            self.validate()
        except ValueError as e:
            raise ConfigurationError(f"Config file {self.config_path}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'git.timeout')
            default: Default value if key not found

        Returns:
            Configuration value, a whole section as a dict, or default

        Example:
            >>> config.get('tracking.on_count_failure')
            'zero'
        """
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node) if isinstance(node, dict) else node

    def default(self, key: str) -> Any:
        """Shipped default for a key, or None if the key is unknown."""
        value = _lookup(self.DEFAULT_CONFIG, key)
        return None if value is _MISSING else value

    def keys(self) -> list[str]:
        """All leaf keys in dot notation, in file order."""
        return list(_flatten(self._config))

    def coerce(self, key: str, text: str) -> Any:
        """Convert command-line text to the type the key's default has.

        Raises:
            ValueError: If the key is unknown or the text does not convert
        """
        default = _lookup(self.DEFAULT_CONFIG, key)
        if default is _MISSING or isinstance(default, dict):
            raise ValueError(f"Unknown configuration key: {key}")
        if isinstance(default, (int, float)):
            try:
                return int(text)
            except ValueError:
                pass
            try:
                return float(text)
            except ValueError:
                raise ValueError(f"{key} expects a number, got {text!r}")
        return text

    def set(self, key: str, value: Any) -> None:
        """Set a known configuration value and save.

        Raises:
            ValueError: If the key is unknown or the new configuration is
                invalid. The previous configuration is kept.
        """
        if key not in list(_flatten(self.DEFAULT_CONFIG)):
            raise ValueError(f"Unknown configuration key: {key}")

        previous = copy.deepcopy(self._config)
        *sections, leaf = key.split(".")
        node = self._config
        for section in sections:
            node = node[section]
        node[leaf] = value
        try:
            self.validate()
        except ValueError:
            self._config = previous
            raise
        self.save()

    def validate(self) -> bool:
        """Validate configuration against schema.

        Returns:
            True if valid

        Raises:
            ValueError: If configuration is invalid
        """
        try:
            validate(instance=self._config, schema=self.CONFIG_SCHEMA)
            return True
        except ValidationError as e:
            location = ".".join(str(p) for p in e.absolute_path)
            prefix = f"{location}: " if location else ""
            raise ValueError(f"Invalid configuration: {prefix}{e.message}")

    def save(self) -> None:
        """Write the configuration through a temporary file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.config_path.with_suffix(".yml.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self._config, f, default_flow_style=False, sort_keys=False, allow_unicode=True
            )
        temp_path.replace(self.config_path)

    def reset(self) -> None:
        """Reset to default configuration."""
        self._config = copy.deepcopy(self.DEFAULT_CONFIG)
        self.save()

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._config)

    @property
    def data_file(self) -> Path:
        """Backing project file with ~ expanded."""
        return Path(self.get("general.data_file")).expanduser()

    def counter_options(self) -> dict[str, Any]:
        """Keyword arguments for CommitCounter."""
        return {"git_binary": self.get("git.binary"), "timeout": float(self.get("git.timeout"))}

    def tracker_options(self) -> dict[str, Any]:
        """Keyword arguments for SessionTracker."""
        return {
            "on_count_failure": self.get("tracking.on_count_failure"),
            "refresh_interval": float(self.get("tracking.refresh_interval")),
        }


_MISSING = object()


def _lookup(config: dict[str, Any], key: str) -> Any:
    node: Any = config
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _flatten(config: dict[str, Any], prefix: str = "") -> Iterator[str]:
    for key, value in config.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            yield from _flatten(value, full_key)
        else:
            yield full_key


def _overlay(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Copy override onto base, descending into sections both define."""
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            _overlay(base[key], value)
        else:
            base[key] = value
