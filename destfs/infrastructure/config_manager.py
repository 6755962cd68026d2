#!/usr/bin/env python3
"""Hierarchical configuration manager for destfs.

This module provides configuration management with:
- Precedence hierarchy (defaults < system < user < environment < runtime)
- YAML configuration files
- Environment variable overrides (DESTFS_SECTION_KEY=value)
- Dot-path lookups and deep merging
- Thread-safe operations

The ``destfs.write`` section supplies default write options for
Destination.from_config().

Example:
    >>> config = ConfigManager()
    >>> config.load_file("destfs.yaml")
    >>> config.get("destfs.write.overwrite", default=True)
"""

import copy
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from destfs.core.constants import DEFAULT_CONFIG, ConfigKey, ErrorCode
from destfs.infrastructure.logger import LogLevel, Logger, configure_logging

ENV_PREFIX = "DESTFS_"
OCTAL_KEYS = (ConfigKey.MODE, ConfigKey.DIR_MODE)


class ConfigSource(Enum):
    """Configuration source precedence levels."""

    COMPILED_DEFAULTS = 1  # Lowest precedence
    SYSTEM_CONFIG = 2
    USER_CONFIG = 3
    ENVIRONMENT = 4
    RUNTIME = 5  # Highest precedence


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigManager:
    """Thread-safe hierarchical configuration manager.

    Manages configuration from multiple sources with precedence:
    1. Compiled defaults (lowest)
    2. System config files
    3. User config files
    4. Environment variables (DESTFS_*)
    5. Runtime updates (highest)
    """

    DEFAULT_CONFIG = {"destfs": DEFAULT_CONFIG}

    def __init__(self, config_file: Optional[str] = None, load_environment: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Optional config file to load
            load_environment: Read DESTFS_* environment variables
        """
        self._config: Dict[ConfigSource, Dict[str, Any]] = {}
        self._files: Dict[str, ConfigSource] = {}
        self._lock = threading.RLock()

        self._config[ConfigSource.COMPILED_DEFAULTS] = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_file(config_file)

        if load_environment:
            self._load_environment()

    def load_file(self, file_path: str, source: ConfigSource = ConfigSource.USER_CONFIG) -> None:
        """Load configuration from YAML file.

        Args:
            file_path: Path to YAML config file
            source: Configuration source level

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        path = Path(file_path).expanduser().resolve()

        if not path.exists():
            raise ConfigError(f"Config file not found: {file_path}", ErrorCode.NOT_FOUND)

        try:
            with open(path, "r") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error in {file_path}: {e}", ErrorCode.INVALID_INPUT)
        except OSError as e:
            raise ConfigError(f"Error loading config {file_path}: {e}", ErrorCode.INTERNAL_ERROR)

        if not isinstance(config_data, dict):
            raise ConfigError(f"Invalid config format in {file_path}", ErrorCode.INVALID_INPUT)

        with self._lock:
            self._config[source] = config_data
            self._files[str(path)] = source

    def load_dict(
        self, config_data: Dict[str, Any], source: ConfigSource = ConfigSource.RUNTIME
    ) -> None:
        """Load configuration from dictionary.

        Args:
            config_data: Configuration dictionary
            source: Configuration source level
        """
        with self._lock:
            self._config[source] = copy.deepcopy(config_data)

    def _load_environment(self) -> None:
        """Load configuration from environment variables.

        Environment variables in format: DESTFS_SECTION_KEY=value, where the
        key keeps its underscores.
        Example: DESTFS_WRITE_DIR_MODE=755

        Mode keys stay strings so that ``parse_mode`` reads them as octal.
        """
        env_config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_", 1)
            if len(parts) == 1:
                env_config[parts[0]] = self._parse_env_value(value)
            else:
                section, name = parts
                parsed = value if name in OCTAL_KEYS else self._parse_env_value(value)
                env_config.setdefault(section, {})[name] = parsed

        if env_config:
            with self._lock:
                self._config[ConfigSource.ENVIRONMENT] = {"destfs": env_config}

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value.

        Args:
            value: String value from environment

        Returns:
            Parsed value (bool, int including 0o/0x literals, float, or str)
        """
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            return int(value, 0)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Args:
            key: Dot-separated key path (e.g., "destfs.write.overwrite")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        with self._lock:
            for source in sorted(self._config.keys(), key=lambda s: s.value, reverse=True):
                value = self._get_nested(self._config[source], key)
                if value is not None:
                    return value

            return default

    def _get_nested(self, config: Dict[str, Any], key: str) -> Optional[Any]:
        current: Any = config
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def set(self, key: str, value: Any, source: ConfigSource = ConfigSource.RUNTIME) -> None:
        """Set configuration value.

        Args:
            key: Dot-separated key path
            value: Value to set
            source: Configuration source level
        """
        with self._lock:
            current = self._config.setdefault(source, {})
            parts = key.split(".")
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = value

    def get_all(self) -> Dict[str, Any]:
        """Get merged configuration from all sources.

        Returns:
            Merged configuration dictionary
        """
        with self._lock:
            merged: Dict[str, Any] = {}
            for source in sorted(self._config.keys(), key=lambda s: s.value):
                merged = self._deep_merge(merged, self._config[source])
            return merged

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get a merged ``destfs.<section>`` dictionary.

        Args:
            section: Section name (e.g., "write")

        Returns:
            Merged section, empty if absent
        """
        value = self.get_all().get("destfs", {}).get(section, {})
        return value if isinstance(value, dict) else {}

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def reload(self) -> None:
        """Reload all file-based configurations."""
        with self._lock:
            files = list(self._files.items())

        for file_path, source in files:
            self.load_file(file_path, source)

    def clear(self, source: Optional[ConfigSource] = None) -> None:
        """Clear configuration.

        Args:
            source: Specific source to clear, or None for all except defaults
        """
        with self._lock:
            if source:
                if source in self._config and source != ConfigSource.COMPILED_DEFAULTS:
                    del self._config[source]
            else:
                for s in [s for s in self._config if s != ConfigSource.COMPILED_DEFAULTS]:
                    del self._config[s]


def write_defaults(config: ConfigManager) -> Dict[str, Any]:
    """Extract write option defaults from a configuration.

    Args:
        config: Configuration manager

    Returns:
        Dict of option name -> value for keys under ``destfs.write``
    """
    section = config.get_section(ConfigKey.WRITE)
    return {k: v for k, v in section.items() if k != ConfigKey.MAX_CONCURRENCY}


def configure_logging_from_config(config: ConfigManager) -> Logger:
    """Configure the destfs root logger from the ``destfs.logging`` section.

    Args:
        config: Configuration manager

    Returns:
        The configured root Logger

    Raises:
        ConfigError: If the configured level is unknown
    """
    section = config.get_section(ConfigKey.LOGGING)
    level = str(section.get("level", "INFO")).upper()
    if level not in LogLevel.__members__:
        raise ConfigError(f"Unknown log level: {level}", ErrorCode.INVALID_INPUT)
    return configure_logging(level, section.get("file"))
