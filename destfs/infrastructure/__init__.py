"""destfs Infrastructure Layer.

Services used by the write engine:
- Logger: Structured logging
- ConfigManager: Hierarchical YAML/environment configuration
- LRUCache: Size and TTL bounded cache owned by its user
"""

from .cache_manager import CacheConfig, CacheEntry, LRUCache
from .config_manager import (
    ConfigError,
    ConfigManager,
    ConfigSource,
    configure_logging_from_config,
    write_defaults,
)
from .logger import LogLevel, Logger, configure_logging, get_logger, set_global_logger

__all__ = [
    # Logger exports
    "Logger",
    "LogLevel",
    "configure_logging",
    "get_logger",
    "set_global_logger",
    # Cache exports
    "CacheEntry",
    "CacheConfig",
    "LRUCache",
    # ConfigManager exports
    "ConfigSource",
    "configure_logging_from_config",
    "ConfigError",
    "ConfigManager",
    "write_defaults",
]
