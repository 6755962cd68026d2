"""
destfs Core: Constants and Type Definitions

This module provides system-wide constants, error codes, and type definitions
shared by the write engine and the infrastructure layer.
"""
import os
from enum import Enum, IntEnum

# Version information
DESTFS_VERSION = "1.0.0"
DESTFS_API_VERSION = 1


class ErrorCode(IntEnum):
    """Standardized error codes for destfs operations."""

    SUCCESS = 0  # Operation completed successfully
    INVALID_INPUT = 1  # Bad path, invalid option or configuration
    NOT_FOUND = 2  # File or parent directory doesn't exist
    PERMISSION_DENIED = 3  # Insufficient permissions
    CONFLICT = 4  # Target exists or is of the wrong type
    DEPENDENCY_ERROR = 5  # Missing dependency
    INTERNAL_ERROR = 6  # Unexpected OS or library failure
    NO_SPACE = 7  # Device out of space or quota exceeded


# Permission bits: owner/group/other rwx plus setuid/setgid/sticky
MASK_MODE = 0o7777

# Defaults before the umask is applied
DEFAULT_FILE_MODE = 0o666
DEFAULT_DIR_MODE = 0o777


class WriteFlag(Enum):
    """Collision behaviour when the destination already exists."""

    OVERWRITE = "w"  # Truncate and replace existing content
    EXCLUSIVE = "wx"  # Fail with EEXIST rather than touch an existing entry
    APPEND = "a"  # Append to existing content
    EXCLUSIVE_APPEND = "ax"  # Append, but only to a newly created file

    @property
    def is_exclusive(self) -> bool:
        return "x" in self.value

    @property
    def is_append(self) -> bool:
        return "a" in self.value

    @property
    def os_flags(self) -> int:
        """Flags for os.open() matching this write mode."""
        flags = os.O_WRONLY | os.O_CREAT
        if self.is_exclusive:
            flags |= os.O_EXCL
        if self.is_append:
            flags |= os.O_APPEND
        elif not self.is_exclusive:
            flags |= os.O_TRUNC
        return flags


class LinkType(Enum):
    """Kind of link to create for a symbolic VirtualFile."""

    FILE = "file"
    DIR = "dir"
    JUNCTION = "junction"


class Limits:
    """Resource limits and default values."""

    # Stream pumping
    STREAM_CHUNK_SIZE = 64 * 1024

    # Concurrent files in flight per Destination
    DEFAULT_MAX_CONCURRENCY = 16

    # Option template cache
    TEMPLATE_CACHE_ENTRIES = 256
    TEMPLATE_CACHE_SIZE_BYTES = 1024 * 1024
    TEMPLATE_CACHE_TTL = 3600  # seconds


class ConfigKey:
    """Configuration key constants."""

    # Top-level keys
    VERSION = "version"
    WRITE = "write"
    LOGGING = "logging"

    # Write option keys
    CWD = "cwd"
    MODE = "mode"
    DIR_MODE = "dir_mode"
    OVERWRITE = "overwrite"
    APPEND = "append"
    RELATIVE_SYMLINKS = "relative_symlinks"
    USE_JUNCTIONS = "use_junctions"
    MAX_CONCURRENCY = "max_concurrency"


# Default configuration values
DEFAULT_CONFIG = {
    ConfigKey.VERSION: "1.0",
    ConfigKey.WRITE: {
        ConfigKey.OVERWRITE: True,
        ConfigKey.APPEND: False,
        ConfigKey.RELATIVE_SYMLINKS: False,
        ConfigKey.MAX_CONCURRENCY: Limits.DEFAULT_MAX_CONCURRENCY,
    },
    ConfigKey.LOGGING: {
        "level": "INFO",
        "file": None,
    },
}
