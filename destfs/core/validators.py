"""
destfs Core: Input Validators.

Validation for write options and the ``destfs`` configuration section.
"""
import os
from typing import Any, Dict

from destfs.core.constants import MASK_MODE, ConfigKey, ErrorCode

_BOOLEAN_OPTIONS = (
    ConfigKey.OVERWRITE,
    ConfigKey.APPEND,
    ConfigKey.RELATIVE_SYMLINKS,
    ConfigKey.USE_JUNCTIONS,
)
_MODE_OPTIONS = (ConfigKey.MODE, ConfigKey.DIR_MODE)


class ValidationError(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        """Initialize ValidationError.

        Args:
            message: Error message
            error_code: Associated error code
        """
        super().__init__(message)
        self.error_code = error_code


def validate_mode(mode: Any) -> bool:
    """Validate a permission mode.

    Args:
        mode: Mode value; None means unspecified

    Returns:
        True if valid

    Raises:
        ValidationError: If mode is not an int within the permission bits
    """
    if mode is None:
        return True
    if isinstance(mode, bool) or not isinstance(mode, int):
        raise ValidationError(f"Mode must be an integer: {mode!r}")
    if mode < 0 or mode & ~MASK_MODE:
        raise ValidationError(f"Mode has bits outside {oct(MASK_MODE)}: {oct(mode)}")
    return True


def validate_path(path: Any) -> bool:
    """Validate a destination path.

    Args:
        path: Path to validate

    Returns:
        True if path is a non-empty string without NUL bytes
    """
    if isinstance(path, os.PathLike):
        path = os.fspath(path)
    if not isinstance(path, str) or not path:
        return False
    return "\x00" not in path


def validate_write_config(config: Dict[str, Any]) -> bool:
    """Validate the ``write`` section of a configuration.

    Only literal values can appear in configuration files; mode values may
    be given as octal strings ("0o644" or "644").

    Args:
        config: Write section dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If any option is invalid
    """
    if not isinstance(config, dict):
        raise ValidationError("Write configuration must be a dictionary")

    for key in _BOOLEAN_OPTIONS:
        if key in config and not isinstance(config[key], bool):
            raise ValidationError(f"Option '{key}' must be boolean: {config[key]!r}")

    for key in _MODE_OPTIONS:
        if key in config:
            validate_mode(parse_mode(config[key]))

    if ConfigKey.CWD in config and not validate_path(config[ConfigKey.CWD]):
        raise ValidationError(f"Invalid cwd: {config[ConfigKey.CWD]!r}")

    if ConfigKey.MAX_CONCURRENCY in config:
        value = config[ConfigKey.MAX_CONCURRENCY]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(f"max_concurrency must be a positive integer: {value!r}")

    return True


def validate_config(config: Dict[str, Any]) -> bool:
    """Validate a ``destfs`` configuration section.

    Args:
        config: Configuration dictionary (contents of the ``destfs`` key)

    Returns:
        True if valid

    Raises:
        ValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ValidationError("Configuration must be a dictionary")

    if ConfigKey.VERSION in config and not isinstance(config[ConfigKey.VERSION], str):
        raise ValidationError(f"Invalid version: {config[ConfigKey.VERSION]!r}")

    if ConfigKey.WRITE in config:
        try:
            validate_write_config(config[ConfigKey.WRITE])
        except ValidationError as e:
            raise ValidationError(f"Invalid write configuration: {e}")

    return True


def parse_mode(value: Any) -> Any:
    """Convert an octal string mode to an int, leaving other values alone.

    Args:
        value: Mode as int, "0o755"/"755" string, or None

    Returns:
        Parsed mode

    Raises:
        ValidationError: If a string is not valid octal
    """
    if not isinstance(value, str):
        return value
    text = value.strip().lower()
    if text.startswith("0o"):
        text = text[2:]
    try:
        return int(text, 8)
    except ValueError:
        raise ValidationError(f"Mode is not an octal number: {value!r}")
