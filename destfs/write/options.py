#!/usr/bin/env python3
"""Per-file write option resolution.

Every option can be given as:
- a literal value,
- a callable taking the VirtualFile, or
- for string options, a Jinja2 template rendered with ``file`` in context
  (the configuration-file friendly way to make a path depend on the file).

OptionResolver evaluates all of them once per file, type-checks the results
and produces a frozen WriteOptions record used for the rest of the write.

Example:
    >>> resolver = OptionResolver(out_folder="build/{{ file.extname[1:] }}", mode=0o644)
    >>> options = resolver.resolve(file)
    >>> options.out_folder
    'build/txt'
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

import jinja2

from destfs.core import file_ops
from destfs.core.constants import ConfigKey, Limits, WriteFlag
from destfs.core.platform import PlatformCapabilities, get_capabilities
from destfs.core.validators import ValidationError, parse_mode, validate_mode
from destfs.core.virtual_file import VirtualFile
from destfs.infrastructure.cache_manager import CacheConfig, LRUCache
from destfs.infrastructure.logger import get_logger

OUT_FOLDER = "out_folder"

OptionValue = Union[Any, Callable[[VirtualFile], Any]]


@dataclass(frozen=True)
class WriteOptions:
    """Options resolved for one VirtualFile."""

    cwd: str
    out_folder: Optional[str] = None
    mode: Optional[int] = None
    dir_mode: Optional[int] = None
    overwrite: bool = True
    append: bool = False
    relative_symlinks: bool = False
    use_junctions: bool = False

    @property
    def flag(self) -> WriteFlag:
        return file_ops.get_flags(overwrite=self.overwrite, append=self.append)


class OptionResolver:
    """Resolves literal, callable and templated options against a file."""

    # option name -> (accepted types, needs mode parsing)
    TYPES: Dict[str, Tuple[Tuple[Type, ...], bool]] = {
        ConfigKey.CWD: ((str, os.PathLike), False),
        OUT_FOLDER: ((str, os.PathLike), False),
        ConfigKey.MODE: ((int,), True),
        ConfigKey.DIR_MODE: ((int,), True),
        ConfigKey.OVERWRITE: ((bool,), False),
        ConfigKey.APPEND: ((bool,), False),
        ConfigKey.RELATIVE_SYMLINKS: ((bool,), False),
        ConfigKey.USE_JUNCTIONS: ((bool,), False),
    }

    def __init__(
        self,
        capabilities: Optional[PlatformCapabilities] = None,
        template_cache: Optional[LRUCache] = None,
        **options: OptionValue,
    ):
        """Initialize option resolver.

        Args:
            capabilities: Platform capabilities (default: running platform)
            template_cache: Cache for compiled templates (created if None)
            **options: Option values keyed by option name

        Raises:
            ValueError: If an unknown option name is given
        """
        unknown = set(options) - set(self.TYPES)
        if unknown:
            raise ValueError(f"Unknown write options: {sorted(unknown)}")

        self._options = dict(options)
        self._capabilities = capabilities or get_capabilities()
        self._env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False)
        self._templates = (
            template_cache
            if template_cache is not None
            else LRUCache(
                CacheConfig(
                    max_entries=Limits.TEMPLATE_CACHE_ENTRIES,
                    max_size_bytes=Limits.TEMPLATE_CACHE_SIZE_BYTES,
                    ttl_seconds=Limits.TEMPLATE_CACHE_TTL,
                )
            )
        )
        self._logger = get_logger("destfs.options")

    @property
    def template_cache(self) -> LRUCache:
        return self._templates

    def get(self, name: str, file: VirtualFile, default: Any = None) -> Any:
        """Resolve a single option for a file.

        Args:
            name: Option name
            file: File the option is resolved for
            default: Value used when the option is unset or of the wrong type

        Returns:
            Resolved value
        """
        types, is_mode = self.TYPES[name]
        value = self._options.get(name)

        if callable(value) and not isinstance(value, type):
            value = value(file)
        if isinstance(value, str) and _is_template(value):
            value = self._render(value, file)
        if is_mode:
            value = parse_mode(value)

        if value is None:
            return default

        if isinstance(value, bool) and bool not in types:
            valid = False
        else:
            valid = isinstance(value, types)
        if not valid:
            self._logger.warning(
                "Ignoring option of unexpected type",
                option=name,
                type=type(value).__name__,
                path=file.path,
            )
            return default

        if is_mode:
            validate_mode(value)
        if isinstance(value, os.PathLike):
            value = os.fspath(value)
        return value

    def resolve(self, file: VirtualFile) -> WriteOptions:
        """Resolve every option for a file.

        Args:
            file: File to resolve options for

        Returns:
            Frozen WriteOptions

        Raises:
            ValidationError: If a mode is out of range or a template fails
        """
        cwd = os.path.abspath(self.get(ConfigKey.CWD, file, os.getcwd()))
        default_mode = file.stat.mode if file.stat.mode is not None else None
        if default_mode is not None:
            default_mode &= 0o7777

        return WriteOptions(
            cwd=cwd,
            out_folder=self.get(OUT_FOLDER, file),
            mode=self.get(ConfigKey.MODE, file, default_mode),
            dir_mode=self.get(ConfigKey.DIR_MODE, file),
            overwrite=self.get(ConfigKey.OVERWRITE, file, True),
            append=self.get(ConfigKey.APPEND, file, False),
            relative_symlinks=self.get(ConfigKey.RELATIVE_SYMLINKS, file, False),
            use_junctions=self.get(
                ConfigKey.USE_JUNCTIONS, file, self._capabilities.requires_junctions
            ),
        )

    def _render(self, source: str, file: VirtualFile) -> str:
        try:
            template = self._templates.get_or_create(
                source, lambda: self._env.from_string(source), size=len(source)
            )
            return template.render(file=file)
        except jinja2.TemplateError as e:
            raise ValidationError(f"Template error in option {source!r}: {e}")


def _is_template(value: str) -> bool:
    return "{{" in value or "{%" in value
