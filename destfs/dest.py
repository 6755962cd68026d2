#!/usr/bin/env python3
"""Destinations: write VirtualFiles under an output folder.

A Destination takes ownership of each VirtualFile handed to it and:
1. Resolves the write options for the file (once)
2. Rewrites ``cwd``, ``base``, ``path``, ``stat.mode`` and ``flag`` for the
   destination tree
3. Creates the parent directory
4. Writes the contents and reconciles metadata
5. Returns the file in a WriteResult

Failures are isolated per file: a failed file yields an unsuccessful
WriteResult and the other files carry on.

Example:
    >>> dest = Destination("build", mode=0o644, overwrite=False)
    >>> results = await dest.write_all(files)
    >>> failed = [r for r in results if not r.success]
"""

import asyncio
import os
import stat as stat_module
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, List, Optional

from destfs.core import file_ops
from destfs.core.constants import MASK_MODE, ConfigKey, Limits
from destfs.core.errors import WriteError
from destfs.core.platform import PlatformCapabilities, get_capabilities
from destfs.core.validators import parse_mode, validate_config
from destfs.core.virtual_file import DirectoryContents, VirtualFile
from destfs.infrastructure.config_manager import ConfigManager, write_defaults
from destfs.infrastructure.logger import get_logger
from destfs.write.contents import ContentWriter
from destfs.write.options import OUT_FOLDER, OptionResolver, OptionValue, WriteOptions


@dataclass
class WriteResult:
    """Outcome of writing one VirtualFile."""

    file: VirtualFile
    success: bool = True
    error: Optional[WriteError] = None
    duration_ms: float = 0.0


class Destination:
    """Writes VirtualFiles into an output folder."""

    def __init__(
        self,
        out_folder: OptionValue,
        *,
        max_concurrency: int = Limits.DEFAULT_MAX_CONCURRENCY,
        capabilities: Optional[PlatformCapabilities] = None,
        writer: Optional[ContentWriter] = None,
        **options: OptionValue,
    ):
        """Initialize destination.

        Args:
            out_folder: Output folder (literal, callable of the file, or
                template), relative to ``cwd``
            max_concurrency: Files written at the same time by write_all()
            capabilities: Platform capabilities (default: running platform)
            writer: Content writer (created if None)
            **options: Write options: cwd, mode, dir_mode, overwrite,
                append, relative_symlinks, use_junctions

        Raises:
            ValueError: If out_folder is empty or an option is unknown
        """
        if not out_folder:
            raise ValueError("Invalid output folder")
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive: {max_concurrency}")

        self.capabilities = capabilities or get_capabilities()
        self.max_concurrency = max_concurrency
        self.resolver = OptionResolver(
            self.capabilities,
            **{OUT_FOLDER: out_folder},
            **{k: v for k, v in options.items() if v is not None},
        )
        self.writer = writer if writer is not None else ContentWriter(capabilities=self.capabilities)
        self._logger = get_logger("destfs.dest")

    @classmethod
    def from_config(
        cls, out_folder: OptionValue, config: ConfigManager, **overrides: Any
    ) -> "Destination":
        """Create a destination using ``destfs.write`` defaults from a config.

        Args:
            out_folder: Output folder
            config: Configuration manager
            **overrides: Options taking precedence over the configuration

        Returns:
            Configured Destination

        Raises:
            ValidationError: If the destfs section is invalid
        """
        validate_config(config.get_all().get("destfs", {}))
        section = config.get_section(ConfigKey.WRITE)

        options = write_defaults(config)
        for key in (ConfigKey.MODE, ConfigKey.DIR_MODE):
            if key in options:
                options[key] = parse_mode(options[key])
        options.update(overrides)
        options.setdefault(
            ConfigKey.MAX_CONCURRENCY,
            section.get(ConfigKey.MAX_CONCURRENCY, Limits.DEFAULT_MAX_CONCURRENCY),
        )
        return cls(out_folder, **options)

    def prepare(self, file: VirtualFile) -> WriteOptions:
        """Resolve options and point the file at its destination.

        Args:
            file: File to prepare (mutated in place)

        Returns:
            Options resolved for the file

        Raises:
            ValueError: If the output folder resolves to nothing
        """
        options = self.resolver.resolve(file)
        if not options.out_folder:
            raise ValueError("Invalid output folder")

        relative = file.relative
        base = os.path.abspath(os.path.join(options.cwd, options.out_folder))

        file.cwd = options.cwd
        file.base = base
        file.path = os.path.abspath(os.path.join(base, relative))
        file.stat.mode = _with_file_type(options.mode, file.stat.mode)
        file.flag = options.flag
        return options

    async def write(self, file: VirtualFile) -> WriteResult:
        """Write a single file.

        Args:
            file: File to write; ownership passes to the destination until
                the result is returned

        Returns:
            WriteResult holding the updated file, or the error
        """
        start = time.monotonic()
        source_path = file.path
        try:
            options = self.prepare(file)
            await file_ops.ensure_dir(file.dirname, options.dir_mode, self.capabilities)
            await self.writer.write(file, options)
        except Exception as e:
            error = WriteError.from_exception(e, file.path)
            self._logger.warning(
                "Write failed",
                source=source_path,
                path=error.path,
                code=error.error_code.name,
                error=error.message,
            )
            return WriteResult(
                file=file,
                success=False,
                error=error,
                duration_ms=(time.monotonic() - start) * 1000,
            )

        self._logger.debug("Wrote file", path=file.path)
        return WriteResult(file=file, duration_ms=(time.monotonic() - start) * 1000)

    async def write_all(
        self, files: Iterable[VirtualFile], halt_on_error: bool = False
    ) -> List[WriteResult]:
        """Write many files concurrently.

        Args:
            files: Files to write
            halt_on_error: Stop starting new files after the first failure
                (files already in flight still finish) and raise its error

        Returns:
            Results in the same order as ``files``

        Raises:
            WriteError: First failure, only when ``halt_on_error`` is set
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        halted: List[WriteError] = []

        async def run(file: VirtualFile) -> Optional[WriteResult]:
            async with semaphore:
                if halted:
                    return None
                result = await self.write(file)
                if not result.success and halt_on_error and not halted:
                    halted.append(result.error)
                return result

        results = await asyncio.gather(*(run(f) for f in files))

        written = [r for r in results if r is not None]
        failed = sum(1 for r in written if not r.success)
        self._logger.info(
            "Write finished", total=len(results), written=len(written) - failed, failed=failed
        )

        if halted:
            raise halted[0]
        return written

    async def as_completed(self, files: Iterable[VirtualFile]) -> AsyncIterator[WriteResult]:
        """Write many files concurrently, yielding results as they settle.

        Args:
            files: Files to write

        Yields:
            WriteResult per file, in completion order
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(file: VirtualFile) -> WriteResult:
            async with semaphore:
                return await self.write(file)

        tasks = [asyncio.ensure_future(run(f)) for f in files]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            for task in tasks:
                task.cancel()


class SymlinkDestination(Destination):
    """Creates links in an output folder pointing at each file's source path.

    The file's current path becomes the link target. Contents are not
    written; directory files keep their directory classification so the
    right link type can be chosen.
    """

    def prepare(self, file: VirtualFile) -> WriteOptions:
        target = file.path
        if not isinstance(file.contents, DirectoryContents):
            file.contents = None
        options = super().prepare(file)
        file.symlink = target
        return options


def _with_file_type(mode: Optional[int], current: Optional[int]) -> Optional[int]:
    """Permission bits of ``mode`` combined with the file type bits of ``current``."""
    if mode is None:
        return None
    file_type = stat_module.S_IFMT(current) if current is not None else 0
    return file_type | (mode & MASK_MODE)
