#!/usr/bin/env python3
"""Content writer: dispatches a VirtualFile to the writer for its contents.

Dispatch order:
- directory -> write_dir
- stream    -> write_stream
- symlink   -> write_symbolic_link
- buffer    -> write_buffer
- null      -> nothing to write

An EEXIST error while writing with the exclusive flag is a collision: the
entry already on disk is kept untouched and the file counts as written.
"""

from typing import Optional

from destfs.core import file_ops
from destfs.core.constants import Limits
from destfs.core.platform import PlatformCapabilities, get_capabilities
from destfs.core.virtual_file import VirtualFile
from destfs.infrastructure.logger import get_logger
from destfs.write.buffer import write_buffer
from destfs.write.directory import write_dir
from destfs.write.options import WriteOptions
from destfs.write.reconciler import MetadataReconciler
from destfs.write.stream import write_stream
from destfs.write.symlink import write_symbolic_link


class ContentWriter:
    """Writes the contents of prepared VirtualFiles to disk."""

    def __init__(
        self,
        reconciler: Optional[MetadataReconciler] = None,
        capabilities: Optional[PlatformCapabilities] = None,
        chunk_size: int = Limits.STREAM_CHUNK_SIZE,
    ):
        """Initialize content writer.

        Args:
            reconciler: Metadata reconciler (created if None)
            capabilities: Platform capabilities (default: running platform)
            chunk_size: Read size for stream contents
        """
        self.capabilities = capabilities or get_capabilities()
        self.reconciler = (
            reconciler if reconciler is not None else MetadataReconciler(self.capabilities)
        )
        self.chunk_size = chunk_size
        self._logger = get_logger("destfs.write")

    async def write(self, file: VirtualFile, options: WriteOptions) -> None:
        """Write a prepared file.

        ``file.path``, ``file.flag`` and ``file.stat.mode`` must already hold
        the destination values.

        Args:
            file: File to write
            options: Options resolved for the file

        Raises:
            OSError: On any fatal error
        """
        try:
            if file.is_directory():
                await write_dir(file, self.reconciler, self.capabilities)
            elif file.is_stream():
                await write_stream(file, self.reconciler, self.chunk_size)
            elif file.is_symbolic():
                await write_symbolic_link(file, options, self.capabilities)
            elif file.is_buffer():
                await write_buffer(file, self.reconciler)
            else:
                self._logger.debug("Nothing to write", path=file.path)
        except OSError as e:
            if file_ops.is_fatal_overwrite_error(e, file.flag):
                raise
            self._logger.debug("Destination exists, keeping it", path=file.path)
