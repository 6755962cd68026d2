#!/usr/bin/env python3
"""Streaming contents writer.

This module provides:
- WriteStreamAdapter: a sequential writer that opens its descriptor lazily,
  exposes a single flush hook run with the still-open descriptor, and
  closes only after that hook returns
- pump(): copies a readable byte stream into an adapter, pulling the next
  chunk only after the previous one has been written
- write_stream(): the stream variant of the content writer

Example:
    >>> adapter = WriteStreamAdapter("/out/a.bin", WriteFlag.OVERWRITE, 0o644, flush=on_flush)
    >>> await pump(source, adapter)
    >>> await adapter.end()
"""

import asyncio
import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from aiofiles.os import wrap

from destfs.core import file_ops
from destfs.core.constants import Limits, WriteFlag
from destfs.core.virtual_file import ByteStream, VirtualFile
from destfs.infrastructure.logger import get_logger
from destfs.write.reconciler import MetadataReconciler

logger = get_logger("destfs.write.stream")

FlushHook = Callable[[int], Awaitable[None]]

_EXHAUSTED = object()
_next_chunk = wrap(next)


class WriteStreamAdapter:
    """Sequential, lazily opened file writer with a flush hook.

    Writes issued before the descriptor is open wait for the single pending
    open and then run in the order they were issued. All writes append at
    the current position.
    """

    def __init__(
        self,
        path: str,
        flag: WriteFlag = WriteFlag.OVERWRITE,
        mode: Optional[int] = None,
        flush: Optional[FlushHook] = None,
    ):
        """Initialize the adapter. Nothing is opened yet.

        Args:
            path: File to write
            flag: Write flag used when opening
            mode: Mode for a newly created file
            flush: Called once with the open descriptor after the last write
        """
        self.path = path
        self.flag = flag
        self.mode = mode
        self.fd: Optional[int] = None
        self.bytes_written = 0
        self.closed = False
        self._flush = flush
        self._lock = asyncio.Lock()

    @property
    def opened(self) -> bool:
        return self.fd is not None

    async def _ensure_open(self) -> int:
        if self.fd is None:
            self.fd = await file_ops.open_file(self.path, self.flag, self.mode)
            logger.debug("Opened stream destination", path=self.path, fd=self.fd)
        return self.fd

    async def write(self, chunk: bytes) -> int:
        """Append a chunk, opening the file on first use.

        Args:
            chunk: Bytes to write

        Returns:
            Number of bytes written

        Raises:
            ValueError: If the adapter was already ended or destroyed
            OSError: If opening or writing fails
        """
        async with self._lock:
            if self.closed:
                raise ValueError(f"Write to closed stream: {self.path}")
            fd = await self._ensure_open()
            written = await file_ops.write_all(fd, chunk, position=None)
            self.bytes_written += written
            return written

    async def end(self) -> None:
        """Finish writing: run the flush hook, then close the descriptor.

        A stream that never received data is still opened, so the file is
        created empty.

        Raises:
            ValueError: If the adapter was already ended or destroyed
            Exception: First error from opening, the flush hook or closing
        """
        async with self._lock:
            if self.closed:
                raise ValueError(f"Stream already closed: {self.path}")
            try:
                fd = await self._ensure_open()
            except OSError:
                self.closed = True
                raise

            error: Optional[BaseException] = None
            if self._flush is not None:
                try:
                    await self._flush(fd)
                except Exception as e:
                    error = e

            self.closed = True
            self.fd = None
            error = await file_ops.close_fd(error, fd)
            if error is not None:
                raise error

    async def destroy(self) -> Optional[BaseException]:
        """Close without flushing, after a failure.

        Returns:
            Error raised by close, if any
        """
        async with self._lock:
            self.closed = True
            fd, self.fd = self.fd, None
            return await file_ops.close_fd(None, fd)


async def iter_chunks(
    source: ByteStream, chunk_size: int = Limits.STREAM_CHUNK_SIZE
) -> AsyncIterator[bytes]:
    """Read a byte stream chunk by chunk.

    Supports async iterables, objects with an async or blocking
    ``read(size)``, and plain iterables of bytes. Blocking reads run in a
    worker thread.

    Args:
        source: Readable byte stream
        chunk_size: Bytes requested per read

    Yields:
        Non-empty chunks

    Raises:
        TypeError: If ``source`` is not a supported stream
    """
    if hasattr(source, "__aiter__"):
        async for chunk in source:
            if chunk:
                yield bytes(chunk)
        return

    read = getattr(source, "read", None)
    if callable(read):
        if inspect.iscoroutinefunction(read):
            read_chunk: Callable[[int], Awaitable[Any]] = read
        else:
            read_chunk = wrap(read)
        while True:
            chunk = await read_chunk(chunk_size)
            if not chunk:
                return
            yield bytes(chunk)

    if hasattr(source, "__iter__") and not isinstance(source, (bytes, str)):
        iterator = iter(source)
        while True:
            chunk = await _next_chunk(iterator, _EXHAUSTED)
            if chunk is _EXHAUSTED:
                return
            if chunk:
                yield bytes(chunk)

    raise TypeError(f"Unsupported stream type: {type(source).__name__}")


async def pump(
    source: ByteStream,
    adapter: WriteStreamAdapter,
    chunk_size: int = Limits.STREAM_CHUNK_SIZE,
) -> int:
    """Copy a stream into an adapter with backpressure.

    The next chunk is only pulled once the previous one is on disk. The
    first error from either side ends the copy and propagates.

    Args:
        source: Readable byte stream
        adapter: Destination
        chunk_size: Bytes requested per read

    Returns:
        Total bytes copied
    """
    total = 0
    async for chunk in iter_chunks(source, chunk_size):
        total += await adapter.write(chunk)
    return total


async def write_stream(
    file: VirtualFile,
    reconciler: MetadataReconciler,
    chunk_size: int = Limits.STREAM_CHUNK_SIZE,
) -> None:
    """Write stream contents, reconciling metadata before the file is closed.

    Args:
        file: VirtualFile with stream contents (consumed)
        reconciler: Metadata reconciler run from the flush hook
        chunk_size: Bytes requested per read

    Raises:
        OSError: If the destination fails
        Exception: Whatever the source stream raises
    """
    source = file.take_stream()

    async def flush(fd: int) -> None:
        error = await reconciler.reconcile(fd, file)
        if error is not None:
            raise error

    adapter = WriteStreamAdapter(file.path, file.flag, file.stat.mode, flush=flush)

    try:
        total = await pump(source, adapter, chunk_size)
    except Exception:
        close_err = await adapter.destroy()
        if close_err is not None:
            logger.debug("Close failed after stream error", path=file.path, error=close_err)
        raise

    await adapter.end()
    logger.debug("Wrote stream", path=file.path, size=total)
