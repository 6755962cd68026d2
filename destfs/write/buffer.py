"""In-memory buffer contents writer."""

from typing import Optional

from destfs.core import file_ops
from destfs.core.virtual_file import VirtualFile
from destfs.infrastructure.logger import get_logger
from destfs.write.reconciler import MetadataReconciler

logger = get_logger("destfs.write.buffer")


async def write_buffer(file: VirtualFile, reconciler: MetadataReconciler) -> None:
    """Write buffered contents, then reconcile metadata on the same descriptor.

    The descriptor is closed exactly once whether the write, the
    reconciliation or neither failed. A failed write skips reconciliation.

    Args:
        file: VirtualFile with bytes contents
        reconciler: Metadata reconciler

    Raises:
        OSError: If opening, writing, reconciling or closing fails (first
            error wins)
    """
    fd = await file_ops.open_file(file.path, file.flag, file.stat.mode)

    error: Optional[BaseException] = None
    try:
        position = None if file.flag.is_append else 0
        written = await file_ops.write_all(fd, file.contents, position)
        logger.debug("Wrote buffer", path=file.path, size=written)
    except OSError as e:
        error = e
    else:
        error = await reconciler.reconcile(fd, file)

    error = await file_ops.close_fd(error, fd)
    if error is not None:
        raise error
