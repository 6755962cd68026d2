"""Directory contents writer."""

import errno
from typing import Optional

from destfs.core import file_ops
from destfs.core.platform import PlatformCapabilities
from destfs.core.virtual_file import VirtualFile
from destfs.infrastructure.logger import get_logger
from destfs.write.reconciler import MetadataReconciler

logger = get_logger("destfs.write.directory")


async def write_dir(
    file: VirtualFile,
    reconciler: MetadataReconciler,
    capabilities: Optional[PlatformCapabilities] = None,
) -> None:
    """Materialize a directory and reconcile its metadata.

    Directories the process cannot open are left as created, without
    reconciliation.

    Args:
        file: Directory VirtualFile
        reconciler: Reconciler applied through a read-only descriptor
        capabilities: Platform capabilities

    Raises:
        OSError: If the directory cannot be created or opened, or if
            reconciliation fails
    """
    await file_ops.ensure_dir(file.path, file.stat.mode, capabilities=capabilities)

    try:
        fd = await file_ops.open_fd(file.path, file_ops.O_DIRECTORY_READ)
    except PermissionError as e:
        if e.errno == errno.EACCES:
            logger.debug("Directory not readable, skipping metadata", path=file.path)
            return
        raise

    error = await reconciler.reconcile(fd, file)
    error = await file_ops.close_fd(error, fd)
    if error is not None:
        raise error
