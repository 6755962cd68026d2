"""Symbolic link writer.

Decides the link type (file, directory link, or junction), optionally
rewrites the target relative to the destination base, creates the link and
records the link's own stat on the VirtualFile.
"""

import os
from typing import Optional

from destfs.core import file_ops
from destfs.core.constants import LinkType
from destfs.core.platform import PlatformCapabilities, get_capabilities
from destfs.core.virtual_file import DirectoryContents, VirtualFile
from destfs.infrastructure.logger import get_logger
from destfs.write.options import WriteOptions

logger = get_logger("destfs.write.symlink")


async def resolve_link_type(
    file: VirtualFile,
    options: WriteOptions,
    capabilities: Optional[PlatformCapabilities] = None,
) -> LinkType:
    """Select the type of link to create for a symbolic file.

    Platforms whose links carry no type always get FILE. Elsewhere the
    target's stat is copied onto ``file.stat``; a missing target falls back
    to what the file itself says it is.

    Args:
        file: Symbolic VirtualFile
        options: Resolved write options (use_junctions)
        capabilities: Platform capabilities (default: running platform)

    Returns:
        LinkType to create

    Raises:
        OSError: If stat-ing the target fails for a reason other than ENOENT
    """
    capabilities = capabilities or get_capabilities()
    if not capabilities.typed_links:
        return LinkType.FILE

    try:
        await file_ops.reflect_stat(file.symlink, file)
        is_dir = file.stat.is_directory()
    except FileNotFoundError:
        is_dir = isinstance(file.contents, DirectoryContents) or file.stat.is_directory()

    if not is_dir:
        return LinkType.FILE
    return LinkType.JUNCTION if options.use_junctions else LinkType.DIR


def link_target(file: VirtualFile, options: WriteOptions, link_type: LinkType) -> str:
    """Target to write into the link.

    Junctions must be absolute, so relative rewriting never applies to them.

    Args:
        file: Symbolic VirtualFile (``base`` already resolved)
        options: Resolved write options (relative_symlinks)
        link_type: Type selected by resolve_link_type()

    Returns:
        Target path
    """
    if options.relative_symlinks and link_type is not LinkType.JUNCTION:
        return os.path.relpath(file.symlink, file.base)
    return file.symlink


async def write_symbolic_link(
    file: VirtualFile,
    options: WriteOptions,
    capabilities: Optional[PlatformCapabilities] = None,
) -> None:
    """Create the link for a symbolic file.

    Args:
        file: Symbolic VirtualFile; ``symlink`` is updated to the written
            target and ``stat`` to the link's own stat
        options: Resolved write options
        capabilities: Platform capabilities

    Raises:
        OSError: If the link cannot be created (EEXIST with the exclusive
            flag is left to the caller to classify)
    """
    link_type = await resolve_link_type(file, options, capabilities)
    file.symlink = link_target(file, options, link_type)

    await file_ops.symlink(file.symlink, file.path, file.flag, link_type)
    logger.debug("Created link", path=file.path, target=file.symlink, type=link_type.value)

    await file_ops.reflect_link_stat(file.path, file)
