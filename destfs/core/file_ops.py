"""
destfs Core: Low-level file operations.

Async wrappers around the syscalls the write engine needs, plus the pure
helpers that decide what has to change on disk:

- Descriptor I/O (open_file, write_all, close_fd)
- Idempotent recursive directory creation (ensure_dir)
- Metadata diffs (get_mode_diff, get_times_diff, get_owner_diff)
- Privilege check for metadata changes (is_owner)
- Symlink creation and stat reflection

Every syscall runs through aiofiles so the event loop never blocks on disk.
"""
import errno
import os
import stat as stat_module
from dataclasses import dataclass
from typing import Optional, Union

import aiofiles.os
from aiofiles.os import wrap

from destfs.core.constants import DEFAULT_FILE_MODE, MASK_MODE, LinkType, WriteFlag
from destfs.core.platform import PlatformCapabilities, get_capabilities
from destfs.core.virtual_file import FileStat, VirtualFile, is_valid_id, is_valid_time
from destfs.infrastructure.logger import get_logger

logger = get_logger("destfs.file_ops")

# Read-only open of a directory, for descriptor-based reconciliation
O_DIRECTORY_READ = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)

# Descriptor-based syscalls
open_fd = wrap(os.open)
write_fd = wrap(os.write)
lseek = wrap(os.lseek)
pwrite_fd = wrap(os.pwrite) if hasattr(os, "pwrite") else None
close = wrap(os.close)
fstat = wrap(os.fstat)
fchmod = wrap(os.fchmod) if hasattr(os, "fchmod") else None
fchown = wrap(os.fchown) if hasattr(os, "fchown") else None
futimes = wrap(os.utime)

# Path-based syscalls
stat = wrap(os.stat)
lstat = wrap(os.lstat)
chmod = wrap(os.chmod)
chown = wrap(os.chown) if hasattr(os, "chown") else None
rmdir = wrap(os.rmdir)


@dataclass(frozen=True)
class TimesDiff:
    """Timestamps to apply, in seconds since the epoch."""

    mtime: float
    atime: Optional[float]


@dataclass(frozen=True)
class OwnerDiff:
    """Ownership to apply; -1 leaves an id unchanged."""

    uid: int
    gid: int


# =========================================================================
# Write flags and collisions
# =========================================================================


def get_flags(overwrite: bool = True, append: bool = False) -> WriteFlag:
    """Select the write flag for an overwrite/append policy.

    Args:
        overwrite: Replace existing files instead of failing
        append: Append to existing content instead of truncating

    Returns:
        Matching WriteFlag
    """
    if append:
        return WriteFlag.APPEND if overwrite else WriteFlag.EXCLUSIVE_APPEND
    if not overwrite:
        return WriteFlag.EXCLUSIVE
    return WriteFlag.OVERWRITE


def is_fatal_overwrite_error(err: Optional[BaseException], flag: WriteFlag) -> bool:
    """Check whether a write error should fail the file.

    An existing target while writing exclusively is a collision: the entry
    on disk is kept and the write counts as done.

    Args:
        err: Error raised while creating the content (None for success)
        flag: Write flag that was in effect

    Returns:
        True if the error must be reported
    """
    if err is None:
        return False
    if isinstance(err, OSError) and err.errno == errno.EEXIST and flag.is_exclusive:
        return False
    return True


# =========================================================================
# Descriptor I/O
# =========================================================================


async def open_file(path: str, flag: WriteFlag, mode: Optional[int] = None) -> int:
    """Open a file for writing.

    Args:
        path: File path
        flag: Write flag
        mode: Mode for newly created files (default: 0o666 masked by umask)

    Returns:
        Open file descriptor
    """
    if mode is None:
        mode = DEFAULT_FILE_MODE
    return await open_fd(path, flag.os_flags | getattr(os, "O_BINARY", 0), mode & MASK_MODE)


async def write_all(fd: int, data: bytes, position: Optional[int] = 0) -> int:
    """Write every byte of ``data`` to a descriptor.

    Args:
        fd: Open file descriptor
        data: Bytes to write
        position: Offset to start at, None for the current position

    Returns:
        Number of bytes written
    """
    view = memoryview(data)
    total = 0
    while total < len(view):
        if position is not None and pwrite_fd is not None:
            written = await pwrite_fd(fd, view[total:], position + total)
        else:
            if position is not None and total == 0:
                await lseek(fd, position, os.SEEK_SET)
            written = await write_fd(fd, view[total:])
        if written == 0:
            raise OSError(errno.EIO, "write returned no progress")
        total += written
    return total


async def close_fd(
    propagated_err: Optional[BaseException], fd: Optional[int]
) -> Optional[BaseException]:
    """Close a descriptor, keeping any earlier error.

    Args:
        propagated_err: Error from the steps before closing
        fd: Descriptor to close (ignored if not an int)

    Returns:
        ``propagated_err`` if set, else the close error, else None
    """
    if not isinstance(fd, int):
        return propagated_err

    try:
        await close(fd)
    except OSError as close_err:
        if propagated_err is None:
            return close_err
        logger.debug("Close failed after earlier error", fd=fd, error=close_err)
    return propagated_err


# =========================================================================
# Directories
# =========================================================================


async def ensure_dir(
    dirpath: Union[str, os.PathLike],
    mode: Optional[int] = None,
    capabilities: Optional[PlatformCapabilities] = None,
) -> None:
    """Create a directory and any missing parents.

    Safe to call concurrently for the same path: losing the creation race
    is not an error.

    Args:
        dirpath: Directory to create
        mode: Permission bits to enforce (default: 0o777 masked by umask,
            not enforced on existing directories)
        capabilities: Platform capabilities (default: running platform)

    Raises:
        OSError: If a path segment exists and is not a directory, or on any
            other creation failure
    """
    capabilities = capabilities or get_capabilities()
    custom_mode = mode
    if mode is None:
        mode = capabilities.default_dir_mode()
    dirpath = os.path.abspath(os.fspath(dirpath))

    try:
        await aiofiles.os.mkdir(dirpath, mode & MASK_MODE)
    except FileNotFoundError:
        parent = os.path.dirname(dirpath)
        if parent == dirpath:
            raise
        await ensure_dir(parent, capabilities=capabilities)
        await ensure_dir(dirpath, custom_mode, capabilities=capabilities)
        return
    except FileExistsError as mkdir_err:
        st = await stat(dirpath)
        if not stat_module.S_ISDIR(st.st_mode):
            raise mkdir_err
        await _enforce_dir_mode(dirpath, st, custom_mode)
        return

    logger.debug("Created directory", path=dirpath, mode=oct(mode))
    if custom_mode is not None:
        st = await stat(dirpath)
        await _enforce_dir_mode(dirpath, st, custom_mode)


async def _enforce_dir_mode(dirpath: str, st: os.stat_result, mode: Optional[int]) -> None:
    """Chmod a directory whose permission bits differ from an explicit mode."""
    if mode is None:
        return
    if stat_module.S_IMODE(st.st_mode) == mode & MASK_MODE:
        return
    await chmod(dirpath, mode & MASK_MODE)
    logger.debug("Changed directory mode", path=dirpath, mode=oct(mode & MASK_MODE))


# =========================================================================
# Metadata diffs
# =========================================================================


def get_mode_diff(fs_mode: int, desired_mode: Optional[int]) -> int:
    """Bits that differ between actual and desired permissions.

    Args:
        fs_mode: Mode on disk
        desired_mode: Desired mode, None if unspecified

    Returns:
        XOR of the two modes masked to the permission bits, 0 if unspecified
    """
    if desired_mode is None or isinstance(desired_mode, bool):
        return 0
    return (desired_mode ^ fs_mode) & MASK_MODE


def get_times_diff(fs_stat: os.stat_result, desired: FileStat) -> Optional[TimesDiff]:
    """Timestamps to apply, if any.

    Args:
        fs_stat: Stat on disk
        desired: Desired metadata

    Returns:
        TimesDiff, or None when mtime is invalid or both times already match
    """
    if not is_valid_time(desired.mtime):
        return None

    if desired.mtime == fs_stat.st_mtime and desired.atime == fs_stat.st_atime:
        return None

    atime = desired.atime if is_valid_time(desired.atime) else fs_stat.st_atime
    if not is_valid_time(atime):
        atime = None

    return TimesDiff(mtime=desired.mtime, atime=atime)


def get_owner_diff(fs_stat: os.stat_result, desired: FileStat) -> Optional[OwnerDiff]:
    """Ownership to apply, if any.

    An unspecified (or negative) uid/gid inherits the value on disk.

    Args:
        fs_stat: Stat on disk
        desired: Desired metadata

    Returns:
        OwnerDiff, or None if ownership already matches or nothing was asked
    """
    if not isinstance(desired.uid, int) and not isinstance(desired.gid, int):
        return None

    uid = desired.uid if is_valid_id(desired.uid) else fs_stat.st_uid
    gid = desired.gid if is_valid_id(desired.gid) else fs_stat.st_gid

    if uid == fs_stat.st_uid and gid == fs_stat.st_gid:
        return None

    return OwnerDiff(uid=uid if uid >= 0 else -1, gid=gid if gid >= 0 else -1)


def is_owner(fs_stat: os.stat_result, capabilities: Optional[PlatformCapabilities] = None) -> bool:
    """Check that the process may change this file's metadata.

    fchmod/futimes only work for the file owner or the superuser. Platforms
    without an effective uid are treated as unprivileged.

    Args:
        fs_stat: Stat on disk
        capabilities: Platform capabilities (default: running platform)

    Returns:
        True if the process owns the file or is root
    """
    capabilities = capabilities or get_capabilities()
    uid = capabilities.effective_uid()
    if uid is None:
        return False
    return fs_stat.st_uid == uid or uid == 0


# =========================================================================
# Symlinks and stat reflection
# =========================================================================


async def symlink(
    target: str,
    path: str,
    flag: WriteFlag = WriteFlag.OVERWRITE,
    link_type: LinkType = LinkType.FILE,
) -> None:
    """Create a symbolic link (or junction) at ``path``.

    With an overwrite flag an existing link is replaced; with the exclusive
    flag the EEXIST error is raised for the caller to classify.

    Args:
        target: Link target
        path: Path of the link
        flag: Write flag
        link_type: Link type to create
    """
    try:
        await _create_link(target, path, link_type)
    except FileExistsError:
        if flag.is_exclusive:
            raise
        await _remove_link(path, link_type)
        await _create_link(target, path, link_type)


async def _create_link(target: str, path: str, link_type: LinkType) -> None:
    if link_type is LinkType.JUNCTION:
        import _winapi

        await wrap(_winapi.CreateJunction)(os.path.abspath(target), path)
        return
    await aiofiles.os.symlink(target, path, target_is_directory=link_type is LinkType.DIR)


async def _remove_link(path: str, link_type: LinkType) -> None:
    st = await lstat(path)
    if link_type is LinkType.JUNCTION or (
        stat_module.S_ISDIR(st.st_mode) and not stat_module.S_ISLNK(st.st_mode)
    ):
        await rmdir(path)
    else:
        await aiofiles.os.unlink(path)


async def reflect_stat(path: str, file: VirtualFile) -> None:
    """Copy the (followed) stat of ``path`` onto ``file.stat``."""
    file.stat.assign(await stat(path))


async def reflect_link_stat(path: str, file: VirtualFile) -> None:
    """Copy the stat of the link at ``path`` itself onto ``file.stat``."""
    file.stat.assign(await lstat(path))
