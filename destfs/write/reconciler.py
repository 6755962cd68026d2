#!/usr/bin/env python3
"""Metadata reconciliation for written files.

After content is written the reconciler compares the metadata requested on
the VirtualFile with what is actually on disk and applies only the
differences, using the still-open descriptor:

    STAT -> MODE -> TIMES -> OWNER -> DONE

- STAT copies the on-disk stat onto ``file.stat`` (the new baseline).
- If nothing differs, or the process neither owns the file nor is root,
  nothing else happens and no error is reported.
- MODE, TIMES and OWNER are each attempted when their diff is non-empty,
  even if an earlier step failed; ``file.stat`` is updated after every
  successful step and the first error is returned.

Example:
    >>> reconciler = MetadataReconciler()
    >>> error = await reconciler.reconcile(fd, file)
"""

import os
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from destfs.core import file_ops
from destfs.core.constants import MASK_MODE
from destfs.core.file_ops import OwnerDiff, TimesDiff
from destfs.core.platform import PlatformCapabilities, get_capabilities
from destfs.core.virtual_file import VirtualFile
from destfs.infrastructure.logger import get_logger

Target = Union[int, str]


class ReconcileState(Enum):
    """Steps of a reconciliation."""

    STAT = "stat"
    MODE = "mode"
    TIMES = "times"
    OWNER = "owner"
    DONE = "done"


class MetadataReconciler:
    """Applies minimal mode/times/owner changes to a file on disk."""

    def __init__(self, capabilities: Optional[PlatformCapabilities] = None):
        """Initialize reconciler.

        Args:
            capabilities: Platform capabilities (default: running platform)
        """
        self._capabilities = capabilities or get_capabilities()
        self._logger = get_logger("destfs.reconciler")

    async def reconcile(self, target: Target, file: VirtualFile) -> Optional[OSError]:
        """Reconcile on-disk metadata with ``file.stat``.

        Args:
            target: Open descriptor (preferred) or path of the written entry
            file: File whose stat holds the desired metadata

        Returns:
            First error raised by an applied change, or None
        """
        try:
            st = await self._stat(target)
        except OSError as e:
            return e

        desired = file.stat
        mode_diff = file_ops.get_mode_diff(st.st_mode, desired.mode)
        times_diff = file_ops.get_times_diff(st, desired)
        owner_diff = file_ops.get_owner_diff(st, desired)

        file.stat.assign(st)

        if not mode_diff and times_diff is None and owner_diff is None:
            return None

        if not file_ops.is_owner(st, self._capabilities):
            self._logger.debug(
                "Skipping metadata update on file not owned by process",
                path=file.path,
                owner=st.st_uid,
            )
            return None

        steps: List[Tuple[ReconcileState, bool, Callable[[], Awaitable[None]]]] = [
            (
                ReconcileState.MODE,
                bool(mode_diff),
                lambda: self._apply_mode(target, file, st.st_mode ^ mode_diff),
            ),
            (
                ReconcileState.TIMES,
                times_diff is not None,
                lambda: self._apply_times(target, file, times_diff),
            ),
            (
                ReconcileState.OWNER,
                owner_diff is not None,
                lambda: self._apply_owner(target, file, owner_diff),
            ),
        ]

        first_error: Optional[OSError] = None
        for state, needed, apply in steps:
            if not needed:
                continue
            try:
                await apply()
            except OSError as e:
                self._logger.debug(
                    "Metadata update failed", path=file.path, step=state.value, error=e
                )
                if first_error is None:
                    first_error = e

        self._logger.debug(
            "Metadata reconciled", path=file.path, state=ReconcileState.DONE.value
        )
        return first_error

    async def _stat(self, target: Target) -> os.stat_result:
        if isinstance(target, int):
            return await file_ops.fstat(target)
        return await file_ops.stat(target)

    async def _apply_mode(self, target: Target, file: VirtualFile, mode: int) -> None:
        if isinstance(target, int) and file_ops.fchmod is not None:
            await file_ops.fchmod(target, mode & MASK_MODE)
        else:
            await file_ops.chmod(file.path if isinstance(target, int) else target, mode & MASK_MODE)
        file.stat.mode = mode

    async def _apply_times(self, target: Target, file: VirtualFile, diff: TimesDiff) -> None:
        atime = diff.atime if diff.atime is not None else time.time()
        await file_ops.futimes(target, (atime, diff.mtime))
        file.stat.atime = atime
        file.stat.mtime = diff.mtime

    async def _apply_owner(self, target: Target, file: VirtualFile, diff: OwnerDiff) -> None:
        if isinstance(target, int) and file_ops.fchown is not None:
            await file_ops.fchown(target, diff.uid, diff.gid)
        else:
            await file_ops.chown(file.path if isinstance(target, int) else target, diff.uid, diff.gid)
        file.stat.uid = diff.uid
        file.stat.gid = diff.gid
