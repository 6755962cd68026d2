"""
destfs Core: Platform capability detection.

Platform differences (link types, ownership semantics, umask) live here so
the writers and the reconciler ask a capability object instead of checking
``sys.platform`` themselves.
"""
import os
import sys
import threading
from dataclasses import dataclass
from typing import Optional

from destfs.core.constants import DEFAULT_DIR_MODE

PROC_STATUS = "/proc/self/status"

_umask_lock = threading.Lock()


def _read_proc_umask(status_path: str = PROC_STATUS) -> Optional[int]:
    """Read the umask from a Linux ``/proc`` status file, None if unavailable."""
    try:
        with open(status_path, "r") as f:
            for line in f:
                if line.startswith("Umask:"):
                    return int(line.split(":", 1)[1].strip(), 8)
    except (OSError, ValueError):
        return None
    return None


def current_umask() -> int:
    """Read the process umask.

    Where ``/proc`` does not report it, ``os.umask`` has to be set to be
    read; that probe is serialized and the original value restored
    immediately. Callers read it once, through PlatformCapabilities.detect().
    """
    mask = _read_proc_umask()
    if mask is not None:
        return mask
    with _umask_lock:
        mask = os.umask(0)
        os.umask(mask)
    return mask


@dataclass(frozen=True)
class PlatformCapabilities:
    """What the running platform supports for the write engine."""

    name: str
    # Links carry a file/directory type tag (Windows)
    typed_links: bool
    # Directory links need junctions for unprivileged users
    requires_junctions: bool
    # fchmod/futimes/fchown on a descriptor and euid checks are available
    posix_ownership: bool
    # Process umask at detection time
    umask: int = 0o022

    @classmethod
    def detect(
        cls, platform: Optional[str] = None, umask: Optional[int] = None
    ) -> "PlatformCapabilities":
        """Build capabilities for a platform string.

        Args:
            platform: ``sys.platform`` style name (default: running platform)
            umask: Umask to assume (default: read from the process once)

        Returns:
            Capabilities for that platform
        """
        platform = platform or sys.platform
        windows = platform.startswith("win")
        return cls(
            name=platform,
            typed_links=windows,
            requires_junctions=windows,
            posix_ownership=not windows,
            umask=current_umask() if umask is None else umask,
        )

    def effective_uid(self) -> Optional[int]:
        """Effective user id of the process, None where there is none."""
        if not self.posix_ownership:
            return None
        if hasattr(os, "geteuid"):
            return os.geteuid()
        if hasattr(os, "getuid"):
            return os.getuid()
        return None

    def default_dir_mode(self) -> int:
        """Mode applied to new directories when no mode was requested."""
        return DEFAULT_DIR_MODE & ~self.umask


_capabilities: Optional[PlatformCapabilities] = None


def get_capabilities() -> PlatformCapabilities:
    """Get capabilities of the running platform.

    Returns:
        Detected PlatformCapabilities
    """
    global _capabilities
    if _capabilities is None:
        _capabilities = PlatformCapabilities.detect()
    return _capabilities
