"""destfs - Asynchronous VirtualFile write engine.

Materializes in-memory file descriptors (VirtualFiles) onto the local
filesystem: directories, buffers, streams and symbolic links, with their
permission bits, timestamps and ownership reconciled after writing.
"""

from destfs.core.constants import DESTFS_VERSION, LinkType, WriteFlag
from destfs.core.errors import WriteError
from destfs.core.virtual_file import DIRECTORY, FileStat, VirtualFile
from destfs.dest import Destination, SymlinkDestination, WriteResult

__version__ = DESTFS_VERSION

__all__ = [
    "DIRECTORY",
    "Destination",
    "FileStat",
    "LinkType",
    "SymlinkDestination",
    "VirtualFile",
    "WriteError",
    "WriteFlag",
    "WriteResult",
    "__version__",
]
