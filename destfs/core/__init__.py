"""destfs Core - Data model and low-level file operations.

Import specific functions from submodules:
    from destfs.core.virtual_file import VirtualFile, FileStat
    from destfs.core.errors import WriteError
    from destfs.core import constants
    from destfs.core import file_ops
    from destfs.core import platform
    from destfs.core import validators
"""

from destfs.core import constants, errors, file_ops, platform, validators, virtual_file

__all__ = [
    "constants",
    "errors",
    "file_ops",
    "platform",
    "validators",
    "virtual_file",
]
