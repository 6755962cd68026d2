"""
destfs Core: VirtualFile data model.

A VirtualFile describes one filesystem entry to be materialized: where it
goes, what it contains, and the metadata it should end up with. The write
engine mutates it in place (paths resolved, stat refreshed from disk) and
hands it back.

Example:
    >>> file = VirtualFile(path="/out/a.txt", contents=b"hello")
    >>> file.stat.mode = 0o640
    >>> file.is_buffer()
    True
"""
import math
import os
import stat as stat_module
from dataclasses import dataclass
from typing import Any, AsyncIterable, BinaryIO, Optional, Union

from destfs.core.constants import WriteFlag
from destfs.core.errors import StreamConsumedError


class DirectoryContents:
    """Marker contents for a VirtualFile that should become a directory."""

    def __repr__(self) -> str:
        return "<DirectoryContents>"


DIRECTORY = DirectoryContents()

# Readable byte streams: async iterables of bytes, objects with an async or
# sync ``read(size)`` method (asyncio.StreamReader, open(..., "rb"), BytesIO)
ByteStream = Union[AsyncIterable[bytes], BinaryIO, Any]
Contents = Union[None, bytes, DirectoryContents, ByteStream]


def is_valid_time(value: Any) -> bool:
    """Check that a timestamp is a finite number of seconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_valid_id(value: Any) -> bool:
    """Check that a uid/gid is a non-negative integer."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


@dataclass
class FileStat:
    """Desired or actual metadata of a VirtualFile.

    Desired values may be left as None. After a write the engine copies the
    real on-disk stat over every field, then updates individual fields as
    metadata changes are applied.
    """

    mode: Optional[int] = None
    mtime: Optional[float] = None
    atime: Optional[float] = None
    uid: Optional[int] = None
    gid: Optional[int] = None
    ctime: Optional[float] = None
    size: Optional[int] = None
    dev: Optional[int] = None
    ino: Optional[int] = None
    nlink: Optional[int] = None

    @classmethod
    def from_os(cls, st: os.stat_result) -> "FileStat":
        """Create a FileStat from an os.stat_result."""
        result = cls()
        result.assign(st)
        return result

    def assign(self, st: os.stat_result) -> None:
        """Overwrite every field with the values of an os.stat_result."""
        self.mode = st.st_mode
        self.mtime = st.st_mtime
        self.atime = st.st_atime
        self.uid = st.st_uid
        self.gid = st.st_gid
        self.ctime = st.st_ctime
        self.size = st.st_size
        self.dev = st.st_dev
        self.ino = st.st_ino
        self.nlink = st.st_nlink

    def is_directory(self) -> bool:
        """Check the cached mode for a directory type bit."""
        return self.mode is not None and stat_module.S_ISDIR(self.mode)

    def is_symlink(self) -> bool:
        """Check the cached mode for a symlink type bit."""
        return self.mode is not None and stat_module.S_ISLNK(self.mode)


class VirtualFile:
    """In-memory descriptor of a filesystem entry to be materialized.

    Contents is exactly one of: None, bytes, DIRECTORY, or a readable byte
    stream. A symlink target is held separately in ``symlink`` and excludes
    any contents. A stream may only be consumed once.
    """

    def __init__(
        self,
        path: Union[str, os.PathLike],
        contents: Contents = None,
        *,
        base: Optional[Union[str, os.PathLike]] = None,
        cwd: Optional[Union[str, os.PathLike]] = None,
        symlink: Optional[str] = None,
        stat: Optional[FileStat] = None,
        flag: WriteFlag = WriteFlag.OVERWRITE,
    ):
        """Initialize VirtualFile.

        Args:
            path: Absolute path of the entry (source path before preparation)
            contents: File contents (see class docstring)
            base: Base directory ``relative`` is computed against
            cwd: Working directory the paths were resolved from
            symlink: Link target, for symbolic files
            stat: Desired metadata
            flag: Write collision behaviour
        """
        self.cwd = os.path.abspath(os.fspath(cwd)) if cwd is not None else os.getcwd()
        self.path = os.path.abspath(os.path.join(self.cwd, os.fspath(path)))
        self.base = (
            os.path.abspath(os.path.join(self.cwd, os.fspath(base)))
            if base is not None
            else os.path.dirname(self.path)
        )
        self.stat = stat if stat is not None else FileStat()
        self.flag = flag
        self._stream_consumed = False
        self._contents: Contents = None
        self._symlink: Optional[str] = None
        self.contents = contents
        self.symlink = symlink

    @property
    def contents(self) -> Contents:
        return self._contents

    @contents.setter
    def contents(self, value: Contents) -> None:
        if (
            value is not None
            and not isinstance(value, DirectoryContents)
            and getattr(self, "_symlink", None) is not None
        ):
            raise ValueError("A symbolic VirtualFile cannot carry contents")
        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)
        if isinstance(value, str):
            raise TypeError("contents must be bytes, a byte stream, DIRECTORY or None")
        self._contents = value
        self._stream_consumed = False

    @property
    def symlink(self) -> Optional[str]:
        return self._symlink

    @symlink.setter
    def symlink(self, target: Optional[Union[str, os.PathLike]]) -> None:
        if target is not None and self._contents is not None and not isinstance(
            self._contents, DirectoryContents
        ):
            raise ValueError("A VirtualFile with contents cannot be a symlink")
        self._symlink = os.fspath(target) if target is not None else None

    @property
    def relative(self) -> str:
        """Path of the file relative to its base."""
        return os.path.relpath(self.path, self.base)

    @property
    def dirname(self) -> str:
        return os.path.dirname(self.path)

    @property
    def basename(self) -> str:
        return os.path.basename(self.path)

    @property
    def stem(self) -> str:
        return os.path.splitext(self.basename)[0]

    @property
    def extname(self) -> str:
        return os.path.splitext(self.basename)[1]

    def is_null(self) -> bool:
        return self._contents is None and self._symlink is None

    def is_buffer(self) -> bool:
        return isinstance(self._contents, bytes)

    def is_directory(self) -> bool:
        """Directory either by explicit contents or by the cached stat mode."""
        if self._symlink is not None:
            return False
        if isinstance(self._contents, DirectoryContents):
            return True
        return self._contents is None and self._symlink is None and self.stat.is_directory()

    def is_stream(self) -> bool:
        contents = self._contents
        if contents is None or isinstance(contents, (bytes, DirectoryContents)):
            return False
        return True

    def is_symbolic(self) -> bool:
        return self._symlink is not None

    def take_stream(self) -> ByteStream:
        """Hand out the stream contents for consumption.

        Returns:
            The stream

        Raises:
            StreamConsumedError: If the stream was already taken
            TypeError: If the contents are not a stream
        """
        if not self.is_stream():
            raise TypeError(f"{self.path} does not have stream contents")
        if self._stream_consumed:
            raise StreamConsumedError(f"Stream contents of {self.path} were already consumed")
        self._stream_consumed = True
        return self._contents

    def __repr__(self) -> str:
        if self.is_symbolic():
            kind = f"symlink->{self._symlink}"
        elif self.is_directory():
            kind = "directory"
        elif self.is_buffer():
            kind = f"buffer[{len(self._contents)}]"
        elif self.is_stream():
            kind = "stream"
        else:
            kind = "null"
        return f"<VirtualFile {self.relative!r} {kind}>"
