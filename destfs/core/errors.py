"""
destfs Core: Error types.

Every failure reported for a single file is a WriteError carrying the
OS-level errno and the offending path. The original OSError is chained as
``__cause__`` so tracebacks stay intact.
"""
import errno as errno_module
from typing import Optional

from destfs.core.constants import ErrorCode

_ERRNO_CODES = {
    errno_module.ENOENT: ErrorCode.NOT_FOUND,
    errno_module.ENOTDIR: ErrorCode.NOT_FOUND,
    errno_module.EACCES: ErrorCode.PERMISSION_DENIED,
    errno_module.EPERM: ErrorCode.PERMISSION_DENIED,
    errno_module.EROFS: ErrorCode.PERMISSION_DENIED,
    errno_module.EEXIST: ErrorCode.CONFLICT,
    errno_module.EISDIR: ErrorCode.CONFLICT,
    errno_module.ENOSPC: ErrorCode.NO_SPACE,
    getattr(errno_module, "EDQUOT", errno_module.ENOSPC): ErrorCode.NO_SPACE,
}


def error_code_for(err: BaseException) -> ErrorCode:
    """Map an exception to the closest ErrorCode.

    Args:
        err: Exception raised while writing

    Returns:
        Matching error code, INTERNAL_ERROR when nothing fits
    """
    if isinstance(err, OSError) and err.errno is not None:
        return _ERRNO_CODES.get(err.errno, ErrorCode.INTERNAL_ERROR)
    if isinstance(err, (ValueError, TypeError)):
        return ErrorCode.INVALID_INPUT
    return ErrorCode.INTERNAL_ERROR


class WriteError(Exception):
    """Error writing or reconciling a single VirtualFile."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        path: Optional[str] = None,
        errno: Optional[int] = None,
    ):
        """Initialize WriteError.

        Args:
            message: Error message
            error_code: Associated error code
            path: Path the failing operation was applied to
            errno: OS error number, when the failure came from a syscall
        """
        self.message = message
        self.error_code = error_code
        self.path = path
        self.errno = errno
        super().__init__(message)

    @classmethod
    def from_exception(cls, err: BaseException, path: Optional[str] = None) -> "WriteError":
        """Wrap an exception raised during a write.

        Args:
            err: Original exception
            path: Fallback path when the exception doesn't name one

        Returns:
            WriteError chained to ``err``
        """
        if isinstance(err, WriteError):
            return err

        err_path = path
        err_no = None
        if isinstance(err, OSError):
            err_no = err.errno
            if err.filename is not None:
                err_path = str(err.filename)
            message = f"{err.strerror or err}: {err_path}"
        else:
            message = str(err) or type(err).__name__

        wrapped = cls(message, error_code_for(err), path=err_path, errno=err_no)
        wrapped.__cause__ = err
        return wrapped

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} code={self.error_code.name} "
            f"errno={self.errno} path={self.path!r}>"
        )


class StreamConsumedError(Exception):
    """Raised when a VirtualFile's stream contents are taken twice."""
