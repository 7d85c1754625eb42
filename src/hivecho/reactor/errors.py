import errno
import socket
from enum import Enum
from typing import Optional

class ErrorKind(Enum):
    """Classification handed to error callbacks"""
    ADDRESS_IN_USE = "AddressInUse"
    PERMISSION_DENIED = "PermissionDenied"
    ABORTED = "Aborted"
    CONNECTION_RESET = "ConnectionReset"
    CONNECTION_REFUSED = "ConnectionRefused"
    TIMEOUT = "Timeout"
    CLOSED = "Closed"
    UNKNOWN = "Unknown"

_ERRNO_KINDS = {
    errno.EADDRINUSE: ErrorKind.ADDRESS_IN_USE,
    errno.EACCES: ErrorKind.PERMISSION_DENIED,
    errno.EPERM: ErrorKind.PERMISSION_DENIED,
    errno.ECONNABORTED: ErrorKind.ABORTED,
    errno.ECONNRESET: ErrorKind.CONNECTION_RESET,
    errno.EPIPE: ErrorKind.CONNECTION_RESET,
    errno.ECONNREFUSED: ErrorKind.CONNECTION_REFUSED,
    errno.ETIMEDOUT: ErrorKind.TIMEOUT,
    errno.EBADF: ErrorKind.CLOSED,
    errno.ENOTCONN: ErrorKind.CLOSED,
    errno.ESHUTDOWN: ErrorKind.CLOSED,
}

class HivechoError(Exception):
    """Base for everything hivecho raises or reports"""

class AddressError(HivechoError):
    """Malformed host or port"""

class BindError(HivechoError):
    """Listening address is in use or unavailable"""
    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind

class ReactorError(HivechoError):
    """An I/O failure delivered to an error callback instead of being raised"""
    def __init__(self, kind: ErrorKind, message: str = "", errno: Optional[int] = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.errno = errno
        self.message = message or kind.value

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ReactorError":
        err = cls(classify(exc), str(exc) or type(exc).__name__, getattr(exc, "errno", None))
        err.__cause__ = exc
        return err

    def __str__(self):
        return f"{self.kind.value}: {self.message}"

class AcceptError(ReactorError):
    """One accept attempt failed, the acceptor keeps listening"""

class ConnectionIOError(ReactorError):
    """Terminal failure of a single connection"""

def classify(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ReactorError):
        return exc.kind

    if isinstance(exc, (TimeoutError, socket.timeout)):
        return ErrorKind.TIMEOUT

    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED

    if isinstance(exc, ConnectionAbortedError):
        return ErrorKind.ABORTED

    if isinstance(exc, (ConnectionResetError, BrokenPipeError)):
        return ErrorKind.CONNECTION_RESET

    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION_DENIED

    if isinstance(exc, OSError) and exc.errno in _ERRNO_KINDS:
        return _ERRNO_KINDS[exc.errno]

    return ErrorKind.UNKNOWN
