"""
Error Taxonomy
==============

Closed set of error kinds for the capture system.

Every failure that leaves this package carries exactly ONE ErrorKind,
so callers branch on structured data rather than on message text.

Rules:
    - Idle receive timeouts are never errors
    - Control client failures are returned as results, not raised
    - Stream session setup failures are raised as CaptureError subclasses
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """
    Machine-readable error kinds.

    Attributes:
        CONFIGURATION: Bad address, port or setting before any I/O
        BIND: Local datagram socket unavailable
        STORAGE: Output file cannot be opened or written
        TRANSPORT: Non-timeout socket failure while receiving
        REMOTE_COMMAND: Device returned a failure status or bad body
        PRECONDITION: Mutually exclusive mode or session state conflict
        NOT_FOUND: Named preset group or preset missing from catalog
        SESSION_NOT_FOUND: Unknown capture session identifier
    """

    CONFIGURATION = "CONFIGURATION"
    BIND = "BIND"
    STORAGE = "STORAGE"
    TRANSPORT = "TRANSPORT"
    REMOTE_COMMAND = "REMOTE_COMMAND"
    PRECONDITION = "PRECONDITION"
    NOT_FOUND = "NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"


class ErrorInfo(BaseModel):
    """Structured, serializable description of a failure."""

    kind: ErrorKind = Field(..., description="Error kind")
    message: str = Field(..., description="Human-readable detail")

    model_config = ConfigDict(frozen=True)


class CaptureError(Exception):
    """Base class for all camcapture errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message)


class ConfigurationError(CaptureError):
    kind = ErrorKind.CONFIGURATION


class BindError(CaptureError):
    kind = ErrorKind.BIND


class StorageError(CaptureError):
    kind = ErrorKind.STORAGE


class TransportError(CaptureError):
    kind = ErrorKind.TRANSPORT


class RemoteCommandError(CaptureError):
    kind = ErrorKind.REMOTE_COMMAND


class PreconditionError(CaptureError):
    kind = ErrorKind.PRECONDITION


class NotFoundError(CaptureError):
    kind = ErrorKind.NOT_FOUND


class SessionNotFoundError(CaptureError):
    kind = ErrorKind.SESSION_NOT_FOUND


_ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (
        ConfigurationError,
        BindError,
        StorageError,
        TransportError,
        RemoteCommandError,
        PreconditionError,
        NotFoundError,
        SessionNotFoundError,
    )
}


def error_from_info(info: ErrorInfo) -> CaptureError:
    """Rebuild the matching exception for a structured error."""
    return _ERRORS_BY_KIND[info.kind](info.message)
