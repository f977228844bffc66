"""
Command Result
==============

Outcome of a single HTTP control command.

Control commands are fire-and-confirm: the client never retries and
never raises for a remote failure. Instead every call returns a
CommandResult that either carries the parsed body or an ErrorInfo.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from camcapture.errors import ErrorInfo, ErrorKind, error_from_info


class CommandResult(BaseModel):
    """
    Result of one control command.

    Attributes:
        command: Command path that was invoked
        status_code: HTTP status code, None when no response was received
        body: Parsed JSON body, if any
        error: Failure description, None on success
    """

    model_config = ConfigDict(frozen=True)

    command: str = Field(..., description="Invoked command path")
    status_code: Optional[int] = Field(default=None, description="HTTP status code")
    body: Optional[Any] = Field(default=None, description="Parsed JSON body")
    error: Optional[ErrorInfo] = Field(default=None, description="Failure, if any")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        command: str,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[Any] = None,
    ) -> "CommandResult":
        return cls(
            command=command,
            status_code=status_code,
            body=body,
            error=ErrorInfo(kind=kind, message=message),
        )

    def raise_for_error(self) -> "CommandResult":
        """Raise the matching CaptureError if this result is a failure."""
        if self.error is not None:
            raise error_from_info(self.error)
        return self
