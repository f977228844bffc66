"""
Session Models
==============

State and snapshot types for a stream capture session.

Lifecycle:
    IDLE -> LISTENING        on successful bind + open
    LISTENING <-> DRAINING   while datagrams are written and flushed
    -> STOPPED               clean stop (exactly once)
    -> FAILED                unrecoverable I/O error (exactly once)

The output file is open if and only if the state is LISTENING or
DRAINING.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from camcapture.errors import ErrorInfo


class SessionState(str, Enum):
    """
    Discrete states of a capture session.

    Attributes:
        IDLE: Created, nothing bound or opened
        LISTENING: Socket bound, waiting for the next datagram
        DRAINING: Writing a received datagram to the output file
        STOPPED: Cleanly stopped, resources released
        FAILED: Halted by an I/O error, resources released
    """

    IDLE = "IDLE"
    LISTENING = "LISTENING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"
    FAILED = "FAILED"

    @property
    def is_active(self) -> bool:
        return self in (SessionState.LISTENING, SessionState.DRAINING)

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.STOPPED, SessionState.FAILED)


class SessionSnapshot(BaseModel):
    """
    Point-in-time view of a session's counters.

    Attributes:
        state: Session state at snapshot time
        bytes_received: Payload bytes written to the output file
        datagrams_received: Reception events (zero-length included)
        truncated_datagrams: Datagrams larger than the receive buffer
        elapsed_seconds: Time since start (frozen once terminal)
        started_at: Wall-clock start time
        stopped_at: Wall-clock termination time
        error: Causing error when FAILED
    """

    model_config = ConfigDict(frozen=True)

    state: SessionState = Field(..., description="Session state")
    bytes_received: int = Field(default=0, ge=0, description="Bytes persisted")
    datagrams_received: int = Field(default=0, ge=0, description="Reception events")
    truncated_datagrams: int = Field(default=0, ge=0, description="Oversized datagrams")
    elapsed_seconds: float = Field(default=0.0, ge=0.0, description="Seconds since start")
    started_at: Optional[datetime] = Field(default=None, description="Start time")
    stopped_at: Optional[datetime] = Field(default=None, description="Stop time")
    error: Optional[ErrorInfo] = Field(default=None, description="Failure cause")
