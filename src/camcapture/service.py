"""
Capture Service
===============

Process-level begin/end capture surface.

This module ties the control client and the stream session together:
    - begin_capture binds a StreamSession, then asks the camera to
      stream webcam video to that port
    - end_capture stops the session, the keep-alive and the remote webcam

Every operation returns a CaptureResult; no CaptureError escapes.

Example:
    from camcapture.config import load_config
    from camcapture.service import CaptureRequest, CaptureService

    service = CaptureService(load_config())
    result = service.begin_capture(CaptureRequest(
        remote_host="10.5.5.9",
        remote_port=8080,
        local_port=8554,
        output_path="capture.ts",
    ))
    ...
    service.end_capture(result.session_id)
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pydantic import BaseModel, Field

from camcapture.config import Settings
from camcapture.control.client import ControlClient
from camcapture.control.keepalive import KeepAlive
from camcapture.errors import (
    CaptureError,
    ErrorInfo,
    SessionNotFoundError,
)
from camcapture.models.endpoint import DeviceEndpoint
from camcapture.models.session import SessionSnapshot, SessionState
from camcapture.stream.reporter import ProgressReporter
from camcapture.stream.session import StreamSession


logger = logging.getLogger(__name__)


class CaptureRequest(BaseModel):
    """Parameters of a begin-capture command."""

    remote_host: str = Field(..., description="Camera host or IP address")
    remote_port: int = Field(..., description="Camera HTTP control port")
    local_port: int = Field(..., description="Local UDP port to receive on")
    output_path: str = Field(..., description="File the stream is written to")


class CaptureResult(BaseModel):
    """
    Structured outcome of a capture command.

    Attributes:
        ok: Whether the command succeeded
        session_id: Capture identifier (set once a capture exists)
        snapshot: Session counters, readable on failure too
        error: Failure description when ok is False
    """

    ok: bool = Field(..., description="Whether the command succeeded")
    session_id: Optional[str] = Field(default=None, description="Capture identifier")
    snapshot: Optional[SessionSnapshot] = Field(default=None, description="Session counters")
    error: Optional[ErrorInfo] = Field(default=None, description="Failure, if any")

    @classmethod
    def failure(
        cls,
        error: ErrorInfo,
        session_id: Optional[str] = None,
        snapshot: Optional[SessionSnapshot] = None,
    ) -> "CaptureResult":
        return cls(ok=False, session_id=session_id, snapshot=snapshot, error=error)


@dataclass
class _Capture:
    """Resources owned by one active or finished capture."""

    session: StreamSession
    client: ControlClient
    keepalive: Optional[KeepAlive] = None
    ended: bool = False


class CaptureService:
    """
    Registry of captures keyed by session id.

    Each capture has its own ControlClient (and therefore its own
    DeviceEndpoint); the service holds no shared connection state.
    Ended captures stay queryable until more than
    capture.retained_captures of them have accumulated; the oldest
    are then forgotten.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[..., ControlClient] = ControlClient,
        session_factory: Callable[..., StreamSession] = StreamSession,
    ) -> None:
        self.settings = settings
        self._client_factory = client_factory
        self._session_factory = session_factory
        self._captures: Dict[str, _Capture] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Commands
    # =========================================================================

    def begin_capture(self, request: CaptureRequest) -> CaptureResult:
        """
        Start receiving on the local port and start the remote stream.

        The session is bound before the camera is asked to stream so the
        first datagrams are not lost. If the camera refuses, the session
        is stopped again and the remote error returned.
        """
        capture_config = self.settings.capture

        try:
            endpoint = DeviceEndpoint.create(request.remote_host, request.remote_port)
            session = self._session_factory(
                request.local_port,
                request.output_path,
                idle_timeout=capture_config.idle_timeout_seconds,
                max_datagram_size=capture_config.max_datagram_size,
            )
            session.start()
        except CaptureError as e:
            logger.error(f"Cannot begin capture: {e.message}")
            return CaptureResult.failure(e.to_info())

        client = self._client_factory(endpoint, timeout=self.settings.device.timeout_seconds)
        webcam = self.settings.webcam
        result = client.start_webcam(
            port=session.bound_port,
            resolution=webcam.resolution,
            fov=webcam.fov,
            protocol=webcam.protocol,
        )
        if not result.ok:
            logger.error(f"Camera refused to start streaming: {result.error.message}")
            snapshot = session.stop()
            client.close()
            return CaptureResult.failure(result.error, snapshot=snapshot)

        keepalive: Optional[KeepAlive] = None
        if self.settings.keepalive.enabled:
            keepalive = KeepAlive(client, interval=self.settings.keepalive.interval_seconds)
            keepalive.start()

        session_id = uuid.uuid4().hex[:12]
        with self._lock:
            self._captures[session_id] = _Capture(
                session=session,
                client=client,
                keepalive=keepalive,
            )

        logger.info(
            f"Capture {session_id} started: {endpoint.host}:{endpoint.port} -> "
            f"udp/{session.bound_port} -> {request.output_path}"
        )
        return CaptureResult(ok=True, session_id=session_id, snapshot=session.snapshot())

    def end_capture(self, session_id: str) -> CaptureResult:
        """
        Stop a capture.

        Idempotent: ending an already ended capture returns its terminal
        snapshot again without contacting the camera.
        """
        try:
            capture = self._get(session_id)
        except SessionNotFoundError as e:
            return CaptureResult.failure(e.to_info(), session_id=session_id)

        snapshot = capture.session.stop()
        self._finish(session_id, capture, snapshot)
        return self._result(session_id, snapshot)

    def status(self, session_id: str) -> CaptureResult:
        """
        Snapshot of one capture.

        A capture whose session ended on its own (fatal receive error)
        is cleaned up here the first time its terminal state is seen.
        """
        try:
            capture = self._get(session_id)
        except SessionNotFoundError as e:
            return CaptureResult.failure(e.to_info(), session_id=session_id)
        snapshot = capture.session.snapshot()
        if snapshot.state.is_terminal:
            self._finish(session_id, capture, snapshot)
        return self._result(session_id, snapshot)

    def list_sessions(self) -> Dict[str, SessionSnapshot]:
        with self._lock:
            captures = dict(self._captures)
        snapshots = {}
        for session_id, capture in captures.items():
            snapshot = capture.session.snapshot()
            if snapshot.state.is_terminal:
                self._finish(session_id, capture, snapshot)
            snapshots[session_id] = snapshot
        return snapshots

    def reporter(self, session_id: str, interval: Optional[float] = None) -> ProgressReporter:
        """
        Progress reporter bound to one capture.

        Raises:
            SessionNotFoundError: unknown session id
        """
        capture = self._get(session_id)
        return ProgressReporter(
            capture.session.snapshot,
            interval=interval or self.settings.capture.report_interval_seconds,
        )

    def shutdown(self) -> None:
        """End every capture that is still running."""
        with self._lock:
            pending = [sid for sid, c in self._captures.items() if not c.ended]
        for session_id in pending:
            self.end_capture(session_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _finish(self, session_id: str, capture: _Capture, snapshot: SessionSnapshot) -> None:
        """Release remote resources of a capture, once."""
        with self._lock:
            if capture.ended:
                return
            capture.ended = True

        if capture.keepalive is not None:
            capture.keepalive.stop()
        result = capture.client.stop_webcam()
        if not result.ok:
            logger.warning(
                f"Capture {session_id}: stopping remote webcam failed: "
                f"{result.error.message}"
            )
        capture.client.close()
        logger.info(
            f"Capture {session_id} ended: {snapshot.state.value}, "
            f"{snapshot.bytes_received} bytes"
        )
        self._evict_ended()

    def _evict_ended(self) -> None:
        """Forget the oldest ended captures beyond the retention limit."""
        retained = self.settings.capture.retained_captures
        with self._lock:
            ended = [sid for sid, c in self._captures.items() if c.ended]
            evicted = ended[:max(len(ended) - retained, 0)]
            for session_id in evicted:
                del self._captures[session_id]
        if evicted:
            logger.debug(f"Evicted ended captures: {', '.join(evicted)}")

    def _get(self, session_id: str) -> _Capture:
        with self._lock:
            capture = self._captures.get(session_id)
        if capture is None:
            raise SessionNotFoundError(f"Unknown capture session: {session_id}")
        return capture

    @staticmethod
    def _result(session_id: str, snapshot: SessionSnapshot) -> CaptureResult:
        if snapshot.state is SessionState.FAILED:
            return CaptureResult.failure(snapshot.error, session_id=session_id, snapshot=snapshot)
        return CaptureResult(ok=True, session_id=session_id, snapshot=snapshot)
