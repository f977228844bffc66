"""
Stream Session
==============

Capture of one UDP media stream into a file.

This module provides the StreamSession class which:
    - Binds a UDP socket on a local port
    - Opens the output file for sequential writing
    - Drains every received datagram into the file on a dedicated thread
    - Tracks byte/datagram counters readable at any time via snapshot()
    - Stops cooperatively within one idle timeout of stop()

Example:
    from camcapture.stream import StreamSession

    session = StreamSession(port=8554, output_path="capture.ts")
    session.start()

    # ... later, from any thread
    print(session.snapshot().bytes_received)
    final = session.stop()
    print(final.state, final.bytes_received)

Design Rules:
    - Exactly one receive loop per session
    - Idle timeouts are not errors, the loop just waits again
    - Counters only move after the payload is written and flushed
    - Socket and file are released on every exit path before the
      terminal state becomes visible
    - Datagrams are written in arrival order, never reordered or deduplicated
"""

import logging
import socket
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Optional, Union

from camcapture.errors import (
    BindError,
    CaptureError,
    ConfigurationError,
    PreconditionError,
    StorageError,
    TransportError,
)
from camcapture.models.session import SessionSnapshot, SessionState
from camcapture.stream.datagram import Datagram


logger = logging.getLogger(__name__)


DEFAULT_IDLE_TIMEOUT = 5.0

# Largest payload read per datagram. Anything bigger is truncated by the
# kernel and counted in truncated_datagrams.
MAX_DATAGRAM_SIZE = 65535

_HAS_RECVMSG = hasattr(socket.socket, "recvmsg")
_MSG_TRUNC = getattr(socket, "MSG_TRUNC", 0)
_WSAEMSGSIZE = 10040


class StreamSession:
    """
    One bounded capture run, from bind to resource release.

    The session object is its own handle: start() returns it, and
    stop()/snapshot() may be called from any thread.

    Attributes:
        port: Requested local UDP port (0 = ephemeral)
        output_path: File the stream is written to
        idle_timeout: Seconds per receive wait; also the stop latency bound
        max_datagram_size: Receive buffer size in bytes
        bind_host: Local address to bind
    """

    def __init__(
        self,
        port: int,
        output_path: Union[str, Path],
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        max_datagram_size: int = MAX_DATAGRAM_SIZE,
        bind_host: str = "0.0.0.0",
    ) -> None:
        """
        Initialize stream session.

        Args:
            port: Local UDP port to listen on
            output_path: Destination file (must not be a directory)
            idle_timeout: Bounded wait per receive attempt, seconds
            max_datagram_size: Maximum datagram payload read, bytes
            bind_host: Local interface to bind

        Raises:
            ConfigurationError: invalid port, timeout or buffer size
        """
        if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
            raise ConfigurationError(f"Invalid local port: {port!r}")
        if idle_timeout <= 0:
            raise ConfigurationError(f"idle_timeout must be > 0, got {idle_timeout}")
        if max_datagram_size < 1:
            raise ConfigurationError(
                f"max_datagram_size must be >= 1, got {max_datagram_size}"
            )

        self.port = port
        self.output_path = Path(output_path)
        self.idle_timeout = idle_timeout
        self.max_datagram_size = max_datagram_size
        self.bind_host = bind_host

        # Counters and state, guarded by _lock (short holds only)
        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._bytes_received: int = 0
        self._datagrams_received: int = 0
        self._truncated_datagrams: int = 0
        self._started_monotonic: Optional[float] = None
        self._stopped_monotonic: Optional[float] = None
        self._started_at: Optional[datetime] = None
        self._stopped_at: Optional[datetime] = None
        self._error: Optional[CaptureError] = None
        self._bound_port: Optional[int] = None

        # Owned by the receive loop once started
        self._socket: Optional[socket.socket] = None
        self._file: Optional[BinaryIO] = None
        self._thread: Optional[threading.Thread] = None

        # Serializes start() against stop()
        self._start_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._finished = threading.Event()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def bytes_received(self) -> int:
        with self._lock:
            return self._bytes_received

    @property
    def bound_port(self) -> Optional[int]:
        """Actual local port once bound (useful when port=0)."""
        return self._bound_port

    @property
    def error(self) -> Optional[CaptureError]:
        """Error that moved the session to FAILED, if any."""
        with self._lock:
            return self._error

    @property
    def cancel_event(self) -> threading.Event:
        """Cancellation signal observed by the receive loop."""
        return self._stop_event

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> "StreamSession":
        """
        Bind the socket, open the output file and start receiving.

        Returns:
            self, acting as the session handle

        Raises:
            PreconditionError: session is not IDLE
            BindError: the port cannot be bound
            StorageError: the output file cannot be opened
        """
        with self._start_lock:
            with self._lock:
                if self._state is not SessionState.IDLE:
                    raise PreconditionError(
                        f"Session on port {self.port} is already {self._state.value}"
                    )

            sock = self._bind()
            try:
                output = self._open_output()
            except StorageError:
                sock.close()
                raise

            with self._lock:
                self._socket = sock
                self._file = output
                self._bound_port = sock.getsockname()[1]
                self._started_monotonic = time.monotonic()
                self._started_at = datetime.now(timezone.utc)
                self._state = SessionState.LISTENING

            self._thread = threading.Thread(
                target=self._receive_loop,
                name=f"stream-session-{self._bound_port}",
                daemon=True,
            )
            self._thread.start()

        logger.info(
            f"Stream session listening on {self.bind_host}:{self._bound_port}, "
            f"writing to {self.output_path}"
        )
        return self

    def stop(self, timeout: Optional[float] = None) -> SessionSnapshot:
        """
        Stop the session and wait for resources to be released.

        Idempotent: on a STOPPED or FAILED session this returns the
        existing terminal snapshot. A session that was never started
        goes straight to STOPPED.

        Args:
            timeout: Max seconds to wait for the receive loop. None waits
                until it exits, which takes at most one idle timeout.

        Returns:
            Snapshot taken after the wait.
        """
        self._stop_event.set()

        with self._start_lock:
            with self._lock:
                if self._state is SessionState.IDLE:
                    self._state = SessionState.STOPPED
                    self._stopped_at = datetime.now(timezone.utc)
                    self._finished.set()
                    logger.info(f"Stream session on port {self.port} stopped before start")
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        return self.snapshot()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session is terminal. Returns False on timeout."""
        return self._finished.wait(timeout)

    def snapshot(self) -> SessionSnapshot:
        """
        Read the current counters.

        Safe to call from any thread while the receive loop runs; the
        lock is held only long enough to copy a few fields.
        """
        with self._lock:
            state = self._state
            bytes_received = self._bytes_received
            datagrams_received = self._datagrams_received
            truncated = self._truncated_datagrams
            started = self._started_monotonic
            stopped = self._stopped_monotonic
            started_at = self._started_at
            stopped_at = self._stopped_at
            error = self._error

        if started is None:
            elapsed = 0.0
        else:
            elapsed = (stopped if stopped is not None else time.monotonic()) - started

        return SessionSnapshot(
            state=state,
            bytes_received=bytes_received,
            datagrams_received=datagrams_received,
            truncated_datagrams=truncated,
            elapsed_seconds=max(elapsed, 0.0),
            started_at=started_at,
            stopped_at=stopped_at,
            error=error.to_info() if error else None,
        )

    def __enter__(self) -> "StreamSession":
        return self.start()

    def __exit__(self, *args) -> None:
        self.stop()

    # =========================================================================
    # Setup
    # =========================================================================

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.bind_host, self.port))
        except OSError as e:
            sock.close()
            raise BindError(
                f"Cannot bind UDP {self.bind_host}:{self.port}: {e}"
            ) from e
        sock.settimeout(self.idle_timeout)
        return sock

    def _open_output(self) -> BinaryIO:
        if self.output_path.is_dir():
            raise StorageError(f"Output target {self.output_path} is a directory")
        try:
            return open(self.output_path, "wb")
        except OSError as e:
            raise StorageError(f"Cannot open {self.output_path}: {e}") from e

    # =========================================================================
    # Receive loop
    # =========================================================================

    def _receive_loop(self) -> None:
        """Drain datagrams into the output file until stopped or failed."""
        sock = self._socket
        output = self._file
        error: Optional[CaptureError] = None
        first_source = None

        try:
            while not self._stop_event.is_set():
                try:
                    datagram = self._receive(sock)
                except socket.timeout:
                    logger.debug(f"No datagram within {self.idle_timeout}s on port {self._bound_port}")
                    continue
                except OSError as e:
                    raise TransportError(f"Receive on port {self._bound_port} failed: {e}") from e

                if first_source is None and datagram.source is not None:
                    first_source = datagram.source
                    logger.info(f"Receiving stream from {datagram.sender}")

                self._set_state(SessionState.DRAINING)
                try:
                    output.write(datagram.payload)
                    output.flush()
                except OSError as e:
                    raise StorageError(f"Write to {self.output_path} failed: {e}") from e

                with self._lock:
                    self._bytes_received += len(datagram)
                    self._datagrams_received += 1
                    if datagram.truncated:
                        self._truncated_datagrams += 1
                    self._state = SessionState.LISTENING

                if datagram.truncated:
                    logger.warning(
                        f"Datagram from {datagram.sender} exceeded "
                        f"{self.max_datagram_size} bytes and was truncated"
                    )

        except CaptureError as e:
            error = e
            logger.error(f"Stream session on port {self._bound_port} failed: {e.message}")
        except Exception as e:
            error = TransportError(f"Unexpected receive loop failure: {e}")
            logger.exception(f"Stream session on port {self._bound_port} crashed")
        finally:
            self._release(sock, output, error)

    def _receive(self, sock: socket.socket) -> Datagram:
        if _HAS_RECVMSG:
            payload, _ancdata, flags, source = sock.recvmsg(self.max_datagram_size)
            return Datagram(payload, source, truncated=bool(flags & _MSG_TRUNC))

        try:
            payload, source = sock.recvfrom(self.max_datagram_size)
        except OSError as e:
            # Windows reports oversized datagrams as an error; the data is gone
            if getattr(e, "winerror", None) == _WSAEMSGSIZE:
                return Datagram(b"", None, truncated=True)
            raise
        return Datagram(payload, source)

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            self._state = state

    def _release(
        self,
        sock: socket.socket,
        output: BinaryIO,
        error: Optional[CaptureError],
    ) -> None:
        """Close file and socket, then publish the terminal state."""
        try:
            output.close()
        except OSError as e:
            logger.error(f"Closing {self.output_path} failed: {e}")
            if error is None:
                error = StorageError(f"Closing {self.output_path} failed: {e}")
        sock.close()

        with self._lock:
            self._socket = None
            self._file = None
            self._error = error
            self._stopped_monotonic = time.monotonic()
            self._stopped_at = datetime.now(timezone.utc)
            self._state = SessionState.FAILED if error else SessionState.STOPPED
            state = self._state
            total = self._bytes_received
            count = self._datagrams_received

        self._finished.set()
        logger.info(
            f"Stream session on port {self._bound_port} {state.value}: "
            f"{total} bytes in {count} datagrams written to {self.output_path}"
        )


def start_session(
    port: int,
    output_path: Union[str, Path],
    **kwargs,
) -> StreamSession:
    """Create and start a StreamSession in one call."""
    return StreamSession(port, output_path, **kwargs).start()
