"""
Stream Module
=============

UDP stream capture and progress reporting.

This module provides the acquisition path of camcapture:
    - Datagram: One received datagram (payload + source)
    - StreamSession: UDP listener draining datagrams into a file
    - ProgressReporter: Read-only periodic summaries of a session

Example:
    from camcapture.stream import ProgressReporter, StreamSession

    session = StreamSession(port=8554, output_path="capture.ts").start()
    reporter = ProgressReporter(session.snapshot, interval=5.0)
    reporter.start()

    # Later, from any thread
    final = session.stop()
    reporter.stop()
"""

from camcapture.stream.datagram import Datagram
from camcapture.stream.session import (
    DEFAULT_IDLE_TIMEOUT,
    MAX_DATAGRAM_SIZE,
    StreamSession,
    start_session,
)
from camcapture.stream.reporter import (
    ProgressReporter,
    format_bytes,
    format_duration,
    format_rate,
)


__all__ = [
    "Datagram",
    "StreamSession",
    "start_session",
    "DEFAULT_IDLE_TIMEOUT",
    "MAX_DATAGRAM_SIZE",
    "ProgressReporter",
    "format_bytes",
    "format_duration",
    "format_rate",
]
