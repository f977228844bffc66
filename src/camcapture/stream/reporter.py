"""
Progress Reporter
=================

Human-readable progress summaries for a running capture.

The reporter only reads snapshots; it never touches the session's
socket, file or counters. Displayed duration is the session's own
elapsed time, never a count of reporting ticks, so a late wake-up
does not drift the shown duration away from reality.

Example:
    reporter = ProgressReporter(session.snapshot, interval=5.0)
    reporter.start()      # logs a summary every ~5 s
    ...
    reporter.stop()
"""

import logging
import threading
from typing import Callable, Iterator, Optional

from camcapture.models.session import SessionSnapshot


logger = logging.getLogger(__name__)


_BYTE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB")


def format_bytes(count: int) -> str:
    """Scale a byte count to binary units, e.g. 1536 -> '1.5 KiB'."""
    if count < 1024:
        return f"{count} B"
    value = float(count)
    for unit in _BYTE_UNITS[1:]:
        value /= 1024
        if value < 1024 or unit == _BYTE_UNITS[-1]:
            break
    return f"{value:.1f} {unit}"


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    total = int(max(seconds, 0.0))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_rate(count: int, seconds: float) -> str:
    """Average throughput as scaled bytes per second."""
    if seconds <= 0:
        return "0 B/s"
    return f"{format_bytes(int(count / seconds))}/s"


class ProgressReporter:
    """
    Periodic progress summaries derived from session snapshots.

    Attributes:
        interval: Seconds between summaries
    """

    def __init__(
        self,
        snapshot_source: Callable[[], SessionSnapshot],
        interval: float = 5.0,
        sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Initialize progress reporter.

        Args:
            snapshot_source: Callable returning the current snapshot
            interval: Seconds between summaries, must be > 0
            sink: Receives each summary line (default: INFO log)
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")

        self.interval = interval
        self._snapshot_source = snapshot_source
        self._sink = sink or logger.info
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @staticmethod
    def summarize(snapshot: SessionSnapshot) -> str:
        """Render one snapshot as a single line."""
        line = (
            f"[{snapshot.state.value}] "
            f"elapsed {format_duration(snapshot.elapsed_seconds)} | "
            f"{format_bytes(snapshot.bytes_received)} received "
            f"({snapshot.datagrams_received} datagrams) | "
            f"avg {format_rate(snapshot.bytes_received, snapshot.elapsed_seconds)}"
        )
        if snapshot.truncated_datagrams:
            line += f" | {snapshot.truncated_datagrams} truncated"
        if snapshot.error is not None:
            line += f" | error: {snapshot.error.message}"
        return line

    def reports(self, stop_event: Optional[threading.Event] = None) -> Iterator[str]:
        """
        Yield one summary per interval until the session is terminal.

        The summary for the terminal snapshot is always the last one
        yielded. Setting stop_event ends the sequence early.
        """
        stop_event = stop_event or threading.Event()
        while True:
            snapshot = self._snapshot_source()
            yield self.summarize(snapshot)
            if snapshot.state.is_terminal:
                return
            if stop_event.wait(self.interval):
                return

    def start(self) -> None:
        """Emit summaries to the sink from a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="progress-reporter",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        for line in self.reports(self._stop_event):
            self._sink(line)
