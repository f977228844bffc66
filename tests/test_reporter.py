"""
Progress Reporter Tests
=======================
"""

import threading

import pytest

from camcapture.errors import ErrorInfo, ErrorKind
from camcapture.models.session import SessionSnapshot, SessionState
from camcapture.stream import ProgressReporter, format_bytes, format_duration, format_rate
from tests.helpers import wait_for


def snap(state=SessionState.LISTENING, bytes_received=0, elapsed=0.0, **kwargs):
    return SessionSnapshot(
        state=state,
        bytes_received=bytes_received,
        elapsed_seconds=elapsed,
        **kwargs,
    )


class TestFormatting:

    @pytest.mark.parametrize("count, expected", [
        (0, "0 B"),
        (1023, "1023 B"),
        (1024, "1.0 KiB"),
        (1536, "1.5 KiB"),
        (5 * 1024 ** 2, "5.0 MiB"),
        (3 * 1024 ** 3, "3.0 GiB"),
        (2048 * 1024 ** 4, "2048.0 TiB"),
    ])
    def test_format_bytes(self, count, expected):
        assert format_bytes(count) == expected

    def test_format_duration(self):
        assert format_duration(0) == "00:00:00"
        assert format_duration(65.9) == "00:01:05"
        assert format_duration(3 * 3600 + 7) == "03:00:07"

    def test_format_rate(self):
        assert format_rate(2048, 2.0) == "1.0 KiB/s"
        assert format_rate(100, 0.0) == "0 B/s"


class TestSummaries:

    def test_summary_uses_session_elapsed_time(self):
        line = ProgressReporter.summarize(snap(bytes_received=1536, elapsed=65.0, datagrams_received=3))

        assert "[LISTENING]" in line
        assert "elapsed 00:01:05" in line
        assert "1.5 KiB received (3 datagrams)" in line

    def test_summary_mentions_truncation_and_error(self):
        line = ProgressReporter.summarize(snap(
            state=SessionState.FAILED,
            truncated_datagrams=2,
            error=ErrorInfo(kind=ErrorKind.TRANSPORT, message="socket closed"),
        ))

        assert "2 truncated" in line
        assert "error: socket closed" in line

    def test_reports_end_with_terminal_summary(self):
        snapshots = iter([
            snap(elapsed=0.0),
            snap(elapsed=7.0, bytes_received=10),
            snap(state=SessionState.STOPPED, elapsed=9.5, bytes_received=20),
        ])
        reporter = ProgressReporter(lambda: next(snapshots), interval=0.01)

        lines = list(reporter.reports())

        assert len(lines) == 3
        # Displayed duration follows the snapshot, not the tick count
        assert "elapsed 00:00:07" in lines[1]
        assert lines[-1].startswith("[STOPPED]")

    def test_stop_event_ends_reports(self):
        stop = threading.Event()
        reporter = ProgressReporter(lambda: snap(), interval=0.01)
        reports = reporter.reports(stop)

        next(reports)
        stop.set()

        assert list(reports) == []

    def test_reporter_does_not_mutate_snapshot(self):
        snapshot = snap(bytes_received=42, elapsed=1.0)
        reporter = ProgressReporter(lambda: snapshot, interval=0.01)

        reporter.summarize(snapshot)

        assert snapshot.bytes_received == 42

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            ProgressReporter(lambda: snap(), interval=0)


class TestBackgroundReporting:

    def test_start_feeds_sink_until_stopped(self):
        lines = []
        reporter = ProgressReporter(lambda: snap(), interval=0.01, sink=lines.append)

        reporter.start()
        reporter.start()  # already running
        wait_for(lambda: len(lines) >= 3)
        reporter.stop(timeout=1.0)
        count = len(lines)

        assert all(line.startswith("[LISTENING]") for line in lines)
        assert not reporter._thread.is_alive()
        assert len(lines) == count

    def test_thread_exits_on_terminal_snapshot(self):
        lines = []
        reporter = ProgressReporter(
            lambda: snap(state=SessionState.STOPPED),
            interval=10.0,
            sink=lines.append,
        )

        reporter.start()
        reporter._thread.join(1.0)

        assert len(lines) == 1
        assert not reporter._thread.is_alive()
