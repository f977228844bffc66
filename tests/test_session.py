"""
Stream Session Tests
====================

Exercise StreamSession over real loopback UDP sockets.
"""

import errno
import socket
import threading
import time

import pytest

from camcapture.errors import (
    BindError,
    ConfigurationError,
    ErrorKind,
    PreconditionError,
    StorageError,
)
from camcapture.models.session import SessionState
from camcapture.stream import Datagram, StreamSession, start_session
from tests.helpers import send_datagrams, wait_for


IDLE = 0.1


def make_session(output_path, port=0, **kwargs):
    kwargs.setdefault("idle_timeout", IDLE)
    kwargs.setdefault("bind_host", "127.0.0.1")
    return StreamSession(port, output_path, **kwargs)


class TestCapture:
    """Bytes in == bytes persisted."""

    def test_bytes_received_matches_file_size(self, output_path):
        sizes = [1, 100, 1400, 0, 9000, 512]
        session = make_session(output_path).start()

        send_datagrams(session.bound_port, [b"x" * n for n in sizes])
        wait_for(lambda: session.snapshot().datagrams_received == len(sizes))
        final = session.stop()

        assert final.state == SessionState.STOPPED
        assert final.bytes_received == sum(sizes)
        assert final.datagrams_received == len(sizes)
        assert output_path.stat().st_size == sum(sizes)

    def test_payload_written_unchanged(self, output_path):
        payload = bytes(range(256)) * 4
        session = make_session(output_path).start()

        send_datagrams(session.bound_port, [payload])
        wait_for(lambda: session.bytes_received == len(payload))
        session.stop()

        assert output_path.read_bytes() == payload

    def test_scenario_one_kilobyte_then_empty_datagram(self, output_path):
        session = make_session(output_path).start()

        send_datagrams(session.bound_port, [b"\x47" * 1000])
        wait_for(lambda: session.snapshot().datagrams_received == 1)
        send_datagrams(session.bound_port, [b""])
        wait_for(lambda: session.snapshot().datagrams_received == 2)
        final = session.stop()

        assert final.state == SessionState.STOPPED
        assert final.bytes_received == 1000
        assert final.datagrams_received == 2
        assert output_path.stat().st_size == 1000

    def test_start_session_helper_returns_running_handle(self, output_path):
        session = start_session(0, output_path, idle_timeout=IDLE, bind_host="127.0.0.1")
        try:
            assert session.state == SessionState.LISTENING
            assert session.bound_port > 0
        finally:
            session.stop()

    def test_context_manager_stops_session(self, output_path):
        with make_session(output_path) as session:
            send_datagrams(session.bound_port, [b"abc"])
            wait_for(lambda: session.bytes_received == 3)

        assert session.state == SessionState.STOPPED
        assert output_path.read_bytes() == b"abc"


class TestLifecycle:

    def test_idle_timeouts_are_not_errors(self, output_path):
        session = make_session(output_path, idle_timeout=0.05).start()
        time.sleep(0.4)

        snapshot = session.snapshot()
        assert snapshot.state == SessionState.LISTENING
        assert snapshot.bytes_received == 0
        assert snapshot.error is None
        assert snapshot.elapsed_seconds > 0.3

        session.stop()

    def test_stop_is_idempotent(self, output_path):
        session = make_session(output_path).start()
        send_datagrams(session.bound_port, [b"12345"])
        wait_for(lambda: session.bytes_received == 5)

        first = session.stop()
        second = session.stop()

        assert first.state == second.state == SessionState.STOPPED
        assert first.bytes_received == second.bytes_received == 5
        assert first.stopped_at == second.stopped_at
        assert first.elapsed_seconds == second.elapsed_seconds

    def test_stop_is_observed_within_one_idle_timeout(self, output_path):
        session = make_session(output_path, idle_timeout=0.3).start()

        started = time.monotonic()
        session.stop()

        assert time.monotonic() - started < 0.3 + 0.5
        assert session.state == SessionState.STOPPED

    def test_resources_released_on_stop(self, output_path):
        session = make_session(output_path).start()
        port = session.bound_port
        session.stop()

        assert session._file is None
        assert session._socket is None
        # Port is free again
        again = make_session(output_path, port=port).start()
        again.stop()

    def test_start_twice_is_rejected(self, output_path):
        session = make_session(output_path).start()
        try:
            with pytest.raises(PreconditionError):
                session.start()
        finally:
            session.stop()

    def test_stop_before_start(self, output_path):
        session = make_session(output_path)

        snapshot = session.stop()

        assert snapshot.state == SessionState.STOPPED
        assert snapshot.stopped_at is not None
        assert session.wait(0)
        with pytest.raises(PreconditionError):
            session.start()
        assert not output_path.exists()

    def test_cancel_event_stops_loop(self, output_path):
        session = make_session(output_path).start()

        session.cancel_event.set()

        assert session.wait(2.0)
        assert session.state == SessionState.STOPPED

    def test_stop_from_another_thread(self, output_path):
        session = make_session(output_path).start()
        results = []

        worker = threading.Thread(target=lambda: results.append(session.stop()))
        worker.start()
        worker.join(2.0)

        assert results and results[0].state == SessionState.STOPPED


class TestSetupErrors:

    def test_port_already_bound_raises_bind_error(self, output_path, tmp_path):
        first = make_session(output_path).start()
        try:
            started = time.monotonic()
            with pytest.raises(BindError):
                make_session(tmp_path / "other.bin", port=first.bound_port).start()
            assert time.monotonic() - started < 1.0
            assert first.state == SessionState.LISTENING
        finally:
            first.stop()

    def test_directory_output_raises_storage_error(self, tmp_path, free_port):
        with pytest.raises(StorageError):
            make_session(tmp_path, port=free_port).start()

        # Socket was released on the failed start
        session = make_session(tmp_path / "ok.bin", port=free_port).start()
        session.stop()

    def test_missing_parent_raises_storage_error(self, tmp_path):
        with pytest.raises(StorageError):
            make_session(tmp_path / "missing" / "capture.bin").start()

    @pytest.mark.parametrize("port", [-1, 65536, "8554", True])
    def test_invalid_port(self, output_path, port):
        with pytest.raises(ConfigurationError):
            make_session(output_path, port=port)

    def test_invalid_idle_timeout(self, output_path):
        with pytest.raises(ConfigurationError):
            make_session(output_path, idle_timeout=0)


class TestFailures:
    """Fatal errors halt the loop, keep counters and release resources."""

    def test_transport_error_fails_session_after_partial_capture(self, output_path):
        session = make_session(output_path)
        calls = {"n": 0}

        def receive(sock):
            calls["n"] += 1
            if calls["n"] == 1:
                return Datagram(b"abc", ("127.0.0.1", 9999))
            raise OSError(errno.EBADF, "Bad file descriptor")

        session._receive = receive
        session.start()

        assert session.wait(2.0)
        snapshot = session.snapshot()
        assert snapshot.state == SessionState.FAILED
        assert snapshot.error.kind == ErrorKind.TRANSPORT
        assert snapshot.bytes_received == 3
        assert snapshot.stopped_at is not None
        assert output_path.read_bytes() == b"abc"
        assert session._file is None and session._socket is None

        # stop() on a failed session reports the same terminal state
        assert session.stop().state == SessionState.FAILED

    def test_write_error_fails_session(self, output_path, monkeypatch):
        class FullDisk:
            closed = False

            def write(self, data):
                raise OSError(errno.ENOSPC, "No space left on device")

            def flush(self):
                pass

            def close(self):
                self.closed = True

        disk = FullDisk()
        session = make_session(output_path)
        monkeypatch.setattr(session, "_open_output", lambda: disk)
        session.start()

        send_datagrams(session.bound_port, [b"data"])

        assert session.wait(2.0)
        snapshot = session.snapshot()
        assert snapshot.state == SessionState.FAILED
        assert snapshot.error.kind == ErrorKind.STORAGE
        assert snapshot.bytes_received == 0
        assert disk.closed

    @pytest.mark.skipif(
        not hasattr(socket.socket, "recvmsg"),
        reason="truncation detection needs recvmsg",
    )
    def test_oversized_datagram_is_truncated_and_counted(self, output_path):
        session = make_session(output_path, max_datagram_size=100).start()

        send_datagrams(session.bound_port, [b"y" * 300, b"z" * 10])
        wait_for(lambda: session.snapshot().datagrams_received == 2)
        final = session.stop()

        assert final.state == SessionState.STOPPED
        assert final.truncated_datagrams == 1
        assert final.bytes_received == 110
        assert output_path.stat().st_size == 110


class TestSnapshot:

    def test_concurrent_snapshots_never_decrease_or_run_ahead(self, output_path):
        session = make_session(output_path).start()
        port = session.bound_port
        observed = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                snap = session.snapshot()
                size = output_path.stat().st_size
                observed.append((snap.bytes_received, size))

        thread = threading.Thread(target=reader)
        thread.start()
        for _ in range(10):
            send_datagrams(port, [b"p" * 512] * 10)
            time.sleep(0.005)
        wait_for(lambda: session.snapshot().datagrams_received >= 50, timeout=5.0)
        done.set()
        thread.join()
        session.stop()

        counts = [count for count, _ in observed]
        assert counts == sorted(counts)
        assert all(count <= size for count, size in observed)

    def test_snapshot_before_start(self, output_path):
        snapshot = make_session(output_path).snapshot()

        assert snapshot.state == SessionState.IDLE
        assert snapshot.elapsed_seconds == 0.0
        assert snapshot.started_at is None


class TestDatagram:

    def test_length_and_repr(self):
        datagram = Datagram(b"abcd", ("10.5.5.9", 8554))

        assert len(datagram) == 4
        assert repr(datagram) == "Datagram(size=4, source=10.5.5.9:8554, truncated=False)"

    def test_unknown_sender(self):
        assert Datagram(b"", None, truncated=True).sender == "unknown"

    def test_dropped_oversized_datagram_is_not_reported_as_sender(self, output_path, caplog):
        session = make_session(output_path)
        arrivals = [
            Datagram(b"", None, truncated=True),
            Datagram(b"abc", ("127.0.0.1", 4000)),
        ]

        def receive(sock):
            if arrivals:
                return arrivals.pop(0)
            time.sleep(0.01)
            raise socket.timeout()

        session._receive = receive
        with caplog.at_level("INFO", logger="camcapture.stream.session"):
            session.start()
            wait_for(lambda: session.snapshot().datagrams_received == 2)
            final = session.stop()

        assert final.truncated_datagrams == 1
        assert final.bytes_received == 3
        assert "Receiving stream from 127.0.0.1:4000" in caplog.text
        assert "Receiving stream from unknown" not in caplog.text
