"""
Test Configuration
==================

Pytest fixtures and test configuration for camcapture.
"""

import errno
import socket

import pytest

from camcapture.config import Settings
from camcapture.control.client import ControlClient
from camcapture.stream.session import StreamSession
from tests.fakes.fake_http import FakeHTTPSession


@pytest.fixture
def output_path(tmp_path):
    """Destination file inside a fresh temporary directory."""
    return tmp_path / "capture.bin"


@pytest.fixture
def free_port():
    """A UDP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def http():
    """Fake requests session answering every command with HTTP 200 {}."""
    return FakeHTTPSession()


@pytest.fixture
def settings(tmp_path):
    """Settings tuned for fast tests (short idle timeout, no keep-alive)."""
    return Settings.model_validate({
        "device": {"host": "127.0.0.1", "port": 8080, "timeout_seconds": 1.0},
        "capture": {
            "local_port": 0,
            "output_path": str(tmp_path / "capture.ts"),
            "idle_timeout_seconds": 0.1,
            "report_interval_seconds": 0.05,
        },
        "keepalive": {"enabled": False},
    })


@pytest.fixture
def client_factory(http):
    """ControlClient factory wired to the fake HTTP session."""

    def factory(endpoint, timeout=5.0):
        return ControlClient(endpoint, timeout=timeout, session=http)

    return factory


@pytest.fixture
def failing_session_factory():
    """StreamSession factory whose receive loop dies on its first read."""

    def receive(sock):
        raise OSError(errno.EBADF, "Bad file descriptor")

    def factory(*args, **kwargs):
        session = StreamSession(*args, **kwargs)
        session._receive = receive
        return session

    return factory
