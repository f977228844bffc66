import socket
import time
from typing import Callable, Iterable


def wait_for(
        condition: Callable[[], bool],
        timeout: float = 5.0,
        interval: float = 0.01,
):
    """
    Wait until condition() returns True or timeout is reached.

    Raises AssertionError on timeout.
    """
    deadline = time.monotonic() + timeout

    while time.monotonic() < deadline:
        if condition():
            return
        time.sleep(interval)

    raise AssertionError("Condition not met before timeout")


def send_datagrams(port: int, payloads: Iterable[bytes], host: str = "127.0.0.1") -> None:
    """Send each payload as one UDP datagram to host:port."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        for payload in payloads:
            sock.sendto(payload, (host, port))
