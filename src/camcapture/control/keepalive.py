"""
Keep-Alive
==========

Cancellable periodic keep-alive for the camera.

The camera drops out of remote-control mode when it stops hearing from
the client. KeepAlive pings it on a fixed interval from a daemon thread
until stopped.

Design Rules:
    - Failures are logged and counted, never raised
    - No catch-up bursts: one ping per interval at most
    - stop() is observed within one interval
"""

import logging
import threading
from typing import Optional

from camcapture.control.client import ControlClient


logger = logging.getLogger(__name__)


class KeepAlive:
    """
    Periodic keep-alive task for one control client.

    Attributes:
        interval: Seconds between pings
        sent: Number of pings sent
        failures: Number of pings that failed
    """

    def __init__(self, client: ControlClient, interval: float = 3.0) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")

        self.client = client
        self.interval = interval
        self.sent: int = 0
        self.failures: int = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"keep-alive-{self.client.endpoint.host}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Keep-alive started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.info(f"Keep-alive stopped ({self.sent} sent, {self.failures} failed)")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            result = self.client.keep_alive()
            self.sent += 1
            if not result.ok:
                self.failures += 1
                logger.warning(f"Keep-alive failed: {result.error.message}")

            if self._stop_event.wait(self.interval):
                break
