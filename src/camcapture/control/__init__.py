"""
Control Module
==============

HTTP control of the camera.

    - ControlClient: Fire-and-confirm HTTP commands against a DeviceEndpoint
    - KeepAlive: Cancellable periodic keep-alive ping

Example:
    from camcapture.control import ControlClient, KeepAlive
    from camcapture.models import DeviceEndpoint

    client = ControlClient(DeviceEndpoint.create("10.5.5.9", 8080))
    keepalive = KeepAlive(client, interval=3.0)
    keepalive.start()
"""

from camcapture.control.client import ControlClient
from camcapture.control.keepalive import KeepAlive


__all__ = [
    "ControlClient",
    "KeepAlive",
]
