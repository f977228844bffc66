"""
camcapture
==========

Control-plane client and datagram stream capture for networked cameras.

This package drives a camera over its HTTP control API (mode selection,
shutter, webcam streaming, keep-alive) and records the UDP media stream
the camera pushes to a local port into a file.

Components:
    - control: HTTP control client and keep-alive task
    - stream: Stream session (UDP listener -> file) and progress reporter
    - service: Begin/end capture surface used by the API and the CLI

Example:
    from camcapture.stream import StreamSession

    with StreamSession(port=8554, output_path="capture.ts") as session:
        ...
        print(session.snapshot().bytes_received)
"""

__version__ = "0.1.0"
__author__ = "camcapture contributors"

__all__ = [
    "__version__",
]
