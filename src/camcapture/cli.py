"""
camcapture Command Line
=======================

Usage:
    camcapture capture --host 10.5.5.9 --local-port 8554 --output capture.ts --duration 60
    camcapture preset --group PRESET_GROUP_ID_VIDEO --name PRESET_TITLE_STANDARD
    camcapture usb on|off
    camcapture shutter on|off
    camcapture serve

`capture` runs until --duration elapses, SIGINT/SIGTERM is received or the
session fails, logging a progress summary every report interval. It exits
1 when the capture fails.
"""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import List, Optional

from camcapture.config import Settings, load_config, setup_logging
from camcapture.control.client import ControlClient
from camcapture.errors import CaptureError
from camcapture.models.command import CommandResult
from camcapture.models.endpoint import DeviceEndpoint
from camcapture.service import CaptureRequest, CaptureService


logger = logging.getLogger(__name__)

# Seconds between checks for a session that ended on its own
_POLL_INTERVAL = 0.2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="camcapture",
        description="Camera control and UDP stream capture",
    )
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--host", default=None, help="Camera host (default: from config)")
    parser.add_argument("--port", type=int, default=None, help="Camera HTTP port")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    capture = sub.add_parser("capture", help="Record the webcam stream to a file")
    capture.add_argument("--local-port", type=int, default=None, help="Local UDP port")
    capture.add_argument("--output", default=None, help="Output file path")
    capture.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Seconds to record (0 = until interrupted)",
    )

    preset = sub.add_parser("preset", help="Load a preset by group and name")
    preset.add_argument("--group", required=True, help="Group id, e.g. PRESET_GROUP_ID_VIDEO")
    preset.add_argument("--name", required=True, help="Preset titleId")

    usb = sub.add_parser("usb", help="Enable or disable wired USB control")
    usb.add_argument("state", choices=("on", "off"))

    shutter = sub.add_parser("shutter", help="Start or stop the shutter")
    shutter.add_argument("state", choices=("on", "off"))

    sub.add_parser("serve", help="Run the HTTP API")

    return parser


def _apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    device = settings.device.model_copy(update={
        k: v for k, v in (("host", args.host), ("port", args.port)) if v is not None
    })
    capture = settings.capture
    if args.command == "capture":
        capture = capture.model_copy(update={
            k: v
            for k, v in (("local_port", args.local_port), ("output_path", args.output))
            if v is not None
        })
    return settings.model_copy(update={"device": device, "capture": capture})


def run_capture(
    settings: Settings,
    duration: float,
    service: Optional[CaptureService] = None,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """
    Record until duration elapses, a termination signal arrives or the
    session ends on its own (fatal receive or write error).
    """
    if stop_event is None:
        stop_event = threading.Event()
    if service is None:
        service = CaptureService(settings)

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping capture...")
        stop_event.set()

    previous = {
        signum: signal.signal(signum, _handle_signal)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        result = service.begin_capture(CaptureRequest(
            remote_host=settings.device.host,
            remote_port=settings.device.port,
            local_port=settings.capture.local_port,
            output_path=settings.capture.output_path,
        ))
        if not result.ok:
            logger.error(f"Capture failed to start: [{result.error.kind.value}] {result.error.message}")
            return 1

        reporter = service.reporter(result.session_id)
        reporter.start()
        try:
            _wait_for_end(service, result.session_id, duration, stop_event)
        finally:
            final = service.end_capture(result.session_id)
            reporter.stop()
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    logger.info(reporter.summarize(final.snapshot))
    if not final.ok:
        logger.error(f"Capture failed: [{final.error.kind.value}] {final.error.message}")
        return 1
    return 0


def _wait_for_end(
    service: CaptureService,
    session_id: str,
    duration: float,
    stop_event: threading.Event,
) -> None:
    deadline = time.monotonic() + duration if duration > 0 else None

    while True:
        timeout = _POLL_INTERVAL
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            timeout = min(timeout, remaining)
        if stop_event.wait(timeout):
            return
        if service.status(session_id).snapshot.state.is_terminal:
            return


def _report(result: CommandResult) -> int:
    if result.ok:
        logger.info(f"{result.command}: OK")
        return 0
    logger.error(f"{result.command}: [{result.error.kind.value}] {result.error.message}")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _apply_args(load_config(args.config), args)
    except CaptureError as e:
        print(f"camcapture: {e.message}", file=sys.stderr)
        return 2

    if args.verbose:
        settings.logging.level = "DEBUG"
    setup_logging(settings)

    if args.command == "capture":
        return run_capture(settings, args.duration)

    if args.command == "serve":
        import uvicorn
        from camcapture.main import create_app

        uvicorn.run(
            create_app(CaptureService(settings)),
            host=settings.server.host,
            port=settings.server.port,
        )
        return 0

    try:
        endpoint = DeviceEndpoint.create(settings.device.host, settings.device.port)
    except CaptureError as e:
        logger.error(e.message)
        return 2

    with ControlClient(endpoint, timeout=settings.device.timeout_seconds) as client:
        if args.command == "preset":
            return _report(client.select_preset(args.group, args.name))
        if args.command == "usb":
            return _report(client.enable_usb() if args.state == "on" else client.disable_usb())
        return _report(client.set_shutter(args.state == "on"))


if __name__ == "__main__":
    sys.exit(main())
