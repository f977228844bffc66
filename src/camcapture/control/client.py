"""
Control Client
==============

Synchronous HTTP client for the camera's control API.

This client:
    - Sends GET requests to http://{host}:{port}/{command_path}
    - Bounds every request with a timeout
    - Parses JSON bodies and checks the numeric `error` field
    - Sequences mutually exclusive modes (webcam vs. USB control)
    - Resolves presets by name through the preset catalog

Example:
    from camcapture.control import ControlClient
    from camcapture.models import DeviceEndpoint

    client = ControlClient(DeviceEndpoint.create("10.5.5.9", 8080))

    result = client.start_webcam(port=8554)
    if not result.ok:
        print(result.error.kind, result.error.message)

Design Rules:
    - Never retries; callers decide whether to retry
    - Never raises for remote or transport failures, returns CommandResult
    - Disabling USB before webcam start is best-effort (logged, not fatal)
"""

import logging
from typing import Any, Dict, Optional, Tuple

import requests
from pydantic import ValidationError

from camcapture.errors import ErrorKind, NotFoundError
from camcapture.models.command import CommandResult
from camcapture.models.endpoint import DeviceEndpoint
from camcapture.models.presets import PresetCatalog


logger = logging.getLogger(__name__)


# Command paths
KEEP_ALIVE = "gopro/camera/keep_alive"
SHUTTER_START = "gopro/camera/shutter/start"
SHUTTER_STOP = "gopro/camera/shutter/stop"
CAMERA_STATE = "gopro/camera/state"
WIRED_USB = "gopro/camera/control/wired_usb"
WEBCAM_STATUS = "gopro/webcam/status"
WEBCAM_START = "gopro/webcam/start"
WEBCAM_STOP = "gopro/webcam/stop"
WEBCAM_EXIT = "gopro/webcam/exit"
PRESETS_GET = "gopro/camera/presets/get"
PRESETS_LOAD = "gopro/camera/presets/load"
PRESETS_SET_GROUP = "gopro/camera/presets/set_group"

# Webcam status values reported by gopro/webcam/status
WEBCAM_OFF = 0
WEBCAM_IDLE = 1
WEBCAM_HIGH_POWER_PREVIEW = 2
WEBCAM_LOW_POWER_PREVIEW = 3
WEBCAM_ACTIVE_STATES = (WEBCAM_HIGH_POWER_PREVIEW, WEBCAM_LOW_POWER_PREVIEW)


class ControlClient:
    """
    HTTP control client bound to one device endpoint.

    Attributes:
        endpoint: Immutable device address
        timeout: Seconds to wait for each response
    """

    def __init__(
        self,
        endpoint: DeviceEndpoint,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize control client.

        Args:
            endpoint: Device endpoint to send commands to
            timeout: Per-request timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "ControlClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # =========================================================================
    # Generic invocation
    # =========================================================================

    def invoke(
        self,
        command_path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> CommandResult:
        """
        Issue one control command.

        Args:
            command_path: Path below the endpoint root
            params: Optional query parameters

        Returns:
            CommandResult with status code and parsed body, or an error
            of kind REMOTE_COMMAND on non-success status, transport
            failure or malformed body.
        """
        url = self.endpoint.url(command_path)
        logger.debug(f"GET {url} params={params}")

        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.Timeout:
            logger.warning(f"Command {command_path} timed out after {self.timeout}s")
            return CommandResult.failure(
                command_path,
                ErrorKind.REMOTE_COMMAND,
                f"Timed out after {self.timeout}s",
            )
        except requests.RequestException as e:
            logger.warning(f"Command {command_path} failed: {e}")
            return CommandResult.failure(
                command_path,
                ErrorKind.REMOTE_COMMAND,
                f"Request failed: {e}",
            )

        body: Optional[Any] = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                # Plain-text body, status code decides
                body = None

        if not response.ok:
            logger.warning(f"Command {command_path} returned HTTP {response.status_code}")
            return CommandResult.failure(
                command_path,
                ErrorKind.REMOTE_COMMAND,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        if isinstance(body, dict) and body.get("error"):
            logger.warning(f"Command {command_path} reported error {body['error']}")
            return CommandResult.failure(
                command_path,
                ErrorKind.REMOTE_COMMAND,
                f"Device reported error {body['error']}",
                status_code=response.status_code,
                body=body,
            )

        return CommandResult(
            command=command_path,
            status_code=response.status_code,
            body=body,
        )

    # =========================================================================
    # Simple commands
    # =========================================================================

    def keep_alive(self) -> CommandResult:
        return self.invoke(KEEP_ALIVE)

    def set_shutter(self, on: bool) -> CommandResult:
        """Start or stop recording/capture."""
        return self.invoke(SHUTTER_START if on else SHUTTER_STOP)

    def get_state(self) -> CommandResult:
        return self.invoke(CAMERA_STATE)

    def disable_usb(self) -> CommandResult:
        return self.invoke(WIRED_USB, {"p": 0})

    def stop_webcam(self) -> CommandResult:
        return self.invoke(WEBCAM_STOP)

    def exit_webcam(self) -> CommandResult:
        return self.invoke(WEBCAM_EXIT)

    # =========================================================================
    # Webcam / USB coordination
    # =========================================================================

    def webcam_status(self) -> CommandResult:
        return self.invoke(WEBCAM_STATUS)

    def is_webcam_active(self) -> Optional[bool]:
        """
        Whether the camera is currently streaming in webcam mode.

        Returns:
            True/False, or None if the status could not be determined.
        """
        result = self.webcam_status()
        return self._webcam_active(result)

    @staticmethod
    def _webcam_active(result: CommandResult) -> Optional[bool]:
        if not result.ok or not isinstance(result.body, dict):
            return None
        status = result.body.get("status")
        if not isinstance(status, int):
            return None
        return status in WEBCAM_ACTIVE_STATES

    def start_webcam(
        self,
        port: int = 8554,
        resolution: Optional[int] = None,
        fov: Optional[int] = None,
        protocol: Optional[str] = None,
    ) -> CommandResult:
        """
        Start webcam streaming to the given UDP port.

        USB control is disabled first. That step is best-effort: a
        failure is logged and the webcam start is still attempted.
        """
        usb_result = self.disable_usb()
        if not usb_result.ok:
            logger.warning(
                f"Could not disable USB control before webcam start: "
                f"{usb_result.error.message}"
            )

        params: Dict[str, Any] = {"port": port}
        if resolution is not None:
            params["res"] = resolution
        if fov is not None:
            params["fov"] = fov
        if protocol is not None:
            params["protocol"] = protocol

        result = self.invoke(WEBCAM_START, params)
        if result.ok:
            logger.info(f"Webcam streaming started to port {port}")
        return result

    def enable_usb(self) -> CommandResult:
        """
        Enable wired USB control.

        Refused with a PRECONDITION error while webcam mode is active;
        in that case no enable request is sent.
        """
        status = self.webcam_status()
        if not status.ok:
            return status

        active = self._webcam_active(status)
        if active is None:
            return CommandResult.failure(
                WEBCAM_STATUS,
                ErrorKind.REMOTE_COMMAND,
                "Malformed webcam status body",
                status_code=status.status_code,
                body=status.body,
            )
        if active:
            logger.warning("Refusing to enable USB control while webcam is active")
            return CommandResult.failure(
                WIRED_USB,
                ErrorKind.PRECONDITION,
                "Webcam mode is active; stop the webcam before enabling USB control",
            )

        return self.invoke(WIRED_USB, {"p": 1})

    # =========================================================================
    # Presets
    # =========================================================================

    def fetch_presets(self) -> Tuple[CommandResult, Optional[PresetCatalog]]:
        """
        Fetch and parse the preset catalog.

        Returns:
            (result, catalog). catalog is None when the fetch failed or
            the body does not match the catalog schema.
        """
        result = self.invoke(PRESETS_GET)
        if not result.ok:
            return result, None

        try:
            catalog = PresetCatalog.model_validate(result.body)
        except ValidationError as e:
            logger.error(f"Malformed preset catalog: {e}")
            return (
                CommandResult.failure(
                    PRESETS_GET,
                    ErrorKind.REMOTE_COMMAND,
                    "Malformed preset catalog",
                    status_code=result.status_code,
                ),
                None,
            )
        return result, catalog

    def load_preset(self, preset_id: int) -> CommandResult:
        return self.invoke(PRESETS_LOAD, {"id": preset_id})

    def load_preset_group(self, group_id: int) -> CommandResult:
        return self.invoke(PRESETS_SET_GROUP, {"id": group_id})

    def select_preset(self, group_name: str, preset_name: str) -> CommandResult:
        """
        Load a preset by group name and preset name.

        Fetches the catalog, finds the group by its exact id string and
        the preset by its exact titleId, then loads it by numeric id.
        Fails fast with NOT_FOUND (no load request) if either is missing.
        """
        result, catalog = self.fetch_presets()
        if catalog is None:
            return result

        try:
            preset = catalog.lookup(group_name, preset_name)
        except NotFoundError as e:
            logger.warning(e.message)
            return CommandResult.failure(PRESETS_GET, ErrorKind.NOT_FOUND, e.message)

        logger.info(f"Loading preset {group_name}/{preset_name} (id={preset.id})")
        return self.load_preset(preset.id)
