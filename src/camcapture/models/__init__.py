"""
Data Models
===========

Pydantic models for camcapture.

Models:
    Endpoint:
        - DeviceEndpoint: Host/port of the camera control API

    Commands:
        - CommandResult: Outcome of one HTTP control command

    Presets:
        - PresetCatalog, PresetGroup, Preset: Device preset catalog

    Session:
        - SessionState: Capture session states
        - SessionSnapshot: Counters read from a running session
"""

from camcapture.models.endpoint import DeviceEndpoint
from camcapture.models.command import CommandResult
from camcapture.models.presets import Preset, PresetCatalog, PresetGroup
from camcapture.models.session import SessionSnapshot, SessionState

__all__ = [
    # Endpoint
    "DeviceEndpoint",
    # Commands
    "CommandResult",
    # Presets
    "Preset",
    "PresetGroup",
    "PresetCatalog",
    # Session
    "SessionState",
    "SessionSnapshot",
]
