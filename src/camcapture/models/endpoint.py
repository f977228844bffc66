"""
Device Endpoint
===============

Immutable address of the camera's HTTP control API.

The endpoint is set once when a control client is created and is used
to build every request target for that client's lifetime. There is no
process-wide endpoint: each client holds its own value.

Example:
    from camcapture.models.endpoint import DeviceEndpoint

    endpoint = DeviceEndpoint.create("10.5.5.9", 8080)
    endpoint.url("gopro/camera/keep_alive")
    # -> "http://10.5.5.9:8080/gopro/camera/keep_alive"
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from camcapture.errors import ConfigurationError


class DeviceEndpoint(BaseModel):
    """
    Host and port of the remote control endpoint.

    Attributes:
        host: Hostname or IP address of the camera
        port: TCP port of the HTTP control API
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1, description="Camera host or IP address")
    port: int = Field(..., ge=1, le=65535, description="HTTP control port")

    @field_validator("host")
    @classmethod
    def _strip_host(cls, value: str) -> str:
        value = value.strip()
        if not value or any(ch in value for ch in "/ ?#"):
            raise ValueError(f"invalid host: {value!r}")
        return value

    @classmethod
    def create(cls, host: str, port: int) -> "DeviceEndpoint":
        """
        Validate and build an endpoint.

        Raises:
            ConfigurationError: host or port is not usable
        """
        try:
            return cls(host=host, port=port)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid device endpoint {host}:{port}: {e}") from e

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def url(self, command_path: str) -> str:
        """Build the request URL for a command path."""
        return f"{self.base_url}/{command_path.lstrip('/')}"
