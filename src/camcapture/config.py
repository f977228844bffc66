"""
camcapture Configuration
========================

This module handles configuration loading for camcapture.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. camcapture.yaml / config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CAMCAPTURE_DEVICE_HOST        -> device.host
    CAMCAPTURE_DEVICE_PORT        -> device.port
    CAMCAPTURE_DEVICE_TIMEOUT     -> device.timeout_seconds
    CAMCAPTURE_LOCAL_PORT         -> capture.local_port
    CAMCAPTURE_OUTPUT_PATH        -> capture.output_path
    CAMCAPTURE_IDLE_TIMEOUT       -> capture.idle_timeout_seconds
    CAMCAPTURE_REPORT_INTERVAL    -> capture.report_interval_seconds
    CAMCAPTURE_KEEPALIVE_INTERVAL -> keepalive.interval_seconds
    CAMCAPTURE_SERVER_PORT        -> server.port
    CAMCAPTURE_LOG_LEVEL          -> logging.level
    CAMCAPTURE_LOG_FORMAT         -> logging.format

Example:
    from camcapture.config import load_config, setup_logging

    settings = load_config()
    setup_logging(settings)
    print(settings.device.host, settings.capture.local_port)
"""

import os
import logging
from pathlib import Path
from typing import Callable, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from camcapture.errors import ConfigurationError


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class DeviceConfig(BaseModel):
    """Camera control endpoint configuration."""

    host: str = Field(default="10.5.5.9", description="Camera host or IP address")
    port: int = Field(default=8080, ge=1, le=65535, description="HTTP control port")
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Per-request timeout for control commands",
    )


class CaptureConfig(BaseModel):
    """Stream capture configuration."""

    local_port: int = Field(
        default=8554,
        ge=0,
        le=65535,
        description="Local UDP port the camera streams to (0 = ephemeral)",
    )
    output_path: str = Field(
        default="capture.ts",
        description="File the stream is written to",
    )
    idle_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Bounded wait per receive attempt (also stop latency)",
    )
    max_datagram_size: int = Field(
        default=65535,
        ge=1,
        description="Receive buffer size; larger datagrams are truncated",
    )
    report_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between progress summaries",
    )
    retained_captures: int = Field(
        default=32,
        ge=1,
        description="Ended captures kept for status queries before eviction",
    )


class WebcamConfig(BaseModel):
    """Webcam streaming parameters sent to the camera."""

    resolution: int = Field(default=12, description="Resolution code (12 = 1080p)")
    fov: int = Field(default=0, description="Field of view code (0 = wide)")
    protocol: str = Field(default="TS", description="Stream protocol: TS or RTSP")


class KeepAliveConfig(BaseModel):
    """Keep-alive configuration."""

    enabled: bool = Field(default=True, description="Ping the camera during captures")
    interval_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Seconds between keep-alive pings",
    )


class ServerConfig(BaseModel):
    """API server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for camcapture.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    webcam: WebcamConfig = Field(default_factory=WebcamConfig)
    keepalive: KeepAliveConfig = Field(default_factory=KeepAliveConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to a YAML file. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        ConfigurationError: explicit path missing, unreadable YAML or
            invalid values
    """
    if config_path is not None and not Path(config_path).exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    # Find config file
    if config_path is None:
        for path in (Path("camcapture.yaml"), Path("config.yaml")):
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data: dict = {}
    if config_path:
        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    else:
        logger.debug("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    try:
        return Settings.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


_ENV_OVERRIDES = (
    ("CAMCAPTURE_DEVICE_HOST", "device", "host", str),
    ("CAMCAPTURE_DEVICE_PORT", "device", "port", int),
    ("CAMCAPTURE_DEVICE_TIMEOUT", "device", "timeout_seconds", float),
    ("CAMCAPTURE_LOCAL_PORT", "capture", "local_port", int),
    ("CAMCAPTURE_OUTPUT_PATH", "capture", "output_path", str),
    ("CAMCAPTURE_IDLE_TIMEOUT", "capture", "idle_timeout_seconds", float),
    ("CAMCAPTURE_REPORT_INTERVAL", "capture", "report_interval_seconds", float),
    ("CAMCAPTURE_KEEPALIVE_INTERVAL", "keepalive", "interval_seconds", float),
    ("CAMCAPTURE_SERVER_PORT", "server", "port", int),
    ("CAMCAPTURE_LOG_LEVEL", "logging", "level", str),
    ("CAMCAPTURE_LOG_FORMAT", "logging", "format", str),
)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""
    for env_name, section, key, convert in _ENV_OVERRIDES:
        raw = os.environ.get(env_name)
        if not raw:
            continue
        config_data.setdefault(section, {})[key] = _convert(env_name, raw, convert)


def _convert(env_name: str, raw: str, convert: Callable[[str], object]) -> object:
    try:
        return convert(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}") from e


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
