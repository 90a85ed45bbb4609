"""
ParkCam Configuration
=====================

This module handles configuration loading for the capture agent.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    PARKCAM_SOURCE_BACKEND     -> source.backend
    PARKCAM_SOURCE_URL         -> source.url
    PARKCAM_DEVICE_INDEX       -> source.device_index
    PARKCAM_PRIMARY_BACKEND    -> detection.primary_backend
    PARKCAM_FALLBACK_BACKEND   -> detection.fallback_backend
    PARKCAM_YOLO_URL           -> detection.yolo.url
    PARKCAM_DETECTION_TIMEOUT  -> detection.primary_timeout_seconds
    PARKCAM_JPEG_QUALITY       -> encoding.quality
    PARKCAM_PORT               -> server.port
    PARKCAM_LOG_LEVEL          -> logging.level
    PORT                       -> server.port (container platforms)

Example:
    from parkcam.config import settings

    print(settings.source.backend)
    print(settings.encoding.quality)
"""

import os
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="parkcam-capture-agent", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class SourceConfig(BaseModel):
    """Video source configuration."""

    backend: str = Field(
        default="camera",
        description="Frame source: 'camera', 'stream' or 'fake'",
    )
    device_index: int = Field(default=0, ge=0, description="Local camera device index")
    url: Optional[str] = Field(default=None, description="CCTV stream URL (rtsp/http)")
    width: int = Field(default=1920, gt=0, description="Requested camera width")
    height: int = Field(default=1080, gt=0, description="Requested camera height")
    fps: int = Field(default=30, ge=1, le=120, description="Requested camera FPS")
    buffer_size: int = Field(default=1, ge=1, description="OpenCV capture buffer size")


class CaptureConfig(BaseModel):
    """Best-of-N capture configuration."""

    frame_count: int = Field(default=3, ge=1, description="Candidate frames per capture")
    frame_delay_ms: int = Field(
        default=100,
        ge=0,
        description="Delay between candidate frames in milliseconds",
    )
    ready_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Max wait for the source to become ready",
    )
    ready_poll_interval_ms: int = Field(
        default=50,
        ge=1,
        description="Readiness polling interval in milliseconds",
    )


class EnhancementConfig(BaseModel):
    """Image enhancement constants."""

    contrast: float = Field(default=1.5, lt=259, description="Contrast constant C")
    sharpness: float = Field(default=0.5, ge=0, description="Sharpness constant S")


class EncodingConfig(BaseModel):
    """Still encoding configuration."""

    format: Literal["jpeg", "png"] = Field(default="jpeg", description="Still format")
    quality: int = Field(default=92, ge=0, le=100, description="JPEG quality (0-100)")


class YoloConfig(BaseModel):
    """YOLO inference service configuration."""

    url: str = Field(
        default="http://localhost:8500/detect",
        description="YOLO inference endpoint",
    )
    confidence_threshold: float = Field(
        default=0.25,
        ge=0,
        le=1.0,
        description="Minimum detection confidence",
    )


class VisionConfig(BaseModel):
    """Google Cloud Vision configuration."""

    credentials_path: Optional[str] = Field(
        default=None,
        description="Service account JSON (None = default credentials)",
    )
    confidence_threshold: float = Field(
        default=0.5,
        ge=0,
        le=1.0,
        description="Minimum vehicle annotation score",
    )


class DetectionConfig(BaseModel):
    """Detector selection and budgets."""

    primary_backend: str = Field(
        default="yolo_http",
        description="Primary detector: 'yolo_http', 'vision' or 'fake'",
    )
    fallback_backend: str = Field(
        default="heuristic",
        description="Fallback detector: 'heuristic' or 'fake'",
    )
    primary_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Time budget for the primary detector call",
    )
    fallback_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Time budget for the fallback detector call",
    )
    yolo: YoloConfig = Field(default_factory=YoloConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)


class UploadConfig(BaseModel):
    """Upload limits for the detection endpoints."""

    max_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum accepted image payload in bytes",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=5000, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level name")
    format: Literal["json", "text"] = Field(default="json", description="Log line format")

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level {value!r}; expected one of {', '.join(_LOG_LEVELS)}")
        return level


class Settings(BaseModel):
    """
    Main settings class for the ParkCam capture agent.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    enhancement: EnhancementConfig = Field(default_factory=EnhancementConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

# (env var, dotted settings path, cast); PORT is handled separately
_ENV_OVERRIDES: List[Tuple[str, str, Callable[[str], Any]]] = [
    ("PARKCAM_SOURCE_BACKEND", "source.backend", str),
    ("PARKCAM_SOURCE_URL", "source.url", str),
    ("PARKCAM_DEVICE_INDEX", "source.device_index", int),
    ("PARKCAM_PRIMARY_BACKEND", "detection.primary_backend", str),
    ("PARKCAM_FALLBACK_BACKEND", "detection.fallback_backend", str),
    ("PARKCAM_YOLO_URL", "detection.yolo.url", str),
    ("PARKCAM_DETECTION_TIMEOUT", "detection.primary_timeout_seconds", float),
    ("PARKCAM_JPEG_QUALITY", "encoding.quality", int),
    ("PARKCAM_PORT", "server.port", int),
    ("PARKCAM_LOG_LEVEL", "logging.level", str),
]

_LOG_FORMATS = {
    "json": '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}',
    "text": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        pydantic.ValidationError: If the merged values are out of range
        ValueError: If an environment override cannot be cast
    """
    path = Path(config_path) if config_path else _find_config_file()

    config_data: Dict[str, Any] = {}
    if path is not None and path.exists():
        logger.info(f"Loading config from: {path}")
        with open(path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)
    return Settings.model_validate(config_data)


def _find_config_file() -> Optional[Path]:
    """First existing config file among the usual locations."""
    candidates = [
        Path(os.environ.get("PARKCAM_CONFIG", "config.yaml")),
        Path("config.yml"),
        Path("/app/config.yaml"),
        Path(__file__).parent.parent.parent / "config.yaml",
    ]
    return next((path for path in candidates if path.exists()), None)


def _apply_env_overrides(config_data: Dict[str, Any]) -> None:
    """Apply environment variable overrides to config data in place."""
    for env_name, dotted, cast in _ENV_OVERRIDES:
        raw = os.environ.get(env_name)
        if raw:
            _set_dotted(config_data, dotted, _cast_env(env_name, raw, cast))

    # Container platforms inject PORT; it beats PARKCAM_PORT
    if raw_port := os.environ.get("PORT"):
        _set_dotted(config_data, "server.port", _cast_env("PORT", raw_port, int))


def _cast_env(env_name: str, raw: str, cast: Callable[[str], Any]) -> Any:
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {env_name}: {raw!r}") from e


def _set_dotted(config_data: Dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    node = config_data
    for key in parents:
        node = node.setdefault(key, {})
    node[leaf] = value


def setup_logging(settings: Settings) -> None:
    """Configure root logging from the validated logging section."""
    logging.basicConfig(
        level=getattr(logging, settings.logging.level),
        format=_LOG_FORMATS[settings.logging.format],
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
