"""
Configuration management for the surface scanner.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
import tempfile
from typing import Dict, Any, Optional
from dataclasses import dataclass


DETECTION_METHODS = ("edge", "vision", "objects")
STORAGE_TYPES = ("postgres", "memory")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class ScannerConfig:
    """Configuration for the surface scanner"""

    # Frame extraction
    FRAME_INTERVAL_SECONDS: float = 2.0
    MAX_FRAMES_PER_VIDEO: int = 24
    FRAME_MAX_DIMENSION: int = 640
    FRAME_QUALITY: int = 70
    FFMPEG_TIMEOUT_SEC: float = 60.0

    # Disk safety
    MIN_DISK_SPACE_MB: int = 100
    SCRATCH_DIR: str = tempfile.gettempdir()

    # Detection strategy: edge, vision, objects
    DETECTION_METHOD: str = "edge"

    # Edge heuristic
    EDGE_THRESHOLD: int = 15
    HORIZONTAL_LINE_MIN_LENGTH: float = 0.15
    HORIZONTAL_CONFIDENCE_THRESHOLD: float = 0.10
    VERTICAL_CONFIDENCE_THRESHOLD: float = 0.05

    # Orientation handling
    VERTICAL_ASPECT_THRESHOLD: float = 1.0
    HORIZONTAL_ROI_TOP: float = 0.3
    VERTICAL_ROI_TOP: float = 0.4

    # Fallback synthesis
    MIN_SURFACES_BEFORE_FALLBACK: int = 3
    FALLBACK_BUFFER: int = 0
    FALLBACK_CONFIDENCE: float = 0.15

    # Vision model
    VISION_MODEL: str = "gpt-4o"
    AI_TIMEOUT_SEC: float = 30.0
    AI_MAX_RETRIES: int = 2
    AI_RETRY_BASE_DELAY_SEC: float = 2.0
    AI_IMAGE_MAX_DIMENSION: int = 1024

    # Object classifier
    OBJECT_MODEL_PATH: str = "yolo11n.pt"

    # Contextual inference
    ENABLE_CONTEXTUAL_INFERENCE: bool = True

    # Source file resolution
    ASSET_MAP_FILE: Optional[str] = None
    ASSET_ROOT: str = "."
    PUBLIC_DIR: str = "./public"

    # Frame snapshots
    FRAME_SNAPSHOT_DIR: Optional[str] = None
    FRAME_SNAPSHOT_URL_PREFIX: str = "/uploads/frames"

    # Storage settings
    STORAGE_TYPE: str = "postgres"
    STORAGE_CONFIG: Dict[str, Any] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    # HTTP server
    ENABLE_HTTP_SERVER: bool = False
    HTTP_PORT: int = 8000

    # Data directory
    DATA_DIR: str = "/app/data"

    def __post_init__(self):
        if self.STORAGE_CONFIG is None:
            self.STORAGE_CONFIG = {}

    @classmethod
    def from_env(cls) -> 'ScannerConfig':
        """Load configuration from environment variables"""
        config = cls()

        # Frame extraction
        config.FRAME_INTERVAL_SECONDS = float(os.getenv("FRAME_INTERVAL_SECONDS", "2"))
        config.MAX_FRAMES_PER_VIDEO = int(os.getenv("MAX_FRAMES_PER_VIDEO", "24"))
        config.FRAME_MAX_DIMENSION = int(os.getenv("FRAME_MAX_DIMENSION", "640"))
        config.FRAME_QUALITY = int(os.getenv("FRAME_QUALITY", "70"))
        config.FFMPEG_TIMEOUT_SEC = float(os.getenv("FFMPEG_TIMEOUT_SEC", "60"))

        # Disk safety
        config.MIN_DISK_SPACE_MB = int(os.getenv("MIN_DISK_SPACE_MB", "100"))
        config.SCRATCH_DIR = os.getenv("SCRATCH_DIR", tempfile.gettempdir())

        # Detection strategy
        config.DETECTION_METHOD = os.getenv("DETECTION_METHOD", "edge").lower()

        # Edge heuristic
        config.EDGE_THRESHOLD = int(os.getenv("EDGE_THRESHOLD", "15"))
        config.HORIZONTAL_LINE_MIN_LENGTH = float(os.getenv("HORIZONTAL_LINE_MIN_LENGTH", "0.15"))
        config.HORIZONTAL_CONFIDENCE_THRESHOLD = float(os.getenv("HORIZONTAL_CONFIDENCE_THRESHOLD", "0.10"))
        config.VERTICAL_CONFIDENCE_THRESHOLD = float(os.getenv("VERTICAL_CONFIDENCE_THRESHOLD", "0.05"))

        # Orientation handling
        config.VERTICAL_ASPECT_THRESHOLD = float(os.getenv("VERTICAL_ASPECT_THRESHOLD", "1.0"))
        config.HORIZONTAL_ROI_TOP = float(os.getenv("HORIZONTAL_ROI_TOP", "0.3"))
        config.VERTICAL_ROI_TOP = float(os.getenv("VERTICAL_ROI_TOP", "0.4"))

        # Fallback synthesis
        config.MIN_SURFACES_BEFORE_FALLBACK = int(os.getenv("MIN_SURFACES_BEFORE_FALLBACK", "3"))
        config.FALLBACK_BUFFER = int(os.getenv("FALLBACK_BUFFER", "0"))
        config.FALLBACK_CONFIDENCE = float(os.getenv("FALLBACK_CONFIDENCE", "0.15"))

        # Vision model
        config.VISION_MODEL = os.getenv("VISION_MODEL", "gpt-4o")
        config.AI_TIMEOUT_SEC = float(os.getenv("AI_TIMEOUT_SEC", "30"))
        config.AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "2"))
        config.AI_RETRY_BASE_DELAY_SEC = float(os.getenv("AI_RETRY_BASE_DELAY_SEC", "2.0"))
        config.AI_IMAGE_MAX_DIMENSION = int(os.getenv("AI_IMAGE_MAX_DIMENSION", "1024"))

        # Object classifier
        config.OBJECT_MODEL_PATH = os.getenv("OBJECT_MODEL_PATH", "yolo11n.pt")

        config.ENABLE_CONTEXTUAL_INFERENCE = _env_bool("ENABLE_CONTEXTUAL_INFERENCE", "true")

        # Source file resolution
        config.ASSET_MAP_FILE = os.getenv("ASSET_MAP_FILE") or None
        config.ASSET_ROOT = os.getenv("ASSET_ROOT", os.getcwd())
        config.PUBLIC_DIR = os.getenv("PUBLIC_DIR", "./public")

        # Frame snapshots
        config.FRAME_SNAPSHOT_DIR = os.getenv("FRAME_SNAPSHOT_DIR") or None
        config.FRAME_SNAPSHOT_URL_PREFIX = os.getenv("FRAME_SNAPSHOT_URL_PREFIX", "/uploads/frames")

        # Storage configuration
        config.STORAGE_TYPE = os.getenv("STORAGE_TYPE", "postgres").lower()
        config.STORAGE_CONFIG = cls._parse_storage_config(config.STORAGE_TYPE)

        # Logging
        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # HTTP server
        config.ENABLE_HTTP_SERVER = _env_bool("SCANNER_DEV_HTTP", "false")
        config.HTTP_PORT = int(os.getenv("SCANNER_HTTP_PORT", "8000"))

        # Data directory
        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")

        return config

    @classmethod
    def _parse_storage_config(cls, storage_type: str) -> Dict[str, Any]:
        """Parse storage specific configuration"""
        if storage_type == "postgres":
            return {
                "database_url": os.getenv("DATABASE_URL"),
                "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
                "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10"))
            }
        return {}

    def validate(self) -> None:
        """Validate configuration and raise errors for missing or invalid values"""
        required_vars = []

        if self.STORAGE_TYPE == "postgres" and not self.STORAGE_CONFIG.get("database_url"):
            required_vars.append("DATABASE_URL")

        # The vision strategy cannot run without credentials
        if self.DETECTION_METHOD == "vision" and not os.getenv("OPENAI_API_KEY"):
            required_vars.append("OPENAI_API_KEY")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        if self.DETECTION_METHOD not in DETECTION_METHODS:
            raise ValueError(
                f"Unsupported DETECTION_METHOD '{self.DETECTION_METHOD}', "
                f"expected one of {', '.join(DETECTION_METHODS)}"
            )
        if self.STORAGE_TYPE not in STORAGE_TYPES:
            raise ValueError(f"Unsupported STORAGE_TYPE '{self.STORAGE_TYPE}'")
        if self.FRAME_INTERVAL_SECONDS <= 0:
            raise ValueError("FRAME_INTERVAL_SECONDS must be positive")
        if self.MAX_FRAMES_PER_VIDEO <= 0:
            raise ValueError("MAX_FRAMES_PER_VIDEO must be positive")
        if not 0.0 <= self.FALLBACK_CONFIDENCE <= 1.0:
            raise ValueError("FALLBACK_CONFIDENCE must be within [0, 1]")

    def confidence_threshold(self, is_vertical: bool) -> float:
        """Minimum edge-heuristic confidence accepted for the given orientation"""
        if is_vertical:
            return self.VERTICAL_CONFIDENCE_THRESHOLD
        return self.HORIZONTAL_CONFIDENCE_THRESHOLD

    def roi_top(self, is_vertical: bool) -> float:
        """Fraction of the frame height above the analyzed region"""
        return self.VERTICAL_ROI_TOP if is_vertical else self.HORIZONTAL_ROI_TOP

    def decoder_qscale(self) -> int:
        """Map FRAME_QUALITY (0-100, higher is better) onto ffmpeg's -q:v 2..31"""
        quality = max(0, min(100, self.FRAME_QUALITY))
        return int(round(31 - (quality / 100.0) * 29))

