"""
Frame detection strategies.

All strategies share the FrameDetector contract; create_detector picks one
from ScannerConfig.DETECTION_METHOD.
"""

from ..config import ScannerConfig
from .base import (
    DetectionError,
    FrameDetector,
    FrameInput,
    FrameSkippedError,
    MalformedResponseError,
    TransientDetectionError,
)
from .edge import EdgeHeuristicDetector
from .retry import RetryingDetector


def create_detector(config: ScannerConfig) -> FrameDetector:
    """Build the configured detection strategy"""
    method = config.DETECTION_METHOD

    if method == "edge":
        return EdgeHeuristicDetector(config)

    if method == "vision":
        from .vision import VisionModelDetector
        return RetryingDetector(
            VisionModelDetector(config),
            max_retries=config.AI_MAX_RETRIES,
            base_delay=config.AI_RETRY_BASE_DELAY_SEC,
        )

    if method == "objects":
        from .objects import ObjectClassifierDetector
        return ObjectClassifierDetector(config)

    raise ValueError(f"Unsupported detection method: {method}")


__all__ = [
    'create_detector',
    'DetectionError',
    'EdgeHeuristicDetector',
    'FrameDetector',
    'FrameInput',
    'FrameSkippedError',
    'MalformedResponseError',
    'RetryingDetector',
    'TransientDetectionError',
]
