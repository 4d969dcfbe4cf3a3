"""
Frame detector interface.

Every strategy takes one extracted frame and returns the surfaces it found,
as data. Strategies do not touch storage and do not delete frames; failures
that should cost only the current frame are raised as DetectionError
subclasses so the caller can absorb them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from ..models import DetectedSurface


@dataclass(frozen=True)
class FrameInput:
    """One extracted frame handed to a detector"""
    path: str
    timestamp: float
    is_vertical: bool = False
    index: int = 0


class DetectionError(Exception):
    """A frame could not be analyzed; the scan continues without it"""


class TransientDetectionError(DetectionError):
    """Timeouts and server-side failures worth retrying"""


class FrameSkippedError(DetectionError):
    """Authentication or quota failures; retrying will not help"""


class MalformedResponseError(DetectionError):
    """The detector backend answered with something unusable"""


class FrameDetector(ABC):
    """Abstract base class for frame detection strategies"""

    name = "base"

    @abstractmethod
    def detect(self, frame: FrameInput) -> List[DetectedSurface]:
        """
        Analyze one frame.

        Args:
            frame: Frame path, capture timestamp and orientation

        Returns:
            Detected surfaces (video_id unset); empty when nothing was found

        Raises:
            DetectionError: the frame could not be analyzed
        """

    def warmup(self) -> None:
        """Load any heavy resources ahead of the first frame"""
