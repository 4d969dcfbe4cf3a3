import logging
from dataclasses import dataclass

from PIL import Image

logger = logging.getLogger("surface_scanner")

# Assumed dimensions when the first frame cannot be read
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080


@dataclass(frozen=True)
class Orientation:
    width: int
    height: int
    is_vertical: bool

    @property
    def label(self) -> str:
        return "VERTICAL (9:16)" if self.is_vertical else "HORIZONTAL (16:9)"


def classify_dimensions(width: int, height: int, aspect_threshold: float = 1.0) -> Orientation:
    """Vertical when width/height falls below aspect_threshold"""
    if width <= 0 or height <= 0:
        width, height = DEFAULT_WIDTH, DEFAULT_HEIGHT
    return Orientation(width, height, (width / height) < aspect_threshold)


def classify_frame(frame_path: str, aspect_threshold: float = 1.0) -> Orientation:
    """Classify a video's orientation from one of its frames"""
    try:
        with Image.open(frame_path) as img:
            width, height = img.size
    except OSError as e:
        logger.warning(f"Could not read frame dimensions from {frame_path}: {e}")
        width, height = DEFAULT_WIDTH, DEFAULT_HEIGHT
    return classify_dimensions(width, height, aspect_threshold)
