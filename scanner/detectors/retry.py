import time
import logging
from typing import Callable, List

from ..models import DetectedSurface
from .base import FrameDetector, FrameInput, TransientDetectionError

logger = logging.getLogger("surface_scanner")


class RetryingDetector(FrameDetector):
    """
    Retries transient failures of a wrapped detector with exponential backoff.

    Attempt n (0-based) that fails transiently is followed by a sleep of
    base_delay * 2**n, up to max_retries extra attempts. The last transient
    error is re-raised once the ceiling is reached. Non-transient
    DetectionErrors pass straight through.
    """

    def __init__(
        self,
        inner: FrameDetector,
        max_retries: int = 2,
        base_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.inner = inner
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.sleep = sleep
        self.name = inner.name

    def warmup(self) -> None:
        self.inner.warmup()

    def detect(self, frame: FrameInput) -> List[DetectedSurface]:
        attempt = 0
        while True:
            try:
                return self.inner.detect(frame)
            except TransientDetectionError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"Transient detection failure at {frame.timestamp:g}s ({e}); "
                    f"retry {attempt}/{self.max_retries} in {delay:g}s"
                )
                self.sleep(delay)
