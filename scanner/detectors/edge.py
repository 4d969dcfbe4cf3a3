"""
Edge heuristic surface detection.

Looks for long, continuous horizontal edges in the lower part of the frame,
the signature of a desk or table edge. Pure image analysis, no external calls.
"""

from dataclasses import dataclass
from typing import List

import cv2
import numpy as np

from ..config import ScannerConfig
from ..models import BoundingBox, DetectedSurface
from .base import FrameDetector, FrameInput

# Confidence blend weights
DENSITY_WEIGHT = 0.3
CONTINUITY_WEIGHT = 0.5
POSITION_BONUS = 0.2
DENSITY_SCALE = 10.0

# Emitted box: most of the frame width, starting just above the dominant row
BOX_X = 0.05
BOX_WIDTH = 0.9
BOX_HEIGHT = 0.4
BOX_LEAD = 0.1


@dataclass(frozen=True)
class EdgeAnalysis:
    horizontal_edge_density: float
    dominant_row: float
    continuity: float
    confidence: float


NO_EDGES = EdgeAnalysis(0.0, 0.5, 0.0, 0.0)


def longest_run(row: np.ndarray) -> int:
    """Length of the longest run of True values in a boolean row"""
    padded = np.concatenate(([0], row.astype(np.int8), [0]))
    changes = np.flatnonzero(np.diff(padded))
    if changes.size == 0:
        return 0
    return int((changes[1::2] - changes[0::2]).max())


def analyze_horizontal_edges(
    grey: np.ndarray,
    edge_threshold: float,
    min_line_length: float,
) -> EdgeAnalysis:
    """
    Score a greyscale region for a dominant horizontal line.

    The gradient at each interior pixel is |below - above|. A row is a
    candidate when its longest contiguous run of edge pixels spans more than
    min_line_length of the region width. The strongest candidate row (most
    edge pixels) drives the continuity score and the position bonus.

    Args:
        grey: 2-D uint8 array (rows x columns)
        edge_threshold: gradient magnitude above which a pixel is an edge
        min_line_length: minimum run length as a fraction of the width

    Returns:
        EdgeAnalysis with dominant_row relative to the region height
    """
    if grey.ndim != 2:
        return NO_EDGES
    height, width = grey.shape
    if height < 3 or width < 3:
        return NO_EDGES

    pixels = grey.astype(np.int16)
    gradient = np.abs(pixels[2:, 1:-1] - pixels[:-2, 1:-1])
    edges = gradient > edge_threshold

    edge_counts = edges.sum(axis=1)
    runs = np.array([longest_run(row) for row in edges])
    candidates = (runs / width) > min_line_length
    candidate_counts = np.where(candidates, edge_counts, 0)

    if not candidates.any():
        return NO_EDGES

    best = int(np.argmax(candidate_counts))
    density = float(candidate_counts.sum()) / float(width * height)
    # Gradient rows start at region row 1
    dominant_row = (best + 1) / height
    continuity = runs[best] / width

    position_bonus = POSITION_BONUS if dominant_row > 0.5 else 0.0
    density_score = min(1.0, density * DENSITY_SCALE)
    confidence = min(
        1.0,
        density_score * DENSITY_WEIGHT + continuity * CONTINUITY_WEIGHT + position_bonus,
    )

    return EdgeAnalysis(
        horizontal_edge_density=density,
        dominant_row=dominant_row,
        continuity=float(continuity),
        confidence=float(confidence),
    )


class EdgeHeuristicDetector(FrameDetector):
    """Detects a single desk-like surface from horizontal edge structure"""

    name = "edge"

    def __init__(self, config: ScannerConfig):
        self.config = config

    def detect(self, frame: FrameInput) -> List[DetectedSurface]:
        grey = cv2.imread(frame.path, cv2.IMREAD_GRAYSCALE)
        if grey is None:
            return []

        height = grey.shape[0]
        roi_top = int(height * self.config.roi_top(frame.is_vertical))
        roi = grey[roi_top:, :]

        analysis = analyze_horizontal_edges(
            roi, self.config.EDGE_THRESHOLD, self.config.HORIZONTAL_LINE_MIN_LENGTH
        )
        return self.surfaces_from_analysis(analysis, frame, roi_top / height)

    def surfaces_from_analysis(
        self,
        analysis: EdgeAnalysis,
        frame: FrameInput,
        roi_top_ratio: float,
    ) -> List[DetectedSurface]:
        """Accept or reject an analysis against the orientation's threshold"""
        if analysis.confidence < self.config.confidence_threshold(frame.is_vertical):
            return []

        roi_span = 1.0 - roi_top_ratio
        y_in_roi = max(0.0, analysis.dominant_row - BOX_LEAD)
        box = BoundingBox(
            x=BOX_X,
            y=roi_top_ratio + y_in_roi * roi_span,
            width=BOX_WIDTH,
            height=BOX_HEIGHT * roi_span,
        ).clamped()

        return [
            DetectedSurface(
                video_id=None,
                timestamp=frame.timestamp,
                surface_type="Desk",
                confidence=analysis.confidence,
                bounding_box=box,
            )
        ]
