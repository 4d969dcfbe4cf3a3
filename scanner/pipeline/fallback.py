from typing import List, Sequence

from ..models import BoundingBox, DetectedSurface

FALLBACK_SURFACE_TYPE = "Potential Surface"
FALLBACK_SCENE_CONTEXT = "Fallback detection - potential placement area"

# Lower band of the frame, where tables and desks usually sit
FALLBACK_BOX = BoundingBox(0.05, 0.6, 0.9, 0.35)


def synthesize_fallback(
    video_id: int,
    genuine_count: int,
    empty_frame_timestamps: Sequence[float],
    min_surfaces: int,
    confidence: float,
    buffer: int = 0,
) -> List[DetectedSurface]:
    """
    Build placeholder surfaces for a scan that found too few.

    Nothing is produced when genuine_count already meets min_surfaces.
    Otherwise one placeholder per surface-less frame, in capture order, until
    the total reaches min_surfaces + buffer or the frames run out.

    Args:
        video_id: Video being scanned
        genuine_count: Surfaces persisted by detection and inference
        empty_frame_timestamps: Timestamps of frames that produced no surface
        min_surfaces: Count below which fallback kicks in
        confidence: Confidence given to every placeholder
        buffer: Extra placeholders beyond min_surfaces

    Returns:
        Placeholder surfaces, all flagged is_inferred
    """
    if genuine_count >= min_surfaces:
        return []

    needed = min_surfaces + max(0, buffer) - genuine_count
    return [
        DetectedSurface(
            video_id=video_id,
            timestamp=timestamp,
            surface_type=FALLBACK_SURFACE_TYPE,
            confidence=confidence,
            bounding_box=FALLBACK_BOX,
            is_inferred=True,
            scene_context=FALLBACK_SCENE_CONTEXT,
        )
        for timestamp in list(empty_frame_timestamps)[:needed]
    ]
