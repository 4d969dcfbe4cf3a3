"""
Contextual inference and scene categorization.

Derives surfaces that are implied by objects resting on them (a laptop sits
on a desk) and labels a frame with a scene category from the objects seen.
Both operate on one frame's detections and return new lists.
"""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

from ..models import BoundingBox, DetectedSurface

# object type -> (implied surface type, confidence of the inferred surface)
IMPLICATIONS: Dict[str, Tuple[str, float]] = {
    'Laptop': ('Desk', 0.85),
    'Keyboard': ('Desk', 0.80),
    'Mouse': ('Desk', 0.75),
    'Desk Lamp': ('Desk', 0.70),
    'Monitor': ('Desk', 0.80),
}

_IMPLICATIONS_BY_NAME = {name.lower(): value for name, value in IMPLICATIONS.items()}

# Ordered: the first pattern whose objects are all present wins
SCENE_PATTERNS: List[Tuple[Tuple[str, ...], str]] = [
    (('person', 'laptop'), 'Workspace/Office'),
    (('person', 'monitor'), 'Workspace/Office'),
    (('person', 'desk'), 'Workspace/Office'),
    (('couch', 'coffee table'), 'Living Room'),
    (('bookshelf', 'desk'), 'Study/Office'),
    (('whiteboard',), 'Meeting Room'),
]

# Used for scene context only, never stored as a surface
CONTEXT_ONLY_TYPES = {'person'}

# Inferred box hugs the bottom of the trigger object
INFERRED_MARGIN_X = 0.05
INFERRED_DROP = 0.8
INFERRED_MAX_HEIGHT = 0.2


def box_below(box: BoundingBox) -> BoundingBox:
    """Place a surface strip directly beneath an object's box"""
    y = box.y + box.height * INFERRED_DROP
    return BoundingBox(
        x=max(0.0, box.x - INFERRED_MARGIN_X),
        y=y,
        width=min(1.0, box.width + 2 * INFERRED_MARGIN_X),
        height=min(1.0 - y, INFERRED_MAX_HEIGHT),
    ).clamped()


def infer_surfaces(surfaces: List[DetectedSurface]) -> List[DetectedSurface]:
    """
    Add implied surfaces for one frame.

    For every detection whose type is in IMPLICATIONS, an inferred surface of
    the implied type is added below it, unless that type was already detected
    or already inferred for this frame.

    Returns:
        The original detections followed by any inferred ones
    """
    present = {s.surface_type.lower() for s in surfaces}
    inferred = []

    for surface in surfaces:
        implication = _IMPLICATIONS_BY_NAME.get(surface.surface_type.lower())
        if implication is None:
            continue
        implied_type, confidence = implication
        if implied_type.lower() in present:
            continue

        present.add(implied_type.lower())
        inferred.append(DetectedSurface(
            video_id=surface.video_id,
            timestamp=surface.timestamp,
            surface_type=implied_type,
            confidence=confidence,
            bounding_box=box_below(surface.bounding_box),
            is_inferred=True,
            scene_context=f"Inferred from {surface.surface_type}",
            surroundings=[surface.surface_type],
        ))

    return list(surfaces) + inferred


def categorize_scene(object_types: Iterable[str]) -> Optional[str]:
    """Match detected object names against SCENE_PATTERNS (case-insensitive substring)"""
    names = [name.lower() for name in object_types]
    for pattern, label in SCENE_PATTERNS:
        if all(any(part in name for name in names) for part in pattern):
            return label
    return None


def apply_scene_context(surfaces: List[DetectedSurface]) -> List[DetectedSurface]:
    """
    Label a frame's surfaces with its scene category and drop context-only
    detections such as people.
    """
    names = [s.surface_type for s in surfaces]
    for s in surfaces:
        names.extend(s.surroundings or [])
    scene = categorize_scene(names)

    labelled = []
    for surface in surfaces:
        if surface.surface_type.lower() in CONTEXT_ONLY_TYPES:
            continue
        if scene and surface.scene_context is None:
            surface = replace(surface, scene_context=scene)
        labelled.append(surface)
    return labelled
