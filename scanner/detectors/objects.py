"""
Object classifier surface detection.

Runs a general-purpose COCO object detector (Ultralytics YOLO) and maps its
labels onto surfaces. Direct surface classes win; when none is visible but
work objects are, a desk is assumed at a fixed position.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..config import ScannerConfig
from ..models import BoundingBox, DetectedSurface
from .base import DetectionError, FrameDetector, FrameInput

# Direct surface classes and their minimum scores
SURFACE_OBJECTS: Dict[str, float] = {
    'dining table': 0.3,
    'desk': 0.3,
    'table': 0.3,
    'bench': 0.3,
}

# Objects that hint at a surface nearby, with their minimum scores
SURROUNDING_OBJECTS: Dict[str, float] = {
    'laptop': 0.25,
    'keyboard': 0.25,
    'mouse': 0.25,
    'cell phone': 0.25,
    'bottle': 0.25,
    'cup': 0.25,
    'book': 0.25,
    'remote': 0.25,
    'clock': 0.25,
    'vase': 0.25,
    'tv': 0.25,
    'monitor': 0.25,
}

# Surroundings that imply a work surface underneath
WORK_OBJECTS = {'laptop', 'keyboard', 'mouse', 'book'}

OBJECT_MAP: Dict[str, str] = {
    'dining table': 'Desk',
    'desk': 'Desk',
    'table': 'Table',
    'bench': 'Table',
    'laptop': 'Laptop',
    'keyboard': 'Keyboard',
    'mouse': 'Mouse',
    'cell phone': 'Phone',
    'bottle': 'Bottle',
    'cup': 'Cup',
    'book': 'Book',
    'remote': 'Remote',
    'clock': 'Clock',
    'vase': 'Vase',
    'tv': 'Monitor',
    'tvmonitor': 'Monitor',
    'monitor': 'Monitor',
}

INFERRED_DESK_CONFIDENCE = 0.65
INFERRED_DESK_BOX = BoundingBox(0.1, 0.5, 0.8, 0.45)


@dataclass(frozen=True)
class ObjectPrediction:
    """One detector hit with a normalized box"""
    label: str
    score: float
    box: BoundingBox


Predictor = Callable[[str], List[ObjectPrediction]]


def display_name(label: str) -> str:
    return OBJECT_MAP.get(label.lower(), label.title())


class YoloPredictor:
    """Lazily loaded Ultralytics model returning ObjectPrediction lists"""

    def __init__(self, model_path: str):
        self.model_path = model_path
        self._model = None
        self._lock = threading.Lock()

    def load(self):
        with self._lock:
            if self._model is None:
                from ultralytics import YOLO
                self._model = YOLO(self.model_path)
        return self._model

    def __call__(self, image_path: str) -> List[ObjectPrediction]:
        model = self.load()
        predictions = []
        for result in model.predict(image_path, verbose=False):
            names = getattr(result, "names", {}) or {}
            boxes = getattr(result, "boxes", None)
            if boxes is None:
                continue
            for xyxyn, conf, cls in zip(boxes.xyxyn.tolist(), boxes.conf.tolist(), boxes.cls.tolist()):
                x1, y1, x2, y2 = xyxyn
                predictions.append(ObjectPrediction(
                    label=str(names.get(int(cls), int(cls))),
                    score=float(conf),
                    box=BoundingBox(x1, y1, x2 - x1, y2 - y1),
                ))
        return predictions


class ObjectClassifierDetector(FrameDetector):
    """Maps general object detections onto one surface per frame"""

    name = "objects"

    def __init__(self, config: ScannerConfig, predictor: Optional[Predictor] = None):
        self.config = config
        self.predictor = predictor or YoloPredictor(config.OBJECT_MODEL_PATH)

    def warmup(self) -> None:
        load = getattr(self.predictor, "load", None)
        if load is not None:
            load()

    def detect(self, frame: FrameInput) -> List[DetectedSurface]:
        try:
            predictions = self.predictor(frame.path)
        except Exception as e:
            # cv2 and torch raise their own error types from inside the model
            raise DetectionError(f"Object detector failed on {frame.path}: {e}") from e

        surfaces = [
            p for p in predictions
            if p.label.lower() in SURFACE_OBJECTS and p.score >= SURFACE_OBJECTS[p.label.lower()]
        ]
        surroundings = [
            p for p in predictions
            if p.label.lower() in SURROUNDING_OBJECTS and p.score >= SURROUNDING_OBJECTS[p.label.lower()]
        ]

        if not surfaces and not surroundings:
            return []

        surrounding_names = sorted({display_name(p.label) for p in surroundings})

        if surfaces:
            best = max(surfaces, key=lambda p: p.score)
            surface_type, confidence, box = display_name(best.label), best.score, best.box
            is_inferred = False
        elif any(p.label.lower() in WORK_OBJECTS for p in surroundings):
            surface_type, confidence, box = "Desk", INFERRED_DESK_CONFIDENCE, INFERRED_DESK_BOX
            is_inferred = True
        else:
            return []

        return [
            DetectedSurface(
                video_id=None,
                timestamp=frame.timestamp,
                surface_type=surface_type,
                confidence=confidence,
                bounding_box=box,
                is_inferred=is_inferred,
                scene_context=f"Detected {surface_type} with {len(surrounding_names)} surrounding objects",
                surroundings=surrounding_names or None,
            ).normalized()
        ]
