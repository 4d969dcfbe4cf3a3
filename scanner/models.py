"""
Domain models for the surface scanner.

Defines the core data structures used throughout the system,
providing type safety and clear interfaces between components.
"""

from dataclasses import dataclass, field, replace, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

# Smallest width/height a persisted bounding box may have
MIN_BOX_SIZE = 1e-3


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class BoundingBox:
    """Normalized (0-1) rectangle locating a surface within a frame"""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_percentages(cls, x: float, y: float, width: float, height: float) -> 'BoundingBox':
        return cls(x / 100.0, y / 100.0, width / 100.0, height / 100.0)

    def clamped(self) -> 'BoundingBox':
        """Return a copy that lies inside the unit square with a positive area"""
        x = clamp(self.x, 0.0, 1.0 - MIN_BOX_SIZE)
        y = clamp(self.y, 0.0, 1.0 - MIN_BOX_SIZE)
        width = clamp(self.width, MIN_BOX_SIZE, 1.0 - x)
        height = clamp(self.height, MIN_BOX_SIZE, 1.0 - y)
        return BoundingBox(x, y, width, height)

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass
class DetectedSurface:
    """A surface candidate found in one frame of a video"""
    video_id: Optional[int]
    timestamp: float
    surface_type: str
    confidence: float
    bounding_box: BoundingBox
    is_inferred: bool = False
    scene_context: Optional[str] = None
    frame_url: Optional[str] = None
    surroundings: Optional[List[str]] = None
    id: Optional[int] = None

    def normalized(self) -> 'DetectedSurface':
        """Copy with confidence and bounding box forced into [0, 1]"""
        return replace(
            self,
            confidence=clamp(float(self.confidence)),
            bounding_box=self.bounding_box.clamped(),
        )

    def with_video(self, video_id: int, **changes: Any) -> 'DetectedSurface':
        return replace(self, video_id=video_id, **changes)

    def to_row(self) -> Dict[str, Any]:
        """Flatten into the column layout of the detected_surfaces table"""
        return {
            'video_id': self.video_id,
            'timestamp': self.timestamp,
            'surface_type': self.surface_type,
            'confidence': self.confidence,
            'bounding_box_x': self.bounding_box.x,
            'bounding_box_y': self.bounding_box.y,
            'bounding_box_width': self.bounding_box.width,
            'bounding_box_height': self.bounding_box.height,
            'frame_url': self.frame_url,
            'is_inferred': self.is_inferred,
            'scene_context': self.scene_context,
            'surroundings': self.surroundings,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'DetectedSurface':
        return cls(
            id=row.get('id'),
            video_id=row['video_id'],
            timestamp=float(row['timestamp']),
            surface_type=row['surface_type'],
            confidence=float(row['confidence']),
            bounding_box=BoundingBox(
                float(row['bounding_box_x']),
                float(row['bounding_box_y']),
                float(row['bounding_box_width']),
                float(row['bounding_box_height']),
            ),
            is_inferred=bool(row.get('is_inferred') or False),
            scene_context=row.get('scene_context'),
            frame_url=row.get('frame_url'),
            surroundings=row.get('surroundings'),
        )


class VideoStatus:
    """Status strings stored on a video row"""
    PENDING_SCAN = "Pending Scan"
    SCANNING = "Scanning"
    SCAN_FAILED = "Scan Failed"
    PENDING_UPLOAD = "Pending Upload"

    @staticmethod
    def ready(spots: int) -> str:
        return f"Ready ({spots} Spots)"

    @staticmethod
    def is_ready(status: str) -> bool:
        return status.startswith("Ready (")


@dataclass
class Video:
    """Represents an indexed video"""
    id: int
    external_id: str
    title: str = ""
    user_id: Optional[str] = None
    status: str = VideoStatus.PENDING_SCAN
    file_path: Optional[str] = None
    description: Optional[str] = None


class ScanErrorCode:
    INSUFFICIENT_DISK_SPACE = "insufficient_disk_space"
    VIDEO_NOT_FOUND = "video_not_found"
    NOT_ELIGIBLE = "not_eligible"
    SOURCE_UNRESOLVED = "source_unresolved"
    NO_FRAMES = "no_frames"
    EXTRACTION_FAILED = "extraction_failed"
    UNEXPECTED = "unexpected"


@dataclass
class ScanResult:
    """Represents the result of a video scan"""
    success: bool
    video_id: int
    surfaces_detected: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class ScanJob:
    """Represents a queued scan request"""
    id: str
    video_id: int
    file_path: Optional[str]
    status: JobStatus = JobStatus.PENDING
    result: Optional[ScanResult] = None
    error: Optional[str] = None
    stage: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time copy safe to hand across threads"""
        return {
            'id': self.id,
            'video_id': self.video_id,
            'file_path': self.file_path,
            'status': self.status.value,
            'stage': self.stage,
            'result': self.result.to_dict() if self.result else None,
            'error': self.error,
            'created_at': self.created_at.isoformat(),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
