import threading
from dataclasses import replace
from typing import Dict, List, Optional

from .base import StorageAdapter
from ..models import DetectedSurface, Video, VideoStatus


class InMemoryStorageAdapter(StorageAdapter):
    """Process-local storage for tests and runs without a database"""

    def __init__(self, videos: Optional[List[Video]] = None):
        self._lock = threading.Lock()
        self._videos: Dict[int, Video] = {}
        self._surfaces: Dict[int, List[DetectedSurface]] = {}
        self._next_surface_id = 1
        self.status_history: Dict[int, List[str]] = {}
        for video in videos or []:
            self.add_video(video)

    def add_video(self, video: Video) -> Video:
        with self._lock:
            self._videos[video.id] = video
        return video

    def get_video_by_id(self, video_id: int) -> Optional[Video]:
        with self._lock:
            video = self._videos.get(video_id)
            return replace(video) if video else None

    def get_pending_videos(self, user_id: str, limit: int = 5) -> List[Video]:
        with self._lock:
            pending = [
                replace(v) for v in self._videos.values()
                if v.user_id == user_id and v.status == VideoStatus.PENDING_SCAN
            ]
        return pending[:limit]

    def update_video_status(self, video_id: int, status: str) -> None:
        with self._lock:
            video = self._videos.get(video_id)
            if video is not None:
                video.status = status
            self.status_history.setdefault(video_id, []).append(status)

    def clear_detected_surfaces(self, video_id: int) -> None:
        with self._lock:
            self._surfaces.pop(video_id, None)

    def insert_detected_surface(self, surface: DetectedSurface) -> DetectedSurface:
        with self._lock:
            stored = replace(surface, id=self._next_surface_id)
            self._next_surface_id += 1
            self._surfaces.setdefault(surface.video_id, []).append(stored)
            return stored

    def get_detected_surfaces(self, video_id: int) -> List[DetectedSurface]:
        with self._lock:
            return list(self._surfaces.get(video_id, []))

    def ping(self) -> None:
        pass
