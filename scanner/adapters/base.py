"""
Abstract base classes for the storage gateway and source path resolution.

The scan pipeline reads and writes nothing outside these interfaces, so
Postgres, an in-memory store or a test double can be swapped in freely.
"""

from abc import ABC, abstractmethod
from typing import Optional, List

from ..models import DetectedSurface, Video


class StorageAdapter(ABC):
    """Abstract base class for storage adapters"""

    def connect(self) -> None:
        """Open connections. No-op for stores that need none."""

    def close(self) -> None:
        """Release connections"""

    @abstractmethod
    def get_video_by_id(self, video_id: int) -> Optional[Video]:
        """
        Get a video row.

        Args:
            video_id: ID of the video

        Returns:
            Video if found, None otherwise
        """
        pass

    @abstractmethod
    def get_pending_videos(self, user_id: str, limit: int = 5) -> List[Video]:
        """
        Get videos awaiting a scan for one user.

        Args:
            user_id: Owner of the videos
            limit: Maximum number of videos returned

        Returns:
            Videos in "Pending Scan" status
        """
        pass

    @abstractmethod
    def update_video_status(self, video_id: int, status: str) -> None:
        """
        Set the status string of a video.

        Args:
            video_id: ID of the video
            status: New status, see VideoStatus
        """
        pass

    @abstractmethod
    def clear_detected_surfaces(self, video_id: int) -> None:
        """
        Delete every detected surface stored for a video.

        Args:
            video_id: ID of the video
        """
        pass

    @abstractmethod
    def insert_detected_surface(self, surface: DetectedSurface) -> DetectedSurface:
        """
        Persist one detected surface.

        Args:
            surface: Surface with video_id set

        Returns:
            The stored surface with its id assigned
        """
        pass

    @abstractmethod
    def get_detected_surfaces(self, video_id: int) -> List[DetectedSurface]:
        """
        Get the stored surfaces of a video in insertion order.

        Args:
            video_id: ID of the video

        Returns:
            List of surfaces
        """
        pass


class PathResolver(ABC):
    """Maps a video's external identifier to a local file"""

    @abstractmethod
    def resolve(self, external_id: str) -> Optional[str]:
        """
        Args:
            external_id: Platform identifier stored on the video row

        Returns:
            Local filesystem path if known, None otherwise
        """
        pass
