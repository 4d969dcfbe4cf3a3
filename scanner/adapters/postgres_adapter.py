"""
Postgres storage adapter.

Reads videos from video_index and owns the detected_surfaces rows of the
video being scanned.
"""

import logging
from typing import Optional, List

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .base import StorageAdapter
from ..models import DetectedSurface, Video, VideoStatus
from ..logging_setup import log_exception

logger = logging.getLogger("surface_scanner")

VIDEO_COLUMNS = "id, user_id, youtube_id, title, description, status, file_path"

SURFACE_COLUMNS = (
    "id, video_id, timestamp, surface_type, confidence, "
    "bounding_box_x, bounding_box_y, bounding_box_width, bounding_box_height, "
    "frame_url, is_inferred, scene_context, surroundings"
)


def _video_from_row(row) -> Video:
    return Video(
        id=row['id'],
        user_id=row['user_id'],
        external_id=row['youtube_id'],
        title=row['title'] or "",
        description=row['description'],
        status=row['status'],
        file_path=row['file_path'],
    )


class PostgresStorageAdapter(StorageAdapter):
    """Postgres implementation of storage adapter"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = ConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                kwargs={
                    "connect_timeout": self.timeout,
                    "application_name": "surface_scanner"
                }
            )
            logger.info("Postgres storage connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres storage: {e}")
            raise

    def _bootstrap_schema(self):
        """Add the scanner's extra surface columns when missing"""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("ALTER TABLE video_index ADD COLUMN IF NOT EXISTS file_path TEXT;")
                cur.execute("ALTER TABLE detected_surfaces ADD COLUMN IF NOT EXISTS is_inferred BOOLEAN DEFAULT FALSE;")
                cur.execute("ALTER TABLE detected_surfaces ADD COLUMN IF NOT EXISTS scene_context TEXT;")
                cur.execute("ALTER TABLE detected_surfaces ADD COLUMN IF NOT EXISTS surroundings JSONB;")
                conn.commit()
                logger.info("Postgres storage schema validated")

    def get_video_by_id(self, video_id: int) -> Optional[Video]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {VIDEO_COLUMNS} FROM video_index WHERE id = %s", (video_id,))
                result = cur.fetchone()
                return _video_from_row(result) if result else None

    def get_pending_videos(self, user_id: str, limit: int = 5) -> List[Video]:
        """Pending videos of a user, most valuable first"""
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {VIDEO_COLUMNS}
                    FROM video_index
                    WHERE user_id = %s AND status = %s
                    ORDER BY priority_score DESC, id
                    LIMIT %s
                """, (user_id, VideoStatus.PENDING_SCAN, limit))
                return [_video_from_row(row) for row in cur.fetchall()]

    def update_video_status(self, video_id: int, status: str) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    UPDATE video_index
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s
                """, (status, video_id))
                conn.commit()

    def clear_detected_surfaces(self, video_id: int) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM detected_surfaces WHERE video_id = %s", (video_id,))
                conn.commit()
                logger.debug(f"Cleared {cur.rowcount} surfaces for video {video_id}")

    def insert_detected_surface(self, surface: DetectedSurface) -> DetectedSurface:
        row = surface.to_row()
        if row['surroundings'] is not None:
            row['surroundings'] = Jsonb(row['surroundings'])

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO detected_surfaces (
                        video_id, timestamp, surface_type, confidence,
                        bounding_box_x, bounding_box_y, bounding_box_width, bounding_box_height,
                        frame_url, is_inferred, scene_context, surroundings
                    )
                    VALUES (
                        %(video_id)s, %(timestamp)s, %(surface_type)s, %(confidence)s,
                        %(bounding_box_x)s, %(bounding_box_y)s, %(bounding_box_width)s, %(bounding_box_height)s,
                        %(frame_url)s, %(is_inferred)s, %(scene_context)s, %(surroundings)s
                    )
                    RETURNING id
                """, row)
                result = cur.fetchone()
                conn.commit()
                return surface.with_video(surface.video_id, id=result[0])

    def get_detected_surfaces(self, video_id: int) -> List[DetectedSurface]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {SURFACE_COLUMNS}
                    FROM detected_surfaces
                    WHERE video_id = %s
                    ORDER BY id
                """, (video_id,))
                return [DetectedSurface.from_row(row) for row in cur.fetchall()]

    def ping(self) -> None:
        """Round-trip a trivial query; raises when the database is unreachable"""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres storage connection pool closed")
