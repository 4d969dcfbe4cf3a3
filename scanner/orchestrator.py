"""
Scan orchestration.

Runs one video through disk guard, frame extraction, per-frame detection,
contextual inference, fallback synthesis and persistence, and drives the
video's status through Pending Scan -> Scanning -> Ready / Scan Failed /
Pending Upload. The orchestrator is the only component that owns scratch
files and narrates progress through the log.
"""

import os
import re
import time
import logging
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional, Tuple

from .config import ScannerConfig
from .models import (
    DetectedSurface,
    ScanErrorCode,
    ScanResult,
    Video,
    VideoStatus,
)
from .adapters.base import PathResolver, StorageAdapter
from .detectors.base import DetectionError, FrameDetector, FrameInput
from .detectors.edge import EdgeHeuristicDetector
from .pipeline.disk import InsufficientDiskSpaceError, ensure_disk_space, get_available_disk_space_mb
from .pipeline.fallback import synthesize_fallback
from .pipeline.frames import ExtractionError, extract_frames, save_frame_snapshot
from .pipeline.inference import apply_scene_context, infer_surfaces
from .pipeline.orientation import classify_frame
from .pipeline.util import resolve_under, safe_rmtree, safe_unlink, scratch_dir_for
from .logging_setup import log_exception

logger = logging.getLogger("surface_scanner")

# Upload path recorded in a video description, e.g. "File: /uploads/clip.mp4 | ..."
DESCRIPTION_FILE_PATTERN = re.compile(r"File: (/uploads/[^\s|]+)")

SOURCE_UNRESOLVED_MESSAGE = "Video file not found. Upload required."
NO_FRAMES_MESSAGE = "No frames extracted"

ProgressCallback = Callable[[str], None]


class ScanOrchestrator:
    """Sequences one surface scan per video"""

    def __init__(
        self,
        config: ScannerConfig,
        storage: StorageAdapter,
        detector: FrameDetector,
        resolver: Optional[PathResolver] = None,
        extractor: Callable[..., List[str]] = extract_frames,
        disk_probe: Callable[[Optional[str]], int] = get_available_disk_space_mb,
    ):
        self.config = config
        self.storage = storage
        self.detector = detector
        self.resolver = resolver
        self.extractor = extractor
        self.disk_probe = disk_probe
        self.probe_detector = EdgeHeuristicDetector(config)
        self.reset_stats()

    def process_video_scan(
        self,
        video_id: int,
        force: bool = False,
        file_path: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ScanResult:
        """
        Scan one video for placement surfaces.

        Never raises: every failure is returned as ScanResult(success=False)
        with an error_code from ScanErrorCode.

        Args:
            video_id: ID of the video_index row
            force: Scan even when the video is not in "Pending Scan"
            file_path: Local file to scan, taking precedence over stored paths
            progress: Called with the name of each stage as it starts
        """
        start_time = time.time()
        temp_dir = None
        status_touched = False

        def report(stage: str):
            if progress is None:
                return
            try:
                progress(stage)
            except Exception as e:
                logger.warning(f"Progress callback failed at {stage} for video {video_id}: {e}")

        try:
            video = self.storage.get_video_by_id(video_id)
            if video is None:
                return self._finish(ScanResult(
                    success=False,
                    video_id=video_id,
                    error=f"Video {video_id} not found",
                    error_code=ScanErrorCode.VIDEO_NOT_FOUND,
                ), start_time)

            if not force and video.status != VideoStatus.PENDING_SCAN:
                return self._finish(ScanResult(
                    success=False,
                    video_id=video_id,
                    error=f"Video {video_id} is '{video.status}', expected '{VideoStatus.PENDING_SCAN}'",
                    error_code=ScanErrorCode.NOT_ELIGIBLE,
                ), start_time)

            report("disk_check")
            try:
                available_mb = ensure_disk_space(
                    self.config.MIN_DISK_SPACE_MB, self.config.SCRATCH_DIR, probe=self.disk_probe
                )
            except InsufficientDiskSpaceError as e:
                logger.error(f"Scan of video {video_id} refused: {e}")
                return self._finish(ScanResult(
                    success=False,
                    video_id=video_id,
                    error=str(e),
                    error_code=ScanErrorCode.INSUFFICIENT_DISK_SPACE,
                    metrics={'available_mb': e.available_mb},
                ), start_time)

            logger.info(f"Scanning video {video_id} ({video.title or video.external_id}), {available_mb}MB free")

            self.storage.clear_detected_surfaces(video_id)
            status_touched = True
            self.storage.update_video_status(video_id, VideoStatus.SCANNING)

            report("resolve_source")
            source_path = self.resolve_source(video, file_path)
            if source_path is None:
                logger.warning(f"No local file for video {video_id} ({video.external_id}); upload required")
                self.storage.update_video_status(video_id, VideoStatus.PENDING_UPLOAD)
                return self._finish(ScanResult(
                    success=False,
                    video_id=video_id,
                    error=SOURCE_UNRESOLVED_MESSAGE,
                    error_code=ScanErrorCode.SOURCE_UNRESOLVED,
                ), start_time)

            report("extract_frames")
            temp_dir = scratch_dir_for(self.config.SCRATCH_DIR, video_id)
            try:
                frames = self.extractor(
                    source_path,
                    temp_dir,
                    interval_seconds=self.config.FRAME_INTERVAL_SECONDS,
                    max_frames=self.config.MAX_FRAMES_PER_VIDEO,
                    max_dimension=self.config.FRAME_MAX_DIMENSION,
                    qscale=self.config.decoder_qscale(),
                    timeout_sec=self.config.FFMPEG_TIMEOUT_SEC,
                )
            except ExtractionError as e:
                logger.error(f"Frame extraction failed for video {video_id}: {e}")
                self.storage.update_video_status(video_id, VideoStatus.SCAN_FAILED)
                return self._finish(ScanResult(
                    success=False,
                    video_id=video_id,
                    error=str(e),
                    error_code=ScanErrorCode.EXTRACTION_FAILED,
                ), start_time)

            if not frames:
                logger.error(f"No frames extracted from {source_path} for video {video_id}")
                self.storage.update_video_status(video_id, VideoStatus.SCAN_FAILED)
                return self._finish(ScanResult(
                    success=False,
                    video_id=video_id,
                    error=NO_FRAMES_MESSAGE,
                    error_code=ScanErrorCode.NO_FRAMES,
                ), start_time)

            orientation = classify_frame(frames[0], self.config.VERTICAL_ASPECT_THRESHOLD)
            logger.info(
                f"Extracted {len(frames)} frames for video {video_id}, "
                f"{orientation.width}x{orientation.height} {orientation.label}"
            )

            report("detect_surfaces")
            persisted, frame_metrics, empty_timestamps = self._scan_frames(
                video_id, frames, orientation.is_vertical
            )

            report("fallback")
            genuine = sum(1 for s in persisted if not s.is_inferred)
            fallback = synthesize_fallback(
                video_id,
                genuine,
                empty_timestamps,
                self.config.MIN_SURFACES_BEFORE_FALLBACK,
                self.config.FALLBACK_CONFIDENCE,
                self.config.FALLBACK_BUFFER,
            )
            if fallback:
                logger.info(
                    f"Only {genuine} genuine surfaces for video {video_id}, "
                    f"adding {len(fallback)} fallback candidates"
                )
            for surface in fallback:
                persisted.append(self.storage.insert_detected_surface(surface.normalized()))

            total = len(persisted)
            self.storage.update_video_status(video_id, VideoStatus.ready(total))
            logger.info(f"Scan complete for video {video_id}: {total} surfaces")

            self.stats['surfaces_persisted'] += total
            return self._finish(ScanResult(
                success=True,
                video_id=video_id,
                surfaces_detected=total,
                metrics={
                    'frames_extracted': len(frames),
                    'orientation': 'vertical' if orientation.is_vertical else 'horizontal',
                    'fallback_surfaces': len(fallback),
                    **frame_metrics,
                },
            ), start_time)

        except Exception as e:
            error_msg = f"Unexpected error scanning video {video_id}: {e}"
            log_exception(logger, error_msg)
            if status_touched:
                self._mark_failed(video_id)
            return self._finish(ScanResult(
                success=False,
                video_id=video_id,
                error=error_msg,
                error_code=ScanErrorCode.UNEXPECTED,
            ), start_time)

        finally:
            if temp_dir:
                safe_rmtree(temp_dir)

    def _scan_frames(
        self,
        video_id: int,
        frames: List[str],
        is_vertical: bool,
    ) -> Tuple[List[DetectedSurface], Dict[str, int], List[float]]:
        """
        Detect, enrich and persist surfaces frame by frame, in capture order.

        Each frame file is deleted before moving on, whatever happened while
        analyzing it.
        """
        persisted: List[DetectedSurface] = []
        empty_timestamps: List[float] = []
        metrics = {'frames_skipped': 0, 'inferred_surfaces': 0}

        for index, frame_path in enumerate(frames):
            timestamp = index * self.config.FRAME_INTERVAL_SECONDS
            frame = FrameInput(frame_path, timestamp, is_vertical, index)
            try:
                try:
                    surfaces = self.detector.detect(frame)
                except DetectionError as e:
                    logger.warning(
                        f"Frame {index + 1}/{len(frames)} of video {video_id} skipped "
                        f"({type(e).__name__}): {e}"
                    )
                    metrics['frames_skipped'] += 1
                    surfaces = []

                if self.config.ENABLE_CONTEXTUAL_INFERENCE:
                    surfaces = infer_surfaces(surfaces)
                surfaces = apply_scene_context(surfaces)

                if not surfaces:
                    empty_timestamps.append(timestamp)
                    continue

                frame_url = None
                if self.config.FRAME_SNAPSHOT_DIR:
                    frame_url = save_frame_snapshot(
                        frame_path,
                        self.config.FRAME_SNAPSHOT_DIR,
                        video_id,
                        timestamp,
                        self.config.FRAME_SNAPSHOT_URL_PREFIX,
                    )

                for surface in surfaces:
                    stored = self.storage.insert_detected_surface(
                        surface.with_video(video_id, timestamp=timestamp, frame_url=frame_url).normalized()
                    )
                    persisted.append(stored)
                    if stored.is_inferred:
                        metrics['inferred_surfaces'] += 1
                    logger.info(
                        f"{'Inferred' if stored.is_inferred else 'Found'} {stored.surface_type} "
                        f"at {timestamp:g}s in video {video_id} ({stored.confidence:.2f})"
                    )
            finally:
                safe_unlink(frame_path)

        return persisted, metrics, empty_timestamps

    def resolve_source(self, video: Video, override: Optional[str] = None) -> Optional[str]:
        """
        Find the local file for a video.

        Tried in order: the explicit override, the stored file_path, the
        injected resolver, then an upload path recorded in the description.
        Only a path that exists on disk is returned.
        """
        candidates = []
        if override:
            candidates.append(resolve_under(self.config.ASSET_ROOT, override))
        if video.file_path:
            candidates.append(resolve_under(self.config.ASSET_ROOT, video.file_path))
        if self.resolver is not None:
            candidates.append(self.resolver.resolve(video.external_id))
        if video.description:
            match = DESCRIPTION_FILE_PATTERN.search(video.description)
            if match:
                candidates.append(os.path.join(self.config.PUBLIC_DIR, match.group(1).lstrip("/")))

        for candidate in candidates:
            if candidate and os.path.exists(candidate):
                return candidate
        return None

    def scan_pending_videos(self, user_id: str, limit: int = 5) -> List[ScanResult]:
        """Scan a user's pending videos one after another"""
        try:
            videos = self.storage.get_pending_videos(user_id, limit)
        except Exception as e:
            log_exception(logger, f"Failed to fetch pending videos for user {user_id}: {e}")
            return []

        logger.info(f"Found {len(videos)} pending videos for user {user_id}")
        return [self.process_video_scan(video.id) for video in videos]

    def detect_surface(self, video_path: str) -> Tuple[bool, float]:
        """
        Quick probe: does the middle frame of a video show a surface?

        Uses the edge heuristic regardless of the configured strategy and
        never raises.

        Returns:
            (has_surface, confidence)
        """
        temp_dir = scratch_dir_for(self.config.SCRATCH_DIR, 0, label="probe")
        try:
            frames = self.extractor(
                video_path,
                temp_dir,
                interval_seconds=self.config.FRAME_INTERVAL_SECONDS,
                max_frames=self.config.MAX_FRAMES_PER_VIDEO,
                max_dimension=self.config.FRAME_MAX_DIMENSION,
                qscale=self.config.decoder_qscale(),
                timeout_sec=self.config.FFMPEG_TIMEOUT_SEC,
            )
            if not frames:
                return False, 0.0

            middle = frames[len(frames) // 2]
            orientation = classify_frame(frames[0], self.config.VERTICAL_ASPECT_THRESHOLD)
            surfaces = self.probe_detector.detect(FrameInput(middle, 0.0, orientation.is_vertical))
            if not surfaces:
                return False, 0.0
            return True, surfaces[0].confidence
        except Exception as e:
            log_exception(logger, f"Surface probe failed for {video_path}: {e}")
            return False, 0.0
        finally:
            safe_rmtree(temp_dir)

    def _mark_failed(self, video_id: int) -> None:
        try:
            self.storage.update_video_status(video_id, VideoStatus.SCAN_FAILED)
        except Exception as e:
            log_exception(logger, f"Could not mark video {video_id} as failed: {e}")

    def _finish(self, result: ScanResult, start_time: float) -> ScanResult:
        processing_time = time.time() - start_time
        result.metrics['processing_time_sec'] = round(processing_time, 3)
        self.stats['scans_run'] += 1
        self.stats['total_processing_time'] += processing_time
        if not result.success:
            self.stats['scans_failed'] += 1
        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics"""
        uptime = (datetime.now() - self.stats['start_time']).total_seconds()
        scans_run = self.stats['scans_run']
        return {
            'scans_run': scans_run,
            'scans_failed': self.stats['scans_failed'],
            'surfaces_persisted': self.stats['surfaces_persisted'],
            'total_processing_time': self.stats['total_processing_time'],
            'average_processing_time': self.stats['total_processing_time'] / scans_run if scans_run else 0,
            'uptime_seconds': uptime,
            'success_rate': (scans_run - self.stats['scans_failed']) / scans_run if scans_run else 0,
            'detection_method': self.detector.name,
        }

    def reset_stats(self) -> None:
        """Reset orchestrator statistics"""
        self.stats = {
            'scans_run': 0,
            'scans_failed': 0,
            'surfaces_persisted': 0,
            'total_processing_time': 0.0,
            'start_time': datetime.now(),
        }
