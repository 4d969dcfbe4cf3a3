"""
Main scanner service.

Wires configuration, storage, path resolution, the detection strategy, the
orchestrator and the scan queue together, and exposes the console entry
point.
"""

import sys
import signal
import logging
import argparse
import threading
from typing import Optional, Dict, Any, List

from .config import ScannerConfig
from .adapters.base import PathResolver, StorageAdapter
from .adapters.memory_adapter import InMemoryStorageAdapter
from .adapters.resolvers import MappingPathResolver, load_asset_map
from .detectors import create_detector
from .detectors.base import FrameDetector
from .orchestrator import ScanOrchestrator
from .job_queue import ScanJobQueue
from .logging_setup import setup_logging, log_exception
from .http_server import start_health_server

logger = logging.getLogger("surface_scanner")


class ScannerService:
    """Surface scanner with pluggable storage and detection strategy"""

    def __init__(self, config: Optional[ScannerConfig] = None):
        self.config = config or ScannerConfig.from_env()
        self.storage: Optional[StorageAdapter] = None
        self.resolver: Optional[PathResolver] = None
        self.detector: Optional[FrameDetector] = None
        self.orchestrator: Optional[ScanOrchestrator] = None
        self.job_queue: Optional[ScanJobQueue] = None
        self.health_server = None
        self.running = False
        self._stop_event = threading.Event()

    def initialize(self):
        """Initialize components based on configuration"""
        try:
            setup_logging(self.config.LOG_LEVEL, self.config.DATA_DIR)

            self.config.validate()

            self.storage = self._create_storage_adapter()
            self.storage.connect()

            self.resolver = self._create_resolver()

            self.detector = create_detector(self.config)
            self._warmup_detector()

            self.orchestrator = ScanOrchestrator(self.config, self.storage, self.detector, self.resolver)
            self.job_queue = ScanJobQueue(self.orchestrator)

            self.health_server = start_health_server(self)

            logger.info(
                f"Scanner service initialized: {self.config.DETECTION_METHOD} detection, "
                f"{self.config.STORAGE_TYPE} storage"
            )

        except Exception as e:
            log_exception(logger, f"Failed to initialize scanner service: {e}")
            raise

    def _create_storage_adapter(self) -> StorageAdapter:
        """Create storage adapter based on configuration"""

        if self.config.STORAGE_TYPE == "postgres":
            from .adapters.postgres_adapter import PostgresStorageAdapter
            config = self.config.STORAGE_CONFIG
            return PostgresStorageAdapter(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10)
            )

        elif self.config.STORAGE_TYPE == "memory":
            return InMemoryStorageAdapter()

        else:
            raise ValueError(f"Unsupported storage type: {self.config.STORAGE_TYPE}")

    def _create_resolver(self) -> PathResolver:
        if self.config.ASSET_MAP_FILE:
            return load_asset_map(self.config.ASSET_MAP_FILE, self.config.ASSET_ROOT)
        return MappingPathResolver(base_dir=self.config.ASSET_ROOT)

    def _warmup_detector(self):
        try:
            self.detector.warmup()
        except Exception as e:
            log_exception(logger, f"Detector warmup failed, loading on first frame instead: {e}")

    def submit(self, video_id: int, file_path: Optional[str] = None, force: bool = False) -> str:
        return self.job_queue.submit(video_id, file_path, force)

    def start(self):
        """Block until stop() is called, serving queued scans"""
        if self.running:
            logger.warning("Scanner service is already running")
            return

        self.running = True
        logger.info("Scanner service started")
        self._stop_event.wait()

    def stop(self):
        """Stop the scanner service"""
        if not self.running and self.job_queue is None:
            return

        self.running = False
        self._stop_event.set()

        if self.health_server:
            self.health_server.stop()
        if self.job_queue:
            self.job_queue.stop()
            self.job_queue = None
        if self.storage:
            self.storage.close()

        logger.info("Scanner service stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get scanner statistics"""
        stats = {
            'running': self.running,
            'config': {
                'detection_method': self.config.DETECTION_METHOD,
                'storage_type': self.config.STORAGE_TYPE,
                'frame_interval_seconds': self.config.FRAME_INTERVAL_SECONDS,
                'max_frames_per_video': self.config.MAX_FRAMES_PER_VIDEO,
            }
        }

        if self.orchestrator:
            stats['orchestrator'] = self.orchestrator.get_stats()
        if self.job_queue:
            stats['queue'] = self.job_queue.queue_status()

        return stats


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="surface-scanner", description="Scan videos for product placement surfaces")
    parser.add_argument("--video-id", type=int, action="append", default=[],
                        help="Scan this video and exit (repeatable)")
    parser.add_argument("--user-id", help="Scan this user's pending videos and exit")
    parser.add_argument("--limit", type=int, default=5, help="Pending videos to scan with --user-id")
    parser.add_argument("--force", action="store_true", help="Rescan videos that are not pending")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    args = parse_args(argv)
    service = ScannerService()

    try:
        service.initialize()

        if args.user_id:
            results = service.orchestrator.scan_pending_videos(args.user_id, args.limit)
            failed = [r for r in results if not r.success]
            logger.info(f"Scanned {len(results)} videos, {len(failed)} failed")
            return

        if args.video_id:
            for video_id in args.video_id:
                result = service.orchestrator.process_video_scan(video_id, force=args.force)
                logger.info(f"Video {video_id}: {result.to_dict()}")
            return

        service.start()
    except Exception as e:
        log_exception(logger, f"Scanner failed to start: {str(e)}")
        sys.exit(1)
    finally:
        service.stop()


if __name__ == "__main__":
    main()
