"""
Background scan queue.

Accepts scan requests without blocking and runs them one at a time, in
submission order, on a single daemon worker thread.
"""

import uuid
import time
import queue
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from .models import JobStatus, ScanJob
from .orchestrator import ScanOrchestrator
from .logging_setup import log_exception

logger = logging.getLogger("surface_scanner")

JOB_EVENTS = ("job_complete", "job_failed")

# Sentinel telling the worker thread to exit
_STOP = object()


class ScanJobQueue:
    """FIFO scan queue with at most one job in flight"""

    def __init__(self, orchestrator: ScanOrchestrator, autostart: bool = True):
        self.orchestrator = orchestrator
        self._jobs: Dict[str, ScanJob] = {}
        self._done: Dict[str, threading.Event] = {}
        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {e: [] for e in JOB_EVENTS}
        self._lock = threading.Lock()
        self._pending = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        if autostart:
            self.start()

    def start(self):
        """Start the worker thread"""
        if self._worker and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run, name="scan-queue", daemon=True)
        self._worker.start()
        logger.info("Scan queue worker started")

    def stop(self, timeout: Optional[float] = None):
        """Let the current job finish, then stop the worker thread"""
        if not self._worker:
            return
        self._pending.put(_STOP)
        self._worker.join(timeout)
        self._worker = None
        logger.info("Scan queue worker stopped")

    def on(self, event: str, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Subscribe to job_complete or job_failed; callbacks get the job snapshot"""
        if event not in self._listeners:
            raise ValueError(f"Unknown queue event: {event}")
        with self._lock:
            self._listeners[event].append(callback)

    def submit(self, video_id: int, file_path: Optional[str] = None, force: bool = False) -> str:
        """
        Queue a scan and return its job id immediately.

        Args:
            video_id: Video to scan
            file_path: Local file to scan instead of the stored location
            force: Scan even if the video is not pending
        """
        job_id = f"scan-{video_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
        job = ScanJob(id=job_id, video_id=video_id, file_path=file_path)
        with self._lock:
            self._jobs[job_id] = job
            self._done[job_id] = threading.Event()
        self._pending.put((job_id, force))
        logger.info(f"Queued scan job {job_id} for video {video_id}")
        return job_id

    def status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Snapshot of a job, or None for an unknown id"""
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job else None

    def queue_status(self) -> Dict[str, int]:
        """Number of jobs in each state"""
        counts = {status.value: 0 for status in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                counts[job.status.value] += 1
        counts['total'] = sum(counts.values())
        return counts

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Block until a job is completed or failed; returns its snapshot, or None on timeout"""
        with self._lock:
            done = self._done.get(job_id)
        if done is None:
            return None
        if not done.wait(timeout):
            return None
        return self.status(job_id)

    def _run(self):
        while True:
            item = self._pending.get()
            try:
                if item is _STOP:
                    return
                job_id, force = item
                self._process(job_id, force)
            except Exception as e:
                log_exception(logger, f"Scan queue worker error: {e}")
            finally:
                self._pending.task_done()

    def _process(self, job_id: str, force: bool):
        with self._lock:
            job = self._jobs[job_id]
            job.status = JobStatus.PROCESSING
            job.started_at = datetime.now()

        def on_progress(stage: str):
            with self._lock:
                job.stage = stage

        logger.info(f"Processing scan job {job_id} for video {job.video_id}")
        try:
            result = self.orchestrator.process_video_scan(
                job.video_id, force=force, file_path=job.file_path, progress=on_progress
            )
        except Exception as e:
            # The orchestrator reports failures as results; this is a last resort
            log_exception(logger, f"Scan job {job_id} crashed: {e}")
            result = None
            error = str(e)
        else:
            error = result.error

        with self._lock:
            job.result = result
            job.completed_at = datetime.now()
            if result is not None and result.success:
                job.status = JobStatus.COMPLETED
                event = "job_complete"
            else:
                job.status = JobStatus.FAILED
                job.error = error
                event = "job_failed"
            snapshot = job.snapshot()
            listeners = list(self._listeners[event])

        if event == "job_complete":
            logger.info(f"Scan job {job_id} completed: {result.surfaces_detected} surfaces")
        else:
            logger.error(f"Scan job {job_id} failed: {error}")

        for callback in listeners:
            try:
                callback(snapshot)
            except Exception as e:
                log_exception(logger, f"Listener for {event} raised: {e}")
        self._done[job_id].set()
