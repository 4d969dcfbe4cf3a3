import logging
from typing import Optional, Any
from fastapi import FastAPI, HTTPException
import uvicorn
from threading import Thread

from .job_queue import ScanJobQueue
from .orchestrator import ScanOrchestrator

logger = logging.getLogger("surface_scanner")


class HealthServer:
    def __init__(self, orchestrator: ScanOrchestrator, job_queue: ScanJobQueue, storage: Any = None, port: int = 8000):
        self.orchestrator = orchestrator
        self.job_queue = job_queue
        self.storage = storage
        self.port = port
        self.app = FastAPI(title="Surface Scanner Health API")
        self.setup_routes()
        self.server_thread = None
        self.running = False

    def setup_routes(self):
        """Setup API routes"""

        @self.app.get("/healthz")
        async def health_check():
            """Health check endpoint"""
            ping = getattr(self.storage, "ping", None)
            if ping is not None:
                try:
                    ping()
                except Exception as e:
                    logger.error(f"Health check failed: {str(e)}")
                    raise HTTPException(status_code=503, detail=f"Storage connection failed: {str(e)}")
            return {"ok": True, "status": "healthy"}

        @self.app.get("/jobs")
        async def queue_status():
            """Job counts by state"""
            return self.job_queue.queue_status()

        @self.app.get("/jobs/{job_id}")
        async def job_status(job_id: str):
            """Snapshot of one scan job"""
            snapshot = self.job_queue.status(job_id)
            if snapshot is None:
                raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
            return snapshot

        @self.app.get("/stats")
        async def get_stats():
            """Scanner statistics"""
            return {
                "orchestrator": self.orchestrator.get_stats(),
                "queue": self.job_queue.queue_status(),
            }

    def start(self):
        """Start the HTTP server in a background thread"""
        if self.running:
            return

        def run_server():
            try:
                uvicorn.run(
                    self.app,
                    host="0.0.0.0",
                    port=self.port,
                    log_level="warning",
                    access_log=False
                )
            except Exception as e:
                logger.error(f"HTTP server error: {str(e)}")

        self.server_thread = Thread(target=run_server, daemon=True)
        self.server_thread.start()
        self.running = True

        logger.info(f"Health server started on port {self.port}")

    def stop(self):
        """Stop the HTTP server"""
        self.running = False
        logger.info("Health server stopped")


def start_health_server(service) -> Optional[HealthServer]:
    """Start the health server if enabled"""
    if not service.config.ENABLE_HTTP_SERVER:
        return None
    server = HealthServer(service.orchestrator, service.job_queue, service.storage, service.config.HTTP_PORT)
    server.start()
    return server
