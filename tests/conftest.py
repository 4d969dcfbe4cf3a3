import os
from typing import Callable, List, Optional

import pytest
from PIL import Image

from scanner.adapters.memory_adapter import InMemoryStorageAdapter
from scanner.config import ScannerConfig
from scanner.detectors.base import FrameDetector, FrameInput
from scanner.models import BoundingBox, DetectedSurface, Video, VideoStatus
from scanner.orchestrator import ScanOrchestrator

VIDEO_ID = 1


class FakeExtractor:
    """Stands in for ffmpeg: writes real JPEGs into the scratch directory"""

    def __init__(self, count: int, size=(64, 48), error: Optional[Exception] = None):
        self.count = count
        self.size = size
        self.error = error
        self.calls = []
        self.output_dirs: List[str] = []

    def __call__(self, video_path, output_dir, **kwargs) -> List[str]:
        self.calls.append((video_path, output_dir, kwargs))
        self.output_dirs.append(output_dir)
        os.makedirs(output_dir, exist_ok=True)
        paths = []
        for i in range(self.count):
            path = os.path.join(output_dir, f"frame_{i + 1:04d}.jpg")
            Image.new("RGB", self.size, (120, 120, 120)).save(path, "JPEG")
            paths.append(path)
        if self.error is not None:
            raise self.error
        return paths


class StubDetector(FrameDetector):
    """Returns canned surfaces; respond(frame) may also raise"""

    name = "stub"

    def __init__(self, respond: Callable[[FrameInput], List[DetectedSurface]]):
        self.respond = respond
        self.frames: List[FrameInput] = []
        self.existing_at_call: List[bool] = []

    def detect(self, frame: FrameInput) -> List[DetectedSurface]:
        self.frames.append(frame)
        self.existing_at_call.append(os.path.exists(frame.path))
        return self.respond(frame)


def make_surface(surface_type="Desk", confidence=0.5, box=None, timestamp=0.0) -> DetectedSurface:
    return DetectedSurface(
        video_id=None,
        timestamp=timestamp,
        surface_type=surface_type,
        confidence=confidence,
        bounding_box=box or BoundingBox(0.1, 0.5, 0.8, 0.3),
    )


@pytest.fixture
def config(tmp_path) -> ScannerConfig:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return ScannerConfig(
        SCRATCH_DIR=str(scratch),
        STORAGE_TYPE="memory",
        ASSET_ROOT=str(tmp_path),
        PUBLIC_DIR=str(tmp_path / "public"),
        DATA_DIR=str(tmp_path / "data"),
    )


@pytest.fixture
def video_file(tmp_path) -> str:
    path = tmp_path / "desk-tour.mp4"
    path.write_bytes(b"not really a video")
    return str(path)


@pytest.fixture
def storage(video_file) -> InMemoryStorageAdapter:
    return InMemoryStorageAdapter([
        Video(
            id=VIDEO_ID,
            external_id="yt-abc123",
            title="Desk tour",
            user_id="user-1",
            status=VideoStatus.PENDING_SCAN,
            file_path=video_file,
        )
    ])


@pytest.fixture
def build_orchestrator(config, storage):
    """Factory: build_orchestrator(detector, extractor, free_mb=5000)"""

    def build(detector, extractor, free_mb=5000, resolver=None):
        return ScanOrchestrator(
            config,
            storage,
            detector,
            resolver=resolver,
            extractor=extractor,
            disk_probe=lambda path: free_mb,
        )

    return build


@pytest.fixture
def jpeg_frame(tmp_path) -> str:
    path = tmp_path / "frame.jpg"
    Image.new("RGB", (1280, 720), (30, 60, 90)).save(path, "JPEG")
    return str(path)
