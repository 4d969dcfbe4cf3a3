import os

from conftest import VIDEO_ID, FakeExtractor, StubDetector, make_surface
from scanner.adapters.resolvers import MappingPathResolver
from scanner.detectors.base import FrameSkippedError, TransientDetectionError
from scanner.models import BoundingBox, DetectedSurface, ScanErrorCode, Video, VideoStatus
from scanner.pipeline.frames import DecoderExitError

EPS = 1e-9


def test_five_frames_one_surface_each_marks_ready(build_orchestrator, storage) -> None:
    extractor = FakeExtractor(5)
    orchestrator = build_orchestrator(StubDetector(lambda f: [make_surface(confidence=0.5)]), extractor)

    result = orchestrator.process_video_scan(VIDEO_ID)

    assert result.success is True
    assert result.surfaces_detected == 5
    assert storage.get_video_by_id(VIDEO_ID).status == "Ready (5 Spots)"
    assert storage.status_history[VIDEO_ID] == [VideoStatus.SCANNING, "Ready (5 Spots)"]


def test_zero_frames_fails_scan(build_orchestrator, storage) -> None:
    orchestrator = build_orchestrator(StubDetector(lambda f: []), FakeExtractor(0))

    result = orchestrator.process_video_scan(VIDEO_ID)

    assert result.success is False
    assert result.surfaces_detected == 0
    assert result.error == "No frames extracted"
    assert result.error_code == ScanErrorCode.NO_FRAMES
    assert storage.get_video_by_id(VIDEO_ID).status == VideoStatus.SCAN_FAILED


def test_rescan_replaces_previous_surfaces(build_orchestrator, storage) -> None:
    for i in range(3):
        storage.insert_detected_surface(make_surface("Shelf", timestamp=i).with_video(VIDEO_ID))
    assert len(storage.get_detected_surfaces(VIDEO_ID)) == 3

    fixed = [make_surface("Table", 0.9), make_surface("Counter", 0.8)]
    detector = StubDetector(lambda f: [fixed[f.index]])
    orchestrator = build_orchestrator(detector, FakeExtractor(2))

    result = orchestrator.process_video_scan(VIDEO_ID)

    stored = storage.get_detected_surfaces(VIDEO_ID)
    assert result.surfaces_detected == 2
    assert [s.surface_type for s in stored] == ["Table", "Counter"]


def test_low_disk_space_never_extracts(build_orchestrator, storage) -> None:
    extractor = FakeExtractor(5)
    orchestrator = build_orchestrator(StubDetector(lambda f: []), extractor, free_mb=10)

    result = orchestrator.process_video_scan(VIDEO_ID)

    assert result.success is False
    assert result.error_code == ScanErrorCode.INSUFFICIENT_DISK_SPACE
    assert "Insufficient disk space" in result.error
    assert len(extractor.calls) == 0
    assert storage.get_video_by_id(VIDEO_ID).status == VideoStatus.PENDING_SCAN
    assert VIDEO_ID not in storage.status_history


def test_scratch_directory_removed_after_success(build_orchestrator) -> None:
    extractor = FakeExtractor(3)
    detector = StubDetector(lambda f: [make_surface()])
    build_orchestrator(detector, extractor).process_video_scan(VIDEO_ID)

    assert not os.path.exists(extractor.output_dirs[0])
    assert all(detector.existing_at_call)


def test_scratch_directory_removed_when_detector_raises(build_orchestrator, storage) -> None:
    def explode(frame):
        raise RuntimeError("model crashed")

    extractor = FakeExtractor(3)
    result = build_orchestrator(StubDetector(explode), extractor).process_video_scan(VIDEO_ID)

    assert result.success is False
    assert result.error_code == ScanErrorCode.UNEXPECTED
    assert "model crashed" in result.error
    assert not os.path.exists(extractor.output_dirs[0])
    assert storage.get_video_by_id(VIDEO_ID).status == VideoStatus.SCAN_FAILED


def test_scratch_directory_removed_when_extractor_raises(build_orchestrator, storage) -> None:
    extractor = FakeExtractor(2, error=RuntimeError("decoder vanished"))
    result = build_orchestrator(StubDetector(lambda f: []), extractor).process_video_scan(VIDEO_ID)

    assert result.success is False
    assert not os.path.exists(extractor.output_dirs[0])
    assert storage.get_video_by_id(VIDEO_ID).status == VideoStatus.SCAN_FAILED


def test_decoder_failure_marks_scan_failed(build_orchestrator, storage) -> None:
    extractor = FakeExtractor(0, error=DecoderExitError(1, "moov atom not found"))
    result = build_orchestrator(StubDetector(lambda f: []), extractor).process_video_scan(VIDEO_ID)

    assert result.error_code == ScanErrorCode.EXTRACTION_FAILED
    assert storage.get_video_by_id(VIDEO_ID).status == VideoStatus.SCAN_FAILED


def test_fallback_fills_up_to_minimum(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 3
    result = build_orchestrator(StubDetector(lambda f: []), FakeExtractor(6)).process_video_scan(VIDEO_ID)

    stored = storage.get_detected_surfaces(VIDEO_ID)
    assert result.surfaces_detected == 3
    assert len(stored) == 3
    assert all(s.is_inferred for s in stored)
    assert all(s.confidence == config.FALLBACK_CONFIDENCE for s in stored)
    assert storage.get_video_by_id(VIDEO_ID).status == "Ready (3 Spots)"


def test_fallback_limited_by_frame_count(build_orchestrator, storage) -> None:
    result = build_orchestrator(StubDetector(lambda f: []), FakeExtractor(2)).process_video_scan(VIDEO_ID)

    assert result.surfaces_detected == 2
    assert storage.get_video_by_id(VIDEO_ID).status == "Ready (2 Spots)"


def test_no_fallback_when_minimum_is_zero(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 0
    result = build_orchestrator(StubDetector(lambda f: []), FakeExtractor(4)).process_video_scan(VIDEO_ID)

    assert result.success is True
    assert result.surfaces_detected == 0
    assert storage.get_video_by_id(VIDEO_ID).status == "Ready (0 Spots)"


def test_persisted_surfaces_stay_in_bounds(build_orchestrator, storage) -> None:
    wild = [
        make_surface("Desk", 1.7, BoundingBox(-0.2, 0.9, 1.5, 0.6)),
        make_surface("Laptop", -0.3, BoundingBox(0.95, -0.1, 0.4, 1.2)),
    ]
    build_orchestrator(StubDetector(lambda f: wild), FakeExtractor(3)).process_video_scan(VIDEO_ID)

    stored = storage.get_detected_surfaces(VIDEO_ID)
    assert stored
    for s in stored:
        box = s.bounding_box
        assert 0 <= box.x and 0 <= box.y
        assert box.width > 0 and box.height > 0
        assert box.x + box.width <= 1 + EPS
        assert box.y + box.height <= 1 + EPS
        assert 0 <= s.confidence <= 1


def test_detection_errors_skip_only_that_frame(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 0

    def respond(frame):
        if frame.index == 0:
            raise TransientDetectionError("timed out")
        if frame.index == 1:
            raise FrameSkippedError("quota exceeded")
        return [make_surface()]

    result = build_orchestrator(StubDetector(respond), FakeExtractor(4)).process_video_scan(VIDEO_ID)

    assert result.success is True
    assert result.surfaces_detected == 2
    assert result.metrics['frames_skipped'] == 2


def test_frames_are_scanned_in_capture_order(build_orchestrator, storage, config) -> None:
    config.FRAME_INTERVAL_SECONDS = 2.0
    detector = StubDetector(lambda f: [make_surface()])
    build_orchestrator(detector, FakeExtractor(4)).process_video_scan(VIDEO_ID)

    assert [f.timestamp for f in detector.frames] == [0.0, 2.0, 4.0, 6.0]
    assert [s.timestamp for s in storage.get_detected_surfaces(VIDEO_ID)] == [0.0, 2.0, 4.0, 6.0]


def test_laptop_detection_adds_inferred_desk(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 0
    laptop = make_surface("Laptop", 0.9, BoundingBox(0.4, 0.3, 0.2, 0.2))
    build_orchestrator(StubDetector(lambda f: [laptop]), FakeExtractor(1)).process_video_scan(VIDEO_ID)

    stored = storage.get_detected_surfaces(VIDEO_ID)
    assert [s.surface_type for s in stored] == ["Laptop", "Desk"]
    assert stored[1].is_inferred is True
    assert stored[1].confidence == 0.85


def test_inferred_surfaces_do_not_count_toward_fallback_minimum(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 3
    laptop = make_surface("Laptop", 0.9, BoundingBox(0.4, 0.3, 0.2, 0.2))
    detector = StubDetector(lambda f: [laptop] if f.index == 0 else [])

    result = build_orchestrator(detector, FakeExtractor(4)).process_video_scan(VIDEO_ID)

    stored = storage.get_detected_surfaces(VIDEO_ID)
    assert [s.surface_type for s in stored] == ["Laptop", "Desk", "Potential Surface", "Potential Surface"]
    assert [s.timestamp for s in stored[2:]] == [config.FRAME_INTERVAL_SECONDS, 2 * config.FRAME_INTERVAL_SECONDS]
    assert result.surfaces_detected == 4


def test_placeholders_stay_distinct_from_weak_genuine_detections(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 2
    weak = make_surface("Desk", 0.12)
    detector = StubDetector(lambda f: [weak] if f.index == 0 else [])

    build_orchestrator(detector, FakeExtractor(3)).process_video_scan(VIDEO_ID)

    genuine, placeholder = storage.get_detected_surfaces(VIDEO_ID)
    assert genuine.confidence < placeholder.confidence == config.FALLBACK_CONFIDENCE
    assert (genuine.surface_type, genuine.is_inferred) == ("Desk", False)
    assert (placeholder.surface_type, placeholder.is_inferred) == ("Potential Surface", True)


def test_unresolvable_source_requests_upload(build_orchestrator, storage) -> None:
    storage.add_video(Video(id=2, external_id="yt-missing", title="Gone", user_id="user-1"))
    extractor = FakeExtractor(3)

    result = build_orchestrator(StubDetector(lambda f: []), extractor).process_video_scan(2)

    assert result.success is False
    assert result.error_code == ScanErrorCode.SOURCE_UNRESOLVED
    assert result.error == "Video file not found. Upload required."
    assert storage.get_video_by_id(2).status == VideoStatus.PENDING_UPLOAD
    assert extractor.calls == []


def test_source_found_through_resolver(build_orchestrator, storage, video_file) -> None:
    storage.add_video(Video(id=3, external_id="yt-mapped", title="Mapped", user_id="user-1"))
    extractor = FakeExtractor(1)
    resolver = MappingPathResolver({"yt-mapped": video_file})

    result = build_orchestrator(StubDetector(lambda f: [make_surface()]), extractor, resolver=resolver) \
        .process_video_scan(3)

    assert result.success is True
    assert extractor.calls[0][0] == video_file


def test_source_found_through_description(build_orchestrator, storage, tmp_path) -> None:
    uploads = tmp_path / "public" / "uploads"
    uploads.mkdir(parents=True)
    (uploads / "clip.mp4").write_bytes(b"data")
    storage.add_video(Video(
        id=4, external_id="upload-4", title="Upload", user_id="user-1",
        description="Uploaded video | File: /uploads/clip.mp4 | Size: 2MB",
    ))
    extractor = FakeExtractor(1)

    build_orchestrator(StubDetector(lambda f: [make_surface()]), extractor).process_video_scan(4)

    assert extractor.calls[0][0] == str(uploads / "clip.mp4")


def test_video_not_pending_is_skipped_unless_forced(build_orchestrator, storage) -> None:
    storage.update_video_status(VIDEO_ID, "Ready (2 Spots)")
    orchestrator = build_orchestrator(StubDetector(lambda f: [make_surface()]), FakeExtractor(3))

    skipped = orchestrator.process_video_scan(VIDEO_ID)
    forced = orchestrator.process_video_scan(VIDEO_ID, force=True)

    assert skipped.error_code == ScanErrorCode.NOT_ELIGIBLE
    assert forced.success is True
    assert forced.surfaces_detected == 3


def test_unknown_video(build_orchestrator) -> None:
    result = build_orchestrator(StubDetector(lambda f: []), FakeExtractor(1)).process_video_scan(999)

    assert result.success is False
    assert result.error_code == ScanErrorCode.VIDEO_NOT_FOUND


def test_frame_snapshots_saved_for_surface_frames(build_orchestrator, storage, config, tmp_path) -> None:
    config.FRAME_SNAPSHOT_DIR = str(tmp_path / "snapshots")
    config.MIN_SURFACES_BEFORE_FALLBACK = 0
    detector = StubDetector(lambda f: [make_surface()] if f.index == 1 else [])

    build_orchestrator(detector, FakeExtractor(2)).process_video_scan(VIDEO_ID)

    stored = storage.get_detected_surfaces(VIDEO_ID)
    assert stored[0].frame_url == f"/uploads/frames/{VIDEO_ID}/frame_2s.jpg"
    assert (tmp_path / "snapshots" / str(VIDEO_ID) / "frame_2s.jpg").exists()


def test_scan_pending_videos(build_orchestrator, storage, video_file) -> None:
    storage.add_video(Video(id=5, external_id="yt-5", user_id="user-1", file_path=video_file))
    storage.add_video(Video(id=6, external_id="yt-6", user_id="someone-else", file_path=video_file))
    orchestrator = build_orchestrator(StubDetector(lambda f: [make_surface()]), FakeExtractor(3))

    results = orchestrator.scan_pending_videos("user-1")

    assert sorted(r.video_id for r in results) == [VIDEO_ID, 5]
    assert all(r.success for r in results)
    assert storage.get_video_by_id(6).status == VideoStatus.PENDING_SCAN


def test_progress_callback_sees_each_stage(build_orchestrator) -> None:
    stages = []
    orchestrator = build_orchestrator(StubDetector(lambda f: [make_surface()]), FakeExtractor(3))

    orchestrator.process_video_scan(VIDEO_ID, progress=stages.append)

    assert stages == ["disk_check", "resolve_source", "extract_frames", "detect_surfaces", "fallback"]


def test_stats_count_failures(build_orchestrator) -> None:
    orchestrator = build_orchestrator(StubDetector(lambda f: [make_surface()]), FakeExtractor(3))
    orchestrator.process_video_scan(VIDEO_ID)
    orchestrator.process_video_scan(999)

    stats = orchestrator.get_stats()
    assert stats['scans_run'] == 2
    assert stats['scans_failed'] == 1
    assert stats['surfaces_persisted'] == 3
    assert stats['success_rate'] == 0.5


def test_detect_surface_never_raises(build_orchestrator, video_file) -> None:
    extractor = FakeExtractor(0, error=RuntimeError("boom"))
    orchestrator = build_orchestrator(StubDetector(lambda f: []), extractor)

    assert orchestrator.detect_surface(video_file) == (False, 0.0)
    assert not os.path.exists(extractor.output_dirs[0])


def test_detect_surface_uniform_frames_have_no_surface(build_orchestrator, video_file) -> None:
    extractor = FakeExtractor(3)
    orchestrator = build_orchestrator(StubDetector(lambda f: []), extractor)

    assert orchestrator.detect_surface(video_file) == (False, 0.0)
    assert not os.path.exists(extractor.output_dirs[0])


def test_inferred_flag_survives_persistence(build_orchestrator, storage, config) -> None:
    config.MIN_SURFACES_BEFORE_FALLBACK = 0
    inferred = DetectedSurface(None, 0.0, "Desk", 0.65, BoundingBox(0.1, 0.5, 0.8, 0.45), is_inferred=True)
    build_orchestrator(StubDetector(lambda f: [inferred]), FakeExtractor(1)).process_video_scan(VIDEO_ID)

    assert storage.get_detected_surfaces(VIDEO_ID)[0].is_inferred is True
