import json
import os

import pytest

from conftest import make_surface
from scanner.adapters.memory_adapter import InMemoryStorageAdapter
from scanner.adapters.resolvers import MappingPathResolver, load_asset_map
from scanner.models import BoundingBox, DetectedSurface, Video, VideoStatus


def test_memory_storage_round_trip() -> None:
    storage = InMemoryStorageAdapter([Video(id=1, external_id="a", user_id="u")])

    first = storage.insert_detected_surface(make_surface("Desk").with_video(1))
    second = storage.insert_detected_surface(make_surface("Shelf").with_video(1))

    assert (first.id, second.id) == (1, 2)
    assert [s.surface_type for s in storage.get_detected_surfaces(1)] == ["Desk", "Shelf"]

    storage.clear_detected_surfaces(1)
    assert storage.get_detected_surfaces(1) == []


def test_memory_storage_pending_videos() -> None:
    storage = InMemoryStorageAdapter([
        Video(id=1, external_id="a", user_id="u"),
        Video(id=2, external_id="b", user_id="u", status="Ready (2 Spots)"),
        Video(id=3, external_id="c", user_id="u"),
        Video(id=4, external_id="d", user_id="other"),
    ])

    assert [v.id for v in storage.get_pending_videos("u")] == [1, 3]
    assert [v.id for v in storage.get_pending_videos("u", limit=1)] == [1]


def test_memory_storage_returns_copies() -> None:
    storage = InMemoryStorageAdapter([Video(id=1, external_id="a")])
    storage.get_video_by_id(1).status = "tampered"
    assert storage.get_video_by_id(1).status == VideoStatus.PENDING_SCAN


def test_surface_row_round_trip() -> None:
    surface = DetectedSurface(
        video_id=5,
        timestamp=4.0,
        surface_type="Desk",
        confidence=0.8,
        bounding_box=BoundingBox(0.1, 0.2, 0.3, 0.4),
        is_inferred=True,
        scene_context="Workspace/Office",
        surroundings=["Laptop"],
    )
    row = surface.to_row()
    assert row["bounding_box_height"] == 0.4
    assert DetectedSurface.from_row(dict(row, id=11)) == surface.with_video(5, id=11)


def test_status_strings() -> None:
    assert VideoStatus.ready(0) == "Ready (0 Spots)"
    assert VideoStatus.is_ready("Ready (12 Spots)")
    assert not VideoStatus.is_ready(VideoStatus.SCANNING)


def test_mapping_resolver(tmp_path) -> None:
    resolver = MappingPathResolver({"abc": "uploads/abc.mp4"}, base_dir=str(tmp_path))

    assert resolver.resolve("abc") == str(tmp_path / "uploads" / "abc.mp4")
    assert resolver.resolve("missing") is None

    resolver.add("xyz", "/videos/xyz.mp4")
    assert resolver.resolve("xyz") == "/videos/xyz.mp4"
    assert len(resolver) == 2


def test_load_asset_map(tmp_path) -> None:
    path = tmp_path / "assets.json"
    path.write_text(json.dumps({"yt-1": "clips/one.mp4", "42": "/abs/two.mp4"}))

    resolver = load_asset_map(str(path))

    assert resolver.resolve("yt-1") == os.path.join(str(tmp_path), "clips", "one.mp4")
    assert resolver.resolve("42") == "/abs/two.mp4"


def test_load_asset_map_rejects_lists(tmp_path) -> None:
    path = tmp_path / "assets.json"
    path.write_text(json.dumps(["not", "a", "map"]))
    with pytest.raises(ValueError):
        load_asset_map(str(path))
