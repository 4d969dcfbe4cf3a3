import os
import glob
import shutil
import logging
import subprocess
from typing import List, Optional

import ffmpeg

from .util import ensure_dir, format_timestamp

logger = logging.getLogger("surface_scanner")

FRAME_PATTERN = "frame_%04d.jpg"


class ExtractionError(Exception):
    """Frame extraction failed"""


class SourceNotFoundError(ExtractionError):
    """The source video does not exist on disk"""


class ExtractionTimeoutError(ExtractionError):
    """The decoder ran past its deadline and was killed"""


class DecoderExitError(ExtractionError):
    """The decoder exited with a non-zero status"""

    def __init__(self, returncode: int, stderr_tail: str = ""):
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        super().__init__(f"FFmpeg exited with code {returncode}")


def build_extraction_stream(
    video_path: str,
    output_dir: str,
    interval_seconds: float,
    max_frames: int,
    max_dimension: int,
    qscale: int,
):
    """
    Build the ffmpeg invocation emitting one frame every interval_seconds,
    scaled down to fit max_dimension and capped at max_frames.
    """
    output_pattern = os.path.join(output_dir, FRAME_PATTERN)
    return (
        ffmpeg
        .input(video_path)
        .filter('fps', fps=f"1/{interval_seconds:g}")
        .filter(
            'scale',
            f"min({max_dimension},iw)",
            f"min({max_dimension},ih)",
            force_original_aspect_ratio='decrease',
        )
        .output(output_pattern, vframes=max_frames, **{'q:v': qscale})
        .overwrite_output()
    )


def extract_frames(
    video_path: str,
    output_dir: str,
    interval_seconds: float,
    max_frames: int,
    max_dimension: int,
    qscale: int = 5,
    timeout_sec: float = 60.0,
) -> List[str]:
    """
    Extract evenly spaced still frames from a video.

    The caller owns the returned files and is responsible for deleting them.

    Returns:
        Frame paths sorted in capture order

    Raises:
        SourceNotFoundError: video_path does not exist
        ExtractionTimeoutError: decoder exceeded timeout_sec (process is killed)
        DecoderExitError: decoder exited non-zero
    """
    abs_video_path = os.path.abspath(video_path)
    abs_output_dir = os.path.abspath(output_dir)

    if not os.path.exists(abs_video_path):
        raise SourceNotFoundError(f"Video file not found: {abs_video_path}")

    ensure_dir(abs_output_dir)

    stream = build_extraction_stream(
        abs_video_path, abs_output_dir, interval_seconds, max_frames, max_dimension, qscale
    )
    logger.debug(f"FFmpeg command: {' '.join(stream.compile())}")

    process = stream.run_async(pipe_stdout=True, pipe_stderr=True)
    try:
        _, stderr = process.communicate(timeout=timeout_sec)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise ExtractionTimeoutError(f"FFmpeg timed out after {timeout_sec:g}s")

    if process.returncode != 0:
        stderr_tail = (stderr or b"").decode(errors="replace")[-500:]
        logger.error(f"FFmpeg stderr: {stderr_tail}")
        raise DecoderExitError(process.returncode, stderr_tail)

    return list_frames(abs_output_dir)


def list_frames(output_dir: str) -> List[str]:
    """Extracted frame files in capture order"""
    return sorted(glob.glob(os.path.join(output_dir, "frame_*.jpg")))


def save_frame_snapshot(
    frame_path: str,
    snapshot_dir: str,
    video_id: int,
    timestamp: float,
    url_prefix: str,
) -> Optional[str]:
    """
    Copy a frame to permanent storage before the scratch copy is deleted.

    Returns:
        Public URL of the copy, or None if the copy failed
    """
    filename = f"frame_{format_timestamp(timestamp)}s.jpg"
    target_dir = os.path.join(snapshot_dir, str(video_id))
    try:
        ensure_dir(target_dir)
        shutil.copyfile(frame_path, os.path.join(target_dir, filename))
    except OSError as e:
        logger.error(f"Failed to save frame snapshot for video {video_id} at {timestamp}s: {e}")
        return None
    return f"{url_prefix.rstrip('/')}/{video_id}/{filename}"
