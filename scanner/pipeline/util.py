import os
import shutil
import logging
import time
from typing import Optional

logger = logging.getLogger("surface_scanner")


def scratch_dir_for(scratch_root: str, video_id: int, label: str = "scan") -> str:
    """Private per-job scratch directory path, namespaced by video id and start time"""
    stamp = int(time.time() * 1000)
    return os.path.join(scratch_root, f"{label}-{video_id}-{stamp}-{os.getpid()}")


def safe_unlink(file_path: str) -> bool:
    """Delete a file if present. Returns True when nothing is left behind."""
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.debug(f"Deleted: {file_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to delete {file_path}: {e}")
        return False


def safe_rmtree(dir_path: str) -> bool:
    """Remove a directory tree if present. Returns True when nothing is left behind."""
    try:
        if os.path.exists(dir_path):
            shutil.rmtree(dir_path)
            logger.debug(f"Removed directory: {dir_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to remove directory {dir_path}: {e}")
        return False


def ensure_dir(path: str):
    """Ensure directory exists"""
    os.makedirs(path, exist_ok=True)


def format_timestamp(seconds: float) -> str:
    """Render a frame offset for file names: 4.0 -> '4', 2.5 -> '2.5'"""
    if float(seconds).is_integer():
        return str(int(seconds))
    return f"{seconds:g}"


def resolve_under(base_dir: str, stored_path: Optional[str]) -> Optional[str]:
    """Resolve a stored path to an absolute path, relative ones under base_dir"""
    if not stored_path:
        return None
    if os.path.isabs(stored_path):
        return stored_path
    return os.path.abspath(os.path.join(base_dir, stored_path))
