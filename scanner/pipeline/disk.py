import shutil
import logging
import tempfile
from typing import Callable, Optional

logger = logging.getLogger("surface_scanner")

# Assumed free space when the probe itself fails
DEFAULT_AVAILABLE_MB = 1000


class InsufficientDiskSpaceError(Exception):
    """Raised before extraction when the scratch volume is too full"""

    def __init__(self, available_mb: int, required_mb: int):
        self.available_mb = available_mb
        self.required_mb = required_mb
        super().__init__(
            f"Insufficient disk space: {available_mb}MB available, {required_mb}MB required"
        )


def get_available_disk_space_mb(path: Optional[str] = None) -> int:
    """Free space on the scratch volume in MB (best effort)"""
    probe_path = path or tempfile.gettempdir()
    try:
        free_bytes = shutil.disk_usage(probe_path).free
        return int(free_bytes // (1024 * 1024))
    except OSError as e:
        logger.warning(f"Disk space probe failed for {probe_path}: {e}; assuming {DEFAULT_AVAILABLE_MB}MB")
        return DEFAULT_AVAILABLE_MB


def ensure_disk_space(
    min_mb: int,
    path: Optional[str] = None,
    probe: Callable[[Optional[str]], int] = get_available_disk_space_mb,
) -> int:
    """
    Refuse to continue when the scratch volume has less than min_mb free.

    Returns:
        Available MB

    Raises:
        InsufficientDiskSpaceError
    """
    available_mb = probe(path)
    if available_mb < min_mb:
        raise InsufficientDiskSpaceError(available_mb, min_mb)
    return available_mb
