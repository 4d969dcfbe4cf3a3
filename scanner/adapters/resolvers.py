import os
import json
import logging
import threading
from typing import Dict, Optional

from .base import PathResolver
from ..pipeline.util import resolve_under

logger = logging.getLogger("surface_scanner")


class MappingPathResolver(PathResolver):
    """Resolves external ids through an id -> path table, relative paths under base_dir"""

    def __init__(self, mapping: Optional[Dict[str, str]] = None, base_dir: str = "."):
        self._mapping = dict(mapping or {})
        self._lock = threading.Lock()
        self.base_dir = base_dir

    def add(self, external_id: str, path: str) -> None:
        """Register a freshly uploaded file"""
        with self._lock:
            self._mapping[str(external_id)] = path

    def resolve(self, external_id: str) -> Optional[str]:
        with self._lock:
            stored = self._mapping.get(str(external_id))
        return resolve_under(self.base_dir, stored)

    def __len__(self):
        with self._lock:
            return len(self._mapping)


def load_asset_map(json_path: str, base_dir: Optional[str] = None) -> MappingPathResolver:
    """
    Build a resolver from a JSON object of external id -> file path.

    Relative paths are resolved against base_dir, or the map file's own
    directory when base_dir is not given.

    Raises:
        ValueError: the file does not hold a JSON object
    """
    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Asset map {json_path} must be a JSON object")

    mapping = {str(key): str(value) for key, value in data.items()}
    base = base_dir or os.path.dirname(os.path.abspath(json_path))
    logger.info(f"Loaded {len(mapping)} asset paths from {json_path}")
    return MappingPathResolver(mapping, base)
