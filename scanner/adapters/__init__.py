"""
Adapter implementations for storage backends and source path resolution.

This module provides the abstract storage gateway and path resolver plus
concrete Postgres and in-memory storage.
"""

from .base import StorageAdapter, PathResolver
from .memory_adapter import InMemoryStorageAdapter
from .resolvers import MappingPathResolver, load_asset_map

__all__ = [
    'StorageAdapter',
    'PathResolver',
    'InMemoryStorageAdapter',
    'MappingPathResolver',
    'load_asset_map',
]
