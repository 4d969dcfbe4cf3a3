"""
Surface scanner.

Locates placement-friendly surfaces (desks, tables, shelves, walls) in videos
by extracting frames, running a pluggable frame detector over them and
persisting the results through a storage gateway.
"""

__version__ = "0.1.0"
