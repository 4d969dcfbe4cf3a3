"""
Scan pipeline stages: disk guard, frame extraction, orientation,
contextual inference and fallback synthesis.
"""
