"""Frames, map points, the map, a bag-of-words keyframe database, culling rules and loop detection for feature-based visual SLAM."""

__version__ = "0.1.0"

__all__ = [
    "frame",
    "map",
    "geometry",
    "mappoint",
    "keyframe_database",
    "culling",
    "loop_consistency",
    "loop_closing",
]