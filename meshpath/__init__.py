"""Surface mesh segmentation, convex hulls, PLY and STL handling, and tool path markers."""

__version__ = "0.1.0"

__all__ = [
    "messages",
    "ply",
    "conversions",
    "segmenter",
    "convex_hull",
    "paths",
    "segmentation",
    "segment_cli",
]