"""Tool path summaries, plane-slicer settings and marker sets for displaying paths."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Iterable, Iterator

from meshpath.conversions import arrow_markers, axis_markers, dotted_line_markers
from meshpath.messages import Marker, ToolPaths

logger = logging.getLogger(__name__)

DEFAULT_FRAME_ID = "world"
EDGE_PATH_NS = "edge_"
RASTER_PATH_NS = "raster_"
INPUT_MESH_NS = "input_mesh"
RAW_MESH_RGBA = (0.6, 0.6, 1.0, 1.0)
MAX_MARKERS_ON_DISPLAY = 500


def count_path_points(tool_paths: ToolPaths) -> int:
    """Total number of poses over every segment of every path."""
    return sum(len(segment) for path in tool_paths.paths for segment in path.segments)


@dataclass
class PlaneSlicerConfig:
    """Plane-slicer rastering settings; ``None`` leaves the generator's default in place."""

    raster_spacing: float | None = None
    point_spacing: float | None = None
    raster_rot_offset: float | None = None
    min_hole_size: float | None = None
    min_segment_size: float | None = None
    search_radius: float | None = None

    @classmethod
    def from_mapping(cls, cfg: Mapping) -> PlaneSlicerConfig:
        """Read the settings from a mapping, in field order.

        Reading stops at the first missing or non-numeric entry; that entry and
        the ones after it keep their defaults.
        """
        if not isinstance(cfg, Mapping):
            raise TypeError("plane slicer configuration must be a mapping")
        names = [f.name for f in fields(cls)]
        if not all(name in cfg for name in names):
            logger.error("Failed to find one or more members")

        config = cls()
        for name in names:
            value = cfg.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.error("Plane slicer member %r is missing or not a number", name)
                break
            setattr(config, name, float(value))
        return config


@dataclass
class MarkerBuffer:
    """Accumulates markers, emptying itself when it has grown past ``max_markers``.

    The size is checked before new markers are added, so the buffer may hold
    more than ``max_markers`` after an extension. ``None`` disables the limit.
    """

    max_markers: int | None = MAX_MARKERS_ON_DISPLAY
    markers: list[Marker] = field(default_factory=list)

    def extend(self, markers: Iterable[Marker]) -> None:
        if self.max_markers is not None and len(self.markers) > self.max_markers:
            self.markers.clear()
        self.markers.extend(markers)

    def __len__(self) -> int:
        return len(self.markers)

    def __iter__(self) -> Iterator[Marker]:
        return iter(self.markers)


class LineStyle(str, Enum):
    """How the course of a path is drawn."""

    DOTTED = "dotted"
    ARROWS = "arrows"


@dataclass
class PathMarkerSet:
    """Markers for one surface's tool paths."""

    ns: str
    point_count: int
    axes: list[Marker]
    lines: list[Marker]


def path_markers(
    tool_paths_list: Iterable[ToolPaths],
    frame_id: str = DEFAULT_FRAME_ID,
    prefix: str = EDGE_PATH_NS,
    style: LineStyle | str = LineStyle.DOTTED,
) -> list[PathMarkerSet]:
    """Axis and line markers for each surface's tool paths, namespaced ``prefix + index``."""
    line_style = LineStyle(style)
    result = []
    for index, tool_paths in enumerate(tool_paths_list):
        points = count_path_points(tool_paths)
        logger.info("Path %d contains %d points", index, points)
        ns = f"{prefix}{index}"
        axes = axis_markers(tool_paths, frame_id, ns)
        if line_style is LineStyle.ARROWS:
            lines = arrow_markers(tool_paths, frame_id, ns)
        else:
            lines = dotted_line_markers(tool_paths, frame_id, ns)
        result.append(PathMarkerSet(ns, points, axes, lines))
    return result