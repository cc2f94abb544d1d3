"""Conversions between mesh representations, PLY files and visualization markers."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterator, Sequence

import numpy as np

from meshpath.messages import (
    Color,
    Marker,
    MarkerAction,
    MarkerType,
    Mesh,
    Point,
    Pose,
    ToolPaths,
    Vector3,
)
from meshpath.ply import PathType, PolygonMesh, read_ply, write_ply

logger = logging.getLogger(__name__)

_NO_OFFSET = (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
_PATH_COLOR = Color(1.0, 1.0, 0.2, 1.0)
_POINT_COLOR = Color(0.1, 0.8, 0.2, 1.0)


class ConversionError(ValueError):
    """Raised when a mesh or tool path cannot be converted."""


def to_polygon_mesh(mesh_msg: Mesh) -> PolygonMesh:
    """Convert a triangle mesh message into a polygon mesh."""
    points = [tuple(v) for v in mesh_msg.vertices]
    return PolygonMesh(points, [tuple(t) for t in mesh_msg.triangles])


def to_mesh_msg(mesh: PolygonMesh) -> Mesh:
    """Convert a polygon mesh of triangles into a mesh message."""
    if not mesh.polygons:
        raise ConversionError("PolygonMesh has no polygons")
    points = np.asarray(mesh.points, dtype=np.float32).reshape(-1, 3)
    if len(points) == 0:
        raise ConversionError("PolygonMesh has no vertices data")
    triangles = []
    for polygon in mesh.polygons:
        if len(polygon) != 3:
            raise ConversionError("Vertex in PolygonMesh needs to have 3 elements only")
        triangles.append((int(polygon[0]), int(polygon[1]), int(polygon[2])))
    vertices = [Point(float(x), float(y), float(z)) for x, y, z in points]
    return Mesh(vertices, triangles)


def save_ply_file(filename: PathType, mesh_msg: Mesh, precision: int = 10, binary: bool = True) -> None:
    """Save a mesh message as a PLY file."""
    write_ply(filename, to_polygon_mesh(mesh_msg), precision, binary)


def load_ply_file(filename: PathType) -> Mesh:
    """Load a triangle mesh message from a PLY file."""
    return to_mesh_msg(read_ply(filename))


def create_mesh_marker(mesh_file: str, ns: str, frame_id: str, rgba: Sequence[float]) -> Marker:
    """Build a marker that displays a mesh file."""
    return Marker(
        ns=ns,
        id=0,
        type=MarkerType.MESH_RESOURCE,
        action=MarkerAction.ADD,
        frame_id=frame_id,
        scale=Vector3(1.0, 1.0, 1.0),
        color=Color(*rgba),
        lifetime=0.0,
        mesh_resource="file://" + str(mesh_file),
    )


def _normalized(v: np.ndarray) -> np.ndarray:
    squared = float(v @ v)
    return v / np.float32(math.sqrt(squared)) if squared > 0 else v


def point_normals(
    mesh: PolygonMesh, flip: bool = False, silent: bool = True
) -> tuple[np.ndarray, np.ndarray]:
    """Return the mesh points and per-vertex normals taken from the faces.

    A vertex takes the normal of the last well-formed face that uses it; vertices
    without one keep a zero normal.
    """
    points = np.array(mesh.points, dtype=np.float32).reshape(-1, 3)
    normals = np.zeros_like(points)
    ill_formed = 0
    with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
        for index, polygon in enumerate(mesh.polygons):
            if len(polygon) < 3:
                raise ConversionError(f"polygon {index} has fewer than 3 vertices")
            a, b, c = (points[v] for v in polygon[:3])
            direction = _normalized(np.cross(_normalized(b - a), _normalized(c - a)))
            if flip:
                direction = -direction
            norm = float(np.linalg.norm(direction))
            if not math.isfinite(norm):
                if not silent:
                    logger.warning(
                        "The normal for polygon %d (%d, %d, %d) is ill formed: p1 %s p2 %s p3 %s",
                        index, polygon[0], polygon[1], polygon[2], a, b, c,
                    )
                ill_formed += 1
                continue
            for v in polygon:
                normals[v] = direction
    if ill_formed:
        logger.warning("Found %d ill formed polygons while converting to point normals", ill_formed)
    return points, normals


def _segments(toolpaths: ToolPaths) -> Iterator[list[Pose]]:
    for path in toolpaths.paths:
        yield from path.segments


def axis_markers(
    toolpaths: ToolPaths,
    frame_id: str,
    ns: str,
    start_id: int = 1,
    axis_scale: float = 0.001,
    axis_length: float = 0.03,
    offset: Sequence[float] = _NO_OFFSET,
) -> list[Marker]:
    """Three line-list markers drawing the X, Y and Z axes of every pose."""
    offset_pose = Pose.from_xyzrpy(*offset)

    def line_marker(marker_id: int, rgba: tuple[float, float, float, float]) -> Marker:
        return Marker(
            ns=ns,
            id=marker_id,
            type=MarkerType.LINE_LIST,
            action=MarkerAction.ADD,
            frame_id=frame_id,
            pose=offset_pose,
            scale=Vector3(axis_scale, 0.0, 0.0),
            color=Color(*rgba),
            lifetime=0.0,
        )

    axes = [
        (line_marker(start_id + 1, (1.0, 0.0, 0.0, 1.0)), (axis_length, 0.0, 0.0)),
        (line_marker(start_id + 2, (0.0, 1.0, 0.0, 1.0)), (0.0, axis_length, 0.0)),
        (line_marker(start_id + 3, (0.0, 0.0, 1.0, 1.0)), (0.0, 0.0, axis_length)),
    ]
    for segment in _segments(toolpaths):
        for pose in segment:
            for marker, direction in axes:
                marker.points.append(pose.position)
                marker.points.append(pose.transform_point(direction))
    return [marker for marker, _ in axes]


def arrow_markers(
    toolpaths: ToolPaths,
    frame_id: str,
    ns: str,
    start_id: int = 1,
    arrow_diameter: float = 0.002,
    point_size: float = 0.01,
    offset: Sequence[float] = _NO_OFFSET,
) -> list[Marker]:
    """Arrows between consecutive poses, plus a points marker for each segment's ends."""
    offset_pose = Pose.from_xyzrpy(*offset)
    arrow = Marker(
        ns=ns,
        id=start_id,
        type=MarkerType.ARROW,
        action=MarkerAction.ADD,
        frame_id=frame_id,
        scale=Vector3(arrow_diameter, 4.0 * arrow_diameter, 4.0 * arrow_diameter),
        color=_PATH_COLOR,
        lifetime=0.0,
    )
    ends = replace(
        arrow,
        type=MarkerType.POINTS,
        pose=offset_pose,
        color=_POINT_COLOR,
        scale=Vector3(point_size, point_size, point_size),
        points=[],
    )

    markers: list[Marker] = []
    counter = start_id
    for segment in _segments(toolpaths):
        if not segment:
            raise ConversionError("tool path segment has no poses")
        for previous, current in zip(segment, segment[1:]):
            counter += 1
            markers.append(
                replace(
                    arrow,
                    id=counter,
                    points=[
                        offset_pose.transform_point(previous.position),
                        offset_pose.transform_point(current.position),
                    ],
                )
            )
        counter += 1
        markers.append(replace(ends, id=counter, points=[segment[0].position, segment[-1].position]))
    return markers


def dotted_line_markers(
    toolpaths: ToolPaths,
    frame_id: str,
    ns: str,
    start_id: int = 1,
    offset: Sequence[float] = _NO_OFFSET,
    line_width: float = 0.001,
    point_size: float = 0.005,
) -> list[Marker]:
    """A line strip and a points marker through the poses of each segment."""
    offset_pose = Pose.from_xyzrpy(*offset)
    line = Marker(
        ns=ns,
        id=start_id,
        type=MarkerType.LINE_STRIP,
        action=MarkerAction.ADD,
        frame_id=frame_id,
        pose=offset_pose,
        scale=Vector3(line_width, 0.0, 0.0),
        color=_PATH_COLOR,
        lifetime=0.0,
    )
    dots = replace(
        line,
        type=MarkerType.POINTS,
        color=_POINT_COLOR,
        scale=Vector3(point_size, point_size, point_size),
        points=[],
    )

    markers: list[Marker] = []
    counter = start_id
    for segment in _segments(toolpaths):
        positions = [pose.position for pose in segment]
        markers.append(replace(line, id=counter + 1, points=list(positions)))
        markers.append(replace(dots, id=counter + 2, points=list(positions)))
        counter += 2
    return markers