"""Geometry, mesh, tool path and visualization message types."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, Iterator

import numpy as np


@dataclass(frozen=True)
class Point:
    """A position in 3D space."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        return iter((self.x, self.y, self.z))


@dataclass(frozen=True)
class Vector3:
    """A 3D vector, used for marker scales."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        return iter((self.x, self.y, self.z))


@dataclass(frozen=True)
class Quaternion:
    """An orientation as a quaternion; the default is the identity."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    def __iter__(self) -> Iterator[float]:
        return iter((self.x, self.y, self.z, self.w))


def _rotation_matrix(q: Quaternion) -> np.ndarray:
    x, y, z, w = q
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ],
        dtype=float,
    )


def _quaternion_from_matrix(m: np.ndarray) -> Quaternion:
    trace = float(m[0, 0] + m[1, 1] + m[2, 2])
    if trace > 0:
        t = math.sqrt(trace + 1.0)
        w = 0.5 * t
        t = 0.5 / t
        return Quaternion(
            float((m[2, 1] - m[1, 2]) * t),
            float((m[0, 2] - m[2, 0]) * t),
            float((m[1, 0] - m[0, 1]) * t),
            w,
        )
    i = 0
    if m[1, 1] > m[0, 0]:
        i = 1
    if m[2, 2] > m[i, i]:
        i = 2
    j = (i + 1) % 3
    k = (j + 1) % 3
    t = math.sqrt(float(m[i, i] - m[j, j] - m[k, k]) + 1.0)
    q = [0.0, 0.0, 0.0]
    q[i] = 0.5 * t
    t = 0.5 / t
    w = float((m[k, j] - m[j, k]) * t)
    q[j] = float((m[j, i] + m[i, j]) * t)
    q[k] = float((m[k, i] + m[i, k]) * t)
    return Quaternion(q[0], q[1], q[2], w)


def _axis_rotation(axis: int, angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    j, k = (axis + 1) % 3, (axis + 2) % 3
    m = np.eye(3)
    m[j, j] = c
    m[j, k] = -s
    m[k, j] = s
    m[k, k] = c
    return m


@dataclass(frozen=True)
class Pose:
    """A position together with an orientation."""

    position: Point = field(default_factory=Point)
    orientation: Quaternion = field(default_factory=Quaternion)

    def transform_point(self, point: Iterable[float]) -> Point:
        """Map a point given in this pose's frame into the parent frame."""
        x, y, z = point
        rotated = _rotation_matrix(self.orientation) @ np.array([x, y, z], dtype=float)
        moved = rotated + np.array(tuple(self.position), dtype=float)
        return Point(float(moved[0]), float(moved[1]), float(moved[2]))

    @classmethod
    def from_xyzrpy(cls, x: float, y: float, z: float, rx: float, ry: float, rz: float) -> Pose:
        """Translation followed by rotations about X, then Y, then Z (intrinsic)."""
        matrix = _axis_rotation(0, rx) @ _axis_rotation(1, ry) @ _axis_rotation(2, rz)
        return cls(Point(float(x), float(y), float(z)), _quaternion_from_matrix(matrix))


@dataclass
class Mesh:
    """A triangle mesh: vertex positions and vertex-index triples."""

    vertices: list[Point] = field(default_factory=list)
    triangles: list[tuple[int, int, int]] = field(default_factory=list)


@dataclass
class ToolPath:
    """A tool path made of segments, each a sequence of poses."""

    segments: list[list[Pose]] = field(default_factory=list)


@dataclass
class ToolPaths:
    """A set of tool paths for one surface."""

    paths: list[ToolPath] = field(default_factory=list)


@dataclass(frozen=True)
class Color:
    """An RGBA colour with components in [0, 1]."""

    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 0.0


class MarkerType(IntEnum):
    ARROW = 0
    CUBE = 1
    SPHERE = 2
    CYLINDER = 3
    LINE_STRIP = 4
    LINE_LIST = 5
    CUBE_LIST = 6
    SPHERE_LIST = 7
    POINTS = 8
    TEXT_VIEW_FACING = 9
    MESH_RESOURCE = 10
    TRIANGLE_LIST = 11


class MarkerAction(IntEnum):
    ADD = 0
    DELETE = 2
    DELETEALL = 3


@dataclass
class Marker:
    """A visualization marker."""

    ns: str = ""
    id: int = 0
    type: MarkerType = MarkerType.ARROW
    action: MarkerAction = MarkerAction.ADD
    frame_id: str = ""
    pose: Pose = field(default_factory=Pose)
    scale: Vector3 = field(default_factory=Vector3)
    color: Color = field(default_factory=Color)
    lifetime: float = 0.0
    points: list[Point] = field(default_factory=list)
    mesh_resource: str = ""