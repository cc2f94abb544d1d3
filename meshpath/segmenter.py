"""Region-growing segmentation of a surface mesh by cell-normal continuity."""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from itertools import chain
from typing import Iterable, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def are_normals_near(norm1: Sequence[float], norm2: Sequence[float], threshold: float) -> bool:
    """True when the angle between two unit normals is at most ``threshold`` radians."""
    val = float(norm1[0] * norm2[0] + norm1[1] * norm2[1] + norm1[2] * norm2[2])
    if val >= 1.0:
        return True
    if val < -1.0:
        return False
    return math.acos(val) <= threshold


def _unit_normal(vertices: np.ndarray, cell: tuple[int, ...]) -> np.ndarray:
    if len(cell) < 3:
        return np.zeros(3)
    p0, p1, p2 = (vertices[i] for i in cell[:3])
    normal = np.cross(p1 - p0, p2 - p0)
    length = float(np.linalg.norm(normal))
    return normal / length if length > 0 else np.zeros(3)


@dataclass
class SurfaceMesh:
    """Vertex positions, polygonal cells and optional per-cell normals."""

    vertices: np.ndarray
    cells: list[tuple[int, ...]]
    cell_normals: np.ndarray | None = None

    def __post_init__(self) -> None:
        vertices = np.asarray(self.vertices, dtype=float)
        if vertices.size == 0:
            vertices = vertices.reshape(0, 3)
        if vertices.ndim != 2 or vertices.shape[1] != 3:
            raise ValueError("vertices must have shape (N, 3)")
        cells = [tuple(int(i) for i in cell) for cell in self.cells]
        for cell in cells:
            if any(i < 0 or i >= len(vertices) for i in cell):
                raise ValueError(f"cell {cell} refers to a missing vertex")
        self.vertices = vertices
        self.cells = cells
        if self.cell_normals is not None:
            normals = np.asarray(self.cell_normals, dtype=float).reshape(-1, 3)
            if len(normals) != len(cells):
                raise ValueError("there must be one normal per cell")
            self.cell_normals = normals

    def subset(self, cell_ids: Iterable[int]) -> SurfaceMesh:
        """A new mesh holding only the given cells and the vertices they use."""
        ids = list(cell_ids)
        remap: dict[int, int] = {}
        cells = []
        for cell_id in ids:
            cells.append(tuple(remap.setdefault(v, len(remap)) for v in self.cells[cell_id]))
        vertices = self.vertices[np.array(list(remap), dtype=int)].reshape(-1, 3)
        normals = None
        if self.cell_normals is not None:
            normals = self.cell_normals[np.array(ids, dtype=int)].reshape(-1, 3)
        return SurfaceMesh(vertices, cells, normals)

    @classmethod
    def with_triangle_normals(cls, vertices, cells) -> SurfaceMesh:
        """Build a mesh whose cell normals follow the right-hand rule on each cell."""
        verts = np.asarray(vertices, dtype=float).reshape(-1, 3)
        cell_list = [tuple(int(i) for i in cell) for cell in cells]
        normals = np.array([_unit_normal(verts, cell) for cell in cell_list], dtype=float).reshape(-1, 3)
        return cls(verts, cell_list, normals)


class MeshSegmenter:
    """Splits a mesh into regions whose neighbouring cell normals stay close.

    ``max_cluster_size`` is kept for configuration but does not limit segments.
    """

    def __init__(
        self,
        min_cluster_size: int = 50,
        max_cluster_size: int = 1_000_000,
        curvature_threshold: float = 0.3,
    ) -> None:
        self.min_cluster_size = min_cluster_size
        self.max_cluster_size = max_cluster_size
        self.curvature_threshold = curvature_threshold
        self.input_mesh: SurfaceMesh | None = None
        self.segments: list[list[int]] = []
        self._point_cells: dict[int, list[int]] = {}

    def _require_mesh(self) -> SurfaceMesh:
        if self.input_mesh is None:
            raise RuntimeError("no input mesh has been set")
        return self.input_mesh

    def set_input_mesh(self, mesh: SurfaceMesh) -> None:
        """Set the mesh to segment and index which cells use each vertex."""
        self.input_mesh = mesh
        self.segments = []
        point_cells: dict[int, list[int]] = {}
        for cell_id, cell in enumerate(mesh.cells):
            for v in dict.fromkeys(cell):
                point_cells.setdefault(v, []).append(cell_id)
        self._point_cells = point_cells

    def neighbor_cells(self, cell_id: int) -> list[int]:
        """Cells sharing an edge (two consecutive vertices) with the given cell."""
        cell = self._require_mesh().cells[cell_id]
        neighbors: list[int] = []
        for a, b in zip(cell, cell[1:] + cell[:1]):
            shared = set(self._point_cells.get(b, ()))
            neighbors.extend(c for c in self._point_cells.get(a, ()) if c != cell_id and c in shared)
        return neighbors

    def segment_from(self, start_cell: int) -> list[int]:
        """Grow a region from ``start_cell``; returns the cell ids in visit order."""
        mesh = self._require_mesh()
        if not 0 <= start_cell < len(mesh.cells):
            raise IndexError(f"cell {start_cell} is out of range")
        normals = mesh.cell_normals
        if normals is None:
            return []

        pending = deque([start_cell])
        queued = {start_cell}
        used: list[int] = []
        used_set: set[int] = set()
        while pending:
            current = pending[0]
            current_normal = normals[current]
            for neighbor in self.neighbor_cells(current):
                if neighbor in queued or neighbor in used_set:
                    continue
                if are_normals_near(current_normal, normals[neighbor], self.curvature_threshold):
                    pending.append(neighbor)
                    queued.add(neighbor)
            pending.popleft()
            queued.discard(current)
            used.append(current)
            used_set.add(current)
        return used

    def segment(self) -> list[list[int]]:
        """Segment the whole mesh.

        Returns the cell-id lists of each segment; the last list holds the edge
        cells that fell into no segment.
        """
        mesh = self._require_mesh()
        size = len(mesh.cells)
        used: set[int] = set()
        self.segments = []
        for i in range(size):
            if i in used:
                continue
            linked = self.segment_from(i)
            if len(linked) > self.min_cluster_size:
                self.segments.append(linked)
                used.update(linked)

        included = set(chain.from_iterable(self.segments))
        edge_cells = [i for i in range(size) if i not in included]
        self.segments.append(edge_cells)

        logger.info("Found %d segments", len(self.segments))
        logger.info("Total mesh size: %d", size)
        logger.info("Used cells size: %d", len(used))
        logger.info("Edge cells size: %d", len(edge_cells))
        return [list(segment) for segment in self.segments]

    def mesh_segments(self) -> list[SurfaceMesh]:
        """The segmented meshes; segments with at most one cell are left out."""
        mesh = self._require_mesh()
        meshes = []
        for index, cell_ids in enumerate(self.segments):
            logger.info("Segment %d size: %d", index, len(cell_ids))
            part = mesh.subset(cell_ids)
            if len(part.cells) <= 1:
                logger.warning("NOT ENOUGH CELLS FOR SEGMENTATION")
                continue
            meshes.append(part)
        return meshes