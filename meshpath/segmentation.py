"""Surface segmentation pipeline: normals, cleaning, optional smoothing, then segmentation."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, replace
from itertools import chain

import numpy as np
from scipy import sparse

from meshpath.conversions import to_polygon_mesh
from meshpath.messages import Mesh
from meshpath.ply import PolygonMesh
from meshpath.segmenter import MeshSegmenter, SurfaceMesh

logger = logging.getLogger(__name__)

_UNSET = 0.0001


@dataclass
class SegmentationConfig:
    """Segmentation settings; zero (or tiny) values fall back to defaults.

    ``neighborhood_radius`` only concerns point normals and does not affect
    the cell normals used for segmentation.
    """

    curvature_threshold: float = 0.0
    min_cluster_size: int = 0
    max_cluster_size: int = 0
    neighborhood_radius: float = 0.0
    use_mesh_normals: bool = False

    def resolved(self) -> SegmentationConfig:
        """A copy with unset values replaced by their defaults."""
        return replace(
            self,
            curvature_threshold=0.05 if self.curvature_threshold < _UNSET else self.curvature_threshold,
            min_cluster_size=500 if self.min_cluster_size == 0 else self.min_cluster_size,
            max_cluster_size=1000000 if self.max_cluster_size == 0 else self.max_cluster_size,
            neighborhood_radius=0.05 if self.neighborhood_radius < _UNSET else self.neighborhood_radius,
        )


@dataclass(frozen=True)
class SmoothingParameters:
    """Fully resolved smoothing settings."""

    enable_filtering: bool
    windowed_sinc_iterations: int
    windowed_sinc_pass_band: float
    windowed_sinc_feature_angle: float
    windowed_sinc_edge_angle: float
    windowed_sinc_edge_smoothing: bool
    windowed_sinc_boundary_smoothing: bool
    windowed_sinc_nonmanifold_smoothing: bool
    windowed_sinc_normalize_coordinates: bool
    laplacian_iterations: int
    laplacian_relaxation_factor: float
    laplacian_edge_angle: float
    laplacian_edge_smoothing: bool
    laplacian_boundary_smoothing: bool


@dataclass
class FilteringConfig:
    """Mesh smoothing settings; zero (or tiny) values fall back to defaults."""

    enable_filtering: bool = False
    windowed_sinc_iterations: int = 0
    windowed_sinc_pass_band: float = 0.0
    windowed_sinc_edge_angle: float = 0.0
    windowed_sinc_edge_smoothing: bool = False
    windowed_sinc_boundary_smoothing: bool = False
    windowed_sinc_nonmanifold_smoothing: bool = False
    windowed_sinc_normalize_coordinates: bool = False
    laplacian_iterations: int = 0
    laplacian_relaxation_factor: float = 0.0
    laplacian_edge_angle: float = 0.0
    laplacian_edge_smoothing: bool = False
    laplacian_boundary_smoothing: bool = False

    def resolved(self) -> SmoothingParameters:
        """Settings with defaults filled in.

        The windowed-sinc feature angle is taken from the windowed-sinc edge
        angle, defaulting to 45 degrees where that is unset.
        """
        edge = self.windowed_sinc_edge_angle
        return SmoothingParameters(
            enable_filtering=self.enable_filtering,
            windowed_sinc_iterations=20 if self.windowed_sinc_iterations == 0 else self.windowed_sinc_iterations,
            windowed_sinc_pass_band=0.1 if self.windowed_sinc_pass_band < _UNSET else self.windowed_sinc_pass_band,
            windowed_sinc_feature_angle=45.0 if edge < _UNSET else edge,
            windowed_sinc_edge_angle=15.0 if edge < _UNSET else edge,
            windowed_sinc_edge_smoothing=self.windowed_sinc_edge_smoothing,
            windowed_sinc_boundary_smoothing=self.windowed_sinc_boundary_smoothing,
            windowed_sinc_nonmanifold_smoothing=self.windowed_sinc_nonmanifold_smoothing,
            windowed_sinc_normalize_coordinates=self.windowed_sinc_normalize_coordinates,
            laplacian_iterations=10 if self.laplacian_iterations == 0 else self.laplacian_iterations,
            laplacian_relaxation_factor=(
                0.1 if self.laplacian_relaxation_factor < _UNSET else self.laplacian_relaxation_factor
            ),
            laplacian_edge_angle=15.0 if self.laplacian_edge_angle < _UNSET else self.laplacian_edge_angle,
            laplacian_edge_smoothing=self.laplacian_edge_smoothing,
            laplacian_boundary_smoothing=self.laplacian_boundary_smoothing,
        )


@dataclass(frozen=True)
class _EdgeRules:
    feature_edge_smoothing: bool
    feature_angle: float
    edge_angle: float
    boundary_smoothing: bool
    nonmanifold_smoothing: bool


def _directed_edges(cell: tuple[int, ...]):
    return zip(cell, cell[1:] + cell[:1])


def _edge_users(cells: list[tuple[int, ...]]) -> dict[tuple[int, int], list[int]]:
    users: dict[tuple[int, int], list[int]] = {}
    for cell_id, cell in enumerate(cells):
        for a, b in _directed_edges(cell):
            if a != b:
                users.setdefault((min(a, b), max(a, b)), []).append(cell_id)
    return users


def _cell_normal(points: np.ndarray, cell: tuple[int, ...]) -> np.ndarray:
    p0, p1, p2 = (points[i] for i in cell[:3])
    normal = np.cross(p1 - p0, p2 - p0)
    length = float(np.linalg.norm(normal))
    return normal / length if length > 0 else np.zeros(3)


def _consistent_normals(vertices: np.ndarray, cells: list[tuple[int, ...]]) -> SurfaceMesh:
    """Orient cells consistently across shared edges, then attach their normals."""
    users = _edge_users(cells)
    oriented: list[tuple[int, ...] | None] = [None] * len(cells)
    for seed, cell in enumerate(cells):
        if oriented[seed] is not None:
            continue
        oriented[seed] = cell
        queue = deque([seed])
        while queue:
            current = oriented[queue.popleft()]
            for a, b in _directed_edges(current):
                for neighbor in users.get((min(a, b), max(a, b)), ()):
                    if oriented[neighbor] is not None:
                        continue
                    candidate = cells[neighbor]
                    if (a, b) in set(_directed_edges(candidate)):
                        candidate = tuple(reversed(candidate))
                    oriented[neighbor] = candidate
                    queue.append(neighbor)
    # queue holds cell ids; the loop above reads the oriented cell for each
    return SurfaceMesh.with_triangle_normals(vertices, oriented)


def _clean(mesh: SurfaceMesh) -> SurfaceMesh:
    """Merge coincident points, drop degenerate cells and unused points."""
    points = mesh.vertices
    if len(points) == 0:
        return SurfaceMesh(points, [], None if mesh.cell_normals is None else np.zeros((0, 3)))
    _, first, inverse = np.unique(points, axis=0, return_index=True, return_inverse=True)
    inverse = np.asarray(inverse).reshape(-1)
    order = np.argsort(first)
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    merged = rank[inverse]
    unique_points = points[first[order]]

    kept_cells: list[tuple[int, ...]] = []
    kept_ids: list[int] = []
    for cell_id, cell in enumerate(mesh.cells):
        collapsed: list[int] = []
        for v in cell:
            m = int(merged[v])
            if not collapsed or collapsed[-1] != m:
                collapsed.append(m)
        while len(collapsed) > 1 and collapsed[0] == collapsed[-1]:
            collapsed.pop()
        if len(collapsed) >= 3:
            kept_cells.append(tuple(collapsed))
            kept_ids.append(cell_id)

    used = sorted(set(chain.from_iterable(kept_cells)))
    remap = {old: new for new, old in enumerate(used)}
    vertices = unique_points[np.array(used, dtype=int)].reshape(-1, 3)
    cells = [tuple(remap[v] for v in cell) for cell in kept_cells]
    normals = None
    if mesh.cell_normals is not None:
        normals = mesh.cell_normals[np.array(kept_ids, dtype=int)].reshape(-1, 3)
    return SurfaceMesh(vertices, cells, normals)


def _smoothing_operator(points: np.ndarray, cells: list[tuple[int, ...]], rules: _EdgeRules):
    """Sparse operator giving, per vertex, the mean of its smoothing neighbours minus itself."""
    n = len(points)
    users = _edge_users(cells)
    all_neighbors: list[set[int]] = [set() for _ in range(n)]
    special: list[set[int]] = [set() for _ in range(n)]
    fixed: set[int] = set()
    cos_feature = math.cos(math.radians(rules.feature_angle))

    for (a, b), cell_ids in users.items():
        all_neighbors[a].add(b)
        all_neighbors[b].add(a)
        if len(cell_ids) == 1:
            allowed = rules.boundary_smoothing
        elif len(cell_ids) > 2:
            allowed = rules.nonmanifold_smoothing
        elif rules.feature_edge_smoothing:
            n1 = _cell_normal(points, cells[cell_ids[0]])
            n2 = _cell_normal(points, cells[cell_ids[1]])
            if float(n1 @ n2) >= cos_feature:
                continue
            allowed = True
        else:
            continue
        if allowed:
            special[a].add(b)
            special[b].add(a)
        else:
            fixed.update((a, b))

    cos_edge = math.cos(math.radians(rules.edge_angle))
    rows: list[int] = []
    cols: list[int] = []
    vals: list[float] = []
    for i in range(n):
        if i in fixed:
            continue
        if special[i]:
            if len(special[i]) != 2:
                continue
            j, k = sorted(special[i])
            d1 = points[i] - points[j]
            d2 = points[k] - points[i]
            l1, l2 = float(np.linalg.norm(d1)), float(np.linalg.norm(d2))
            if l1 == 0 or l2 == 0 or float(d1 @ d2) / (l1 * l2) < cos_edge:
                continue
            neighbors = [j, k]
        else:
            neighbors = sorted(all_neighbors[i])
        if not neighbors:
            continue
        weight = 1.0 / len(neighbors)
        for j in neighbors:
            rows.append(i)
            cols.append(j)
            vals.append(weight)
        rows.append(i)
        cols.append(i)
        vals.append(-1.0)
    return sparse.csr_matrix((vals, (rows, cols)), shape=(n, n))


def _windowed_sinc(
    points: np.ndarray,
    cells: list[tuple[int, ...]],
    iterations: int,
    pass_band: float,
    rules: _EdgeRules,
    normalize: bool,
) -> np.ndarray:
    if iterations <= 0 or not cells:
        return points.copy()
    x = points.copy()
    center = np.zeros(3)
    scale = 1.0
    if normalize:
        low, high = x.min(axis=0), x.max(axis=0)
        center = (low + high) / 2.0
        scale = float((high - low).max()) or 1.0
        x = (x - center) / scale

    operator = _smoothing_operator(x, cells, rules)
    theta = math.acos(max(-1.0, min(1.0, 1.0 - 0.5 * pass_band)))
    coeffs = np.array(
        [theta / math.pi] + [2.0 * math.sin(i * theta) / (i * math.pi) for i in range(1, iterations + 1)]
    )
    window = np.array([0.54 + 0.46 * math.cos(i * math.pi / (iterations + 1)) for i in range(iterations + 1)])
    coeffs = coeffs * window
    coeffs /= coeffs.sum()

    previous = x
    current = x + 0.5 * (operator @ x)
    result = coeffs[0] * previous + coeffs[1] * current
    for k in range(2, iterations + 1):
        following = 2.0 * (current + 0.5 * (operator @ current)) - previous
        result += coeffs[k] * following
        previous, current = current, following
    return result * scale + center


def _laplacian(
    points: np.ndarray, cells: list[tuple[int, ...]], iterations: int, relaxation: float, rules: _EdgeRules
) -> np.ndarray:
    x = points.copy()
    if iterations <= 0 or not cells:
        return x
    operator = _smoothing_operator(x, cells, rules)
    for _ in range(iterations):
        x = x + relaxation * (operator @ x)
    return x


def _smooth(mesh: SurfaceMesh, params: SmoothingParameters) -> SurfaceMesh:
    """Windowed-sinc then Laplacian smoothing of vertex positions; cell data passes through."""
    sinc_rules = _EdgeRules(
        feature_edge_smoothing=params.windowed_sinc_edge_smoothing,
        feature_angle=params.windowed_sinc_feature_angle,
        edge_angle=params.windowed_sinc_edge_angle,
        boundary_smoothing=params.windowed_sinc_boundary_smoothing,
        nonmanifold_smoothing=params.windowed_sinc_nonmanifold_smoothing,
    )
    points = _windowed_sinc(
        mesh.vertices,
        mesh.cells,
        params.windowed_sinc_iterations,
        params.windowed_sinc_pass_band,
        sinc_rules,
        params.windowed_sinc_normalize_coordinates,
    )
    laplacian_rules = _EdgeRules(
        feature_edge_smoothing=params.laplacian_edge_smoothing,
        feature_angle=45.0,
        edge_angle=params.laplacian_edge_angle,
        boundary_smoothing=params.laplacian_boundary_smoothing,
        nonmanifold_smoothing=False,
    )
    points = _laplacian(
        points, mesh.cells, params.laplacian_iterations, params.laplacian_relaxation_factor, laplacian_rules
    )
    return SurfaceMesh(points, mesh.cells, mesh.cell_normals)


def _geometry(mesh) -> tuple[np.ndarray, list[tuple[int, ...]]]:
    if isinstance(mesh, Mesh):
        mesh = to_polygon_mesh(mesh)
    if isinstance(mesh, PolygonMesh):
        return np.asarray(mesh.points, dtype=float).reshape(-1, 3), list(mesh.polygons)
    if isinstance(mesh, SurfaceMesh):
        return mesh.vertices, list(mesh.cells)
    raise TypeError(f"cannot segment an object of type {type(mesh).__name__}")


def segment_surface(
    mesh,
    segmentation: SegmentationConfig | None = None,
    filtering: FilteringConfig | None = None,
) -> list[PolygonMesh]:
    """Segment a mesh into regions of similar cell normals.

    The last returned mesh, when present, holds the cells that belong to no
    region. Segments of at most one cell are left out.
    """
    seg = (segmentation or SegmentationConfig()).resolved()
    params = (filtering or FilteringConfig()).resolved()
    vertices, cells = _geometry(mesh)

    if seg.use_mesh_normals:
        logger.info("Embedding Triangle Normals.")
        surface = SurfaceMesh.with_triangle_normals(vertices, cells)
    else:
        logger.info("Calculating Cell Normals.")
        surface = _consistent_normals(vertices, cells)

    logger.info("Beginning Filtering.")
    surface = _clean(surface)
    if params.enable_filtering:
        surface = _smooth(surface, params)

    segmenter = MeshSegmenter(seg.min_cluster_size, seg.max_cluster_size, seg.curvature_threshold)
    segmenter.set_input_mesh(surface)
    logger.info("Beginning Segmentation.")
    started = time.perf_counter()
    segmenter.segment()
    logger.info("Segmentation time: %.3f", time.perf_counter() - started)

    return [PolygonMesh(part.vertices, part.cells) for part in segmenter.mesh_segments()]