"""Command that smooths and segments a surface mesh file and reports or saves the segments."""

from __future__ import annotations

import argparse
import logging
import re
import struct
import sys
import time
from pathlib import Path
from typing import Sequence

import numpy as np

from meshpath.ply import PathType, PolygonMesh, read_ply
from meshpath.segmentation import FilteringConfig, SegmentationConfig, segment_surface
from meshpath.segmenter import SurfaceMesh

logger = logging.getLogger(__name__)

# Mesh colours are kept darker than path colours.
_MESH_COLORS = (
    0xCC0000, 0xCC6500, 0xCCCC00, 0x65CC00, 0x00CC00, 0x00CC65,
    0x00CCCC, 0x0065CC, 0x0000CC, 0x6500CC, 0xCC00CC, 0xCC0065,
)
_KNOWN_EXTENSIONS = ("pcd", "stl", "STL", "ply")
_SEPARATORS = re.compile(r"[ ,.\-]")


def mesh_color(index: int) -> tuple[float, float, float]:
    """The RGB display colour for the mesh at ``index``; the palette repeats."""
    value = _MESH_COLORS[index % len(_MESH_COLORS)]
    return (
        ((value >> 16) & 0xFF) / 255.0,
        ((value >> 8) & 0xFF) / 255.0,
        (value & 0xFF) / 255.0,
    )


def detect_extension(filename: str) -> str:
    """The first of ``pcd``, ``stl``, ``STL`` or ``ply`` among the name's ``' ,.-'``-separated words."""
    for word in _SEPARATORS.split(str(filename)):
        if word in _KNOWN_EXTENSIONS:
            return word
    raise ValueError(
        f"Unrecognized extension in {filename!r}. Program supports 'pcd', 'stl', 'STL', 'ply'"
    )


def _merged(triangles: list[tuple[tuple[float, float, float], ...]]) -> tuple[np.ndarray, list[tuple[int, ...]]]:
    index: dict[tuple[float, float, float], int] = {}
    cells = [tuple(index.setdefault(v, len(index)) for v in tri) for tri in triangles]
    vertices = np.array(list(index), dtype=float).reshape(-1, 3)
    return vertices, cells


def _read_stl(path: PathType) -> tuple[np.ndarray, list[tuple[int, ...]]]:
    data = Path(path).read_bytes()
    if len(data) >= 84:
        (count,) = struct.unpack_from("<I", data, 80)
        if len(data) == 84 + 50 * count:
            triangles = []
            for n in range(count):
                values = struct.unpack_from("<12f", data, 84 + 50 * n)
                triangles.append(tuple(tuple(values[k:k + 3]) for k in (3, 6, 9)))
            return _merged(triangles)
    text = data.decode("ascii", errors="replace")
    if not text.lstrip().startswith("solid"):
        raise ValueError(f"{path}: not an STL file")
    triangles = []
    corners: list[tuple[float, float, float]] = []
    for line in text.splitlines():
        words = line.split()
        if not words:
            continue
        if words[0] == "vertex":
            if len(words) != 4:
                raise ValueError(f"{path}: malformed vertex line {line!r}")
            try:
                corners.append((float(words[1]), float(words[2]), float(words[3])))
            except ValueError:
                raise ValueError(f"{path}: malformed vertex line {line!r}") from None
        elif words[0] == "endfacet":
            if len(corners) != 3:
                raise ValueError(f"{path}: facet does not have 3 vertices")
            triangles.append(tuple(corners))
            corners = []
    return _merged(triangles)


def _write_stl(path: PathType, mesh: PolygonMesh, name: str = "mesh") -> None:
    points = np.asarray(mesh.points, dtype=float).reshape(-1, 3)
    lines = [f"solid {name}"]
    for polygon in mesh.polygons:
        for k in range(1, len(polygon) - 1):
            p0, p1, p2 = (points[i] for i in (polygon[0], polygon[k], polygon[k + 1]))
            normal = np.cross(p1 - p0, p2 - p0)
            length = float(np.linalg.norm(normal))
            if length > 0:
                normal = normal / length
            lines.append(" facet normal {:e} {:e} {:e}".format(*normal))
            lines.append("  outer loop")
            lines.extend("   vertex {:e} {:e} {:e}".format(*p) for p in (p0, p1, p2))
            lines.append("  endloop")
            lines.append(" endfacet")
    lines.append(f"endsolid {name}")
    Path(path).write_text("\n".join(lines) + "\n", encoding="ascii")


def load_surface(filename: PathType) -> SurfaceMesh:
    """Load a PLY or STL surface and attach cell normals."""
    name = str(filename)
    if not name:
        raise ValueError("'filename' must be set to the path of a pcd, stl or ply file")
    extension = detect_extension(name)
    if extension == "pcd":
        raise ValueError(f"{name}: a pcd point cloud holds no surface cells to segment")
    if extension in ("stl", "STL"):
        vertices, cells = _read_stl(name)
    else:
        mesh = read_ply(name)
        vertices, cells = mesh.points, mesh.polygons
    return SurfaceMesh.with_triangle_normals(vertices, cells)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="segment-mesh",
        description="Smooth a surface mesh and split it into segments of similar curvature.",
    )
    parser.add_argument("filename", help="path of a .ply or .stl file")
    parser.add_argument("--min-cluster-size", type=int, default=500)
    parser.add_argument("--max-cluster-size", type=int, default=1000000)
    parser.add_argument("--curvature-threshold", type=float, default=0.3)
    parser.add_argument("--show-individually", action="store_true", help="report each segment separately")
    parser.add_argument("--save-outputs", action="store_true", help="write each segment as an STL file")
    parser.add_argument("--output-dir", default=".", help="directory for saved segments")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        surface = load_surface(args.filename)
    except (OSError, ValueError) as exc:
        print(f"{args.filename}: {exc}", file=sys.stderr)
        return 1

    segmentation = SegmentationConfig(
        curvature_threshold=args.curvature_threshold,
        min_cluster_size=args.min_cluster_size,
        max_cluster_size=args.max_cluster_size,
    )
    filtering = FilteringConfig(
        enable_filtering=True,
        windowed_sinc_iterations=20,
        windowed_sinc_pass_band=0.1,
        windowed_sinc_edge_smoothing=False,
        windowed_sinc_boundary_smoothing=False,
        windowed_sinc_nonmanifold_smoothing=False,
        windowed_sinc_normalize_coordinates=True,
        laplacian_iterations=10,
        laplacian_relaxation_factor=0.1,
        laplacian_edge_smoothing=False,
        laplacian_boundary_smoothing=False,
    )
    started = time.perf_counter()
    segments = segment_surface(surface, segmentation, filtering)
    logger.info("Segmentation time: %.3f", time.perf_counter() - started)

    print(f"Found {len(segments)} meshes")
    if args.show_individually:
        for index, mesh in enumerate(segments):
            r, g, b = mesh_color(index)
            print(f"Mesh: {index} cells: {len(mesh.polygons)} color: {r:.3f} {g:.3f} {b:.3f}")

    if args.save_outputs:
        directory = Path(args.output_dir)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            for index, mesh in enumerate(segments):
                target = directory / f"output_{index}.stl"
                _write_stl(target, mesh, f"output_{index}")
                print(f"Saving: {target}")
        except OSError as exc:
            print(f"{directory}: {exc}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())