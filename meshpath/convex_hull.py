"""Convex hulls of PLY point sets, written out with outward-facing triangles."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

import numpy as np
from scipy.spatial import ConvexHull

from meshpath.ply import PathType, PolygonMesh, read_ply, write_ply

logger = logging.getLogger(__name__)

_SUFFIX = "_chull.ply"


def convex_hull(points) -> tuple[np.ndarray, list[tuple[int, int, int]]]:
    """Return the hull vertices and triangles indexing into them."""
    cloud = np.asarray(points, dtype=float).reshape(-1, 3)
    if len(cloud) < 4:
        raise ValueError("a 3D convex hull needs at least 4 points")
    try:
        hull = ConvexHull(cloud)
    except RuntimeError as exc:
        raise ValueError(f"cannot compute convex hull: {exc}") from exc
    remap = {int(old): new for new, old in enumerate(hull.vertices)}
    faces = [tuple(remap[int(i)] for i in simplex) for simplex in hull.simplices]
    return cloud[hull.vertices], faces


def orient_faces(points, faces) -> list[tuple[int, ...]]:
    """Flip triangles whose normal points toward the centroid of the points."""
    cloud = np.asarray(points, dtype=float).reshape(-1, 3)
    if len(cloud) == 0:
        raise ValueError("Input cloud invalid")
    middle = cloud.mean(axis=0)
    oriented = []
    for face in faces:
        face = tuple(int(i) for i in face)
        p0, p1, p2 = (cloud[i] for i in face[:3])
        normal = np.cross(p1 - p0, p2 - p0)
        if float((p0 - middle) @ normal) < 0:
            face = (face[0], face[2], face[1], *face[3:])
        oriented.append(face)
    return oriented


def hull_output_path(infile: PathType) -> str:
    """Output file name: the input name without its extension, plus ``_chull.ply``."""
    name = str(infile)
    stem = name[:-4] if len(name) >= 4 else name
    return stem + _SUFFIX


def generate(infile: PathType, outfile: PathType) -> PolygonMesh:
    """Read a PLY point set, build its convex hull and save it as ASCII PLY."""
    cloud = read_ply(infile).points
    hull_points, faces = convex_hull(cloud)
    mesh = PolygonMesh(hull_points, orient_faces(hull_points, faces))
    write_ply(outfile, mesh, binary=False)
    logger.info("Convex hull written to %s", outfile)
    return mesh


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="convex-hull",
        description="Write the convex hull of each PLY file next to it as <name>_chull.ply.",
    )
    parser.add_argument("files", nargs="+", help="input .ply files")
    args = parser.parse_args(argv)

    status = 0
    for infile in args.files:
        outfile = hull_output_path(infile)
        try:
            generate(infile, outfile)
        except (OSError, ValueError) as exc:
            print(f"{infile}: {exc}", file=sys.stderr)
            status = 1
        else:
            print(f"Convex hull written to {outfile}")
    return status


if __name__ == "__main__":
    sys.exit(main())