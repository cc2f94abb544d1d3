import struct

import numpy as np
import pytest

from meshpath.ply import PolygonMesh, write_ply
from meshpath.segment_cli import detect_extension, load_surface, main, mesh_color


def _grid(n=10):
    vertices = [(float(i), float(j), 0.0) for j in range(n) for i in range(n)]
    cells = []
    for j in range(n - 1):
        for i in range(n - 1):
            a = j * n + i
            b, c, d = a + 1, a + n, a + n + 1
            cells.append((a, b, d))
            cells.append((a, d, c))
    return vertices, cells


def _ascii_stl(triangles):
    lines = ["solid test"]
    for tri in triangles:
        lines += [" facet normal 0 0 1", "  outer loop"]
        lines += [f"   vertex {x} {y} {z}" for x, y, z in tri]
        lines += ["  endloop", " endfacet"]
    lines.append("endsolid test")
    return "\n".join(lines) + "\n"


def test_mesh_color_first_entry():
    assert mesh_color(0) == pytest.approx((0xCC / 255, 0.0, 0.0))


def test_mesh_color_second_entry():
    assert mesh_color(1) == pytest.approx((0xCC / 255, 0x65 / 255, 0.0))


def test_mesh_color_wraps_after_twelve():
    assert mesh_color(12) == mesh_color(0)
    assert mesh_color(25) == mesh_color(1)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("/data/part.ply", "ply"),
        ("scan.pcd", "pcd"),
        ("model.STL", "STL"),
        ("model.stl", "stl"),
        ("my-stl-file.obj", "stl"),
    ],
)
def test_detect_extension(name, expected):
    assert detect_extension(name) == expected


def test_detect_extension_unknown_raises():
    with pytest.raises(ValueError):
        detect_extension("mesh.obj")


def test_load_surface_empty_name_raises():
    with pytest.raises(ValueError):
        load_surface("")


def test_load_surface_pcd_raises(tmp_path):
    path = tmp_path / "cloud.pcd"
    path.write_text("")
    with pytest.raises(ValueError):
        load_surface(path)


def test_load_surface_ply(tmp_path):
    vertices, cells = _grid(4)
    path = tmp_path / "grid.ply"
    write_ply(path, PolygonMesh(vertices, cells))
    surface = load_surface(path)
    assert surface.cells == cells
    assert np.allclose(surface.vertices, vertices)
    assert np.allclose(surface.cell_normals, [[0.0, 0.0, 1.0]] * len(cells))


def test_load_surface_ascii_stl_merges_vertices(tmp_path):
    triangles = [
        ((0, 0, 0), (1, 0, 0), (1, 1, 0)),
        ((0, 0, 0), (1, 1, 0), (0, 1, 0)),
    ]
    path = tmp_path / "square.stl"
    path.write_text(_ascii_stl(triangles))
    surface = load_surface(path)
    assert len(surface.vertices) == 4
    assert len(surface.cells) == 2
    assert set(surface.cells[0]) & set(surface.cells[1]) == {0, 2}


def test_load_surface_binary_stl(tmp_path):
    triangles = [
        ((0, 0, 0), (1, 0, 0), (1, 1, 0)),
        ((0, 0, 0), (1, 1, 0), (0, 1, 0)),
    ]
    body = b"".join(
        struct.pack("<12fH", 0, 0, 1, *(c for v in tri for c in v), 0) for tri in triangles
    )
    path = tmp_path / "square.STL"
    path.write_bytes(b"\0" * 80 + struct.pack("<I", len(triangles)) + body)
    surface = load_surface(path)
    assert len(surface.vertices) == 4
    assert len(surface.cells) == 2


def test_load_surface_not_stl_raises(tmp_path):
    path = tmp_path / "junk.stl"
    path.write_text("hello")
    with pytest.raises(ValueError):
        load_surface(path)


def test_main_bad_extension_fails(tmp_path, capsys):
    path = tmp_path / "mesh.obj"
    path.write_text("")
    assert main([str(path)]) == 1
    assert "Unrecognized extension" in capsys.readouterr().err


def test_main_saves_segments_covering_all_cells(tmp_path):
    vertices, cells = _grid(10)
    path = tmp_path / "grid.ply"
    write_ply(path, PolygonMesh(vertices, cells))
    out = tmp_path / "out"
    status = main([str(path), "--min-cluster-size", "50", "--save-outputs", "--output-dir", str(out)])
    assert status == 0
    saved = sorted(out.glob("output_*.stl"))
    assert [p.name for p in saved] == ["output_0.stl"]
    reloaded = load_surface(saved[0])
    assert len(reloaded.cells) == len(cells)


def test_main_show_individually_reports_each_mesh(tmp_path, capsys):
    vertices, cells = _grid(10)
    path = tmp_path / "grid.ply"
    write_ply(path, PolygonMesh(vertices, cells))
    assert main([str(path), "--min-cluster-size", "50", "--show-individually"]) == 0
    output = capsys.readouterr().out
    assert "Mesh: 0" in output
    assert f"cells: {len(cells)}" in output