import struct

import numpy as np
import pytest

from meshpath.ply import PlyError, PolygonMesh, read_ply, write_ply


@pytest.fixture
def tetra():
    points = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.5)]
    polygons = [(0, 2, 1), (0, 1, 3), (0, 3, 2), (1, 2, 3)]
    return PolygonMesh(points, polygons)


@pytest.mark.parametrize("binary", [True, False])
def test_round_trip(tmp_path, tetra, binary):
    path = tmp_path / "mesh.ply"
    write_ply(path, tetra, 10, binary)
    loaded = read_ply(path)
    np.testing.assert_array_equal(loaded.points, tetra.points)
    assert loaded.polygons == tetra.polygons


def test_binary_header(tmp_path, tetra):
    path = tmp_path / "mesh.ply"
    write_ply(path, tetra, binary=True)
    assert path.read_bytes().startswith(b"ply\nformat binary_little_endian 1.0\n")


def test_ascii_is_text(tmp_path, tetra):
    path = tmp_path / "mesh.ply"
    write_ply(path, tetra, binary=False)
    text = path.read_text()
    assert "format ascii 1.0" in text
    assert "end_header" in text


def test_ascii_precision(tmp_path):
    mesh = PolygonMesh([(1.23456, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)], [(0, 1, 2)])
    fine, coarse = tmp_path / "fine.ply", tmp_path / "coarse.ply"
    write_ply(fine, mesh, 10, False)
    write_ply(coarse, mesh, 3, False)
    assert "1.23456" in fine.read_text()
    assert "1.23456" not in coarse.read_text()
    assert read_ply(coarse).points[0, 0] == pytest.approx(1.23456, abs=1e-2)


def test_reads_big_endian_with_extra_properties(tmp_path):
    header = (
        b"ply\nformat binary_big_endian 1.0\ncomment made by hand\n"
        b"element vertex 3\nproperty double x\nproperty double y\nproperty double z\n"
        b"property uchar red\nelement face 1\nproperty list uchar uint vertex_indices\nend_header\n"
    )
    pts = [(0.5, 0.0, 0.0), (0.0, 2.0, 0.0), (0.0, 0.0, -1.0)]
    body = b"".join(struct.pack(">dddB", *p, 7) for p in pts) + struct.pack(">B3I", 3, 0, 1, 2)
    path = tmp_path / "be.ply"
    path.write_bytes(header + body)
    mesh = read_ply(path)
    np.testing.assert_array_equal(mesh.points, np.array(pts, dtype=np.float32))
    assert mesh.polygons == [(0, 1, 2)]


def test_reads_ascii_with_vertex_index_name(tmp_path):
    path = tmp_path / "a.ply"
    path.write_text(
        "ply\nformat ascii 1.0\nelement vertex 3\nproperty float x\nproperty float y\n"
        "property float z\nproperty float nx\nelement face 1\n"
        "property list uchar int vertex_index\nend_header\n"
        "0 0 0 1\n1 0 0 1\n0 1 0 1\n3 2 1 0\n"
    )
    mesh = read_ply(path)
    assert mesh.points.shape == (3, 3)
    assert mesh.polygons == [(2, 1, 0)]


def test_vertices_only(tmp_path):
    mesh = PolygonMesh([(1.0, 2.0, 3.0)], [])
    path = tmp_path / "v.ply"
    write_ply(path, mesh)
    loaded = read_ply(path)
    assert loaded.polygons == []
    np.testing.assert_array_equal(loaded.points, mesh.points)


def test_not_ply(tmp_path):
    path = tmp_path / "x.ply"
    path.write_text("solid nothing\n")
    with pytest.raises(PlyError):
        read_ply(path)


def test_missing_end_header(tmp_path):
    path = tmp_path / "x.ply"
    path.write_text("ply\nformat ascii 1.0\nelement vertex 0\n")
    with pytest.raises(PlyError):
        read_ply(path)


def test_truncated_binary(tmp_path, tetra):
    path = tmp_path / "t.ply"
    write_ply(path, tetra, binary=True)
    path.write_bytes(path.read_bytes()[:-5])
    with pytest.raises(PlyError):
        read_ply(path)


def test_face_index_out_of_range(tmp_path):
    path = tmp_path / "bad.ply"
    write_ply(path, PolygonMesh([(0.0, 0.0, 0.0)], [(0, 1, 2)]), binary=False)
    with pytest.raises(PlyError):
        read_ply(path)


def test_too_many_polygon_vertices(tmp_path):
    mesh = PolygonMesh(np.zeros((300, 3)), [tuple(range(300))])
    with pytest.raises(PlyError):
        write_ply(tmp_path / "big.ply", mesh)


def test_points_shape_validated():
    with pytest.raises(ValueError):
        PolygonMesh([(1.0, 2.0)], [])