import math

import numpy as np
import pytest

from meshpath.conversions import (
    ConversionError,
    arrow_markers,
    axis_markers,
    create_mesh_marker,
    dotted_line_markers,
    load_ply_file,
    point_normals,
    save_ply_file,
    to_mesh_msg,
    to_polygon_mesh,
)
from meshpath.messages import (
    Color,
    MarkerType,
    Mesh,
    Point,
    Pose,
    ToolPath,
    ToolPaths,
    Vector3,
)
from meshpath.ply import PolygonMesh, write_ply


@pytest.fixture
def square():
    vertices = [Point(0.0, 0.0, 0.0), Point(1.0, 0.0, 0.0), Point(1.0, 1.0, 0.0), Point(0.0, 1.0, 0.0)]
    return Mesh(vertices, [(0, 1, 2), (0, 2, 3)])


def _paths(*segments):
    return ToolPaths([ToolPath([[Pose(Point(*p)) for p in seg] for seg in segments])])


def test_mesh_round_trip(square):
    assert to_mesh_msg(to_polygon_mesh(square)) == square


def test_to_polygon_mesh_contents(square):
    mesh = to_polygon_mesh(square)
    assert mesh.points.shape == (4, 3)
    assert mesh.polygons == [(0, 1, 2), (0, 2, 3)]


def test_no_polygons():
    with pytest.raises(ConversionError):
        to_mesh_msg(PolygonMesh([(0.0, 0.0, 0.0)], []))


def test_no_vertices():
    with pytest.raises(ConversionError):
        to_mesh_msg(PolygonMesh(np.zeros((0, 3)), [(0, 1, 2)]))


def test_non_triangle():
    mesh = PolygonMesh(np.zeros((4, 3)), [(0, 1, 2, 3)])
    with pytest.raises(ConversionError):
        to_mesh_msg(mesh)


@pytest.mark.parametrize("binary", [True, False])
def test_save_and_load(tmp_path, square, binary):
    path = tmp_path / "square.ply"
    save_ply_file(path, square, 10, binary)
    assert load_ply_file(path) == square


def test_load_without_faces(tmp_path):
    path = tmp_path / "points.ply"
    write_ply(path, PolygonMesh([(1.0, 1.0, 1.0)], []))
    with pytest.raises(ConversionError):
        load_ply_file(path)


def test_create_mesh_marker():
    marker = create_mesh_marker("/tmp/part.ply", "input_mesh", "world", (0.6, 0.6, 1.0, 1.0))
    assert marker.mesh_resource == "file:///tmp/part.ply"
    assert marker.type == MarkerType.MESH_RESOURCE
    assert marker.id == 0
    assert marker.ns == "input_mesh"
    assert marker.frame_id == "world"
    assert marker.color == Color(0.6, 0.6, 1.0, 1.0)
    assert marker.scale == Vector3(1.0, 1.0, 1.0)


def test_point_normals_counter_clockwise(square):
    points, normals = point_normals(to_polygon_mesh(square))
    assert points.shape == normals.shape
    for n in normals:
        assert tuple(n) == pytest.approx((0.0, 0.0, 1.0))


def test_point_normals_flip(square):
    _, normals = point_normals(to_polygon_mesh(square), flip=True)
    for n in normals:
        assert tuple(n) == pytest.approx((0.0, 0.0, -1.0))


def test_point_normals_unused_vertex_is_zero():
    mesh = PolygonMesh([(0, 0, 0), (1, 0, 0), (0, 1, 0), (5, 5, 5)], [(0, 1, 2)])
    _, normals = point_normals(mesh)
    assert tuple(normals[3]) == (0.0, 0.0, 0.0)
    assert float(np.linalg.norm(normals[0])) == pytest.approx(1.0)


def test_point_normals_skips_ill_formed():
    mesh = PolygonMesh([(0, 0, 0), (1, 0, 0), (math.nan, 1, 0), (0, -1, 0)], [(0, 1, 2), (0, 3, 1)])
    _, normals = point_normals(mesh, silent=False)
    assert tuple(normals[2]) == (0.0, 0.0, 0.0)
    assert tuple(normals[3]) == pytest.approx((0.0, 0.0, 1.0))


def test_axis_markers():
    markers = axis_markers(_paths([(1.0, 2.0, 3.0), (0.0, 0.0, 0.0)]), "world", "edge_0")
    assert [m.id for m in markers] == [2, 3, 4]
    assert all(m.type == MarkerType.LINE_LIST for m in markers)
    assert [m.color for m in markers] == [
        Color(1.0, 0.0, 0.0, 1.0),
        Color(0.0, 1.0, 0.0, 1.0),
        Color(0.0, 0.0, 1.0, 1.0),
    ]
    assert all(len(m.points) == 4 for m in markers)
    x_axis = markers[0]
    assert x_axis.points[0] == Point(1.0, 2.0, 3.0)
    assert tuple(x_axis.points[1]) == pytest.approx((1.03, 2.0, 3.0))
    assert x_axis.scale == Vector3(0.001, 0.0, 0.0)


def test_arrow_markers():
    paths = _paths([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)], [(5.0, 5.0, 5.0)])
    markers = arrow_markers(paths, "world", "raster_0", start_id=10, offset=(1.0, 0, 0, 0, 0, 0))
    assert [m.id for m in markers] == [11, 12, 13, 14]
    assert [m.type for m in markers] == [
        MarkerType.ARROW,
        MarkerType.ARROW,
        MarkerType.POINTS,
        MarkerType.POINTS,
    ]
    assert tuple(markers[0].points[0]) == pytest.approx((1.0, 0.0, 0.0))
    assert tuple(markers[1].points[1]) == pytest.approx((3.0, 0.0, 0.0))
    assert markers[2].points == [Point(0.0, 0.0, 0.0), Point(2.0, 0.0, 0.0)]
    assert markers[3].points == [Point(5.0, 5.0, 5.0), Point(5.0, 5.0, 5.0)]
    assert markers[2].pose.position == Point(1.0, 0.0, 0.0)
    assert markers[0].pose == Pose()


def test_arrow_markers_empty_segment():
    with pytest.raises(ConversionError):
        arrow_markers(ToolPaths([ToolPath([[]])]), "world", "ns")


def test_dotted_line_markers():
    paths = _paths([(0.0, 0.0, 0.0), (1.0, 1.0, 0.0)], [(2.0, 2.0, 2.0)])
    markers = dotted_line_markers(paths, "world", "edge_1", offset=(0.0, 0.0, 0.5, 0, 0, 0))
    assert [m.id for m in markers] == [2, 3, 4, 5]
    assert [m.type for m in markers] == [
        MarkerType.LINE_STRIP,
        MarkerType.POINTS,
        MarkerType.LINE_STRIP,
        MarkerType.POINTS,
    ]
    assert markers[0].points == markers[1].points == [Point(0.0, 0.0, 0.0), Point(1.0, 1.0, 0.0)]
    assert markers[0].scale == Vector3(0.001, 0.0, 0.0)
    assert markers[1].scale == Vector3(0.005, 0.005, 0.005)
    assert all(m.pose.position == Point(0.0, 0.0, 0.5) for m in markers)
    assert markers[0].points is not markers[2].points
    assert len(markers[2].points) == 1