# meshpath

Tools for working with triangulated surface meshes on the way to tool paths:

- **Segmentation** of a mesh into smooth regions, by growing clusters of
  neighbouring cells (cells sharing an edge) whose normals stay within a
  curvature threshold. Cells that end up in no cluster are collected into a
  final "edge" segment. When meshes are built from the segments, any segment
  with one cell or fewer is left out.
- **Convex hulls** of point sets read from PLY files, with every triangle
  turned so that its normal points away from the centroid.
- **PLY reading and writing** (ASCII, binary little- and big-endian on read;
  ASCII or binary little-endian on write) and conversion between a plain mesh
  message (vertices and triangles) and a polygon mesh.
- **Visualisation markers** for tool paths: axis triads at each pose, arrows
  between consecutive poses, and dotted lines; plus per-vertex normals taken
  from a mesh's faces.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command line

### Convex hull

```
meshpath-convex-hull part.ply [more.ply ...]
```

For each input, the convex hull is written as an ASCII PLY file next to it: the
last four characters of the name (normally `.ply`) are replaced by
`_chull.ply`. A file that cannot be read or hulled is reported on standard
error and the command exits with status 1.

### Segmentation

```
meshpath-segment part.ply
```

Reads a PLY or STL (ASCII or binary) surface, attaches right-hand-rule cell
normals, cleans and smooths it (windowed-sinc, then Laplacian), segments it and
prints how many meshes were found. Options:

- `--min-cluster-size` (default 500): a region must have more cells than this.
- `--max-cluster-size` (default 1000000): accepted but does not limit regions.
- `--curvature-threshold` (default 0.3): largest angle, in radians, between
  neighbouring cell normals within a region.
- `--show-individually`: print each segment's cell count and display colour.
- `--save-outputs`: write each segment as `output_<index>.stl`.
- `--output-dir` (default `.`): where `--save-outputs` writes.

The file type is taken from the first of `pcd`, `stl`, `STL` or `ply` found
among the words of the name separated by space, comma, dot or hyphen. PCD
point clouds are recognised but refused, since they hold no surface cells.

## Library use

Segmenting a mesh directly:

```python
from meshpath.segmenter import MeshSegmenter, SurfaceMesh

surface = SurfaceMesh.with_triangle_normals(vertices, cells)

segmenter = MeshSegmenter(min_cluster_size=50, curvature_threshold=0.3)
segmenter.set_input_mesh(surface)
cell_ids_per_segment = segmenter.segment()   # last list: the edge cells
for part in segmenter.mesh_segments():       # SurfaceMesh objects
    ...
```

`meshpath.segmentation.segment_surface(mesh, segmentation, filtering)` runs the
whole pipeline on a `Mesh`, `PolygonMesh` or `SurfaceMesh` and returns a list of
`PolygonMesh`. Zero or very small values in `SegmentationConfig` and
`FilteringConfig` are replaced by defaults (see their `resolved()` methods);
smoothing runs only when `FilteringConfig.enable_filtering` is set. With
`use_mesh_normals` the cell normals follow each cell's vertex order; otherwise
cells are first oriented consistently across shared edges.
`neighborhood_radius` does not affect the result.

Loading, converting and saving meshes:

```python
from meshpath.conversions import load_ply_file, save_ply_file, to_polygon_mesh

mesh_msg = load_ply_file("part.ply")        # triangles only
polygon_mesh = to_polygon_mesh(mesh_msg)
save_ply_file("copy.ply", mesh_msg, 10, False)  # ASCII, 10 significant digits
```

`meshpath.ply` offers `read_ply` and `write_ply` for `PolygonMesh` objects.
Failures are raised as `meshpath.conversions.ConversionError` and
`meshpath.ply.PlyError` (both subclasses of `ValueError`).

`meshpath.convex_hull` exposes `convex_hull`, `orient_faces`,
`hull_output_path` and `generate` for use without the command.

Building markers for a set of tool paths (`meshpath.messages.ToolPaths`):

```python
from meshpath.conversions import axis_markers, arrow_markers, dotted_line_markers

markers = axis_markers(tool_paths, "world", "raster_0")
```

`meshpath.paths` adds `count_path_points`, `PlaneSlicerConfig.from_mapping`,
`path_markers` (axis plus dotted-line or arrow markers per surface, namespaced
`prefix + index`) and `MarkerBuffer`, which empties itself before an extension
once it holds more than its limit (500 by default).

## What this package does not do

- It does not generate tool paths; it only counts them and turns them into
  markers.
- It has no viewer and no network interface: markers are returned as data
  objects, and segments are reported as text or saved as STL files.
- It does not read PCD point clouds.