"""Reading and writing polygon meshes in the PLY format."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Union

import numpy as np

PathType = Union[str, PathLike]

_TYPE_CODES = {
    "char": "b",
    "int8": "b",
    "uchar": "B",
    "uint8": "B",
    "short": "h",
    "int16": "h",
    "ushort": "H",
    "uint16": "H",
    "int": "i",
    "int32": "i",
    "uint": "I",
    "uint32": "I",
    "float": "f",
    "float32": "f",
    "double": "d",
    "float64": "d",
}
_INTEGER_CODES = frozenset("bBhHiI")
_FORMATS = {"ascii": None, "binary_little_endian": "<", "binary_big_endian": ">"}
_FACE_PROPERTIES = ("vertex_indices", "vertex_index")


class PlyError(ValueError):
    """Raised when a PLY file cannot be parsed or written."""


@dataclass
class PolygonMesh:
    """Vertex positions (float32, shape (N, 3)) and polygons as index tuples."""

    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.float32))
    polygons: list[tuple[int, ...]] = field(default_factory=list)

    def __post_init__(self) -> None:
        points = np.asarray(self.points, dtype=np.float32)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError("points must have shape (N, 3)")
        self.points = points
        self.polygons = [tuple(int(i) for i in polygon) for polygon in self.polygons]


@dataclass
class _Property:
    name: str
    code: str
    count_code: str | None = None


@dataclass
class _Element:
    name: str
    count: int
    properties: list[_Property] = field(default_factory=list)


def _type_code(name: str) -> str:
    try:
        return _TYPE_CODES[name]
    except KeyError:
        raise PlyError(f"unknown property type {name!r}") from None


def _parse_header(data: bytes) -> tuple[str, list[_Element], int]:
    if not data.startswith(b"ply"):
        raise PlyError("not a PLY file")
    marker = data.find(b"end_header")
    if marker < 0:
        raise PlyError("missing end_header")
    newline = data.find(b"\n", marker)
    if newline < 0:
        raise PlyError("header is not terminated")
    lines = data[:marker].decode("ascii", errors="replace").splitlines()

    fmt: str | None = None
    elements: list[_Element] = []
    for line in lines[1:]:
        words = line.split()
        if not words or words[0] in ("comment", "obj_info"):
            continue
        keyword = words[0]
        if keyword == "format":
            if len(words) != 3 or words[1] not in _FORMATS:
                raise PlyError(f"unsupported format line: {line!r}")
            fmt = words[1]
        elif keyword == "element":
            if len(words) != 3:
                raise PlyError(f"malformed element line: {line!r}")
            try:
                count = int(words[2])
            except ValueError:
                raise PlyError(f"bad element count: {line!r}") from None
            elements.append(_Element(words[1], count))
        elif keyword == "property":
            if not elements:
                raise PlyError("property declared before any element")
            if len(words) == 5 and words[1] == "list":
                prop = _Property(words[4], _type_code(words[3]), _type_code(words[2]))
            elif len(words) == 3:
                prop = _Property(words[2], _type_code(words[1]))
            else:
                raise PlyError(f"malformed property line: {line!r}")
            elements[-1].properties.append(prop)
        else:
            raise PlyError(f"unexpected header line: {line!r}")
    if fmt is None:
        raise PlyError("missing format line")
    return fmt, elements, newline + 1


class _AsciiSource:
    def __init__(self, body: bytes) -> None:
        self._tokens = iter(body.split())

    def scalar(self, code: str) -> int | float:
        try:
            token = next(self._tokens)
        except StopIteration:
            raise PlyError("unexpected end of data") from None
        try:
            return int(token) if code in _INTEGER_CODES else float(token)
        except ValueError:
            raise PlyError(f"bad value {token!r}") from None

    def values(self, code: str, count: int) -> tuple:
        return tuple(self.scalar(code) for _ in range(count))


class _BinarySource:
    def __init__(self, data: bytes, offset: int, order: str) -> None:
        self._data = data
        self._offset = offset
        self._order = order

    def values(self, code: str, count: int) -> tuple:
        fmt = f"{self._order}{count}{code}"
        end = self._offset + struct.calcsize(fmt)
        if end > len(self._data):
            raise PlyError("unexpected end of data")
        result = struct.unpack_from(fmt, self._data, self._offset)
        self._offset = end
        return result

    def scalar(self, code: str) -> int | float:
        return self.values(code, 1)[0]


def _read_row(source, element: _Element) -> dict:
    row = {}
    for prop in element.properties:
        if prop.count_code is None:
            row[prop.name] = source.scalar(prop.code)
            continue
        count = source.scalar(prop.count_code)
        if not isinstance(count, int) or count < 0:
            raise PlyError(f"bad list length {count!r}")
        row[prop.name] = source.values(prop.code, count)
    return row


def read_ply(path: PathType) -> PolygonMesh:
    """Read vertices and faces from an ASCII or binary PLY file."""
    data = Path(path).read_bytes()
    fmt, elements, start = _parse_header(data)
    order = _FORMATS[fmt]
    source = _AsciiSource(data[start:]) if order is None else _BinarySource(data, start, order)

    points = np.zeros((0, 3), dtype=np.float32)
    polygons: list[tuple[int, ...]] = []
    for element in elements:
        rows = [_read_row(source, element) for _ in range(element.count)]
        names = {prop.name for prop in element.properties}
        if element.name == "vertex":
            if not {"x", "y", "z"} <= names:
                raise PlyError("vertex element lacks x, y or z")
            points = np.array([(r["x"], r["y"], r["z"]) for r in rows], dtype=np.float32).reshape(-1, 3)
        elif element.name == "face":
            key = next(
                (p.name for p in element.properties if p.count_code and p.name in _FACE_PROPERTIES),
                None,
            )
            if key is None:
                raise PlyError("face element has no vertex index list")
            polygons = [tuple(int(i) for i in r[key]) for r in rows]

    for polygon in polygons:
        if any(i < 0 or i >= len(points) for i in polygon):
            raise PlyError(f"face {polygon} refers to a missing vertex")
    return PolygonMesh(points, polygons)


def write_ply(path: PathType, mesh: PolygonMesh, precision: int = 10, binary: bool = True) -> None:
    """Write a mesh as a PLY file, binary little-endian or ASCII."""
    points = np.asarray(mesh.points, dtype=np.float32).reshape(-1, 3)
    for polygon in mesh.polygons:
        if len(polygon) > 255:
            raise PlyError("polygons with more than 255 vertices cannot be written")
    header = "\n".join(
        [
            "ply",
            f"format {'binary_little_endian' if binary else 'ascii'} 1.0",
            f"element vertex {len(points)}",
            "property float x",
            "property float y",
            "property float z",
            f"element face {len(mesh.polygons)}",
            "property list uchar int vertex_indices",
            "end_header",
            "",
        ]
    ).encode("ascii")

    if binary:
        body = points.astype("<f4").tobytes() + b"".join(
            struct.pack(f"<B{len(p)}i", len(p), *p) for p in mesh.polygons
        )
    else:
        lines = [" ".join(f"{float(v):.{precision}g}" for v in point) for point in points]
        lines += [" ".join(str(v) for v in (len(p), *p)) for p in mesh.polygons]
        body = "".join(line + "\n" for line in lines).encode("ascii")

    Path(path).write_bytes(header + body)