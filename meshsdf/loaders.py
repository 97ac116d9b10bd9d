"""Mesh file readers: Wavefront OBJ and STL.

Both return a :class:`~meshsdf.types.Mesh`.  Normals, texture coordinates,
materials and groups are ignored; only positions and faces are kept.
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from .types import Mesh


class OBJParseError(ValueError):
    """Malformed OBJ input.  ``line`` is 1-based when known."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        super().__init__(f"Line {line}: {message}" if line is not None else message)
        self.line = line


# ---------------------------------------------------------------------------
# OBJ
# ---------------------------------------------------------------------------

def parse_obj(text: str) -> Mesh:
    """Parse OBJ source text into a :class:`Mesh`.

    Faces with more than three vertices are fan-triangulated
    (``0-1-2, 0-2-3, ...``), which is correct for convex polygons only.
    Face tokens may be ``i``, ``i/t``, ``i//n`` or ``i/t/n``; negative
    indices count back from the last vertex defined so far.
    """
    vertices: List[float] = []
    indices: List[int] = []

    for line_num, raw in enumerate(text.split("\n"), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if parts[0] == "v":
            _parse_vertex(parts, vertices, line_num)
        elif parts[0] == "f":
            _parse_face(parts, indices, len(vertices) // 3, line_num)

    if not vertices:
        raise OBJParseError("No vertices found in OBJ file")
    if not indices:
        raise OBJParseError("No faces found in OBJ file")
    return Mesh(np.array(vertices, dtype=np.float32), np.array(indices, dtype=np.uint32))


def _parse_vertex(parts: List[str], vertices: List[float], line_num: int) -> None:
    if len(parts) < 4:
        raise OBJParseError("Vertex must have at least 3 coordinates", line_num)
    try:
        xyz = [float(p) for p in parts[1:4]]
    except ValueError:
        raise OBJParseError("Invalid vertex coordinates", line_num) from None
    if not np.all(np.isfinite(xyz)):
        raise OBJParseError("Invalid vertex coordinates", line_num)
    vertices.extend(xyz)


def _parse_face(
    parts: List[str], indices: List[int], vertex_count: int, line_num: int
) -> None:
    if len(parts) < 4:
        raise OBJParseError("Face must have at least 3 vertices", line_num)

    face: List[int] = []
    for token in parts[1:]:
        try:
            index = int(token.split("/")[0])
        except ValueError:
            raise OBJParseError(f"Invalid face vertex index: {token}", line_num) from None

        if index == 0:
            raise OBJParseError("Face vertex index cannot be 0", line_num)
        zero_based = index - 1 if index > 0 else vertex_count + index
        if not 0 <= zero_based < vertex_count:
            raise OBJParseError(
                f"Face vertex index {index} out of range ({vertex_count} vertices)",
                line_num,
            )
        face.append(zero_based)

    for i in range(1, len(face) - 1):
        indices.extend((face[0], face[i], face[i + 1]))


def load_obj(path: Union[str, Path]) -> Mesh:
    """Read and parse an OBJ file."""
    return parse_obj(Path(path).read_text(encoding="utf-8", errors="replace"))


# ---------------------------------------------------------------------------
# STL
# ---------------------------------------------------------------------------

def load_stl(path: Union[str, Path]) -> Mesh:
    """Load a binary or ASCII STL file.

    Facet corners are not welded: an ``F``-facet file gives ``3F`` vertices
    and indices ``0 .. 3F-1``.  Detection uses the binary-size invariant
    (``len == 84 + 50 * F``) rather than the ``solid`` keyword, which some
    CAD tools (e.g. SolidWorks) also write at the start of binary files.
    """
    raw = Path(path).read_bytes()
    corners = None
    if len(raw) >= 84:
        count = struct.unpack_from("<I", raw, 80)[0]
        if len(raw) == 84 + 50 * count:
            corners = _binary_stl_corners(raw, count)
    if corners is None:
        corners = _ascii_stl_corners(raw.decode("ascii", errors="replace"))
    return Mesh(corners.reshape(-1), np.arange(len(corners), dtype=np.uint32))


def _binary_stl_corners(raw: bytes, count: int) -> np.ndarray:
    # Each record: 12 bytes normal + 36 bytes vertices + 2 bytes attr = 50 bytes
    dtype = np.dtype([
        ("normal", "<f4", (3,)),
        ("vertices", "<f4", (3, 3)),
        ("attr", "<u2"),
    ])
    records = np.frombuffer(raw, dtype=dtype, count=count, offset=84)
    return records["vertices"].reshape(-1, 3).astype(np.float32)


def _ascii_stl_corners(text: str) -> np.ndarray:
    verts: List[List[float]] = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("vertex"):
            parts = line.split()
            verts.append([float(parts[1]), float(parts[2]), float(parts[3])])
    arr = np.array(verts, dtype=np.float32).reshape(-1, 3)
    # Drop a trailing incomplete facet.
    return arr[: len(arr) - len(arr) % 3]
