"""Core mesh data types."""

from __future__ import annotations

from typing import NamedTuple, Tuple

import numpy as np
import numpy.typing as npt

_Array = npt.NDArray[np.floating]


class Vec3(NamedTuple):
    x: float
    y: float
    z: float


class BoundingBox(NamedTuple):
    """Axis-aligned box with componentwise ``min <= max``."""

    min: Vec3
    max: Vec3


_ZERO = Vec3(0.0, 0.0, 0.0)


def compute_bounds(vertices: _Array) -> BoundingBox:
    """Bounding box of a flat ``[x0, y0, z0, x1, ...]`` vertex array.

    An empty array yields the all-zero box.
    """
    verts = np.asarray(vertices).reshape(-1, 3)
    if len(verts) == 0:
        return BoundingBox(_ZERO, _ZERO)
    lo = verts.min(axis=0)
    hi = verts.max(axis=0)
    return BoundingBox(
        Vec3(float(lo[0]), float(lo[1]), float(lo[2])),
        Vec3(float(hi[0]), float(hi[1]), float(hi[2])),
    )


def bounds_center(bounds: BoundingBox) -> Vec3:
    lo, hi = bounds
    return Vec3((lo.x + hi.x) / 2, (lo.y + hi.y) / 2, (lo.z + hi.z) / 2)


def bounds_size(bounds: BoundingBox) -> Vec3:
    lo, hi = bounds
    return Vec3(hi.x - lo.x, hi.y - lo.y, hi.z - lo.z)


class Mesh:
    """Indexed triangle mesh.

    Parameters
    ----------
    vertices:
        Flat sequence ``[x0, y0, z0, x1, y1, z1, ...]`` or an ``(V, 3)``
        array.  Stored as ``float32``.
    indices:
        Flat sequence of vertex indices, three per triangle, or an ``(F, 3)``
        array.  Stored as ``uint32``.

    Both arrays are copied and made read-only, so the mesh is immutable and
    never aliases caller memory.  Raises :class:`ValueError` when a vertex
    coordinate is not finite, or when the index array is not a whole number
    of triangles or references a missing vertex.
    """

    def __init__(self, vertices, indices) -> None:
        verts = np.array(vertices, dtype=np.float32).reshape(-1)
        if verts.size % 3 != 0:
            raise ValueError(
                f"vertex array length {verts.size} is not a multiple of 3"
            )
        if not np.all(np.isfinite(verts)):
            bad = int(np.flatnonzero(~np.isfinite(verts))[0]) // 3
            raise ValueError(f"vertex {bad} has a non-finite coordinate")

        idx = np.asarray(indices)
        if idx.size and not np.issubdtype(idx.dtype, np.integer):
            raise ValueError(f"indices must be integers, got dtype {idx.dtype}")
        idx = idx.reshape(-1)
        if idx.size % 3 != 0:
            raise ValueError(
                f"index array length {idx.size} is not a multiple of 3"
            )
        vertex_count = verts.size // 3
        if idx.size and (idx.min() < 0 or idx.max() >= vertex_count):
            raise ValueError(
                f"triangle index out of range [0, {vertex_count}): "
                f"min={idx.min()}, max={idx.max()}"
            )

        verts.setflags(write=False)
        idx = idx.astype(np.uint32)
        idx.setflags(write=False)
        self._vertices = verts
        self._indices = idx
        self._bounds = compute_bounds(verts)

    @property
    def vertices(self) -> np.ndarray:
        return self._vertices

    @property
    def indices(self) -> np.ndarray:
        return self._indices

    @property
    def vertex_count(self) -> int:
        return self._vertices.size // 3

    @property
    def triangle_count(self) -> int:
        return self._indices.size // 3

    @property
    def bounds(self) -> BoundingBox:
        return self._bounds

    def triangle(self, i: int) -> Tuple[Vec3, Vec3, Vec3]:
        """Corner positions ``(v0, v1, v2)`` of triangle *i*."""
        if not 0 <= i < self.triangle_count:
            raise IndexError(f"triangle {i} out of range [0, {self.triangle_count})")
        corners = self._vertices.reshape(-1, 3)[self._indices[3 * i:3 * i + 3]]
        return tuple(Vec3(*map(float, c)) for c in corners)  # type: ignore[return-value]

    def triangles(self) -> np.ndarray:
        """Return a ``(F, 3, 3)`` float64 array of triangle corners."""
        verts = self._vertices.reshape(-1, 3).astype(np.float64)
        return verts[self._indices.reshape(-1, 3)]

    def __repr__(self) -> str:
        return (
            f"Mesh(vertex_count={self.vertex_count}, "
            f"triangle_count={self.triangle_count})"
        )
