"""Per-sample distance math for one triangle.

All symbols here are private (underscore-prefixed); the grid evaluator is
the only caller.

Every function works on the last axis and broadcasts over the leading
ones: ``P`` of shape ``(N, 3)`` against one triangle with ``(3,)`` corners,
against one triangle per point with ``(N, 3)`` corners, or ``(N, 1, 3)``
against a block of ``B`` triangles with ``(B, 3)`` corners, giving
``(N, B)`` results.

Algorithms
----------
Unsigned distance: barycentric clamp.
    The closest point on the triangle's *plane* is found by solving the 2×2
    normal equations for barycentric coordinates ``(s, t)`` in the basis
    ``e0 = v1 - v0``, ``e1 = v2 - v0``.  The coordinates are then clamped:
    ``s < 0`` becomes 0, ``t < 0`` becomes 0 and, when ``s + t > 1``, both are divided by
    ``s + t``.  A near-singular system (``|det| < 1e-10``, i.e. a zero-area
    triangle) falls back to the distance to ``v0``.

Sign: single-triangle normal.
    ``sign(n · (P - centroid))`` with ``n`` the unit normal of ``e0 × e1``.
    Evaluated only against the closest triangle, not blended across
    neighbours, so it is unreliable near sharp edges of open meshes.
    Zero (degenerate normal, or P in the triangle's plane) counts as
    outside.

Products are written out component by component instead of using ``@`` or
``np.sum``: the result for a point must not depend on how many other points
share the batch.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import numpy.typing as npt

_F = npt.NDArray[np.floating]

_DET_EPS = 1e-10


def _dot(a: _F, b: _F) -> _F:
    return a[..., 0] * b[..., 0] + a[..., 1] * b[..., 1] + a[..., 2] * b[..., 2]


def _cross(a: _F, b: _F) -> _F:
    return np.stack(
        [
            a[..., 1] * b[..., 2] - a[..., 2] * b[..., 1],
            a[..., 2] * b[..., 0] - a[..., 0] * b[..., 2],
            a[..., 0] * b[..., 1] - a[..., 1] * b[..., 0],
        ],
        axis=-1,
    )


# ---------------------------------------------------------------------------
# Unsigned distance
# ---------------------------------------------------------------------------

def _closest_point_on_triangle(P: _F, v0: _F, v1: _F, v2: _F) -> _F:
    """Closest point on the filled triangle for each point in *P*.

    Returns an array of the broadcast shape ``(..., 3)``.  For a degenerate
    triangle the result is ``v0``.
    """
    e0 = v1 - v0
    e1 = v2 - v0
    w = P - v0

    a = _dot(e0, e0)
    b = _dot(e0, e1)
    c = _dot(e1, e1)
    d = _dot(e0, w)
    e = _dot(e1, w)

    det = a * c - b * b
    degenerate = np.abs(det) < _DET_EPS
    det = np.where(degenerate, 1.0, det)

    s = np.maximum((c * d - b * e) / det, 0.0)
    t = np.maximum((a * e - b * d) / det, 0.0)
    total = s + t
    scale = np.where(total > 1.0, total, 1.0)
    s = np.where(degenerate, 0.0, s / scale)
    t = np.where(degenerate, 0.0, t / scale)

    return v0 + s[..., None] * e0 + t[..., None] * e1


def _triangle_distance(P: _F, v0: _F, v1: _F, v2: _F) -> _F:
    """Unsigned distances from *P* to the triangle(s)."""
    diff = P - _closest_point_on_triangle(P, v0, v1, v2)
    return np.sqrt(_dot(diff, diff))


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

def _triangle_normal(v0: _F, v1: _F, v2: _F) -> _F:
    """Unit normal of ``(v1 - v0) × (v2 - v0)``; zero for degenerate triangles."""
    n = _cross(v1 - v0, v2 - v0)
    length = np.sqrt(_dot(n, n))
    length = np.where(length > 0.0, length, 1.0)
    return n / length[..., None]


def _triangle_sign(P: _F, v0: _F, v1: _F, v2: _F) -> _F:
    """``-1.0`` where *P* is behind the face, ``+1.0`` elsewhere."""
    centroid = (v0 + v1 + v2) / 3.0
    side = _dot(_triangle_normal(v0, v1, v2), P - centroid)
    return np.where(side < 0.0, -1.0, 1.0)


def _signed_distance(P: _F, v0: _F, v1: _F, v2: _F) -> Tuple[_F, _F]:
    """Return ``(unsigned distance, sign)`` of *P* against one triangle."""
    return _triangle_distance(P, v0, v1, v2), _triangle_sign(P, v0, v1, v2)
