"""Brute-force grid evaluation.

The ``resolution³`` voxel grid is cut into cubic tiles.  Each tile is an
independent unit of work: it reads the shared, read-only vertex and index
arrays and writes only its own cells of the flat output grid, so tiles can
run on any number of workers without locks.

Per voxel the triangles are visited in index order and the first triangle
reaching the minimum distance wins.  Points are processed in fixed-size
chunks and triangles in blocks, so memory per tile does not grow with the
tile size.  ``np.argmin`` returns the first minimum within a block and a strict
``<`` across blocks keeps the earlier block, which together reproduce the
sequential first-seen rule.  The sign comes from the winning triangle only.

Complexity is O(resolution³ × F); there is no spatial index.
"""

from __future__ import annotations

from typing import Iterator, NamedTuple, Tuple

import numpy as np
import numpy.typing as npt

from ._kernel import _triangle_distance, _triangle_sign
from .bounds import VolumeBounds
from .config import TILE_SIZE

_Array = npt.NDArray[np.floating]

# Points and triangles evaluated together in one pass.  The (points, block, 3)
# float64 temporaries stay near 1 MB each whatever the tile size.
_POINT_CHUNK = 1024
_TRIANGLE_BLOCK = 64


class Tile(NamedTuple):
    """Half-open voxel range ``[start, stop)`` per axis, ``(x, y, z)`` order."""

    start: Tuple[int, int, int]
    stop: Tuple[int, int, int]

    @property
    def shape(self) -> Tuple[int, int, int]:
        """``(nz, ny, nx)``, z-first like the grid."""
        return tuple(hi - lo for lo, hi in zip(self.start, self.stop))[::-1]  # type: ignore[return-value]


def iter_tiles(resolution: int, tile_size: int = TILE_SIZE) -> Iterator[Tile]:
    """Yield tiles covering ``[0, resolution)³``; edge tiles are clipped."""
    starts = range(0, resolution, tile_size)
    for z in starts:
        for y in starts:
            for x in starts:
                yield Tile(
                    (x, y, z),
                    (
                        min(x + tile_size, resolution),
                        min(y + tile_size, resolution),
                        min(z + tile_size, resolution),
                    ),
                )


def voxel_centers(tile: Tile, origin: _Array, voxel_size: float) -> _Array:
    """World-space centres of the voxels in *tile*, shape ``(n, 3)``.

    Points are ordered z-major then y then x, matching the flat grid.
    """
    axes = [
        origin[a] + (np.arange(tile.start[a], tile.stop[a]) + 0.5) * voxel_size
        for a in range(3)
    ]
    Z, Y, X = np.meshgrid(axes[2], axes[1], axes[0], indexing="ij")
    return np.stack([X, Y, Z], axis=-1).reshape(-1, 3)


def evaluate_points(points: _Array, corners: _Array) -> _Array:
    """Signed distance from each point to the closest of *corners*.

    Parameters
    ----------
    points:
        ``(n, 3)`` sample points.
    corners:
        ``(F, 3, 3)`` triangle corners, ``F >= 1``.

    Returns
    -------
    numpy.ndarray
        ``(n,)`` float64 signed distances.
    """
    out = np.empty(len(points))
    for start in range(0, len(points), _POINT_CHUNK):
        stop = start + _POINT_CHUNK
        out[start:stop] = _evaluate_chunk(points[start:stop], corners)
    return out


def _evaluate_chunk(points: _Array, corners: _Array) -> _Array:
    n = len(points)
    best = np.full(n, np.inf)
    winner = np.zeros(n, dtype=np.intp)
    P = points[:, None, :]

    for start in range(0, len(corners), _TRIANGLE_BLOCK):
        block = corners[start:start + _TRIANGLE_BLOCK]
        dist = _triangle_distance(P, block[:, 0], block[:, 1], block[:, 2])  # (n, B)
        local = np.argmin(dist, axis=1)
        local_best = dist[np.arange(n), local]
        better = local_best < best
        best = np.where(better, local_best, best)
        winner = np.where(better, start + local, winner)

    tri = corners[winner]
    sign = _triangle_sign(points, tri[:, 0], tri[:, 1], tri[:, 2])
    return sign * best


def evaluate_tile(
    tile: Tile,
    grid: np.ndarray,
    vertices: np.ndarray,
    indices: np.ndarray,
    origin: _Array,
    voxel_size: float,
    resolution: int,
) -> None:
    """Fill the cells of *tile* in the flat float32 *grid*."""
    corners = vertices.reshape(-1, 3).astype(np.float64)[indices.reshape(-1, 3)]
    points = voxel_centers(tile, origin, voxel_size)
    values = evaluate_points(points, corners)

    (x0, y0, z0), (x1, y1, z1) = tile
    cube = grid.reshape(resolution, resolution, resolution)
    cube[z0:z1, y0:y1, x0:x1] = values.reshape(tile.shape).astype(np.float32)


class GridEvaluator:
    """Kernel object handed to :meth:`ComputeBackend.dispatch`.

    Binds the sampling volume so a backend only has to pass
    ``(tile, grid, vertices, indices)``.
    """

    def __init__(
        self, volume: VolumeBounds, resolution: int, tile_size: int = TILE_SIZE
    ) -> None:
        self.origin = np.array(volume.bounds.min, dtype=np.float64)
        self.voxel_size = float(volume.voxel_size)
        self.resolution = resolution
        self.tile_size = tile_size

    def tiles(self) -> Iterator[Tile]:
        return iter_tiles(self.resolution, self.tile_size)

    def __call__(
        self, tile: Tile, grid: np.ndarray, vertices: np.ndarray, indices: np.ndarray
    ) -> None:
        evaluate_tile(
            tile, grid, vertices, indices,
            self.origin, self.voxel_size, self.resolution,
        )
