"""Output grid ownership: :class:`FieldBuffer` and :class:`DistanceField`."""

from __future__ import annotations

import logging
import os
from typing import Optional

import numpy as np
import numpy.typing as npt

from .backend import ComputeBackend, DeviceBuffer
from .types import BoundingBox, Mesh, Vec3

logger = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]


def save_npy(path: str, phi: _Array) -> None:
    """Save *phi* array to *path* (creates parent directories if needed)."""
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    np.save(path, phi)


class DistanceField:
    """Signed distance samples over a cubical volume.

    Attributes
    ----------
    grid:
        Flat ``float32`` array of ``resolution ** 3`` signed distances.  Cell
        ``(x, y, z)`` is at ``x + y * resolution + z * resolution ** 2``.
    resolution:
        Voxels per axis.
    bounds:
        World-space extent of the sampled (padded) volume.
    voxel_size:
        Edge length of one voxel.

    The field also owns the backend grid it was computed into.  Call
    :meth:`release` (or use the field as a context manager) to free it; the
    host ``grid`` stays readable afterwards.
    """

    def __init__(
        self,
        grid: np.ndarray,
        resolution: int,
        bounds: BoundingBox,
        voxel_size: float,
        *,
        backend: Optional[ComputeBackend] = None,
        device_grid: Optional[DeviceBuffer] = None,
    ) -> None:
        if grid.size != resolution ** 3:
            raise ValueError(
                f"grid has {grid.size} cells, expected {resolution}^3 = {resolution ** 3}"
            )
        self.grid = grid
        self.resolution = resolution
        self.bounds = bounds
        self.voxel_size = voxel_size
        self._backend = backend
        self._device_grid = device_grid

    def __enter__(self) -> "DistanceField":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return (
            f"DistanceField(resolution={self.resolution}, "
            f"voxel_size={self.voxel_size:g}, bounds={tuple(self.bounds)})"
        )

    @property
    def released(self) -> bool:
        return self._device_grid is None

    def release(self) -> None:
        """Free the backend grid.  Safe to call more than once."""
        if self._device_grid is not None and self._backend is not None:
            self._backend.release(self._device_grid)
        self._device_grid = None
        self._backend = None

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    @property
    def volume(self) -> np.ndarray:
        """``(r, r, r)`` view of :attr:`grid` indexed ``[z, y, x]``."""
        r = self.resolution
        return self.grid.reshape(r, r, r)

    def index(self, x: int, y: int, z: int) -> int:
        r = self.resolution
        if not (0 <= x < r and 0 <= y < r and 0 <= z < r):
            raise IndexError(f"voxel ({x}, {y}, {z}) outside [0, {r})^3")
        return x + y * r + z * r * r

    def value(self, x: int, y: int, z: int) -> float:
        return float(self.grid[self.index(x, y, z)])

    def voxel_center(self, x: int, y: int, z: int) -> Vec3:
        self.index(x, y, z)
        lo = self.bounds.min
        h = self.voxel_size
        return Vec3(lo.x + (x + 0.5) * h, lo.y + (y + 0.5) * h, lo.z + (z + 0.5) * h)

    def save(self, path: str) -> None:
        """Write :attr:`volume` (z-first) to a ``.npy`` file."""
        save_npy(path, self.volume)


class FieldBuffer:
    """Backend buffers for one conversion.

    Holds the uploaded vertex and index arrays (transient) and the output
    grid (handed to the caller via :meth:`detach_grid`).  As a context
    manager it always releases the mesh copies on exit and, when leaving
    through an exception, the grid as well unless it was detached.
    """

    def __init__(self, backend: ComputeBackend, resolution: int) -> None:
        self.backend = backend
        self.resolution = resolution
        self.vertices: Optional[DeviceBuffer] = None
        self.indices: Optional[DeviceBuffer] = None
        self.grid: Optional[DeviceBuffer] = None

    def __enter__(self) -> "FieldBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_mesh()
        if exc_type is not None and self.grid is not None:
            logger.debug("releasing output grid after %s", exc_type.__name__)
            self.backend.release(self.grid)
            self.grid = None

    def upload_mesh(self, mesh: Mesh) -> None:
        self.vertices = self.backend.upload(mesh.vertices, "mesh vertices")
        self.indices = self.backend.upload(mesh.indices, "mesh indices")

    def allocate_grid(self) -> DeviceBuffer:
        self.grid = self.backend.allocate_grid(self.resolution, "distance field")
        return self.grid

    def read_back(self) -> np.ndarray:
        """Host copy of the flat grid."""
        if self.grid is None:
            raise RuntimeError("output grid has not been allocated")
        return self.backend.read_back(self.grid)

    def release_mesh(self) -> None:
        for name in ("vertices", "indices"):
            buf = getattr(self, name)
            if buf is not None:
                self.backend.release(buf)
                setattr(self, name, None)

    def detach_grid(self) -> DeviceBuffer:
        """Give up ownership of the grid; the caller must release it."""
        if self.grid is None:
            raise RuntimeError("output grid has not been allocated")
        grid, self.grid = self.grid, None
        return grid
