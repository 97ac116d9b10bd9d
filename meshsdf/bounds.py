"""Cubical sampling volume around a mesh."""

from __future__ import annotations

from typing import NamedTuple

from .types import BoundingBox, Vec3, bounds_center, bounds_size


class VolumeBounds(NamedTuple):
    bounds: BoundingBox
    center: Vec3
    half_extent: float
    voxel_size: float

    @property
    def is_empty(self) -> bool:
        return self.half_extent == 0.0


def volume_bounds(
    mesh_bounds: BoundingBox, padding: float, resolution: int
) -> VolumeBounds:
    """Return the padded cube that the distance field samples.

    The cube is centred on *mesh_bounds* and its half extent is
    ``max_extent * (1 + padding) / 2``, so voxels are cubes even for a flat
    or elongated mesh.  A zero-extent mesh yields an empty volume
    (``half_extent == 0``) whatever the padding; callers decide whether that
    is an error.  *resolution* must already be validated as positive.
    """
    center = bounds_center(mesh_bounds)
    max_extent = max(bounds_size(mesh_bounds))
    half_extent = max_extent * (1.0 + padding) / 2.0

    volume = BoundingBox(
        Vec3(center.x - half_extent, center.y - half_extent, center.z - half_extent),
        Vec3(center.x + half_extent, center.y + half_extent, center.z + half_extent),
    )
    voxel_size = (half_extent * 2.0) / resolution
    return VolumeBounds(volume, center, half_extent, voxel_size)
