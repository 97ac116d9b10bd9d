"""Mesh to distance field conversion."""

from __future__ import annotations

import logging
import time
from typing import Optional

from .backend import ComputeBackend, ThreadPoolBackend
from .bounds import volume_bounds
from .config import DistanceFieldConfig, resolve_config
from .errors import EmptyMesh, InvalidConfig
from .evaluator import GridEvaluator
from .field import DistanceField, FieldBuffer
from .types import Mesh

logger = logging.getLogger(__name__)


def convert(
    mesh: Mesh,
    config: Optional[DistanceFieldConfig] = None,
    *,
    backend: Optional[ComputeBackend] = None,
    **overrides,
) -> DistanceField:
    """Compute the signed distance field of *mesh*.

    Parameters
    ----------
    mesh:
        Triangle mesh; read only.
    config:
        Conversion settings.  Defaults to :class:`DistanceFieldConfig()`.
    backend:
        Where to run the evaluation.  When omitted a
        :class:`ThreadPoolBackend` is created for this call and shut down
        before returning.  A caller-supplied backend is acquired but not
        closed.
    **overrides:
        Individual config fields (``resolution=32``, ``padding=0.2``, ...)
        applied on top of *config*.

    Returns
    -------
    DistanceField
        Owned by the caller; call :meth:`DistanceField.release` when done.

    Raises
    ------
    InvalidConfig
        Bad settings, or a mesh with zero extent (empty sampling volume).
    EmptyMesh
        No vertices or no triangles.
    ResourceExhausted
        A mesh buffer or the grid could not be allocated.
    ComputeBackendUnavailable
        The backend could not be acquired or was lost mid-dispatch.

    Whatever the outcome, no transient buffer is left allocated, and on
    failure the output grid is released too.
    """
    cfg = resolve_config(config, **overrides)

    if mesh.vertex_count == 0 or mesh.triangle_count == 0:
        raise EmptyMesh(
            f"mesh has {mesh.vertex_count} vertices and "
            f"{mesh.triangle_count} triangles"
        )

    volume = volume_bounds(mesh.bounds, cfg.padding, cfg.resolution)
    if volume.is_empty:
        raise InvalidConfig(
            "mesh has zero extent; the sampling volume would be empty"
        )

    owns_backend = backend is None
    if backend is None:
        backend = ThreadPoolBackend()
    try:
        backend.acquire()
        return _run(mesh, cfg, volume, backend)
    finally:
        if owns_backend:
            backend.close()


def _run(mesh, cfg, volume, backend) -> DistanceField:
    r = cfg.resolution
    evaluator = GridEvaluator(volume, r, cfg.tile_size)
    logger.info(
        "computing %d^3 distance field over %d triangles (backend=%s)",
        r, mesh.triangle_count, backend.name,
    )
    t0 = time.perf_counter()

    with FieldBuffer(backend, r) as buffers:
        buffers.upload_mesh(mesh)
        grid_buffer = buffers.allocate_grid()
        dispatch = backend.dispatch(
            evaluator, evaluator.tiles(),
            grid_buffer, buffers.vertices, buffers.indices,
        )
        backend.wait(dispatch)
        grid = buffers.read_back()
        buffers.release_mesh()
        device_grid = buffers.detach_grid()

    logger.info(
        "distance field done in %.3fs (%d tiles, voxel_size=%g)",
        time.perf_counter() - t0, len(dispatch), volume.voxel_size,
    )
    return DistanceField(
        grid, r, volume.bounds, volume.voxel_size,
        backend=backend, device_grid=device_grid,
    )
