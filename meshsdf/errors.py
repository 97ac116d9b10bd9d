"""Exception hierarchy for meshsdf.

Every error the converter raises derives from :class:`MeshSDFError` and
also from the closest built-in exception, so callers may catch either.

* :class:`InvalidConfig`: bad resolution / padding / tile size, or an empty
  sampling volume.  Raised before anything is allocated.
* :class:`EmptyMesh`: the mesh has no vertices or no triangles.
* :class:`ResourceExhausted`: a buffer or the output grid could not be
  allocated.  Carries the attempted size in ``requested_bytes``.
* :class:`ComputeBackendUnavailable`: the parallel execution substrate could
  not be acquired, or was lost during a dispatch.
"""

from __future__ import annotations

from typing import Optional


class MeshSDFError(Exception):
    """Base class for all meshsdf errors."""


class InvalidConfig(MeshSDFError, ValueError):
    """Rejected configuration value."""


class EmptyMesh(MeshSDFError, ValueError):
    """Mesh with zero vertices or zero triangles."""


class ResourceExhausted(MeshSDFError, MemoryError):
    """Allocation of a mesh buffer or of the output grid failed."""

    def __init__(self, message: str, requested_bytes: Optional[int] = None) -> None:
        if requested_bytes is not None:
            message = f"{message} (requested {requested_bytes:,} bytes)"
        super().__init__(message)
        self.requested_bytes = requested_bytes


class ComputeBackendUnavailable(MeshSDFError, RuntimeError):
    """The compute backend cannot be acquired or stopped working."""
