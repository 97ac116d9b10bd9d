"""meshsdf: triangle mesh to volumetric Signed Distance Field (numpy).

Samples the signed distance to a triangulated surface at the centre of every
cell of a cubical ``resolution³`` grid wrapped around the mesh.

Quick start
-----------
>>> from meshsdf import convert, load_obj
>>> mesh = load_obj("bunny.obj")
>>> with convert(mesh, resolution=32, padding=0.1) as field:
...     phi = field.volume          # (32, 32, 32), indexed [z, y, x]

Sign heuristic
--------------
The sign of a sample is taken from the normal of the single closest
triangle (negative behind the face).  It is reliable for closed, consistently
outward-wound meshes away from sharp features, and unreliable near sharp
edges or on open / self-intersecting meshes.

Performance
-----------
Brute force: O(resolution³ × F).  Tiles of 8×8×8 voxels are evaluated in a
thread pool.  Practical sizes are resolutions 32–128 and meshes of a few
thousand triangles.
"""

from .backend import ComputeBackend, DeviceBuffer, Dispatch, ThreadPoolBackend
from .bounds import VolumeBounds, volume_bounds
from .config import (
    DEFAULT_PADDING,
    DEFAULT_RESOLUTION,
    TILE_SIZE,
    DistanceFieldConfig,
    resolve_config,
)
from .errors import (
    ComputeBackendUnavailable,
    EmptyMesh,
    InvalidConfig,
    MeshSDFError,
    ResourceExhausted,
)
from .field import DistanceField, FieldBuffer, save_npy
from .loaders import OBJParseError, load_obj, load_stl, parse_obj
from .pipeline import convert
from .types import BoundingBox, Mesh, Vec3, bounds_center, bounds_size, compute_bounds

__version__ = "0.1.0"

__all__ = [
    # Conversion
    "convert",
    "DistanceField",
    "DistanceFieldConfig",
    "resolve_config",
    "DEFAULT_RESOLUTION",
    "DEFAULT_PADDING",
    "TILE_SIZE",

    # Data model
    "Vec3",
    "BoundingBox",
    "Mesh",
    "compute_bounds",
    "bounds_center",
    "bounds_size",
    "VolumeBounds",
    "volume_bounds",

    # Backends and buffers
    "ComputeBackend",
    "ThreadPoolBackend",
    "DeviceBuffer",
    "Dispatch",
    "FieldBuffer",
    "save_npy",

    # Loading
    "parse_obj",
    "load_obj",
    "load_stl",
    "OBJParseError",

    # Errors
    "MeshSDFError",
    "InvalidConfig",
    "EmptyMesh",
    "ResourceExhausted",
    "ComputeBackendUnavailable",
]
