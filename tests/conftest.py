"""Shared meshes and a counting, fault-injecting backend."""

from __future__ import annotations

from concurrent.futures import BrokenExecutor
from typing import Dict, Optional

import numpy as np
import pytest

from meshsdf import (
    ComputeBackendUnavailable,
    Mesh,
    ResourceExhausted,
    ThreadPoolBackend,
)


# ---------------------------------------------------------------------------
# Meshes
# ---------------------------------------------------------------------------

def make_triangle() -> Mesh:
    """Right triangle (0,0,0), (1,0,0), (0,1,0); normal +Z."""
    return Mesh([0, 0, 0, 1, 0, 0, 0, 1, 0], [0, 1, 2])


def make_octahedron(radius: float = 1.0) -> Mesh:
    """Outward-wound octahedron with vertices at ±radius on each axis."""
    r = radius
    verts = [r, 0, 0, -r, 0, 0, 0, r, 0, 0, -r, 0, 0, 0, r, 0, 0, -r]
    faces = [
        0, 2, 4, 2, 1, 4, 1, 3, 4, 3, 0, 4,
        2, 0, 5, 1, 2, 5, 3, 1, 5, 0, 3, 5,
    ]
    return Mesh(verts, faces)


def make_box(hx: float = 0.5, hy: float = 0.5, hz: float = 0.5) -> Mesh:
    """12-triangle watertight box [-hx,hx]×[-hy,hy]×[-hz,hz]."""
    verts = np.array([
        [-hx, -hy, -hz], [ hx, -hy, -hz], [ hx,  hy, -hz], [-hx,  hy, -hz],
        [-hx, -hy,  hz], [ hx, -hy,  hz], [ hx,  hy,  hz], [-hx,  hy,  hz],
    ])
    faces = [
        (0, 2, 1), (0, 3, 2),   # -Z
        (4, 5, 6), (4, 6, 7),   # +Z
        (0, 4, 7), (0, 7, 3),   # -X
        (1, 2, 6), (1, 6, 5),   # +X
        (0, 1, 5), (0, 5, 4),   # -Y
        (3, 7, 6), (3, 6, 2),   # +Y
    ]
    return Mesh(verts, faces)


@pytest.fixture
def triangle() -> Mesh:
    return make_triangle()


@pytest.fixture
def octahedron() -> Mesh:
    return make_octahedron()


@pytest.fixture
def box() -> Mesh:
    return make_box()


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

_FAILURES = {
    "acquire": ComputeBackendUnavailable,
    "upload": ResourceExhausted,
    "allocate_grid": ResourceExhausted,
    "dispatch": ComputeBackendUnavailable,
    "read_back": ResourceExhausted,
}

_KERNEL_FAILURES = {
    "kernel": BrokenExecutor,
    "kernel_memory": MemoryError,
}


class CountingBackend(ThreadPoolBackend):
    """ThreadPoolBackend that counts allocations and can fail on demand.

    ``fail_on`` names a stage (``"acquire"``, ``"upload"``,
    ``"allocate_grid"``, ``"dispatch"``, ``"read_back"``, ``"kernel"`` or
    ``"kernel_memory"``); the ``fail_call``-th call of that stage raises.
    ``"kernel"`` makes one tile raise :class:`BrokenExecutor` inside a worker,
    like a lost device; ``"kernel_memory"`` raises :class:`MemoryError` there.
    """

    def __init__(self, fail_on: Optional[str] = None, fail_call: int = 1, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_on = fail_on
        self.fail_call = fail_call
        self.calls: Dict[str, int] = {}
        self.allocations = 0
        self.releases = 0

    def _stage(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if name == self.fail_on and self.calls[name] == self.fail_call:
            raise _FAILURES[name](f"injected {name} failure")

    def acquire(self):
        self._stage("acquire")
        super().acquire()

    def upload(self, array, label=""):
        self._stage("upload")
        return super().upload(array, label)

    def allocate_grid(self, resolution, label=""):
        self._stage("allocate_grid")
        return super().allocate_grid(resolution, label)

    def dispatch(self, kernel, tiles, *buffers):
        self._stage("dispatch")
        if self.fail_on in _KERNEL_FAILURES:
            inner, failure = kernel, _KERNEL_FAILURES[self.fail_on]

            def kernel(tile, *arrays):
                if tile.start == (0, 0, 0):
                    raise failure("injected worker failure")
                inner(tile, *arrays)

        return super().dispatch(kernel, tiles, *buffers)

    def read_back(self, buffer):
        self._stage("read_back")
        return super().read_back(buffer)

    def _track(self, buffer):
        self.allocations += 1
        return super()._track(buffer)

    def release(self, buffer):
        if not buffer.released:
            self.releases += 1
        super().release(buffer)


@pytest.fixture
def counting_backend():
    backend = CountingBackend(max_workers=2)
    yield backend
    backend.close()
