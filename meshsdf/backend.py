"""Compute backends: where the voxel grid is evaluated.

A backend offers the handful of operations the converter needs and nothing
more:

1. :meth:`~ComputeBackend.upload`: read-only buffer from a host array
2. :meth:`~ComputeBackend.allocate_grid`: writable ``resolution³`` float32 grid
3. :meth:`~ComputeBackend.dispatch`: run a kernel over a sequence of tiles
4. :meth:`~ComputeBackend.wait`: block until a dispatch has completed
5. :meth:`~ComputeBackend.read_back`: host copy of a buffer
6. :meth:`~ComputeBackend.release`: free a buffer

plus :meth:`~ComputeBackend.acquire` / :meth:`~ComputeBackend.close` for the
execution substrate itself.  :class:`ThreadPoolBackend` is the stock
implementation; numpy releases the GIL inside its element-wise loops, so
tiles evaluate concurrently.
"""

from __future__ import annotations

import abc
import logging
from concurrent.futures import (
    FIRST_EXCEPTION,
    BrokenExecutor,
    Future,
    ThreadPoolExecutor,
    wait as _wait_futures,
)
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .errors import ComputeBackendUnavailable, ResourceExhausted

logger = logging.getLogger(__name__)

_GRID_DTYPE = np.dtype(np.float32)


class DeviceBuffer:
    """Handle to an array owned by a backend.

    ``array`` is ``None`` once the buffer has been released.
    """

    __slots__ = ("label", "array", "nbytes", "read_only")

    def __init__(self, label: str, array: np.ndarray, read_only: bool) -> None:
        self.label = label
        self.array: Optional[np.ndarray] = array
        self.nbytes = int(array.nbytes)
        self.read_only = read_only

    @property
    def released(self) -> bool:
        return self.array is None

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.nbytes} bytes"
        return f"DeviceBuffer({self.label!r}, {state})"


class Dispatch:
    """In-flight kernel launch: one future per tile.

    ``output_bytes`` is the total size of the writable buffers the kernel
    fills, or ``None`` when it writes none.
    """

    def __init__(
        self, futures: List[Future], output_bytes: Optional[int] = None
    ) -> None:
        self.futures = futures
        self.output_bytes = output_bytes

    def __len__(self) -> int:
        return len(self.futures)

    def done(self) -> bool:
        return all(f.done() for f in self.futures)


Kernel = Callable[..., None]


class ComputeBackend(abc.ABC):
    """Abstract parallel execution substrate.

    Usable as a context manager: ``__enter__`` acquires, ``__exit__`` closes.
    """

    name = "abstract"

    def __enter__(self) -> "ComputeBackend":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abc.abstractmethod
    def acquire(self) -> None:
        """Make the backend ready; raise :class:`ComputeBackendUnavailable` if it cannot be."""

    @abc.abstractmethod
    def close(self) -> None:
        """Stop the execution substrate.  Live buffers stay valid."""

    @abc.abstractmethod
    def upload(self, array: np.ndarray, label: str = "") -> DeviceBuffer:
        ...

    @abc.abstractmethod
    def allocate_grid(self, resolution: int, label: str = "") -> DeviceBuffer:
        ...

    @abc.abstractmethod
    def dispatch(
        self, kernel: Kernel, tiles: Iterable, *buffers: DeviceBuffer
    ) -> Dispatch:
        """Launch ``kernel(tile, *arrays)`` once per tile."""

    @abc.abstractmethod
    def wait(self, dispatch: Dispatch) -> None:
        ...

    @abc.abstractmethod
    def read_back(self, buffer: DeviceBuffer) -> np.ndarray:
        ...

    @abc.abstractmethod
    def release(self, buffer: DeviceBuffer) -> None:
        ...

    @property
    @abc.abstractmethod
    def live_buffers(self) -> int:
        """Number of buffers allocated and not yet released."""


class ThreadPoolBackend(ComputeBackend):
    """Host backend on a :class:`concurrent.futures.ThreadPoolExecutor`.

    Parameters
    ----------
    max_workers:
        Pool size; ``None`` lets :mod:`concurrent.futures` choose.
    memory_limit:
        Optional cap, in bytes, on the total size of live buffers.  An
        allocation that would exceed it raises :class:`ResourceExhausted`.

    Buffers are tracked from the calling thread only; workers never
    allocate or release.
    """

    name = "threads"

    def __init__(
        self,
        max_workers: Optional[int] = None,
        memory_limit: Optional[int] = None,
    ) -> None:
        self.max_workers = max_workers
        self.memory_limit = memory_limit
        self._executor: Optional[ThreadPoolExecutor] = None
        self._live: Dict[int, DeviceBuffer] = {}
        self._allocated_bytes = 0

    # ------------------------------------------------------------------
    # Substrate
    # ------------------------------------------------------------------

    def acquire(self) -> None:
        if self._executor is not None:
            return
        try:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="meshsdf"
            )
        except (ValueError, RuntimeError) as exc:
            raise ComputeBackendUnavailable(
                f"cannot start thread pool (max_workers={self.max_workers!r}): {exc}"
            ) from exc
        logger.debug("thread pool started (max_workers=%s)", self.max_workers)

    def close(self) -> None:
        if self._executor is None:
            return
        self._executor.shutdown(wait=True)
        self._executor = None
        logger.debug("thread pool stopped")

    @property
    def acquired(self) -> bool:
        return self._executor is not None

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    @property
    def live_buffers(self) -> int:
        return len(self._live)

    @property
    def allocated_bytes(self) -> int:
        return self._allocated_bytes

    def upload(self, array: np.ndarray, label: str = "") -> DeviceBuffer:
        src = np.asarray(array)
        self._reserve(src.nbytes, label)
        try:
            data = np.array(src, copy=True)
        except MemoryError as exc:
            raise ResourceExhausted(f"cannot upload {label or 'buffer'}", src.nbytes) from exc
        data.setflags(write=False)
        return self._track(DeviceBuffer(label, data, read_only=True))

    def allocate_grid(self, resolution: int, label: str = "") -> DeviceBuffer:
        cells = resolution ** 3
        nbytes = cells * _GRID_DTYPE.itemsize
        self._reserve(nbytes, label)
        try:
            data = np.zeros(cells, dtype=_GRID_DTYPE)
        except (MemoryError, ValueError) as exc:
            raise ResourceExhausted(
                f"cannot allocate {resolution}^3 grid {label!r}", nbytes
            ) from exc
        return self._track(DeviceBuffer(label, data, read_only=False))

    def read_back(self, buffer: DeviceBuffer) -> np.ndarray:
        self._check_live(buffer)
        try:
            return buffer.array.copy()
        except MemoryError as exc:
            raise ResourceExhausted(f"cannot read back {buffer.label!r}", buffer.nbytes) from exc

    def release(self, buffer: DeviceBuffer) -> None:
        if buffer.released:
            return
        if self._live.pop(id(buffer), None) is not None:
            self._allocated_bytes -= buffer.nbytes
        buffer.array = None

    def _reserve(self, nbytes: int, label: str) -> None:
        if self.memory_limit is None:
            return
        if self._allocated_bytes + nbytes > self.memory_limit:
            logger.warning(
                "allocation of %r refused: %d + %d bytes exceeds limit %d",
                label, self._allocated_bytes, nbytes, self.memory_limit,
            )
            raise ResourceExhausted(
                f"cannot allocate {label or 'buffer'}: memory limit "
                f"{self.memory_limit:,} bytes would be exceeded",
                nbytes,
            )

    def _track(self, buffer: DeviceBuffer) -> DeviceBuffer:
        self._live[id(buffer)] = buffer
        self._allocated_bytes += buffer.nbytes
        return buffer

    @staticmethod
    def _check_live(buffer: DeviceBuffer) -> None:
        if buffer.released:
            raise ValueError(f"buffer {buffer.label!r} has been released")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self, kernel: Kernel, tiles: Iterable, *buffers: DeviceBuffer
    ) -> Dispatch:
        if self._executor is None:
            raise ComputeBackendUnavailable("backend has not been acquired")
        for buf in buffers:
            self._check_live(buf)
        arrays = [buf.array for buf in buffers]

        futures: List[Future] = []
        try:
            for tile in tiles:
                futures.append(self._executor.submit(kernel, tile, *arrays))
        except (RuntimeError, BrokenExecutor) as exc:
            # RuntimeError: submit after shutdown.
            self._drain(futures)
            raise ComputeBackendUnavailable(f"dispatch failed: {exc}") from exc
        outputs = [buf.nbytes for buf in buffers if not buf.read_only]
        return Dispatch(futures, sum(outputs) if outputs else None)

    def wait(self, dispatch: Dispatch) -> None:
        done, pending = _wait_futures(dispatch.futures, return_when=FIRST_EXCEPTION)
        failed = next((f for f in done if not f.cancelled() and f.exception()), None)
        if failed is None:
            return

        # No tile may still be writing once the caller sees the error.
        self._drain(list(pending))
        exc = failed.exception()
        if isinstance(exc, BrokenExecutor):
            raise ComputeBackendUnavailable(f"compute backend lost: {exc}") from exc
        if isinstance(exc, MemoryError) and not isinstance(exc, ResourceExhausted):
            raise ResourceExhausted(
                f"worker ran out of memory: {exc}", dispatch.output_bytes
            ) from exc
        raise exc

    @staticmethod
    def _drain(futures: List[Future]) -> None:
        for f in futures:
            f.cancel()
        _wait_futures(futures)
