"""Conversion settings."""

from __future__ import annotations

import dataclasses
import math
import numbers
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidConfig

DEFAULT_RESOLUTION = 64
DEFAULT_PADDING = 0.1
# Voxels per axis in one unit of dispatched work.
TILE_SIZE = 8


@dataclass(frozen=True)
class DistanceFieldConfig:
    """Settings for one mesh to distance field conversion.

    Attributes
    ----------
    resolution:
        Voxels per axis; the grid is ``resolution ** 3`` cubic cells.
    padding:
        Fraction of the mesh's largest extent added around its bounds.
    tile_size:
        Edge length, in voxels, of the cubic tiles the grid is split into
        for parallel dispatch.  Has no effect on the result.
    """

    resolution: int = DEFAULT_RESOLUTION
    padding: float = DEFAULT_PADDING
    tile_size: int = TILE_SIZE

    def validate(self) -> "DistanceFieldConfig":
        """Raise :class:`InvalidConfig` for unusable values, else return self."""
        if not _is_int(self.resolution) or self.resolution <= 0:
            raise InvalidConfig(
                f"resolution must be a positive integer, got {self.resolution!r}"
            )
        if (
            not isinstance(self.padding, numbers.Real)
            or isinstance(self.padding, bool)
            or not math.isfinite(self.padding)
            or self.padding < 0
        ):
            raise InvalidConfig(
                f"padding must be a finite non-negative number, got {self.padding!r}"
            )
        if not _is_int(self.tile_size) or self.tile_size <= 0:
            raise InvalidConfig(
                f"tile_size must be a positive integer, got {self.tile_size!r}"
            )
        return self


def _is_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def resolve_config(
    config: Optional[DistanceFieldConfig] = None, **overrides
) -> DistanceFieldConfig:
    """Merge *overrides* onto *config* (or the defaults) and validate.

    >>> resolve_config(resolution=32).padding
    0.1
    """
    base = config if config is not None else DistanceFieldConfig()
    if overrides:
        known = {f.name for f in dataclasses.fields(DistanceFieldConfig)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise InvalidConfig(f"unknown config option(s): {', '.join(unknown)}")
        base = dataclasses.replace(base, **overrides)
    return base.validate()
