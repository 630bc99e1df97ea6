""" Some type utilities for gsdrecon """

from collections.abc import Callable
from typing import Literal, Protocol, Self, TypeAlias, runtime_checkable

import numpy as np
from numpy.typing import ArrayLike, NDArray

__all__ = ["Self"]


__all__ += ["CountGrid", "DensityGrid", "OutputArray", "GridLike", "ProgressCallback", "DegeneratePolicy"]
# ---------------- Grids ---------------------------------

CountGrid: TypeAlias = NDArray[np.integer]
"""Read-only event counts, shape (H, W) or (slices, H, W)."""

DensityGrid: TypeAlias = NDArray[np.float64]
"""Unnormalised smoothed intensity, shape (H, W)."""

OutputArray: TypeAlias = NDArray[np.uint16]
"""Normalised reconstruction, same shape as the source."""

ProgressCallback: TypeAlias = Callable[[int, int | None], None]
"""Called as ``progress(completed, total)`` after each finished pixel task."""

DegeneratePolicy: TypeAlias = Literal["zero", "mid", "raise"]
"""What the normaliser emits when the density field is flat."""


__all__ += ["GridReader", "GridWriter"]
# ---------------- Host accessors ------------------------

@runtime_checkable
class GridReader(Protocol):
    """
    Duck-typed read accessor of a host image: anything with ``width``,
    ``height`` and ``get(x, y)`` matches.
    """
    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def get(self, x: int, y: int) -> int: ...


@runtime_checkable
class GridWriter(Protocol):
    """Duck-typed write accessor of a host image."""
    def set(self, x: int, y: int, value: int) -> None: ...


GridLike: TypeAlias = ArrayLike | GridReader
"""Anything :func:`gsdrecon.grid.as_source_array` accepts."""
