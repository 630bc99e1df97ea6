"""Per-pixel Gaussian kernel density estimate.

The value of output pixel (x, y) is the kernel-weighted sum of the event
counts inside a square window of half width ``r = max_pixel_distance``
around it, divided by the number of pixels in that window.

Window convention
-----------------
Bounds are inclusive on both ends and clipped to the grid::

    min_x = max(0, x - r)      max_x = min(W - 1, x + r)
    min_y = max(0, y - r)      max_y = min(H - 1, y + r)

and the divisor is ``(max_x - min_x + 1) * (max_y - min_y + 1)``, exactly the
number of samples visited. Windows clipped by the image border are therefore
divided by fewer samples, which keeps border pixels from being systematically
darker than interior ones.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from gsdrecon.kernel import KernelParameters
    from gsdrecon.util._type import CountGrid, DensityGrid

__all__ = ["estimate_density", "window_bounds", "PixelTask", "TaskGrid", "iter_tasks"]


def window_bounds(x: int, y: int, width: int, height: int, radius: int) -> tuple[int, int, int, int]:
    """Return the inclusive window ``(min_x, max_x, min_y, max_y)`` around (x, y)."""
    return (
        max(0, x - radius),
        min(width - 1, x + radius),
        max(0, y - radius),
        min(height - 1, y + radius),
    )


def estimate_density(x: int, y: int, source: CountGrid, kernel: KernelParameters) -> float:
    """
    Smoothed, edge-corrected density at pixel (x, y).

    Parameters
    ----------
    x, y : int
        Output coordinate; column and row of ``source``.
    source : ndarray of shape (H, W)
        Non-negative event counts.
    kernel : KernelParameters
        Bandwidth and window radius.

    Returns
    -------
    float
        Sum of ``exp(-0.5 * d**2 / bandwidth**2) * count`` over the window
        divided by the window's sample count; 0.0 when the window holds no
        events.

    Raises
    ------
    FloatingPointError
        If the weighted sum overflows or becomes invalid.
    """
    height, width = source.shape
    r = kernel.max_pixel_distance
    min_x, max_x, min_y, max_y = window_bounds(x, y, width, height, r)

    counts = source[min_y:max_y + 1, min_x:max_x + 1]
    n_samples = counts.size

    occupied = counts > 0
    if not occupied.any():
        return 0.0

    # the table is centred on (rc, rc) and only spans offsets the grid can reach
    rc = kernel.clipped_radius(width, height)
    table = kernel.weight_table(rc)
    weights = table[min_y - y + rc:max_y - y + rc + 1, min_x - x + rc:max_x - x + rc + 1]
    with np.errstate(over="raise", invalid="raise"):
        total = np.sum(weights[occupied] * counts[occupied], dtype=np.float64)
        return float(total / n_samples)


@dataclass(frozen=True)
class PixelTask:
    """
    Unit of work for one output pixel.

    A task holds references to the shared, read-only source grid and kernel
    and to the density field, of which it writes only cell (x, y).
    """
    x: int
    y: int
    source: CountGrid = field(repr=False, compare=False)
    density: DensityGrid = field(repr=False, compare=False)
    kernel: KernelParameters = field(repr=False, compare=False)

    def compute(self) -> float:
        return estimate_density(self.x, self.y, self.source, self.kernel)

    def run(self) -> float:
        """Compute the estimate, store it in the task's own cell and return it."""
        value = self.compute()
        self.density[self.y, self.x] = value
        return value


class TaskGrid:
    """Sized, lazily built sequence of the ``W * H`` tasks of one image, row-major."""
    def __init__(self, source: CountGrid, density: DensityGrid, kernel: KernelParameters):
        if source.shape != density.shape:
            raise ValueError(f"density field shape {density.shape} does not match source shape {source.shape}")
        self.source = source
        self.density = density
        self.kernel = kernel

    def __len__(self) -> int:
        return self.source.size

    def __iter__(self) -> Iterator[PixelTask]:
        height, width = self.source.shape
        for y in range(height):
            for x in range(width):
                yield PixelTask(x, y, self.source, self.density, self.kernel)


def iter_tasks(source: CountGrid, density: DensityGrid, kernel: KernelParameters) -> TaskGrid:
    """Build the tasks covering every pixel of ``source``."""
    return TaskGrid(source, density, kernel)
