"""Gaussian kernel parameters.

The smoothing kernel is ``exp(-0.5 * d**2 / bandwidth**2)`` and is truncated
at ``max_pixel_distance = round(5 * bandwidth)`` pixels along each axis,
beyond which its weight is treated as negligible.

Example
-------
>>> from gsdrecon.kernel import KernelParameters
>>> k = KernelParameters.from_bandwidth(1.0)
>>> k.max_pixel_distance
5
>>> k.weights.shape
(11, 11)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import cached_property, lru_cache
from typing import TYPE_CHECKING

import numpy as np

from gsdrecon.errors import InvalidParameterError

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = ["KernelParameters", "DEFAULT_BANDWIDTH", "TRUNCATION_FACTOR", "round_half_up"]

DEFAULT_BANDWIDTH = 5.0

# kernel support radius, in bandwidths
TRUNCATION_FACTOR = 5.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def _validate_bandwidth(bandwidth: float) -> float:
    try:
        value = float(bandwidth)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"kernel bandwidth must be a number, got {bandwidth!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameterError(f"kernel bandwidth must be a positive finite number, got {bandwidth!r}")
    return value


@dataclass(eq=True, frozen=True)
class KernelParameters:
    """Bandwidth of the Gaussian kernel and the quantities derived from it.

    Build instances with :meth:`from_bandwidth`, which validates the
    bandwidth; the derived fields are computed once there.

    Parameters
    ----------
    bandwidth : float
        Standard deviation of the Gaussian, in pixels.
    bandwidth_square : float
        ``bandwidth ** 2``.
    max_pixel_distance : int
        Half width of the square window a pixel's estimate looks at.
    """
    bandwidth: float
    bandwidth_square: float = field(repr=False)
    max_pixel_distance: int

    @classmethod
    def from_bandwidth(cls, bandwidth: float = DEFAULT_BANDWIDTH) -> KernelParameters:
        """Validate ``bandwidth`` and derive the window radius.

        Raises
        ------
        InvalidParameterError
            If ``bandwidth`` is not a positive finite number.
        """
        value = _validate_bandwidth(bandwidth)
        return cls(
            bandwidth=value,
            bandwidth_square=value * value,
            max_pixel_distance=round_half_up(value * TRUNCATION_FACTOR),
        )

    @property
    def window_size(self) -> int:
        """Side length of the full, unclipped window."""
        return 2 * self.max_pixel_distance + 1

    def clipped_radius(self, width: int, height: int) -> int:
        """Largest offset a window can actually reach on a ``width`` x ``height`` grid."""
        return min(self.max_pixel_distance, max(width, height) - 1)

    def weight_table(self, radius: int | None = None) -> NDArray[np.float64]:
        """Kernel weights for offsets up to ``radius``, indexed ``[dy + radius, dx + radius]``.

        ``radius`` defaults to ``max_pixel_distance`` and is capped by it.
        Pass :meth:`clipped_radius` so that wide kernels on small images only
        tabulate the offsets a window can reach. Tables are cached and
        read-only.
        """
        if radius is None or radius > self.max_pixel_distance:
            radius = self.max_pixel_distance
        return _gaussian_table(max(int(radius), 0), self.bandwidth_square)

    @cached_property
    def weights(self) -> NDArray[np.float64]:
        """Kernel weights over the full, unclipped window."""
        return self.weight_table()


@lru_cache(maxsize=32)
def _gaussian_table(radius: int, bandwidth_square: float) -> NDArray[np.float64]:
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    dist_square = offsets[:, np.newaxis] ** 2 + offsets[np.newaxis, :] ** 2
    table = np.exp(-0.5 * dist_square / bandwidth_square)
    table.setflags(write=False)
    return table
