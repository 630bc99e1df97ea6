"""Rescaling of a density field into the integer output range.

Each density value ``d`` becomes ``round(output_max * (d - min) / (max - min))``
with halves rounded up, so the densest pixel maps to ``output_max`` and the
faintest to 0.

A flat field (``max == min``, e.g. an image without any event) has no scale.
Instead of dividing by zero the normaliser applies an explicit policy:

======== ===============================================
"zero"   every pixel is 0 (default)
"mid"    every pixel is ``(output_max + 1) // 2``
"raise"  :class:`~gsdrecon.errors.DegenerateRangeError`
======== ===============================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING, get_args

import numpy as np

from gsdrecon.config import DEFAULT_OUTPUT_MAX
from gsdrecon.errors import DegenerateRangeError, InvalidParameterError
from gsdrecon.log import logger
from gsdrecon.util._type import DegeneratePolicy

if TYPE_CHECKING:
    from gsdrecon.reducer import GlobalStats
    from gsdrecon.util._type import DensityGrid, OutputArray

__all__ = ["IntensityNormalizer"]


class IntensityNormalizer:
    """
    Second pass of a reconstruction.

    Parameters
    ----------
    output_max : int, optional
        Value the maximum density maps to, at most 65535.
    on_degenerate : {"zero", "mid", "raise"}, optional
        Behaviour for a flat density field.
    """
    def __init__(self, output_max: int = DEFAULT_OUTPUT_MAX, on_degenerate: DegeneratePolicy = "zero"):
        output_max = int(output_max)
        if not 1 <= output_max <= DEFAULT_OUTPUT_MAX:
            raise InvalidParameterError(f"output_max must be in [1, {DEFAULT_OUTPUT_MAX}], got {output_max}")
        if on_degenerate not in get_args(DegeneratePolicy):
            raise InvalidParameterError(f"unknown degenerate-range policy {on_degenerate!r}")
        self.output_max = output_max
        self.on_degenerate = on_degenerate

    def __repr__(self):
        return f"<IntensityNormalizer output_max={self.output_max} on_degenerate={self.on_degenerate!r}>"

    def degenerate_value(self) -> int:
        return 0 if self.on_degenerate == "zero" else (self.output_max + 1) // 2

    def __call__(self, density: DensityGrid, stats: GlobalStats) -> OutputArray:
        """
        Rescale ``density`` using the reduced ``stats``.

        Parameters
        ----------
        density : ndarray of float64
            Fully populated density field.
        stats : GlobalStats
            Min and max of ``density`` as reduced by the parallel pass.

        Returns
        -------
        ndarray of uint16
            Same shape as ``density``.

        Raises
        ------
        DegenerateRangeError
            If the field is flat and the policy is ``"raise"``.
        """
        if stats.is_degenerate:
            if self.on_degenerate == "raise":
                raise DegenerateRangeError(
                    f"density field is flat (min = max = {stats.min:g}); nothing to rescale"
                )
            fill = self.degenerate_value()
            logger.warning("Density field is flat (min = max = %g); output filled with %d", stats.min, fill)
            return np.full(density.shape, fill, dtype=np.uint16)

        scaled = self.output_max * (density - stats.min) / stats.span
        out = np.floor(scaled + 0.5)
        np.clip(out, 0, self.output_max, out=out)
        return out.astype(np.uint16)
