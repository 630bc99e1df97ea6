"""Reconstruction options.

All tunables of a reconstruction live in one frozen dataclass so that a
configuration can be built once (for example from command line flags),
validated, and handed to :meth:`gsdrecon.reconstruct.Reconstructor.from_options`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import get_args

from gsdrecon.errors import InvalidParameterError
from gsdrecon.kernel import DEFAULT_BANDWIDTH, KernelParameters
from gsdrecon.util._type import DegeneratePolicy

__all__ = ["ReconstructionOptions", "DEFAULT_OUTPUT_MAX", "default_workers"]

# 16-bit output range
DEFAULT_OUTPUT_MAX = 65535

_DEGENERATE_POLICIES = get_args(DegeneratePolicy)


def default_workers() -> int:
    """Hardware concurrency plus one, so a worker is ready while another stalls."""
    return (os.cpu_count() or 1) + 1


@dataclass(eq=True, frozen=True)
class ReconstructionOptions:
    """Options controlling one reconstruction.

    Parameters
    ----------
    bandwidth : float, optional
        Gaussian kernel bandwidth in pixels (default 5.0).
    workers : int or None, optional
        Size of the worker pool. None means :func:`default_workers`.
    on_degenerate : {"zero", "mid", "raise"}, optional
        Output of the normaliser for a flat density field.
    output_max : int, optional
        Value the densest pixel maps to (default 65535, at most 65535).
    max_pending : int or None, optional
        Upper bound on submitted but unfinished pixel tasks. None means four
        per worker.
    """
    bandwidth: float = DEFAULT_BANDWIDTH
    workers: int | None = None
    on_degenerate: DegeneratePolicy = "zero"
    output_max: int = DEFAULT_OUTPUT_MAX
    max_pending: int | None = None

    def validate(self) -> ReconstructionOptions:
        """Check every option and return ``self``.

        Raises
        ------
        InvalidParameterError
            On the first invalid option.
        """
        KernelParameters.from_bandwidth(self.bandwidth)
        if self.workers is not None and int(self.workers) < 1:
            raise InvalidParameterError(f"workers must be >= 1, got {self.workers}")
        if self.max_pending is not None and int(self.max_pending) < 1:
            raise InvalidParameterError(f"max_pending must be >= 1, got {self.max_pending}")
        if self.on_degenerate not in _DEGENERATE_POLICIES:
            raise InvalidParameterError(
                f"on_degenerate must be one of {_DEGENERATE_POLICIES}, got {self.on_degenerate!r}"
            )
        if not 1 <= int(self.output_max) <= DEFAULT_OUTPUT_MAX:
            raise InvalidParameterError(f"output_max must be in [1, {DEFAULT_OUTPUT_MAX}], got {self.output_max}")
        return self

    def with_updates(self, **changes) -> ReconstructionOptions:
        """Return a validated copy with ``changes`` applied."""
        return replace(self, **changes).validate()
