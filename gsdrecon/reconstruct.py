"""
Reconstruction of a density image from an event count image.

:class:`Reconstructor` ties the stages together::

    counts --(PixelTask per pixel)--> ParallelReducer --> density + {min, max}
           --> IntensityNormalizer --> uint16 image

Normalisation needs the final min and max, so it only starts after the
reducer has joined all of its workers.

Basic usage
-----------

.. code-block:: python

   import numpy as np
   from gsdrecon import Reconstructor

   counts = np.zeros((256, 256), dtype=np.uint16)
   counts[100, 120] = 4

   rec = Reconstructor(bandwidth=3.0)
   image = rec(counts)            # uint16, shape (256, 256)
   result = rec.run(counts)       # image plus density field and stats

Stacks
^^^^^^
A ``(slices, H, W)`` array is reconstructed one slice at a time; every slice
gets its own min/max and therefore its own intensity scale:

.. code-block:: python

   images = rec(stack)            # uint16, shape (slices, H, W)

Progress and profiling
^^^^^^^^^^^^^^^^^^^^^^
Pass ``progress=callback`` to receive ``(completed, total)`` after every
pixel, and call :meth:`Reconstructor.enable_perf` to log how long the
``prepare``, ``reduce`` and ``normalize`` stages took.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from gsdrecon.config import DEFAULT_OUTPUT_MAX, ReconstructionOptions
from gsdrecon.estimator import iter_tasks
from gsdrecon.grid import as_source_array
from gsdrecon.kernel import DEFAULT_BANDWIDTH, KernelParameters
from gsdrecon.log import logger
from gsdrecon.normalize import IntensityNormalizer
from gsdrecon.reducer import GlobalStats, ParallelReducer
from gsdrecon.util._type import Self
from gsdrecon.util.perf import PerfStats

if TYPE_CHECKING:
    from gsdrecon.util._type import CountGrid, DegeneratePolicy, DensityGrid, GridLike, OutputArray, ProgressCallback

__all__ = ["Reconstructor", "ReconstructionResult", "reconstruct"]


@dataclass(frozen=True)
class ReconstructionResult:
    """Everything one 2D reconstruction produced.

    Attributes
    ----------
    output : ndarray of uint16
        Normalised image.
    density : ndarray of float64
        Unnormalised density field the image was scaled from.
    stats : GlobalStats
        Min and max of ``density``.
    kernel : KernelParameters
        Kernel the density was estimated with.
    """
    output: OutputArray
    density: DensityGrid
    stats: GlobalStats
    kernel: KernelParameters

    @property
    def shape(self) -> tuple[int, int]:
        return self.output.shape


class Reconstructor:
    """
    Kernel density reconstruction of event count images.

    Parameters
    ----------
    bandwidth : float, optional
        Gaussian kernel bandwidth in pixels (default 5.0).
    workers : int or None, optional
        Worker threads; None means CPU count + 1.
    on_degenerate : {"zero", "mid", "raise"}, optional
        Output for a flat density field, see :mod:`gsdrecon.normalize`.
    output_max : int, optional
        Value of the densest pixel (default 65535).
    progress : callable or None, optional
        ``progress(completed, total)`` called after every pixel task.
    max_pending : int or None, optional
        Bound on in-flight tasks, see :class:`~gsdrecon.reducer.ParallelReducer`.

    Raises
    ------
    InvalidParameterError
        If any parameter is invalid; nothing has been scheduled at that point.
    """
    def __init__(
        self,
        bandwidth: float = DEFAULT_BANDWIDTH,
        workers: int | None = None,
        on_degenerate: DegeneratePolicy = "zero",
        output_max: int = DEFAULT_OUTPUT_MAX,
        progress: ProgressCallback | None = None,
        max_pending: int | None = None,
    ) -> None:
        self.options = ReconstructionOptions(
            bandwidth=bandwidth,
            workers=workers,
            on_degenerate=on_degenerate,
            output_max=output_max,
            max_pending=max_pending,
        ).validate()
        self.kernel = KernelParameters.from_bandwidth(bandwidth)
        self.reducer = ParallelReducer(workers, max_pending)
        self.normalizer = IntensityNormalizer(output_max, on_degenerate)
        self.progress = progress
        self._perf_options = {"time": False, "memory": False}
        self._last_perf = PerfStats(time=False, memory=False)

    @classmethod
    def from_options(cls, options: ReconstructionOptions, progress: ProgressCallback | None = None) -> Self:
        return cls(
            bandwidth=options.bandwidth,
            workers=options.workers,
            on_degenerate=options.on_degenerate,
            output_max=options.output_max,
            progress=progress,
            max_pending=options.max_pending,
        )

    def __repr__(self):
        return (f"<Reconstructor bandwidth={self.kernel.bandwidth:g} "
                f"radius={self.kernel.max_pixel_distance} workers={self.reducer.workers}>")

    def enable_perf(self, time: bool = True, memory: bool = False) -> Self:
        """Record and log per-stage timing (and traced memory) of every run.

        Every plane is profiled by its own :class:`PerfStats`, so concurrent
        runs on one instance do not share a stage table.
        """
        self._perf_options = {"time": time, "memory": memory}
        self._last_perf = PerfStats(**self._perf_options)
        return self

    @property
    def perf_stats(self) -> PerfStats:
        """Profile of the most recently finished plane."""
        return self._last_perf

    # ---------------- single image ----------------
    def _reconstruct_plane(self, counts: CountGrid) -> ReconstructionResult:
        perf = PerfStats(**self._perf_options)
        height, width = counts.shape
        with perf:
            with perf.step("prepare"):
                density = np.zeros((height, width), dtype=np.float64)
                tasks = iter_tasks(counts, density, self.kernel)
            with perf.step("reduce"):
                stats = self.reducer.run(tasks, GlobalStats(), progress=self.progress)
            with perf.step("normalize"):
                output = self.normalizer(density, stats)
        perf.report(logger, title=f"Reconstruction {width}x{height}, bandwidth {self.kernel.bandwidth:g}")
        self._last_perf = perf
        logger.debug("Reconstructed %dx%d image: density range [%g, %g]", width, height, stats.min, stats.max)
        return ReconstructionResult(output=output, density=density, stats=stats, kernel=self.kernel)

    def run(self, source: GridLike) -> ReconstructionResult:
        """
        Reconstruct one 2D event count image.

        Parameters
        ----------
        source : array-like, Dask array or GridReader
            Event counts, shape (H, W).

        Returns
        -------
        ReconstructionResult

        Raises
        ------
        InvalidParameterError
            If ``source`` is not a valid event grid.
        TaskFailureError
            If a pixel computation failed.
        DegenerateRangeError
            If the density is flat and ``on_degenerate="raise"``.
        """
        counts = as_source_array(source)
        return self._reconstruct_plane(counts)

    # ---------------- stacks ----------------
    def run_stack(self, source: GridLike) -> list[ReconstructionResult]:
        """Reconstruct every slice of a ``(slices, H, W)`` stack independently.

        A 2D input is treated as a stack of one slice.
        """
        counts = as_source_array(source, allow_stack=True)
        if counts.ndim == 2:
            counts = counts[np.newaxis]
        n_slices = counts.shape[0]
        results = []
        for index in range(n_slices):
            logger.debug("Reconstructing slice %d/%d", index + 1, n_slices)
            results.append(self._reconstruct_plane(counts[index]))
        return results

    def __call__(self, source: GridLike) -> OutputArray:
        """Return only the normalised image; 2D in, 2D out, 3D in, 3D out."""
        counts = as_source_array(source, allow_stack=True)
        if counts.ndim == 2:
            return self._reconstruct_plane(counts).output
        return np.stack([res.output for res in self.run_stack(counts)])


def reconstruct(source: GridLike, bandwidth: float = DEFAULT_BANDWIDTH, **kwargs: Any) -> OutputArray:
    """
    Reconstruct ``source`` with a one-off :class:`Reconstructor`.

    Examples
    --------
    >>> image = reconstruct(counts, bandwidth=2.0, workers=4)
    """
    return Reconstructor(bandwidth=bandwidth, **kwargs)(source)
