"""
Stage profiling for reconstructions.

A reconstruction passes through a fixed sequence of stages: ``prepare``,
``reduce`` and ``normalize`` for every plane, with the command line tool
adding ``read`` and ``write`` around them. :class:`PerfStats` collects one
:class:`StageProfile` per stage of a plane and formats them as a table for
the package logger; :func:`profile_block` measures a single stage on its own.

Wall-clock time comes from :func:`time.perf_counter`. Traced memory comes
from :mod:`tracemalloc` and is off unless asked for, because tracing every
allocation slows the per-pixel tasks down severalfold.

Examples
--------
>>> stats = PerfStats(time=True)
>>> with stats:
...     with stats.step("reduce"):
...         reducer.run(tasks)
>>> stats.report(logger, title="Reconstruction 512x512")
"""

from __future__ import annotations

import contextlib
import logging
import tracemalloc
from collections.abc import Iterator
from dataclasses import dataclass
from time import perf_counter

__all__ = ["StageProfile", "PerfStats", "profile_block", "format_seconds", "format_bytes"]


def format_seconds(seconds: float | None) -> str:
    """Human readable duration, ``"-"`` when the stage was not timed."""
    if seconds is None:
        return "-"
    for threshold, scale, unit, digits in ((60.0, 1 / 60, "min", 2), (1.0, 1.0, "s", 3), (1e-3, 1e3, "ms", 2)):
        if seconds >= threshold:
            return f"{seconds * scale:.{digits}f} {unit}"
    return f"{seconds * 1e6:.1f} μs"


def format_bytes(size: int | None) -> str:
    """Human readable byte count in binary units, ``"-"`` when not traced."""
    if size is None:
        return "-"
    for power, unit in ((3, "GiB"), (2, "MiB"), (1, "KiB")):
        if abs(size) >= 1024**power:
            return f"{size / 1024**power:.1f} {unit}"
    return f"{size} B"


@dataclass
class StageProfile:
    """Measurements of one stage. Fields stay None for what was not measured."""
    name: str
    seconds: float | None = None
    traced_start: int | None = None
    traced_end: int | None = None
    traced_peak: int | None = None

    @property
    def retained(self) -> int | None:
        """Traced bytes still allocated when the stage ended."""
        if self.traced_start is None or self.traced_end is None:
            return None
        return self.traced_end - self.traced_start

    @property
    def peak(self) -> int | None:
        """Highest traced allocation above the stage's starting point."""
        if self.traced_start is None or self.traced_peak is None:
            return None
        return self.traced_peak - self.traced_start

    def row(self) -> str:
        return (f"{self.name:<12} {format_seconds(self.seconds):>11} "
                f"{format_bytes(self.retained):>11} {format_bytes(self.peak):>11}")


@contextlib.contextmanager
def _measure(profile: StageProfile, timed: bool, traced: bool) -> Iterator[StageProfile]:
    if traced:
        profile.traced_start, _ = tracemalloc.get_traced_memory()
        tracemalloc.reset_peak()
    start = perf_counter()
    try:
        yield profile
    finally:
        if timed:
            profile.seconds = perf_counter() - start
        if traced:
            profile.traced_end, profile.traced_peak = tracemalloc.get_traced_memory()


@contextlib.contextmanager
def profile_block(name: str = "block", time: bool = True, memory: bool = False) -> Iterator[StageProfile]:
    """
    Measure a single block.

    Parameters
    ----------
    name : str, optional
        Label stored on the profile.
    time : bool, optional
        Record wall-clock seconds (default True).
    memory : bool, optional
        Record traced memory (default False). Tracing is started for the
        block if it was not running already, and stopped again afterwards.

    Yields
    ------
    StageProfile
        Filled in when the block exits, also when it raises.
    """
    owns_tracing = memory and not tracemalloc.is_tracing()
    if owns_tracing:
        tracemalloc.start()
    try:
        with _measure(StageProfile(name), time, memory) as profile:
            yield profile
    finally:
        if owns_tracing:
            tracemalloc.stop()


class PerfStats:
    """
    Stage table of one reconstructed plane.

    Enter the instance around the plane and wrap each stage in :meth:`step`.
    With both ``time`` and ``memory`` off nothing is measured and
    :meth:`report` returns an empty string, so the pipeline can profile
    unconditionally. An instance is meant for a single run at a time.

    Parameters
    ----------
    time : bool, optional
        Record wall-clock time per stage (default True).
    memory : bool, optional
        Record traced memory per stage (default False).

    Attributes
    ----------
    steps : list of (str, StageProfile)
        Stages of the last run, in execution order.
    """
    def __init__(self, time: bool = True, memory: bool = False):
        self.time_enabled = time
        self.memory_enabled = memory
        self.steps: list[tuple[str, StageProfile]] = []
        self._total: StageProfile | None = None
        self._start = 0.0
        self._owns_tracing = False

    @property
    def enabled(self) -> bool:
        return self.time_enabled or self.memory_enabled

    @property
    def total_time(self) -> float | None:
        return None if self._total is None else self._total.seconds

    def __enter__(self) -> PerfStats:
        self.steps = []
        self._total = StageProfile("Total")
        if self.memory_enabled:
            self._owns_tracing = not tracemalloc.is_tracing()
            if self._owns_tracing:
                tracemalloc.start()
            self._total.traced_start, _ = tracemalloc.get_traced_memory()
        self._start = perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.time_enabled:
            self._total.seconds = perf_counter() - self._start
        if self.memory_enabled:
            self._total.traced_end, _ = tracemalloc.get_traced_memory()
            peaks = [p.traced_peak for _, p in self.steps if p.traced_peak is not None]
            self._total.traced_peak = max(peaks, default=self._total.traced_end)
            if self._owns_tracing:
                tracemalloc.stop()
                self._owns_tracing = False
        return False

    @contextlib.contextmanager
    def step(self, name: str) -> Iterator[StageProfile]:
        """
        Profile one stage of the run.

        Raises
        ------
        RuntimeError
            If profiling is enabled and the instance has not been entered.
        """
        if self.enabled and self._total is None:
            raise RuntimeError("enter the PerfStats instance before opening a stage")
        profile = StageProfile(name)
        try:
            with _measure(profile, self.time_enabled, self.memory_enabled):
                yield profile
        finally:
            self.steps.append((name, profile))

    def report(self, logger: logging.Logger | None = None, title: str = "") -> str:
        """
        Format the stage table, logging it at INFO level when ``logger`` is given.

        Returns
        -------
        str
            The table, or an empty string when profiling is disabled.
        """
        if not self.enabled or self._total is None:
            return ""
        header = f"{'Stage':<12} {'Time':>11} {'Retained':>11} {'Peak':>11}"
        rule = "-" * len(header)
        lines = [title] if title else []
        lines += [rule, header, rule]
        lines += [profile.row() for _, profile in self.steps]
        lines += [rule, self._total.row(), rule]
        table = "\n".join(lines)
        if logger is not None:
            logger.info("Stage profile\n%s", table)
        return table
