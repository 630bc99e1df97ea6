"""Parallel execution of pixel tasks with a shared min/max reduction.

:class:`ParallelReducer` runs every :class:`~gsdrecon.estimator.PixelTask` of
an image on a thread pool. Each task writes its own density cell, which needs
no locking, and then folds its value into a :class:`GlobalStats`, whose lock
is the single point where tasks contend. :meth:`ParallelReducer.run` returns
only once every task has finished, so the stats it hands back are final.

Example
-------
>>> import numpy as np
>>> from gsdrecon.estimator import iter_tasks
>>> from gsdrecon.kernel import KernelParameters
>>> from gsdrecon.reducer import ParallelReducer
>>> counts = np.zeros((32, 32), dtype=np.uint16); counts[16, 16] = 3
>>> density = np.zeros(counts.shape)
>>> stats = ParallelReducer(workers=4).run(iter_tasks(counts, density, KernelParameters.from_bandwidth(2.0)))
>>> stats.max == density.max()
True
"""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Sized
from concurrent.futures import FIRST_COMPLETED, FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gsdrecon.config import default_workers
from gsdrecon.errors import InvalidParameterError, TaskFailureError
from gsdrecon.log import logger

if TYPE_CHECKING:
    from gsdrecon.estimator import PixelTask
    from gsdrecon.util._type import ProgressCallback

__all__ = ["GlobalStats", "ParallelReducer"]


@dataclass
class GlobalStats:
    """
    Running minimum and maximum of the density values of one reconstruction.

    Starts at (+inf, -inf) so the first value updates both ends. All
    read-modify-write operations go through :meth:`update` or :meth:`merge`,
    which hold the instance lock.
    """
    min: float = math.inf
    max: float = -math.inf
    count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def update(self, value: float) -> None:
        with self._lock:
            if value > self.max:
                self.max = value
            if value < self.min:
                self.min = value
            self.count += 1

    def merge(self, other: GlobalStats) -> GlobalStats:
        """Fold ``other`` into ``self``; order of merges does not matter."""
        with other._lock:
            lo, hi, n = other.min, other.max, other.count
        with self._lock:
            self.min = min(self.min, lo)
            self.max = max(self.max, hi)
            self.count += n
        return self

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    @property
    def span(self) -> float:
        """``max - min``; 0.0 before any value was seen."""
        if self.is_empty:
            return 0.0
        return self.max - self.min

    @property
    def is_degenerate(self) -> bool:
        """True when no value was seen or every value was the same."""
        return self.is_empty or not self.span > 0


class _ProgressCounter:
    """Numbers finished tasks; the callback runs outside the lock, on the worker thread."""
    def __init__(self, total: int | None, callback: ProgressCallback | None):
        self.total = total
        self.callback = callback
        self.completed = 0
        self._lock = threading.Lock()

    def advance(self) -> None:
        with self._lock:
            self.completed += 1
            completed = self.completed
        if self.callback is not None:
            self.callback(completed, self.total)


class ParallelReducer:
    """
    Thread pool runner for pixel tasks.

    Parameters
    ----------
    workers : int or None, optional
        Number of worker threads. None means CPU count + 1.
    max_pending : int or None, optional
        Maximum number of submitted but unfinished tasks. Submission pauses
        when the bound is reached, which keeps memory flat on large images
        and lets a failure stop submission quickly. None means four per
        worker.

    Raises
    ------
    InvalidParameterError
        If ``workers`` or ``max_pending`` is smaller than one.
    """
    def __init__(self, workers: int | None = None, max_pending: int | None = None):
        self.workers = default_workers() if workers is None else int(workers)
        if self.workers < 1:
            raise InvalidParameterError(f"workers must be >= 1, got {workers}")
        self.max_pending = 4 * self.workers if max_pending is None else int(max_pending)
        if self.max_pending < 1:
            raise InvalidParameterError(f"max_pending must be >= 1, got {max_pending}")

    def __repr__(self):
        return f"<ParallelReducer workers={self.workers} max_pending={self.max_pending}>"

    @staticmethod
    def _execute(task: PixelTask, stats: GlobalStats, counter: _ProgressCounter) -> float:
        value = task.run()
        stats.update(value)
        counter.advance()
        return value

    @staticmethod
    def _raise_first_failure(done: Iterable[Future], owners: dict[Future, PixelTask]) -> None:
        for fut in done:
            if fut.cancelled():
                continue
            exc = fut.exception()
            if exc is not None:
                task = owners[fut]
                raise TaskFailureError(task.x, task.y, f"density estimation failed at pixel (x={task.x}, y={task.y}): {exc}") from exc

    def run(
        self,
        tasks: Iterable[PixelTask],
        stats: GlobalStats | None = None,
        total: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> GlobalStats:
        """
        Execute ``tasks`` to completion and return the reduced min/max.

        Parameters
        ----------
        tasks : iterable of PixelTask
            One task per output pixel. Consumed lazily.
        stats : GlobalStats or None, optional
            Accumulator to fold values into. A fresh one is created when None.
        total : int or None, optional
            Number of tasks reported to ``progress``. Defaults to
            ``len(tasks)`` when ``tasks`` is sized.
        progress : callable or None, optional
            Called as ``progress(completed, total)`` after every finished task,
            from the worker thread that ran it. Each ``completed`` value is
            reported exactly once, but calls from different workers may
            interleave, so they can arrive out of order.

        Returns
        -------
        GlobalStats
            The accumulator, final once this method returns.

        Raises
        ------
        TaskFailureError
            If any task raised. Submission stops, unstarted tasks are
            cancelled and running ones are waited for before raising.
        """
        stats = GlobalStats() if stats is None else stats
        if total is None and isinstance(tasks, Sized):
            total = len(tasks)
        counter = _ProgressCounter(total, progress)
        logger.debug("Running %s pixel tasks on %d workers", total if total is not None else "?", self.workers)

        owners: dict[Future, PixelTask] = {}
        pending: set[Future] = set()
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="gsdrecon")
        try:
            for task in tasks:
                if len(pending) >= self.max_pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    self._raise_first_failure(done, owners)
                    for fut in done:
                        del owners[fut]
                fut = pool.submit(self._execute, task, stats, counter)
                owners[fut] = task
                pending.add(fut)

            done, pending = wait(pending, return_when=FIRST_EXCEPTION)
            self._raise_first_failure(done, owners)
        except BaseException:
            for fut in pending:
                fut.cancel()
            raise
        finally:
            # barrier: no task may still be running once we return or raise
            pool.shutdown(wait=True, cancel_futures=True)

        logger.debug("Reduced %d values: min=%g max=%g", stats.count, stats.min, stats.max)
        return stats
