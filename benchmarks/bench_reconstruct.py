import time
from functools import lru_cache

import numpy as np

from gsdrecon.reconstruct import Reconstructor


@lru_cache(maxsize=4)
def _synthetic_events(size: int = 256, n_events: int = 5000, seed: int = 7) -> np.ndarray:
    """
    Event image resembling a GSD acquisition: a few filament-like clusters
    of localizations on an empty background.
    """
    rng = np.random.default_rng(seed)
    grid = np.zeros((size, size), dtype=np.uint16)
    n_clusters = 12
    centres = rng.uniform(0.1 * size, 0.9 * size, size=(n_clusters, 2))
    angles = rng.uniform(0, np.pi, size=n_clusters)
    which = rng.integers(0, n_clusters, size=n_events)
    t = rng.normal(0, 0.08 * size, size=n_events)
    ys = centres[which, 0] + t * np.sin(angles[which]) + rng.normal(0, 1.5, size=n_events)
    xs = centres[which, 1] + t * np.cos(angles[which]) + rng.normal(0, 1.5, size=n_events)
    inside = (ys >= 0) & (ys < size) & (xs >= 0) & (xs < size)
    np.add.at(grid, (ys[inside].astype(int), xs[inside].astype(int)), 1)
    grid.setflags(write=False)
    return grid


# -----------------------
# ASV benchmark entrypoint
# -----------------------
class TimeReconstructBandwidth:
    """
    benchmark gsdrecon.Reconstructor.run() for growing kernel bandwidths.
    """
    params = [1.0, 2.0, 5.0]
    param_names = ["bandwidth"]

    def setup(self, bandwidth):
        self.events = _synthetic_events(128)

    def time_reconstruct(self, bandwidth):
        Reconstructor(bandwidth=bandwidth).run(self.events)


class TimeReconstructWorkers:
    """
    benchmark gsdrecon.Reconstructor.run() against the size of the worker pool.
    """
    params = [1, 2, 4, 8]
    param_names = ["workers"]

    def setup(self, workers):
        self.events = _synthetic_events(128)

    def time_reconstruct(self, workers):
        Reconstructor(bandwidth=2.0, workers=workers).run(self.events)


def main():
    events = _synthetic_events(256)
    n_repeat = 3
    t0 = time.perf_counter()
    for _ in range(n_repeat):
        Reconstructor(bandwidth=5.0).run(events)
    t1 = time.perf_counter()

    print(f"N={events.size} repeat={n_repeat} avg={(t1 - t0) / n_repeat:.6f}s")


if __name__ == "__main__":
    main()
