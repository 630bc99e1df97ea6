import numpy as np
import pytest

from gsdrecon.log import setlevel


@pytest.fixture(scope="session", autouse=True)
def quiet_logger():
    """
    Keep the package logger at WARNING for the whole session so reports and
    stage messages do not flood the test output.
    """
    setlevel("WARNING")
    yield
    setlevel("INFO")


@pytest.fixture
def single_event():
    """9x9 zeros with a single event at the centre."""
    grid = np.zeros((9, 9), dtype=np.uint16)
    grid[4, 4] = 1
    return grid


@pytest.fixture(scope="module")
def sparse_events():
    """
    A reproducible, non-square sparse event image with a few dense spots,
    as produced by a localization microscope.
    """
    rng = np.random.default_rng(20240611)
    grid = np.zeros((37, 53), dtype=np.uint16)
    ys = rng.integers(0, grid.shape[0], size=120)
    xs = rng.integers(0, grid.shape[1], size=120)
    np.add.at(grid, (ys, xs), 1)
    grid[10:13, 40:43] += 6
    grid.setflags(write=False)
    return grid
