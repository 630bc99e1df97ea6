import numpy as np
import numpy.testing as npt
import pytest

from gsdrecon.config import ReconstructionOptions, default_workers
from gsdrecon.errors import InvalidParameterError
from gsdrecon.grid import ArrayGrid, as_source_array, read_accessor
from gsdrecon.util._type import GridReader, GridWriter


def test_source_copy_is_private_and_read_only():
    data = np.arange(12, dtype=np.uint16).reshape(3, 4)
    grid = as_source_array(data)
    assert not grid.flags.writeable
    assert not np.shares_memory(grid, data)
    data[0, 0] = 99
    assert grid[0, 0] == 0
    with pytest.raises(ValueError):
        grid[1, 1] = 5


def test_source_dtypes():
    assert as_source_array(np.ones((2, 2), dtype=bool)).dtype == np.int64
    assert as_source_array(np.array([[1.0, 2.0], [0.0, 4.0]])).dtype == np.int64
    npt.assert_array_equal(as_source_array([[1, 2], [3, 4]]), [[1, 2], [3, 4]])
    with pytest.raises(InvalidParameterError):
        as_source_array(np.array([[1.0, np.nan]]))
    with pytest.raises(InvalidParameterError):
        as_source_array(np.array([[1 + 1j, 0]]))


def test_stack_only_when_allowed():
    stack = np.zeros((2, 3, 3), dtype=np.uint16)
    assert as_source_array(stack, allow_stack=True).shape == (2, 3, 3)
    with pytest.raises(InvalidParameterError):
        as_source_array(stack)
    with pytest.raises(InvalidParameterError):
        as_source_array(np.zeros((2, 2, 2, 2)), allow_stack=True)


def test_accessor_protocols():
    host = ArrayGrid(np.array([[0, 1, 2], [3, 4, 5]]))
    assert isinstance(host, GridReader)
    assert isinstance(host, GridWriter)
    assert not isinstance(np.zeros((2, 2)), GridReader)
    assert (host.width, host.height) == (3, 2)
    assert host.get(2, 1) == 5
    npt.assert_array_equal(read_accessor(host), host.data)
    npt.assert_array_equal(as_source_array(host), host.data)


def test_array_grid_blank():
    blank = ArrayGrid.blank(4, 2)
    assert blank.data.shape == (2, 4)
    blank.set(3, 1, 65535)
    assert blank.get(3, 1) == 65535
    assert repr(blank) == "<ArrayGrid 4x2 uint16>"
    with pytest.raises(ValueError):
        ArrayGrid(np.zeros(3))


def test_dask_source():
    da = pytest.importorskip("dask.array")
    data = np.arange(20, dtype=np.uint16).reshape(4, 5)
    grid = as_source_array(da.from_array(data, chunks=(2, 2)))
    assert isinstance(grid, np.ndarray)
    npt.assert_array_equal(grid, data)


def test_options_validation():
    assert ReconstructionOptions().validate().bandwidth == 5.0
    assert ReconstructionOptions().with_updates(bandwidth=2.0).bandwidth == 2.0
    for bad in (
        {"bandwidth": 0},
        {"workers": 0},
        {"max_pending": 0},
        {"on_degenerate": "clip"},
        {"output_max": 65536},
    ):
        with pytest.raises(InvalidParameterError):
            ReconstructionOptions(**bad).validate()


def test_default_workers():
    assert default_workers() >= 2


class _ListReader:
    def __init__(self, rows):
        self.rows = rows

    @property
    def width(self):
        return len(self.rows[0])

    @property
    def height(self):
        return len(self.rows)

    def get(self, x, y):
        return self.rows[y][x]


def test_accessor_counts_must_be_whole_numbers():
    assert isinstance(_ListReader([[0]]), GridReader)
    npt.assert_array_equal(read_accessor(_ListReader([[0, 2.0], [True, 3]])), [[0, 2], [1, 3]])
    for bad in (1.5, None, "2", float("inf")):
        with pytest.raises(InvalidParameterError):
            read_accessor(_ListReader([[0, bad]]))
    with pytest.raises(InvalidParameterError):
        as_source_array(ArrayGrid(np.array([[0.0, 1.5]])))
