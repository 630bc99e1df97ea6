"""Conversion between host images and the arrays the reconstruction works on.

The reconstruction reads a read-only numpy array of event counts with shape
``(H, W)`` (pixel (x, y) at ``grid[y, x]``) and produces a ``uint16`` array of
the same shape. This module turns whatever the host hands over into the
former and copies the latter back out:

- numpy arrays and other array-likes are validated and copied,
- Dask arrays are computed eagerly (when Dask is installed),
- objects with ``width``, ``height`` and ``get(x, y)`` are read pixel by pixel,
- :func:`write_output` writes a result through any ``set(x, y, value)`` accessor.
"""

from __future__ import annotations

import math
import numbers
from typing import TYPE_CHECKING

import numpy as np

from gsdrecon.errors import InvalidParameterError
from gsdrecon.util._type import GridReader, GridWriter
from gsdrecon.util.deps import is_dask_array

if TYPE_CHECKING:
    from gsdrecon.util._type import CountGrid, GridLike, OutputArray

__all__ = ["as_source_array", "read_accessor", "write_output", "ArrayGrid"]


def _accessor_count(reader: GridReader, x: int, y: int) -> int:
    value = reader.get(x, y)
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real) and math.isfinite(value) and float(value).is_integer():
        return int(value)
    raise InvalidParameterError(f"event count at ({x}, {y}) must be a whole number, got {value!r}")


def read_accessor(reader: GridReader) -> np.ndarray:
    """Copy a :class:`~gsdrecon.util._type.GridReader` into an ``(H, W)`` array.

    Raises
    ------
    InvalidParameterError
        If a pixel holds anything but a whole number.
    """
    width, height = int(reader.width), int(reader.height)
    out = np.empty((height, width), dtype=np.int64)
    for y in range(height):
        for x in range(width):
            out[y, x] = _accessor_count(reader, x, y)
    return out


def _to_count_dtype(arr: np.ndarray) -> np.ndarray:
    if arr.dtype == np.bool_:
        return arr.astype(np.int64)
    if np.issubdtype(arr.dtype, np.integer):
        return arr
    if np.issubdtype(arr.dtype, np.floating):
        if not np.all(np.isfinite(arr)):
            raise InvalidParameterError("event counts must be finite")
        if not np.all(arr == np.floor(arr)):
            raise InvalidParameterError("event counts must be whole numbers")
        return arr.astype(np.int64)
    raise InvalidParameterError(f"event counts must be integers, got dtype {arr.dtype}")


def as_source_array(source: GridLike, allow_stack: bool = False) -> CountGrid:
    """
    Validate ``source`` and return a private, read-only array of event counts.

    Parameters
    ----------
    source : array-like, Dask array or GridReader
        Event counts, shape ``(H, W)``; ``(slices, H, W)`` too when
        ``allow_stack`` is set.
    allow_stack : bool, optional
        Accept three dimensional input.

    Returns
    -------
    ndarray
        Integer array that does not share memory with ``source`` and has
        its ``writeable`` flag cleared.

    Raises
    ------
    InvalidParameterError
        If the shape is wrong, the grid is empty, or a count is negative or
        not a whole number.
    """
    if isinstance(source, GridReader):
        arr = read_accessor(source)
    elif is_dask_array(source):
        arr = np.asarray(source.compute())
    else:
        arr = np.asarray(source)

    allowed = (2, 3) if allow_stack else (2,)
    if arr.ndim not in allowed:
        expected = "(H, W) or (slices, H, W)" if allow_stack else "(H, W)"
        raise InvalidParameterError(f"event grid must have shape {expected}, got {arr.shape}")
    if arr.size == 0:
        raise InvalidParameterError(f"event grid is empty, shape {arr.shape}")

    arr = _to_count_dtype(arr)
    if np.issubdtype(arr.dtype, np.signedinteger) and np.any(arr < 0):
        raise InvalidParameterError("event counts must be non-negative")

    grid = np.array(arr, copy=True, order="C")
    grid.setflags(write=False)
    return grid


def write_output(output: OutputArray, target: GridWriter) -> GridWriter:
    """Write every pixel of ``output`` through ``target.set(x, y, value)``."""
    if not isinstance(target, GridWriter):
        raise TypeError(f"{type(target).__name__} has no set(x, y, value) method")
    height, width = output.shape
    for y in range(height):
        for x in range(width):
            target.set(x, y, int(output[y, x]))
    return target


class ArrayGrid:
    """
    Minimal host image backed by a numpy array.

    Implements both accessor protocols, so it can stand in for a host
    image when driving the reconstruction through accessors.

    Examples
    --------
    >>> src = ArrayGrid(counts)
    >>> out = write_output(reconstruct(src), ArrayGrid.blank(src.width, src.height))
    """
    def __init__(self, data: np.ndarray):
        data = np.asarray(data)
        if data.ndim != 2:
            raise ValueError(f"ArrayGrid needs a 2D array, got shape {data.shape}")
        self.data = data

    @classmethod
    def blank(cls, width: int, height: int, dtype=np.uint16) -> ArrayGrid:
        return cls(np.zeros((height, width), dtype=dtype))

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    def get(self, x: int, y: int) -> int | float:
        return self.data[y, x].item()

    def set(self, x: int, y: int, value: int) -> None:
        self.data[y, x] = value

    def __repr__(self):
        return f"<ArrayGrid {self.width}x{self.height} {self.data.dtype}>"
