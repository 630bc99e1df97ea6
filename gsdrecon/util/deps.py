from importlib.util import find_spec

__all__ = ["DASK_AVAILABLE", "module_available", "is_dask_array"]


def module_available(name: str) -> bool:
    """Return True if a module is importable."""
    return find_spec(name) is not None


DASK_AVAILABLE: bool = module_available("dask")

_dask_array_type: type | None = None

if DASK_AVAILABLE:
    from dask.array import Array as DaskArray
    _dask_array_type = DaskArray


def is_dask_array(obj: object) -> bool:
    """Check if an object is a Dask array."""
    if not DASK_AVAILABLE or _dask_array_type is None:
        return False
    return isinstance(obj, _dask_array_type)
