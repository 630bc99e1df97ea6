"""Exceptions raised by gsdrecon.

Every error raised by the package derives from :class:`ReconstructionError`,
so callers that only care whether a reconstruction succeeded can catch that
single type.
"""

from __future__ import annotations

__all__ = [
    "ReconstructionError",
    "InvalidParameterError",
    "TaskFailureError",
    "DegenerateRangeError",
]


class ReconstructionError(Exception):
    """Base class for all reconstruction errors."""


class InvalidParameterError(ReconstructionError, ValueError):
    """A parameter or input grid was rejected before any pixel was computed."""


class TaskFailureError(ReconstructionError):
    """A single pixel computation failed and the reconstruction was aborted.

    Parameters
    ----------
    x, y : int
        Coordinate of the pixel whose task raised.
    message : str, optional
        Description of the failure. Defaults to a message built from the
        coordinate.
    """

    def __init__(self, x: int, y: int, message: str | None = None):
        self.x = x
        self.y = y
        if message is None:
            message = f"density estimation failed at pixel (x={x}, y={y})"
        super().__init__(message)


class DegenerateRangeError(ReconstructionError):
    """The density field is flat (max == min) and cannot be rescaled."""
