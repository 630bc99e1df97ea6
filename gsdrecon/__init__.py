"""
gsdrecon
========

Reconstruction of GSD / single-molecule localization images by Gaussian
kernel density estimation.

An event count image (how many localizations fell into each pixel) is turned
into a smooth 16-bit intensity image: every output pixel is the
kernel-weighted, border-corrected average of the counts around it, computed
in parallel, then rescaled so the densest pixel is 65535.

>>> import numpy as np
>>> from gsdrecon import reconstruct
>>> counts = np.zeros((64, 64), dtype=np.uint16)
>>> counts[32, 32] = 5
>>> image = reconstruct(counts, bandwidth=2.0)
>>> int(image.max()), image.dtype
(65535, dtype('uint16'))
"""

__version__ = "0.1.0"

from .config import ReconstructionOptions
from .errors import DegenerateRangeError, InvalidParameterError, ReconstructionError, TaskFailureError
from .kernel import KernelParameters
from .normalize import IntensityNormalizer
from .reconstruct import ReconstructionResult, Reconstructor, reconstruct
from .reducer import GlobalStats, ParallelReducer

__all__ = [
    "__version__",
    "reconstruct",
    "Reconstructor",
    "ReconstructionResult",
    "ReconstructionOptions",
    "KernelParameters",
    "GlobalStats",
    "ParallelReducer",
    "IntensityNormalizer",
    "ReconstructionError",
    "InvalidParameterError",
    "TaskFailureError",
    "DegenerateRangeError",
]
