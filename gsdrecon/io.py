"""TIFF input and output.

Event count images are read with :mod:`tifffile`; reconstructions are written
back as 16-bit TIFF files. The pixel calibration (X/Y resolution and unit) of
the input is carried over to the output so the reconstruction keeps the
physical scale of the acquisition.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import tifffile

from gsdrecon.log import logger

if TYPE_CHECKING:
    from gsdrecon.util._type import OutputArray

__all__ = ["ImageCalibration", "read_event_image", "read_metadata", "write_reconstruction"]


@dataclass(frozen=True)
class ImageCalibration:
    """Pixels per unit along X and Y, and the TIFF ResolutionUnit code (1 none, 2 inch, 3 cm)."""
    x_resolution: float
    y_resolution: float
    unit: int = 1


def _rational(value: Any) -> float:
    # tifffile returns RATIONAL tags as (numerator, denominator)
    if isinstance(value, tuple):
        num, den = value[:2]
        return float(num) / float(den) if den else 0.0
    return float(value)


def _page_calibration(page: tifffile.TiffPage) -> ImageCalibration | None:
    xres = page.tags.get("XResolution")
    yres = page.tags.get("YResolution")
    if xres is None or yres is None:
        return None
    unit = page.tags.get("ResolutionUnit")
    return ImageCalibration(
        x_resolution=_rational(xres.value),
        y_resolution=_rational(yres.value),
        unit=int(unit.value) if unit is not None else 1,
    )


def read_event_image(path: str | Path) -> tuple[np.ndarray, ImageCalibration | None]:
    """
    Read an event count image.

    Parameters
    ----------
    path : str or Path
        TIFF file holding one image ``(H, W)`` or a stack ``(slices, H, W)``.

    Returns
    -------
    data : ndarray
        Pixel data as stored in the file.
    calibration : ImageCalibration or None
        Resolution of the first page, if the file records one.
    """
    path = Path(path)
    with tifffile.TiffFile(path) as tif:
        data = tif.asarray()
        calibration = _page_calibration(tif.pages[0])
    logger.debug("Read %s: shape %s, dtype %s", path, data.shape, data.dtype)
    return data, calibration


def write_reconstruction(
    path: str | Path,
    image: OutputArray,
    calibration: ImageCalibration | None = None,
    metadata: dict[str, Any] | None = None,
) -> Path:
    """
    Write a reconstruction as a 16-bit TIFF.

    Parameters
    ----------
    path : str or Path
        Output file; missing parent directories are created.
    image : ndarray
        ``(H, W)`` image or ``(slices, H, W)`` stack with values in 0..65535.
    calibration : ImageCalibration or None, optional
        Resolution to record, usually the one read from the input.
    metadata : dict or None, optional
        JSON-serialisable parameters, stored in tifffile's shaped
        description next to the array shape.

    Returns
    -------
    Path
        The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    kwargs: dict[str, Any] = {}
    if calibration is not None:
        kwargs["resolution"] = (calibration.x_resolution, calibration.y_resolution)
        kwargs["resolutionunit"] = calibration.unit
    if metadata is not None:
        kwargs["metadata"] = dict(metadata)

    tifffile.imwrite(path, np.asarray(image, dtype=np.uint16), **kwargs)
    logger.debug("Wrote %s: shape %s", path, image.shape)
    return path


def read_metadata(path: str | Path) -> dict[str, Any]:
    """Return the parameters :func:`write_reconstruction` stored in ``path``, or {}."""
    with tifffile.TiffFile(Path(path)) as tif:
        shaped = tif.shaped_metadata
    if not shaped:
        return {}
    meta = dict(shaped[0])
    meta.pop("shape", None)
    return meta
