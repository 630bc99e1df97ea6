import numpy as np
import numpy.testing as npt
import pytest
import tifffile

from gsdrecon.io import ImageCalibration, read_event_image, read_metadata, write_reconstruction


def test_read_plain_tiff(tmp_path):
    data = np.zeros((10, 12), dtype=np.uint16)
    data[3, 4] = 7
    path = tmp_path / "events.tif"
    tifffile.imwrite(path, data)

    loaded, calibration = read_event_image(path)
    npt.assert_array_equal(loaded, data)
    # tifffile always records a resolution; no physical unit here
    assert calibration is None or calibration.unit in (1, 2)


def test_calibration_round_trip(tmp_path):
    data = np.ones((6, 8), dtype=np.uint16)
    src = tmp_path / "events.tif"
    tifffile.imwrite(src, data, resolution=(50000.0, 40000.0), resolutionunit=3)

    _, calibration = read_event_image(src)
    assert calibration is not None
    assert calibration.unit == 3
    npt.assert_allclose(calibration.x_resolution, 50000.0, rtol=1e-6)
    npt.assert_allclose(calibration.y_resolution, 40000.0, rtol=1e-6)

    out = write_reconstruction(tmp_path / "sub" / "out.tif", data * 100, calibration=calibration)
    assert out.exists()
    reread, cal2 = read_event_image(out)
    assert reread.dtype == np.uint16
    npt.assert_array_equal(reread, data * 100)
    assert cal2.unit == calibration.unit
    assert cal2.x_resolution == pytest.approx(calibration.x_resolution, rel=1e-6)
    assert cal2.y_resolution == pytest.approx(calibration.y_resolution, rel=1e-6)


def test_metadata_round_trip(tmp_path):
    path = write_reconstruction(
        tmp_path / "out.tif",
        np.zeros((2, 3, 4), dtype=np.uint16),
        metadata={"bandwidth": 2.5, "software": "gsdrecon"},
    )
    assert read_metadata(path) == {"bandwidth": 2.5, "software": "gsdrecon"}
    assert tifffile.imread(path).shape == (2, 3, 4)


def test_metadata_missing(tmp_path):
    path = tmp_path / "plain.tif"
    tifffile.imwrite(path, np.zeros((3, 3), dtype=np.uint16), metadata=None)
    assert read_metadata(path) == {}


def test_calibration_is_a_value():
    assert ImageCalibration(1.0, 2.0, 3) == ImageCalibration(1.0, 2.0, 3)
    assert ImageCalibration(1.0, 2.0).unit == 1
