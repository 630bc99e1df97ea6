import numpy as np
import numpy.testing as npt
import pytest

from gsdrecon.errors import DegenerateRangeError, InvalidParameterError
from gsdrecon.normalize import IntensityNormalizer
from gsdrecon.reducer import GlobalStats


def _stats_of(field):
    stats = GlobalStats()
    for v in field.ravel():
        stats.update(float(v))
    return stats


def test_extremes_map_to_range_ends():
    field = np.array([[0.1, 0.35], [0.25, 0.7]])
    stats = _stats_of(field)
    out = IntensityNormalizer()(field, stats)
    assert out.dtype == np.uint16
    assert out[1, 1] == 65535
    assert out[0, 0] == 0
    npt.assert_array_equal(out, np.floor(65535 * (field - stats.min) / (stats.max - stats.min) + 0.5))


def test_rounds_half_up():
    # 65535 * 0.5 = 32767.5 -> 32768
    field = np.array([0.0, 0.5, 1.0])
    out = IntensityNormalizer()(field, _stats_of(field))
    npt.assert_array_equal(out, [0, 32768, 65535])


def test_custom_output_max():
    field = np.linspace(2.0, 3.0, 11)
    out = IntensityNormalizer(output_max=255)(field, _stats_of(field))
    assert out.min() == 0 and out.max() == 255
    assert np.all(np.diff(out.astype(int)) >= 0)


@pytest.mark.parametrize("policy, expected", [("zero", 0), ("mid", 32768)])
def test_flat_field(policy, expected):
    field = np.full((4, 5), 0.125)
    out = IntensityNormalizer(on_degenerate=policy)(field, _stats_of(field))
    assert out.shape == (4, 5)
    assert out.dtype == np.uint16
    assert np.all(out == expected)


def test_flat_field_can_raise():
    field = np.zeros((3, 3))
    with pytest.raises(DegenerateRangeError):
        IntensityNormalizer(on_degenerate="raise")(field, _stats_of(field))


def test_empty_stats_are_degenerate():
    out = IntensityNormalizer()(np.zeros((2, 2)), GlobalStats())
    npt.assert_array_equal(out, 0)


@pytest.mark.parametrize("kwargs", [{"output_max": 0}, {"output_max": 70000}, {"on_degenerate": "nan"}])
def test_invalid_settings(kwargs):
    with pytest.raises(InvalidParameterError):
        IntensityNormalizer(**kwargs)
