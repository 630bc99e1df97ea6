import logging
import tracemalloc

import pytest

from gsdrecon import log
from gsdrecon.log import LevelColorFormatter, RepeatFilter, logger, set_color, setlevel
from gsdrecon.util.perf import PerfStats, StageProfile, format_bytes, format_seconds, profile_block


def _record(msg, level=logging.INFO, args=None):
    return logging.LogRecord("gsdrec", level, __file__, 1, msg, args, None)


def test_setlevel_accepts_names_and_ints():
    old = logger.level
    try:
        setlevel("debug")
        assert logger.level == logging.DEBUG
        setlevel(logging.ERROR)
        assert logger.level == logging.ERROR
        with pytest.raises(ValueError):
            setlevel("loud")
    finally:
        logger.setLevel(old)


def test_repeated_flat_field_warning_is_dropped():
    f = RepeatFilter()
    assert f.filter(_record("flat field %s", logging.WARNING, ("zero",)))
    assert not f.filter(_record("flat field %s", logging.WARNING, ("zero",)))
    assert f.filter(_record("flat field %s", logging.WARNING, ("mid",)))
    assert f.filter(_record("flat field %s", logging.INFO, ("mid",)))
    assert f.filter(_record("flat field %s", logging.WARNING, ("zero",)))


def test_level_colors():
    fmt = LevelColorFormatter("%(message)s")
    try:
        set_color(True)
        assert fmt.format(_record("hi", logging.WARNING)) == "\033[33mhi\033[0m"
        set_color(True, palette={logging.WARNING: "\033[34m"})
        assert fmt.format(_record("hi", logging.WARNING)) == "\033[34mhi\033[0m"
        assert fmt.format(_record("hi", logging.ERROR)).startswith("\033[31m")
        set_color(False)
        assert fmt.format(_record("hi", logging.WARNING)) == "hi"
        set_color(True)
        assert fmt.format(_record("")) == ""
    finally:
        set_color(None, palette={})


def test_single_stream_handler():
    streams = [h for h in logger.handlers if isinstance(h, logging.StreamHandler)]
    assert len(streams) == 1
    assert log._stream_handler() is streams[0]
    assert isinstance(streams[0].formatter, LevelColorFormatter)


@pytest.mark.parametrize(
    "seconds, text",
    [(None, "-"), (2.5e-4, "250.0 μs"), (0.0125, "12.50 ms"), (3.5, "3.500 s"), (90.0, "1.50 min")],
)
def test_format_seconds(seconds, text):
    assert format_seconds(seconds) == text


@pytest.mark.parametrize(
    "size, text",
    [(None, "-"), (512, "512 B"), (2048, "2.0 KiB"), (-2048, "-2.0 KiB"), (3 * 1024**2, "3.0 MiB"), (1024**3, "1.0 GiB")],
)
def test_format_bytes(size, text):
    assert format_bytes(size) == text


def test_stage_profile_derived_values():
    stage = StageProfile("write")
    assert stage.retained is None and stage.peak is None
    stage.traced_start, stage.traced_end, stage.traced_peak = 1000, 3048, 5096
    assert stage.retained == 2048
    assert stage.peak == 4096
    assert stage.row().split() == ["write", "-", "2.0", "KiB", "4.0", "KiB"]


def test_perf_stats_stages():
    stats = PerfStats(time=True, memory=True)
    with stats:
        with stats.step("prepare") as stage:
            buf = bytearray(1 << 16)
        with stats.step("normalize"):
            del buf
    assert [name for name, _ in stats.steps] == ["prepare", "normalize"]
    assert stage.seconds is not None and stage.seconds >= 0
    assert stage.peak is not None and stage.peak >= 1 << 16
    assert stats.total_time is not None

    report = stats.report(title="Reconstruction 4x4")
    lines = report.splitlines()
    assert lines[0] == "Reconstruction 4x4"
    assert any(line.startswith("prepare") for line in lines)
    assert any(line.startswith("Total") for line in lines)


def test_stage_recorded_when_it_raises():
    stats = PerfStats(time=True)
    with pytest.raises(RuntimeError, match="boom"):
        with stats:
            with stats.step("reduce"):
                raise RuntimeError("boom")
    assert [name for name, _ in stats.steps] == ["reduce"]
    assert stats.steps[0][1].seconds is not None


def test_perf_stats_disabled_and_misuse():
    silent = PerfStats(time=False, memory=False)
    with silent:
        with silent.step("reduce") as stage:
            pass
    assert stage.seconds is None
    assert silent.report() == ""

    with pytest.raises(RuntimeError):
        with PerfStats(time=True).step("reduce"):
            pass


def test_profile_block_restores_tracing_state():
    was_tracing = tracemalloc.is_tracing()
    with profile_block("write", memory=True) as stage:
        buf = bytearray(1 << 16)
    del buf
    assert stage.name == "write"
    assert stage.seconds is not None
    assert stage.peak is not None and stage.peak >= 1 << 16
    assert tracemalloc.is_tracing() == was_tracing

    with profile_block("read", time=False) as untimed:
        pass
    assert untimed.seconds is None and untimed.peak is None
