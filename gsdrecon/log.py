"""
Package logger.

Every module logs through ``logging.getLogger("gsdrec")``, which gets one
stdout handler on import. Two things are specific to reconstructions:

- consecutive identical records are dropped, so a stack of flat slices
  warns once instead of once per slice;
- records are coloured by level when stdout is a terminal, which the command
  line tool turns off with ``--no-color``.
"""

import logging
import sys

__all__ = ["logger", "setlevel", "set_color", "RepeatFilter", "LevelColorFormatter"]

logger = logging.getLogger("gsdrec")

LOG_FORMAT = "%(name)s: [%(levelname)-8s] %(asctime)s %(message)s"

RESET = "\033[0m"

DEFAULT_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}

# enabled: None means colour only when the stream is a TTY
_color = {"enabled": None, "palette": dict(DEFAULT_COLORS)}


class RepeatFilter(logging.Filter):
    """Drop a record with the same level, message and arguments as the previous one."""

    def __init__(self):
        super().__init__()
        self._previous = None

    def filter(self, record):
        key = (record.levelno, record.msg, record.args)
        if key == self._previous:
            return False
        self._previous = key
        return True


class LevelColorFormatter(logging.Formatter):
    """Wrap each formatted record in the ANSI colour of its level."""

    def __init__(self, fmt=LOG_FORMAT, stream=None):
        super().__init__(fmt)
        self.stream = stream

    def _use_color(self):
        enabled = _color["enabled"]
        if enabled is not None:
            return bool(enabled)
        isatty = getattr(self.stream or sys.stdout, "isatty", None)
        return callable(isatty) and bool(isatty())

    def format(self, record):
        text = super().format(record)
        if not text or not self._use_color():
            return text
        return f"{_color['palette'].get(record.levelno, '')}{text}{RESET}"


def _stream_handler():
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            return handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LevelColorFormatter(stream=sys.stdout))
    logger.addHandler(handler)
    return handler


logger.setLevel(logging.INFO)
logger.addFilter(RepeatFilter())
_stream_handler()


def setlevel(level: int | str = logging.INFO) -> None:
    """
    Set the level of the package logger.

    Parameters
    ----------
    level : int or str, optional
        A ``logging`` level or its case-insensitive name (``"debug"``).

    Raises
    ------
    ValueError
        If ``level`` is a string that names no logging level.
    """
    if isinstance(level, str):
        levels = logging.getLevelNamesMapping()
        if level.upper() not in levels:
            raise ValueError(f"Unknown logging level: {level}")
        level = levels[level.upper()]
    logger.setLevel(level)


def set_color(enabled: bool | None = True, palette: dict | None = None) -> None:
    """
    Force coloured output on or off, or back to TTY detection with None.

    ``palette`` maps levels to ANSI codes and is laid over the defaults.
    """
    _color["enabled"] = enabled
    if palette is not None:
        _color["palette"] = {**DEFAULT_COLORS, **palette}
