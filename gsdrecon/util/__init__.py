"""Internal helpers: typing aliases, optional dependencies and profiling."""
