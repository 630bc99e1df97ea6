"""Command line front-end: ``gsdrecon INPUT.tif OUTPUT.tif --bandwidth 5``."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from tqdm import tqdm

from gsdrecon import __version__
from gsdrecon.config import DEFAULT_OUTPUT_MAX, ReconstructionOptions
from gsdrecon.errors import InvalidParameterError, ReconstructionError
from gsdrecon.io import read_event_image, write_reconstruction
from gsdrecon.kernel import DEFAULT_BANDWIDTH
from gsdrecon.log import logger, set_color, setlevel
from gsdrecon.reconstruct import Reconstructor
from gsdrecon.util.perf import format_seconds, profile_block

__all__ = ["build_parser", "main"]

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="gsdrecon",
        description="Reconstruct a 16-bit density image from a GSD event count TIFF by Gaussian kernel smoothing.",
    )
    ap.add_argument("input", help="Event count image (.tif/.tiff), 2D or a stack of slices")
    ap.add_argument("output", help="Output TIFF path")
    ap.add_argument("--bandwidth", "-b", type=float, default=DEFAULT_BANDWIDTH, help="Kernel bandwidth in pixels")
    ap.add_argument("--workers", "-j", type=int, default=None, help="Worker threads (default: CPU count + 1)")
    ap.add_argument("--degenerate", choices=["zero", "mid", "raise"], default="zero",
                    help="Output for an image without contrast")
    ap.add_argument("--output-max", type=int, default=DEFAULT_OUTPUT_MAX, help="Value of the densest pixel")
    ap.add_argument("--no-progress", dest="progress", action="store_false", help="Hide the progress bar")
    ap.add_argument("--perf", action="store_true", help="Log per-stage timings")
    ap.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    ap.add_argument("--no-color", dest="color", action="store_false", help="Disable coloured log output")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def _progress_bar(total: int, enabled: bool) -> tqdm:
    return tqdm(total=total, unit="px", desc="reconstructing", disable=not enabled, leave=False)


def run(args: argparse.Namespace) -> int:
    options = ReconstructionOptions(
        bandwidth=args.bandwidth,
        workers=args.workers,
        on_degenerate=args.degenerate,
        output_max=args.output_max,
    ).validate()

    with profile_block("read", memory=args.perf) as loaded:
        data, calibration = read_event_image(args.input)
    logger.debug("Read %s %s in %s", args.input, data.shape, format_seconds(loaded.seconds))

    with _progress_bar(int(data.size), args.progress) as bar:
        def advance(completed: int, total: int | None) -> None:
            bar.update(1)

        rec = Reconstructor.from_options(options, progress=advance if args.progress else None)
        if args.perf:
            rec.enable_perf(time=True)
        image = rec(data)

    metadata = {
        "input": str(Path(args.input).resolve()),
        "bandwidth": rec.kernel.bandwidth,
        "max_pixel_distance": rec.kernel.max_pixel_distance,
        "on_degenerate": options.on_degenerate,
        "output_max": options.output_max,
        "software": f"gsdrecon {__version__}",
    }
    with profile_block("write", memory=args.perf) as written:
        write_reconstruction(args.output, image, calibration=calibration, metadata=metadata)
    logger.info("Saved %s (%s) in %s", args.output, "x".join(str(n) for n in image.shape[::-1]),
                format_seconds(written.seconds))
    if args.perf:
        for stage in (loaded, written):
            logger.info("%s", stage.row())
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        setlevel(args.log_level)
    except ValueError as exc:
        logger.error("%s", exc)
        return EXIT_INVALID
    if not args.color:
        set_color(False)

    try:
        return run(args)
    except InvalidParameterError as exc:
        logger.error("Invalid parameter: %s", exc)
        return EXIT_INVALID
    except ReconstructionError as exc:
        logger.error("Reconstruction failed: %s", exc)
        return EXIT_FAILED
    except OSError as exc:
        logger.error("I/O error: %s", exc)
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
