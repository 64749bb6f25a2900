from __future__ import annotations

import argparse
from pathlib import Path
import sys

from loguru import logger

from app.viewmodels.batch_vm import BatchVM
from app.viewmodels.progress_log import ProgressLog
from infrastructure.csv_repository import CsvTrackRepository
from infrastructure.geotag_writer import GeotagWriter
from infrastructure.logging import init_logging
from infrastructure.photo_source import DirectoryPhotoSource
from infrastructure.settings import JsonSettings

BASE_DIR = Path(__file__).parent

# Seconds between polls of the progress log while the worker runs.
POLL_INTERVAL = 0.2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photo-geotagger",
        description="Write GPS coordinates from a location log into photos by capture time.",
    )
    parser.add_argument("track", help="Delimited location log (CSV, semicolon or tab separated)")
    parser.add_argument("photos", help="Directory searched recursively for JPEG/HEIC/HEIF files")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        default=None,
        help="Replace GPS tags that are already present",
    )
    parser.add_argument("--delimiter", help="Field delimiter of the track file (default: guess)")
    parser.add_argument("--settings", help="JSON settings file (default: settings.json if present)")
    parser.add_argument("--log-dir", help="Directory for the diagnostic log")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug-level diagnostic log")
    return parser


def _load_settings(path: str | None) -> JsonSettings:
    if path:
        return JsonSettings(path)
    default = BASE_DIR / "settings.json"
    if default.exists():
        return JsonSettings(default)
    return JsonSettings.empty()


def _follow(log: ProgressLog, vm: BatchVM) -> None:
    """Print new log lines until the worker completes; Ctrl-C cancels the batch."""
    printed = 0
    while True:
        try:
            done = log.wait(POLL_INTERVAL)
        except KeyboardInterrupt:
            vm.cancel()
            continue
        lines = log.lines(printed)
        for line in lines:
            print(line, flush=True)
        printed += len(lines)
        if done:
            vm.join()
            return


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = _load_settings(args.settings)
    except (OSError, ValueError) as ex:
        print(f"[E] unable to load settings: {ex}", file=sys.stderr)
        return 2

    level = "DEBUG" if args.verbose else str(settings.get("logging.level", "INFO"))
    init_logging(args.log_dir or settings.get("logging.dir"), level=level, console=True)

    overwrite = args.overwrite
    if overwrite is None:
        overwrite = settings.get_bool("geotag.overwrite", False)
    delimiter = args.delimiter if args.delimiter is not None else settings.get("geotag.delimiter")
    if delimiter == "\\t":
        delimiter = "\t"
    if delimiter and len(delimiter) != 1:
        print(f"[E] delimiter must be a single character: {delimiter!r}", file=sys.stderr)
        return 2

    log = ProgressLog()
    vm = BatchVM(
        repo=CsvTrackRepository(delimiter=delimiter or None),
        source=DirectoryPhotoSource(settings.get("geotag.extensions")),
        writer=GeotagWriter(exiftool=str(settings.get("exiftool.path", "exiftool"))),
        log=log,
    )
    logger.info("Geotag run: track={} photos={} overwrite={}", args.track, args.photos, overwrite)
    vm.start_directory(args.track, args.photos, overwrite=overwrite)
    _follow(log, vm)

    succeeded, failed = log.summary()
    return 0 if failed == 0 and succeeded + vm.result.items_skipped > 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
