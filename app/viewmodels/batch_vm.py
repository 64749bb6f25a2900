"""ViewModel driving a geotag batch: load track, scan photos, write GPS tags.

State flow: IDLE -> LOADING -> SCANNING -> PROCESSING -> COMPLETED, with early
completion when the track is empty or no candidate image is found. Items
are processed one at a time; an item's failure never stops the batch.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
import threading

from loguru import logger

from app.viewmodels.progress_log import FAILURE, SUCCESS, ProgressLog
from core.errors import (
    FileReplaceError,
    FinalizeError,
    GeotagError,
    MetadataLoadError,
    NoCandidatesError,
    NoMatchError,
    NoRecordsError,
    ParseError,
    TimestampUnavailable,
)
from core.models import BatchState, GeotagRequest, ImageReference, WriteOutcome
from core.services.interfaces import BatchResult, IAssetStore
from core.services.track_service import LocationTrack
from infrastructure.csv_repository import CsvTrackRepository
from infrastructure.geotag_writer import GeotagWriter
from infrastructure.photo_source import DirectoryPhotoSource
from infrastructure.timestamp_reader import extract_timestamp, timestamp_from_bytes


class BatchVM:
    """Runs geotag batches and exposes progress through a `ProgressLog`."""

    def __init__(
        self,
        repo: CsvTrackRepository | None = None,
        source: DirectoryPhotoSource | None = None,
        writer: GeotagWriter | None = None,
        log: ProgressLog | None = None,
        extractor: Callable[[str], float | None] | None = None,
    ) -> None:
        """Create a BatchVM.

        Args:
            repo: Track repository (defaults to auto-detected delimiter).
            source: Photo source used for directory runs.
            writer: Geotag writer.
            log: Progress log shared with the observer.
            extractor: Capture-time reader for file-backed images; defaults to
                `extract_timestamp` with the writer's exiftool.
        """
        self._repo = repo or CsvTrackRepository()
        self._source = source or DirectoryPhotoSource()
        self._writer = writer or GeotagWriter()
        self._extract = extractor or partial(extract_timestamp, exiftool=self._writer.exiftool)
        self.log = log or ProgressLog()
        self.state = BatchState.IDLE
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def result(self) -> BatchResult:
        """Counters of the current or last run."""
        return self.log.result

    # Worker thread
    def start_directory(self, track_path: str, photo_dir: str, overwrite: bool = False) -> None:
        """Run `run_directory` on a background thread."""
        self._spawn(self.run_directory, track_path, photo_dir, overwrite)

    def start_assets(
        self, track_path: str, store: IAssetStore, handles: Sequence[str], overwrite: bool = False
    ) -> None:
        """Run `run_assets` on a background thread."""
        self._spawn(self.run_assets, track_path, store, handles, overwrite)

    def join(self, timeout: float | None = None) -> None:
        """Wait for the background run to finish."""
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        """Ask the running batch to stop before its next item."""
        self._cancel.set()

    @property
    def is_running(self) -> bool:
        """True while a background run is alive."""
        return self._thread is not None and self._thread.is_alive()

    def _spawn(self, target: Callable[..., BatchResult], *args: object) -> None:
        if self.is_running:
            raise RuntimeError("a batch is already running")
        self._begin()
        self._thread = threading.Thread(
            target=self._run_guarded, args=(target, *args), name="geotag-batch", daemon=True
        )
        self._thread.start()

    def _run_guarded(self, target: Callable[..., BatchResult], *args: object) -> None:
        try:
            target(*args)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.exception("Batch aborted")
            self.log.error(f"batch aborted: {ex}")
            self.log.mark_completed()

    def _begin(self) -> None:
        self._cancel.clear()
        self.log.reset()
        self.state = BatchState.IDLE

    def _enter(self) -> None:
        # Background runs were already reset by _spawn.
        if threading.current_thread() is self._thread:
            return
        if self.is_running:
            raise RuntimeError("a batch is already running")
        self._begin()

    def _finish(self) -> None:
        self.state = BatchState.COMPLETED
        self.log.mark_completed()

    def _cancelled(self) -> bool:
        if self._cancel.is_set():
            self.result.cancelled = True
            self.log.info("cancelled")
            return True
        return False

    # Loading
    def _load_track(self, track_path: str) -> LocationTrack:
        """Load the track; raises ParseError or NoRecordsError."""
        self.state = BatchState.LOADING
        self.log.info(f"reading from {track_path}")
        try:
            track, report = self._repo.load(track_path)
        except ParseError as ex:
            raise ParseError(f"unable to read from csv {ex}") from ex
        self.log.progress(f"preparing {report.rows_read} gps record")
        self.log.progress(f"loaded {report.samples_loaded} locations")
        if not len(track):
            raise NoRecordsError("gps records empty")
        return track

    def _scan(self, photo_dir: str) -> list[ImageReference]:
        self.state = BatchState.SCANNING
        self.log.progress(f"starting file walk inside {photo_dir}")
        candidates = self._source.enumerate(photo_dir)
        self.log.progress(f"found {len(candidates)} candidates")
        if not candidates:
            raise NoCandidatesError("no candidates found!")
        return candidates

    # Directory run
    def run_directory(
        self, track_path: str, photo_dir: str, overwrite: bool = False
    ) -> BatchResult:
        """Geotag every supported image under `photo_dir` from `track_path`."""
        self._enter()
        try:
            try:
                track = self._load_track(track_path)
                candidates = self._scan(photo_dir)
            except (ParseError, NoRecordsError, NoCandidatesError) as ex:
                self.log.error(str(ex))
                return self.result

            self.state = BatchState.PROCESSING
            self._process_files(candidates, track, overwrite)
            succeeded, failed = self.result.summary()
            self.log.progress(
                f"completed update: {succeeded} succeeded, {failed} failed, "
                f"{self.result.items_skipped} skipped"
            )
            return self.result
        finally:
            self._finish()

    def _process_files(
        self, candidates: Sequence[ImageReference], track: LocationTrack, overwrite: bool
    ) -> None:
        total = len(candidates)
        width = len(str(total))
        result = self.result
        for idx, image in enumerate(candidates, start=1):
            if self._cancelled():
                break
            self.log.progress(f"processing {idx:0{width}d}/{total} <{image.display_name}>")
            result.items_considered += 1
            try:
                outcome = self._process_file(image, track, overwrite)
            except GeotagError as ex:
                result.items_failed += 1
                self.log.error(str(ex))
                self.log.append_line(f"{FAILURE} {image.display_name}")
                continue
            if outcome is WriteOutcome.SKIPPED:
                result.items_skipped += 1
                self.log.info("GPS data already exists")
            else:
                result.items_succeeded += 1
                self.log.progress("image meta data updated")
                self.log.append_line(f"{SUCCESS} {image.display_name}")

    def _process_file(
        self, image: ImageReference, track: LocationTrack, overwrite: bool
    ) -> WriteOutcome:
        timestamp = self._extract(image.path)
        if timestamp is None:
            raise TimestampUnavailable("unable to read capture time")
        sample = track.nearest(timestamp)
        if sample is None:
            raise NoMatchError("unable to determine location")
        return self._writer.write(GeotagRequest(image, sample, overwrite)).outcome

    # Asset-store run
    def run_assets(
        self, track_path: str, store: IAssetStore, handles: Sequence[str], overwrite: bool = False
    ) -> BatchResult:
        """Geotag assets of `store` named by `handles` from `track_path`."""
        self._enter()
        result = self.result
        try:
            self.log.progress(f"processing {len(handles)} photos")
            self.log.progress(f"gps record file: {track_path}")
            try:
                track = self._load_track(track_path)
            except (ParseError, NoRecordsError) as ex:
                result.items_failed = len(handles)
                self.log.error(str(ex))
                self.log.error("unable to process photos")
                return result

            self.state = BatchState.PROCESSING
            total = len(handles)
            for index, handle in enumerate(handles, start=1):
                if self._cancelled():
                    break
                self.log.progress(f"processing photo {index}/{total}")
                result.items_considered += 1
                try:
                    outcome = self._process_asset(store, handle, track, overwrite)
                except GeotagError as ex:
                    result.items_failed += 1
                    self.log.error(str(ex))
                    self.log.append_line(f"{FAILURE} photo {index} processing failed")
                    continue
                if outcome is WriteOutcome.SKIPPED:
                    result.items_skipped += 1
                    self.log.info("photo already has location, skipping (overwrite=false)")
                else:
                    result.items_succeeded += 1
                    self.log.append_line(f"{SUCCESS} photo {index} processed successfully")

            self.log.progress(
                f"completed: {result.items_succeeded} success, {result.items_failed} errors"
            )
            return result
        finally:
            self._finish()

    def _process_asset(
        self, store: IAssetStore, handle: str, track: LocationTrack, overwrite: bool
    ) -> WriteOutcome:
        try:
            if store.has_location(handle) and not overwrite:
                return WriteOutcome.SKIPPED
            data = store.load_bytes(handle)
        except OSError as ex:
            raise MetadataLoadError(f"failed to fetch asset {handle}: {ex}") from ex

        timestamp = timestamp_from_bytes(data, exiftool=self._writer.exiftool)
        if timestamp is None:
            timestamp = store.creation_time(handle)
        if timestamp is None:
            raise TimestampUnavailable("unable to read photo timestamp")
        self.log.progress(f"photo timestamp: {timestamp}")

        sample = track.nearest(timestamp)
        if sample is None:
            raise NoMatchError(f"unable to find matching gps location (timestamp: {timestamp})")
        self.log.progress(
            f"matched location: lat={sample.latitude}, lon={sample.longitude}, "
            f"alt={sample.altitude}"
        )

        image = ImageReference(asset_id=handle, data=data)
        written = self._writer.write(GeotagRequest(image, sample, overwrite))
        if written.outcome is WriteOutcome.SKIPPED:
            return WriteOutcome.SKIPPED
        if written.data is None:
            raise FinalizeError("writer returned no image data")
        try:
            store.persist(handle, written.data)
        except OSError as ex:
            raise FileReplaceError(f"failed to update photo location: {ex}") from ex
        return WriteOutcome.WRITTEN
