"""
Export orchestration: validate, build manifests, transcode, self-test, package.

A run is a single asyncio task. Decoding, encoding and archive writes are
pushed to a worker thread one at a time; the task yields between pairs so a
host UI can repaint and report progress. At most one decoded raster and one
encoded artifact are alive at any point.
"""

import asyncio
import gc
import io
import os
import threading
import time
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import psutil

from .config import AppConfig
from .errors import (
    ArtifactError,
    EncodeError,
    ExportCancelledError,
    ExportError,
    LoadError,
    MissingMetadataError,
    MissingPair,
    RenderError,
    SelfTestMismatchError,
    UnexpectedPackagingError,
)
from .image_processor import ImageProcessor, SourceImage, TranscodedArtifact
from .logging_setup import get_logger
from .manifest import (
    LONG_FORM_COLUMNS,
    LONG_FORM_FILENAME,
    WIDE_FORM_FILENAME,
    build_long_rows,
    build_master_rows,
    master_columns,
    rows_to_csv,
)
from .session import ExportSession
from .slug_utils import get_extension
from .surfaces import Surface, format_for_extension, parse_surfaces
from .utils import format_bytes

logger = get_logger(__name__)

# Progress reported while the archive is compressed; numbered steps stay below it
COMPRESS_PERCENTAGE = 95


class ExportState(Enum):
    """States of a single export run."""
    IDLE = "idle"
    VALIDATING_METADATA = "validating_metadata"
    BUILDING_MANIFESTS = "building_manifests"
    TRANSCODING_ARTIFACTS = "transcoding_artifacts"
    SELF_TESTING = "self_testing"
    PACKAGING = "packaging"
    FINALIZED = "finalized"
    ABORTED = "aborted"


@dataclass
class ExportProgress:
    """Progress event handed to the ``on_progress`` callback."""
    step: str
    percentage: int
    is_complete: bool = False


@dataclass
class ExportManifest:
    """Summary counts of a run."""
    selected_image_count: int
    surface_count: int
    expected_total_files: int
    actual_zip_files: int = 0
    csv_rows_generated: int = 0
    failed_pairs: List[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return self.expected_total_files == self.actual_zip_files == self.csv_rows_generated

    def to_dict(self) -> Dict[str, Any]:
        return {
            'selected_image_count': self.selected_image_count,
            'surface_count': self.surface_count,
            'expected_total_files': self.expected_total_files,
            'actual_zip_files': self.actual_zip_files,
            'csv_rows_generated': self.csv_rows_generated,
            'failed_pairs': list(self.failed_pairs),
        }


@dataclass
class ExportStats:
    """Class to track export statistics."""
    total_pairs: int = 0
    archived_pairs: int = 0
    failed_pairs: int = 0
    load_failures: int = 0
    render_failures: int = 0
    encode_failures: int = 0
    duplicate_names: int = 0
    retries: int = 0
    bytes_written: int = 0
    start_time: float = 0
    total_time: float = 0

    def record_failure(self, error: ArtifactError) -> None:
        self.failed_pairs += 1
        if isinstance(error, LoadError):
            self.load_failures += 1
        elif isinstance(error, RenderError):
            self.render_failures += 1
        elif isinstance(error, EncodeError):
            self.encode_failures += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        result = {k: v for k, v in self.__dict__.items()}
        if self.total_pairs > 0:
            result['success_rate'] = self.archived_pairs / self.total_pairs
        if self.archived_pairs > 0:
            result['avg_time_per_pair'] = self.total_time / self.archived_pairs
        else:
            result['avg_time_per_pair'] = 0
        return result


@dataclass
class ExportResult:
    """The single downloadable unit produced by a finalized run."""
    archive: bytes
    archive_name: str
    manifest: ExportManifest
    metadata_csv: str
    master_csv: str
    stats: ExportStats = field(default_factory=ExportStats)

    def save(self, output_dir: str) -> str:
        """
        Write the archive into a directory.

        Returns:
            Path of the written archive
        """
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, self.archive_name)
        with open(path, 'wb') as f:
            f.write(self.archive)
        return path


class CancellationToken:
    """Set from any thread to stop a run before its next pair."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


ProgressCallback = Callable[[ExportProgress], None]


class ExportOrchestrator:
    """Class to run export jobs over an ``ExportSession``."""

    def __init__(
        self,
        session: ExportSession,
        config: Optional[AppConfig] = None,
        image_processor: Optional[ImageProcessor] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            session: Session holding images and their metadata table
            config: Application configuration, defaults to the session's
            image_processor: Transcoder, built from ``config`` when omitted
            on_progress: Called with every progress event
            cancel_token: Checked between pairs
        """
        self.session = session
        self.config = config or session.config
        self.image_processor = image_processor or ImageProcessor(self.config)
        self.on_progress = on_progress
        self.cancel_token = cancel_token or CancellationToken()

        self.state = ExportState.IDLE
        self.state_history: List[ExportState] = [ExportState.IDLE]
        self.last_error: Optional[Dict[str, Any]] = None
        self.manifest: Optional[ExportManifest] = None
        self.stats = ExportStats()

    # ------------------------------------------------------------------
    # State and progress
    # ------------------------------------------------------------------

    def _transition(self, state: ExportState) -> None:
        logger.info(f"Export state: {self.state.value} -> {state.value}")
        self.state = state
        self.state_history.append(state)

    def _emit(self, step: str, percentage: int, is_complete: bool = False) -> None:
        logger.debug(f"Progress {percentage}%: {step}")
        if self.on_progress is not None:
            self.on_progress(ExportProgress(step, percentage, is_complete))

    @staticmethod
    def _step_percentage(step: int, total_steps: int) -> int:
        """Percentage of a numbered step, kept below the compression milestone."""
        return round(step / total_steps * COMPRESS_PERCENTAGE)

    def _abort(self, error: ExportError) -> None:
        self.last_error = error.to_dict()
        self._transition(ExportState.ABORTED)
        logger.error(f"Export aborted: {error.message}")
        for detail in error.details:
            logger.error(f"  {detail}")

    def _resolve(self, image_ids, surfaces):
        images = self.session.images_to_export(image_ids)
        selected = parse_surfaces(surfaces if surfaces is not None else self.config.surfaces)
        return images, selected

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def find_missing_metadata(self, images: Iterable[SourceImage], surfaces: Iterable[Surface]) -> List[MissingPair]:
        """
        List every selected pair without a usable metadata record.

        A record is usable when it has both a filename and a slug.
        """
        surfaces = list(surfaces)
        missing = []
        for image in images:
            for surface in surfaces:
                metadata = self.session.get_metadata(image.image_id, surface)
                if metadata is None or not metadata.is_complete:
                    missing.append(MissingPair(image.image_id, image.filename, surface.key))
        return missing

    def _validate(self, images: List[SourceImage], surfaces: List[Surface]) -> None:
        if not images:
            raise ExportError("No images to export.")
        missing = self.find_missing_metadata(images, surfaces)
        if missing:
            raise MissingMetadataError(missing)

    def run_self_test(
        self,
        expected: int,
        archived: int,
        rows: int,
        failed_pairs: Optional[List[str]] = None,
    ) -> None:
        """
        Check that the expected file count, the archive and the manifest agree.

        Raises:
            SelfTestMismatchError: On any disagreement
        """
        if expected != archived or expected != rows:
            raise SelfTestMismatchError(expected, archived, rows, failed_pairs)
        logger.info(f"Self-test passed: {expected} files, {archived} archived, {rows} rows")

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_csv(
        self,
        image_ids: Optional[Iterable[str]] = None,
        surfaces: Optional[Iterable[Union[str, Surface]]] = None,
    ) -> str:
        """
        Long-form manifest only, after the same metadata validation.

        Raises:
            MissingMetadataError: If any selected pair lacks metadata
        """
        images, selected = self._resolve(image_ids, surfaces)
        try:
            self._validate(images, selected)
        except ExportError as e:
            self.last_error = e.to_dict()
            raise
        rows = build_long_rows(images, selected, self.session.get_metadata)
        logger.info(f"Generated {LONG_FORM_FILENAME} with {len(rows)} rows")
        return rows_to_csv(rows, LONG_FORM_COLUMNS)

    def run(
        self,
        image_ids: Optional[Iterable[str]] = None,
        surfaces: Optional[Iterable[Union[str, Surface]]] = None,
    ) -> ExportResult:
        """Run ``export`` to completion on a fresh event loop."""
        return asyncio.run(self.export(image_ids, surfaces))

    async def export(
        self,
        image_ids: Optional[Iterable[str]] = None,
        surfaces: Optional[Iterable[Union[str, Surface]]] = None,
    ) -> ExportResult:
        """
        Run the whole export.

        Args:
            image_ids: Images to export; defaults to the session selection, or
                every image when nothing is selected
            surfaces: Surfaces to export; defaults to ``config.surfaces``

        Returns:
            The finalized archive and manifests

        Raises:
            KeyError: If an image id is not in the session
            ValueError: If the surface selection is invalid
            MissingMetadataError: If any selected pair lacks metadata
            SelfTestMismatchError: If archive, manifest and expected count differ
            ExportCancelledError: If the cancellation token was set
            UnexpectedPackagingError: On any other failure
        """
        self.state = ExportState.IDLE
        self.state_history = [ExportState.IDLE]
        self.last_error = None
        self.manifest = None
        self.stats = ExportStats(start_time=time.time())

        images, selected = self._resolve(image_ids, surfaces)

        archive_buffer = io.BytesIO()
        archive = None
        try:
            self._transition(ExportState.VALIDATING_METADATA)
            self._validate(images, selected)

            pairs = [(image, surface) for image in images for surface in selected]
            expected = len(pairs)
            total_steps = 2 + expected + 3
            current_step = 0
            self.stats.total_pairs = expected
            self.manifest = ExportManifest(len(images), len(selected), expected)
            logger.info(f"Exporting {len(images)} images x {len(selected)} surfaces = {expected} files")

            self._transition(ExportState.BUILDING_MANIFESTS)
            current_step += 1
            self._emit("Building metadata rows...", self._step_percentage(current_step, total_steps))
            long_rows = build_long_rows(images, selected, self.session.get_metadata)
            master_rows = build_master_rows(
                images,
                self.session.get_fields,
                self.session.get_metadata,
                self.session.generator,
            )
            await asyncio.sleep(0)

            self._transition(ExportState.TRANSCODING_ARTIFACTS)
            archive = zipfile.ZipFile(archive_buffer, 'w', compression=zipfile.ZIP_DEFLATED)
            archived_names = set()
            failed = []
            failed_indices = set()

            for index, (image, surface) in enumerate(pairs):
                if self.cancel_token.cancelled:
                    raise ExportCancelledError(index, expected)

                metadata = self.session.get_metadata(image.image_id, surface)
                current_step += 1
                self._emit(f"Processing {metadata.filename}...", self._step_percentage(current_step, total_steps))

                arcname = f"{surface.key}/{metadata.filename}"
                if arcname in archived_names:
                    logger.error(f"Duplicate archive entry {arcname} for {image.filename}, skipping")
                    self.stats.duplicate_names += 1
                    self.stats.failed_pairs += 1
                    failed.append((image, surface))
                    failed_indices.add(index)
                    continue

                try:
                    artifact = await self._transcode_with_retries(image, surface, metadata.filename)
                except ArtifactError as e:
                    logger.warning(f"Skipping {image.filename} for {surface.key}: {e.message}")
                    self.stats.record_failure(e)
                    failed.append((image, surface))
                    failed_indices.add(index)
                    continue

                await asyncio.to_thread(archive.writestr, arcname, artifact.data)
                archived_names.add(arcname)
                self.stats.archived_pairs += 1
                self.stats.bytes_written += artifact.size_bytes
                logger.debug(
                    f"Archived {arcname} ({artifact.width}x{artifact.height}, {format_bytes(artifact.size_bytes)})"
                )
                del artifact

                self._check_memory_usage()
                await asyncio.sleep(0)

            failed_descriptions = [f"{image.filename} → {surface.key}" for image, surface in failed]
            if failed and self.config.drop_failed_rows:
                # long_rows follow the same image-major order as pairs
                long_rows = [row for index, row in enumerate(long_rows) if index not in failed_indices]
                logger.warning(f"Dropped {len(failed)} manifest rows of failed artifacts")

            self.manifest.actual_zip_files = len(archived_names)
            self.manifest.csv_rows_generated = len(long_rows)
            self.manifest.failed_pairs = failed_descriptions

            self._transition(ExportState.SELF_TESTING)
            current_step += 1
            self._emit("Running self-test...", self._step_percentage(current_step, total_steps))
            await asyncio.sleep(0)
            self.run_self_test(expected, len(archived_names), len(long_rows), failed_descriptions)

            self._transition(ExportState.PACKAGING)
            try:
                current_step += 1
                self._emit(f"Generating {LONG_FORM_FILENAME}...", self._step_percentage(current_step, total_steps))
                metadata_csv = rows_to_csv(long_rows, LONG_FORM_COLUMNS)
                archive.writestr(LONG_FORM_FILENAME, metadata_csv)
                await asyncio.sleep(0)

                current_step += 1
                self._emit(f"Generating {WIDE_FORM_FILENAME}...", self._step_percentage(current_step, total_steps))
                master_csv = rows_to_csv(master_rows, master_columns())
                archive.writestr(WIDE_FORM_FILENAME, master_csv)
                await asyncio.sleep(0)

                self._emit("Compressing files...", COMPRESS_PERCENTAGE)
                await asyncio.to_thread(archive.close)
                payload = archive_buffer.getvalue()
            except Exception as e:
                raise UnexpectedPackagingError(e) from e

            archive_name = f"{self.config.archive_prefix}-{int(time.time() * 1000)}.zip"
            self.stats.total_time = time.time() - self.stats.start_time

            self._transition(ExportState.FINALIZED)
            self._emit("Download ready!", 100, is_complete=True)
            logger.info(f"Export ready: {archive_name} ({format_bytes(len(payload))})")
            self._log_detailed_stats()

            return ExportResult(
                archive=payload,
                archive_name=archive_name,
                manifest=self.manifest,
                metadata_csv=metadata_csv,
                master_csv=master_csv,
                stats=self.stats,
            )

        except ExportError as e:
            self._abort(e)
            raise
        except asyncio.CancelledError:
            self._transition(ExportState.ABORTED)
            raise
        except Exception as e:
            error = UnexpectedPackagingError(e)
            if self.config.debug_mode:
                import traceback
                logger.error(f"Traceback: {traceback.format_exc()}")
            self._abort(error)
            raise error from e
        finally:
            # A failed run discards the partial archive
            if self.state is not ExportState.FINALIZED:
                if archive is not None:
                    archive.close()
                archive_buffer.close()

    async def _transcode_with_retries(
        self,
        image: SourceImage,
        surface: Surface,
        filename: str,
    ) -> TranscodedArtifact:
        """
        Transcode one pair, retrying load and encode failures with backoff.

        ``config.max_retries`` is the number of attempts. Render failures are
        not retried.
        """
        try:
            output_format = format_for_extension(get_extension(filename))
        except ValueError as e:
            raise EncodeError(image.filename, surface.key, str(e)) from e

        attempts = max(1, self.config.max_retries)
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(
                    self.image_processor.transcode,
                    image,
                    surface.profile,
                    output_format,
                    surface.key,
                )
            except (LoadError, EncodeError) as e:
                attempt += 1
                if attempt >= attempts:
                    raise
                delay = self.config.retry_delay * (2 ** (attempt - 1))
                self.stats.retries += 1
                logger.warning(f"{e.message}; retrying in {delay:.1f}s (attempt {attempt}/{attempts})")
                await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def _check_memory_usage(self) -> None:
        """Check memory usage and collect garbage if needed."""
        if not self.config.memory_limit_mb:
            return
        try:
            process = psutil.Process(os.getpid())
            mem_mb = process.memory_info().rss / 1024 / 1024
            logger.debug(f"Current memory usage: {mem_mb:.1f} MB")

            if mem_mb > self.config.memory_limit_mb * 0.8:
                logger.warning(f"Memory usage high ({mem_mb:.1f} MB), collecting garbage")
                gc.collect()
                new_mem_mb = process.memory_info().rss / 1024 / 1024
                logger.info(f"Memory usage after cleanup: {new_mem_mb:.1f} MB (freed {mem_mb - new_mem_mb:.1f} MB)")
        except psutil.Error as e:
            logger.debug(f"Error checking memory usage: {str(e)}")

    def _log_detailed_stats(self) -> None:
        """Log detailed statistics about the export run."""
        stats = self.stats
        success_rate = stats.archived_pairs / stats.total_pairs if stats.total_pairs > 0 else 0

        logger.info("=== Export Statistics ===")
        logger.info(f"Total pairs: {stats.total_pairs}")
        logger.info(f"Archived: {stats.archived_pairs} ({success_rate:.1%})")
        logger.info(f"Failed: {stats.failed_pairs}")
        logger.info(f"Load failures: {stats.load_failures}")
        logger.info(f"Render failures: {stats.render_failures}")
        logger.info(f"Encode failures: {stats.encode_failures}")
        logger.info(f"Duplicate names: {stats.duplicate_names}")
        logger.info(f"Retries: {stats.retries}")
        logger.info(f"Bytes written: {format_bytes(stats.bytes_written)}")
        logger.info(f"Total time: {stats.total_time:.1f}s")
