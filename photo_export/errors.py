"""
Error types raised by the export pipeline.

Two families exist:

- Per-artifact errors (``LoadError``, ``RenderError``, ``EncodeError``) are
  raised by the image processor for a single (image, surface) pair. The
  orchestrator logs them, leaves the artifact out of the archive and carries on
  with the batch.
- Run errors (everything else) abort the whole export. They are surfaced to the
  caller unchanged and serialize to the terminal error record via ``to_dict``.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class MissingPair:
    """An (image, surface) pair that has no usable metadata."""
    image_id: str
    filename: str
    surface: str

    def describe(self) -> str:
        return f"{self.filename} → {self.surface}"


class ExportError(Exception):
    """Base class for every error raised by the export pipeline."""

    code = "EXPORT_ERROR"

    def __init__(self, message: str, details: Optional[Sequence[str]] = None) -> None:
        self.message = message
        self.details: List[str] = list(details or [])
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} ({'; '.join(self.details)})"

    def to_dict(self) -> Dict[str, Any]:
        """Terminal error record handed to the UI layer."""
        return {
            "code": self.code,
            "message": self.message,
            "details": list(self.details),
        }


class MissingMetadataError(ExportError):
    """Raised before any work is done when selected pairs lack metadata."""

    code = "MISSING_METADATA"

    def __init__(self, missing_pairs: Sequence[MissingPair]) -> None:
        self.missing_pairs = list(missing_pairs)
        super().__init__(
            "Missing metadata. Generate metadata for every selected image and surface first.",
            [pair.describe() for pair in self.missing_pairs],
        )


class ArtifactError(ExportError):
    """A single artifact could not be produced. Never aborts the batch."""

    code = "ARTIFACT_FAILED"
    stage = "artifact"

    def __init__(self, filename: str, surface: str, reason: str) -> None:
        self.filename = filename
        self.surface = surface
        self.reason = reason
        super().__init__(
            f"Could not {self.stage} {filename} for {surface}: {reason}",
            [f"{filename} → {surface}"],
        )


class LoadError(ArtifactError):
    """The source image could not be decoded."""

    code = "LOAD_FAILED"
    stage = "load"


class RenderError(ArtifactError):
    """The resized raster could not be allocated or drawn."""

    code = "RENDER_FAILED"
    stage = "render"


class EncodeError(ArtifactError):
    """The resized raster could not be encoded."""

    code = "ENCODE_FAILED"
    stage = "encode"


class SelfTestMismatchError(ExportError):
    """The archive, the manifest and the expected count disagree."""

    code = "SELF_TEST_MISMATCH"

    def __init__(
        self,
        expected: int,
        archived: int,
        rows: int,
        failed_pairs: Optional[Sequence[str]] = None,
    ) -> None:
        self.expected = expected
        self.archived = archived
        self.rows = rows
        self.failed_pairs = list(failed_pairs or [])

        details = []
        if expected != archived:
            details.append(f"ZIP file count mismatch: expected {expected}, got {archived}")
        if expected != rows:
            details.append(f"CSV row count mismatch: expected {expected}, got {rows}")
        details.extend(f"missing artifact: {pair}" for pair in self.failed_pairs)
        super().__init__("Self-test failed: ZIP/CSV mismatch", details)

    def to_dict(self) -> Dict[str, Any]:
        record = super().to_dict()
        record.update(expected=self.expected, archived=self.archived, rows=self.rows)
        return record


class UnexpectedPackagingError(ExportError):
    """Anything that went wrong while serializing or compressing the archive."""

    code = "PACKAGING_FAILED"

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__("Export failed unexpectedly.", [f"{type(cause).__name__}: {cause}"])


class ExportCancelledError(ExportError):
    """The caller cancelled the run between two pairs."""

    code = "CANCELLED"

    def __init__(self, completed_pairs: int, total_pairs: int) -> None:
        self.completed_pairs = completed_pairs
        self.total_pairs = total_pairs
        super().__init__(
            "Export cancelled.",
            [f"{completed_pairs}/{total_pairs} pairs processed before cancellation"],
        )
