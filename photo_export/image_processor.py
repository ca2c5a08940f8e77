"""
Resize and recompress source images for each publishing surface.
"""

import io
import math
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from PIL import Image, ImageOps

from .config import AppConfig
from .errors import EncodeError, LoadError, RenderError
from .logging_setup import get_logger
from .slug_utils import get_extension
from .surfaces import SurfaceProfile

logger = get_logger(__name__)

RAW_EXTENSIONS = frozenset({'dng', 'nef', 'cr2', 'cr3', 'arw', 'raf', 'orf', 'rw2'})

LOSSY_FORMATS = frozenset({'JPEG', 'WEBP'})


class SourceImage:
    """
    One ingested photograph.

    Identity (id, filename, size) never changes after creation. The raw payload
    is kept either as bytes or as a path and is only decoded on demand by
    ``open``; ``release`` drops it when the image leaves the session.
    """

    def __init__(
        self,
        image_id: str,
        filename: str,
        size_bytes: int,
        data: Optional[bytes] = None,
        path: Optional[str] = None,
    ):
        if data is None and path is None:
            raise ValueError("SourceImage needs either data or a path")
        self._image_id = image_id
        self._filename = filename
        self._size_bytes = size_bytes
        self._data = data
        self._path = path
        self._released = False

    @classmethod
    def from_path(cls, path: str, image_id: Optional[str] = None) -> 'SourceImage':
        """
        Create a source image backed by a file on disk.

        Raises:
            FileNotFoundError: If the path does not exist
        """
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Image not found: {path}")
        return cls(
            image_id or uuid.uuid4().hex,
            os.path.basename(path),
            os.path.getsize(path),
            path=path,
        )

    @classmethod
    def from_bytes(cls, filename: str, data: bytes, image_id: Optional[str] = None) -> 'SourceImage':
        """Create a source image from an in-memory upload."""
        return cls(image_id or uuid.uuid4().hex, filename, len(data), data=data)

    @property
    def image_id(self) -> str:
        return self._image_id

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def path(self) -> Optional[str]:
        return self._path

    @property
    def released(self) -> bool:
        return self._released

    @property
    def is_raw(self) -> bool:
        return get_extension(self._filename) in RAW_EXTENSIONS

    def stream(self) -> Union[io.BytesIO, str]:
        if self._released:
            raise ValueError(f"{self._filename} has been released")
        if self._data is not None:
            return io.BytesIO(self._data)
        return self._path

    def open(self) -> Image.Image:
        """
        Decode the image into a raster. The caller owns and must close it.

        Raises:
            ValueError: If the image was released
            OSError: If Pillow cannot identify or decode the payload
        """
        if self.is_raw:
            return self._open_raw()

        img = Image.open(self.stream())
        try:
            img.load()
        except Exception:
            img.close()
            raise
        return img

    def _open_raw(self) -> Image.Image:
        """Decode a camera RAW file, preferring its embedded JPEG preview."""
        try:
            import rawpy
        except ImportError as e:
            raise RuntimeError("rawpy is required to decode RAW files. Install with: pip install rawpy") from e

        with rawpy.imread(self.stream()) as raw:
            try:
                thumb = raw.extract_thumb()
            except (rawpy.LibRawNoThumbnailError, rawpy.LibRawUnsupportedThumbnailError):
                thumb = None

            if thumb is not None and thumb.format == rawpy.ThumbFormat.JPEG:
                img = Image.open(io.BytesIO(thumb.data))
                img.load()
                return img

            rgb = raw.postprocess()
            return Image.fromarray(rgb)

    def release(self) -> None:
        """Drop the raw payload. The image cannot be decoded afterwards."""
        self._data = None
        self._released = True

    def __repr__(self) -> str:
        return f"SourceImage(id={self._image_id!r}, filename={self._filename!r}, size={self._size_bytes})"


@dataclass
class TranscodedArtifact:
    """Encoded output for one (image, surface) pair."""
    data: bytes
    width: int
    height: int
    original_width: int
    original_height: int
    format: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def size_kb(self) -> int:
        return round(self.size_bytes / 1024)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Target size for a surface, preserving the aspect ratio.

    Images whose longest edge already fits are kept as they are; nothing is
    ever upscaled. Otherwise both edges are scaled by
    ``max_dimension / longest_edge`` and rounded independently (half up),
    never below one pixel.

    Args:
        width: Original width in pixels
        height: Original height in pixels
        max_dimension: Longest edge allowed by the surface

    Returns:
        Tuple of (width, height)
    """
    longest_edge = max(width, height)
    if longest_edge <= max_dimension:
        return width, height

    scale = max_dimension / longest_edge
    return (
        max(1, _round_half_up(width * scale)),
        max(1, _round_half_up(height * scale)),
    )


class ImageProcessor:
    """Class to handle resizing and encoding for the export surfaces."""

    def __init__(self, config: AppConfig):
        """
        Initialize the image processor.

        Args:
            config: Application configuration
        """
        self.config = config

    def transcode(
        self,
        image: SourceImage,
        profile: SurfaceProfile,
        output_format: str = "JPEG",
        surface_key: Optional[str] = None,
    ) -> TranscodedArtifact:
        """
        Resize an image for a surface and encode it at the surface's quality.

        Args:
            image: Source image to transcode
            profile: Size and quality limits of the target surface
            output_format: Pillow format name to encode to
            surface_key: Surface key used in error messages

        Returns:
            The encoded artifact

        Raises:
            LoadError: If the source cannot be decoded
            RenderError: If the resized raster cannot be produced
            EncodeError: If the raster cannot be encoded
        """
        surface = surface_key or profile.label

        try:
            source = image.open()
        except Exception as e:
            raise LoadError(image.filename, surface, str(e)) from e

        # Each step closes the raster it replaces
        rendered = source
        try:
            try:
                rendered = self._replace(rendered, ImageOps.exif_transpose(rendered))
                original_width, original_height = rendered.size
                width, height = calculate_dimensions(original_width, original_height, profile.max_dimension)

                if (width, height) != (original_width, original_height):
                    rendered = self._replace(rendered, rendered.resize((width, height), Image.Resampling.LANCZOS))

                rendered = self._replace(rendered, self._prepare_mode(rendered, output_format))
            except (MemoryError, ValueError, OSError) as e:
                raise RenderError(image.filename, surface, str(e)) from e

            logger.debug(
                f"Resized {image.filename} for {surface}: "
                f"{original_width}x{original_height} -> {width}x{height}"
            )

            buffer = io.BytesIO()
            try:
                rendered.save(buffer, format=output_format, **self._save_options(output_format, profile))
            except (KeyError, MemoryError, ValueError, OSError) as e:
                raise EncodeError(image.filename, surface, str(e) or type(e).__name__) from e

            artifact = TranscodedArtifact(
                data=buffer.getvalue(),
                width=width,
                height=height,
                original_width=original_width,
                original_height=original_height,
                format=output_format,
            )
            logger.debug(f"Encoded {image.filename} for {surface} as {output_format} ({artifact.size_kb} KB)")
            return artifact
        finally:
            rendered.close()

    @staticmethod
    def _replace(current: Image.Image, new: Image.Image) -> Image.Image:
        """Close ``current`` when ``new`` is a different raster."""
        if new is not current:
            current.close()
        return new

    @staticmethod
    def _prepare_mode(img: Image.Image, output_format: str) -> Image.Image:
        """Convert the raster to a mode the target encoder accepts."""
        has_alpha = 'A' in img.getbands() or 'transparency' in img.info

        if output_format == 'JPEG':
            if img.mode not in ('RGB', 'L'):
                return img.convert('RGB')
        elif output_format == 'WEBP':
            if img.mode not in ('RGB', 'RGBA'):
                return img.convert('RGBA' if has_alpha else 'RGB')
        elif output_format == 'PNG':
            if img.mode == 'CMYK':
                return img.convert('RGB')
        return img

    @staticmethod
    def _save_options(output_format: str, profile: SurfaceProfile) -> Dict[str, Any]:
        if output_format in LOSSY_FORMATS:
            return {'quality': profile.encoder_quality}
        if output_format == 'PNG':
            return {'optimize': True}
        if output_format == 'TIFF':
            return {'compression': 'tiff_lzw'}
        return {}

    def get_image_info(self, image: SourceImage) -> Dict[str, Any]:
        """
        Get the dimensions and format of a source image without decoding it.

        Raises:
            LoadError: If the image header cannot be read
        """
        try:
            if image.is_raw:
                with image.open() as img:
                    width, height, fmt, mode = img.width, img.height, 'RAW', img.mode
            else:
                with Image.open(image.stream()) as img:
                    width, height, fmt, mode = img.width, img.height, img.format, img.mode
        except Exception as e:
            raise LoadError(image.filename, 'probe', str(e)) from e

        return {
            'width': width,
            'height': height,
            'format': fmt,
            'mode': mode,
            'aspect_ratio': round(width / height, 2) if height > 0 else 0,
        }

    def get_image_dimensions(self, image: SourceImage) -> Tuple[int, int]:
        """
        Probe the (width, height) of a source image.

        Raises:
            LoadError: If the image header cannot be read
        """
        info = self.get_image_info(image)
        return info['width'], info['height']
