"""
Publishing surfaces and their export profiles.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Union

from . import templates
from .slug_utils import get_extension
from .templates import CaptionContext

# Output extension -> Pillow encoder name
EXTENSION_FORMATS = {
    'jpg': 'JPEG',
    'jpeg': 'JPEG',
    'png': 'PNG',
    'webp': 'WEBP',
    'tif': 'TIFF',
    'tiff': 'TIFF',
}

FALLBACK_EXTENSION = 'jpg'


@dataclass(frozen=True)
class SurfaceProfile:
    """Size and compression limits of one surface."""
    max_dimension: int
    quality_factor: float
    label: str

    def __post_init__(self):
        if self.max_dimension <= 0:
            raise ValueError(f"max_dimension must be positive, got {self.max_dimension}")
        if not 0 < self.quality_factor <= 1:
            raise ValueError(f"quality_factor must be in (0, 1], got {self.quality_factor}")

    @property
    def encoder_quality(self) -> int:
        """Quality on Pillow's 1-100 scale."""
        return max(1, min(100, round(self.quality_factor * 100)))


class Surface(Enum):
    """
    Every publishing surface the pipeline knows about.

    Each member carries its key, its profile, its ideal output extension,
    whether it gets its own caption column in the wide manifest, its caption
    template and (Pinterest only) its title template.
    """

    WEB = ('web', SurfaceProfile(2000, 0.78, 'Web'), 'webp', False,
           templates.caption_web, None)
    INSTAGRAM = ('instagram', SurfaceProfile(1080, 0.82, 'Instagram'), 'jpg', True,
                 templates.caption_instagram, None)
    PINTEREST = ('pinterest', SurfaceProfile(1500, 0.82, 'Pinterest'), 'png', False,
                 templates.caption_pinterest, templates.pinterest_title)
    GOOGLE_BUSINESS = ('google-business', SurfaceProfile(1600, 0.80, 'Google Business'), 'webp', True,
                       templates.caption_google_business, None)
    MESSAGING = ('messaging', SurfaceProfile(1600, 0.70, 'Messaging'), 'jpg', True,
                 templates.caption_messaging, None)
    PRINT = ('print', SurfaceProfile(4000, 0.92, 'Print'), 'tiff', True,
             templates.caption_print, None)

    def __init__(
        self,
        key: str,
        profile: SurfaceProfile,
        ideal_extension: str,
        caption_column: bool,
        caption_template: Callable[[CaptionContext], str],
        title_template: Optional[Callable[[CaptionContext], str]],
    ):
        self.key = key
        self.profile = profile
        self.ideal_extension = ideal_extension
        self.caption_column = caption_column
        self.caption_template = caption_template
        self.title_template = title_template

    @property
    def label(self) -> str:
        return self.profile.label

    @property
    def column_key(self) -> str:
        """Key usable inside a CSV column name (``google-business`` -> ``google_business``)."""
        return self.key.replace('-', '_')

    def render_caption(self, ctx: CaptionContext) -> str:
        return self.caption_template(ctx)

    def render_title(self, ctx: CaptionContext) -> Optional[str]:
        if self.title_template is None:
            return None
        return self.title_template(ctx)

    @classmethod
    def from_key(cls, key: Union[str, 'Surface']) -> 'Surface':
        """
        Look up a surface by its key.

        Raises:
            ValueError: If no surface has that key
        """
        if isinstance(key, cls):
            return key
        for surface in cls:
            if surface.key == key:
                return surface
        valid = ', '.join(s.key for s in cls)
        raise ValueError(f"Unknown surface: {key!r} (expected one of {valid})")

    def __str__(self) -> str:
        return self.key


class ExtensionPolicy(Enum):
    """How the extension of an output filename is chosen for a whole run."""

    IDEAL = 'ideal'
    ORIGINAL = 'original'

    def extension_for(self, surface: Surface, original_filename: str) -> str:
        """
        Output extension for one (image, surface) pair.

        ``IDEAL`` uses the surface's ideal extension. ``ORIGINAL`` keeps the
        source file's extension, or ``jpg`` when that extension cannot be
        encoded (RAW files, HEIC, no extension at all).
        """
        if self is ExtensionPolicy.IDEAL:
            return surface.ideal_extension

        ext = get_extension(original_filename)
        if ext in EXTENSION_FORMATS:
            return ext
        return FALLBACK_EXTENSION


def format_for_extension(extension: str) -> str:
    """
    Pillow format name for an output extension.

    Raises:
        ValueError: If the extension is not an encodable output format
    """
    try:
        return EXTENSION_FORMATS[extension.lower().lstrip('.')]
    except KeyError:
        raise ValueError(f"No encoder for extension: {extension!r}")


def parse_surfaces(value: Union[str, Iterable[Union[str, Surface]]]) -> List[Surface]:
    """
    Parse a surface selection.

    Accepts a comma separated string or an iterable of keys/members. The result
    follows the enumeration order and contains no duplicates.

    Raises:
        ValueError: On unknown keys or an empty selection
    """
    if isinstance(value, str):
        items = [part.strip() for part in value.split(',') if part.strip()]
    else:
        items = list(value)

    selected = {Surface.from_key(item) for item in items}
    if not selected:
        raise ValueError("At least one surface must be selected")
    return [surface for surface in Surface if surface in selected]
