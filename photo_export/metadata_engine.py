"""
Per-surface metadata generation: filenames, alt text and captions.

Everything here is a pure function of its inputs. Descriptor and photo id are
derived from the original filename with a character-code sum so that repeated
runs over the same image produce byte-identical text.
"""

import dataclasses
import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from .config import AppConfig
from .logging_setup import get_logger
from .slug_utils import build_slug, char_code_sum, normalize_text, strip_extension
from .surfaces import ExtensionPolicy, Surface
from .templates import (
    DEFAULT_CATEGORY,
    SPACE_DESCRIPTORS,
    CaptionContext,
    generate_hashtags,
    keyword_master_for_category,
    make_alt_text,
    normalize_hashtags,
)

if TYPE_CHECKING:
    from .image_processor import SourceImage

logger = get_logger(__name__)

ALT_TEXT_MIN_LENGTH = 80
ALT_TEXT_MAX_LENGTH = 125

PHOTO_ID_MAX_LENGTH = 20
PHOTO_ID_PREFIX_LENGTH = 16


def derive_descriptor(filename: str) -> str:
    """
    Pick a descriptor for an image from its original filename.

    The index is ``sum(code points of filename) % len(SPACE_DESCRIPTORS)``.
    """
    return SPACE_DESCRIPTORS[char_code_sum(filename) % len(SPACE_DESCRIPTORS)]


def derive_photo_id(filename: str) -> str:
    """
    Derive a short photo id from the original filename.

    ``IMG_4521.jpg`` becomes ``img4521``. Stems longer than 20 characters keep
    their first 16 characters followed by a 4-digit code derived from the
    whole filename; names without any usable character become ``photo`` plus
    that code.

    Args:
        filename: Original filename

    Returns:
        Photo id made of ``[a-z0-9]`` only
    """
    stem = normalize_text(strip_extension(filename))
    photo_id = ''.join(ch for ch in stem if ch.isalnum())
    code = f"{char_code_sum(filename) % 10000:04d}"

    if not photo_id:
        return f"photo{code}"
    if len(photo_id) > PHOTO_ID_MAX_LENGTH:
        return photo_id[:PHOTO_ID_PREFIX_LENGTH] + code
    return photo_id


def parse_location(
    location: Optional[str],
    default_neighborhood: str = "SoHo",
    default_city: str = "NYC",
) -> Tuple[str, str]:
    """
    Split a location string into neighborhood and city on the first comma.

    Without a comma the whole string is the neighborhood and the city falls
    back to ``default_city``. Empty parts fall back to their defaults.
    """
    location = (location or "").strip()
    if ',' in location:
        neighborhood, city = location.split(',', 1)
        return neighborhood.strip() or default_neighborhood, city.strip() or default_city
    return location or default_neighborhood, default_city


@dataclass
class ImageFields:
    """Editable per-image inputs to metadata generation."""
    photo_id: str
    category: str
    descriptor: str
    keyword_master: str
    hashtags: List[str] = field(default_factory=list)
    notes: str = ""


def default_fields(
    filename: str,
    category: str = DEFAULT_CATEGORY,
    neighborhood: str = "SoHo",
    city: str = "NYC",
) -> ImageFields:
    """Fields for a freshly ingested image."""
    return ImageFields(
        photo_id=derive_photo_id(filename),
        category=category,
        descriptor=derive_descriptor(filename),
        keyword_master=keyword_master_for_category(category),
        hashtags=generate_hashtags(category, neighborhood, city),
    )


@dataclass(frozen=True)
class IdentityFields:
    """The semantic inputs a slug is built from."""
    subject: str
    neighborhood: str
    city: str
    category: str
    descriptor: str
    keyword_master: str
    photo_id: str

    @property
    def slug_base(self) -> str:
        return build_slug(
            self.subject,
            self.neighborhood,
            self.city,
            self.keyword_master,
            self.descriptor,
            self.photo_id,
        )

    @property
    def location(self) -> str:
        return f"{self.neighborhood}, {self.city}"


@dataclass(frozen=True)
class SurfaceMetadata:
    """Generated text for one (image, surface) pair plus the inputs used."""
    surface: Surface
    filename: str
    alt_text: str
    caption: str
    descriptor: str
    keyword_master: str
    slug_base: str
    neighborhood: str
    city: str
    category: str
    photo_id: str
    hashtags: Tuple[str, ...] = ()
    pinterest_title: Optional[str] = None
    pinterest_description: Optional[str] = None

    @property
    def location(self) -> str:
        return f"{self.neighborhood}, {self.city}"

    @property
    def is_complete(self) -> bool:
        """True when the entry can be exported (filename and slug present)."""
        return bool(self.filename) and bool(self.slug_base)

    @property
    def alt_text_flag(self) -> Optional[str]:
        """``"short"`` or ``"long"`` against the 80-125 character guideline."""
        length = len(self.alt_text)
        if length < ALT_TEXT_MIN_LENGTH:
            return "short"
        if length > ALT_TEXT_MAX_LENGTH:
            return "long"
        return None

    def with_changes(self, **changes) -> 'SurfaceMetadata':
        return dataclasses.replace(self, **changes)


class MetadataGenerator:
    """Builds ``SurfaceMetadata`` records from image fields and location."""

    def __init__(
        self,
        config: AppConfig,
        year: Optional[int] = None,
        extension_policy: Optional[ExtensionPolicy] = None,
    ):
        """
        Initialize the generator.

        Args:
            config: Application configuration
            year: Year printed in copyright lines, defaults to the current year
            extension_policy: Overrides ``config.extension_policy`` for this run
        """
        self.config = config
        self.year = year if year is not None else datetime.date.today().year
        self.extension_policy = extension_policy or ExtensionPolicy(config.extension_policy)

    def identity_for(
        self,
        filename: str,
        fields: ImageFields,
        category: Optional[str] = None,
        location: Optional[str] = None,
    ) -> IdentityFields:
        """
        Resolve the identity of an image for a given category and location.

        When ``category`` differs from the image's own category the keyword
        master of the requested category is used instead of the stored one.
        """
        neighborhood, city = parse_location(
            location if location is not None else self.config.default_location,
            self.config.default_neighborhood,
            self.config.default_city,
        )

        if category is None or category == fields.category:
            category = fields.category
            keyword_master = fields.keyword_master
        else:
            keyword_master = keyword_master_for_category(category)

        return IdentityFields(
            subject=self.config.space_name,
            neighborhood=neighborhood,
            city=city,
            category=category,
            descriptor=fields.descriptor or derive_descriptor(filename),
            keyword_master=keyword_master,
            photo_id=fields.photo_id or derive_photo_id(filename),
        )

    def caption_context(self, identity: IdentityFields, hashtags: Iterable[str]) -> CaptionContext:
        return CaptionContext(
            subject=identity.subject,
            neighborhood=identity.neighborhood,
            city=identity.city,
            category=identity.category,
            descriptor=identity.descriptor,
            keyword_master=identity.keyword_master,
            year=self.year,
            hashtags=list(hashtags),
            web_cta=self.config.web_cta,
            instagram_cta=self.config.instagram_cta,
            booking_cta=self.config.booking_cta,
            pinterest_cta=self.config.pinterest_cta,
        )

    def build_filename(self, slug_base: str, surface: Surface, original_filename: str) -> str:
        """``slug + "__" + surface key + "." + extension`` under the run's policy."""
        extension = self.extension_policy.extension_for(surface, original_filename)
        return f"{slug_base}__{surface.key}.{extension}"

    def generate(
        self,
        image: 'SourceImage',
        surface: Surface,
        category: Optional[str] = None,
        location: Optional[str] = None,
        fields: Optional[ImageFields] = None,
    ) -> SurfaceMetadata:
        """
        Generate metadata for one image on one surface.

        Args:
            image: Source image (only its filename is used)
            surface: Target surface
            category: Category key, defaults to the image's category
            location: ``"Neighborhood, City"`` string, defaults to the config
            fields: Per-image fields, derived from the filename when omitted

        Returns:
            A new SurfaceMetadata record; persisting it is up to the caller
        """
        if fields is None:
            neighborhood, city = parse_location(
                location if location is not None else self.config.default_location,
                self.config.default_neighborhood,
                self.config.default_city,
            )
            fields = default_fields(
                image.filename,
                category or self.config.default_category,
                neighborhood,
                city,
            )

        identity = self.identity_for(image.filename, fields, category, location)
        slug_base = identity.slug_base
        ctx = self.caption_context(identity, fields.hashtags)

        caption = surface.render_caption(ctx)
        title = surface.render_title(ctx)

        metadata = SurfaceMetadata(
            surface=surface,
            filename=self.build_filename(slug_base, surface, image.filename),
            alt_text=make_alt_text(ctx),
            caption=caption,
            descriptor=identity.descriptor,
            keyword_master=identity.keyword_master,
            slug_base=slug_base,
            neighborhood=identity.neighborhood,
            city=identity.city,
            category=identity.category,
            photo_id=identity.photo_id,
            hashtags=tuple(normalize_hashtags(fields.hashtags)),
            pinterest_title=title,
            pinterest_description=caption if title is not None else None,
        )

        if metadata.alt_text_flag:
            logger.warning(
                f"Alt text for {image.filename} ({surface.key}) is {metadata.alt_text_flag}: "
                f"{len(metadata.alt_text)} chars, guideline {ALT_TEXT_MIN_LENGTH}-{ALT_TEXT_MAX_LENGTH}"
            )
        return metadata

    def generate_all(
        self,
        image: 'SourceImage',
        surfaces: Iterable[Surface],
        category: Optional[str] = None,
        location: Optional[str] = None,
        fields: Optional[ImageFields] = None,
    ) -> Dict[Surface, SurfaceMetadata]:
        """Generate metadata for one image on several surfaces."""
        return {
            surface: self.generate(image, surface, category, location, fields)
            for surface in surfaces
        }
