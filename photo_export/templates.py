"""
Shared vocabularies and text templates for generated metadata.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List

# Space taxonomy: one key per kind of shot of the venue
SPACE_CATEGORIES = (
    'exterior',
    'entrance_access',
    'main_room_wide',
    'natural_light_windows',
    'cyclorama_backdrop',
    'gallery_walls_exhibition',
    'event_setup_seating',
    'lounge_client_area',
    'kitchen_bar',
    'projector_screening',
    'gear_production',
    'bts_shoot',
)

DEFAULT_CATEGORY = 'main_room_wide'

CATEGORY_LABELS: Dict[str, str] = {
    'exterior': 'Exterior',
    'entrance_access': 'Entrance & Access',
    'main_room_wide': 'Main Room (Wide)',
    'natural_light_windows': 'Natural Light / Windows',
    'cyclorama_backdrop': 'Cyclorama / Backdrop',
    'gallery_walls_exhibition': 'Gallery Walls / Exhibition',
    'event_setup_seating': 'Event Setup / Seating',
    'lounge_client_area': 'Lounge / Client Area',
    'kitchen_bar': 'Kitchen / Bar',
    'projector_screening': 'Projector / Screening',
    'gear_production': 'Gear / Production',
    'bts_shoot': 'BTS / Shoot',
}

# One keyword phrase per category
CATEGORY_KEYWORD_MASTER: Dict[str, str] = {
    'exterior': 'SoHo photo studio exterior',
    'entrance_access': 'creative space entrance NYC',
    'main_room_wide': 'open floor plan studio',
    'natural_light_windows': 'natural light photography studio',
    'cyclorama_backdrop': 'white cyclorama wall rental',
    'gallery_walls_exhibition': 'gallery exhibition space SoHo',
    'event_setup_seating': 'event venue seating NYC',
    'lounge_client_area': 'client lounge creative space',
    'kitchen_bar': 'studio kitchen bar area',
    'projector_screening': 'screening room projector rental',
    'gear_production': 'production gear storage',
    'bts_shoot': 'behind the scenes photo shoot',
}

# Order matters: descriptors are picked by index from a filename hash
SPACE_DESCRIPTORS = (
    'floor-to-ceiling windows',
    'industrial chic interior',
    'minimalist white walls',
    'high ceilings with natural light',
    'exposed brick accents',
    'flexible open layout',
    'gallery-style white walls',
    'modern lounge seating',
    'professional lighting setup',
    'versatile production space',
    'downtown Manhattan views',
    'curated design details',
)

BASE_HASHTAGS = ('photostudio', 'creativespace', 'nycphotography')

CATEGORY_HASHTAGS: Dict[str, List[str]] = {
    'exterior': ['studiofacade', 'streetview'],
    'entrance_access': ['studioentrance', 'welcomespace'],
    'main_room_wide': ['openfloorplan', 'studioshoot'],
    'natural_light_windows': ['naturallight', 'windowlight'],
    'cyclorama_backdrop': ['cyclorama', 'whitebackdrop'],
    'gallery_walls_exhibition': ['galleryspace', 'artexhibition'],
    'event_setup_seating': ['eventvenue', 'privateevents'],
    'lounge_client_area': ['clientlounge', 'greenroom'],
    'kitchen_bar': ['studioamenities', 'cateringspace'],
    'projector_screening': ['screeningroom', 'projectorroom'],
    'gear_production': ['productionspace', 'studiogear'],
    'bts_shoot': ['behindthescenes', 'bts'],
}

INSTAGRAM_FEATURES = ('natural light', 'flexible layout')

_NON_ALNUM_RE = re.compile(r'[^a-z0-9]')


@dataclass
class CaptionContext:
    """Everything a caption template may draw on for one image."""
    subject: str
    neighborhood: str
    city: str
    category: str
    descriptor: str
    keyword_master: str
    year: int
    hashtags: List[str] = field(default_factory=list)
    web_cta: str = "Book your visit today."
    instagram_cta: str = "Book your session today! 📸"
    booking_cta: str = "Book now via our website"
    pinterest_cta: str = "Save for your next shoot!"

    @property
    def category_label(self) -> str:
        return category_label(self.category)


def category_label(category: str) -> str:
    """Human-readable label for a category key, the key itself if unknown."""
    return CATEGORY_LABELS.get(category, category)


def keyword_master_for_category(category: str) -> str:
    """Keyword phrase for a category, falling back to the default category."""
    return CATEGORY_KEYWORD_MASTER.get(category, CATEGORY_KEYWORD_MASTER[DEFAULT_CATEGORY])


def generate_hashtags(category: str, neighborhood: str, city: str) -> List[str]:
    """
    Default hashtag tokens for an image (without the ``#`` prefix).

    Args:
        category: Category key
        neighborhood: Neighborhood of the space
        city: City of the space

    Returns:
        List of raw hashtag tokens
    """
    tokens = [
        re.sub(r'\s+', '', neighborhood).lower(),
        re.sub(r'\s+', '', city).lower(),
    ]
    tokens.extend(BASE_HASHTAGS)
    tokens.extend(CATEGORY_HASHTAGS.get(category, []))
    return tokens


def normalize_hashtags(tokens: List[str]) -> List[str]:
    """
    Turn raw tokens into hashtags.

    Tokens are lowercased and stripped of anything that is not ``[a-z0-9]``
    (a leading ``#`` included), then prefixed with ``#``. Empty tokens and
    repeats are dropped; order is kept.
    """
    result: List[str] = []
    for token in tokens:
        cleaned = _NON_ALNUM_RE.sub('', (token or '').lower())
        if not cleaned:
            continue
        tag = f"#{cleaned}"
        if tag not in result:
            result.append(tag)
    return result


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def make_alt_text(ctx: CaptionContext) -> str:
    """One descriptive sentence: descriptor, subject, location and keyword."""
    return (
        f"{_capitalize(ctx.descriptor)} at {ctx.subject} in {ctx.neighborhood}, {ctx.city}, "
        f"featuring our {ctx.keyword_master}"
    )


def caption_web(ctx: CaptionContext) -> str:
    return (
        f"{ctx.subject} in {ctx.neighborhood}, {ctx.city} featuring {ctx.descriptor}. "
        f"Perfect for photo shoots, events and creative productions. {ctx.web_cta}"
    )


def caption_instagram(ctx: CaptionContext) -> str:
    features = ', '.join((ctx.keyword_master,) + INSTAGRAM_FEATURES)
    hashtags = ' '.join(normalize_hashtags(ctx.hashtags))
    return (
        f"✨ {ctx.subject}: {ctx.descriptor}\n\n"
        f"Features: {features}\n\n"
        f"{ctx.instagram_cta}\n\n"
        f"{hashtags}"
    ).rstrip()


def caption_google_business(ctx: CaptionContext) -> str:
    return (
        f"Professional creative space in {ctx.neighborhood}, {ctx.city}. "
        f"{_capitalize(ctx.descriptor)}. {ctx.booking_cta}."
    )


def pinterest_title(ctx: CaptionContext) -> str:
    return f"{ctx.keyword_master} | {ctx.descriptor} | {ctx.neighborhood} {ctx.city}"


def caption_pinterest(ctx: CaptionContext) -> str:
    """Pin description; the pin title comes from ``pinterest_title``."""
    return (
        f"Discover this {ctx.keyword_master} featuring {ctx.descriptor} "
        f"in {ctx.neighborhood}, {ctx.city}. {ctx.pinterest_cta}"
    )


def caption_messaging(ctx: CaptionContext) -> str:
    return f"Check out this {ctx.keyword_master} in {ctx.neighborhood}, {ctx.city}! 📸"


def caption_print(ctx: CaptionContext) -> str:
    return (
        f"{ctx.category_label} | {_capitalize(ctx.descriptor)} at {ctx.subject}, "
        f"{ctx.neighborhood}, {ctx.city} | © {ctx.year} {ctx.subject}. All rights reserved."
    )
