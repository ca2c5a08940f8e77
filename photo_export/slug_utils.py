"""
Slug utilities for deterministic filenames.
"""

import re
import unicodedata
from typing import Optional, Tuple

SLUG_GROUP_SEPARATOR = "__"

_WHITESPACE_RE = re.compile(r'\s+')
_UNSAFE_RE = re.compile(r'[^a-z0-9\-_]')
_HYPHEN_RUN_RE = re.compile(r'-+')


def normalize_text(text: Optional[str]) -> str:
    """
    Convert arbitrary text to a URL and file safe token.

    The result is lowercase, accent free and only contains ``[a-z0-9-_]``.
    Commas are dropped, whitespace runs become a single hyphen, hyphen runs are
    collapsed and leading/trailing hyphens are trimmed. Normalizing an already
    normalized token returns it unchanged.

    Args:
        text: Text to normalize, ``None`` is treated as empty

    Returns:
        Normalized token, possibly empty
    """
    if not text:
        return ""

    value = unicodedata.normalize('NFD', text.lower())
    value = ''.join(ch for ch in value if not unicodedata.combining(ch))
    value = value.replace(',', '')
    value = _WHITESPACE_RE.sub('-', value)
    value = _UNSAFE_RE.sub('', value)
    value = _HYPHEN_RUN_RE.sub('-', value)
    return value.strip('-')


def build_slug(
    subject_name: str,
    sub_location: str,
    city: str,
    keyword: str,
    descriptor: str,
    photo_id: str,
) -> str:
    """
    Build the compound slug identifying one image.

    Layout: ``subject-sublocation-city__keyword__descriptor__photoid``.

    Args:
        subject_name: Name of the pictured space
        sub_location: Neighborhood
        city: City
        keyword: Keyword master phrase for the image's category
        descriptor: Descriptor phrase selected for the image
        photo_id: Per-image identifier

    Returns:
        Slug base string
    """
    identity = '-'.join(
        normalize_text(part) for part in (subject_name, sub_location, city)
    )
    return SLUG_GROUP_SEPARATOR.join((
        identity,
        normalize_text(keyword),
        normalize_text(descriptor),
        normalize_text(photo_id),
    ))


def split_slug(slug: str) -> Tuple[str, str, str, str]:
    """
    Decompose a slug into its identity, keyword, descriptor and photo id groups.

    Raises:
        ValueError: If the slug does not have exactly four groups
    """
    groups = slug.rsplit(SLUG_GROUP_SEPARATOR, 3)
    if len(groups) != 4:
        raise ValueError(f"Not a slug base: {slug!r}")
    return groups[0], groups[1], groups[2], groups[3]


def strip_extension(filename: str) -> str:
    """Remove the file extension from a filename."""
    dot = filename.rfind('.')
    if dot <= 0:
        return filename
    return filename[:dot]


def get_extension(filename: str) -> str:
    """Lowercased extension without the dot, empty when there is none."""
    dot = filename.rfind('.')
    if dot <= 0 or dot == len(filename) - 1:
        return ""
    return filename[dot + 1:].lower()


def char_code_sum(text: str) -> int:
    """Sum of the Unicode code points of ``text``."""
    return sum(ord(ch) for ch in text)
