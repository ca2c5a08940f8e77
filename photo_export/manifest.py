"""
Long-form and wide-form metadata manifests.

``metadata.csv`` has one row per (image, surface) pair. ``metadata_master.csv``
has one row per image with every surface's filename as a sibling column.
Both are written with every field quoted, a header row and CRLF line endings.
"""

import csv
import io
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .logging_setup import get_logger
from .metadata_engine import ImageFields, MetadataGenerator, SurfaceMetadata
from .surfaces import Surface
from .templates import normalize_hashtags
from .utils import escape_caption, unescape_caption

logger = get_logger(__name__)

LONG_FORM_FILENAME = "metadata.csv"
WIDE_FORM_FILENAME = "metadata_master.csv"

LONG_FORM_COLUMNS = (
    'original_filename',
    'platform',
    'new_filename',
    'alt_text',
    'caption',
    'category',
    'location',
    'keyword_master',
    'descriptor',
    'slug_base',
)

CAPTION_SURFACES = tuple(surface for surface in Surface if surface.caption_column)

# Columns that may contain escaped captions
ESCAPED_COLUMNS = frozenset(
    ['caption', 'caption_web', 'pinterest_description']
    + [f"caption_{surface.column_key}" for surface in CAPTION_SURFACES]
)

# Looks up the stored record of an (image id, surface) pair
MetadataLookup = Callable[[str, Surface], Optional[SurfaceMetadata]]


def master_columns() -> List[str]:
    """Header of the wide-form manifest."""
    columns = [
        'photo_id',
        'original_filename',
        'category',
        'neighborhood',
        'city',
        'descriptor',
        'keyword_master',
        'slug_base',
    ]
    columns.extend(f"filename_{surface.column_key}" for surface in Surface)
    columns.extend(['alt_web', 'caption_web'])
    columns.extend(f"caption_{surface.column_key}" for surface in CAPTION_SURFACES)
    columns.extend(['pinterest_title', 'pinterest_description', 'hashtags', 'notes'])
    return columns


@dataclass
class ExportManifestRow:
    """One long-form row."""
    original_filename: str
    platform: str
    new_filename: str
    alt_text: str
    caption: str
    category: str
    location: str
    keyword_master: str
    descriptor: str
    slug_base: str

    @classmethod
    def from_metadata(cls, original_filename: str, metadata: SurfaceMetadata) -> 'ExportManifestRow':
        """Build a row from a stored record; the caption is escaped to one line."""
        return cls(
            original_filename=original_filename,
            platform=metadata.surface.key,
            new_filename=metadata.filename,
            alt_text=metadata.alt_text,
            caption=escape_caption(metadata.caption),
            category=metadata.category,
            location=metadata.location,
            keyword_master=metadata.keyword_master,
            descriptor=metadata.descriptor,
            slug_base=metadata.slug_base,
        )

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def build_long_rows(
    images: Sequence,
    surfaces: Sequence[Surface],
    metadata_lookup: MetadataLookup,
) -> List[ExportManifestRow]:
    """
    Build one row per (image, surface) pair, images outermost.

    Args:
        images: Source images in export order
        surfaces: Surfaces in export order
        metadata_lookup: Returns the stored record for a pair

    Returns:
        List of rows

    Raises:
        KeyError: If a pair has no stored record
    """
    rows = []
    for image in images:
        for surface in surfaces:
            metadata = metadata_lookup(image.image_id, surface)
            if metadata is None:
                raise KeyError(f"No metadata for {image.filename} → {surface.key}")
            rows.append(ExportManifestRow.from_metadata(image.filename, metadata))
    return rows


def _base_entry(entries: Mapping[Surface, SurfaceMetadata]) -> Optional[SurfaceMetadata]:
    """The web entry if present, otherwise the first entry in surface order."""
    if Surface.WEB in entries:
        return entries[Surface.WEB]
    for surface in Surface:
        if surface in entries:
            return entries[surface]
    return None


def build_master_rows(
    images: Sequence,
    fields_lookup: Callable[[str], ImageFields],
    metadata_lookup: MetadataLookup,
    generator: MetadataGenerator,
) -> List[Dict[str, str]]:
    """
    Build one wide-form row per image.

    The identity columns come from the image's web record, or from the first
    record available. Filenames of surfaces that were not generated are
    derived from that record's slug, so every ``filename_<surface>`` column is
    filled. Pinterest title and description come from the pinterest record
    when there is one and are rendered from the base record otherwise.

    Args:
        images: Source images in export order
        fields_lookup: Returns the editable fields of an image
        metadata_lookup: Returns the stored record for a pair
        generator: Generator used to derive missing filenames and captions

    Returns:
        List of row dicts keyed by ``master_columns()``
    """
    rows = []
    for image in images:
        fields = fields_lookup(image.image_id)
        entries = {}
        for surface in Surface:
            metadata = metadata_lookup(image.image_id, surface)
            if metadata is not None and metadata.is_complete:
                entries[surface] = metadata

        base = _base_entry(entries)
        if base is None:
            logger.debug(f"No stored metadata for {image.filename}, deriving master row")
            base = generator.generate(image, Surface.WEB, fields=fields)

        row = {
            'photo_id': base.photo_id,
            'original_filename': image.filename,
            'category': base.category,
            'neighborhood': base.neighborhood,
            'city': base.city,
            'descriptor': base.descriptor,
            'keyword_master': base.keyword_master,
            'slug_base': base.slug_base,
        }

        for surface in Surface:
            entry = entries.get(surface)
            filename = entry.filename if entry else generator.build_filename(base.slug_base, surface, image.filename)
            row[f"filename_{surface.column_key}"] = filename

        web = entries.get(Surface.WEB, base)
        row['alt_web'] = web.alt_text
        row['caption_web'] = escape_caption(web.caption) if web.surface is Surface.WEB else ''

        for surface in CAPTION_SURFACES:
            entry = entries.get(surface)
            row[f"caption_{surface.column_key}"] = escape_caption(entry.caption) if entry else ''

        pinterest = entries.get(Surface.PINTEREST)
        if pinterest is None:
            pinterest = generator.generate(
                image,
                Surface.PINTEREST,
                category=base.category,
                location=base.location,
                fields=fields,
            )
        row['pinterest_title'] = pinterest.pinterest_title or ''
        row['pinterest_description'] = escape_caption(pinterest.pinterest_description or '')

        row['hashtags'] = ' '.join(base.hashtags or normalize_hashtags(fields.hashtags))
        row['notes'] = fields.notes
        rows.append(row)
    return rows


def rows_to_csv(rows: Iterable, columns: Sequence[str]) -> str:
    """
    Serialize rows with a header, every field quoted, CRLF line endings.

    Args:
        rows: ``ExportManifestRow`` instances or dicts keyed by column
        columns: Column order

    Returns:
        CSV text
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=list(columns),
        quoting=csv.QUOTE_ALL,
        lineterminator='\r\n',
        extrasaction='ignore',
    )
    writer.writeheader()
    for row in rows:
        writer.writerow(row.to_dict() if isinstance(row, ExportManifestRow) else row)
    return buffer.getvalue()


def read_csv(text: str, unescape: bool = True) -> List[Dict[str, str]]:
    """
    Parse a manifest produced by ``rows_to_csv``.

    Args:
        text: CSV text
        unescape: Restore line breaks in caption columns

    Returns:
        List of row dicts
    """
    reader = csv.DictReader(io.StringIO(text, newline=''))
    rows = []
    for row in reader:
        if unescape:
            for column in ESCAPED_COLUMNS.intersection(row):
                row[column] = unescape_caption(row[column])
        rows.append(row)
    return rows
