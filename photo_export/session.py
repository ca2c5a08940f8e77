"""
In-memory session: ingested images, their editable fields, the selection
and the per-image metadata table.
"""

import os
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set, Union

from .config import AppConfig
from .image_processor import RAW_EXTENSIONS, SourceImage
from .logging_setup import get_logger
from .metadata_engine import (
    ImageFields,
    MetadataGenerator,
    SurfaceMetadata,
    default_fields,
    parse_location,
)
from .slug_utils import get_extension
from .surfaces import Surface
from .templates import SPACE_CATEGORIES, generate_hashtags, keyword_master_for_category

logger = get_logger(__name__)

IMAGE_EXTENSIONS = frozenset({'jpg', 'jpeg', 'png', 'webp', 'tif', 'tiff', 'bmp', 'gif'}) | RAW_EXTENSIONS

EDITABLE_FIELDS = ('category', 'descriptor', 'photo_id', 'hashtags', 'notes')

STATUS_RAW = "raw"
STATUS_OPTIMIZED = "optimized"


def is_image_file(path: str) -> bool:
    """Check whether a path has an extension the session can ingest."""
    return get_extension(os.path.basename(path)) in IMAGE_EXTENSIONS


class ExportSession:
    """
    Explicit session state handed to the export orchestrator.

    Images keep their ingestion order. The metadata table is sparse: an image
    only has entries for the surfaces metadata was generated (or edited) for.
    """

    def __init__(self, config: AppConfig, generator: Optional[MetadataGenerator] = None):
        """
        Initialize an empty session.

        Args:
            config: Application configuration
            generator: Metadata generator, built from ``config`` when omitted
        """
        self.config = config
        self.generator = generator or MetadataGenerator(config)
        self.current_category = config.default_category
        self.current_location = config.default_location

        self._images: 'OrderedDict[str, SourceImage]' = OrderedDict()
        self._fields: Dict[str, ImageFields] = {}
        self._status: Dict[str, str] = {}
        self._selected: Set[str] = set()
        self._metadata: Dict[str, Dict[Surface, SurfaceMetadata]] = {}

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_image(self, image: SourceImage) -> SourceImage:
        """
        Add a source image with default fields.

        Raises:
            ValueError: If an image with the same id is already in the session
        """
        if image.image_id in self._images:
            raise ValueError(f"Duplicate image id: {image.image_id}")

        neighborhood, city = self._location_parts()
        fields = default_fields(image.filename, self.config.default_category, neighborhood, city)
        fields.photo_id = self._unique_photo_id(fields.photo_id)

        self._images[image.image_id] = image
        self._fields[image.image_id] = fields
        self._status[image.image_id] = STATUS_RAW
        logger.debug(f"Added {image.filename} as {image.image_id} (photo id {fields.photo_id})")
        return image

    def add_bytes(self, filename: str, data: bytes) -> SourceImage:
        """Add an in-memory image."""
        return self.add_image(SourceImage.from_bytes(filename, data))

    def add_paths(self, paths: Iterable[str]) -> List[SourceImage]:
        """
        Add image files; directories contribute the image files they contain.

        Files inside directories are added in sorted order, non-image files
        are skipped. Explicit file paths are added as given.

        Raises:
            FileNotFoundError: If a path does not exist
        """
        added = []
        for path in paths:
            if os.path.isdir(path):
                entries = sorted(os.listdir(path))
                files = [os.path.join(path, name) for name in entries]
                files = [f for f in files if os.path.isfile(f) and is_image_file(f)]
                logger.info(f"Found {len(files)} images in {path}")
                for file_path in files:
                    added.append(self.add_image(SourceImage.from_path(file_path)))
            else:
                added.append(self.add_image(SourceImage.from_path(path)))
        return added

    def _unique_photo_id(self, photo_id: str) -> str:
        taken = {fields.photo_id for fields in self._fields.values()}
        if photo_id not in taken:
            return photo_id
        suffix = 2
        while f"{photo_id}-{suffix}" in taken:
            suffix += 1
        return f"{photo_id}-{suffix}"

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove_images(self, image_ids: Iterable[str]) -> int:
        """
        Remove images, releasing their payloads.

        Returns:
            Number of images removed; unknown ids are ignored
        """
        removed = 0
        for image_id in list(image_ids):
            image = self._images.pop(image_id, None)
            if image is None:
                continue
            image.release()
            self._fields.pop(image_id, None)
            self._status.pop(image_id, None)
            self._metadata.pop(image_id, None)
            self._selected.discard(image_id)
            removed += 1
        logger.debug(f"Removed {removed} images")
        return removed

    def clear(self) -> None:
        """Remove every image."""
        self.remove_images(list(self._images))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def images(self) -> List[SourceImage]:
        return list(self._images.values())

    def __len__(self) -> int:
        return len(self._images)

    def __contains__(self, image_id: str) -> bool:
        return image_id in self._images

    def get_image(self, image_id: str) -> SourceImage:
        """
        Raises:
            KeyError: If the image is not in the session
        """
        try:
            return self._images[image_id]
        except KeyError:
            raise KeyError(f"Unknown image id: {image_id}")

    def get_fields(self, image_id: str) -> ImageFields:
        self.get_image(image_id)
        return self._fields[image_id]

    def get_status(self, image_id: str) -> str:
        self.get_image(image_id)
        return self._status[image_id]

    # ------------------------------------------------------------------
    # Field edits
    # ------------------------------------------------------------------

    def update_image_field(self, image_id: str, field_name: str, value) -> None:
        """
        Edit one field of an image.

        Changing the category also resets the keyword master and the hashtags
        to the new category's defaults for the current location.

        Raises:
            KeyError: If the image is unknown
            ValueError: If the field is not editable or the category is unknown
        """
        fields = self.get_fields(image_id)
        if field_name not in EDITABLE_FIELDS:
            raise ValueError(f"Field is not editable: {field_name}")

        if field_name == 'category':
            self._apply_category(fields, value)
        elif field_name == 'hashtags':
            fields.hashtags = list(value)
        else:
            setattr(fields, field_name, value)

    def bulk_update_category(self, image_ids: Iterable[str], category: str) -> None:
        """Set the category (and its keyword master and hashtags) of several images."""
        for image_id in image_ids:
            self._apply_category(self.get_fields(image_id), category)

    def bulk_update_hashtags(self, image_ids: Iterable[str], hashtags: List[str]) -> None:
        """Replace the hashtags of several images."""
        for image_id in image_ids:
            self.get_fields(image_id).hashtags = list(hashtags)

    def _apply_category(self, fields: ImageFields, category: str) -> None:
        if category not in SPACE_CATEGORIES:
            raise ValueError(f"Unknown category: {category}")
        neighborhood, city = self._location_parts()
        fields.category = category
        fields.keyword_master = keyword_master_for_category(category)
        fields.hashtags = generate_hashtags(category, neighborhood, city)

    def _location_parts(self):
        return parse_location(
            self.current_location,
            self.config.default_neighborhood,
            self.config.default_city,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle_selection(self, image_id: str) -> bool:
        """
        Flip the selection state of an image.

        Returns:
            True if the image is selected afterwards
        """
        self.get_image(image_id)
        if image_id in self._selected:
            self._selected.discard(image_id)
            return False
        self._selected.add(image_id)
        return True

    def select_all(self) -> None:
        """Select every image, or clear the selection if everything is selected."""
        if self._images and len(self._selected) == len(self._images):
            self._selected.clear()
        else:
            self._selected = set(self._images)

    def clear_selection(self) -> None:
        self._selected.clear()

    def get_selected_images(self) -> List[SourceImage]:
        """Selected images in ingestion order."""
        return [image for image_id, image in self._images.items() if image_id in self._selected]

    def images_to_export(self, image_ids: Optional[Iterable[str]] = None) -> List[SourceImage]:
        """
        Resolve the image set of an export.

        Args:
            image_ids: Explicit ids; otherwise the selection, or every image
                when nothing is selected

        Returns:
            Images in ingestion order
        """
        if image_ids is not None:
            wanted = set(image_ids)
            for image_id in wanted:
                self.get_image(image_id)
            return [image for image_id, image in self._images.items() if image_id in wanted]
        return self.get_selected_images() or self.images

    # ------------------------------------------------------------------
    # Metadata table
    # ------------------------------------------------------------------

    def generate_metadata_for_image(
        self,
        image_id: str,
        surface: Union[str, Surface],
        category: Optional[str] = None,
        location: Optional[str] = None,
    ) -> SurfaceMetadata:
        """
        Generate and store metadata for one image on one surface.

        Args:
            image_id: Image to generate for
            surface: Target surface (member or key)
            category: Category override, defaults to the image's own category
            location: Location override, defaults to ``current_location``

        Returns:
            The stored record
        """
        image = self.get_image(image_id)
        surface = Surface.from_key(surface)
        metadata = self.generator.generate(
            image,
            surface,
            category=category,
            location=location if location is not None else self.current_location,
            fields=self._fields[image_id],
        )
        self._metadata.setdefault(image_id, {})[surface] = metadata
        return metadata

    def generate_metadata_for_all(
        self,
        surface: Union[str, Surface],
        category: Optional[str] = None,
        location: Optional[str] = None,
    ) -> int:
        """
        Generate metadata on one surface for the selected images (or all).

        Returns:
            Number of records generated
        """
        images = self.images_to_export()
        for image in images:
            self.generate_metadata_for_image(image.image_id, surface, category, location)
        logger.info(f"Generated {Surface.from_key(surface).key} metadata for {len(images)} images")
        return len(images)

    def generate_metadata_for_all_surfaces(
        self,
        surfaces: Optional[Iterable[Union[str, Surface]]] = None,
        category: Optional[str] = None,
        location: Optional[str] = None,
        image_ids: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Generate metadata on several surfaces (all six by default).

        Returns:
            Number of records generated
        """
        surfaces = [Surface.from_key(s) for s in surfaces] if surfaces is not None else list(Surface)
        images = self.images_to_export(image_ids)
        for image in images:
            for surface in surfaces:
                self.generate_metadata_for_image(image.image_id, surface, category, location)
        count = len(images) * len(surfaces)
        logger.info(f"Generated {count} metadata records ({len(images)} images x {len(surfaces)} surfaces)")
        return count

    def get_metadata(self, image_id: str, surface: Union[str, Surface]) -> Optional[SurfaceMetadata]:
        """Stored record for a pair, or None when not generated yet."""
        return self._metadata.get(image_id, {}).get(Surface.from_key(surface))

    def metadata_for_image(self, image_id: str) -> Dict[Surface, SurfaceMetadata]:
        """All stored records of an image (a copy)."""
        return dict(self._metadata.get(image_id, {}))

    def update_metadata(
        self,
        image_id: str,
        surface: Union[str, Surface],
        **changes,
    ) -> Optional[SurfaceMetadata]:
        """
        Apply user edits to a stored record.

        When no record exists yet, the edits are applied to a blank one; such a
        record only becomes exportable once it has a filename and a slug.

        Returns:
            The record that was replaced, or None
        """
        self.get_image(image_id)
        surface = Surface.from_key(surface)
        table = self._metadata.setdefault(image_id, {})
        previous = table.get(surface)
        base = previous or _blank_metadata(surface)
        table[surface] = base.with_changes(**changes)
        return previous

    def mark_as_optimized(self, image_ids: Iterable[str]) -> None:
        for image_id in image_ids:
            if image_id in self._status:
                self._status[image_id] = STATUS_OPTIMIZED


def _blank_metadata(surface: Surface) -> SurfaceMetadata:
    return SurfaceMetadata(
        surface=surface,
        filename='',
        alt_text='',
        caption='',
        descriptor='',
        keyword_master='',
        slug_base='',
        neighborhood='',
        city='',
        category='',
        photo_id='',
    )
