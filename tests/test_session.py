"""
Tests for the export session.
"""
import io
import os
import shutil
import tempfile
import unittest

from PIL import Image

from photo_export.config import AppConfig
from photo_export.metadata_engine import MetadataGenerator
from photo_export.session import STATUS_OPTIMIZED, STATUS_RAW, ExportSession
from photo_export.surfaces import Surface


def jpeg_bytes(width=32, height=24):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (90, 90, 90)).save(buffer, format="JPEG")
    return buffer.getvalue()


class TestExportSession(unittest.TestCase):
    """Test cases for ExportSession."""

    def setUp(self):
        """Set up test fixtures."""
        self.config = AppConfig()
        self.config.default_location = "SoHo, NYC"
        self.session = ExportSession(self.config, MetadataGenerator(self.config, year=2024))

    def test_add_bytes_sets_default_fields(self):
        image = self.session.add_bytes("IMG_4521.jpg", jpeg_bytes())
        fields = self.session.get_fields(image.image_id)

        self.assertEqual(len(self.session), 1)
        self.assertEqual(fields.photo_id, "img4521")
        self.assertEqual(fields.category, "main_room_wide")
        self.assertEqual(fields.descriptor, "curated design details")
        self.assertEqual(fields.keyword_master, "open floor plan studio")
        self.assertEqual(fields.hashtags[:2], ["soho", "nyc"])
        self.assertEqual(self.session.get_status(image.image_id), STATUS_RAW)

    def test_colliding_photo_ids_get_suffixes(self):
        ids = [self.session.add_bytes("IMG_1.jpg", jpeg_bytes()).image_id for _ in range(3)]
        photo_ids = [self.session.get_fields(image_id).photo_id for image_id in ids]
        self.assertEqual(photo_ids, ["img1", "img1-2", "img1-3"])

        slugs = {
            self.session.generate_metadata_for_image(image_id, Surface.WEB).slug_base
            for image_id in ids
        }
        self.assertEqual(len(slugs), 3)

    def test_add_paths_expands_directories(self):
        temp_dir = tempfile.mkdtemp()
        try:
            for name in ("b.jpg", "a.png", "notes.txt"):
                with open(os.path.join(temp_dir, name), 'wb') as f:
                    f.write(jpeg_bytes())
            os.makedirs(os.path.join(temp_dir, "nested"))

            added = self.session.add_paths([temp_dir])
            self.assertEqual([image.filename for image in added], ["a.png", "b.jpg"])
        finally:
            shutil.rmtree(temp_dir)

    def test_add_paths_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            self.session.add_paths(["/nonexistent/photo.jpg"])

    def test_remove_images_releases_and_drops_everything(self):
        image = self.session.add_bytes("a.jpg", jpeg_bytes())
        other = self.session.add_bytes("b.jpg", jpeg_bytes())
        self.session.toggle_selection(image.image_id)
        self.session.generate_metadata_for_image(image.image_id, Surface.WEB)

        removed = self.session.remove_images([image.image_id, "unknown"])

        self.assertEqual(removed, 1)
        self.assertTrue(image.released)
        self.assertNotIn(image.image_id, self.session)
        self.assertEqual(self.session.get_selected_images(), [])
        self.assertEqual(self.session.metadata_for_image(image.image_id), {})
        self.assertEqual(self.session.images, [other])

    def test_clear(self):
        images = [self.session.add_bytes(f"{i}.jpg", jpeg_bytes()) for i in range(3)]
        self.session.clear()
        self.assertEqual(len(self.session), 0)
        self.assertTrue(all(image.released for image in images))

    def test_update_category_recomputes_keyword_and_hashtags(self):
        image = self.session.add_bytes("a.jpg", jpeg_bytes())
        self.session.current_location = "Williamsburg, Brooklyn"
        self.session.update_image_field(image.image_id, "category", "kitchen_bar")

        fields = self.session.get_fields(image.image_id)
        self.assertEqual(fields.category, "kitchen_bar")
        self.assertEqual(fields.keyword_master, "studio kitchen bar area")
        self.assertEqual(fields.hashtags[:2], ["williamsburg", "brooklyn"])
        self.assertIn("cateringspace", fields.hashtags)

    def test_update_image_field_validation(self):
        image = self.session.add_bytes("a.jpg", jpeg_bytes())
        with self.assertRaises(ValueError):
            self.session.update_image_field(image.image_id, "keyword_master", "x")
        with self.assertRaises(ValueError):
            self.session.update_image_field(image.image_id, "category", "ballroom")
        with self.assertRaises(KeyError):
            self.session.update_image_field("missing", "notes", "x")

        self.session.update_image_field(image.image_id, "notes", "hero")
        self.assertEqual(self.session.get_fields(image.image_id).notes, "hero")

    def test_bulk_updates(self):
        ids = [self.session.add_bytes(f"{i}.jpg", jpeg_bytes()).image_id for i in range(2)]
        self.session.bulk_update_category(ids, "exterior")
        self.session.bulk_update_hashtags(ids, ["one", "two"])
        for image_id in ids:
            fields = self.session.get_fields(image_id)
            self.assertEqual(fields.category, "exterior")
            self.assertEqual(fields.hashtags, ["one", "two"])

    def test_selection(self):
        ids = [self.session.add_bytes(f"{i}.jpg", jpeg_bytes()).image_id for i in range(3)]

        self.assertEqual(self.session.images_to_export(), self.session.images)

        self.assertTrue(self.session.toggle_selection(ids[2]))
        self.assertTrue(self.session.toggle_selection(ids[0]))
        self.assertEqual([i.image_id for i in self.session.get_selected_images()], [ids[0], ids[2]])
        self.assertEqual([i.image_id for i in self.session.images_to_export()], [ids[0], ids[2]])
        self.assertFalse(self.session.toggle_selection(ids[2]))

        self.session.select_all()
        self.assertEqual(len(self.session.get_selected_images()), 3)
        self.session.select_all()
        self.assertEqual(self.session.get_selected_images(), [])

        self.session.toggle_selection(ids[1])
        self.session.clear_selection()
        self.assertEqual(self.session.get_selected_images(), [])

        self.assertEqual([i.image_id for i in self.session.images_to_export([ids[1]])], [ids[1]])
        with self.assertRaises(KeyError):
            self.session.images_to_export(["missing"])

    def test_generate_metadata_uses_current_location(self):
        image = self.session.add_bytes("IMG_4521.jpg", jpeg_bytes())
        self.session.current_location = "Tribeca, NYC"
        metadata = self.session.generate_metadata_for_image(image.image_id, "web")
        self.assertEqual(metadata.neighborhood, "Tribeca")
        self.assertIs(self.session.get_metadata(image.image_id, Surface.WEB), metadata)

    def test_generate_metadata_for_all(self):
        ids = [self.session.add_bytes(f"{i}.jpg", jpeg_bytes()).image_id for i in range(3)]
        self.session.toggle_selection(ids[0])

        self.assertEqual(self.session.generate_metadata_for_all(Surface.INSTAGRAM), 1)
        self.assertIsNotNone(self.session.get_metadata(ids[0], Surface.INSTAGRAM))
        self.assertIsNone(self.session.get_metadata(ids[1], Surface.INSTAGRAM))

        self.session.clear_selection()
        self.assertEqual(self.session.generate_metadata_for_all_surfaces(), 18)
        for image_id in ids:
            self.assertEqual(set(self.session.metadata_for_image(image_id)), set(Surface))

    def test_update_metadata(self):
        image = self.session.add_bytes("a.jpg", jpeg_bytes())
        original = self.session.generate_metadata_for_image(image.image_id, Surface.WEB)

        previous = self.session.update_metadata(image.image_id, Surface.WEB, caption="Edited")
        self.assertIs(previous, original)
        self.assertEqual(self.session.get_metadata(image.image_id, Surface.WEB).caption, "Edited")

        self.assertIsNone(self.session.update_metadata(image.image_id, "print", caption="Only a caption"))
        self.assertFalse(self.session.get_metadata(image.image_id, Surface.PRINT).is_complete)

    def test_mark_as_optimized(self):
        image = self.session.add_bytes("a.jpg", jpeg_bytes())
        self.session.mark_as_optimized([image.image_id, "missing"])
        self.assertEqual(self.session.get_status(image.image_id), STATUS_OPTIMIZED)


if __name__ == '__main__':
    unittest.main()
