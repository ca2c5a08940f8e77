"""
Tests for the image processor module.
"""
import io
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

import numpy as np
from PIL import Image, ImageOps

from photo_export.config import AppConfig
from photo_export.errors import EncodeError, LoadError, RenderError
from photo_export.image_processor import ImageProcessor, SourceImage, calculate_dimensions
from photo_export.surfaces import Surface, SurfaceProfile


def make_image_bytes(width, height, fmt="JPEG", mode="RGB", color=(200, 120, 40)):
    """Encode a solid test image."""
    if mode == "RGBA":
        color = color + (128,)
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


class TestCalculateDimensions(unittest.TestCase):
    """Test cases for calculate_dimensions."""

    def test_landscape_downscale(self):
        self.assertEqual(calculate_dimensions(4000, 3000, 2000), (2000, 1500))

    def test_portrait_downscale(self):
        self.assertEqual(calculate_dimensions(3000, 4000, 1080), (810, 1080))

    def test_no_upscale(self):
        self.assertEqual(calculate_dimensions(800, 600, 2000), (800, 600))
        self.assertEqual(calculate_dimensions(2000, 1000, 2000), (2000, 1000))

    def test_rounding_each_edge(self):
        # 1333 * 1080 / 2000 = 719.82
        self.assertEqual(calculate_dimensions(2000, 1333, 1080), (1080, 720))
        # 3 * 2 / 4 = 1.5 rounds up
        self.assertEqual(calculate_dimensions(4, 3, 2), (2, 2))

    def test_never_below_one_pixel(self):
        self.assertEqual(calculate_dimensions(10000, 1, 100), (100, 1))

    def test_aspect_within_rounding(self):
        for width, height in ((4000, 3000), (3001, 1999), (123, 4567), (5000, 5000)):
            new_w, new_h = calculate_dimensions(width, height, 1080)
            self.assertLessEqual(max(new_w, new_h), 1080)
            self.assertLessEqual(abs(new_w - width * 1080 / max(width, height)), 1)
            self.assertLessEqual(abs(new_h - height * 1080 / max(width, height)), 1)


class TestSourceImage(unittest.TestCase):
    """Test cases for SourceImage."""

    def setUp(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir)

    def test_from_path(self):
        path = os.path.join(self.temp_dir, "IMG_0001.png")
        data = make_image_bytes(20, 10, fmt="PNG")
        with open(path, 'wb') as f:
            f.write(data)

        image = SourceImage.from_path(path)
        self.assertEqual(image.filename, "IMG_0001.png")
        self.assertEqual(image.size_bytes, len(data))
        self.assertEqual(image.path, path)
        with image.open() as img:
            self.assertEqual(img.size, (20, 10))

    def test_from_path_missing(self):
        with self.assertRaises(FileNotFoundError):
            SourceImage.from_path(os.path.join(self.temp_dir, "nope.jpg"))

    def test_ids_are_unique(self):
        a = SourceImage.from_bytes("a.jpg", b"x")
        b = SourceImage.from_bytes("a.jpg", b"x")
        self.assertNotEqual(a.image_id, b.image_id)

    def test_release(self):
        image = SourceImage.from_bytes("a.jpg", make_image_bytes(4, 4))
        image.release()
        self.assertTrue(image.released)
        with self.assertRaises(ValueError):
            image.open()

    def test_is_raw(self):
        self.assertTrue(SourceImage.from_bytes("DSC_1.NEF", b"x").is_raw)
        self.assertFalse(SourceImage.from_bytes("DSC_1.jpg", b"x").is_raw)


class TestImageProcessor(unittest.TestCase):
    """Test cases for ImageProcessor.transcode."""

    def setUp(self):
        """Set up test fixtures."""
        self.processor = ImageProcessor(AppConfig())

    def test_web_worked_example(self):
        image = SourceImage.from_bytes("IMG_4521.jpg", make_image_bytes(4000, 3000))
        artifact = self.processor.transcode(image, Surface.WEB.profile, "JPEG", "web")

        self.assertEqual((artifact.width, artifact.height), (2000, 1500))
        self.assertEqual((artifact.original_width, artifact.original_height), (4000, 3000))
        with Image.open(io.BytesIO(artifact.data)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (2000, 1500))

    def test_small_image_not_upscaled(self):
        image = SourceImage.from_bytes("small.jpg", make_image_bytes(640, 480))
        for surface in Surface:
            artifact = self.processor.transcode(image, surface.profile, "JPEG", surface.key)
            self.assertEqual((artifact.width, artifact.height), (640, 480))

    def test_output_formats(self):
        image = SourceImage.from_bytes("alpha.png", make_image_bytes(300, 200, fmt="PNG", mode="RGBA"))
        profile = SurfaceProfile(100, 0.8, "Test")
        for fmt in ("JPEG", "PNG", "WEBP", "TIFF"):
            artifact = self.processor.transcode(image, profile, fmt)
            with Image.open(io.BytesIO(artifact.data)) as img:
                self.assertEqual(img.format, fmt)
                self.assertEqual(img.size, (100, 67))

    def test_quality_affects_size(self):
        rng = np.random.default_rng(42)
        noise = rng.integers(0, 256, size=(400, 400, 3), dtype=np.uint8)
        buffer = io.BytesIO()
        Image.fromarray(noise).save(buffer, format="PNG")
        image = SourceImage.from_bytes("noise.png", buffer.getvalue())

        low = self.processor.transcode(image, SurfaceProfile(400, 0.3, "Low"), "JPEG")
        high = self.processor.transcode(image, SurfaceProfile(400, 0.95, "High"), "JPEG")
        self.assertLess(low.size_bytes, high.size_bytes)

    def test_exif_orientation_applied(self):
        img = Image.new("RGB", (300, 100), (10, 20, 30))
        exif = img.getexif()
        exif[0x0112] = 6  # rotate 90 degrees clockwise
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", exif=exif.tobytes())
        image = SourceImage.from_bytes("rotated.jpg", buffer.getvalue())

        artifact = self.processor.transcode(image, SurfaceProfile(1000, 0.8, "Test"), "JPEG")
        self.assertEqual((artifact.width, artifact.height), (100, 300))

    def test_load_error(self):
        image = SourceImage.from_bytes("broken.jpg", b"definitely not an image")
        with self.assertRaises(LoadError) as ctx:
            self.processor.transcode(image, Surface.WEB.profile, "JPEG", "web")
        self.assertEqual(ctx.exception.filename, "broken.jpg")
        self.assertEqual(ctx.exception.surface, "web")
        self.assertEqual(ctx.exception.to_dict()["code"], "LOAD_FAILED")

    def test_encode_error(self):
        image = SourceImage.from_bytes("ok.jpg", make_image_bytes(50, 50))
        with patch.object(Image.Image, 'save', side_effect=OSError("disk full")):
            with self.assertRaises(EncodeError) as ctx:
                self.processor.transcode(image, Surface.WEB.profile, "JPEG", "web")
        self.assertIn("disk full", ctx.exception.reason)

    def track_rasters(self):
        """Patch Pillow so decoded, oriented and resized rasters and closes are recorded."""
        rasters = []
        closed = set()
        alive_at_resize = []
        original_close = Image.Image.close
        original_resize = Image.Image.resize
        original_transpose = ImageOps.exif_transpose

        def close(img):
            closed.add(id(img))
            original_close(img)

        def transpose(img, *args, **kwargs):
            result = original_transpose(img, *args, **kwargs)
            rasters.extend([img, result])
            return result

        def resize(img, *args, **kwargs):
            alive_at_resize.extend(r for r in rasters if r is not img and id(r) not in closed)
            result = original_resize(img, *args, **kwargs)
            rasters.append(result)
            return result

        patches = [
            patch.object(Image.Image, 'close', autospec=True, side_effect=close),
            patch.object(Image.Image, 'resize', autospec=True, side_effect=resize),
            patch.object(ImageOps, 'exif_transpose', side_effect=transpose),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)
        return rasters, closed, alive_at_resize

    def test_source_closed_before_resize(self):
        image = SourceImage.from_bytes("big.jpg", make_image_bytes(800, 600))
        rasters, closed, alive_at_resize = self.track_rasters()

        artifact = self.processor.transcode(image, SurfaceProfile(400, 0.8, "Test"), "JPEG")

        self.assertEqual((artifact.width, artifact.height), (400, 300))
        self.assertEqual(alive_at_resize, [])
        self.assertTrue(all(id(r) in closed for r in rasters))

    def test_render_error_closes_rasters(self):
        image = SourceImage.from_bytes("big.jpg", make_image_bytes(800, 600))
        rasters, closed, _ = self.track_rasters()

        with patch.object(ImageProcessor, '_prepare_mode', side_effect=ValueError("bad mode")):
            with self.assertRaises(RenderError):
                self.processor.transcode(image, SurfaceProfile(400, 0.8, "Test"), "JPEG")

        self.assertEqual(len(rasters), 3)
        self.assertTrue(all(id(r) in closed for r in rasters))

    def test_get_image_info(self):
        image = SourceImage.from_bytes("info.png", make_image_bytes(40, 20, fmt="PNG"))
        info = self.processor.get_image_info(image)
        self.assertEqual(info['width'], 40)
        self.assertEqual(info['height'], 20)
        self.assertEqual(info['format'], "PNG")
        self.assertEqual(info['aspect_ratio'], 2.0)
        self.assertEqual(self.processor.get_image_dimensions(image), (40, 20))

    def test_get_image_info_load_error(self):
        image = SourceImage.from_bytes("broken.png", b"nope")
        with self.assertRaises(LoadError):
            self.processor.get_image_info(image)


if __name__ == '__main__':
    unittest.main()
