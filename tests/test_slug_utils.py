"""
Tests for the slug utilities.
"""
import unittest

from photo_export.slug_utils import (
    build_slug,
    char_code_sum,
    get_extension,
    normalize_text,
    split_slug,
    strip_extension,
)
from photo_export.utils import escape_caption, format_bytes, unescape_caption


class TestNormalizeText(unittest.TestCase):
    """Test cases for normalize_text."""

    def test_lowercases_and_hyphenates(self):
        self.assertEqual(normalize_text("Open Floor Plan Studio"), "open-floor-plan-studio")

    def test_strips_accents(self):
        self.assertEqual(normalize_text("Café Olé"), "cafe-ole")
        self.assertEqual(normalize_text("Zürich"), "zurich")

    def test_removes_commas_and_unsafe_characters(self):
        self.assertEqual(normalize_text("SoHo, NYC"), "soho-nyc")
        self.assertEqual(normalize_text("Kitchen / Bar & Lounge!"), "kitchen-bar-lounge")

    def test_collapses_whitespace_and_hyphens(self):
        self.assertEqual(normalize_text("  floor -- to\t\tceiling  "), "floor-to-ceiling")
        self.assertEqual(normalize_text("---a---b---"), "a-b")

    def test_keeps_underscores(self):
        self.assertEqual(normalize_text("main_room_wide"), "main_room_wide")

    def test_empty_input(self):
        self.assertEqual(normalize_text(""), "")
        self.assertEqual(normalize_text(None), "")
        self.assertEqual(normalize_text("   "), "")
        self.assertEqual(normalize_text("!!!"), "")

    def test_idempotent(self):
        samples = ["Downtown Manhattan views", "Café, Olé", "high-ceilings_with light", "IMG 4521"]
        for sample in samples:
            once = normalize_text(sample)
            self.assertEqual(normalize_text(once), once)


class TestBuildSlug(unittest.TestCase):
    """Test cases for build_slug and split_slug."""

    def test_layout(self):
        slug = build_slug(
            "Studio", "SoHo", "NYC", "open floor plan studio", "curated design details", "img4521"
        )
        self.assertEqual(
            slug,
            "studio-soho-nyc__open-floor-plan-studio__curated-design-details__img4521",
        )

    def test_deterministic(self):
        args = ("Studio", "SoHo", "New York City", "natural light photography studio",
                "floor-to-ceiling windows", "dsc0001")
        self.assertEqual(build_slug(*args), build_slug(*args))

    def test_photo_id_disambiguates(self):
        a = build_slug("Studio", "SoHo", "NYC", "kw", "desc", "img1")
        b = build_slug("Studio", "SoHo", "NYC", "kw", "desc", "img1-2")
        self.assertNotEqual(a, b)

    def test_split_slug(self):
        slug = build_slug("Studio", "SoHo", "NYC", "open floor plan studio", "modern lounge seating", "img1")
        self.assertEqual(
            split_slug(slug),
            ("studio-soho-nyc", "open-floor-plan-studio", "modern-lounge-seating", "img1"),
        )

    def test_split_slug_rejects_other_strings(self):
        with self.assertRaises(ValueError):
            split_slug("not-a-slug")


class TestFilenameHelpers(unittest.TestCase):
    """Test cases for extension helpers and the character sum."""

    def test_strip_extension(self):
        self.assertEqual(strip_extension("IMG_4521.jpg"), "IMG_4521")
        self.assertEqual(strip_extension("archive.tar.gz"), "archive.tar")
        self.assertEqual(strip_extension("README"), "README")
        self.assertEqual(strip_extension(".hidden"), ".hidden")

    def test_get_extension(self):
        self.assertEqual(get_extension("IMG_4521.JPG"), "jpg")
        self.assertEqual(get_extension("photo.tiff"), "tiff")
        self.assertEqual(get_extension("README"), "")
        self.assertEqual(get_extension(".hidden"), "")
        self.assertEqual(get_extension("trailing."), "")

    def test_char_code_sum(self):
        self.assertEqual(char_code_sum("IMG_4521.jpg"), 887)
        self.assertEqual(char_code_sum(""), 0)


class TestCaptionEscaping(unittest.TestCase):
    """Test cases for caption escaping."""

    def test_newlines_become_two_characters(self):
        self.assertEqual(escape_caption("a\nb\r\nc"), "a\\nb\\r\\nc")
        self.assertNotIn("\n", escape_caption("line one\nline two"))

    def test_round_trip(self):
        captions = [
            'Comma, "quote" and\nnewline',
            "Literal \\n is not a newline\n",
            "Windows\r\nline endings",
            "✨ Studio: curated design details\n\n#soho #nyc",
            "",
        ]
        for caption in captions:
            self.assertEqual(unescape_caption(escape_caption(caption)), caption)

    def test_format_bytes(self):
        self.assertEqual(format_bytes(512), "512 B")
        self.assertEqual(format_bytes(2048), "2.0 KB")
        self.assertEqual(format_bytes(3 * 1024 * 1024), "3.00 MB")


if __name__ == '__main__':
    unittest.main()
