"""
Multi-Surface Photo Export Package

This package prepares a batch of photographs for several publishing surfaces
(web, Instagram, Pinterest, Google Business, messaging and print). For every
image and surface it synthesizes a deterministic filename, alt text and
caption, resizes and recompresses the image, and bundles everything into a
single ZIP archive together with two verification spreadsheets.
"""

__version__ = "1.0.0"
__author__ = "Your Name"
