"""
Utility functions for the export pipeline.
"""

import re

_ESCAPES = {'\\': '\\\\', '\r': '\\r', '\n': '\\n'}
_UNESCAPES = {'\\\\': '\\', '\\r': '\r', '\\n': '\n'}

_ESCAPE_RE = re.compile(r'[\\\r\n]')
_UNESCAPE_RE = re.compile(r'\\[\\rn]')


def escape_caption(caption: str) -> str:
    """
    Rewrite line breaks as two-character escapes.

    ``\\n`` and ``\\r`` become the literal sequences ``\\n`` and ``\\r`` so a
    manifest row stays on one physical line. Backslashes are doubled so that
    ``unescape_caption`` restores the exact original text.

    Args:
        caption: Caption text, possibly multi-line

    Returns:
        Single-line caption
    """
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(0)], caption)


def unescape_caption(caption: str) -> str:
    """Inverse of ``escape_caption``."""
    return _UNESCAPE_RE.sub(lambda m: _UNESCAPES[m.group(0)], caption)


def format_bytes(size: int) -> str:
    """
    Format a byte count as a human-readable string.

    Args:
        size: Number of bytes

    Returns:
        String such as ``"512 B"``, ``"12.5 KB"`` or ``"3.20 MB"``
    """
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"
