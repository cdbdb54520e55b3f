"""Invisible-character stripping for task descriptions.

A denied keyword can be disguised by inserting characters that render as
nothing, e.g. ``s<U+200B>end``. The text still reads "send" to a human but
no longer matches ``*send*``. These characters are removed, never
escaped, before a task is matched against policy patterns.
"""

from __future__ import annotations

import re

# Removed outright; everything visible is left as-is
INVISIBLE_PATTERNS: list[re.Pattern[str]] = [
    re.compile("[\u200B-\u200F\uFEFF\u2060-\u2064]"),  # Zero-width chars and BOM
    re.compile("[\u0300-\u036F]"),  # Combining diacritical marks
    re.compile("[\u00AD\u034F]"),  # Soft hyphen, combining grapheme joiner
    re.compile("[\u202A-\u202E\u2066-\u2069]"),  # Bidi embeddings, overrides, isolates
]


def sanitize(text: str) -> str:
    """Strip zero-width, combining, BOM and bidi control characters.

    Pure and total: any string in, a string out. Only applied to task
    descriptions before policy evaluation, never to executor output.
    """
    for pattern in INVISIBLE_PATTERNS:
        text = pattern.sub("", text)
    return text
