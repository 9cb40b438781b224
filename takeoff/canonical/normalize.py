"""Drawing and size normalization shared by identity keys and the ORM.

``normalize_drawing`` is the single implementation used both when keys are
resolved and when ``drawings.drawing_no_norm`` is written, so a drawing
looked up by key always finds the row the store normalized.
"""

from __future__ import annotations

import re

NOSIZE = "NOSIZE"

_WHITESPACE = re.compile(r"\s+")
_SIZE_STRIP = re.compile(r"[\"'\s]")


def normalize_drawing(raw: str | None) -> str:
    """Trim, uppercase and collapse whitespace runs to one space.

    Hyphens and leading zeros are kept: "p-001" and "P-1" are different
    drawings.
    """
    if not raw:
        return ""
    return _WHITESPACE.sub(" ", raw.strip().upper())


def normalize_size(raw: str | None) -> str:
    """Normalize a nominal size for use inside a composite key.

    Blank sizes become ``NOSIZE``; quotes and whitespace are dropped and
    ``/`` becomes ``X`` (1/2" -> 1X2).
    """
    if raw is None or not str(raw).strip():
        return NOSIZE
    return _SIZE_STRIP.sub("", str(raw).strip()).replace("/", "X").upper()


def clean_cell(value: object) -> str:
    """Coerce a spreadsheet cell to a stripped string ("" for blanks)."""
    if value is None:
        return ""
    return str(value).strip()
