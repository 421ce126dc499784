"""Shared helper utilities for cleaning spreadsheet and form text."""

from __future__ import annotations

import re
from typing import Any, Final

_BOM: Final[str] = "\ufeff"


def normalize_header(name: str) -> str:
    """Lower-case *name* and drop spaces, underscores and hyphens.

    ``"Start Date"``, ``"start_date"`` and ``"START-DATE"`` all become
    ``"startdate"``.
    """
    if not name:
        return ""
    return re.sub(r"[\s_\-]", "", name.replace(_BOM, "")).lower()


def clean_cell(value: Any) -> str:
    """Return *value* as a single-line string with collapsed whitespace."""
    if value is None:
        return ""
    return " ".join(str(value).replace(_BOM, "").split())


def normalize_token(value: Any) -> str:
    """Lower-case *value* and collapse runs of spaces, hyphens and underscores to one space."""
    return re.sub(r"[\s_\-]+", " ", clean_cell(value)).strip().lower()


def strip_bom(text: str) -> str:
    return text[1:] if text.startswith(_BOM) else text


__all__ = ["normalize_header", "clean_cell", "normalize_token", "strip_bom"]
