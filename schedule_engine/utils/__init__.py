"""Utility functions for the schedule engine.

Re-exports the text-cleaning helpers and datetime utilities so that imports like
`from ..utils import clean_cell` or `from ..utils import get_current_timestamp`
work as expected.
"""

from .text_cleaning import clean_cell, normalize_header, normalize_token  # noqa: F401
from .datetime_utils import (  # noqa: F401
    get_current_timestamp,
    interpret_date_expression,
    parse_date,
)

__all__ = [
    "clean_cell",
    "normalize_header",
    "normalize_token",
    "get_current_timestamp",
    "interpret_date_expression",
    "parse_date",
]
