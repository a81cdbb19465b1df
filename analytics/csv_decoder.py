"""
CSV line decoding and tolerant field parsing.

Exports from the analytics console are human-facing spreadsheets: quoted
fields, thousands separators, percent signs and locale-dependent decimal
marks all show up. Nothing in this module raises on bad input; a bad
cell degrades to an empty string or zero so one cell cannot abort a file.
"""

import csv
import logging
import math
import re
from typing import Optional

logger = logging.getLogger(__name__)

# Whitespace variants seen in exports, including NBSP and narrow NBSP
# used as thousands separators by some locales.
_SPACE_PATTERN = re.compile(r"[\s\u00a0\u202f]+")

# A single comma followed by anything other than exactly three digits is a
# decimal comma ("12,5", "0,45"), not a thousands separator ("1,234").
_DECIMAL_COMMA_PATTERN = re.compile(r"^-?\d+,(\d{1,2}|\d{4,})$")


def decode(line: str) -> list[str]:
    """
    Split one CSV line into raw fields.

    Double-quoted fields may contain commas and doubled quotes. Fields are
    returned as-is; trimming is left to ``clean_field``.

    Args:
        line: A single line of CSV text (no trailing newline).

    Returns:
        List of field strings. Empty input yields an empty list.
    """
    if not line:
        return []

    try:
        return next(csv.reader([line], skipinitialspace=False), [])
    except csv.Error as e:
        # e.g. NUL bytes in a corrupted export
        logger.debug(f"CSV decode fell back to plain split: {e}")
        return line.split(",")


def clean_field(value: Optional[str]) -> str:
    """Strip whitespace, a BOM and surrounding quote characters."""
    if value is None:
        return ""
    return value.replace("\ufeff", "").strip().strip('"').strip()


def parse_numeric_field(value: Optional[str]) -> float:
    """
    Parse a float from a spreadsheet cell.

    Strips whitespace, thousands separators and a trailing percent sign.
    Unparsable or non-finite values become 0.0.

    Examples:
        "1,234.5" -> 1234.5
        " 20.0 % " -> 20.0
        "12,5" -> 12.5
        "n/a" -> 0.0
    """
    cleaned = _SPACE_PATTERN.sub("", clean_field(value)).rstrip("%")
    if not cleaned:
        return 0.0

    if "." not in cleaned and _DECIMAL_COMMA_PATTERN.match(cleaned):
        cleaned = cleaned.replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")

    try:
        number = float(cleaned)
    except ValueError:
        return 0.0

    if not math.isfinite(number):
        return 0.0
    return number


def parse_int_field(value: Optional[str]) -> int:
    """
    Parse a non-negative count from a spreadsheet cell.

    Fractional parts are truncated; negative values are treated as
    unparsable and become 0.
    """
    number = parse_numeric_field(value)
    if number < 0:
        return 0
    return int(number)
