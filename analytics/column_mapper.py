"""
Column auto-detection for Traffic Source CSV exports.

Header order and wording vary between exports and console languages, so
columns are located by matching header text against known aliases. When
any of the six fields cannot be found, detection fails as a whole and the
caller must ask the user for a full manual mapping.
"""

import logging
from typing import Optional

from analytics.csv_decoder import clean_field
from registry.schemas import COLUMN_FIELDS, ColumnMapping

logger = logging.getLogger(__name__)

# Known header variants for auto-detection (EN + RU)
KNOWN_HEADERS: dict[str, list[str]] = {
    "source": ["Traffic source", "Source", "Источник трафика"],
    "views": ["Views", "Просмотры"],
    "watch_time": [
        "Watch time (hours)",
        "Watch time",
        "Время просмотра (часы)",
        "Время просмотра",
    ],
    "avg_duration": [
        "Average view duration",
        "Avg duration",
        "Средняя длительность просмотра",
    ],
    "impressions": ["Impressions", "Показы"],
    "ctr": [
        "Impressions click-through rate",
        "Impressions click-through rate (%)",
        "CTR",
        "Показатель кликабельности показов",
        "CTR для значков видео (%)",
    ],
}


def normalize_header(header: str) -> str:
    """Lower-case a header cell and strip quotes, BOM and whitespace."""
    return clean_field(header).replace('"', "").lower()


def _resolve_indices(
    header_row: list[str],
    known_aliases: dict[str, list[str]],
) -> dict[str, int]:
    """Map each field to the first header matching one of its aliases."""
    headers = [normalize_header(h) for h in header_row]
    resolved: dict[str, int] = {}

    for field_name in COLUMN_FIELDS:
        aliases = {alias.strip().lower() for alias in known_aliases.get(field_name, [])}
        for idx, header in enumerate(headers):
            if header in aliases:
                resolved[field_name] = idx
                break

    return resolved


def missing_fields(
    header_row: list[str],
    known_aliases: Optional[dict[str, list[str]]] = None,
) -> list[str]:
    """Return the fields that no header in ``header_row`` matches."""
    resolved = _resolve_indices(header_row, known_aliases or KNOWN_HEADERS)
    return [name for name in COLUMN_FIELDS if name not in resolved]


def detect(
    header_row: list[str],
    known_aliases: Optional[dict[str, list[str]]] = None,
) -> Optional[ColumnMapping]:
    """
    Infer which column holds which field.

    Args:
        header_row: Decoded header cells (raw, not yet normalized).
        known_aliases: Field name -> accepted header texts. Defaults to
            KNOWN_HEADERS.

    Returns:
        ColumnMapping when all six fields resolve to distinct columns,
        otherwise None. There is no partial mapping.
    """
    resolved = _resolve_indices(header_row, known_aliases or KNOWN_HEADERS)

    missing = [name for name in COLUMN_FIELDS if name not in resolved]
    if missing:
        logger.info(f"Column auto-detection failed, missing: {missing}")
        return None

    if len(set(resolved.values())) != len(COLUMN_FIELDS):
        logger.info(f"Column auto-detection produced overlapping columns: {resolved}")
        return None

    logger.debug(f"Detected column mapping: {resolved}")
    return ColumnMapping(**resolved)
