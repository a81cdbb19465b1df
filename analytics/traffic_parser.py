"""
Traffic Source CSV Parser.

Parses "Traffic source" CSV exports into ParsedSnapshotResult objects.

Export layout:
- Row 0 is the header; column order varies between exports
- One row per traffic source (source name in the mapped source column)
- An aggregate row labelled "Total", usually the first data row
"""

import logging
from typing import Optional

from analytics.column_mapper import detect, missing_fields
from analytics.csv_decoder import (
    clean_field,
    decode,
    parse_int_field,
    parse_numeric_field,
)
from analytics.errors import MappingRequiredError, NoDataError, TrafficParseError
from registry.schemas import (
    ColumnMapping,
    MappingPreviewResponse,
    ParsedSnapshotResult,
    TrafficMetric,
)

logger = logging.getLogger(__name__)


def split_lines(text: str) -> list[str]:
    """Split CSV text into lines, tolerating CRLF endings and a BOM."""
    return text.lstrip("\ufeff").splitlines()


def decode_bytes(raw: bytes) -> str:
    """
    Decode raw CSV bytes as UTF-8 (with or without BOM).

    Raises:
        TrafficParseError: If the bytes are not valid UTF-8.
    """
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise TrafficParseError(f"CSV is not valid UTF-8 text: {e}") from e


def _cell(cols: list[str], idx: int) -> Optional[str]:
    return cols[idx] if idx < len(cols) else None


def _preview_row(lines: list[str]) -> list[str]:
    """First non-blank data row, cleaned, for the manual mapping UI."""
    for line in lines[1:]:
        if line.strip():
            return [clean_field(c) for c in decode(line.strip())]
    return []


def mapping_preview(text: str) -> MappingPreviewResponse:
    """
    Build the data the manual column-mapping UI needs.

    Args:
        text: Raw CSV text.

    Returns:
        Header row, a preview data row, the auto-detected mapping (if any)
        and the positional default mapping.
    """
    lines = split_lines(text)
    header_row = decode(lines[0].strip()) if lines else []

    return MappingPreviewResponse(
        headers=[clean_field(h) for h in header_row],
        preview_row=_preview_row(lines),
        detected_mapping=detect(header_row),
        default_mapping=ColumnMapping.positional(),
        missing_fields=missing_fields(header_row),
    )


def resolve_mapping(
    lines: list[str],
    user_mapping: Optional[ColumnMapping] = None,
) -> tuple[ColumnMapping, bool]:
    """
    Pick the mapping for a file: the user's if given, else auto-detected.

    Returns:
        Tuple of (mapping, auto_detected).

    Raises:
        NoDataError: If the file is empty.
        MappingRequiredError: If auto-detection fails.
    """
    if user_mapping is not None:
        return user_mapping, False

    if not lines or not lines[0].strip():
        raise NoDataError()

    header_row = decode(lines[0].strip())
    detected = detect(header_row)

    if detected is None:
        raise MappingRequiredError(
            headers=[clean_field(h) for h in header_row],
            missing_fields=missing_fields(header_row),
            preview_row=_preview_row(lines),
        )

    return detected, True


def parse_lines(lines: list[str], mapping: ColumnMapping) -> ParsedSnapshotResult:
    """
    Parse CSV lines into typed metrics using an explicit column mapping.

    Rules:
        - Row 0 is the header and is never parsed as data
        - Blank rows and rows with fewer than 2 fields are skipped
        - Rows with an empty source are skipped
        - Bad numeric cells become 0 instead of failing the file
        - The first "Total" row (any case) becomes total_row; later ones
          are dropped
        - Repeated source names keep their first row

    Args:
        lines: CSV lines including the header.
        mapping: Column indices for the six fields.

    Returns:
        ParsedSnapshotResult with per-source metrics and the total row.

    Raises:
        TrafficParseError: If the mapping points past the header width.
        NoDataError: If no data rows remain after removing the Total row.
    """
    if not lines:
        raise NoDataError()

    header_width = len(decode(lines[0].strip()))
    if max(mapping.indices()) >= header_width:
        raise TrafficParseError(
            f"Column mapping {mapping.indices()} does not fit a header "
            f"with {header_width} columns"
        )

    metrics: list[TrafficMetric] = []
    seen_sources: set[str] = set()
    total_row: Optional[TrafficMetric] = None
    skipped = 0

    for line_number, raw_line in enumerate(lines[1:], start=2):
        line = raw_line.strip()
        if not line:
            continue

        cols = decode(line)
        if len(cols) < 2:
            skipped += 1
            continue

        source_name = clean_field(_cell(cols, mapping.source))
        if not source_name:
            skipped += 1
            continue

        metric = TrafficMetric(
            source=source_name,
            views=parse_int_field(_cell(cols, mapping.views)),
            watch_time_hours=max(parse_numeric_field(_cell(cols, mapping.watch_time)), 0.0),
            avg_view_duration=clean_field(_cell(cols, mapping.avg_duration)),
            impressions=parse_int_field(_cell(cols, mapping.impressions)),
            ctr=parse_numeric_field(_cell(cols, mapping.ctr)),
        )

        if metric.is_total:
            if total_row is None:
                total_row = metric
                logger.debug(
                    f"Total row: views={metric.views} "
                    f"impressions={metric.impressions} ctr={metric.ctr}"
                )
            else:
                logger.warning(
                    f"Additional Total row on line {line_number} ignored "
                    f"(views={metric.views})"
                )
            continue

        if source_name in seen_sources:
            logger.warning(
                f"Duplicate traffic source '{source_name}' on line {line_number} ignored"
            )
            continue

        seen_sources.add(source_name)
        metrics.append(metric)

    if not metrics:
        raise NoDataError()

    logger.info(
        f"Parsed traffic source CSV: sources={len(metrics)} "
        f"total_row={'yes' if total_row else 'no'} skipped={skipped}"
    )
    return ParsedSnapshotResult(metrics=tuple(metrics), total_row=total_row)


def parse_traffic_source_csv(
    text: str,
    user_mapping: Optional[ColumnMapping] = None,
) -> ParsedSnapshotResult:
    """
    Parse a Traffic Source CSV export.

    Args:
        text: Raw CSV text.
        user_mapping: Manual column mapping from the mapping UI. When None,
            columns are auto-detected from the header.

    Raises:
        MappingRequiredError: If headers cannot be auto-detected.
        NoDataError: If no valid data rows are found.
        TrafficParseError: If the supplied mapping does not fit the file.
    """
    lines = split_lines(text)
    mapping, _ = resolve_mapping(lines, user_mapping)
    return parse_lines(lines, mapping)


def parse_traffic_source_bytes(
    raw: bytes,
    user_mapping: Optional[ColumnMapping] = None,
) -> ParsedSnapshotResult:
    """Decode raw bytes from the byte source and parse them."""
    return parse_traffic_source_csv(decode_bytes(raw), user_mapping)
