"""
CSV export of a traffic-source view.

Writes what the table shows: the Total row first, then one row per
source. Delta views get extra change columns; an empty cell means "no
value" (new source, or no meaningful percentage).
"""

import csv
import io
import logging
from typing import Optional

from registry.schemas import DeltaMetric, TrafficMetric, TrafficView, ViewMode

logger = logging.getLogger(__name__)

BASE_COLUMNS = [
    "Traffic source",
    "Impressions",
    "Impressions click-through rate (%)",
    "Views",
    "Average view duration",
    "Watch time (hours)",
]

DELTA_COLUMNS = [
    "Impressions change",
    "Impressions change (%)",
    "CTR change",
    "Views change",
    "Views change (%)",
    "Watch time change (hours)",
    "Watch time change (%)",
]


def _blank_if_none(value: Optional[float]) -> str:
    return "" if value is None else str(value)


def _row(metric: TrafficMetric, include_delta: bool) -> list[str]:
    row = [
        metric.source,
        str(metric.impressions),
        str(metric.ctr),
        str(metric.views),
        metric.avg_view_duration,
        str(metric.watch_time_hours),
    ]
    if not include_delta:
        return row

    delta = metric.delta if isinstance(metric, DeltaMetric) else None
    if delta is None:
        return row + [""] * len(DELTA_COLUMNS)

    return row + [
        str(delta.delta_impressions),
        _blank_if_none(delta.pct_impressions),
        str(delta.delta_ctr),
        str(delta.delta_views),
        _blank_if_none(delta.pct_views),
        str(delta.delta_watch_time_hours),
        _blank_if_none(delta.pct_watch_time_hours),
    ]


def export_traffic_view_csv(view: TrafficView) -> str:
    """
    Render a TrafficView as CSV text.

    Args:
        view: View produced by TrafficViewOrchestrator.

    Returns:
        CSV text with a header row.
    """
    include_delta = view.view_mode == ViewMode.DELTA
    header = BASE_COLUMNS + (DELTA_COLUMNS if include_delta else [])

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)

    if view.total_row is not None:
        writer.writerow(_row(view.total_row, include_delta))
    for metric in view.metrics:
        writer.writerow(_row(metric, include_delta))

    logger.info(
        f"Exported snapshot {view.snapshot_id} ({view.view_mode.value}): "
        f"{len(view.metrics)} sources"
    )
    return buffer.getvalue()
