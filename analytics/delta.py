"""
Period-over-period deltas between two traffic-source snapshots.

Pure functions: no I/O, inputs are never mutated (metrics are frozen
models; new DeltaMetric objects are always returned).
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from registry.schemas import DeltaFields, DeltaMetric, TrafficMetric

logger = logging.getLogger(__name__)


def _round(value: float, digits: int) -> float:
    # Half-up on the shortest decimal repr (6.25 -> 6.3, not 6.2); "+ 0.0" folds -0.0
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)) + 0.0


def percent_change(current: float, previous: float) -> Optional[float]:
    """
    Signed percentage change rounded half-up to 1 decimal place.

    Returns:
        0.0 when both values are zero, None when only the previous value is
        zero (no meaningful percentage), otherwise
        (current - previous) / |previous| * 100.

    Examples:
        percent_change(150, 100) -> 50.0
        percent_change(5, 0) -> None
        percent_change(0, 0) -> 0.0
    """
    if previous == 0:
        return 0.0 if current == 0 else None
    return _round((current - previous) / abs(previous) * 100, 1)


def _delta_fields(current: TrafficMetric, previous: TrafficMetric) -> DeltaFields:
    return DeltaFields(
        delta_views=current.views - previous.views,
        delta_impressions=current.impressions - previous.impressions,
        delta_ctr=_round(current.ctr - previous.ctr, 2),
        delta_watch_time_hours=_round(
            current.watch_time_hours - previous.watch_time_hours, 2
        ),
        pct_views=percent_change(current.views, previous.views),
        pct_impressions=percent_change(current.impressions, previous.impressions),
        pct_watch_time_hours=percent_change(
            current.watch_time_hours, previous.watch_time_hours
        ),
    )


def _with_delta(metric: TrafficMetric, delta: Optional[DeltaFields]) -> DeltaMetric:
    return DeltaMetric(**metric.model_dump(exclude={"delta"}), delta=delta)


def compute_total_delta(current: TrafficMetric, previous: TrafficMetric) -> DeltaMetric:
    """Delta between two Total rows."""
    return _with_delta(current, _delta_fields(current, previous))


def compute_delta(
    current: Sequence[TrafficMetric],
    previous: Sequence[TrafficMetric],
) -> list[DeltaMetric]:
    """
    Match current metrics to previous ones by source and compute deltas.

    Args:
        current: Metrics of the selected snapshot.
        previous: Metrics of the immediately preceding snapshot.

    Returns:
        One DeltaMetric per current metric, in the same order. Sources with
        no previous counterpart are new: their ``delta`` is None.
    """
    previous_by_source = {metric.source: metric for metric in previous}

    result = []
    new_sources = 0
    for metric in current:
        prior = previous_by_source.get(metric.source)
        if prior is None:
            new_sources += 1
            result.append(_with_delta(metric, None))
        else:
            result.append(_with_delta(metric, _delta_fields(metric, prior)))

    logger.debug(
        f"Computed traffic deltas: matched={len(result) - new_sources} "
        f"new={new_sources}"
    )
    return result
