"""
Traffic Source View Orchestrator.

Selects the current snapshot and its immediate predecessor (by upload
time), loads both through the SnapshotLoader and assembles what the
traffic table displays in cumulative or delta mode.
"""

import logging
from typing import Optional, Sequence

from analytics.delta import compute_delta, compute_total_delta
from analytics.errors import SnapshotSelectionError, TrafficSourceError
from analytics.loader import SnapshotLoader
from registry.schemas import Snapshot, TrafficMetric, TrafficView, ViewMode

logger = logging.getLogger(__name__)

SORT_KEYS = (
    "source",
    "views",
    "impressions",
    "ctr",
    "watch_time_hours",
    "avg_view_duration",
)


# ---------------------------------------------------------------------------
# Snapshot selection
# ---------------------------------------------------------------------------

def sort_snapshots(snapshots: Sequence[Snapshot]) -> list[Snapshot]:
    """Snapshots ordered by upload time, oldest first (stable for ties)."""
    return sorted(snapshots, key=lambda s: s.timestamp)


def select_pair(
    snapshots: Sequence[Snapshot],
    selected_id: str,
) -> tuple[Snapshot, Optional[Snapshot]]:
    """
    Find the selected snapshot and the one uploaded right before it.

    Raises:
        SnapshotSelectionError: If ``selected_id`` is not in ``snapshots``.
    """
    ordered = sort_snapshots(snapshots)
    for idx, snapshot in enumerate(ordered):
        if snapshot.id == selected_id:
            previous = ordered[idx - 1] if idx > 0 else None
            return snapshot, previous
    raise SnapshotSelectionError(selected_id)


def can_delta(snapshots: Sequence[Snapshot], selected_id: Optional[str]) -> bool:
    """
    Whether delta mode is possible for the selection.

    False when nothing is selected, the id is unknown, or the selected
    snapshot is the earliest one: the UI should disable delta mode rather
    than silently show cumulative data.
    """
    if not selected_id:
        return False
    try:
        _, previous = select_pair(snapshots, selected_id)
    except SnapshotSelectionError:
        return False
    return previous is not None


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def parse_duration_seconds(value: str) -> int:
    """
    Parse "H:MM:SS" or "MM:SS" into seconds; anything else is 0.

    Examples:
        "0:11:35" -> 695
        "4:05" -> 245
    """
    if not value:
        return 0
    try:
        parts = [int(p) for p in value.strip().split(":")]
    except ValueError:
        return 0
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    return 0


def sort_metrics(
    metrics: Sequence[TrafficMetric],
    key: str = "views",
    descending: bool = True,
) -> list[TrafficMetric]:
    """
    Sort metrics for display.

    Args:
        metrics: Metrics to sort (not modified).
        key: One of SORT_KEYS. Sources compare case-insensitively; average
            view duration compares as seconds.
        descending: Largest first when True.

    Raises:
        ValueError: If ``key`` is not a sortable column.
    """
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{key}', expected one of {', '.join(SORT_KEYS)}")

    if key == "source":
        sort_value = lambda m: m.source.lower()
    elif key == "avg_view_duration":
        sort_value = lambda m: parse_duration_seconds(m.avg_view_duration)
    else:
        sort_value = lambda m: getattr(m, key)

    return sorted(metrics, key=sort_value, reverse=descending)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TrafficViewOrchestrator:
    """Builds TrafficView results from a snapshot timeline."""

    def __init__(self, loader: SnapshotLoader) -> None:
        self.loader = loader

    async def build_view(
        self,
        snapshots: Sequence[Snapshot],
        selected_id: str,
        view_mode: ViewMode = ViewMode.CUMULATIVE,
    ) -> TrafficView:
        """
        Assemble the displayed metrics for a selected snapshot.

        Args:
            snapshots: All snapshots of one video, in any order.
            selected_id: Id of the snapshot to display.
            view_mode: Cumulative totals or growth since the previous
                snapshot.

        Returns:
            TrafficView. In delta mode the metrics are DeltaMetrics; when no
            previous data can be used the view falls back to cumulative.

        Raises:
            SnapshotSelectionError: If ``selected_id`` is unknown.
            SnapshotFetchError: If the current snapshot cannot be fetched.
            TrafficSourceError: If the current snapshot cannot be parsed.
        """
        current_snapshot, previous_snapshot = select_pair(snapshots, selected_id)
        delta_available = previous_snapshot is not None

        current = await self.loader.load(current_snapshot)

        cumulative = TrafficView(
            snapshot_id=current_snapshot.id,
            previous_snapshot_id=previous_snapshot.id if previous_snapshot else None,
            view_mode=ViewMode.CUMULATIVE,
            delta_available=delta_available,
            metrics=list(current.metrics),
            total_row=current.total_row,
            data_missing=current.data_missing,
        )

        if view_mode != ViewMode.DELTA or previous_snapshot is None:
            return cumulative

        try:
            previous = await self.loader.load(previous_snapshot)
        except TrafficSourceError as e:
            logger.warning(
                f"Previous snapshot {previous_snapshot.id} failed to load, "
                f"showing cumulative data: {e}"
            )
            return cumulative.model_copy(update={"delta_available": False})

        if previous.data_missing:
            logger.warning(
                f"Previous snapshot {previous_snapshot.id} has no data, "
                f"showing cumulative data"
            )
            return cumulative.model_copy(update={"delta_available": False})

        # Recorded upload summary first, then the previous file's Total row
        previous_total = previous_snapshot.recorded_total() or previous.total_row
        total_row = current.total_row
        if current.total_row is not None and previous_total is not None:
            total_row = compute_total_delta(current.total_row, previous_total)

        logger.info(
            f"Delta view {previous_snapshot.id} -> {current_snapshot.id}: "
            f"{len(current.metrics)} sources"
        )
        return cumulative.model_copy(update={
            "view_mode": ViewMode.DELTA,
            "metrics": compute_delta(current.metrics, previous.metrics),
            "total_row": total_row,
        })


class TrafficViewSession:
    """
    Tracks the latest view selection of one client.

    Each call to ``show`` supersedes the previous one. A load that finishes
    after a newer selection started is discarded: ``show`` returns None and
    ``current_view`` keeps the newest result.
    """

    def __init__(self, orchestrator: TrafficViewOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.current_view: Optional[TrafficView] = None
        self._generation = 0

    async def show(
        self,
        snapshots: Sequence[Snapshot],
        selected_id: str,
        view_mode: ViewMode = ViewMode.CUMULATIVE,
    ) -> Optional[TrafficView]:
        """
        Build a view; None if the selection changed before it finished.

        Errors of a superseded selection are dropped the same way; only the
        newest selection's errors propagate.
        """
        self._generation += 1
        generation = self._generation

        try:
            view = await self.orchestrator.build_view(snapshots, selected_id, view_mode)
        except TrafficSourceError as e:
            if generation != self._generation:
                logger.debug(f"Discarding stale error for snapshot {selected_id}: {e}")
                return None
            raise

        if generation != self._generation:
            logger.debug(f"Discarding stale view for snapshot {selected_id}")
            return None

        self.current_view = view
        return view
