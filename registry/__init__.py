"""
Registry module initialization.

Holds the data model shared by the pipeline and the HTTP API.
"""

from registry.schemas import (
    ColumnMapping,
    DeltaFields,
    DeltaMetric,
    ParsedSnapshotResult,
    Snapshot,
    TrafficMetric,
    TrafficView,
    ViewMode,
)

__all__ = [
    "ColumnMapping",
    "DeltaFields",
    "DeltaMetric",
    "ParsedSnapshotResult",
    "Snapshot",
    "TrafficMetric",
    "TrafficView",
    "ViewMode",
]
