"""
Pydantic schemas for the traffic-source service.

Defines the pipeline's data model (metrics, snapshots, column mappings,
deltas) and the request/response models of the HTTP API.

Pipeline models are frozen: parsed results live in a shared cache and
must never be mutated after insertion.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Traffic Metrics
# =============================================================================

# Source labels of the aggregate row
TOTAL_LABELS = frozenset({"total", "итого"})


class TrafficMetric(BaseModel):
    """One row of traffic-source data for a single snapshot."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(
        ...,
        min_length=1,
        description="Traffic source name (join key for deltas)",
        examples=["Suggested videos"]
    )

    views: int = Field(default=0, ge=0, description="Views from this source")

    impressions: int = Field(
        default=0, ge=0, description="Thumbnail impressions from this source"
    )

    watch_time_hours: float = Field(
        default=0.0, ge=0, description="Watch time in hours"
    )

    avg_view_duration: str = Field(
        default="",
        description="Average view duration formatted as H:MM:SS or MM:SS",
        examples=["0:11:35"]
    )

    ctr: float = Field(
        default=0.0,
        description="Impressions click-through rate, percent"
    )

    @property
    def is_total(self) -> bool:
        """True when this row is the aggregate "Total" row (any case, EN or RU)."""
        return self.source.strip().lower() in TOTAL_LABELS


class ParsedSnapshotResult(BaseModel):
    """Output of parsing one snapshot's CSV bytes."""

    model_config = ConfigDict(frozen=True)

    metrics: tuple[TrafficMetric, ...] = Field(
        default=(),
        description="Per-source rows, never including the Total row"
    )

    total_row: Optional[TrafficMetric] = Field(
        default=None,
        description="Aggregate row across all sources, if present in the file"
    )

    data_missing: bool = Field(
        default=False,
        description=(
            "True when the snapshot's CSV could not be located "
            "(no storage path or object not found)"
        )
    )

    @classmethod
    def empty(cls, data_missing: bool = True) -> "ParsedSnapshotResult":
        """Empty result for snapshots without loadable CSV data."""
        return cls(metrics=(), total_row=None, data_missing=data_missing)


class DeltaFields(BaseModel):
    """
    Period-over-period differences for one traffic source.

    Percentages are None when the previous value was zero and the current
    one is not: there is no meaningful percentage, only the absolute delta.
    """

    model_config = ConfigDict(frozen=True)

    delta_views: int
    delta_impressions: int
    delta_ctr: float
    delta_watch_time_hours: float
    pct_views: Optional[float] = None
    pct_impressions: Optional[float] = None
    pct_watch_time_hours: Optional[float] = None


class DeltaMetric(TrafficMetric):
    """A TrafficMetric with optional delta fields (None for new sources)."""

    delta: Optional[DeltaFields] = Field(
        default=None,
        description="Differences against the previous snapshot, if matched"
    )


# =============================================================================
# Column Mapping
# =============================================================================

COLUMN_FIELDS: tuple[str, ...] = (
    "source",
    "views",
    "watch_time",
    "avg_duration",
    "impressions",
    "ctr",
)


class ColumnMapping(BaseModel):
    """
    Zero-based column index for each of the six semantic fields.

    Only valid for the CSV file whose header produced it.
    """

    model_config = ConfigDict(frozen=True)

    source: int = Field(..., ge=0)
    views: int = Field(..., ge=0)
    watch_time: int = Field(..., ge=0)
    avg_duration: int = Field(..., ge=0)
    impressions: int = Field(..., ge=0)
    ctr: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_distinct(self) -> "ColumnMapping":
        indices = self.indices()
        if len(set(indices)) != len(indices):
            raise ValueError(
                f"Column mapping must use six distinct columns, got {indices}"
            )
        return self

    @classmethod
    def positional(cls) -> "ColumnMapping":
        """Default mapping offered to the manual mapper: columns 0-5 in order."""
        return cls(**{name: idx for idx, name in enumerate(COLUMN_FIELDS)})

    def indices(self) -> list[int]:
        """Column indices in field order."""
        return [getattr(self, name) for name in COLUMN_FIELDS]


# =============================================================================
# Snapshots & Views
# =============================================================================

class Snapshot(BaseModel):
    """Immutable reference to one uploaded CSV export."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, examples=["ts_1739174400000"])

    timestamp: int = Field(
        ...,
        description="Upload time in epoch milliseconds (ordering key)"
    )

    storage_path: Optional[str] = Field(
        default=None,
        description="Opaque byte-source key; same path means same content"
    )

    label: Optional[str] = Field(default=None, description="User label")

    column_mapping: Optional[ColumnMapping] = Field(
        default=None,
        description="Mapping confirmed by the user when auto-detection failed"
    )

    # Upload-time summary, used as the previous Total row in delta views
    total_views: Optional[int] = Field(default=None, ge=0)
    total_impressions: Optional[int] = Field(default=None, ge=0)
    total_ctr: Optional[float] = None
    total_watch_time_hours: Optional[float] = Field(default=None, ge=0)

    @classmethod
    def from_upload(
        cls,
        snapshot_id: str,
        timestamp: int,
        storage_path: str,
        result: ParsedSnapshotResult,
        label: Optional[str] = None,
        column_mapping: Optional[ColumnMapping] = None,
    ) -> "Snapshot":
        """
        Snapshot record for a freshly parsed upload, with its totals summary.

        Totals come from the Total row. Without one, views and watch time
        are summed over the sources and impressions and CTR stay None.
        """
        total = result.total_row
        return cls(
            id=snapshot_id,
            timestamp=timestamp,
            storage_path=storage_path,
            label=label,
            column_mapping=column_mapping,
            total_views=total.views if total else sum(m.views for m in result.metrics),
            total_impressions=total.impressions if total else None,
            total_ctr=total.ctr if total else None,
            total_watch_time_hours=(
                total.watch_time_hours if total
                else round(sum(m.watch_time_hours for m in result.metrics), 2)
            ),
        )

    def recorded_total(self) -> Optional[TrafficMetric]:
        """Total row rebuilt from the upload-time summary, if one was recorded."""
        if self.total_impressions is None:
            return None
        return TrafficMetric(
            source="Total",
            views=self.total_views or 0,
            impressions=self.total_impressions,
            ctr=self.total_ctr or 0.0,
            watch_time_hours=self.total_watch_time_hours or 0.0,
        )


class ViewMode(str, Enum):
    """How the selected snapshot is displayed."""

    CUMULATIVE = "cumulative"
    DELTA = "delta"


class TrafficView(BaseModel):
    """Assembled result for the presentation layer."""

    snapshot_id: str
    previous_snapshot_id: Optional[str] = None

    view_mode: ViewMode = Field(
        ...,
        description="Mode actually applied (delta falls back to cumulative)"
    )

    delta_available: bool = Field(
        ...,
        description="False when the selected snapshot is the earliest one"
    )

    metrics: list[Union[DeltaMetric, TrafficMetric]] = Field(default_factory=list)
    total_row: Optional[Union[DeltaMetric, TrafficMetric]] = None
    data_missing: bool = False


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ParseRequest(BaseModel):
    """Request schema for /api/v1/traffic-sources/parse."""

    csv_text: str = Field(..., description="Raw CSV export text")

    mapping: Optional[ColumnMapping] = Field(
        default=None,
        description="Manual column mapping; omit to auto-detect"
    )


class ParseResponse(BaseModel):
    """Parsed metrics together with the mapping that produced them."""

    metrics: list[TrafficMetric]
    total_row: Optional[TrafficMetric] = None
    mapping: ColumnMapping
    auto_detected: bool


class MappingPreviewRequest(BaseModel):
    """Request schema for /api/v1/traffic-sources/mapping-preview."""

    csv_text: str


class MappingPreviewResponse(BaseModel):
    """Data for the manual column-mapping UI."""

    headers: list[str]
    preview_row: list[str]
    detected_mapping: Optional[ColumnMapping] = None
    default_mapping: ColumnMapping
    missing_fields: list[str] = Field(default_factory=list)


class ViewRequest(BaseModel):
    """Request schema for the view and export endpoints."""

    snapshots: list[Snapshot] = Field(..., min_length=1)
    selected_snapshot_id: str
    view_mode: ViewMode = ViewMode.CUMULATIVE

    sort_key: Optional[str] = Field(
        default=None,
        description=(
            "One of source, views, impressions, ctr, "
            "watch_time_hours, avg_view_duration"
        )
    )
    sort_descending: bool = True

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "snapshots": [
                {"id": "ts_1", "timestamp": 1739174400000,
                 "storage_path": "traffic/v1/ts_1.csv"},
                {"id": "ts_2", "timestamp": 1739779200000,
                 "storage_path": "traffic/v1/ts_2.csv"},
            ],
            "selected_snapshot_id": "ts_2",
            "view_mode": "delta",
        }
    })


class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""

    status: str = Field(
        ...,
        description="Server health status"
    )

    version: str = Field(
        ...,
        description="API version"
    )

    storage_backend: str = Field(
        ...,
        description="Configured byte-source backend"
    )
