"""
Error conditions raised by the traffic-source pipeline.

Every error carries a stable ``code`` so the HTTP layer (and any other
caller) can branch on the condition without parsing messages:

- MAPPING_REQUIRED: headers could not be auto-detected, ask the user
- NO_DATA: the file parsed but held no usable rows
- PARSE_FAILED: the file or the supplied mapping is unusable
- FETCH_FAILED: the byte source failed for a reason other than "not found"
- SNAPSHOT_NOT_FOUND: the selected snapshot id is not in the timeline
"""

from typing import Any, Optional


class TrafficSourceError(Exception):
    """Base class for pipeline errors."""

    code = "PARSE_FAILED"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error payload."""
        return {"code": self.code, "message": self.message}


class MappingRequiredError(TrafficSourceError):
    """Auto-detection failed; a full manual ColumnMapping is needed."""

    code = "MAPPING_REQUIRED"

    def __init__(
        self,
        headers: list[str],
        missing_fields: list[str],
        preview_row: Optional[list[str]] = None,
    ) -> None:
        self.headers = headers
        self.missing_fields = missing_fields
        self.preview_row = preview_row or []
        super().__init__(
            "Could not detect columns: " + ", ".join(missing_fields)
        )

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({
            "headers": self.headers,
            "missing_fields": self.missing_fields,
            "preview_row": self.preview_row,
        })
        return payload


class NoDataError(TrafficSourceError):
    """No data rows remained after removing the Total row."""

    code = "NO_DATA"

    def __init__(self, message: str = "No valid data rows found in CSV.") -> None:
        super().__init__(message)


class TrafficParseError(TrafficSourceError):
    """Generic parse failure with a human-readable message."""

    code = "PARSE_FAILED"


class SnapshotFetchError(TrafficSourceError):
    """Byte source failure (network, permission, server error)."""

    code = "FETCH_FAILED"

    def __init__(self, storage_path: str, message: Optional[str] = None) -> None:
        self.storage_path = storage_path
        super().__init__(message or f"Failed to fetch snapshot data at {storage_path}")


class SnapshotNotFoundError(SnapshotFetchError):
    """The byte source has no object at the storage path."""

    code = "NOT_FOUND"

    def __init__(self, storage_path: str) -> None:
        super().__init__(storage_path, f"No snapshot data at {storage_path}")


class SnapshotSelectionError(TrafficSourceError):
    """The selected snapshot id does not belong to the supplied timeline."""

    code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot {snapshot_id} not found")
