"""
Analytics module for the traffic-source pipeline.

Provides CSV decoding, column detection, parsing, delta computation,
snapshot loading and view assembly.
"""

from .column_mapper import KNOWN_HEADERS, detect
from .delta import compute_delta, compute_total_delta
from .loader import SnapshotLoader
from .traffic_parser import parse_lines, parse_traffic_source_csv
from .view import TrafficViewOrchestrator, TrafficViewSession, can_delta

__all__ = [
    "KNOWN_HEADERS",
    "detect",
    "compute_delta",
    "compute_total_delta",
    "SnapshotLoader",
    "parse_lines",
    "parse_traffic_source_csv",
    "TrafficViewOrchestrator",
    "TrafficViewSession",
    "can_delta",
]
