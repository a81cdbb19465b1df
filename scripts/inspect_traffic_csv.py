#!/usr/bin/env python3
"""
Traffic Source CSV inspection script.

Parses a local Traffic Source export and prints the result as JSON.
Pass --previous to compute deltas against an older export. --mapping
supplies manual column indices for the current file when auto-detection
fails, and --previous-mapping does the same for the older export.

Usage:
    python scripts/inspect_traffic_csv.py current.csv
    python scripts/inspect_traffic_csv.py current.csv --previous last_week.csv
    python scripts/inspect_traffic_csv.py export.csv --mapping 0,1,2,3,4,5
    python scripts/inspect_traffic_csv.py current.csv --previous old.csv --previous-mapping 0,1,2,3,4,5
"""

import argparse
import json
import os
import sys
from pathlib import Path

# Add the parent directory to the path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analytics.delta import compute_delta, compute_total_delta
from analytics.errors import MappingRequiredError, TrafficSourceError
from analytics.traffic_parser import decode_bytes, parse_traffic_source_csv
from registry.schemas import COLUMN_FIELDS, ColumnMapping


def parse_mapping(value: str) -> ColumnMapping:
    """Turn "0,1,2,3,4,5" into a ColumnMapping in field order."""
    try:
        indices = [int(part) for part in value.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError("mapping must be six comma-separated integers")
    if len(indices) != len(COLUMN_FIELDS):
        raise argparse.ArgumentTypeError(
            f"mapping needs {len(COLUMN_FIELDS)} indices: {', '.join(COLUMN_FIELDS)}"
        )
    try:
        return ColumnMapping(**dict(zip(COLUMN_FIELDS, indices)))
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def load(path: str, mapping):
    text = decode_bytes(Path(path).read_bytes())
    return parse_traffic_source_csv(text, mapping)


def main() -> int:
    parser = argparse.ArgumentParser(description="Inspect a Traffic Source CSV export")
    parser.add_argument("csv_path", help="Traffic Source CSV export")
    parser.add_argument("--previous", help="Older export to compute deltas against")
    parser.add_argument("--mapping", type=parse_mapping, help="Manual column indices for csv_path, e.g. 0,1,2,3,4,5")
    parser.add_argument("--previous-mapping", type=parse_mapping, help="Manual column indices for --previous")
    args = parser.parse_args()

    path, option = args.csv_path, "--mapping"
    try:
        current = load(path, args.mapping)
        if not args.previous:
            print(current.model_dump_json(indent=2))
            return 0

        path, option = args.previous, "--previous-mapping"
        previous = load(path, args.previous_mapping)
    except OSError as e:
        print(f"✗ Cannot read {path}: {e.strerror}", file=sys.stderr)
        return 1
    except MappingRequiredError as e:
        print(f"✗ {path}: {e.message}", file=sys.stderr)
        print(f"  Headers: {e.headers}", file=sys.stderr)
        print(f"  Re-run with {option} source,views,watch_time,avg_duration,impressions,ctr", file=sys.stderr)
        return 2
    except TrafficSourceError as e:
        print(f"✗ {path}: {e.code}: {e.message}", file=sys.stderr)
        return 1

    total_row = current.total_row
    if current.total_row and previous.total_row:
        total_row = compute_total_delta(current.total_row, previous.total_row)

    output = {
        "total_row": total_row.model_dump() if total_row else None,
        "metrics": [m.model_dump() for m in compute_delta(current.metrics, previous.metrics)],
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
