"""NDJSON encoders for metric and aggregate rows."""

import json
from collections.abc import Iterable
from typing import Any

from dualsink.core.models import AggregatedMetricRow, MetricRow


def encode_ndjson(objects: Iterable[dict[str, Any]]) -> str:
    """Encode dictionaries to newline-delimited JSON.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no objects.
    """
    lines = [json.dumps(obj, default=str, sort_keys=True) for obj in objects]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def encode_rows(rows: Iterable[MetricRow]) -> str:
    """Encode metric rows, one flattened column dict per line."""
    return encode_ndjson(row.columns() for row in rows)


def encode_aggregates(rows: Iterable[AggregatedMetricRow]) -> str:
    """Encode rollup rows, one per line."""
    return encode_ndjson(row.to_dict() for row in rows)
