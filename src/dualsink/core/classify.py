"""Classification helpers driven by the performance thresholds.

These are informational only; nothing in the ingest path depends on them.
"""

from collections import Counter
from collections.abc import Iterable

from dualsink.config import PerformanceSettings
from dualsink.core.models import MetricRow, RequestDetails


def is_slow_request(row: MetricRow, thresholds: PerformanceSettings) -> bool:
    return row.is_request() and row.is_slow(thresholds.slow_request_threshold)


def is_slow_query(row: MetricRow, thresholds: PerformanceSettings) -> bool:
    return row.is_query() and row.is_slow(thresholds.slow_query_threshold)


def is_high_memory(row: MetricRow, thresholds: PerformanceSettings) -> bool:
    if not isinstance(row.details, RequestDetails):
        return False
    memory = row.details.memory_usage
    return memory is not None and memory > thresholds.memory_threshold


def classify(row: MetricRow, thresholds: PerformanceSettings) -> set[str]:
    """Return the set of labels that apply to a row.

    Labels: slow_request, slow_query, high_memory, error.
    """
    labels: set[str] = set()
    if is_slow_request(row, thresholds):
        labels.add("slow_request")
    if is_slow_query(row, thresholds):
        labels.add("slow_query")
    if is_high_memory(row, thresholds):
        labels.add("high_memory")
    if row.is_error():
        labels.add("error")
    return labels


def summarize_labels(
    rows: Iterable[MetricRow], thresholds: PerformanceSettings
) -> dict[str, int]:
    """Count how many rows carry each label."""
    counts: Counter[str] = Counter()
    for row in rows:
        counts.update(classify(row, thresholds))
    return dict(counts)
