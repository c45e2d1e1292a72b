"""Pure analytics over metric samples: aggregation, outliers and change detection."""

from .aggregator import (
    aggregate,
    bucket_key,
    calculate_change,
    filter_by_date_range,
    filter_by_quality,
    find_outliers,
    normalize,
    validate_samples,
)
from .change_detector import classify_severity, detect_changes

__all__ = [
    "aggregate",
    "bucket_key",
    "calculate_change",
    "classify_severity",
    "detect_changes",
    "filter_by_date_range",
    "filter_by_quality",
    "find_outliers",
    "normalize",
    "validate_samples",
]
