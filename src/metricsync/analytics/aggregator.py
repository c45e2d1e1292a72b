"""Stateless aggregation, filtering and outlier utilities over sample sequences.

None of these functions perform I/O or keep state. Invalid input degrades
gracefully: validation issues are returned as data (``validate_samples``),
and samples whose timestamp cannot be resolved are skipped by ``aggregate``.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Literal, Optional, Sequence

import structlog

from ..models import Change, Quality, Sample, parse_timestamp

logger = structlog.get_logger(__name__)

Interval = Literal["hour", "day", "week", "month"]

INTERVALS: tuple[str, ...] = ("hour", "day", "week", "month")


def _as_utc(ts: datetime) -> datetime:
    # Naive timestamps are taken as UTC so bucket keys are host independent.
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _resolve_timestamp(sample: Sample) -> Optional[datetime]:
    try:
        return _as_utc(parse_timestamp(sample.timestamp))
    except (TypeError, ValueError):
        return None


def bucket_key(ts: datetime, interval: Interval) -> str:
    """Return the calendar bucket key for a timestamp.

    Keys are derived from UTC calendar fields:
        hour  -> YYYY-MM-DD-HH
        day   -> YYYY-MM-DD
        week  -> YYYY-MM-DD of the Sunday that starts the week
        month -> YYYY-MM

    Raises:
        ValueError: If interval is not one of hour/day/week/month.
    """
    ts = _as_utc(ts)
    if interval == "hour":
        return f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}-{ts.hour:02d}"
    if interval == "day":
        return f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"
    if interval == "week":
        # weekday(): Monday=0 .. Sunday=6
        week_start = ts - timedelta(days=(ts.weekday() + 1) % 7)
        return f"{week_start.year:04d}-{week_start.month:02d}-{week_start.day:02d}"
    if interval == "month":
        return f"{ts.year:04d}-{ts.month:02d}"
    raise ValueError(f"Unsupported aggregation interval: {interval!r} (expected one of {INTERVALS})")


def aggregate(samples: Sequence[Sample], interval: Interval) -> list[Sample]:
    """Group samples into calendar buckets and average each bucket.

    One output sample per distinct bucket key, in order of first appearance.
    The output value is the arithmetic mean of the bucket, quality is
    ``good`` only when every input in the bucket is ``good``, and the id is
    ``"<bucketKey>-aggregated"``. Metric id and timestamp are taken from the
    first sample of the bucket.
    """
    if interval not in INTERVALS:
        raise ValueError(f"Unsupported aggregation interval: {interval!r} (expected one of {INTERVALS})")

    grouped: dict[str, list[Sample]] = {}
    skipped = 0
    for sample in samples:
        ts = _resolve_timestamp(sample)
        if ts is None:
            skipped += 1
            continue
        grouped.setdefault(bucket_key(ts, interval), []).append(sample)

    if skipped:
        logger.debug("aggregate_skipped_invalid_samples", skipped=skipped, interval=interval)

    result: list[Sample] = []
    for key, points in grouped.items():
        first = points[0]
        all_good = all(p.quality == Quality.GOOD for p in points)
        result.append(
            Sample(
                id=f"{key}-aggregated",
                metric_id=first.metric_id,
                value=statistics.fmean(p.value for p in points),
                timestamp=_resolve_timestamp(first),
                quality=Quality.GOOD if all_good else Quality.WARNING,
            )
        )
    return result


def find_outliers(samples: Sequence[Sample], threshold_std_dev: float = 2.0) -> list[Sample]:
    """Return samples lying at least N population std devs away from the mean.

    The boundary is inclusive so a single spike in a short series (e.g.
    ``[10, 10, 10, 10, 100]`` at 2 std devs) is reported. A constant series
    has no outliers.
    """
    if not samples:
        return []
    values = [s.value for s in samples]
    mean = statistics.fmean(values)
    std_dev = statistics.pstdev(values, mu=mean)
    if std_dev == 0:
        return []
    return [s for s in samples if abs(s.value - mean) >= threshold_std_dev * std_dev]


def normalize(samples: Sequence[Sample]) -> list[Sample]:
    """Min-max scale values into [0, 1].

    A zero range (including a single sample) returns the input unchanged.
    """
    if not samples:
        return list(samples)
    values = [s.value for s in samples]
    low, high = min(values), max(values)
    value_range = high - low
    if value_range == 0:
        return list(samples)
    return [replace(s, value=(s.value - low) / value_range) for s in samples]


def calculate_change(current: float, previous: float) -> Change:
    """Absolute and percentage change; a zero previous value yields 0%."""
    delta = current - previous
    percentage = (delta / previous) * 100 if previous != 0 else 0.0
    return Change(value=delta, percentage=percentage)


def filter_by_quality(samples: Iterable[Sample], qualities: Iterable[Quality | str]) -> list[Sample]:
    allowed = {Quality(q) for q in qualities}
    return [s for s in samples if s.quality in allowed]


def filter_by_date_range(samples: Iterable[Sample], start: datetime, end: datetime) -> list[Sample]:
    """Keep samples with ``start <= timestamp <= end``; unresolvable timestamps are dropped."""
    start_utc, end_utc = _as_utc(start), _as_utc(end)
    kept = []
    for sample in samples:
        ts = _resolve_timestamp(sample)
        if ts is not None and start_utc <= ts <= end_utc:
            kept.append(sample)
    return kept


def validate_samples(samples: Sequence[Sample]) -> list[str]:
    """Describe every problem found in a sample sequence.

    Returns:
        List of human-readable issues; empty when the input is usable.
        Never raises, so callers can decide whether to use partial data.
    """
    if not samples:
        return ["Sample list cannot be empty"]

    issues: list[str] = []
    for index, sample in enumerate(samples):
        value = getattr(sample, "value", None)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            issues.append(f"Sample {index} has invalid value: {value!r}")

        raw_ts = getattr(sample, "timestamp", None)
        if raw_ts is None or _resolve_timestamp(sample) is None:
            issues.append(f"Sample {index} has invalid timestamp: {raw_ts!r}")

        if not getattr(sample, "metric_id", None):
            issues.append(f"Sample {index} is missing metricId")
    return issues
