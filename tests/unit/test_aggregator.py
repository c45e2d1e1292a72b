"""Unit tests for sample aggregation, outlier and normalization utilities."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from src.metricsync.analytics.aggregator import (
    aggregate,
    bucket_key,
    calculate_change,
    filter_by_date_range,
    filter_by_quality,
    find_outliers,
    normalize,
    validate_samples,
)
from src.metricsync.models import Change, Quality, Sample

BASE = datetime(2024, 3, 6, 10, 15, tzinfo=timezone.utc)  # Wednesday


def _sample(value, ts=BASE, metric_id="cpu", quality=Quality.GOOD, sample_id=None):
    return Sample(
        id=sample_id or f"{metric_id}-{ts.isoformat()}-{value}",
        metric_id=metric_id,
        value=value,
        timestamp=ts,
        quality=quality,
    )


# ---------------------------------------------------------------------------
# bucket_key
# ---------------------------------------------------------------------------


def test_bucket_key_formats():
    assert bucket_key(BASE, "hour") == "2024-03-06-10"
    assert bucket_key(BASE, "day") == "2024-03-06"
    assert bucket_key(BASE, "month") == "2024-03"


def test_bucket_key_week_starts_on_sunday():
    # 2024-03-06 is a Wednesday; the week starts Sunday 2024-03-03.
    assert bucket_key(BASE, "week") == "2024-03-03"
    sunday = datetime(2024, 3, 3, 0, 0, tzinfo=timezone.utc)
    saturday = datetime(2024, 3, 9, 23, 59, tzinfo=timezone.utc)
    assert bucket_key(sunday, "week") == "2024-03-03"
    assert bucket_key(saturday, "week") == "2024-03-03"


def test_bucket_key_week_crosses_month_boundary():
    ts = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)  # Friday
    assert bucket_key(ts, "week") == "2024-02-25"


def test_bucket_key_normalizes_to_utc():
    local = datetime(2024, 3, 6, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert bucket_key(local, "day") == "2024-03-07"


def test_bucket_key_rejects_unknown_interval():
    with pytest.raises(ValueError, match="Unsupported aggregation interval"):
        bucket_key(BASE, "minute")


# ---------------------------------------------------------------------------
# aggregate
# ---------------------------------------------------------------------------


def test_aggregate_hour_buckets_average_values():
    samples = [
        _sample(10, BASE),
        _sample(20, BASE + timedelta(minutes=20)),
        _sample(40, BASE + timedelta(hours=1)),
    ]
    result = aggregate(samples, "hour")
    assert len(result) == 2
    assert result[0].value == 15
    assert result[0].id == "2024-03-06-10-aggregated"
    assert result[0].timestamp == BASE
    assert result[1].value == 40
    assert result[1].id == "2024-03-06-11-aggregated"


def test_aggregate_output_count_matches_distinct_buckets():
    samples = [_sample(i, BASE + timedelta(hours=5 * i)) for i in range(12)]
    for interval in ("hour", "day", "week", "month"):
        keys = {bucket_key(s.timestamp, interval) for s in samples}
        assert len(aggregate(samples, interval)) == len(keys)


def test_aggregate_quality_good_only_when_all_good():
    samples = [
        _sample(1, BASE),
        _sample(2, BASE + timedelta(minutes=1), quality=Quality.ERROR),
        _sample(3, BASE + timedelta(days=1)),
    ]
    result = aggregate(samples, "day")
    assert [r.quality for r in result] == [Quality.WARNING, Quality.GOOD]


def test_aggregate_keeps_metric_of_first_sample():
    result = aggregate([_sample(1, metric_id="mem"), _sample(3, metric_id="mem")], "month")
    assert len(result) == 1
    assert result[0].metric_id == "mem"
    assert result[0].value == 2


def test_aggregate_accepts_iso_string_timestamps():
    sample = Sample(id="a", metric_id="cpu", value=5.0, timestamp="2024-03-06T10:00:00Z")
    result = aggregate([sample], "day")
    assert result[0].id == "2024-03-06-aggregated"


def test_aggregate_skips_unresolvable_timestamps():
    bad = Sample(id="bad", metric_id="cpu", value=1.0, timestamp="not-a-date")
    result = aggregate([bad, _sample(4)], "day")
    assert len(result) == 1
    assert result[0].value == 4


def test_aggregate_empty_input():
    assert aggregate([], "week") == []


def test_aggregate_rejects_unknown_interval():
    with pytest.raises(ValueError):
        aggregate([_sample(1)], "year")


# ---------------------------------------------------------------------------
# find_outliers
# ---------------------------------------------------------------------------


def test_find_outliers_returns_spike_only():
    samples = [_sample(v, sample_id=f"s{i}") for i, v in enumerate([10, 10, 10, 10, 100])]
    outliers = find_outliers(samples, threshold_std_dev=2)
    assert [o.value for o in outliers] == [100]


def test_find_outliers_constant_series_has_none():
    samples = [_sample(5, sample_id=f"s{i}") for i in range(4)]
    assert find_outliers(samples) == []


def test_find_outliers_higher_threshold_excludes_spike():
    samples = [_sample(v, sample_id=f"s{i}") for i, v in enumerate([10, 10, 10, 10, 100])]
    assert find_outliers(samples, threshold_std_dev=3) == []


def test_find_outliers_empty():
    assert find_outliers([]) == []


# ---------------------------------------------------------------------------
# normalize
# ---------------------------------------------------------------------------


def test_normalize_scales_to_unit_interval():
    samples = [_sample(v, sample_id=f"s{i}") for i, v in enumerate([5, 10, 15, 25])]
    result = normalize(samples)
    values = [s.value for s in result]
    assert values == [0.0, 0.25, 0.5, 1.0]
    assert all(0.0 <= v <= 1.0 for v in values)
    # Other fields are preserved
    assert [s.id for s in result] == [s.id for s in samples]


def test_normalize_zero_range_returns_input_unchanged():
    samples = [_sample(7, sample_id="a"), _sample(7, sample_id="b")]
    assert normalize(samples) == samples


def test_normalize_negative_values():
    samples = [_sample(-10, sample_id="a"), _sample(10, sample_id="b"), _sample(0, sample_id="c")]
    assert [s.value for s in normalize(samples)] == [0.0, 1.0, 0.5]


# ---------------------------------------------------------------------------
# calculate_change
# ---------------------------------------------------------------------------


def test_calculate_change_basic():
    assert calculate_change(120, 100) == Change(value=20, percentage=20)


def test_calculate_change_zero_previous():
    assert calculate_change(5, 0) == Change(value=5, percentage=0)


def test_calculate_change_decrease():
    change = calculate_change(75, 100)
    assert change.value == -25
    assert change.percentage == -25


# ---------------------------------------------------------------------------
# filters
# ---------------------------------------------------------------------------


def test_filter_by_quality_accepts_enum_and_strings():
    samples = [
        _sample(1, quality=Quality.GOOD, sample_id="a"),
        _sample(2, quality=Quality.WARNING, sample_id="b"),
        _sample(3, quality=Quality.ERROR, sample_id="c"),
    ]
    assert [s.id for s in filter_by_quality(samples, [Quality.GOOD, "error"])] == ["a", "c"]


def test_filter_by_date_range_is_inclusive():
    samples = [_sample(i, BASE + timedelta(hours=i), sample_id=f"s{i}") for i in range(5)]
    kept = filter_by_date_range(samples, BASE + timedelta(hours=1), BASE + timedelta(hours=3))
    assert [s.id for s in kept] == ["s1", "s2", "s3"]


# ---------------------------------------------------------------------------
# validate_samples
# ---------------------------------------------------------------------------


def test_validate_samples_valid_input_has_no_issues():
    assert validate_samples([_sample(1), _sample(2.5)]) == []


def test_validate_samples_empty_input():
    assert validate_samples([]) == ["Sample list cannot be empty"]


def test_validate_samples_reports_each_problem():
    samples = [
        Sample(id="a", metric_id="", value=1.0, timestamp=BASE),
        Sample(id="b", metric_id="cpu", value=math.nan, timestamp=BASE),
        Sample(id="c", metric_id="cpu", value=math.inf, timestamp="yesterday"),
        Sample(id="d", metric_id="cpu", value=2.0, timestamp=None),
    ]
    issues = validate_samples(samples)
    assert "Sample 0 is missing metricId" in issues
    assert any(i.startswith("Sample 1 has invalid value") for i in issues)
    assert any(i.startswith("Sample 2 has invalid value") for i in issues)
    assert any(i.startswith("Sample 2 has invalid timestamp") for i in issues)
    assert any(i.startswith("Sample 3 has invalid timestamp") for i in issues)
    assert len(issues) == 5


def test_validate_samples_never_raises_on_odd_values():
    sample = Sample(id="a", metric_id="cpu", value="12", timestamp=BASE)
    assert validate_samples([sample]) == ["Sample 0 has invalid value: '12'"]
