"""Detect significant changes between two consecutive snapshots."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

import structlog

from ..models import ChangeNotification, Severity, Snapshot, utc_now

logger = structlog.get_logger(__name__)

HIGH_SEVERITY_PERCENT = 50.0
MEDIUM_SEVERITY_PERCENT = 25.0


def classify_severity(change_percent: float) -> Severity:
    if change_percent >= HIGH_SEVERITY_PERCENT:
        return Severity.HIGH
    if change_percent >= MEDIUM_SEVERITY_PERCENT:
        return Severity.MEDIUM
    return Severity.LOW


def round_percent(value: float) -> float:
    """Round half-up to 2 decimal places (``round()`` would round half-even)."""
    scaled = value * 100
    if not math.isfinite(scaled):
        # Magnitudes this large carry no fractional digits.
        return value
    return math.floor(scaled + 0.5) / 100


def _latest_by_metric(snapshot: Snapshot) -> dict[str, float]:
    # Later samples of the same metric overwrite earlier ones.
    return {sample.metric_id: sample.value for sample in snapshot}


def detect_changes(
    previous: Optional[Snapshot],
    current: Optional[Snapshot],
    threshold_percent: float,
    now: Optional[datetime] = None,
) -> list[ChangeNotification]:
    """Compare two snapshots and emit at most one notification per metric.

    A metric is skipped when it has no baseline in ``previous``, when its
    previous value is exactly zero, or when the relative change is not
    finite (overflow, NaN). The change is rounded to 2 decimals first; the
    threshold and severity are applied to the rounded value.

    Args:
        previous: Snapshot from the prior successful fetch (None on first fetch).
        current: Snapshot just fetched.
        threshold_percent: Minimum relative change (percent) that is reported.
        now: Notification timestamp; defaults to the current UTC time.

    Returns:
        Notifications ordered by the metric's first appearance in ``current``.
    """
    if not previous or not current:
        return []

    baseline = _latest_by_metric(previous)
    latest = _latest_by_metric(current)
    stamp = now or utc_now()

    notifications: list[ChangeNotification] = []
    for metric_id, current_value in latest.items():
        previous_value = baseline.get(metric_id)
        if previous_value is None or previous_value == 0:
            continue

        raw_percent = abs((current_value - previous_value) / previous_value * 100)
        if not math.isfinite(raw_percent):
            logger.debug(
                "change_skipped_non_finite",
                metric_id=metric_id,
                previous_value=previous_value,
                current_value=current_value,
            )
            continue

        change_percent = round_percent(raw_percent)
        if change_percent < threshold_percent:
            continue

        notifications.append(
            ChangeNotification(
                metric_id=metric_id,
                previous_value=previous_value,
                current_value=current_value,
                change_percent=change_percent,
                timestamp=stamp,
                severity=classify_severity(change_percent),
            )
        )
    return notifications
