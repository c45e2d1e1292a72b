"""Metric time-series data models.

Samples are produced by fetchers, grouped into snapshots by subscriptions,
and compared by the change detector. All models are plain dataclasses so
they can be built directly in tests and by consumers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from .errors import SampleParseError


class Quality(str, Enum):
    """Data quality tag attached to every sample."""

    GOOD = "good"
    WARNING = "warning"
    ERROR = "error"


class Severity(str, Enum):
    """Qualitative classification of a detected change."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def parse_timestamp(raw: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through.

    Raises:
        ValueError: If the value cannot be resolved to a datetime.
    """
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"invalid timestamp: {raw!r}")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class Sample:
    """One timestamped metric value."""

    id: str
    metric_id: str
    value: float
    timestamp: datetime
    quality: Quality = Quality.GOOD

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Sample":
        """Build a sample from the wire shape ``{id, metricId, value, timestamp, quality}``.

        Raises:
            SampleParseError: If a field is missing or malformed, the metricId
                is empty, or the value is NaN or infinite.
        """
        try:
            sample = cls(
                id=str(payload["id"]),
                metric_id=str(payload["metricId"]),
                value=float(payload["value"]),
                timestamp=parse_timestamp(payload["timestamp"]),
                quality=Quality(payload.get("quality", Quality.GOOD.value)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SampleParseError(f"malformed sample {payload!r}: {exc}") from exc

        if not sample.metric_id:
            raise SampleParseError(f"malformed sample {payload!r}: empty metricId")
        if not math.isfinite(sample.value):
            raise SampleParseError(f"malformed sample {payload!r}: non-finite value {sample.value!r}")
        return sample

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "metricId": self.metric_id,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "quality": self.quality.value,
        }


# A snapshot is the complete sample sequence of one polling cycle.
Snapshot = Sequence[Sample]


@dataclass(frozen=True)
class ChangeNotification:
    """Significant change between two consecutive snapshots of a metric."""

    metric_id: str
    previous_value: float
    current_value: float
    change_percent: float  # >= 0, rounded to 2 decimals
    timestamp: datetime
    severity: Severity

    def to_dict(self) -> dict[str, Any]:
        return {
            "metricId": self.metric_id,
            "previousValue": self.previous_value,
            "currentValue": self.current_value,
            "changePercent": self.change_percent,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class Change:
    """Absolute and relative difference between two values."""

    value: float
    percentage: float


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
