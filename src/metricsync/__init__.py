"""metricsync - adaptive metric polling, change notifications and time-series analytics."""

from .errors import FetchError, MetricSyncError, SampleParseError
from .models import Change, ChangeNotification, Quality, Sample, Severity
from .notifications import NotificationRegistry, NotificationSweeper
from .polling import (
    ManualActivityState,
    MultiMetricCoordinator,
    PollingConfig,
    Subscription,
    SubscriptionState,
)

__version__ = "0.1.0"

__all__ = [
    "Change",
    "ChangeNotification",
    "FetchError",
    "ManualActivityState",
    "MetricSyncError",
    "MultiMetricCoordinator",
    "NotificationRegistry",
    "NotificationSweeper",
    "PollingConfig",
    "Quality",
    "Sample",
    "SampleParseError",
    "Severity",
    "Subscription",
    "SubscriptionState",
]
