"""Adaptive polling: activity signals, per-metric subscriptions and their coordinator."""

from .activity import ActivityState, AlwaysActive, ManualActivityState
from .coordinator import MultiMetricCoordinator
from .subscription import PollingConfig, Subscription, SubscriptionState

__all__ = [
    "ActivityState",
    "AlwaysActive",
    "ManualActivityState",
    "MultiMetricCoordinator",
    "PollingConfig",
    "Subscription",
    "SubscriptionState",
]
