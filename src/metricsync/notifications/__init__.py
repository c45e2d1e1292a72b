"""Change notification store and its expiry worker."""

from .registry import NotificationRegistry
from .sweeper import NotificationSweeper

__all__ = ["NotificationRegistry", "NotificationSweeper"]
