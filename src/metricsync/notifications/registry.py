"""Bounded, time-expiring store of active change notifications."""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from ..models import ChangeNotification

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ENTRIES = 10
DEFAULT_TTL_SECONDS = 30.0


@dataclass
class _Entry:
    notification: ChangeNotification
    created_at: float


class NotificationRegistry:
    """Hold at most one live notification per metric, capped and TTL-expired.

    Writers (``add``, ``sweep``, ``dismiss``, ``clear``) are serialized by an
    asyncio lock. Entries are kept in creation order, so the first entry is
    always the globally oldest one.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: Any, clock: Callable[[], float] = time.monotonic) -> "NotificationRegistry":
        return cls(
            max_entries=int(config.get("notifications.max_entries")),
            ttl_seconds=float(config.get("notifications.ttl_seconds")),
            clock=clock,
        )

    @property
    def notifications(self) -> list[ChangeNotification]:
        """Active notifications, oldest first."""
        return [entry.notification for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._entries

    def get(self, metric_id: str) -> ChangeNotification | None:
        entry = self._entries.get(metric_id)
        return entry.notification if entry else None

    async def add(self, notification: ChangeNotification) -> None:
        """Insert or replace the entry for the notification's metric, then enforce the cap."""
        async with self._lock:
            replaced = self._entries.pop(notification.metric_id, None) is not None
            self._entries[notification.metric_id] = _Entry(notification, self._clock())

            evicted = []
            while len(self._entries) > self.max_entries:
                metric_id, _ = self._entries.popitem(last=False)
                evicted.append(metric_id)

        logger.debug(
            "notification_added",
            metric_id=notification.metric_id,
            severity=notification.severity.value,
            replaced=replaced,
        )
        if evicted:
            logger.info("notifications_evicted", metric_ids=evicted, max_entries=self.max_entries)

    async def sweep(self) -> int:
        """Drop entries older than the TTL. Returns the number removed."""
        async with self._lock:
            cutoff = self._clock() - self.ttl_seconds
            expired = [mid for mid, entry in self._entries.items() if entry.created_at <= cutoff]
            for metric_id in expired:
                del self._entries[metric_id]

        if expired:
            logger.debug("notifications_expired", count=len(expired), metric_ids=expired)
        return len(expired)

    async def dismiss(self, metric_id: str) -> bool:
        """Remove the entry for a metric; a missing entry is a no-op."""
        async with self._lock:
            removed = self._entries.pop(metric_id, None) is not None
        if removed:
            logger.debug("notification_dismissed", metric_id=metric_id)
        return removed

    async def clear(self) -> None:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.debug("notifications_cleared", count=count)

    # Consumer-facing aliases
    add_notification = add
    remove_notification = dismiss
    clear_notifications = clear
