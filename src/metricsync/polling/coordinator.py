"""Compose independent per-metric subscriptions behind one handle."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Callable, Iterator, Optional

import structlog

from ..models import ChangeNotification
from ..notifications.registry import NotificationRegistry
from .activity import ActivityState
from .subscription import POLLING_CONFIG_KEYS, Fetcher, PollingConfig, Subscription

logger = structlog.get_logger(__name__)


class MultiMetricCoordinator:
    """Own a set of ``{id: Subscription}`` pairs and aggregate their flags.

    Subscriptions share nothing mutable except the injected notification
    registry, so one metric failing or being removed never affects another.
    """

    def __init__(
        self,
        registry: Optional[NotificationRegistry] = None,
        activity: Optional[ActivityState] = None,
        default_config: Optional[PollingConfig] = None,
        on_change: Optional[Callable[[str, ChangeNotification], Any]] = None,
        on_error: Optional[Callable[[str, BaseException], Any]] = None,
    ):
        self.registry = registry
        self.activity = activity
        self.default_config = default_config or PollingConfig()
        self._on_change = on_change
        self._on_error = on_error
        self._subscriptions: dict[str, Subscription] = {}

    def add_metric(
        self,
        metric_id: str,
        fetcher: Fetcher,
        config: Optional[PollingConfig] = None,
        metric_key: Optional[str] = None,
    ) -> Subscription:
        """Register a metric; call ``start`` (or ``Subscription.start``) to begin polling.

        Raises:
            ValueError: If the metric id is already registered.
        """
        if metric_id in self._subscriptions:
            raise ValueError(f"Metric '{metric_id}' is already registered")

        subscription = Subscription(
            metric_id,
            fetcher,
            config or self.default_config,
            metric_key=metric_key,
            activity=self.activity,
            registry=self.registry,
            on_change=self._bind(self._on_change, metric_id),
            on_error=self._bind(self._on_error, metric_id),
        )
        self._subscriptions[metric_id] = subscription
        logger.info("metric_registered", metric_id=metric_id, total=len(self._subscriptions))
        return subscription

    @staticmethod
    def _bind(callback: Optional[Callable[..., Any]], metric_id: str) -> Optional[Callable[..., Any]]:
        if callback is None:
            return None

        def _bound(payload: Any) -> Any:
            return callback(metric_id, payload)

        return _bound

    def remove_metric(self, metric_id: str) -> None:
        subscription = self._subscriptions.pop(metric_id, None)
        if subscription is not None:
            subscription.dispose()
            logger.info("metric_removed", metric_id=metric_id, total=len(self._subscriptions))

    def get(self, metric_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(metric_id)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))

    def __len__(self) -> int:
        return len(self._subscriptions)

    @property
    def subscriptions(self) -> dict[str, Subscription]:
        return dict(self._subscriptions)

    def _live(self) -> list[Subscription]:
        return [s for s in self._subscriptions.values() if not s.disposed]

    async def start(self) -> None:
        for subscription in self._live():
            await subscription.start()
        logger.info("coordinator_started", metrics=len(self._subscriptions))

    async def refresh_all(self) -> None:
        """Refresh every live subscription concurrently."""
        live = self._live()
        results = await asyncio.gather(*(s.refresh() for s in live), return_exceptions=True)
        for subscription, result in zip(live, results):
            if isinstance(result, Exception):
                logger.error("refresh_failed", metric_id=subscription.metric_id, error=str(result))

    async def wait_idle(self) -> None:
        await asyncio.gather(*(s.wait_idle() for s in self._live()))

    def dispose(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.dispose()
        logger.info("coordinator_disposed", metrics=len(self._subscriptions))

    @property
    def is_any_loading(self) -> bool:
        return any(s.is_loading for s in self._subscriptions.values())

    @property
    def is_any_error(self) -> bool:
        return any(s.error is not None for s in self._subscriptions.values())

    @property
    def is_any_refreshing(self) -> bool:
        return any(s.is_refreshing for s in self._subscriptions.values())

    def apply_config_update(self, key: str, value: Any) -> None:
        """Config subscriber: push ``polling.*`` updates into every live subscription."""
        field_name = POLLING_CONFIG_KEYS.get(key)
        if field_name is None:
            return
        self.default_config = replace(self.default_config, **{field_name: value})
        for subscription in self._live():
            subscription.update_config(replace(subscription.config, **{field_name: value}))
        logger.info("polling_config_applied", key=key, value=value, metrics=len(self._live()))
