"""Wire configuration, notification store, sweeper and coordinator together."""

from __future__ import annotations

from typing import Any, Callable, Optional

import structlog

from .config.manager import ConfigManager
from .models import ChangeNotification
from .notifications.registry import NotificationRegistry
from .notifications.sweeper import NotificationSweeper
from .polling.activity import ActivityState
from .polling.coordinator import MultiMetricCoordinator
from .polling.subscription import PollingConfig

logger = structlog.get_logger(__name__)


class MetricSyncRuntime:
    """One process-level assembly of the polling stack.

    Dynamic config updates are applied live: ``polling.*`` keys reach every
    subscription through the coordinator, ``notifications.*`` keys retune
    the registry and sweeper.
    """

    def __init__(
        self,
        config: ConfigManager,
        activity: Optional[ActivityState] = None,
        on_change: Optional[Callable[[str, ChangeNotification], Any]] = None,
        on_error: Optional[Callable[[str, BaseException], Any]] = None,
    ):
        self.config = config
        self.registry = NotificationRegistry.from_config(config)
        self.sweeper = NotificationSweeper(
            self.registry,
            sweep_interval_seconds=float(config.get("notifications.sweep_interval_seconds")),
        )
        self.coordinator = MultiMetricCoordinator(
            registry=self.registry,
            activity=activity,
            default_config=PollingConfig.from_config(config),
            on_change=on_change,
            on_error=on_error,
        )
        config.subscribe(self.coordinator.apply_config_update)
        config.subscribe(self._apply_notification_config)

    def _apply_notification_config(self, key: str, value: Any) -> None:
        if key == "notifications.max_entries":
            self.registry.max_entries = int(value)
        elif key == "notifications.ttl_seconds":
            self.registry.ttl_seconds = float(value)
        elif key == "notifications.sweep_interval_seconds":
            self.sweeper.sweep_interval_seconds = float(value)
        else:
            return
        logger.info("notification_config_applied", key=key, value=value)

    async def start(self) -> None:
        await self.sweeper.start()
        await self.coordinator.start()
        logger.info("metricsync_runtime_started", metrics=len(self.coordinator))

    async def stop(self) -> None:
        self.coordinator.dispose()
        await self.sweeper.stop()
        logger.info("metricsync_runtime_stopped")
