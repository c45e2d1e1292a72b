"""Per-metric polling subscription with adaptive cadence and retry/backoff.

A Subscription owns one fetcher binding, one timer, a retry counter and the
last two snapshots of its metric. Each cycle runs
fetch -> snapshot swap -> change detection -> notification write, and only
after the cycle's effects are applied is the next timer armed. All fetches
of one subscription are serialized by a lock, so fetch N+1 never observes a
half-applied fetch N.

Lifecycle::

    IDLE -> FETCHING -> SCHEDULED_WAIT -> FETCHING ...
                     -> RETRYING(n) -> FETCHING
                     -> DEGRADED -> SCHEDULED_WAIT -> FETCHING ...
    any -> DISPOSED (terminal)

Disposal is a one-way latch: a fetch already in flight is allowed to finish
but its result is discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

import structlog

from ..analytics.change_detector import detect_changes
from ..models import ChangeNotification, Sample, utc_now
from ..notifications.registry import NotificationRegistry
from .activity import ActivityState, AlwaysActive

logger = structlog.get_logger(__name__)

Fetcher = Callable[[str], Awaitable[Sequence[Sample]]]
Callback = Callable[..., Any]

# Config registry key -> PollingConfig field
POLLING_CONFIG_KEYS: dict[str, str] = {
    "polling.enabled": "enabled",
    "polling.interval_ms": "polling_interval_ms",
    "polling.background_interval_ms": "background_polling_interval_ms",
    "polling.change_threshold_percent": "change_threshold_percent",
    "polling.max_retries": "max_retries",
    "polling.retry_delay_ms": "retry_delay_ms",
    "polling.retry_delay_cap_ms": "retry_delay_cap_ms",
}


@dataclass(frozen=True)
class PollingConfig:
    """Polling cadence, change threshold and retry policy of one subscription."""

    enabled: bool = True
    polling_interval_ms: int = 30000
    background_polling_interval_ms: int = 120000
    change_threshold_percent: float = 20.0
    max_retries: int = 3
    retry_delay_ms: int = 1000
    retry_delay_cap_ms: int = 30000

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name != "enabled" and value < 0:
                raise ValueError(f"{f.name} must be non-negative, got {value}")

    @classmethod
    def from_config(cls, config: Any) -> "PollingConfig":
        """Build from a ConfigManager (or anything with ``get(key)``)."""
        return cls(**{name: config.get(key) for key, name in POLLING_CONFIG_KEYS.items()})

    def backoff_ms(self, retry_count: int) -> int:
        """Delay before retry number ``retry_count`` (1-based), doubling and capped."""
        return min(self.retry_delay_ms * 2 ** max(0, retry_count - 1), self.retry_delay_cap_ms)

    def interval_ms(self, active: bool) -> int:
        return self.polling_interval_ms if active else self.background_polling_interval_ms


class SubscriptionState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RETRYING = "retrying"
    DEGRADED = "degraded"
    SCHEDULED_WAIT = "scheduled_wait"
    DISPOSED = "disposed"


class Subscription:
    """Live polling session keeping one metric fresh and change-checked.

    Exposes the per-metric handle consumers read from: ``data``,
    ``is_loading``, ``error``, ``is_refreshing``, ``retry_count`` and
    ``is_visible``.
    """

    def __init__(
        self,
        metric_id: str,
        fetcher: Fetcher,
        config: Optional[PollingConfig] = None,
        *,
        metric_key: Optional[str] = None,
        activity: Optional[ActivityState] = None,
        registry: Optional[NotificationRegistry] = None,
        on_success: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        on_change: Optional[Callback] = None,
    ):
        """
        Initialize a subscription (nothing runs until ``start``).

        Args:
            metric_id: Identifier of the metric this subscription keeps fresh
            fetcher: Async callable returning the samples for a metric key
            config: Polling cadence and retry policy (defaults if omitted)
            metric_key: Key passed to the fetcher (defaults to metric_id)
            activity: Foreground/background signal selecting the interval
            registry: Shared notification store receiving detected changes
            on_success: Called with the new snapshot after each successful fetch
            on_error: Called with the exception on every failed attempt
            on_change: Called with each ChangeNotification detected
        """
        if not metric_id:
            raise ValueError("metric_id must be non-empty")
        self.metric_id = metric_id
        self.metric_key = metric_key or metric_id
        self.config = config or PollingConfig()
        self._fetcher = fetcher
        self._activity: ActivityState = activity or AlwaysActive()
        self._registry = registry
        self._on_success = on_success
        self._on_error = on_error
        self._on_change = on_change

        self._previous_snapshot: Optional[tuple[Sample, ...]] = None
        self._current_snapshot: Optional[tuple[Sample, ...]] = None
        self._retry_count = 0
        self._error: Optional[BaseException] = None
        self._degraded = False
        self._last_updated: Optional[datetime] = None
        self._state = SubscriptionState.IDLE

        self._timer: Optional[asyncio.TimerHandle] = None
        self._armed_interval_ms: Optional[int] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._force_tasks: set[asyncio.Task] = set()
        self._fetch_lock = asyncio.Lock()
        self._remove_listener: Optional[Callable[[], None]] = None
        self._started = False
        # Set while polling is off only because the config said enabled=False.
        self._disabled_by_config = False
        self._disposed = False

    # ------------------------------------------------------------------
    # Handle
    # ------------------------------------------------------------------

    @property
    def data(self) -> Optional[list[Sample]]:
        return list(self._current_snapshot) if self._current_snapshot is not None else None

    @property
    def current_snapshot(self) -> Optional[tuple[Sample, ...]]:
        return self._current_snapshot

    @property
    def previous_snapshot(self) -> Optional[tuple[Sample, ...]]:
        return self._previous_snapshot

    @property
    def is_fetching(self) -> bool:
        return self._fetch_lock.locked() or any(not t.done() for t in self._pending_tasks())

    @property
    def is_loading(self) -> bool:
        """True while the first snapshot is still being fetched."""
        return self._current_snapshot is None and self.is_fetching

    @property
    def is_refreshing(self) -> bool:
        """True while a forced refresh is pending."""
        return any(not t.done() for t in self._force_tasks)

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def is_visible(self) -> bool:
        return self._activity.is_active

    @property
    def is_degraded(self) -> bool:
        """True when the last cycle ended with retries exhausted."""
        return self._degraded

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._last_updated

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def current_interval_ms(self) -> int:
        return self.config.interval_ms(self._activity.is_active)

    @property
    def armed_interval_ms(self) -> Optional[int]:
        """Interval of the currently armed timer, None when no timer is armed."""
        return self._armed_interval_ms

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, config: Optional[PollingConfig] = None) -> None:
        """Begin polling: one immediate fetch, then the timer for the active interval.

        Returns once the first fetch is dispatched; use ``wait_idle`` to wait
        for its effects.
        """
        if self._disposed:
            raise RuntimeError(f"Subscription {self.metric_id} is disposed")
        if config is not None:
            self.config = config
        if self._started:
            return
        if not self.config.enabled:
            self._disabled_by_config = True
            logger.info("subscription_disabled", metric_id=self.metric_id)
            return
        self._begin()

    def _begin(self) -> None:
        self._started = True
        self._disabled_by_config = False
        self._remove_listener = self._activity.add_listener(self._on_activity_change)
        logger.info(
            "subscription_started",
            metric_id=self.metric_id,
            interval_ms=self.current_interval_ms,
            visible=self.is_visible,
        )
        self._spawn_cycle("start")

    def stop(self) -> None:
        """Pause polling; ``start`` resumes it. An in-flight fetch still applies."""
        self._disabled_by_config = False
        if not self._started:
            return
        self._started = False
        self._cancel_timer()
        if self._remove_listener:
            self._remove_listener()
            self._remove_listener = None
        if not self._disposed and not self.is_fetching:
            self._state = SubscriptionState.IDLE
        logger.info("subscription_stopped", metric_id=self.metric_id)

    def dispose(self) -> None:
        """Stop for good; late fetch results are discarded."""
        if self._disposed:
            return
        self.stop()
        self._disposed = True
        self._state = SubscriptionState.DISPOSED
        logger.info("subscription_disposed", metric_id=self.metric_id)

    def update_config(self, config: PollingConfig) -> None:
        """Swap the polling config, rearming an armed timer at the new interval.

        ``enabled=False`` pauses a running subscription; a later
        ``enabled=True`` resumes only subscriptions paused that way. Stopped
        or never-started subscriptions just take the new config.
        """
        if self._disposed:
            return
        self.config = config
        if not config.enabled:
            if self._started:
                self.stop()
                self._disabled_by_config = True
            return
        if self._disabled_by_config:
            self._begin()
            return
        if self._started and self._timer is not None:
            self._arm_timer()

    async def wait_idle(self) -> None:
        """Wait until no cycle or forced refresh is pending."""
        while True:
            pending = [t for t in self._pending_tasks() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Out-of-band fetches
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Fetch now, coalescing with any fetch already in flight."""
        if self._disposed:
            return
        inflight = [t for t in self._pending_tasks() if not t.done()]
        if inflight:
            logger.debug("refresh_coalesced", metric_id=self.metric_id)
            await asyncio.shield(asyncio.gather(*inflight, return_exceptions=True))
            return
        task = self._spawn_cycle("refresh")
        await asyncio.shield(task)

    async def force_refresh(self) -> None:
        """Always fetch (after any in-flight fetch); retry_count is left untouched."""
        if self._disposed:
            return
        task = asyncio.create_task(self._run_forced(), name=f"force-refresh-{self.metric_id}")
        self._force_tasks.add(task)
        task.add_done_callback(self._on_force_done)
        await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pending_tasks(self) -> list[asyncio.Task]:
        tasks = list(self._force_tasks)
        if self._cycle_task is not None:
            tasks.append(self._cycle_task)
        return tasks

    def _spawn_cycle(self, reason: str) -> asyncio.Task:
        if self._cycle_task is not None and not self._cycle_task.done():
            logger.debug("fetch_coalesced", metric_id=self.metric_id, reason=reason)
            return self._cycle_task
        self._cancel_timer()
        self._cycle_task = asyncio.create_task(self._run_cycle(reason), name=f"poll-{self.metric_id}")
        self._cycle_task.add_done_callback(self._on_cycle_done)
        return self._cycle_task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._armed_interval_ms = None

    def _arm_timer(self) -> None:
        self._cancel_timer()
        if self._disposed or not self._started:
            return
        interval_ms = self.current_interval_ms
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(interval_ms / 1000, self._on_timer)
        self._armed_interval_ms = interval_ms
        self._state = SubscriptionState.SCHEDULED_WAIT
        logger.debug("poll_scheduled", metric_id=self.metric_id, interval_ms=interval_ms)

    def _on_timer(self) -> None:
        self._timer = None
        self._armed_interval_ms = None
        if self._disposed or not self._started:
            return
        self._spawn_cycle("tick")

    def _on_activity_change(self, active: bool) -> None:
        if self._disposed:
            return
        logger.info(
            "subscription_activity_changed",
            metric_id=self.metric_id,
            active=active,
            interval_ms=self.config.interval_ms(active),
        )
        self._cancel_timer()
        self._spawn_cycle("activity_change")

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("poll_cycle_crashed", metric_id=self.metric_id, error=str(exc))
        # Keep polling after an unexpected crash.
        if not self._disposed and self._started and self._timer is None:
            self._arm_timer()

    def _on_force_done(self, task: asyncio.Task) -> None:
        self._force_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("force_refresh_crashed", metric_id=self.metric_id, error=str(task.exception()))

    async def _run_cycle(self, reason: str) -> None:
        async with self._fetch_lock:
            if self._disposed:
                return
            self._retry_count = 0
            self._degraded = False

            while True:
                self._state = SubscriptionState.FETCHING
                logger.debug("fetch_started", metric_id=self.metric_id, reason=reason, attempt=self._retry_count + 1)
                try:
                    samples = await self._fetcher(self.metric_key)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    if self._disposed:
                        logger.debug("fetch_result_discarded", metric_id=self.metric_id, reason="disposed")
                        return
                    self._retry_count += 1
                    self._error = exc
                    logger.warning(
                        "fetch_failed",
                        metric_id=self.metric_id,
                        retry_count=self._retry_count,
                        max_retries=self.config.max_retries,
                        error=str(exc),
                    )
                    await self._invoke("on_error", self._on_error, exc)

                    if self._disposed:
                        return
                    if self._retry_count < self.config.max_retries:
                        backoff_ms = self.config.backoff_ms(self._retry_count)
                        self._state = SubscriptionState.RETRYING
                        logger.info(
                            "fetch_retry_scheduled",
                            metric_id=self.metric_id,
                            retry_count=self._retry_count,
                            backoff_ms=backoff_ms,
                        )
                        await asyncio.sleep(backoff_ms / 1000)
                        if self._disposed:
                            return
                        continue

                    self._degraded = True
                    self._state = SubscriptionState.DEGRADED
                    logger.error(
                        "fetch_retries_exhausted",
                        metric_id=self.metric_id,
                        retry_count=self._retry_count,
                    )
                    break

                if self._disposed:
                    logger.debug("fetch_result_discarded", metric_id=self.metric_id, reason="disposed")
                    return
                await self._apply_result(samples, reset_retries=True)
                break

        if self._disposed:
            return
        if self._started:
            self._arm_timer()
        else:
            # Stopped while this cycle was in flight.
            self._state = SubscriptionState.IDLE

    async def _run_forced(self) -> None:
        async with self._fetch_lock:
            if self._disposed:
                return
            logger.debug("force_refresh_started", metric_id=self.metric_id)
            try:
                samples = await self._fetcher(self.metric_key)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if self._disposed:
                    return
                self._error = exc
                logger.warning("force_refresh_failed", metric_id=self.metric_id, error=str(exc))
                await self._invoke("on_error", self._on_error, exc)
                return
            if self._disposed:
                logger.debug("fetch_result_discarded", metric_id=self.metric_id, reason="disposed")
                return
            await self._apply_result(samples, reset_retries=False)

    async def _apply_result(self, samples: Sequence[Sample], reset_retries: bool) -> None:
        snapshot = tuple(samples)
        self._previous_snapshot = self._current_snapshot
        self._current_snapshot = snapshot
        if reset_retries:
            self._retry_count = 0
        self._error = None
        self._degraded = False
        self._last_updated = utc_now()

        notifications = detect_changes(
            self._previous_snapshot,
            self._current_snapshot,
            self.config.change_threshold_percent,
        )
        logger.debug(
            "fetch_succeeded",
            metric_id=self.metric_id,
            samples=len(snapshot),
            changes=len(notifications),
        )
        for notification in notifications:
            await self._publish(notification)

        await self._invoke("on_success", self._on_success, list(snapshot))

    async def _publish(self, notification: ChangeNotification) -> None:
        if self._disposed:
            return
        logger.info(
            "metric_change_detected",
            metric_id=notification.metric_id,
            change_percent=notification.change_percent,
            severity=notification.severity.value,
        )
        if self._registry is not None:
            await self._registry.add(notification)
        await self._invoke("on_change", self._on_change, notification)

    async def _invoke(self, name: str, callback: Optional[Callback], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.error(f"{name}_callback_failed", metric_id=self.metric_id, error=str(exc))

    def __repr__(self) -> str:
        return f"Subscription(metric_id={self.metric_id!r}, state={self._state.value})"
