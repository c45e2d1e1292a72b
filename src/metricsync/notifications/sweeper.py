"""Background worker expiring stale change notifications."""

from __future__ import annotations

import asyncio

import structlog

from .registry import NotificationRegistry

logger = structlog.get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5.0


class NotificationSweeper:
    """Call ``registry.sweep()`` on a fixed cadence in a background task."""

    def __init__(
        self,
        registry: NotificationRegistry,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        self.registry = registry
        self.sweep_interval_seconds = sweep_interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start sweep loop in background task."""
        if self.running:
            return
        self._running = True
        self._spawn_sweep_task()
        logger.info("notification_sweeper_started", interval_seconds=self.sweep_interval_seconds)

    async def stop(self) -> None:
        """Stop sweep loop."""
        self._running = False
        if self._restart_task:
            self._restart_task.cancel()
            self._restart_task = None
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                # Crash is already logged by done callback; stop should still complete.
                pass
            self._task = None
        logger.info("notification_sweeper_stopped")

    def _spawn_sweep_task(self) -> None:
        self._task = asyncio.create_task(self._run(), name="notification-sweeper")
        self._task.add_done_callback(self._on_sweep_done)

    def _on_sweep_done(self, task: asyncio.Task) -> None:
        if not self._running:
            return
        if task.cancelled():
            logger.warning("notification_sweeper_cancelled_unexpectedly")
        else:
            exc = task.exception()
            if exc is not None:
                logger.error("notification_sweeper_crashed", error=str(exc))
            else:
                logger.warning("notification_sweeper_exited_unexpectedly")

        if self._restart_task and not self._restart_task.done():
            return
        self._restart_task = asyncio.create_task(self._restart_after_delay())

    async def _restart_after_delay(self) -> None:
        await asyncio.sleep(self.sweep_interval_seconds)
        if self._running and (self._task is None or self._task.done()):
            self._spawn_sweep_task()
            logger.info("notification_sweeper_restarted")

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = await self.registry.sweep()
            if removed:
                logger.debug("notification_sweep_complete", removed=removed, remaining=len(self.registry))
