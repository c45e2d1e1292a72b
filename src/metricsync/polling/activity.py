"""Foreground/background activity signals that select the polling cadence."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

ActivityListener = Callable[[bool], None]


class ActivityState(Protocol):
    """Source of the active/inactive signal a subscription polls against."""

    @property
    def is_active(self) -> bool: ...

    def add_listener(self, listener: ActivityListener) -> Callable[[], None]:
        """Register a callback for transitions; returns a function that unregisters it."""
        ...


class ManualActivityState:
    """Activity signal driven explicitly by the host application.

    Listeners run synchronously on every transition (setting the same state
    twice is not a transition).
    """

    def __init__(self, active: bool = True):
        self._active = active
        self._listeners: list[ActivityListener] = []

    @property
    def is_active(self) -> bool:
        return self._active

    def set_active(self, active: bool) -> None:
        if active == self._active:
            return
        self._active = active
        logger.info("activity_state_changed", active=active, listeners=len(self._listeners))
        for listener in list(self._listeners):
            try:
                listener(active)
            except Exception as exc:
                logger.error("activity_listener_failed", error=str(exc))

    def add_listener(self, listener: ActivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove


class AlwaysActive:
    """Signal for headless hosts with no notion of background state."""

    is_active = True

    def add_listener(self, listener: ActivityListener) -> Callable[[], None]:
        return lambda: None
