"""Timer management for delayed key resets.

Every key owns one TimerManager. Timers are one-shot and independent: starting
a new reset never cancels an earlier one, and tearing the key down cancels all
of them at once.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Protocol

_LOGGER = logging.getLogger(__name__)

TimerCallback = Callable[[str], Awaitable[None]]


class Cancellable(Protocol):
    """Handle returned by a scheduler."""

    def cancel(self) -> Any:
        ...


class Scheduler(ABC):
    """Runs an async action after a delay."""

    @abstractmethod
    def call_later(
        self, delay: float, action: Callable[[], Awaitable[None]]
    ) -> Cancellable:
        """Schedule action to run after delay seconds."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the scheduler's notion of the current time."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def call_later(
        self, delay: float, action: Callable[[], Awaitable[None]]
    ) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()

        def _run() -> None:
            task = loop.create_task(action())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return loop.call_later(delay, _run)

    def now(self) -> datetime:
        return datetime.fromtimestamp(time.time())


class ResetTimer:
    """A single cancellable delayed reset."""

    def __init__(
        self,
        name: str,
        duration: float,
        callback: TimerCallback,
        scheduler: Scheduler,
    ):
        """Initialize a timer.

        Args:
            name: Unique name within the owning manager
            duration: Delay in seconds
            callback: Async callback called with the timer name on expiry
            scheduler: Scheduler used to run the expiry
        """
        self.name = name
        self.duration = duration
        self.callback = callback
        self._scheduler = scheduler

        self._handle: Cancellable | None = None
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._is_active = False

    def start(self) -> None:
        """Start the timer."""
        self._start_time = self._scheduler.now()
        self._end_time = self._start_time + timedelta(seconds=self.duration)
        self._is_active = True
        self._handle = self._scheduler.call_later(self.duration, self._async_expire)

        _LOGGER.debug(
            "Starting timer '%s' for %.1fs, will expire at %s",
            self.name,
            self.duration,
            self._end_time.strftime("%H:%M:%S"),
        )

    def cancel(self) -> None:
        """Cancel the timer. Cancelling twice, or after expiry, is a no-op."""
        if self._handle:
            self._handle.cancel()
            self._handle = None

        if not self._is_active:
            return

        _LOGGER.debug("Cancelling timer '%s'", self.name)
        self._is_active = False
        self._start_time = None
        self._end_time = None

    async def _async_expire(self) -> None:
        """Handle timer expiration."""
        if not self._is_active:
            _LOGGER.debug("Timer '%s' expired but was already cancelled", self.name)
            return

        _LOGGER.info("Timer '%s' expired", self.name)
        self._is_active = False
        self._handle = None

        try:
            await self.callback(self.name)
        except Exception as err:
            _LOGGER.error("Error in timer callback for '%s': %s", self.name, err)

    @property
    def is_active(self) -> bool:
        """Check if timer is currently active."""
        return self._is_active

    @property
    def remaining_seconds(self) -> float:
        """Get remaining seconds (0 if not active)."""
        if not self._is_active or not self._end_time:
            return 0
        remaining = (self._end_time - self._scheduler.now()).total_seconds()
        return max(0.0, remaining)

    def get_info(self) -> dict[str, Any]:
        """Get timer diagnostic info."""
        return {
            "name": self.name,
            "duration": self.duration,
            "is_active": self._is_active,
            "remaining_seconds": self.remaining_seconds,
            "start_time": self._start_time.isoformat() if self._start_time else None,
            "end_time": self._end_time.isoformat() if self._end_time else None,
        }


class TimerManager:
    """Tracks the pending resets of one key so they can be cancelled en masse."""

    def __init__(self, scheduler: Scheduler, prefix: str = "reset"):
        """Initialize the timer manager."""
        self._scheduler = scheduler
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._timers: dict[str, ResetTimer] = {}

    def start_timer(self, duration: float, callback: TimerCallback) -> ResetTimer:
        """Create and start a timer under a fresh name.

        The timer forgets itself once it has fired.
        """
        name = f"{self._prefix}_{next(self._counter)}"

        async def _on_expire(timer_name: str) -> None:
            self._timers.pop(timer_name, None)
            await callback(timer_name)

        timer = ResetTimer(name, duration, _on_expire, self._scheduler)
        self._timers[name] = timer
        timer.start()
        return timer

    def cancel_all_timers(self) -> int:
        """Cancel all active timers.

        Returns:
            Number of timers cancelled
        """
        count = 0
        for timer in list(self._timers.values()):
            if timer.is_active:
                timer.cancel()
                count += 1
        self._timers.clear()
        _LOGGER.debug("Cancelled %d timer(s)", count)
        return count

    def get_active_timers(self) -> list[ResetTimer]:
        """Get all currently active timers."""
        return [timer for timer in self._timers.values() if timer.is_active]

    def get_info(self) -> dict[str, Any]:
        """Get timer manager diagnostic info."""
        return {
            "total_timers": len(self._timers),
            "active_timers": len(self.get_active_timers()),
            "timers": {name: timer.get_info() for name, timer in self._timers.items()},
        }
