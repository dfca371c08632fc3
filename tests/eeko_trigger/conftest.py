"""Fixtures for Eeko trigger tests."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from unittest.mock import AsyncMock

import pytest

from eeko_trigger.api import AutomationService
from eeko_trigger.config import PluginConfig
from eeko_trigger.const import CONF_API_KEY, CONF_AUTOMATION_ID, CONF_AUTOMATION_NAME
from eeko_trigger.coordinator import ActionController
from eeko_trigger.host import StreamDeckHost
from eeko_trigger.models import Automation
from eeko_trigger.timer_manager import Scheduler

VALID_API_KEY = "eko_test_key_1234567890"
KEY_CONTEXT = "key-context-1"
OTHER_CONTEXT = "key-context-2"
TRIGGER_TIME = datetime(2026, 10, 18, 9, 30, 0, 123000, tzinfo=timezone.utc)


@dataclass
class ScheduledCall:
    """A pending call of the manual scheduler."""

    due: datetime
    seq: int
    action: Callable[[], Awaitable[None]]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler driven by a virtual clock that tests advance explicitly."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 10, 18, 9, 0, 0)
        self._seq = itertools.count()
        self._calls: list[ScheduledCall] = []

    def call_later(
        self, delay: float, action: Callable[[], Awaitable[None]]
    ) -> ScheduledCall:
        call = ScheduledCall(
            due=self._now + timedelta(seconds=delay),
            seq=next(self._seq),
            action=action,
        )
        self._calls.append(call)
        return call

    def now(self) -> datetime:
        return self._now

    @property
    def pending(self) -> list[ScheduledCall]:
        return [call for call in self._calls if not call.cancelled]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running every call that falls due in order."""
        target = self._now + timedelta(seconds=seconds)
        while True:
            due = sorted(
                (call for call in self.pending if call.due <= target),
                key=lambda call: (call.due, call.seq),
            )
            if not due:
                break
            call = due[0]
            self._calls.remove(call)
            self._now = call.due
            await call.action()
        self._now = target


@dataclass
class RecordingHost(StreamDeckHost):
    """Host that records every call made by the controller."""

    global_settings: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple] = field(default_factory=list)
    titles: dict[str, str] = field(default_factory=dict)
    images: dict[str, str] = field(default_factory=dict)
    alerts: dict[str, int] = field(default_factory=dict)
    inspector: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    fail_settings_read: bool = False
    fail_settings_write: bool = False

    async def async_set_title(self, context: str, title: str) -> None:
        self.calls.append(("title", context, title))
        self.titles[context] = title

    async def async_set_image(self, context: str, image: str) -> None:
        self.calls.append(("image", context, image))
        self.images[context] = image

    async def async_show_alert(self, context: str) -> None:
        self.calls.append(("alert", context))
        self.alerts[context] = self.alerts.get(context, 0) + 1

    async def async_send_to_property_inspector(
        self, context: str, event: str, payload: dict[str, Any]
    ) -> None:
        self.calls.append(("inspector", context, event))
        self.inspector.append((context, event, payload))

    async def async_get_global_settings(self) -> dict[str, Any]:
        if self.fail_settings_read:
            raise RuntimeError("settings unavailable")
        return dict(self.global_settings)

    async def async_set_global_settings(self, settings: dict[str, Any]) -> None:
        if self.fail_settings_write:
            raise RuntimeError("settings are read-only")
        self.global_settings = dict(settings)

    def key_calls(self, context: str = KEY_CONTEXT) -> list[tuple]:
        """Calls that change what a key shows."""
        return [
            call
            for call in self.calls
            if call[0] in ("title", "image", "alert") and call[1] == context
        ]

    def inspector_events(self) -> list[str]:
        return [event for _, event, _ in self.inspector]


@pytest.fixture
def host() -> RecordingHost:
    """Return a recording host without an API key."""
    return RecordingHost()


@pytest.fixture
def configured_host(host: RecordingHost) -> RecordingHost:
    """Return a recording host with a stored API key."""
    host.global_settings[CONF_API_KEY] = VALID_API_KEY
    return host


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def automations() -> list[Automation]:
    return [
        Automation(id="auto-1", name="Daily Report", description="Posts the report"),
        Automation(id="auto-2", name="Lights Off"),
    ]


@pytest.fixture
def mock_service(automations: list[Automation]) -> AsyncMock:
    """Return a mocked automation service."""
    service = AsyncMock(spec=AutomationService)
    service.async_list_automations.return_value = automations
    service.async_trigger_automation.return_value = None
    return service


@pytest.fixture
def controller(
    host: RecordingHost, mock_service: AsyncMock, scheduler: ManualScheduler
) -> ActionController:
    """Return a controller wired to the recording host and manual scheduler."""
    return ActionController(
        host,
        mock_service,
        config=PluginConfig(),
        scheduler=scheduler,
        get_current_time=lambda: TRIGGER_TIME,
    )


@pytest.fixture
def automation_settings() -> dict[str, str]:
    return {CONF_AUTOMATION_ID: "auto-1", CONF_AUTOMATION_NAME: "Daily Report"}
