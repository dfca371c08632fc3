"""In-memory Stream Deck host for the simulation server.

Implements the host interface without any hardware so the real controller can
be driven from a browser or curl. Every change is recorded and pushed to
registered listeners.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from eeko_trigger.const import CONF_API_KEY, IMAGE_DEFAULT
from eeko_trigger.host import StreamDeckHost

_LOGGER = logging.getLogger(__name__)


@dataclass
class SimKey:
    """Simulated key."""

    context: str
    title: str = ""
    image: str = IMAGE_DEFAULT
    alerts: int = 0
    last_changed: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "context": self.context,
            "title": self.title,
            "image": self.image,
            "alerts": self.alerts,
            "last_changed": self.last_changed,
        }


@dataclass
class SimHostState:
    """Everything the simulated host remembers."""

    keys: dict[str, SimKey] = field(default_factory=dict)
    global_settings: dict[str, Any] = field(default_factory=dict)
    inspector_messages: list[dict[str, Any]] = field(default_factory=list)


class SimStreamDeckHost(StreamDeckHost):
    """Host implementation that keeps keys and settings in memory."""

    def __init__(self, global_settings: dict[str, Any] | None = None):
        """Initialize the simulated host."""
        self._state = SimHostState(global_settings=dict(global_settings or {}))
        self._listeners: list[Callable[[], Any]] = []

        # Event log (list of dicts with timestamp, message, type)
        self._event_log: list[dict] = []
        self._max_log_entries = 50
        self._max_inspector_messages = 50

    # ========================================================================
    # Listener Pattern
    # ========================================================================

    def async_add_listener(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Register for change notifications.

        Returns:
            Callable to remove the listener
        """
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def _notify_listeners(self) -> None:
        """Trigger all registered listeners."""
        for callback in self._listeners:
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    asyncio.create_task(result)
            except Exception as err:
                _LOGGER.error("Error in listener callback: %s", err)

    def _log_event(self, message: str, event_type: str) -> None:
        self._event_log.append(
            {"timestamp": time.time(), "message": message, "type": event_type}
        )
        if len(self._event_log) > self._max_log_entries:
            self._event_log = self._event_log[-self._max_log_entries :]

    def _key(self, context: str) -> SimKey:
        key = self._state.keys.get(context)
        if key is None:
            key = self._state.keys[context] = SimKey(context=context)
        key.last_changed = time.time()
        return key

    # ========================================================================
    # StreamDeckHost
    # ========================================================================

    async def async_set_title(self, context: str, title: str) -> None:
        self._key(context).title = title
        self._log_event(f"{context}: title {title!r}", "title")
        self._notify_listeners()

    async def async_set_image(self, context: str, image: str) -> None:
        self._key(context).image = image
        self._log_event(f"{context}: image {image}", "image")
        self._notify_listeners()

    async def async_show_alert(self, context: str) -> None:
        self._key(context).alerts += 1
        self._log_event(f"{context}: alert", "alert")
        self._notify_listeners()

    async def async_send_to_property_inspector(
        self, context: str, event: str, payload: dict[str, Any]
    ) -> None:
        messages = self._state.inspector_messages
        messages.append({"context": context, "event": event, "payload": payload})
        del messages[: -self._max_inspector_messages]
        self._log_event(f"{context}: property inspector <- {event}", "inspector")
        self._notify_listeners()

    async def async_get_global_settings(self) -> dict[str, Any]:
        return dict(self._state.global_settings)

    async def async_set_global_settings(self, settings: dict[str, Any]) -> None:
        self._state.global_settings = dict(settings)
        self._log_event("global settings updated", "settings")
        self._notify_listeners()

    # ========================================================================
    # Simulation helpers
    # ========================================================================

    def remove_key(self, context: str) -> None:
        """Forget a key after it disappeared."""
        if self._state.keys.pop(context, None) is not None:
            self._notify_listeners()

    def reset(self) -> None:
        """Forget keys and messages, keep global settings."""
        self._state.keys.clear()
        self._state.inspector_messages.clear()
        self._event_log.clear()
        self._notify_listeners()

    def get_simulation_state(self) -> dict[str, Any]:
        """Serialize host state, hiding the API key."""
        return {
            "keys": {
                context: key.to_dict() for context, key in self._state.keys.items()
            },
            "has_api_key": bool(self._state.global_settings.get(CONF_API_KEY)),
            "inspector_messages": list(self._state.inspector_messages),
            "event_log": list(self._event_log),
        }
