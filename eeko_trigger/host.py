"""Interface to the Stream Deck host application.

The plugin never talks to the hardware directly. Everything visible on a key
and every message for the property inspector goes through a host object that
implements this interface. The connection and registration handshake with the
real Stream Deck software lives outside this package; the simulation package
ships an in-memory implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class StreamDeckHost(ABC):
    """Abstract base class for host implementations.

    `context` is the opaque identifier the host assigns to one visible
    instance of the action (one key on one device).
    """

    @abstractmethod
    async def async_set_title(self, context: str, title: str) -> None:
        """Set the title shown on a key. Lines are separated by newlines."""

    @abstractmethod
    async def async_set_image(self, context: str, image: str) -> None:
        """Swap the image shown on a key."""

    @abstractmethod
    async def async_show_alert(self, context: str) -> None:
        """Flash the host's alert indicator on a key."""

    @abstractmethod
    async def async_send_to_property_inspector(
        self, context: str, event: str, payload: dict[str, Any]
    ) -> None:
        """Send a one-shot message to the property inspector, if one is open."""

    @abstractmethod
    async def async_get_global_settings(self) -> dict[str, Any]:
        """Return the settings shared by every instance of the plugin."""

    @abstractmethod
    async def async_set_global_settings(self, settings: dict[str, Any]) -> None:
        """Replace the settings shared by every instance of the plugin."""
