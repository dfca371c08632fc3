"""Data models for the Eeko trigger plugin."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import voluptuous as vol

from .const import CONF_AUTOMATION_ID, CONF_AUTOMATION_NAME

_LOGGER = logging.getLogger(__name__)

SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_AUTOMATION_ID): vol.Any(None, vol.Coerce(str)),
        vol.Optional(CONF_AUTOMATION_NAME): vol.Any(None, vol.Coerce(str)),
    },
    extra=vol.ALLOW_EXTRA,
)


@dataclass(frozen=True)
class AutomationRef:
    """The remote automation a key invokes."""

    id: str
    name: str

    @staticmethod
    def from_settings(settings: dict[str, Any] | None) -> AutomationRef | None:
        """Read the selected automation from a key's settings.

        Id and name travel together: if either is missing or empty the key
        counts as not configured.
        """
        try:
            data = SETTINGS_SCHEMA(settings or {})
        except vol.Invalid as err:
            _LOGGER.warning("Ignoring malformed key settings: %s", err)
            return None

        automation_id = data.get(CONF_AUTOMATION_ID)
        name = data.get(CONF_AUTOMATION_NAME)
        if not automation_id or not name:
            return None
        return AutomationRef(id=automation_id, name=name)


@dataclass(frozen=True)
class Automation:
    """One entry of the automation catalog."""

    id: str
    name: str
    description: str | None = None

    @staticmethod
    def from_api(data: Any) -> Automation | None:
        """Create an Automation from an API record, None if unusable."""
        if not isinstance(data, dict):
            return None
        automation_id = data.get("id")
        name = data.get("name")
        if not automation_id or not name:
            return None
        description = data.get("description")
        return Automation(
            id=str(automation_id),
            name=str(name),
            description=str(description) if description is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.description is not None:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class TriggerContext:
    """Who triggered an automation, and when."""

    device_name: str
    triggered_at: datetime

    def to_dict(self) -> dict[str, str]:
        timestamp = self.triggered_at.astimezone(timezone.utc)
        return {
            "deviceName": self.device_name,
            "triggeredAt": timestamp.isoformat(timespec="milliseconds").replace(
                "+00:00", "Z"
            ),
        }
