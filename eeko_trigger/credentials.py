"""API key validation and storage."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from .const import CONF_API_KEY
from .exceptions import CredentialStoreError
from .host import StreamDeckHost

_LOGGER = logging.getLogger(__name__)

# Length is exclusive on both ends: 11 to 199 characters.
API_KEY_SCHEMA = vol.Schema(
    vol.All(str, vol.Length(min=11, max=199), vol.Match(r"^[A-Za-z0-9_-]+\Z"))
)


def is_valid_credential(value: Any) -> bool:
    """Return True if value looks like an Eeko API key."""
    try:
        API_KEY_SCHEMA(value)
    except vol.Invalid:
        return False
    return True


class CredentialStore:
    """Keeps the API key in the host's global settings.

    One key is shared by every key on every device. Validation is left to the
    caller.
    """

    def __init__(self, host: StreamDeckHost) -> None:
        self._host = host

    async def async_get(self) -> str | None:
        """Return the stored API key, or None if unset or unreadable."""
        try:
            settings = await self._host.async_get_global_settings()
        except Exception as err:
            _LOGGER.error("Unable to read global settings: %s", err)
            return None
        api_key = (settings or {}).get(CONF_API_KEY)
        return api_key or None

    async def async_set(self, api_key: str) -> None:
        """Persist the API key, keeping other global settings intact."""
        try:
            settings = await self._host.async_get_global_settings()
            await self._host.async_set_global_settings(
                {**(settings or {}), CONF_API_KEY: api_key}
            )
        except Exception as err:
            raise CredentialStoreError("Unable to write global settings") from err
        _LOGGER.info("API key saved to global settings")
