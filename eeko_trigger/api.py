"""Client for the Eeko automation trigger API.

Each call makes exactly one HTTP attempt. Failures are reported as
AutomationServiceError carrying a sanitized message; retries and backoff are
left to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiohttp

from .const import (
    API_KEY_HEADER,
    AUTOMATIONS_PATH,
    DEFAULT_API_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    TRIGGER_PATH,
)
from .exceptions import AutomationServiceError, ServiceErrorKind
from .models import Automation, AutomationRef, TriggerContext

_LOGGER = logging.getLogger(__name__)


class AutomationService:
    """Lists and triggers automations on behalf of an API key."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        session: aiohttp.ClientSession | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Scheme and host of the API
            session: Shared client session; a short-lived one is opened per
                call when omitted
            request_timeout: Total timeout per request in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            API_KEY_HEADER: api_key,
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            yield session

    async def async_list_automations(self, api_key: str) -> list[Automation]:
        """Fetch the automations the API key may trigger."""
        url = f"{self.base_url}{AUTOMATIONS_PATH}"
        try:
            async with self._client() as session:
                async with session.get(
                    url, headers=self._headers(api_key), timeout=self._timeout
                ) as response:
                    if not 200 <= response.status < 300:
                        _LOGGER.debug(
                            "Listing automations failed with status %s",
                            response.status,
                        )
                        raise AutomationServiceError.from_status(response.status)
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
            _LOGGER.error("Unable to list automations: %s", err)
            raise AutomationServiceError(ServiceErrorKind.CONNECTION) from err

        return self._parse_catalog(data)

    @staticmethod
    def _parse_catalog(data: Any) -> list[Automation]:
        records = data.get("automations") if isinstance(data, dict) else None
        if not isinstance(records, list):
            return []

        automations = []
        for record in records:
            automation = Automation.from_api(record)
            if automation is None:
                _LOGGER.debug("Skipping malformed automation record: %s", record)
                continue
            automations.append(automation)
        return automations

    async def async_trigger_automation(
        self,
        api_key: str,
        automation: AutomationRef,
        context: TriggerContext,
        action_id: str,
    ) -> None:
        """Trigger one automation.

        Args:
            api_key: Credential sent verbatim in the API key header
            automation: The automation to run
            context: Device label and trigger timestamp
            action_id: Host identifier of the key that was pressed
        """
        url = f"{self.base_url}{TRIGGER_PATH}"
        body = {
            "context": context.to_dict(),
            "payload": {
                "action": action_id,
                "automationId": automation.id,
            },
        }
        try:
            async with self._client() as session:
                async with session.post(
                    url,
                    json=body,
                    headers=self._headers(api_key),
                    timeout=self._timeout,
                ) as response:
                    if not 200 <= response.status < 300:
                        _LOGGER.debug(
                            "Triggering %s failed with status %s",
                            automation.id,
                            response.status,
                        )
                        raise AutomationServiceError.from_status(response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            _LOGGER.error("Unable to trigger automation %s: %s", automation.id, err)
            raise AutomationServiceError(ServiceErrorKind.CONNECTION) from err

        _LOGGER.info("Triggered automation %s (%s)", automation.name, automation.id)
