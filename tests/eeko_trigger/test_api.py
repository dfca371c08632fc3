"""Tests for the Eeko automation API client."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from eeko_trigger.api import AutomationService
from eeko_trigger.coordinator import ActionController
from eeko_trigger.const import API_KEY_HEADER, AUTOMATIONS_PATH, TRIGGER_PATH
from eeko_trigger.exceptions import AutomationServiceError, ServiceErrorKind
from eeko_trigger.models import Automation, AutomationRef, TriggerContext

from .conftest import KEY_CONTEXT, VALID_API_KEY, ManualScheduler, RecordingHost

AUTOMATION = AutomationRef(id="auto-1", name="Daily Report")
TRIGGER_CONTEXT = TriggerContext(
    device_name="Stream Deck Device",
    triggered_at=datetime(2026, 10, 18, 9, 30, 0, 123000, tzinfo=timezone.utc),
)


class MockEekoApi:
    """Records requests and answers with a configurable status and body."""

    def __init__(self) -> None:
        self.status = 200
        self.catalog: Any = {
            "automations": [
                {"id": "auto-1", "name": "Daily Report", "description": "Posts it"},
                {"id": "auto-2", "name": "Lights Off"},
            ]
        }
        self.raw_body: str | None = None
        self.delay = 0.0
        self.requests: list[dict[str, Any]] = []

    async def _respond(self) -> web.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raw_body is not None:
            return web.Response(text=self.raw_body, status=self.status)
        if self.status >= 300:
            return web.json_response({"error": "nope"}, status=self.status)
        return web.json_response(self.catalog, status=self.status)

    async def list_automations(self, request: web.Request) -> web.Response:
        self.requests.append({"method": "GET", "headers": dict(request.headers)})
        return await self._respond()

    async def trigger(self, request: web.Request) -> web.Response:
        self.requests.append(
            {
                "method": "POST",
                "headers": dict(request.headers),
                "body": await request.json(),
            }
        )
        if self.status < 300:
            return web.json_response({"ok": True}, status=self.status)
        return await self._respond()

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(AUTOMATIONS_PATH, self.list_automations)
        app.router.add_post(TRIGGER_PATH, self.trigger)
        return app


@pytest.fixture
def mock_api() -> MockEekoApi:
    return MockEekoApi()


@pytest.fixture
async def api_server(mock_api: MockEekoApi):
    """Run the mock API on a local port."""
    server = TestServer(mock_api.create_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def service(api_server: TestServer) -> AutomationService:
    return AutomationService(
        base_url=str(api_server.make_url("/")), request_timeout=0.5
    )


class TestListAutomations:
    """Test catalog retrieval."""

    async def test_success(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test the catalog is parsed and the key is sent in the header."""
        automations = await service.async_list_automations(VALID_API_KEY)

        assert automations == [
            Automation(id="auto-1", name="Daily Report", description="Posts it"),
            Automation(id="auto-2", name="Lights Off"),
        ]
        headers = mock_api.requests[0]["headers"]
        assert headers[API_KEY_HEADER] == VALID_API_KEY
        assert headers["Content-Type"] == "application/json"

    async def test_empty_catalog(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test a body without a list yields no automations."""
        mock_api.catalog = {"something": "else"}
        assert await service.async_list_automations(VALID_API_KEY) == []

    async def test_malformed_records_skipped(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test records without an id or name are dropped."""
        mock_api.catalog = {
            "automations": [
                {"id": "auto-1", "name": "Daily Report"},
                {"id": "auto-2"},
                {"name": "No id"},
                "not a record",
                {"id": 7, "name": "Numeric"},
            ]
        }
        automations = await service.async_list_automations(VALID_API_KEY)
        assert [a.id for a in automations] == ["auto-1", "7"]

    @pytest.mark.parametrize(
        ("status", "kind", "message"),
        [
            (401, ServiceErrorKind.UNAUTHORIZED, "Invalid or expired API key"),
            (
                403,
                ServiceErrorKind.FORBIDDEN,
                "API key does not have required permissions",
            ),
            (500, ServiceErrorKind.OTHER, "API error: 500"),
            (404, ServiceErrorKind.OTHER, "API error: 404"),
        ],
    )
    async def test_status_errors(
        self, service: AutomationService, mock_api: MockEekoApi, status, kind, message
    ) -> None:
        """Test non-success statuses raise sanitized errors."""
        mock_api.status = status
        with pytest.raises(AutomationServiceError) as exc_info:
            await service.async_list_automations(VALID_API_KEY)

        assert exc_info.value.kind is kind
        assert exc_info.value.status == status
        assert exc_info.value.message == message

    async def test_invalid_json(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test an unparseable body is reported as a connection problem."""
        mock_api.raw_body = "<html>gateway</html>"
        with pytest.raises(AutomationServiceError) as exc_info:
            await service.async_list_automations(VALID_API_KEY)
        assert exc_info.value.kind is ServiceErrorKind.CONNECTION

    async def test_timeout(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test a slow server is reported as a connection problem."""
        mock_api.delay = 1.0
        with pytest.raises(AutomationServiceError) as exc_info:
            await service.async_list_automations(VALID_API_KEY)
        assert exc_info.value.message == (
            "Connection error - check your internet connection"
        )

    async def test_connection_error(self) -> None:
        """Test transport failures from a shared session."""
        session = MagicMock()
        session.get.side_effect = aiohttp.ClientConnectionError("refused")
        service = AutomationService(session=session)

        with pytest.raises(AutomationServiceError) as exc_info:
            await service.async_list_automations(VALID_API_KEY)

        assert exc_info.value.kind is ServiceErrorKind.CONNECTION
        assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)
        assert "refused" not in exc_info.value.message

    async def test_shared_session(
        self, api_server: TestServer, mock_api: MockEekoApi
    ) -> None:
        """Test an injected session is used and left open."""
        async with aiohttp.ClientSession() as session:
            service = AutomationService(
                base_url=str(api_server.make_url("/")), session=session
            )
            await service.async_list_automations(VALID_API_KEY)
            await service.async_list_automations(VALID_API_KEY)
            assert not session.closed

        assert len(mock_api.requests) == 2


class TestTriggerAutomation:
    """Test triggering an automation."""

    async def test_success(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test the request body and headers."""
        await service.async_trigger_automation(
            VALID_API_KEY, AUTOMATION, TRIGGER_CONTEXT, action_id="key-context-1"
        )

        request = mock_api.requests[0]
        assert request["method"] == "POST"
        assert request["headers"][API_KEY_HEADER] == VALID_API_KEY
        assert request["body"] == {
            "context": {
                "deviceName": "Stream Deck Device",
                "triggeredAt": "2026-10-18T09:30:00.123Z",
            },
            "payload": {"action": "key-context-1", "automationId": "auto-1"},
        }

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ServiceErrorKind.UNAUTHORIZED),
            (403, ServiceErrorKind.FORBIDDEN),
            (502, ServiceErrorKind.OTHER),
        ],
    )
    async def test_status_errors(
        self, service: AutomationService, mock_api: MockEekoApi, status, kind
    ) -> None:
        """Test non-success statuses raise."""
        mock_api.status = status
        with pytest.raises(AutomationServiceError) as exc_info:
            await service.async_trigger_automation(
                VALID_API_KEY, AUTOMATION, TRIGGER_CONTEXT, action_id="key"
            )
        assert exc_info.value.kind is kind

    async def test_single_attempt(
        self, service: AutomationService, mock_api: MockEekoApi
    ) -> None:
        """Test a failure is not retried."""
        mock_api.status = 500
        with pytest.raises(AutomationServiceError):
            await service.async_trigger_automation(
                VALID_API_KEY, AUTOMATION, TRIGGER_CONTEXT, action_id="key"
            )
        assert len(mock_api.requests) == 1

    async def test_connection_error(self) -> None:
        """Test transport failures are sanitized."""
        session = MagicMock()
        session.post.side_effect = aiohttp.ClientConnectionError("refused")
        service = AutomationService(session=session)

        with pytest.raises(AutomationServiceError) as exc_info:
            await service.async_trigger_automation(
                VALID_API_KEY, AUTOMATION, TRIGGER_CONTEXT, action_id="key"
            )
        assert exc_info.value.kind is ServiceErrorKind.CONNECTION


class TestTriggerContext:
    """Test the trigger context payload."""

    def test_offset_converted_to_utc(self) -> None:
        """Test timestamps are rendered in UTC with milliseconds."""
        context = TriggerContext(
            device_name="Desk",
            triggered_at=datetime(
                2026, 10, 18, 11, 30, 0, 5000, tzinfo=timezone(timedelta(hours=2))
            ),
        )
        assert context.to_dict() == {
            "deviceName": "Desk",
            "triggeredAt": "2026-10-18T09:30:00.005Z",
        }


class TestTriggerFromKey:
    """Test a key press against the HTTP client."""

    @pytest.mark.parametrize("status", [401, 403, 500])
    async def test_failed_request_shows_failed(
        self,
        service: AutomationService,
        mock_api: MockEekoApi,
        configured_host: RecordingHost,
        scheduler: ManualScheduler,
        status,
    ) -> None:
        """Test a rejected trigger request reads as a failed trigger on the key."""
        mock_api.status = status
        controller = ActionController(configured_host, service, scheduler=scheduler)
        settings = {"automationId": "auto-1", "automationName": "Daily Report"}

        await controller.async_on_appear(KEY_CONTEXT, settings)
        await controller.async_on_key_up(KEY_CONTEXT)

        assert configured_host.titles[KEY_CONTEXT] == "Error\nFailed"
        assert configured_host.alerts[KEY_CONTEXT] == 1
        assert len(mock_api.requests) == 1

    async def test_successful_request(
        self,
        service: AutomationService,
        mock_api: MockEekoApi,
        configured_host: RecordingHost,
        scheduler: ManualScheduler,
    ) -> None:
        """Test an accepted trigger request shows the pressed key."""
        controller = ActionController(configured_host, service, scheduler=scheduler)
        settings = {"automationId": "auto-1", "automationName": "Daily Report"}

        await controller.async_on_appear(KEY_CONTEXT, settings)
        await controller.async_on_key_up(KEY_CONTEXT)

        assert configured_host.titles[KEY_CONTEXT] == "Triggered!\nDaily Report"
        assert mock_api.requests[0]["body"]["payload"]["action"] == KEY_CONTEXT
