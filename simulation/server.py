"""Web server for the Eeko trigger simulation.

Provides HTTP and WebSocket endpoints that stand in for the Stream Deck
software: host events go in, key titles, images, alerts and property
inspector messages come out. Uses aiohttp for async handling.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from aiohttp import WSMsgType, web

from eeko_trigger.api import AutomationService
from eeko_trigger.config import (
    CONF_LOG_LEVEL,
    PluginConfig,
    config_from_env,
    setup_logging,
)
from eeko_trigger.const import EVENT_WILL_DISAPPEAR
from eeko_trigger.coordinator import ActionController

from .sim_host import SimStreamDeckHost

_LOGGER = logging.getLogger(__name__)

# Global state
host: SimStreamDeckHost | None = None
controller: ActionController | None = None
clients: set[web.WebSocketResponse] = set()


class WebSocketLogHandler(logging.Handler):
    """Log handler that broadcasts to WebSocket clients."""

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno < logging.INFO:
            return

        message = {
            "type": "log",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        # Schedule broadcast (can't await in emit)
        for ws in list(clients):
            if not ws.closed:
                asyncio.create_task(ws.send_json(message))


def get_simulation_state() -> dict[str, Any]:
    """Host state plus controller diagnostics."""
    state = host.get_simulation_state() if host else {}
    if controller:
        state["controller"] = controller.get_info()
    return state


async def broadcast_state() -> None:
    """Broadcast current state to all connected clients."""
    message = {"type": "state_update", "state": get_simulation_state()}

    for ws in list(clients):
        if not ws.closed:
            try:
                await ws.send_json(message)
            except Exception as err:
                _LOGGER.warning("Error broadcasting to client: %s", err)
                clients.discard(ws)


async def handle_host_event(data: dict[str, Any]) -> bool:
    """Feed one `{event, context, payload}` message to the controller."""
    event = data.get("event")
    context = data.get("context")
    if not isinstance(event, str) or not isinstance(context, str) or not controller:
        return False

    payload = data.get("payload")
    await controller.async_dispatch(
        event, context, payload if isinstance(payload, dict) else {}
    )
    if event == EVENT_WILL_DISAPPEAR and host:
        host.remove_key(context)
    return True


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """Handle WebSocket connections."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    clients.add(ws)

    _LOGGER.info("WebSocket client connected (%d total)", len(clients))

    # Send initial state
    await ws.send_json({"type": "init", "state": get_simulation_state()})

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except json.JSONDecodeError:
                    _LOGGER.warning("Invalid JSON from client")
                    continue
                await handle_ws_message(ws, data)
            elif msg.type == WSMsgType.ERROR:
                _LOGGER.error("WebSocket error: %s", ws.exception())
    finally:
        clients.discard(ws)
        _LOGGER.info("WebSocket client disconnected (%d remaining)", len(clients))

    return ws


async def handle_ws_message(ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
    """Handle incoming WebSocket message."""
    if data.get("type") == "ping":
        await ws.send_json({"type": "pong"})
        return

    if not await handle_host_event(data):
        _LOGGER.warning("Ignoring WebSocket message without event/context")


async def api_state(request: web.Request) -> web.Response:
    """Return current state."""
    return web.json_response(get_simulation_state())


async def api_events(request: web.Request) -> web.Response:
    """Accept one host event."""
    try:
        data = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "Invalid JSON"}, status=400)

    if not isinstance(data, dict) or not await handle_host_event(data):
        return web.json_response({"error": "event and context required"}, status=400)
    return web.json_response(get_simulation_state())


async def api_reset(request: web.Request) -> web.Response:
    """Reset simulation."""
    if controller:
        await controller.async_shutdown()
    if host:
        host.reset()
    return web.json_response({"status": "ok"})


async def _close_controller(app: web.Application) -> None:
    if controller:
        await controller.async_shutdown()


def create_app(config: PluginConfig | None = None) -> web.Application:
    """Create the aiohttp application."""
    global host, controller

    config = config or PluginConfig()
    host = SimStreamDeckHost()
    controller = ActionController(
        host,
        AutomationService(
            base_url=config.api_base_url, request_timeout=config.request_timeout
        ),
        config=config,
    )

    def on_update() -> None:
        if clients:
            asyncio.create_task(broadcast_state())

    host.async_add_listener(on_update)

    # Set up logging handler
    log_handler = WebSocketLogHandler()
    log_handler.setLevel(logging.INFO)
    logging.getLogger("eeko_trigger").addHandler(log_handler)

    app = web.Application()
    app.on_shutdown.append(_close_controller)

    # Routes
    app.router.add_get("/ws", websocket_handler)
    app.router.add_get("/api/state", api_state)
    app.router.add_post("/api/events", api_events)
    app.router.add_post("/api/reset", api_reset)

    return app


def run_server(
    host_address: str = "0.0.0.0",
    port: int = 8092,
    config: PluginConfig | None = None,
) -> None:
    """Run the simulation server."""
    config = config or config_from_env(defaults={CONF_LOG_LEVEL: "INFO"})
    setup_logging(config.log_level)

    app = create_app(config)

    print("\nEeko Trigger Simulation Server")
    print(f"   POST host events to http://localhost:{port}/api/events\n")

    web.run_app(app, host=host_address, port=port, print=None)


if __name__ == "__main__":
    run_server()
