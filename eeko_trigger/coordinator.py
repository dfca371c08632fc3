"""Action controller for the Eeko trigger action.

One controller serves every visible instance of the action. It keeps a small
record per key (settings, state machine, pending resets), turns host events
into state machine transitions and answers property inspector requests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import voluptuous as vol

from .api import AutomationService
from .config import PluginConfig
from .const import (
    ACTION_UUID,
    EVENT_DID_RECEIVE_SETTINGS,
    EVENT_KEY_DOWN,
    EVENT_KEY_UP,
    EVENT_SEND_TO_PLUGIN,
    EVENT_WILL_APPEAR,
    EVENT_WILL_DISAPPEAR,
    IMAGE_DEFAULT,
    MSG_INVALID_API_KEY_FORMAT,
    MSG_SAVE_FAILED,
    MSG_TRIGGER_FAILED,
    PI_EVENT_API_KEY_ERROR,
    PI_EVENT_API_KEY_LOADED,
    PI_EVENT_API_KEY_TESTED,
    PI_EVENT_AUTOMATIONS_ERROR,
    PI_EVENT_AUTOMATIONS_LOADED,
    PI_FETCH_AUTOMATIONS,
    PI_GET_API_KEY,
    PI_SAVE_API_KEY,
    PI_TEST_API_KEY,
)
from .credentials import CredentialStore, is_valid_credential
from .exceptions import (
    AutomationServiceError,
    CredentialStoreError,
    CredentialValidationError,
    ServiceErrorKind,
)
from .host import StreamDeckHost
from .models import AutomationRef, TriggerContext
from .state_machine import (
    ALERT_STATES,
    STATE_MISSING_API_KEY,
    STATE_NO_AUTOMATION,
    STATE_TRIGGERING,
    ButtonContext,
    ButtonEvent,
    ButtonStateMachine,
    classify_error,
)
from .timer_manager import AsyncioScheduler, Scheduler, TimerManager

_LOGGER = logging.getLogger(__name__)

MESSAGE_DATA_SCHEMA = vol.Schema(
    {vol.Optional("apiKey"): vol.Any(None, str)}, extra=vol.ALLOW_EXTRA
)

MESSAGE_SCHEMA = vol.Schema(
    {
        vol.Required("action"): str,
        vol.Optional("data", default=dict): vol.Any(None, MESSAGE_DATA_SCHEMA),
    },
    extra=vol.ALLOW_EXTRA,
)


@dataclass
class ButtonInstance:
    """Runtime record of one visible key."""

    context: str
    settings: dict[str, Any]
    state_machine: ButtonStateMachine
    timer_manager: TimerManager
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    image: str = IMAGE_DEFAULT
    disposed: bool = False

    @property
    def automation(self) -> AutomationRef | None:
        return AutomationRef.from_settings(self.settings)


class ActionController:
    """Dispatches host events for every instance of the trigger action."""

    def __init__(
        self,
        host: StreamDeckHost,
        service: AutomationService,
        credential_store: CredentialStore | None = None,
        config: PluginConfig | None = None,
        scheduler: Scheduler | None = None,
        get_current_time: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            host: Host the keys live on
            service: Client for the remote automation API
            credential_store: Store for the shared API key; defaults to the
                host's global settings
            config: Plugin configuration
            scheduler: Scheduler for delayed resets; defaults to the event loop
            get_current_time: Clock for trigger timestamps (for testing)
        """
        self.host = host
        self.service = service
        self.credential_store = credential_store or CredentialStore(host)
        self.config = config or PluginConfig()
        self.scheduler = scheduler or AsyncioScheduler()
        self._get_current_time = get_current_time or (
            lambda: datetime.now(timezone.utc)
        )
        self._instances: dict[str, ButtonInstance] = {}

        # Event tracking for diagnostics
        self._events: list[dict[str, Any]] = []
        self._max_events = 100

    # ========================================================================
    # Instances
    # ========================================================================

    def _get_instance(
        self, context: str, settings: dict[str, Any] | None = None
    ) -> ButtonInstance:
        """Return the record for a key, creating it on first sight."""
        instance = self._instances.get(context)
        if instance is None:
            state_machine = ButtonStateMachine(get_current_time=self.scheduler.now)
            state_machine.on_transition(
                lambda old, new, event: self._on_transition(context, old, new, event)
            )
            instance = ButtonInstance(
                context=context,
                settings=dict(settings or {}),
                state_machine=state_machine,
                timer_manager=TimerManager(self.scheduler),
            )
            self._instances[context] = instance
        elif settings is not None:
            instance.settings = dict(settings)
        return instance

    def get_instance(self, context: str) -> ButtonInstance | None:
        """Return the record for a visible key, if any."""
        return self._instances.get(context)

    def _on_transition(
        self, context: str, old_state: str, new_state: str, event: ButtonEvent
    ) -> None:
        self._events.append(
            {
                "context": context,
                "from": old_state,
                "to": new_state,
                "event": event.value,
                "time": self.scheduler.now().isoformat(),
            }
        )
        if len(self._events) > self._max_events:
            del self._events[: -self._max_events]

    async def _async_build_context(
        self, instance: ButtonInstance
    ) -> tuple[ButtonContext, str | None]:
        api_key = await self.credential_store.async_get()
        context = ButtonContext(
            automation=instance.automation, has_api_key=api_key is not None
        )
        return context, api_key

    # ========================================================================
    # Rendering
    # ========================================================================

    async def _async_apply(
        self, instance: ButtonInstance, event: ButtonEvent, context: ButtonContext
    ) -> bool:
        """Run a transition and push the result to the key."""
        if instance.disposed:
            return False
        if not instance.state_machine.transition(event, context):
            return False

        visual = instance.state_machine.visual_state
        try:
            await self.host.async_set_title(instance.context, visual.title)
            if visual.image != instance.image:
                await self.host.async_set_image(instance.context, visual.image)
                instance.image = visual.image
            if instance.state_machine.current_state in ALERT_STATES:
                await self.host.async_show_alert(instance.context)
        except Exception as err:
            _LOGGER.error("Unable to update key %s: %s", instance.context, err)
        return True

    def _schedule_reset(self, instance: ButtonInstance, delay: float) -> None:
        """Schedule a return to the resting state.

        The reset is dropped when it fires if the key has moved on since.
        """
        if instance.disposed:
            return
        epoch = instance.state_machine.transition_count

        async def _async_reset(timer_name: str) -> None:
            async with instance.lock:
                if instance.disposed:
                    return
                if instance.state_machine.transition_count != epoch:
                    _LOGGER.debug(
                        "Dropping stale reset %s for key %s",
                        timer_name,
                        instance.context,
                    )
                    return
                await self._async_apply(
                    instance,
                    ButtonEvent.RESET_EXPIRED,
                    instance.state_machine.context,
                )

        instance.timer_manager.start_timer(delay, _async_reset)

    # ========================================================================
    # Host events
    # ========================================================================

    async def async_on_appear(
        self, context: str, settings: dict[str, Any] | None = None
    ) -> None:
        """Handle a key becoming visible."""
        instance = self._get_instance(context, settings)
        await self._async_refresh(instance, ButtonEvent.APPEAR)

    async def async_on_settings_changed(
        self, context: str, settings: dict[str, Any]
    ) -> None:
        """Handle new settings for a key, usually from the property inspector."""
        instance = self._get_instance(context, settings)
        await self._async_refresh(instance, ButtonEvent.SETTINGS_CHANGED)

    async def _async_refresh(
        self, instance: ButtonInstance, event: ButtonEvent
    ) -> None:
        async with instance.lock:
            button_context, api_key = await self._async_build_context(instance)
            await self._async_apply(instance, event, button_context)

            # Unconfigured key with a stored key: offer the catalog
            if api_key is not None and button_context.automation is None:
                await self._async_validate_and_fetch(instance.context, api_key)

    async def async_on_key_down(
        self, context: str, settings: dict[str, Any] | None = None
    ) -> None:
        """Handle a key press. Only the release acts, so nothing changes."""
        instance = self._get_instance(context, settings)
        async with instance.lock:
            instance.state_machine.transition(
                ButtonEvent.KEY_DOWN, instance.state_machine.context
            )

    async def async_on_key_up(
        self, context: str, settings: dict[str, Any] | None = None
    ) -> None:
        """Handle a key release: trigger the selected automation."""
        instance = self._get_instance(context, settings)
        async with instance.lock:
            button_context, api_key = await self._async_build_context(instance)
            await self._async_apply(instance, ButtonEvent.KEY_UP, button_context)

            state = instance.state_machine.current_state
            if state in (STATE_MISSING_API_KEY, STATE_NO_AUTOMATION):
                self._schedule_reset(instance, self.config.failure_reset_delay)
                return
            if state != STATE_TRIGGERING:
                return

            try:
                if not is_valid_credential(api_key):
                    raise CredentialValidationError()
                await self.service.async_trigger_automation(
                    api_key,
                    button_context.automation,
                    TriggerContext(
                        device_name=self.config.device_name,
                        triggered_at=self._get_current_time(),
                    ),
                    action_id=instance.context,
                )
            except Exception as err:
                _LOGGER.error(
                    "Triggering %s from key %s failed: %s",
                    button_context.automation.id,
                    instance.context,
                    err,
                )
                # Service failures show as a failed trigger whatever the status
                if isinstance(err, AutomationServiceError):
                    reason: BaseException | str = MSG_TRIGGER_FAILED
                else:
                    reason = err
                failed_context = ButtonContext(
                    automation=button_context.automation,
                    has_api_key=True,
                    error_kind=classify_error(reason),
                )
                if await self._async_apply(
                    instance, ButtonEvent.TRIGGER_FAILED, failed_context
                ):
                    self._schedule_reset(instance, self.config.failure_reset_delay)
                return

            if await self._async_apply(
                instance, ButtonEvent.TRIGGER_SUCCEEDED, button_context
            ):
                self._schedule_reset(instance, self.config.success_reset_delay)

    async def async_on_disappear(self, context: str) -> None:
        """Tear a key down and cancel everything it has pending.

        Does not wait for an in-flight trigger; its outcome is discarded.
        """
        instance = self._instances.pop(context, None)
        if instance is None:
            return
        instance.disposed = True
        cancelled = instance.timer_manager.cancel_all_timers()
        _LOGGER.debug("Key %s disappeared, cancelled %d reset(s)", context, cancelled)

    async def async_shutdown(self) -> None:
        """Tear down every key."""
        for context in list(self._instances):
            await self.async_on_disappear(context)

    async def async_dispatch(
        self, event: str, context: str, payload: dict[str, Any] | None = None
    ) -> None:
        """Route a host event by name."""
        payload = payload or {}
        settings = payload.get("settings")

        handlers: dict[str, Callable[[], Awaitable[None]]] = {
            EVENT_WILL_APPEAR: lambda: self.async_on_appear(context, settings),
            EVENT_DID_RECEIVE_SETTINGS: lambda: self.async_on_settings_changed(
                context, settings
            ),
            EVENT_KEY_DOWN: lambda: self.async_on_key_down(context, settings),
            EVENT_KEY_UP: lambda: self.async_on_key_up(context, settings),
            EVENT_WILL_DISAPPEAR: lambda: self.async_on_disappear(context),
            EVENT_SEND_TO_PLUGIN: lambda: self.async_on_send_to_plugin(
                context, payload
            ),
        }
        handler = handlers.get(event)
        if handler is None:
            _LOGGER.debug("Ignoring host event %s", event)
            return
        await handler()

    # ========================================================================
    # Property inspector
    # ========================================================================

    async def async_on_send_to_plugin(
        self, context: str, message: dict[str, Any]
    ) -> None:
        """Handle a request from the property inspector."""
        try:
            message = MESSAGE_SCHEMA(message)
        except vol.Invalid as err:
            _LOGGER.warning("Ignoring malformed property inspector message: %s", err)
            return

        action = message["action"]
        api_key = (message.get("data") or {}).get("apiKey")

        if action == PI_GET_API_KEY:
            await self.async_get_api_key(context)
            return
        if action not in (PI_SAVE_API_KEY, PI_TEST_API_KEY, PI_FETCH_AUTOMATIONS):
            _LOGGER.debug("Ignoring unknown property inspector action %s", action)
            return
        if not api_key:
            _LOGGER.debug("Ignoring %s without an API key", action)
            return

        if action == PI_SAVE_API_KEY:
            await self.async_save_api_key(context, api_key)
        elif action == PI_TEST_API_KEY:
            await self.async_test_api_key(context, api_key)
        else:
            await self.async_fetch_automations(context, api_key)

    async def _async_relay(
        self, context: str, event: str, payload: dict[str, Any]
    ) -> None:
        try:
            await self.host.async_send_to_property_inspector(context, event, payload)
        except Exception as err:
            _LOGGER.error("Unable to send %s to property inspector: %s", event, err)

    async def async_get_api_key(self, context: str) -> None:
        """Send the stored API key to the property inspector."""
        api_key = await self.credential_store.async_get()
        await self._async_relay(
            context, PI_EVENT_API_KEY_LOADED, {"apiKey": api_key or ""}
        )

    async def async_save_api_key(self, context: str, api_key: str) -> None:
        """Validate, persist and then test an API key."""
        if not is_valid_credential(api_key):
            _LOGGER.warning("Refusing to save an API key with an invalid format")
            await self._async_relay(
                context,
                PI_EVENT_API_KEY_TESTED,
                {"valid": False, "error": MSG_INVALID_API_KEY_FORMAT},
            )
            return

        try:
            await self.credential_store.async_set(api_key)
        except CredentialStoreError as err:
            _LOGGER.error("%s: %s", err, err.__cause__)
            await self._async_relay(
                context, PI_EVENT_API_KEY_ERROR, {"error": MSG_SAVE_FAILED}
            )
            return

        await self.async_test_api_key(context, api_key)

    async def async_test_api_key(self, context: str, api_key: str) -> None:
        """Confirm the API key is authorized, then load the catalog."""
        if not is_valid_credential(api_key):
            await self._async_relay(
                context,
                PI_EVENT_API_KEY_TESTED,
                {"valid": False, "error": MSG_INVALID_API_KEY_FORMAT},
            )
            return

        try:
            await self.service.async_list_automations(api_key)
        except AutomationServiceError as err:
            await self._async_relay(
                context, PI_EVENT_API_KEY_TESTED, {"valid": False, "error": err.message}
            )
            return

        await self._async_relay(context, PI_EVENT_API_KEY_TESTED, {"valid": True})
        await self.async_fetch_automations(context, api_key)

    async def async_fetch_automations(self, context: str, api_key: str) -> None:
        """Send the automation catalog to the property inspector."""
        if not is_valid_credential(api_key):
            await self._async_relay(
                context,
                PI_EVENT_AUTOMATIONS_ERROR,
                {"error": MSG_INVALID_API_KEY_FORMAT},
            )
            return

        try:
            automations = await self.service.async_list_automations(api_key)
        except AutomationServiceError as err:
            await self._async_relay(
                context, PI_EVENT_AUTOMATIONS_ERROR, {"error": err.message}
            )
            return

        await self._async_relay(
            context,
            PI_EVENT_AUTOMATIONS_LOADED,
            {"automations": [automation.to_dict() for automation in automations]},
        )

    async def _async_validate_and_fetch(self, context: str, api_key: str) -> None:
        """Load the catalog for a key that has no automation selected yet."""
        if not is_valid_credential(api_key):
            await self._async_relay(
                context, PI_EVENT_API_KEY_ERROR, {"error": MSG_INVALID_API_KEY_FORMAT}
            )
            return

        try:
            automations = await self.service.async_list_automations(api_key)
        except AutomationServiceError as err:
            if err.kind is ServiceErrorKind.CONNECTION:
                error = err.message
            else:
                error = f"API key validation failed: {err.status}"
            await self._async_relay(context, PI_EVENT_API_KEY_ERROR, {"error": error})
            return

        await self._async_relay(
            context,
            PI_EVENT_AUTOMATIONS_LOADED,
            {"automations": [automation.to_dict() for automation in automations]},
        )

    # ========================================================================
    # Diagnostics
    # ========================================================================

    def get_info(self) -> dict[str, Any]:
        """Get controller diagnostic info."""
        return {
            "action": ACTION_UUID,
            "keys": {
                context: {
                    "settings": instance.settings,
                    "state": instance.state_machine.get_info(),
                    "timers": instance.timer_manager.get_info(),
                }
                for context, instance in self._instances.items()
            },
            "recent_transitions": list(self._events),
        }
