"""State machine for one Eeko trigger key.

The machine decides which state a key is in after each event, given the key's
settings and whether an API key is stored. Rendering a state to the title and
image shown on the key is kept next to the transition table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from .const import (
    IMAGE_DEFAULT,
    IMAGE_PRESSED,
    TITLE_CONFIGURE,
    TITLE_ERROR_PREFIX,
    TITLE_MISSING_API_KEY,
    TITLE_NO_AUTOMATION,
    TITLE_SELECT,
    TITLE_TRIGGERED_PREFIX,
    TITLE_TRIGGERING_PREFIX,
)
from .models import AutomationRef

_LOGGER = logging.getLogger(__name__)

# State constants
# UNCONFIGURED: no automation selected and no API key stored
# AWAITING_AUTOMATION: API key stored, waiting for the user to pick an automation
# READY: automation selected, key shows its name
# TRIGGERING: trigger request in flight
# TRIGGERED: trigger succeeded, pressed image shown until reset
# MISSING_API_KEY / NO_AUTOMATION: key pressed while not configured
# ERROR: trigger request failed
STATE_UNCONFIGURED = "unconfigured"
STATE_AWAITING_AUTOMATION = "awaiting-automation"
STATE_READY = "ready"
STATE_TRIGGERING = "triggering"
STATE_TRIGGERED = "triggered"
STATE_MISSING_API_KEY = "missing-api-key"
STATE_NO_AUTOMATION = "no-automation-selected"
STATE_ERROR = "error"

ALL_STATES = (
    STATE_UNCONFIGURED,
    STATE_AWAITING_AUTOMATION,
    STATE_READY,
    STATE_TRIGGERING,
    STATE_TRIGGERED,
    STATE_MISSING_API_KEY,
    STATE_NO_AUTOMATION,
    STATE_ERROR,
)

# States that flash the host alert when entered
ALERT_STATES = (STATE_MISSING_API_KEY, STATE_NO_AUTOMATION, STATE_ERROR)


class ButtonEvent(Enum):
    """Events that can trigger state transitions."""

    APPEAR = "appear"
    SETTINGS_CHANGED = "settings_changed"
    KEY_DOWN = "key_down"
    KEY_UP = "key_up"
    TRIGGER_SUCCEEDED = "trigger_succeeded"
    TRIGGER_FAILED = "trigger_failed"
    RESET_EXPIRED = "reset_expired"


class ErrorKind(Enum):
    """Display classes of a failed trigger. The value is the label shown."""

    API_ERROR = "API Error"
    GENERIC_FAILURE = "Failed"


def classify_error(error: BaseException | str) -> ErrorKind:
    """Reduce a failure to a display class.

    Only the class reaches the key; the failure text itself never does.
    """
    return ErrorKind.API_ERROR if "API" in str(error) else ErrorKind.GENERIC_FAILURE


@dataclass(frozen=True)
class ButtonContext:
    """What the machine knows about a key when an event arrives."""

    automation: AutomationRef | None = None
    has_api_key: bool = False
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class ButtonVisualState:
    """Title and image shown on a key."""

    title: str
    image: str = IMAGE_DEFAULT


@dataclass
class StateTransition:
    """Represents a state transition."""

    from_state: str
    to_state: str
    event: ButtonEvent
    condition: Callable[[ButtonContext], bool] | None = None


def _has_automation(context: ButtonContext) -> bool:
    return context.automation is not None


def _awaiting_automation(context: ButtonContext) -> bool:
    return context.automation is None and context.has_api_key


def _unconfigured(context: ButtonContext) -> bool:
    return context.automation is None and not context.has_api_key


def _missing_api_key(context: ButtonContext) -> bool:
    return not context.has_api_key


def _can_trigger(context: ButtonContext) -> bool:
    return context.has_api_key and context.automation is not None


def render(state: str, context: ButtonContext) -> ButtonVisualState:
    """Return what a key in the given state shows."""
    name = context.automation.name if context.automation else None

    if state == STATE_AWAITING_AUTOMATION:
        return ButtonVisualState(TITLE_SELECT)
    if state == STATE_MISSING_API_KEY:
        return ButtonVisualState(TITLE_MISSING_API_KEY)
    if state == STATE_NO_AUTOMATION:
        return ButtonVisualState(TITLE_NO_AUTOMATION)
    if state == STATE_ERROR:
        kind = context.error_kind or ErrorKind.GENERIC_FAILURE
        return ButtonVisualState(TITLE_ERROR_PREFIX + kind.value)
    if name is None:
        return ButtonVisualState(TITLE_CONFIGURE)
    if state == STATE_READY:
        return ButtonVisualState(name)
    if state == STATE_TRIGGERING:
        return ButtonVisualState(TITLE_TRIGGERING_PREFIX + name)
    if state == STATE_TRIGGERED:
        return ButtonVisualState(TITLE_TRIGGERED_PREFIX + name, IMAGE_PRESSED)
    return ButtonVisualState(TITLE_CONFIGURE)


class ButtonStateMachine:
    """State machine for one key.

    Unlike a classic machine, most events are accepted from every state: the
    key's settings and the stored API key, not its history, decide where an
    appear or a key press leads. Self-transitions are re-entered so a repeated
    press re-shows its alert.
    """

    def __init__(
        self,
        initial_state: str = STATE_UNCONFIGURED,
        get_current_time: Callable[[], datetime] | None = None,
    ):
        """Initialize the state machine.

        Args:
            initial_state: The initial state of the machine
            get_current_time: Optional clock, injected by tests and the simulation
        """
        self._current_state = initial_state
        self._previous_state: str | None = None
        self._context = ButtonContext()
        self._transition_count = 0
        self._get_current_time = get_current_time or datetime.now
        self._state_entered_at: datetime = self._get_current_time()
        self._transitions: dict[tuple[str, ButtonEvent], list[StateTransition]] = {}
        self._transition_callbacks: list[Callable[[str, str, ButtonEvent], None]] = []

        self._define_transitions()

    def _define_transitions(self) -> None:
        """Define valid state transitions.

        Key down has no transitions at all: only the release acts.
        """
        for state in ALL_STATES:
            # Appear and settings changes recompute the resting state
            for event in (ButtonEvent.APPEAR, ButtonEvent.SETTINGS_CHANGED):
                self._add_transition(state, event, STATE_READY, _has_automation)
                self._add_transition(
                    state, event, STATE_AWAITING_AUTOMATION, _awaiting_automation
                )
                self._add_transition(state, event, STATE_UNCONFIGURED, _unconfigured)

            # Key release
            self._add_transition(
                state, ButtonEvent.KEY_UP, STATE_MISSING_API_KEY, _missing_api_key
            )
            self._add_transition(
                state, ButtonEvent.KEY_UP, STATE_NO_AUTOMATION, _awaiting_automation
            )
            self._add_transition(
                state, ButtonEvent.KEY_UP, STATE_TRIGGERING, _can_trigger
            )

        # Trigger outcome
        self._add_transition(
            STATE_TRIGGERING, ButtonEvent.TRIGGER_SUCCEEDED, STATE_TRIGGERED
        )
        self._add_transition(STATE_TRIGGERING, ButtonEvent.TRIGGER_FAILED, STATE_ERROR)

        # Delayed resets back to a resting state
        self._add_transition(
            STATE_MISSING_API_KEY, ButtonEvent.RESET_EXPIRED, STATE_UNCONFIGURED
        )
        self._add_transition(
            STATE_NO_AUTOMATION, ButtonEvent.RESET_EXPIRED, STATE_AWAITING_AUTOMATION
        )
        self._add_transition(STATE_TRIGGERED, ButtonEvent.RESET_EXPIRED, STATE_READY)
        self._add_transition(
            STATE_ERROR, ButtonEvent.RESET_EXPIRED, STATE_READY, _has_automation
        )
        self._add_transition(STATE_ERROR, ButtonEvent.RESET_EXPIRED, STATE_UNCONFIGURED)

    def _add_transition(
        self,
        from_state: str,
        event: ButtonEvent,
        to_state: str,
        condition: Callable[[ButtonContext], bool] | None = None,
    ) -> None:
        """Add a valid state transition."""
        key = (from_state, event)
        if key not in self._transitions:
            self._transitions[key] = []
        self._transitions[key].append(
            StateTransition(from_state, to_state, event, condition)
        )

    def transition(self, event: ButtonEvent, context: ButtonContext) -> bool:
        """Attempt to transition based on an event.

        Args:
            event: The event triggering the transition
            context: Settings and credential availability at the time of the event

        Returns:
            True if transition occurred, False otherwise
        """
        key = (self._current_state, event)
        possible_transitions = self._transitions.get(key, [])

        if not possible_transitions:
            _LOGGER.debug(
                "No transition defined for state=%s, event=%s",
                self._current_state,
                event.value,
            )
            return False

        for trans in possible_transitions:
            if trans.condition and not trans.condition(context):
                continue
            self._execute_transition(trans, context)
            return True

        _LOGGER.debug(
            "No valid transition found for state=%s, event=%s (conditions not met)",
            self._current_state,
            event.value,
        )
        return False

    def _execute_transition(
        self, transition: StateTransition, context: ButtonContext
    ) -> None:
        """Execute a state transition."""
        old_state = self._current_state
        new_state = transition.to_state

        _LOGGER.info(
            "State transition: %s -> %s (event: %s)",
            old_state,
            new_state,
            transition.event.value,
        )

        self._previous_state = old_state
        self._current_state = new_state
        self._context = context
        self._transition_count += 1
        self._state_entered_at = self._get_current_time()

        for callback in self._transition_callbacks:
            try:
                callback(old_state, new_state, transition.event)
            except Exception as err:
                _LOGGER.error("Error in transition callback: %s", err)

    def on_transition(self, callback: Callable[[str, str, ButtonEvent], None]) -> None:
        """Register a callback to be called on any state transition."""
        self._transition_callbacks.append(callback)

    @property
    def current_state(self) -> str:
        """Get the current state."""
        return self._current_state

    @property
    def context(self) -> ButtonContext:
        """Context of the last transition."""
        return self._context

    @property
    def transition_count(self) -> int:
        """Number of transitions executed so far."""
        return self._transition_count

    @property
    def visual_state(self) -> ButtonVisualState:
        """What the key shows in its current state."""
        return render(self._current_state, self._context)

    @property
    def time_in_current_state(self) -> float:
        """Get seconds spent in current state."""
        return (self._get_current_time() - self._state_entered_at).total_seconds()

    def can_transition(self, event: ButtonEvent) -> bool:
        """Check if a transition is defined for the given event."""
        return (self._current_state, event) in self._transitions

    def get_info(self) -> dict[str, Any]:
        """Get state machine diagnostic info."""
        return {
            "current_state": self._current_state,
            "previous_state": self._previous_state,
            "state_entered_at": self._state_entered_at.isoformat(),
            "time_in_state": self.time_in_current_state,
            "transition_count": self._transition_count,
            "title": self.visual_state.title,
            "image": self.visual_state.image,
            "available_transitions": [
                event.value for event in ButtonEvent if self.can_transition(event)
            ],
        }
