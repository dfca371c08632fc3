"""Stream Deck action that triggers Eeko automations.

The controller, state machine and timer manager here have no dependency on
the Stream Deck connection itself; the host is injected.
"""

from .api import AutomationService
from .config import PluginConfig, config_from_env, load_config, setup_logging
from .coordinator import ActionController
from .credentials import CredentialStore, is_valid_credential
from .exceptions import (
    AutomationServiceError,
    CredentialStoreError,
    CredentialValidationError,
    EekoTriggerError,
    ServiceErrorKind,
)
from .host import StreamDeckHost
from .models import Automation, AutomationRef, TriggerContext
from .state_machine import ButtonEvent, ButtonStateMachine, ButtonVisualState, ErrorKind
from .timer_manager import AsyncioScheduler, Scheduler, TimerManager

__all__ = [
    "ActionController",
    "AsyncioScheduler",
    "Automation",
    "AutomationRef",
    "AutomationService",
    "AutomationServiceError",
    "ButtonEvent",
    "ButtonStateMachine",
    "ButtonVisualState",
    "CredentialStore",
    "CredentialStoreError",
    "CredentialValidationError",
    "EekoTriggerError",
    "ErrorKind",
    "PluginConfig",
    "Scheduler",
    "ServiceErrorKind",
    "StreamDeckHost",
    "TimerManager",
    "TriggerContext",
    "config_from_env",
    "is_valid_credential",
    "load_config",
    "setup_logging",
]
