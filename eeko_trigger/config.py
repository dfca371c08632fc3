"""Configuration for the Eeko trigger plugin."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping

import voluptuous as vol

from .const import (
    DEFAULT_API_BASE_URL,
    DEFAULT_DEVICE_NAME,
    DEFAULT_FAILURE_RESET_DELAY,
    DEFAULT_LOG_LEVEL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SUCCESS_RESET_DELAY,
)

CONF_API_BASE_URL = "api_base_url"
CONF_DEVICE_NAME = "device_name"
CONF_REQUEST_TIMEOUT = "request_timeout"
CONF_SUCCESS_RESET_DELAY = "success_reset_delay"
CONF_FAILURE_RESET_DELAY = "failure_reset_delay"
CONF_LOG_LEVEL = "log_level"

ENV_PREFIX = "EEKO_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_positive_seconds = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_API_BASE_URL, default=DEFAULT_API_BASE_URL): vol.All(
            str, vol.Match(r"^https?://")
        ),
        vol.Optional(CONF_DEVICE_NAME, default=DEFAULT_DEVICE_NAME): vol.All(
            str, vol.Length(min=1)
        ),
        vol.Optional(
            CONF_REQUEST_TIMEOUT, default=DEFAULT_REQUEST_TIMEOUT
        ): _positive_seconds,
        vol.Optional(
            CONF_SUCCESS_RESET_DELAY, default=DEFAULT_SUCCESS_RESET_DELAY
        ): _positive_seconds,
        vol.Optional(
            CONF_FAILURE_RESET_DELAY, default=DEFAULT_FAILURE_RESET_DELAY
        ): _positive_seconds,
        vol.Optional(CONF_LOG_LEVEL, default=DEFAULT_LOG_LEVEL): vol.All(
            vol.Upper, vol.In(LOG_LEVELS)
        ),
    }
)


@dataclass(frozen=True)
class PluginConfig:
    """Validated plugin configuration."""

    api_base_url: str = DEFAULT_API_BASE_URL
    device_name: str = DEFAULT_DEVICE_NAME
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    success_reset_delay: float = DEFAULT_SUCCESS_RESET_DELAY
    failure_reset_delay: float = DEFAULT_FAILURE_RESET_DELAY
    log_level: str = DEFAULT_LOG_LEVEL


def load_config(data: Mapping[str, Any] | None = None) -> PluginConfig:
    """Validate a configuration mapping.

    Raises:
        vol.Invalid: if a value is out of range or of the wrong type
    """
    return PluginConfig(**CONFIG_SCHEMA(dict(data or {})))


def config_from_env(
    environ: Mapping[str, str] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> PluginConfig:
    """Build the configuration from EEKO_* environment variables.

    Values in defaults apply where the environment does not set a key.
    """
    environ = os.environ if environ is None else environ
    data = dict(defaults or {})
    for key in (
        CONF_API_BASE_URL,
        CONF_DEVICE_NAME,
        CONF_REQUEST_TIMEOUT,
        CONF_SUCCESS_RESET_DELAY,
        CONF_FAILURE_RESET_DELAY,
        CONF_LOG_LEVEL,
    ):
        if ENV_PREFIX + key.upper() in environ:
            data[key] = environ[ENV_PREFIX + key.upper()]
    return load_config(data)


def setup_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging for the plugin process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.ERROR),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
