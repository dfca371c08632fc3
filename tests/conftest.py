"""pytest fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    """Capture plugin debug logs in every test."""
    caplog.set_level(logging.DEBUG, logger="eeko_trigger")
    return caplog
