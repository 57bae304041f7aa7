"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, and shared processor and
clock fixtures. Environment and logging fixtures are autouse.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from castor.config import Config
from castor.processor import ToolResultProcessor
from castor.registry import ResultRegistry
from castor.types import DebugLevel
from tests.helpers import FakeClock

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )
        monkeypatch.setattr(
            "castor.config.load_dotenv", lambda *_args, **_kwargs: False
        )


@pytest.fixture(autouse=True)
def isolate_castor_env(request, monkeypatch):
    """Clear CASTOR_* env vars so configuration tests start from defaults.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("CASTOR_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_castor_logging():
    """Keep TRACE/DEBUG chatter out of captured test output."""
    logging.getLogger("castor").setLevel(logging.INFO)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def processor() -> ToolResultProcessor:
    """Processor with its own registry and full TRACE telemetry."""
    return ToolResultProcessor(
        Config(debug_level=DebugLevel.TRACE), registry=ResultRegistry()
    )
