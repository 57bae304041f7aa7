"""Tests for Config validation and environment resolution."""

import pytest

from castor.config import MIN_SUMMARY_BYTES, Config
from castor.errors import ConfigurationError
from castor.types import DebugLevel

pytestmark = pytest.mark.unit


def test_defaults_are_valid():
    config = Config()

    assert config.debug_level is DebugLevel.DEBUG
    assert config.max_summary_bytes == 1024
    assert config.max_content_chars == 1_000_000
    assert config.cleanup_max_age_ms == 3_600_000
    assert config.request_concurrency == 8


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("trace", DebugLevel.TRACE),
        ("WARNING", DebugLevel.WARN),
        ("0", DebugLevel.ERROR),
        (2, DebugLevel.INFO),
        (DebugLevel.DEBUG, DebugLevel.DEBUG),
    ],
)
def test_debug_level_is_normalized(raw, expected):
    assert Config(debug_level=raw).debug_level is expected


def test_unknown_debug_level_raises_with_hint():
    with pytest.raises(ConfigurationError) as exc:
        Config(debug_level="verbose")

    assert exc.value.hint is not None
    assert "TRACE" in exc.value.hint


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_summary_bytes": MIN_SUMMARY_BYTES - 1},
        {"max_content_chars": 0},
        {"cleanup_max_age_ms": -1},
        {"cleanup_interval_s": 0},
        {"request_concurrency": 0},
    ],
)
def test_out_of_range_values_raise(kwargs):
    with pytest.raises(ConfigurationError):
        Config(**kwargs)


def test_config_is_frozen():
    config = Config()
    with pytest.raises(AttributeError):
        config.max_summary_bytes = 2048  # type: ignore[misc]


def test_from_env_reads_castor_variables(monkeypatch):
    monkeypatch.setenv("CASTOR_DEBUG_LEVEL", "info")
    monkeypatch.setenv("CASTOR_MAX_SUMMARY_BYTES", "512")
    monkeypatch.setenv("CASTOR_REQUEST_CONCURRENCY", "3")
    monkeypatch.setenv("CASTOR_CLEANUP_INTERVAL_S", "1.5")

    config = Config.from_env()

    assert config.debug_level is DebugLevel.INFO
    assert config.max_summary_bytes == 512
    assert config.request_concurrency == 3
    assert config.cleanup_interval_s == 1.5


def test_from_env_overrides_win(monkeypatch):
    monkeypatch.setenv("CASTOR_MAX_SUMMARY_BYTES", "512")

    config = Config.from_env(max_summary_bytes=2048)

    assert config.max_summary_bytes == 2048


def test_from_env_ignores_blank_values(monkeypatch):
    monkeypatch.setenv("CASTOR_MAX_CONTENT_CHARS", "  ")

    assert Config.from_env().max_content_chars == 1_000_000


def test_from_env_rejects_malformed_values(monkeypatch):
    monkeypatch.setenv("CASTOR_REQUEST_CONCURRENCY", "many")

    with pytest.raises(ConfigurationError) as exc:
        Config.from_env()

    assert "CASTOR_REQUEST_CONCURRENCY" in str(exc.value)
