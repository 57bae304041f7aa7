"""Configuration: frozen Config with environment resolution."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Any

from dotenv import load_dotenv

from castor.errors import ConfigurationError
from castor.types import DebugLevel

# Environment variable name -> (field name, parser)
_ENV_FIELDS: dict[str, tuple[str, Any]] = {
    "CASTOR_DEBUG_LEVEL": ("debug_level", DebugLevel.parse),
    "CASTOR_MAX_SUMMARY_BYTES": ("max_summary_bytes", int),
    "CASTOR_MAX_CONTENT_CHARS": ("max_content_chars", int),
    "CASTOR_CLEANUP_MAX_AGE_MS": ("cleanup_max_age_ms", int),
    "CASTOR_CLEANUP_INTERVAL_S": ("cleanup_interval_s", float),
    "CASTOR_REQUEST_CONCURRENCY": ("request_concurrency", int),
}

MIN_SUMMARY_BYTES = 256


@dataclass(frozen=True)
class Config:
    """Immutable configuration for a `ToolResultProcessor`.

    Example:
        config = Config(debug_level=DebugLevel.INFO, max_summary_bytes=512)
    """

    debug_level: DebugLevel = DebugLevel.DEBUG
    #: Upper bound on the UTF-8 size of the serialized context summary.
    max_summary_bytes: int = 1024
    #: Content longer than this is truncated before parsing.
    max_content_chars: int = 1_000_000
    cleanup_max_age_ms: int = 3_600_000
    cleanup_interval_s: float = 300.0
    #: Worker bound for `process_many()`.
    request_concurrency: int = 8

    def __post_init__(self) -> None:
        """Normalize the debug level and validate numeric bounds."""
        try:
            level = DebugLevel.parse(self.debug_level)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(
                f"Unknown debug_level: {self.debug_level!r}",
                hint="Use one of ERROR, WARN, INFO, DEBUG, TRACE.",
            ) from e
        object.__setattr__(self, "debug_level", level)

        if self.max_summary_bytes < MIN_SUMMARY_BYTES:
            raise ConfigurationError(
                f"max_summary_bytes must be ≥ {MIN_SUMMARY_BYTES}, got {self.max_summary_bytes}",
                hint="The summary envelope itself needs room besides the message.",
            )
        if self.max_content_chars < 1:
            raise ConfigurationError(
                f"max_content_chars must be ≥ 1, got {self.max_content_chars}",
                hint="This bounds how much raw tool output is parsed.",
            )
        if self.cleanup_max_age_ms < 0:
            raise ConfigurationError(
                f"cleanup_max_age_ms must be ≥ 0, got {self.cleanup_max_age_ms}",
                hint="Results older than this are evicted by cleanup().",
            )
        if self.cleanup_interval_s <= 0:
            raise ConfigurationError(
                f"cleanup_interval_s must be > 0, got {self.cleanup_interval_s}",
                hint="This is the period of the background cleanup timer.",
            )
        if self.request_concurrency < 1:
            raise ConfigurationError(
                f"request_concurrency must be ≥ 1, got {self.request_concurrency}",
                hint="This controls how many results process_many() handles in parallel.",
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Build a Config from ``CASTOR_*`` environment variables.

        A project ``.env`` file is loaded first; explicit *overrides* win over
        the environment.
        """
        load_dotenv()
        values: dict[str, Any] = {}
        for env_key, (field_name, parse) in _ENV_FIELDS.items():
            raw = os.environ.get(env_key)
            if raw is None or not raw.strip():
                continue
            try:
                values[field_name] = parse(raw.strip())
            except (KeyError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid value for {env_key}: {raw!r}",
                    hint=f"Unset {env_key} or give it a valid {field_name}.",
                ) from e
        values.update(overrides)
        return cls(**values)
