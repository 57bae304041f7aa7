"""Castor: resilient processing of raw external tool results.

Public API:
    - process(): Process one raw tool result with the default processor
    - process_many(): Async, order-preserving batch of `process()` calls
    - ToolResultProcessor: Configurable pipeline driver with its own registry
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from castor.config import Config
from castor.errors import (
    CastorError,
    ConfigurationError,
    InvariantViolationError,
    ParseError,
    ProcessingError,
    RecoveryExhaustedError,
    ValidationError,
)
from castor.pipeline.recovery import RecoveryStrategy, default_strategies
from castor.processor import ToolResultProcessor
from castor.registry import ResultRegistry
from castor.telemetry import DebugRecorder, InMemoryReporter, TelemetryReporter
from castor.types import (
    CanonicalResult,
    DebugLevel,
    DebugRecord,
    DisplayComponent,
    ErrorInfo,
    ProcessedResult,
    ProcessingStage,
    ProcessingStatistics,
    RawToolResult,
    RecoveryAttempt,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("castor-results")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("castor").addHandler(logging.NullHandler())

# Module-level processor shared by the convenience functions
_default_processor: ToolResultProcessor | None = None


def default_processor() -> ToolResultProcessor:
    """Return the shared processor, creating it from the environment on first use."""
    global _default_processor
    if _default_processor is None:
        _default_processor = ToolResultProcessor(Config.from_env())
    return _default_processor


def process(raw: Any) -> ProcessedResult:
    """Process one raw tool result. Never raises.

    Example:
        result = process(RawToolResult(name="render_image", content=raw_json))
        for component in result.components:
            render(component)
    """
    return default_processor().process(raw)


async def process_many(raws: Iterable[Any]) -> list[ProcessedResult]:
    """Process several raw tool results concurrently, preserving order."""
    return await default_processor().process_many(raws)


__all__ = [  # noqa: RUF022
    # Entry points
    "process",
    "process_many",
    "default_processor",
    "ToolResultProcessor",
    # Configuration
    "Config",
    "DebugLevel",
    # Core types
    "RawToolResult",
    "CanonicalResult",
    "ProcessedResult",
    "DisplayComponent",
    "ErrorInfo",
    "RecoveryAttempt",
    "DebugRecord",
    "ProcessingStage",
    "ProcessingStatistics",
    # Extension points
    "RecoveryStrategy",
    "default_strategies",
    "ResultRegistry",
    "DebugRecorder",
    "TelemetryReporter",
    "InMemoryReporter",
    # Errors
    "CastorError",
    "ConfigurationError",
    "ValidationError",
    "ParseError",
    "ProcessingError",
    "RecoveryExhaustedError",
    "InvariantViolationError",
]
