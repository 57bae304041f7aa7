"""Core data types for the tool-result pipeline.

Everything a consumer receives from `process()` is defined here. Records are
frozen dataclasses; the only mutable state during processing lives in the
`DebugRecorder` builder, which seals into an immutable `DebugRecord`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
import logging
from typing import Any, Final, Literal

# --- Enums ---


class DebugLevel(IntEnum):
    """Telemetry verbosity; lower values are more severe."""

    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3
    TRACE = 4

    @property
    def logging_level(self) -> int:
        """Equivalent stdlib logging level."""
        return _LOGGING_LEVELS[self]

    @classmethod
    def parse(cls, value: str | int | DebugLevel) -> DebugLevel:
        """Accept an enum, its integer value, or its name (case-insensitive)."""
        if isinstance(value, DebugLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip().upper()
        if text.isdigit():
            return cls(int(text))
        if text == "WARNING":
            return cls.WARN
        return cls[text]


TRACE_LOGGING_LEVEL: Final[int] = 5
logging.addLevelName(TRACE_LOGGING_LEVEL, "TRACE")

_LOGGING_LEVELS: Final[dict[DebugLevel, int]] = {
    DebugLevel.ERROR: logging.ERROR,
    DebugLevel.WARN: logging.WARNING,
    DebugLevel.INFO: logging.INFO,
    DebugLevel.DEBUG: logging.DEBUG,
    DebugLevel.TRACE: TRACE_LOGGING_LEVEL,
}


class ProcessingStage(str, Enum):
    """States of a single `process()` call."""

    RECEIVED = "received"
    VALIDATING = "validating"
    PARSING = "parsing"
    PROCESSING = "processing"
    DISPLAY_PREP = "display_prep"
    COMPLETION = "completion"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStage.COMPLETION, ProcessingStage.ERROR)


STAGE_TRANSITIONS: Final[dict[ProcessingStage, frozenset[ProcessingStage]]] = {
    ProcessingStage.RECEIVED: frozenset(
        {ProcessingStage.VALIDATING, ProcessingStage.ERROR}
    ),
    ProcessingStage.VALIDATING: frozenset(
        {ProcessingStage.PARSING, ProcessingStage.ERROR}
    ),
    ProcessingStage.PARSING: frozenset(
        {ProcessingStage.PROCESSING, ProcessingStage.ERROR}
    ),
    ProcessingStage.PROCESSING: frozenset(
        {ProcessingStage.DISPLAY_PREP, ProcessingStage.ERROR}
    ),
    ProcessingStage.DISPLAY_PREP: frozenset(
        {ProcessingStage.COMPLETION, ProcessingStage.ERROR}
    ),
    ProcessingStage.COMPLETION: frozenset(),
    ProcessingStage.ERROR: frozenset(),
}


def is_valid_stage_path(path: tuple[ProcessingStage, ...]) -> bool:
    """Return True if *path* starts at RECEIVED and ends in a terminal stage."""
    if not path or path[0] is not ProcessingStage.RECEIVED:
        return False
    if not path[-1].is_terminal:
        return False
    return all(b in STAGE_TRANSITIONS[a] for a, b in zip(path, path[1:], strict=False))


ComponentKind = Literal[
    "image", "text", "chart", "table", "error", "success", "warning", "debug"
]

# --- Input ---


@dataclass(frozen=True)
class RawToolResult:
    """Untrusted envelope produced by the invoking layer after a tool call."""

    name: str
    content: str


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one envelope check; a list of these is the validation ledger."""

    field: str
    valid: bool
    message: str
    expected_kind: str
    actual_kind: str
    value: Any = None


# --- Parsing ---


@dataclass(frozen=True)
class CanonicalResult:
    """The single parsed truth all downstream views derive from."""

    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecoveryAttempt:
    """One strategy tried during a recovery episode."""

    strategy_name: str
    attempted_at: float
    successful: bool
    failure_message: str | None = None
    recovered_data: dict[str, Any] | None = None


# --- Telemetry ---


@dataclass(frozen=True)
class DebugMessage:
    """Leveled log line scoped to a stage."""

    level: DebugLevel
    stage: ProcessingStage
    message: str
    timestamp_ms: float
    data: dict[str, Any] | None = None
    stack_trace: str | None = None


@dataclass(frozen=True)
class DebugSummary:
    """Sealed aggregate of a `DebugRecord`."""

    total_duration_ms: float
    stage_timings: dict[str, float]
    warning_count: int
    error_count: int
    validations_passed: int
    validations_failed: int
    #: ``None`` when no recovery episode ran.
    recovery_successful: bool | None = None


@dataclass(frozen=True)
class DebugRecord:
    """Per-operation telemetry, sealed once at COMPLETION or ERROR."""

    stage: ProcessingStage
    started_at: float
    ended_at: float
    duration_ms: float
    warnings: tuple[DebugMessage, ...]
    errors: tuple[DebugMessage, ...]
    traces: tuple[DebugMessage, ...]
    validations: tuple[ValidationOutcome, ...]
    payload_bytes: int
    memory_delta_bytes: int
    stage_path: tuple[ProcessingStage, ...]
    summary: DebugSummary


# --- Display ---


@dataclass(frozen=True)
class RenderHints:
    """Optional, renderer-agnostic presentation hints."""

    preferred_width: int | None = None
    preferred_height: int | None = None
    responsive: bool = True
    lazy_load: bool = False
    error_fallback: str | None = None


@dataclass(frozen=True)
class DisplayComponent:
    """One typed, independently renderable unit.

    Ascending ``priority`` is render order; ties keep construction order.
    """

    kind: ComponentKind
    content: Any
    priority: int
    validation_passed: bool = True
    metadata: dict[str, Any] | None = None
    render_hints: RenderHints | None = None


# --- Errors and terminal artifact ---


@dataclass(frozen=True)
class ErrorInfo:
    """User- and operator-facing description of a failed call."""

    error_kind: str
    user_message: str
    technical_detail: str
    retryable: bool
    suggested_actions: tuple[str, ...] = ()
    context: dict[str, Any] | None = None
    debug_id: str | None = None


@dataclass(frozen=True)
class ProcessedResult:
    """Terminal artifact of one `process()` call; owned by the registry."""

    id: str
    tool_name: str
    canonical: CanonicalResult
    context_summary: str
    display_payload: dict[str, Any]
    components: tuple[DisplayComponent, ...]
    debug: DebugRecord
    recovery_attempts: tuple[RecoveryAttempt, ...] = ()
    error: ErrorInfo | None = None
    #: Epoch seconds; stamped by the registry on insert, used for eviction.
    inserted_at: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def recovered(self) -> bool:
        return any(a.successful for a in self.recovery_attempts)


@dataclass(frozen=True)
class ProcessingStatistics:
    """Process-wide aggregate counters maintained by the registry."""

    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    average_duration_ms: float = 0.0
    last_processed_at: float | None = None

    @property
    def success_rate(self) -> float:
        if self.total_processed == 0:
            return 0.0
        return self.success_count / self.total_processed
