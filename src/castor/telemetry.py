"""Per-operation telemetry: the `DebugRecorder` builder and reporter hooks.

One recorder is created per `process()` call and passed by reference through
every stage, so concurrent calls never share telemetry state. Recording must
never break the pipeline: every failure inside the recorder or a reporter is
swallowed and surfaced through `logging` instead.
"""

from __future__ import annotations

from collections import defaultdict, deque
import json
import logging
import time
import tracemalloc
import traceback
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from castor.errors import InvariantViolationError
from castor.types import (
    STAGE_TRANSITIONS,
    DebugLevel,
    DebugMessage,
    DebugRecord,
    DebugSummary,
    ProcessingStage,
    ValidationOutcome,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

log = logging.getLogger(__name__)

# Scope under which the processor reports per-stage timings.
PROCESS_SCOPE = "castor.process"


@runtime_checkable
class TelemetryReporter(Protocol):
    """Duck-typed protocol for telemetry reporters."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


class InMemoryReporter:
    """Reporter that keeps the most recent timings and metrics per scope.

    Scopes follow the recorder's ``<scope>.<stage>`` naming, which lets
    `stage_summary()` aggregate timings per pipeline stage. Intended for
    development and tests; call `as_dict()` to inspect raw entries.
    """

    def __init__(self, max_entries_per_scope: int = 1000):
        self.max_entries = max_entries_per_scope
        self.timings: defaultdict[str, deque[tuple[float, dict[str, Any]]]] = (
            defaultdict(self._bounded)
        )
        self.metrics: defaultdict[str, deque[tuple[Any, dict[str, Any]]]] = (
            defaultdict(self._bounded)
        )

    def _bounded(self) -> deque[Any]:
        return deque(maxlen=self.max_entries)

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self.timings[scope].append((duration, metadata))

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self.metrics[scope].append((value, metadata))

    def stage_summary(self, scope: str = PROCESS_SCOPE) -> dict[str, dict[str, Any]]:
        """Aggregate retained timings under *scope* by stage.

        Returns:
            ``{stage: {"count", "mean_ms", "max_ms"}}``. The ``total`` entry
            also counts the calls that ended in the error stage.
        """
        prefix = f"{scope}."
        summary: dict[str, dict[str, Any]] = {}
        for key, entries in self.timings.items():
            if not key.startswith(prefix) or not entries:
                continue
            durations_ms = [duration * 1000 for duration, _meta in entries]
            summary[key.removeprefix(prefix)] = {
                "count": len(durations_ms),
                "mean_ms": sum(durations_ms) / len(durations_ms),
                "max_ms": max(durations_ms),
            }
        if "total" in summary:
            summary["total"]["errors"] = sum(
                1
                for _duration, meta in self.timings[f"{prefix}total"]
                if meta.get("final_stage") == ProcessingStage.ERROR.value
            )
        return summary

    def reset(self) -> None:
        """Clear all collected telemetry (testing convenience)."""
        self.timings.clear()
        self.metrics.clear()

    def as_dict(self) -> dict[str, Any]:
        """Return a snapshot of collected data."""
        return {
            "timings": {key: list(values) for key, values in self.timings.items()},
            "metrics": {key: list(values) for key, values in self.metrics.items()},
        }


def _now_ms() -> float:
    return time.time() * 1000


def _traced_memory() -> int | None:
    if not tracemalloc.is_tracing():
        return None
    current, _peak = tracemalloc.get_traced_memory()
    return current


def payload_size(value: Any) -> int:
    """Size in bytes of *value* serialized as compact JSON (0 if unserializable)."""
    try:
        return len(
            json.dumps(value, separators=(",", ":"), default=str).encode("utf-8")
        )
    except (TypeError, ValueError):
        return 0


class DebugRecorder:
    """Mutable builder for a `DebugRecord`.

    Attributes:
        stage: The current processing stage.
        level: Messages less severe than this are dropped.
    """

    def __init__(
        self,
        *,
        level: DebugLevel = DebugLevel.DEBUG,
        reporters: Iterable[TelemetryReporter] = (),
        scope: str = "castor",
    ) -> None:
        self.level = level
        self.stage = ProcessingStage.RECEIVED
        self._reporters = tuple(reporters)
        self._scope = scope
        self._started_at = time.time()
        self._start_perf = time.perf_counter()
        self._stage_start_perf = self._start_perf
        self._stage_path: list[ProcessingStage] = [ProcessingStage.RECEIVED]
        self._stage_timings: dict[str, float] = {}
        self._warnings: list[DebugMessage] = []
        self._errors: list[DebugMessage] = []
        self._traces: list[DebugMessage] = []
        self._validations: list[ValidationOutcome] = []
        self._payload_bytes = 0
        self._memory_start = _traced_memory()
        self._recovery_successful: bool | None = None
        self._sealed: DebugRecord | None = None

    # --- Stage tracking ---

    def transition(self, stage: ProcessingStage) -> None:
        """Close the current stage's timing and enter *stage*.

        Raises:
            InvariantViolationError: If the transition is not allowed by the
                state machine or the record is already sealed.
        """
        if self._sealed is not None:
            raise InvariantViolationError(
                "Cannot transition a sealed debug record", stage_name=stage.value
            )
        if stage not in STAGE_TRANSITIONS[self.stage]:
            raise InvariantViolationError(
                f"Illegal stage transition {self.stage.value} -> {stage.value}",
                stage_name=self.stage.value,
            )
        self._close_stage()
        self.stage = stage
        self._stage_path.append(stage)
        self.log(DebugLevel.TRACE, f"Entered stage {stage.value}")

    def _close_stage(self) -> None:
        now = time.perf_counter()
        elapsed_ms = (now - self._stage_start_perf) * 1000
        name = self.stage.value
        self._stage_timings[name] = self._stage_timings.get(name, 0.0) + elapsed_ms
        self._stage_start_perf = now
        self._report_timing(f"{self._scope}.{name}", elapsed_ms / 1000)

    # --- Logging ---

    def log(
        self,
        level: DebugLevel,
        message: str,
        *,
        exc_info: BaseException | None = None,
        **data: Any,
    ) -> None:
        """Record a leveled message for the current stage. Never raises."""
        try:
            self._log(level, message, exc_info, data)
        except Exception as e:
            log.error("Debug recorder failed to log %r: %s", message, e)

    def _log(
        self,
        level: DebugLevel,
        message: str,
        exc_info: BaseException | None,
        data: dict[str, Any],
    ) -> None:
        log.log(
            level.logging_level,
            "[%s] %s",
            self.stage.value.upper(),
            message,
            extra={"castor_data": data} if data else None,
        )
        if level > self.level:
            return

        stack_trace = None
        if exc_info is not None:
            stack_trace = "".join(traceback.format_exception(exc_info))
        elif level is DebugLevel.ERROR:
            stack_trace = "".join(traceback.format_stack(limit=8)[:-2])

        entry = DebugMessage(
            level=level,
            stage=self.stage,
            message=message,
            timestamp_ms=_now_ms(),
            data=dict(data) if data else None,
            stack_trace=stack_trace,
        )
        if level is DebugLevel.ERROR:
            self._errors.append(entry)
        elif level is DebugLevel.WARN:
            self._warnings.append(entry)
        else:
            self._traces.append(entry)

    def error(self, message: str, **data: Any) -> None:
        self.log(DebugLevel.ERROR, message, **data)

    def warn(self, message: str, **data: Any) -> None:
        self.log(DebugLevel.WARN, message, **data)

    def info(self, message: str, **data: Any) -> None:
        self.log(DebugLevel.INFO, message, **data)

    def debug(self, message: str, **data: Any) -> None:
        self.log(DebugLevel.DEBUG, message, **data)

    def trace(self, message: str, **data: Any) -> None:
        self.log(DebugLevel.TRACE, message, **data)

    # --- Accumulators ---

    def record_validations(self, outcomes: Iterable[ValidationOutcome]) -> None:
        self._validations.extend(outcomes)

    def record_payload(self, value: Any) -> None:
        """Record the serialized size of the display payload."""
        self._payload_bytes = payload_size(value)
        self._report_metric(f"{self._scope}.payload_bytes", self._payload_bytes)

    def record_recovery(self, *, successful: bool) -> None:
        self._recovery_successful = successful

    @property
    def sealed(self) -> bool:
        return self._sealed is not None

    # --- Sealing ---

    def seal(self) -> DebugRecord:
        """Freeze the record. Must be called exactly once, in a terminal stage.

        Raises:
            InvariantViolationError: On a second call or a non-terminal stage.
        """
        if self._sealed is not None:
            raise InvariantViolationError("Debug record already sealed")
        if not self.stage.is_terminal:
            raise InvariantViolationError(
                "Debug record can only be sealed in a terminal stage",
                stage_name=self.stage.value,
            )

        self._close_stage()
        end_perf = time.perf_counter()
        duration_ms = max(0.0, (end_perf - self._start_perf) * 1000)
        memory_end = _traced_memory()
        memory_delta = (
            memory_end - self._memory_start
            if memory_end is not None and self._memory_start is not None
            else 0
        )
        passed = sum(1 for v in self._validations if v.valid)

        summary = DebugSummary(
            total_duration_ms=duration_ms,
            stage_timings=dict(self._stage_timings),
            warning_count=len(self._warnings),
            error_count=len(self._errors),
            validations_passed=passed,
            validations_failed=len(self._validations) - passed,
            recovery_successful=self._recovery_successful,
        )
        self._sealed = DebugRecord(
            stage=self.stage,
            started_at=self._started_at,
            ended_at=self._started_at + duration_ms / 1000,
            duration_ms=duration_ms,
            warnings=tuple(self._warnings),
            errors=tuple(self._errors),
            traces=tuple(self._traces),
            validations=tuple(self._validations),
            payload_bytes=self._payload_bytes,
            memory_delta_bytes=memory_delta,
            stage_path=tuple(self._stage_path),
            summary=summary,
        )
        self._report_timing(
            f"{self._scope}.total", duration_ms / 1000, final_stage=self.stage.value
        )
        return self._sealed

    # --- Reporter fan-out ---

    def _report_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        for reporter in self._reporters:
            try:
                reporter.record_timing(scope, duration, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )

    def _report_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        for reporter in self._reporters:
            try:
                reporter.record_metric(scope, value, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )
