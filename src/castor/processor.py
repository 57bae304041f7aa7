"""Pipeline driver: validate, parse, transform, assemble, seal, register.

`ToolResultProcessor.process` is synchronous, re-entrant and never raises.
Every call builds its own `DebugRecorder`; the `ResultRegistry` is the only
state shared between calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging
import secrets
from typing import TYPE_CHECKING, Any

from castor._dev_flags import dev_validate_enabled
from castor.config import Config
from castor.errors import ValidationError, technical_detail
from castor.pipeline._devtools import validate_processed_result
from castor.pipeline.components import ComponentAssembler, error_component
from castor.pipeline.parser import RecoveryAwareParser
from castor.pipeline.validator import validate_envelope
from castor.pipeline.views import DualViewTransformer, bound_summary, error_view
from castor.registry import ResultRegistry, generate_result_id
from castor.telemetry import PROCESS_SCOPE, DebugRecorder
from castor.types import (
    CanonicalResult,
    DebugLevel,
    ErrorInfo,
    ProcessedResult,
    ProcessingStage,
    ProcessingStatistics,
    RecoveryAttempt,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from castor.pipeline.recovery import RecoveryStrategy
    from castor.telemetry import TelemetryReporter

log = logging.getLogger(__name__)

UNKNOWN_TOOL = "unknown"
PROCESSING_ERROR_MESSAGE = "There was an issue processing the tool result"
PROCESSING_ERROR_ACTIONS = ("Try the request again", "Contact support if issue persists")
VALIDATION_ERROR_ACTIONS = ("Check that the tool returned a name and non-empty content",)


def _tool_name(raw: Any) -> str:
    if raw is None:
        return UNKNOWN_TOOL
    name = raw.get("name") if isinstance(raw, Mapping) else getattr(raw, "name", None)
    return name if isinstance(name, str) and name else UNKNOWN_TOOL


def _content(raw: Any) -> str:
    if isinstance(raw, Mapping):
        return raw["content"]
    return raw.content


class ToolResultProcessor:
    """Turn raw tool output into registered `ProcessedResult`s.

    Attributes:
        config: Immutable runtime configuration.
        registry: Store of processed results and aggregate counters.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        registry: ResultRegistry | None = None,
        strategies: Sequence[RecoveryStrategy] | None = None,
        reporters: Iterable[TelemetryReporter] = (),
    ) -> None:
        self.config = config if config is not None else Config()
        self.registry = registry if registry is not None else ResultRegistry()
        self._reporters = tuple(reporters)
        self._parser = RecoveryAwareParser(
            tuple(strategies) if strategies is not None else None,
            max_content_chars=self.config.max_content_chars,
        )
        self._transformer = DualViewTransformer(
            max_summary_bytes=self.config.max_summary_bytes
        )
        self._assembler = ComponentAssembler()

    def _recorder(self) -> DebugRecorder:
        return DebugRecorder(
            level=self.config.debug_level,
            reporters=self._reporters,
            scope=PROCESS_SCOPE,
        )

    # --- Public API ---

    def process(self, raw: Any) -> ProcessedResult:
        """Process one raw tool result. Never raises.

        Args:
            raw: A `RawToolResult`, a mapping with ``name`` and ``content``,
                or any object exposing those attributes.

        Returns:
            The registered result: success, recovered, or a typed error.
        """
        recorder = self._recorder()
        result_id = generate_result_id(self.registry.clock)
        tool_name = _tool_name(raw)
        attempts: tuple[RecoveryAttempt, ...] = ()

        try:
            recorder.info("Processing tool result", tool_name=tool_name)
            recorder.transition(ProcessingStage.VALIDATING)
            ledger = validate_envelope(raw)
            recorder.record_validations(ledger)
            failed = [o for o in ledger if not o.valid]
            if failed:
                raise ValidationError(
                    "Invalid tool result: " + "; ".join(o.message for o in failed),
                    ledger,
                    hint="The invoking layer must supply a named result with non-empty string content.",
                )
            recorder.debug("Envelope validation passed", checks=len(ledger))

            recorder.transition(ProcessingStage.PARSING)
            outcome = self._parser.parse(_content(raw), recorder)
            attempts = outcome.attempts

            recorder.transition(ProcessingStage.PROCESSING)
            views = self._transformer.transform(outcome.canonical, tool_name, recorder)

            recorder.transition(ProcessingStage.DISPLAY_PREP)
            components = self._assembler.assemble(
                views.display_payload, tool_name, recorder
            )

            recorder.transition(ProcessingStage.COMPLETION)
            recorder.info(
                "Tool result processed",
                success=outcome.canonical.success,
                recovered=outcome.recovered,
                components=len(components),
            )
            result = ProcessedResult(
                id=result_id,
                tool_name=tool_name,
                canonical=outcome.canonical,
                context_summary=views.context_summary,
                display_payload=views.display_payload,
                components=components,
                debug=recorder.seal(),
                recovery_attempts=attempts,
            )
        except Exception as e:
            result = self._failure(e, result_id, tool_name, recorder, attempts)

        if dev_validate_enabled():
            validate_processed_result(result, stage_name="process")
        return self.registry.insert(result)

    async def process_many(self, raws: Iterable[Any]) -> list[ProcessedResult]:
        """Process *raws* in worker threads, preserving input order.

        Parallelism is bounded by ``config.request_concurrency``.
        """
        items = list(raws)
        if not items:
            return []
        sem = asyncio.Semaphore(self.config.request_concurrency)
        log.debug(
            "Processing %d tool result(s) concurrency=%d",
            len(items),
            self.config.request_concurrency,
        )

        async def _one(raw: Any) -> ProcessedResult:
            async with sem:
                return await asyncio.to_thread(self.process, raw)

        return list(await asyncio.gather(*(_one(raw) for raw in items)))

    def get(self, result_id: str) -> ProcessedResult | None:
        return self.registry.get(result_id)

    def stats(self) -> ProcessingStatistics:
        return self.registry.stats()

    def cleanup(self, max_age_ms: float | None = None) -> int:
        """Evict results older than *max_age_ms* (default from config)."""
        age = self.config.cleanup_max_age_ms if max_age_ms is None else max_age_ms
        return self.registry.cleanup(age)

    def start_cleanup(self) -> None:
        """Start periodic background eviction using the configured schedule."""
        self.registry.start_cleanup(
            self.config.cleanup_interval_s, self.config.cleanup_max_age_ms
        )

    def stop_cleanup(self, timeout: float | None = None) -> None:
        self.registry.stop_cleanup(timeout)

    # --- Error path ---

    def _failure(
        self,
        exc: Exception,
        result_id: str,
        tool_name: str,
        recorder: DebugRecorder,
        attempts: tuple[RecoveryAttempt, ...],
    ) -> ProcessedResult:
        if recorder.sealed or recorder.stage.is_terminal:
            # Failed while sealing; restart telemetry so the record ends in ERROR.
            recorder = self._recorder()
        recorder.transition(ProcessingStage.ERROR)

        if isinstance(exc, ValidationError):
            failed = exc.failed
            error = ErrorInfo(
                error_kind="validation_error",
                user_message=str(exc),
                technical_detail=technical_detail(exc),
                retryable=False,
                suggested_actions=VALIDATION_ERROR_ACTIONS,
                context={
                    "tool_name": tool_name,
                    "failed_fields": [o.field for o in failed],
                },
            )
            attempts = ()
            recorder.error("Tool result validation failed", failed=len(failed))
        else:
            error = ErrorInfo(
                error_kind="processing_error",
                user_message=PROCESSING_ERROR_MESSAGE,
                technical_detail=technical_detail(exc),
                retryable=True,
                suggested_actions=PROCESSING_ERROR_ACTIONS,
                context={"tool_name": tool_name, "exception": type(exc).__name__},
                debug_id=f"dbg_{secrets.token_hex(6)}",
            )
            recorder.log(
                DebugLevel.ERROR,
                "Tool result processing failed",
                exc_info=exc,
                debug_id=error.debug_id,
            )
            log.error(
                "Processing failed for tool %s (debug_id=%s): %s",
                tool_name,
                error.debug_id,
                error.technical_detail,
            )

        payload = error_view(error.user_message)
        recorder.record_payload(payload)
        return ProcessedResult(
            id=result_id,
            tool_name=tool_name,
            canonical=CanonicalResult(success=False, message=error.user_message),
            context_summary=bound_summary(
                error_view(error.user_message, tool_name=tool_name),
                self.config.max_summary_bytes,
            ),
            display_payload=payload,
            components=(
                error_component(
                    error.user_message,
                    metadata={
                        "error_kind": error.error_kind,
                        "retryable": error.retryable,
                        "suggested_actions": list(error.suggested_actions),
                        "debug_id": error.debug_id,
                    },
                ),
            ),
            debug=recorder.seal(),
            recovery_attempts=attempts,
            error=error,
        )
