"""Recovery-aware parsing of validated tool content.

Strict JSON parsing is tried first. When it fails, a recovery episode walks
the configured `RecoveryStrategy` chain until one succeeds; a
`FallbackSynthesis` step guarantees a result even for custom chains that
cannot finish on their own.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import TYPE_CHECKING

from castor.errors import ParseError, RecoveryExhaustedError
from castor.pipeline.recovery.base import RecoveryStrategy, strict_parse
from castor.pipeline.recovery.fallback import FallbackSynthesis
from castor.pipeline.recovery.strategies import default_strategies
from castor.types import CanonicalResult, RecoveryAttempt

if TYPE_CHECKING:
    from castor.telemetry import DebugRecorder

TRUNCATION_MARKER = "... [TRUNCATED]"
_PREVIEW_CHARS = 100


@dataclass(frozen=True)
class ParseOutcome:
    """Canonical result plus the audit trail of how it was reached."""

    canonical: CanonicalResult
    attempts: tuple[RecoveryAttempt, ...] = ()

    @property
    def recovered(self) -> bool:
        return bool(self.attempts)


def _preview(content: str) -> str:
    if len(content) <= _PREVIEW_CHARS:
        return content
    return content[:_PREVIEW_CHARS] + "..."


class RecoveryAwareParser:
    """Turn raw content into a `CanonicalResult`, recovering when needed.

    Stateless across calls: one instance may be shared by concurrent
    `process()` calls.

    Attributes:
        strategies: Recovery chain, tried in order.
        max_content_chars: Longer content is truncated before parsing.
    """

    def __init__(
        self,
        strategies: tuple[RecoveryStrategy, ...] | None = None,
        *,
        max_content_chars: int = 1_000_000,
    ) -> None:
        self.strategies = (
            strategies if strategies is not None else default_strategies()
        )
        names = [s.name for s in self.strategies]
        if len(set(names)) != len(names):
            raise ValueError(f"Recovery strategy names must be unique, got {names}")
        self.max_content_chars = max_content_chars
        self._fallback = FallbackSynthesis()

    def parse(self, content: str, recorder: DebugRecorder) -> ParseOutcome:
        """Parse *content*, entering a recovery episode on strict failure.

        Raises:
            RecoveryExhaustedError: Only if the recovery machinery itself
                fails; individual strategy failures are recorded instead.
        """
        if len(content) > self.max_content_chars:
            recorder.warn(
                "Content exceeds size limit; truncated before parsing",
                content_length=len(content),
                limit=self.max_content_chars,
            )
            content = content[: self.max_content_chars] + TRUNCATION_MARKER

        recorder.trace(
            "Starting content parsing",
            content_length=len(content),
            content_preview=_preview(content),
        )

        try:
            canonical = strict_parse(content)
        except ParseError as e:
            recorder.warn(
                "Strict parsing failed, attempting recovery",
                error=str(e),
                content_length=len(content),
            )
        else:
            recorder.debug(
                "Strict parsing succeeded",
                success=canonical.success,
                data_keys=sorted(canonical.data),
            )
            return ParseOutcome(canonical=canonical)

        try:
            return self._recover(content, recorder)
        except RecoveryExhaustedError:
            recorder.record_recovery(successful=False)
            raise
        except Exception as e:
            recorder.record_recovery(successful=False)
            raise RecoveryExhaustedError(
                f"Recovery machinery failed: {type(e).__name__}: {e}",
                hint="This is a Castor internal error. Please report it.",
            ) from e

    def _recover(self, content: str, recorder: DebugRecorder) -> ParseOutcome:
        attempts: list[RecoveryAttempt] = []

        for strategy in self.strategies:
            attempted_at = time.time()
            try:
                canonical = strategy.recover(content)
                if not isinstance(canonical, CanonicalResult):
                    raise ParseError(
                        f"Strategy returned {type(canonical).__name__}, expected CanonicalResult"
                    )
            except Exception as e:
                attempts.append(
                    RecoveryAttempt(
                        strategy_name=strategy.name,
                        attempted_at=attempted_at,
                        successful=False,
                        failure_message=f"{type(e).__name__}: {e}",
                    )
                )
                recorder.debug(
                    f"Recovery strategy {strategy.name} failed",
                    error=str(e),
                )
                continue

            attempts.append(self._success(strategy.name, attempted_at, canonical))
            recorder.info(
                f"Recovery strategy {strategy.name} succeeded",
                attempt=len(attempts),
                success=canonical.success,
            )
            recorder.record_recovery(successful=True)
            return ParseOutcome(canonical=canonical, attempts=tuple(attempts))

        # Custom chains may lack a terminal fallback; synthesize one.
        attempted_at = time.time()
        canonical = self._fallback.synthesize(content)
        attempts.append(self._success(self._fallback.name, attempted_at, canonical))
        recorder.warn(
            "All recovery strategies failed; synthesized fallback result",
            attempts=len(attempts),
        )
        recorder.record_recovery(successful=True)
        return ParseOutcome(canonical=canonical, attempts=tuple(attempts))

    @staticmethod
    def _success(
        name: str, attempted_at: float, canonical: CanonicalResult
    ) -> RecoveryAttempt:
        return RecoveryAttempt(
            strategy_name=name,
            attempted_at=attempted_at,
            successful=True,
            recovered_data={
                "success": canonical.success,
                "message": canonical.message,
                "data_keys": sorted(canonical.data),
            },
        )
