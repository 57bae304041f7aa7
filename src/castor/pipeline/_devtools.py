"""Developer-time invariant checks for processed results (internal).

Enabled by ``CASTOR_PIPELINE_VALIDATE=1``. Not part of the stable public API.
The checks are cheap but redundant with the pipeline's own construction, so
they are off in production.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from castor.errors import InvariantViolationError
from castor.types import ProcessingStage, is_valid_stage_path

if TYPE_CHECKING:
    from castor.types import ProcessedResult

log = logging.getLogger(__name__)


def validate_processed_result(
    result: ProcessedResult, *, stage_name: str | None = None
) -> None:
    """Raise `InvariantViolationError` with a precise reason on a malformed result."""
    priorities = [c.priority for c in result.components]
    if priorities != sorted(priorities):
        raise InvariantViolationError(
            f"components are not sorted by priority: {priorities}",
            stage_name=stage_name,
        )

    debug = result.debug
    if not is_valid_stage_path(debug.stage_path):
        path = " -> ".join(s.value for s in debug.stage_path)
        raise InvariantViolationError(
            f"debug stage path is not a valid state machine path: {path}",
            stage_name=stage_name,
        )
    if debug.duration_ms < 0:
        raise InvariantViolationError(
            "debug duration must be >= 0", stage_name=stage_name
        )

    failed = debug.stage is ProcessingStage.ERROR
    if failed != (result.error is not None):
        raise InvariantViolationError(
            "error info must be set exactly when the record ends in ERROR",
            stage_name=stage_name,
        )
    if failed and [c.kind for c in result.components] != ["error"]:
        raise InvariantViolationError(
            "error results must carry exactly one error component",
            stage_name=stage_name,
        )
    log.debug("Processed result %s passed dev validation", result.id)


__all__ = ("validate_processed_result",)
