"""Types and helpers shared by the parser and recovery strategies.

Custom strategies are plain `RecoveryStrategy` specs; pass a tuple of them to
`RecoveryAwareParser` to extend or reorder the chain.
"""

from __future__ import annotations

import dataclasses
import json
from typing import TYPE_CHECKING, Any

from castor.errors import ParseError
from castor.types import CanonicalResult

if TYPE_CHECKING:
    from collections.abc import Callable

DEFAULT_SUCCESS_MESSAGE = "Tool executed"
DEFAULT_FAILURE_MESSAGE = "Tool execution failed"


@dataclasses.dataclass(frozen=True)
class RecoveryStrategy:
    """Specification for one step of a recovery episode.

    Attributes:
        name: Unique strategy name, recorded on each `RecoveryAttempt`.
        recover: Pure function from raw content to a `CanonicalResult`. Raises
            (usually `ParseError`) to escalate to the next strategy.
        description: One-line summary used in debug output.
    """

    name: str
    recover: Callable[[str], CanonicalResult]
    description: str = ""

    def __post_init__(self) -> None:
        """Validate the strategy specification at construction time."""
        if not self.name or not isinstance(self.name, str):
            raise ValueError(f"Strategy name must be non-empty string, got {self.name}")

        if not callable(self.recover):
            raise ValueError(f"Strategy {self.name}: recover must be callable")


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def coerce_canonical(parsed: Any) -> CanonicalResult:
    """Coerce a decoded JSON value into a `CanonicalResult`.

    Raises:
        ParseError: If *parsed* is not a JSON object.
    """
    if not isinstance(parsed, dict):
        raise ParseError(f"Expected a JSON object, got {type(parsed).__name__}")

    success = _coerce_flag(parsed.get("success", False))
    message = parsed.get("message")
    if not isinstance(message, str) or not message:
        message = DEFAULT_SUCCESS_MESSAGE if success else DEFAULT_FAILURE_MESSAGE

    data = parsed.get("data")
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        data = {"value": data}

    return CanonicalResult(success=success, message=message, data=dict(data))


def strict_parse(content: str) -> CanonicalResult:
    """Parse *content* as a JSON object and coerce it.

    Raises:
        ParseError: On invalid JSON or a non-object document.
    """
    try:
        parsed = json.loads(content)
    except (ValueError, RecursionError) as e:
        raise ParseError(f"Invalid JSON: {e}") from e
    return coerce_canonical(parsed)
