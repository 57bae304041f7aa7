"""Exception hierarchy for Castor."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from castor.types import ValidationOutcome


class CastorError(Exception):
    """Base exception for all Castor errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(CastorError):
    """Configuration validation or resolution failed."""


class ValidationError(CastorError):
    """The raw envelope violated the caller contract.

    Carries the complete validation ledger, including the checks that passed.
    """

    def __init__(
        self,
        message: str,
        ledger: Sequence[ValidationOutcome],
        *,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.ledger = tuple(ledger)

    @property
    def failed(self) -> tuple[ValidationOutcome, ...]:
        """Outcomes that did not pass."""
        return tuple(o for o in self.ledger if not o.valid)


class ParseError(CastorError):
    """Strict parsing of tool content failed.

    Never escapes the parser: it opens a recovery episode instead.
    """


class ProcessingError(CastorError):
    """An unexpected failure after the envelope was validated."""


class RecoveryExhaustedError(ProcessingError):
    """The recovery machinery itself failed (not a single strategy)."""


class InvariantViolationError(CastorError):
    """An internal pipeline invariant was violated (a Castor bug)."""

    def __init__(
        self, message: str, *, stage_name: str | None = None, hint: str | None = None
    ) -> None:
        self.stage_name = stage_name
        msg = message if stage_name is None else f"[{stage_name}] {message}"
        super().__init__(msg, hint=hint)


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)


def technical_detail(exc: BaseException) -> str:
    """Render an exception and its causes as a single operator-facing line."""
    return " <- ".join(f"{type(e).__name__}: {e}" for e in _walk_exception_chain(exc))
