"""Envelope validation: the first stage of every `process()` call."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from castor.types import ValidationOutcome

_MISSING = object()


def _field(envelope: Any, name: str) -> Any:
    if isinstance(envelope, Mapping):
        return envelope.get(name, _MISSING)
    return getattr(envelope, name, _MISSING)


def _kind(value: Any) -> str:
    if value is _MISSING:
        return "missing"
    if value is None:
        return "null"
    return type(value).__name__


def validate_envelope(envelope: Any) -> list[ValidationOutcome]:
    """Check the raw envelope and return the complete validation ledger.

    Every rule is evaluated even when an earlier one fails, so the ledger
    always has four entries. Accepts a `RawToolResult`, any mapping, or any
    object exposing ``name`` and ``content``.
    """
    ledger: list[ValidationOutcome] = []

    exists = envelope is not None
    ledger.append(
        ValidationOutcome(
            field="envelope",
            valid=exists,
            message="Tool result envelope exists" if exists else "Tool result envelope is null",
            expected_kind="object",
            actual_kind=_kind(envelope),
        )
    )

    name = _field(envelope, "name") if exists else _MISSING
    name_ok = isinstance(name, str) and len(name) > 0
    ledger.append(
        ValidationOutcome(
            field="name",
            valid=name_ok,
            message="Tool name is valid" if name_ok else "Tool name is missing or invalid",
            expected_kind="non-empty string",
            actual_kind=_kind(name),
            value=None if name is _MISSING else name,
        )
    )

    content = _field(envelope, "content") if exists else _MISSING
    is_str = isinstance(content, str)
    ledger.append(
        ValidationOutcome(
            field="content",
            valid=is_str,
            message="Content is a string" if is_str else "Content is missing or not a string",
            expected_kind="string",
            actual_kind=_kind(content),
            value=f"{len(content)} characters" if is_str else None,
        )
    )

    not_blank = is_str and bool(content.strip())
    if is_str:
        blank_message = "Content is not empty" if not_blank else "Content is empty or whitespace"
        actual = f"string with {len(content)} characters"
    else:
        blank_message = "Content emptiness not checked: content is not a string"
        actual = _kind(content)
    ledger.append(
        ValidationOutcome(
            field="content.length",
            valid=not_blank,
            message=blank_message,
            expected_kind="non-empty string",
            actual_kind=actual,
            value=len(content) if is_str else None,
        )
    )

    return ledger
