"""Built-in recovery strategies, ordered from most to least structure-preserving.

Each factory returns a `RecoveryStrategy` whose ``recover`` is a pure function
of the raw content. Consumers can reuse these factories or supply their own
specs to `RecoveryAwareParser`.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from itertools import islice
import json
import re
from typing import Any

from castor.errors import ParseError
from castor.types import CanonicalResult

from .base import (
    DEFAULT_FAILURE_MESSAGE,
    DEFAULT_SUCCESS_MESSAGE,
    RecoveryStrategy,
    coerce_canonical,
    strict_parse,
)
from .fallback import FallbackSynthesis

# --- Patterns ---

_JSON_STRING = r'"((?:[^"\\]|\\.)*)"'
_IMAGE_URL_RE = re.compile(r'"image_url"\s*:\s*' + _JSON_STRING)
_DATA_IMAGE_RE = re.compile(r"data:image/[A-Za-z0-9.+-]+;base64,[A-Za-z0-9+/=]+")
_SUCCESS_RE = re.compile(r'"success"\s*:\s*"?(true|false)"?', re.IGNORECASE)
_MESSAGE_RE = re.compile(r'"message"\s*:\s*' + _JSON_STRING)
_MEDIA_HINT_RES = {
    key: re.compile(rf'"{key}"\s*:\s*' + _JSON_STRING)
    for key in ("caption", "style", "size", "prompt")
}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*(?:```)?$", re.DOTALL | re.IGNORECASE)

_CLOSERS = {"{": "}", "[": "]"}

# Open containers as a linked chain of (closer, parent) pairs.
_Frame = tuple[str, Any] | None

# Upper bound on prefixes tried by partial salvage.
MAX_SALVAGE_CUTS = 256

RECOVERED_MEDIA_MESSAGE = "Media recovered from malformed tool output"

# --- Utility Functions ---


def _unescape(raw: str) -> str:
    """Decode JSON string escapes, keeping the raw text when they are broken."""
    try:
        value = json.loads(f'"{raw}"')
    except ValueError:
        return raw
    return value if isinstance(value, str) else raw


def _match_success(content: str) -> bool | None:
    match = _SUCCESS_RE.search(content)
    if match is None:
        return None
    return match.group(1).lower() == "true"


def _match_message(content: str) -> str | None:
    match = _MESSAGE_RE.search(content)
    if match is None or not match.group(1):
        return None
    return _unescape(match.group(1))


def _outside_strings(text: str, end: int | None = None) -> Iterator[tuple[int, str]]:
    """Yield ``(index, char)`` for the characters of *text* outside string literals.

    Opening quotes are yielded; string contents and closing quotes are not.
    Scanning stops at *end* when given.
    """
    in_string = False
    escaped = False
    for i, ch in enumerate(islice(text, end)):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        yield i, ch


def _scan(text: str) -> tuple[list[str], bool, bool]:
    """Walk *text* and report open containers and string state.

    Returns:
        (stack of unclosed openers, inside an unterminated string,
        a trailing backslash escape is pending)
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()
    return stack, in_string, escaped


def close_open_structures(text: str) -> str:
    """Terminate an unterminated string and close unbalanced containers."""
    stack, in_string, escaped = _scan(text)
    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'
    text = text.rstrip()
    while text.endswith(","):
        text = text[:-1].rstrip()
    if text.endswith(":"):
        text += " null"
    return text + "".join(_CLOSERS[opener] for opener in reversed(stack))


def strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede ``}`` or ``]``; string contents are kept."""
    drop: list[int] = []
    pending: int | None = None
    for i, ch in _outside_strings(text):
        if ch.isspace():
            continue
        if ch in "}]" and pending is not None:
            drop.append(pending)
        pending = i if ch == "," else None
    if not drop:
        return text
    parts: list[str] = []
    start = 0
    for i in drop:
        parts.append(text[start:i])
        start = i + 1
    parts.append(text[start:])
    return "".join(parts)


def clean_content(content: str) -> str:
    """Strip common corruption artifacts from raw tool output."""
    text = _CONTROL_CHARS_RE.sub("", content)
    text = text.replace("\r", " ").replace("\n", " ").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()
    start = text.find("{")
    if start > 0:
        text = text[start:]
    return close_open_structures(strip_trailing_commas(text))


def _salvage_points(text: str, limit: int) -> list[tuple[int, _Frame]]:
    """Value boundaries up to *limit*, newest first, with the containers open there.

    A boundary is the position before a comma or after a closing bracket.
    Open containers are a chain of ``(closer, parent)`` frames, so recording
    a boundary never copies the stack. Only the last `MAX_SALVAGE_CUTS`
    boundaries are kept.
    """
    points: deque[tuple[int, _Frame]] = deque(maxlen=MAX_SALVAGE_CUTS)
    frame: _Frame = None
    for i, ch in _outside_strings(text, limit):
        if ch in _CLOSERS:
            frame = (_CLOSERS[ch], frame)
        elif ch in "}]":
            if frame is not None:
                frame = frame[1]
            points.append((i + 1, frame))
        elif ch == ",":
            points.append((i, frame))
    points.reverse()
    return list(points)


def _closers(frame: _Frame) -> str:
    closers: list[str] = []
    while frame is not None:
        closer, frame = frame
        closers.append(closer)
    return "".join(closers)


def _salvage_candidates(text: str, limit: int) -> Iterator[str]:
    """Closed prefixes of *text*, longest first.

    The whole text, closed as is, comes first. Decoding already failed at
    *limit*, so every other prefix ends at or before it.
    """
    yield close_open_structures(text)
    for cut, frame in _salvage_points(text, limit):
        yield text[:cut] + _closers(frame)


# --- Built-in Strategies ---


def targeted_fields_strategy() -> RecoveryStrategy:
    """Pull the media reference and status flag straight out of the raw text.

    Succeeds whenever an ``image_url`` value (or a bare base64 image data URL)
    is intact, however corrupt the surrounding envelope is. Presentation hints
    (caption, style, size, prompt) are recovered when present.
    """

    def recover(content: str) -> CanonicalResult:
        match = _IMAGE_URL_RE.search(content)
        if match and match.group(1):
            image_url = _unescape(match.group(1))
        else:
            data_url = _DATA_IMAGE_RE.search(content)
            if data_url is None:
                raise ParseError("No media reference found in content")
            image_url = data_url.group(0)

        data: dict[str, Any] = {"image_url": image_url}
        for key, pattern in _MEDIA_HINT_RES.items():
            hint = pattern.search(content)
            if hint and hint.group(1):
                data[key] = _unescape(hint.group(1))

        success = _match_success(content)
        return CanonicalResult(
            success=True if success is None else success,
            message=_match_message(content) or RECOVERED_MEDIA_MESSAGE,
            data=data,
        )

    return RecoveryStrategy(
        name="targeted_fields",
        recover=recover,
        description="extract media reference and status flag by pattern",
    )


def minimal_fields_strategy() -> RecoveryStrategy:
    """Keep only the success flag and message; all other data is discarded.

    Fails when no success flag can be found, so content without any status
    information falls through to the structural strategies.
    """

    def recover(content: str) -> CanonicalResult:
        success = _match_success(content)
        if success is None:
            raise ParseError("No success flag found in content")
        message = _match_message(content) or (
            DEFAULT_SUCCESS_MESSAGE if success else DEFAULT_FAILURE_MESSAGE
        )
        return CanonicalResult(success=success, message=message, data={})

    return RecoveryStrategy(
        name="minimal_fields",
        recover=recover,
        description="extract success flag and message by pattern",
    )


def regex_cleaning_strategy() -> RecoveryStrategy:
    """Strip corruption artifacts and retry strict parsing once."""

    def recover(content: str) -> CanonicalResult:
        return strict_parse(clean_content(content))

    return RecoveryStrategy(
        name="regex_cleaning",
        recover=recover,
        description="strip control characters and close truncated structure",
    )


def partial_salvage_strategy() -> RecoveryStrategy:
    """Decode the longest prefix of the content that forms valid structure.

    A complete object followed by garbage is returned as is. Otherwise the
    content is cut back at value boundaries before the point where decoding
    failed, newest first, and each prefix is closed and decoded until one
    parses. Closing a prefix costs only its nesting depth, so the text is
    walked a fixed number of times however many prefixes are tried.
    """

    def recover(content: str) -> CanonicalResult:
        text = _CONTROL_CHARS_RE.sub("", content)
        start = text.find("{")
        if start < 0:
            raise ParseError("No object found to salvage")
        text = text[start:]

        try:
            parsed, _end = json.JSONDecoder().raw_decode(text)
        except json.JSONDecodeError as e:
            limit = e.pos
        except (ValueError, RecursionError):
            limit = len(text)
        else:
            return coerce_canonical(parsed)

        for candidate in _salvage_candidates(text, limit):
            try:
                parsed = json.loads(candidate)
            except (ValueError, RecursionError):
                continue
            if isinstance(parsed, dict):
                return coerce_canonical(parsed)
        raise ParseError("No parseable prefix found")

    return RecoveryStrategy(
        name="partial_salvage",
        recover=recover,
        description="parse the longest valid prefix and drop the remainder",
    )


def fallback_synthesis_strategy() -> RecoveryStrategy:
    """Infallible last resort; see `FallbackSynthesis`."""
    return RecoveryStrategy(
        name=FallbackSynthesis.name,
        recover=FallbackSynthesis().synthesize,
        description="report failure with the original content verbatim",
    )


# --- Default Strategy Chain ---


def default_strategies() -> tuple[RecoveryStrategy, ...]:
    """Return the built-in chain in canonical order.

    Ordered from the most structure-preserving strategy to the least; the
    final fallback cannot fail.
    """
    return (
        targeted_fields_strategy(),
        minimal_fields_strategy(),
        regex_cleaning_strategy(),
        partial_salvage_strategy(),
        fallback_synthesis_strategy(),
    )


def create_strategy_registry() -> dict[str, RecoveryStrategy]:
    """Map strategy names to specs, for building custom chains."""
    return {strategy.name: strategy for strategy in default_strategies()}
