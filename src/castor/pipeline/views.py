"""Dual-view transformation of a canonical result.

From one `CanonicalResult` two divergent views are derived:

- the context summary, a compact JSON string bounded in bytes for
  consumers with strict payload budgets (media is reduced to flags);
- the display payload, a full-fidelity dict for renderers.

Neither view ever looks at the raw content.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import time
from typing import TYPE_CHECKING, Any

from castor.pipeline.payloads import (
    CHART_KEY,
    IMAGE_KEY,
    TABLE_KEY,
    classify_payloads,
    content_kind,
    validate_image_url,
)
from castor.telemetry import payload_size

if TYPE_CHECKING:
    from castor.telemetry import DebugRecorder
    from castor.types import CanonicalResult

TRUNCATION_MARKER = "... [TRUNCATED]"


@dataclass(frozen=True)
class DualView:
    """Both views derived from one canonical result."""

    context_summary: str
    display_payload: dict[str, Any]


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def error_view(message: str, *, tool_name: str | None = None) -> dict[str, Any]:
    """Error-shaped view used for failed results."""
    view: dict[str, Any] = {
        "error": True,
        "message": message,
        "recoverable": True,
        "timestamp": time.time(),
    }
    if tool_name is not None:
        view["tool"] = tool_name
    return view


def bound_summary(summary: dict[str, Any], max_bytes: int) -> str:
    """Serialize *summary*, shortening its message until it fits *max_bytes*.

    The message is the only unbounded field; everything else is flags and
    short identifiers.
    """
    text = _dumps(summary)
    if len(text.encode("utf-8")) <= max_bytes:
        return text

    message = str(summary.get("message", ""))
    overflow = len(text.encode("utf-8")) - max_bytes
    keep = max(0, len(message) - overflow - len(TRUNCATION_MARKER))
    while True:
        shortened = {**summary, "message": message[:keep] + TRUNCATION_MARKER}
        text = _dumps(shortened)
        if len(text.encode("utf-8")) <= max_bytes or keep == 0:
            break
        # Multi-byte characters can need a few more rounds.
        keep = max(0, keep - max(1, (len(text.encode("utf-8")) - max_bytes)))
    if len(text.encode("utf-8")) > max_bytes:
        # Tool name alone is over budget; drop to the bare status.
        text = _dumps({k: summary[k] for k in ("success", "error") if k in summary})
    return text


class DualViewTransformer:
    """Derive the context summary and display payload.

    Attributes:
        max_summary_bytes: Upper bound on the serialized context summary.
    """

    def __init__(self, *, max_summary_bytes: int = 1024) -> None:
        self.max_summary_bytes = max_summary_bytes

    def transform(
        self, canonical: CanonicalResult, tool_name: str, recorder: DebugRecorder
    ) -> DualView:
        """Build both views from *canonical*."""
        if not canonical.success:
            recorder.warn(
                "Canonical result reports failure; building error-shaped views",
                result_message=canonical.message[:200],
            )
            summary = bound_summary(
                error_view(canonical.message, tool_name=tool_name),
                self.max_summary_bytes,
            )
            payload = error_view(canonical.message)
            recorder.record_payload(payload)
            return DualView(context_summary=summary, display_payload=payload)

        summary = self.context_summary(canonical, tool_name, recorder)
        payload = self.display_payload(canonical, recorder)
        return DualView(context_summary=summary, display_payload=payload)

    def context_summary(
        self, canonical: CanonicalResult, tool_name: str, recorder: DebugRecorder
    ) -> str:
        """Return the size-bounded summary; media is represented by flags only."""
        data = canonical.data
        size = data.get("size", "standard")
        summary: dict[str, Any] = {
            "success": canonical.success,
            "tool": tool_name,
            "message": canonical.message,
            "metadata": {
                "has_image": bool(data.get(IMAGE_KEY)),
                "has_data": bool(data),
                "content_kind": content_kind(data),
                "size": size if isinstance(size, str | int) else "standard",
            },
        }

        text = bound_summary(summary, self.max_summary_bytes)
        recorder.trace(
            "Context summary created",
            summary_bytes=len(text.encode("utf-8")),
            truncated=TRUNCATION_MARKER in text,
        )
        return text

    def display_payload(
        self, canonical: CanonicalResult, recorder: DebugRecorder
    ) -> dict[str, Any]:
        """Return the full-fidelity payload with derived flags and metadata."""
        data = dict(canonical.data)
        metadata: dict[str, Any] = {
            "payload_size": payload_size(data),
            "content_kinds": [p.kind for p in classify_payloads(data)],
        }
        payload: dict[str, Any] = {
            "success": True,
            "message": canonical.message,
            "data": data,
            "timestamp": time.time(),
            "has_image": bool(data.get(IMAGE_KEY)),
            "has_chart": bool(data.get(CHART_KEY)),
            "has_table": bool(data.get(TABLE_KEY)),
            "metadata": metadata,
        }

        if payload["has_image"]:
            reason = validate_image_url(data[IMAGE_KEY])
            metadata["image_valid"] = reason is None
            if reason is not None:
                metadata["image_error"] = reason
                recorder.warn(
                    "Image validation failed",
                    error=reason,
                    image_url=str(data[IMAGE_KEY])[:100],
                )

        recorder.record_payload(payload)
        recorder.debug(
            "Display payload prepared",
            has_image=payload["has_image"],
            has_chart=payload["has_chart"],
            has_table=payload["has_table"],
            payload_size=metadata["payload_size"],
        )
        return payload
