"""Display component assembly.

Maps a display payload onto an ordered list of typed, independently
renderable `DisplayComponent`s. Ordering is a hard contract: ascending
priority is render order and ties keep construction order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from castor.pipeline.payloads import (
    ChartPayload,
    ImagePayload,
    TablePayload,
    TextPayload,
    classify_payloads,
)
from castor.types import DisplayComponent, RenderHints

if TYPE_CHECKING:
    from castor.telemetry import DebugRecorder

PRIORITY_IMAGE = 1
PRIORITY_CHART = 1
PRIORITY_ERROR = 1
PRIORITY_SUCCESS = 2
PRIORITY_TABLE = 2
PRIORITY_TEXT = 3

DEFAULT_SUCCESS_MESSAGE = "Tool executed successfully"
DEFAULT_ERROR_MESSAGE = "Tool execution failed"
IMAGE_ERROR_FALLBACK = "Image could not be displayed"


def sort_components(components: list[DisplayComponent]) -> tuple[DisplayComponent, ...]:
    """Stable ascending sort by priority."""
    return tuple(sorted(components, key=lambda c: c.priority))


def error_component(
    message: str, *, metadata: dict[str, Any] | None = None
) -> DisplayComponent:
    return DisplayComponent(
        kind="error",
        content=message or DEFAULT_ERROR_MESSAGE,
        priority=PRIORITY_ERROR,
        validation_passed=True,
        metadata=metadata,
    )


class ComponentAssembler:
    """Build prioritized display components from a display payload."""

    def assemble(
        self,
        payload: dict[str, Any],
        tool_name: str,
        recorder: DebugRecorder,
    ) -> tuple[DisplayComponent, ...]:
        """Return components sorted by ascending priority."""
        if payload.get("error") or not payload.get("success"):
            recorder.debug("Assembling error component only")
            return (error_component(str(payload.get("message", ""))),)

        data = payload.get("data") or {}
        metadata = payload.get("metadata") or {}
        components: list[DisplayComponent] = [
            DisplayComponent(
                kind="success",
                content=payload.get("message") or DEFAULT_SUCCESS_MESSAGE,
                priority=PRIORITY_SUCCESS,
                metadata={"tool_name": tool_name},
            )
        ]

        for shape in classify_payloads(data):
            match shape:
                case ImagePayload():
                    components.append(
                        self._image(shape, payload, bool(metadata.get("image_valid", True)))
                    )
                case ChartPayload():
                    components.append(
                        DisplayComponent(
                            kind="chart",
                            content=shape.chart_data,
                            priority=PRIORITY_CHART,
                            metadata={
                                "title": shape.title,
                                "chart_type": shape.chart_type,
                            },
                        )
                    )
                case TablePayload():
                    components.append(
                        DisplayComponent(
                            kind="table",
                            content=shape.table_data,
                            priority=PRIORITY_TABLE,
                            metadata={"title": shape.title, "headers": shape.headers},
                        )
                    )
                case TextPayload():
                    components.append(
                        DisplayComponent(
                            kind="text", content=shape.text, priority=PRIORITY_TEXT
                        )
                    )
                case _:
                    # Passthrough fields have no dedicated presentation.
                    pass

        ordered = sort_components(components)
        recorder.debug(
            "Display components assembled",
            kinds=[c.kind for c in ordered],
            failed_validation=[c.kind for c in ordered if not c.validation_passed],
        )
        return ordered

    def _image(
        self, shape: ImagePayload, payload: dict[str, Any], valid: bool
    ) -> DisplayComponent:
        return DisplayComponent(
            kind="image",
            content=shape.image_url,
            priority=PRIORITY_IMAGE,
            validation_passed=valid,
            metadata={
                "caption": shape.caption or payload.get("message"),
                "style": shape.style,
                "size": shape.size,
                "prompt": shape.prompt,
            },
            render_hints=RenderHints(
                responsive=True,
                lazy_load=not shape.image_url.startswith("data:"),
                error_fallback=IMAGE_ERROR_FALLBACK,
            ),
        )
