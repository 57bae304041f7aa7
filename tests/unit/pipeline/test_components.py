"""Tests for display component assembly and ordering."""

from __future__ import annotations

import pytest

from castor.pipeline.components import (
    IMAGE_ERROR_FALLBACK,
    ComponentAssembler,
    error_component,
    sort_components,
)
from castor.pipeline.views import DualViewTransformer, error_view
from castor.telemetry import DebugRecorder
from castor.types import CanonicalResult, DisplayComponent

pytestmark = pytest.mark.unit


def _assemble(data: dict, message: str = "done", tool: str = "t"):
    recorder = DebugRecorder()
    payload = DualViewTransformer().display_payload(
        CanonicalResult(True, message, data), recorder
    )
    return ComponentAssembler().assemble(payload, tool, recorder)


def test_image_renders_before_success_message():
    components = _assemble({"image_url": "data:x"})

    assert [c.kind for c in components] == ["image", "success"]
    assert [c.priority for c in components] == [1, 2]
    assert components[0].validation_passed is False
    assert components[1].content == "done"
    assert components[1].metadata == {"tool_name": "t"}


def test_all_shapes_sorted_with_stable_ties():
    components = _assemble(
        {
            "text": "notes",
            "table_data": [[1, 2]],
            "chart_data": {"series": [1, 2]},
            "image_url": "https://example.com/a.png",
        }
    )

    assert [c.kind for c in components] == ["image", "chart", "success", "table", "text"]
    assert [c.priority for c in components] == [1, 1, 2, 2, 3]


def test_image_metadata_and_render_hints():
    (image, _success) = _assemble(
        {
            "image_url": "https://example.com/cat.png",
            "caption": "a cat",
            "style": "photo",
            "size": "large",
            "prompt": "draw a cat",
        }
    )

    assert image.content == "https://example.com/cat.png"
    assert image.validation_passed is True
    assert image.metadata == {
        "caption": "a cat",
        "style": "photo",
        "size": "large",
        "prompt": "draw a cat",
    }
    assert image.render_hints.lazy_load is True
    assert image.render_hints.error_fallback == IMAGE_ERROR_FALLBACK


def test_inline_image_is_not_lazy_and_caption_defaults_to_message():
    image = _assemble({"image_url": "data:image/png;base64,AAAA"}, message="here")[0]

    assert image.render_hints.lazy_load is False
    assert image.metadata["caption"] == "here"


def test_chart_and_table_metadata():
    components = _assemble(
        {
            "chart_data": [1, 2],
            "chart_type": "bar",
            "table_data": [[1]],
            "headers": ["n"],
            "title": "Results",
        }
    )
    chart = next(c for c in components if c.kind == "chart")
    table = next(c for c in components if c.kind == "table")

    assert chart.metadata == {"title": "Results", "chart_type": "bar"}
    assert table.metadata == {"title": "Results", "headers": ["n"]}


def test_passthrough_fields_get_no_component():
    assert [c.kind for c in _assemble({"rows": 3})] == ["success"]


def test_error_payload_yields_single_error_component():
    components = ComponentAssembler().assemble(
        error_view("tool failed"), "t", DebugRecorder()
    )

    assert len(components) == 1
    assert components[0].kind == "error"
    assert components[0].priority == 1
    assert components[0].content == "tool failed"


def test_sort_is_stable():
    items = [
        DisplayComponent("text", "a", 3),
        DisplayComponent("success", "b", 2),
        DisplayComponent("table", "c", 2),
        error_component("d"),
    ]

    assert [c.content for c in sort_components(items)] == ["d", "b", "c", "a"]


def test_error_component_has_default_message():
    assert error_component("").content == "Tool execution failed"
