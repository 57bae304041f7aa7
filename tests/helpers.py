"""Test helpers (small, reusable builders and doubles)."""

from __future__ import annotations

import json
from typing import Any

from castor.types import RawToolResult


class FakeClock:
    """Manually advanced clock for registry age tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingReporter:
    """Telemetry reporter that raises on every call."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        raise RuntimeError("reporter down")

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        raise RuntimeError("reporter down")


def make_raw(name: str = "render_image", **content: Any) -> RawToolResult:
    """Build a raw result whose content is *content* serialized as JSON."""
    return RawToolResult(name=name, content=json.dumps(content))
