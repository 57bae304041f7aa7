"""Pipeline stages: validation, recovery-aware parsing, views, components."""

from .components import ComponentAssembler
from .parser import ParseOutcome, RecoveryAwareParser
from .payloads import (
    ChartPayload,
    ImagePayload,
    PassthroughPayload,
    Payload,
    TablePayload,
    TextPayload,
    classify_payloads,
)
from .validator import validate_envelope
from .views import DualView, DualViewTransformer

__all__ = [  # noqa: RUF022
    "validate_envelope",
    "RecoveryAwareParser",
    "ParseOutcome",
    "DualViewTransformer",
    "DualView",
    "ComponentAssembler",
    "Payload",
    "ImagePayload",
    "ChartPayload",
    "TablePayload",
    "TextPayload",
    "PassthroughPayload",
    "classify_payloads",
]
