"""Display-relevant shapes found inside a canonical ``data`` map.

Tool output is an open-ended bag of fields. Rather than passing ``Any``
through the views, the fields the pipeline knows how to present are lifted
into a small tagged union (discriminated by ``kind``); everything else rides
along in a `PassthroughPayload`.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError

log = logging.getLogger(__name__)

IMAGE_KEY = "image_url"
CHART_KEY = "chart_data"
TABLE_KEY = "table_data"
TEXT_KEY = "text"

# Fields consumed by a typed payload; the rest is passthrough.
_KNOWN_KEYS = frozenset(
    {
        IMAGE_KEY,
        "caption",
        "style",
        "size",
        "prompt",
        CHART_KEY,
        "chart_type",
        TABLE_KEY,
        "headers",
        "title",
        TEXT_KEY,
    }
)

_DATA_IMAGE_RE = re.compile(r"^data:image/(jpeg|jpg|png|gif|webp|svg\+xml);base64,")


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ImagePayload(_Payload):
    """A media reference plus presentation hints."""

    kind: Literal["image"] = "image"
    image_url: str = Field(min_length=1)
    caption: str | None = None
    style: str | None = "default"
    size: str | int | None = "standard"
    prompt: str | None = None


class ChartPayload(_Payload):
    kind: Literal["chart"] = "chart"
    chart_data: Any
    title: str | None = None
    chart_type: str | None = None


class TablePayload(_Payload):
    kind: Literal["table"] = "table"
    table_data: Any
    title: str | None = None
    headers: list[Any] | None = None


class TextPayload(_Payload):
    kind: Literal["text"] = "text"
    text: str


class PassthroughPayload(_Payload):
    """Fields with no dedicated presentation, preserved verbatim."""

    kind: Literal["passthrough"] = "passthrough"
    fields: dict[str, Any] = Field(default_factory=dict)


Payload = Annotated[
    ImagePayload | ChartPayload | TablePayload | TextPayload | PassthroughPayload,
    Field(discriminator="kind"),
]

# kind -> (model, discriminating field)
_SHAPES: dict[str, tuple[type[_Payload], str]] = {
    "image": (ImagePayload, IMAGE_KEY),
    "chart": (ChartPayload, CHART_KEY),
    "table": (TablePayload, TABLE_KEY),
    "text": (TextPayload, TEXT_KEY),
}


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def _lift(kind: str, data: dict[str, Any]) -> Payload | None:
    """Validate one known shape.

    Only the discriminating field decides whether the shape exists. Optional
    fields that fail validation are dropped so their defaults apply.
    """
    model, key = _SHAPES[kind]
    candidate = {**data, "kind": kind}
    try:
        return model.model_validate(candidate)
    except ValidationError as e:
        bad = {err["loc"][0] for err in e.errors() if err["loc"]}
    if key in bad or "kind" in bad:
        log.debug("Payload %s rejected: %s is malformed", kind, key)
        return None
    log.warning(
        "Payload %s: ignoring malformed optional field(s) %s",
        kind,
        ", ".join(sorted(str(f) for f in bad)),
    )
    try:
        return model.model_validate(
            {k: v for k, v in candidate.items() if k not in bad}
        )
    except ValidationError as e:
        log.debug("Payload %s did not validate: %s", kind, e.errors()[0]["msg"])
        return None


def classify_payloads(data: dict[str, Any]) -> list[Payload]:
    """Return the display-relevant shapes present in *data*.

    Order is image, chart, table, text, passthrough. A known field whose value
    fails validation (e.g. a non-string ``image_url``) is kept as passthrough
    instead of being dropped. A malformed optional field such as ``caption``
    only loses its own value.
    """
    payloads: list[Payload] = []
    leftovers = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}

    for kind, (_model, key) in _SHAPES.items():
        if not _present(data.get(key)):
            continue
        lifted = _lift(kind, data)
        if lifted is None:
            leftovers[key] = data[key]
        else:
            payloads.append(lifted)

    if leftovers:
        payloads.append(PassthroughPayload(fields=leftovers))
    return payloads


def content_kind(data: dict[str, Any]) -> str:
    """Name the dominant content kind of *data* for the context summary."""
    for key, kind in (
        (IMAGE_KEY, "image"),
        (CHART_KEY, "chart"),
        (TABLE_KEY, "table"),
        (TEXT_KEY, "text"),
    ):
        if _present(data.get(key)):
            return kind
    return "data" if data else "unknown"


def validate_image_url(image_url: Any) -> str | None:
    """Return None when *image_url* is renderable, else the reason it is not."""
    if not isinstance(image_url, str) or not image_url:
        return "Image reference is missing or not a string"
    if image_url.startswith("data:"):
        if _DATA_IMAGE_RE.match(image_url):
            return None
        return "Data URL is not a base64-encoded jpeg, png, gif, webp or svg image"
    parsed = urlparse(image_url)
    if parsed.scheme in ("http", "https"):
        if parsed.netloc:
            return None
        return f"Image URL has no host: {image_url[:100]}"
    return f"Unsupported image reference scheme: {parsed.scheme or 'none'}"
