"""FallbackSynthesis: the infallible last step of every recovery episode.

Unrecoverable ambiguity is reported as failure: the synthesized result always
has ``success=False`` and carries the original content verbatim, so nothing
the tool produced is lost even when none of it could be interpreted.
"""

from __future__ import annotations

from castor.types import CanonicalResult


class FallbackSynthesis:
    """Build a minimal failure `CanonicalResult` from any content."""

    name = "fallback_synthesis"

    def synthesize(self, content: str) -> CanonicalResult:
        """Return a failure result whose message is *content* verbatim."""
        return CanonicalResult(
            success=False,
            message=self._to_text(content),
            data={"recovery_attempted": True},
        )

    def _to_text(self, content: object) -> str:
        if isinstance(content, str):
            return content
        try:
            return str(content)
        except Exception:
            # Even str() can fail in pathological cases
            return "[unparseable content]"
