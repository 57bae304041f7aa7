"""Recovery strategies used when strict parsing of tool content fails."""

from .base import RecoveryStrategy, coerce_canonical, strict_parse
from .fallback import FallbackSynthesis
from .strategies import (
    create_strategy_registry,
    default_strategies,
    fallback_synthesis_strategy,
    minimal_fields_strategy,
    partial_salvage_strategy,
    regex_cleaning_strategy,
    targeted_fields_strategy,
)

__all__ = [  # noqa: RUF022
    "RecoveryStrategy",
    "FallbackSynthesis",
    "coerce_canonical",
    "strict_parse",
    "default_strategies",
    "create_strategy_registry",
    "targeted_fields_strategy",
    "minimal_fields_strategy",
    "regex_cleaning_strategy",
    "partial_salvage_strategy",
    "fallback_synthesis_strategy",
]
