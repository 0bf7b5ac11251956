"""Narrative generation: prompt building, tiered generation and caching."""

from .cache import NarrativeCache
from .client import (
    AttemptFailure,
    GenerationClient,
    GenerationError,
    GenerationErrorKind,
)
from .prompts import NarrativeRequestBuilder

__all__ = [
    "AttemptFailure",
    "GenerationClient",
    "GenerationError",
    "GenerationErrorKind",
    "NarrativeCache",
    "NarrativeRequestBuilder",
]
