"""Inference backend integrations."""

from .base import Completion, InferenceBackend, TransportError
from .openai_provider import OpenAICompatibleBackend

__all__ = ["Completion", "InferenceBackend", "OpenAICompatibleBackend", "TransportError"]
