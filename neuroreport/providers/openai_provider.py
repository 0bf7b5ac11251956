"""OpenAI-compatible inference backend.

Works against any server exposing the OpenAI chat completions API, including
a local Ollama instance at ``http://localhost:11434/v1``.
"""

import logging
import threading
import time
from typing import List, Optional

import openai
from openai import OpenAI

from ..error_classifier import ClassifiedError, ErrorCategory, ErrorSeverity
from ..text_utils import estimate_tokens
from .base import Completion, InferenceBackend, TransportError

logger = logging.getLogger(__name__)


def _base_model_id(model_id: str) -> str:
    model_id = model_id.strip().lower()
    if model_id.endswith(":latest"):
        model_id = model_id[: -len(":latest")]
    return model_id


class OpenAICompatibleBackend(InferenceBackend):
    """Inference backend for OpenAI-compatible chat completion servers."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "ollama",
        max_tokens: int = 1000,
    ):
        """
        Initialize the backend.

        Args:
            base_url: Root URL of the OpenAI-compatible API
            api_key: API key; local servers accept any value
            max_tokens: Maximum tokens to generate per call
        """
        self.base_url = base_url
        self.max_tokens = max_tokens
        # Retries are owned by the generation client
        self.client = OpenAI(base_url=base_url, api_key=api_key, max_retries=0)
        self._lock = threading.Lock()
        self._installed: Optional[List[str]] = None
        self._listing_failed = False

    def list_models(self) -> Optional[List[str]]:
        """
        List the models served by the backend, once.

        Returns:
            Base ids of served models, or None when listing failed
        """
        with self._lock:
            if self._installed is None and not self._listing_failed:
                try:
                    page = self.client.models.list()
                    self._installed = [_base_model_id(m.id) for m in page.data]
                    logger.info(
                        f"Backend at {self.base_url} serves "
                        f"{len(self._installed)} models"
                    )
                except openai.OpenAIError as e:
                    self._listing_failed = True
                    logger.warning(
                        f"Could not list models at {self.base_url}, "
                        f"assuming every model is available: {e}"
                    )
            return None if self._listing_failed else list(self._installed or [])

    def is_available(self, model_id: str) -> bool:
        """
        Check whether a model is served.

        Matching is case-insensitive, ignores a ``:latest`` suffix and
        accepts served ids that start with the requested id. When the model
        list cannot be fetched every model is reported available.

        Args:
            model_id: Model identifier

        Returns:
            True if the model is served or the listing failed
        """
        installed = self.list_models()
        if installed is None:
            return True
        target = _base_model_id(model_id)
        return any(name.startswith(target) for name in installed)

    def complete(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout: float,
    ) -> Completion:
        """
        Generate a chat completion.

        Args:
            model_id: Model identifier
            system_prompt: System instruction
            user_prompt: User message
            temperature: Sampling temperature (0.0 to 2.0)
            timeout: Request timeout in seconds

        Returns:
            Completion with text, token usage and latency

        Raises:
            TransportError: If the API call fails or times out
        """
        start = time.perf_counter()
        try:
            response = self.client.chat.completions.create(
                model=model_id,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
        except openai.OpenAIError as e:
            raise self._handle_api_error(e, model_id)
        latency = time.perf_counter() - start

        try:
            text = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise TransportError(
                ClassifiedError(
                    category=ErrorCategory.MODEL_ERROR,
                    severity=ErrorSeverity.MEDIUM,
                    model_id=model_id,
                    original_error=type(e).__name__,
                    message=f"Malformed completion response: {e}",
                    is_retryable=True,
                ),
                e,
            ) from e
        usage = response.usage
        input_tokens = getattr(usage, "prompt_tokens", None)
        output_tokens = getattr(usage, "completion_tokens", None)

        return Completion(
            text=text,
            input_tokens=(
                input_tokens
                if input_tokens is not None
                else estimate_tokens(system_prompt + user_prompt)
            ),
            output_tokens=(
                output_tokens if output_tokens is not None else estimate_tokens(text)
            ),
            latency_seconds=latency,
        )
