"""Base class for inference backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..error_classifier import ClassifiedError, ErrorClassifier


class TransportError(Exception):
    """Exception raised by inference backends with classification.

    Attributes:
        classified_error: The classified error with category and severity
        original_exception: The original exception that was raised
    """

    def __init__(
        self,
        classified_error: ClassifiedError,
        original_exception: Optional[Exception] = None,
    ):
        """Initialize transport error.

        Args:
            classified_error: The classified error
            original_exception: The original exception, if any
        """
        self.classified_error = classified_error
        self.original_exception = original_exception
        super().__init__(str(classified_error))

    @property
    def is_retryable(self) -> bool:
        return self.classified_error.is_retryable


@dataclass
class Completion:
    """Result of one successful backend call.

    Attributes:
        text: Raw generated text
        input_tokens: Prompt tokens reported (or estimated) for the call
        output_tokens: Completion tokens reported (or estimated) for the call
        latency_seconds: Wall-clock duration of the call
    """

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_seconds: float = 0.0


class InferenceBackend(ABC):
    """Abstract base class for text-generation backends."""

    @abstractmethod
    def is_available(self, model_id: str) -> bool:
        """
        Check whether a model can be called on this backend.

        Args:
            model_id: Model identifier

        Returns:
            True if the model is installed or served
        """
        pass

    @abstractmethod
    def complete(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        timeout: float,
    ) -> Completion:
        """
        Generate a completion.

        Args:
            model_id: Model identifier
            system_prompt: System instruction
            user_prompt: User message
            temperature: Sampling temperature
            timeout: Upper bound on the call in seconds

        Returns:
            Completion with text, token counts and latency

        Raises:
            TransportError: If the call fails or times out
        """
        pass

    def get_backend_name(self) -> str:
        """
        Get the name of this backend.

        Returns:
            Backend name (e.g., "openaicompatible")
        """
        return self.__class__.__name__.replace("Backend", "").lower()

    def _handle_api_error(self, error: Exception, model_id: str) -> TransportError:
        """Classify and wrap an API error.

        Args:
            error: The exception that was raised
            model_id: Model the call was made against

        Returns:
            TransportError with classified error
        """
        classified = ErrorClassifier.classify_error(error=error, model_id=model_id)
        return TransportError(
            classified_error=classified,
            original_exception=error,
        )
