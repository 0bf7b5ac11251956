"""Error classification for inference backend failures.

This module classifies errors raised while calling a text-generation model
so the generation client can decide whether another attempt on the same
model is worthwhile and how loudly to log the failure.
"""

import re
from enum import Enum
from typing import List


class ErrorCategory(Enum):
    """Categories of backend errors."""

    RATE_LIMIT = "rate_limit"  # Rate limit/throttling errors
    AUTHENTICATION = "authentication"  # API key invalid or expired
    INVALID_REQUEST = "invalid_request"  # Malformed request or invalid parameters
    SERVER_ERROR = "server_error"  # Backend server errors (5xx)
    NETWORK_ERROR = "network_error"  # Connection/timeout errors
    MODEL_ERROR = "model_error"  # Model not found or not pulled
    UNKNOWN = "unknown"  # Unclassified errors


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    CRITICAL = "critical"  # Every model will fail the same way (e.g., auth)
    HIGH = "high"  # Important but not blocking (e.g., rate limits)
    MEDIUM = "medium"  # Should be addressed (e.g., invalid requests)
    LOW = "low"  # Informational (e.g., temporary network issues)


class ClassifiedError:
    """A classified backend error with category and severity."""

    def __init__(
        self,
        category: ErrorCategory,
        severity: ErrorSeverity,
        model_id: str,
        original_error: str,
        message: str,
        is_retryable: bool = False,
    ):
        """Initialize classified error.

        Args:
            category: Error category
            severity: Error severity level
            model_id: Model the failed call was made against
            original_error: Original error type name
            message: Human-readable error message
            is_retryable: Whether the error is transient and retryable
        """
        self.category = category
        self.severity = severity
        self.model_id = model_id
        self.original_error = original_error
        self.message = message
        self.is_retryable = is_retryable

    def __str__(self) -> str:
        """String representation of classified error."""
        return (
            f"[{self.severity.value.upper()}] {self.model_id}: "
            f"{self.category.value} - {self.message}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "model_id": self.model_id,
            "original_error": self.original_error,
            "message": self.message,
            "is_retryable": self.is_retryable,
        }


class ErrorClassifier:
    """Classifies errors from OpenAI-compatible inference backends."""

    # Patterns for rate limit errors
    RATE_LIMIT_PATTERNS = [
        r"rate.*limit",
        r"too.*many.*requests",
        r"throttl",
        r"429",  # Too Many Requests HTTP status
    ]

    # Patterns for authentication errors
    AUTH_PATTERNS = [
        r"invalid.*api.*key",
        r"authentication.*failed",
        r"unauthorized",
        r"401",  # Unauthorized HTTP status
        r"403",  # Forbidden HTTP status
        r"invalid.*credentials",
    ]

    # Patterns for model errors
    MODEL_PATTERNS = [
        r"model.*not.*found",
        r"invalid.*model",
        r"model.*unavailable",
        r"try pulling it first",  # Ollama: model not pulled
        r"404",
    ]

    # Patterns for server errors
    SERVER_ERROR_PATTERNS = [
        r"internal.*server.*error",
        r"service.*unavailable",
        r"50[0-9]",  # 5xx HTTP status codes
        r"server.*error",
        r"out of memory",
    ]

    # Patterns for network errors
    NETWORK_PATTERNS = [
        r"connection.*error",
        r"timeout",
        r"timed out",
        r"network.*error",
        r"connection.*refused",
        r"connection.*reset",
    ]

    # Exception type names that are always network errors
    NETWORK_ERROR_TYPES = {
        "TimeoutError",
        "APITimeoutError",
        "APIConnectionError",
        "ConnectError",
        "ReadTimeout",
    }

    @staticmethod
    def classify_error(error: Exception, model_id: str) -> ClassifiedError:
        """Classify a backend error.

        Args:
            error: The exception that was raised
            model_id: Model the call was made against

        Returns:
            ClassifiedError with category and severity
        """
        error_str = str(error).lower()
        error_type = type(error).__name__

        # Timeouts and connection failures, whatever their message says
        if error_type in ErrorClassifier.NETWORK_ERROR_TYPES:
            return ClassifiedError(
                category=ErrorCategory.NETWORK_ERROR,
                severity=ErrorSeverity.LOW,
                model_id=model_id,
                original_error=error_type,
                message="Backend timed out or could not be reached.",
                is_retryable=True,
            )

        # Check for authentication errors (CRITICAL)
        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.AUTH_PATTERNS):
            return ClassifiedError(
                category=ErrorCategory.AUTHENTICATION,
                severity=ErrorSeverity.CRITICAL,
                model_id=model_id,
                original_error=error_type,
                message=(
                    "Authentication failed. Please verify the inference API key "
                    "is valid."
                ),
                is_retryable=False,
            )

        # Check for rate limit errors (HIGH - retryable)
        if ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.RATE_LIMIT_PATTERNS
        ):
            return ClassifiedError(
                category=ErrorCategory.RATE_LIMIT,
                severity=ErrorSeverity.HIGH,
                model_id=model_id,
                original_error=error_type,
                message="Rate limit exceeded. Consider reducing concurrent domains.",
                is_retryable=True,
            )

        # Check for model errors (MEDIUM)
        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.MODEL_PATTERNS):
            return ClassifiedError(
                category=ErrorCategory.MODEL_ERROR,
                severity=ErrorSeverity.MEDIUM,
                model_id=model_id,
                original_error=error_type,
                message=f"Model '{model_id}' is not available on the backend.",
                is_retryable=False,
            )

        # Check for server errors (MEDIUM - retryable)
        if ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.SERVER_ERROR_PATTERNS
        ):
            return ClassifiedError(
                category=ErrorCategory.SERVER_ERROR,
                severity=ErrorSeverity.MEDIUM,
                model_id=model_id,
                original_error=error_type,
                message="Backend server error. This may be temporary.",
                is_retryable=True,
            )

        # Check for network errors (LOW - retryable)
        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.NETWORK_PATTERNS):
            return ClassifiedError(
                category=ErrorCategory.NETWORK_ERROR,
                severity=ErrorSeverity.LOW,
                model_id=model_id,
                original_error=error_type,
                message="Network connectivity issue. This may be temporary.",
                is_retryable=True,
            )

        # Check for invalid request errors
        if "invalid" in error_str or "bad request" in error_str or "400" in error_str:
            return ClassifiedError(
                category=ErrorCategory.INVALID_REQUEST,
                severity=ErrorSeverity.MEDIUM,
                model_id=model_id,
                original_error=error_type,
                message="Invalid request to backend. Check request parameters.",
                is_retryable=False,
            )

        # Unknown error
        return ClassifiedError(
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.MEDIUM,
            model_id=model_id,
            original_error=error_type,
            message=f"Unclassified backend error: {str(error)[:100]}",
            is_retryable=True,
        )

    @staticmethod
    def _match_patterns(text: str, patterns: List[str]) -> bool:
        """Check if text matches any of the given regex patterns.

        Args:
            text: Text to search
            patterns: List of regex patterns

        Returns:
            True if any pattern matches
        """
        for pattern in patterns:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        return False
