"""Tests for backend error classification."""

import pytest

from neuroreport.error_classifier import (
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    ErrorSeverity,
)


class TestErrorClassifier:
    """Tests for ErrorClassifier.classify_error."""

    def test_timeout_type_is_network_error(self):
        """Test that timeouts are network errors regardless of message."""
        result = ErrorClassifier.classify_error(TimeoutError("401"), "gemma3:4b")

        assert result.category == ErrorCategory.NETWORK_ERROR
        assert result.is_retryable is True
        assert result.model_id == "gemma3:4b"
        assert result.original_error == "TimeoutError"

    @pytest.mark.parametrize(
        "message,category,severity,retryable",
        [
            ("Invalid API key provided", ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL, False),
            ("Rate limit reached", ErrorCategory.RATE_LIMIT, ErrorSeverity.HIGH, True),
            ("Error code: 429", ErrorCategory.RATE_LIMIT, ErrorSeverity.HIGH, True),
            ("model \"x\" not found, try pulling it first", ErrorCategory.MODEL_ERROR, ErrorSeverity.MEDIUM, False),
            ("Internal server error", ErrorCategory.SERVER_ERROR, ErrorSeverity.MEDIUM, True),
            ("llama runner: out of memory", ErrorCategory.SERVER_ERROR, ErrorSeverity.MEDIUM, True),
            ("Connection reset by peer", ErrorCategory.NETWORK_ERROR, ErrorSeverity.LOW, True),
            ("Bad request: temperature", ErrorCategory.INVALID_REQUEST, ErrorSeverity.MEDIUM, False),
        ],
    )
    def test_message_patterns(self, message, category, severity, retryable):
        result = ErrorClassifier.classify_error(RuntimeError(message), "m")

        assert result.category == category
        assert result.severity == severity
        assert result.is_retryable is retryable

    def test_unknown_error_is_retryable(self):
        result = ErrorClassifier.classify_error(RuntimeError("something odd"), "m")

        assert result.category == ErrorCategory.UNKNOWN
        assert result.is_retryable is True
        assert "something odd" in result.message


class TestClassifiedError:
    """Tests for ClassifiedError."""

    def test_str_and_dict(self):
        error = ClassifiedError(
            category=ErrorCategory.RATE_LIMIT,
            severity=ErrorSeverity.HIGH,
            model_id="qwen3:8b",
            original_error="RateLimitError",
            message="Rate limit exceeded.",
            is_retryable=True,
        )

        assert str(error) == "[HIGH] qwen3:8b: rate_limit - Rate limit exceeded."
        assert error.to_dict() == {
            "category": "rate_limit",
            "severity": "high",
            "model_id": "qwen3:8b",
            "original_error": "RateLimitError",
            "message": "Rate limit exceeded.",
            "is_retryable": True,
        }
