"""Unit tests for error classification and enrichment."""

from types import SimpleNamespace

import pytest

from ai_orchestration.exceptions import EnrichedError, ProviderError
from ai_orchestration.orchestrator.error_classifier import (
    FALLBACK_RECOMMENDATION,
    ErrorCategory,
    ErrorClassifier,
    ErrorContext,
)


class HTTPStatusFailure(Exception):
    """Error shaped like an HTTP client failure with a response object."""

    def __init__(self, message, status_code):
        super().__init__(message)
        self.response = SimpleNamespace(status_code=status_code)


@pytest.fixture
def classifier():
    return ErrorClassifier()


class TestClassification:
    """Test suite for structured and heuristic classification."""

    @pytest.mark.parametrize(
        "status,category",
        [
            (401, ErrorCategory.AUTHENTICATION),
            (403, ErrorCategory.AUTHENTICATION),
            (429, ErrorCategory.RATE_LIMIT),
            (402, ErrorCategory.BILLING),
            (500, ErrorCategory.SERVER_ERROR),
            (503, ErrorCategory.SERVER_ERROR),
            (400, ErrorCategory.VALIDATION),
            (422, ErrorCategory.VALIDATION),
        ],
    )
    def test_status_codes(self, classifier, status, category):
        """Test HTTP statuses decide the category."""
        assert classifier.classify(ProviderError("failure", status_code=status)) == category

    def test_status_beats_message(self, classifier):
        """Test a structured status wins over a misleading message."""
        error = ProviderError("network hiccup while authenticating", status_code=429)

        assert classifier.classify(error) == ErrorCategory.RATE_LIMIT

    def test_response_status(self, classifier):
        """Test the status is read from an attached response."""
        assert classifier.classify(HTTPStatusFailure("denied", 401)) == ErrorCategory.AUTHENTICATION

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionResetError("reset"),
            TimeoutError(),
            ProviderError("socket closed", code="ECONNRESET"),
            ProviderError("socket closed", code="ETIMEDOUT"),
        ],
    )
    def test_network_failures(self, classifier, error):
        """Test transport failures are network errors."""
        assert classifier.classify(error) == ErrorCategory.NETWORK

    @pytest.mark.parametrize(
        "message,category",
        [
            ("401 Unauthorized", ErrorCategory.AUTHENTICATION),
            ("Invalid API key", ErrorCategory.AUTHENTICATION),
            ("Rate limit reached", ErrorCategory.RATE_LIMIT),
            ("You exceeded your current quota", ErrorCategory.BILLING),
            ("Internal server error", ErrorCategory.SERVER_ERROR),
            ("Network unreachable", ErrorCategory.NETWORK),
            ("Request timeout", ErrorCategory.NETWORK),
            ("Validation failed for field", ErrorCategory.VALIDATION),
            ("Something odd", ErrorCategory.UNKNOWN),
        ],
    )
    def test_message_fallback(self, classifier, message, category):
        """Test message heuristics apply when no structure is available."""
        assert classifier.classify(Exception(message)) == category


class TestEnrichment:
    """Test suite for enriched errors and statistics."""

    def test_enrich_wraps_cause(self, classifier):
        """Test the enriched error carries classification and the original error."""
        original = ProviderError("slow down", status_code=429)
        enriched = classifier.enrich(original, ErrorContext(provider="openai", operation="generate_text"))

        assert isinstance(enriched, EnrichedError)
        assert enriched.cause is original
        assert enriched.category == "rate-limit"
        assert enriched.error_code == "RATE_LIMIT"
        assert enriched.is_retryable is True
        assert enriched.user_message
        assert FALLBACK_RECOMMENDATION not in enriched.recommendations
        assert enriched.context["provider"] == "openai"

    def test_enriched_error_is_read_only(self, classifier):
        """Test enriched fields cannot be reassigned or mutated through views."""
        enriched = classifier.enrich(ProviderError("bad", status_code=400), ErrorContext("openai", "generate_text"))

        with pytest.raises(AttributeError):
            enriched.category = "unknown"
        enriched.recommendations.append("extra")
        assert "extra" not in enriched.recommendations
        assert enriched.is_retryable is False

    def test_fallback_recommendation_after_repeated_attempts(self, classifier):
        """Test a fallback provider is suggested past the second attempt."""
        enriched = classifier.enrich(
            ProviderError("down", status_code=503), ErrorContext("openai", "generate_text", attempt=3)
        )

        assert enriched.recommendations[-1] == FALLBACK_RECOMMENDATION

    def test_stats_and_resolution(self, classifier):
        """Test statistics group by category and provider and track resolution."""
        classifier.enrich(ProviderError("a", status_code=429), ErrorContext("openai", "generate_text"))
        classifier.enrich(ProviderError("b", status_code=429), ErrorContext("openai", "generate_text"))
        classifier.enrich(ProviderError("c", status_code=500), ErrorContext("anthropic", "generate_text"))

        assert classifier.resolve_provider("openai") == 2
        stats = classifier.stats()

        assert stats.total == 3
        assert stats.by_category == {"rate-limit": 2, "server-error": 1}
        assert stats.by_provider == {"openai": 2, "anthropic": 1}
        assert stats.resolution_rate == pytest.approx(2 / 3)

    def test_stats_time_window(self):
        """Test only records inside the window are counted."""
        now = [1000.0]
        classifier = ErrorClassifier(clock=lambda: now[0])

        classifier.enrich(Exception("old"), ErrorContext("openai", "generate_text"))
        now[0] += 120
        classifier.enrich(Exception("new"), ErrorContext("openai", "generate_text"))

        assert classifier.stats(time_window=60).total == 1
        assert classifier.stats().total == 2

    def test_resolve_single_record(self, classifier):
        """Test a single record can be marked resolved by id."""
        classifier.enrich(Exception("x"), ErrorContext("openai", "generate_text"))
        record = classifier.history[0]

        assert classifier.resolve(record.id) is True
        assert classifier.resolve("missing") is False
        assert classifier.history[0].resolved is True

    def test_history_trimming(self):
        """Test history is trimmed to the newest 500 after 1000 records."""
        classifier = ErrorClassifier()
        for i in range(1001):
            classifier.enrich(Exception(f"error {i}"), ErrorContext("openai", "generate_text"))

        history = classifier.history
        assert len(history) == 500
        assert str(history[-1].error) == "error 1000"
