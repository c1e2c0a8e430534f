"""Error categorization, enrichment and windowed error statistics."""

import asyncio
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from ai_orchestration.exceptions import EnrichedError

logger = structlog.get_logger(__name__)

NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ETIMEDOUT", "ECONNREFUSED", "ECONNABORTED", "EPIPE", "ENOTFOUND"})


class ErrorCategory(str, Enum):
    """Failure taxonomy for provider calls."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate-limit"
    BILLING = "billing"
    SERVER_ERROR = "server-error"
    NETWORK = "network"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.AUTHENTICATION: "API key is invalid or missing. Please check your settings.",
    ErrorCategory.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ErrorCategory.BILLING: "Billing or quota issue. Please check your account.",
    ErrorCategory.SERVER_ERROR: "The AI service is temporarily unavailable. Please try again later.",
    ErrorCategory.NETWORK: "Network connection issue. Please check your internet connection.",
    ErrorCategory.VALIDATION: "Invalid request. Please check your input and try again.",
    ErrorCategory.UNKNOWN: "An unexpected error occurred. Please try again.",
}

RECOMMENDATIONS: Dict[ErrorCategory, List[str]] = {
    ErrorCategory.AUTHENTICATION: [
        "Verify your API key in settings",
        "Ensure the API key has not expired",
        "Check if the API key has the required permissions",
    ],
    ErrorCategory.RATE_LIMIT: [
        "Enable request queuing in settings",
        "Increase the delay between requests",
        "Consider upgrading your API plan",
    ],
    ErrorCategory.BILLING: [
        "Check your account balance",
        "Review your usage limits",
        "Consider using a cheaper model",
    ],
    ErrorCategory.SERVER_ERROR: [
        "Retry the request after a short delay",
        "Check the provider status page",
    ],
    ErrorCategory.NETWORK: [
        "Check your internet connection",
        "Try using a different network",
        "Check if the service is blocked by firewall",
    ],
    ErrorCategory.VALIDATION: [
        "Check the prompt and generation options",
        "Reduce the request size if it exceeds the model context window",
    ],
    ErrorCategory.UNKNOWN: [],
}

FALLBACK_RECOMMENDATION = "Consider using a fallback provider"

RETRYABLE_CATEGORIES = frozenset({ErrorCategory.RATE_LIMIT, ErrorCategory.SERVER_ERROR, ErrorCategory.NETWORK})


def extract_status_code(error: BaseException) -> Optional[int]:
    """HTTP status carried by an error, from adapter attributes or an HTTP response."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    code = getattr(error, "code", None)
    if isinstance(code, int) and not isinstance(code, bool) and 100 <= code <= 599:
        return code
    return None


def extract_error_code(error: BaseException) -> Optional[str]:
    """Transport error code (``ECONNRESET``...) carried by an error, if any."""
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code.upper()
    return None


def is_network_failure(error: BaseException) -> bool:
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    return extract_error_code(error) in NETWORK_ERROR_CODES


@dataclass
class ErrorContext:
    """Where a failure happened."""

    provider: str
    operation: str
    attempt: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "operation": self.operation,
            "attempt": self.attempt,
            "metadata": dict(self.metadata),
        }


@dataclass
class ErrorRecord:
    """One classified failure kept in the bounded history."""

    id: str
    timestamp: float
    error: BaseException
    context: ErrorContext
    category: ErrorCategory
    resolved: bool = False


@dataclass
class ErrorStats:
    total: int
    by_category: Dict[str, int]
    by_provider: Dict[str, int]
    resolution_rate: float


class ErrorClassifier:
    """Maps raw failures to a category, user message and recommendations.

    Status codes and transport error codes decide first; message substrings
    are only a fallback for adapters that do not expose structured details.
    """

    def __init__(self, max_history: int = 1000, trim_to: int = 500, clock=time.time):
        self.max_history = max_history
        self.trim_to = trim_to
        self._clock = clock
        self._history: List[ErrorRecord] = []

    def classify(self, error: BaseException) -> ErrorCategory:
        status = extract_status_code(error)
        if status is not None:
            if status in (401, 403):
                return ErrorCategory.AUTHENTICATION
            if status == 429:
                return ErrorCategory.RATE_LIMIT
            if status == 402:
                return ErrorCategory.BILLING
            if status >= 500:
                return ErrorCategory.SERVER_ERROR
            if status in (400, 422):
                return ErrorCategory.VALIDATION

        if is_network_failure(error):
            return ErrorCategory.NETWORK

        return self._classify_message(str(error).lower())

    @staticmethod
    def _classify_message(message: str) -> ErrorCategory:
        if "unauthorized" in message or "api key" in message:
            return ErrorCategory.AUTHENTICATION
        if "rate limit" in message or "too many requests" in message:
            return ErrorCategory.RATE_LIMIT
        if "quota" in message or "billing" in message:
            return ErrorCategory.BILLING
        if "internal server" in message or "service unavailable" in message:
            return ErrorCategory.SERVER_ERROR
        if "network" in message or "timeout" in message or "timed out" in message:
            return ErrorCategory.NETWORK
        if "invalid" in message or "validation" in message:
            return ErrorCategory.VALIDATION
        return ErrorCategory.UNKNOWN

    def is_retryable(self, error: BaseException) -> bool:
        return self.classify(error) in RETRYABLE_CATEGORIES

    def recommendations(self, category: ErrorCategory, context: ErrorContext) -> List[str]:
        recommendations = list(RECOMMENDATIONS[category])
        if context.attempt > 2:
            recommendations.append(FALLBACK_RECOMMENDATION)
        return recommendations

    def enrich(self, error: BaseException, context: ErrorContext) -> EnrichedError:
        """Record the failure and return a new error value carrying its classification."""
        category = self.classify(error)
        self._record(error, context, category)

        enriched = EnrichedError(
            cause=error,
            category=category.value,
            user_message=USER_MESSAGES[category],
            is_retryable=category in RETRYABLE_CATEGORIES,
            recommendations=self.recommendations(category, context),
            context=context.as_dict(),
        )
        logger.warning(
            "Provider failure classified",
            category=category.value,
            provider=context.provider,
            operation=context.operation,
            attempt=context.attempt,
            error=str(error),
        )
        return enriched

    def _record(self, error: BaseException, context: ErrorContext, category: ErrorCategory) -> ErrorRecord:
        record = ErrorRecord(
            id=str(uuid.uuid4()),
            timestamp=self._clock(),
            error=error,
            context=context,
            category=category,
        )
        self._history.append(record)
        if len(self._history) > self.max_history:
            self._history = self._history[-self.trim_to :]
        return record

    @property
    def history(self) -> List[ErrorRecord]:
        return list(self._history)

    def resolve(self, record_id: str) -> bool:
        for record in self._history:
            if record.id == record_id:
                record.resolved = True
                return True
        return False

    def resolve_provider(self, provider: str) -> int:
        """Mark every unresolved failure of ``provider`` as resolved."""
        resolved = 0
        for record in self._history:
            if not record.resolved and record.context.provider == provider:
                record.resolved = True
                resolved += 1
        return resolved

    def stats(self, time_window: Optional[float] = None) -> ErrorStats:
        """Counts by category/provider and resolution rate over the last ``time_window`` seconds."""
        cutoff = self._clock() - time_window if time_window else float("-inf")
        relevant = [record for record in self._history if record.timestamp > cutoff]

        by_category = Counter(record.category.value for record in relevant)
        by_provider = Counter(record.context.provider for record in relevant)
        resolved = sum(1 for record in relevant if record.resolved)

        return ErrorStats(
            total=len(relevant),
            by_category=dict(by_category),
            by_provider=dict(by_provider),
            resolution_rate=resolved / len(relevant) if relevant else 0.0,
        )
