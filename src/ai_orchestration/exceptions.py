"""Custom exceptions for the AI request orchestration core."""

from typing import Any, Dict, List, Optional


class OrchestrationError(Exception):
    """Base exception for the orchestration core."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}


class StructuralError(OrchestrationError):
    """Failure produced by the orchestration layer itself.

    Structural errors are surfaced to the caller immediately and are never
    offered to the retry mechanism.
    """


class ConnectionTimeoutError(StructuralError):
    """Connection pool stayed exhausted past the wait timeout."""

    def __init__(self, provider: str, timeout: float, **kwargs):
        super().__init__(
            f"Connection timeout for provider: {provider}",
            error_code="CONNECTION_TIMEOUT",
            **kwargs,
        )
        self.provider = provider
        self.timeout = timeout
        self.details["provider"] = provider
        self.details["timeout"] = timeout


class QueueCancelledError(StructuralError):
    """Task was cancelled while still pending dispatch."""

    def __init__(self, task_id: str, **kwargs):
        super().__init__(
            f"Queued task {task_id} was cancelled before dispatch",
            error_code="QUEUE_CANCELLED",
            **kwargs,
        )
        self.task_id = task_id
        self.details["task_id"] = task_id


class NoEligibleProviderError(OrchestrationError):
    """No provider/model candidate satisfied the optimization requirements."""

    def __init__(self, message: str = "No eligible provider", reasons: Optional[Dict[str, str]] = None):
        super().__init__(message, error_code="NO_ELIGIBLE_PROVIDER", details={"reasons": reasons or {}})
        self.reasons = reasons or {}


class ProviderNotConfiguredError(OrchestrationError):
    """No provider adapter is registered under the requested name."""

    def __init__(self, provider: Optional[str]):
        super().__init__(
            f"AI provider not configured: {provider}",
            error_code="PROVIDER_NOT_CONFIGURED",
            details={"provider": provider},
        )
        self.provider = provider


class ProviderError(OrchestrationError):
    """Failure reported by a provider adapter.

    Adapters should fill ``status_code`` (HTTP status) or ``code`` (transport
    error code such as ``ECONNRESET``) so that classification does not have to
    fall back to message matching.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, error_code="PROVIDER_ERROR", **kwargs)
        self.provider = provider
        self.status_code = status_code
        self.code = code
        if provider:
            self.details["provider"] = provider
        if status_code is not None:
            self.details["status_code"] = status_code


class EnrichedError(OrchestrationError):
    """Provider failure wrapped with classification metadata.

    Instances are created by the error classifier and never mutated afterwards;
    the original failure is kept as ``cause`` (and ``__cause__`` when raised
    with ``raise ... from``).
    """

    def __init__(
        self,
        cause: BaseException,
        category: str,
        user_message: str,
        is_retryable: bool,
        recommendations: List[str],
        context: Dict[str, Any],
    ):
        super().__init__(
            str(cause) or cause.__class__.__name__,
            error_code=category.upper().replace("-", "_"),
            details={"category": category, "context": dict(context)},
        )
        self._cause = cause
        self._category = category
        self._user_message = user_message
        self._is_retryable = is_retryable
        self._recommendations = tuple(recommendations)
        self._context = dict(context)

    @property
    def cause(self) -> BaseException:
        return self._cause

    @property
    def category(self) -> str:
        return self._category

    @property
    def user_message(self) -> str:
        return self._user_message

    @property
    def is_retryable(self) -> bool:
        return self._is_retryable

    @property
    def recommendations(self) -> List[str]:
        return list(self._recommendations)

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for UI and diagnostics surfaces."""
        return {
            "message": self.message,
            "category": self._category,
            "user_message": self._user_message,
            "is_retryable": self._is_retryable,
            "recommendations": list(self._recommendations),
            "context": dict(self._context),
        }


__all__ = [
    "OrchestrationError",
    "StructuralError",
    "ConnectionTimeoutError",
    "QueueCancelledError",
    "NoEligibleProviderError",
    "ProviderNotConfiguredError",
    "ProviderError",
    "EnrichedError",
]
