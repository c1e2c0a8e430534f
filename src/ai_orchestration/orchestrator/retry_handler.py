"""Retry mechanism with configurable backoff."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from ai_orchestration.config.settings import BackoffStrategy, RetryConfig
from ai_orchestration.exceptions import StructuralError
from ai_orchestration.orchestrator.error_classifier import extract_status_code

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RetryCondition = Callable[[BaseException, int], bool]
RetryHook = Callable[[BaseException, int], Any]

CREDENTIAL_FAILURE_MARKERS = (
    "invalid api key",
    "incorrect api key",
    "api key expired",
    "expired api key",
    "token expired",
    "expired token",
    "invalid credentials",
    "unauthorized",
)


def default_retry_condition(error: BaseException, attempt: int) -> bool:
    """Retry transient failures; give up on bad requests and bad credentials."""
    status = extract_status_code(error)
    if status == 400 or status in (401, 403):
        return False

    message = str(error).lower()
    if status is None and any(marker in message for marker in CREDENTIAL_FAILURE_MARKERS):
        return False

    # 429, 5xx, resets and timeouts all retry, as does anything unrecognized
    return True


class RetryOptions(BaseModel):
    """Per-call retry settings. Delays are in milliseconds."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_retries: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    initial_delay: float = Field(default=1000, gt=0)
    max_delay: float = Field(default=30000, gt=0)
    jitter: bool = True
    retry_condition: Optional[RetryCondition] = None
    on_retry: Optional[RetryHook] = None

    @classmethod
    def from_config(cls, config: RetryConfig, **overrides) -> "RetryOptions":
        values = config.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class BackoffPolicy:
    """Computes the delay before retry ``k`` (0-based).

    Instances are also tenacity wait callables returning seconds.
    """

    def __init__(
        self,
        strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL,
        initial_delay: float = 1000,
        max_delay: float = 30000,
        jitter: bool = True,
        rng: Callable[[], float] = random.random,
    ):
        self.strategy = BackoffStrategy(strategy)
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng

    @classmethod
    def from_options(cls, options: RetryOptions, rng: Callable[[], float] = random.random) -> "BackoffPolicy":
        return cls(options.backoff, options.initial_delay, options.max_delay, options.jitter, rng)

    def base_delay(self, attempt: int) -> float:
        """Delay in ms before jitter."""
        if self.strategy == BackoffStrategy.EXPONENTIAL:
            return min(self.initial_delay * (2**attempt), self.max_delay)
        if self.strategy == BackoffStrategy.LINEAR:
            return min(self.initial_delay * (attempt + 1), self.max_delay)
        return self.initial_delay

    def delay(self, attempt: int) -> float:
        """Delay in ms; jitter scales it into [50%, 100%] of the base."""
        delay = self.base_delay(attempt)
        if self.jitter:
            delay *= 0.5 + self._rng() * 0.5
        return delay

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.delay(retry_state.attempt_number - 1) / 1000.0


class RetryMechanism:
    """Runs an async operation until it succeeds, the condition refuses or attempts run out."""

    def __init__(
        self,
        defaults: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.defaults = defaults or RetryConfig()
        self._sleep = sleep
        self._rng = rng

    def resolve_options(self, options: Optional[RetryOptions] = None) -> RetryOptions:
        return options or RetryOptions.from_config(self.defaults)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        options: Optional[RetryOptions] = None,
    ) -> T:
        """Execute ``operation`` with retry logic and return its result.

        The last failure is re-raised unchanged once retrying stops.
        """
        options = self.resolve_options(options)
        condition = options.retry_condition or default_retry_condition

        def should_retry(retry_state: RetryCallState) -> bool:
            outcome = retry_state.outcome
            if outcome is None or not outcome.failed:
                return False
            error = outcome.exception()
            if isinstance(error, StructuralError):
                return False
            return bool(condition(error, retry_state.attempt_number - 1))

        def before_sleep(retry_state: RetryCallState):
            error = retry_state.outcome.exception()
            attempt = retry_state.attempt_number - 1
            logger.warning(
                "Retrying operation",
                attempt=retry_state.attempt_number,
                max_retries=options.max_retries,
                delay=retry_state.upcoming_sleep,
                error=str(error),
            )
            if options.on_retry:
                options.on_retry(error, attempt)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(options.max_retries),
            wait=BackoffPolicy.from_options(options, self._rng),
            retry=should_retry,
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                return await operation()

        # This should never be reached
        raise RuntimeError("Retry loop completed without returning")
