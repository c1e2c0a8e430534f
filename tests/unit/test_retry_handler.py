"""Unit tests for the retry mechanism and backoff policy."""

import pytest

from ai_orchestration.config.settings import BackoffStrategy, RetryConfig
from ai_orchestration.exceptions import ConnectionTimeoutError, ProviderError
from ai_orchestration.orchestrator.retry_handler import (
    BackoffPolicy,
    RetryMechanism,
    RetryOptions,
    default_retry_condition,
)


class FlakyOperation:
    """Fails a fixed number of times before returning ``"ok"``."""

    def __init__(self, failures, error_factory=None):
        self.failures = failures
        self.calls = 0
        self.error_factory = error_factory or (lambda: ProviderError("upstream down", status_code=503))

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return "ok"


class TestBackoffPolicy:
    """Test suite for delay computation."""

    def test_exponential_delays(self):
        """Test exponential delays double and cap at max_delay."""
        policy = BackoffPolicy(BackoffStrategy.EXPONENTIAL, initial_delay=1000, max_delay=5000, jitter=False)

        assert [policy.delay(k) for k in range(5)] == [1000, 2000, 4000, 5000, 5000]

    def test_linear_delays(self):
        """Test linear delays grow by initial_delay and cap at max_delay."""
        policy = BackoffPolicy(BackoffStrategy.LINEAR, initial_delay=1000, max_delay=2500, jitter=False)

        assert [policy.delay(k) for k in range(4)] == [1000, 2000, 2500, 2500]

    def test_fixed_delays(self):
        """Test fixed delays stay constant."""
        policy = BackoffPolicy(BackoffStrategy.FIXED, initial_delay=750, max_delay=30000, jitter=False)

        assert {policy.delay(k) for k in range(5)} == {750}

    @pytest.mark.parametrize("attempt", range(6))
    def test_jitter_bounds(self, attempt):
        """Test jittered delay stays within half and all of the base delay."""
        low = BackoffPolicy(initial_delay=1000, max_delay=30000, jitter=True, rng=lambda: 0.0)
        high = BackoffPolicy(initial_delay=1000, max_delay=30000, jitter=True, rng=lambda: 0.999999)
        base = low.base_delay(attempt)

        assert low.delay(attempt) == pytest.approx(base * 0.5)
        assert base * 0.5 <= high.delay(attempt) <= base


class TestDefaultRetryCondition:
    """Test suite for the default retry decision."""

    def test_bad_request_not_retried(self):
        """Test 400 responses are final."""
        assert default_retry_condition(ProviderError("bad request", status_code=400), 0) is False

    def test_credential_failures_not_retried(self):
        """Test invalid or expired credentials are final."""
        assert default_retry_condition(ProviderError("auth", status_code=401), 0) is False
        assert default_retry_condition(Exception("Invalid API key provided"), 0) is False
        assert default_retry_condition(Exception("token expired"), 0) is False

    @pytest.mark.parametrize(
        "error",
        [
            ProviderError("slow down", status_code=429),
            ProviderError("oops", status_code=502),
            ProviderError("reset", code="ECONNRESET"),
            ConnectionResetError("reset by peer"),
            TimeoutError("timed out"),
            RuntimeError("something unexpected"),
        ],
    )
    def test_transient_failures_retried(self, error):
        """Test rate limits, server errors, network failures and unknown errors retry."""
        assert default_retry_condition(error, 0) is True


class TestRetryMechanism:
    """Test suite for retry execution."""

    @pytest.mark.asyncio
    async def test_success_after_failures(self, fake_sleep):
        """Test two failures then success returns the result and calls on_retry twice."""
        mechanism = RetryMechanism(RetryConfig(jitter=False), sleep=fake_sleep)
        operation = FlakyOperation(failures=2)
        retries = []

        result = await mechanism.execute_with_retry(
            operation,
            RetryOptions(max_retries=3, jitter=False, on_retry=lambda error, attempt: retries.append(attempt)),
        )

        assert result == "ok"
        assert operation.calls == 3
        assert retries == [0, 1]
        assert fake_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_attempts_reraise_last_error(self, fake_sleep):
        """Test the last failure surfaces once max_retries attempts have run."""
        mechanism = RetryMechanism(sleep=fake_sleep)
        operation = FlakyOperation(failures=10)

        with pytest.raises(ProviderError, match="upstream down"):
            await mechanism.execute_with_retry(operation, RetryOptions(max_retries=3))

        assert operation.calls == 3
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_condition_short_circuits(self, fake_sleep):
        """Test a refusing retry condition stops after the first attempt."""
        mechanism = RetryMechanism(sleep=fake_sleep)
        operation = FlakyOperation(failures=10)
        retries = []

        with pytest.raises(ProviderError):
            await mechanism.execute_with_retry(
                operation,
                RetryOptions(
                    retry_condition=lambda error, attempt: False,
                    on_retry=lambda error, attempt: retries.append(attempt),
                ),
            )

        assert operation.calls == 1
        assert retries == []
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_structural_errors_never_retried(self, fake_sleep):
        """Test pool timeouts bypass the retry condition."""
        mechanism = RetryMechanism(sleep=fake_sleep)
        operation = FlakyOperation(failures=10, error_factory=lambda: ConnectionTimeoutError("mock", 10.0))

        with pytest.raises(ConnectionTimeoutError):
            await mechanism.execute_with_retry(
                operation, RetryOptions(retry_condition=lambda error, attempt: True)
            )

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_defaults_from_config(self, fake_sleep):
        """Test configured defaults apply when no options are given."""
        mechanism = RetryMechanism(
            RetryConfig(max_retries=2, backoff=BackoffStrategy.FIXED, initial_delay=250, jitter=False),
            sleep=fake_sleep,
        )
        operation = FlakyOperation(failures=5)

        with pytest.raises(ProviderError):
            await mechanism.execute_with_retry(operation)

        assert operation.calls == 2
        assert fake_sleep.delays == [0.25]

    def test_options_validation(self):
        """Test invalid retry options are rejected."""
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            RetryOptions(max_retries=0)
        with pytest.raises(ValidationError):
            RetryOptions(initial_delay=-1)
