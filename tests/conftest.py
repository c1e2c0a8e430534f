"""Pytest configuration and fixtures."""

from typing import List

import pytest
import pytest_asyncio

from ai_orchestration.config.settings import PoolConfig, QueueConfig, RetryConfig, Settings
from ai_orchestration.providers.mock_provider import MockProvider


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    """Settings with short delays so retries and pool waits stay fast."""
    return Settings(
        _env_file=None,
        default_provider="mock",
        default_model="gpt-3.5-turbo",
        queue=QueueConfig(concurrency=3),
        retry=RetryConfig(max_retries=3, initial_delay=1, max_delay=10, jitter=False),
        pool=PoolConfig(wait_timeout=0.5, poll_interval=0.01),
    )


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider(name="mock")


@pytest_asyncio.fixture
async def orchestrator(settings, fake_sleep, mock_provider):
    """Orchestrator wired to a mock provider registered as ``mock``."""
    from ai_orchestration.orchestrator.orchestrator import Orchestrator, OrchestratorContext

    context = OrchestratorContext.from_settings(settings, sleep=fake_sleep)
    orchestrator = Orchestrator(context)
    orchestrator.register_provider("mock", mock_provider)
    yield orchestrator
    orchestrator.clear_queue()
    await orchestrator.context.queue.drain()
