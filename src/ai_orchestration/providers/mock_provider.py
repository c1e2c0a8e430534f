"""Mock provider for testing."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Optional

from ai_orchestration.exceptions import ProviderError
from ai_orchestration.providers.base import BaseProvider, GenerateOptions


class MockProvider(BaseProvider):
    """Mock provider for testing without real API calls.

    ``fail_times`` makes the next N calls raise (``error_factory`` decides
    what); ``should_fail`` makes every call raise.
    """

    def __init__(
        self,
        name: str = "mock",
        delay: float = 0.0,
        responses: Optional[dict[str, str]] = None,
        should_fail: bool = False,
        fail_times: int = 0,
        error_factory: Optional[Callable[[], Exception]] = None,
        stream_failure_after: Optional[int] = None,
    ):
        self.name = name
        self.delay = delay
        self.responses = dict(responses or {})
        self.should_fail = should_fail
        self.fail_times = fail_times
        self.error_factory = error_factory or (
            lambda: ProviderError("Mock provider error", provider=self.name, status_code=503)
        )
        self.stream_failure_after = stream_failure_after
        self.calls: list[tuple[str, Optional[GenerateOptions]]] = []

    def configure(
        self,
        delay: Optional[float] = None,
        should_fail: Optional[bool] = None,
        responses: Optional[dict[str, str]] = None,
    ):
        if delay is not None:
            self.delay = delay
        if should_fail is not None:
            self.should_fail = should_fail
        if responses:
            self.responses.update(responses)

    def _maybe_fail(self):
        if self.should_fail:
            raise self.error_factory()
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error_factory()

    async def generate_text(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        """Generate mock completion."""
        self.calls.append((prompt, options))
        if self.delay:
            await asyncio.sleep(self.delay)  # Simulate API delay

        self._maybe_fail()

        if prompt in self.responses:
            return self.responses[prompt]

        model = options.model if options and options.model else "default"
        return f"Mock response from {self.name}/{model} to: {prompt[:50]}"

    async def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:
        """Stream mock completion."""
        response = await self.generate_text(prompt, options)

        for index, word in enumerate(response.split()):
            if self.stream_failure_after is not None and index >= self.stream_failure_after:
                raise ProviderError("Stream interrupted", provider=self.name, code="ECONNRESET")
            if self.delay:
                await asyncio.sleep(self.delay / 2)  # Simulate streaming delay
            yield word + " "
