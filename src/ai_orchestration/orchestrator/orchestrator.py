"""Request orchestrator composing queue, retry, pool, monitoring and error handling."""

import asyncio
import re
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import structlog

from ai_orchestration.config.settings import Settings, get_settings
from ai_orchestration.exceptions import ProviderNotConfiguredError, StructuralError
from ai_orchestration.orchestrator.connection_pool import ConnectionPool
from ai_orchestration.orchestrator.context_manager import ContextStats, ContextWindowManager
from ai_orchestration.orchestrator.cost_optimizer import CostOptimizer, OptimizationRequirements
from ai_orchestration.orchestrator.debug_recorder import DebugRecorder
from ai_orchestration.orchestrator.error_classifier import ErrorClassifier, ErrorContext
from ai_orchestration.orchestrator.performance_monitor import PerformanceMonitor
from ai_orchestration.orchestrator.request_queue import Priority, RequestQueue, TaskMetadata
from ai_orchestration.orchestrator.retry_handler import RetryMechanism, RetryOptions
from ai_orchestration.providers.base import BaseProvider, ChatMessage, GenerateOptions
from ai_orchestration.telemetry.logger import OperationContext, setup_logging
from ai_orchestration.telemetry.metrics import MetricsCollector
from ai_orchestration.utils.token_counter import TokenManager

logger = structlog.get_logger(__name__)

SUMMARY_INSTRUCTIONS = {
    "bullet": "Create a bullet-point summary with key points",
    "paragraph": "Write a concise paragraph summary",
    "tldr": "Write a one-sentence TL;DR",
}

KEY_POINT_PATTERN = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")


@dataclass(frozen=True)
class ActiveConfig:
    """Provider and model used for the next request."""

    provider: str
    model: str


@dataclass
class UsageStats:
    tokens_used: int = 0
    requests_count: int = 0
    cost_estimate: float = 0.0
    last_reset: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrchestratorContext:
    """Every collaborator of the orchestrator, built once and passed explicitly."""

    settings: Settings
    metrics: MetricsCollector
    queue: RequestQueue
    retry: RetryMechanism
    pool: ConnectionPool
    token_manager: TokenManager
    cost_optimizer: CostOptimizer
    performance: PerformanceMonitor
    errors: ErrorClassifier
    debug: DebugRecorder
    context_manager: ContextWindowManager

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> "OrchestratorContext":
        settings = settings or get_settings()
        metrics = metrics or MetricsCollector()
        token_manager = TokenManager()
        debug = DebugRecorder(max_events=settings.debug.max_events, trim_to=settings.debug.max_events // 2)

        def on_queue_change(depth: int):
            debug.log("queue", f"Queue size: {depth}")
            metrics.record_queue(depth, queue.active_count)

        queue = RequestQueue(concurrency=settings.queue.concurrency, on_queue_change=on_queue_change)

        return cls(
            settings=settings,
            metrics=metrics,
            queue=queue,
            retry=RetryMechanism(settings.retry, sleep=sleep),
            pool=ConnectionPool(settings.pool, metrics=metrics),
            token_manager=token_manager,
            cost_optimizer=CostOptimizer(token_manager, rate_limits=settings.rate_limits),
            performance=PerformanceMonitor(),
            errors=ErrorClassifier(),
            debug=debug,
            context_manager=ContextWindowManager(token_manager),
        )


class Orchestrator:
    """Single entry point for provider calls.

    Every ``generate_text`` call is queued by priority, measured, retried on
    transient failures while holding a pooled connection, and on final
    failure raised as an ``EnrichedError`` chained to the original error.
    """

    def __init__(self, context: Optional[OrchestratorContext] = None):
        self.context = context or OrchestratorContext.from_settings()
        settings = self.context.settings
        self._providers: Dict[str, BaseProvider] = {}
        self._config = ActiveConfig(settings.default_provider, settings.default_model)
        self._usage = UsageStats()

        if settings.debug.enabled:
            self.context.debug.enable(settings.debug.filters, settings.debug.log_to_console)

    # Provider registry

    def register_provider(self, name: str, provider: BaseProvider):
        self._providers[name] = provider
        logger.info("Provider registered", provider=name)

    def configure(self, provider: str, model: Optional[str] = None):
        """Switch the active provider (and model) for subsequent requests."""
        self._config = ActiveConfig(provider, model or self._config.model)
        logger.info("Active provider configured", provider=provider, model=self._config.model)

    @property
    def active_config(self) -> ActiveConfig:
        return self._config

    def _provider_for(self, name: str) -> BaseProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotConfiguredError(name)
        return provider

    @staticmethod
    def _with_model(options: Optional[GenerateOptions], model: str) -> GenerateOptions:
        options = options.model_copy() if options else GenerateOptions()
        if not options.model:
            options.model = model
        return options

    # Generation

    async def generate_text(
        self,
        prompt: str,
        options: Optional[GenerateOptions] = None,
        priority: int = Priority.NORMAL,
    ) -> str:
        """Queue a text generation and wait for its result.

        Raises:
            ProviderNotConfiguredError: no adapter registered for the active provider.
            EnrichedError: the provider call failed after retries.
            StructuralError: queue cancellation or pool timeout, unchanged.
        """
        return await self._submit(prompt, options, priority, self._config)

    async def _submit(
        self,
        prompt: str,
        options: Optional[GenerateOptions],
        priority: int,
        config: ActiveConfig,
    ) -> str:
        provider = self._provider_for(config.provider)
        options = self._with_model(options, config.model)
        tokens = self.context.token_manager.count(prompt, options.model)

        return await self.context.queue.submit(
            lambda: self._generate(provider, config.provider, prompt, options, tokens),
            priority,
            TaskMetadata(provider=config.provider, estimated_tokens=tokens),
        )

    async def _generate(
        self,
        provider: BaseProvider,
        provider_name: str,
        prompt: str,
        options: GenerateOptions,
        tokens: int,
    ) -> str:
        ctx = self.context
        operation_id = f"generate_text-{uuid.uuid4()}"
        attempts = 0

        async def attempt() -> str:
            nonlocal attempts
            attempts += 1
            async with ctx.pool.connection(provider_name):
                return await provider.generate_text(prompt, options)

        def on_retry(error: BaseException, attempt_index: int):
            ctx.metrics.record_retry(provider_name)
            ctx.debug.log("retry", f"Retrying after error: {error}", {"attempt": attempt_index + 1})

        with OperationContext(operation_id, provider_name):
            ctx.performance.start(operation_id, {"provider": provider_name, "model": options.model, "tokens": tokens})
            ctx.debug.log_request(provider_name, "generate_text", {"model": options.model, "prompt": prompt})

            try:
                result = await ctx.retry.execute_with_retry(
                    attempt, RetryOptions.from_config(ctx.settings.retry, on_retry=on_retry)
                )
            except StructuralError:
                ctx.performance.end(operation_id)
                raise
            except Exception as e:
                report = ctx.performance.end(operation_id)
                ctx.metrics.record_provider_request(
                    provider_name,
                    options.model,
                    "generate_text",
                    success=False,
                    latency=report.duration / 1000 if report else None,
                )
                ctx.debug.log_error(provider_name, "generate_text", e)
                enriched = ctx.errors.enrich(
                    e,
                    ErrorContext(
                        provider=provider_name,
                        operation="generate_text",
                        attempt=attempts,
                        metadata={"model": options.model, "operation_id": operation_id},
                    ),
                )
                ctx.metrics.record_error(enriched.category, provider_name)
                raise enriched from e

            report = ctx.performance.end(operation_id)
            if report and report.bottlenecks:
                ctx.debug.log("performance", "Performance issues detected", asdict(report))
            ctx.metrics.record_provider_request(
                provider_name,
                options.model,
                "generate_text",
                success=True,
                latency=report.duration / 1000 if report else None,
            )
            ctx.debug.log_response(provider_name, "generate_text", result, report.duration if report else 0.0)
            ctx.errors.resolve_provider(provider_name)
            self._record_usage(prompt, result, options.model)
            return result

    async def generate_stream(
        self,
        prompt: str,
        options: Optional[GenerateOptions] = None,
    ) -> AsyncIterator[str]:
        """Stream a generation. Never retried; the connection is released on every exit."""
        ctx = self.context
        config = self._config
        provider = self._provider_for(config.provider)
        options = self._with_model(options, config.model)
        operation_id = f"generate_stream-{uuid.uuid4()}"
        chunks: List[str] = []

        ctx.performance.start(operation_id, {"provider": config.provider, "model": options.model})
        ctx.debug.log_request(config.provider, "generate_stream", {"model": options.model, "prompt": prompt})
        try:
            connection = await ctx.pool.acquire(config.provider)
        except StructuralError:
            ctx.performance.end(operation_id)
            raise

        had_error = False
        try:
            async for chunk in provider.generate_stream(prompt, options):
                chunks.append(chunk)
                yield chunk
        except StructuralError:
            had_error = True
            raise
        except Exception as e:
            had_error = True
            ctx.debug.log_error(config.provider, "generate_stream", e)
            enriched = ctx.errors.enrich(
                e,
                ErrorContext(
                    provider=config.provider,
                    operation="generate_stream",
                    metadata={"model": options.model, "operation_id": operation_id, "chunks": len(chunks)},
                ),
            )
            ctx.metrics.record_error(enriched.category, config.provider)
            raise enriched from e
        finally:
            ctx.pool.release(connection.id, had_error=had_error)
            report = ctx.performance.end(operation_id)
            ctx.metrics.record_provider_request(
                config.provider,
                options.model,
                "generate_stream",
                success=not had_error,
                latency=report.duration / 1000 if report else None,
            )

        ctx.errors.resolve_provider(config.provider)
        self._record_usage(prompt, "".join(chunks), options.model)

    async def summarize(self, text: str, style: str = "paragraph", max_length: int = 200) -> str:
        """Summarize ``text`` as a paragraph, bullet list or one-line TL;DR."""
        if style not in SUMMARY_INSTRUCTIONS:
            raise ValueError(f"Unknown summary style: {style}")
        prompt = f"{SUMMARY_INSTRUCTIONS[style]} of the following text:\n\n{text}"
        return await self.generate_text(prompt, GenerateOptions(max_tokens=max_length, temperature=0.3))

    async def extract_key_points(self, text: str, max_points: int = 5) -> List[str]:
        """Ask for a bullet list of key points and parse it."""
        prompt = (
            f"Extract up to {max_points} key points from the following text. "
            f"Return each point on its own line starting with '- ':\n\n{text}"
        )
        response = await self.generate_text(prompt, GenerateOptions(temperature=0.3))

        points = []
        for line in response.splitlines():
            match = KEY_POINT_PATTERN.match(line)
            if match:
                points.append(match.group(1))
        if not points and response.strip():
            points = [line.strip() for line in response.splitlines() if line.strip()]
        return points[:max_points]

    async def optimize_request(
        self,
        prompt: str,
        requirements: Optional[OptimizationRequirements] = None,
        priority: int = Priority.NORMAL,
    ) -> str:
        """Generate with the best-scoring provider.

        The choice applies to this request only; the active configuration is
        left untouched.
        """
        optimal = self.context.cost_optimizer.select_optimal_provider(prompt, requirements)
        self.context.debug.log(
            "optimization",
            "Selected optimal provider",
            {
                "provider": optimal.provider,
                "model": optimal.model,
                "estimated_cost": optimal.estimated_cost,
                "estimated_latency": optimal.estimated_latency,
            },
        )

        config = ActiveConfig(optimal.provider, optimal.model)
        return await self._submit(prompt, None, priority, config)

    # Context management

    def manage_context(
        self,
        conversation_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: Optional[int] = None,
        compress: bool = False,
    ) -> List[ChatMessage]:
        """Trim a conversation to ``max_tokens`` (default: the active model's context window)."""
        model = self._config.model
        budget = max_tokens or self.context.token_manager.context_window(model)
        return self.context.context_manager.manage(conversation_id, messages, budget, model, compress=compress)

    def context_stats(self, conversation_id: str) -> Optional[ContextStats]:
        return self.context.context_manager.stats(conversation_id)

    # Diagnostics

    def _record_usage(self, prompt: str, response: str, model: str):
        tm = self.context.token_manager
        input_tokens = tm.count(prompt, model)
        output_tokens = tm.count(response, model)
        self._usage.tokens_used += input_tokens + output_tokens
        self._usage.requests_count += 1
        self._usage.cost_estimate += tm.estimate_cost(input_tokens, model, "input") + tm.estimate_cost(
            output_tokens, model, "output"
        )

    def usage_stats(self) -> UsageStats:
        return replace(self._usage)

    def reset_usage_stats(self):
        self._usage = UsageStats()

    def performance_snapshot(self) -> Dict[str, Any]:
        ctx = self.context
        return {
            "average_metrics": asdict(ctx.performance.average_metrics()),
            "trend": asdict(ctx.performance.trend()),
            "pool_stats": {provider: asdict(stats) for provider, stats in ctx.pool.stats().items()},
            "queue_status": asdict(ctx.queue.status()),
            "error_stats": asdict(ctx.errors.stats()),
            "usage": asdict(self._usage),
        }

    def export_debug_log(self) -> str:
        return self.context.debug.export()

    def export_metrics(self) -> bytes:
        return self.context.metrics.export_prometheus()

    def enable_debug(self, filters: Optional[Sequence[str]] = None, log_to_console: bool = True):
        self.context.debug.enable(filters, log_to_console)

    def disable_debug(self):
        self.context.debug.disable()

    def clear_queue(self) -> int:
        return self.context.queue.clear()

    # Lifecycle

    async def start(self):
        setup_logging(self.context.settings.log_level, self.context.settings.log_format)
        await self.context.pool.start()
        logger.info("Orchestrator started", provider=self._config.provider, model=self._config.model)

    async def stop(self):
        await self.context.pool.stop()
        logger.info("Orchestrator stopped")

    async def __aenter__(self) -> "Orchestrator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
