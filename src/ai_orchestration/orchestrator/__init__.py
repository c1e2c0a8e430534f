"""Request orchestration: queueing, retries, pooling, monitoring and error handling."""

from ai_orchestration.orchestrator.connection_pool import ConnectionPool, PooledConnection, PoolStats
from ai_orchestration.orchestrator.context_manager import ContextStats, ContextWindowManager
from ai_orchestration.orchestrator.cost_optimizer import (
    CostOptimizer,
    OptimizationRequirements,
    ProviderOption,
    ScoredOption,
)
from ai_orchestration.orchestrator.debug_recorder import DebugEvent, DebugRecorder
from ai_orchestration.orchestrator.error_classifier import ErrorCategory, ErrorClassifier, ErrorContext
from ai_orchestration.orchestrator.orchestrator import (
    ActiveConfig,
    Orchestrator,
    OrchestratorContext,
    UsageStats,
)
from ai_orchestration.orchestrator.performance_monitor import PerformanceMonitor, PerformanceReport
from ai_orchestration.orchestrator.request_queue import Priority, QueueStatus, RequestQueue, TaskMetadata
from ai_orchestration.orchestrator.retry_handler import (
    BackoffPolicy,
    RetryMechanism,
    RetryOptions,
    default_retry_condition,
)

__all__ = [
    "ActiveConfig",
    "BackoffPolicy",
    "ConnectionPool",
    "ContextStats",
    "ContextWindowManager",
    "CostOptimizer",
    "DebugEvent",
    "DebugRecorder",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorContext",
    "OptimizationRequirements",
    "Orchestrator",
    "OrchestratorContext",
    "PerformanceMonitor",
    "PerformanceReport",
    "PoolStats",
    "PooledConnection",
    "Priority",
    "ProviderOption",
    "QueueStatus",
    "RequestQueue",
    "RetryMechanism",
    "RetryOptions",
    "ScoredOption",
    "TaskMetadata",
    "UsageStats",
    "default_retry_condition",
]
