"""AI request orchestration core."""

__version__ = "1.0.0"

from ai_orchestration.config.settings import Settings, get_settings
from ai_orchestration.exceptions import (
    ConnectionTimeoutError,
    EnrichedError,
    NoEligibleProviderError,
    OrchestrationError,
    ProviderError,
    ProviderNotConfiguredError,
    QueueCancelledError,
    StructuralError,
)
from ai_orchestration.orchestrator import (
    OptimizationRequirements,
    Orchestrator,
    OrchestratorContext,
    Priority,
)
from ai_orchestration.providers import BaseProvider, ChatMessage, GenerateOptions, MockProvider

__all__ = [
    "__version__",
    "BaseProvider",
    "ChatMessage",
    "ConnectionTimeoutError",
    "EnrichedError",
    "GenerateOptions",
    "MockProvider",
    "NoEligibleProviderError",
    "OptimizationRequirements",
    "OrchestrationError",
    "Orchestrator",
    "OrchestratorContext",
    "Priority",
    "ProviderError",
    "ProviderNotConfiguredError",
    "QueueCancelledError",
    "Settings",
    "StructuralError",
    "get_settings",
]
