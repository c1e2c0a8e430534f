"""Telemetry module for observability and monitoring."""

from ai_orchestration.telemetry.logger import (
    OperationContext,
    SensitiveDataRedactor,
    get_logger,
    setup_logging,
)
from ai_orchestration.telemetry.metrics import MetricsCollector

__all__ = [
    "OperationContext",
    "SensitiveDataRedactor",
    "get_logger",
    "setup_logging",
    "MetricsCollector",
]
