"""Configuration module"""
from .settings import (
    BackoffStrategy,
    DebugConfig,
    PoolConfig,
    QueueConfig,
    RateLimitConfig,
    RetryConfig,
    Settings,
    get_settings,
)

__all__ = [
    "BackoffStrategy",
    "DebugConfig",
    "PoolConfig",
    "QueueConfig",
    "RateLimitConfig",
    "RetryConfig",
    "Settings",
    "get_settings",
]
