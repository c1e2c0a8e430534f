"""Settings configuration"""
import json
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackoffStrategy(str, Enum):
    """Delay strategies between retry attempts."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


class QueueConfig(BaseModel):
    """Request queue tuning."""

    concurrency: int = Field(default=3, ge=1)


class RetryConfig(BaseModel):
    """Retry mechanism defaults. Delays are in milliseconds."""

    max_retries: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    initial_delay: float = Field(default=1000, gt=0)
    max_delay: float = Field(default=30000, gt=0)
    jitter: bool = True

    @model_validator(mode="after")
    def check_delays(self):
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self


class PoolConfig(BaseModel):
    """Connection pool tuning. Durations are in seconds."""

    max_connections_per_provider: int = Field(default=5, ge=1)
    idle_timeout: float = Field(default=30.0, gt=0)
    health_check_interval: float = Field(default=60.0, gt=0)
    wait_timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=0.1, gt=0)
    max_errors: int = Field(default=5, ge=0)


class DebugConfig(BaseModel):
    """Debug recorder activation."""

    enabled: bool = False
    filters: List[str] = Field(default_factory=list)
    log_to_console: bool = True
    max_events: int = Field(default=1000, ge=2)

    @field_validator("filters", mode="before")
    @classmethod
    def parse_filters(cls, v):
        if isinstance(v, str):
            if v.startswith("["):
                try:
                    return json.loads(v)
                except (json.JSONDecodeError, ValueError):
                    pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


class RateLimitConfig(BaseModel):
    """Caller-side budget for one provider.

    The queue never throttles on these numbers; they are consulted when
    choosing a provider.
    """

    requests_per_minute: Optional[int] = Field(default=None, ge=1)
    tokens_per_minute: Optional[int] = Field(default=None, ge=1)


class Settings(BaseSettings):
    """Orchestration settings with explicit defaults for every field"""

    model_config = SettingsConfigDict(
        env_prefix="AI_ORCH_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        validate_assignment=True,
    )

    # Application
    app_name: str = "AI Orchestration Core"
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Active provider
    default_provider: str = "openai"
    default_model: str = "gpt-3.5-turbo"

    # Components
    queue: QueueConfig = Field(default_factory=QueueConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    rate_limits: Dict[str, RateLimitConfig] = Field(default_factory=dict)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
