"""Structured logging configuration with operation correlation and secret redaction."""

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import orjson
import structlog
from structlog.processors import CallsiteParameter

# Context variables for operation tracking
operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
provider_var: ContextVar[str] = ContextVar("provider", default="")

SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "apikey",
        "api-key",
        "authorization",
        "password",
        "secret",
        "token",
        "access_token",
        "refresh_token",
        "x-api-key",
    }
)


class SensitiveDataRedactor:
    """Redact credentials and PII from log and debug payloads."""

    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
    API_KEY_PATTERN = re.compile(r"\b(sk-|pk-|sk-ant-|api[_-]?key[\s=:]+)[\w-]{20,}\b", re.IGNORECASE)
    BEARER_PATTERN = re.compile(r"\bBearer\s+[\w.~+/-]+=*", re.IGNORECASE)
    JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\b")

    @classmethod
    def redact(cls, value: Any) -> Any:
        """Redact secrets from a string value."""
        if not isinstance(value, str):
            return value

        value = cls.API_KEY_PATTERN.sub("[API_KEY_REDACTED]", value)
        value = cls.BEARER_PATTERN.sub("Bearer [REDACTED]", value)
        value = cls.JWT_PATTERN.sub("[JWT_REDACTED]", value)
        value = cls.EMAIL_PATTERN.sub("[EMAIL_REDACTED]", value)

        return value

    @staticmethod
    def is_sensitive_key(key: Any) -> bool:
        if not isinstance(key, str):
            return False
        normalized = key.lower()
        return normalized in SENSITIVE_KEYS or normalized.endswith(("_key", "_secret", "_token"))


def add_context_vars(logger, method_name, event_dict):
    """Add context variables to log events."""
    if operation_id := operation_id_var.get():
        event_dict["operation_id"] = operation_id
    if provider := provider_var.get():
        event_dict.setdefault("provider", provider)
    return event_dict


def redact_sensitive_data(logger, method_name, event_dict):
    """Redact sensitive data from logs."""
    for key, value in event_dict.items():
        if key in ("timestamp", "level", "logger", "operation_id"):
            continue
        if SensitiveDataRedactor.is_sensitive_key(key):
            event_dict[key] = "***"
        elif isinstance(value, str):
            event_dict[key] = SensitiveDataRedactor.redact(value)
        elif isinstance(value, dict):
            event_dict[key] = {
                k: "***" if SensitiveDataRedactor.is_sensitive_key(k) else SensitiveDataRedactor.redact(v)
                for k, v in value.items()
            }

    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_secrets: bool = True,
) -> None:
    """Configure structured logging for the orchestration core."""
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_vars,
    ]

    if redact_secrets:
        processors.append(redact_sensitive_data)

    processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.FILENAME,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
        ]
    )

    if format == "json":
        processors.append(structlog.processors.JSONRenderer(serializer=_orjson_dumps))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    # Suppress noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _orjson_dumps(obj, **kwargs) -> str:
    return orjson.dumps(obj, default=str).decode()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class OperationContext:
    """Context manager binding an operation id (and provider) to every log line."""

    def __init__(self, operation_id: str | None = None, provider: str | None = None):
        self.operation_id = operation_id or str(uuid4())
        self.provider = provider
        self._tokens = []

    def __enter__(self):
        self._tokens.append((operation_id_var, operation_id_var.set(self.operation_id)))
        if self.provider:
            self._tokens.append((provider_var, provider_var.set(self.provider)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        return False
