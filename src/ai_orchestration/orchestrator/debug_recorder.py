"""Opt-in recorder of sanitized request/response/error events."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import orjson
import structlog

from ai_orchestration.telemetry.logger import SensitiveDataRedactor

logger = structlog.get_logger(__name__)
console_logger = structlog.get_logger("ai_orchestration.debug")

MESSAGE_CONTENT_LIMIT = 100
STRING_LIMIT = 200


@dataclass
class DebugEvent:
    timestamp: datetime
    type: str
    data: Dict[str, Any]
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "data": self.data,
            "metadata": self.metadata,
        }


def _shorten(value: str, limit: int) -> str:
    if len(value) > limit:
        return value[:limit] + "..."
    return value


def sanitize(value: Any) -> Any:
    """Mask secrets and shorten long payloads before they are stored."""
    if isinstance(value, dict):
        sanitized = {}
        for key, item in value.items():
            if SensitiveDataRedactor.is_sensitive_key(key):
                sanitized[key] = "***"
            elif key == "messages" and isinstance(item, (list, tuple)):
                sanitized[key] = [_sanitize_message(message) for message in item]
            else:
                sanitized[key] = sanitize(item)
        return sanitized
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    if isinstance(value, str):
        return _shorten(SensitiveDataRedactor.redact(value), STRING_LIMIT)
    return value


def _sanitize_message(message: Any) -> Any:
    if hasattr(message, "model_dump"):
        message = message.model_dump(mode="json")
    if not isinstance(message, dict):
        return sanitize(message)
    sanitized = sanitize({k: v for k, v in message.items() if k != "content"})
    content = message.get("content")
    if isinstance(content, str):
        sanitized["content"] = _shorten(SensitiveDataRedactor.redact(content), MESSAGE_CONTENT_LIMIT)
    return sanitized


class DebugRecorder:
    """Bounded event buffer, off until enabled.

    When filters are set only events of those types are kept. Events can be
    mirrored to the ``ai_orchestration.debug`` logger.
    """

    def __init__(self, max_events: int = 1000, trim_to: int = 500):
        self.max_events = max_events
        self.trim_to = trim_to
        self.enabled = False
        self.log_to_console = True
        self.filters: set[str] = set()
        self._events: List[DebugEvent] = []

    def enable(self, filters: Optional[Iterable[str]] = None, log_to_console: bool = True):
        self.enabled = True
        self.log_to_console = log_to_console
        self.filters = set(filters or ())
        self.log("debug", "Debug mode enabled", {"filters": sorted(self.filters)})

    def disable(self):
        self.log("debug", "Debug mode disabled")
        self.enabled = False

    def log(
        self,
        type: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        if not self.enabled:
            return
        if self.filters and type not in self.filters:
            return

        payload = {"message": message}
        payload.update(sanitize(data or {}))
        event = DebugEvent(
            timestamp=datetime.now(timezone.utc),
            type=type,
            data=payload,
            metadata=sanitize(metadata) if metadata else None,
        )
        self._events.append(event)

        if self.log_to_console:
            console_logger.info(message, debug_type=type, data=payload)

        if len(self._events) > self.max_events:
            self._events = self._events[-self.trim_to :]
            logger.debug("Debug event buffer trimmed", kept=len(self._events))

    def log_request(self, provider: str, method: str, params: Optional[Dict[str, Any]] = None):
        self.log(
            "request",
            f"{provider}.{method}",
            {"provider": provider, "method": method, "params": params or {}},
        )

    def log_response(self, provider: str, method: str, response: Any, duration: float):
        self.log(
            "response",
            f"{provider}.{method} completed in {duration:.0f}ms",
            {"provider": provider, "method": method, "duration": duration, "response": response},
        )

    def log_error(self, provider: str, method: str, error: BaseException):
        self.log(
            "error",
            f"{provider}.{method} failed",
            {
                "provider": provider,
                "method": method,
                "error": {
                    "message": str(error),
                    "type": type(error).__name__,
                    "code": getattr(error, "error_code", None) or getattr(error, "code", None),
                },
            },
        )

    def events(self, type: Optional[str] = None, since: Optional[datetime] = None) -> List[DebugEvent]:
        events = list(self._events)
        if type:
            events = [e for e in events if e.type == type]
        if since:
            events = [e for e in events if e.timestamp > since]
        return events

    def export(self) -> str:
        """All retained events as a JSON array."""
        return orjson.dumps(
            [event.to_dict() for event in self._events],
            default=str,
            option=orjson.OPT_INDENT_2,
        ).decode()

    def clear(self):
        self._events = []
