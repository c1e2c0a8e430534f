"""
Provider capability interface and shared request models.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    """Represents a single chat message."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Message id")
    role: str = Field(..., description="Message role (system, user, assistant)")
    content: str = Field(..., description="Message content")
    timestamp: datetime = Field(default_factory=_utcnow, description="Message timestamp")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Additional metadata")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "role": "user",
                "content": "Hello, how can you help me today?",
                "timestamp": "2024-01-15T10:00:00Z",
            }
        }
    )


class GenerateOptions(BaseModel):
    """Options forwarded to a provider's text generation call."""

    model: Optional[str] = Field(default=None, description="Model identifier")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Maximum tokens in response")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    stop_sequences: Optional[List[str]] = None
    system_prompt: Optional[str] = None


class BaseProvider(ABC):
    """Abstract provider capability.

    Concrete adapters (OpenAI, Anthropic, local models, ...) live outside this
    package. Adapters should raise ``ProviderError`` with ``status_code`` or
    ``code`` set so failures can be classified structurally.
    """

    name: str = "base"

    @abstractmethod
    async def generate_text(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        """Generate a complete text response."""

    @abstractmethod
    def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:
        """Yield response text chunks as they arrive."""

    async def health_check(self) -> bool:
        return True
