"""Provider capability interface."""

from ai_orchestration.providers.base import BaseProvider, ChatMessage, GenerateOptions
from ai_orchestration.providers.mock_provider import MockProvider

__all__ = ["BaseProvider", "ChatMessage", "GenerateOptions", "MockProvider"]
