"""Keeps conversation history inside a model's token budget."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import structlog

from ai_orchestration.providers.base import ChatMessage
from ai_orchestration.utils.token_counter import TokenManager

logger = structlog.get_logger(__name__)


@dataclass
class ContextStats:
    message_count: int
    total_tokens: int
    dropped_messages: int
    compressed: bool


class ContextWindowManager:
    """Trims conversations to a token budget.

    System messages are always kept; the remaining budget is filled with the
    newest turns, so the oldest turns are dropped first. With compression
    enabled, turns older than the last ``recent_count`` are first folded into
    a single system summary message.
    """

    def __init__(
        self,
        token_manager: Optional[TokenManager] = None,
        recent_count: int = 5,
        summary_chars: int = 200,
    ):
        self.token_manager = token_manager or TokenManager()
        self.recent_count = recent_count
        self.summary_chars = summary_chars
        self._stats: Dict[str, ContextStats] = {}

    def total_tokens(self, messages: Sequence[ChatMessage], model: str) -> int:
        return sum(self.token_manager.count(m.content, model) for m in messages)

    def manage(
        self,
        conversation_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int,
        model: str,
        compress: bool = False,
    ) -> List[ChatMessage]:
        """Return the messages that fit ``max_tokens`` in their original order."""
        messages = list(messages)
        compressed = False

        if self.total_tokens(messages, model) > max_tokens and compress:
            messages = self.summarize_old(messages)
            compressed = True

        if self.total_tokens(messages, model) > max_tokens:
            kept = self._sliding_window(messages, max_tokens, model)
        else:
            kept = messages

        dropped = len(messages) - len(kept)
        if dropped:
            logger.debug(
                "Context trimmed",
                conversation_id=conversation_id,
                dropped=dropped,
                max_tokens=max_tokens,
            )

        self._stats[conversation_id] = ContextStats(
            message_count=len(kept),
            total_tokens=self.total_tokens(kept, model),
            dropped_messages=dropped,
            compressed=compressed,
        )
        return kept

    def summarize_old(self, messages: List[ChatMessage]) -> List[ChatMessage]:
        """Fold everything but the newest turns into one system message."""
        if len(messages) <= self.recent_count:
            return messages

        old, recent = messages[: -self.recent_count], messages[-self.recent_count :]
        content = "\n".join(f"{m.role}: {m.content}" for m in old)
        summary = ChatMessage(
            role="system",
            content=(
                f"Previous conversation summary ({len(old)} messages):\n"
                f"{content[: self.summary_chars]}..."
            ),
            metadata={"compressed": True, "original_count": len(old)},
        )
        return [summary, *recent]

    def _sliding_window(self, messages: List[ChatMessage], max_tokens: int, model: str) -> List[ChatMessage]:
        keep = set()
        used = 0

        for index, message in enumerate(messages):
            if message.role == "system":
                keep.add(index)
                used += self.token_manager.count(message.content, model)

        for index in range(len(messages) - 1, -1, -1):
            message = messages[index]
            if message.role == "system":
                continue
            tokens = self.token_manager.count(message.content, model)
            if used + tokens > max_tokens:
                break
            keep.add(index)
            used += tokens

        return [m for i, m in enumerate(messages) if i in keep]

    def stats(self, conversation_id: str) -> Optional[ContextStats]:
        return self._stats.get(conversation_id)
