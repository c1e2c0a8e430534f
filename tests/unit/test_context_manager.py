"""Unit tests for conversation context trimming."""

import pytest

from ai_orchestration.orchestrator.context_manager import ContextWindowManager
from ai_orchestration.providers.base import ChatMessage

# claude models have no local encoder, so every 4 characters count as one token
MODEL = "claude-3-haiku"


def message(role, tokens, tag=""):
    content = (tag + "x" * (tokens * 4))[: tokens * 4]
    return ChatMessage(role=role, content=content)


@pytest.fixture
def manager():
    return ContextWindowManager()


class TestContextWindowManager:
    """Test suite for sliding window and compression."""

    def test_within_budget_unchanged(self, manager):
        """Test conversations inside the budget are returned as is."""
        messages = [message("system", 5), message("user", 5), message("assistant", 5)]

        assert manager.manage("conv", messages, 100, MODEL) == messages
        assert manager.stats("conv").dropped_messages == 0

    def test_oldest_turns_dropped_first(self, manager):
        """Test system messages stay and the newest turns fill the remaining budget."""
        system = message("system", 10, "sys")
        turns = [message("user" if i % 2 == 0 else "assistant", 10, f"t{i}") for i in range(6)]

        kept = manager.manage("conv", [system, *turns], 40, MODEL)

        assert kept == [system, turns[3], turns[4], turns[5]]
        stats = manager.stats("conv")
        assert stats.total_tokens == 40
        assert stats.dropped_messages == 3

    def test_newest_turn_too_large(self, manager):
        """Test only system messages remain when the newest turn alone exceeds the budget."""
        system = message("system", 5)
        kept = manager.manage("conv", [system, message("user", 5), message("user", 50)], 20, MODEL)

        assert kept == [system]

    def test_summarize_old_compression(self, manager):
        """Test older turns fold into one system summary when compression is on."""
        turns = [message("user", 30, f"turn-{i}") for i in range(8)]

        kept = manager.manage("conv", turns, 220, MODEL, compress=True)

        assert kept[0].role == "system"
        assert kept[0].metadata == {"compressed": True, "original_count": 3}
        assert kept[0].content.startswith("Previous conversation summary (3 messages):")
        assert kept[1:] == turns[-5:]
        assert manager.stats("conv").compressed is True

    def test_stats_unknown_conversation(self, manager):
        """Test stats are absent for conversations never managed."""
        assert manager.stats("missing") is None
