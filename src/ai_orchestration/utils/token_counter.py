"""Token counting, truncation, chunking and cost estimation per model."""

import math
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

import structlog
import tiktoken

logger = structlog.get_logger(__name__)

CHARS_PER_TOKEN = 4

# Checked in order; the first fragment contained in the model name wins.
ENCODING_BY_MODEL_FAMILY: tuple[tuple[str, Optional[str]], ...] = (
    ("gpt-4o", "o200k_base"),
    ("gpt-4", "cl100k_base"),
    ("gpt-3.5", "cl100k_base"),
    ("claude", None),
    ("gemini", None),
)
DEFAULT_ENCODING = "gpt2"

# USD per 1K tokens
PRICING: dict[str, dict[str, float]] = {
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
    "claude-3-opus": {"input": 0.015, "output": 0.075},
    "claude-3-sonnet": {"input": 0.003, "output": 0.015},
    "claude-3-haiku": {"input": 0.00025, "output": 0.00125},
    "gemini-pro": {"input": 0.0005, "output": 0.0015},
}

CONTEXT_WINDOWS: dict[str, int] = {
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    "gpt-4-turbo": 128000,
    "gpt-4o": 128000,
    "gpt-3.5-turbo": 4096,
    "gpt-3.5-turbo-16k": 16384,
    "claude-3-opus": 200000,
    "claude-3-sonnet": 200000,
    "claude-3-haiku": 200000,
    "gemini-pro": 30720,
}
DEFAULT_CONTEXT_WINDOW = 4096


@dataclass(frozen=True)
class TokenInfo:
    """Token count of a text against a limit."""

    count: int
    truncated: bool
    original_length: int


def _resolve(table: dict[str, Any], model: str) -> Any:
    """Exact match first, then the longest known prefix (dated model variants)."""
    if model in table:
        return table[model]
    prefixes = [name for name in table if model.startswith(name)]
    if not prefixes:
        return None
    return table[max(prefixes, key=len)]


class TokenManager:
    """Model-aware token accounting.

    Encoders are loaded lazily through tiktoken and cached per encoding name.
    Models without a local encoder (or an encoder that cannot be loaded) fall
    back to ``ceil(len(text) / 4)``.
    """

    def __init__(self):
        self._encoders: dict[str, Any] = {}

    @staticmethod
    def encoding_name(model: str) -> Optional[str]:
        """Name of the tiktoken encoding used for a model, if any."""
        lowered = model.lower()
        for fragment, encoding in ENCODING_BY_MODEL_FAMILY:
            if fragment in lowered:
                return encoding
        return DEFAULT_ENCODING

    def get_encoder(self, model: str):
        encoding = self.encoding_name(model)
        if encoding is None:
            return None
        if encoding not in self._encoders:
            try:
                self._encoders[encoding] = tiktoken.get_encoding(encoding)
            except Exception as e:
                # Encoding files are fetched on first use and may be unavailable offline
                logger.warning("Tokenizer unavailable, using approximation", encoding=encoding, error=str(e))
                self._encoders[encoding] = None
        return self._encoders[encoding]

    @staticmethod
    def _encode(encoder, text: str) -> list[int]:
        return encoder.encode(text, disallowed_special=())

    @staticmethod
    def _decode_complete(encoder, tokens: list[int]) -> Optional[str]:
        """Decode ``tokens`` unless they end or start inside a UTF-8 sequence."""
        try:
            return encoder.decode_bytes(tokens).decode("utf-8")
        except UnicodeDecodeError:
            return None

    def count(self, text: str, model: str) -> int:
        """Count tokens for a given text and model"""
        encoder = self.get_encoder(model)
        if encoder is None:
            return math.ceil(len(text) / CHARS_PER_TOKEN)
        return len(self._encode(encoder, text))

    def token_info(self, text: str, model: str, max_tokens: Optional[int] = None) -> TokenInfo:
        count = self.count(text, model)
        limit = max_tokens or self.context_window(model)
        return TokenInfo(count=count, truncated=count > limit, original_length=len(text))

    def truncate(self, text: str, model: str, max_tokens: int) -> str:
        """Cut ``text`` so that ``count(result, model) <= max_tokens``."""
        if max_tokens <= 0:
            return ""

        encoder = self.get_encoder(model)
        if encoder is None:
            return text[: max_tokens * CHARS_PER_TOKEN]

        tokens = self._encode(encoder, text)
        if len(tokens) <= max_tokens:
            return text

        # A prefix may end inside a multi-byte character or re-encode to more tokens
        limit = max_tokens
        while limit > 0:
            candidate = self._decode_complete(encoder, tokens[:limit])
            if candidate is not None and len(self._encode(encoder, candidate)) <= max_tokens:
                return candidate
            limit -= 1
        return ""

    def split(self, text: str, model: str, chunk_size: int) -> list[str]:
        """Split text into chunks of at most ``chunk_size`` tokens.

        Chunks end on character boundaries, so they always join back to ``text``.
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not text:
            return []

        encoder = self.get_encoder(model)
        if encoder is None:
            step = chunk_size * CHARS_PER_TOKEN
            return [text[i : i + step] for i in range(0, len(text), step)]

        tokens = self._encode(encoder, text)
        chunks = []
        start = 0
        while start < len(tokens):
            end = min(start + chunk_size, len(tokens))
            chunk = self._decode_complete(encoder, tokens[start:end])
            # Move the boundary back to the last complete character
            while chunk is None and end - start > 1:
                end -= 1
                chunk = self._decode_complete(encoder, tokens[start:end])
            # A single character wider than chunk_size tokens stays whole
            while chunk is None:
                end += 1
                chunk = self._decode_complete(encoder, tokens[start:end])
            chunks.append(chunk)
            start = end
        return chunks

    def count_messages(self, messages: Sequence[Any], model: str) -> int:
        """Count total tokens for a list of chat messages"""
        # Token overhead per message (varies by model)
        tokens_per_message = 4 if "gpt-3.5-turbo" in model else 3

        num_tokens = 0
        for message in messages:
            num_tokens += tokens_per_message
            num_tokens += self.count(message.content, model)
            num_tokens += self.count(message.role, model)

        # Every reply is primed with assistant
        return num_tokens + 3

    def estimate_cost(
        self,
        token_count: int,
        model: str,
        direction: Literal["input", "output"] = "input",
    ) -> float:
        """Estimated USD cost; unknown models cost nothing."""
        if direction not in ("input", "output"):
            raise ValueError(f"Unknown direction: {direction}")
        pricing = _resolve(PRICING, model)
        if pricing is None:
            return 0.0
        return (token_count / 1000) * pricing[direction]

    def context_window(self, model: str) -> int:
        """Get the context window size for a model"""
        window = _resolve(CONTEXT_WINDOWS, model)
        return window if window is not None else DEFAULT_CONTEXT_WINDOW
