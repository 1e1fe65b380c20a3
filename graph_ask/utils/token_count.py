"""
Token estimates for cost telemetry.

Only used when a completion response reports no usage. The optional
`tokens` extra enables tiktoken; without it, or when its encoding cannot
be loaded, a character heuristic is used.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from graph_ask.types.conversation import ConversationTurn

logger = logging.getLogger(__name__)

# Role and separator tokens added per chat message
MESSAGE_OVERHEAD = 4
CHARS_PER_TOKEN = 4


@lru_cache(maxsize=16)
def _encoding(model: str) -> Any:
    try:
        import tiktoken
    except ImportError:
        return None
    try:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            return tiktoken.get_encoding("o200k_base")
    except Exception as e:
        # Encodings are downloaded on first use
        logger.warning(f"tiktoken encoding for '{model}' unavailable ({e}); estimating by characters")
        return None


def count_text_tokens(text: str, model: str) -> int:
    """Estimate tokens for plain text."""
    if not text:
        return 0
    encoding = _encoding(model)
    if encoding is not None:
        return len(encoding.encode(text))
    return max(1, -(-len(text) // CHARS_PER_TOKEN))


def count_conversation_tokens(
    turns: Sequence["ConversationTurn"],
    model: str,
    system: str | None = None,
) -> int:
    """Estimate prompt tokens for a conversation and optional system prompt."""
    contents = [turn.content for turn in turns]
    if system:
        contents.append(system)
    return sum(count_text_tokens(c, model) + MESSAGE_OVERHEAD for c in contents)
