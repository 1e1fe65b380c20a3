"""
Abstract Provider Interface

Base class for completion providers. Query generation and answer
synthesis both talk to the model through this interface only.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from graph_ask.types.conversation import ConversationTurn


class LLMProvider(ABC):
    """Abstract interface for chat completion providers."""

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[ConversationTurn],
        *,
        system: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> str:
        """Complete a conversation and return the generated text."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Current model name."""
        ...
