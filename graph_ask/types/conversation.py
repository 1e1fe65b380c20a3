"""
Conversation Types

A request carries the whole chronological conversation; the last user turn
is the question being answered. Nothing here is persisted beyond a request.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ChatRole(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationTurn(BaseModel):
    """One message in the conversation."""

    role: ChatRole = Field(..., description="Who produced the turn")
    content: str = Field(..., description="Turn text")

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=ChatRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationTurn":
        return cls(role=ChatRole.ASSISTANT, content=content)


class ConversationRequest(BaseModel):
    """
    Ordered, non-empty conversation ending (somewhere) in a user question.

    Turns after the last user turn are kept as context but the question is
    always the last user turn.
    """

    messages: list[ConversationTurn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _has_user_turn(self) -> "ConversationRequest":
        if not any(m.role == ChatRole.USER for m in self.messages):
            raise ValueError("conversation must contain at least one user turn")
        return self

    @classmethod
    def from_question(cls, question: str) -> "ConversationRequest":
        """Single-turn conversation."""
        return cls(messages=[ConversationTurn.user(question)])

    @property
    def question_index(self) -> int:
        """Position of the last user turn."""
        for index in range(len(self.messages) - 1, -1, -1):
            if self.messages[index].role == ChatRole.USER:
                return index
        raise ValueError("conversation has no user turn")

    @property
    def question(self) -> str:
        """Text of the last user turn."""
        return self.messages[self.question_index].content

    def with_question(self, content: str) -> list[ConversationTurn]:
        """Copy of the turns with the last user turn's text replaced."""
        index = self.question_index
        turns = list(self.messages)
        turns[index] = ConversationTurn(role=ChatRole.USER, content=content)
        return turns
