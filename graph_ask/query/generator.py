"""
Query Generator

Turns (conversation, schema, optional prior error) into a candidate Cypher
query through one completion call.

Prompt layout:
    system:    ontology + rules
    history:   earlier turns as sent
    user:      last question wrapped in GENERATION_USER_PROMPT
    (retry)    assistant turn with the rejected query, then a user turn
               with validation or execution feedback

Output extraction treats completion text as untyped: the first fenced code
block wins, otherwise the whole text. An empty extraction or the NO ANSWER
sentinel is a GenerationFailed with empty_output=True.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from graph_ask.errors import GenerationFailed
from graph_ask.query.prompts import (
    EXECUTION_FEEDBACK_PROMPT,
    GENERATION_SYSTEM_PROMPT,
    GENERATION_USER_PROMPT,
    VALIDATION_FEEDBACK_PROMPT,
)
from graph_ask.types.conversation import ConversationRequest, ConversationTurn
from graph_ask.types.results import FeedbackSource, PriorError

if TYPE_CHECKING:
    from graph_ask.config.settings import AskConfig
    from graph_ask.providers.base import LLMProvider
    from graph_ask.types.schema import GraphSchema

logger = logging.getLogger(__name__)

NO_ANSWER = "NO ANSWER"

_FENCED_BLOCK = re.compile(
    r"```(?:[ \t]*(?P<lang>[\w-]+)[ \t]*\n|[ \t]*\n?)(?P<body>.*?)```",
    re.DOTALL,
)
_LANGUAGE_TAG = re.compile(r"^[ \t]*[\w-]*[ \t]*\n")


def extract_query(text: str) -> str:
    """
    Isolate the query payload from completion text.

    Returns:
        The cleaned query, or "" if nothing usable was found
    """
    if not text:
        return ""
    blocks = list(_FENCED_BLOCK.finditer(text))
    if blocks:
        cypher = [
            b for b in blocks if (b.group("lang") or "").lower() in ("cypher", "opencypher")
        ]
        candidate = (cypher or blocks)[0].group("body")
    else:
        # Unterminated fence: keep what follows it, minus the language tag
        _, fence, tail = text.partition("```")
        candidate = _LANGUAGE_TAG.sub("", tail, count=1) if fence else text

    # Line breaks terminate // comments and may sit inside literals
    candidate = candidate.replace("\r\n", "\n").strip()
    candidate = candidate.rstrip(";").strip()
    if candidate.upper() == NO_ANSWER:
        return ""
    return candidate


class QueryGenerator:
    """
    Generates Cypher candidates with an LLM.

    Args:
        llm: Completion provider
        config: Optional configuration (temperature, max tokens)
    """

    def __init__(
        self,
        llm: "LLMProvider",
        config: "AskConfig | None" = None,
    ) -> None:
        self.llm = llm
        self._temperature = config.llm_temperature if config else 0.0
        self._max_tokens = config.llm_max_tokens if config else 4096

    def build_messages(
        self,
        conversation: ConversationRequest,
        prior_error: PriorError | None = None,
    ) -> list[ConversationTurn]:
        """Conversation turns sent to the model, without the system prompt."""
        messages = conversation.with_question(
            GENERATION_USER_PROMPT.format(question=conversation.question)
        )
        if prior_error is not None:
            template = (
                VALIDATION_FEEDBACK_PROMPT
                if prior_error.source == FeedbackSource.VALIDATION
                else EXECUTION_FEEDBACK_PROMPT
            )
            if prior_error.query:
                messages.append(ConversationTurn.assistant(f"```cypher\n{prior_error.query}\n```"))
            messages.append(
                ConversationTurn.user(
                    template.format(query=prior_error.query or "(none)", error=prior_error.message)
                )
            )
        return messages

    async def generate(
        self,
        conversation: ConversationRequest,
        schema: "GraphSchema | None",
        prior_error: PriorError | None = None,
    ) -> str:
        """
        Produce one candidate query.

        Args:
            conversation: Request conversation; last user turn is the question
            schema: Graph schema used as ontology context
            prior_error: Feedback on the previous rejected candidate

        Returns:
            Non-empty query text

        Raises:
            GenerationFailed: Completion call failed or no query was found
        """
        system = GENERATION_SYSTEM_PROMPT.format(
            ontology=schema.to_prompt_text() if schema is not None else "{}"
        )
        messages = self.build_messages(conversation, prior_error)

        try:
            raw = await self.llm.generate(
                messages,
                system=system,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as e:
            logger.warning(f"Query generation call failed: {e}")
            raise GenerationFailed(f"Completion call failed: {e}") from e

        query = extract_query(raw)
        if not query:
            raise GenerationFailed(
                "No query could be isolated from the completion output",
                empty_output=True,
            )
        logger.debug(f"Generated query: {query}")
        return query
