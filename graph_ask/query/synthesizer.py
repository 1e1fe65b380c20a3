"""
Answer Synthesizer

Second completion call: turns the question, the executed query and its
result into a natural-language answer. Failures raise SynthesisFailed;
the pipeline reports them as a success with no answer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from graph_ask.errors import SynthesisFailed
from graph_ask.query.prompts import ANSWER_SYSTEM_PROMPT, ANSWER_USER_PROMPT
from graph_ask.types.conversation import ConversationRequest

if TYPE_CHECKING:
    from graph_ask.config.settings import AskConfig
    from graph_ask.providers.base import LLMProvider
    from graph_ask.types.results import ExecutionResult

logger = logging.getLogger(__name__)


class AnswerSynthesizer:
    """
    Synthesizes answers from query results.

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

    async def synthesize(
        self,
        conversation: ConversationRequest,
        query: str,
        result: "ExecutionResult",
    ) -> str:
        """
        Answer the conversation's last question from a query result.

        Raises:
            SynthesisFailed: Completion call failed or returned no text
        """
        prompt = ANSWER_USER_PROMPT.format(
            question=conversation.question,
            query=query,
            result=result.to_text(),
        )
        try:
            answer = await self.llm.generate(
                conversation.with_question(prompt),
                system=ANSWER_SYSTEM_PROMPT,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as e:
            raise SynthesisFailed(f"Answer completion call failed: {e}") from e

        answer = answer.strip()
        if not answer:
            raise SynthesisFailed("Answer completion returned no text")
        return answer
