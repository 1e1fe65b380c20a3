"""
OpenAI LLM Provider (LangChain-based)

Implements LLMProvider using LangChain's ChatOpenAI. Every call records a
CostUsageRecord (tokens, estimated cost, latency) under the active
telemetry stage when a cost collector is active. Token counts come from
the response when it reports them and are estimated otherwise.

Example:
    >>> provider = OpenAILLMProvider(api_key="sk-...", model="gpt-4o-mini")
    >>> text = await provider.generate(
    ...     [ConversationTurn.user("Which label holds movies?")],
    ...     system="You write Cypher.",
    ... )
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NamedTuple

from graph_ask.config.pricing import estimate_llm_cost_usd
from graph_ask.providers.base import LLMProvider
from graph_ask.types.conversation import ChatRole, ConversationTurn
from graph_ask.types.results import CostUsageRecord
from graph_ask.utils.cost_telemetry import collector_active, current_stage, record_usage
from graph_ask.utils.token_count import count_conversation_tokens, count_text_tokens

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage
    from langchain_openai import ChatOpenAI


class TokenUsage(NamedTuple):
    input_tokens: int
    output_tokens: int
    total_tokens: int
    estimated: bool


def _reported_counts(response: Any) -> tuple[int | None, int | None, int | None]:
    """(input, output, total) from usage_metadata or response_metadata, if present."""
    metadata = getattr(response, "response_metadata", None) or {}
    candidates = (
        getattr(response, "usage_metadata", None),
        metadata.get("token_usage"),
        metadata.get("usage"),
    )
    for usage in candidates:
        if not isinstance(usage, dict):
            continue
        counts = (
            usage.get("input_tokens", usage.get("prompt_tokens")),
            usage.get("output_tokens", usage.get("completion_tokens")),
            usage.get("total_tokens"),
        )
        if any(c is not None for c in counts):
            return tuple(int(c) if c is not None else None for c in counts)
    return None, None, None


def _get_chat_openai(
    api_key: str | None = None,
    model: str = "gpt-4o-mini",
    temperature: float = 0.0,
) -> "ChatOpenAI":
    """
    Build a ChatOpenAI client.

    LangChain is imported here so importing the package stays light.
    """
    try:
        from langchain_openai import ChatOpenAI
    except ImportError:
        raise ImportError(
            "OpenAI provider requires the 'langchain-openai' package. "
            "Install with: pip install graph-ask"
        )

    if api_key:
        return ChatOpenAI(model=model, temperature=temperature, api_key=api_key)
    return ChatOpenAI(model=model, temperature=temperature)


def _to_langchain_messages(
    messages: Sequence[ConversationTurn],
    system: str | None,
) -> list["BaseMessage"]:
    from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

    message_types = {
        ChatRole.USER: HumanMessage,
        ChatRole.ASSISTANT: AIMessage,
    }
    converted: list[BaseMessage] = [SystemMessage(content=system)] if system else []
    for turn in messages:
        converted.append(message_types.get(turn.role, SystemMessage)(content=turn.content))
    return converted


class OpenAILLMProvider(LLMProvider):
    """
    OpenAI chat provider using LangChain.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY environment variable.
        model: Model to use (default: "gpt-4o-mini")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
    ) -> None:
        self._api_key = api_key
        self._model = model

    @property
    def model_name(self) -> str:
        return self._model

    def _usage(
        self,
        response: Any,
        messages: Sequence[ConversationTurn],
        system: str | None,
        output_text: str,
    ) -> TokenUsage:
        input_tokens, output_tokens, total_tokens = _reported_counts(response)
        estimated = input_tokens is None or output_tokens is None
        if input_tokens is None:
            input_tokens = count_conversation_tokens(messages, self._model, system)
        if output_tokens is None:
            output_tokens = count_text_tokens(output_text, self._model)
        if total_tokens is None:
            total_tokens = input_tokens + output_tokens
        return TokenUsage(input_tokens, output_tokens, total_tokens, estimated)

    async def generate(
        self,
        messages: Sequence[ConversationTurn],
        *,
        system: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ) -> str:
        """
        Complete a conversation.

        Args:
            messages: Chronological conversation turns
            system: Optional system message placed before the turns
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens in response

        Returns:
            Completion text
        """
        start = time.perf_counter_ns()
        client = _get_chat_openai(
            api_key=self._api_key,
            model=self._model,
            temperature=temperature,
        ).bind(max_tokens=max_tokens)

        response = await client.ainvoke(_to_langchain_messages(messages, system))
        output_text = str(response.content)
        if not collector_active():
            return output_text

        usage = self._usage(response, messages, system, output_text)
        cost, priced = estimate_llm_cost_usd(
            self._model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
        record_usage(
            CostUsageRecord(
                provider="openai",
                model=self._model,
                operation="generate",
                stage=current_stage(),
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total_tokens=usage.total_tokens,
                estimated_cost_usd=cost,
                latency_ms=(time.perf_counter_ns() - start) // 1_000_000,
                estimated=usage.estimated,
                metadata={
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                    "pricing_found": priced,
                },
            )
        )
        return output_text

    def with_model(self, model: str) -> "OpenAILLMProvider":
        """Same credentials, different model."""
        return OpenAILLMProvider(api_key=self._api_key, model=model)
