"""
Tests for the LangChain-backed OpenAI provider, with the client mocked.
"""

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from graph_ask.providers.llm import create_llm_provider
from graph_ask.providers.llm.openai import OpenAILLMProvider
from graph_ask.query.generator import QueryGenerator
from graph_ask.types.conversation import ConversationRequest, ConversationTurn
from graph_ask.utils import token_count
from graph_ask.utils.cost_telemetry import CostCollector, telemetry_collector, telemetry_stage


def mock_client(response) -> tuple[MagicMock, MagicMock]:
    bound = MagicMock()
    bound.ainvoke = AsyncMock(return_value=response)
    client = MagicMock()
    client.bind.return_value = bound
    return client, bound


@pytest.mark.asyncio
async def test_generate_records_reported_usage():
    response = SimpleNamespace(
        content="```cypher\nMATCH (n) RETURN n\n```",
        usage_metadata={"input_tokens": 100, "output_tokens": 20, "total_tokens": 120},
        response_metadata={},
    )
    client, bound = mock_client(response)
    collector = CostCollector()

    with patch("graph_ask.providers.llm.openai._get_chat_openai", return_value=client):
        provider = OpenAILLMProvider(api_key="sk-test", model="gpt-4o-mini")
        with telemetry_collector(collector), telemetry_stage("generation"):
            text = await provider.generate(
                [ConversationTurn.user("List people"), ConversationTurn.assistant("ok")],
                system="You write Cypher.",
                max_tokens=256,
            )

    assert text == "```cypher\nMATCH (n) RETURN n\n```"
    client.bind.assert_called_once_with(max_tokens=256)

    messages = bound.ainvoke.await_args.args[0]
    assert [m.type for m in messages] == ["system", "human", "ai"]

    (record,) = collector.records
    assert record.stage == "generation"
    assert (record.input_tokens, record.output_tokens, record.total_tokens) == (100, 20, 120)
    assert record.estimated is False
    assert record.estimated_cost_usd == pytest.approx(100 / 1e6 * 0.15 + 20 / 1e6 * 0.6)


@pytest.mark.asyncio
async def test_generate_estimates_missing_usage():
    response = SimpleNamespace(content="Alice.", usage_metadata=None, response_metadata={})
    client, _ = mock_client(response)
    collector = CostCollector()

    with patch("graph_ask.providers.llm.openai._get_chat_openai", return_value=client), \
            patch("graph_ask.utils.token_count._encoding", return_value=None):
        with telemetry_collector(collector):
            await OpenAILLMProvider(model="gpt-4o-mini").generate([ConversationTurn.user("Who?")])

    (record,) = collector.records
    assert record.estimated is True
    # Character heuristic: "Who?" plus message overhead, then "Alice."
    assert (record.input_tokens, record.output_tokens) == (5, 2)
    assert record.total_tokens == record.input_tokens + record.output_tokens


@pytest.mark.asyncio
async def test_generate_without_collector_skips_estimate():
    response = SimpleNamespace(
        content="```cypher\nMATCH (p:Person) RETURN p.name\n```",
        usage_metadata=None,
        response_metadata={},
    )
    client, _ = mock_client(response)
    counter = MagicMock(side_effect=RuntimeError("encoding download failed"))

    with patch("graph_ask.providers.llm.openai._get_chat_openai", return_value=client), \
            patch("graph_ask.providers.llm.openai.count_conversation_tokens", counter), \
            patch("graph_ask.providers.llm.openai.count_text_tokens", counter), \
            patch("graph_ask.providers.llm.openai.record_usage") as record:
        provider = OpenAILLMProvider(model="gpt-4o-mini")
        query = await QueryGenerator(provider).generate(
            ConversationRequest.from_question("List people"), None
        )

    assert query == "MATCH (p:Person) RETURN p.name"
    counter.assert_not_called()
    record.assert_not_called()


def test_unloadable_encoding_falls_back_to_characters(monkeypatch):
    tiktoken = SimpleNamespace(
        encoding_for_model=MagicMock(side_effect=ConnectionError("offline")),
        get_encoding=MagicMock(side_effect=ConnectionError("offline")),
    )
    monkeypatch.setitem(sys.modules, "tiktoken", tiktoken)
    token_count._encoding.cache_clear()
    try:
        assert token_count.count_text_tokens("abcdefghi", "gpt-4o-mini") == 3
    finally:
        token_count._encoding.cache_clear()


def test_with_model():
    provider = OpenAILLMProvider(api_key="sk-test", model="gpt-4o-mini").with_model("gpt-4o")
    assert provider.model_name == "gpt-4o"


def test_create_llm_provider():
    provider = create_llm_provider("openai", model="gpt-4o", api_key="sk-test")
    assert isinstance(provider, OpenAILLMProvider)
    assert provider.model_name == "gpt-4o"

    with pytest.raises(ValueError, match="Unsupported LLM provider"):
        create_llm_provider("nope", model="x")
