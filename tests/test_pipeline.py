"""
Tests for the self-healing Text-to-Cypher pipeline.

The generator and synthesizer are stubbed; validation is real and execution
runs through the real QueryExecutor over an in-memory store.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeStore
from graph_ask.config.settings import AskConfig
from graph_ask.errors import GenerationFailed, StoreQueryFailed, StoreUnavailable, SynthesisFailed
from graph_ask.query.executor import QueryExecutor
from graph_ask.query.pipeline import TextToCypherPipeline
from graph_ask.schema.cache import SchemaCache
from graph_ask.store.base import StoreResult
from graph_ask.types.conversation import ConversationRequest
from graph_ask.types.results import (
    ExecutionMode,
    FailureKind,
    FeedbackSource,
    PipelineResult,
    PipelineStage,
    ProgressEvent,
)
from graph_ask.utils.cost_telemetry import current_stage

S = PipelineStage

GOOD_QUERY = "MATCH (p:Person {name: 'Alice'}) RETURN p.name LIMIT 10"
OTHER_QUERY = "MATCH (p:Person) WHERE p.name = 'Alice' RETURN p.name LIMIT 10"
NO_RETURN_QUERY = "MATCH (p:Person {name: 'Alice'})"
RUNTIME_DIAGNOSTIC = "Type mismatch: expected Integer but was String"


def alice_store() -> FakeStore:
    return FakeStore(lambda graph_id, query: StoreResult(columns=["p.name"], rows=[["Alice"]]))


def build(
    schema,
    *,
    queries=None,
    store=None,
    answer="Alice is in the graph.",
    loader=None,
    config=None,
):
    generator = MagicMock()
    generator.generate = AsyncMock(side_effect=queries)
    synthesizer = MagicMock()
    synthesizer.synthesize = AsyncMock(return_value=answer)
    store = store or alice_store()
    pipeline = TextToCypherPipeline(
        schema_cache=SchemaCache(loader or AsyncMock(return_value=schema)),
        generator=generator,
        executor=QueryExecutor(store),
        synthesizer=synthesizer,
        config=config,
    )
    return pipeline, generator, synthesizer, store


def stages(events: list[ProgressEvent]) -> list[PipelineStage]:
    return [e.stage for e in events]


@pytest.fixture
def conversation() -> ConversationRequest:
    return ConversationRequest.from_question("find all people named Alice")


# -----------------------------------------------------------------------------
# End-to-end scenarios
# -----------------------------------------------------------------------------


class TestScenarios:
    @pytest.mark.asyncio
    async def test_happy_path(self, sample_schema, conversation):
        pipeline, generator, synthesizer, _ = build(sample_schema, queries=[GOOD_QUERY])
        events: list[ProgressEvent] = []

        result = await pipeline.run(conversation, "movies", on_event=events.append)

        assert result.is_success
        assert result.answer == "Alice is in the graph."
        assert result.query == GOOD_QUERY
        assert result.result.rows == [["Alice"]]
        assert result.graph_schema is sample_schema
        assert result.generation_attempts == 1
        assert stages(events) == [
            S.SCHEMA, S.GENERATING, S.VALIDATING, S.EXECUTING, S.SYNTHESIZING, S.DONE,
        ]
        assert all(e.attempt == 0 for e in events)
        assert generator.generate.await_args.args == (conversation, sample_schema, None)

    @pytest.mark.asyncio
    async def test_validation_back_edge(self, sample_schema, conversation):
        pipeline, generator, _, _ = build(sample_schema, queries=[NO_RETURN_QUERY, GOOD_QUERY])
        events: list[ProgressEvent] = []

        result = await pipeline.run(conversation, "movies", on_event=events.append)

        assert result.is_success
        assert result.query == GOOD_QUERY
        assert stages(events) == [
            S.SCHEMA, S.GENERATING, S.VALIDATING,
            S.GENERATING, S.VALIDATING, S.EXECUTING, S.SYNTHESIZING, S.DONE,
        ]
        assert [e.attempt for e in events] == [0, 0, 0, 1, 1, 1, 1, 1]

        prior = generator.generate.await_args_list[1].args[2]
        assert prior.source == FeedbackSource.VALIDATION
        assert "Query has no RETURN or YIELD clause" in prior.message
        assert prior.query == NO_RETURN_QUERY
        assert result.attempts[0].validation.is_valid is False
        assert result.attempts[1].executed is True

    @pytest.mark.asyncio
    async def test_execution_back_edge_then_exhausted(self, sample_schema, conversation):
        store = FakeStore(lambda graph_id, query: StoreQueryFailed(RUNTIME_DIAGNOSTIC, query=query))
        pipeline, generator, synthesizer, _ = build(
            sample_schema, queries=[GOOD_QUERY, OTHER_QUERY], store=store
        )
        events: list[ProgressEvent] = []

        result = await pipeline.run(conversation, "movies", on_event=events.append)

        assert not result.is_success
        assert result.failure_kind == FailureKind.EXECUTION_EXHAUSTED
        assert result.error == RUNTIME_DIAGNOSTIC
        assert result.query == OTHER_QUERY
        assert result.generation_attempts == 2
        assert stages(events) == [
            S.SCHEMA, S.GENERATING, S.VALIDATING, S.EXECUTING,
            S.GENERATING, S.VALIDATING, S.EXECUTING, S.FAILED,
        ]
        assert events[-1].detail == RUNTIME_DIAGNOSTIC

        prior = generator.generate.await_args_list[1].args[2]
        assert prior.source == FeedbackSource.EXECUTION
        assert prior.message == RUNTIME_DIAGNOSTIC
        assert prior.query == GOOD_QUERY
        synthesizer.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_synthesis_failure_degrades(self, sample_schema, conversation):
        pipeline, _, synthesizer, _ = build(sample_schema, queries=[GOOD_QUERY])
        synthesizer.synthesize.side_effect = SynthesisFailed("model overloaded")
        events: list[ProgressEvent] = []

        result = await pipeline.run(conversation, "movies", on_event=events.append)

        assert result.is_success
        assert result.answer is None
        assert result.query == GOOD_QUERY
        assert result.result.rows == [["Alice"]]
        assert stages(events)[-2:] == [S.SYNTHESIZING, S.DONE]
        assert synthesizer.synthesize.await_count == 1


# -----------------------------------------------------------------------------
# Retry bound
# -----------------------------------------------------------------------------


class TestRetryBound:
    @pytest.mark.asyncio
    async def test_always_invalid_stops_after_two_attempts(self, sample_schema, conversation):
        pipeline, generator, _, store = build(sample_schema)
        generator.generate = AsyncMock(return_value=NO_RETURN_QUERY)

        result = await pipeline.run(conversation, "movies")

        assert result.failure_kind == FailureKind.VALIDATION_EXHAUSTED
        assert generator.generate.await_count == 2
        assert result.generation_attempts == 2
        assert "Query has no RETURN or YIELD clause" in result.error
        assert result.query == NO_RETURN_QUERY
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_generation_failures(self, sample_schema, conversation):
        pipeline, generator, _, _ = build(sample_schema)
        generator.generate = AsyncMock(
            side_effect=GenerationFailed("No query could be isolated", empty_output=True)
        )

        result = await pipeline.run(conversation, "movies")

        assert result.failure_kind == FailureKind.GENERATION_EXHAUSTED
        assert generator.generate.await_count == 2
        assert result.error == "No query could be isolated"
        assert result.query is None

    @pytest.mark.asyncio
    async def test_each_class_has_its_own_budget(self, sample_schema, conversation):
        store = FakeStore(lambda graph_id, query: StoreQueryFailed(RUNTIME_DIAGNOSTIC))
        pipeline, generator, _, _ = build(
            sample_schema, queries=[NO_RETURN_QUERY, GOOD_QUERY, OTHER_QUERY], store=store
        )

        result = await pipeline.run(conversation, "movies")

        assert result.failure_kind == FailureKind.EXECUTION_EXHAUSTED
        assert generator.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_generation_timeout_counts_as_generation_failure(self, sample_schema, conversation):
        async def slow(*args):
            await asyncio.sleep(10)

        pipeline, generator, _, _ = build(
            sample_schema, config=AskConfig(generation_timeout=0.01)
        )
        generator.generate = AsyncMock(side_effect=slow)

        result = await pipeline.run(conversation, "movies")

        assert result.failure_kind == FailureKind.GENERATION_EXHAUSTED
        assert "timed out" in result.error
        assert generator.generate.await_count == 2


# -----------------------------------------------------------------------------
# Other terminal paths
# -----------------------------------------------------------------------------


class TestTerminalPaths:
    @pytest.mark.asyncio
    async def test_schema_unavailable(self, sample_schema, conversation):
        loader = AsyncMock(side_effect=StoreUnavailable("connection refused"))
        pipeline, generator, _, _ = build(sample_schema, loader=loader)
        events: list[ProgressEvent] = []

        result = await pipeline.run(conversation, "movies", on_event=events.append)

        assert result.failure_kind == FailureKind.SCHEMA_UNAVAILABLE
        assert result.error == "connection refused"
        assert stages(events) == [S.SCHEMA, S.FAILED]
        assert events[0].detail == "movies"
        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_only_refuses_writes(self, sample_schema, conversation):
        write = "MERGE (p:Person {name: 'Eve'}) RETURN p.name"
        pipeline, _, _, store = build(sample_schema, queries=[write, write])

        result = await pipeline.run(conversation, "movies", mode=ExecutionMode.READ_ONLY)

        assert result.failure_kind == FailureKind.EXECUTION_EXHAUSTED
        assert "read-only" in result.error
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_read_write_allows_writes(self, sample_schema, conversation):
        write = "MERGE (p:Person {name: 'Eve'}) RETURN p.name"
        pipeline, _, _, store = build(sample_schema, queries=[write])

        result = await pipeline.run(conversation, "movies", mode=ExecutionMode.READ_WRITE)

        assert result.is_success
        assert store.calls == [("movies", write, False)]

    @pytest.mark.asyncio
    async def test_query_only(self, sample_schema, conversation):
        pipeline, _, synthesizer, store = build(sample_schema, queries=[GOOD_QUERY])
        events: list[ProgressEvent] = []

        result = await pipeline.run(conversation, "movies", query_only=True, on_event=events.append)

        assert result.is_success
        assert result.query == GOOD_QUERY
        assert result.result is None
        assert result.answer is None
        assert stages(events) == [S.SCHEMA, S.GENERATING, S.VALIDATING, S.DONE]
        assert store.calls == []
        synthesizer.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_synthesis_timeout_degrades(self, sample_schema, conversation):
        async def slow(*args):
            await asyncio.sleep(10)

        pipeline, _, synthesizer, _ = build(
            sample_schema, queries=[GOOD_QUERY], config=AskConfig(synthesis_timeout=0.01)
        )
        synthesizer.synthesize.side_effect = slow

        result = await pipeline.run(conversation, "movies")

        assert result.is_success
        assert result.answer is None


# -----------------------------------------------------------------------------
# Events, timing and streaming
# -----------------------------------------------------------------------------


class TestEvents:
    @pytest.mark.asyncio
    async def test_async_callback(self, sample_schema, conversation):
        pipeline, _, _, _ = build(sample_schema, queries=[GOOD_QUERY])
        seen: list[PipelineStage] = []

        async def on_event(event: ProgressEvent) -> None:
            seen.append(event.stage)

        await pipeline.run(conversation, "movies", on_event=on_event)
        assert seen[-1] == S.DONE

    @pytest.mark.asyncio
    async def test_generation_runs_under_telemetry_stage(self, sample_schema, conversation):
        observed: list[str] = []

        async def generate(*args):
            observed.append(current_stage())
            return GOOD_QUERY

        pipeline, generator, _, _ = build(sample_schema)
        generator.generate = AsyncMock(side_effect=generate)

        await pipeline.run(conversation, "movies")
        assert observed == ["generation"]

    @pytest.mark.asyncio
    async def test_timing(self, sample_schema, conversation):
        pipeline, _, _, _ = build(sample_schema, queries=[GOOD_QUERY])

        result = await pipeline.run(conversation, "movies")

        assert {"schema", "generation", "execution", "synthesis", "total"} <= set(result.timing)

    @pytest.mark.asyncio
    async def test_second_request_uses_cached_schema(self, sample_schema, conversation):
        loader = AsyncMock(return_value=sample_schema)
        pipeline, _, _, _ = build(sample_schema, queries=[GOOD_QUERY, GOOD_QUERY], loader=loader)

        await pipeline.run(conversation, "movies")
        await pipeline.run(conversation, "movies")

        assert loader.await_count == 1


class TestStream:
    @pytest.mark.asyncio
    async def test_events_then_result(self, sample_schema, conversation):
        pipeline, _, _, _ = build(sample_schema, queries=[NO_RETURN_QUERY, GOOD_QUERY])

        items = [item async for item in pipeline.stream(conversation, "movies")]

        *events, result = items
        assert isinstance(result, PipelineResult)
        assert result.is_success
        assert all(isinstance(e, ProgressEvent) for e in events)
        assert stages(events) == [
            S.SCHEMA, S.GENERATING, S.VALIDATING,
            S.GENERATING, S.VALIDATING, S.EXECUTING, S.SYNTHESIZING, S.DONE,
        ]

    @pytest.mark.asyncio
    async def test_failed_event_precedes_result(self, sample_schema, conversation):
        loader = AsyncMock(side_effect=StoreUnavailable("connection refused"))
        pipeline, _, _, _ = build(sample_schema, loader=loader)

        items = [item async for item in pipeline.stream(conversation, "movies")]

        assert items[-2].stage == S.FAILED
        assert items[-1].status == "error"

    @pytest.mark.asyncio
    async def test_closing_early_lets_request_finish(self, sample_schema, conversation):
        pipeline, _, synthesizer, _ = build(sample_schema, queries=[GOOD_QUERY])

        stream = pipeline.stream(conversation, "movies")
        first = await stream.__anext__()
        await stream.aclose()

        assert first.stage == S.SCHEMA
        for _ in range(200):
            if synthesizer.synthesize.await_count:
                break
            await asyncio.sleep(0.005)
        assert synthesizer.synthesize.await_count == 1
