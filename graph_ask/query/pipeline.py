"""
Text-to-Cypher Pipeline

Self-healing state machine for one request:

    schema -> generating -> validating -> executing -> synthesizing -> done
                  ^              |             |
                  +--- invalid --+             |
                  +------------- error --------+

    Any state may end in `failed`; query-only requests go from validating
    straight to done.

Retry Policy:
    Each failure class (generation, validation, execution) gets one
    self-heal regeneration per request. The next failure of a class whose
    retry is spent is terminal:
        generation -> GENERATION_EXHAUSTED
        validation -> VALIDATION_EXHAUSTED
        execution  -> EXECUTION_EXHAUSTED
    Schema failures are terminal immediately (SCHEMA_UNAVAILABLE).
    Validator errors and store diagnostics are fed back as distinct
    PriorError sources. Synthesis failures are never retried; the result
    is a success with answer=None.

Progress Events:
    One ProgressEvent per state entry, in entry order, including re-entry
    through a back-edge. `attempt` is the 0-based generation attempt.

Features:
    - Per-step timeouts (discovery via the cache, generation, execution,
      synthesis), each treated as that step's failure
    - Step failures never escape run(); every failure carries its
      diagnostic verbatim
    - stream(): async iterator of events followed by the result; a
      consumer that stops iterating stops receiving events while the
      request finishes in the background
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from graph_ask.errors import GenerationFailed, QueryExecutionFailed, SynthesisFailed
from graph_ask.query.validator import validate_query
from graph_ask.types.conversation import ConversationRequest
from graph_ask.types.results import (
    ExecutionMode,
    ExecutionResult,
    FailureKind,
    FeedbackSource,
    PipelineAttempt,
    PipelineResult,
    PipelineStage,
    PriorError,
    ProgressEvent,
)
from graph_ask.utils.cost_telemetry import telemetry_stage

if TYPE_CHECKING:
    from graph_ask.config.settings import AskConfig
    from graph_ask.query.executor import QueryExecutor
    from graph_ask.query.generator import QueryGenerator
    from graph_ask.query.synthesizer import AnswerSynthesizer
    from graph_ask.schema.cache import SchemaCache, SchemaLoader
    from graph_ask.types.schema import GraphSchema

logger = logging.getLogger(__name__)

T = TypeVar("T")

SELF_HEAL_BUDGET = 1
"""Regenerations allowed per failure class per request"""

EventCallback = Callable[[ProgressEvent], "Awaitable[None] | None"]

# Keeps streamed runs alive after their consumer goes away
_BACKGROUND_RUNS: set[asyncio.Task[Any]] = set()
_END_OF_STREAM = object()


@dataclass
class _RunState:
    """Request-local bookkeeping; discarded when run() returns."""

    conversation: ConversationRequest
    graph_id: str
    mode: ExecutionMode
    query_only: bool
    attempt: int = 0
    retries: dict[FailureKind, int] = field(default_factory=dict)
    attempts: list[PipelineAttempt] = field(default_factory=list)
    prior_error: PriorError | None = None
    schema: GraphSchema | None = None
    query: str | None = None
    result: ExecutionResult | None = None
    answer: str | None = None
    failure: tuple[FailureKind, str] | None = None
    timing: dict[str, int] = field(default_factory=dict)

    @property
    def current(self) -> PipelineAttempt:
        return self.attempts[-1]

    def add_time(self, step: str, start_ns: int) -> None:
        elapsed = (time.perf_counter_ns() - start_ns) // 1_000_000
        self.timing[step] = self.timing.get(step, 0) + elapsed


async def _with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    if timeout:
        return await asyncio.wait_for(awaitable, timeout)
    return await awaitable


class TextToCypherPipeline:
    """
    Orchestrates schema, generation, validation, execution and synthesis.

    Components are injected so transports and tests share one state machine.

    Args:
        schema_cache: Shared schema cache
        generator: Query generator
        executor: Execution adapter for the request's store
        synthesizer: Answer synthesizer
        schema_loader: Discovery function used on cache misses
        config: Optional configuration (step timeouts)
    """

    def __init__(
        self,
        *,
        schema_cache: "SchemaCache",
        generator: "QueryGenerator",
        executor: "QueryExecutor",
        synthesizer: "AnswerSynthesizer",
        schema_loader: "SchemaLoader | None" = None,
        config: "AskConfig | None" = None,
    ) -> None:
        self.schema_cache = schema_cache
        self.generator = generator
        self.executor = executor
        self.synthesizer = synthesizer
        self._schema_loader = schema_loader
        self._generation_timeout = config.generation_timeout if config else None
        self._synthesis_timeout = config.synthesis_timeout if config else None

    async def run(
        self,
        conversation: ConversationRequest,
        graph_id: str,
        *,
        mode: ExecutionMode = ExecutionMode.READ_ONLY,
        query_only: bool = False,
        on_event: EventCallback | None = None,
    ) -> PipelineResult:
        """
        Process one request to a terminal result.

        Args:
            conversation: Conversation; the last user turn is the question
            graph_id: Target graph
            mode: Execution mode
            query_only: Stop once a valid query exists
            on_event: Called (or awaited) with each ProgressEvent

        Returns:
            PipelineResult; status "error" carries failure_kind and diagnostic
        """
        state = _RunState(
            conversation=conversation,
            graph_id=graph_id,
            mode=mode,
            query_only=query_only,
        )
        start = time.perf_counter_ns()
        stage = PipelineStage.SCHEMA
        detail: str | None = graph_id

        while True:
            await self._emit(on_event, ProgressEvent(stage=stage, attempt=state.attempt, detail=detail))

            if stage == PipelineStage.DONE:
                state.add_time("total", start)
                logger.info(
                    f"Pipeline done for '{graph_id}' after {len(state.attempts)} "
                    f"generation attempt(s) in {state.timing['total']}ms"
                )
                return PipelineResult.success(
                    graph_schema=state.schema,
                    query=state.query or "",
                    result=state.result,
                    answer=state.answer,
                    attempts=state.attempts,
                    timing=state.timing,
                )

            if stage == PipelineStage.FAILED:
                state.add_time("total", start)
                kind, message = state.failure or (FailureKind.GENERATION_EXHAUSTED, "unknown failure")
                logger.error(f"Pipeline failed for '{graph_id}' ({kind.value}): {message}")
                return PipelineResult.failure(
                    kind,
                    message,
                    query=state.query,
                    graph_schema=state.schema,
                    attempts=state.attempts,
                    timing=state.timing,
                )

            if stage == PipelineStage.SCHEMA:
                stage, detail = await self._step_schema(state)
            elif stage == PipelineStage.GENERATING:
                stage, detail = await self._step_generate(state)
            elif stage == PipelineStage.VALIDATING:
                stage, detail = self._step_validate(state)
            elif stage == PipelineStage.EXECUTING:
                stage, detail = await self._step_execute(state)
            else:
                stage, detail = await self._step_synthesize(state)

    async def stream(
        self,
        conversation: ConversationRequest,
        graph_id: str,
        *,
        mode: ExecutionMode = ExecutionMode.READ_ONLY,
        query_only: bool = False,
    ) -> AsyncIterator[ProgressEvent | PipelineResult]:
        """
        Yield progress events in order, then the PipelineResult.

        Closing the iterator early stops event delivery; the run itself
        completes in the background and its outcome is discarded.
        """
        queue: asyncio.Queue[Any] = asyncio.Queue()
        closed = False

        def deliver(event: ProgressEvent) -> None:
            if not closed:
                queue.put_nowait(event)

        task = asyncio.ensure_future(
            self.run(conversation, graph_id, mode=mode, query_only=query_only, on_event=deliver)
        )
        _BACKGROUND_RUNS.add(task)
        task.add_done_callback(_BACKGROUND_RUNS.discard)
        task.add_done_callback(lambda _: queue.put_nowait(_END_OF_STREAM))

        try:
            while True:
                item = await queue.get()
                if item is _END_OF_STREAM:
                    break
                yield item
            yield task.result()
        finally:
            closed = True
            if not task.done():
                logger.info(f"Stream consumer for '{graph_id}' went away; discarding events")

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _step_schema(self, state: _RunState) -> tuple[PipelineStage, str | None]:
        start = time.perf_counter_ns()
        try:
            state.schema = await self.schema_cache.get_or_discover(
                state.graph_id, self._schema_loader
            )
        except Exception as e:
            # Any discovery failure leaves the request without a schema
            message = str(e) or type(e).__name__
            state.failure = (FailureKind.SCHEMA_UNAVAILABLE, message)
            return PipelineStage.FAILED, message
        finally:
            state.add_time("schema", start)

        logger.info(f"Using {state.schema.summary().lower()} for '{state.graph_id}'")
        return PipelineStage.GENERATING, None

    async def _step_generate(self, state: _RunState) -> tuple[PipelineStage, str | None]:
        start = time.perf_counter_ns()
        state.attempts.append(PipelineAttempt(attempt=state.attempt))
        try:
            with telemetry_stage("generation"):
                query = await _with_timeout(
                    self.generator.generate(state.conversation, state.schema, state.prior_error),
                    self._generation_timeout,
                )
        except asyncio.TimeoutError:
            message = f"Query generation timed out after {self._generation_timeout:g}s"
            state.current.generation_error = message
            return self._retry_or_fail(state, FailureKind.GENERATION_EXHAUSTED, message)
        except GenerationFailed as e:
            state.current.generation_error = str(e)
            return self._retry_or_fail(state, FailureKind.GENERATION_EXHAUSTED, str(e))
        finally:
            state.add_time("generation", start)

        state.query = query
        state.current.query = query
        return PipelineStage.VALIDATING, query

    def _step_validate(self, state: _RunState) -> tuple[PipelineStage, str | None]:
        query = state.query or ""
        outcome = validate_query(query)
        state.current.validation = outcome

        if not outcome.is_valid:
            message = outcome.error_text()
            return self._retry_or_fail(
                state,
                FailureKind.VALIDATION_EXHAUSTED,
                message,
                PriorError(source=FeedbackSource.VALIDATION, message=message, query=query),
            )

        for warning in outcome.warnings:
            logger.debug(f"Validation warning: {warning}")
        if state.query_only:
            return PipelineStage.DONE, query
        return PipelineStage.EXECUTING, query

    async def _step_execute(self, state: _RunState) -> tuple[PipelineStage, str | None]:
        query = state.query or ""
        start = time.perf_counter_ns()
        try:
            result = await self.executor.execute(query, state.graph_id, state.mode)
        except QueryExecutionFailed as e:
            state.current.execution_error = e.kind
            state.current.execution_diagnostic = e.diagnostic
            return self._retry_or_fail(
                state,
                FailureKind.EXECUTION_EXHAUSTED,
                e.diagnostic,
                PriorError(source=FeedbackSource.EXECUTION, message=e.diagnostic, query=query),
            )
        finally:
            state.add_time("execution", start)

        state.current.executed = True
        state.result = result
        return PipelineStage.SYNTHESIZING, f"{len(result.rows)} row(s)"

    async def _step_synthesize(self, state: _RunState) -> tuple[PipelineStage, str | None]:
        start = time.perf_counter_ns()
        assert state.result is not None
        try:
            with telemetry_stage("synthesis"):
                state.answer = await _with_timeout(
                    self.synthesizer.synthesize(state.conversation, state.query or "", state.result),
                    self._synthesis_timeout,
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"Answer synthesis timed out after {self._synthesis_timeout:g}s; "
                "returning result without answer"
            )
        except SynthesisFailed as e:
            logger.warning(f"Answer synthesis failed; returning result without answer: {e}")
        finally:
            state.add_time("synthesis", start)

        return PipelineStage.DONE, state.answer

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _retry_or_fail(
        self,
        state: _RunState,
        failure_class: FailureKind,
        message: str,
        prior_error: PriorError | None = None,
    ) -> tuple[PipelineStage, str | None]:
        """Take the class's self-heal back-edge if unused, else terminate."""
        used = state.retries.get(failure_class, 0)
        if used >= SELF_HEAL_BUDGET:
            state.failure = (failure_class, message)
            return PipelineStage.FAILED, message

        state.retries[failure_class] = used + 1
        state.attempt += 1
        if prior_error is not None:
            state.prior_error = prior_error
        logger.warning(
            f"Attempt {state.attempt - 1} failed ({failure_class.value}); regenerating: {message}"
        )
        return PipelineStage.GENERATING, message

    @staticmethod
    async def _emit(on_event: EventCallback | None, event: ProgressEvent) -> None:
        if on_event is None:
            return
        returned = on_event(event)
        if inspect.isawaitable(returned):
            await returned
