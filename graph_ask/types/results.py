"""
Result Types

Models produced and consumed by the request pipeline: graph values returned
by the store, validation and execution outcomes, pipeline progress and
results, the transport request/response shapes, and cost telemetry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from graph_ask.types.conversation import ConversationRequest, ConversationTurn
from graph_ask.types.schema import GraphSchema

# -----------------------------------------------------------------------------
# Graph Values
# -----------------------------------------------------------------------------


class GraphNode(BaseModel):
    """A node returned inside a result row."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    labels: tuple[str, ...] = ()
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    """A relationship returned inside a result row."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    relation: str = ""
    source_id: int | None = None
    target_id: int | None = None
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphPath(BaseModel):
    """A path: nodes interleaved with the edges connecting them."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[GraphNode, ...] = ()
    edges: tuple[GraphEdge, ...] = ()


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


class ValidationOutcome(BaseModel):
    """
    Result of static query validation.

    Errors block execution; warnings are advisory.
    """

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    mutating: bool = Field(default=False, description="Query contains a write clause")
    destructive: bool = Field(default=False, description="Query matched a destructive pattern")

    def error_text(self) -> str:
        """Errors joined for use as regeneration context."""
        return "; ".join(self.errors)


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


class ExecutionMode(str, Enum):
    """Whether a query may modify the graph."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


class ExecutionErrorKind(str, Enum):
    """Coarse classification of an execution failure."""

    TIMEOUT = "timeout"
    SYNTAX_REJECTED = "syntax_rejected"
    RUNTIME_REJECTED = "runtime_rejected"
    CONNECTION_LOST = "connection_lost"


class ExecutionResult(BaseModel):
    """Tabular query result: ordered columns and ordered rows."""

    columns: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)
    affected: int = Field(default=0, description="Elements created, deleted or modified")
    statistics: dict[str, float] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.rows

    def to_text(self) -> str:
        """Compact text rendering used for answer synthesis and responses."""
        from graph_ask.query.formatter import format_records

        return format_records(self)

    def to_json(self) -> dict[str, Any]:
        """JSON-safe rendering with graph values as plain dicts."""
        from graph_ask.query.formatter import records_to_json

        return records_to_json(self)


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------


class PipelineStage(str, Enum):
    """Pipeline states, in order of entry."""

    SCHEMA = "schema"
    GENERATING = "generating"
    VALIDATING = "validating"
    EXECUTING = "executing"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Terminal failure classes."""

    SCHEMA_UNAVAILABLE = "schema_unavailable"
    GENERATION_EXHAUSTED = "generation_exhausted"
    VALIDATION_EXHAUSTED = "validation_exhausted"
    EXECUTION_EXHAUSTED = "execution_exhausted"


class FeedbackSource(str, Enum):
    """Which step rejected the previous candidate query."""

    VALIDATION = "validation"
    EXECUTION = "execution"


class PriorError(BaseModel):
    """Diagnostic from a rejected candidate, handed back to generation."""

    model_config = ConfigDict(frozen=True)

    source: FeedbackSource
    message: str = Field(..., description="Validator errors or the store's raw diagnostic")
    query: str | None = Field(default=None, description="The rejected candidate")


class ProgressEvent(BaseModel):
    """Emitted once per pipeline state entry."""

    stage: PipelineStage
    attempt: int = Field(default=0, ge=0, description="0-based generation attempt")
    detail: str | None = None


class PipelineAttempt(BaseModel):
    """One generation attempt and how far it got. Request-local."""

    attempt: int = Field(..., ge=0)
    query: str | None = None
    generation_error: str | None = None
    validation: ValidationOutcome | None = None
    execution_error: ExecutionErrorKind | None = None
    execution_diagnostic: str | None = None
    executed: bool = False


class CostUsageRecord(BaseModel):
    """Usage and estimated cost of one provider call."""

    provider: str
    model: str
    operation: str
    stage: str = "unknown"
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    latency_ms: int = 0
    estimated: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class StageCostBreakdown(BaseModel):
    """Aggregated usage for one telemetry stage."""

    stage: str
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    total_latency_ms: int = 0


class CostBreakdown(BaseModel):
    """Request-level usage totals."""

    total_calls: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_estimated_cost_usd: float = 0.0
    total_latency_ms: int = 0
    by_stage: list[StageCostBreakdown] = Field(default_factory=list)


class CostDebugReport(BaseModel):
    """Cost telemetry attached to a result when cost_debug is enabled."""

    enabled: bool = False
    pricing_version: str = ""
    breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    warnings: list[str] = Field(default_factory=list)


class PipelineResult(BaseModel):
    """
    Terminal outcome of one request.

    Success carries schema, query, result and (possibly None) answer.
    Failure carries the failure kind, the last diagnostic verbatim and the
    last attempted query if one was produced.
    """

    status: Literal["success", "error"]
    graph_schema: GraphSchema | None = None
    query: str | None = None
    result: ExecutionResult | None = None
    answer: str | None = None
    failure_kind: FailureKind | None = None
    error: str | None = None
    attempts: list[PipelineAttempt] = Field(default_factory=list)
    timing: dict[str, int] = Field(default_factory=dict)
    cost_debug: CostDebugReport | None = None

    @classmethod
    def success(
        cls,
        *,
        graph_schema: GraphSchema | None,
        query: str,
        result: ExecutionResult | None,
        answer: str | None,
        attempts: list[PipelineAttempt],
        timing: dict[str, int],
    ) -> "PipelineResult":
        return cls(
            status="success",
            graph_schema=graph_schema,
            query=query,
            result=result,
            answer=answer,
            attempts=attempts,
            timing=timing,
        )

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        error: str,
        *,
        query: str | None = None,
        graph_schema: GraphSchema | None = None,
        attempts: list[PipelineAttempt] | None = None,
        timing: dict[str, int] | None = None,
    ) -> "PipelineResult":
        return cls(
            status="error",
            failure_kind=kind,
            error=error,
            query=query,
            graph_schema=graph_schema,
            attempts=attempts or [],
            timing=timing or {},
        )

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    @property
    def generation_attempts(self) -> int:
        return len(self.attempts)

    def to_response(self) -> "AskResponse":
        """Convert to the transport response shape."""
        return AskResponse(
            status=self.status,
            graph_schema=self.graph_schema.to_prompt_text() if self.graph_schema else None,
            query=self.query,
            result=self.result.to_text() if self.result is not None else None,
            answer=self.answer,
            error=self.error,
        )


# -----------------------------------------------------------------------------
# Transport Shapes
# -----------------------------------------------------------------------------


class AskRequest(BaseModel):
    """
    A question about one graph.

    Credential and connection string are excluded from repr so that request
    objects can be logged.
    """

    model_config = ConfigDict(populate_by_name=True)

    graph_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("graph_id", "graph_name"),
    )
    conversation: list[ConversationTurn] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("conversation", "messages"),
    )
    model: str | None = Field(default=None, description="Completion model override")
    credential: str | None = Field(default=None, repr=False)
    store_connection: str | None = Field(default=None, repr=False)
    read_only_hint: bool | None = Field(
        default=None,
        description="False allows write queries; None uses the configured default",
    )
    query_only: bool = Field(default=False, description="Stop after a valid query is produced")

    @field_validator("conversation")
    @classmethod
    def _conversation_has_question(
        cls, value: list[ConversationTurn]
    ) -> list[ConversationTurn]:
        ConversationRequest(messages=value)
        return value

    @classmethod
    def from_question(cls, graph_id: str, question: str, **kwargs: Any) -> "AskRequest":
        return cls(graph_id=graph_id, conversation=[ConversationTurn.user(question)], **kwargs)

    @property
    def conversation_request(self) -> ConversationRequest:
        return ConversationRequest(messages=self.conversation)


class AskResponse(BaseModel):
    """Structured response; `status` alone distinguishes success from failure."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["success", "error"]
    graph_schema: str | None = Field(default=None, alias="schema")
    query: str | None = None
    result: str | None = None
    answer: str | None = None
    error: str | None = None
