"""
Data Types

Pydantic models shared across the package.

Modules:
    schema: GraphSchema, Entity, Relation, Attribute
    conversation: ConversationTurn, ConversationRequest
    results: Validation, execution and pipeline outcomes; request/response shapes
"""

from graph_ask.types.conversation import ChatRole, ConversationRequest, ConversationTurn
from graph_ask.types.results import (
    AskRequest,
    AskResponse,
    CostBreakdown,
    CostDebugReport,
    CostUsageRecord,
    ExecutionErrorKind,
    ExecutionMode,
    ExecutionResult,
    FailureKind,
    FeedbackSource,
    GraphEdge,
    GraphNode,
    GraphPath,
    PipelineAttempt,
    PipelineResult,
    PipelineStage,
    PriorError,
    ProgressEvent,
    StageCostBreakdown,
    ValidationOutcome,
)
from graph_ask.types.schema import Attribute, AttributeType, Entity, GraphSchema, Relation

__all__ = [
    # Schema
    "Attribute",
    "AttributeType",
    "Entity",
    "GraphSchema",
    "Relation",
    # Conversation
    "ChatRole",
    "ConversationRequest",
    "ConversationTurn",
    # Results
    "AskRequest",
    "AskResponse",
    "CostBreakdown",
    "CostDebugReport",
    "CostUsageRecord",
    "ExecutionErrorKind",
    "ExecutionMode",
    "ExecutionResult",
    "FailureKind",
    "FeedbackSource",
    "GraphEdge",
    "GraphNode",
    "GraphPath",
    "PipelineAttempt",
    "PipelineResult",
    "PipelineStage",
    "PriorError",
    "ProgressEvent",
    "StageCostBreakdown",
    "ValidationOutcome",
]
