"""
GraphAsk - Natural Language Questions over Property Graphs

Turns a question plus conversational context into a Cypher query, runs it
against a graph store, and answers in natural language.

Example:
    >>> from graph_ask import GraphAsk, AskRequest
    >>> service = GraphAsk()
    >>> request = AskRequest.from_question("movies", "Who directed The Matrix?")
    >>> result = await service.ask(request)
    >>> print(result.answer)

Main Classes:
    GraphAsk: Service facade owning the schema cache and store connections
    TextToCypherPipeline: Self-healing request state machine
    AskConfig: Configuration management

Request Flow:
    schema (cache or discovery) -> generating -> validating -> executing
    -> synthesizing -> done, with one self-heal regeneration allowed per failure class
    (generation, validation, execution).
"""

__version__ = "0.1.0"

# Public API - lazy imports to avoid loading optional dependencies
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "GraphAsk":
        from graph_ask.api.service import GraphAsk
        return GraphAsk

    if name == "TextToCypherPipeline":
        from graph_ask.query.pipeline import TextToCypherPipeline
        return TextToCypherPipeline

    if name == "AskConfig":
        from graph_ask.config.settings import AskConfig
        return AskConfig

    if name == "validate_query":
        from graph_ask.query.validator import validate_query
        return validate_query

    # Types
    if name in (
        "AskRequest",
        "AskResponse",
        "ConversationTurn",
        "GraphSchema",
        "PipelineResult",
        "ProgressEvent",
    ):
        from graph_ask import types
        return getattr(types, name)

    raise AttributeError(f"module 'graph_ask' has no attribute {name!r}")


__all__ = [
    # Main classes
    "GraphAsk",
    "TextToCypherPipeline",
    "AskConfig",

    # Functions
    "validate_query",

    # Types
    "AskRequest",
    "AskResponse",
    "ConversationTurn",
    "GraphSchema",
    "PipelineResult",
    "ProgressEvent",

    # Version
    "__version__",
]
