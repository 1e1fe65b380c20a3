"""
Exception Taxonomy

Adapters translate third-party failures (redis/FalkorDB, LangChain/OpenAI)
into these types. The pipeline catches them and turns them into retry or
terminal decisions, so none of them escape TextToCypherPipeline.run().
"""

from __future__ import annotations

from graph_ask.types.results import ExecutionErrorKind


class GraphAskError(Exception):
    """Base class for all package errors."""


# -----------------------------------------------------------------------------
# Graph Store
# -----------------------------------------------------------------------------


class StoreError(GraphAskError):
    """Failure talking to the graph store."""


class StoreUnavailable(StoreError):
    """The store could not be reached or the connection dropped."""


class StoreQueryFailed(StoreError):
    """The store rejected a query. `diagnostic` is the store's text verbatim."""

    def __init__(self, diagnostic: str, *, query: str | None = None) -> None:
        super().__init__(diagnostic)
        self.diagnostic = diagnostic
        self.query = query


class StoreTimeout(StoreQueryFailed):
    """The store gave up on a query after its timeout."""


# -----------------------------------------------------------------------------
# Pipeline Steps
# -----------------------------------------------------------------------------


class GenerationFailed(GraphAskError):
    """
    No candidate query could be produced.

    `empty_output` is True when the completion succeeded but nothing could
    be isolated from its text, as opposed to the call itself failing.
    """

    def __init__(self, message: str, *, empty_output: bool = False) -> None:
        super().__init__(message)
        self.empty_output = empty_output


class QueryExecutionFailed(GraphAskError):
    """A validated query failed to execute."""

    def __init__(
        self,
        kind: ExecutionErrorKind,
        diagnostic: str,
        *,
        query: str | None = None,
    ) -> None:
        super().__init__(f"{kind.value}: {diagnostic}")
        self.kind = kind
        self.diagnostic = diagnostic
        self.query = query


class SynthesisFailed(GraphAskError):
    """The answer completion call failed or returned nothing."""
