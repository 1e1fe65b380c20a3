"""
Query Executor

Runs validated queries against the graph store.

Modes:
    READ_ONLY:  queries the validator flags as mutating or destructive are
                refused without contacting the store; the rest go through
                the store's read-only entry point
    READ_WRITE: every query is forwarded

Store failures become QueryExecutionFailed with the store's diagnostic
verbatim and a coarse kind (timeout, syntax_rejected, runtime_rejected,
connection_lost).
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from graph_ask.errors import QueryExecutionFailed, StoreQueryFailed, StoreTimeout, StoreUnavailable
from graph_ask.query.validator import validate_query
from graph_ask.types.results import ExecutionErrorKind, ExecutionMode, ExecutionResult

if TYPE_CHECKING:
    from graph_ask.store.base import GraphStore

logger = logging.getLogger(__name__)

# Store diagnostics that indicate the query text itself did not parse
_SYNTAX_DIAGNOSTIC = re.compile(
    r"syntax error|invalid input|unexpected token|unknown function|not defined",
    re.IGNORECASE,
)

# Statistics that count modified graph elements
_AFFECTED_STATISTICS = (
    "nodes_created",
    "nodes_deleted",
    "relationships_created",
    "relationships_deleted",
    "properties_set",
    "properties_removed",
    "labels_added",
    "labels_removed",
)


def classify_store_error(diagnostic: str) -> ExecutionErrorKind:
    """Coarse kind for a store rejection."""
    if _SYNTAX_DIAGNOSTIC.search(diagnostic):
        return ExecutionErrorKind.SYNTAX_REJECTED
    return ExecutionErrorKind.RUNTIME_REJECTED


class QueryExecutor:
    """
    Execution adapter over a GraphStore.

    Args:
        store: Graph store connection
        timeout: Seconds allowed per query (None = no client-side limit)
    """

    def __init__(self, store: "GraphStore", *, timeout: float | None = None) -> None:
        self.store = store
        self.timeout = timeout

    async def execute(
        self,
        query: str,
        graph_id: str,
        mode: ExecutionMode = ExecutionMode.READ_ONLY,
    ) -> ExecutionResult:
        """
        Execute a query.

        Raises:
            QueryExecutionFailed: Refused in read-only mode, or the store failed
        """
        read_only = mode == ExecutionMode.READ_ONLY
        if read_only:
            outcome = validate_query(query)
            if outcome.mutating or outcome.destructive:
                raise QueryExecutionFailed(
                    ExecutionErrorKind.RUNTIME_REJECTED,
                    "Query modifies the graph, which is not allowed in read-only mode",
                    query=query,
                )

        timeout_ms = int(self.timeout * 1000) if self.timeout else None
        try:
            call = self.store.query(graph_id, query, read_only=read_only, timeout_ms=timeout_ms)
            if self.timeout:
                raw = await asyncio.wait_for(call, self.timeout)
            else:
                raw = await call
        except asyncio.TimeoutError as e:
            raise QueryExecutionFailed(
                ExecutionErrorKind.TIMEOUT,
                f"Query timed out after {self.timeout:g}s",
                query=query,
            ) from e
        except StoreTimeout as e:
            raise QueryExecutionFailed(ExecutionErrorKind.TIMEOUT, e.diagnostic, query=query) from e
        except StoreUnavailable as e:
            raise QueryExecutionFailed(
                ExecutionErrorKind.CONNECTION_LOST, str(e), query=query
            ) from e
        except StoreQueryFailed as e:
            kind = classify_store_error(e.diagnostic)
            logger.info(f"Store rejected query ({kind.value}): {e.diagnostic}")
            raise QueryExecutionFailed(kind, e.diagnostic, query=query) from e

        affected = int(sum(raw.statistics.get(name, 0) for name in _AFFECTED_STATISTICS))
        return ExecutionResult(
            columns=raw.columns,
            rows=raw.rows,
            affected=affected,
            statistics=raw.statistics,
        )
