"""
Abstract Graph Store Interface

Defines the contract the pipeline needs from a graph database: run query
text against a named graph (read-only or read-write), enumerate labels and
relationship types, and list graphs. Implementations translate their
client's exceptions into StoreUnavailable / StoreQueryFailed / StoreTimeout.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit


@dataclass
class StoreResult:
    """Raw tabular result of one store query."""

    columns: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    statistics: dict[str, float] = field(default_factory=dict)

    def column(self, index: int = 0) -> list[Any]:
        """All values of one column."""
        return [row[index] for row in self.rows if len(row) > index]


def mask_connection(connection: str | None) -> str:
    """Hide credentials in a connection URL for logs and reprs."""
    if not connection:
        return ""
    parts = urlsplit(connection)
    if parts.password is None and parts.username is None:
        return connection
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))


class GraphStore(ABC):
    """
    Abstract interface for graph stores.

    One instance wraps one connection and serves any number of graphs.

    Lifecycle:
        store = FalkorDBStore("falkor://127.0.0.1:6379")
        result = await store.query("movies", "MATCH (n) RETURN count(n)")
        await store.close()

    Or using context manager:
        async with FalkorDBStore(url) as store:
            labels = await store.labels("movies")
    """

    @abstractmethod
    async def query(
        self,
        graph_id: str,
        query: str,
        *,
        read_only: bool = True,
        timeout_ms: int | None = None,
    ) -> StoreResult:
        """
        Run query text against a graph.

        Raises:
            StoreUnavailable: Connection failure
            StoreTimeout: The store timed the query out
            StoreQueryFailed: The store rejected the query
        """
        ...

    @abstractmethod
    async def list_graphs(self) -> list[str]:
        """Names of all graphs on this connection."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    async def labels(self, graph_id: str) -> list[str]:
        """Distinct node labels."""
        result = await self.query(graph_id, "CALL db.labels()")
        return [str(value) for value in result.column(0)]

    async def relationship_types(self, graph_id: str) -> list[str]:
        """Distinct relationship types."""
        result = await self.query(graph_id, "CALL db.relationshipTypes()")
        return [str(value) for value in result.column(0)]

    async def __aenter__(self) -> "GraphStore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
