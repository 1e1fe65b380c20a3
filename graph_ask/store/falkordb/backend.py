"""
FalkorDB Graph Store

GraphStore implementation on the async FalkorDB client. Graph values
(Node, Edge, Path) are converted into the package's GraphNode / GraphEdge /
GraphPath models so nothing downstream depends on the client library.

Connection strings:
    falkor://[user:password@]host:port     plain TCP
    falkors://[user:password@]host:port    TLS
    redis:// and rediss:// are accepted as aliases.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import unquote, urlsplit

from falkordb import Edge, Node, Path
from falkordb.asyncio import FalkorDB
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from graph_ask.errors import StoreQueryFailed, StoreTimeout, StoreUnavailable
from graph_ask.store.base import GraphStore, StoreResult, mask_connection
from graph_ask.types.results import GraphEdge, GraphNode, GraphPath

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6379

_SECURE_SCHEMES = {"falkors", "rediss"}
_KNOWN_SCHEMES = {"falkor", "redis"} | _SECURE_SCHEMES

# QueryResult statistics surfaced on every result
_STATISTICS = (
    "labels_added",
    "labels_removed",
    "nodes_created",
    "nodes_deleted",
    "properties_set",
    "properties_removed",
    "relationships_created",
    "relationships_deleted",
    "indices_created",
    "indices_deleted",
    "run_time_ms",
)


def parse_connection(connection: str) -> dict[str, Any]:
    """
    Split a connection URL into FalkorDB client keyword arguments.

    Raises:
        ValueError: If the scheme is not a FalkorDB/Redis scheme
    """
    parts = urlsplit(connection)
    scheme = parts.scheme.lower()
    if scheme not in _KNOWN_SCHEMES:
        raise ValueError(
            f"Unsupported graph store scheme {parts.scheme!r}; "
            "expected falkor://, falkors://, redis:// or rediss://"
        )

    kwargs: dict[str, Any] = {
        "host": parts.hostname or "127.0.0.1",
        "port": parts.port or DEFAULT_PORT,
    }
    if parts.username:
        kwargs["username"] = unquote(parts.username)
    if parts.password:
        kwargs["password"] = unquote(parts.password)
    if scheme in _SECURE_SCHEMES:
        kwargs["ssl"] = True
    return kwargs


def _column_name(entry: Any) -> str:
    # Header entries are [column_type, name] pairs
    name = entry[1] if isinstance(entry, (list, tuple)) and len(entry) > 1 else entry
    if isinstance(name, bytes):
        return name.decode("utf-8", errors="replace")
    return str(name)


def _endpoint_id(endpoint: Any) -> int | None:
    if isinstance(endpoint, Node):
        return endpoint.id
    if isinstance(endpoint, int):
        return endpoint
    return None


def convert_value(value: Any) -> Any:
    """Convert FalkorDB client values into package graph values."""
    if isinstance(value, Node):
        return GraphNode(
            id=value.id,
            labels=tuple(value.labels or ()),
            properties=convert_value(dict(value.properties or {})),
        )
    if isinstance(value, Edge):
        return GraphEdge(
            id=value.id,
            relation=value.relation or "",
            source_id=_endpoint_id(value.src_node),
            target_id=_endpoint_id(value.dest_node),
            properties=convert_value(dict(value.properties or {})),
        )
    if isinstance(value, Path):
        return GraphPath(
            nodes=tuple(convert_value(n) for n in value.nodes()),
            edges=tuple(convert_value(e) for e in value.edges()),
        )
    if isinstance(value, dict):
        return {str(k): convert_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [convert_value(v) for v in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class FalkorDBStore(GraphStore):
    """
    FalkorDB-backed graph store.

    The client is created on first use so constructing a store never
    touches the network.

    Args:
        connection: Connection URL (default: falkor://127.0.0.1:6379)
    """

    def __init__(self, connection: str = "falkor://127.0.0.1:6379") -> None:
        self._connection = connection
        self._client_kwargs = parse_connection(connection)
        self._db: FalkorDB | None = None

    def __repr__(self) -> str:
        return f"FalkorDBStore({mask_connection(self._connection)!r})"

    def _get_db(self) -> FalkorDB:
        if self._db is None:
            self._db = FalkorDB(**self._client_kwargs)
        return self._db

    async def query(
        self,
        graph_id: str,
        query: str,
        *,
        read_only: bool = True,
        timeout_ms: int | None = None,
    ) -> StoreResult:
        graph = self._get_db().select_graph(graph_id)
        run = graph.ro_query if read_only else graph.query
        try:
            result = await run(query, timeout=timeout_ms)
        except RedisTimeoutError as e:
            raise StoreTimeout(str(e) or "Query timed out", query=query) from e
        except (RedisConnectionError, OSError) as e:
            raise StoreUnavailable(
                f"Graph store unreachable at {mask_connection(self._connection)}: {e}"
            ) from e
        except ResponseError as e:
            message = str(e)
            if "timed out" in message.lower():
                raise StoreTimeout(message, query=query) from e
            raise StoreQueryFailed(message, query=query) from e
        except RedisError as e:
            raise StoreQueryFailed(str(e), query=query) from e

        statistics: dict[str, float] = {}
        for name in _STATISTICS:
            value = getattr(result, name, None)
            if isinstance(value, (int, float)):
                statistics[name] = value

        return StoreResult(
            columns=[_column_name(entry) for entry in (result.header or [])],
            rows=[
                [convert_value(value) for value in row]
                for row in (result.result_set or [])
            ],
            statistics=statistics,
        )

    async def list_graphs(self) -> list[str]:
        try:
            graphs = await self._get_db().list_graphs()
        except (RedisConnectionError, OSError) as e:
            raise StoreUnavailable(
                f"Graph store unreachable at {mask_connection(self._connection)}: {e}"
            ) from e
        except RedisError as e:
            raise StoreQueryFailed(str(e)) from e
        return [g.decode("utf-8") if isinstance(g, bytes) else str(g) for g in graphs]

    async def close(self) -> None:
        if self._db is None:
            return
        connection = getattr(self._db, "connection", None)
        self._db = None
        if connection is not None:
            await connection.aclose()
        logger.debug(f"Closed graph store connection {mask_connection(self._connection)}")
