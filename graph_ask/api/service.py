"""
GraphAsk - Service Facade

Owns the state shared across requests (the schema cache and a bounded pool
of store connections, one per connection string) and builds a pipeline per
request from the request's model, credential and connection. All
transports (HTTP, MCP, CLI) go through this class.

Example:
    >>> service = GraphAsk()
    >>> result = await service.ask(AskRequest.from_question("movies", "Who directed Heat?"))
    >>> result.to_response().answer
    'Heat was directed by Michael Mann.'

    >>> async for item in service.ask_stream(request):
    ...     print(item)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING

from cachetools import LRUCache

from graph_ask.config.settings import AskConfig
from graph_ask.errors import QueryExecutionFailed
from graph_ask.providers.llm import create_llm_provider
from graph_ask.query.executor import QueryExecutor
from graph_ask.query.generator import QueryGenerator
from graph_ask.query.pipeline import EventCallback, TextToCypherPipeline
from graph_ask.query.synthesizer import AnswerSynthesizer
from graph_ask.query.validator import validate_query
from graph_ask.schema.cache import SchemaCache
from graph_ask.schema.discovery import SchemaDiscovery
from graph_ask.store.base import mask_connection
from graph_ask.types.results import (
    AskRequest,
    ExecutionErrorKind,
    ExecutionMode,
    ExecutionResult,
    PipelineResult,
    ProgressEvent,
)
from graph_ask.utils.cost_telemetry import CostCollector, telemetry_collector

if TYPE_CHECKING:
    from graph_ask.providers.base import LLMProvider
    from graph_ask.store.base import GraphStore
    from graph_ask.types.schema import GraphSchema

logger = logging.getLogger(__name__)

StoreFactory = Callable[[str], "GraphStore"]


def _falkordb_store(connection: str) -> "GraphStore":
    from graph_ask.store.falkordb import FalkorDBStore
    return FalkorDBStore(connection)


class _StorePool(LRUCache):
    """Open stores by connection string; evicted stores wait in `retired` for close()."""

    def __init__(self, maxsize: int) -> None:
        super().__init__(maxsize=maxsize)
        self.retired: list[GraphStore] = []

    def popitem(self):
        connection, store = super().popitem()
        self.retired.append(store)
        logger.info(f"Retiring graph store {mask_connection(connection)} (pool capacity {self.maxsize})")
        return connection, store


class GraphAsk:
    """
    Entry point for asking questions of graphs.

    Args:
        config: Configuration (default: AskConfig() from environment)
        llm: Provider used for every request instead of building one from
            the request's model and credential
        store_factory: Builds a GraphStore for a connection string
            (default: FalkorDBStore)
        schema_cache: Shared cache (default: sized from config)
    """

    def __init__(
        self,
        config: AskConfig | None = None,
        *,
        llm: "LLMProvider | None" = None,
        store_factory: StoreFactory | None = None,
        schema_cache: SchemaCache | None = None,
    ) -> None:
        self.config = config or AskConfig()
        self._llm = llm
        self._store_factory = store_factory or _falkordb_store
        self._stores = _StorePool(max(1, self.config.store_pool_capacity))
        self.schema_cache = schema_cache or SchemaCache(
            capacity=self.config.schema_cache_capacity,
            discovery_timeout=self.config.discovery_timeout,
        )

    @property
    def configured_model(self) -> str:
        """Default completion model."""
        return self._llm.model_name if self._llm is not None else self.config.llm_model

    # -------------------------------------------------------------------------
    # Component Wiring
    # -------------------------------------------------------------------------

    def store(self, connection: str | None = None) -> "GraphStore":
        """
        Shared store for a connection string (default: configured store).

        At most `store_pool_capacity` stores stay open; opening another
        retires the least recently used, which is closed once the
        operation in progress finishes.
        """
        connection = connection or self.config.store_connection
        store = self._stores.get(connection)
        if store is None:
            store = self._store_factory(connection)
            self._stores[connection] = store
            logger.info(f"Opened graph store {mask_connection(connection)}")
        return store

    async def close_retired(self) -> None:
        """Close stores evicted from the pool."""
        retired = self._stores.retired
        while retired:
            await retired.pop().close()

    async def _closing_retired(
        self,
        items: AsyncIterator[ProgressEvent | PipelineResult],
    ) -> AsyncIterator[ProgressEvent | PipelineResult]:
        try:
            async for item in items:
                yield item
        finally:
            await items.aclose()
            await self.close_retired()

    def llm_for(self, model: str | None = None, credential: str | None = None) -> "LLMProvider":
        if self._llm is not None:
            return self._llm
        return create_llm_provider(
            self.config.llm_provider,
            model=model or self.config.llm_model,
            api_key=credential or self.config.openai_api_key,
        )

    def mode_for(self, request: AskRequest) -> ExecutionMode:
        read_only = self.config.read_only if request.read_only_hint is None else request.read_only_hint
        return ExecutionMode.READ_ONLY if read_only else ExecutionMode.READ_WRITE

    def discovery_for(self, store: "GraphStore") -> SchemaDiscovery:
        return SchemaDiscovery(store, sample_size=self.config.schema_sample_size)

    def pipeline_for(self, request: AskRequest) -> TextToCypherPipeline:
        """Pipeline wired to the request's store, model and credential."""
        store = self.store(request.store_connection)
        llm = self.llm_for(request.model, request.credential)
        return TextToCypherPipeline(
            schema_cache=self.schema_cache,
            schema_loader=self.discovery_for(store).discover,
            generator=QueryGenerator(llm, self.config),
            executor=QueryExecutor(store, timeout=self.config.execution_timeout),
            synthesizer=AnswerSynthesizer(llm, self.config),
            config=self.config,
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def ask(
        self,
        request: AskRequest,
        *,
        on_event: EventCallback | None = None,
        cost_debug: bool = False,
    ) -> PipelineResult:
        """
        Answer one request.

        Args:
            request: The request
            on_event: Optional progress callback
            cost_debug: Attach a CostDebugReport to the result
        """
        logger.info(f"Request for graph '{request.graph_id}' ({self.mode_for(request).value})")
        pipeline = self.pipeline_for(request)
        collector = (
            CostCollector(warn_threshold_usd=self.config.cost_debug_warn_threshold_usd)
            if cost_debug
            else None
        )
        try:
            with telemetry_collector(collector):
                result = await pipeline.run(
                    request.conversation_request,
                    request.graph_id,
                    mode=self.mode_for(request),
                    query_only=request.query_only,
                    on_event=on_event,
                )
        finally:
            await self.close_retired()
        if collector is not None:
            result.cost_debug = collector.summary()
        return result

    def ask_stream(self, request: AskRequest) -> AsyncIterator[ProgressEvent | PipelineResult]:
        """Progress events in order, then the PipelineResult."""
        logger.info(f"Streaming request for graph '{request.graph_id}'")
        items = self.pipeline_for(request).stream(
            request.conversation_request,
            request.graph_id,
            mode=self.mode_for(request),
            query_only=request.query_only,
        )
        return self._closing_retired(items)

    async def get_schema(
        self,
        graph_id: str,
        store_connection: str | None = None,
    ) -> "GraphSchema":
        """Cached schema, discovering it on a miss."""
        store = self.store(store_connection)
        try:
            return await self.schema_cache.get_or_discover(graph_id, self.discovery_for(store).discover)
        finally:
            await self.close_retired()

    def invalidate(self, graph_id: str) -> None:
        """Drop a cached schema; the next request rediscovers it."""
        self.schema_cache.invalidate(graph_id)

    async def list_graphs(self, store_connection: str | None = None) -> list[str]:
        try:
            return await self.store(store_connection).list_graphs()
        finally:
            await self.close_retired()

    async def graph_query(
        self,
        graph_id: str,
        query: str,
        *,
        store_connection: str | None = None,
        read_only: bool = False,
    ) -> ExecutionResult:
        """
        Run a caller-written query.

        Destructive patterns are refused; other validation errors are left
        for the store to judge.

        Raises:
            QueryExecutionFailed: Refused or failed
        """
        outcome = validate_query(query)
        if outcome.destructive:
            raise QueryExecutionFailed(
                ExecutionErrorKind.RUNTIME_REJECTED,
                outcome.error_text(),
                query=query,
            )
        executor = QueryExecutor(
            self.store(store_connection),
            timeout=self.config.execution_timeout,
        )
        mode = ExecutionMode.READ_ONLY if read_only else ExecutionMode.READ_WRITE
        try:
            result = await executor.execute(query, graph_id, mode)
        finally:
            await self.close_retired()
        if result.affected:
            # Writes can change labels, types and attributes
            self.invalidate(graph_id)
        return result

    async def close(self) -> None:
        """Close every store connection."""
        stores = list(self._stores.values()) + self._stores.retired
        self._stores = _StorePool(self._stores.maxsize)
        for store in stores:
            await store.close()
