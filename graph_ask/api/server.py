"""
HTTP Server (FastAPI)

Thin transport over GraphAsk.

Endpoints:
    POST /text_to_cypher               Server-sent events: one `progress`
                                       event per pipeline state, then one
                                       `result` event with the AskResponse
    POST /text_to_cypher/sync          AskResponse as JSON
    POST /clear_schema_cache/{graph}   Invalidate a cached schema
    GET  /get_schema/{graph}           Schema (cached or discovered)
    GET  /list_graphs                  Graphs on the store connection
    GET  /configured-model             Default completion model
    POST /graph_query                  Run a caller-written query

Run:
    graph-ask serve --port 8080
    uvicorn graph_ask.api.server:app
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from graph_ask import __version__
from graph_ask.api.service import GraphAsk
from graph_ask.errors import QueryExecutionFailed, StoreError
from graph_ask.types.results import (
    AskRequest,
    AskResponse,
    ExecutionErrorKind,
    PipelineResult,
    ProgressEvent,
)

logger = logging.getLogger(__name__)


class GraphQueryRequest(BaseModel):
    """Body of POST /graph_query."""

    graph_name: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1)
    store_connection: str | None = Field(default=None, repr=False)
    read_only: bool = False


def format_sse(event: str, data: dict[str, Any]) -> str:
    """One server-sent event frame."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def get_service(request: Request) -> GraphAsk:
    return request.app.state.service


service_dep = Annotated[GraphAsk, Depends(get_service)]

router = APIRouter(tags=["Text to Cypher"])


@router.post("/text_to_cypher")
async def text_to_cypher(body: AskRequest, service: service_dep) -> StreamingResponse:
    try:
        items = service.ask_stream(body)
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))

    async def event_source() -> AsyncIterator[str]:
        try:
            async for item in items:
                if isinstance(item, ProgressEvent):
                    yield format_sse("progress", item.model_dump(mode="json"))
                elif isinstance(item, PipelineResult):
                    response = item.to_response()
                    yield format_sse("result", response.model_dump(mode="json", by_alias=True))
        finally:
            # Client disconnects close this generator, not the stream behind it
            await items.aclose()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/text_to_cypher/sync", response_model=AskResponse)
async def text_to_cypher_sync(body: AskRequest, service: service_dep) -> AskResponse:
    try:
        result = await service.ask(body)
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e))
    return result.to_response()


@router.post("/clear_schema_cache/{graph_name}", tags=["Schema"])
async def clear_schema_cache(graph_name: str, service: service_dep) -> dict[str, str]:
    service.invalidate(graph_name)
    return {"status": "success", "graph_name": graph_name}


@router.get("/get_schema/{graph_name}", tags=["Schema"])
async def get_schema(
    graph_name: str,
    service: service_dep,
    store_connection: str | None = None,
) -> dict[str, Any]:
    try:
        schema = await service.get_schema(graph_name, store_connection)
    except StoreError as e:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(e))
    return schema.model_dump(mode="json")


@router.get("/list_graphs", tags=["Graphs"])
async def list_graphs(
    service: service_dep,
    store_connection: str | None = None,
) -> dict[str, list[str]]:
    try:
        graphs = await service.list_graphs(store_connection)
    except StoreError as e:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(e))
    return {"graphs": graphs}


@router.get("/configured-model", tags=["Configuration"])
async def configured_model(service: service_dep) -> dict[str, str]:
    return {"model": service.configured_model}


@router.post("/graph_query", tags=["Graphs"])
async def graph_query(body: GraphQueryRequest, service: service_dep) -> dict[str, Any]:
    try:
        result = await service.graph_query(
            body.graph_name,
            body.query,
            store_connection=body.store_connection,
            read_only=body.read_only,
        )
    except QueryExecutionFailed as e:
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if e.kind == ExecutionErrorKind.CONNECTION_LOST
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(code, {"kind": e.kind.value, "diagnostic": e.diagnostic})
    return result.to_json()


def create_app(service: GraphAsk | None = None) -> FastAPI:
    """
    Build the application around a service.

    The service is attached at construction time so in-process clients
    that skip lifespan events (tests) still see it.
    """
    service = service or GraphAsk()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"GraphAsk API starting (model {service.configured_model})")
        yield
        await service.close()

    app = FastAPI(title="GraphAsk", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.include_router(router)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"name": "graph-ask", "version": __version__}

    return app


def __getattr__(name: str):
    # `uvicorn graph_ask.api.server:app` builds a default app on demand
    if name == "app":
        return create_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
