"""Shared fixtures: an in-memory graph store, a sample schema and a mock LLM."""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from graph_ask.store.base import GraphStore, StoreResult
from graph_ask.types.schema import Attribute, AttributeType, Entity, GraphSchema, Relation

Responder = Callable[[str, str], "StoreResult | Exception"]


class FakeStore(GraphStore):
    """GraphStore answering from a responder function; records every query."""

    def __init__(self, responder: Responder | None = None, graphs: list[str] | None = None):
        self.responder = responder or (lambda graph_id, query: StoreResult())
        self.graphs = graphs or []
        self.calls: list[tuple[str, str, bool]] = []
        self.closed = False

    async def query(self, graph_id, query, *, read_only=True, timeout_ms=None):
        self.calls.append((graph_id, query, read_only))
        result = self.responder(graph_id, query)
        if isinstance(result, Exception):
            raise result
        return result

    async def list_graphs(self):
        return list(self.graphs)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sample_schema() -> GraphSchema:
    """Person{name}, Movie{title, released} and ACTED_IN."""
    return GraphSchema(
        graph_id="movies",
        entities=(
            Entity(
                label="Person",
                count=2,
                attributes=(
                    Attribute(
                        name="name",
                        type=AttributeType.STRING,
                        count=2,
                        required=True,
                        unique=True,
                        examples=("Alice", "Bob"),
                    ),
                ),
            ),
            Entity(
                label="Movie",
                count=1,
                attributes=(
                    Attribute(name="title", type=AttributeType.STRING, count=1, examples=("Heat",)),
                    Attribute(name="released", type=AttributeType.INTEGER, count=1, examples=("1995",)),
                ),
            ),
        ),
        relations=(Relation(label="ACTED_IN", source="Person", target="Movie"),),
    )


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM provider."""
    llm = MagicMock()
    llm.generate = AsyncMock(return_value="Generated text")
    llm.model_name = "test-model"
    return llm
