"""
Schema Discovery

Builds a GraphSchema by introspecting a graph store.

Algorithm:
    1. Enumerate labels (CALL db.labels()) and relationship types
       (CALL db.relationshipTypes())
    2. Per label: count instances, then sample up to `sample_size` of them
       and read each property key with its typeOf() type
    3. Per attribute: one bounded DISTINCT query over the same sample gives
       the present count, the distinct count and example values
    4. Per relationship type: the same attribute pass over sampled edges,
       plus the distinct (source label, target label) pairs it connects

Attribute flags are sample-based:
    required = present on every sampled instance
    unique   = no value repeats among the sampled instances carrying it

Example values are whatever the store returns first; they are not stable
across runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import TYPE_CHECKING, Any

from graph_ask.query.formatter import format_value
from graph_ask.types.schema import MAX_EXAMPLES, Attribute, AttributeType, Entity, GraphSchema, Relation

if TYPE_CHECKING:
    from graph_ask.store.base import GraphStore

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 100
DEFAULT_CONCURRENCY = 4


def quote_identifier(name: str) -> str:
    """Backtick-quote a label, type or property name."""
    return "`" + name.replace("`", "``") + "`"


def stringify_example(value: Any) -> str:
    """Render one sampled value as example text."""
    if isinstance(value, str):
        return value
    return format_value(value)


class SchemaDiscovery:
    """
    Introspects one store connection.

    Args:
        store: Graph store to query
        sample_size: Instances sampled per label or relationship type
        concurrency: Labels/types introspected in parallel
    """

    def __init__(
        self,
        store: "GraphStore",
        *,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        if sample_size < 1:
            raise ValueError("sample_size must be at least 1")
        self.store = store
        self.sample_size = sample_size
        self._semaphore = asyncio.Semaphore(concurrency)

    async def discover(self, graph_id: str) -> GraphSchema:
        """
        Discover the schema of one graph.

        Raises:
            StoreUnavailable: Store unreachable
            StoreQueryFailed: An introspection query was rejected
        """
        labels = await self.store.labels(graph_id)
        relationship_types = await self.store.relationship_types(graph_id)
        logger.info(
            f"Discovering schema for '{graph_id}': "
            f"{len(labels)} labels, {len(relationship_types)} relationship types"
        )

        entities = await asyncio.gather(
            *(self._bounded(self._discover_entity(graph_id, label)) for label in labels)
        )
        relation_groups = await asyncio.gather(
            *(
                self._bounded(self._discover_relations(graph_id, rel_type))
                for rel_type in relationship_types
            )
        )

        schema = GraphSchema(
            graph_id=graph_id,
            entities=tuple(entities),
            relations=tuple(r for group in relation_groups for r in group),
        )
        logger.info(f"Discovered {schema.summary().lower()} for '{graph_id}'")
        return schema

    async def _bounded(self, coro):
        async with self._semaphore:
            return await coro

    # -------------------------------------------------------------------------
    # Entities and Relations
    # -------------------------------------------------------------------------

    async def _discover_entity(self, graph_id: str, label: str) -> Entity:
        match = f"MATCH (n:{quote_identifier(label)})"
        count_result = await self.store.query(graph_id, f"{match} RETURN count(n)")
        total = int(count_result.rows[0][0]) if count_result.rows else 0
        attributes = await self._collect_attributes(graph_id, match, total)
        return Entity(label=label, attributes=attributes, count=total)

    async def _discover_relations(self, graph_id: str, rel_type: str) -> list[Relation]:
        rel = quote_identifier(rel_type)
        endpoints = await self.store.query(
            graph_id,
            f"MATCH (s)-[r:{rel}]->(t) WITH s, t LIMIT {self.sample_size} "
            "RETURN DISTINCT labels(s) AS source, labels(t) AS target",
        )
        pairs: dict[tuple[str, str], None] = {}
        for source_labels, target_labels in endpoints.rows:
            for source in source_labels or ():
                for target in target_labels or ():
                    pairs[(str(source), str(target))] = None
        if not pairs:
            logger.debug(f"Relationship type '{rel_type}' has no edges; skipped")
            return []

        match = f"MATCH ()-[n:{rel}]->()"
        count_result = await self.store.query(graph_id, f"{match} RETURN count(n)")
        total = int(count_result.rows[0][0]) if count_result.rows else 0
        attributes = await self._collect_attributes(graph_id, match, total)

        return [
            Relation(label=rel_type, source=source, target=target, attributes=attributes)
            for source, target in pairs
        ]

    # -------------------------------------------------------------------------
    # Attributes
    # -------------------------------------------------------------------------

    async def _collect_attributes(
        self,
        graph_id: str,
        match: str,
        total: int,
    ) -> tuple[Attribute, ...]:
        if total == 0:
            return ()
        sampled = min(total, self.sample_size)

        key_rows = await self.store.query(
            graph_id,
            f"{match} WITH n LIMIT {self.sample_size} "
            "UNWIND keys(n) AS key "
            "RETURN key, typeOf(n[key]) AS type, count(*) AS occurrences "
            "ORDER BY key",
        )

        # A key can carry several types across instances; keep the dominant one
        type_counts: dict[str, Counter[str]] = {}
        for key, type_name, occurrences in key_rows.rows:
            type_counts.setdefault(str(key), Counter())[str(type_name)] += int(occurrences)

        attributes = []
        for key, counter in type_counts.items():
            attributes.append(
                await self._describe_attribute(
                    graph_id, match, key, counter.most_common(1)[0][0], sampled
                )
            )
        return tuple(attributes)

    async def _describe_attribute(
        self,
        graph_id: str,
        match: str,
        key: str,
        type_name: str,
        sampled: int,
    ) -> Attribute:
        result = await self.store.query(
            graph_id,
            f"{match} WITH n LIMIT {self.sample_size} "
            f"WITH n.{quote_identifier(key)} AS value WHERE value IS NOT NULL "
            "RETURN count(value) AS present, count(DISTINCT value) AS distinct_values, "
            "collect(DISTINCT value) AS values",
        )
        present, distinct_values, values = (0, 0, [])
        if result.rows:
            present, distinct_values, values = result.rows[0]
            present = int(present or 0)
            distinct_values = int(distinct_values or 0)

        examples = list(dict.fromkeys(stringify_example(v) for v in values or ()))
        return Attribute(
            name=key,
            type=AttributeType.from_store_type(type_name),
            count=present,
            required=present > 0 and present >= sampled,
            unique=present > 0 and distinct_values == present,
            examples=tuple(examples[:MAX_EXAMPLES]),
        )


async def discover_schema(
    store: "GraphStore",
    graph_id: str,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> GraphSchema:
    """Discover a graph's schema with a one-off SchemaDiscovery."""
    return await SchemaDiscovery(store, sample_size=sample_size).discover(graph_id)
