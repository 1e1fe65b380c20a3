"""
Graph Schema Types

Immutable description of a graph's entities, relations and attributes,
built by schema discovery and shared across requests through the cache.

Types:
    AttributeType: Closed set of attribute value types
    Attribute: One property observed on an entity label or relation type
    Entity: A node label with its attributes
    Relation: A relationship type with its endpoint labels
    GraphSchema: The full description of one graph

Immutability:
    All models are frozen and hold tuples rather than lists. Refreshing a
    schema means discovering a new GraphSchema instance.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_EXAMPLES = 3
"""Upper bound on example values kept per attribute"""


class AttributeType(str, Enum):
    """Declared value type of an attribute."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"
    OTHER = "other"

    @classmethod
    def from_store_type(cls, type_name: str | None) -> "AttributeType":
        """Map a store-reported type name (typeOf()) onto the closed set."""
        if not type_name:
            return cls.OTHER
        return _STORE_TYPE_NAMES.get(type_name.strip().lower(), cls.OTHER)


_STORE_TYPE_NAMES: dict[str, AttributeType] = {
    "string": AttributeType.STRING,
    "integer": AttributeType.INTEGER,
    "float": AttributeType.FLOAT,
    "double": AttributeType.FLOAT,
    "boolean": AttributeType.BOOLEAN,
    "date": AttributeType.TEMPORAL,
    "datetime": AttributeType.TEMPORAL,
    "localdatetime": AttributeType.TEMPORAL,
    "time": AttributeType.TEMPORAL,
    "localtime": AttributeType.TEMPORAL,
    "duration": AttributeType.TEMPORAL,
}


class Attribute(BaseModel):
    """A property observed on an entity label or relation type."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Property key")
    type: AttributeType = Field(default=AttributeType.OTHER, description="Dominant value type")
    count: int = Field(default=0, ge=0, description="Instances carrying the property (sampled)")
    required: bool = Field(
        default=False,
        description="True if every sampled instance of the owner carries the property",
    )
    unique: bool = Field(default=False, description="True if no sampled value repeats")
    examples: tuple[str, ...] = Field(
        default=(),
        description="Up to 3 distinct example values in order of first observation",
    )

    @field_validator("examples")
    @classmethod
    def _bounded_examples(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(value) > MAX_EXAMPLES:
            raise ValueError(f"at most {MAX_EXAMPLES} example values are allowed")
        if len(set(value)) != len(value):
            raise ValueError("example values must be distinct")
        return value

    def to_prompt_dict(self) -> dict[str, Any]:
        """Compact representation used in prompt ontology text."""
        data: dict[str, Any] = {"name": self.name, "type": self.type.value}
        if self.required:
            data["required"] = True
        if self.unique:
            data["unique"] = True
        if self.examples:
            data["examples"] = list(self.examples)
        return data


class Entity(BaseModel):
    """A node label and the attributes observed on its instances."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Node label, unique within a schema")
    attributes: tuple[Attribute, ...] = Field(default=())
    count: int = Field(default=0, ge=0, description="Approximate instance count")

    def attribute(self, name: str) -> Attribute | None:
        """Look up an attribute by name."""
        return next((a for a in self.attributes if a.name == name), None)


class Relation(BaseModel):
    """A relationship type between two entity labels."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Relationship type name")
    source: str = Field(..., description="Source entity label")
    target: str = Field(..., description="Target entity label")
    attributes: tuple[Attribute, ...] = Field(default=())


class GraphSchema(BaseModel):
    """
    Schema of one graph as seen by discovery.

    Entity labels are unique. Relations are keyed by (label, source, target)
    since one relationship type can connect several label pairs.
    """

    model_config = ConfigDict(frozen=True)

    graph_id: str = Field(..., description="Graph name in the store")
    entities: tuple[Entity, ...] = Field(default=())
    relations: tuple[Relation, ...] = Field(default=())
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("entities")
    @classmethod
    def _unique_labels(cls, value: tuple[Entity, ...]) -> tuple[Entity, ...]:
        labels = [e.label for e in value]
        if len(set(labels)) != len(labels):
            raise ValueError("entity labels must be unique within a schema")
        return value

    def entity(self, label: str) -> Entity | None:
        """Look up an entity by label."""
        return next((e for e in self.entities if e.label == label), None)

    def relations_of(self, label: str) -> list[Relation]:
        """All relations whose source or target is the given label."""
        return [r for r in self.relations if label in (r.source, r.target)]

    def is_empty(self) -> bool:
        """True if discovery found no labels and no relationship types."""
        return not self.entities and not self.relations

    def summary(self) -> str:
        """One-line description used in progress events and logs."""
        return (
            f"Schema with {len(self.entities)} entities "
            f"and {len(self.relations)} relations"
        )

    def to_prompt_text(self) -> str:
        """
        Render the ontology handed to the completion call.

        Counts and timestamps are omitted; they change between discoveries
        and do not help the model write queries.
        """
        data: dict[str, Any] = {
            "entities": [
                {
                    "label": e.label,
                    "attributes": [a.to_prompt_dict() for a in e.attributes],
                }
                for e in self.entities
            ],
            "relations": [
                {
                    "label": r.label,
                    "source": r.source,
                    "target": r.target,
                    **(
                        {"attributes": [a.to_prompt_dict() for a in r.attributes]}
                        if r.attributes
                        else {}
                    ),
                }
                for r in self.relations
            ],
        }
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
