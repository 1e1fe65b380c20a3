"""
Result Formatter

Renders execution results in a compact, Cypher-like text form that a model
can read and quote back:

    Empty:            No results returned.
    Single value:     "John Doe"
    Single row:       [(:Person {name: "John"}), 25, "Engineer"]
    Multiple rows:    1. (:Person {name: "John"})
                      2. (:Person {name: "Jane"})

Also provides a JSON-safe rendering for API responses.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from graph_ask.types.results import GraphEdge, GraphNode, GraphPath

if TYPE_CHECKING:
    from graph_ask.types.results import ExecutionResult

EMPTY_RESULT_TEXT = "No results returned."


def _format_properties(properties: dict[str, Any]) -> str:
    if not properties:
        return ""
    pairs = ", ".join(f"{key}: {format_value(value)}" for key, value in properties.items())
    return f" {{{pairs}}}"


def format_value(value: Any) -> str:
    """Format one result value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, GraphNode):
        labels = "".join(f":{label}" for label in value.labels)
        return f"({labels}{_format_properties(value.properties)})"
    if isinstance(value, GraphEdge):
        return f"-[:{value.relation}{_format_properties(value.properties)}]-"
    if isinstance(value, GraphPath):
        parts: list[str] = []
        for index, node in enumerate(value.nodes):
            if index > 0 and index - 1 < len(value.edges):
                parts.append(format_value(value.edges[index - 1]))
            parts.append(format_value(node))
        return "".join(parts)
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: {format_value(v)}" for k, v in value.items()) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    return str(value)


def _format_row(row: list[Any]) -> str:
    if len(row) == 1:
        return format_value(row[0])
    return "[" + ", ".join(format_value(v) for v in row) + "]"


def format_records(result: "ExecutionResult") -> str:
    """Format a whole result."""
    rows = result.rows
    if not rows:
        return EMPTY_RESULT_TEXT
    if len(rows) == 1:
        return _format_row(rows[0])
    return "\n".join(f"{index}. {_format_row(row)}" for index, row in enumerate(rows, start=1))


def value_to_json(value: Any) -> Any:
    """Convert graph values into plain JSON-compatible structures."""
    if isinstance(value, GraphNode):
        return {
            "id": value.id,
            "labels": list(value.labels),
            "properties": value_to_json(value.properties),
        }
    if isinstance(value, GraphEdge):
        return {
            "id": value.id,
            "relation": value.relation,
            "source": value.source_id,
            "target": value.target_id,
            "properties": value_to_json(value.properties),
        }
    if isinstance(value, GraphPath):
        return {
            "nodes": [value_to_json(n) for n in value.nodes],
            "edges": [value_to_json(e) for e in value.edges],
        }
    if isinstance(value, dict):
        return {str(k): value_to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [value_to_json(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def records_to_json(result: "ExecutionResult") -> dict[str, Any]:
    return {
        "columns": list(result.columns),
        "rows": [[value_to_json(v) for v in row] for row in result.rows],
        "affected": result.affected,
    }
