"""
Tests for result rendering.
"""

from graph_ask.query.formatter import EMPTY_RESULT_TEXT, format_records, format_value
from graph_ask.types.results import ExecutionResult, GraphEdge, GraphNode, GraphPath

ALICE = GraphNode(id=1, labels=("Person",), properties={"name": "Alice", "age": 30})
HEAT = GraphNode(id=2, labels=("Movie",), properties={"title": "Heat"})
ACTED_IN = GraphEdge(id=7, relation="ACTED_IN", source_id=1, target_id=2, properties={"role": "Eady"})


class TestFormatValue:
    def test_scalars(self):
        assert format_value(None) == "null"
        assert format_value(True) == "true"
        assert format_value(42) == "42"
        assert format_value(2.5) == "2.5"
        assert format_value('say "hi"') == '"say \\"hi\\""'

    def test_node(self):
        assert format_value(ALICE) == '(:Person {name: "Alice", age: 30})'

    def test_node_without_properties(self):
        assert format_value(GraphNode(labels=("A", "B"))) == "(:A:B)"

    def test_edge(self):
        assert format_value(ACTED_IN) == '-[:ACTED_IN {role: "Eady"}]-'

    def test_path(self):
        path = GraphPath(nodes=(ALICE, HEAT), edges=(ACTED_IN,))
        assert format_value(path) == (
            '(:Person {name: "Alice", age: 30})-[:ACTED_IN {role: "Eady"}]-(:Movie {title: "Heat"})'
        )

    def test_collections(self):
        assert format_value([1, "a"]) == '[1, "a"]'
        assert format_value({"n": 1}) == "{n: 1}"


class TestFormatRecords:
    def test_empty(self):
        assert format_records(ExecutionResult()) == EMPTY_RESULT_TEXT

    def test_single_value(self):
        assert format_records(ExecutionResult(columns=["n"], rows=[["Alice"]])) == '"Alice"'

    def test_single_row(self):
        result = ExecutionResult(columns=["name", "age"], rows=[["Alice", 30]])
        assert format_records(result) == '["Alice", 30]'

    def test_multiple_rows_are_numbered(self):
        result = ExecutionResult(columns=["name"], rows=[["Alice"], ["Bob"]])
        assert format_records(result) == '1. "Alice"\n2. "Bob"'

    def test_to_text_delegates(self):
        result = ExecutionResult(columns=["p"], rows=[[ALICE]])
        assert result.to_text() == '(:Person {name: "Alice", age: 30})'


def test_to_json_flattens_graph_values():
    result = ExecutionResult(columns=["p", "r"], rows=[[ALICE, ACTED_IN]], affected=0)
    data = result.to_json()

    assert data["columns"] == ["p", "r"]
    node, edge = data["rows"][0]
    assert node == {"id": 1, "labels": ["Person"], "properties": {"name": "Alice", "age": 30}}
    assert edge["relation"] == "ACTED_IN"
    assert (edge["source"], edge["target"]) == (1, 2)
    assert data["affected"] == 0
