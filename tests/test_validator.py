"""
Tests for the static Cypher validator.
"""

import pytest

from graph_ask.query.validator import validate_query


class TestWellFormedQueries:
    """Balanced, read-and-return queries without destructive keywords pass."""

    @pytest.mark.parametrize(
        "query",
        [
            "MATCH (p:Person {name: 'Alice'}) RETURN p.name LIMIT 10",
            "MATCH (p:Person)-[:ACTED_IN]->(m:Movie) RETURN m.title, count(p)",
            "match (n) return n limit 5",
            "CALL db.labels() YIELD label RETURN label",
            "UNWIND [1, 2, 3] AS x RETURN x",
            "MATCH (n:Person) WHERE n.name = 'a)b' RETURN n LIMIT 1",
            "MATCH (n) /* ) */ RETURN n LIMIT 1",
            "MATCH (n) // closing ) here\nRETURN n LIMIT 1",
            "MATCH (n:`Weird)Label`) RETURN n LIMIT 1",
            "MATCH (n) WHERE n.name = 'O\\'Brien' RETURN n LIMIT 1",
            "MATCH (n) WHERE n.tags = [\"x\", \"y\"] RETURN n {.name} LIMIT 3",
        ],
    )
    def test_valid(self, query):
        outcome = validate_query(query)
        assert outcome.is_valid, outcome.errors
        assert outcome.errors == ()

    def test_clean_query_has_no_warnings(self):
        outcome = validate_query("MATCH (p:Person {name: 'Alice'}) RETURN p.name LIMIT 10")
        assert outcome.warnings == ()
        assert outcome.mutating is False
        assert outcome.destructive is False

    def test_property_named_like_clause_is_not_a_write(self):
        outcome = validate_query("MATCH (n) RETURN n.set LIMIT 1")
        assert outcome.is_valid
        assert outcome.mutating is False
        assert outcome.warnings == ()


class TestBrackets:
    """Unbalanced brackets name the character and its position."""

    def test_unmatched_closer(self):
        outcome = validate_query("MATCH (n:Person)) RETURN n")
        assert not outcome.is_valid
        assert "Unmatched ')' at position 16" in outcome.errors

    def test_unclosed_opener(self):
        outcome = validate_query("MATCH (n:Person RETURN n")
        assert not outcome.is_valid
        assert "Unclosed '(' at position 6" in outcome.errors

    def test_mismatched_pair(self):
        outcome = validate_query("MATCH (n:Person] RETURN n")
        assert not outcome.is_valid
        assert (
            "Mismatched ']' at position 15: expected ')' to close '(' at position 6"
            in outcome.errors
        )

    def test_mismatched_brace(self):
        outcome = validate_query("MATCH (n {name: 'x') RETURN n")
        assert not outcome.is_valid
        message = next(e for e in outcome.errors if e.startswith("Mismatched"))
        assert "')' at position 19" in message
        assert "'{' at position 9" in message

    def test_only_first_bracket_error_reported(self):
        outcome = validate_query("MATCH (n)) ] RETURN n")
        bracket_errors = [e for e in outcome.errors if "at position" in e]
        assert bracket_errors == ["Unmatched ')' at position 9"]

    def test_unterminated_string(self):
        outcome = validate_query("MATCH (n) WHERE n.name = 'Alice RETURN n")
        assert not outcome.is_valid
        assert "Unterminated string literal starting at position 25" in outcome.errors


class TestRequiredClauses:
    def test_missing_return(self):
        outcome = validate_query("MATCH (n:Person)")
        assert not outcome.is_valid
        assert "Query has no RETURN or YIELD clause" in outcome.errors

    def test_missing_read_clause(self):
        outcome = validate_query("RETURN 1")
        assert not outcome.is_valid
        assert "Query has no read clause (MATCH, MERGE, CALL or UNWIND)" in outcome.errors

    def test_keyword_inside_string_does_not_count(self):
        outcome = validate_query("MATCH (n) WHERE n.note = 'RETURN' SET n.x = 1")
        assert not outcome.is_valid
        assert "Query has no RETURN or YIELD clause" in outcome.errors

    @pytest.mark.parametrize("query", ["", "   ", "\n"])
    def test_empty(self, query):
        outcome = validate_query(query)
        assert not outcome.is_valid
        assert outcome.errors == ("Query is empty",)


class TestDestructivePatterns:
    def test_drop_is_rejected(self):
        outcome = validate_query("MATCH (n) DROP INDEX ON :Person(name) RETURN n")
        assert not outcome.is_valid
        assert outcome.destructive is True
        assert "Query contains the destructive keyword DROP" in outcome.errors

    def test_unscoped_delete_is_rejected(self):
        outcome = validate_query("MATCH (n) DELETE n RETURN count(n)")
        assert not outcome.is_valid
        assert outcome.destructive is True
        assert any("DELETE without a scoping MATCH" in e for e in outcome.errors)

    def test_delete_scoped_by_label(self):
        outcome = validate_query("MATCH (n:Temp) DELETE n RETURN count(n)")
        assert outcome.is_valid
        assert outcome.destructive is False
        assert outcome.mutating is True
        assert outcome.warnings == ("Query modifies the graph (DELETE)",)

    def test_delete_scoped_by_where(self):
        outcome = validate_query(
            "MATCH (n) WHERE n.stale = true DETACH DELETE n RETURN count(n)"
        )
        assert outcome.is_valid
        assert outcome.mutating is True

    def test_drop_inside_string_literal_is_rejected(self):
        # Keyword detection is a plain word match over the raw text
        outcome = validate_query("MATCH (n) WHERE n.name = 'DROP' RETURN n LIMIT 1")
        assert not outcome.is_valid
        assert outcome.destructive is True


class TestWarnings:
    def test_missing_limit_warns(self):
        outcome = validate_query("MATCH (n:Person) RETURN n.name")
        assert outcome.is_valid
        assert len(outcome.warnings) == 1
        assert outcome.warnings[0].startswith("Query has no LIMIT")

    def test_aggregate_needs_no_limit(self):
        outcome = validate_query("MATCH (n:Person) RETURN count(n)")
        assert outcome.warnings == ()

    def test_write_clause_warns(self):
        outcome = validate_query("MERGE (p:Person {name: 'Eve'}) RETURN p")
        assert outcome.is_valid
        assert outcome.mutating is True
        assert outcome.warnings == ("Query modifies the graph (MERGE)",)

    def test_write_clauses_listed_once_in_order(self):
        outcome = validate_query(
            "MATCH (p:Person {name: 'Eve'}) SET p.age = 30 SET p.city = 'Oslo' RETURN p"
        )
        assert outcome.is_valid
        assert outcome.warnings == ("Query modifies the graph (SET)",)


class TestPurity:
    @pytest.mark.parametrize(
        "query",
        [
            "MATCH (n:Person) RETURN n.name",
            "MATCH (n:Person RETURN n",
            "MATCH (n) DELETE n RETURN n",
            "",
        ],
    )
    def test_same_input_same_outcome(self, query):
        assert validate_query(query) == validate_query(query)

    def test_error_text_joins_errors(self):
        outcome = validate_query("MATCH (n:Person")
        assert outcome.error_text() == "; ".join(outcome.errors)
        assert "Unclosed '(' at position 6" in outcome.error_text()
