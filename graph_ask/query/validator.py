"""
Query Validator

Static, conservative gate for generated Cypher. Not a parser: it catches
the failure modes generated queries actually show (unbalanced brackets,
missing MATCH/RETURN, destructive statements) and leaves everything else
to the store, whose diagnostics feed the self-heal loop.

Checks (errors block execution):
    1. Brackets (), [] and {} balance outside string literals and comments
    2. A read clause (MATCH, MERGE, CALL, UNWIND) is present
    3. A RETURN or YIELD clause is present
    4. No DROP, and no DELETE unless a MATCH scopes it (label, property
       map or WHERE). This check runs on the raw text, so a literal such as
       'DROP' inside a string is rejected too.

Warnings (advisory):
    - Write clauses present (CREATE, MERGE, SET, REMOVE, DELETE)
    - Non-aggregating read without LIMIT

validate_query() is a pure function of its input.
"""

from __future__ import annotations

import re

from graph_ask.types.results import ValidationOutcome

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {close: open_ for open_, close in _OPENERS.items()}
_QUOTES = {"'": "string literal", '"': "string literal", "`": "quoted identifier"}

# Keywords preceded by "." are property accesses (n.set), not clauses
_KW = r"(?<![.\w]){}\b"

READ_CLAUSE = re.compile(_KW.format(r"(?:MATCH|MERGE|CALL|UNWIND)"), re.IGNORECASE)
RETURN_CLAUSE = re.compile(_KW.format(r"(?:RETURN|YIELD)"), re.IGNORECASE)
WRITE_CLAUSE = re.compile(_KW.format(r"(CREATE|MERGE|SET|REMOVE|DELETE)"), re.IGNORECASE)
LIMIT_CLAUSE = re.compile(_KW.format("LIMIT"), re.IGNORECASE)
WHERE_CLAUSE = re.compile(_KW.format("WHERE"), re.IGNORECASE)
MATCH_CLAUSE = re.compile(_KW.format("MATCH"), re.IGNORECASE)
AGGREGATE_CALL = re.compile(r"\b(?:count|sum|avg|min|max|collect)\s*\(", re.IGNORECASE)

DROP_KEYWORD = re.compile(r"\bDROP\b", re.IGNORECASE)
DELETE_KEYWORD = re.compile(r"\bDELETE\b", re.IGNORECASE)

# Pattern text of one MATCH clause, up to the next clause keyword
MATCH_PATTERN = re.compile(
    r"\bMATCH\b(?P<pattern>.*?)(?=\b(?:WHERE|WITH|DETACH|DELETE|RETURN|SET|REMOVE|"
    r"CREATE|MERGE|OPTIONAL|MATCH|UNWIND|CALL|ORDER|LIMIT)\b|$)",
    re.IGNORECASE | re.DOTALL,
)


def _literal_end(text: str, start: int) -> int | None:
    """Index of the quote closing the literal opened at `start`."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            # `` inside a quoted identifier is an escaped backtick
            if quote == "`" and i + 1 < len(text) and text[i + 1] == "`":
                i += 2
                continue
            return i
        i += 1
    return None


def _scan_structure(text: str) -> tuple[list[str], str]:
    """
    Bracket-balance scan.

    Returns:
        (errors, masked) where masked is the text with literal contents
        and comments blanked, same length as the input
    """
    errors: list[str] = []
    masked = list(text)
    stack: list[tuple[str, int]] = []
    bracket_error = False
    i = 0
    length = len(text)

    while i < length:
        ch = text[i]

        if ch in _QUOTES:
            end = _literal_end(text, i)
            if end is None:
                errors.append(f"Unterminated {_QUOTES[ch]} starting at position {i}")
                for j in range(i, length):
                    masked[j] = " "
                break
            for j in range(i + 1, end):
                masked[j] = " "
            i = end + 1
            continue

        if text.startswith("//", i) or text.startswith("/*", i):
            if text[i + 1] == "/":
                end = text.find("\n", i)
                end = length if end == -1 else end
            else:
                end = text.find("*/", i + 2)
                end = length if end == -1 else end + 2
            for j in range(i, end):
                masked[j] = " "
            i = end
            continue

        if not bracket_error:
            if ch in _OPENERS:
                stack.append((ch, i))
            elif ch in _CLOSERS:
                if not stack:
                    errors.append(f"Unmatched '{ch}' at position {i}")
                    bracket_error = True
                else:
                    opener, position = stack.pop()
                    if _OPENERS[opener] != ch:
                        errors.append(
                            f"Mismatched '{ch}' at position {i}: expected "
                            f"'{_OPENERS[opener]}' to close '{opener}' at position {position}"
                        )
                        bracket_error = True
        i += 1

    if not bracket_error:
        for opener, position in stack:
            errors.append(f"Unclosed '{opener}' at position {position}")

    return errors, "".join(masked)


def _delete_is_scoped(masked: str) -> bool:
    if not MATCH_CLAUSE.search(masked):
        return False
    if WHERE_CLAUSE.search(masked):
        return True
    return any(
        ":" in m.group("pattern") or "{" in m.group("pattern")
        for m in MATCH_PATTERN.finditer(masked)
    )


def validate_query(query_text: str) -> ValidationOutcome:
    """
    Statically validate a Cypher query.

    Args:
        query_text: Candidate query

    Returns:
        ValidationOutcome; is_valid is False if any error was found
    """
    if not query_text or not query_text.strip():
        return ValidationOutcome(is_valid=False, errors=("Query is empty",))

    errors, masked = _scan_structure(query_text)
    warnings: list[str] = []

    if not READ_CLAUSE.search(masked):
        errors.append("Query has no read clause (MATCH, MERGE, CALL or UNWIND)")
    if not RETURN_CLAUSE.search(masked):
        errors.append("Query has no RETURN or YIELD clause")

    destructive = False
    if DROP_KEYWORD.search(query_text):
        errors.append("Query contains the destructive keyword DROP")
        destructive = True
    if DELETE_KEYWORD.search(query_text) and not _delete_is_scoped(masked):
        errors.append(
            "Query contains DELETE without a scoping MATCH (label, property map or WHERE)"
        )
        destructive = True

    write_clauses = list(dict.fromkeys(m.upper() for m in WRITE_CLAUSE.findall(masked)))
    if write_clauses:
        warnings.append(f"Query modifies the graph ({', '.join(write_clauses)})")

    if (
        MATCH_CLAUSE.search(masked)
        and RETURN_CLAUSE.search(masked)
        and not write_clauses
        and not LIMIT_CLAUSE.search(masked)
        and not AGGREGATE_CALL.search(masked)
    ):
        warnings.append("Query has no LIMIT; a broad match may return a very large result")

    return ValidationOutcome(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        mutating=bool(write_clauses),
        destructive=destructive,
    )
