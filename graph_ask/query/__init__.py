"""
Text-to-Cypher Query Pipeline

Turns a conversation into a Cypher query, runs it and answers in plain
language.

Modules:
    pipeline: State machine orchestrator with one self-heal retry per failure class
    generator: Query generation from conversation and schema
    validator: Static structural and safety checks
    executor: Query execution with read-only enforcement
    synthesizer: Answer synthesis from query results
    formatter: Result rendering for prompts and transports
    prompts: Prompt templates

Pipeline States:
    schema -> generating -> validating -> executing -> synthesizing -> done
    A validation or execution error routes back to generating once per
    failure class, with the error text fed to the generator.

Example:
    >>> from graph_ask.query import TextToCypherPipeline
    >>> result = await pipeline.run(ConversationRequest.from_question("Who directed Heat?"), "movies")
    >>> print(result.query)
    >>> print(result.answer)
"""

from graph_ask.query.executor import QueryExecutor, classify_store_error
from graph_ask.query.formatter import format_records, format_value, records_to_json
from graph_ask.query.generator import QueryGenerator, extract_query
from graph_ask.query.pipeline import SELF_HEAL_BUDGET, TextToCypherPipeline
from graph_ask.query.synthesizer import AnswerSynthesizer
from graph_ask.query.validator import validate_query

__all__ = [
    # Main pipeline
    "TextToCypherPipeline",
    "SELF_HEAL_BUDGET",
    # Components
    "QueryGenerator",
    "QueryExecutor",
    "AnswerSynthesizer",
    "validate_query",
    # Helpers
    "extract_query",
    "classify_store_error",
    "format_value",
    "format_records",
    "records_to_json",
]
