"""
Completion Providers

Provider-agnostic interface for the completion calls used by query
generation and answer synthesis.

Modules:
    base: Abstract LLMProvider interface
    llm/: Provider implementations and the create_llm_provider factory

Example:
    >>> from graph_ask.providers.llm import create_llm_provider
    >>> llm = create_llm_provider("openai", model="gpt-4o-mini")
"""

from graph_ask.providers.base import LLMProvider

__all__ = ["LLMProvider"]
