"""
LLM Provider Implementations

Providers:
    OpenAILLMProvider: OpenAI models via LangChain (gpt-4o, gpt-4o-mini, gpt-5)

Lazy imports so LangChain is only loaded when a provider is created.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from graph_ask.providers.base import LLMProvider

__all__ = ["OpenAILLMProvider", "create_llm_provider"]

SUPPORTED_PROVIDERS = ("openai",)


def create_llm_provider(
    provider: str,
    *,
    model: str,
    api_key: str | None = None,
) -> "LLMProvider":
    """
    Build a provider by name.

    Raises:
        ValueError: If the provider name is not supported
    """
    if provider == "openai":
        from graph_ask.providers.llm.openai import OpenAILLMProvider
        return OpenAILLMProvider(api_key=api_key, model=model)
    raise ValueError(
        f"Unsupported LLM provider: {provider!r}. "
        f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )


def __getattr__(name: str):
    if name == "OpenAILLMProvider":
        from graph_ask.providers.llm.openai import OpenAILLMProvider
        return OpenAILLMProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
