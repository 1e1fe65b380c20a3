"""
Configuration System

Configuration Priority (highest to lowest):
    1. Programmatic (passed to AskConfig())
    2. Environment variables (GRAPH_ASK_* prefix, plus the standard
       FALKORDB_CONNECTION / DEFAULT_MODEL / OPENAI_API_KEY names)
    3. Config file (AskConfig.from_file)
    4. Built-in defaults

Modules:
    settings: AskConfig class
    pricing: Model pricing table for cost telemetry
"""

from graph_ask.config.settings import AskConfig

__all__ = ["AskConfig"]
