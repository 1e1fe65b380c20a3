"""
Utility Functions

Modules:
    cost_telemetry: Request-scoped usage and cost collection
    token_count: Token estimation when providers report no usage
"""

from graph_ask.utils.cost_telemetry import CostCollector, telemetry_collector, telemetry_stage
from graph_ask.utils.token_count import count_conversation_tokens, count_text_tokens

__all__ = [
    "CostCollector",
    "telemetry_collector",
    "telemetry_stage",
    "count_conversation_tokens",
    "count_text_tokens",
]
