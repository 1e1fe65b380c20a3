"""
Public API

Modules:
    service: GraphAsk - service facade shared by every transport
    server: FastAPI application (HTTP + server-sent events)
"""

from graph_ask.api.service import GraphAsk

__all__ = ["GraphAsk"]
