"""MCP server exposing the talk_with_a_graph tool."""

from graph_ask.mcp.server import create_server, main

__all__ = ["create_server", "main"]
