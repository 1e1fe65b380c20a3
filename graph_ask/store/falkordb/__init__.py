"""
FalkorDB Backend

Async FalkorDB client wrapped behind the GraphStore interface.

Modules:
    backend: FalkorDBStore, connection URL parsing, value conversion
"""

from graph_ask.store.falkordb.backend import FalkorDBStore, parse_connection

__all__ = ["FalkorDBStore", "parse_connection"]
