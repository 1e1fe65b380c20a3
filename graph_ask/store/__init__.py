"""
Graph Store Backends

Modules:
    base: Abstract GraphStore interface and StoreResult
    falkordb/: FalkorDB implementation

The FalkorDB backend is imported lazily so that the pipeline and its tests
do not require a reachable database client.
"""

from graph_ask.store.base import GraphStore, StoreResult, mask_connection

__all__ = ["GraphStore", "StoreResult", "mask_connection", "FalkorDBStore"]


def __getattr__(name: str):
    if name == "FalkorDBStore":
        from graph_ask.store.falkordb import FalkorDBStore
        return FalkorDBStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
