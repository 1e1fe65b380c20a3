"""
Schema Acquisition

Modules:
    discovery: SchemaDiscovery - introspects a graph store
    cache: SchemaCache - single-flight LRU cache of discovered schemas
"""

from graph_ask.schema.cache import CacheStats, SchemaCache
from graph_ask.schema.discovery import SchemaDiscovery, discover_schema

__all__ = ["CacheStats", "SchemaCache", "SchemaDiscovery", "discover_schema"]
