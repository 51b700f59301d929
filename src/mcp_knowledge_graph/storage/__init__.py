"""SQLite-backed knowledge graph storage."""

from .registry import StoreRegistry
from .sqlite_graph import KnowledgeGraphStore

__all__ = ["KnowledgeGraphStore", "StoreRegistry"]
