"""Data models for MCP Knowledge Graph."""

from .graph import (
    Entity,
    KnowledgeGraph,
    ObservationAddition,
    ObservationDeletion,
    ObservationResult,
    Relation,
)

__all__ = [
    "Entity",
    "KnowledgeGraph",
    "ObservationAddition",
    "ObservationDeletion",
    "ObservationResult",
    "Relation",
]
