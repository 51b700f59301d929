"""Exceptions raised by the knowledge graph store."""


class KnowledgeGraphError(Exception):
    """Base class for knowledge graph domain errors."""


class EntityNotFoundError(KnowledgeGraphError):
    """An operation referenced an entity that is not stored."""

    def __init__(self, entity_name: str):
        self.entity_name = entity_name
        super().__init__(f"Entity with name {entity_name} not found")


class StoreClosedError(KnowledgeGraphError):
    """The store has no open connection (never initialized, or closed)."""
