"""MCP tool input models.

Each MCP tool validates its arguments by constructing the matching model
here, so the tool functions in ``mcp_server.py`` stay free of shape checks.
The optional ``project_dir`` selects a per-project database; when absent
the global database is used.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .graph import Entity, ObservationAddition, ObservationDeletion, Relation
from .validators import StringList


class ToolParams(BaseModel):
    """Fields shared by every knowledge graph tool."""

    project_dir: str | None = None


class CreateEntitiesParams(ToolParams):
    """Validated input for the ``create_entities`` MCP tool."""

    entities: list[Entity]


class CreateRelationsParams(ToolParams):
    """Validated input for the ``create_relations`` MCP tool."""

    relations: list[Relation]


class AddObservationsParams(ToolParams):
    """Validated input for the ``add_observations`` MCP tool."""

    observations: list[ObservationAddition]


class DeleteEntitiesParams(ToolParams):
    """Validated input for the ``delete_entities`` MCP tool."""

    entity_names: StringList = Field(alias="entityNames")

    model_config = ConfigDict(populate_by_name=True)


class DeleteObservationsParams(ToolParams):
    """Validated input for the ``delete_observations`` MCP tool."""

    deletions: list[ObservationDeletion]


class DeleteRelationsParams(ToolParams):
    """Validated input for the ``delete_relations`` MCP tool."""

    relations: list[Relation]


class SearchNodesParams(ToolParams):
    """Validated input for the ``search_nodes`` MCP tool."""

    query: str


class OpenNodesParams(ToolParams):
    """Validated input for the ``open_nodes`` MCP tool."""

    names: StringList
