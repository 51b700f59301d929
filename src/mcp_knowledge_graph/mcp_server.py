#!/usr/bin/env python3
"""FastMCP server for the knowledge graph.

Each tool validates its arguments with a Pydantic input model and maps 1:1
onto one KnowledgeGraphStore operation. Every tool takes an optional
``project_dir``; the store it runs against is picked explicitly from the
StoreRegistry held in the lifespan context.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP
from pydantic import ValidationError

from .config import settings
from .errors import EntityNotFoundError
from .models.mcp_inputs import (
    AddObservationsParams,
    CreateEntitiesParams,
    CreateRelationsParams,
    DeleteEntitiesParams,
    DeleteObservationsParams,
    DeleteRelationsParams,
    OpenNodesParams,
    SearchNodesParams,
)
from .storage.registry import StoreRegistry
from .storage.sqlite_graph import KnowledgeGraphStore

# Configure logging (stderr, so the stdio transport stays clean)
logging.basicConfig(level=getattr(logging, settings.server.log_level))
logger = logging.getLogger(__name__)


@dataclass
class KnowledgeGraphContext:
    """Application context shared by all tool calls."""

    registry: StoreRegistry


@asynccontextmanager
async def mcp_server_lifespan(server: FastMCP) -> AsyncIterator[KnowledgeGraphContext]:
    """Open the global store on startup and close every store on shutdown."""
    registry = StoreRegistry(settings.storage)
    await registry.get_store()
    logger.info(f"Memory MCP Server: Using database at {registry.resolve_path()}")

    try:
        yield KnowledgeGraphContext(registry=registry)
    finally:
        logger.info("Shutting down MCP Knowledge Graph, closing stores...")
        await registry.close_all()


mcp = FastMCP("MCP Knowledge Graph", lifespan=mcp_server_lifespan)


async def _get_store(ctx: Context, project_dir: str | None) -> KnowledgeGraphStore:
    registry: StoreRegistry = ctx.request_context.lifespan_context.registry
    return await registry.get_store(project_dir)


def _validation_error(e: ValidationError) -> dict[str, Any]:
    return {"success": False, "error": str(e)}


# =============================================================================
# GRAPH MUTATIONS
# =============================================================================


@mcp.tool()
async def create_entities(
    entities: list[dict[str, Any]],
    ctx: Context,
    project_dir: str | None = None,
) -> dict[str, Any]:
    """Create multiple new entities in the knowledge graph.

    Entities whose name already exists are skipped without error.

    Args:
        entities: Objects with name, entityType and observations (array of strings)
        project_dir: Project directory whose database to use (default: global database)

    Returns:
        {entities: [...]} listing only the entities that were newly created.
    """
    try:
        params = CreateEntitiesParams(entities=entities, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    created = await store.create_entities(params.entities)
    return {"entities": [entity.to_wire() for entity in created]}


@mcp.tool()
async def create_relations(
    relations: list[dict[str, Any]],
    ctx: Context,
    project_dir: str | None = None,
) -> dict[str, Any]:
    """Create multiple new relations between entities in the knowledge graph.

    Relations should be in active voice. Existing (from, to, relationType)
    triples are skipped without error.

    Args:
        relations: Objects with from, to and relationType
        project_dir: Project directory whose database to use (default: global database)

    Returns:
        {relations: [...]} listing only the relations that were newly created.
    """
    try:
        params = CreateRelationsParams(relations=relations, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    created = await store.create_relations(params.relations)
    return {"relations": [relation.to_wire() for relation in created]}


@mcp.tool()
async def add_observations(
    observations: list[dict[str, Any]],
    ctx: Context,
    project_dir: str | None = None,
) -> dict[str, Any]:
    """Add new observations to existing entities in the knowledge graph.

    If any entityName does not exist the whole call fails and nothing is added.

    Args:
        observations: Objects with entityName and contents (array of strings)
        project_dir: Project directory whose database to use (default: global database)

    Returns:
        {results: [{entityName, addedObservations}]} on success, or
        {success: false, error, entity_name} when an entity is missing.
    """
    try:
        params = AddObservationsParams(observations=observations, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    try:
        results = await store.add_observations(params.observations)
    except EntityNotFoundError as e:
        return {"success": False, "error": str(e), "entity_name": e.entity_name}
    return {"results": [result.to_wire() for result in results]}


@mcp.tool()
async def delete_entities(
    entityNames: list[str],  # noqa: N803
    ctx: Context,
    project_dir: str | None = None,
) -> dict[str, Any]:
    """Delete multiple entities and their associated relations from the knowledge graph.

    Observations of the deleted entities and every relation where they are
    either endpoint are removed too. Unknown names are ignored.

    Args:
        entityNames: An array of entity names to delete
        project_dir: Project directory whose database to use (default: global database)
    """
    try:
        params = DeleteEntitiesParams(entity_names=entityNames, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    await store.delete_entities(params.entity_names)
    return {"success": True, "message": "Entities deleted successfully"}


@mcp.tool()
async def delete_observations(
    deletions: list[dict[str, Any]],
    ctx: Context,
    project_dir: str | None = None,
) -> dict[str, Any]:
    """Delete specific observations from entities in the knowledge graph.

    Args:
        deletions: Objects with entityName and observations (array of strings to delete)
        project_dir: Project directory whose database to use (default: global database)
    """
    try:
        params = DeleteObservationsParams(deletions=deletions, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    await store.delete_observations(params.deletions)
    return {"success": True, "message": "Observations deleted successfully"}


@mcp.tool()
async def delete_relations(
    relations: list[dict[str, Any]],
    ctx: Context,
    project_dir: str | None = None,
) -> dict[str, Any]:
    """Delete multiple relations from the knowledge graph.

    Args:
        relations: Objects with from, to and relationType
        project_dir: Project directory whose database to use (default: global database)
    """
    try:
        params = DeleteRelationsParams(relations=relations, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    await store.delete_relations(params.relations)
    return {"success": True, "message": "Relations deleted successfully"}


# =============================================================================
# GRAPH QUERIES
# =============================================================================


@mcp.tool()
async def read_graph(ctx: Context, project_dir: str | None = None) -> dict[str, Any]:
    """Read the entire knowledge graph.

    Returns:
        {entities: [...], relations: [...]}
    """
    store = await _get_store(ctx, project_dir)
    graph = await store.read_graph()
    return graph.to_wire()


@mcp.tool()
async def search_nodes(query: str, ctx: Context, project_dir: str | None = None) -> dict[str, Any]:
    """Search for nodes in the knowledge graph based on a query.

    Case-insensitive substring match against entity names, types and
    observation content. Only relations between matched entities are returned.

    Args:
        query: The search query to match against entity names, types, and observation content
        project_dir: Project directory whose database to use (default: global database)
    """
    try:
        params = SearchNodesParams(query=query, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    graph = await store.search_nodes(params.query)
    return graph.to_wire()


@mcp.tool()
async def open_nodes(names: list[str], ctx: Context, project_dir: str | None = None) -> dict[str, Any]:
    """Open specific nodes in the knowledge graph by their names.

    Unknown names are left out of the result.

    Args:
        names: An array of entity names to retrieve
        project_dir: Project directory whose database to use (default: global database)
    """
    try:
        params = OpenNodesParams(names=names, project_dir=project_dir)
    except ValidationError as e:
        return _validation_error(e)

    store = await _get_store(ctx, params.project_dir)
    graph = await store.open_nodes(params.names)
    return graph.to_wire()


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main():
    """Main entry point for the MCP Knowledge Graph server."""
    server_settings = settings.server

    if server_settings.transport == "stdio":
        logger.info("Starting MCP Knowledge Graph on stdio")
        mcp.run(transport="stdio")
    else:
        logger.info(f"Starting MCP Knowledge Graph on {server_settings.host}:{server_settings.port}")
        mcp.run(transport="http", host=server_settings.host, port=server_settings.port)


if __name__ == "__main__":
    main()
