"""
Integration tests for all 9 MCP tools exercised through the FastMCP Client interface.

Tests the full pipeline: MCP tool → StoreRegistry → KnowledgeGraphStore on a
temporary SQLite file. No external services required.
"""

import json

import pytest
from fastmcp import Client
from mcp_knowledge_graph import mcp_server
from mcp_knowledge_graph.mcp_server import mcp

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_tool_result(result) -> dict | str:
    """Parse a FastMCP CallToolResult into a dict (JSON) or a raw string (plain text)."""
    text = result.content[0].text
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text


async def call(client: Client, tool: str, arguments: dict | None = None) -> dict:
    return parse_tool_result(await client.call_tool(tool, arguments or {}))


def entity_names(graph: dict) -> set[str]:
    return {e["name"] for e in graph["entities"]}


def relation_triples(graph: dict) -> set[tuple[str, str, str]]:
    return {(r["from"], r["to"], r["relationType"]) for r in graph["relations"]}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def global_db(tmp_path, monkeypatch):
    """Point the server's global database at a temp file."""
    db_path = tmp_path / "global" / "memory.db"
    monkeypatch.setattr(mcp_server.settings.storage, "db_path", db_path)
    return db_path


@pytest.fixture
async def mcp_client(global_db):
    """FastMCP in-process client; the lifespan opens the temp database."""
    async with Client(mcp) as client:
        yield client


@pytest.fixture
async def seeded_client(mcp_client):
    await call(
        mcp_client,
        "create_entities",
        {
            "entities": [
                {"name": "AuthService", "entityType": "Service", "observations": ["handles login"]},
                {"name": "Db", "entityType": "Service", "observations": ["no auth here"]},
                {"name": "Frontend", "entityType": "App", "observations": ["renders pages"]},
            ]
        },
    )
    await call(
        mcp_client,
        "create_relations",
        {
            "relations": [
                {"from": "AuthService", "to": "Db", "relationType": "reads"},
                {"from": "Frontend", "to": "AuthService", "relationType": "calls"},
            ]
        },
    )
    return mcp_client


# ---------------------------------------------------------------------------
# Server wiring
# ---------------------------------------------------------------------------


class TestServerWiring:
    async def test_lists_all_tools(self, mcp_client):
        tools = {tool.name for tool in await mcp_client.list_tools()}
        assert tools == {
            "create_entities",
            "create_relations",
            "add_observations",
            "delete_entities",
            "delete_observations",
            "delete_relations",
            "read_graph",
            "search_nodes",
            "open_nodes",
        }

    async def test_lifespan_creates_global_database(self, mcp_client, global_db):
        assert global_db.exists()


# ---------------------------------------------------------------------------
# create_entities / create_relations
# ---------------------------------------------------------------------------


class TestCreate:
    async def test_create_entities_returns_new_only(self, mcp_client):
        first = await call(
            mcp_client,
            "create_entities",
            {"entities": [{"name": "A", "entityType": "Service", "observations": ["x"]}]},
        )
        second = await call(
            mcp_client,
            "create_entities",
            {
                "entities": [
                    {"name": "A", "entityType": "Other", "observations": []},
                    {"name": "B", "entityType": "Service", "observations": []},
                ]
            },
        )

        assert first == {"entities": [{"name": "A", "entityType": "Service", "observations": ["x"]}]}
        assert [e["name"] for e in second["entities"]] == ["B"]

    async def test_create_entities_validation_error(self, mcp_client):
        result = await call(mcp_client, "create_entities", {"entities": [{"name": "A"}]})
        assert result["success"] is False
        assert "entityType" in result["error"]

    async def test_create_relations_dedup(self, mcp_client):
        relation = {"from": "A", "to": "B", "relationType": "uses"}

        first = await call(mcp_client, "create_relations", {"relations": [relation, relation]})
        second = await call(mcp_client, "create_relations", {"relations": [relation]})

        assert first == {"relations": [relation]}
        assert second == {"relations": []}


# ---------------------------------------------------------------------------
# add_observations / delete_*
# ---------------------------------------------------------------------------


class TestObservations:
    async def test_add_observations(self, seeded_client):
        result = await call(
            seeded_client,
            "add_observations",
            {"observations": [{"entityName": "Db", "contents": ["no auth here", "uses WAL"]}]},
        )
        assert result == {"results": [{"entityName": "Db", "addedObservations": ["uses WAL"]}]}

    async def test_add_observations_missing_entity(self, seeded_client):
        result = await call(
            seeded_client,
            "add_observations",
            {
                "observations": [
                    {"entityName": "Db", "contents": ["must not persist"]},
                    {"entityName": "Typo", "contents": ["x"]},
                ]
            },
        )

        assert result["success"] is False
        assert result["entity_name"] == "Typo"
        assert result["error"] == "Entity with name Typo not found"

        graph = await call(seeded_client, "open_nodes", {"names": ["Db"]})
        assert graph["entities"][0]["observations"] == ["no auth here"]

    async def test_delete_observations(self, seeded_client):
        result = await call(
            seeded_client,
            "delete_observations",
            {"deletions": [{"entityName": "Frontend", "observations": ["renders pages", "absent"]}]},
        )
        assert result == {"success": True, "message": "Observations deleted successfully"}

        graph = await call(seeded_client, "open_nodes", {"names": ["Frontend"]})
        assert graph["entities"][0]["observations"] == []


class TestDeletes:
    async def test_delete_entities_cascades(self, seeded_client):
        result = await call(seeded_client, "delete_entities", {"entityNames": ["AuthService", "Nope"]})
        assert result == {"success": True, "message": "Entities deleted successfully"}

        graph = await call(seeded_client, "read_graph")
        assert entity_names(graph) == {"Db", "Frontend"}
        assert graph["relations"] == []

    async def test_delete_relations(self, seeded_client):
        result = await call(
            seeded_client,
            "delete_relations",
            {"relations": [{"from": "AuthService", "to": "Db", "relationType": "reads"}]},
        )
        assert result == {"success": True, "message": "Relations deleted successfully"}

        graph = await call(seeded_client, "read_graph")
        assert relation_triples(graph) == {("Frontend", "AuthService", "calls")}


# ---------------------------------------------------------------------------
# read_graph / search_nodes / open_nodes
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_read_graph(self, seeded_client):
        graph = await call(seeded_client, "read_graph")
        assert entity_names(graph) == {"AuthService", "Db", "Frontend"}
        assert len(graph["relations"]) == 2

    async def test_search_nodes(self, seeded_client):
        graph = await call(seeded_client, "search_nodes", {"query": "auth"})

        assert entity_names(graph) == {"AuthService", "Db"}
        assert relation_triples(graph) == {("AuthService", "Db", "reads")}

    async def test_open_nodes_omits_unknown(self, seeded_client):
        graph = await call(seeded_client, "open_nodes", {"names": ["Frontend", "Z"]})

        assert graph == {
            "entities": [{"name": "Frontend", "entityType": "App", "observations": ["renders pages"]}],
            "relations": [],
        }


# ---------------------------------------------------------------------------
# project_dir selection
# ---------------------------------------------------------------------------


class TestProjectDatabases:
    async def test_project_dir_isolated_from_global(self, mcp_client, tmp_path):
        project = tmp_path / "workspace"
        await call(
            mcp_client,
            "create_entities",
            {"entities": [{"name": "Local", "entityType": "T", "observations": []}], "project_dir": str(project)},
        )

        project_graph = await call(mcp_client, "read_graph", {"project_dir": str(project)})
        global_graph = await call(mcp_client, "read_graph")

        assert entity_names(project_graph) == {"Local"}
        assert global_graph["entities"] == []
        assert (project / ".mcp-knowledge-graph" / "memory.db").exists()
