"""
MCP Knowledge Graph.

Entities, observations and typed relations persisted in an embedded SQLite
database and exposed as MCP tools.
"""

__version__ = "1.0.0"
