# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Knowledge graph storage on SQLite.

Entities, their observations and the relations between them live in three
tables of a single database file. The file is opened in WAL mode with a
busy timeout so several processes can share it: one writer at a time, readers
never blocked. Every public operation is one transaction.
"""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from ..errors import EntityNotFoundError, StoreClosedError
from ..models.graph import (
    Entity,
    KnowledgeGraph,
    ObservationAddition,
    ObservationDeletion,
    ObservationResult,
    Relation,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS entities (
    name TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_name TEXT NOT NULL,
    content TEXT NOT NULL,
    FOREIGN KEY (entity_name) REFERENCES entities(name) ON DELETE CASCADE,
    UNIQUE(entity_name, content)
);

CREATE TABLE IF NOT EXISTS relations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_entity TEXT NOT NULL,
    to_entity TEXT NOT NULL,
    relation_type TEXT NOT NULL,
    FOREIGN KEY (from_entity) REFERENCES entities(name) ON DELETE CASCADE,
    FOREIGN KEY (to_entity) REFERENCES entities(name) ON DELETE CASCADE,
    UNIQUE(from_entity, to_entity, relation_type)
);

CREATE INDEX IF NOT EXISTS idx_observations_entity ON observations(entity_name);
CREATE INDEX IF NOT EXISTS idx_relations_from ON relations(from_entity);
CREATE INDEX IF NOT EXISTS idx_relations_to ON relations(to_entity);
"""

# Name lists are bound as one JSON array parameter and expanded with
# json_each, which keeps queries clear of SQLite's host-parameter limit.
_NAMES_IN = "SELECT value FROM json_each(?)"


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


class KnowledgeGraphStore:
    """Async SQLite store for the entity / observation / relation graph."""

    def __init__(self, db_path: str | os.PathLike, busy_timeout_ms: int = 5000):
        """
        Initialize the store. No I/O happens until ``initialize()``.

        Args:
            db_path: Path to the SQLite database file
            busy_timeout_ms: How long a write waits for a locked database before failing
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: aiosqlite.Connection | None = None
        # One connection per store: transactions from concurrent coroutines must not interleave on it
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    async def initialize(self) -> None:
        """Open the database and create the schema if it does not exist."""
        if self._conn is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
        try:
            cursor = await conn.execute("PRAGMA journal_mode=WAL")
            row = await cursor.fetchone()
            journal_mode = row[0] if row else None
            await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            await conn.create_function("casefold", 1, _casefold, deterministic=True)
            await conn.executescript(SCHEMA)
        except BaseException:
            await conn.close()
            raise

        self._conn = conn
        logger.info(f"Knowledge graph store opened at {self.db_path} (journal_mode={journal_mode})")

    async def close(self) -> None:
        """Close the connection. Calling it again is a no-op."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        logger.info(f"Knowledge graph store closed: {self.db_path}")

    async def __aenter__(self) -> "KnowledgeGraphStore":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @asynccontextmanager
    async def _transaction(self, write: bool = True) -> AsyncIterator[aiosqlite.Connection]:
        """Run the body in one transaction, rolling back on any exception.

        Write transactions start with BEGIN IMMEDIATE so the write lock is
        taken up front and waits at most ``busy_timeout_ms``.
        """
        async with self._lock:
            conn = self._conn
            if conn is None:
                raise StoreClosedError(f"Knowledge graph store at {self.db_path} is not open")

            await conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")

    # ── Writes ───────────────────────────────────────────────────────────

    async def create_entities(self, entities: Iterable[Entity]) -> list[Entity]:
        """
        Insert entities whose name is not stored yet, with their observations.

        Existing names are skipped entirely (no merge). Within the batch the
        first occurrence of a name wins.

        Returns:
            The entities that were newly created
        """
        created: list[Entity] = []
        async with self._transaction() as conn:
            for entity in entities:
                cursor = await conn.execute(
                    "INSERT OR IGNORE INTO entities (name, entity_type) VALUES (?, ?)",
                    (entity.name, entity.entity_type),
                )
                if cursor.rowcount == 0:
                    continue
                await conn.executemany(
                    "INSERT OR IGNORE INTO observations (entity_name, content) VALUES (?, ?)",
                    [(entity.name, content) for content in entity.observations],
                )
                created.append(entity)

        logger.debug(f"create_entities: {len(created)} created")
        return created

    async def create_relations(self, relations: Iterable[Relation]) -> list[Relation]:
        """
        Insert relations whose (from, to, type) triple is not stored yet.

        Endpoints are not checked: a relation may name entities that do not
        exist (yet).

        Returns:
            The relations that were newly created
        """
        created: list[Relation] = []
        async with self._transaction() as conn:
            for relation in relations:
                cursor = await conn.execute(
                    "INSERT OR IGNORE INTO relations (from_entity, to_entity, relation_type) VALUES (?, ?, ?)",
                    relation.key,
                )
                if cursor.rowcount:
                    created.append(relation)

        logger.debug(f"create_relations: {len(created)} created")
        return created

    async def add_observations(self, additions: Iterable[ObservationAddition]) -> list[ObservationResult]:
        """
        Attach observations to existing entities.

        Raises:
            EntityNotFoundError: if any entry names a missing entity; nothing
                from the batch is committed in that case
        """
        results: list[ObservationResult] = []
        async with self._transaction() as conn:
            for addition in additions:
                cursor = await conn.execute("SELECT 1 FROM entities WHERE name = ?", (addition.entity_name,))
                if await cursor.fetchone() is None:
                    raise EntityNotFoundError(addition.entity_name)

                added: list[str] = []
                for content in addition.contents:
                    cursor = await conn.execute(
                        "INSERT OR IGNORE INTO observations (entity_name, content) VALUES (?, ?)",
                        (addition.entity_name, content),
                    )
                    if cursor.rowcount:
                        added.append(content)
                results.append(ObservationResult(entity_name=addition.entity_name, added_observations=added))

        return results

    async def delete_entities(self, names: Iterable[str]) -> None:
        """Delete entities with their observations and every relation touching them."""
        params = [(name,) for name in names]
        async with self._transaction() as conn:
            await conn.executemany("DELETE FROM observations WHERE entity_name = ?", params)
            await conn.executemany("DELETE FROM relations WHERE from_entity = ?", params)
            await conn.executemany("DELETE FROM relations WHERE to_entity = ?", params)
            await conn.executemany("DELETE FROM entities WHERE name = ?", params)

        logger.debug(f"delete_entities: {len(params)} requested")

    async def delete_observations(self, deletions: Iterable[ObservationDeletion]) -> None:
        params = [(d.entity_name, content) for d in deletions for content in d.observations]
        async with self._transaction() as conn:
            await conn.executemany("DELETE FROM observations WHERE entity_name = ? AND content = ?", params)

    async def delete_relations(self, relations: Iterable[Relation]) -> None:
        params = [relation.key for relation in relations]
        async with self._transaction() as conn:
            await conn.executemany(
                "DELETE FROM relations WHERE from_entity = ? AND to_entity = ? AND relation_type = ?",
                params,
            )

    # ── Reads ────────────────────────────────────────────────────────────

    async def read_graph(self) -> KnowledgeGraph:
        """Return every entity and relation as one consistent snapshot."""
        async with self._transaction(write=False) as conn:
            cursor = await conn.execute("SELECT name, entity_type FROM entities ORDER BY rowid")
            entity_rows = await cursor.fetchall()
            cursor = await conn.execute("SELECT entity_name, content FROM observations ORDER BY id")
            observation_rows = await cursor.fetchall()
            cursor = await conn.execute("SELECT from_entity, to_entity, relation_type FROM relations ORDER BY id")
            relation_rows = await cursor.fetchall()

        return KnowledgeGraph(
            entities=self._build_entities(entity_rows, observation_rows),
            relations=[self._build_relation(row) for row in relation_rows],
        )

    async def search_nodes(self, query: str) -> KnowledgeGraph:
        """
        Find entities whose name, type or any observation contains ``query``.

        Matching is a case-insensitive substring test. Relations are returned
        only when both endpoints matched; relation fields are not searched.
        """
        needle = query.casefold()
        async with self._transaction(write=False) as conn:
            cursor = await conn.execute(
                """
                SELECT DISTINCT e.name
                FROM entities e
                LEFT JOIN observations o ON e.name = o.entity_name
                WHERE instr(casefold(e.name), ?) > 0
                   OR instr(casefold(e.entity_type), ?) > 0
                   OR instr(casefold(o.content), ?) > 0
            """,
                (needle, needle, needle),
            )
            names = [row[0] for row in await cursor.fetchall()]
            if not names:
                return KnowledgeGraph()
            graph = await self._subgraph(conn, names)

        logger.debug(f"search_nodes({query!r}): {len(graph.entities)} entities, {len(graph.relations)} relations")
        return graph

    async def open_nodes(self, names: Iterable[str]) -> KnowledgeGraph:
        """Return the named entities that exist and the relations among them."""
        names = list(names)
        if not names:
            return KnowledgeGraph()
        async with self._transaction(write=False) as conn:
            return await self._subgraph(conn, names)

    async def _subgraph(self, conn: aiosqlite.Connection, names: list[str]) -> KnowledgeGraph:
        names_json = json.dumps(names)

        cursor = await conn.execute(
            f"SELECT name, entity_type FROM entities WHERE name IN ({_NAMES_IN}) ORDER BY rowid",
            (names_json,),
        )
        entity_rows = await cursor.fetchall()
        cursor = await conn.execute(
            f"SELECT entity_name, content FROM observations WHERE entity_name IN ({_NAMES_IN}) ORDER BY id",
            (names_json,),
        )
        observation_rows = await cursor.fetchall()
        cursor = await conn.execute(
            f"""
            SELECT from_entity, to_entity, relation_type
            FROM relations
            WHERE from_entity IN ({_NAMES_IN}) AND to_entity IN ({_NAMES_IN})
            ORDER BY id
        """,
            (names_json, names_json),
        )
        relation_rows = await cursor.fetchall()

        return KnowledgeGraph(
            entities=self._build_entities(entity_rows, observation_rows),
            relations=[self._build_relation(row) for row in relation_rows],
        )

    @staticmethod
    def _build_entities(entity_rows, observation_rows) -> list[Entity]:
        observations: dict[str, list[str]] = {}
        for entity_name, content in observation_rows:
            observations.setdefault(entity_name, []).append(content)
        return [
            Entity(name=name, entity_type=entity_type, observations=observations.get(name, []))
            for name, entity_type in entity_rows
        ]

    @staticmethod
    def _build_relation(row) -> Relation:
        return Relation(from_entity=row[0], to_entity=row[1], relation_type=row[2])
