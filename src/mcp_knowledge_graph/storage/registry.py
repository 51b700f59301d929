"""
Store registry for MCP Knowledge Graph.

Keeps one live KnowledgeGraphStore per resolved database path, so the
global database and each project database are opened once per process and
reused by every request that selects them. The registry is owned by the
server lifespan and closed on shutdown; it holds no module-level state.
"""

import asyncio
import logging
from pathlib import Path

from ..config import StorageSettings
from .sqlite_graph import KnowledgeGraphStore

logger = logging.getLogger(__name__)


class StoreRegistry:
    """Maps resolved database paths to initialized stores."""

    def __init__(self, storage_settings: StorageSettings):
        self._settings = storage_settings
        self._stores: dict[Path, KnowledgeGraphStore] = {}
        self._lock = asyncio.Lock()

    def resolve_path(self, project_dir: str | Path | None = None) -> Path:
        """Return the absolute database path for a project, or the global one.

        Args:
            project_dir: Project directory; ``None`` selects the global database
        """
        if project_dir is None:
            return self._settings.db_path.expanduser().resolve()
        return (Path(project_dir).expanduser() / self._settings.project_db_relpath).resolve()

    async def get_store(self, project_dir: str | Path | None = None) -> KnowledgeGraphStore:
        """Get the store for ``project_dir``, opening it on first use."""
        path = self.resolve_path(project_dir)

        # Fast path - already open
        store = self._stores.get(path)
        if store is not None:
            return store

        async with self._lock:
            store = self._stores.get(path)
            if store is not None:
                return store

            store = KnowledgeGraphStore(path, busy_timeout_ms=self._settings.busy_timeout_ms)
            await store.initialize()
            self._stores[path] = store
            logger.info(f"Registered knowledge graph store for {path} ({len(self._stores)} open)")
            return store

    async def close_all(self) -> None:
        """Close every store and forget them. Safe to call more than once."""
        async with self._lock:
            stores, self._stores = self._stores, {}

        for path, store in stores.items():
            try:
                await store.close()
            except Exception as e:
                logger.warning(f"Error closing knowledge graph store {path}: {e}")

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return Path(path).expanduser().resolve() in self._stores
