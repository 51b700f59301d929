"""
Configuration for MCP Knowledge Graph.

Settings are loaded from environment variables using pydantic-settings.
Each section has its own prefix (``MCP_STORAGE_``, ``MCP_SERVER_``).
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = Path.home() / ".mcp-knowledge-graph" / "memory.db"


class StorageSettings(BaseSettings):
    """SQLite storage location and locking behaviour."""

    model_config = SettingsConfigDict(env_prefix="MCP_STORAGE_", extra="ignore", populate_by_name=True)

    db_path: Path = Field(
        default=DEFAULT_DB_PATH,
        # MEMORY_DB_PATH is the variable older deployments set
        validation_alias=AliasChoices("MCP_STORAGE_DB_PATH", "MEMORY_DB_PATH"),
        validate_default=True,
        description="Global database file; relative paths resolve against the working directory",
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="How long a writer waits on a locked database before failing",
    )
    project_db_relpath: Path = Field(
        default=Path(".mcp-knowledge-graph") / "memory.db",
        description="Database location inside a project directory",
    )

    @field_validator("db_path", mode="after")
    @classmethod
    def resolve_db_path(cls, v: Path) -> Path:
        """Expand ``~`` and make the path absolute."""
        return v.expanduser().resolve()

    @field_validator("project_db_relpath", mode="after")
    @classmethod
    def require_relative(cls, v: Path) -> Path:
        if v.is_absolute():
            raise ValueError("project_db_relpath must be relative to the project directory")
        return v


class ServerSettings(BaseSettings):
    """MCP transport settings."""

    model_config = SettingsConfigDict(env_prefix="MCP_SERVER_", extra="ignore")

    transport: Literal["stdio", "http"] = "stdio"
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("transport", mode="before")
    @classmethod
    def lower_transport(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    """Top-level settings container."""

    model_config = SettingsConfigDict(extra="ignore")

    storage: StorageSettings = Field(default_factory=StorageSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


settings = Settings()
