"""Configuration for QueryGate.

Settings are resolved in order of priority:
1. Explicit keyword arguments
2. QUERYGATE_* environment variables
3. Built-in defaults
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

from querygate.core.types import DatabaseName
from querygate.exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./querygate.db"

# Environment variable per setting field
ENV_VARS: dict[str, str] = {
    "main_url": "QUERYGATE_MAIN_URL",
    "readonly_url": "QUERYGATE_READONLY_URL",
    "feedback_url": "QUERYGATE_FEEDBACK_URL",
    "db_schema": "QUERYGATE_DB_SCHEMA",
    "pool_size": "QUERYGATE_POOL_SIZE",
    "pool_max_overflow": "QUERYGATE_POOL_MAX_OVERFLOW",
    "pool_timeout": "QUERYGATE_POOL_TIMEOUT",
    "statement_timeout": "QUERYGATE_STATEMENT_TIMEOUT",
    "max_rows": "QUERYGATE_MAX_ROWS",
    "export_max_rows": "QUERYGATE_EXPORT_MAX_ROWS",
    "catalog_ttl": "QUERYGATE_CATALOG_TTL",
    "sample_limit": "QUERYGATE_SAMPLE_LIMIT",
    "sample_max_distinct": "QUERYGATE_SAMPLE_MAX_DISTINCT",
    "case_insensitive_search": "QUERYGATE_CASE_INSENSITIVE_SEARCH",
    "openai_api_key": "OPENAI_API_KEY",
    "openai_model": "QUERYGATE_OPENAI_MODEL",
    "log_level": "QUERYGATE_LOG_LEVEL",
    "echo": "QUERYGATE_ECHO",
}


class Settings(BaseModel):
    """Runtime configuration for all QueryGate components."""

    main_url: str = Field(default=DEFAULT_DATABASE_URL, description="Main database URL")
    readonly_url: str | None = Field(
        default=None, description="Read-only replica URL (defaults to main_url)"
    )
    feedback_url: str | None = Field(
        default=None, description="Database for the feedback log (defaults to main_url)"
    )
    db_schema: str = Field(default="public", description="Schema to discover (PostgreSQL)")

    # Connection pool
    pool_size: int = Field(default=5, ge=1)
    pool_max_overflow: int = Field(default=5, ge=0)
    pool_timeout: float = Field(default=5.0, gt=0, description="Seconds to wait for a connection")

    # Execution limits
    statement_timeout: float = Field(default=10.0, gt=0, description="Per-query wall clock (s)")
    max_rows: int = Field(default=10_000, ge=1, description="Hard row cap per query")
    export_max_rows: int = Field(default=10_000, ge=1, description="Rows per CSV export")

    # Schema catalog
    catalog_ttl: float = Field(default=300.0, ge=0, description="Seconds before a refresh")
    sample_limit: int = Field(default=20, ge=0, description="Sample values kept per column")
    sample_max_distinct: int = Field(
        default=50, ge=1, description="Columns with more distinct values are not sampled"
    )

    # Search behavior
    case_insensitive_search: bool = Field(
        default=False, description="Use ILIKE for text patterns on PostgreSQL"
    )

    # Intent analysis
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"

    log_level: str = "INFO"
    echo: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:
        """Build settings from QUERYGATE_* environment variables.

        Args:
            **overrides: Values that take precedence over the environment.
                ``None`` values are ignored.

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If an environment value cannot be parsed
        """
        values: dict[str, Any] = {}
        for field_name, env_var in ENV_VARS.items():
            raw = os.getenv(env_var)
            if raw is not None and raw != "":
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls.model_validate(values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def database_url(self, database: DatabaseName | str) -> str:
        """Resolve the connection URL of a logical database."""
        try:
            name = DatabaseName(database)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown database '{database}'. Valid databases: "
                f"{', '.join(d.value for d in DatabaseName)}"
            ) from e

        if name == DatabaseName.READONLY:
            return self.readonly_url or self.main_url
        return self.main_url

    @property
    def resolved_feedback_url(self) -> str:
        """URL of the database holding the feedback log."""
        return self.feedback_url or self.main_url
