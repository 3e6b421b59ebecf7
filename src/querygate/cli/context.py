"""CLI context management for the QueryGate instance and shared state."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from querygate import QueryGate, Settings
from querygate.core.config import DEFAULT_DATABASE_URL


def get_database_url(url: str | None) -> str:
    """Resolve database URL from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. QUERYGATE_MAIN_URL environment variable
    3. Default: sqlite:///./querygate.db
    """
    if url:
        return url
    if env_url := os.getenv("QUERYGATE_MAIN_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the QueryGate lifecycle and output preferences.
    """

    database_url: str
    readonly_url: str | None
    echo: bool
    json_output: bool
    _gate: QueryGate | None = field(default=None, init=False, repr=False)

    def settings(self) -> Settings:
        """Settings from the environment with CLI overrides applied."""
        return Settings.from_env(
            main_url=self.database_url,
            readonly_url=self.readonly_url,
            echo=self.echo or None,
        )

    def get_gate(self) -> QueryGate:
        """Get or create the QueryGate (lazy initialization)."""
        if self._gate is None:
            self._gate = QueryGate(self.settings())
        return self._gate

    def close(self) -> None:
        """Close database connections if open."""
        if self._gate is not None:
            self._gate.close()
            self._gate = None
