"""Schema catalog: discovers and caches table/column metadata.

The catalog is the only shared mutable state in QueryGate. Discovery runs
at most once at a time per database. Only the very first load blocks; once a
snapshot exists, an expired TTL starts a refresh on a background thread and
every request keeps reading the previous snapshot until it lands.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from querygate.core.connection import DatabaseConnection
from querygate.core.types import ColumnMetadata, SemanticType, TableMetadata
from querygate.exceptions import UnknownTableError
from querygate.query.operators import semantic_type
from querygate.query.validator import BANNED_KEYWORDS

logger = logging.getLogger(__name__)

# Column name fragments that are never sampled
SENSITIVE_COLUMN_MARKERS = ("encrypted", "password", "token", "secret")

# Seconds close() waits for an in-flight background refresh
REFRESH_JOIN_TIMEOUT = 30.0

_BARE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# Words that must be quoted even when they look like plain identifiers
RESERVED_WORDS = frozenset(
    {
        "all", "and", "as", "asc", "between", "by", "case", "check", "column", "constraint",
        "create", "current_date", "current_time", "current_user", "default", "delete", "desc",
        "distinct", "do", "else", "end", "except", "false", "fetch", "for", "foreign", "from",
        "grant", "group", "having", "in", "insert", "intersect", "into", "is", "join", "like",
        "limit", "not", "null", "offset", "on", "only", "or", "order", "primary", "references",
        "select", "table", "then", "to", "true", "union", "unique", "update", "user", "using",
        "when", "where", "with",
    }
)  # fmt: skip

_INFO_SCHEMA_TABLES = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = :schema
      AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

_INFO_SCHEMA_COLUMNS = """
    SELECT column_name, data_type, is_nullable, column_default, character_maximum_length
    FROM information_schema.columns
    WHERE table_schema = :schema
      AND table_name = :table_name
    ORDER BY ordinal_position
"""


def quote_identifier(name: str) -> str:
    """Render a catalog identifier for embedding in SQL text.

    Plain lowercase identifiers are emitted bare; anything else, including
    names the safety gate bans as bare words, is wrapped in double quotes
    with embedded quotes doubled. Only call this with names
    that came out of the catalog, never with raw user input.
    """
    if (
        _BARE_IDENTIFIER.match(name)
        and name not in RESERVED_WORDS
        and name.upper() not in BANNED_KEYWORDS
    ):
        return name
    return '"' + name.replace('"', '""') + '"'


def _is_sensitive(column_name: str) -> bool:
    lowered = column_name.lower()
    return any(marker in lowered for marker in SENSITIVE_COLUMN_MARKERS)


class SchemaCatalog:
    """Cached, introspected description of the tables of one database.

    Example:
        catalog = SchemaCatalog(connection)
        for table in catalog.list_tables():
            print(table.table_name, table.row_count)
    """

    def __init__(
        self,
        connection: DatabaseConnection | None,
        schema: str = "public",
        ttl: float = 300.0,
        sample_limit: int = 20,
        sample_max_distinct: int = 50,
        excluded_tables: set[str] | frozenset[str] | None = None,
    ) -> None:
        """Initialize the catalog.

        Args:
            connection: Database to introspect (None for a fixed snapshot)
            schema: Schema to discover on PostgreSQL
            ttl: Seconds a snapshot stays fresh (0 = refresh on every read)
            sample_limit: Distinct sample values kept per enumerable column
            sample_max_distinct: Columns with more distinct values than this
                are treated as free text and not sampled
            excluded_tables: Tables never exposed (QueryGate's own tables)
        """
        self._connection = connection
        self._schema = schema
        self._ttl = ttl
        self._sample_limit = sample_limit
        self._sample_max_distinct = max(sample_max_distinct, sample_limit)
        self._excluded = frozenset(excluded_tables or ())
        self._snapshot: dict[str, TableMetadata] | None = None
        self._loaded_at = 0.0
        self._refresh_lock = threading.Lock()
        self._refresh_thread: threading.Thread | None = None

    @classmethod
    def from_tables(cls, tables: list[TableMetadata]) -> SchemaCatalog:
        """Build a catalog over a fixed set of tables (no database access)."""
        catalog = cls(connection=None)
        catalog._snapshot = {t.table_name: t for t in tables}
        catalog._loaded_at = time.monotonic()
        return catalog

    @property
    def schema(self) -> str:
        """Schema the catalog discovers."""
        return self._schema

    # === Lookups ===

    def list_tables(self) -> list[TableMetadata]:
        """All discovered tables, sorted by name."""
        snapshot = self._current()
        return [snapshot[name] for name in sorted(snapshot)]

    def get_table(self, name: str) -> TableMetadata | None:
        """Look up a table by exact name."""
        return self._current().get(name)

    def require_table(self, name: str) -> TableMetadata:
        """Look up a table, raising UnknownTableError if it does not exist."""
        snapshot = self._current()
        table = snapshot.get(name)
        if table is None:
            raise UnknownTableError(name, sorted(snapshot))
        return table

    def table_names(self) -> set[str]:
        """Allow-list of table names."""
        return set(self._current())

    # === Refresh ===

    def refresh(self, wait: bool = True) -> bool:
        """Re-run discovery and swap in the new snapshot.

        Args:
            wait: If False and another refresh is already running, return
                immediately and keep serving the current snapshot.

        Returns:
            True if this call performed the refresh
        """
        if self._connection is None:
            return False

        if not self._refresh_lock.acquire(blocking=wait):
            return False
        try:
            self._run_discovery()
            return True
        finally:
            self._refresh_lock.release()

    def invalidate(self) -> None:
        """Mark the snapshot stale so the next read triggers a refresh."""
        self._loaded_at = 0.0

    def wait_for_refresh(self, timeout: float | None = None) -> None:
        """Block until a background refresh in flight has finished."""
        thread = self._refresh_thread
        if thread is not None:
            thread.join(timeout)

    def close(self) -> None:
        """Let a background refresh finish before the connection goes away."""
        self.wait_for_refresh(timeout=REFRESH_JOIN_TIMEOUT)

    def _run_discovery(self) -> None:
        started = time.perf_counter()
        snapshot = self._discover()
        self._snapshot = snapshot
        self._loaded_at = time.monotonic()
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"Schema catalog refreshed: {len(snapshot)} tables in {elapsed_ms:.0f}ms")

    def _start_background_refresh(self) -> None:
        # The lock is released by the refresh thread
        if not self._refresh_lock.acquire(blocking=False):
            return
        thread = threading.Thread(
            target=self._background_refresh, name="querygate-catalog-refresh", daemon=True
        )
        self._refresh_thread = thread
        thread.start()

    def _background_refresh(self) -> None:
        try:
            self._run_discovery()
        except SQLAlchemyError as e:
            # Keep the stale snapshot and retry after another TTL
            self._loaded_at = time.monotonic()
            logger.error(f"Background schema refresh failed: {e}")
        finally:
            self._refresh_lock.release()

    def _current(self) -> dict[str, TableMetadata]:
        if self._snapshot is None:
            if self._connection is None:
                return {}
            # Nothing to serve yet: wait for the first discovery, running it if nobody is
            with self._refresh_lock:
                if self._snapshot is None:
                    self._run_discovery()
            return self._snapshot or {}

        snapshot = self._snapshot
        if self._connection is not None and time.monotonic() - self._loaded_at >= self._ttl:
            self._start_background_refresh()
        return snapshot

    # === Discovery ===

    def _discover(self) -> dict[str, TableMetadata]:
        assert self._connection is not None
        snapshot: dict[str, TableMetadata] = {}

        for table_name in self._discover_table_names():
            if table_name in self._excluded:
                continue
            try:
                snapshot[table_name] = self._describe_table(table_name)
            except SQLAlchemyError as e:
                logger.warning(f"Skipping table {table_name} during introspection: {e}")

        return snapshot

    def _discover_table_names(self) -> list[str]:
        assert self._connection is not None
        with self._connection.engine.connect() as conn:
            if self._connection.is_postgresql:
                result = conn.execute(text(_INFO_SCHEMA_TABLES), {"schema": self._schema})
                return [row[0] for row in result]
            return sorted(inspect(conn).get_table_names())

    def _discover_columns(self, conn: Any, table_name: str) -> list[ColumnMetadata]:
        assert self._connection is not None
        if self._connection.is_postgresql:
            result = conn.execute(
                text(_INFO_SCHEMA_COLUMNS),
                {"schema": self._schema, "table_name": table_name},
            )
            return [
                ColumnMetadata(
                    name=row.column_name,
                    data_type=row.data_type,
                    nullable=row.is_nullable == "YES",
                    default_value=row.column_default,
                    max_length=row.character_maximum_length,
                )
                for row in result
            ]

        columns = []
        for col in inspect(conn).get_columns(table_name):
            col_type = col["type"]
            default = col.get("default")
            columns.append(
                ColumnMetadata(
                    name=col["name"],
                    data_type=str(col_type).lower(),
                    nullable=bool(col.get("nullable", True)),
                    default_value=str(default) if default is not None else None,
                    max_length=getattr(col_type, "length", None),
                )
            )
        return columns

    def _describe_table(self, table_name: str) -> TableMetadata:
        assert self._connection is not None
        # table_name comes from the discovery result itself, never from a request
        table_ident = quote_identifier(table_name)

        with self._connection.engine.connect() as conn:
            columns = self._discover_columns(conn, table_name)
            row_count = conn.execute(text(f"SELECT COUNT(*) FROM {table_ident}")).scalar() or 0

            sample_values: dict[str, list[Any]] = {}
            for column in columns:
                if not self._is_enumerable(column):
                    continue
                try:
                    samples = self._sample_column(conn, table_ident, column.name)
                except SQLAlchemyError as e:
                    logger.debug(f"Skipping samples for {table_name}.{column.name}: {e}")
                    conn.rollback()
                    continue
                if samples is not None:
                    sample_values[column.name] = samples

        return TableMetadata(
            table_name=table_name,
            columns=columns,
            row_count=int(row_count),
            sample_values=sample_values,
        )

    def _is_enumerable(self, column: ColumnMetadata) -> bool:
        if self._sample_limit == 0 or _is_sensitive(column.name):
            return False
        return semantic_type(column.data_type) in (SemanticType.TEXT, SemanticType.BOOLEAN)

    def _sample_column(self, conn: Any, table_ident: str, column_name: str) -> list[Any] | None:
        """Distinct values of a low-cardinality column, or None if it has too many."""
        col_ident = quote_identifier(column_name)
        result = conn.execute(
            text(
                f"SELECT DISTINCT {col_ident} FROM {table_ident} "
                f"WHERE {col_ident} IS NOT NULL LIMIT {self._sample_max_distinct + 1}"
            )
        )
        values = [row[0] for row in result]
        if len(values) > self._sample_max_distinct:
            return None
        return sorted(values, key=str)[: self._sample_limit]
