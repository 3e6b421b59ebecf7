"""Execution engine: runs approved statements under hard limits.

Every statement is re-approved by the safety gate, executed inside a
read-only transaction with a statement timeout, and capped at a maximum
number of rows regardless of any LIMIT it carries.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from querygate.core.connection import DatabaseConnection
from querygate.core.types import CompiledQuery, QueryResult
from querygate.exceptions import ResourceExhaustedError, SafetyViolationError
from querygate.query.validator import SafetyGate, tokenize

logger = logging.getLogger(__name__)

GENERIC_EXECUTION_ERROR = "The query could not be executed. Please try again or refine your query."

# SQLSTATE codes (PostgreSQL)
_QUERY_CANCELED = "57014"
_READ_ONLY_TRANSACTION = "25006"

# A colon SQLAlchemy's text() would read as a named bind parameter
_BIND_LIKE_COLON = re.compile(r"(?<![:\w\\]):(?=\w)")


def to_bind_sql(sql: str) -> str:
    """Rewrite $n placeholders as :pN named binds for SQLAlchemy text().

    Placeholders inside string literals are left alone, and stray colons
    are escaped so they are not mistaken for binds.
    """
    escaped = _BIND_LIKE_COLON.sub(r"\\:", sql)
    return "".join(
        f":p{token.text[1:]}" if token.kind == "placeholder" else token.text
        for token in tokenize(escaped)
    )


def bind_parameters(parameters: list[Any]) -> dict[str, Any]:
    """Map positional parameters onto the :pN names used by to_bind_sql."""
    return {f"p{i}": value for i, value in enumerate(parameters, start=1)}


class ExecutionEngine:
    """Runs CompiledQuery objects against one database.

    Stateless across calls: each run checks out a pooled connection, runs
    inside a read-only transaction and releases the connection.
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        gate: SafetyGate,
        statement_timeout: float = 10.0,
        max_rows: int = 10_000,
    ) -> None:
        """Initialize the engine.

        Args:
            connection: Database to run against
            gate: Safety gate every statement is re-approved by
            statement_timeout: Wall-clock limit per statement in seconds
            max_rows: Hard row cap independent of the statement's LIMIT
        """
        self._connection = connection
        self._gate = gate
        self._statement_timeout = statement_timeout
        self._max_rows = max_rows

    @property
    def max_rows(self) -> int:
        """Hard row cap per statement."""
        return self._max_rows

    def run(self, query: CompiledQuery, max_rows: int | None = None) -> QueryResult:
        """Run a statement and collect its rows.

        Args:
            query: Statement to run; approved by the gate before execution
            max_rows: Lower row cap for this call (never above the engine cap)

        Returns:
            QueryResult; success=False with a generic message on database errors

        Raises:
            SafetyViolationError: If the gate rejects the statement, or the
                database refuses it as a write
            ResourceExhaustedError: If no connection is available or the
                statement exceeds the timeout
        """
        approved = self._gate.approve(query)
        cap = min(max_rows or self._max_rows, self._max_rows)

        started = time.perf_counter()
        try:
            with self._connection.read_only(self._statement_timeout) as conn:
                # Server-side cursor on PostgreSQL: at most cap + 1 rows leave the database
                result = conn.execute(
                    text(to_bind_sql(approved.sql)),
                    bind_parameters(approved.parameters),
                    execution_options={"stream_results": True, "max_row_buffer": cap + 1},
                )
                columns = list(result.keys())
                raw_rows = result.fetchmany(cap + 1)
                result.close()
        except ResourceExhaustedError:
            raise
        except SQLAlchemyError as e:
            elapsed = time.perf_counter() - started
            return self._handle_failure(e, approved, elapsed)

        elapsed_ms = (time.perf_counter() - started) * 1000
        truncated = len(raw_rows) > cap
        rows = [dict(zip(columns, row, strict=True)) for row in raw_rows[:cap]]

        insights = []
        if truncated:
            insights.append(f"Result truncated to {cap} rows.")
        if not rows:
            insights.append("No rows matched the query.")

        return QueryResult(
            success=True,
            data=rows,
            row_count=len(rows),
            execution_time_ms=round(elapsed_ms, 2),
            insights=insights or None,
        )

    def _handle_failure(
        self, error: SQLAlchemyError, query: CompiledQuery, elapsed: float
    ) -> QueryResult:
        sqlstate = _sqlstate(error)
        message = str(getattr(error, "orig", None) or error)

        if sqlstate == _QUERY_CANCELED or "interrupted" in message.lower():
            logger.warning(f"Statement cancelled after {elapsed:.2f}s: {query.sql!r}")
            raise ResourceExhaustedError(
                "The query took too long and was cancelled. Narrow the filters and retry.",
                {"timeout_s": self._statement_timeout},
            ) from error

        if sqlstate == _READ_ONLY_TRANSACTION or "readonly database" in message.lower():
            logger.warning(f"Database refused a write inside a read-only run: {query.sql!r}")
            raise SafetyViolationError("write attempted in read-only mode", sql=query.sql) from error

        logger.error(f"Query execution failed: {message} | sql={query.sql!r}")
        return QueryResult(
            success=False,
            error=GENERIC_EXECUTION_ERROR,
            execution_time_ms=round(elapsed * 1000, 2),
        )


def _sqlstate(error: SQLAlchemyError) -> str | None:
    if not isinstance(error, DBAPIError):
        return None
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    cell = str(value)
    if any(ch in cell for ch in (",", '"', "\n", "\r")):
        return '"' + cell.replace('"', '""') + '"'
    return cell


def rows_to_csv(rows: list[dict[str, Any]]) -> str:
    """Project result rows to CSV text.

    Column order is the first row's key order; None becomes an empty cell;
    cells containing a comma, quote or newline are quoted with internal
    quotes doubled. An empty result yields an empty string.
    """
    if not rows:
        return ""
    headers = list(rows[0].keys())
    lines = [",".join(_csv_cell(h) for h in headers)]
    for row in rows:
        lines.append(",".join(_csv_cell(row.get(h)) for h in headers))
    return "\n".join(lines)
