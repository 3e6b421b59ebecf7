"""Main QueryGate facade.

Constructs every component once at startup, owns the connection pools, and
exposes the operations the HTTP API, CLI and MCP server share. Call
``close()`` (or use it as a context manager) to release the pools.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from querygate.core.config import Settings
from querygate.core.connection import DatabaseConnection
from querygate.core.types import (
    CompiledQuery,
    DatabaseName,
    FeedbackRecord,
    QueryIntent,
    QueryResult,
    SearchRequest,
    SearchResult,
    TableMetadata,
)
from querygate.exceptions import ExecutionError, InvalidRequestError
from querygate.feedback.recorder import FeedbackRecorder
from querygate.intent.analyzer import IntentAnalyzer, OpenAIIntentAnalyzer
from querygate.intent.pipeline import IntentPipeline
from querygate.intent.suggestions import get_suggestions
from querygate.query.compiler import FilterCompiler, clamp_paging
from querygate.query.context import SchemaContextBuilder
from querygate.query.executor import ExecutionEngine, rows_to_csv
from querygate.query.operators import operator_catalog
from querygate.query.validator import SafetyGate, ValidationResult
from querygate.schema.catalog import SchemaCatalog
from querygate.schema.models import INTERNAL_TABLES

logger = logging.getLogger(__name__)


@dataclass
class DatabaseServices:
    """The components bound to one logical database."""

    connection: DatabaseConnection
    catalog: SchemaCatalog
    compiler: FilterCompiler
    gate: SafetyGate
    executor: ExecutionEngine


class QueryGate:
    """Safe read access to dynamically discovered relational schemas.

    Example:
        with QueryGate(Settings(main_url="sqlite:///crm.db")) as gate:
            page = gate.search(SearchRequest(table="contacts", filters=[...]))
            intent = gate.analyze("show contacts with no email")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        analyzer: IntentAnalyzer | None = None,
    ) -> None:
        """Initialize QueryGate.

        Args:
            settings: Configuration (defaults to Settings.from_env())
            analyzer: Natural-language analyzer. When omitted, an OpenAI
                analyzer is built if OPENAI_API_KEY is configured; otherwise
                analysis is unavailable.
        """
        self._settings = settings or Settings.from_env()

        main = self._build_services(self._settings.database_url(DatabaseName.MAIN))
        readonly_url = self._settings.database_url(DatabaseName.READONLY)
        if readonly_url == self._settings.main_url:
            readonly = main
        else:
            readonly = self._build_services(readonly_url)
        self._databases = {DatabaseName.MAIN: main, DatabaseName.READONLY: readonly}

        feedback_url = self._settings.resolved_feedback_url
        if feedback_url == self._settings.main_url:
            self._feedback_connection = main.connection
        elif feedback_url == readonly_url:
            self._feedback_connection = readonly.connection
        else:
            self._feedback_connection = self._new_connection(feedback_url)
        self._feedback = FeedbackRecorder(self._feedback_connection)

        if analyzer is None and self._settings.openai_api_key:
            analyzer = OpenAIIntentAnalyzer(
                model=self._settings.openai_model, api_key=self._settings.openai_api_key
            )
        self._pipeline = IntentPipeline(
            gate=readonly.gate,
            executor=readonly.executor,
            context_builder=SchemaContextBuilder(readonly.catalog, readonly.connection.dialect),
            analyzer=analyzer,
        )

    def _new_connection(self, url: str) -> DatabaseConnection:
        return DatabaseConnection(
            url,
            echo=self._settings.echo,
            pool_size=self._settings.pool_size,
            max_overflow=self._settings.pool_max_overflow,
            pool_timeout=self._settings.pool_timeout,
        )

    def _build_services(self, url: str) -> DatabaseServices:
        connection = self._new_connection(url)
        catalog = SchemaCatalog(
            connection,
            schema=self._settings.db_schema,
            ttl=self._settings.catalog_ttl,
            sample_limit=self._settings.sample_limit,
            sample_max_distinct=self._settings.sample_max_distinct,
            excluded_tables=INTERNAL_TABLES,
        )
        gate = SafetyGate(catalog)
        return DatabaseServices(
            connection=connection,
            catalog=catalog,
            compiler=FilterCompiler(
                catalog,
                dialect=connection.dialect,
                case_insensitive=self._settings.case_insensitive_search,
            ),
            gate=gate,
            executor=ExecutionEngine(
                connection,
                gate,
                statement_timeout=self._settings.statement_timeout,
                max_rows=self._settings.max_rows,
            ),
        )

    @property
    def settings(self) -> Settings:
        """Active configuration."""
        return self._settings

    @property
    def analysis_available(self) -> bool:
        """Whether natural-language analysis is configured."""
        return self._pipeline.available

    def services(self, database: DatabaseName | str = DatabaseName.MAIN) -> DatabaseServices:
        """Components bound to a logical database."""
        try:
            name = DatabaseName(database)
        except ValueError as e:
            raise InvalidRequestError(
                f"Unknown database '{database}'. Valid databases: "
                f"{', '.join(d.value for d in DatabaseName)}"
            ) from e
        return self._databases[name]

    # === Schema discovery ===

    def metadata(self, database: DatabaseName | str = DatabaseName.MAIN) -> list[TableMetadata]:
        """All discoverable tables of a database."""
        return self.services(database).catalog.list_tables()

    def refresh_metadata(self, database: DatabaseName | str | None = None) -> None:
        """Re-run schema discovery now (all databases when none is given)."""
        targets = [self.services(database)] if database else self._distinct_services()
        for services in targets:
            services.catalog.refresh()

    def operators(self) -> dict[str, list[str]]:
        """Legal filter operators per semantic type."""
        return operator_catalog()

    # === Structured search ===

    def compile(self, request: SearchRequest) -> CompiledQuery:
        """Compile a search request without running it."""
        return self.services(request.database).compiler.compile(
            request.table,
            request.filters,
            sort_by=request.sort_by,
            sort_order=request.sort_order,
            page=request.page,
            page_size=request.page_size,
        )

    def search(self, request: SearchRequest) -> SearchResult:
        """Run one page of a structured search plus its total count.

        Raises:
            CompileError: If the request references unknown tables/columns or
                illegal operators
            ExecutionError: If the database fails while running the search
            ResourceExhaustedError: If the pool or time limit is exhausted
        """
        services = self.services(request.database)
        page, page_size = clamp_paging(request.page, request.page_size)

        data_query = self.compile(request)
        count_query = services.compiler.compile_count(request.table, request.filters)

        result = services.executor.run(data_query)
        if not result.success:
            raise ExecutionError(result.error or "Search failed.")
        count = services.executor.run(count_query)
        if not count.success or not count.data:
            raise ExecutionError(count.error or "Search failed.")

        total = int(next(iter(count.data[0].values())) or 0)
        return SearchResult(
            data=result.data,
            total_count=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    def export_rows(self, request: SearchRequest) -> list[dict[str, Any]]:
        """Run a search from the first row up to the export cap."""
        services = self.services(request.database)
        cap = self._settings.export_max_rows
        query = services.compiler.compile(
            request.table,
            request.filters,
            sort_by=request.sort_by,
            sort_order=request.sort_order,
            page=1,
            page_size=cap,
            max_page_size=cap,
        )
        result = services.executor.run(query, max_rows=cap)
        if not result.success:
            raise ExecutionError(result.error or "Export failed.")
        logger.info(f"Exported {result.row_count} rows from {request.table}")
        return result.data

    def export(self, request: SearchRequest) -> str:
        """Run a search from the first row up to the export cap, as CSV text."""
        return rows_to_csv(self.export_rows(request))

    @staticmethod
    def export_filename(table: str, now_ms: int | None = None) -> str:
        """File name for a CSV export: export_<table>_<unixMillis>.csv."""
        stamp = now_ms if now_ms is not None else int(time.time() * 1000)
        return f"export_{table}_{stamp}.csv"

    # === Safety gate ===

    def validate(
        self, sql: str, database: DatabaseName | str = DatabaseName.READONLY
    ) -> ValidationResult:
        """Check SQL against the safety gate without running it."""
        return self.services(database).gate.validate(sql)

    # === Natural-language queries ===

    def analyze(self, text: str) -> QueryIntent:
        """Interpret a natural-language request (see IntentPipeline.analyze)."""
        return self._pipeline.analyze(text)

    def execute_intent(self, intent: QueryIntent) -> QueryResult:
        """Run a confirmed intent after re-validating its SQL."""
        return self._pipeline.execute(intent)

    def execute_nl(self, sql: str, user_query: str | None = None) -> QueryResult:
        """Run SQL confirmed by the user after re-validating it.

        Raises:
            SafetyViolationError: If the SQL fails the gate; nothing is run
        """
        return self._pipeline.execute_sql(sql, user_query)

    def record_feedback(self, feedback: FeedbackRecord) -> bool:
        """Store an accuracy signal. Never raises."""
        return self._feedback.record(feedback)

    def suggestions(self) -> list[str]:
        """Curated example prompts."""
        return get_suggestions()

    @property
    def feedback(self) -> FeedbackRecorder:
        """The feedback recorder."""
        return self._feedback

    # === Lifecycle ===

    def _distinct_services(self) -> list[DatabaseServices]:
        seen: list[DatabaseServices] = []
        for services in self._databases.values():
            if all(services is not s for s in seen):
                seen.append(services)
        return seen

    def close(self) -> None:
        """Close all database connections."""
        for services in self._distinct_services():
            services.catalog.close()
        connections = [s.connection for s in self._distinct_services()]
        if all(self._feedback_connection is not c for c in connections):
            connections.append(self._feedback_connection)
        for connection in connections:
            connection.close()

    def __enter__(self) -> QueryGate:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()
