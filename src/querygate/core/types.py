"""Core types for QueryGate.

All types are pydantic models so they validate once at the boundary and are
JSON-serializable for API, CLI and agent consumption. Python code uses
snake_case field names; the wire format uses camelCase aliases.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class SemanticType(StrEnum):
    """Semantic column types derived from declared database types."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    JSON = "json"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid semantic type values."""
        return [t.value for t in cls]


class FilterOperator(StrEnum):
    """Operators accepted in structured filter conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid operator values."""
        return [o.value for o in cls]


class SortOrder(StrEnum):
    """Sort direction for search results."""

    ASC = "asc"
    DESC = "desc"


class DatabaseName(StrEnum):
    """Logical databases a request can target."""

    MAIN = "main"
    READONLY = "readonly"


class IntentState(StrEnum):
    """Where a natural-language request stands after analysis."""

    CONFIRMATION_PENDING = "confirmation_pending"  # safe, waiting for the user to run it
    AWAITING_CLARIFICATION = "awaiting_clarification"  # user must resubmit refined text
    REJECTED = "rejected"  # suggested SQL failed the safety gate


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases on the wire."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# === Schema catalog ===


class ColumnMetadata(CamelModel):
    """Introspected column description. Immutable once fetched."""

    model_config = {"frozen": True}

    name: str
    data_type: str
    nullable: bool = True
    default_value: str | None = None
    max_length: int | None = None


class TableMetadata(CamelModel):
    """Introspected table description owned by the schema catalog."""

    model_config = {"frozen": True}

    table_name: str
    columns: list[ColumnMetadata] = Field(default_factory=list)
    row_count: int = 0
    sample_values: dict[str, list[Any]] = Field(default_factory=dict)

    @property
    def column_names(self) -> list[str]:
        """Column names in ordinal order."""
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> ColumnMetadata | None:
        """Look up a column by exact name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None


# === Structured search ===


class FilterCondition(CamelModel):
    """One column/operator/value constraint of a conjunctive search.

    ``value`` holds a list for ``in``/``not_in``; ``value2`` is only read by
    ``between``.
    """

    column: str
    operator: FilterOperator
    value: Any = None
    value2: Any = None


class SearchRequest(CamelModel):
    """A structured search against one table."""

    table: str
    filters: list[FilterCondition] = Field(default_factory=list)
    sort_by: str | None = None
    sort_order: SortOrder = SortOrder.ASC
    page: int = 1
    page_size: int = 50
    database: DatabaseName = DatabaseName.MAIN


class SearchResult(CamelModel):
    """One page of search results."""

    data: list[dict[str, Any]]
    total_count: int
    page: int
    page_size: int
    total_pages: int


class CompiledQuery(CamelModel):
    """A parameterized, read-only SQL statement.

    Uses ``$1``-style positional placeholders; ``parameters`` are bound in
    order. Produced by the filter compiler or by the safety gate, never by
    hand.
    """

    model_config = {"frozen": True}

    sql: str
    parameters: list[Any] = Field(default_factory=list)
    source_table: str | None = None


# === Natural-language queries ===


class QueryIntent(CamelModel):
    """Structured interpretation of a natural-language request.

    Produced once per request and never mutated; a refined request yields a
    new intent.
    """

    model_config = {"frozen": True}

    intent: str
    confidence: int = Field(ge=0, le=100)
    suggested_sql: str = Field(default="", alias="suggestedSQL")
    explanation: str = ""
    tables_involved: list[str] = Field(default_factory=list)
    is_read_only: bool = False
    is_ambiguous: bool = False
    clarifying_questions: list[str] | None = None
    user_friendly_intent: str | None = None

    @property
    def state(self) -> IntentState:
        """State reached by this intent after analysis."""
        if self.is_ambiguous:
            return IntentState.AWAITING_CLARIFICATION
        if not self.is_read_only:
            return IntentState.REJECTED
        return IntentState.CONFIRMATION_PENDING


class QueryResult(CamelModel):
    """Outcome of running one statement. Ephemeral."""

    success: bool
    data: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    row_count: int = 0
    execution_time_ms: float = 0.0
    insights: list[str] | None = None


class FeedbackRecord(CamelModel):
    """Accuracy signal for one natural-language request."""

    user_query: str
    generated_sql: str = Field(alias="generatedSQL")
    was_accurate: bool
    user_feedback: str | None = None
