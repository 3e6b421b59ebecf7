"""Core components for QueryGate."""

from querygate.core.config import Settings
from querygate.core.connection import DatabaseConnection
from querygate.core.types import (
    ColumnMetadata,
    CompiledQuery,
    DatabaseName,
    FeedbackRecord,
    FilterCondition,
    FilterOperator,
    QueryIntent,
    QueryResult,
    SearchRequest,
    SearchResult,
    SemanticType,
    TableMetadata,
)

__all__ = [
    "DatabaseConnection",
    "Settings",
    "ColumnMetadata",
    "CompiledQuery",
    "DatabaseName",
    "FeedbackRecord",
    "FilterCondition",
    "FilterOperator",
    "QueryIntent",
    "QueryResult",
    "SearchRequest",
    "SearchResult",
    "SemanticType",
    "TableMetadata",
]
