"""Custom exceptions for QueryGate.

All exceptions are designed with caller-first principles:
- Actionable error messages that tell what went wrong AND how to fix it
- Include context about available options when relevant
- Never carry raw SQL or driver messages in the client-facing payload
"""

from __future__ import annotations

from typing import Any


class QueryGateError(Exception):
    """Base exception for all QueryGate errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict for client consumption."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(QueryGateError):
    """Failed to connect to the database."""

    pass


class ConfigurationError(QueryGateError):
    """Invalid or missing configuration."""

    pass


class InvalidRequestError(QueryGateError):
    """The request itself is malformed (empty query, unknown database, ...)."""

    pass


# === Compile-time errors (always caller errors) ===


class CompileError(QueryGateError):
    """A structured search could not be compiled into SQL."""

    pass


class UnknownTableError(CompileError):
    """Table does not exist in the schema catalog."""

    def __init__(self, table_name: str, available_tables: list[str] | None = None) -> None:
        available = available_tables or []
        if available:
            message = f"Table '{table_name}' not found. Available tables: {', '.join(available)}"
        else:
            message = f"Table '{table_name}' not found. No tables were discovered."

        super().__init__(message, {"table_name": table_name, "available_tables": available})
        self.table_name = table_name
        self.available_tables = available


class UnknownColumnError(CompileError):
    """Column does not exist on the table."""

    def __init__(
        self, column_name: str, table_name: str, available_columns: list[str] | None = None
    ) -> None:
        available = available_columns or []
        if available:
            message = (
                f"Column '{column_name}' not found on '{table_name}'. "
                f"Available columns: {', '.join(available)}"
            )
        else:
            message = f"Column '{column_name}' not found on '{table_name}'. No columns defined."

        super().__init__(
            message,
            {
                "column_name": column_name,
                "table_name": table_name,
                "available_columns": available,
            },
        )
        self.column_name = column_name
        self.table_name = table_name
        self.available_columns = available


class IllegalOperatorError(CompileError):
    """Operator is not legal for the column's semantic type."""

    def __init__(
        self,
        operator: str,
        column_name: str,
        semantic_type: str,
        legal_operators: list[str] | None = None,
    ) -> None:
        legal = legal_operators or []
        message = (
            f"Operator '{operator}' cannot be used on {semantic_type} column '{column_name}'. "
            f"Legal operators: {', '.join(legal)}"
        )
        super().__init__(
            message,
            {
                "operator": operator,
                "column_name": column_name,
                "semantic_type": semantic_type,
                "legal_operators": legal,
            },
        )
        self.operator = operator
        self.column_name = column_name
        self.semantic_type = semantic_type
        self.legal_operators = legal


class MissingValueError(CompileError):
    """Operator requires a value that was not supplied."""

    def __init__(self, column_name: str, operator: str) -> None:
        message = (
            f"Filter on '{column_name}' with operator '{operator}' requires a value. "
            "Use is_null / is_not_null to test for missing values."
        )
        super().__init__(message, {"column_name": column_name, "operator": operator})
        self.column_name = column_name
        self.operator = operator


class MissingRangeBoundError(CompileError):
    """A 'between' filter is missing one of its two bounds."""

    def __init__(self, column_name: str, missing: str = "value2") -> None:
        message = (
            f"Filter on '{column_name}' with operator 'between' requires both 'value' and "
            f"'value2'. Missing: {missing}"
        )
        super().__init__(
            message, {"column_name": column_name, "operator": "between", "missing": missing}
        )
        self.column_name = column_name
        self.missing = missing


class InvalidValueError(CompileError):
    """A filter value cannot be interpreted as the column's semantic type."""

    def __init__(self, column_name: str, semantic_type: str, value: Any) -> None:
        message = f"Value {value!r} is not a valid {semantic_type} for column '{column_name}'."
        super().__init__(
            message,
            {"column_name": column_name, "semantic_type": semantic_type, "value": str(value)},
        )
        self.column_name = column_name
        self.semantic_type = semantic_type
        self.value = value


# === Safety and execution errors ===


class SafetyViolationError(QueryGateError):
    """SQL failed the safety gate (unsafe shape or disallowed table).

    The offending statement is kept on the exception for server-side audit
    logging only; it is deliberately excluded from ``to_dict()``.
    """

    def __init__(self, reason: str, sql: str | None = None) -> None:
        super().__init__(
            f"Query rejected by safety checks: {reason}",
            {"reason": reason},
        )
        self.reason = reason
        self.sql = sql


class ResourceExhaustedError(QueryGateError):
    """Connection pool exhausted or query time limit exceeded. Safe to retry."""

    pass


class UpstreamAnalysisError(QueryGateError):
    """The external analysis capability failed or returned malformed output."""

    pass


class ExecutionError(QueryGateError):
    """Database-level failure while running a validated query. Safe to retry."""

    pass
