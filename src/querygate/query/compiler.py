"""Filter compiler: structured search -> parameterized single-table SELECT.

Every identifier in the output comes from the schema catalog and every
filter value travels as a bound parameter, so no request text is ever
concatenated into SQL.

Example:
    compiler = FilterCompiler(catalog)
    query = compiler.compile(
        "contacts",
        [FilterCondition(column="email", operator="contains", value="@acme.com")],
    )
    # query.sql == "SELECT * FROM contacts WHERE email LIKE $1 LIMIT $2 OFFSET $3"
    # query.parameters == ["%@acme.com%", 50, 0]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from querygate.core.types import (
    ColumnMetadata,
    CompiledQuery,
    FilterCondition,
    FilterOperator,
    SemanticType,
    SortOrder,
    TableMetadata,
)
from querygate.exceptions import (
    IllegalOperatorError,
    InvalidValueError,
    MissingRangeBoundError,
    MissingValueError,
    UnknownColumnError,
)
from querygate.query.operators import is_legal, legal_operators, semantic_type
from querygate.schema.catalog import SchemaCatalog, quote_identifier

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000

LIKE_ESCAPE = "\\"

_COMPARISON_SQL: dict[FilterOperator, str] = {
    FilterOperator.EQUALS: "=",
    FilterOperator.NOT_EQUALS: "<>",
    FilterOperator.GREATER_THAN: ">",
    FilterOperator.LESS_THAN: "<",
    FilterOperator.GREATER_OR_EQUAL: ">=",
    FilterOperator.LESS_OR_EQUAL: "<=",
}

# Pattern operators: (negated, prefix wildcard, suffix wildcard)
_PATTERN_SHAPES: dict[FilterOperator, tuple[bool, bool, bool]] = {
    FilterOperator.CONTAINS: (False, True, True),
    FilterOperator.NOT_CONTAINS: (True, True, True),
    FilterOperator.STARTS_WITH: (False, False, True),
    FilterOperator.ENDS_WITH: (False, True, False),
}

_TRUE_STRINGS = {"true", "t", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "0"}


@dataclass(frozen=True)
class ResolvedFilter:
    """A filter whose column and operator have been checked against the catalog."""

    column: ColumnMetadata
    semantic_type: SemanticType
    operator: FilterOperator
    values: tuple[Any, ...]


def escape_like(value: str) -> str:
    """Escape LIKE wildcard meta-characters so they match literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def clamp_paging(page: int, page_size: int, max_page_size: int = MAX_PAGE_SIZE) -> tuple[int, int]:
    """Clamp page to >= 1 and page_size to [1, max_page_size]."""
    return max(int(page), 1), min(max(int(page_size), 1), max_page_size)


class _Placeholders:
    """Hands out $1, $2, ... while collecting the bound values in order."""

    def __init__(self) -> None:
        self.parameters: list[Any] = []

    def bind(self, value: Any) -> str:
        self.parameters.append(value)
        return f"${len(self.parameters)}"


class FilterCompiler:
    """Compiles structured filter lists into read-only CompiledQuery objects.

    The output is always a single SELECT against exactly one table: no joins,
    no subqueries. Filters form a conjunction.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        dialect: str = "generic",
        case_insensitive: bool = False,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        """Initialize the compiler.

        Args:
            catalog: Schema catalog used to resolve tables and columns
            dialect: Target dialect name ("postgresql", "sqlite", "generic")
            case_insensitive: Emit ILIKE for pattern operators on PostgreSQL
            max_page_size: Upper bound applied to page_size
        """
        self._catalog = catalog
        self._dialect = dialect
        self._case_insensitive = case_insensitive
        self._max_page_size = max_page_size

    def compile(
        self,
        table: str,
        filters: list[FilterCondition] | None = None,
        sort_by: str | None = None,
        sort_order: SortOrder | str = SortOrder.ASC,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int | None = None,
    ) -> CompiledQuery:
        """Compile a paged search.

        Args:
            table: Table name (must exist in the catalog)
            filters: Conjunctive filter conditions
            sort_by: Column to order by; ignored unless it is a real column
            sort_order: "asc" or "desc"
            page: 1-based page number (clamped to >= 1)
            page_size: Rows per page (clamped to [1, max_page_size])
            max_page_size: Override of the compiler-wide page size bound

        Returns:
            CompiledQuery with $n placeholders

        Raises:
            UnknownTableError, UnknownColumnError, IllegalOperatorError,
            MissingValueError, MissingRangeBoundError, InvalidValueError
        """
        metadata = self._catalog.require_table(table)
        resolved = self.resolve(metadata, filters or [])
        page, page_size = clamp_paging(page, page_size, max_page_size or self._max_page_size)

        binder = _Placeholders()
        sql = f"SELECT * FROM {quote_identifier(metadata.table_name)}"
        sql += self._where_clause(resolved, binder)

        order_column = metadata.get_column(sort_by) if sort_by else None
        if order_column is not None:
            direction = "DESC" if SortOrder(sort_order) == SortOrder.DESC else "ASC"
            sql += f" ORDER BY {quote_identifier(order_column.name)} {direction}"
        elif sort_by:
            logger.debug(f"Ignoring sort on unknown column '{sort_by}' of '{table}'")

        limit = binder.bind(page_size)
        offset = binder.bind((page - 1) * page_size)
        sql += f" LIMIT {limit} OFFSET {offset}"

        return CompiledQuery(sql=sql, parameters=binder.parameters, source_table=metadata.table_name)

    def compile_count(
        self, table: str, filters: list[FilterCondition] | None = None
    ) -> CompiledQuery:
        """Compile a COUNT(*) over the same conjunction, for pagination totals."""
        metadata = self._catalog.require_table(table)
        resolved = self.resolve(metadata, filters or [])

        binder = _Placeholders()
        sql = f"SELECT COUNT(*) AS total_count FROM {quote_identifier(metadata.table_name)}"
        sql += self._where_clause(resolved, binder)
        return CompiledQuery(sql=sql, parameters=binder.parameters, source_table=metadata.table_name)

    # === Resolution ===

    def resolve(
        self, metadata: TableMetadata, filters: list[FilterCondition]
    ) -> list[ResolvedFilter]:
        """Check every filter against the table and coerce its values."""
        return [self._resolve_one(metadata, f) for f in filters]

    def _resolve_one(self, metadata: TableMetadata, condition: FilterCondition) -> ResolvedFilter:
        column = metadata.get_column(condition.column)
        if column is None:
            raise UnknownColumnError(condition.column, metadata.table_name, metadata.column_names)

        semantic = semantic_type(column.data_type)
        operator = FilterOperator(condition.operator)
        if not is_legal(semantic, operator):
            raise IllegalOperatorError(
                operator.value,
                column.name,
                semantic.value,
                [op.value for op in legal_operators(semantic)],
            )

        if operator in (FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL):
            values: tuple[Any, ...] = ()
        elif operator == FilterOperator.BETWEEN:
            if _is_missing(condition.value):
                raise MissingRangeBoundError(column.name, missing="value")
            if _is_missing(condition.value2):
                raise MissingRangeBoundError(column.name, missing="value2")
            values = (
                _coerce(column.name, semantic, condition.value),
                _coerce(column.name, semantic, condition.value2),
            )
        elif operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            items = condition.value if isinstance(condition.value, list | tuple) else None
            if not items or any(_is_missing(v) for v in items):
                raise MissingValueError(column.name, operator.value)
            values = tuple(_coerce(column.name, semantic, v) for v in items)
        else:
            if _is_missing(condition.value):
                raise MissingValueError(column.name, operator.value)
            values = (_coerce(column.name, semantic, condition.value),)

        return ResolvedFilter(column=column, semantic_type=semantic, operator=operator, values=values)

    # === Rendering ===

    def _where_clause(self, resolved: list[ResolvedFilter], binder: _Placeholders) -> str:
        if not resolved:
            return ""
        predicates = [self._predicate(r, binder) for r in resolved]
        return " WHERE " + " AND ".join(predicates)

    def _predicate(self, flt: ResolvedFilter, binder: _Placeholders) -> str:
        column = quote_identifier(flt.column.name)
        op = flt.operator

        if op == FilterOperator.IS_NULL:
            return f"{column} IS NULL"
        if op == FilterOperator.IS_NOT_NULL:
            return f"{column} IS NOT NULL"
        if op in _COMPARISON_SQL:
            return f"{column} {_COMPARISON_SQL[op]} {binder.bind(flt.values[0])}"
        if op == FilterOperator.BETWEEN:
            low = binder.bind(flt.values[0])
            high = binder.bind(flt.values[1])
            return f"{column} BETWEEN {low} AND {high}"
        if op in (FilterOperator.IN, FilterOperator.NOT_IN):
            placeholders = ", ".join(binder.bind(v) for v in flt.values)
            keyword = "IN" if op == FilterOperator.IN else "NOT IN"
            return f"{column} {keyword} ({placeholders})"
        return self._pattern_predicate(column, flt, binder)

    def _pattern_predicate(self, column: str, flt: ResolvedFilter, binder: _Placeholders) -> str:
        negated, prefix, suffix = _PATTERN_SHAPES[flt.operator]
        raw = str(flt.values[0])
        escaped = escape_like(raw)
        pattern = ("%" if prefix else "") + escaped + ("%" if suffix else "")

        like = "ILIKE" if self._case_insensitive and self._dialect == "postgresql" else "LIKE"
        if negated:
            like = f"NOT {like}"

        predicate = f"{column} {like} {binder.bind(pattern)}"
        if escaped != raw:
            predicate += f" ESCAPE '{LIKE_ESCAPE}'"
        return predicate


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _coerce(column_name: str, semantic: SemanticType, value: Any) -> Any:
    """Convert a loosely-typed request value to the column's semantic type."""
    if semantic == SemanticType.NUMBER:
        if isinstance(value, bool):
            raise InvalidValueError(column_name, semantic.value, value)
        if isinstance(value, int | float):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            try:
                return int(stripped)
            except ValueError:
                pass
            try:
                return float(stripped)
            except ValueError:
                raise InvalidValueError(column_name, semantic.value, value) from None
        raise InvalidValueError(column_name, semantic.value, value)

    if semantic == SemanticType.BOOLEAN:
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise InvalidValueError(column_name, semantic.value, value)

    if semantic == SemanticType.TEXT:
        if isinstance(value, dict | list):
            raise InvalidValueError(column_name, semantic.value, value)
        return value if isinstance(value, str) else str(value)

    # Dates travel as ISO strings and are compared by the database
    if isinstance(value, dict | list | bool):
        raise InvalidValueError(column_name, semantic.value, value)
    return value
