"""Operator catalog and semantic type derivation.

Maps declared database types onto a small closed set of semantic types, and
each semantic type onto the filter operators that make sense for it.
"""

from __future__ import annotations

from querygate.core.types import FilterOperator, SemanticType

_NULL_CHECKS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})

_EQUALITY = frozenset({FilterOperator.EQUALS, FilterOperator.NOT_EQUALS})

_MEMBERSHIP = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})

_ORDERING = frozenset(
    {
        FilterOperator.GREATER_THAN,
        FilterOperator.LESS_THAN,
        FilterOperator.GREATER_OR_EQUAL,
        FilterOperator.LESS_OR_EQUAL,
        FilterOperator.BETWEEN,
    }
)

PATTERN_OPERATORS = frozenset(
    {
        FilterOperator.CONTAINS,
        FilterOperator.NOT_CONTAINS,
        FilterOperator.STARTS_WITH,
        FilterOperator.ENDS_WITH,
    }
)

OPERATOR_CATALOG: dict[SemanticType, frozenset[FilterOperator]] = {
    SemanticType.TEXT: _EQUALITY | PATTERN_OPERATORS | _MEMBERSHIP | _NULL_CHECKS,
    SemanticType.NUMBER: _EQUALITY | _ORDERING | _MEMBERSHIP | _NULL_CHECKS,
    SemanticType.DATE: _EQUALITY | _ORDERING | _MEMBERSHIP | _NULL_CHECKS,
    SemanticType.BOOLEAN: _EQUALITY | _NULL_CHECKS,
    SemanticType.JSON: _NULL_CHECKS,
}

# Checked in order; first substring hit wins
_TYPE_MARKERS: list[tuple[tuple[str, ...], SemanticType]] = [
    (("int", "numeric", "decimal", "real", "double", "float"), SemanticType.NUMBER),
    (("timestamp", "date"), SemanticType.DATE),
    (("bool",), SemanticType.BOOLEAN),
    (("json",), SemanticType.JSON),
]


def semantic_type(data_type: str) -> SemanticType:
    """Derive the semantic type of a declared column type.

    Examples:
        "integer" -> number, "timestamp with time zone" -> date,
        "jsonb" -> json, "character varying" -> text
    """
    lowered = data_type.lower()
    for markers, semantic in _TYPE_MARKERS:
        if any(marker in lowered for marker in markers):
            return semantic
    return SemanticType.TEXT


def legal_operators(semantic: SemanticType) -> list[FilterOperator]:
    """Operators legal for a semantic type, in declaration order."""
    allowed = OPERATOR_CATALOG[semantic]
    return [op for op in FilterOperator if op in allowed]


def is_legal(semantic: SemanticType, operator: FilterOperator) -> bool:
    """Check whether an operator may be applied to a semantic type."""
    return operator in OPERATOR_CATALOG[semantic]


def operator_catalog() -> dict[str, list[str]]:
    """JSON-serializable view of the catalog, for clients building filter UIs."""
    return {
        semantic.value: [op.value for op in legal_operators(semantic)]
        for semantic in SemanticType
    }
