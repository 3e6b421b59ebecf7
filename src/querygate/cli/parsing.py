"""Input parsing utilities for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from querygate.core.types import FilterCondition, FilterOperator

RANGE_SEPARATOR = ".."
LIST_SEPARATOR = ","


def _parse_scalar(raw: str) -> Any:
    # Numbers and booleans as JSON, anything else as a plain string
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return value if isinstance(value, int | float | bool) else raw


def parse_filter_spec(spec: str) -> FilterCondition:
    """Parse a filter specification string.

    Format: column:operator[:value]

    ``between`` takes ``low..high``; ``in``/``not_in`` take a comma-separated
    list. The value may itself contain colons.

    Examples:
        "email:contains:@acme.com" -> contains filter on email
        "age:between:18..65"       -> between 18 and 65
        "status:in:active,pending" -> in ["active", "pending"]
        "phone:is_null"            -> is_null filter

    Raises:
        ValueError: If spec format is invalid
    """
    parts = spec.split(":", 2)
    if len(parts) < 2 or not parts[0]:
        raise ValueError(
            f"Invalid filter spec: '{spec}'. Expected format: column:operator[:value]"
        )

    column, operator_name = parts[0], parts[1]
    try:
        operator = FilterOperator(operator_name)
    except ValueError as e:
        raise ValueError(
            f"Invalid operator: '{operator_name}'. "
            f"Supported: {', '.join(FilterOperator.values())}"
        ) from e

    raw = parts[2] if len(parts) == 3 else None
    value: Any = None
    value2: Any = None
    if raw is not None:
        if operator == FilterOperator.BETWEEN:
            low, _, high = raw.partition(RANGE_SEPARATOR)
            value = _parse_scalar(low) if low else None
            value2 = _parse_scalar(high) if high else None
        elif operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            value = [_parse_scalar(item.strip()) for item in raw.split(LIST_SEPARATOR) if item.strip()]
        else:
            value = _parse_scalar(raw)

    return FilterCondition(column=column, operator=operator, value=value, value2=value2)


def read_filters_file(path: str) -> list[FilterCondition]:
    """Read a JSON array of filter conditions.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file is not a JSON array of filters
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with file_path.open("r") as f:
        payload = json.load(f)
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON array of filters in {path}")
    return [FilterCondition.model_validate(item) for item in payload]


def read_sql(sql: str | None, from_file: str | None) -> str:
    """SQL from an argument or a file."""
    if from_file:
        return Path(from_file).read_text()
    if sql:
        return sql
    raise ValueError("Either provide SQL or use --file")
