"""Schema Context Builder for natural-language query analysis.

Generates the schema context handed to the external analysis capability so
it can propose SQL against the discovered tables.

The context includes:
- Database dialect
- Tables with row counts
- Columns with declared and semantic types
- A few sample values per enumerable column
- Query guidelines
"""

from __future__ import annotations

import json
from typing import Any

from querygate.core.types import TableMetadata
from querygate.query.operators import semantic_type
from querygate.schema.catalog import SchemaCatalog

# Sample values shown per column in the context
CONTEXT_SAMPLES_PER_COLUMN = 5

GUIDELINES = [
    "Generate ONLY a single read-only SELECT statement",
    "Never use INSERT, UPDATE, DELETE, DROP, ALTER, CREATE or any write operation",
    "Only reference the tables listed in this context",
    "Do not include SQL comments or multiple statements",
    "Use a LIMIT clause (default 100 unless the user asks for more)",
    "Use aggregate functions (COUNT, SUM, AVG) when the user asks for totals",
    "If the request asks to modify data, set isReadOnly to false and explain "
    "that only read operations are allowed",
    "If the request is ambiguous, set isAmbiguous to true and list clarifying questions",
]

RESPONSE_FORMAT = {
    "intent": "brief description of what the user wants",
    "confidence": "0-100, how confident you are in understanding the request",
    "suggestedSQL": "the generated SQL query",
    "explanation": "plain English explanation of what the query does",
    "tablesInvolved": ["table names used"],
    "isReadOnly": "true unless the request asks for a write",
    "isAmbiguous": "true if the request cannot be answered without clarification",
    "clarifyingQuestions": ["questions to ask when isAmbiguous is true"],
    "userFriendlyIntent": "one-sentence restatement for the user",
}


class SchemaContextBuilder:
    """Builds schema context for natural-language SQL generation."""

    def __init__(self, catalog: SchemaCatalog, dialect: str = "postgresql") -> None:
        """Initialize the context builder.

        Args:
            catalog: Schema catalog describing the target database
            dialect: SQL dialect the analysis should write
        """
        self._catalog = catalog
        self._dialect = dialect

    def build_context(
        self,
        tables: list[str] | None = None,
        include_samples: bool = True,
    ) -> dict[str, Any]:
        """Build schema context.

        Args:
            tables: Optional list of table names to include (None = all)
            include_samples: Whether to include sample values

        Returns:
            JSON-serializable schema context dict
        """
        selected = [
            t for t in self._catalog.list_tables() if tables is None or t.table_name in tables
        ]
        return {
            "database": self._dialect,
            "tables": [self._build_table_context(t, include_samples) for t in selected],
            "guidelines": list(GUIDELINES),
            "response_format": RESPONSE_FORMAT,
        }

    def _build_table_context(self, table: TableMetadata, include_samples: bool) -> dict[str, Any]:
        columns = []
        for column in table.columns:
            column_ctx: dict[str, Any] = {
                "name": column.name,
                "type": column.data_type,
                "semantic_type": semantic_type(column.data_type).value,
                "nullable": column.nullable,
            }
            samples = table.sample_values.get(column.name)
            if include_samples and samples:
                column_ctx["sample_values"] = samples[:CONTEXT_SAMPLES_PER_COLUMN]
            columns.append(column_ctx)

        return {
            "name": table.table_name,
            "row_count": table.row_count,
            "columns": columns,
        }


def render_summary(context: dict[str, Any]) -> str:
    """Render a schema context as prompt text."""
    lines = [f"Database Schema ({context.get('database', 'sql')}):", ""]
    for table in context.get("tables", []):
        lines.append(f"Table: {table['name']} ({table['row_count']} records)")
        lines.append("Columns:")
        for column in table["columns"]:
            line = f"  - {column['name']}: {column['type']}"
            if not column["nullable"]:
                line += " NOT NULL"
            if column.get("sample_values"):
                line += f" (e.g. {', '.join(json.dumps(v, default=str) for v in column['sample_values'])})"
            lines.append(line)
        lines.append("")

    lines.append("Important Rules:")
    lines.extend(f"{i}. {rule}" for i, rule in enumerate(context.get("guidelines", []), start=1))
    lines.append("")
    lines.append("Return valid JSON with the following structure:")
    lines.append(json.dumps(context.get("response_format", RESPONSE_FORMAT), indent=2))
    return "\n".join(lines)
