"""Output formatting for CLI commands."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from querygate.core.types import QueryIntent, QueryResult, SearchResult, TableMetadata
from querygate.exceptions import QueryGateError

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def _dump(self, data: Any) -> None:
        print(json.dumps(data, default=str, indent=2))

    def print_rows(self, title: str, rows: list[dict[str, Any]]) -> None:
        """Print result rows as a Rich table or JSON array."""
        if self.json_mode:
            self._dump(rows)
            return
        if not rows:
            console.print(f"[dim]{title}: no rows[/dim]")
            return
        table = Table(title=title, show_header=True, header_style="bold magenta")
        columns = list(rows[0].keys())
        for col in columns:
            table.add_column(col)
        for row in rows:
            table.add_row(*["" if row.get(col) is None else str(row.get(col)) for col in columns])
        console.print(table)

    def print_tables(self, tables: list[TableMetadata]) -> None:
        """Print discovered tables with their columns."""
        if self.json_mode:
            self._dump({"tables": [t.model_dump(by_alias=True) for t in tables]})
            return

        if not tables:
            console.print("[dim]No tables discovered.[/dim]")
            return

        for table in tables:
            console.print(f"\n[bold]Table:[/bold] {table.table_name} ({table.row_count:,} rows)")
            columns_table = Table(show_header=True, header_style="bold cyan")
            columns_table.add_column("Name")
            columns_table.add_column("Type")
            columns_table.add_column("Nullable")
            columns_table.add_column("Samples")
            for column in table.columns:
                samples = table.sample_values.get(column.name) or []
                columns_table.add_row(
                    column.name,
                    column.data_type,
                    "✓" if column.nullable else "",
                    ", ".join(str(s) for s in samples[:5]),
                )
            console.print(columns_table)

    def print_search(self, title: str, result: SearchResult) -> None:
        """Print one page of search results."""
        if self.json_mode:
            self._dump(result.model_dump(by_alias=True))
            return
        self.print_rows(title, result.data)
        console.print(
            f"Page {result.page} of {result.total_pages} "
            f"({result.total_count:,} matching rows, {result.page_size} per page)",
            style="dim",
        )

    def print_intent(self, intent: QueryIntent) -> None:
        """Print an analyzed natural-language intent."""
        if self.json_mode:
            self._dump({**intent.model_dump(by_alias=True), "state": intent.state.value})
            return

        console.print(f"\n[bold]Intent:[/bold] {intent.user_friendly_intent or intent.intent}")
        console.print(f"Confidence: {intent.confidence}%")
        console.print(f"State: {intent.state.value}")
        if intent.is_ambiguous:
            console.print("\n[yellow]Please clarify:[/yellow]")
            for question in intent.clarifying_questions or []:
                console.print(f"  • {question}")
            return
        if intent.suggested_sql:
            console.print(Syntax(intent.suggested_sql, "sql", word_wrap=True))
        if intent.explanation:
            console.print(intent.explanation)
        if not intent.is_read_only:
            console.print("[red]This query will not be executed.[/red]")

    def print_result(self, result: QueryResult) -> None:
        """Print the outcome of an executed statement."""
        if self.json_mode:
            self._dump(result.model_dump(by_alias=True))
            return
        if not result.success:
            console.print(Panel(result.error or "Query failed", title="[red]Error[/red]", border_style="red"))
            return
        self.print_rows(f"{result.row_count} rows", result.data)
        console.print(f"⏱️  Execution time: {result.execution_time_ms:.2f}ms", style="dim")
        for insight in result.insights or []:
            console.print(f"  • {insight}", style="dim")

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message.

        Args:
            message: Success message
            details: Optional details to display
        """
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            self._dump(output)
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, QueryGateError):
                self._dump(error.to_dict())
            else:
                self._dump({"error": str(error)})
        else:
            error_text = str(error)
            # For QueryGateError, include context if available
            if isinstance(error, QueryGateError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.)."""
        if self.json_mode:
            self._dump(data)
        else:
            console.print(data)
