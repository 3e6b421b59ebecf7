"""Schema discovery and structured search commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from querygate.cli.context import CLIContext
from querygate.cli.output import OutputFormatter
from querygate.cli.parsing import parse_filter_spec, read_filters_file
from querygate.core.types import DatabaseName, FilterCondition, SearchRequest, SortOrder
from querygate.exceptions import QueryGateError
from querygate.query.executor import rows_to_csv


def _collect_filters(specs: list[str] | None, filters_file: str | None) -> list[FilterCondition]:
    filters = [parse_filter_spec(spec) for spec in specs or []]
    if filters_file:
        filters.extend(read_filters_file(filters_file))
    return filters


def metadata_command(
    ctx: typer.Context,
    database: Annotated[
        DatabaseName,
        typer.Option("--db", help="Logical database to describe"),
    ] = DatabaseName.MAIN,
    table: Annotated[
        str | None,
        typer.Option("--table", "-t", help="Only show this table"),
    ] = None,
    refresh: Annotated[
        bool,
        typer.Option("--refresh", help="Re-run schema discovery first"),
    ] = False,
) -> None:
    """List discovered tables, columns and sample values.

    Examples:

        querygate metadata
        querygate metadata --table contacts
        querygate --json metadata --db readonly
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        gate = cli_ctx.get_gate()
        if refresh:
            gate.refresh_metadata(database)
        tables = gate.metadata(database)
        if table:
            tables = [t for t in tables if t.table_name == table]
            if not tables:
                gate.services(database).catalog.require_table(table)
        formatter.print_tables(tables)
    except (QueryGateError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()


def search_command(
    ctx: typer.Context,
    table: Annotated[str, typer.Argument(help="Table to search")],
    where: Annotated[
        list[str] | None,
        typer.Option("--where", "-w", help="Filter as column:operator[:value] (repeatable)"),
    ] = None,
    filters_file: Annotated[
        str | None,
        typer.Option("--filters-file", help="JSON array of filter conditions"),
    ] = None,
    sort_by: Annotated[str | None, typer.Option("--sort", "-s", help="Column to sort by")] = None,
    sort_order: Annotated[SortOrder, typer.Option("--order", help="Sort direction")] = SortOrder.ASC,
    page: Annotated[int, typer.Option("--page", "-p", help="Page number (1-based)")] = 1,
    page_size: Annotated[int, typer.Option("--page-size", "-n", help="Rows per page")] = 50,
    database: Annotated[
        DatabaseName,
        typer.Option("--db", help="Logical database to query"),
    ] = DatabaseName.MAIN,
    show_sql: Annotated[
        bool,
        typer.Option("--show-sql", help="Print the compiled SQL and parameters"),
    ] = False,
) -> None:
    """Run a structured search against one table.

    Filters are combined with AND.

    Examples:

        querygate search contacts --where email:contains:@acme.com
        querygate search contacts -w age:between:18..65 --sort age --order desc
        querygate search contacts -w status:in:active,pending -p 2 -n 25
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        request = SearchRequest(
            table=table,
            filters=_collect_filters(where, filters_file),
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            page_size=page_size,
            database=database,
        )
        gate = cli_ctx.get_gate()
        if show_sql and not cli_ctx.json_output:
            compiled = gate.compile(request)
            typer.echo(f"SQL: {compiled.sql}")
            typer.echo(f"Parameters: {compiled.parameters}\n")
        formatter.print_search(table, gate.search(request))
    except (QueryGateError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()


def export_command(
    ctx: typer.Context,
    table: Annotated[str, typer.Argument(help="Table to export")],
    where: Annotated[
        list[str] | None,
        typer.Option("--where", "-w", help="Filter as column:operator[:value] (repeatable)"),
    ] = None,
    filters_file: Annotated[
        str | None,
        typer.Option("--filters-file", help="JSON array of filter conditions"),
    ] = None,
    sort_by: Annotated[str | None, typer.Option("--sort", "-s", help="Column to sort by")] = None,
    sort_order: Annotated[SortOrder, typer.Option("--order", help="Sort direction")] = SortOrder.ASC,
    database: Annotated[
        DatabaseName,
        typer.Option("--db", help="Logical database to query"),
    ] = DatabaseName.MAIN,
    output: Annotated[
        str | None,
        typer.Option("--output", "-o", help="Output file (default: export_<table>_<ms>.csv)"),
    ] = None,
    stdout: Annotated[
        bool,
        typer.Option("--stdout", help="Write CSV to standard output"),
    ] = False,
) -> None:
    """Export matching rows as CSV (up to the export row cap).

    Examples:

        querygate export contacts --where email:contains:@acme.com
        querygate export contacts -o contacts.csv
        querygate export campaigns --stdout > campaigns.csv
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        request = SearchRequest(
            table=table,
            filters=_collect_filters(where, filters_file),
            sort_by=sort_by,
            sort_order=sort_order,
            database=database,
        )
        gate = cli_ctx.get_gate()
        rows = gate.export_rows(request)
        csv_text = rows_to_csv(rows)

        if stdout:
            typer.echo(csv_text)
            return

        path = Path(output or gate.export_filename(table))
        path.write_text(csv_text + ("\n" if csv_text else ""))
        formatter.print_success(f"Exported {table}", {"file": str(path), "rows": len(rows)})
    except (QueryGateError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()
