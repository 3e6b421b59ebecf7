"""SQL validation commands."""

from __future__ import annotations

from typing import Annotated

import typer

from querygate.cli.context import CLIContext
from querygate.cli.output import OutputFormatter
from querygate.cli.parsing import read_sql
from querygate.core.types import DatabaseName
from querygate.exceptions import QueryGateError, SafetyViolationError


def validate_command(
    ctx: typer.Context,
    sql: Annotated[
        str | None,
        typer.Argument(help="SQL query to validate"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
    database: Annotated[
        DatabaseName,
        typer.Option("--db", help="Database whose tables form the allow-list"),
    ] = DatabaseName.READONLY,
) -> None:
    """Check SQL against the safety gate without executing it.

    Examples:

        querygate validate "SELECT name FROM contacts LIMIT 10"
        querygate validate --file query.sql
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        sql_content = read_sql(sql, from_file)
        result = cli_ctx.get_gate().validate(sql_content, database)
        if not result.valid:
            raise SafetyViolationError(result.error or "rejected", sql=sql_content)

        formatter.print_success(
            "Query is valid",
            {"tables_accessed": result.tables_accessed, "warnings": result.warnings},
        )
    except (QueryGateError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()
