"""Natural-language query commands."""

from __future__ import annotations

from typing import Annotated

import typer

from querygate.cli.context import CLIContext
from querygate.cli.output import OutputFormatter, console
from querygate.cli.parsing import read_sql
from querygate.core.types import FeedbackRecord
from querygate.exceptions import QueryGateError

app = typer.Typer(help="Natural-language queries")


@app.command("analyze")
def nl_analyze(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Question in plain English")],
    execute: Annotated[
        bool,
        typer.Option("--execute", "-x", help="Run the suggested SQL after confirmation"),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
) -> None:
    """Turn a question into SQL and explain it.

    Nothing runs unless --execute is given and the query is confirmed.

    Examples:

        querygate nl analyze "how many contacts have no email?"
        querygate nl analyze "show active campaigns" --execute
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        gate = cli_ctx.get_gate()
        intent = gate.analyze(query)
        formatter.print_intent(intent)

        if not execute or intent.is_ambiguous or not intent.is_read_only:
            return
        if not yes and not typer.confirm("Run this query?", default=False):
            console.print("Cancelled.", style="dim")
            return
        formatter.print_result(gate.execute_intent(intent))
    except (QueryGateError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()


@app.command("execute")
def nl_execute(
    ctx: typer.Context,
    sql: Annotated[str | None, typer.Argument(help="Confirmed SQL to run")] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
    user_query: Annotated[
        str | None,
        typer.Option("--query", "-q", help="The original question (for logs)"),
    ] = None,
) -> None:
    """Run confirmed SQL after re-validating it against the safety gate.

    Examples:

        querygate nl execute "SELECT COUNT(*) FROM contacts WHERE email IS NULL"
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        result = cli_ctx.get_gate().execute_nl(read_sql(sql, from_file), user_query)
        formatter.print_result(result)
        if not result.success:
            raise typer.Exit(code=1)
    except (QueryGateError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()


@app.command("feedback")
def nl_feedback(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="The original question")],
    sql: Annotated[str, typer.Argument(help="The SQL that was generated")],
    accurate: Annotated[
        bool,
        typer.Option("--accurate/--inaccurate", help="Whether the SQL answered the question"),
    ] = True,
    comment: Annotated[
        str | None,
        typer.Option("--comment", "-c", help="Free-text feedback"),
    ] = None,
) -> None:
    """Record whether a generated query was accurate.

    Examples:

        querygate nl feedback "contacts without email" "SELECT ..." --inaccurate -c "missed blanks"
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        stored = cli_ctx.get_gate().record_feedback(
            FeedbackRecord(
                user_query=query,
                generated_sql=sql,
                was_accurate=accurate,
                user_feedback=comment,
            )
        )
        formatter.print_success("Feedback received", {"stored": stored})
    except (QueryGateError, ValueError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()


@app.command("suggestions")
def nl_suggestions(ctx: typer.Context) -> None:
    """Show example questions."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        suggestions = cli_ctx.get_gate().suggestions()
        if cli_ctx.json_output:
            formatter.print_data({"suggestions": suggestions})
        else:
            for suggestion in suggestions:
                typer.echo(f"  • {suggestion}")
    finally:
        cli_ctx.close()
