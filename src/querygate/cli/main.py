"""QueryGate CLI - Main entry point."""

from __future__ import annotations

import logging
from typing import Annotated

import typer

import querygate
from querygate.cli.context import CLIContext, get_database_url

# Create main Typer app
app = typer.Typer(
    name="querygate",
    help="QueryGate CLI - safe structured and natural-language queries",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            help="Main database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    readonly_database: Annotated[
        str | None,
        typer.Option(
            "--readonly-database",
            envvar="QUERYGATE_READONLY_URL",
            help="Read-only replica URL (defaults to the main database)",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", envvar="QUERYGATE_LOG_LEVEL", help="Logging level"),
    ] = "WARNING",
) -> None:
    """Initialize CLI context with global options."""
    logging.basicConfig(level=log_level.upper())

    cli_ctx = CLIContext(
        database_url=get_database_url(database),
        readonly_url=readonly_database,
        echo=echo,
        json_output=json_output,
    )

    # Store in Typer context for command access
    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"QueryGate v{querygate.__version__}")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8000,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from querygate.api.app import create_app

    cli_ctx: CLIContext = ctx.obj
    uvicorn.run(create_app(settings=cli_ctx.settings()), host=host, port=port)


# Register command groups
from querygate.cli.commands import nl, query, search  # noqa: E402

app.command(name="metadata")(search.metadata_command)
app.command(name="search")(search.search_command)
app.command(name="export")(search.export_command)
app.command(name="validate")(query.validate_command)
app.add_typer(nl.app, name="nl")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
