"""
Command-Line Interface

CLI commands for GraphAsk operations.

Commands:
    graph-ask ask       - Ask a question of a graph
    graph-ask schema    - Show a graph's discovered schema
    graph-ask validate  - Statically check a Cypher query
    graph-ask graphs    - List graphs on the store
    graph-ask serve     - Run the HTTP API
    graph-ask mcp       - Run the MCP server over stdio

Usage:
    # Ask
    graph-ask ask "Who directed Heat?" --graph movies

    # Generate and validate only
    graph-ask ask "How many actors are there?" --graph movies --query-only

    # Check a query
    graph-ask validate "MATCH (n:Person) RETURN n.name"
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

__all__ = ["main", "app"]

app = typer.Typer(
    name="graph-ask",
    help="Ask natural-language questions of property graphs",
    no_args_is_help=True,
)
console = Console()


def _load_config(config: Optional[Path], connection: Optional[str] = None, model: Optional[str] = None):
    from graph_ask.config.settings import AskConfig

    cfg = AskConfig.from_file(config) if config else AskConfig()
    overrides = {}
    if connection:
        overrides["store_connection"] = connection
    if model:
        overrides["llm_model"] = model
    return cfg.with_overrides(**overrides) if overrides else cfg


_CONFIG_OPTION = typer.Option(
    None,
    "--config", "-c",
    help="TOML configuration file",
    exists=True,
    dir_okay=False,
)
_CONNECTION_OPTION = typer.Option(
    None,
    "--connection",
    help="Graph store connection string (default: configured store)",
)


@app.command()
def ask(
    question: str = typer.Argument(
        ...,
        help="Question to ask",
    ),
    graph: str = typer.Option(
        ...,
        "--graph", "-g",
        help="Graph name",
    ),
    connection: Optional[str] = _CONNECTION_OPTION,
    model: Optional[str] = typer.Option(
        None,
        "--model", "-m",
        help="Completion model (default: configured model)",
    ),
    query_only: bool = typer.Option(
        False,
        "--query-only",
        help="Stop after generating and validating the query",
    ),
    write: bool = typer.Option(
        False,
        "--write",
        help="Allow queries that modify the graph",
    ),
    cost_debug: bool = typer.Option(
        False,
        "--cost-debug",
        help="Show token usage and estimated cost",
    ),
    config: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Ask a question of a graph."""

    async def _run() -> None:
        from graph_ask.api.service import GraphAsk
        from graph_ask.types.results import AskRequest, ProgressEvent

        service = GraphAsk(_load_config(config, connection, model))
        request = AskRequest.from_question(
            graph,
            question,
            read_only_hint=not write,
            query_only=query_only,
        )

        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Starting...")

                def on_event(event: ProgressEvent) -> None:
                    suffix = f" (retry {event.attempt})" if event.attempt else ""
                    progress.update(task, description=f"{event.stage.value.capitalize()}{suffix}")

                result = await service.ask(request, on_event=on_event, cost_debug=cost_debug)

            if not result.is_success:
                kind = result.failure_kind.value if result.failure_kind else "error"
                console.print(Panel(
                    f"[red]{result.error}[/]"
                    + (f"\n\nLast query: {result.query}" if result.query else ""),
                    title=f"Failed ({kind})",
                    border_style="red",
                ))
                raise typer.Exit(code=1)

            console.print()
            console.print(Panel(result.query or "", title="Query", border_style="cyan"))

            if result.result is not None:
                console.print(Panel(result.result.to_text(), title="Result"))

            if result.answer:
                console.print(Panel(Markdown(result.answer), title="Answer", border_style="green"))
            elif not query_only:
                console.print("[yellow]No answer could be synthesized; showing raw result.[/]")

            if result.timing:
                console.print(
                    f"\n[dim]Total time: {result.timing.get('total', 0)}ms, "
                    f"generation attempts: {result.generation_attempts}[/]"
                )

            if result.cost_debug is not None:
                breakdown = result.cost_debug.breakdown
                table = Table(title="Cost")
                table.add_column("Stage", style="cyan")
                table.add_column("Calls", justify="right")
                table.add_column("Tokens", justify="right")
                table.add_column("USD", justify="right", style="green")
                for stage in breakdown.by_stage:
                    table.add_row(
                        stage.stage,
                        str(stage.calls),
                        str(stage.total_tokens),
                        f"{stage.estimated_cost_usd:.6f}",
                    )
                console.print(table)
                for warning in result.cost_debug.warnings:
                    console.print(f"[yellow]{warning}[/]")
        finally:
            await service.close()

    asyncio.run(_run())


@app.command()
def schema(
    graph: str = typer.Argument(
        ...,
        help="Graph name",
    ),
    connection: Optional[str] = _CONNECTION_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the schema as JSON",
    ),
) -> None:
    """Show a graph's discovered schema."""

    async def _run() -> None:
        from graph_ask.api.service import GraphAsk

        service = GraphAsk(_load_config(config, connection))
        try:
            with console.status(f"Discovering schema of '{graph}'..."):
                graph_schema = await service.get_schema(graph)
        finally:
            await service.close()

        if as_json:
            console.print_json(graph_schema.to_prompt_text())
            return

        console.print(f"[bold]{graph_schema.summary()}[/]")

        table = Table(title="Entities")
        table.add_column("Label", style="cyan")
        table.add_column("Count", justify="right", style="green")
        table.add_column("Attributes")
        for entity in graph_schema.entities:
            table.add_row(
                entity.label,
                str(entity.count),
                ", ".join(f"{a.name}: {a.type.value}" for a in entity.attributes),
            )
        console.print(table)

        table = Table(title="Relations")
        table.add_column("Type", style="cyan")
        table.add_column("Source")
        table.add_column("Target")
        table.add_column("Attributes")
        for relation in graph_schema.relations:
            table.add_row(
                relation.label,
                relation.source,
                relation.target,
                ", ".join(f"{a.name}: {a.type.value}" for a in relation.attributes),
            )
        console.print(table)

    asyncio.run(_run())


@app.command()
def validate(
    query: str = typer.Argument(
        ...,
        help="Cypher query to check",
    ),
) -> None:
    """Statically check a Cypher query."""
    from graph_ask.query.validator import validate_query

    outcome = validate_query(query)

    for error in outcome.errors:
        console.print(f"[red]error:[/] {error}")
    for warning in outcome.warnings:
        console.print(f"[yellow]warning:[/] {warning}")

    if outcome.is_valid:
        console.print("[green]Query is valid[/]")
    else:
        raise typer.Exit(code=1)


@app.command()
def graphs(
    connection: Optional[str] = _CONNECTION_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """List graphs on the store."""

    async def _run() -> None:
        from graph_ask.api.service import GraphAsk

        service = GraphAsk(_load_config(config, connection))
        try:
            names = await service.list_graphs()
        finally:
            await service.close()

        if not names:
            console.print("[yellow]No graphs found.[/]")
            return
        for name in sorted(names):
            console.print(name)

    asyncio.run(_run())


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    log_level: str = typer.Option("info", "--log-level", help="Log level"),
    config: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from graph_ask.api.server import create_app
    from graph_ask.api.service import GraphAsk

    logging.basicConfig(level=log_level.upper())
    cfg = _load_config(config)
    app_ = create_app(GraphAsk(cfg))
    uvicorn.run(
        app_,
        host=host or cfg.server_host,
        port=port or cfg.server_port,
        log_level=log_level.lower(),
    )


@app.command()
def mcp(
    config: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Run the MCP server over stdio."""
    import sys

    from graph_ask.mcp.server import run_server

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    asyncio.run(run_server(_load_config(config)))


def main() -> None:
    """Entry point for the CLI."""
    load_dotenv()
    app()
