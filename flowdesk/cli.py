"""CLI entry point for flowdesk."""

from __future__ import annotations

import json
import logging

import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from flowdesk.config import Config
from flowdesk.errors import FlowdeskError
from flowdesk.services import Services, build_services

app = typer.Typer(help="Plan your day, triage Slack interrupts, and track work sessions.")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def _load_services() -> Services:
    """Load config, stopping on the one fatal issue (no model key)."""
    config = Config.load()
    _configure_logging(config.log_level)
    if not config.anthropic_api_key:
        rprint(f"[red]Config error: {config.validate()[0]}[/red]")
        raise typer.Exit(1)
    return build_services(config)


@app.command()
def check() -> None:
    """Show which integrations are configured."""
    config = Config.load()
    issues = config.validate()
    if not issues:
        rprint("[green bold]All integrations configured.[/green bold]")
        return
    for issue in issues:
        color = "red" if issue.startswith("Anthropic") else "yellow"
        rprint(f"[{color}]{issue}[/{color}]")
    if not config.anthropic_api_key:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(4000, help="Port to listen on"),
) -> None:
    """Start the HTTP API."""
    from flowdesk.web.app import run_server

    services = _load_services()
    rprint(f"flowdesk API listening on [bold]http://{host}:{port}[/bold]")
    try:
        run_server(services, host=host, port=port)
    finally:
        services.close()


@app.command()
def mcp() -> None:
    """Start the MCP server on stdio (launched by an MCP client)."""
    import asyncio
    from flowdesk.mcp_server import main as mcp_main
    asyncio.run(mcp_main())


@app.command()
def plan(
    date: str = typer.Option(None, help="Date to plan (YYYY-MM-DD), default today"),
    show: bool = typer.Option(False, "--show", help="Show the stored plan instead of regenerating"),
    format: str = typer.Option("text", "--format", "-f", help="Output format: text or json"),
) -> None:
    """Generate (or show) a day plan."""
    services = _load_services()
    try:
        if show:
            day_plan = services.planning.get_plan(date)
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
            ) as progress:
                progress.add_task("Planning your day...", total=None)
                day_plan = services.planning.plan_day(date)

        if format == "json":
            typer.echo(json.dumps(day_plan.to_dict(), indent=2))
            return

        rprint(f"\n[bold]Plan for {day_plan.date}[/bold] ({len(day_plan.blocks)} blocks)")
        if not day_plan.blocks:
            rprint("[yellow]No blocks planned.[/yellow]")
        for block in sorted(day_plan.blocks, key=lambda b: b.start):
            rprint(f"  {block.start[11:16]}-{block.end[11:16]}  [cyan]{block.mode:<9}[/cyan] {escape(block.label)}")
            if block.notes:
                rprint(f"      [dim]{escape(block.notes)}[/dim]")
    except FlowdeskError as e:
        rprint(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    finally:
        services.close()


@app.command()
def poll() -> None:
    """Poll Slack for new mentions and triage them."""
    services = _load_services()
    try:
        result = services.notifications.poll_slack()
        rprint(f"New notifications: [bold]{len(result.created)}[/bold]")
        for n in result.created:
            decision = n.interrupt_decision
            priority = decision.priority if decision else "?"
            color = {"URGENT": "red", "LATER": "yellow"}.get(priority, "dim")
            rprint(f"  [{color}]{priority:<6}[/{color}] {escape(n.raw_text[:100])}")
        if result.last_ts:
            rprint(f"[dim]Last seen ts: {result.last_ts}[/dim]")
    finally:
        services.close()


@app.command()
def tasks(
    source: str = typer.Option(None, help="GITHUB, JIRA or LOCAL (default: all)"),
) -> None:
    """List tasks across sources."""
    services = _load_services()
    try:
        if source:
            source = source.upper()
        loaders = {
            "GITHUB": services.tasks.github_tasks,
            "JIRA": services.tasks.jira_tasks,
            "LOCAL": services.tasks.local_tasks,
        }
        if source and source not in loaders:
            rprint(f"[red]Unknown source {source}[/red]")
            raise typer.Exit(1)
        items = loaders[source]() if source else services.tasks.all_tasks()
        if not items:
            rprint("[yellow]No tasks found.[/yellow]")
        for task in items:
            due = f" (due {task.due_date})" if task.due_date else ""
            labels = f" [dim]{', '.join(task.labels)}[/dim]" if task.labels else ""
            rprint(f"  [cyan]{task.source:<6}[/cyan] {task.id}: {escape(task.title)}{due}{labels}")
    finally:
        services.close()


@app.command()
def sessions(
    status: str = typer.Option(None, help="Filter by status: active or completed"),
) -> None:
    """List work sessions."""
    services = _load_services()
    try:
        items = services.sessions.list_sessions(status)
        if not items:
            rprint("[yellow]No sessions yet.[/yellow]")
        for s in items:
            color = "green" if s.status == "active" else "dim"
            rprint(f"  [{color}]{s.status:<9}[/{color}] {s.id}  task {s.task_id}  started {s.start_time}")
            if s.summary:
                rprint(f"      {escape(s.summary)}")
    finally:
        services.close()


if __name__ == "__main__":
    app()
