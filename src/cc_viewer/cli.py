"""CLI for cc-viewer."""

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from cc_viewer import __version__
from cc_viewer.config import Settings, get_settings
from cc_viewer.coordinator import IndexCoordinator
from cc_viewer.errors import (
    ConfigError,
    ConversationNotFoundError,
    EmptyConversationError,
    IndexInitError,
)

app = typer.Typer(
    name="cc-viewer",
    help="Browse and search Claude Code conversation logs.",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"cc-viewer {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Initialize default logging for CLI usage."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def _settings() -> Settings:
    try:
        return get_settings()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2) from e


def _coordinator(settings: Settings) -> IndexCoordinator:
    return IndexCoordinator(settings.index_path, settings.projects_dir)


def _json_default(value: object) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable info-level logging.")] = False,
) -> None:
    """Browse and search Claude Code conversation logs."""
    _configure_logging(verbose)


@app.command()
def index(
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Only index this project")
    ] = None,
) -> None:
    """Bring the search index up to date."""
    settings = _settings()

    async def _run() -> tuple[int, int, int]:
        async with _coordinator(settings) as coordinator:
            indexed = await coordinator.ensure_indexed(project)
            stats = await coordinator.get_stats()
            return indexed, stats.conversation_count, stats.entry_count

    try:
        indexed, conversation_count, entry_count = asyncio.run(_run())
    except IndexInitError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    if indexed:
        console.print(f"[green]Indexed {indexed} conversations[/green]")
    else:
        console.print("[green]Index is up to date[/green]")
    console.print(f"{conversation_count} conversations, {entry_count} entries in index")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", min=1, help="Maximum number of results")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Search all conversations for a substring."""
    from cc_viewer.searcher import format_human_output, format_json_output, run_search

    settings = _settings()

    async def _run():
        async with _coordinator(settings) as coordinator:
            return await run_search(
                coordinator, query, limit if limit is not None else settings.search_limit
            )

    results, search_time_ms = asyncio.run(_run())

    if json_output:
        format_json_output(results, query, search_time_ms)
    else:
        format_human_output(results, query, search_time_ms)


@app.command()
def status() -> None:
    """Show index statistics."""
    from cc_viewer.render import render_index_stats

    settings = _settings()

    async def _run():
        async with _coordinator(settings) as coordinator:
            return await coordinator.get_stats()

    try:
        stats = asyncio.run(_run())
    except IndexInitError as e:
        console.print(f"[red]Index unavailable: {e}[/red]")
        raise typer.Exit(1) from e

    render_index_stats(stats, str(settings.index_path), console)


@app.command()
def projects(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List all projects."""
    from cc_viewer.corpus import list_projects
    from cc_viewer.render import render_projects

    settings = _settings()
    project_list = list_projects(settings.projects_dir)

    if json_output:
        console.print_json(
            json.dumps({"projects": [asdict(p) for p in project_list]}, default=_json_default)
        )
    else:
        render_projects(project_list, console)


@app.command()
def conversations(
    project: Annotated[str, typer.Argument(help="Project id (directory name)")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """List the conversations of a project."""
    from cc_viewer.corpus import list_conversations
    from cc_viewer.render import render_conversations

    settings = _settings()
    try:
        conversation_list = list_conversations(settings.projects_dir, project)
    except OSError as e:
        console.print(f"[red]Project not found: {project}[/red]")
        raise typer.Exit(1) from e

    if json_output:
        console.print_json(
            json.dumps(
                {"conversations": [asdict(c) for c in conversation_list]}, default=_json_default
            )
        )
    else:
        render_conversations(conversation_list, console)


@app.command()
def show(
    project: Annotated[str, typer.Argument(help="Project id (directory name)")],
    conversation: Annotated[str, typer.Argument(help="Conversation id (file name without .jsonl)")],
    export: Annotated[
        Path | None, typer.Option("--export", "-e", help="Export to a Markdown file")
    ] = None,
    no_thinking: Annotated[
        bool, typer.Option("--no-thinking", help="Leave out thinking blocks")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Display a conversation."""
    from cc_viewer.export import to_json, to_markdown
    from cc_viewer.parser import parse_conversation_file
    from cc_viewer.render import render_conversation

    settings = _settings()
    try:
        parsed = parse_conversation_file(settings.projects_dir, project, conversation)
    except ConversationNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    except EmptyConversationError as e:
        console.print(f"[red]Not a readable conversation: {e}[/red]")
        raise typer.Exit(1) from e

    if export:
        export.write_text(
            to_markdown(parsed, conversation, include_thinking=not no_thinking), encoding="utf-8"
        )
        console.print(f"[green]Exported {len(parsed.messages)} messages to {export}[/green]")
    elif json_output:
        console.print_json(to_json(parsed))
    else:
        render_conversation(parsed, console, include_thinking=not no_thinking)


@app.command()
def watch() -> None:
    """Re-index conversations as their log files change."""
    from cc_viewer.reactor import ChangeReactor

    settings = _settings()

    async def _run() -> None:
        async with _coordinator(settings) as coordinator:
            await coordinator.ensure_indexed()
            console.print(f"Watching {settings.projects_dir} (Ctrl+C to stop)")
            await ChangeReactor(coordinator, settings.projects_dir).run()

    try:
        asyncio.run(_run())
    except IndexInitError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print("Stopped")


if __name__ == "__main__":
    app()
