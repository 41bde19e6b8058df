"""Search across indexed conversations and present the results."""

import re
import time

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from cc_viewer.coordinator import IndexCoordinator
from cc_viewer.errors import IndexInitError
from cc_viewer.models import SearchResult
from cc_viewer.storage import MIN_QUERY_LENGTH

console = Console()


async def run_search(
    coordinator: IndexCoordinator, query: str, limit: int
) -> tuple[list[SearchResult], int]:
    """Bring the index up to date and search it.

    Queries too short to search return at once, without a sweep. An index
    that cannot be opened yields no results rather than an error.
    Returns the results and the elapsed time in milliseconds.
    """
    start_time = time.time()
    if len(query) < MIN_QUERY_LENGTH:
        return [], 0
    try:
        await coordinator.ensure_indexed()
        results = await coordinator.search(query, limit)
    except IndexInitError:
        results = []
    return results, int((time.time() - start_time) * 1000)


def highlight_matches(text: str, query: str) -> Text:
    """Highlight every case-insensitive occurrence of the query."""
    rendered = Text(text)
    if len(query) < MIN_QUERY_LENGTH:
        return rendered
    rendered.highlight_regex(re.compile(re.escape(query), re.IGNORECASE), style="bold yellow")
    return rendered


def format_human_output(results: list[SearchResult], query: str, search_time_ms: int) -> None:
    """Format results for human-readable output."""
    if not results:
        console.print("[yellow]No results found. Try a different query.[/yellow]")
        return

    for i, result in enumerate(results, 1):
        header = Text()
        header.append(f"[{i}] ", style="bold cyan")
        header.append(f"Project: {result.project_id}", style="green")
        header.append(f" | {result.type}", style="dim")

        panel = Panel(
            highlight_matches(result.snippet, query),
            title=header,
            subtitle=f"→ cc-viewer show {result.project_id} {result.conversation_id}",
            subtitle_align="left",
        )
        console.print(panel)

    console.print("─" * 50)
    console.print(f"Found {len(results)} results in {search_time_ms}ms")


def format_json_output(results: list[SearchResult], query: str, search_time_ms: int) -> None:
    """Format results as JSON for programmatic use."""
    output = {
        "results": [
            {
                "project_id": result.project_id,
                "conversation_id": result.conversation_id,
                "snippet": result.snippet,
                "match_index": result.match_index,
                "type": result.type,
            }
            for result in results
        ],
        "query": query,
        "total_results": len(results),
        "search_time_ms": search_time_ms,
    }
    console.print_json(data=output)
