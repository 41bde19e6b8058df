"""Rich rendering helpers for projects, conversations and index status."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cc_viewer.export import format_duration, format_tokens
from cc_viewer.models import (
    ConversationInfo,
    ConversationStats,
    IndexStats,
    ParsedConversation,
    ProcessedBlock,
    ProjectInfo,
)

TABLE_ROW_STYLES = ["white", "yellow"]
MAX_RESULT_PREVIEW = 500


def render_projects(projects: list[ProjectInfo], console: Console) -> None:
    if not projects:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(title="Projects", title_justify="left")
    table.add_column("Project", justify="left")
    table.add_column("Path", justify="left")
    table.add_column("Conversations", justify="right")
    table.add_column("Last Modified", justify="left")

    for index, project in enumerate(projects):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        table.add_row(
            project.id,
            project.path,
            str(project.conversation_count),
            project.last_modified.strftime("%Y-%m-%d %H:%M"),
            style=style,
        )
    console.print(table)


def render_conversations(conversations: list[ConversationInfo], console: Console) -> None:
    if not conversations:
        console.print("[yellow]No conversations found.[/yellow]")
        return

    table = Table(title="Conversations", title_justify="left")
    table.add_column("Conversation", justify="left")
    table.add_column("First Message", justify="left", max_width=60)
    table.add_column("Messages", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Model", justify="left")
    table.add_column("Last Modified", justify="left")

    for index, conversation in enumerate(conversations):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        table.add_row(
            conversation.id,
            (conversation.first_message or "").replace("\n", " "),
            str(conversation.message_count),
            conversation.size,
            conversation.model or "",
            conversation.last_modified.strftime("%Y-%m-%d %H:%M"),
            style=style,
        )
    console.print(table)


def render_index_stats(stats: IndexStats, index_path: str, console: Console) -> None:
    console.print(f"Conversations indexed: {stats.conversation_count}")
    console.print(f"Entries indexed: {stats.entry_count}")
    console.print(f"Index path: {index_path}")


def render_stats(stats: ConversationStats, console: Console) -> None:
    """Render conversation statistics as a two-column table."""
    table = Table(title="Stats", show_header=False, title_justify="left")
    table.add_column("Metric", justify="left")
    table.add_column("Value", justify="right")

    table.add_row("Messages", f"{stats.total_messages} ({stats.user_messages} user / {stats.assistant_messages} assistant)")
    table.add_row("Input tokens", format_tokens(stats.total_input_tokens))
    table.add_row("Output tokens", format_tokens(stats.total_output_tokens))
    table.add_row("Cache hit rate", f"{stats.cache_hit_rate:.1%}")
    table.add_row("Duration", format_duration(stats.total_duration))
    table.add_row("Tool uses", str(stats.total_tool_uses))
    for name, count in sorted(stats.tool_use_counts.items(), key=lambda item: -item[1]):
        table.add_row(f"  {name}", str(count))
    if stats.model:
        table.add_row("Model", stats.model)
    if stats.version:
        table.add_row("Version", stats.version)
    console.print(table)


def _render_block(block: ProcessedBlock, include_thinking: bool) -> Text | None:
    if block.type == "thinking":
        if not include_thinking:
            return None
        return Text(block.content, style="dim italic")
    if block.type == "text":
        return Text(block.content)

    rendered = Text()
    rendered.append(f"⚙ {block.tool_name}", style="bold magenta")
    rendered.append(f"\n{block.content}", style="dim")
    result = block.result
    if result is not None:
        label, style = ("Error", "red") if result.is_error else ("Result", "green")
        preview = result.content[:MAX_RESULT_PREVIEW]
        if len(result.content) > MAX_RESULT_PREVIEW:
            preview += f"\n[truncated - {len(result.content) - MAX_RESULT_PREVIEW} more chars]"
        rendered.append(f"\n{label}: ", style=f"bold {style}")
        rendered.append(preview)
        if result.diff is not None:
            rendered.append(
                f"\n{result.diff.file_path} +{result.diff.additions} -{result.diff.deletions}",
                style="cyan",
            )
    return rendered


def render_conversation(
    conversation: ParsedConversation,
    console: Console,
    include_thinking: bool = True,
) -> None:
    """Render every message of a parsed conversation as a panel."""
    render_stats(conversation.stats, console)
    console.print()

    for msg in conversation.messages:
        time_str = msg.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        if msg.type == "user":
            console.print(Panel(Text(msg.text or ""), title=f"[cyan]You[/cyan] {time_str}", title_align="left"))
            continue

        parts = [_render_block(block, include_thinking) for block in msg.blocks]
        body = Text("\n\n").join(part for part in parts if part is not None)
        console.print(Panel(body, title=f"[green]Claude[/green] {time_str}", title_align="left"))

    if conversation.errors:
        console.print(f"[yellow]{len(conversation.errors)} lines could not be parsed[/yellow]")
