"""Export parsed conversations to Markdown or JSON."""

import json
from dataclasses import asdict
from datetime import datetime
from typing import Any

from cc_viewer.models import ConversationStats, ParsedConversation

MAX_RESULT_CHARS = 2000


def format_tokens(count: int) -> str:
    """Format a token count: ``999``, ``1.5k``, ``2.35M``."""
    if count < 1000:
        return str(count)
    if count < 1_000_000:
        return f"{count / 1000:.1f}k"
    return f"{count / 1_000_000:.2f}M"


def format_duration(ms: int) -> str:
    """Format milliseconds: ``850ms``, ``12.5s``, ``3m 20s``."""
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    minutes = ms // 60_000
    seconds = round((ms % 60_000) / 1000)
    return f"{minutes}m {seconds}s"


def _stats_lines(stats: ConversationStats) -> list[str]:
    total = stats.total_input_tokens + stats.total_output_tokens
    lines = [
        "## Stats",
        "",
        f"- **Messages:** {stats.total_messages}",
        f"- **Tokens:** {format_tokens(total)} "
        f"({format_tokens(stats.total_input_tokens)} in / {format_tokens(stats.total_output_tokens)} out)",
        f"- **Duration:** {format_duration(stats.total_duration)}",
    ]
    if stats.start_time:
        lines.append(f"- **Date:** {stats.start_time.strftime('%b %d, %Y')}")
    if stats.model:
        lines.append(f"- **Model:** {stats.model}")
    lines.extend(["", "---", ""])
    return lines


def to_markdown(
    conversation: ParsedConversation,
    name: str,
    include_thinking: bool = True,
    include_tool_details: bool = True,
    include_stats: bool = True,
) -> str:
    """Render a conversation as a Markdown document."""
    lines = [f"# Claude Conversation: {name}", ""]
    if include_stats:
        lines.extend(_stats_lines(conversation.stats))

    for msg in conversation.messages:
        time_str = msg.timestamp.strftime("%H:%M:%S")
        if msg.type == "user":
            lines.extend(["## User", "", f"*{time_str}*", "", msg.text or "", ""])
        else:
            usage = msg.metadata.usage
            tokens = f" ({format_tokens(usage.output_tokens)} tokens)" if usage and usage.output_tokens else ""
            lines.extend([f"## Assistant{tokens}", "", f"*{time_str}*", ""])

            for block in msg.blocks:
                if block.type == "thinking":
                    if not include_thinking:
                        continue
                    lines.extend([
                        "<details>",
                        f"<summary>Thinking ({len(block.content):,} chars)</summary>",
                        "",
                        "```",
                        block.content,
                        "```",
                        "</details>",
                        "",
                    ])
                elif block.type == "tool_use":
                    lines.append(f"### {block.tool_name or 'Tool'}")
                    lines.append("")
                    if not include_tool_details:
                        continue
                    lines.extend(["```json", block.content, "```", ""])
                    if block.result:
                        result_text = block.result.content[:MAX_RESULT_CHARS]
                        if len(block.result.content) > MAX_RESULT_CHARS:
                            result_text += "\n... (truncated)"
                        lines.extend([
                            "**Error:**" if block.result.is_error else "**Result:**",
                            "```",
                            result_text,
                            "```",
                            "",
                        ])
                else:
                    lines.extend([block.content, ""])

        lines.extend(["---", ""])

    lines.append("*Exported from cc-viewer*")
    return "\n".join(lines)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def conversation_to_dict(conversation: ParsedConversation) -> dict[str, Any]:
    data = asdict(conversation)
    # Derived values are properties, so asdict leaves them out
    data["stats"]["cache_hit_rate"] = conversation.stats.cache_hit_rate
    data["stats"]["total_duration"] = conversation.stats.total_duration
    return data


def to_json(conversation: ParsedConversation) -> str:
    return json.dumps(conversation_to_dict(conversation), default=_json_default, indent=2)
