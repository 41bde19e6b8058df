"""Turn raw JSONL conversation logs into ordered, displayable conversations."""

import json
from datetime import datetime, timezone
from pathlib import Path

from cc_viewer.corpus import read_conversation
from cc_viewer.entries import (
    AssistantEntry,
    LogEntry,
    ProgressEntry,
    SystemEntry,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UnknownEntry,
    UserEntry,
    decode_entry,
)
from cc_viewer.errors import EmptyConversationError
from cc_viewer.models import (
    ConversationMessage,
    ConversationStats,
    MessageMetadata,
    ParsedConversation,
    ParseError,
    ProcessedBlock,
    ProcessedDiff,
    ProcessedToolResult,
)
from cc_viewer.text import extract_text

# Host-injected control text that shows up as user entries
SYSTEM_MARKERS = (
    "<task-notification>",
    "<system-reminder>",
    "<user-prompt-submit-hook>",
)

ERROR_CONTENT_CHARS = 100
UNKNOWN_SESSION = "unknown"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_jsonl(content: str) -> ParsedConversation:
    """Parse the full text of one conversation log.

    Parsing is best-effort: a malformed line is recorded in ``errors`` and
    skipped, it never aborts the parse.
    """
    entries: list[LogEntry] = []
    errors: list[ParseError] = []
    entry_types: dict[str, int] = {}

    for line_num, line in enumerate(content.split("\n"), 1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            errors.append(ParseError(line=line_num, message=str(e), content=line[:ERROR_CONTENT_CHARS]))
            continue

        if not isinstance(record, dict):
            errors.append(
                ParseError(
                    line=line_num,
                    message="entry is not a JSON object",
                    content=line[:ERROR_CONTENT_CHARS],
                )
            )
            continue

        entry_type = record.get("type")
        tag = entry_type if isinstance(entry_type, str) and entry_type else "unknown"
        entry_types[tag] = entry_types.get(tag, 0) + 1
        entries.append(decode_entry(record))

    messages, stats = build_conversation(entries)

    session_id = next(
        (sid for sid in (_session_id(e) for e in entries) if sid),
        UNKNOWN_SESSION,
    )

    return ParsedConversation(
        session_id=session_id,
        messages=messages,
        stats=stats,
        errors=errors,
        total_entries=len(entries),
        entry_types=entry_types,
    )


def parse_conversation_file(
    projects_dir: Path, project_id: str, conversation_id: str
) -> ParsedConversation:
    """Read and parse a conversation file for display.

    Raises:
        ConversationNotFoundError: The file is missing or unreadable.
        EmptyConversationError: No message survived and some lines were malformed.
    """
    conversation = parse_jsonl(read_conversation(projects_dir, project_id, conversation_id))
    if conversation.is_rejected:
        raise EmptyConversationError(
            f"{project_id}/{conversation_id}: no messages, "
            f"{len(conversation.errors)} unparseable lines"
        )
    return conversation


def _session_id(entry: LogEntry) -> str | None:
    match entry:
        case UserEntry(session_id=sid) | AssistantEntry(session_id=sid):
            return sid
        case ProgressEntry(session_id=sid) | SystemEntry(session_id=sid):
            return sid
        case UnknownEntry(session_id=sid):
            return sid
    return None


def build_conversation(entries: list[LogEntry]) -> tuple[list[ConversationMessage], ConversationStats]:
    """Correlate tool results, build messages and accumulate statistics."""
    stats = ConversationStats()

    # Results may arrive in any later entry, so collect them all up front
    tool_results: dict[str, ProcessedToolResult] = {}
    for entry in entries:
        if isinstance(entry, UserEntry) and isinstance(entry.content, list):
            for block in entry.content:
                if isinstance(block, ToolResultBlock):
                    tool_results[block.tool_use_id] = process_tool_result(block, entry)

    messages: list[ConversationMessage] = []
    for entry in entries:
        match entry:
            case UserEntry():
                message = process_user_entry(entry)
                if message is None:
                    continue
                messages.append(message)
                stats.user_messages += 1
                stats.total_messages += 1

            case AssistantEntry():
                messages.append(process_assistant_entry(entry, tool_results))
                stats.assistant_messages += 1
                stats.total_messages += 1
                _accumulate_assistant_stats(stats, entry)

    messages.sort(key=lambda m: m.timestamp)

    if len(messages) >= 2:
        stats.start_time = messages[0].timestamp
        stats.end_time = messages[-1].timestamp

    return messages, stats


def _accumulate_assistant_stats(stats: ConversationStats, entry: AssistantEntry) -> None:
    if entry.usage is not None:
        stats.total_input_tokens += entry.usage.input_tokens
        stats.total_output_tokens += entry.usage.output_tokens
        stats.cache_hits += entry.usage.cache_read_input_tokens
        stats.cache_misses += entry.usage.cache_creation_input_tokens

    for block in entry.content:
        if isinstance(block, ToolUseBlock):
            stats.total_tool_uses += 1
            stats.tool_use_counts[block.name] = stats.tool_use_counts.get(block.name, 0) + 1

    # First non-empty value wins
    if stats.model is None and entry.model:
        stats.model = entry.model
    if stats.version is None and entry.version:
        stats.version = entry.version


def process_user_entry(entry: UserEntry) -> ConversationMessage | None:
    """Build a user message, or None for tool results and injected control text."""
    content = entry.content
    if isinstance(content, list) and all(isinstance(b, ToolResultBlock) for b in content):
        return None

    text = extract_text(content)
    trimmed = text.strip()
    if not trimmed or trimmed.startswith(SYSTEM_MARKERS):
        return None

    return ConversationMessage(
        id=entry.uuid,
        type="user",
        timestamp=entry.timestamp or _EPOCH,
        parent_id=entry.parent_uuid,
        text=text,
        metadata=MessageMetadata(
            cwd=entry.cwd,
            version=entry.version,
            git_branch=entry.git_branch,
        ),
    )


def process_assistant_entry(
    entry: AssistantEntry,
    tool_results: dict[str, ProcessedToolResult],
) -> ConversationMessage:
    blocks: list[ProcessedBlock] = []

    for block in entry.content:
        match block:
            case ThinkingBlock(thinking=thinking):
                blocks.append(
                    ProcessedBlock(
                        id=f"{entry.uuid}-thinking-{len(blocks)}",
                        type="thinking",
                        content=thinking,
                    )
                )
            case TextBlock(text=text):
                blocks.append(
                    ProcessedBlock(
                        id=f"{entry.uuid}-text-{len(blocks)}",
                        type="text",
                        content=text,
                    )
                )
            case ToolUseBlock(id=tool_id, name=name, input=tool_input):
                blocks.append(
                    ProcessedBlock(
                        id=f"{entry.uuid}-tool-{tool_id}",
                        type="tool_use",
                        content=json.dumps(tool_input, indent=2),
                        tool_name=name,
                        tool_input=tool_input,
                        tool_id=tool_id,
                        result=tool_results.get(tool_id),
                    )
                )

    return ConversationMessage(
        id=entry.uuid,
        type="assistant",
        timestamp=entry.timestamp or _EPOCH,
        parent_id=entry.parent_uuid,
        blocks=blocks,
        metadata=MessageMetadata(
            model=entry.model,
            request_id=entry.request_id,
            usage=entry.usage,
            cwd=entry.cwd,
            version=entry.version,
            git_branch=entry.git_branch,
        ),
    )


def process_tool_result(block: ToolResultBlock, entry: UserEntry) -> ProcessedToolResult:
    """Build a tool result, enriched with the entry's tool-specific payload."""
    content = block.content if isinstance(block.content, str) else json.dumps(block.content)
    result = ProcessedToolResult(
        tool_use_id=block.tool_use_id,
        content=content,
        is_error=block.is_error,
    )

    data = entry.tool_use_result
    if data is None:
        return result

    result.type = data.type
    result.file_path = data.file_path
    result.exit_code = data.exit_code
    result.output = data.output

    if data.structured_patch and data.file_path:
        additions = 0
        deletions = 0
        for hunk in data.structured_patch:
            for line in hunk.lines:
                if line.startswith("+") and not line.startswith("+++"):
                    additions += 1
                if line.startswith("-") and not line.startswith("---"):
                    deletions += 1

        result.diff = ProcessedDiff(
            file_path=data.file_path,
            hunks=data.structured_patch,
            additions=additions,
            deletions=deletions,
            original_content=data.original_file or None,
            new_content=data.content,
        )

    if data.content and result.diff is None:
        result.file_content = data.content

    return result
