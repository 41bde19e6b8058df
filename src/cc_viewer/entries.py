"""Raw log entry types for Claude Code JSONL conversation files.

Each non-empty line of a conversation log decodes into one of the entry
variants below, keyed by its ``type`` tag. Content blocks inside a message
decode the same way. Shapes that are not recognised decode into
``UnknownEntry`` / ``UnknownBlock`` carrying the raw payload, so new log
formats degrade gracefully instead of breaking the parser.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union


@dataclass
class ThinkingBlock:
    thinking: str


@dataclass
class TextBlock:
    text: str


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: str | list[Any] = ""
    is_error: bool | None = None


@dataclass
class UnknownBlock:
    raw: Any


ContentBlock = Union[ThinkingBlock, TextBlock, ToolUseBlock, ToolResultBlock, UnknownBlock]


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


@dataclass
class PatchHunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[str] = field(default_factory=list)


@dataclass
class ToolUseResultData:
    """Tool-specific payload attached to a user entry carrying tool results."""

    type: str | None = None
    file_path: str | None = None
    content: str | None = None
    structured_patch: list[PatchHunk] = field(default_factory=list)
    original_file: str | None = None
    output: str | None = None
    exit_code: int | None = None


@dataclass
class UserEntry:
    uuid: str
    timestamp: datetime | None = None
    parent_uuid: str | None = None
    session_id: str | None = None
    cwd: str | None = None
    version: str | None = None
    git_branch: str | None = None
    content: str | list[ContentBlock] = ""
    tool_use_result: ToolUseResultData | None = None


@dataclass
class AssistantEntry:
    uuid: str
    timestamp: datetime | None = None
    parent_uuid: str | None = None
    session_id: str | None = None
    cwd: str | None = None
    version: str | None = None
    git_branch: str | None = None
    content: list[ContentBlock] = field(default_factory=list)
    model: str | None = None
    message_id: str | None = None
    usage: TokenUsage | None = None
    request_id: str | None = None


@dataclass
class ProgressEntry:
    uuid: str
    timestamp: datetime | None = None
    parent_uuid: str | None = None
    session_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    tool_use_id: str | None = None
    parent_tool_use_id: str | None = None


@dataclass
class SystemEntry:
    uuid: str
    timestamp: datetime | None = None
    parent_uuid: str | None = None
    session_id: str | None = None
    subtype: str | None = None
    duration_ms: int | None = None
    is_meta: bool = False


@dataclass
class FileHistoryEntry:
    message_id: str | None = None
    snapshot: dict[str, Any] = field(default_factory=dict)
    is_snapshot_update: bool = False


@dataclass
class UnknownEntry:
    type: str | None
    raw: dict[str, Any]
    session_id: str | None = None


LogEntry = Union[
    UserEntry, AssistantEntry, ProgressEntry, SystemEntry, FileHistoryEntry, UnknownEntry
]


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None when absent or malformed."""
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Naive timestamps are taken as UTC so all instants stay comparable
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _int(value: Any) -> int:
    # bool is an int subclass; token counts never are
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def decode_block(raw: Any) -> ContentBlock:
    """Decode one content block; malformed or unknown blocks become UnknownBlock."""
    if not isinstance(raw, dict):
        return UnknownBlock(raw)

    block_type = raw.get("type")
    if block_type == "thinking" and isinstance(raw.get("thinking"), str):
        return ThinkingBlock(thinking=raw["thinking"])
    if block_type == "text" and isinstance(raw.get("text"), str):
        return TextBlock(text=raw["text"])
    if block_type == "tool_use" and isinstance(raw.get("id"), str):
        tool_input = raw.get("input")
        return ToolUseBlock(
            id=raw["id"],
            name=_str(raw.get("name")) or "unknown",
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    if block_type == "tool_result" and isinstance(raw.get("tool_use_id"), str):
        content = raw.get("content")
        if not isinstance(content, (str, list)):
            content = ""
        is_error = raw.get("is_error")
        return ToolResultBlock(
            tool_use_id=raw["tool_use_id"],
            content=content,
            is_error=is_error if isinstance(is_error, bool) else None,
        )
    return UnknownBlock(raw)


def decode_content(raw: Any) -> str | list[ContentBlock]:
    """Decode message content: a plain string or an array of typed blocks."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return [decode_block(b) for b in raw]
    return ""


def _decode_usage(raw: Any) -> TokenUsage | None:
    if not isinstance(raw, dict):
        return None
    return TokenUsage(
        input_tokens=_int(raw.get("input_tokens")),
        output_tokens=_int(raw.get("output_tokens")),
        cache_creation_input_tokens=_int(raw.get("cache_creation_input_tokens")),
        cache_read_input_tokens=_int(raw.get("cache_read_input_tokens")),
    )


def _decode_hunk(raw: Any) -> PatchHunk | None:
    if not isinstance(raw, dict):
        return None
    lines = raw.get("lines")
    return PatchHunk(
        old_start=_int(raw.get("oldStart")),
        old_lines=_int(raw.get("oldLines")),
        new_start=_int(raw.get("newStart")),
        new_lines=_int(raw.get("newLines")),
        lines=[line for line in lines if isinstance(line, str)] if isinstance(lines, list) else [],
    )


def _decode_tool_use_result(raw: Any) -> ToolUseResultData | None:
    # Failed tool calls record a bare error string here
    if not isinstance(raw, dict):
        return None
    patch = raw.get("structuredPatch")
    hunks = [_decode_hunk(h) for h in patch] if isinstance(patch, list) else []
    exit_code = raw.get("exitCode")
    return ToolUseResultData(
        type=_str(raw.get("type")),
        file_path=_str(raw.get("filePath")),
        content=_str(raw.get("content")),
        structured_patch=[h for h in hunks if h is not None],
        original_file=_str(raw.get("originalFile")),
        output=_str(raw.get("output")),
        exit_code=exit_code if isinstance(exit_code, int) and not isinstance(exit_code, bool) else None,
    )


def decode_entry(record: dict[str, Any]) -> LogEntry:
    """Decode one parsed JSON object into its tagged entry variant."""
    entry_type = record.get("type")
    uuid = _str(record.get("uuid")) or ""
    timestamp = parse_timestamp(record.get("timestamp"))
    parent_uuid = _str(record.get("parentUuid"))
    session_id = _str(record.get("sessionId"))

    if entry_type == "user":
        message = record.get("message")
        message = message if isinstance(message, dict) else {}
        return UserEntry(
            uuid=uuid,
            timestamp=timestamp,
            parent_uuid=parent_uuid,
            session_id=session_id,
            cwd=_str(record.get("cwd")),
            version=_str(record.get("version")),
            git_branch=_str(record.get("gitBranch")),
            content=decode_content(message.get("content")),
            tool_use_result=_decode_tool_use_result(record.get("toolUseResult")),
        )

    if entry_type == "assistant":
        message = record.get("message")
        message = message if isinstance(message, dict) else {}
        content = decode_content(message.get("content"))
        if isinstance(content, str):
            content = [TextBlock(text=content)] if content else []
        return AssistantEntry(
            uuid=uuid,
            timestamp=timestamp,
            parent_uuid=parent_uuid,
            session_id=session_id,
            cwd=_str(record.get("cwd")),
            version=_str(record.get("version")),
            git_branch=_str(record.get("gitBranch")),
            content=content,
            model=_str(message.get("model")),
            message_id=_str(message.get("id")),
            usage=_decode_usage(message.get("usage")),
            request_id=_str(record.get("requestId")),
        )

    if entry_type == "progress":
        data = record.get("data")
        return ProgressEntry(
            uuid=uuid,
            timestamp=timestamp,
            parent_uuid=parent_uuid,
            session_id=session_id,
            data=data if isinstance(data, dict) else {},
            tool_use_id=_str(record.get("toolUseID")),
            parent_tool_use_id=_str(record.get("parentToolUseID")),
        )

    if entry_type == "system":
        duration = record.get("durationMs")
        return SystemEntry(
            uuid=uuid,
            timestamp=timestamp,
            parent_uuid=parent_uuid,
            session_id=session_id,
            subtype=_str(record.get("subtype")),
            duration_ms=duration if isinstance(duration, int) else None,
            is_meta=record.get("isMeta") is True,
        )

    if entry_type == "file-history-snapshot":
        snapshot = record.get("snapshot")
        return FileHistoryEntry(
            message_id=_str(record.get("messageId")),
            snapshot=snapshot if isinstance(snapshot, dict) else {},
            is_snapshot_update=record.get("isSnapshotUpdate") is True,
        )

    return UnknownEntry(
        type=entry_type if isinstance(entry_type, str) else None,
        raw=record,
        session_id=session_id,
    )
