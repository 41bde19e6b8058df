"""Data models for cc-viewer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cc_viewer.entries import PatchHunk, TokenUsage


@dataclass
class ProcessedDiff:
    """A file edit summarised from a structured patch."""

    file_path: str
    hunks: list[PatchHunk]
    additions: int
    deletions: int
    original_content: str | None = None
    new_content: str | None = None


@dataclass
class ProcessedToolResult:
    """A tool result, correlated to its invocation by tool-call id."""

    tool_use_id: str
    content: str
    is_error: bool | None = None
    type: str | None = None
    file_path: str | None = None
    file_content: str | None = None
    diff: ProcessedDiff | None = None
    exit_code: int | None = None
    output: str | None = None


@dataclass
class ProcessedBlock:
    """One unit of assistant content: thinking, text, or a tool invocation."""

    id: str
    type: str  # "thinking" | "text" | "tool_use"
    content: str
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_id: str | None = None
    result: ProcessedToolResult | None = None


@dataclass
class MessageMetadata:
    model: str | None = None
    request_id: str | None = None
    usage: TokenUsage | None = None
    cwd: str | None = None
    version: str | None = None
    git_branch: str | None = None


@dataclass
class ConversationMessage:
    """A displayable message. User messages carry text, assistant messages blocks."""

    id: str
    type: str  # "user" | "assistant"
    timestamp: datetime
    parent_id: str | None = None
    text: str | None = None
    blocks: list[ProcessedBlock] = field(default_factory=list)
    metadata: MessageMetadata = field(default_factory=MessageMetadata)


@dataclass
class ConversationStats:
    """Aggregate statistics over the processed messages of one conversation."""

    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    total_tool_uses: int = 0
    tool_use_counts: dict[str, int] = field(default_factory=dict)
    start_time: datetime | None = None
    end_time: datetime | None = None
    model: str | None = None
    version: str | None = None

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total if total > 0 else 0.0

    @property
    def total_duration(self) -> int:
        """Milliseconds between the first and last message."""
        if self.start_time is None or self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds() * 1000)


@dataclass
class ParseError:
    """A log line that could not be parsed."""

    line: int
    message: str
    content: str


@dataclass
class ParsedConversation:
    session_id: str
    messages: list[ConversationMessage]
    stats: ConversationStats
    errors: list[ParseError] = field(default_factory=list)
    total_entries: int = 0
    entry_types: dict[str, int] = field(default_factory=dict)

    @property
    def is_rejected(self) -> bool:
        """True when nothing usable came out of a file that had bad lines."""
        return not self.messages and bool(self.errors)


@dataclass
class SearchResult:
    """A substring match inside one indexed log line."""

    project_id: str
    conversation_id: str
    snippet: str
    match_index: int
    type: str


@dataclass
class IndexStats:
    conversation_count: int
    entry_count: int


@dataclass
class ConversationMetadata:
    """Summary gathered by a lightweight scan of a conversation file."""

    message_count: int = 0
    first_timestamp: str | None = None
    last_timestamp: str | None = None
    model: str | None = None


@dataclass
class ProjectInfo:
    id: str
    name: str
    path: str
    conversation_count: int
    last_modified: datetime


@dataclass
class ConversationInfo:
    id: str
    project_id: str
    first_message: str | None
    message_count: int
    timestamp: str | None
    last_modified: datetime
    size: str
    size_bytes: int
    model: str | None
