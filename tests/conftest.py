"""Pytest fixtures for cc-viewer tests."""

import json
import tempfile
from pathlib import Path

import pytest


class EntryFactory:
    """Builds raw log records shaped like Claude Code JSONL lines."""

    def __init__(self, session_id: str = "test-session-123") -> None:
        self.session_id = session_id

    def user(self, uuid: str, timestamp: str, content, **extra) -> dict:
        record = {
            "type": "user",
            "uuid": uuid,
            "sessionId": self.session_id,
            "timestamp": timestamp,
            "message": {"role": "user", "content": content},
        }
        record.update(extra)
        return record

    def assistant(self, uuid: str, timestamp: str, blocks: list, usage: dict | None = None, **extra) -> dict:
        message = {
            "model": "claude-sonnet-4-5",
            "id": f"msg_{uuid}",
            "type": "message",
            "role": "assistant",
            "content": blocks,
        }
        if usage is not None:
            message["usage"] = usage
        record = {
            "type": "assistant",
            "uuid": uuid,
            "sessionId": self.session_id,
            "timestamp": timestamp,
            "version": "2.0.14",
            "requestId": f"req_{uuid}",
            "message": message,
        }
        record.update(extra)
        return record

    def tool_result(self, uuid: str, timestamp: str, tool_use_id: str, content="", **extra) -> dict:
        return self.user(
            uuid,
            timestamp,
            [{"type": "tool_result", "tool_use_id": tool_use_id, "content": content}],
            **extra,
        )


def to_jsonl(records: list) -> str:
    return "".join((r if isinstance(r, str) else json.dumps(r)) + "\n" for r in records)


@pytest.fixture
def entries():
    """Factory for raw log records."""
    return EntryFactory()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_jsonl():
    """Write records (dicts or raw strings) as a JSONL file, creating parents."""

    def _write(path: Path, records: list) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(to_jsonl(records), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def projects_dir(temp_dir):
    """An empty Claude Code projects directory."""
    path = temp_dir / "projects"
    path.mkdir()
    return path


@pytest.fixture
def index_path(temp_dir):
    return temp_dir / "viewer" / "search-index.db"


@pytest.fixture
def sample_records(entries):
    """A short conversation with thinking, a tool round-trip and usage."""
    return [
        entries.user("msg-001", "2024-01-15T10:00:00Z", "How do I implement authentication?"),
        entries.assistant(
            "msg-002",
            "2024-01-15T10:00:05Z",
            [
                {"type": "thinking", "thinking": "Let me look at the project first."},
                {"type": "tool_use", "id": "toolu_01", "name": "Bash", "input": {"command": "ls"}},
            ],
            usage={
                "input_tokens": 100,
                "output_tokens": 20,
                "cache_read_input_tokens": 300,
                "cache_creation_input_tokens": 100,
            },
        ),
        entries.tool_result("msg-003", "2024-01-15T10:00:06Z", "toolu_01", "auth.py\nmain.py"),
        entries.assistant(
            "msg-004",
            "2024-01-15T10:01:10Z",
            [{"type": "text", "text": "For authentication, you can use JWT tokens..."}],
            usage={"input_tokens": 50, "output_tokens": 80},
        ),
    ]
