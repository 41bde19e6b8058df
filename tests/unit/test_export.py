"""Tests for Markdown and JSON export."""

import json

import pytest

from cc_viewer.export import format_duration, format_tokens, to_json, to_markdown
from cc_viewer.parser import parse_jsonl


def to_jsonl(records):
    return "\n".join(json.dumps(r) for r in records)


@pytest.fixture
def conversation(sample_records):
    return parse_jsonl(to_jsonl(sample_records))


@pytest.mark.parametrize(
    ("count", "expected"),
    [(0, "0"), (999, "999"), (1500, "1.5k"), (999_949, "999.9k"), (2_350_000, "2.35M")],
)
def test_format_tokens(count, expected):
    assert format_tokens(count) == expected


@pytest.mark.parametrize(
    ("ms", "expected"),
    [(850, "850ms"), (12_500, "12.5s"), (200_000, "3m 20s"), (60_000, "1m 0s")],
)
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


def test_markdown_contains_messages_and_tools(conversation):
    markdown = to_markdown(conversation, "my-session")

    assert markdown.startswith("# Claude Conversation: my-session")
    assert "## Stats" in markdown
    assert "- **Messages:** 3" in markdown
    assert "- **Model:** claude-sonnet-4-5" in markdown
    assert "How do I implement authentication?" in markdown
    assert "<summary>Thinking" in markdown
    assert "### Bash" in markdown
    assert '"command": "ls"' in markdown
    assert "**Result:**" in markdown
    assert "auth.py\nmain.py" in markdown
    assert "## Assistant (80 tokens)" in markdown
    assert markdown.endswith("*Exported from cc-viewer*")


def test_markdown_options(conversation):
    markdown = to_markdown(
        conversation,
        "my-session",
        include_thinking=False,
        include_tool_details=False,
        include_stats=False,
    )

    assert "## Stats" not in markdown
    assert "Thinking" not in markdown
    assert "### Bash" in markdown
    assert "**Result:**" not in markdown


def test_markdown_truncates_long_results(entries):
    records = [
        entries.assistant(
            "a1", "2024-01-15T10:00:00Z", [{"type": "tool_use", "id": "t1", "name": "Read", "input": {}}]
        ),
        entries.tool_result("u1", "2024-01-15T10:00:01Z", "t1", "z" * 5000),
    ]

    markdown = to_markdown(parse_jsonl(to_jsonl(records)), "long")

    assert "z" * 2000 + "\n... (truncated)" in markdown
    assert "z" * 2001 not in markdown


def test_json_export_includes_derived_stats(conversation):
    data = json.loads(to_json(conversation))

    assert data["session_id"] == "test-session-123"
    assert len(data["messages"]) == 3
    assert data["messages"][0]["timestamp"] == "2024-01-15T10:00:00+00:00"
    assert data["stats"]["cache_hit_rate"] == pytest.approx(0.75)
    assert data["stats"]["total_duration"] == 70_000
    tool_block = data["messages"][1]["blocks"][1]
    assert tool_block["tool_name"] == "Bash"
    assert tool_block["result"]["content"] == "auth.py\nmain.py"
