"""Tests for the storage module."""

import asyncio
import json
import os
import sqlite3

import pytest
import pytest_asyncio

from cc_viewer.errors import IndexClosedError
from cc_viewer.storage import SearchIndex, build_snippet, extract_index_rows, find_folded


@pytest_asyncio.fixture
async def index(index_path, projects_dir):
    """Open a search index over an empty projects directory."""
    search_index = await SearchIndex.open(index_path, projects_dir)
    yield search_index
    await search_index.close()


def indexed_texts(index_path, project_id, conversation_id):
    """Sorted entry texts stored for one conversation, read through a separate connection."""
    conn = sqlite3.connect(index_path)
    try:
        rows = conn.execute(
            """
            SELECT e.content FROM entries e
            JOIN conversations c ON e.conversation_rowid = c.id
            WHERE c.project_id = ? AND c.conversation_id = ?
            """,
            (project_id, conversation_id),
        ).fetchall()
    finally:
        conn.close()
    return sorted(row[0] for row in rows)


@pytest.fixture
def corpus(projects_dir, write_jsonl, entries):
    """Two projects with three conversations each, every one mentioning a needle."""

    def _build():
        for project in ("-home-user-alpha", "-home-user-beta"):
            for n in range(3):
                write_jsonl(
                    projects_dir / project / f"conv-{n}.jsonl",
                    [
                        entries.user("u1", "2024-01-15T10:00:00Z", f"Where is the needle in haystack {n}?"),
                        entries.assistant(
                            "a1", "2024-01-15T10:00:01Z", [{"type": "text", "text": "Nothing to see."}]
                        ),
                    ],
                )

    return _build


def test_extract_index_rows_uses_file_line_numbers(entries):
    content = "\n".join([
        json.dumps(entries.user("u1", "2024-01-15T10:00:00Z", "first")),
        "",
        "{broken",
        json.dumps(entries.assistant("a1", "2024-01-15T10:00:01Z", [{"type": "text", "text": "second"}])),
        json.dumps({"type": "summary", "summary": "no message here"}),
        json.dumps({"message": {"content": "untyped"}}),
    ])

    rows = extract_index_rows(content)

    assert rows == [
        ("first", "user", 1),
        ("second", "assistant", 4),
        ("untyped", "unknown", 6),
    ]


def test_extract_index_rows_skips_tool_only_entries(entries):
    content = json.dumps(entries.tool_result("u1", "2024-01-15T10:00:00Z", "t1", "output"))

    assert extract_index_rows(content) == []


def test_build_snippet_short_content():
    snippet, match_index = build_snippet("find the needle", "NEEDLE")

    assert snippet == "find the needle"
    assert match_index == 9


def test_build_snippet_adds_ellipses():
    content = "a" * 100 + "needle" + "b" * 100

    snippet, match_index = build_snippet(content, "needle")

    assert match_index == 100
    assert snippet == "..." + "a" * 40 + "needle" + "b" * 40 + "..."


def test_build_snippet_at_start_has_no_leading_ellipsis():
    content = "needle" + "x" * 100

    snippet, match_index = build_snippet(content, "needle")

    assert match_index == 0
    assert snippet == "needle" + "x" * 40 + "..."


def test_find_folded_keeps_original_offsets():
    # "İ" lowercases to two characters, which must not shift later offsets
    content = "İİİ then Needle here"

    assert find_folded(content, "needle") == (9, 15)
    assert find_folded(content, "absent") is None


def test_build_snippet_after_length_changing_lowercase():
    content = "İ" * 50 + "needle" + "b" * 50

    snippet, match_index = build_snippet(content, "NEEDLE")

    assert match_index == 50
    assert snippet == "..." + "İ" * 40 + "needle" + "b" * 40 + "..."


@pytest.mark.asyncio
async def test_open_creates_schema(index, index_path):
    assert index_path.exists()

    conn = sqlite3.connect(index_path)
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()

    assert {"conversations", "entries"} <= tables


@pytest.mark.asyncio
async def test_corrupt_index_is_rebuilt(index_path, projects_dir):
    index_path.parent.mkdir(parents=True)
    index_path.write_bytes(b"this is not a sqlite database" * 100)

    search_index = await SearchIndex.open(index_path, projects_dir)
    try:
        stats = await search_index.get_stats()
    finally:
        await search_index.close()

    assert stats.conversation_count == 0
    assert stats.entry_count == 0


@pytest.mark.asyncio
async def test_missing_file_is_stale(index):
    assert await index.is_stale("proj", "nope") is True


@pytest.mark.asyncio
async def test_index_then_not_stale_then_stale_after_touch(index, projects_dir, write_jsonl, sample_records):
    path = write_jsonl(projects_dir / "proj" / "conv.jsonl", sample_records)

    assert await index.is_stale("proj", "conv") is True
    assert await index.index_conversation("proj", "conv") is True
    assert await index.is_stale("proj", "conv") is False

    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))

    assert await index.is_stale("proj", "conv") is True


@pytest.mark.asyncio
async def test_reindex_replaces_entries(index, index_path, projects_dir, write_jsonl, sample_records):
    write_jsonl(projects_dir / "proj" / "conv.jsonl", sample_records)

    await index.index_conversation("proj", "conv")
    first = await index.get_stats()
    first_texts = indexed_texts(index_path, "proj", "conv")
    await index.index_conversation("proj", "conv")
    second = await index.get_stats()
    second_texts = indexed_texts(index_path, "proj", "conv")

    assert first == second
    assert first_texts == second_texts
    assert "How do I implement authentication?" in second_texts
    assert second.conversation_count == 1
    # user question, assistant thinking, final assistant text
    assert second.entry_count == 3


@pytest.mark.asyncio
async def test_index_unreadable_file_keeps_previous_rows(index, projects_dir, write_jsonl, sample_records):
    path = write_jsonl(projects_dir / "proj" / "conv.jsonl", sample_records)
    await index.index_conversation("proj", "conv")

    path.unlink()

    assert await index.index_conversation("proj", "conv") is False
    assert (await index.get_stats()).conversation_count == 1


@pytest.mark.asyncio
async def test_remove_conversation(index, projects_dir, write_jsonl, sample_records):
    write_jsonl(projects_dir / "proj" / "conv.jsonl", sample_records)
    await index.index_conversation("proj", "conv")

    assert await index.remove_conversation("proj", "conv") is True
    assert await index.remove_conversation("proj", "conv") is False

    stats = await index.get_stats()
    assert stats.conversation_count == 0
    assert stats.entry_count == 0


@pytest.mark.asyncio
async def test_ensure_indexed_and_search(index, corpus):
    corpus()

    assert await index.ensure_indexed() == 6
    # Nothing changed, so a second sweep does no work
    assert await index.ensure_indexed() == 0

    results = await index.search("needle")

    assert len(results) == 6
    assert {(r.project_id, r.conversation_id) for r in results} == {
        (project, f"conv-{n}")
        for project in ("-home-user-alpha", "-home-user-beta")
        for n in range(3)
    }
    for result in results:
        assert result.type == "user"
        assert result.match_index == len("Where is the ")
        assert "needle" in result.snippet


@pytest.mark.asyncio
async def test_single_mid_word_match_in_corpus(index, projects_dir, write_jsonl, entries):
    line = "Some preamble text that runs long enough, then haystackneedlehay and a trailing tail of words that keeps going for a while"
    for project in ("alpha", "beta"):
        for n in range(3):
            text = line if (project, n) == ("beta", 1) else f"ordinary message {n}"
            write_jsonl(
                projects_dir / project / f"conv-{n}.jsonl",
                [entries.user("u1", "2024-01-15T10:00:00Z", text)],
            )
    await index.ensure_indexed()

    results = await index.search("needle")

    assert len(results) == 1
    result = results[0]
    offset = line.index("needle")
    assert (result.project_id, result.conversation_id) == ("beta", "conv-1")
    assert result.match_index == offset
    assert result.snippet == "..." + line[offset - 40 : offset + 6 + 40] + "..."


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_limited(index, corpus):
    corpus()
    await index.ensure_indexed()

    results = await index.search("NEEDLE", limit=2)

    assert len(results) == 2


@pytest.mark.asyncio
async def test_search_no_match(index, corpus):
    corpus()
    await index.ensure_indexed()

    assert await index.search("absent-term") == []


@pytest.mark.asyncio
async def test_search_escapes_like_wildcards(index, projects_dir, write_jsonl, entries):
    write_jsonl(
        projects_dir / "proj" / "conv.jsonl",
        [
            entries.user("u1", "2024-01-15T10:00:00Z", "progress is at 50% now"),
            entries.user("u2", "2024-01-15T10:00:01Z", "rename my_var please"),
            entries.user("u3", "2024-01-15T10:00:02Z", "50 percent done, myxvar"),
        ],
    )
    await index.ensure_indexed()

    percent = await index.search("50%")
    underscore = await index.search("my_var")

    assert [r.snippet for r in percent] == ["progress is at 50% now"]
    assert [r.snippet for r in underscore] == ["rename my_var please"]


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "a"])
async def test_short_queries_return_nothing(index, corpus, query):
    corpus()
    await index.ensure_indexed()

    assert await index.search(query) == []


@pytest.mark.asyncio
async def test_short_query_does_not_touch_closed_index(index):
    await index.close()

    assert await index.search("a") == []
    with pytest.raises(IndexClosedError):
        await index.search("needle")


@pytest.mark.asyncio
async def test_ensure_indexed_purges_deleted_conversations(index, corpus, projects_dir):
    corpus()
    await index.ensure_indexed()

    (projects_dir / "-home-user-alpha" / "conv-0.jsonl").unlink()
    await index.ensure_indexed()

    results = await index.search("needle")
    assert ("-home-user-alpha", "conv-0") not in {(r.project_id, r.conversation_id) for r in results}
    assert (await index.get_stats()).conversation_count == 5


@pytest.mark.asyncio
async def test_ensure_indexed_single_project(index, corpus):
    corpus()

    assert await index.ensure_indexed("-home-user-beta") == 3

    results = await index.search("needle")
    assert {r.project_id for r in results} == {"-home-user-beta"}


@pytest.mark.asyncio
async def test_ensure_indexed_skips_missing_project(index, corpus):
    corpus()
    await index.ensure_indexed()

    assert await index.ensure_indexed("does-not-exist") == 0
    assert (await index.get_stats()).conversation_count == 6


@pytest.mark.asyncio
async def test_ensure_indexed_without_projects_dir(index_path, temp_dir):
    search_index = await SearchIndex.open(index_path, temp_dir / "missing")
    try:
        assert await search_index.ensure_indexed() == 0
    finally:
        await search_index.close()


@pytest.mark.asyncio
async def test_close_is_idempotent(index):
    await index.close()
    await index.close()

    with pytest.raises(IndexClosedError):
        await index.get_stats()


@pytest.mark.asyncio
async def test_invalid_utf8_only_spoils_its_own_line(index, projects_dir, entries):
    path = projects_dir / "proj" / "conv.jsonl"
    path.parent.mkdir()
    good = json.dumps(entries.user("u1", "2024-01-15T10:00:00Z", "find the needle")).encode("utf-8")
    # A log caught mid-write, ending inside a multi-byte character
    torn = b'{"type": "user", "message": {"content": "caf\xc3'
    path.write_bytes(good + b"\n" + torn)

    assert await index.ensure_indexed() == 1
    assert await index.is_stale("proj", "conv") is False

    results = await index.search("needle")
    assert [(r.project_id, r.conversation_id) for r in results] == [("proj", "conv")]


@pytest.mark.asyncio
async def test_search_folds_non_ascii_case(index, projects_dir, write_jsonl, entries):
    write_jsonl(
        projects_dir / "proj" / "conv.jsonl",
        [entries.user("u1", "2024-01-15T10:00:00Z", "Ein Ärger mit ÜBERGRÖSSE")],
    )
    await index.ensure_indexed()

    results = await index.search("übergrösse")

    assert len(results) == 1
    assert results[0].match_index == len("Ein Ärger mit ")
    assert results[0].snippet == "Ein Ärger mit ÜBERGRÖSSE"
    assert len(await index.search("ärger")) == 1


@pytest.mark.asyncio
async def test_concurrent_indexing_keeps_conversations_apart(index, index_path, projects_dir, write_jsonl, entries):
    texts = {
        "first": [f"first conversation line {n}" for n in range(50)],
        "second": [f"second conversation line {n}" for n in range(30)],
    }
    for conversation_id, lines in texts.items():
        write_jsonl(
            projects_dir / "proj" / f"{conversation_id}.jsonl",
            [entries.user(f"u{n}", "2024-01-15T10:00:00Z", line) for n, line in enumerate(lines)],
        )

    outcomes = await asyncio.gather(
        index.index_conversation("proj", "first"),
        index.index_conversation("proj", "second"),
        index.search("conversation line", limit=500),
        index.index_conversation("proj", "first"),
    )

    assert outcomes[0] is True
    assert outcomes[1] is True
    assert outcomes[3] is True
    # A concurrent reader sees whole conversations only
    seen = [r.conversation_id for r in outcomes[2]]
    assert seen.count("first") in (0, 50)
    assert seen.count("second") in (0, 30)

    for conversation_id, lines in texts.items():
        assert indexed_texts(index_path, "proj", conversation_id) == sorted(lines)
    stats = await index.get_stats()
    assert stats.conversation_count == 2
    assert stats.entry_count == 80
