"""SQLite storage for the cc-viewer search index.

One row per conversation records the file modification time seen when it
was indexed; one row per searchable log line holds the extracted text.
A conversation is re-indexed by replacing both inside a single transaction.
"""

import asyncio
import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from cc_viewer.corpus import conversation_path, list_conversation_ids, list_project_ids
from cc_viewer.errors import IndexClosedError, IndexInitError
from cc_viewer.models import IndexStats, SearchResult
from cc_viewer.text import extract_entry_text

LOGGER = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
SNIPPET_CONTEXT = 40
ELLIPSIS = "..."

SCHEMA = """
    CREATE TABLE IF NOT EXISTS conversations (
        id INTEGER PRIMARY KEY,
        project_id TEXT NOT NULL,
        conversation_id TEXT NOT NULL,
        last_modified TEXT NOT NULL,
        indexed_at TEXT NOT NULL,
        UNIQUE(project_id, conversation_id)
    );

    CREATE TABLE IF NOT EXISTS entries (
        id INTEGER PRIMARY KEY,
        conversation_rowid INTEGER NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
        content TEXT NOT NULL,
        entry_type TEXT NOT NULL,
        line_number INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_conversations_lookup
        ON conversations(project_id, conversation_id);

    CREATE INDEX IF NOT EXISTS idx_entries_conversation
        ON entries(conversation_rowid);
"""


def _modified_at(stat: os.stat_result) -> str:
    return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()


def _read_conversation_file(path: Path) -> tuple[os.stat_result, str]:
    return path.stat(), path.read_text(encoding="utf-8", errors="replace")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def extract_index_rows(content: str) -> list[tuple[str, str, int]]:
    """Extract ``(text, entry_type, line_number)`` for every searchable log line.

    Line numbers are 1-based positions in the file. Lines that are blank,
    not valid JSON, or carry no prose are skipped.
    """
    rows: list[tuple[str, str, int]] = []
    for line_num, line in enumerate(content.split("\n"), 1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue

        text = extract_entry_text(record)
        if not text.strip():
            continue

        entry_type = record.get("type") if isinstance(record, dict) else None
        rows.append((text, entry_type if isinstance(entry_type, str) else "unknown", line_num))
    return rows


def find_folded(content: str, query: str) -> tuple[int, int] | None:
    """Locate the first case-insensitive match as ``(start, end)`` in ``content``.

    Lowercasing can lengthen a character ("İ" becomes two), so offsets into
    the lowered text are mapped back to the original characters.
    """
    folded: list[str] = []
    origin: list[int] = []
    for index, char in enumerate(content):
        lowered = char.lower()
        folded.append(lowered)
        origin.extend([index] * len(lowered))

    needle = query.lower()
    pos = "".join(folded).find(needle)
    if pos < 0 or not needle:
        return None
    return origin[pos], origin[pos + len(needle) - 1] + 1


def build_snippet(content: str, query: str) -> tuple[str, int]:
    """Cut a preview window around the first case-insensitive match.

    Returns the snippet and the match offset within the full ``content``.
    """
    match = find_folded(content, query)
    match_index, match_end = match if match is not None else (0, len(query))
    start = max(0, match_index - SNIPPET_CONTEXT)
    end = min(len(content), match_end + SNIPPET_CONTEXT)

    snippet = content[start:end]
    if start > 0:
        snippet = ELLIPSIS + snippet
    if end < len(content):
        snippet = snippet + ELLIPSIS
    return snippet, match_index


class SearchIndex:
    """Persistent substring index over a corpus of conversation logs.

    All access to the underlying connection is serialised by one lock, so a
    reader never observes a half-replaced conversation.
    """

    def __init__(self, conn: aiosqlite.Connection, index_path: Path, projects_dir: Path) -> None:
        self._conn: aiosqlite.Connection | None = conn
        self._lock = asyncio.Lock()
        self.index_path = index_path
        self.projects_dir = projects_dir

    @classmethod
    async def open(cls, index_path: Path, projects_dir: Path) -> "SearchIndex":
        """Open the index file, creating it and its schema if needed.

        Raises:
            IndexInitError: The index directory or file cannot be created.
        """
        try:
            index_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                conn = await cls._connect(index_path)
            except sqlite3.DatabaseError as e:
                # The index is derived data, so a damaged file is simply rebuilt
                LOGGER.warning("Discarding unreadable index %s: %s", index_path, e)
                index_path.unlink(missing_ok=True)
                conn = await cls._connect(index_path)
        except (OSError, sqlite3.Error) as e:
            raise IndexInitError(f"Cannot open search index at {index_path}: {e}") from e

        LOGGER.info("Search index ready: %s", index_path)
        return cls(conn, index_path, projects_dir)

    @staticmethod
    async def _connect(index_path: Path) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(str(index_path), isolation_level=None)
        try:
            await conn.execute("PRAGMA foreign_keys=ON")
            # SQLite LOWER only folds ASCII
            await conn.create_function("py_lower", 1, str.lower, deterministic=True)
            await conn.executescript(SCHEMA)
        except sqlite3.Error:
            await conn.close()
            raise
        return conn

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise IndexClosedError(f"Search index {self.index_path} is closed")
        return self._conn

    async def is_stale(self, project_id: str, conversation_id: str) -> bool:
        """Check whether a conversation needs (re)indexing.

        Any mismatch between the stored and current modification time counts,
        as does a missing index row or an unreadable file.
        """
        async with self._lock:
            return await self._is_stale(project_id, conversation_id)

    async def _is_stale(self, project_id: str, conversation_id: str) -> bool:
        conn = self._require_conn()
        path = conversation_path(self.projects_dir, project_id, conversation_id)
        try:
            stat = await asyncio.to_thread(path.stat)
        except OSError:
            return True

        cursor = await conn.execute(
            "SELECT last_modified FROM conversations WHERE project_id = ? AND conversation_id = ?",
            (project_id, conversation_id),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return True
        return row[0] != _modified_at(stat)

    async def index_conversation(self, project_id: str, conversation_id: str) -> bool:
        """Replace the indexed content of one conversation.

        Returns False when the file cannot be read; the previous index state
        for the conversation is then left untouched.
        """
        async with self._lock:
            return await self._index_conversation(project_id, conversation_id)

    async def _index_conversation(self, project_id: str, conversation_id: str) -> bool:
        conn = self._require_conn()
        path = conversation_path(self.projects_dir, project_id, conversation_id)
        try:
            stat, content = await asyncio.to_thread(_read_conversation_file, path)
        except OSError as e:
            LOGGER.warning("Error indexing conversation %s/%s: %s", project_id, conversation_id, e)
            return False

        last_modified = _modified_at(stat)
        indexed_at = datetime.now(tz=timezone.utc).isoformat()
        rows = extract_index_rows(content)

        await conn.execute("BEGIN IMMEDIATE")
        try:
            await self._delete_conversation(conn, project_id, conversation_id)
            cursor = await conn.execute(
                """
                INSERT INTO conversations (project_id, conversation_id, last_modified, indexed_at)
                VALUES (?, ?, ?, ?)
                """,
                (project_id, conversation_id, last_modified, indexed_at),
            )
            conversation_rowid = cursor.lastrowid
            await cursor.close()
            await conn.executemany(
                """
                INSERT INTO entries (conversation_rowid, content, entry_type, line_number)
                VALUES (?, ?, ?, ?)
                """,
                [(conversation_rowid, text, entry_type, line_num) for text, entry_type, line_num in rows],
            )
            await conn.execute("COMMIT")
        except BaseException:
            await conn.execute("ROLLBACK")
            raise

        LOGGER.info("Indexed %s/%s (%d entries)", project_id, conversation_id, len(rows))
        return True

    @staticmethod
    async def _delete_conversation(
        conn: aiosqlite.Connection, project_id: str, conversation_id: str
    ) -> bool:
        cursor = await conn.execute(
            "SELECT id FROM conversations WHERE project_id = ? AND conversation_id = ?",
            (project_id, conversation_id),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return False
        await conn.execute("DELETE FROM entries WHERE conversation_rowid = ?", (row[0],))
        await conn.execute("DELETE FROM conversations WHERE id = ?", (row[0],))
        return True

    async def remove_conversation(self, project_id: str, conversation_id: str) -> bool:
        """Drop a conversation and its entries. Returns False if it was not indexed."""
        async with self._lock:
            conn = self._require_conn()
            await conn.execute("BEGIN IMMEDIATE")
            try:
                removed = await self._delete_conversation(conn, project_id, conversation_id)
                await conn.execute("COMMIT")
            except BaseException:
                await conn.execute("ROLLBACK")
                raise

        if removed:
            LOGGER.info("Removed %s/%s from index", project_id, conversation_id)
        return removed

    async def _indexed_conversations(self, project_id: str | None = None) -> set[tuple[str, str]]:
        conn = self._require_conn()
        if project_id is None:
            cursor = await conn.execute("SELECT project_id, conversation_id FROM conversations")
        else:
            cursor = await conn.execute(
                "SELECT project_id, conversation_id FROM conversations WHERE project_id = ?",
                (project_id,),
            )
        rows = await cursor.fetchall()
        await cursor.close()
        return {(row[0], row[1]) for row in rows}

    async def ensure_indexed(self, project_id: str | None = None) -> int:
        """Index every stale conversation of one project or of the whole corpus.

        Conversations whose files are gone are purged from the index. An
        unreadable project is logged and skipped. Returns the number of
        conversations that were (re)indexed.
        """
        if project_id is None:
            if not self.projects_dir.is_dir():
                LOGGER.warning("Projects directory %s does not exist", self.projects_dir)
                return 0
            try:
                project_ids = await asyncio.to_thread(list_project_ids, self.projects_dir)
            except OSError as e:
                LOGGER.warning("Cannot list projects in %s: %s", self.projects_dir, e)
                return 0
        else:
            project_ids = [project_id]

        seen: set[tuple[str, str]] = set()
        swept: set[str] = set()
        indexed = 0

        for proj in project_ids:
            project_dir = self.projects_dir / proj
            try:
                conversation_ids = await asyncio.to_thread(list_conversation_ids, project_dir)
            except OSError as e:
                LOGGER.warning("Skipping project %s: %s", proj, e)
                continue

            swept.add(proj)
            for conversation_id in conversation_ids:
                seen.add((proj, conversation_id))
                async with self._lock:
                    if not await self._is_stale(proj, conversation_id):
                        continue
                    LOGGER.info("Indexing %s/%s...", proj, conversation_id)
                    if await self._index_conversation(proj, conversation_id):
                        indexed += 1

        async with self._lock:
            known = await self._indexed_conversations(project_id)
        for proj, conversation_id in sorted(known - seen):
            # Only purge inside projects that were listed successfully, or
            # projects that vanished from a full sweep
            if proj in swept or (project_id is None and proj not in project_ids):
                await self.remove_conversation(proj, conversation_id)

        return indexed

    async def search(self, query: str, limit: int = 50) -> list[SearchResult]:
        """Case-insensitive substring search over indexed text.

        Queries shorter than two characters return no results.
        """
        if not query or len(query) < MIN_QUERY_LENGTH or limit < 1:
            return []

        pattern = f"%{_escape_like(query.lower())}%"
        async with self._lock:
            conn = self._require_conn()
            cursor = await conn.execute(
                """
                SELECT c.project_id, c.conversation_id, e.content, e.entry_type
                FROM entries e
                JOIN conversations c ON e.conversation_rowid = c.id
                WHERE py_lower(e.content) LIKE ? ESCAPE '\\'
                ORDER BY e.id
                LIMIT ?
                """,
                (pattern, limit),
            )
            rows = await cursor.fetchall()
            await cursor.close()

        results: list[SearchResult] = []
        for project_id, conversation_id, content, entry_type in rows:
            snippet, match_index = build_snippet(content, query)
            results.append(
                SearchResult(
                    project_id=project_id,
                    conversation_id=conversation_id,
                    snippet=snippet,
                    match_index=match_index,
                    type=entry_type,
                )
            )
        return results

    async def get_stats(self) -> IndexStats:
        async with self._lock:
            conn = self._require_conn()
            cursor = await conn.execute("SELECT COUNT(*) FROM conversations")
            conversation_count = (await cursor.fetchone())[0]
            await cursor.close()
            cursor = await conn.execute("SELECT COUNT(*) FROM entries")
            entry_count = (await cursor.fetchone())[0]
            await cursor.close()
        return IndexStats(conversation_count=conversation_count, entry_count=entry_count)

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        async with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            await conn.close()
        LOGGER.info("Search index closed: %s", self.index_path)
