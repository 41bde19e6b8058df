"""Lifecycle wrapper that hides asynchronous index initialization.

One ``IndexCoordinator`` is created at process start and handed to every
consumer. The first call (or ``start()``) opens the index in a task; every
public operation awaits that same task, so initialization runs exactly once
no matter how many callers arrive while it is in flight.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path

from cc_viewer.errors import IndexInitError
from cc_viewer.models import IndexStats, SearchResult
from cc_viewer.storage import SearchIndex

LOGGER = logging.getLogger(__name__)


class IndexState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class IndexCoordinator:
    def __init__(self, index_path: Path, projects_dir: Path) -> None:
        self.index_path = index_path
        self.projects_dir = projects_dir
        self._init_task: asyncio.Task[SearchIndex] | None = None

    @property
    def state(self) -> IndexState:
        task = self._init_task
        if task is None:
            return IndexState.UNINITIALIZED
        if not task.done():
            return IndexState.INITIALIZING
        if task.cancelled() or task.exception() is not None:
            return IndexState.FAILED
        return IndexState.READY

    def start(self) -> "asyncio.Task[SearchIndex]":
        """Begin opening the index without waiting for it. Returns the shared task."""
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._initialize())
        return self._init_task

    async def _initialize(self) -> SearchIndex:
        try:
            return await SearchIndex.open(self.index_path, self.projects_dir)
        except IndexInitError as e:
            LOGGER.error("Search index unavailable: %s", e)
            raise

    async def _ready(self) -> SearchIndex:
        task = self.start()
        try:
            # shield: one cancelled caller must not cancel initialization for the rest
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise IndexInitError("Search index initialization was cancelled") from None
            raise

    async def is_stale(self, project_id: str, conversation_id: str) -> bool:
        index = await self._ready()
        return await index.is_stale(project_id, conversation_id)

    async def index_conversation(self, project_id: str, conversation_id: str) -> bool:
        index = await self._ready()
        return await index.index_conversation(project_id, conversation_id)

    async def remove_conversation(self, project_id: str, conversation_id: str) -> bool:
        index = await self._ready()
        return await index.remove_conversation(project_id, conversation_id)

    async def ensure_indexed(self, project_id: str | None = None) -> int:
        index = await self._ready()
        return await index.ensure_indexed(project_id)

    async def search(self, query: str, limit: int = 50) -> list[SearchResult]:
        index = await self._ready()
        return await index.search(query, limit)

    async def get_stats(self) -> IndexStats:
        index = await self._ready()
        return await index.get_stats()

    async def close(self) -> None:
        """Close the index if it was opened successfully."""
        if self._init_task is None:
            return
        try:
            index = await self._ready()
        except IndexInitError:
            return
        await index.close()

    async def __aenter__(self) -> "IndexCoordinator":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
