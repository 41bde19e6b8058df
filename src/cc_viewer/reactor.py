"""Keep the search index in step with filesystem changes.

Watches the projects directory with ``watchfiles`` and re-indexes a
conversation whenever its log file is added or modified. Deleted logs are
purged from the index.
"""

import asyncio
import logging
from pathlib import Path

from watchfiles import Change, awatch

from cc_viewer.coordinator import IndexCoordinator
from cc_viewer.corpus import (
    conversation_id_from_filename,
    conversation_path,
    is_conversation_file,
)

LOGGER = logging.getLogger(__name__)


class ChangeReactor:
    """Background watcher that re-indexes changed conversations."""

    def __init__(self, coordinator: IndexCoordinator, projects_dir: Path) -> None:
        self.coordinator = coordinator
        self.projects_dir = projects_dir
        self._resolved_dir = projects_dir.resolve()
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start watching in a background task."""
        if self.is_running:
            LOGGER.warning("Change reactor already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop())
        LOGGER.info("Watching %s", self.projects_dir)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        LOGGER.info("Change reactor stopped")

    async def run(self) -> None:
        """Watch in the foreground until cancelled."""
        await self._watch_loop()

    async def _watch_loop(self) -> None:
        if not self.projects_dir.is_dir():
            LOGGER.warning("Projects directory %s does not exist, nothing to watch", self.projects_dir)
            return

        async for changes in awatch(self.projects_dir, stop_event=self._stop_event):
            await self.handle_changes(changes)

    def classify(self, path: Path) -> tuple[str, str] | None:
        """Map a changed path to ``(project_id, conversation_id)``.

        Only conversation files directly inside a project directory count;
        nested folders such as ``memory/`` or ``subagents/`` are ignored.
        """
        for root in (self.projects_dir, self._resolved_dir):
            try:
                relative = path.relative_to(root)
                break
            except ValueError:
                continue
        else:
            return None
        if len(relative.parts) != 2:
            return None

        project_id, filename = relative.parts
        if project_id.startswith(".") or not is_conversation_file(filename):
            return None

        return project_id, conversation_id_from_filename(filename)

    async def handle_changes(self, changes: set[tuple[Change, str]]) -> int:
        """Apply a batch of changes to the index. Returns how many were applied."""
        # A batch may hold several unordered events for one file, so the
        # file's presence on disk decides between re-index and purge
        pending: set[tuple[str, str]] = set()
        for _change, path_str in changes:
            classified = self.classify(Path(path_str))
            if classified is not None:
                pending.add(classified)

        applied = 0
        for project_id, conversation_id in sorted(pending):
            path = conversation_path(self.projects_dir, project_id, conversation_id)
            try:
                if not path.exists():
                    LOGGER.info("Conversation deleted: %s/%s", project_id, conversation_id)
                    await self.coordinator.remove_conversation(project_id, conversation_id)
                else:
                    LOGGER.info("Conversation updated: %s/%s", project_id, conversation_id)
                    await self.coordinator.index_conversation(project_id, conversation_id)
                applied += 1
            except Exception as e:
                LOGGER.error("Error applying change to %s/%s: %s", project_id, conversation_id, e)
        return applied
