"""Tests for index lifecycle coordination."""

import asyncio

import pytest

from cc_viewer.coordinator import IndexCoordinator, IndexState
from cc_viewer.errors import IndexInitError
from cc_viewer.searcher import run_search
from cc_viewer.storage import SearchIndex


@pytest.fixture
def broken_index_path(temp_dir):
    """An index path whose parent is a regular file, so it can never be created."""
    blocker = temp_dir / "blocker"
    blocker.write_text("not a directory")
    return blocker / "search-index.db"


@pytest.mark.asyncio
async def test_state_transitions(index_path, projects_dir):
    coordinator = IndexCoordinator(index_path, projects_dir)
    assert coordinator.state is IndexState.UNINITIALIZED

    coordinator.start()
    assert coordinator.state is IndexState.INITIALIZING

    await coordinator.get_stats()
    assert coordinator.state is IndexState.READY

    await coordinator.close()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_initialization(index_path, projects_dir, monkeypatch):
    calls = 0
    real_open = SearchIndex.open

    async def counting_open(path, projects):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return await real_open(path, projects)

    monkeypatch.setattr("cc_viewer.coordinator.SearchIndex.open", counting_open)

    coordinator = IndexCoordinator(index_path, projects_dir)
    try:
        results = await asyncio.gather(
            coordinator.search("needle"),
            coordinator.get_stats(),
            coordinator.ensure_indexed(),
            coordinator.is_stale("proj", "conv"),
            coordinator.search("other"),
        )
    finally:
        await coordinator.close()

    assert calls == 1
    assert results[0] == []
    assert results[1].conversation_count == 0
    assert results[2] == 0
    assert results[3] is True


@pytest.mark.asyncio
async def test_failed_initialization_reaches_every_caller(broken_index_path, projects_dir):
    coordinator = IndexCoordinator(broken_index_path, projects_dir)

    outcomes = await asyncio.gather(
        coordinator.search("needle"),
        coordinator.get_stats(),
        coordinator.index_conversation("proj", "conv"),
        return_exceptions=True,
    )

    assert all(isinstance(outcome, IndexInitError) for outcome in outcomes)
    assert coordinator.state is IndexState.FAILED

    # Failure is sticky: later calls fail the same way without retrying
    with pytest.raises(IndexInitError):
        await coordinator.remove_conversation("proj", "conv")

    await coordinator.close()


@pytest.mark.asyncio
async def test_run_search_reports_no_results_when_index_unavailable(broken_index_path, projects_dir):
    async with IndexCoordinator(broken_index_path, projects_dir) as coordinator:
        results, elapsed_ms = await run_search(coordinator, "needle", 10)

    assert results == []
    assert elapsed_ms >= 0


@pytest.mark.asyncio
async def test_run_search_indexes_before_searching(index_path, projects_dir, write_jsonl, entries):
    write_jsonl(
        projects_dir / "proj" / "conv.jsonl",
        [entries.user("u1", "2024-01-15T10:00:00Z", "look for the needle here")],
    )

    async with IndexCoordinator(index_path, projects_dir) as coordinator:
        results, _ = await run_search(coordinator, "needle", 10)

    assert [(r.project_id, r.conversation_id) for r in results] == [("proj", "conv")]


@pytest.mark.asyncio
async def test_close_without_start_is_noop(index_path, projects_dir):
    coordinator = IndexCoordinator(index_path, projects_dir)

    await coordinator.close()

    assert coordinator.state is IndexState.UNINITIALIZED
    assert not index_path.exists()


@pytest.mark.asyncio
async def test_start_returns_the_shared_task(index_path, projects_dir):
    coordinator = IndexCoordinator(index_path, projects_dir)

    first = coordinator.start()
    second = coordinator.start()

    assert first is second
    assert isinstance(await first, SearchIndex)
    await coordinator.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "a"])
async def test_run_search_short_query_skips_the_sweep(index_path, projects_dir, monkeypatch, query):
    sweeps = 0

    async def counting_ensure_indexed(self, project_id=None):
        nonlocal sweeps
        sweeps += 1
        return 0

    monkeypatch.setattr(IndexCoordinator, "ensure_indexed", counting_ensure_indexed)

    async with IndexCoordinator(index_path, projects_dir) as coordinator:
        results, elapsed_ms = await run_search(coordinator, query, 10)

    assert results == []
    assert elapsed_ms == 0
    assert sweeps == 0
