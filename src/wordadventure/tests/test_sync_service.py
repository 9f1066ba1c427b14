"""Tests for the storage poller."""
import asyncio
from unittest.mock import patch

import pytest

from wordadventure.models.progress_models import ProgressSets
from wordadventure.services.lifecycle_service import SessionLifecycleManager
from wordadventure.services.persistence_service import PersistenceCoordinator
from wordadventure.services.sync_service import StoragePoller


@pytest.fixture
def tabs(storage, persistence_settings, clock):
    """Two tabs sharing storage without a change notifier."""
    result = []
    for writer_id in ("tab-a", "tab-b"):
        coordinator = PersistenceCoordinator(
            storage,
            profile_id="kid",
            writer_id=writer_id,
            persistence_settings=persistence_settings,
            clock=clock,
        )
        lifecycle = SessionLifecycleManager(coordinator, clock=clock)
        lifecycle.initialize()
        result.append(lifecycle)
    return result


@pytest.mark.asyncio
async def test_start_stop(tabs) -> None:
    """Test starting and stopping the poller."""
    poller = StoragePoller(tabs[1], poll_interval=0.01)

    await poller.start()
    assert poller.running is True
    assert len(poller.tasks) == 1

    await poller.stop()
    assert poller.running is False
    assert len(poller.tasks) == 0


def test_poll_once_detects_other_writer(tabs, clock) -> None:
    """Test a single poll after another process wrote."""
    tab_a, tab_b = tabs
    poller = StoragePoller(tab_b, poll_interval=0.01)
    assert poller.poll_once() is False

    clock.advance(1000)
    tab_a.coordinator.queue_save({"progress_sets": ProgressSets(remembered=[3])})
    tab_a.coordinator.force_sync()

    assert poller.poll_once() is True
    assert tab_b.coordinator.snapshot.progress_sets.remembered == {3}
    assert poller.poll_once() is False


@pytest.mark.asyncio
async def test_running_poller_reconciles(tabs, clock) -> None:
    """Test that the polling task picks up changes."""
    tab_a, tab_b = tabs
    poller = StoragePoller(tab_b, poll_interval=0.01)
    await poller.start()
    try:
        clock.advance(1000)
        tab_a.coordinator.queue_save({"progress_sets": ProgressSets(forgotten=[9])})
        tab_a.coordinator.force_sync()
        await asyncio.sleep(0.05)
        assert tab_b.coordinator.snapshot.progress_sets.forgotten == {9}
    finally:
        await poller.stop()


@pytest.mark.asyncio
async def test_poll_errors_do_not_stop_polling(tabs) -> None:
    """Test that the loop survives failing checks."""
    poller = StoragePoller(tabs[1], poll_interval=0.01)
    calls = []

    def flaky_check() -> bool:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return False

    with patch.object(tabs[1].coordinator, "has_newer_remote", side_effect=flaky_check):
        await poller.start()
        await asyncio.sleep(0.03)
        assert poller.running
        await poller.stop()
    assert poller.checks >= 2
