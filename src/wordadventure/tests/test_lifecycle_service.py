"""Tests for the session lifecycle manager."""
import pytest

from wordadventure.config import LifecycleSettings
from wordadventure.models.progress_models import ProgressCounters, ProgressSets
from wordadventure.models.snapshot_models import FieldGroup, PersistedSnapshot, serialize_snapshot
from wordadventure.services.lifecycle_service import (
    LifecycleState,
    ReconciliationTrigger,
    SessionLifecycleManager,
)
from wordadventure.services.persistence_service import PersistenceCoordinator

MINUTE_MS = 60_000


@pytest.fixture
def make_tab(storage, hub, persistence_settings, clock):
    """Factory creating a coordinator and lifecycle manager for one tab."""

    def factory(writer_id: str) -> SessionLifecycleManager:
        coordinator = PersistenceCoordinator(
            storage,
            profile_id="kid",
            notifier=hub,
            writer_id=writer_id,
            persistence_settings=persistence_settings,
            clock=clock,
        )
        return SessionLifecycleManager(coordinator, LifecycleSettings(auto_restore_minutes=30), clock=clock)

    return factory


def store_snapshot(storage, key: str, saved_at: int, **fields) -> PersistedSnapshot:
    snapshot = PersistedSnapshot(
        last_saved_at_ms=saved_at,
        field_group_stamps={group: saved_at for group in FieldGroup},
        **fields,
    )
    storage.set(key, serialize_snapshot(snapshot))
    return snapshot


def test_fresh_start_without_snapshot(make_tab, storage) -> None:
    """Test the first start of a learner."""
    tab = make_tab("tab-a")
    assert tab.state == LifecycleState.UNINITIALIZED

    snapshot = tab.initialize()

    assert tab.state == LifecycleState.ACTIVE
    assert not tab.restored
    assert snapshot.session_number == 1
    assert storage.get(tab.coordinator.key) is not None


def test_recent_snapshot_with_progress_is_restored(make_tab, storage, clock) -> None:
    """Test auto-restore within the recency window."""
    tab = make_tab("tab-a")
    store_snapshot(
        storage, tab.coordinator.key, clock.now - 10 * MINUTE_MS,
        active_category="food", session_number=3,
        progress_sets=ProgressSets(remembered=[1], forgotten=[2]),
    )

    snapshot = tab.initialize()

    assert tab.restored
    assert tab.state == LifecycleState.ACTIVE
    assert snapshot.session_number == 3
    assert snapshot.active_category == "food"


def test_stale_snapshot_starts_fresh_keeping_progress(make_tab, storage, clock) -> None:
    """Test that an old snapshot starts a new session without losing progress."""
    tab = make_tab("tab-a")
    store_snapshot(
        storage, tab.coordinator.key, clock.now - 45 * MINUTE_MS,
        active_category="food", session_number=3,
        progress_sets=ProgressSets(remembered=[1, 5]),
        progress_counters=ProgressCounters(words_completed=12),
    )

    snapshot = tab.initialize()

    assert not tab.restored
    assert snapshot.session_number == 4
    assert snapshot.active_category == "all"
    assert snapshot.progress_sets.remembered == {1, 5}
    assert snapshot.progress_counters.words_completed == 12


def test_recent_snapshot_without_progress_starts_fresh(make_tab, storage, clock) -> None:
    """Test that an empty recent snapshot is not restored."""
    tab = make_tab("tab-a")
    store_snapshot(storage, tab.coordinator.key, clock.now - MINUTE_MS, session_number=2)

    tab.initialize()
    assert not tab.restored


def test_corrupt_snapshot_starts_fresh(make_tab, storage) -> None:
    """Test start-up with an unreadable snapshot."""
    tab = make_tab("tab-a")
    storage.set(tab.coordinator.key, "\x00garbage")

    snapshot = tab.initialize()

    assert tab.state == LifecycleState.ACTIVE
    assert snapshot.session_number == 1
    assert tab.coordinator.load_session() is not None


def test_triggers_ignored_until_active(make_tab) -> None:
    """Test that triggers before initialization are ignored."""
    tab = make_tab("tab-a")
    assert tab.dispatch(ReconciliationTrigger.FOCUS) is False
    assert tab.dispatch(ReconciliationTrigger.TEARDOWN) is False


def test_blur_flushes_pending_groups(make_tab) -> None:
    """Test that losing focus writes pending changes."""
    tab = make_tab("tab-a")
    tab.initialize()
    tab.coordinator.queue_save({"active_category": "space"})
    assert tab.coordinator.pending_groups

    assert tab.dispatch(ReconciliationTrigger.BLUR) is True

    assert not tab.coordinator.pending_groups
    assert tab.coordinator.load_session().active_category == "space"


def test_focus_reconciles_with_newer_tab(make_tab, clock) -> None:
    """A tab regaining focus catches up with progress saved by another tab."""
    tab_a = make_tab("tab-a")
    tab_b = make_tab("tab-b")
    tab_a.initialize()
    tab_b.initialize()

    clock.advance(1000)
    tab_b.coordinator.queue_save({"progress_sets": ProgressSets(remembered=[1])})
    tab_b.dispatch(ReconciliationTrigger.VISIBILITY_HIDDEN)

    clock.advance(1000)
    tab_a.coordinator.queue_save({"progress_sets": ProgressSets(remembered=[1, 2, 3])})
    tab_a.dispatch(ReconciliationTrigger.BLUR)
    assert tab_b.coordinator.last_saved_at_ms < tab_a.coordinator.last_saved_at_ms

    tab_b.dispatch(ReconciliationTrigger.FOCUS)

    remembered_b = tab_b.coordinator.snapshot.progress_sets.remembered
    remembered_a = tab_a.coordinator.snapshot.progress_sets.remembered
    assert len(remembered_b) >= len(remembered_a)


def test_attached_tab_reconciles_on_notification(make_tab, hub, clock) -> None:
    """Test storage-change notifications between tabs."""
    tab_a = make_tab("tab-a")
    tab_b = make_tab("tab-b")
    tab_a.initialize()
    tab_b.initialize()
    tab_b.attach(hub)

    clock.advance(1000)
    tab_a.coordinator.queue_save({"progress_sets": ProgressSets(forgotten=[7])})
    tab_a.coordinator.force_sync()

    assert tab_b.coordinator.snapshot.progress_sets.forgotten == {7}

    tab_b.detach()
    clock.advance(1000)
    tab_a.coordinator.queue_save({"progress_sets": ProgressSets(forgotten=[7, 8])})
    tab_a.coordinator.force_sync()
    assert tab_b.coordinator.snapshot.progress_sets.forgotten == {7}


def test_trigger_for_other_key_ignored(make_tab) -> None:
    """Test that notifications for other profiles are ignored."""
    tab = make_tab("tab-a")
    tab.initialize()
    assert tab.dispatch(ReconciliationTrigger.STORAGE_CHANGE, "other.profile") is False


def test_request_new_session(make_tab, storage, clock) -> None:
    """Test wiping the session and starting again."""
    tab = make_tab("tab-a")
    tab.initialize()
    tab.coordinator.queue_save({"progress_sets": ProgressSets(remembered=[1])})
    tab.coordinator.force_sync()

    tab.request_new_session()

    assert tab.state == LifecycleState.CLEARED
    assert storage.get(tab.coordinator.key) is None
    assert tab.dispatch(ReconciliationTrigger.FOCUS) is False

    snapshot = tab.initialize()
    assert tab.state == LifecycleState.ACTIVE
    assert snapshot.session_number == 1
    assert not snapshot.progress_sets.remembered


def test_initialize_twice_keeps_state(make_tab) -> None:
    """Test that a second initialize does not start another session."""
    tab = make_tab("tab-a")
    first = tab.initialize()
    second = tab.initialize()
    assert first.session_number == second.session_number
