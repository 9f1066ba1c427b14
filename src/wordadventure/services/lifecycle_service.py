"""Session start-up, restore decisions and reconciliation triggers."""
import logging
from enum import Enum
from typing import Callable, List, Optional

from wordadventure.config import LifecycleSettings, settings
from wordadventure.models.snapshot_models import PersistedSnapshot
from wordadventure.models.word_models import now_ms
from wordadventure.services.persistence_service import PersistenceCoordinator
from wordadventure.services.storage_service import ChangeNotifier

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """Session lifecycle state."""
    UNINITIALIZED = "uninitialized"
    AUTO_RESTORING = "auto_restoring"
    FRESH_INITIALIZED = "fresh_initialized"
    ACTIVE = "active"
    CLEARED = "cleared"


class ReconciliationTrigger(str, Enum):
    """External event that may require flushing or reconciling."""
    VISIBILITY_HIDDEN = "visibility_hidden"
    VISIBILITY_VISIBLE = "visibility_visible"
    FOCUS = "focus"
    BLUR = "blur"
    STORAGE_CHANGE = "storage_change"
    TEARDOWN = "teardown"


FLUSH_TRIGGERS = {
    ReconciliationTrigger.VISIBILITY_HIDDEN,
    ReconciliationTrigger.BLUR,
    ReconciliationTrigger.TEARDOWN,
}


class SessionLifecycleManager:
    """Decides between restoring and starting fresh, then routes triggers."""

    def __init__(
        self,
        coordinator: PersistenceCoordinator,
        lifecycle_settings: Optional[LifecycleSettings] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.coordinator = coordinator
        self.settings = lifecycle_settings or settings.lifecycle
        self.clock = clock
        self.state = LifecycleState.UNINITIALIZED
        self.restored = False
        self._subscriptions: List[Callable[[], None]] = []

    def _set_state(self, state: LifecycleState) -> None:
        logger.debug(f"Lifecycle {self.state.value} -> {state.value}")
        self.state = state

    def should_auto_restore(self, snapshot: Optional[PersistedSnapshot], at_ms: int) -> bool:
        """Check if a stored snapshot is recent enough and holds progress."""
        if snapshot is None:
            return False
        age_ms = at_ms - snapshot.last_saved_at_ms
        return age_ms <= self.settings.auto_restore_minutes * 60_000 and snapshot.has_progress()

    def initialize(self, now_ms: Optional[int] = None) -> PersistedSnapshot:
        """Restore the stored session or start a fresh one."""
        if self.state not in (LifecycleState.UNINITIALIZED, LifecycleState.CLEARED):
            logger.warning(f"Session already initialized (state: {self.state.value})")
            return self.coordinator.snapshot

        at_ms = self.clock() if now_ms is None else now_ms
        stored = self.coordinator.load_session()

        if self.should_auto_restore(stored, at_ms):
            self._set_state(LifecycleState.AUTO_RESTORING)
            self.coordinator.restore(stored)
            self.restored = True
            logger.info(
                f"Restored session {stored.session_number} saved at {stored.last_saved_at_ms} "
                f"({len(stored.progress_sets.remembered)} remembered, {len(stored.progress_sets.forgotten)} forgotten)"
            )
        else:
            self._set_state(LifecycleState.FRESH_INITIALIZED)
            snapshot = self.coordinator.start_fresh(stored)
            self.restored = False
            logger.info(f"Started fresh session {snapshot.session_number}")

        self._set_state(LifecycleState.ACTIVE)
        return self.coordinator.snapshot

    def dispatch(self, trigger: ReconciliationTrigger, key: Optional[str] = None) -> bool:
        """Handle an external trigger; returns False when it was ignored."""
        if self.state != LifecycleState.ACTIVE:
            logger.debug(f"Ignoring {trigger.value} in state {self.state.value}")
            return False
        if key is not None and key != self.coordinator.key:
            return False

        if trigger in FLUSH_TRIGGERS:
            self.coordinator.force_sync()
        else:
            self.coordinator.reconcile()
        return True

    def attach(self, notifier: ChangeNotifier) -> Callable[[], None]:
        """Reconcile whenever another writer reports a change."""
        unsubscribe = notifier.subscribe(
            self.coordinator.writer_id,
            lambda key: self.dispatch(ReconciliationTrigger.STORAGE_CHANGE, key),
        )
        self._subscriptions.append(unsubscribe)
        return unsubscribe

    def detach(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()

    def request_new_session(self) -> None:
        """Wipe the stored session; initialize starts over afterwards."""
        self.coordinator.clear_session()
        self.restored = False
        self._set_state(LifecycleState.CLEARED)
        logger.info("Session cleared on request")
