"""Debounced, priority-aware snapshot persistence with field-group reconciliation."""
import asyncio
import copy
import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from wordadventure.config import PersistenceSettings, settings
from wordadventure.errors import (
    CorruptSnapshotError,
    InvalidInputError,
    StorageQuotaExceededError,
    StorageReadError,
    StorageWriteError,
)
from wordadventure.models.progress_models import ProgressCounters, ProgressSets
from wordadventure.models.snapshot_models import (
    FIELD_TO_GROUP,
    FieldGroup,
    PersistedSnapshot,
    SavePriority,
    deserialize_snapshot,
    serialize_snapshot,
)
from wordadventure.models.word_models import DifficultyTier, now_ms
from wordadventure.monitoring import (
    backup_restores,
    backup_writes,
    corrupt_snapshots,
    reconciliations,
    snapshot_write_duration,
    snapshot_write_failures,
    snapshot_writes,
    superseded_saves,
)
from wordadventure.services.storage_service import ChangeNotifier, StorageBackend

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Set[FieldGroup]], None]

BACKUP_SUFFIX = ".backup"

_FIELD_TYPES: Dict[str, type] = {
    "active_category": str,
    "session_number": int,
    "dashboard_stage": DifficultyTier,
    "progress_sets": ProgressSets,
    "progress_counters": ProgressCounters,
    "word_history": dict,
    "goals": list,
}


def _coerce_field(name: str, value: Any) -> Any:
    """Check the type of a partial state field, converting tier names."""
    expected = _FIELD_TYPES[name]
    if expected is DifficultyTier and isinstance(value, str):
        try:
            return DifficultyTier(value)
        except ValueError as e:
            raise InvalidInputError(f"Invalid dashboard stage: {value!r}") from e
    if expected is int and isinstance(value, bool):
        raise InvalidInputError(f"Field {name} expects an integer")
    if not isinstance(value, expected):
        raise InvalidInputError(f"Field {name} expects {expected.__name__}, got {type(value).__name__}")
    return copy.deepcopy(value)


class PersistenceCoordinator:
    """Owns the in-memory snapshot of one writer and its storage round trips."""

    def __init__(
        self,
        storage: StorageBackend,
        profile_id: str = "default",
        notifier: Optional[ChangeNotifier] = None,
        writer_id: Optional[str] = None,
        persistence_settings: Optional[PersistenceSettings] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the coordinator for one learner profile."""
        self.storage = storage
        self.notifier = notifier
        self.settings = persistence_settings or settings.persistence
        self.clock = clock
        self.profile_id = profile_id
        self.writer_id = writer_id or uuid.uuid4().hex
        self.key = f"{self.settings.storage_key_prefix}.{profile_id}"
        self.backup_key = f"{self.key}{BACKUP_SUFFIX}"

        self._snapshot = PersistedSnapshot()
        self._dirty: Set[FieldGroup] = set()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending_priority: Optional[SavePriority] = None
        self._retry_count = 0
        self._last_written_ms = 0
        self._remote_saved_ms = 0
        self._listeners: List[ChangeListener] = []

    @property
    def snapshot(self) -> PersistedSnapshot:
        """Copy of the current in-memory snapshot."""
        return self._snapshot.copy()

    @property
    def last_saved_at_ms(self) -> int:
        return self._snapshot.last_saved_at_ms

    @property
    def pending_groups(self) -> Set[FieldGroup]:
        return set(self._dirty)

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener for groups adopted from other writers."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def queue_save(self, partial_state: Mapping[str, Any], priority: SavePriority = SavePriority.MEDIUM) -> None:
        """Merge changed fields into the snapshot and schedule a write."""
        unknown = [name for name in partial_state if name not in FIELD_TO_GROUP]
        if unknown:
            raise InvalidInputError(f"Unknown snapshot fields: {', '.join(sorted(unknown))}")
        values = {name: _coerce_field(name, value) for name, value in partial_state.items()}
        if not values:
            return

        groups = {FIELD_TO_GROUP[name] for name in values}
        for name, value in values.items():
            setattr(self._snapshot, name, value)
        for group in groups:
            self._snapshot.field_group_stamps[group] = max(self.clock(), self._snapshot.stamp(group) + 1)
        self._dirty.update(groups)
        self._retry_count = 0

        if priority == SavePriority.HIGH:
            if self._timer is not None:
                superseded_saves.inc()
            if not self.force_sync():
                self._schedule(SavePriority.MEDIUM)
            return
        self._schedule(priority)

    def _schedule(self, priority: SavePriority) -> None:
        """(Re)start the debounce timer for pending groups."""
        if self._pending_priority is None or priority == SavePriority.MEDIUM:
            self._pending_priority = priority
        delay = self.settings.debounce_seconds
        if self._pending_priority == SavePriority.LOW:
            delay *= self.settings.low_priority_factor

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, {self.key} waits for an explicit sync")
            return

        self._cancel_timer()
        self._timer = loop.call_later(delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        priority = self._pending_priority or SavePriority.MEDIUM
        if self._write():
            return
        if self._retry_count < self.settings.max_retries:
            self._retry_count += 1
            logger.info(f"Retrying write of {self.key} ({self._retry_count}/{self.settings.max_retries})")
            self._schedule(priority)
        else:
            logger.error(
                f"Giving up automatic writes of {self.key} after {self._retry_count} retries, "
                f"pending groups: {sorted(group.value for group in self._dirty)}"
            )

    def force_sync(self) -> bool:
        """Write pending groups now; returns False when the write failed."""
        self._cancel_timer()
        return self._write()

    def _write(self) -> bool:
        if not self._dirty:
            self._pending_priority = None
            return True

        # Pick up groups other writers changed since our last look
        self.reconcile()
        if not self._dirty:
            self._pending_priority = None
            return True

        saved_at = max(self.clock(), self._last_written_ms + 1, self._remote_saved_ms + 1)
        candidate = self._snapshot.copy()
        candidate.last_saved_at_ms = saved_at
        payload: Optional[str] = None
        try:
            with snapshot_write_duration.time():
                payload = serialize_snapshot(candidate)
                size = len(payload.encode("utf-8"))
                if size > self.settings.max_snapshot_bytes:
                    raise StorageQuotaExceededError(
                        f"Snapshot is {size} bytes, limit is {self.settings.max_snapshot_bytes}"
                    )
                self.storage.set(self.key, payload)
        except (StorageWriteError, TypeError, ValueError) as e:
            snapshot_write_failures.labels(error_type=type(e).__name__).inc()
            logger.error(f"Failed to write snapshot {self.key}: {e}")
            # Keep the latest state readable while the primary write is retried
            if payload is not None and not isinstance(e, StorageQuotaExceededError):
                self._write_backup(payload)
            return False

        self._write_backup(payload)
        self._snapshot.last_saved_at_ms = saved_at
        self._last_written_ms = saved_at
        self._remote_saved_ms = saved_at
        written = sorted(group.value for group in self._dirty)
        self._dirty.clear()
        self._pending_priority = None
        self._retry_count = 0
        snapshot_writes.inc()
        logger.debug(f"Wrote snapshot {self.key} at {saved_at} (groups: {', '.join(written)})")

        if self.notifier is not None:
            self.notifier.publish(self.key, self.writer_id)
        return True

    def _write_backup(self, payload: str) -> bool:
        """Mirror a payload to the backup key; failures only log."""
        try:
            self.storage.set(self.backup_key, payload)
        except StorageWriteError as e:
            backup_writes.labels(outcome="failed").inc()
            logger.warning(f"Failed to write backup snapshot {self.backup_key}: {e}")
            return False
        backup_writes.labels(outcome="written").inc()
        return True

    def _read_key(self, key: str) -> Optional[PersistedSnapshot]:
        try:
            payload = self.storage.get(key)
        except StorageReadError as e:
            logger.error(f"Failed to read snapshot {key}: {e}")
            return None
        if payload is None:
            return None
        try:
            return deserialize_snapshot(payload)
        except CorruptSnapshotError as e:
            corrupt_snapshots.inc()
            logger.warning(f"Ignoring corrupt snapshot {key}: {e}")
            return None

    def _read_stored(self) -> Optional[PersistedSnapshot]:
        """Newest readable snapshot of the primary and backup keys, None when neither loads."""
        primary = self._read_key(self.key)
        backup = self._read_key(self.backup_key)
        if backup is not None and (primary is None or backup.last_saved_at_ms > primary.last_saved_at_ms):
            backup_restores.inc()
            logger.info(f"Using backup snapshot {self.backup_key} saved at {backup.last_saved_at_ms}")
            return backup
        return primary

    def load_session(self) -> Optional[PersistedSnapshot]:
        """Load the stored snapshot without adopting it."""
        return self._read_stored()

    def has_newer_remote(self) -> bool:
        """Check if storage holds a snapshot newer than the one in memory."""
        stored = self._read_stored()
        return stored is not None and stored.last_saved_at_ms > self._snapshot.last_saved_at_ms

    def reconcile(self) -> Set[FieldGroup]:
        """Adopt field groups that another writer modified more recently."""
        stored = self._read_stored()
        if stored is None:
            reconciliations.labels(outcome="missing").inc()
            return set()
        if stored.last_saved_at_ms <= self._snapshot.last_saved_at_ms:
            reconciliations.labels(outcome="up_to_date").inc()
            return set()

        adopted: Set[FieldGroup] = set()
        for group in FieldGroup:
            if stored.stamp(group) > self._snapshot.stamp(group):
                self._snapshot.adopt_group(stored, group)
                self._dirty.discard(group)
                adopted.add(group)
        self._snapshot.last_saved_at_ms = stored.last_saved_at_ms
        self._remote_saved_ms = max(self._remote_saved_ms, stored.last_saved_at_ms)

        reconciliations.labels(outcome="merged" if adopted else "unchanged").inc()
        if adopted:
            logger.info(
                f"Adopted {', '.join(sorted(group.value for group in adopted))} "
                f"from snapshot saved at {stored.last_saved_at_ms}"
            )
            self._notify(adopted)
        return adopted

    def _notify(self, groups: Set[FieldGroup]) -> None:
        for listener in list(self._listeners):
            try:
                listener(set(groups))
            except Exception as e:
                logger.error(f"Snapshot change listener failed: {e}")

    def restore(self, snapshot: PersistedSnapshot) -> None:
        """Adopt a loaded snapshot as the in-memory state."""
        self._cancel_timer()
        self._snapshot = snapshot.copy()
        self._dirty.clear()
        self._pending_priority = None
        self._remote_saved_ms = max(self._remote_saved_ms, snapshot.last_saved_at_ms)
        self._notify(set(FieldGroup))

    def start_fresh(self, previous: Optional[PersistedSnapshot] = None) -> PersistedSnapshot:
        """Begin a new session, keeping durable groups of a previous snapshot."""
        base = previous.copy() if previous is not None else PersistedSnapshot()
        self.restore(base)
        self.queue_save(
            {
                "active_category": "all",
                "session_number": base.session_number + 1 if previous is not None else 1,
                "dashboard_stage": DifficultyTier.EASY,
            },
            SavePriority.HIGH,
        )
        return self.snapshot

    def clear_session(self) -> None:
        """Erase the stored snapshot and reset in-memory state."""
        self._cancel_timer()
        for key in (self.key, self.backup_key):
            try:
                self.storage.remove(key)
            except StorageWriteError as e:
                snapshot_write_failures.labels(error_type=type(e).__name__).inc()
                logger.error(f"Failed to remove snapshot {key}: {e}")
        self._snapshot = PersistedSnapshot()
        self._dirty.clear()
        self._pending_priority = None
        self._retry_count = 0
        self._remote_saved_ms = 0
        logger.info(f"Cleared session {self.key}")
        self._notify(set(FieldGroup))
        if self.notifier is not None:
            self.notifier.publish(self.key, self.writer_id)

    def close(self) -> None:
        """Flush pending groups and stop the debounce timer."""
        if self._dirty:
            self.force_sync()
        self._cancel_timer()
