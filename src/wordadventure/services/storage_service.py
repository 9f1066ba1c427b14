"""Storage backends and cross-writer change notification."""
import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordadventure.errors import StorageQuotaExceededError, StorageReadError, StorageWriteError
from wordadventure.models.base import SessionLocal
from wordadventure.models.models import StorageEntry

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str], None]


class StorageBackend(Protocol):
    """Key/value storage holding serialized snapshots."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class ChangeNotifier(Protocol):
    """Delivers change notifications between writers sharing a storage."""

    def publish(self, key: str, writer_id: str) -> None:
        ...

    def subscribe(self, writer_id: str, callback: ChangeCallback) -> Callable[[], None]:
        ...


def _check_quota(key: str, value: str, max_bytes: Optional[int]) -> None:
    if max_bytes is None:
        return
    size = len(value.encode("utf-8"))
    if size > max_bytes:
        raise StorageQuotaExceededError(f"Value for {key} is {size} bytes, quota is {max_bytes}")


class InMemoryStorage:
    """Storage kept in a dict, shared by writers of one process."""

    def __init__(self, max_value_bytes: Optional[int] = None):
        self.max_value_bytes = max_value_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        _check_quota(key, value, self.max_value_bytes)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class SqlStorageBackend:
    """Storage in the storage_entries table, shared by processes using one database."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        max_value_bytes: Optional[int] = None,
    ):
        """Initialize the backend with a session factory."""
        self.session_factory = session_factory
        self.max_value_bytes = max_value_bytes

    def get(self, key: str) -> Optional[str]:
        """Get the stored value for a key."""
        db = self.session_factory()
        try:
            entry = db.query(StorageEntry).filter(StorageEntry.key == key).first()
            return entry.value if entry else None
        except SQLAlchemyError as e:
            logger.error(f"Error reading storage key {key}: {e}")
            raise StorageReadError(str(e)) from e
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        """Insert or update the value for a key."""
        _check_quota(key, value, self.max_value_bytes)
        db = self.session_factory()
        try:
            entry = db.query(StorageEntry).filter(StorageEntry.key == key).first()
            if entry:
                entry.value = value
            else:
                db.add(StorageEntry(key=key, value=value))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error writing storage key {key}: {e}")
            raise StorageWriteError(str(e)) from e
        finally:
            db.close()

    def remove(self, key: str) -> None:
        """Delete a key if present."""
        db = self.session_factory()
        try:
            db.query(StorageEntry).filter(StorageEntry.key == key).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error removing storage key {key}: {e}")
            raise StorageWriteError(str(e)) from e
        finally:
            db.close()


class LocalBroadcastHub:
    """In-process change notifier; publishers never hear their own changes."""

    def __init__(self):
        self._subscribers: List[Tuple[str, ChangeCallback]] = []

    def publish(self, key: str, writer_id: str) -> None:
        """Notify every other writer that a key changed."""
        for subscriber_id, callback in list(self._subscribers):
            if subscriber_id == writer_id:
                continue
            try:
                callback(key)
            except Exception as e:
                logger.error(f"Change subscriber {subscriber_id} failed for {key}: {e}")

    def subscribe(self, writer_id: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback and return a function removing it."""
        subscription = (writer_id, callback)
        self._subscribers.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

        return unsubscribe

    def subscriber_count(self) -> int:
        return len(self._subscribers)
