"""Tests for storage backends and change notification."""
from typing import Generator
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from wordadventure.errors import StorageQuotaExceededError, StorageReadError, StorageWriteError
from wordadventure.models.base import init_db
from wordadventure.models.models import StorageEntry
from wordadventure.services.storage_service import InMemoryStorage, LocalBroadcastHub, SqlStorageBackend


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Create a session factory bound to a fresh database file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'storage.db'}")
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def sql_storage(session_factory) -> SqlStorageBackend:
    return SqlStorageBackend(session_factory, max_value_bytes=64)


def test_in_memory_storage_basic_operations() -> None:
    """Test get, set and remove."""
    storage = InMemoryStorage()
    assert storage.get("a") is None
    storage.set("a", "1")
    storage.set("a", "2")
    assert storage.get("a") == "2"
    storage.remove("a")
    storage.remove("a")
    assert storage.get("a") is None


def test_in_memory_storage_quota() -> None:
    """Test that oversized values are rejected and nothing is stored."""
    storage = InMemoryStorage(max_value_bytes=4)
    with pytest.raises(StorageQuotaExceededError):
        storage.set("a", "12345")
    assert storage.get("a") is None


def test_sql_storage_round_trip(sql_storage: SqlStorageBackend, session_factory) -> None:
    """Test inserting, updating and removing rows."""
    sql_storage.set("profile.1", "first")
    sql_storage.set("profile.1", "second")
    assert sql_storage.get("profile.1") == "second"

    db: Session = session_factory()
    try:
        assert db.query(StorageEntry).count() == 1
    finally:
        db.close()

    sql_storage.remove("profile.1")
    assert sql_storage.get("profile.1") is None


def test_sql_storage_quota(sql_storage: SqlStorageBackend) -> None:
    """Test the value size limit."""
    with pytest.raises(StorageQuotaExceededError):
        sql_storage.set("profile.1", "x" * 65)
    assert sql_storage.get("profile.1") is None


def test_sql_storage_shared_between_backends(session_factory) -> None:
    """Test that two backends on one database see each other's writes."""
    first = SqlStorageBackend(session_factory)
    second = SqlStorageBackend(session_factory)
    first.set("k", "v")
    assert second.get("k") == "v"


def test_sql_storage_wraps_database_errors() -> None:
    """Test that SQLAlchemy errors become storage errors and are rolled back."""
    db = Mock(spec=Session)
    db.query.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
    storage = SqlStorageBackend(lambda: db)

    with pytest.raises(StorageWriteError):
        storage.set("k", "v")
    db.rollback.assert_called_once()
    db.close.assert_called()

    with pytest.raises(StorageReadError):
        storage.get("k")


def test_hub_skips_publisher() -> None:
    """Test that a writer does not receive its own notification."""
    hub = LocalBroadcastHub()
    own = Mock()
    other = Mock()
    hub.subscribe("tab-a", own)
    hub.subscribe("tab-b", other)

    hub.publish("key", "tab-a")

    own.assert_not_called()
    other.assert_called_once_with("key")


def test_hub_unsubscribe() -> None:
    """Test removing a subscription."""
    hub = LocalBroadcastHub()
    callback = Mock()
    unsubscribe = hub.subscribe("tab-b", callback)
    unsubscribe()
    unsubscribe()

    hub.publish("key", "tab-a")
    callback.assert_not_called()
    assert hub.subscriber_count() == 0


def test_hub_isolates_failing_subscriber() -> None:
    """Test that one failing subscriber does not stop the others."""
    hub = LocalBroadcastHub()
    failing = Mock(side_effect=RuntimeError("boom"))
    healthy = Mock()
    hub.subscribe("tab-b", failing)
    hub.subscribe("tab-c", healthy)

    hub.publish("key", "tab-a")
    healthy.assert_called_once_with("key")
