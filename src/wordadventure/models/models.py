"""Database models for durable storage."""
from sqlalchemy import BigInteger, Boolean, Column, Integer, String, Text

from wordadventure.models.base import Base, TimestampMixin


class StorageEntry(Base, TimestampMixin):
    """Key/value row backing the snapshot storage."""

    __tablename__ = "storage_entries"

    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)


class OutcomeEvent(Base, TimestampMixin):
    """Answer outcome recorded for analytics."""

    __tablename__ = "outcome_events"

    id = Column(Integer, primary_key=True)
    profile_id = Column(String, nullable=False, index=True)
    word_id = Column(Integer, nullable=False)
    correct = Column(Boolean, nullable=False)
    category = Column(String, nullable=True)
    session_number = Column(Integer, default=0)
    recorded_at_ms = Column(BigInteger, nullable=False)
