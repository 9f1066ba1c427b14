"""Best-effort sinks for answer outcome events."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordadventure.models.models import OutcomeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Answer outcome as reported to analytics."""
    profile_id: str
    word_id: int
    correct: bool
    recorded_at_ms: int
    category: Optional[str] = None
    session_number: int = 0


class OutcomeSink(Protocol):
    """Receives outcome events; failures never reach the learning flow."""

    def emit(self, outcome: Outcome) -> None:
        ...


class NullOutcomeSink:
    """Sink that drops every event."""

    def emit(self, outcome: Outcome) -> None:
        return None


class SqlOutcomeSink:
    """Stores outcome events in the outcome_events table."""

    def __init__(self, db: Session):
        """Initialize the sink with a database session."""
        self.db = db

    def emit(self, outcome: Outcome) -> None:
        """Store an outcome event."""
        event = OutcomeEvent(
            profile_id=outcome.profile_id,
            word_id=outcome.word_id,
            correct=outcome.correct,
            category=outcome.category,
            session_number=outcome.session_number,
            recorded_at_ms=outcome.recorded_at_ms,
        )
        try:
            self.db.add(event)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error storing outcome for word {outcome.word_id}: {e}")
            raise

    def get_outcomes(self, profile_id: str, limit: int = 100) -> List[OutcomeEvent]:
        """Get the most recent outcomes of a profile."""
        return (
            self.db.query(OutcomeEvent)
            .filter(OutcomeEvent.profile_id == profile_id)
            .order_by(OutcomeEvent.recorded_at_ms.desc(), OutcomeEvent.id.desc())
            .limit(limit)
            .all()
        )
