"""Models for learner progress."""
import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


class ProgressSets:
    """Remembered, forgotten and excluded word ids.

    A word is never remembered and forgotten at the same time: every move
    between the two sets happens inside a single method call.
    """

    def __init__(
        self,
        remembered: Optional[Iterable[int]] = None,
        forgotten: Optional[Iterable[int]] = None,
        excluded: Optional[Iterable[int]] = None,
    ):
        self._remembered: Set[int] = set(remembered or ())
        self._forgotten: Set[int] = set(forgotten or ()) - self._remembered
        self._excluded: Set[int] = set(excluded or ())
        overlap = set(forgotten or ()) & self._remembered
        if overlap:
            logger.warning(f"Dropped {len(overlap)} ids present in both remembered and forgotten")

    @property
    def remembered(self) -> frozenset:
        return frozenset(self._remembered)

    @property
    def forgotten(self) -> frozenset:
        return frozenset(self._forgotten)

    @property
    def excluded(self) -> frozenset:
        return frozenset(self._excluded)

    def mark_remembered(self, word_id: int) -> None:
        """Move a word into the remembered set."""
        self._forgotten.discard(word_id)
        self._remembered.add(word_id)

    def mark_forgotten(self, word_id: int) -> None:
        """Move a word into the forgotten set."""
        self._remembered.discard(word_id)
        self._forgotten.add(word_id)

    def exclude(self, word_id: int) -> None:
        """Exclude a word from scheduling."""
        self._excluded.add(word_id)

    def include(self, word_id: int) -> None:
        """Return an excluded word to scheduling."""
        self._excluded.discard(word_id)

    def is_seen(self, word_id: int) -> bool:
        return word_id in self._remembered or word_id in self._forgotten

    def copy(self) -> "ProgressSets":
        return ProgressSets(self._remembered, self._forgotten, self._excluded)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProgressSets):
            return NotImplemented
        return (
            self._remembered == other._remembered
            and self._forgotten == other._forgotten
            and self._excluded == other._excluded
        )

    def __repr__(self) -> str:
        return (
            f"ProgressSets(remembered={len(self._remembered)}, "
            f"forgotten={len(self._forgotten)}, excluded={len(self._excluded)})"
        )


@dataclass
class ProgressCounters:
    """Cumulative and windowed activity counters."""
    words_completed: int = 0
    daily_session_count: int = 0
    day_key: Optional[str] = None
    daily_words: int = 0
    week_key: Optional[str] = None
    weekly_words: int = 0
    month_key: Optional[str] = None
    monthly_words: int = 0
    streak: int = 0
    last_active_date: Optional[str] = None  # ISO date

    def to_data(self) -> Dict[str, Any]:
        """Convert to serializable data for storage."""
        return {
            "wordsCompleted": self.words_completed,
            "dailySessionCount": self.daily_session_count,
            "dayKey": self.day_key,
            "dailyWords": self.daily_words,
            "weekKey": self.week_key,
            "weeklyWords": self.weekly_words,
            "monthKey": self.month_key,
            "monthlyWords": self.monthly_words,
            "streak": self.streak,
            "lastActiveDate": self.last_active_date,
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "ProgressCounters":
        """Create counters from stored data."""
        return cls(
            words_completed=int(data.get("wordsCompleted", 0)),
            daily_session_count=int(data.get("dailySessionCount", 0)),
            day_key=data.get("dayKey"),
            daily_words=int(data.get("dailyWords", 0)),
            week_key=data.get("weekKey"),
            weekly_words=int(data.get("weeklyWords", 0)),
            month_key=data.get("monthKey"),
            monthly_words=int(data.get("monthlyWords", 0)),
            streak=int(data.get("streak", 0)),
            last_active_date=_iso_date(data.get("lastActiveDate")),
        )


def parse_active_date(value: Any) -> Optional[date]:
    """Parse a stored last active date, None when missing or invalid."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid last active date {value!r}")
        return None


def _iso_date(value: Any) -> Optional[str]:
    parsed = parse_active_date(value)
    return parsed.isoformat() if parsed else None


class GoalType(str, Enum):
    """Goal window."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Goal:
    """Learning goal owned by the settings collaborator."""
    type: GoalType
    target: int
    is_active: bool = True
    goal_id: Optional[str] = None
    title: Optional[str] = None

    def to_data(self) -> Dict[str, Any]:
        """Convert to serializable data for storage."""
        data: Dict[str, Any] = {"type": self.type.value, "target": self.target, "isActive": self.is_active}
        if self.goal_id is not None:
            data["id"] = self.goal_id
        if self.title is not None:
            data["title"] = self.title
        return data

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "Goal":
        """Create a goal from stored data."""
        return cls(
            type=GoalType(data["type"]),
            target=int(data["target"]),
            is_active=bool(data.get("isActive", True)),
            goal_id=data.get("id"),
            title=data.get("title"),
        )


@dataclass(frozen=True)
class GoalProgress:
    """Progress towards one goal."""
    goal: Goal
    current: int
    ratio: float  # clamped to [0, 1] for display

    @property
    def is_complete(self) -> bool:
        return self.current >= self.goal.target


@dataclass
class AggregateStats:
    """Aggregate learner figures the scheduler consumes."""
    words_completed: int = 0
    accuracy: int = 0
    streak: int = 0


@dataclass
class ProgressSummary:
    """Derived progress figures for dashboards."""
    accuracy: int
    remembered_count: int
    forgotten_count: int
    words_completed: int
    daily_session_count: int
    streak: int
    goals: List[GoalProgress] = field(default_factory=list)

    def to_stats(self) -> AggregateStats:
        return AggregateStats(
            words_completed=self.words_completed,
            accuracy=self.accuracy,
            streak=self.streak,
        )
