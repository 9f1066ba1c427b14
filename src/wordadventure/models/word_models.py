"""Models for catalog words and their learning history."""
import math
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)


class DifficultyTier(str, Enum):
    """Difficulty tier of a word or of a session."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]


_TIER_RANKS = {DifficultyTier.EASY: 0, DifficultyTier.MEDIUM: 1, DifficultyTier.HARD: 2}


@dataclass(frozen=True)
class WordItem:
    """Immutable catalog entry."""
    id: int
    text: str
    category: str
    difficulty_tier: DifficultyTier = DifficultyTier.EASY

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "WordItem":
        """Create a word from a catalog record."""
        return cls(
            id=int(data["id"]),
            text=str(data.get("text") or data.get("word") or ""),
            category=str(data["category"]),
            difficulty_tier=DifficultyTier(data.get("difficulty_tier") or data.get("difficulty") or "easy"),
        )


@dataclass
class WordHistoryEntry:
    """Exposure and outcome ledger for a single word."""
    word_id: int
    times_seen: int = 0
    times_correct: int = 0
    consecutive_correct: int = 0
    last_seen_at_ms: int = 0
    mastery_score: float = 0.0
    next_eligible_at_ms: int = 0

    @property
    def accuracy(self) -> float:
        """Share of correct answers, 0 for an unseen word."""
        if self.times_seen == 0:
            return 0.0
        return self.times_correct / self.times_seen

    def mastery_at(self, at_ms: int, half_life_hours: float) -> float:
        """Mastery score decayed by the time elapsed since the word was last seen."""
        if self.times_seen == 0:
            return 0.0
        elapsed_hours = max(0, at_ms - self.last_seen_at_ms) / 3_600_000
        decay = 0.5 ** (elapsed_hours / half_life_hours)
        return max(0.0, min(1.0, self.mastery_score * decay))

    def is_eligible(self, at_ms: int) -> bool:
        """Check if the review cooldown has passed."""
        return at_ms >= self.next_eligible_at_ms

    def to_data(self) -> Dict[str, Any]:
        """Convert to serializable data for storage."""
        return {
            "wordId": self.word_id,
            "timesSeen": self.times_seen,
            "timesCorrect": self.times_correct,
            "consecutiveCorrect": self.consecutive_correct,
            "lastSeenAtMs": self.last_seen_at_ms,
            "masteryScore": self.mastery_score,
            "nextEligibleAtMs": self.next_eligible_at_ms,
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "WordHistoryEntry":
        """Create an entry from stored data."""
        return cls(
            word_id=int(data["wordId"]),
            times_seen=int(data.get("timesSeen", 0)),
            times_correct=int(data.get("timesCorrect", 0)),
            consecutive_correct=int(data.get("consecutiveCorrect", 0)),
            last_seen_at_ms=int(data.get("lastSeenAtMs", 0)),
            mastery_score=_finite(data.get("masteryScore", 0.0)),
            next_eligible_at_ms=int(data.get("nextEligibleAtMs", 0)),
        )

    def copy(self) -> "WordHistoryEntry":
        return WordHistoryEntry(**asdict(self))


def _finite(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Non-finite number: {value!r}")
    return number


def parse_word_id(value: Any) -> Optional[int]:
    """Coerce a word id to int, None when it is not a usable id."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
    return None
