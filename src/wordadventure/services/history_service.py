"""Per-word exposure and outcome ledger."""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from wordadventure.config import SchedulerSettings, settings
from wordadventure.errors import InvalidInputError
from wordadventure.models.word_models import DifficultyTier, WordHistoryEntry, now_ms, parse_word_id
from wordadventure.monitoring import outcomes_recorded

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000
CONSECUTIVE_WEIGHT = 0.6
ACCURACY_WEIGHT = 0.4


def calculate_mastery(consecutive_correct: int, accuracy: float) -> float:
    """Mastery from the current correct run and overall accuracy."""
    streak_part = 1 - 0.5 ** consecutive_correct
    return max(0.0, min(1.0, CONSECUTIVE_WEIGHT * streak_part + ACCURACY_WEIGHT * accuracy))


class WordHistoryStore:
    """Keeps one history entry per word the learner has seen."""

    def __init__(
        self,
        entries: Optional[Iterable[WordHistoryEntry]] = None,
        scheduler_settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the store with existing entries."""
        self.settings = scheduler_settings or settings.scheduler
        self.clock = clock
        self._entries: Dict[int, WordHistoryEntry] = {}
        for entry in entries or ():
            self._entries[entry.word_id] = entry.copy()

    def record_outcome(
        self,
        word_id: Any,
        correct: bool,
        difficulty_tier: Optional[DifficultyTier] = None,
        now_ms: Optional[int] = None,
    ) -> WordHistoryEntry:
        """Record an answer and return the updated entry."""
        parsed_id = parse_word_id(word_id)
        if parsed_id is None:
            raise InvalidInputError(f"Invalid word id: {word_id!r}")
        if not isinstance(correct, bool):
            raise InvalidInputError(f"Outcome must be a boolean, got {correct!r}")

        at_ms = self.clock() if now_ms is None else now_ms
        entry = self._entries.get(parsed_id)
        if entry is None:
            entry = WordHistoryEntry(word_id=parsed_id)
            self._entries[parsed_id] = entry

        entry.times_seen += 1
        if correct:
            entry.times_correct += 1
            entry.consecutive_correct += 1
        else:
            entry.consecutive_correct = 0
        entry.last_seen_at_ms = at_ms
        entry.mastery_score = calculate_mastery(entry.consecutive_correct, entry.accuracy)
        entry.next_eligible_at_ms = at_ms + self.cooldown_ms(entry, correct, difficulty_tier)

        outcomes_recorded.labels(correct=str(correct).lower()).inc()
        logger.debug(
            f"Recorded {'correct' if correct else 'wrong'} answer for word {parsed_id}: "
            f"seen={entry.times_seen}, mastery={entry.mastery_score:.2f}"
        )
        return entry.copy()

    def cooldown_ms(
        self,
        entry: WordHistoryEntry,
        correct: bool,
        difficulty_tier: Optional[DifficultyTier] = None,
    ) -> int:
        """Time before a word becomes eligible for review again."""
        tier = difficulty_tier or DifficultyTier.EASY
        hours = self.settings.min_cooldown_hours * self.settings.difficulty_multipliers.get(tier.value, 1.0)

        if correct:
            hours *= 1 + 0.5 * entry.consecutive_correct + entry.accuracy
        else:
            hours *= 0.5

        # Words seen often need less frequent review
        if entry.times_seen > 5:
            hours *= 1.5

        hours = max(self.settings.min_cooldown_hours, min(self.settings.max_cooldown_hours, hours))
        return int(hours * HOUR_MS)

    def get_entry(self, word_id: int) -> WordHistoryEntry:
        """Get a copy of the entry for a word, a zero entry when unknown."""
        entry = self._entries.get(word_id)
        if entry is None:
            return WordHistoryEntry(word_id=word_id)
        return entry.copy()

    def has_entry(self, word_id: int) -> bool:
        return word_id in self._entries

    def entries(self) -> Dict[int, WordHistoryEntry]:
        """Copies of all entries keyed by word id."""
        return {word_id: entry.copy() for word_id, entry in self._entries.items()}

    def replace(self, entries: Dict[int, WordHistoryEntry]) -> None:
        """Replace the whole ledger, used when a newer snapshot is adopted."""
        self._entries = {word_id: entry.copy() for word_id, entry in entries.items()}

    def to_data(self) -> List[Dict[str, Any]]:
        """Convert to serializable data for storage."""
        return [entry.to_data() for _, entry in sorted(self._entries.items())]

    @classmethod
    def from_data(cls, data: Iterable[Dict[str, Any]], **kwargs) -> "WordHistoryStore":
        """Create a store from stored data."""
        return cls(entries=[WordHistoryEntry.from_data(item) for item in data], **kwargs)

    def __len__(self) -> int:
        return len(self._entries)
