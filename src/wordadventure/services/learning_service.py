"""Learning flow: answers, progress updates, batch regeneration and saves."""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from wordadventure.errors import InvalidInputError
from wordadventure.models.progress_models import Goal, ProgressCounters, ProgressSets, ProgressSummary
from wordadventure.models.session_models import DashboardProgress, DashboardSession, SystematicSelection
from wordadventure.models.snapshot_models import FieldGroup, SavePriority
from wordadventure.models.word_models import WordHistoryEntry, WordItem, now_ms, parse_word_id
from wordadventure.services.catalog_service import WordCatalog
from wordadventure.services.dashboard_service import DashboardSessionGenerator
from wordadventure.services.history_service import WordHistoryStore
from wordadventure.services.outcome_service import NullOutcomeSink, Outcome, OutcomeSink
from wordadventure.services.persistence_service import PersistenceCoordinator
from wordadventure.services.progress_service import ProgressAggregator
from wordadventure.services.word_scheduler import SessionWordScheduler

logger = logging.getLogger(__name__)

DASHBOARD_CATEGORY = "all"


@dataclass
class AnswerResult:
    """Outcome of answering one word."""
    entry: WordHistoryEntry
    summary: ProgressSummary
    regenerated: bool
    next_word: Optional[WordItem]


class LearningService:
    """Runs a learner's session on top of the persisted snapshot."""

    def __init__(
        self,
        catalog: WordCatalog,
        coordinator: PersistenceCoordinator,
        scheduler: Optional[SessionWordScheduler] = None,
        dashboard: Optional[DashboardSessionGenerator] = None,
        aggregator: Optional[ProgressAggregator] = None,
        sink: Optional[OutcomeSink] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the service and load state from the coordinator."""
        self.catalog = catalog
        self.coordinator = coordinator
        self.clock = clock
        self.scheduler = scheduler or SessionWordScheduler(catalog, clock=clock)
        self.dashboard = dashboard or DashboardSessionGenerator(catalog)
        self.aggregator = aggregator or ProgressAggregator(clock=clock)
        self.sink = sink or NullOutcomeSink()
        self.history = WordHistoryStore(clock=clock)

        self.progress_sets = ProgressSets()
        self.counters = ProgressCounters()
        self.goals: List[Goal] = []
        self.active_category = DASHBOARD_CATEGORY
        self.session_number = 1

        self.batch: List[WordItem] = []
        self.position = 0
        self.last_selection: Optional[SystematicSelection] = None
        self.last_dashboard: Optional[DashboardSession] = None

        self.reload()
        self._unsubscribe = coordinator.on_change(self._on_snapshot_change)

    @property
    def is_dashboard(self) -> bool:
        return self.active_category == DASHBOARD_CATEGORY

    def reload(self, groups: Optional[Iterable[FieldGroup]] = None) -> None:
        """Refresh local state from the coordinator's snapshot."""
        groups = set(groups) if groups is not None else set(FieldGroup)
        snapshot = self.coordinator.snapshot
        if FieldGroup.PROGRESS in groups:
            self.progress_sets = snapshot.progress_sets
            self.counters = snapshot.progress_counters
        if FieldGroup.WORD_HISTORY in groups:
            self.history.replace(snapshot.word_history)
        if FieldGroup.GOALS in groups:
            self.goals = list(snapshot.goals)
        if FieldGroup.UI_POSITION in groups:
            self.active_category = snapshot.active_category
            self.session_number = snapshot.session_number

    def _on_snapshot_change(self, groups: Set[FieldGroup]) -> None:
        previous_category = self.active_category
        self.reload(groups)
        if FieldGroup.UI_POSITION in groups and self.active_category != previous_category:
            self.batch = []
            self.position = 0

    def close(self) -> None:
        self._unsubscribe()

    def _dashboard_progress(self) -> DashboardProgress:
        return DashboardProgress(
            words_completed=self.counters.words_completed,
            remembered=self.progress_sets.remembered,
            forgotten=self.progress_sets.forgotten,
            excluded=self.progress_sets.excluded,
            history=self.history.entries(),
        )

    def summary(self, at_ms: Optional[int] = None) -> ProgressSummary:
        return self.aggregator.summarize(self.progress_sets, self.counters, self.goals, at_ms)

    def _regenerate(self, at_ms: int) -> None:
        """Build a new batch for the active category or the dashboard."""
        if self.is_dashboard:
            self.last_dashboard = self.dashboard.generate_dashboard_session(
                self._dashboard_progress(), self.session_number
            )
            self.batch = list(self.last_dashboard.words)
        else:
            self.last_selection = self.scheduler.generate_session(
                self.active_category,
                self.history.entries(),
                self.progress_sets,
                self.summary(at_ms).to_stats(),
                self.session_number,
                now_ms=at_ms,
            )
            self.batch = list(self.last_selection.words)
        self.position = 0

    def _ui_state(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {
            "active_category": self.active_category,
            "session_number": self.session_number,
        }
        if self.last_dashboard is not None:
            state["dashboard_stage"] = self.last_dashboard.session_info.difficulty_tier
        return state

    def start_category(self, category: str) -> SystematicSelection:
        """Start learning a category."""
        at_ms = self.clock()
        self.active_category = category
        self.counters = self.aggregator.record_session_start(self.counters, at_ms)
        self._regenerate(at_ms)
        self.coordinator.queue_save({**self._ui_state(), "progress_counters": self.counters})
        return self.last_selection

    def start_dashboard(self) -> DashboardSession:
        """Start a cross-category dashboard session."""
        at_ms = self.clock()
        self.active_category = DASHBOARD_CATEGORY
        self.counters = self.aggregator.record_session_start(self.counters, at_ms)
        self._regenerate(at_ms)
        self.coordinator.queue_save({**self._ui_state(), "progress_counters": self.counters})
        return self.last_dashboard

    def current_word(self) -> Optional[WordItem]:
        """Word waiting for an answer, generating a batch when none is loaded."""
        if self.position >= len(self.batch):
            self._regenerate(self.clock())
            self.coordinator.queue_save(self._ui_state(), SavePriority.LOW)
        if not self.batch:
            return None
        return self.batch[self.position]

    def answer(self, word_id: Any, remembered: bool) -> AnswerResult:
        """Record an answer and move on to the next word."""
        at_ms = self.clock()
        word = self._find_word(word_id)
        entry = self.history.record_outcome(
            word_id, remembered, word.difficulty_tier if word else None, now_ms=at_ms
        )

        if remembered:
            self.progress_sets.mark_remembered(entry.word_id)
        else:
            self.progress_sets.mark_forgotten(entry.word_id)
        previous_completed = self.counters.words_completed
        self.counters = self.aggregator.record_activity(self.counters, at_ms)
        self._emit(entry.word_id, remembered, at_ms, word)

        if self.position < len(self.batch) and self.batch[self.position].id == entry.word_id:
            self.position += 1

        regenerated = False
        if self.is_dashboard:
            if self.position >= len(self.batch) or self.dashboard.should_regenerate(
                previous_completed, self.counters.words_completed
            ):
                self._regenerate(at_ms)
                regenerated = True
        elif self.position >= len(self.batch):
            self._regenerate(at_ms)
            regenerated = True

        partial: Dict[str, Any] = {
            "progress_sets": self.progress_sets,
            "progress_counters": self.counters,
            "word_history": self.history.entries(),
        }
        if regenerated:
            partial.update(self._ui_state())
        self.coordinator.queue_save(partial)

        next_word = self.batch[self.position] if self.position < len(self.batch) else None
        return AnswerResult(entry=entry, summary=self.summary(at_ms), regenerated=regenerated, next_word=next_word)

    def _find_word(self, word_id: Any) -> Optional[WordItem]:
        parsed = parse_word_id(word_id)
        if parsed is None:
            return None
        for word in self.batch:
            if word.id == parsed:
                return word
        for word in self.catalog.all_words():
            if word.id == parsed:
                return word
        return None

    def _emit(self, word_id: int, correct: bool, at_ms: int, word: Optional[WordItem]) -> None:
        """Report an outcome; sink failures never interrupt learning."""
        outcome = Outcome(
            profile_id=self.coordinator.profile_id,
            word_id=word_id,
            correct=correct,
            recorded_at_ms=at_ms,
            category=word.category if word else None,
            session_number=self.session_number,
        )
        try:
            self.sink.emit(outcome)
        except Exception as e:
            logger.warning(f"Failed to emit outcome for word {word_id}: {e}")

    def exclude_word(self, word_id: Any) -> None:
        """Stop scheduling a word."""
        parsed = parse_word_id(word_id)
        if parsed is None:
            raise InvalidInputError(f"Invalid word id: {word_id!r}")
        self.progress_sets.exclude(parsed)
        answered = [word for word in self.batch[: self.position] if word.id != parsed]
        upcoming = [word for word in self.batch[self.position:] if word.id != parsed]
        self.batch = answered + upcoming
        self.position = len(answered)
        self.coordinator.queue_save({"progress_sets": self.progress_sets})

    def include_word(self, word_id: Any) -> None:
        """Return an excluded word to scheduling."""
        parsed = parse_word_id(word_id)
        if parsed is None:
            raise InvalidInputError(f"Invalid word id: {word_id!r}")
        self.progress_sets.include(parsed)
        self.coordinator.queue_save({"progress_sets": self.progress_sets})

    def set_goals(self, goals: Iterable[Goal]) -> None:
        """Replace the learner's goals."""
        self.goals = list(goals)
        self.coordinator.queue_save({"goals": self.goals}, SavePriority.LOW)
