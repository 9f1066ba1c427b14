"""Adaptive word selection for category sessions."""
import logging
import random
from typing import Callable, Iterable, List, Mapping, Optional, Set

from wordadventure.config import SchedulerSettings, settings
from wordadventure.errors import SchedulerError
from wordadventure.models.progress_models import AggregateStats, ProgressSets
from wordadventure.models.session_models import SessionInfo, SessionStrategy, SystematicSelection
from wordadventure.models.word_models import DifficultyTier, WordHistoryEntry, WordItem, now_ms
from wordadventure.monitoring import degraded_selections, selections
from wordadventure.services.catalog_service import WordCatalog

logger = logging.getLogger(__name__)


def difficulty_tier_for(words_completed: int, scheduler_settings: Optional[SchedulerSettings] = None) -> DifficultyTier:
    """Session difficulty tier for the number of completed words."""
    config = scheduler_settings or settings.scheduler
    if words_completed < config.easy_threshold:
        return DifficultyTier.EASY
    if words_completed < config.medium_threshold:
        return DifficultyTier.MEDIUM
    return DifficultyTier.HARD


def strategy_for(new_count: int, review_count: int) -> SessionStrategy:
    if review_count == 0:
        return SessionStrategy.FRESH_EXPLORATION
    if review_count >= new_count:
        return SessionStrategy.TARGETED_REVIEW
    return SessionStrategy.MIXED_REINFORCEMENT


class SessionWordScheduler:
    """Chooses the next batch of words for a category."""

    def __init__(
        self,
        catalog: WordCatalog,
        scheduler_settings: Optional[SchedulerSettings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the scheduler with a word catalog."""
        self.catalog = catalog
        self.settings = scheduler_settings or settings.scheduler
        self.rng = rng or random.Random()
        self.clock = clock

    def generate_session(
        self,
        category: str,
        history: Mapping[int, WordHistoryEntry],
        progress_sets: ProgressSets,
        aggregate_stats: AggregateStats,
        session_number: int,
        now_ms: Optional[int] = None,
    ) -> SystematicSelection:
        """Generate the next batch for a category; never raises."""
        at_ms = self.clock() if now_ms is None else now_ms
        try:
            selection = self._select(category, history, progress_sets, aggregate_stats, at_ms)
        except Exception as e:
            logger.warning(
                f"Word selection for category {category!r} (session {session_number}) failed: {e}. "
                f"Using random fallback",
                exc_info=not isinstance(e, SchedulerError),
            )
            return self._fallback(progress_sets, aggregate_stats)

        selections.labels(source="category", strategy=selection.session_info.strategy.value).inc()
        logger.info(
            f"Session {session_number} for {category!r}: {selection.session_info.new_word_count} new, "
            f"{selection.session_info.review_word_count} review, "
            f"exhaustion {selection.session_info.exhaustion_level:.2f}"
        )
        return selection

    def _select(
        self,
        category: str,
        history: Mapping[int, WordHistoryEntry],
        progress_sets: ProgressSets,
        aggregate_stats: AggregateStats,
        at_ms: int,
    ) -> SystematicSelection:
        pool = self.catalog.get_words_by_category(category)
        excluded = progress_sets.excluded
        forgotten = progress_sets.forgotten
        selectable = [word for word in pool if word.id not in excluded]
        if not selectable:
            raise SchedulerError(f"No selectable words in category {category!r}")

        tier = difficulty_tier_for(aggregate_stats.words_completed, self.settings)
        seen_ids = self._seen_ids(history, progress_sets)

        never_seen: List[WordItem] = []
        due: List[WordItem] = []
        reinforcement: List[WordItem] = []
        for word in selectable:
            if word.id not in seen_ids:
                never_seen.append(word)
            elif word.id in forgotten or self._is_weak(history.get(word.id), at_ms):
                due.append(word)
            else:
                reinforcement.append(word)

        exhaustion_level = sum(1 for word in pool if word.id in seen_ids) / len(pool)
        size = min(self.settings.batch_size, len(selectable))
        review_slots = round(min(self.settings.review_cap, exhaustion_level) * size)

        def last_seen(word: WordItem) -> int:
            entry = history.get(word.id)
            return entry.last_seen_at_ms if entry else 0

        due.sort(key=lambda word: (word.id not in forgotten, last_seen(word)))
        # Words at or below the session tier come first, catalog order otherwise kept
        never_seen.sort(key=lambda word: word.difficulty_tier.rank > tier.rank)
        reinforcement.sort(
            key=lambda word: (self._mastery(history.get(word.id), at_ms), last_seen(word))
        )

        review_words = due[:review_slots]
        new_words = never_seen[: size - len(review_words)]
        batch = review_words + new_words

        # Backfill when either side ran short
        chosen: Set[int] = {word.id for word in batch}
        for candidates in (due, never_seen, reinforcement):
            for word in candidates:
                if len(batch) >= size:
                    break
                if word.id not in chosen:
                    batch.append(word)
                    chosen.add(word.id)

        new_count = sum(1 for word in batch if word.id not in seen_ids)
        review_count = len(batch) - new_count
        info = SessionInfo(
            strategy=strategy_for(new_count, review_count),
            difficulty_tier=tier,
            new_word_count=new_count,
            review_word_count=review_count,
            exhaustion_level=exhaustion_level,
            categories_covered=sorted({word.category for word in batch}),
        )
        return SystematicSelection(words=batch, session_info=info)

    def _seen_ids(self, history: Mapping[int, WordHistoryEntry], progress_sets: ProgressSets) -> Set[int]:
        seen = set(progress_sets.remembered) | set(progress_sets.forgotten)
        seen.update(word_id for word_id, entry in history.items() if entry.times_seen > 0)
        return seen

    def _mastery(self, entry: Optional[WordHistoryEntry], at_ms: int) -> float:
        if entry is None:
            return 0.0
        return entry.mastery_at(at_ms, self.settings.mastery_half_life_hours)

    def _is_weak(self, entry: Optional[WordHistoryEntry], at_ms: int) -> bool:
        """Check if a seen word has decayed below mastery and left its cooldown."""
        if entry is None:
            return False
        return self._mastery(entry, at_ms) < self.settings.mastery_threshold and entry.is_eligible(at_ms)

    def _fallback(self, progress_sets: ProgressSets, aggregate_stats: AggregateStats) -> SystematicSelection:
        """Uniform random batch from the whole corpus."""
        corpus = self.catalog.all_words()
        excluded = _safe_ids(lambda: progress_sets.excluded)
        allowed = [word for word in corpus if word.id not in excluded] or corpus
        words = self.rng.sample(allowed, min(self.settings.batch_size, len(allowed)))
        words_completed = getattr(aggregate_stats, "words_completed", 0)
        tier = difficulty_tier_for(words_completed if isinstance(words_completed, int) else 0, self.settings)

        degraded_selections.labels(source="category").inc()
        selections.labels(source="category", strategy=SessionStrategy.FALLBACK_RANDOM.value).inc()
        info = SessionInfo(
            strategy=SessionStrategy.FALLBACK_RANDOM,
            difficulty_tier=tier,
            new_word_count=len(words),
            review_word_count=0,
            exhaustion_level=0.0,
            categories_covered=sorted({word.category for word in words}),
            degraded=True,
        )
        return SystematicSelection(words=words, session_info=info)


def _safe_ids(getter: Callable[[], Iterable[int]]) -> Set[int]:
    try:
        return set(getter())
    except (AttributeError, TypeError):
        return set()
