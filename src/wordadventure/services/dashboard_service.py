"""Cross-category dashboard sessions with staged difficulty progression."""
import logging
import random
from typing import Dict, List, Optional, Set

from wordadventure.config import DashboardSettings, SchedulerSettings, settings
from wordadventure.errors import SchedulerError
from wordadventure.models.session_models import (
    DashboardProgress,
    DashboardSession,
    DashboardSessionInfo,
    ProgressionInfo,
    ProgressionStage,
)
from wordadventure.models.word_models import DifficultyTier, WordItem
from wordadventure.monitoring import degraded_selections, selections
from wordadventure.services.catalog_service import WordCatalog
from wordadventure.services.word_scheduler import difficulty_tier_for

logger = logging.getLogger(__name__)

# Share of the session taken by each difficulty, per stage
STAGE_MIX: Dict[ProgressionStage, Dict[DifficultyTier, float]] = {
    ProgressionStage.EASY_FOCUS: {DifficultyTier.EASY: 1.0},
    ProgressionStage.MIXED_EASY_MEDIUM: {DifficultyTier.EASY: 0.7, DifficultyTier.MEDIUM: 0.3},
    ProgressionStage.MIXED_MEDIUM_HARD: {DifficultyTier.MEDIUM: 0.5, DifficultyTier.HARD: 0.5},
    ProgressionStage.ALL_DIFFICULTIES: {
        DifficultyTier.EASY: 0.3,
        DifficultyTier.MEDIUM: 0.4,
        DifficultyTier.HARD: 0.3,
    },
}


def _share(count: int, fraction: float) -> int:
    """Whole number of slots for a fraction, ignoring float noise."""
    return int(round(count * fraction, 6))


class DashboardSessionGenerator:
    """Builds dashboard sessions that mix categories and difficulties."""

    def __init__(
        self,
        catalog: WordCatalog,
        dashboard_settings: Optional[DashboardSettings] = None,
        scheduler_settings: Optional[SchedulerSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the generator with a word catalog."""
        self.catalog = catalog
        self.settings = dashboard_settings or settings.dashboard
        self.scheduler_settings = scheduler_settings or settings.scheduler
        self.rng = rng or random.Random()

    def progression_stage(self, words_completed: int) -> ProgressionStage:
        """Progression stage for the number of completed words."""
        if words_completed < self.scheduler_settings.easy_threshold:
            return ProgressionStage.EASY_FOCUS
        if words_completed < self.scheduler_settings.medium_threshold:
            return ProgressionStage.MIXED_EASY_MEDIUM
        if words_completed < self.scheduler_settings.medium_threshold + self.settings.challenge_span:
            return ProgressionStage.MIXED_MEDIUM_HARD
        return ProgressionStage.ALL_DIFFICULTIES

    def generate_dashboard_session(self, progress: DashboardProgress, session_number: int) -> DashboardSession:
        """Generate a dashboard session; identical inputs give identical sessions."""
        try:
            session = self._generate(progress, session_number)
        except Exception as e:
            logger.warning(
                f"Dashboard session {session_number} failed: {e}. Using random fallback",
                exc_info=not isinstance(e, SchedulerError),
            )
            return self._fallback(progress, session_number)

        selections.labels(source="dashboard", strategy=session.session_info.progression_stage.value).inc()
        logger.info(
            f"Dashboard session {session_number} ({session.session_info.progression_stage.value}): "
            f"{session.session_info.total_words_generated} words from "
            f"{len(session.session_info.categories_used)} categories"
        )
        return session

    def _generate(self, progress: DashboardProgress, session_number: int) -> DashboardSession:
        corpus = self.catalog.all_words()
        remembered = progress.remembered
        forgotten = progress.forgotten
        excluded = progress.excluded
        size = self.settings.words_per_session
        rng = random.Random(f"{session_number}:{progress.words_completed}")

        def last_seen(word: WordItem) -> int:
            entry = progress.history.get(word.id)
            return entry.last_seen_at_ms if entry else 0

        stage = self.progression_stage(progress.words_completed)
        available = [word for word in corpus if word.id not in remembered and word.id not in excluded]

        selected: List[WordItem] = []
        for tier, share in STAGE_MIX[stage].items():
            quota = _share(size, share)
            candidates = [word for word in available if word.difficulty_tier == tier]
            review = sorted((word for word in candidates if word.id in forgotten), key=last_seen)
            fresh = [word for word in candidates if word.id not in forgotten]
            rng.shuffle(fresh)
            review_count = _share(quota, self.settings.review_ratio)
            selected.extend(review[:review_count])
            selected.extend(fresh[: quota - min(review_count, len(review))])
        rng.shuffle(selected)

        chosen: Set[int] = {word.id for word in selected}
        if len(selected) < size:
            leftovers = [word for word in available if word.id not in chosen]
            rng.shuffle(leftovers)
            for word in leftovers[: size - len(selected)]:
                selected.append(word)
                chosen.add(word.id)

        recycled = 0
        if len(selected) < size:
            mastered = sorted(
                (word for word in corpus if word.id in remembered and word.id not in excluded),
                key=last_seen,
            )
            for word in mastered[: size - len(selected)]:
                selected.append(word)
                recycled += 1

        if not selected:
            raise SchedulerError("No words available for a dashboard session")

        seen = set(remembered) | set(forgotten) | {
            word_id for word_id, entry in progress.history.items() if entry.times_seen > 0
        }
        exhaustion_level = sum(1 for word in corpus if word.id in seen) / len(corpus)
        review_count = sum(1 for word in selected if word.id in forgotten)
        info = DashboardSessionInfo(
            difficulty_tier=difficulty_tier_for(progress.words_completed, self.scheduler_settings),
            progression_stage=stage,
            categories_used=sorted({word.category for word in selected}),
            session_number=session_number,
            total_words_generated=len(selected),
            exhaustion_level=exhaustion_level,
            new_word_count=sum(1 for word in selected if word.id not in seen),
            review_word_count=review_count,
            recycled_word_count=recycled,
        )
        return DashboardSession(words=selected, session_info=info)

    def _fallback(self, progress: DashboardProgress, session_number: int) -> DashboardSession:
        """Uniform random session from the whole corpus."""
        corpus = self.catalog.all_words()
        words = self.rng.sample(corpus, min(self.settings.words_per_session, len(corpus)))
        degraded_selections.labels(source="dashboard").inc()
        selections.labels(source="dashboard", strategy="fallback_random").inc()
        words_completed = progress.words_completed if isinstance(progress.words_completed, int) else 0
        info = DashboardSessionInfo(
            difficulty_tier=difficulty_tier_for(words_completed, self.scheduler_settings),
            progression_stage=self.progression_stage(words_completed),
            categories_used=sorted({word.category for word in words}),
            session_number=session_number,
            total_words_generated=len(words),
            exhaustion_level=0.0,
            new_word_count=len(words),
            review_word_count=0,
            degraded=True,
        )
        return DashboardSession(words=words, session_info=info)

    def should_regenerate(self, previous_completed: int, current_completed: int) -> bool:
        """Check if the completed count crossed a regeneration boundary."""
        interval = self.settings.regeneration_interval
        return current_completed // interval > previous_completed // interval

    def progression_info(self, words_completed: int) -> ProgressionInfo:
        """Stage description and progress towards the next milestone."""
        easy = self.scheduler_settings.easy_threshold
        medium = self.scheduler_settings.medium_threshold
        span = self.settings.challenge_span
        stage = self.progression_stage(words_completed)

        if stage == ProgressionStage.EASY_FOCUS:
            return ProgressionInfo(
                stage=stage,
                title="Foundation Building",
                description="Mastering easy words from all categories",
                next_milestone=easy,
                progress=words_completed / easy * 100 if easy else 100.0,
            )
        if stage == ProgressionStage.MIXED_EASY_MEDIUM:
            return ProgressionInfo(
                stage=stage,
                title="Skill Development",
                description="Mixing easy and medium difficulty words",
                next_milestone=medium,
                progress=(words_completed - easy) / (medium - easy) * 100,
            )
        if stage == ProgressionStage.MIXED_MEDIUM_HARD:
            return ProgressionInfo(
                stage=stage,
                title="Challenge Mode",
                description="Tackling medium and hard words",
                next_milestone=medium + span,
                progress=(words_completed - medium) / span * 100,
            )
        return ProgressionInfo(
            stage=stage,
            title="Master Level",
            description="Balanced mix of all difficulty levels",
            next_milestone=words_completed + 100,
            progress=100.0,
        )
