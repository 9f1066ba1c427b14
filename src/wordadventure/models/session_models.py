"""Models for generated word sessions."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List

from wordadventure.models.word_models import DifficultyTier, WordHistoryEntry, WordItem


class SessionStrategy(str, Enum):
    """How a batch was composed."""
    FRESH_EXPLORATION = "fresh_exploration"
    MIXED_REINFORCEMENT = "mixed_reinforcement"
    TARGETED_REVIEW = "targeted_review"
    FALLBACK_RANDOM = "fallback_random"


class ProgressionStage(str, Enum):
    """Dashboard difficulty progression stage."""
    EASY_FOCUS = "easy_focus"
    MIXED_EASY_MEDIUM = "mixed_easy_medium"
    MIXED_MEDIUM_HARD = "mixed_medium_hard"
    ALL_DIFFICULTIES = "all_difficulties"


@dataclass(frozen=True)
class SessionInfo:
    """Metadata describing a scheduled batch."""
    strategy: SessionStrategy
    difficulty_tier: DifficultyTier
    new_word_count: int
    review_word_count: int
    exhaustion_level: float
    categories_covered: List[str]
    degraded: bool = False


@dataclass(frozen=True)
class SystematicSelection:
    """Ordered batch of words plus its metadata."""
    words: List[WordItem]
    session_info: SessionInfo

    @property
    def word_ids(self) -> List[int]:
        return [word.id for word in self.words]


@dataclass
class DashboardProgress:
    """Learner state the dashboard generator works from."""
    words_completed: int = 0
    remembered: FrozenSet[int] = frozenset()
    forgotten: FrozenSet[int] = frozenset()
    excluded: FrozenSet[int] = frozenset()
    history: Dict[int, WordHistoryEntry] = field(default_factory=dict)


@dataclass(frozen=True)
class DashboardSessionInfo:
    """Metadata describing a dashboard session."""
    difficulty_tier: DifficultyTier
    progression_stage: ProgressionStage
    categories_used: List[str]
    session_number: int
    total_words_generated: int
    exhaustion_level: float
    new_word_count: int
    review_word_count: int
    recycled_word_count: int = 0
    degraded: bool = False


@dataclass(frozen=True)
class DashboardSession:
    """Cross-category dashboard batch."""
    words: List[WordItem]
    session_info: DashboardSessionInfo


@dataclass(frozen=True)
class ProgressionInfo:
    """Display information about the current progression stage."""
    stage: ProgressionStage
    title: str
    description: str
    next_milestone: int
    progress: float  # percent
