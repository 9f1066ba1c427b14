"""Derived progress figures: accuracy, streaks and goals."""
import logging
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from typing import Callable, Iterable, List, Optional

from wordadventure.config import ProgressSettings, settings
from wordadventure.models.progress_models import (
    Goal,
    GoalProgress,
    GoalType,
    ProgressCounters,
    ProgressSets,
    ProgressSummary,
    parse_active_date,
)
from wordadventure.models.word_models import now_ms

logger = logging.getLogger(__name__)


def day_key(day: date) -> str:
    return day.isoformat()


def week_key(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


class ProgressAggregator:
    """Computes accuracy, streaks and goal progress from learner state."""

    def __init__(
        self,
        progress_settings: Optional[ProgressSettings] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.settings = progress_settings or settings.progress
        self.clock = clock

    def to_learning_date(self, at_ms: Optional[int] = None) -> date:
        """Calendar day of a timestamp, with days starting at the configured hour."""
        at_ms = self.clock() if at_ms is None else at_ms
        moment = datetime.fromtimestamp(at_ms / 1000, UTC)
        return (moment - timedelta(hours=self.settings.day_start_hour)).date()

    @staticmethod
    def accuracy(remembered: Iterable[int], forgotten: Iterable[int]) -> int:
        """Percentage of remembered words among all answered words."""
        remembered_count = len(set(remembered))
        forgotten_count = len(set(forgotten))
        total = remembered_count + forgotten_count
        if total == 0:
            return 0
        return round(100 * remembered_count / total)

    @staticmethod
    def advance_streak(streak: int, last_active: Optional[date], today: date) -> int:
        """Streak value after activity on the given day."""
        if last_active is None:
            return 1
        gap = (today - last_active).days
        if gap <= 0:
            # Same day, or a clock that moved backwards
            return streak
        if gap == 1:
            return streak + 1
        return 1

    @staticmethod
    def goal_progress(goal: Goal, current: int) -> GoalProgress:
        """Progress towards a goal, the ratio clamped for display."""
        if goal.target <= 0:
            ratio = 1.0
        else:
            ratio = max(0.0, min(1.0, current / goal.target))
        return GoalProgress(goal=goal, current=max(0, current), ratio=ratio)

    def _roll_windows(self, counters: ProgressCounters, today: date) -> ProgressCounters:
        """Reset counters whose day, week or month window has passed."""
        if counters.day_key != day_key(today):
            counters = replace(counters, day_key=day_key(today), daily_words=0, daily_session_count=0)
        if counters.week_key != week_key(today):
            counters = replace(counters, week_key=week_key(today), weekly_words=0)
        if counters.month_key != month_key(today):
            counters = replace(counters, month_key=month_key(today), monthly_words=0)
        return counters

    def record_activity(
        self, counters: ProgressCounters, at_ms: Optional[int] = None, words: int = 1
    ) -> ProgressCounters:
        """Count answered words and advance the streak."""
        today = self.to_learning_date(at_ms)
        counters = self._roll_windows(counters, today)
        last_active = parse_active_date(counters.last_active_date)
        streak = self.advance_streak(counters.streak, last_active, today)
        if last_active is None or today > last_active:
            last_active = today
        return replace(
            counters,
            words_completed=counters.words_completed + words,
            daily_words=counters.daily_words + words,
            weekly_words=counters.weekly_words + words,
            monthly_words=counters.monthly_words + words,
            streak=streak,
            last_active_date=last_active.isoformat(),
        )

    def record_session_start(self, counters: ProgressCounters, at_ms: Optional[int] = None) -> ProgressCounters:
        """Count a new session for today."""
        counters = self._roll_windows(counters, self.to_learning_date(at_ms))
        return replace(counters, daily_session_count=counters.daily_session_count + 1)

    def goal_current(self, goal: Goal, counters: ProgressCounters, at_ms: Optional[int] = None) -> int:
        """Words counted towards a goal in its current window."""
        today = self.to_learning_date(at_ms)
        if goal.type == GoalType.DAILY:
            return counters.daily_words if counters.day_key == day_key(today) else 0
        if goal.type == GoalType.WEEKLY:
            return counters.weekly_words if counters.week_key == week_key(today) else 0
        return counters.monthly_words if counters.month_key == month_key(today) else 0

    def current_streak(self, counters: ProgressCounters, at_ms: Optional[int] = None) -> int:
        """Streak as displayed now; broken when the last active day is too old."""
        last_active = parse_active_date(counters.last_active_date)
        if last_active is None:
            return 0
        gap = (self.to_learning_date(at_ms) - last_active).days
        return counters.streak if gap <= 1 else 0

    def summarize(
        self,
        progress_sets: ProgressSets,
        counters: ProgressCounters,
        goals: Iterable[Goal] = (),
        at_ms: Optional[int] = None,
    ) -> ProgressSummary:
        """Summarize learner progress for dashboards and the scheduler."""
        goal_progress: List[GoalProgress] = [
            self.goal_progress(goal, self.goal_current(goal, counters, at_ms))
            for goal in goals
            if goal.is_active
        ]
        today = day_key(self.to_learning_date(at_ms))
        return ProgressSummary(
            accuracy=self.accuracy(progress_sets.remembered, progress_sets.forgotten),
            remembered_count=len(progress_sets.remembered),
            forgotten_count=len(progress_sets.forgotten),
            words_completed=counters.words_completed,
            daily_session_count=counters.daily_session_count if counters.day_key == today else 0,
            streak=self.current_streak(counters, at_ms),
            goals=goal_progress,
        )
