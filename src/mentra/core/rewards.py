"""Achievements and streak bookkeeping for student activity.

Every journal entry, completed problem session and completed goal passes
through here so that streaks, the activity feed and achievements stay in
step with what the student did.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import structlog

from mentra.db import analytics_repository, dashboard_repository, journal_repository, problems_repository
from mentra.db.dashboard_repository import GoalRecord

logger = structlog.get_logger(__name__)

GOAL_COMPLETION_POINTS = 50


@dataclass(frozen=True)
class AchievementDefinition:
    """Catalog entry for an achievement."""

    achievement_id: str
    title: str
    description: str
    category: str
    points: int


# =============================================================================
# CATALOG
# =============================================================================

FIRST_JOURNAL_ENTRY = AchievementDefinition(
    "first_journal_entry", "First Reflection", "Wrote your first journal entry", "reflection", 10
)
JOURNAL_STREAK_7 = AchievementDefinition(
    "journal_streak_7", "Week of Reflection", "Journaled 7 days in a row", "reflection", 30
)
FIRST_PROBLEM_SOLVED = AchievementDefinition(
    "first_problem_solved", "Problem Solver", "Completed your first problem", "problem_solving", 10
)
PROBLEMS_SOLVED_10 = AchievementDefinition(
    "problems_solved_10", "Persistent Thinker", "Completed 10 problems", "problem_solving", 40
)
STREAK_7_DAYS = AchievementDefinition(
    "streak_7_days", "On a Roll", "Learned something 7 days in a row", "streak", 25
)

ACHIEVEMENT_CATALOG = {
    a.achievement_id: a
    for a in (FIRST_JOURNAL_ENTRY, JOURNAL_STREAK_7, FIRST_PROBLEM_SOLVED, PROBLEMS_SOLVED_10, STREAK_7_DAYS)
}


def goal_achievement(goal: GoalRecord) -> AchievementDefinition:
    """Per-goal achievement, one for each completed goal."""
    return AchievementDefinition(
        f"goal_completed_{goal.id}",
        "Goal Achieved",
        f"Completed the goal: {goal.title}",
        "goal",
        GOAL_COMPLETION_POINTS,
    )


def _award(student_id: str, definition: AchievementDefinition, **metadata) -> bool:
    return dashboard_repository.award_achievement(
        student_id,
        definition.achievement_id,
        definition.title,
        definition.description,
        definition.category,
        definition.points,
        metadata or None,
    )


# =============================================================================
# ACTIVITY HOOKS
# =============================================================================


def record_journal_activity(
    student_id: str, entry_id: str, title: str, on_date: date | None = None
) -> list[AchievementDefinition]:
    """Streaks, feed item and achievements for a new journal entry.

    Returns:
        Achievements newly earned by this entry
    """
    journal_streak = dashboard_repository.update_learning_streak(student_id, "daily_journal", on_date)
    overall_streak = dashboard_repository.update_learning_streak(student_id, "overall_activity", on_date)
    dashboard_repository.log_activity(
        student_id, "journal_entry", f"Journal entry: {title}", metadata={"entry_id": entry_id}
    )
    analytics_repository.invalidate_analytics(f"student:{student_id}")

    earned = []
    if journal_repository.count_entries(student_id) >= 1 and _award(student_id, FIRST_JOURNAL_ENTRY):
        earned.append(FIRST_JOURNAL_ENTRY)
    if journal_streak >= 7 and _award(student_id, JOURNAL_STREAK_7, streak=journal_streak):
        earned.append(JOURNAL_STREAK_7)
    if overall_streak >= 7 and _award(student_id, STREAK_7_DAYS, streak=overall_streak):
        earned.append(STREAK_7_DAYS)
    return earned


def record_problem_completion(
    student_id: str,
    session_id: str,
    title: str,
    accuracy: float,
    on_date: date | None = None,
) -> list[AchievementDefinition]:
    """Streaks, feed item and achievements for a completed session."""
    dashboard_repository.update_learning_streak(student_id, "problem_solving", on_date)
    overall_streak = dashboard_repository.update_learning_streak(student_id, "overall_activity", on_date)
    dashboard_repository.log_activity(
        student_id,
        "problem_completed",
        f"Solved: {title}",
        metadata={"session_id": session_id, "accuracy": accuracy},
    )

    solved = problems_repository.count_sessions(student_id, status="completed")
    earned = []
    if solved >= 1 and _award(student_id, FIRST_PROBLEM_SOLVED):
        earned.append(FIRST_PROBLEM_SOLVED)
    if solved >= 10 and _award(student_id, PROBLEMS_SOLVED_10, solved=solved):
        earned.append(PROBLEMS_SOLVED_10)
    if overall_streak >= 7 and _award(student_id, STREAK_7_DAYS, streak=overall_streak):
        earned.append(STREAK_7_DAYS)
    return earned


def record_goal_progress(goal: GoalRecord, on_date: date | None = None) -> list[AchievementDefinition]:
    """Award the goal achievement once the goal is completed."""
    dashboard_repository.update_learning_streak(goal.student_id, "goal_progress", on_date)
    if goal.status != "completed":
        return []

    definition = goal_achievement(goal)
    if not _award(goal.student_id, definition, goal_id=goal.id):
        return []
    logger.info("goals.completed", goal_id=goal.id, student_id=goal.student_id)
    return [definition]
