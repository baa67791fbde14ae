"""Repository functions for the student dashboard.

Learning streaks, achievements, the activity feed, goals with milestones
and per-user dashboard preferences.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import structlog

from mentra.db.database import get_db
from mentra.utils.timeutil import today, utc_now_iso

logger = structlog.get_logger(__name__)

STREAK_TYPES = ("daily_journal", "problem_solving", "overall_activity", "goal_progress")
GOAL_CATEGORIES = ("academic", "personal", "skill", "habit", "other")
GOAL_STATUSES = ("active", "completed", "paused", "cancelled")
TIMEFRAMES = ("7d", "30d", "90d", "all")
THEMES = ("light", "dark", "auto")


@dataclass
class StreakRecord:
    """A learning streak counter."""

    streak_type: str
    current_count: int
    best_count: int
    last_activity_date: str
    started_at: str


@dataclass
class AchievementRecord:
    """An earned achievement."""

    id: str
    student_id: str
    achievement_id: str
    title: str
    description: str
    category: str
    points: int
    metadata: dict[str, Any]
    earned_at: str


@dataclass
class ActivityRecord:
    """Dashboard activity feed item."""

    id: int
    student_id: str
    activity_type: str
    title: str
    description: str
    metadata: dict[str, Any]
    created_at: str


@dataclass
class MilestoneRecord:
    """Goal milestone."""

    id: str
    goal_id: str
    title: str
    position: int
    completed_at: str | None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class GoalRecord:
    """Student goal with its milestones."""

    id: str
    student_id: str
    title: str
    description: str
    category: str
    target_date: str | None
    status: str
    progress_percentage: float
    completed_at: str | None
    created_at: str
    updated_at: str
    milestones: list[MilestoneRecord] = field(default_factory=list)


@dataclass
class DashboardPreferences:
    """Per-user dashboard customization."""

    user_id: str
    widget_layout: list[dict[str, Any]]
    default_timeframe: str = "7d"
    theme: str = "auto"
    show_achievements: bool = True


# =============================================================================
# STREAKS
# =============================================================================


def update_learning_streak(
    student_id: str,
    streak_type: str,
    activity_date: date | None = None,
) -> int:
    """Register activity for a streak and return the current count.

    Same-day activity leaves the count unchanged, activity on the next day
    extends it, and any gap restarts it at 1. The student profile mirrors
    the best current/best counts across streak types.

    Raises:
        ValueError: On unknown streak type
    """
    if streak_type not in STREAK_TYPES:
        raise ValueError(f"Unknown streak type: {streak_type}")

    day = activity_date or today()
    day_iso = day.isoformat()

    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM learning_streaks WHERE student_id = ? AND streak_type = ?",
            (student_id, streak_type),
        ).fetchone()

        if row is None:
            current = 1
            conn.execute(
                """
                INSERT INTO learning_streaks (
                    student_id, streak_type, current_count, best_count,
                    last_activity_date, started_at
                ) VALUES (?, ?, 1, 1, ?, ?)
                """,
                (student_id, streak_type, day_iso, day_iso),
            )
        else:
            last = date.fromisoformat(row["last_activity_date"])
            if day <= last:
                return row["current_count"]

            if day == last + timedelta(days=1):
                current = row["current_count"] + 1
                started = row["started_at"]
            else:
                current = 1
                started = day_iso
            conn.execute(
                """
                UPDATE learning_streaks
                SET current_count = ?, best_count = MAX(best_count, ?),
                    last_activity_date = ?, started_at = ?
                WHERE id = ?
                """,
                (current, current, day_iso, started, row["id"]),
            )

        _sync_profile_streaks(conn, student_id, day_iso)

    logger.debug("streaks.updated", student_id=student_id, streak_type=streak_type, count=current)
    return current


def _sync_profile_streaks(conn: sqlite3.Connection, student_id: str, day_iso: str) -> None:
    conn.execute(
        """
        UPDATE student_profiles SET
            current_streak = (SELECT COALESCE(MAX(current_count), 0) FROM learning_streaks WHERE student_id = ?),
            best_streak = MAX(best_streak, (SELECT COALESCE(MAX(best_count), 0) FROM learning_streaks WHERE student_id = ?)),
            last_activity_date = CASE
                WHEN last_activity_date IS NULL OR last_activity_date < ? THEN ?
                ELSE last_activity_date END,
            updated_at = ?
        WHERE user_id = ?
        """,
        (student_id, student_id, day_iso, day_iso, utc_now_iso(), student_id),
    )


def list_streaks(student_id: str) -> list[StreakRecord]:
    """All streak counters of a student."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM learning_streaks WHERE student_id = ? ORDER BY streak_type",
            (student_id,),
        ).fetchall()
    return [
        StreakRecord(
            streak_type=r["streak_type"],
            current_count=r["current_count"],
            best_count=r["best_count"],
            last_activity_date=r["last_activity_date"],
            started_at=r["started_at"],
        )
        for r in rows
    ]


# =============================================================================
# ACHIEVEMENTS
# =============================================================================


def award_achievement(
    student_id: str,
    achievement_id: str,
    title: str,
    description: str,
    category: str,
    points: int = 0,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Award an achievement once per (student, achievement).

    Returns:
        True if newly awarded, False if the student already had it
    """
    now = utc_now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO student_achievements (
                id, student_id, achievement_id, title, description,
                category, points, metadata, earned_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(uuid.uuid4()), student_id, achievement_id, title, description,
                category, points, json.dumps(metadata or {}), now,
            ),
        )
        if cursor.rowcount == 0:
            return False

        conn.execute(
            "UPDATE student_profiles SET total_points = total_points + ?, updated_at = ? WHERE user_id = ?",
            (points, now, student_id),
        )
        _insert_activity(
            conn,
            student_id,
            "achievement_earned",
            f"Earned: {title}",
            description,
            {"achievement_id": achievement_id, "points": points, "category": category},
        )

    logger.info("achievements.awarded", student_id=student_id, achievement_id=achievement_id, points=points)
    return True


def list_achievements(student_id: str, category: str | None = None) -> list[AchievementRecord]:
    """Achievements of a student, newest first."""
    query = "SELECT * FROM student_achievements WHERE student_id = ?"
    params: list[Any] = [student_id]
    if category:
        query += " AND category = ?"
        params.append(category)
    query += " ORDER BY earned_at DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_achievement(r) for r in rows]


def count_achievements(student_id: str, since: str | None = None, until: str | None = None) -> tuple[int, int]:
    """(achievement count, points) in an optional [since, until) window."""
    query = "SELECT COUNT(*), COALESCE(SUM(points), 0) FROM student_achievements WHERE student_id = ?"
    params: list[Any] = [student_id]
    if since:
        query += " AND earned_at >= ?"
        params.append(since)
    if until:
        query += " AND earned_at < ?"
        params.append(until)
    with get_db() as conn:
        row = conn.execute(query, params).fetchone()
    return row[0], row[1]


def _row_to_achievement(row) -> AchievementRecord:
    return AchievementRecord(
        id=row["id"],
        student_id=row["student_id"],
        achievement_id=row["achievement_id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        points=row["points"],
        metadata=json.loads(row["metadata"]),
        earned_at=row["earned_at"],
    )


# =============================================================================
# ACTIVITY FEED
# =============================================================================


def log_activity(
    student_id: str,
    activity_type: str,
    title: str,
    description: str = "",
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append an item to the student's activity feed."""
    with get_db() as conn:
        _insert_activity(conn, student_id, activity_type, title, description, metadata or {})


def _insert_activity(
    conn: sqlite3.Connection,
    student_id: str,
    activity_type: str,
    title: str,
    description: str,
    metadata: dict[str, Any],
) -> None:
    conn.execute(
        """
        INSERT INTO dashboard_activities (student_id, activity_type, title, description, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (student_id, activity_type, title, description, json.dumps(metadata), utc_now_iso()),
    )


def list_activities(
    student_id: str,
    limit: int = 20,
    offset: int = 0,
    activity_type: str | None = None,
) -> list[ActivityRecord]:
    """Activity feed, newest first."""
    query = "SELECT * FROM dashboard_activities WHERE student_id = ?"
    params: list[Any] = [student_id]
    if activity_type:
        query += " AND activity_type = ?"
        params.append(activity_type)
    query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [
        ActivityRecord(
            id=r["id"],
            student_id=r["student_id"],
            activity_type=r["activity_type"],
            title=r["title"],
            description=r["description"],
            metadata=json.loads(r["metadata"]),
            created_at=r["created_at"],
        )
        for r in rows
    ]


def count_activities(student_id: str, since: str) -> int:
    """Activity feed items since a timestamp."""
    with get_db() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM dashboard_activities WHERE student_id = ? AND created_at >= ?",
            (student_id, since),
        ).fetchone()[0]


# =============================================================================
# GOALS
# =============================================================================


def create_goal(
    student_id: str,
    title: str,
    description: str = "",
    category: str = "academic",
    target_date: str | None = None,
    milestones: list[str] | None = None,
) -> GoalRecord:
    """Create a goal with optional milestones."""
    if category not in GOAL_CATEGORIES:
        raise ValueError(f"Unknown goal category: {category}")

    goal_id = str(uuid.uuid4())
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO student_goals (id, student_id, title, description, category, target_date, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (goal_id, student_id, title, description, category, target_date, now, now),
        )
        for position, milestone in enumerate(milestones or []):
            conn.execute(
                "INSERT INTO goal_milestones (id, goal_id, title, position) VALUES (?, ?, ?, ?)",
                (str(uuid.uuid4()), goal_id, milestone, position),
            )
        _insert_activity(conn, student_id, "goal_created", f"New goal: {title}", description, {"goal_id": goal_id})
        row = conn.execute("SELECT * FROM student_goals WHERE id = ?", (goal_id,)).fetchone()
        goal = _hydrate_goals(conn, [row])[0]

    logger.info("goals.created", goal_id=goal_id, student_id=student_id)
    return goal


def get_goal(goal_id: str) -> GoalRecord | None:
    """Get goal by ID with milestones."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM student_goals WHERE id = ?", (goal_id,)).fetchone()
        if row is None:
            return None
        return _hydrate_goals(conn, [row])[0]


def list_goals(student_id: str, status: str | None = None) -> list[GoalRecord]:
    """Goals of a student, newest first."""
    query = "SELECT * FROM student_goals WHERE student_id = ?"
    params: list[Any] = [student_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    query += " ORDER BY created_at DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return _hydrate_goals(conn, rows)


def update_goal(
    goal_id: str,
    title: str | None = None,
    description: str | None = None,
    category: str | None = None,
    target_date: str | None = None,
    status: str | None = None,
) -> GoalRecord | None:
    """Update goal fields. None leaves a field unchanged."""
    if status is not None and status not in GOAL_STATUSES:
        raise ValueError(f"Unknown goal status: {status}")
    if category is not None and category not in GOAL_CATEGORIES:
        raise ValueError(f"Unknown goal category: {category}")

    now = utc_now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE student_goals SET
                title = COALESCE(?, title),
                description = COALESCE(?, description),
                category = COALESCE(?, category),
                target_date = COALESCE(?, target_date),
                status = COALESCE(?, status),
                progress_percentage = CASE WHEN ? = 'completed' THEN 100 ELSE progress_percentage END,
                completed_at = CASE WHEN ? = 'completed' THEN COALESCE(completed_at, ?) ELSE completed_at END,
                updated_at = ?
            WHERE id = ?
            """,
            (title, description, category, target_date, status, status, status, now, now, goal_id),
        )
    if cursor.rowcount == 0:
        return None
    return get_goal(goal_id)


def delete_goal(goal_id: str) -> bool:
    """Delete a goal and its milestones."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM student_goals WHERE id = ?", (goal_id,))
    return cursor.rowcount > 0


def complete_milestone(goal_id: str, milestone_id: str) -> GoalRecord | None:
    """Mark a milestone completed; triggers recompute goal progress.

    Returns:
        Updated goal, or None if the milestone doesn't belong to the goal
    """
    now = utc_now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE goal_milestones SET completed_at = ?
            WHERE id = ? AND goal_id = ? AND completed_at IS NULL
            """,
            (now, milestone_id, goal_id),
        )
        if cursor.rowcount == 0:
            exists = conn.execute(
                "SELECT 1 FROM goal_milestones WHERE id = ? AND goal_id = ?",
                (milestone_id, goal_id),
            ).fetchone()
            if exists is None:
                return None
        else:
            goal = conn.execute(
                "SELECT student_id, title, progress_percentage FROM student_goals WHERE id = ?",
                (goal_id,),
            ).fetchone()
            _insert_activity(
                conn,
                goal["student_id"],
                "milestone_completed",
                f"Milestone completed: {goal['title']}",
                "",
                {"goal_id": goal_id, "milestone_id": milestone_id,
                 "progress": goal["progress_percentage"]},
            )

    logger.debug("goals.milestone_completed", goal_id=goal_id, milestone_id=milestone_id)
    return get_goal(goal_id)


def add_milestone(goal_id: str, title: str) -> GoalRecord | None:
    """Append a milestone to a goal."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 AS next FROM goal_milestones WHERE goal_id = ?",
            (goal_id,),
        ).fetchone()
        if conn.execute("SELECT 1 FROM student_goals WHERE id = ?", (goal_id,)).fetchone() is None:
            return None
        conn.execute(
            "INSERT INTO goal_milestones (id, goal_id, title, position) VALUES (?, ?, ?, ?)",
            (str(uuid.uuid4()), goal_id, title, row["next"]),
        )
    return get_goal(goal_id)


def goal_summary(student_id: str) -> dict[str, Any]:
    """Counts of goals by status plus average progress of active goals."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT status, COUNT(*) AS count, AVG(progress_percentage) AS progress FROM student_goals WHERE student_id = ? GROUP BY status",
            (student_id,),
        ).fetchall()
    by_status = {r["status"]: r["count"] for r in rows}
    active_progress = next((r["progress"] for r in rows if r["status"] == "active"), None)
    return {
        "total": sum(by_status.values()),
        "active": by_status.get("active", 0),
        "completed": by_status.get("completed", 0),
        "average_active_progress": round(active_progress or 0.0, 1),
    }


def _hydrate_goals(conn: sqlite3.Connection, rows: list) -> list[GoalRecord]:
    if not rows:
        return []
    ids = [r["id"] for r in rows]
    placeholders = ",".join("?" * len(ids))
    milestone_rows = conn.execute(
        f"SELECT * FROM goal_milestones WHERE goal_id IN ({placeholders}) ORDER BY position",
        ids,
    ).fetchall()
    milestones: dict[str, list[MilestoneRecord]] = {i: [] for i in ids}
    for m in milestone_rows:
        milestones[m["goal_id"]].append(
            MilestoneRecord(
                id=m["id"],
                goal_id=m["goal_id"],
                title=m["title"],
                position=m["position"],
                completed_at=m["completed_at"],
            )
        )
    return [
        GoalRecord(
            id=r["id"],
            student_id=r["student_id"],
            title=r["title"],
            description=r["description"],
            category=r["category"],
            target_date=r["target_date"],
            status=r["status"],
            progress_percentage=r["progress_percentage"],
            completed_at=r["completed_at"],
            created_at=r["created_at"],
            updated_at=r["updated_at"],
            milestones=milestones[r["id"]],
        )
        for r in rows
    ]


# =============================================================================
# DASHBOARD PREFERENCES
# =============================================================================


def get_dashboard_preferences(user_id: str) -> DashboardPreferences:
    """Stored preferences, or defaults when none are saved."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM dashboard_preferences WHERE user_id = ?", (user_id,)
        ).fetchone()

    if row is None:
        return DashboardPreferences(user_id=user_id, widget_layout=[])
    return DashboardPreferences(
        user_id=user_id,
        widget_layout=json.loads(row["widget_layout"]),
        default_timeframe=row["default_timeframe"],
        theme=row["theme"],
        show_achievements=bool(row["show_achievements"]),
    )


def save_dashboard_preferences(prefs: DashboardPreferences) -> DashboardPreferences:
    """Upsert preferences."""
    if prefs.default_timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe: {prefs.default_timeframe}")
    if prefs.theme not in THEMES:
        raise ValueError(f"Unknown theme: {prefs.theme}")

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO dashboard_preferences (user_id, widget_layout, default_timeframe, theme, show_achievements, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                widget_layout = excluded.widget_layout,
                default_timeframe = excluded.default_timeframe,
                theme = excluded.theme,
                show_achievements = excluded.show_achievements,
                updated_at = excluded.updated_at
            """,
            (
                prefs.user_id,
                json.dumps(prefs.widget_layout),
                prefs.default_timeframe,
                prefs.theme,
                int(prefs.show_achievements),
                utc_now_iso(),
            ),
        )
    return get_dashboard_preferences(prefs.user_id)
