"""Engagement levels, teacher alerts and weekly summaries.

Reads across students for the teacher and parent dashboards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

import structlog

from mentra.db import dashboard_repository, journal_repository, problems_repository, users_repository
from mentra.db.users_repository import StudentSummary
from mentra.utils.timeutil import iso_days_ago, start_of_week, to_iso, today

logger = structlog.get_logger(__name__)

ENGAGEMENT_LEVELS = ("excellent", "good", "fair", "needs_attention")

INACTIVE_AFTER_DAYS = 3
ALERT_SCORE_THRESHOLD = 2.5
HIGH_PRIORITY_SCORE = 2.0


def engagement_level(
    current_streak: int,
    last_activity_date: str | date | None,
    on_date: date | None = None,
) -> str:
    """Label from streak length and recency of activity.

    More than 7 idle days is needs_attention, more than 3 is fair; otherwise
    a streak of 7+ is excellent, 3+ good, anything else fair.
    """
    if last_activity_date is None:
        return "needs_attention"
    if isinstance(last_activity_date, str):
        last_activity_date = date.fromisoformat(last_activity_date[:10])

    days_since = ((on_date or today()) - last_activity_date).days
    if days_since > 7:
        return "needs_attention"
    if days_since > 3:
        return "fair"
    if current_streak >= 7:
        return "excellent"
    if current_streak >= 3:
        return "good"
    return "fair"


@dataclass
class StudentAlert:
    """Reason a teacher should look at a student."""

    student_id: str
    student_name: str
    alert_types: list[str]
    priority: str  # high | medium | low
    current_streak: int
    best_streak: int
    last_activity_date: str | None
    recent_score: float | None


def _recent_score(student_id: str, days: int = 7) -> float | None:
    """Average session accuracy over the last days on a 0-5 scale."""
    accuracy = problems_repository.average_accuracy(student_id, iso_days_ago(days))
    if accuracy is None:
        return None
    return round(accuracy * 5, 2)


def evaluate_student_alert(
    student: StudentSummary,
    recent_score: float | None,
    on_date: date | None = None,
) -> StudentAlert | None:
    """Alert for one student, or None when nothing stands out."""
    on_date = on_date or today()
    alert_types = []

    if student.current_streak == 0:
        alert_types.append("no_activity")
    inactive = False
    if student.last_activity_date is not None:
        last = date.fromisoformat(student.last_activity_date[:10])
        if last < on_date - timedelta(days=INACTIVE_AFTER_DAYS):
            inactive = True
            alert_types.append("inactive")
    streak_drop = student.current_streak < 3 and student.best_streak > 7
    if streak_drop:
        alert_types.append("streak_drop")
    if recent_score is not None and recent_score < ALERT_SCORE_THRESHOLD:
        alert_types.append("poor_performance")

    if not alert_types:
        return None

    if student.current_streak == 0 or (recent_score is not None and recent_score < HIGH_PRIORITY_SCORE):
        priority = "high"
    elif inactive or streak_drop:
        priority = "medium"
    else:
        priority = "low"

    return StudentAlert(
        student_id=student.id,
        student_name=f"{student.first_name} {student.last_name}".strip(),
        alert_types=alert_types,
        priority=priority,
        current_streak=student.current_streak,
        best_streak=student.best_streak,
        last_activity_date=student.last_activity_date,
        recent_score=recent_score,
    )


def detect_student_alerts(teacher_id: str, on_date: date | None = None) -> list[StudentAlert]:
    """Alerts for the teacher's students, high priority first."""
    order = {"high": 0, "medium": 1, "low": 2}
    alerts = []
    for student in users_repository.list_teacher_students(teacher_id):
        alert = evaluate_student_alert(student, _recent_score(student.id), on_date)
        if alert is not None:
            alerts.append(alert)
    alerts.sort(key=lambda a: (order[a.priority], a.student_name))
    return alerts


def weekly_class_report(teacher_id: str, on_date: date | None = None) -> dict[str, Any]:
    """Class totals for the last 7 days."""
    on_date = on_date or today()
    students = users_repository.list_teacher_students(teacher_id)
    week_ago = on_date - timedelta(days=7)
    since = iso_days_ago(7)

    active = [
        s for s in students
        if s.last_activity_date and date.fromisoformat(s.last_activity_date[:10]) >= week_ago
    ]
    total_activities = sum(
        journal_repository.count_entries(s.id, since=since)
        + problems_repository.count_sessions(s.id, since=since)
        for s in students
    )
    alerts = detect_student_alerts(teacher_id, on_date)

    return {
        "report_date": on_date.isoformat(),
        "total_students": len(students),
        "active_students": len(active),
        "engagement_rate": round(len(active) / len(students) * 100, 2) if students else None,
        "average_streak": round(sum(s.current_streak for s in students) / len(students), 1) if students else 0.0,
        "total_activities": total_activities,
        "alerts": alerts,
    }


@dataclass
class ChildWeeklySummary:
    """One child's week."""

    child_id: str
    name: str
    journal_entries: int
    problem_sessions: int
    completed_sessions: int
    achievements_earned: int
    points_earned: int
    current_streak: int
    engagement_level: str


@dataclass
class FamilyWeeklySummary:
    """A parent's view of the week across all children."""

    week_start: str
    week_end: str
    children: list[ChildWeeklySummary] = field(default_factory=list)

    @property
    def totals(self) -> dict[str, int]:
        return {
            "journal_entries": sum(c.journal_entries for c in self.children),
            "problem_sessions": sum(c.problem_sessions for c in self.children),
            "achievements_earned": sum(c.achievements_earned for c in self.children),
            "points_earned": sum(c.points_earned for c in self.children),
        }


def _day_start(day: date) -> str:
    return to_iso(datetime.combine(day, time.min, tzinfo=timezone.utc))


def weekly_family_summary(parent_id: str, week_start: date | None = None) -> FamilyWeeklySummary:
    """Per-child activity for the week starting Monday week_start."""
    week_start = start_of_week(week_start or today())
    week_end = week_start + timedelta(days=7)
    since, until = _day_start(week_start), _day_start(week_end)

    summary = FamilyWeeklySummary(
        week_start=week_start.isoformat(),
        week_end=(week_end - timedelta(days=1)).isoformat(),
    )
    for child in users_repository.list_parent_children(parent_id):
        achievements, points = dashboard_repository.count_achievements(child.id, since, until)
        summary.children.append(
            ChildWeeklySummary(
                child_id=child.id,
                name=f"{child.first_name} {child.last_name}".strip(),
                journal_entries=journal_repository.count_entries(child.id, since, until),
                problem_sessions=problems_repository.count_sessions(child.id, since=since, until=until),
                completed_sessions=problems_repository.count_sessions(
                    child.id, status="completed", since=since, until=until
                ),
                achievements_earned=achievements,
                points_earned=points,
                current_streak=child.current_streak,
                engagement_level=engagement_level(child.current_streak, child.last_activity_date),
            )
        )

    logger.debug("engagement.family_summary", parent_id=parent_id, children=len(summary.children))
    return summary


def engagement_metrics(student: StudentSummary, days: int = 30) -> dict[str, Any]:
    """Activity counts and engagement for one student over a window."""
    since = iso_days_ago(days)
    sessions = problems_repository.count_sessions(student.id, since=since)
    completed = problems_repository.count_sessions(student.id, status="completed", since=since)
    return {
        "student_id": student.id,
        "window_days": days,
        "journal_entries": journal_repository.count_entries(student.id, since=since),
        "problem_sessions": sessions,
        "completed_sessions": completed,
        "completion_rate": round(completed / sessions, 3) if sessions else 0.0,
        "activities": dashboard_repository.count_activities(student.id, since),
        "current_streak": student.current_streak,
        "best_streak": student.best_streak,
        "engagement_level": engagement_level(student.current_streak, student.last_activity_date),
    }
