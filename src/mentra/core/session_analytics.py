"""Session analytics.

Progress and engagement of a single session, z-score anomaly detection
against a 30-day baseline and the learning trajectory of a student.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from typing import Any

import structlog

from mentra.core.scoring import mean, pearson, sample_stdev
from mentra.db import analytics_repository, problems_repository
from mentra.db.analytics_repository import TrajectoryRecord
from mentra.db.problems_repository import ProblemSessionRecord
from mentra.utils.timeutil import iso_days_ago, parse_timestamp, utc_now

logger = structlog.get_logger(__name__)

# Seconds credited per heartbeat by engagement level
HEARTBEAT_SECONDS = {"high": 60, "medium": 30, "low": 10}

ANOMALY_Z_THRESHOLD = 2.0
BASELINE_DAYS = 30
TRAJECTORY_DAYS = 30
TRAJECTORY_MIN_SESSIONS = 5


def session_progress(steps_completed: int, total_steps: int | None) -> float:
    """Fraction of steps completed; 0 when the session has no steps."""
    if not total_steps:
        return 0.0
    return steps_completed / total_steps


def calculate_session_progress(session_id: str) -> float:
    """Progress of a stored session; 0 for an unknown session."""
    session = problems_repository.get_session(session_id, include_steps=False)
    if session is None:
        return 0.0
    return session_progress(session.steps_completed, session.total_steps)


def engagement_score(heartbeat_levels: list[str], elapsed_seconds: float) -> float:
    """Credited active time over elapsed time, capped at 1."""
    if elapsed_seconds <= 0:
        return 0.0
    active = sum(HEARTBEAT_SECONDS.get(level, 10) for level in heartbeat_levels)
    return min(1.0, active / elapsed_seconds)


def calculate_engagement_score(session: ProblemSessionRecord, now: datetime | None = None) -> float:
    """Engagement of a session from its heartbeats."""
    started = parse_timestamp(session.started_at)
    ended = parse_timestamp(session.completed_at) if session.completed_at else (now or utc_now())
    elapsed = (ended - started).total_seconds()
    return engagement_score(problems_repository.list_heartbeat_levels(session.id), elapsed)


def detect_performance_anomaly(
    student_id: str,
    current_accuracy: float,
    subject: str = "general",
    now: datetime | None = None,
) -> bool:
    """Log an anomaly when the accuracy is more than 2 sd from the baseline.

    The baseline is the student's completed sessions over the last 30 days.

    Returns:
        True if an anomaly was detected and logged
    """
    samples = problems_repository.list_completed_samples(
        student_id, since=iso_days_ago(BASELINE_DAYS, now), subject=subject
    )
    accuracies = [s.accuracy_score for s in samples if s.accuracy_score is not None]
    baseline = mean(accuracies)
    stdev = sample_stdev(accuracies)
    if baseline is None or not stdev:
        return False

    z_score = abs(current_accuracy - baseline) / stdev
    if z_score <= ANOMALY_Z_THRESHOLD:
        return False

    anomaly_type = "performance_spike" if current_accuracy > baseline else "performance_drop"
    analytics_repository.insert_anomaly(
        student_id, subject, anomaly_type, current_accuracy, baseline, z_score
    )
    return True


def classify_trend(correlation: float | None, sessions: int) -> tuple[str, float, float]:
    """(direction, strength, confidence) from the time/accuracy correlation."""
    if sessions < TRAJECTORY_MIN_SESSIONS:
        return "insufficient_data", 0.0, 0.0
    corr = correlation or 0.0
    if corr > 0.3:
        direction = "improving"
    elif corr < -0.3:
        direction = "declining"
    else:
        direction = "stable"
    confidence = 0.8 if sessions >= 10 else 0.5
    return direction, abs(corr), confidence


def update_learning_trajectory(
    student_id: str,
    subject: str = "general",
    now: datetime | None = None,
) -> TrajectoryRecord | None:
    """Recompute and store the student's trajectory over the last 30 days."""
    samples = problems_repository.list_completed_samples(
        student_id, since=iso_days_ago(TRAJECTORY_DAYS, now), subject=subject
    )
    scored = sorted(
        (s for s in samples if s.accuracy_score is not None), key=lambda s: s.started_at
    )

    correlation = pearson(
        [parse_timestamp(s.started_at).timestamp() for s in scored],
        [s.accuracy_score for s in scored],
    )
    direction, strength, confidence = classify_trend(correlation, len(scored))

    daily: OrderedDict[str, list[float]] = OrderedDict()
    for s in scored:
        daily.setdefault(s.started_at[:10], []).append(s.accuracy_score)
    data_points: list[dict[str, Any]] = [
        {"date": day, "average_accuracy": round(sum(v) / len(v), 3), "sessions": len(v)}
        for day, v in daily.items()
    ]

    analytics_repository.upsert_trajectory(
        student_id, subject, direction, round(strength, 3), confidence, data_points, len(scored)
    )
    logger.debug("analytics.trajectory_updated", student_id=student_id, direction=direction)
    return analytics_repository.get_trajectory(student_id, subject)


def generate_session_alert(
    session: ProblemSessionRecord,
    alert_type: str,
    message: str,
    alert_level: str = "info",
) -> int:
    """Raise an alert on a session (e.g. repeated mistakes, long idle)."""
    alert_id = analytics_repository.insert_session_alert(
        session.id, session.student_id, alert_type, message, alert_level
    )
    logger.info("analytics.session_alert", session_id=session.id, alert_type=alert_type, level=alert_level)
    return alert_id


def session_analysis(session: ProblemSessionRecord, now: datetime | None = None) -> dict[str, Any]:
    """Summary of a session for the analytics endpoint."""
    return {
        "session_id": session.id,
        "status": session.session_status,
        "progress": round(session_progress(session.steps_completed, session.total_steps), 3),
        "engagement_score": round(calculate_engagement_score(session, now), 3),
        "hints_requested": session.hints_requested,
        "mistakes_made": session.mistakes_made,
        "accuracy_score": session.accuracy_score,
        "completion_time_minutes": session.completion_time_minutes,
    }
