"""Repository functions for adaptation and analytics tables.

student_performance_profiles, student_difficulty_preferences,
difficulty_adaptation_history, performance_anomalies,
learning_trajectories, session_alerts and analytics_cache.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import structlog

from mentra.db.database import get_db
from mentra.utils.timeutil import to_iso, utc_now, utc_now_iso

logger = structlog.get_logger(__name__)


@dataclass
class PerformanceProfile:
    """Aggregated performance of a student in a subject."""

    student_id: str
    subject: str
    easy_performance: float | None
    medium_performance: float | None
    hard_performance: float | None
    very_hard_performance: float | None
    overall_performance: float
    accuracy_trend: float
    speed_trend: float
    consistency_score: float
    profile_confidence: float
    sessions_analyzed: int
    optimal_difficulty_level: str | None = None
    last_updated: str | None = None


@dataclass
class DifficultyPreference:
    """Stored difficulty for a student and subject."""

    student_id: str
    subject: str
    current_difficulty: str
    strategy: str
    adjustment_count: int
    last_adjusted_at: str


@dataclass
class TrajectoryRecord:
    """Learning trajectory summary."""

    student_id: str
    subject: str
    trend_direction: str
    trend_strength: float
    confidence_level: float
    data_points: list[dict[str, Any]]
    sessions_analyzed: int
    updated_at: str


# =============================================================================
# PERFORMANCE PROFILES
# =============================================================================


def upsert_profile(profile: PerformanceProfile) -> None:
    """Insert or replace the profile for (student, subject)."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO student_performance_profiles (
                student_id, subject, easy_performance, medium_performance,
                hard_performance, very_hard_performance, overall_performance,
                accuracy_trend, speed_trend, consistency_score,
                profile_confidence, sessions_analyzed, last_updated
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(student_id, subject) DO UPDATE SET
                easy_performance = excluded.easy_performance,
                medium_performance = excluded.medium_performance,
                hard_performance = excluded.hard_performance,
                very_hard_performance = excluded.very_hard_performance,
                overall_performance = excluded.overall_performance,
                accuracy_trend = excluded.accuracy_trend,
                speed_trend = excluded.speed_trend,
                consistency_score = excluded.consistency_score,
                profile_confidence = excluded.profile_confidence,
                sessions_analyzed = excluded.sessions_analyzed,
                last_updated = excluded.last_updated
            """,
            (
                profile.student_id, profile.subject, profile.easy_performance,
                profile.medium_performance, profile.hard_performance,
                profile.very_hard_performance, profile.overall_performance,
                profile.accuracy_trend, profile.speed_trend,
                profile.consistency_score, profile.profile_confidence,
                profile.sessions_analyzed, utc_now_iso(),
            ),
        )

    logger.debug("analytics.profile_saved", student_id=profile.student_id, subject=profile.subject)


def get_profile(student_id: str, subject: str = "general") -> PerformanceProfile | None:
    """Stored profile for (student, subject)."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM student_performance_profiles WHERE student_id = ? AND subject = ?",
            (student_id, subject),
        ).fetchone()

    if row is None:
        return None
    return _row_to_profile(row)


def list_profiles(student_id: str) -> list[PerformanceProfile]:
    """All profiles of a student."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM student_performance_profiles WHERE student_id = ? ORDER BY subject",
            (student_id,),
        ).fetchall()
    return [_row_to_profile(r) for r in rows]


def set_optimal_difficulty(student_id: str, subject: str, level: str) -> None:
    """Store the recommended difficulty on the profile."""
    with get_db() as conn:
        conn.execute(
            """
            UPDATE student_performance_profiles SET optimal_difficulty_level = ?
            WHERE student_id = ? AND subject = ?
            """,
            (level, student_id, subject),
        )


def _row_to_profile(row) -> PerformanceProfile:
    return PerformanceProfile(
        student_id=row["student_id"],
        subject=row["subject"],
        easy_performance=row["easy_performance"],
        medium_performance=row["medium_performance"],
        hard_performance=row["hard_performance"],
        very_hard_performance=row["very_hard_performance"],
        overall_performance=row["overall_performance"],
        accuracy_trend=row["accuracy_trend"],
        speed_trend=row["speed_trend"],
        consistency_score=row["consistency_score"],
        profile_confidence=row["profile_confidence"],
        sessions_analyzed=row["sessions_analyzed"],
        optimal_difficulty_level=row["optimal_difficulty_level"],
        last_updated=row["last_updated"],
    )


# =============================================================================
# DIFFICULTY PREFERENCES AND HISTORY
# =============================================================================


def get_difficulty_preference(student_id: str, subject: str) -> DifficultyPreference | None:
    """Stored difficulty preference, if any."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM student_difficulty_preferences WHERE student_id = ? AND subject = ?",
            (student_id, subject),
        ).fetchone()
    if row is None:
        return None
    return DifficultyPreference(
        student_id=row["student_id"],
        subject=row["subject"],
        current_difficulty=row["current_difficulty"],
        strategy=row["strategy"],
        adjustment_count=row["adjustment_count"],
        last_adjusted_at=row["last_adjusted_at"],
    )


def record_difficulty_adjustment(
    student_id: str,
    subject: str,
    previous_difficulty: str,
    new_difficulty: str,
    adjustment_value: float,
    strategy: str,
    performance_score: float | None,
    confidence: float | None,
    reason: str,
) -> None:
    """Upsert the preference and append a history row in one transaction."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO student_difficulty_preferences (
                student_id, subject, current_difficulty, strategy, adjustment_count, last_adjusted_at
            ) VALUES (?, ?, ?, ?, 1, ?)
            ON CONFLICT(student_id, subject) DO UPDATE SET
                current_difficulty = excluded.current_difficulty,
                strategy = excluded.strategy,
                adjustment_count = adjustment_count + 1,
                last_adjusted_at = excluded.last_adjusted_at
            """,
            (student_id, subject, new_difficulty, strategy, now),
        )
        conn.execute(
            """
            INSERT INTO difficulty_adaptation_history (
                student_id, subject, previous_difficulty, new_difficulty,
                adjustment_value, performance_score, confidence, strategy, reason, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (student_id, subject, previous_difficulty, new_difficulty, adjustment_value,
             performance_score, confidence, strategy, reason, now),
        )

    logger.info(
        "analytics.difficulty_adjusted",
        student_id=student_id,
        subject=subject,
        previous=previous_difficulty,
        new=new_difficulty,
    )


def list_adaptation_history(student_id: str, subject: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
    """Recent difficulty adjustments, newest first."""
    query = "SELECT * FROM difficulty_adaptation_history WHERE student_id = ?"
    params: list[Any] = [student_id]
    if subject:
        query += " AND subject = ?"
        params.append(subject)
    query += " ORDER BY created_at DESC, id DESC LIMIT ?"
    params.append(limit)
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(r) for r in rows]


# =============================================================================
# ANOMALIES, TRAJECTORIES, ALERTS
# =============================================================================


def insert_anomaly(
    student_id: str,
    subject: str,
    anomaly_type: str,
    current_value: float,
    baseline_value: float,
    z_score: float,
) -> None:
    """Log a detected performance anomaly."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO performance_anomalies (student_id, subject, anomaly_type, current_value, baseline_value, z_score, detected_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (student_id, subject, anomaly_type, current_value, baseline_value, z_score, utc_now_iso()),
        )
    logger.info("analytics.anomaly_detected", student_id=student_id, anomaly_type=anomaly_type, z_score=round(z_score, 2))


def list_anomalies(student_id: str, limit: int = 20) -> list[dict[str, Any]]:
    """Recent anomalies, newest first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM performance_anomalies WHERE student_id = ? ORDER BY detected_at DESC LIMIT ?",
            (student_id, limit),
        ).fetchall()
    return [dict(r) for r in rows]


def upsert_trajectory(
    student_id: str,
    subject: str,
    trend_direction: str,
    trend_strength: float,
    confidence_level: float,
    data_points: list[dict[str, Any]],
    sessions_analyzed: int,
) -> None:
    """Insert or replace the trajectory for (student, subject)."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO learning_trajectories (
                student_id, subject, trend_direction, trend_strength,
                confidence_level, data_points, sessions_analyzed, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(student_id, subject) DO UPDATE SET
                trend_direction = excluded.trend_direction,
                trend_strength = excluded.trend_strength,
                confidence_level = excluded.confidence_level,
                data_points = excluded.data_points,
                sessions_analyzed = excluded.sessions_analyzed,
                updated_at = excluded.updated_at
            """,
            (student_id, subject, trend_direction, trend_strength, confidence_level,
             json.dumps(data_points), sessions_analyzed, utc_now_iso()),
        )


def get_trajectory(student_id: str, subject: str = "general") -> TrajectoryRecord | None:
    """Stored trajectory for (student, subject)."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM learning_trajectories WHERE student_id = ? AND subject = ?",
            (student_id, subject),
        ).fetchone()
    if row is None:
        return None
    return TrajectoryRecord(
        student_id=row["student_id"],
        subject=row["subject"],
        trend_direction=row["trend_direction"],
        trend_strength=row["trend_strength"],
        confidence_level=row["confidence_level"],
        data_points=json.loads(row["data_points"]),
        sessions_analyzed=row["sessions_analyzed"],
        updated_at=row["updated_at"],
    )


def insert_session_alert(
    session_id: str, student_id: str, alert_type: str, message: str, alert_level: str = "info"
) -> int:
    """Store a session alert and return its ID."""
    with get_db() as conn:
        cursor = conn.execute(
            """
            INSERT INTO session_alerts (session_id, student_id, alert_type, alert_level, message, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (session_id, student_id, alert_type, alert_level, message, utc_now_iso()),
        )
    return int(cursor.lastrowid)


def list_session_alerts(student_id: str, unresolved_only: bool = True) -> list[dict[str, Any]]:
    """Alerts raised on a student's sessions, newest first."""
    query = "SELECT * FROM session_alerts WHERE student_id = ?"
    if unresolved_only:
        query += " AND is_resolved = 0"
    query += " ORDER BY created_at DESC"
    with get_db() as conn:
        rows = conn.execute(query, (student_id,)).fetchall()
    return [dict(r) for r in rows]


# =============================================================================
# ANALYTICS CACHE
# =============================================================================


def cache_analytics_result(cache_key: str, data: Any, expiry_hours: float = 24) -> None:
    """Store a computed result until it expires."""
    now = utc_now()
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO analytics_cache (cache_key, data, expires_at, hit_count, created_at)
            VALUES (?, ?, ?, 0, ?)
            ON CONFLICT(cache_key) DO UPDATE SET
                data = excluded.data, expires_at = excluded.expires_at,
                hit_count = 0, created_at = excluded.created_at
            """,
            (cache_key, json.dumps(data), to_iso(now + timedelta(hours=expiry_hours)), to_iso(now)),
        )


def get_cached_analytics(cache_key: str) -> Any | None:
    """Cached result if present and unexpired; bumps the hit counter."""
    now = utc_now_iso()
    with get_db() as conn:
        row = conn.execute(
            "SELECT data FROM analytics_cache WHERE cache_key = ? AND expires_at > ?",
            (cache_key, now),
        ).fetchone()
        if row is None:
            return None
        conn.execute(
            "UPDATE analytics_cache SET hit_count = hit_count + 1, last_accessed_at = ? WHERE cache_key = ?",
            (now, cache_key),
        )
    return json.loads(row["data"])


def invalidate_analytics(prefix: str) -> int:
    """Drop cached results whose key starts with the prefix."""
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM analytics_cache WHERE cache_key LIKE ?", (f"{prefix}%",)
        )
    return cursor.rowcount


def purge_expired_analytics() -> int:
    """Remove expired cache rows."""
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM analytics_cache WHERE expires_at <= ?", (utc_now_iso(),)
        )
    return cursor.rowcount
