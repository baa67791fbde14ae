"""Repository functions for problem templates and problem sessions.

Provides CRUD operations for problem_templates, problem_sessions,
problem_session_steps and session_heartbeats, plus the read queries the
adaptation analytics run over completed sessions.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from mentra.db.database import get_db
from mentra.utils.timeutil import utc_now_iso

logger = structlog.get_logger(__name__)

TEMPLATE_DIFFICULTIES = ("easy", "medium", "hard", "advanced")
PROBLEM_TYPES = ("math", "science", "logic", "reading", "writing", "general")
SESSION_STATUSES = ("active", "completed", "abandoned", "paused")


@dataclass
class ScaffoldingStep:
    """One staged step of a problem template."""

    title: str
    prompt: str
    step_type: str = "response"
    expected_response: str | None = None
    scaffolding_guidance: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "prompt": self.prompt,
            "step_type": self.step_type,
            "expected_response": self.expected_response,
            "scaffolding_guidance": self.scaffolding_guidance,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScaffoldingStep:
        return cls(
            title=data.get("title", ""),
            prompt=data.get("prompt", ""),
            step_type=data.get("step_type", data.get("type", "response")),
            expected_response=data.get("expected_response"),
            scaffolding_guidance=data.get("scaffolding_guidance"),
        )


@dataclass
class ProblemTemplateRecord:
    """Problem template from database."""

    id: str
    title: str
    description: str
    problem_type: str
    subject: str
    difficulty_level: str
    problem_statement: str
    scaffolding_steps: list[ScaffoldingStep]
    hint_system: list[str]
    estimated_time_minutes: int | None
    is_active: bool
    usage_count: int
    success_rate: float | None
    average_completion_time: float | None
    created_by: str | None
    created_at: str
    updated_at: str


@dataclass
class SessionStepRecord:
    """One step of a running problem session."""

    step_number: int
    title: str
    step_type: str
    prompt: str
    expected_response: str | None
    scaffolding_guidance: str | None
    student_response: str | None
    attempts_count: int
    accuracy_score: float | None
    response_quality: str | None
    feedback: str | None
    is_completed: bool
    completed_at: str | None


@dataclass
class ProblemSessionRecord:
    """Problem session from database."""

    id: str
    student_id: str
    template_id: str
    session_status: str
    started_at: str
    completed_at: str | None
    abandoned_at: str | None
    last_activity_at: str | None
    current_step: int
    total_steps: int
    steps_completed: int
    hints_requested: int
    mistakes_made: int
    accuracy_score: float | None
    completion_time_minutes: float | None
    emotional_state: str | None
    difficulty_perception: int | None
    steps: list[SessionStepRecord] = field(default_factory=list)


@dataclass
class CompletedSessionSample:
    """Completed session joined with its template, for analytics."""

    session_id: str
    subject: str
    difficulty_level: str
    started_at: str
    completed_at: str | None
    accuracy_score: float | None
    completion_time_minutes: float | None
    hints_requested: int
    mistakes_made: int


# =============================================================================
# TEMPLATES
# =============================================================================


def create_template(
    title: str,
    problem_statement: str,
    scaffolding_steps: list[ScaffoldingStep],
    subject: str = "general",
    difficulty_level: str = "medium",
    problem_type: str = "general",
    description: str = "",
    hint_system: list[str] | None = None,
    estimated_time_minutes: int | None = None,
    created_by: str | None = None,
) -> ProblemTemplateRecord:
    """Insert a new problem template.

    Raises:
        ValueError: On unknown difficulty or problem type
    """
    if difficulty_level not in TEMPLATE_DIFFICULTIES:
        raise ValueError(f"Unknown difficulty: {difficulty_level}")
    if problem_type not in PROBLEM_TYPES:
        raise ValueError(f"Unknown problem type: {problem_type}")

    template_id = str(uuid.uuid4())
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO problem_templates (
                id, title, description, problem_type, subject, difficulty_level,
                problem_statement, scaffolding_steps, hint_system,
                estimated_time_minutes, created_by, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template_id, title, description, problem_type, subject,
                difficulty_level, problem_statement,
                json.dumps([s.to_dict() for s in scaffolding_steps]),
                json.dumps(hint_system or []),
                estimated_time_minutes, created_by, now, now,
            ),
        )
        row = conn.execute("SELECT * FROM problem_templates WHERE id = ?", (template_id,)).fetchone()

    logger.debug("problems.template_created", template_id=template_id)
    return _row_to_template(row)


def get_template(template_id: str) -> ProblemTemplateRecord | None:
    """Get template by ID."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM problem_templates WHERE id = ?", (template_id,)
        ).fetchone()

    if row is None:
        return None
    return _row_to_template(row)


def list_templates(
    subject: str | None = None,
    difficulty_level: str | None = None,
    problem_type: str | None = None,
    active_only: bool = True,
) -> list[ProblemTemplateRecord]:
    """List templates matching the filters."""
    query = "SELECT * FROM problem_templates WHERE 1 = 1"
    params: list[Any] = []
    if active_only:
        query += " AND is_active = 1"
    if subject:
        query += " AND subject = ?"
        params.append(subject)
    if difficulty_level:
        query += " AND difficulty_level = ?"
        params.append(difficulty_level)
    if problem_type:
        query += " AND problem_type = ?"
        params.append(problem_type)
    query += " ORDER BY title"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_template(row) for row in rows]


def set_template_active(template_id: str, is_active: bool) -> bool:
    """Activate or retire a template."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE problem_templates SET is_active = ?, updated_at = ? WHERE id = ?",
            (int(is_active), utc_now_iso(), template_id),
        )
    return cursor.rowcount > 0


def update_template_usage_stats(template_id: str) -> None:
    """Recompute usage_count, success_rate and average_completion_time."""
    with get_db() as conn:
        conn.execute(
            """
            UPDATE problem_templates SET
                usage_count = (SELECT COUNT(*) FROM problem_sessions WHERE template_id = ?),
                success_rate = (
                    SELECT CAST(SUM(CASE WHEN session_status = 'completed' THEN 1 ELSE 0 END) AS REAL)
                           / NULLIF(COUNT(*), 0)
                    FROM problem_sessions WHERE template_id = ?
                ),
                average_completion_time = (
                    SELECT AVG(completion_time_minutes) FROM problem_sessions
                    WHERE template_id = ? AND session_status = 'completed'
                ),
                updated_at = ?
            WHERE id = ?
            """,
            (template_id, template_id, template_id, utc_now_iso(), template_id),
        )

    logger.debug("problems.template_stats_updated", template_id=template_id)


def _row_to_template(row) -> ProblemTemplateRecord:
    """Convert database row to ProblemTemplateRecord."""
    return ProblemTemplateRecord(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        problem_type=row["problem_type"],
        subject=row["subject"],
        difficulty_level=row["difficulty_level"],
        problem_statement=row["problem_statement"],
        scaffolding_steps=[
            ScaffoldingStep.from_dict(s) for s in json.loads(row["scaffolding_steps"])
        ],
        hint_system=json.loads(row["hint_system"]),
        estimated_time_minutes=row["estimated_time_minutes"],
        is_active=bool(row["is_active"]),
        usage_count=row["usage_count"],
        success_rate=row["success_rate"],
        average_completion_time=row["average_completion_time"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# =============================================================================
# SESSIONS
# =============================================================================


def create_session(
    student_id: str,
    template: ProblemTemplateRecord,
    started_at: str | None = None,
) -> ProblemSessionRecord:
    """Start a session with one step row per scaffolding step."""
    session_id = str(uuid.uuid4())
    started = started_at or utc_now_iso()
    steps = template.scaffolding_steps

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO problem_sessions (
                id, student_id, template_id, session_status, started_at,
                last_activity_at, current_step, total_steps, created_at, updated_at
            ) VALUES (?, ?, ?, 'active', ?, ?, 1, ?, ?, ?)
            """,
            (session_id, student_id, template.id, started, started, len(steps), started, started),
        )
        conn.executemany(
            """
            INSERT INTO problem_session_steps (
                session_id, step_number, title, step_type, prompt,
                expected_response, scaffolding_guidance
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (session_id, number, s.title, s.step_type, s.prompt,
                 s.expected_response, s.scaffolding_guidance)
                for number, s in enumerate(steps, start=1)
            ],
        )
        row = conn.execute("SELECT * FROM problem_sessions WHERE id = ?", (session_id,)).fetchone()
        session = _with_steps(conn, _row_to_session(row))

    logger.info("problems.session_started", session_id=session_id, student_id=student_id)
    return session


def get_session(session_id: str, include_steps: bool = True) -> ProblemSessionRecord | None:
    """Get session by ID, with its steps."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM problem_sessions WHERE id = ?", (session_id,)
        ).fetchone()
        if row is None:
            return None
        session = _row_to_session(row)
        if include_steps:
            _with_steps(conn, session)
    return session


def _with_steps(conn, session: ProblemSessionRecord) -> ProblemSessionRecord:
    step_rows = conn.execute(
        "SELECT * FROM problem_session_steps WHERE session_id = ? ORDER BY step_number",
        (session.id,),
    ).fetchall()
    session.steps = [_row_to_step(s) for s in step_rows]
    return session


def list_sessions(
    student_id: str,
    status: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[ProblemSessionRecord]:
    """A student's sessions, newest first (without steps)."""
    query = "SELECT * FROM problem_sessions WHERE student_id = ?"
    params: list[Any] = [student_id]
    if status:
        query += " AND session_status = ?"
        params.append(status)
    query += " ORDER BY started_at DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_session(row) for row in rows]


def record_step_response(
    session_id: str,
    step_number: int,
    response: str,
    accuracy: float,
    quality: str,
    feedback: str,
    completed: bool,
) -> None:
    """Store the analyzed response on a step."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            UPDATE problem_session_steps SET
                student_response = ?, attempts_count = attempts_count + 1,
                accuracy_score = ?, response_quality = ?, feedback = ?,
                is_completed = ?, completed_at = CASE WHEN ? THEN ? ELSE completed_at END
            WHERE session_id = ? AND step_number = ?
            """,
            (response, accuracy, quality, feedback, int(completed), int(completed), now,
             session_id, step_number),
        )


def update_session_progress(
    session_id: str,
    current_step: int | None = None,
    steps_completed: int | None = None,
    add_mistakes: int = 0,
    add_hints: int = 0,
) -> None:
    """Advance counters on an active session."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            UPDATE problem_sessions SET
                current_step = COALESCE(?, current_step),
                steps_completed = COALESCE(?, steps_completed),
                mistakes_made = mistakes_made + ?,
                hints_requested = hints_requested + ?,
                last_activity_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (current_step, steps_completed, add_mistakes, add_hints, now, now, session_id),
        )


def complete_session(
    session_id: str,
    accuracy_score: float,
    completion_time_minutes: float,
    completed_at: str | None = None,
) -> None:
    """Mark a session completed with its final scores."""
    now = completed_at or utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            UPDATE problem_sessions SET
                session_status = 'completed', completed_at = ?,
                accuracy_score = ?, completion_time_minutes = ?,
                steps_completed = total_steps, last_activity_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (now, accuracy_score, completion_time_minutes, now, now, session_id),
        )

    logger.info("problems.session_completed", session_id=session_id, accuracy=accuracy_score)


def set_session_status(session_id: str, status: str) -> None:
    """Pause, resume or abandon a session."""
    if status not in SESSION_STATUSES:
        raise ValueError(f"Unknown session status: {status}")
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            UPDATE problem_sessions SET
                session_status = ?,
                abandoned_at = CASE WHEN ? = 'abandoned' THEN ? ELSE abandoned_at END,
                last_activity_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (status, status, now, now, now, session_id),
        )


def record_session_feedback(
    session_id: str, emotional_state: str | None, difficulty_perception: int | None
) -> None:
    """Store the student's self-report at the end of a session."""
    with get_db() as conn:
        conn.execute(
            """
            UPDATE problem_sessions SET
                emotional_state = COALESCE(?, emotional_state),
                difficulty_perception = COALESCE(?, difficulty_perception),
                updated_at = ?
            WHERE id = ?
            """,
            (emotional_state, difficulty_perception, utc_now_iso(), session_id),
        )


def add_heartbeat(session_id: str, engagement_level: str = "medium", recorded_at: str | None = None) -> None:
    """Record an engagement heartbeat for a session."""
    with get_db() as conn:
        conn.execute(
            "INSERT INTO session_heartbeats (session_id, engagement_level, recorded_at) VALUES (?, ?, ?)",
            (session_id, engagement_level, recorded_at or utc_now_iso()),
        )


def list_heartbeat_levels(session_id: str) -> list[str]:
    """Engagement levels of all heartbeats of a session."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT engagement_level FROM session_heartbeats WHERE session_id = ? ORDER BY recorded_at",
            (session_id,),
        ).fetchall()
    return [row["engagement_level"] for row in rows]


def list_completed_samples(
    student_id: str,
    since: str,
    subject: str | None = None,
    limit: int | None = None,
) -> list[CompletedSessionSample]:
    """Completed sessions since a timestamp, most recent first.

    Args:
        subject: Restrict to templates of this subject; "general" or None means all
        limit: Cap on the number of sessions returned
    """
    query = """
        SELECT s.id, t.subject, t.difficulty_level, s.started_at, s.completed_at,
               s.accuracy_score, s.completion_time_minutes, s.hints_requested, s.mistakes_made
        FROM problem_sessions s
        JOIN problem_templates t ON t.id = s.template_id
        WHERE s.student_id = ? AND s.session_status = 'completed' AND s.started_at >= ?
    """
    params: list[Any] = [student_id, since]
    if subject and subject != "general":
        query += " AND t.subject = ?"
        params.append(subject)
    query += " ORDER BY s.started_at DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()

    return [
        CompletedSessionSample(
            session_id=row["id"],
            subject=row["subject"],
            difficulty_level=row["difficulty_level"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            accuracy_score=row["accuracy_score"],
            completion_time_minutes=row["completion_time_minutes"],
            hints_requested=row["hints_requested"],
            mistakes_made=row["mistakes_made"],
        )
        for row in rows
    ]


def recent_difficulty_levels(student_id: str, since: str, subject: str | None = None, limit: int = 5) -> list[str]:
    """Template difficulties of the most recent sessions (any status)."""
    query = """
        SELECT t.difficulty_level FROM problem_sessions s
        JOIN problem_templates t ON t.id = s.template_id
        WHERE s.student_id = ? AND s.started_at >= ?
    """
    params: list[Any] = [student_id, since]
    if subject and subject != "general":
        query += " AND t.subject = ?"
        params.append(subject)
    query += " ORDER BY s.started_at DESC LIMIT ?"
    params.append(limit)

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [row["difficulty_level"] for row in rows]


def count_sessions(
    student_id: str,
    status: str | None = None,
    since: str | None = None,
    until: str | None = None,
) -> int:
    """Number of sessions in an optional [since, until) window."""
    query = "SELECT COUNT(*) FROM problem_sessions WHERE student_id = ?"
    params: list[Any] = [student_id]
    if status:
        query += " AND session_status = ?"
        params.append(status)
    if since:
        query += " AND started_at >= ?"
        params.append(since)
    if until:
        query += " AND started_at < ?"
        params.append(until)
    with get_db() as conn:
        return conn.execute(query, params).fetchone()[0]


def average_accuracy(student_id: str, since: str) -> float | None:
    """Mean accuracy of sessions started since a timestamp."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT AVG(accuracy_score) FROM problem_sessions
            WHERE student_id = ? AND started_at >= ? AND accuracy_score IS NOT NULL
            """,
            (student_id, since),
        ).fetchone()
    return row[0]


def _row_to_session(row) -> ProblemSessionRecord:
    """Convert database row to ProblemSessionRecord."""
    return ProblemSessionRecord(
        id=row["id"],
        student_id=row["student_id"],
        template_id=row["template_id"],
        session_status=row["session_status"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        abandoned_at=row["abandoned_at"],
        last_activity_at=row["last_activity_at"],
        current_step=row["current_step"],
        total_steps=row["total_steps"],
        steps_completed=row["steps_completed"],
        hints_requested=row["hints_requested"],
        mistakes_made=row["mistakes_made"],
        accuracy_score=row["accuracy_score"],
        completion_time_minutes=row["completion_time_minutes"],
        emotional_state=row["emotional_state"],
        difficulty_perception=row["difficulty_perception"],
    )


def _row_to_step(row) -> SessionStepRecord:
    return SessionStepRecord(
        step_number=row["step_number"],
        title=row["title"],
        step_type=row["step_type"],
        prompt=row["prompt"],
        expected_response=row["expected_response"],
        scaffolding_guidance=row["scaffolding_guidance"],
        student_response=row["student_response"],
        attempts_count=row["attempts_count"],
        accuracy_score=row["accuracy_score"],
        response_quality=row["response_quality"],
        feedback=row["feedback"],
        is_completed=bool(row["is_completed"]),
        completed_at=row["completed_at"],
    )
