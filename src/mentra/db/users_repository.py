"""Repository functions for users, student profiles and relationships.

Provides CRUD operations for users, student_profiles,
teacher_student_assignments, parent_child_relationships,
teacher_interventions and teacher_student_notes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog

from mentra.db.database import get_db
from mentra.utils.timeutil import utc_now_iso

logger = structlog.get_logger(__name__)

ROLES = ("student", "teacher", "parent", "admin")


@dataclass
class UserRecord:
    """User record from database."""

    id: str
    email: str
    password_hash: str
    role: str
    first_name: str
    last_name: str
    status: str
    timezone: str
    last_login_at: str | None
    created_at: str
    updated_at: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class StudentProfileRecord:
    """Student profile with gamification counters."""

    user_id: str
    grade_level: int | None
    learning_style: str | None
    total_points: int
    current_streak: int
    best_streak: int
    last_activity_date: str | None


@dataclass
class StudentSummary:
    """A student joined with its profile, as shown on dashboards."""

    id: str
    email: str
    first_name: str
    last_name: str
    grade_level: int | None
    total_points: int
    current_streak: int
    best_streak: int
    last_activity_date: str | None


@dataclass
class InterventionRecord:
    """Teacher intervention for a student."""

    id: str
    teacher_id: str
    student_id: str
    intervention_type: str
    description: str
    status: str
    scheduled_for: str | None
    completed_at: str | None
    outcome: str | None
    created_at: str
    updated_at: str


# =============================================================================
# USERS
# =============================================================================


def create_user(
    email: str,
    password_hash: str,
    role: str,
    first_name: str,
    last_name: str = "",
    grade_level: int | None = None,
    learning_style: str | None = None,
) -> UserRecord:
    """Insert a new user. Students also get a student_profiles row.

    Raises:
        ValueError: If role is unknown
        sqlite3.IntegrityError: If email already exists
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    user_id = str(uuid.uuid4())
    now = utc_now_iso()

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO users (id, email, password_hash, role, first_name, last_name, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, email.strip().lower(), password_hash, role, first_name, last_name, now, now),
        )
        if role == "student":
            conn.execute(
                """
                INSERT INTO student_profiles (user_id, grade_level, learning_style, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, grade_level, learning_style, now, now),
            )
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    logger.info("users.created", user_id=user_id, role=role)
    return _row_to_user(row)


def get_user_by_id(user_id: str) -> UserRecord | None:
    """Get user by ID."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    if row is None:
        return None
    return _row_to_user(row)


def get_user_by_email(email: str) -> UserRecord | None:
    """Get user by e-mail (case-insensitive)."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
        ).fetchone()

    if row is None:
        return None
    return _row_to_user(row)


def list_users(role: str | None = None) -> list[UserRecord]:
    """List users, optionally filtered by role."""
    with get_db() as conn:
        if role:
            rows = conn.execute(
                "SELECT * FROM users WHERE role = ? ORDER BY created_at", (role,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()

    return [_row_to_user(row) for row in rows]


def record_login(user_id: str) -> None:
    """Stamp last_login_at."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            "UPDATE users SET last_login_at = ?, updated_at = ? WHERE id = ?",
            (now, now, user_id),
        )


def delete_user(user_id: str) -> bool:
    """Delete user by ID. Owned rows are removed by ON DELETE CASCADE.

    Returns:
        True if deleted, False if not found
    """
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("users.deleted", user_id=user_id)
    return deleted


def _row_to_user(row) -> UserRecord:
    """Convert database row to UserRecord."""
    return UserRecord(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=row["role"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        status=row["status"],
        timezone=row["timezone"],
        last_login_at=row["last_login_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# =============================================================================
# STUDENT PROFILES
# =============================================================================


def get_student_profile(student_id: str) -> StudentProfileRecord | None:
    """Get the gamification profile of a student."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM student_profiles WHERE user_id = ?", (student_id,)
        ).fetchone()

    if row is None:
        return None

    return StudentProfileRecord(
        user_id=row["user_id"],
        grade_level=row["grade_level"],
        learning_style=row["learning_style"],
        total_points=row["total_points"],
        current_streak=row["current_streak"],
        best_streak=row["best_streak"],
        last_activity_date=row["last_activity_date"],
    )


def get_student_summary(student_id: str) -> StudentSummary | None:
    """Student joined with its profile."""
    with get_db() as conn:
        row = conn.execute(
            f"{_SUMMARY_SELECT} WHERE u.id = ?", (student_id,)
        ).fetchone()

    if row is None:
        return None
    return _row_to_summary(row)


_SUMMARY_SELECT = """
    SELECT u.id, u.email, u.first_name, u.last_name,
           p.grade_level, p.total_points, p.current_streak, p.best_streak,
           p.last_activity_date
    FROM users u
    JOIN student_profiles p ON p.user_id = u.id
"""


def _row_to_summary(row) -> StudentSummary:
    return StudentSummary(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        grade_level=row["grade_level"],
        total_points=row["total_points"],
        current_streak=row["current_streak"],
        best_streak=row["best_streak"],
        last_activity_date=row["last_activity_date"],
    )


# =============================================================================
# TEACHER / PARENT RELATIONSHIPS
# =============================================================================


def assign_student_to_teacher(
    teacher_id: str, student_id: str, subject: str | None = None
) -> None:
    """Create or reactivate a teacher-student assignment."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO teacher_student_assignments (id, teacher_id, student_id, subject, status)
            VALUES (?, ?, ?, ?, 'active')
            ON CONFLICT(teacher_id, student_id) DO UPDATE SET
                status = 'active', subject = COALESCE(excluded.subject, subject)
            """,
            (str(uuid.uuid4()), teacher_id, student_id, subject),
        )

    logger.info("users.student_assigned", teacher_id=teacher_id, student_id=student_id)


def link_parent_to_child(
    parent_id: str, child_id: str, relationship_type: str = "parent"
) -> None:
    """Create or reactivate a parent-child relationship."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO parent_child_relationships (id, parent_id, child_id, relationship_type, status)
            VALUES (?, ?, ?, ?, 'active')
            ON CONFLICT(parent_id, child_id) DO UPDATE SET
                status = 'active', relationship_type = excluded.relationship_type
            """,
            (str(uuid.uuid4()), parent_id, child_id, relationship_type),
        )

    logger.info("users.parent_linked", parent_id=parent_id, child_id=child_id)


def is_teacher_of(teacher_id: str, student_id: str) -> bool:
    """Whether the teacher has an active assignment for the student."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT 1 FROM teacher_student_assignments
            WHERE teacher_id = ? AND student_id = ? AND status = 'active'
            """,
            (teacher_id, student_id),
        ).fetchone()
    return row is not None


def is_parent_of(parent_id: str, child_id: str) -> bool:
    """Whether the parent has an active relationship with the child."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT 1 FROM parent_child_relationships
            WHERE parent_id = ? AND child_id = ? AND status = 'active'
            """,
            (parent_id, child_id),
        ).fetchone()
    return row is not None


def list_teacher_students(teacher_id: str) -> list[StudentSummary]:
    """Students with an active assignment to the teacher."""
    with get_db() as conn:
        rows = conn.execute(
            f"""
            {_SUMMARY_SELECT}
            JOIN teacher_student_assignments a ON a.student_id = u.id
            WHERE a.teacher_id = ? AND a.status = 'active' AND u.status = 'active'
            ORDER BY u.last_name, u.first_name
            """,
            (teacher_id,),
        ).fetchall()
    return [_row_to_summary(row) for row in rows]


def list_parent_children(parent_id: str) -> list[StudentSummary]:
    """Children with an active relationship to the parent."""
    with get_db() as conn:
        rows = conn.execute(
            f"""
            {_SUMMARY_SELECT}
            JOIN parent_child_relationships r ON r.child_id = u.id
            WHERE r.parent_id = ? AND r.status = 'active'
            ORDER BY u.first_name
            """,
            (parent_id,),
        ).fetchall()
    return [_row_to_summary(row) for row in rows]


def list_student_teachers(student_id: str) -> list[UserRecord]:
    """Teachers actively assigned to the student."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT u.* FROM users u
            JOIN teacher_student_assignments a ON a.teacher_id = u.id
            WHERE a.student_id = ? AND a.status = 'active'
            """,
            (student_id,),
        ).fetchall()
    return [_row_to_user(row) for row in rows]


def list_student_parents(student_id: str) -> list[UserRecord]:
    """Parents actively linked to the student."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT u.* FROM users u
            JOIN parent_child_relationships r ON r.parent_id = u.id
            WHERE r.child_id = ? AND r.status = 'active'
            """,
            (student_id,),
        ).fetchall()
    return [_row_to_user(row) for row in rows]


# =============================================================================
# TEACHER INTERVENTIONS AND NOTES
# =============================================================================


def create_intervention(
    teacher_id: str,
    student_id: str,
    intervention_type: str,
    description: str,
    scheduled_for: str | None = None,
) -> InterventionRecord:
    """Record a planned intervention."""
    intervention_id = str(uuid.uuid4())
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO teacher_interventions (
                id, teacher_id, student_id, intervention_type, description,
                scheduled_for, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (intervention_id, teacher_id, student_id, intervention_type, description,
             scheduled_for, now, now),
        )
        row = conn.execute(
            "SELECT * FROM teacher_interventions WHERE id = ?", (intervention_id,)
        ).fetchone()

    logger.info("users.intervention_created", teacher_id=teacher_id, student_id=student_id)
    return _row_to_intervention(row)


def update_intervention_status(
    intervention_id: str, teacher_id: str, status: str, outcome: str | None = None
) -> InterventionRecord | None:
    """Move an intervention to a new status. Only its author may update it."""
    now = utc_now_iso()
    completed_at = now if status == "completed" else None
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE teacher_interventions
            SET status = ?, outcome = COALESCE(?, outcome),
                completed_at = COALESCE(?, completed_at), updated_at = ?
            WHERE id = ? AND teacher_id = ?
            """,
            (status, outcome, completed_at, now, intervention_id, teacher_id),
        )
        if cursor.rowcount == 0:
            return None
        row = conn.execute(
            "SELECT * FROM teacher_interventions WHERE id = ?", (intervention_id,)
        ).fetchone()
    return _row_to_intervention(row)


def list_interventions(teacher_id: str, student_id: str | None = None) -> list[InterventionRecord]:
    """Interventions created by the teacher, newest first."""
    query = "SELECT * FROM teacher_interventions WHERE teacher_id = ?"
    params: list = [teacher_id]
    if student_id:
        query += " AND student_id = ?"
        params.append(student_id)
    query += " ORDER BY created_at DESC"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_intervention(row) for row in rows]


def _row_to_intervention(row) -> InterventionRecord:
    return InterventionRecord(
        id=row["id"],
        teacher_id=row["teacher_id"],
        student_id=row["student_id"],
        intervention_type=row["intervention_type"],
        description=row["description"],
        status=row["status"],
        scheduled_for=row["scheduled_for"],
        completed_at=row["completed_at"],
        outcome=row["outcome"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def save_teacher_note(teacher_id: str, student_id: str, note: str) -> None:
    """Upsert the teacher's private note about a student."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO teacher_student_notes (id, teacher_id, student_id, note, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(teacher_id, student_id) DO UPDATE SET
                note = excluded.note, updated_at = excluded.updated_at
            """,
            (str(uuid.uuid4()), teacher_id, student_id, note, now, now),
        )


def get_teacher_note(teacher_id: str, student_id: str) -> str | None:
    """The teacher's private note about a student, if any."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT note FROM teacher_student_notes WHERE teacher_id = ? AND student_id = ?",
            (teacher_id, student_id),
        ).fetchone()
    return row["note"] if row else None
