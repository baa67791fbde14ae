"""SQLite database connection and schema management.

Provides connection management and schema initialization for Mentra.
One connection is opened per unit of work; foreign keys are enforced so
that deleting a user cascades to everything the user owns.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

from mentra.config.notification_types import list_notification_types

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/mentra.db")

# Current connection (module-level for simplicity in CLI context)
_db_path: Path | None = None

# SQLite expression producing the same format as utils.timeutil.to_iso
SQL_NOW = "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"

# Tables whose updated_at column is maintained by trigger
_UPDATED_AT_TABLES = {
    "users": "id",
    "student_profiles": "user_id",
    "teacher_interventions": "id",
    "teacher_student_notes": "id",
    "journal_entries": "id",
    "problem_templates": "id",
    "problem_sessions": "id",
    "student_goals": "id",
    "notifications": "id",
    "dashboard_preferences": "user_id",
}

ACHIEVEMENT_CATEGORIES = [
    ("learning", "Learning", "Progress in lessons and study"),
    ("streak", "Streaks", "Consistent daily activity"),
    ("goal", "Goals", "Completed learning goals"),
    ("social", "Social", "Collaboration and sharing"),
    ("creativity", "Creativity", "Creative work and expression"),
    ("problem_solving", "Problem Solving", "Scaffolded problem sessions"),
    ("reflection", "Reflection", "Journaling and self-reflection"),
    ("growth", "Growth", "Improvement over time"),
]


def init_db(db_path: Path | None = None) -> None:
    """Initialize database with schema and seed data.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/mentra.db
    """
    global _db_path
    _db_path = Path(db_path) if db_path else DEFAULT_DB_PATH

    # Ensure directory exists
    _db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db() as conn:
        _create_schema(conn)
        _create_triggers(conn)
        _seed_reference_data(conn)

    logger.info("database.initialized", path=str(_db_path))


def is_initialized() -> bool:
    """Whether init_db has been called in this process."""
    return _db_path is not None


def get_db_path() -> Path:
    """Path of the active database file."""
    return _db_path or DEFAULT_DB_PATH


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            cursor = conn.execute("SELECT * FROM journal_entries")
            rows = cursor.fetchall()
    """
    db_path = get_db_path()

    # Ensure directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        f"""
        -- Users and roles
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE COLLATE NOCASE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL CHECK(role IN ('student', 'teacher', 'parent', 'admin')),
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'inactive', 'suspended')),
            timezone TEXT NOT NULL DEFAULT 'UTC',
            last_login_at TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS student_profiles (
            user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            grade_level INTEGER CHECK(grade_level IS NULL OR grade_level BETWEEN 1 AND 12),
            learning_style TEXT CHECK(learning_style IS NULL OR learning_style IN ('visual', 'auditory', 'kinesthetic', 'reading')),
            total_points INTEGER NOT NULL DEFAULT 0 CHECK(total_points >= 0),
            current_streak INTEGER NOT NULL DEFAULT 0 CHECK(current_streak >= 0),
            best_streak INTEGER NOT NULL DEFAULT 0 CHECK(best_streak >= 0),
            last_activity_date TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS teacher_student_assignments (
            id TEXT PRIMARY KEY,
            teacher_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject TEXT,
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'inactive')),
            assigned_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(teacher_id, student_id)
        );

        CREATE TABLE IF NOT EXISTS parent_child_relationships (
            id TEXT PRIMARY KEY,
            parent_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            child_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            relationship_type TEXT NOT NULL DEFAULT 'parent' CHECK(relationship_type IN ('parent', 'guardian', 'other')),
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'inactive')),
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(parent_id, child_id),
            CHECK(parent_id <> child_id)
        );

        CREATE TABLE IF NOT EXISTS teacher_interventions (
            id TEXT PRIMARY KEY,
            teacher_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            intervention_type TEXT NOT NULL CHECK(intervention_type IN ('check_in', 'encouragement', 'academic_support', 'parent_contact', 'other')),
            description TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'planned' CHECK(status IN ('planned', 'in_progress', 'completed', 'cancelled')),
            scheduled_for TEXT,
            completed_at TEXT,
            outcome TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS teacher_student_notes (
            id TEXT PRIMARY KEY,
            teacher_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            note TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(teacher_id, student_id)
        );

        -- Journal
        CREATE TABLE IF NOT EXISTS journal_entries (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            content_hash TEXT NOT NULL,
            word_count INTEGER NOT NULL DEFAULT 0,
            reading_time_minutes INTEGER NOT NULL DEFAULT 1,
            mood TEXT,
            privacy_level TEXT NOT NULL DEFAULT 'private' CHECK(privacy_level IN ('private', 'teacher_shareable', 'parent_shareable', 'public')),
            is_private INTEGER NOT NULL DEFAULT 1,
            is_shareable_with_teacher INTEGER NOT NULL DEFAULT 0,
            is_shareable_with_parent INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS journal_emotions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entry_id TEXT NOT NULL REFERENCES journal_entries(id) ON DELETE CASCADE,
            emotion TEXT NOT NULL CHECK(emotion IN ('happy', 'sad', 'angry', 'anxious', 'excited', 'calm', 'frustrated', 'proud', 'confused', 'motivated', 'tired', 'grateful', 'curious')),
            intensity INTEGER NOT NULL DEFAULT 5 CHECK(intensity BETWEEN 1 AND 10),
            UNIQUE(entry_id, emotion)
        );

        CREATE TABLE IF NOT EXISTS journal_tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            usage_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS journal_entry_tags (
            entry_id TEXT NOT NULL REFERENCES journal_entries(id) ON DELETE CASCADE,
            tag_id INTEGER NOT NULL REFERENCES journal_tags(id) ON DELETE CASCADE,
            PRIMARY KEY (entry_id, tag_id)
        );

        -- Problem solving
        CREATE TABLE IF NOT EXISTS problem_templates (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            problem_type TEXT NOT NULL DEFAULT 'general' CHECK(problem_type IN ('math', 'science', 'logic', 'reading', 'writing', 'general')),
            subject TEXT NOT NULL DEFAULT 'general',
            difficulty_level TEXT NOT NULL DEFAULT 'medium' CHECK(difficulty_level IN ('easy', 'medium', 'hard', 'advanced')),
            problem_statement TEXT NOT NULL,
            scaffolding_steps TEXT NOT NULL DEFAULT '[]',
            hint_system TEXT NOT NULL DEFAULT '[]',
            estimated_time_minutes INTEGER,
            is_active INTEGER NOT NULL DEFAULT 1,
            usage_count INTEGER NOT NULL DEFAULT 0,
            success_rate REAL,
            average_completion_time REAL,
            created_by TEXT REFERENCES users(id) ON DELETE SET NULL,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS problem_sessions (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            template_id TEXT NOT NULL REFERENCES problem_templates(id) ON DELETE CASCADE,
            session_status TEXT NOT NULL DEFAULT 'active' CHECK(session_status IN ('active', 'completed', 'abandoned', 'paused')),
            started_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            completed_at TEXT,
            abandoned_at TEXT,
            last_activity_at TEXT,
            current_step INTEGER NOT NULL DEFAULT 1,
            total_steps INTEGER NOT NULL DEFAULT 0,
            steps_completed INTEGER NOT NULL DEFAULT 0,
            hints_requested INTEGER NOT NULL DEFAULT 0 CHECK(hints_requested >= 0),
            mistakes_made INTEGER NOT NULL DEFAULT 0 CHECK(mistakes_made >= 0),
            accuracy_score REAL CHECK(accuracy_score IS NULL OR accuracy_score BETWEEN 0 AND 1),
            completion_time_minutes REAL,
            emotional_state TEXT,
            difficulty_perception INTEGER CHECK(difficulty_perception IS NULL OR difficulty_perception BETWEEN 1 AND 5),
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS problem_session_steps (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL REFERENCES problem_sessions(id) ON DELETE CASCADE,
            step_number INTEGER NOT NULL,
            title TEXT NOT NULL DEFAULT '',
            step_type TEXT NOT NULL DEFAULT 'response',
            prompt TEXT NOT NULL DEFAULT '',
            expected_response TEXT,
            scaffolding_guidance TEXT,
            student_response TEXT,
            attempts_count INTEGER NOT NULL DEFAULT 0,
            accuracy_score REAL,
            response_quality TEXT CHECK(response_quality IS NULL OR response_quality IN ('excellent', 'good', 'needs_improvement', 'incorrect')),
            feedback TEXT,
            is_completed INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            UNIQUE(session_id, step_number)
        );

        CREATE TABLE IF NOT EXISTS session_heartbeats (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL REFERENCES problem_sessions(id) ON DELETE CASCADE,
            engagement_level TEXT NOT NULL DEFAULT 'medium' CHECK(engagement_level IN ('high', 'medium', 'low')),
            recorded_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        -- Adaptation and analytics
        CREATE TABLE IF NOT EXISTS student_performance_profiles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject TEXT NOT NULL DEFAULT 'general',
            easy_performance REAL,
            medium_performance REAL,
            hard_performance REAL,
            very_hard_performance REAL,
            overall_performance REAL NOT NULL DEFAULT 0,
            accuracy_trend REAL NOT NULL DEFAULT 0,
            speed_trend REAL NOT NULL DEFAULT 0,
            consistency_score REAL NOT NULL DEFAULT 0,
            optimal_difficulty_level TEXT CHECK(optimal_difficulty_level IS NULL OR optimal_difficulty_level IN ('very_easy', 'easy', 'medium', 'hard', 'very_hard')),
            profile_confidence REAL NOT NULL DEFAULT 0,
            sessions_analyzed INTEGER NOT NULL DEFAULT 0,
            last_updated TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(student_id, subject)
        );

        CREATE TABLE IF NOT EXISTS student_difficulty_preferences (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject TEXT NOT NULL DEFAULT 'general',
            current_difficulty TEXT NOT NULL CHECK(current_difficulty IN ('very_easy', 'easy', 'medium', 'hard', 'very_hard')),
            strategy TEXT NOT NULL DEFAULT 'moderate' CHECK(strategy IN ('conservative', 'moderate', 'aggressive', 'personalized')),
            adjustment_count INTEGER NOT NULL DEFAULT 0,
            last_adjusted_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(student_id, subject)
        );

        CREATE TABLE IF NOT EXISTS difficulty_adaptation_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject TEXT NOT NULL DEFAULT 'general',
            previous_difficulty TEXT NOT NULL,
            new_difficulty TEXT NOT NULL,
            adjustment_value REAL NOT NULL,
            performance_score REAL,
            confidence REAL,
            strategy TEXT NOT NULL,
            reason TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS performance_anomalies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject TEXT NOT NULL DEFAULT 'general',
            anomaly_type TEXT NOT NULL CHECK(anomaly_type IN ('performance_spike', 'performance_drop')),
            current_value REAL NOT NULL,
            baseline_value REAL NOT NULL,
            z_score REAL NOT NULL,
            detected_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS learning_trajectories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            subject TEXT NOT NULL DEFAULT 'general',
            trend_direction TEXT NOT NULL CHECK(trend_direction IN ('improving', 'declining', 'stable', 'insufficient_data')),
            trend_strength REAL NOT NULL DEFAULT 0,
            confidence_level REAL NOT NULL DEFAULT 0,
            data_points TEXT NOT NULL DEFAULT '[]',
            sessions_analyzed INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(student_id, subject)
        );

        CREATE TABLE IF NOT EXISTS session_alerts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL REFERENCES problem_sessions(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            alert_type TEXT NOT NULL,
            alert_level TEXT NOT NULL DEFAULT 'info' CHECK(alert_level IN ('info', 'warning', 'critical')),
            message TEXT NOT NULL,
            is_resolved INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS analytics_cache (
            cache_key TEXT PRIMARY KEY,
            data TEXT NOT NULL,
            expires_at TEXT NOT NULL,
            hit_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            last_accessed_at TEXT
        );

        -- Goals, achievements, streaks, dashboard
        CREATE TABLE IF NOT EXISTS student_goals (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL DEFAULT 'academic' CHECK(category IN ('academic', 'personal', 'skill', 'habit', 'other')),
            target_date TEXT,
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'completed', 'paused', 'cancelled')),
            progress_percentage REAL NOT NULL DEFAULT 0 CHECK(progress_percentage BETWEEN 0 AND 100),
            completed_at TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS goal_milestones (
            id TEXT PRIMARY KEY,
            goal_id TEXT NOT NULL REFERENCES student_goals(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS achievement_categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS student_achievements (
            id TEXT PRIMARY KEY,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL REFERENCES achievement_categories(id),
            points INTEGER NOT NULL DEFAULT 0 CHECK(points >= 0),
            metadata TEXT NOT NULL DEFAULT '{{}}',
            earned_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(student_id, achievement_id)
        );

        CREATE TABLE IF NOT EXISTS learning_streaks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            streak_type TEXT NOT NULL CHECK(streak_type IN ('daily_journal', 'problem_solving', 'overall_activity', 'goal_progress')),
            current_count INTEGER NOT NULL DEFAULT 0 CHECK(current_count >= 0),
            best_count INTEGER NOT NULL DEFAULT 0 CHECK(best_count >= 0),
            last_activity_date TEXT NOT NULL,
            started_at TEXT NOT NULL,
            UNIQUE(student_id, streak_type)
        );

        CREATE TABLE IF NOT EXISTS dashboard_activities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            metadata TEXT NOT NULL DEFAULT '{{}}',
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS dashboard_preferences (
            user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            widget_layout TEXT NOT NULL DEFAULT '[]',
            default_timeframe TEXT NOT NULL DEFAULT '7d' CHECK(default_timeframe IN ('7d', '30d', '90d', 'all')),
            theme TEXT NOT NULL DEFAULT 'auto' CHECK(theme IN ('light', 'dark', 'auto')),
            show_achievements INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        -- Notifications
        CREATE TABLE IF NOT EXISTS notification_types (
            type_key TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL CHECK(category IN ('academic', 'social', 'system', 'achievement', 'reminder')),
            priority TEXT NOT NULL DEFAULT 'normal' CHECK(priority IN ('low', 'normal', 'high', 'urgent')),
            default_enabled INTEGER NOT NULL DEFAULT 1,
            requires_action INTEGER NOT NULL DEFAULT 0,
            channels TEXT NOT NULL DEFAULT '["in_app"]',
            target_roles TEXT NOT NULL DEFAULT '["student"]',
            template TEXT
        );

        CREATE TABLE IF NOT EXISTS notification_preferences (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type_key TEXT NOT NULL REFERENCES notification_types(type_key) ON DELETE CASCADE,
            enabled INTEGER NOT NULL DEFAULT 1,
            channels TEXT NOT NULL DEFAULT '["in_app"]',
            frequency TEXT NOT NULL DEFAULT 'immediate' CHECK(frequency IN ('immediate', 'daily', 'weekly', 'never')),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            UNIQUE(user_id, type_key)
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            type_key TEXT NOT NULL REFERENCES notification_types(type_key),
            recipient_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            sender_id TEXT REFERENCES users(id) ON DELETE SET NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            data TEXT NOT NULL DEFAULT '{{}}',
            priority TEXT NOT NULL DEFAULT 'normal' CHECK(priority IN ('low', 'normal', 'high', 'urgent')),
            status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending', 'sent', 'delivered', 'read', 'dismissed', 'failed')),
            action_required INTEGER NOT NULL DEFAULT 0,
            action_url TEXT,
            action_text TEXT,
            action_completed_at TEXT,
            scheduled_for TEXT NOT NULL DEFAULT ({SQL_NOW}),
            sent_at TEXT,
            delivered_at TEXT,
            read_at TEXT,
            dismissed_at TEXT,
            expires_at TEXT,
            created_at TEXT NOT NULL DEFAULT ({SQL_NOW}),
            updated_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS notification_delivery_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            notification_id TEXT NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            channel TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('success', 'failed', 'skipped')),
            connections INTEGER NOT NULL DEFAULT 0,
            error TEXT,
            attempted_at TEXT NOT NULL DEFAULT ({SQL_NOW})
        );

        -- Indexes
        CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);
        CREATE INDEX IF NOT EXISTS idx_assignments_teacher ON teacher_student_assignments(teacher_id, status);
        CREATE INDEX IF NOT EXISTS idx_relationships_parent ON parent_child_relationships(parent_id, status);
        CREATE INDEX IF NOT EXISTS idx_journal_student_created ON journal_entries(student_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_journal_privacy ON journal_entries(privacy_level);
        CREATE INDEX IF NOT EXISTS idx_templates_subject ON problem_templates(subject, difficulty_level);
        CREATE INDEX IF NOT EXISTS idx_sessions_student_status ON problem_sessions(student_id, session_status, started_at);
        CREATE INDEX IF NOT EXISTS idx_heartbeats_session ON session_heartbeats(session_id);
        CREATE INDEX IF NOT EXISTS idx_goals_student_status ON student_goals(student_id, status);
        CREATE INDEX IF NOT EXISTS idx_milestones_goal ON goal_milestones(goal_id);
        CREATE INDEX IF NOT EXISTS idx_achievements_student ON student_achievements(student_id, earned_at);
        CREATE INDEX IF NOT EXISTS idx_activities_student ON dashboard_activities(student_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_notifications_recipient_status ON notifications(recipient_id, status);
        CREATE INDEX IF NOT EXISTS idx_notifications_scheduled ON notifications(status, scheduled_for);
        CREATE INDEX IF NOT EXISTS idx_analytics_cache_expires ON analytics_cache(expires_at);
        """
    )


def _create_triggers(conn: sqlite3.Connection) -> None:
    """Create triggers for updated_at and derived aggregate columns."""
    for table, key in _UPDATED_AT_TABLES.items():
        conn.execute(
            f"""
            CREATE TRIGGER IF NOT EXISTS trg_{table}_updated_at
            AFTER UPDATE ON {table}
            FOR EACH ROW WHEN NEW.updated_at IS OLD.updated_at
            BEGIN
                UPDATE {table} SET updated_at = {SQL_NOW} WHERE {key} = NEW.{key};
            END
            """
        )

    conn.executescript(
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_journal_tag_usage_insert
        AFTER INSERT ON journal_entry_tags
        BEGIN
            UPDATE journal_tags SET usage_count = usage_count + 1 WHERE id = NEW.tag_id;
        END;

        CREATE TRIGGER IF NOT EXISTS trg_journal_tag_usage_delete
        AFTER DELETE ON journal_entry_tags
        BEGIN
            UPDATE journal_tags SET usage_count = MAX(0, usage_count - 1) WHERE id = OLD.tag_id;
        END;

        CREATE TRIGGER IF NOT EXISTS trg_goal_progress_milestone_insert
        AFTER INSERT ON goal_milestones
        BEGIN
            UPDATE student_goals
            SET progress_percentage = (
                SELECT ROUND(100.0 * SUM(CASE WHEN completed_at IS NOT NULL THEN 1 ELSE 0 END) / COUNT(*), 2)
                FROM goal_milestones WHERE goal_id = NEW.goal_id
            )
            WHERE id = NEW.goal_id;
        END;

        CREATE TRIGGER IF NOT EXISTS trg_goal_progress_milestone_update
        AFTER UPDATE OF completed_at ON goal_milestones
        BEGIN
            UPDATE student_goals
            SET progress_percentage = (
                SELECT ROUND(100.0 * SUM(CASE WHEN completed_at IS NOT NULL THEN 1 ELSE 0 END) / COUNT(*), 2)
                FROM goal_milestones WHERE goal_id = NEW.goal_id
            )
            WHERE id = NEW.goal_id;

            UPDATE student_goals
            SET status = 'completed', completed_at = COALESCE(completed_at, {SQL_NOW})
            WHERE id = NEW.goal_id
              AND status = 'active'
              AND NOT EXISTS (
                  SELECT 1 FROM goal_milestones
                  WHERE goal_id = NEW.goal_id AND completed_at IS NULL
              );
        END;
        """
    )


def _seed_reference_data(conn: sqlite3.Connection) -> None:
    """Seed achievement categories and the notification type catalog."""
    conn.executemany(
        "INSERT OR IGNORE INTO achievement_categories (id, name, description) VALUES (?, ?, ?)",
        ACHIEVEMENT_CATEGORIES,
    )

    for ntype in list_notification_types():
        conn.execute(
            """
            INSERT INTO notification_types (
                type_key, name, description, category, priority,
                default_enabled, requires_action, channels, target_roles, template
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(type_key) DO UPDATE SET
                name = excluded.name,
                description = excluded.description,
                category = excluded.category,
                priority = excluded.priority,
                default_enabled = excluded.default_enabled,
                requires_action = excluded.requires_action,
                channels = excluded.channels,
                target_roles = excluded.target_roles,
                template = excluded.template
            """,
            (
                ntype.type_key,
                ntype.name,
                ntype.description,
                ntype.category,
                ntype.priority,
                int(ntype.default_enabled),
                int(ntype.requires_action),
                json.dumps(ntype.channels),
                json.dumps(ntype.target_roles),
                ntype.template,
            ),
        )
