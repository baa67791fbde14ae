"""Tests for the mentra CLI (F6)."""

import os

import pytest
from typer.testing import CliRunner

from mentra.cli.commands import app
from mentra.db import analytics_repository, notifications_repository, users_repository
from mentra.db.database import get_db
from mentra.utils.timeutil import iso_days_ago

runner = CliRunner()


@pytest.fixture
def invoke(tmp_path):
    """Run the CLI against the test database."""

    def _invoke(*args):
        return runner.invoke(app, ["--db", str(tmp_path / "mentra.db"), *args])

    return _invoke


class TestInitDb:
    def test_init_db(self, invoke):
        result = invoke("init-db")
        assert result.exit_code == 0
        assert "Database ready" in result.stdout


class TestServe:
    def test_db_override_reaches_server(self, invoke, tmp_path, monkeypatch):
        """Reload workers read the --db path from the environment."""
        import uvicorn

        calls = []
        monkeypatch.setenv("MENTRA_DB_PATH", "elsewhere.db")
        monkeypatch.setattr(uvicorn, "run", lambda app_path, **kwargs: calls.append((app_path, kwargs)))

        result = invoke("serve", "--reload")

        assert result.exit_code == 0
        assert calls == [("mentra.web.api:app", {"host": "127.0.0.1", "port": 8000, "reload": True})]
        assert os.environ["MENTRA_DB_PATH"] == str(tmp_path / "mentra.db")


class TestCreateUser:
    """Tests for create-user."""

    def test_create_student(self, invoke):
        result = invoke("create-user", "ana@example.com", "-f", "Ana", "-l", "Lopez", "-g", "7", "--password", "secret-pass")
        assert result.exit_code == 0
        assert "Created student" in result.stdout

        user = users_repository.get_user_by_email("ana@example.com")
        assert user.full_name == "Ana Lopez"
        assert users_repository.get_student_profile(user.id).grade_level == 7

    def test_unknown_role(self, invoke):
        result = invoke("create-user", "x@example.com", "-f", "X", "-r", "boss", "--password", "secret-pass")
        assert result.exit_code == 1
        assert "Unknown role" in result.stdout

    def test_short_password(self, invoke):
        result = invoke("create-user", "x@example.com", "-f", "X", "--password", "short")
        assert result.exit_code == 1
        assert "at least 8 characters" in result.stdout

    def test_duplicate_email(self, invoke, student):
        result = invoke("create-user", student.email, "-f", "Again", "--password", "secret-pass")
        assert result.exit_code == 1
        assert "Email already registered" in result.stdout


class TestRelationships:
    """Tests for assign-teacher and link-parent."""

    def test_assign_by_email(self, invoke, teacher, student):
        result = invoke("assign-teacher", teacher.email, student.email, "--subject", "math")
        assert result.exit_code == 0
        assert users_repository.is_teacher_of(teacher.id, student.id)

    def test_link_parent_by_id(self, invoke, parent, student):
        result = invoke("link-parent", parent.id, student.id, "--relationship", "father")
        assert result.exit_code == 0
        assert users_repository.is_parent_of(parent.id, student.id)

    def test_wrong_role(self, invoke, student):
        result = invoke("assign-teacher", student.email, student.email)
        assert result.exit_code == 1
        assert "expected teacher" in result.stdout

    def test_unknown_user(self, invoke, student):
        result = invoke("link-parent", "ghost@example.com", student.email)
        assert result.exit_code == 1
        assert "User not found" in result.stdout


class TestProfile:
    def test_no_sessions(self, invoke, student):
        result = invoke("profile", student.email)
        assert result.exit_code == 0
        assert "No completed sessions" in result.stdout
        assert "medium" in result.stdout

    def test_with_sessions(self, invoke, student, completed_session):
        completed_session(student.id, 0.7)
        result = invoke("profile", student.email, "--subject", "math")
        assert result.exit_code == 0
        assert "recommended" in result.stdout
        assert analytics_repository.get_profile(student.id, "math") is not None


class TestMaintenance:
    """Tests for deliver-due and cleanup."""

    def test_deliver_due(self, invoke, student):
        record = notifications_repository.create_notification(
            "assignment_reminder", student.id, "Due", "Body", scheduled_for=iso_days_ago(-1)
        )
        with get_db() as conn:
            conn.execute("UPDATE notifications SET scheduled_for = ? WHERE id = ?", (iso_days_ago(1), record.id))

        result = invoke("deliver-due")

        assert result.exit_code == 0
        assert "Delivered 1 notification(s)" in result.stdout
        assert notifications_repository.get_notification(record.id).status == "sent"

    def test_cleanup(self, invoke, student):
        notifications_repository.create_notification(
            "achievement_earned", student.id, "Old", "Body", expires_at=iso_days_ago(1)
        )
        analytics_repository.cache_analytics_result("stale", {"x": 1}, expiry_hours=-1)

        result = invoke("cleanup")

        assert result.exit_code == 0
        assert "Removed 1 notification(s)" in result.stdout
        assert analytics_repository.get_cached_analytics("stale") is None
