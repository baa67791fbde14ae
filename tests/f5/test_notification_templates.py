"""Tests for notification templates (F5)."""

import pytest

from mentra.notifications.templates import get_template, list_templates, render_template


class TestRenderTemplate:
    def test_title_from_heading(self):
        title, message = render_template(
            "achievement_earned", title="First Reflection", description="Wrote your first journal entry", points=10
        )
        assert title == "Achievement unlocked: First Reflection"
        assert message == "Wrote your first journal entry. You earned 10 points!"

    def test_missing_variable_left_in_place(self):
        title, _ = render_template("teacher_message", message="Hi")
        assert title == "Message from {teacher_name}"

    def test_unknown_template(self):
        with pytest.raises(FileNotFoundError):
            get_template("no_such_template")


def test_list_templates():
    assert list_templates() == [
        "achievement_earned",
        "assignment_reminder",
        "goal_completed",
        "student_alert",
        "teacher_message",
    ]
