"""Tests for streaks, achievements, goals and dashboard preferences (F1)."""

from datetime import date

import pytest

from mentra.db import dashboard_repository, users_repository
from mentra.db.dashboard_repository import DashboardPreferences

DAY = date(2024, 3, 4)


def _streak(student_id: str, streak_type: str = "daily_journal"):
    return next(s for s in dashboard_repository.list_streaks(student_id) if s.streak_type == streak_type)


class TestLearningStreaks:
    """Tests for update_learning_streak."""

    def test_first_activity_starts_at_one(self, student):
        """The first activity starts a streak of 1."""
        assert dashboard_repository.update_learning_streak(student.id, "daily_journal", DAY) == 1

    def test_next_day_extends(self, student):
        """Activity on the following day adds one."""
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 4))
        count = dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 5))
        assert count == 2

    def test_same_day_unchanged(self, student):
        """A second activity on the same day leaves the count alone."""
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 4))
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 5))
        count = dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 5))
        assert count == 2

    def test_gap_resets_to_one(self, student):
        """Missing a day restarts the streak but keeps the best."""
        for day in (4, 5, 6):
            dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, day))
        count = dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 9))
        assert count == 1

        streak = _streak(student.id)
        assert streak.current_count == 1
        assert streak.best_count == 3
        assert streak.started_at == "2024-03-09"

    def test_streak_types_are_independent(self, student):
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 4))
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 5))
        count = dashboard_repository.update_learning_streak(student.id, "problem_solving", date(2024, 3, 5))
        assert count == 1

    def test_profile_mirrors_streaks(self, student):
        """Student profile holds the longest current streak and last activity day."""
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 4))
        dashboard_repository.update_learning_streak(student.id, "daily_journal", date(2024, 3, 5))

        profile = users_repository.get_student_profile(student.id)
        assert profile.current_streak == 2
        assert profile.best_streak == 2
        assert profile.last_activity_date == "2024-03-05"

    def test_unknown_streak_type(self, student):
        with pytest.raises(ValueError):
            dashboard_repository.update_learning_streak(student.id, "sleeping", DAY)


class TestAchievements:
    """Tests for award_achievement."""

    def test_award_once(self, student):
        """Awarding the same achievement twice only counts once."""
        first = dashboard_repository.award_achievement(
            student.id, "first_journal_entry", "First Reflection", "Wrote an entry", "reflection", 10
        )
        second = dashboard_repository.award_achievement(
            student.id, "first_journal_entry", "First Reflection", "Wrote an entry", "reflection", 10
        )

        assert first is True
        assert second is False
        assert len(dashboard_repository.list_achievements(student.id)) == 1
        assert dashboard_repository.count_achievements(student.id) == (1, 10)
        assert users_repository.get_student_profile(student.id).total_points == 10

    def test_award_logs_activity(self, student):
        """A new achievement shows up in the activity feed."""
        dashboard_repository.award_achievement(
            student.id, "streak_7_days", "On a Roll", "7 days", "streak", 25, {"streak": 7}
        )
        feed = dashboard_repository.list_activities(student.id, activity_type="achievement_earned")
        assert len(feed) == 1
        assert feed[0].title == "Earned: On a Roll"
        assert feed[0].metadata["points"] == 25

        achievement = dashboard_repository.list_achievements(student.id)[0]
        assert achievement.metadata == {"streak": 7}

    def test_filter_by_category(self, student):
        dashboard_repository.award_achievement(student.id, "a", "A", "", "reflection", 5)
        dashboard_repository.award_achievement(student.id, "b", "B", "", "streak", 5)
        assert [a.achievement_id for a in dashboard_repository.list_achievements(student.id, "streak")] == ["b"]


class TestGoals:
    """Tests for goals and milestones."""

    def test_create_with_milestones(self, student):
        """Milestones keep their order and progress starts at zero."""
        goal = dashboard_repository.create_goal(
            student.id, "Read 3 books", milestones=["Book 1", "Book 2", "Book 3"]
        )
        assert goal.status == "active"
        assert goal.progress_percentage == 0
        assert [m.title for m in goal.milestones] == ["Book 1", "Book 2", "Book 3"]

    def test_milestone_progress(self, student):
        """Completing milestones recomputes progress."""
        goal = dashboard_repository.create_goal(student.id, "Practice", milestones=["a", "b"])
        updated = dashboard_repository.complete_milestone(goal.id, goal.milestones[0].id)
        assert updated.progress_percentage == 50.0
        assert updated.status == "active"

    def test_last_milestone_completes_goal(self, student):
        """Completing every milestone completes the goal."""
        goal = dashboard_repository.create_goal(student.id, "Practice", milestones=["a", "b"])
        dashboard_repository.complete_milestone(goal.id, goal.milestones[0].id)
        done = dashboard_repository.complete_milestone(goal.id, goal.milestones[1].id)
        assert done.progress_percentage == 100.0
        assert done.status == "completed"
        assert done.completed_at is not None

    def test_milestone_of_other_goal(self, student):
        """A milestone ID from another goal is not found."""
        goal_a = dashboard_repository.create_goal(student.id, "A", milestones=["a"])
        goal_b = dashboard_repository.create_goal(student.id, "B", milestones=["b"])
        assert dashboard_repository.complete_milestone(goal_a.id, goal_b.milestones[0].id) is None

    def test_add_milestone_appends(self, student):
        goal = dashboard_repository.create_goal(student.id, "A", milestones=["a"])
        goal = dashboard_repository.add_milestone(goal.id, "b")
        assert len(goal.milestones) == 2
        assert goal.milestones[1].position == 1

    def test_update_to_completed(self, student):
        """Marking a goal completed sets progress to 100."""
        goal = dashboard_repository.create_goal(student.id, "A")
        updated = dashboard_repository.update_goal(goal.id, status="completed")
        assert updated.progress_percentage == 100
        assert updated.completed_at is not None

    def test_invalid_category(self, student):
        with pytest.raises(ValueError):
            dashboard_repository.create_goal(student.id, "A", category="fun")

    def test_summary(self, student):
        dashboard_repository.create_goal(student.id, "A")
        done = dashboard_repository.create_goal(student.id, "B")
        dashboard_repository.update_goal(done.id, status="completed")

        summary = dashboard_repository.goal_summary(student.id)
        assert summary["total"] == 2
        assert summary["active"] == 1
        assert summary["completed"] == 1

    def test_delete(self, student):
        goal = dashboard_repository.create_goal(student.id, "A", milestones=["x"])
        assert dashboard_repository.delete_goal(goal.id) is True
        assert dashboard_repository.get_goal(goal.id) is None


class TestDashboardPreferences:
    """Tests for per-user dashboard preferences."""

    def test_defaults(self, student):
        prefs = dashboard_repository.get_dashboard_preferences(student.id)
        assert prefs.default_timeframe == "7d"
        assert prefs.theme == "auto"
        assert prefs.widget_layout == []

    def test_save_and_load(self, student):
        """Saved preferences round-trip."""
        layout = [{"widget": "streaks", "x": 0, "y": 0}]
        dashboard_repository.save_dashboard_preferences(
            DashboardPreferences(student.id, layout, "30d", "dark", False)
        )
        prefs = dashboard_repository.get_dashboard_preferences(student.id)
        assert prefs.widget_layout == layout
        assert prefs.default_timeframe == "30d"
        assert prefs.theme == "dark"
        assert prefs.show_achievements is False

    def test_invalid_theme(self, student):
        with pytest.raises(ValueError):
            dashboard_repository.save_dashboard_preferences(
                DashboardPreferences(student.id, [], "7d", "neon")
            )
