"""Tests for session progress, engagement, anomalies and trajectories (F2)."""

import pytest

from mentra.core import session_analytics
from mentra.core.session_analytics import classify_trend, engagement_score, session_progress
from mentra.db import analytics_repository, problems_repository


class TestSessionMetrics:
    """Tests for progress and engagement of a single session."""

    def test_progress(self):
        assert session_progress(1, 4) == 0.25
        assert session_progress(0, 0) == 0.0
        assert session_progress(2, None) == 0.0

    def test_engagement_score(self):
        """Heartbeats credit 60/30/10 seconds by level."""
        assert engagement_score(["high", "medium"], 120) == pytest.approx(0.75)

    def test_engagement_capped(self):
        assert engagement_score(["high"] * 5, 60) == 1.0

    def test_engagement_no_time(self):
        assert engagement_score(["high"], 0) == 0.0

    def test_stored_session_progress(self, student, template_factory):
        template = template_factory()
        session = problems_repository.create_session(student.id, template)
        problems_repository.update_session_progress(session.id, current_step=2, steps_completed=1)
        assert session_analytics.calculate_session_progress(session.id) == 0.5
        assert session_analytics.calculate_session_progress("missing") == 0.0


class TestClassifyTrend:
    """Tests for trajectory classification."""

    def test_insufficient(self):
        assert classify_trend(0.9, 4) == ("insufficient_data", 0.0, 0.0)

    def test_improving(self):
        assert classify_trend(0.5, 5) == ("improving", 0.5, 0.5)

    def test_declining_with_confidence(self):
        assert classify_trend(-0.4, 10) == ("declining", 0.4, 0.8)

    def test_stable_when_undefined(self):
        assert classify_trend(None, 6) == ("stable", 0.0, 0.5)


class TestAnomalyDetection:
    """Tests for detect_performance_anomaly."""

    @pytest.fixture
    def baseline(self, student, completed_session):
        for days_ago, accuracy in enumerate((0.70, 0.75, 0.80, 0.72, 0.78), start=1):
            completed_session(student.id, accuracy, days_ago=days_ago)

    def test_drop_detected(self, student, baseline):
        """A score far below the baseline is logged as a drop."""
        assert session_analytics.detect_performance_anomaly(student.id, 0.2) is True
        anomalies = analytics_repository.list_anomalies(student.id)
        assert len(anomalies) == 1
        assert anomalies[0]["anomaly_type"] == "performance_drop"
        assert anomalies[0]["z_score"] > 2

    def test_spike_detected(self, student, baseline):
        assert session_analytics.detect_performance_anomaly(student.id, 1.0) is True
        assert analytics_repository.list_anomalies(student.id)[0]["anomaly_type"] == "performance_spike"

    def test_normal_score(self, student, baseline):
        assert session_analytics.detect_performance_anomaly(student.id, 0.75) is False
        assert analytics_repository.list_anomalies(student.id) == []

    def test_no_baseline(self, student):
        assert session_analytics.detect_performance_anomaly(student.id, 0.1) is False


class TestLearningTrajectory:
    """Tests for update_learning_trajectory."""

    def test_improving_trajectory(self, student, completed_session):
        """Accuracy rising over six days reads as improving."""
        for days_ago, accuracy in zip(range(6, 0, -1), (0.3, 0.4, 0.5, 0.6, 0.7, 0.8)):
            completed_session(student.id, accuracy, days_ago=days_ago)

        trajectory = session_analytics.update_learning_trajectory(student.id)

        assert trajectory.trend_direction == "improving"
        assert trajectory.trend_strength > 0.9
        assert trajectory.confidence_level == 0.5
        assert trajectory.sessions_analyzed == 6
        assert len(trajectory.data_points) == 6
        assert trajectory.data_points[0]["average_accuracy"] == 0.3

    def test_too_few_sessions(self, student, completed_session):
        completed_session(student.id, 0.5)
        trajectory = session_analytics.update_learning_trajectory(student.id)
        assert trajectory.trend_direction == "insufficient_data"


class TestSessionAlerts:
    def test_generate_alert(self, student, template_factory):
        session = problems_repository.create_session(student.id, template_factory())
        session_analytics.generate_session_alert(session, "repeated_mistakes", "Three wrong answers", "warning")
        alerts = analytics_repository.list_session_alerts(student.id)
        assert alerts[0]["alert_type"] == "repeated_mistakes"
        assert alerts[0]["alert_level"] == "warning"
