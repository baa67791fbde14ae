"""Tests for application config and notification type catalog (F1)."""

from pathlib import Path

import pytest

from mentra.config import (
    clear_config_cache,
    get_notification_type,
    list_notification_types,
    load_app_config,
    load_notification_types,
)
from mentra.config.notification_types import clear_notification_types_cache


class TestAppConfigDefaults:
    """Tests for load_app_config without a config file."""

    def test_defaults(self):
        """Defaults match the documented adaptation constants."""
        config = load_app_config()
        assert config.database.path == "db/mentra.db"
        assert config.adaptation.profile_window_days == 30
        assert config.adaptation.profile_session_cap == 20
        assert config.adaptation.optimal_range == (0.6, 0.8)
        assert config.adaptation.fallback_thresholds == (0.85, 0.7, 0.5)
        assert config.notifications.max_reconnect_attempts == 5
        assert config.logging.level == "INFO"

    def test_cached(self):
        """Repeated loads return the same object until the cache is cleared."""
        first = load_app_config()
        assert load_app_config() is first
        clear_config_cache()
        assert load_app_config() is not first


class TestAppConfigFile:
    """Tests for loading data/config/app_config_v1.yaml."""

    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "data" / "config" / "app_config_v1.yaml"
        path.parent.mkdir(parents=True)
        return path

    def test_file_values(self, config_file):
        config_file.write_text(
            "database:\n  path: custom/app.db\n"
            "adaptation:\n  optimal_range: [0.5, 0.75]\n"
            "logging:\n  level: debug\n  format: json\n",
            encoding="utf-8",
        )
        config = load_app_config(force_reload=True)
        assert config.database.path == "custom/app.db"
        assert config.adaptation.optimal_range == (0.5, 0.75)
        assert config.adaptation.profile_session_cap == 20
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"

    def test_empty_file_uses_defaults(self, config_file):
        config_file.write_text("", encoding="utf-8")
        config = load_app_config(force_reload=True)
        assert config.auth.algorithm == "HS256"

    def test_env_overrides(self, config_file, monkeypatch):
        """MENTRA_* variables win over file values."""
        config_file.write_text("database:\n  path: from_file.db\n", encoding="utf-8")
        monkeypatch.setenv("MENTRA_DB_PATH", "from_env.db")
        monkeypatch.setenv("MENTRA_SECRET_KEY", "s3cret")
        config = load_app_config(force_reload=True)
        assert config.database.path == "from_env.db"
        assert config.auth.secret_key == "s3cret"


class TestNotificationTypes:
    """Tests for the notification type catalog."""

    def test_default_catalog(self):
        """Built-in catalog has the core types."""
        keys = set(load_notification_types())
        assert {"achievement_earned", "goal_completed", "teacher_message", "student_alert"} <= keys

    def test_get_type(self):
        ntype = get_notification_type("student_alert")
        assert ntype is not None
        assert "teacher" in ntype.target_roles
        assert get_notification_type("nope") is None

    def test_file_catalog(self, tmp_path):
        """A catalog file replaces the built-in types."""
        path = tmp_path / "data" / "config" / "notification_types_v1.yaml"
        path.parent.mkdir(parents=True)
        path.write_text(
            "notification_types:\n"
            "  quiz_ready:\n"
            "    name: Quiz ready\n"
            "    category: academic\n"
            "    priority: high\n"
            "    target_roles: [student]\n",
            encoding="utf-8",
        )
        clear_notification_types_cache()
        types = list_notification_types()
        assert [t.type_key for t in types] == ["quiz_ready"]
        assert types[0].priority == "high"
        assert types[0].channels == ["in_app"]

    def test_repository_config_file_parses(self, monkeypatch):
        """The shipped catalog under data/config loads cleanly."""
        repo_root = Path(__file__).resolve().parents[2]
        monkeypatch.chdir(repo_root)
        clear_notification_types_cache()
        types = load_notification_types(force_reload=True)
        assert "achievement_earned" in types
        assert all(t.category for t in types.values())
        clear_notification_types_cache()
