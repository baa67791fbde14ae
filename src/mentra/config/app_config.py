"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults. A handful of environment variables
override file values so deployments don't need to ship a YAML file.

Usage:
    from mentra.config.app_config import load_app_config

    config = load_app_config()
    db_path = config.database.path
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

DEV_SECRET_KEY = "mentra-dev-secret-change-me"


@dataclass
class DatabaseConfig:
    """SQLite database location."""

    path: str = "db/mentra.db"


@dataclass
class AuthConfig:
    """Bearer token settings."""

    secret_key: str = DEV_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24


@dataclass
class AdaptationConfig:
    """Difficulty adaptation windows and thresholds."""

    profile_window_days: int = 30
    profile_session_cap: int = 20
    optimal_range: tuple[float, float] = (0.6, 0.8)
    fallback_thresholds: tuple[float, float, float] = (0.85, 0.7, 0.5)
    adaptation_window_days: int = 14
    min_sessions: int = 3
    default_strategy: str = "moderate"


@dataclass
class NotificationConfig:
    """Notification retention and socket reconnect settings."""

    read_retention_days: int = 90
    dismissed_retention_days: int = 30
    max_reconnect_attempts: int = 5
    reconnect_delay_seconds: float = 1.0


@dataclass
class LoggingConfig:
    """structlog output settings."""

    level: str = "INFO"
    format: str = "console"  # console | json


@dataclass
class AppConfig:
    """Application-wide configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    adaptation: AdaptationConfig = field(default_factory=AdaptationConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "database": {"path": "db/mentra.db"},
        "auth": {
            "secret_key": DEV_SECRET_KEY,
            "algorithm": "HS256",
            "access_token_expire_minutes": 1440,
        },
        "adaptation": {
            "profile_window_days": 30,
            "profile_session_cap": 20,
            "optimal_range": [0.6, 0.8],
            "fallback_thresholds": [0.85, 0.7, 0.5],
            "adaptation_window_days": 14,
            "min_sessions": 3,
            "default_strategy": "moderate",
        },
        "notifications": {
            "read_retention_days": 90,
            "dismissed_retention_days": 30,
            "max_reconnect_attempts": 5,
            "reconnect_delay_seconds": 1.0,
        },
        "logging": {"level": "INFO", "format": "console"},
        "cors_origins": ["*"],
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    db_data = data.get("database", {}) or {}
    database = DatabaseConfig(path=str(db_data.get("path", "db/mentra.db")))

    auth_data = data.get("auth", {}) or {}
    auth = AuthConfig(
        secret_key=auth_data.get("secret_key", DEV_SECRET_KEY),
        algorithm=auth_data.get("algorithm", "HS256"),
        access_token_expire_minutes=int(auth_data.get("access_token_expire_minutes", 1440)),
    )

    adapt_data = data.get("adaptation", {}) or {}
    low, high = adapt_data.get("optimal_range", [0.6, 0.8])
    hard, medium, easy = adapt_data.get("fallback_thresholds", [0.85, 0.7, 0.5])
    adaptation = AdaptationConfig(
        profile_window_days=int(adapt_data.get("profile_window_days", 30)),
        profile_session_cap=int(adapt_data.get("profile_session_cap", 20)),
        optimal_range=(float(low), float(high)),
        fallback_thresholds=(float(hard), float(medium), float(easy)),
        adaptation_window_days=int(adapt_data.get("adaptation_window_days", 14)),
        min_sessions=int(adapt_data.get("min_sessions", 3)),
        default_strategy=adapt_data.get("default_strategy", "moderate"),
    )

    notif_data = data.get("notifications", {}) or {}
    notifications = NotificationConfig(
        read_retention_days=int(notif_data.get("read_retention_days", 90)),
        dismissed_retention_days=int(notif_data.get("dismissed_retention_days", 30)),
        max_reconnect_attempts=int(notif_data.get("max_reconnect_attempts", 5)),
        reconnect_delay_seconds=float(notif_data.get("reconnect_delay_seconds", 1.0)),
    )

    log_data = data.get("logging", {}) or {}
    logging_config = LoggingConfig(
        level=str(log_data.get("level", "INFO")).upper(),
        format=log_data.get("format", "console"),
    )

    return AppConfig(
        database=database,
        auth=auth,
        adaptation=adaptation,
        notifications=notifications,
        logging=logging_config,
        cors_origins=list(data.get("cors_origins", ["*"])),
    )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Apply MENTRA_* environment variables on top of file values."""
    if db_path := os.environ.get("MENTRA_DB_PATH"):
        config.database.path = db_path
    if secret := os.environ.get("MENTRA_SECRET_KEY"):
        config.auth.secret_key = secret
    if level := os.environ.get("MENTRA_LOG_LEVEL"):
        config.logging.level = level.upper()
    if fmt := os.environ.get("MENTRA_LOG_FORMAT"):
        config.logging.format = fmt
    return config


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _apply_env_overrides(_parse_config(data))

    if _cached_config.auth.secret_key == DEV_SECRET_KEY:
        logger.warning("auth.dev_secret_in_use")

    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
