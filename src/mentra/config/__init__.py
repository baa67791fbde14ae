"""Configuration package for Mentra."""

from mentra.config.app_config import (
    AdaptationConfig,
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    clear_config_cache,
    load_app_config,
)
from mentra.config.notification_types import (
    NotificationType,
    get_notification_type,
    list_notification_types,
    load_notification_types,
)

__all__ = [
    "AdaptationConfig",
    "AppConfig",
    "AuthConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "NotificationConfig",
    "clear_config_cache",
    "load_app_config",
    "NotificationType",
    "get_notification_type",
    "list_notification_types",
    "load_notification_types",
]
