"""Notification templates, socket hub and delivery service."""

from mentra.notifications.hub import ConnectionHub, get_notification_hub, reset_notification_hub
from mentra.notifications.service import (
    NotificationService,
    get_notification_service,
    reset_notification_service,
)

__all__ = [
    "ConnectionHub",
    "get_notification_hub",
    "reset_notification_hub",
    "NotificationService",
    "get_notification_service",
    "reset_notification_service",
]
