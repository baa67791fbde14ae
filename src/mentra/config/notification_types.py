"""Notification type catalog loader.

Loads notification types from data/config/notification_types_v1.yaml.
The catalog is seeded into the notification_types table on init_db.

Usage:
    from mentra.config.notification_types import get_notification_type

    ntype = get_notification_type("achievement_earned")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
NOTIFICATION_TYPES_FILE = Path("data/config/notification_types_v1.yaml")

CATEGORIES = ("academic", "social", "system", "achievement", "reminder")
PRIORITIES = ("low", "normal", "high", "urgent")


@dataclass
class NotificationType:
    """A kind of notification with its delivery defaults."""

    type_key: str
    name: str
    category: str
    description: str = ""
    priority: str = "normal"
    default_enabled: bool = True
    requires_action: bool = False
    channels: list[str] = field(default_factory=lambda: ["in_app"])
    target_roles: list[str] = field(default_factory=lambda: ["student"])
    template: str | None = None


# Module-level cache
_cached_types: dict[str, NotificationType] | None = None


def _get_default_types() -> dict[str, NotificationType]:
    """Get default catalog when config file is missing."""
    defaults = [
        NotificationType(
            type_key="achievement_earned",
            name="Achievement earned",
            category="achievement",
            description="A student unlocked an achievement",
            target_roles=["student", "parent"],
            template="achievement_earned",
        ),
        NotificationType(
            type_key="goal_completed",
            name="Goal completed",
            category="achievement",
            description="A learning goal reached 100%",
            target_roles=["student", "parent", "teacher"],
            template="goal_completed",
        ),
        NotificationType(
            type_key="streak_milestone",
            name="Streak milestone",
            category="achievement",
            description="A learning streak hit a milestone",
            priority="low",
            target_roles=["student", "parent"],
        ),
        NotificationType(
            type_key="teacher_message",
            name="Message from teacher",
            category="social",
            description="Direct message from a teacher",
            priority="high",
            target_roles=["student", "parent"],
            template="teacher_message",
        ),
        NotificationType(
            type_key="assignment_reminder",
            name="Assignment reminder",
            category="reminder",
            description="Upcoming assignment due date",
            requires_action=True,
            target_roles=["student"],
            template="assignment_reminder",
        ),
        NotificationType(
            type_key="student_alert",
            name="Student needs attention",
            category="academic",
            description="Engagement or performance alert for a teacher",
            priority="high",
            requires_action=True,
            target_roles=["teacher"],
            template="student_alert",
        ),
        NotificationType(
            type_key="system_announcement",
            name="System announcement",
            category="system",
            description="Platform-wide announcement",
            priority="low",
            target_roles=["student", "teacher", "parent", "admin"],
        ),
    ]
    return {t.type_key: t for t in defaults}


def _parse_type(type_key: str, data: dict) -> NotificationType:
    """Parse one catalog entry from YAML data."""
    category = data.get("category", "system")
    if category not in CATEGORIES:
        raise ValueError(f"Invalid category for {type_key}: {category}")
    priority = data.get("priority", "normal")
    if priority not in PRIORITIES:
        raise ValueError(f"Invalid priority for {type_key}: {priority}")
    return NotificationType(
        type_key=type_key,
        name=data.get("name", type_key),
        category=category,
        description=data.get("description", ""),
        priority=priority,
        default_enabled=data.get("default_enabled", True),
        requires_action=data.get("requires_action", False),
        channels=list(data.get("channels", ["in_app"])),
        target_roles=list(data.get("target_roles", ["student"])),
        template=data.get("template"),
    )


def load_notification_types(force_reload: bool = False) -> dict[str, NotificationType]:
    """Load the notification type catalog.

    Args:
        force_reload: If True, ignore cache and reload from file.

    Returns:
        Dictionary mapping type_key to NotificationType.
    """
    global _cached_types

    if _cached_types is not None and not force_reload:
        return _cached_types

    if not NOTIFICATION_TYPES_FILE.exists():
        logger.debug("notification_types_file_not_found", path=str(NOTIFICATION_TYPES_FILE))
        _cached_types = _get_default_types()
        return _cached_types

    try:
        data = yaml.safe_load(NOTIFICATION_TYPES_FILE.read_text(encoding="utf-8")) or {}
        _cached_types = {
            key: _parse_type(key, tdata or {})
            for key, tdata in data.get("notification_types", {}).items()
        }
        logger.debug("loaded_notification_types", count=len(_cached_types))
        return _cached_types

    except (yaml.YAMLError, ValueError, AttributeError) as e:
        logger.error("failed_to_load_notification_types", error=str(e))
        _cached_types = _get_default_types()
        return _cached_types


def get_notification_type(type_key: str) -> NotificationType | None:
    """Get a notification type by key."""
    return load_notification_types().get(type_key)


def list_notification_types() -> list[NotificationType]:
    """List all notification types."""
    return list(load_notification_types().values())


def clear_notification_types_cache() -> None:
    """Clear the catalog cache."""
    global _cached_types
    _cached_types = None
