"""Notification creation and delivery.

Notifications are stored first and then pushed to the recipient's open
sockets. Delivery honors the recipient's preferences; a disabled type is
marked delivered without a push. After every push the recipient also
receives the new unread count.
"""

from __future__ import annotations

from typing import Any

import structlog

from mentra.core.engagement import StudentAlert
from mentra.core.rewards import AchievementDefinition
from mentra.db import notifications_repository
from mentra.db.dashboard_repository import GoalRecord
from mentra.db.notifications_repository import NotificationRecord
from mentra.db.users_repository import UserRecord
from mentra.notifications.hub import ConnectionHub, get_notification_hub
from mentra.notifications.templates import render_template

logger = structlog.get_logger(__name__)

IN_APP = "in_app"


class NotificationService:
    """Stores notifications and pushes them through the connection hub."""

    def __init__(self, hub: ConnectionHub | None = None):
        self._hub = hub

    @property
    def hub(self) -> ConnectionHub:
        return self._hub or get_notification_hub()

    async def notify(
        self,
        type_key: str,
        recipient_id: str,
        title: str,
        message: str,
        **options: Any,
    ) -> NotificationRecord:
        """Create a notification and deliver it unless it is scheduled.

        Raises:
            UnknownNotificationTypeError: If type_key is not in the catalog
        """
        record = notifications_repository.create_notification(
            type_key, recipient_id, title, message, **options
        )
        if record.status == "sent":
            await self.deliver(record)
        return record

    async def deliver(self, record: NotificationRecord) -> int:
        """Push a stored notification to the recipient's sockets.

        Returns:
            Number of sockets reached
        """
        enabled, channels = notifications_repository.delivery_settings(record.recipient_id, record.type_key)
        if not enabled or IN_APP not in channels:
            notifications_repository.mark_delivered(record.id)
            notifications_repository.log_delivery(record.id, IN_APP, "skipped", error="disabled by preference")
            logger.debug("notifications.suppressed", notification_id=record.id)
            return 0

        reached = await self.hub.send_to_user(record.recipient_id, "notification", record.to_message_data())
        if reached:
            notifications_repository.mark_delivered(record.id)
            notifications_repository.log_delivery(record.id, IN_APP, "success", connections=reached)
            await self.push_unread_count(record.recipient_id)
        else:
            notifications_repository.log_delivery(record.id, IN_APP, "skipped", error="no open connection")

        logger.info("notifications.delivered", notification_id=record.id, connections=reached)
        return reached

    async def push_unread_count(self, user_id: str) -> int:
        count = notifications_repository.unread_count(user_id)
        await self.hub.send_to_user(user_id, "unread_count", {"count": count})
        return count

    async def deliver_due(self, limit: int = 100) -> int:
        """Send pending notifications whose scheduled time has come."""
        due = notifications_repository.list_due_pending(limit)
        for record in due:
            notifications_repository.mark_sent(record.id)
            await self.deliver(record)
        if due:
            logger.info("notifications.due_delivered", count=len(due))
        return len(due)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def notify_achievement(self, student_id: str, achievement: AchievementDefinition) -> NotificationRecord:
        title, message = render_template(
            "achievement_earned",
            title=achievement.title,
            description=achievement.description,
            points=achievement.points,
        )
        return await self.notify(
            "achievement_earned",
            student_id,
            title,
            message,
            data={"achievement_id": achievement.achievement_id, "points": achievement.points},
            action_url="/dashboard/achievements",
            action_text="View achievements",
        )

    async def notify_goal_completed(self, goal: GoalRecord) -> NotificationRecord:
        title, message = render_template("goal_completed", goal_title=goal.title)
        return await self.notify(
            "goal_completed",
            goal.student_id,
            title,
            message,
            data={"goal_id": goal.id},
            action_url=f"/dashboard/goals/{goal.id}",
            action_text="View goal",
        )

    async def send_teacher_message(self, teacher: UserRecord, student_id: str, text: str) -> NotificationRecord:
        title, message = render_template("teacher_message", teacher_name=teacher.full_name, message=text)
        return await self.notify(
            "teacher_message", student_id, title, message, sender_id=teacher.id, data={"teacher_id": teacher.id}
        )

    async def send_assignment_reminder(
        self,
        student_id: str,
        assignment_title: str,
        due_date: str,
        sender_id: str | None = None,
        scheduled_for: str | None = None,
    ) -> NotificationRecord:
        title, message = render_template(
            "assignment_reminder", assignment_title=assignment_title, due_date=due_date
        )
        return await self.notify(
            "assignment_reminder",
            student_id,
            title,
            message,
            sender_id=sender_id,
            data={"assignment_title": assignment_title, "due_date": due_date},
            scheduled_for=scheduled_for,
        )

    async def notify_student_alert(self, teacher_id: str, alert: StudentAlert) -> NotificationRecord:
        reasons = ", ".join(t.replace("_", " ") for t in alert.alert_types)
        title, message = render_template("student_alert", student_name=alert.student_name, reasons=reasons)
        return await self.notify(
            "student_alert",
            teacher_id,
            title,
            message,
            priority="high" if alert.priority == "high" else "normal",
            data={"student_id": alert.student_id, "alert_types": alert.alert_types},
            action_url=f"/dashboard/teacher/students/{alert.student_id}",
            action_text="View student",
        )


# Global service instance
_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get the global notification service."""
    global _service
    if _service is None:
        _service = NotificationService()
    return _service


def reset_notification_service() -> None:
    """Reset the service (for testing)."""
    global _service
    _service = None
