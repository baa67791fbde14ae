"""Tests for NotificationService delivery (F5)."""

import pytest

from mentra.core.engagement import StudentAlert
from mentra.core.rewards import FIRST_JOURNAL_ENTRY
from mentra.db import dashboard_repository
from mentra.db import notifications_repository as repo
from mentra.db.database import get_db
from mentra.db.notifications_repository import UnknownNotificationTypeError
from mentra.notifications.hub import ConnectionHub
from mentra.notifications.service import NotificationService, get_notification_service
from mentra.utils.timeutil import iso_days_ago


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def service(hub):
    return NotificationService(hub)


class TestDeliver:
    """Tests for notify and deliver."""

    @pytest.mark.asyncio
    async def test_push_to_open_socket(self, service, hub, student, make_socket):
        socket = make_socket()
        await hub.connect(student.id, socket)

        record = await service.notify("achievement_earned", student.id, "Title", "Body")

        assert socket.types() == ["notification", "unread_count"]
        assert socket.messages[0]["data"]["id"] == record.id
        assert socket.messages[1]["data"] == {"count": 1}
        assert repo.get_notification(record.id).status == "delivered"
        assert repo.list_delivery_log(record.id)[0]["status"] == "success"

    @pytest.mark.asyncio
    async def test_no_connection_stays_sent(self, service, student):
        record = await service.notify("achievement_earned", student.id, "Title", "Body")

        assert repo.get_notification(record.id).status == "sent"
        log = repo.list_delivery_log(record.id)
        assert log[0]["status"] == "skipped"
        assert log[0]["error"] == "no open connection"

    @pytest.mark.asyncio
    async def test_disabled_by_preference(self, service, hub, student, make_socket):
        """A disabled type is stored and marked delivered, never pushed."""
        socket = make_socket()
        await hub.connect(student.id, socket)
        repo.update_preference(student.id, "achievement_earned", False)

        record = await service.notify("achievement_earned", student.id, "Title", "Body")

        assert socket.messages == []
        assert repo.get_notification(record.id).status == "delivered"
        assert repo.list_delivery_log(record.id)[0]["error"] == "disabled by preference"

    @pytest.mark.asyncio
    async def test_scheduled_not_pushed(self, service, hub, student, make_socket):
        socket = make_socket()
        await hub.connect(student.id, socket)

        record = await service.notify(
            "assignment_reminder", student.id, "Due", "Body", scheduled_for=iso_days_ago(-1)
        )

        assert record.status == "pending"
        assert socket.messages == []
        assert await service.deliver_due() == 0

    @pytest.mark.asyncio
    async def test_deliver_due(self, service, hub, student, make_socket):
        record = await service.notify(
            "assignment_reminder", student.id, "Due", "Body", scheduled_for=iso_days_ago(-1)
        )
        with get_db() as conn:
            conn.execute("UPDATE notifications SET scheduled_for = ? WHERE id = ?", (iso_days_ago(1), record.id))
        socket = make_socket()
        await hub.connect(student.id, socket)

        assert await service.deliver_due() == 1

        assert socket.types() == ["notification", "unread_count"]
        assert repo.get_notification(record.id).status == "delivered"

    @pytest.mark.asyncio
    async def test_unknown_type(self, service, student):
        with pytest.raises(UnknownNotificationTypeError):
            await service.notify("fireworks", student.id, "T", "B")


class TestHelpers:
    """Tests for the templated helper methods."""

    @pytest.mark.asyncio
    async def test_notify_achievement(self, service, student):
        record = await service.notify_achievement(student.id, FIRST_JOURNAL_ENTRY)

        assert record.title == "Achievement unlocked: First Reflection"
        assert record.message == "Wrote your first journal entry. You earned 10 points!"
        assert record.data == {"achievement_id": "first_journal_entry", "points": 10}
        assert record.action_url == "/dashboard/achievements"

    @pytest.mark.asyncio
    async def test_notify_goal_completed(self, service, student):
        goal = dashboard_repository.create_goal(student.id, "Read 5 books")
        record = await service.notify_goal_completed(goal)
        assert record.recipient_id == student.id
        assert "Read 5 books" in record.message
        assert record.data == {"goal_id": goal.id}

    @pytest.mark.asyncio
    async def test_teacher_message(self, service, teacher, student):
        record = await service.send_teacher_message(teacher, student.id, "Great job today!")
        assert record.title == "Message from Marta Test"
        assert record.message == "Great job today!"
        assert record.sender_id == teacher.id
        assert record.priority == "high"

    @pytest.mark.asyncio
    async def test_assignment_reminder(self, service, student):
        record = await service.send_assignment_reminder(student.id, "Fractions worksheet", "Friday")
        assert record.title == "Reminder: Fractions worksheet"
        assert record.action_required is True

    @pytest.mark.asyncio
    async def test_student_alert(self, service, teacher, student):
        alert = StudentAlert(
            student_id=student.id,
            student_name="Ana Test",
            alert_types=["no_activity", "poor_performance"],
            priority="medium",
            current_streak=0,
            best_streak=0,
            last_activity_date=None,
            recent_score=2.1,
        )
        record = await service.notify_student_alert(teacher.id, alert)

        assert record.recipient_id == teacher.id
        assert record.title == "Ana Test may need attention"
        assert record.message == "Ana Test: no activity, poor performance."
        assert record.priority == "normal"
        assert record.data["alert_types"] == ["no_activity", "poor_performance"]


def test_global_service_uses_global_hub():
    service = get_notification_service()
    assert get_notification_service() is service
    assert isinstance(service.hub, ConnectionHub)
