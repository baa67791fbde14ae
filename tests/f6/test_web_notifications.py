"""Tests for notification endpoints and the notification socket (F6)."""

import pytest
from fastapi import WebSocketDisconnect

from mentra.db import notifications_repository as repo
from mentra.db import users_repository
from mentra.utils.timeutil import iso_days_ago
from mentra.web.auth import create_access_token


@pytest.fixture
def assigned(student, teacher):
    users_repository.assign_student_to_teacher(teacher.id, student.id)


def _notify(student, title="Hello", type_key="achievement_earned"):
    return repo.create_notification(type_key, student.id, title, "Body")


class TestReadModel:
    """Tests for listing and counting."""

    def test_list(self, client, student, auth):
        _notify(student, "One")
        _notify(student, "Two", "teacher_message")

        data = client.get("/api/notifications", headers=auth(student)).json()
        assert data["total"] == 2
        assert data["unread_count"] == 2
        assert {n["title"] for n in data["notifications"]} == {"One", "Two"}

        social = client.get("/api/notifications", params={"category": "social"}, headers=auth(student)).json()
        assert [n["title"] for n in social["notifications"]] == ["Two"]

    def test_unread_count(self, client, student, auth):
        _notify(student)
        assert client.get("/api/notifications/unread-count", headers=auth(student)).json() == {"count": 1}

    def test_only_own_notifications(self, client, student, teacher, auth):
        record = _notify(student)
        assert client.get(f"/api/notifications/{record.id}", headers=auth(student)).status_code == 200
        response = client.get(f"/api/notifications/{record.id}", headers=auth(teacher))
        assert response.status_code == 404
        assert response.json() == {"error": f"Notification '{record.id}' not found"}


class TestStateChanges:
    """Tests for read, dismiss, action-completed and bulk read."""

    def test_mark_read_twice(self, client, student, auth):
        record = _notify(student)
        first = client.post(f"/api/notifications/{record.id}/read", headers=auth(student)).json()
        assert first["success"] is True
        second = client.post(f"/api/notifications/{record.id}/read", headers=auth(student)).json()
        assert second == {"success": False, "message": "Notification already read"}

    def test_dismiss(self, client, student, auth):
        record = _notify(student)
        assert client.post(f"/api/notifications/{record.id}/dismiss", headers=auth(student)).json()["success"] is True
        assert repo.get_notification(record.id).status == "dismissed"

    def test_action_completed(self, client, student, auth):
        reminder = _notify(student, type_key="assignment_reminder")
        plain = _notify(student)

        done = client.post(f"/api/notifications/{reminder.id}/action-completed", headers=auth(student))
        assert done.json()["success"] is True
        response = client.post(f"/api/notifications/{plain.id}/action-completed", headers=auth(student))
        assert response.status_code == 400
        assert response.json() == {"error": "Notification requires no action"}

    def test_bulk_read(self, client, student, auth):
        ids = [_notify(student, f"N{i}").id for i in range(3)]
        data = client.post("/api/notifications/bulk-read", json={"notification_ids": ids[:2]}, headers=auth(student)).json()
        assert data == {"updated": 2, "unread_count": 1}
        data = client.post("/api/notifications/bulk-read", json={}, headers=auth(student)).json()
        assert data == {"updated": 1, "unread_count": 0}


class TestPreferences:
    def test_get_and_update(self, client, student, auth):
        headers = auth(student)
        prefs = client.get("/api/notifications/preferences", headers=headers).json()
        keys = [p["type_key"] for p in prefs]
        assert "achievement_earned" in keys
        assert "student_alert" not in keys

        response = client.put(
            "/api/notifications/preferences/achievement_earned", json={"enabled": False}, headers=headers
        )
        assert response.json()["success"] is True
        prefs = {p["type_key"]: p for p in client.get("/api/notifications/preferences", headers=headers).json()}
        assert prefs["achievement_earned"]["enabled"] is False

    def test_unknown_type(self, client, student, auth):
        response = client.put("/api/notifications/preferences/fireworks", json={"enabled": True}, headers=auth(student))
        assert response.status_code == 404


class TestSending:
    """Tests for teacher and admin sending endpoints."""

    def test_teacher_sends_to_assigned_student(self, client, teacher, student, auth, assigned):
        body = {"type_key": "teacher_message", "recipient_id": student.id, "title": "Hi", "message": "See you"}
        response = client.post("/api/notifications", json=body, headers=auth(teacher))
        assert response.status_code == 201
        data = response.json()
        assert data["sender_id"] == teacher.id
        assert data["status"] == "sent"

    def test_teacher_cannot_reach_unassigned(self, client, teacher, student, auth):
        body = {"type_key": "teacher_message", "recipient_id": student.id, "title": "Hi", "message": "x"}
        assert client.post("/api/notifications", json=body, headers=auth(teacher)).status_code == 403

    def test_unknown_type_and_recipient(self, client, teacher, student, auth, assigned):
        body = {"type_key": "fireworks", "recipient_id": student.id, "title": "Hi", "message": "x"}
        assert client.post("/api/notifications", json=body, headers=auth(teacher)).status_code == 400
        body = {"type_key": "teacher_message", "recipient_id": "ghost", "title": "Hi", "message": "x"}
        assert client.post("/api/notifications", json=body, headers=auth(teacher)).status_code == 404

    def test_students_cannot_send(self, client, student, auth):
        body = {"type_key": "teacher_message", "recipient_id": student.id, "title": "Hi", "message": "x"}
        assert client.post("/api/notifications", json=body, headers=auth(student)).status_code == 403

    def test_helpers(self, client, teacher, student, auth, assigned):
        headers = auth(teacher)
        message = client.post(
            "/api/notifications/helpers/teacher-message",
            json={"student_id": student.id, "message": "Great effort"},
            headers=headers,
        ).json()
        assert message["title"] == "Message from Marta Test"

        reminder = client.post(
            "/api/notifications/helpers/assignment-reminder",
            json={
                "student_id": student.id,
                "assignment_title": "Essay",
                "due_date": "Monday",
                "scheduled_for": iso_days_ago(-1),
            },
            headers=headers,
        ).json()
        assert reminder["status"] == "pending"
        assert reminder["action_required"] is True

    def test_admin_only_endpoints(self, client, teacher, student, make_user, auth):
        admin = make_user("admin")
        _notify(student)

        assert client.get("/api/notifications/analytics", headers=auth(teacher)).status_code == 403
        stats = client.get("/api/notifications/analytics", headers=auth(admin)).json()
        assert stats["total"] == 1

        assert client.post("/api/notifications/deliver-due", headers=auth(admin)).json() == {"delivered": 0}


class TestNotificationSocket:
    """Tests for /ws/notifications."""

    def _connect(self, client, user):
        return client.websocket_connect(f"/ws/notifications?token={create_access_token(user)}")

    def test_initial_unread_count_and_ping(self, client, student):
        _notify(student)
        with self._connect(client, student) as ws:
            assert ws.receive_json() == {"type": "unread_count", "data": {"count": 1}}
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "data": {}}

    def test_mark_read(self, client, student):
        record = _notify(student)
        with self._connect(client, student) as ws:
            ws.receive_json()
            ws.send_json({"type": "mark_read", "data": {"notification_id": record.id}})
            assert ws.receive_json() == {
                "type": "mark_read_response",
                "data": {"notification_id": record.id, "success": True},
            }
            assert ws.receive_json() == {"type": "unread_count", "data": {"count": 0}}

    def test_mark_read_unknown(self, client, student):
        with self._connect(client, student) as ws:
            ws.receive_json()
            ws.send_json({"type": "mark_read", "data": {"notification_id": "missing"}})
            assert ws.receive_json()["data"] == {"notification_id": "missing", "success": False}

    def test_bad_messages(self, client, student):
        with self._connect(client, student) as ws:
            ws.receive_json()
            ws.send_text("not json")
            assert ws.receive_json() == {"type": "error", "data": {"message": "Invalid JSON"}}
            ws.send_json({"type": "shout"})
            assert ws.receive_json() == {"type": "error", "data": {"message": "Unknown message type: shout"}}

    def test_rejects_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications?token=garbage") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008

    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008

    def test_push_from_api(self, client, teacher, student, auth, assigned):
        """A message sent over REST reaches the student's open socket."""
        with self._connect(client, student) as ws:
            ws.receive_json()
            client.post(
                "/api/notifications/helpers/teacher-message",
                json={"student_id": student.id, "message": "Ping from class"},
                headers=auth(teacher),
            )
            pushed = ws.receive_json()
            assert pushed["type"] == "notification"
            assert pushed["data"]["message"] == "Ping from class"
            assert ws.receive_json() == {"type": "unread_count", "data": {"count": 1}}
