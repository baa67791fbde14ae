"""Repository functions for notifications.

Status flow: pending -> sent -> delivered -> read | dismissed (or failed).
A notification counts as unread while it is sent or delivered and has
not expired.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from mentra.db.database import get_db
from mentra.utils.timeutil import iso_days_ago, utc_now_iso

logger = structlog.get_logger(__name__)

STATUSES = ("pending", "sent", "delivered", "read", "dismissed", "failed")
UNREAD_STATUSES = ("sent", "delivered")
FREQUENCIES = ("immediate", "daily", "weekly", "never")


class UnknownNotificationTypeError(Exception):
    """Raised when a notification references a type missing from the catalog."""

    def __init__(self, type_key: str):
        self.type_key = type_key
        super().__init__(f"Unknown notification type: {type_key}")


@dataclass
class NotificationRecord:
    """Notification from database, joined with its type's category."""

    id: str
    type_key: str
    category: str
    recipient_id: str
    sender_id: str | None
    title: str
    message: str
    data: dict[str, Any]
    priority: str
    status: str
    action_required: bool
    action_url: str | None
    action_text: str | None
    action_completed_at: str | None
    scheduled_for: str
    sent_at: str | None
    delivered_at: str | None
    read_at: str | None
    dismissed_at: str | None
    expires_at: str | None
    created_at: str

    def to_message_data(self) -> dict[str, Any]:
        """Payload pushed over the notification socket."""
        return {
            "id": self.id,
            "type": self.type_key,
            "category": self.category,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "priority": self.priority,
            "actionRequired": self.action_required,
            "actionUrl": self.action_url,
            "actionText": self.action_text,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }


@dataclass
class NotificationPreference:
    """Effective preference of a user for one notification type."""

    type_key: str
    name: str
    category: str
    enabled: bool
    channels: list[str] = field(default_factory=lambda: ["in_app"])
    frequency: str = "immediate"
    is_default: bool = True


_SELECT = """
    SELECT n.*, t.category AS category
    FROM notifications n
    JOIN notification_types t ON t.type_key = n.type_key
"""


def create_notification(
    type_key: str,
    recipient_id: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
    sender_id: str | None = None,
    priority: str | None = None,
    action_required: bool | None = None,
    action_url: str | None = None,
    action_text: str | None = None,
    scheduled_for: str | None = None,
    expires_at: str | None = None,
) -> NotificationRecord:
    """Insert a notification.

    Notifications scheduled in the future start as pending; others are
    sent immediately.

    Raises:
        UnknownNotificationTypeError: If type_key is not in the catalog
    """
    now = utc_now_iso()
    scheduled = scheduled_for or now
    notification_id = str(uuid.uuid4())

    with get_db() as conn:
        ntype = conn.execute(
            "SELECT priority, requires_action FROM notification_types WHERE type_key = ?",
            (type_key,),
        ).fetchone()
        if ntype is None:
            raise UnknownNotificationTypeError(type_key)

        status = "pending" if scheduled > now else "sent"
        conn.execute(
            """
            INSERT INTO notifications (
                id, type_key, recipient_id, sender_id, title, message, data,
                priority, status, action_required, action_url, action_text,
                scheduled_for, sent_at, expires_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification_id, type_key, recipient_id, sender_id, title, message,
                json.dumps(data or {}),
                priority or ntype["priority"],
                status,
                int(ntype["requires_action"] if action_required is None else action_required),
                action_url, action_text, scheduled,
                now if status == "sent" else None,
                expires_at, now, now,
            ),
        )
        row = conn.execute(f"{_SELECT} WHERE n.id = ?", (notification_id,)).fetchone()

    logger.info("notifications.created", notification_id=notification_id, type_key=type_key, status=status)
    return _row_to_record(row)


def get_notification(notification_id: str, recipient_id: str | None = None) -> NotificationRecord | None:
    """Get a notification, optionally only if addressed to recipient_id."""
    query = f"{_SELECT} WHERE n.id = ?"
    params: list[Any] = [notification_id]
    if recipient_id is not None:
        query += " AND n.recipient_id = ?"
        params.append(recipient_id)
    with get_db() as conn:
        row = conn.execute(query, params).fetchone()
    if row is None:
        return None
    return _row_to_record(row)


def list_notifications(
    recipient_id: str,
    status: str | None = None,
    category: str | None = None,
    priority: str | None = None,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[NotificationRecord], int]:
    """Notifications of a user, newest first, with total count.

    Pending and expired notifications are never listed.
    """
    where = ["n.recipient_id = ?", "n.status <> 'pending'", "(n.expires_at IS NULL OR n.expires_at > ?)"]
    params: list[Any] = [recipient_id, utc_now_iso()]
    if status:
        where.append("n.status = ?")
        params.append(status)
    if unread_only:
        where.append("n.status IN ('sent', 'delivered')")
    if category:
        where.append("t.category = ?")
        params.append(category)
    if priority:
        where.append("n.priority = ?")
        params.append(priority)
    where_sql = " AND ".join(where)

    with get_db() as conn:
        total = conn.execute(
            f"""
            SELECT COUNT(*) FROM notifications n
            JOIN notification_types t ON t.type_key = n.type_key
            WHERE {where_sql}
            """,
            params,
        ).fetchone()[0]
        rows = conn.execute(
            f"{_SELECT} WHERE {where_sql} ORDER BY n.created_at DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()

    return [_row_to_record(r) for r in rows], total


def unread_count(recipient_id: str) -> int:
    """Sent or delivered notifications that have not expired."""
    with get_db() as conn:
        return conn.execute(
            """
            SELECT COUNT(*) FROM notifications
            WHERE recipient_id = ? AND status IN ('sent', 'delivered')
              AND (expires_at IS NULL OR expires_at > ?)
            """,
            (recipient_id, utc_now_iso()),
        ).fetchone()[0]


def mark_sent(notification_id: str) -> None:
    """Move a pending notification to sent."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            "UPDATE notifications SET status = 'sent', sent_at = ?, updated_at = ? WHERE id = ? AND status = 'pending'",
            (now, now, notification_id),
        )


def mark_delivered(notification_id: str) -> None:
    """Move a sent notification to delivered."""
    now = utc_now_iso()
    with get_db() as conn:
        conn.execute(
            "UPDATE notifications SET status = 'delivered', delivered_at = ?, updated_at = ? WHERE id = ? AND status = 'sent'",
            (now, now, notification_id),
        )


def mark_failed(notification_id: str) -> None:
    """Flag a notification whose delivery failed."""
    with get_db() as conn:
        conn.execute(
            "UPDATE notifications SET status = 'failed', updated_at = ? WHERE id = ? AND status IN ('pending', 'sent')",
            (utc_now_iso(), notification_id),
        )


def mark_read(notification_id: str, recipient_id: str) -> bool:
    """Mark as read. Only the recipient may, and only while unread.

    Returns:
        True if the notification changed state
    """
    now = utc_now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE notifications SET status = 'read', read_at = ?, updated_at = ?
            WHERE id = ? AND recipient_id = ? AND status IN ('sent', 'delivered')
            """,
            (now, now, notification_id, recipient_id),
        )
    return cursor.rowcount > 0


def mark_dismissed(notification_id: str, recipient_id: str) -> bool:
    """Dismiss a visible notification."""
    now = utc_now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE notifications SET status = 'dismissed', dismissed_at = ?, updated_at = ?
            WHERE id = ? AND recipient_id = ? AND status IN ('sent', 'delivered', 'read')
            """,
            (now, now, notification_id, recipient_id),
        )
    return cursor.rowcount > 0


def mark_action_completed(notification_id: str, recipient_id: str) -> bool:
    """Record that the requested action was taken; also marks it read."""
    now = utc_now_iso()
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE notifications SET
                action_completed_at = ?,
                status = CASE WHEN status IN ('sent', 'delivered') THEN 'read' ELSE status END,
                read_at = COALESCE(read_at, ?),
                updated_at = ?
            WHERE id = ? AND recipient_id = ? AND action_required = 1 AND action_completed_at IS NULL
            """,
            (now, now, now, notification_id, recipient_id),
        )
    return cursor.rowcount > 0


def bulk_mark_read(recipient_id: str, notification_ids: list[str] | None = None) -> int:
    """Mark several (or all) unread notifications read. Returns the count."""
    now = utc_now_iso()
    query = """
        UPDATE notifications SET status = 'read', read_at = ?, updated_at = ?
        WHERE recipient_id = ? AND status IN ('sent', 'delivered')
    """
    params: list[Any] = [now, now, recipient_id]
    if notification_ids:
        query += f" AND id IN ({','.join('?' * len(notification_ids))})"
        params.extend(notification_ids)
    with get_db() as conn:
        cursor = conn.execute(query, params)
    return cursor.rowcount


def list_due_pending(limit: int = 100) -> list[NotificationRecord]:
    """Pending notifications whose scheduled time has come."""
    with get_db() as conn:
        rows = conn.execute(
            f"{_SELECT} WHERE n.status = 'pending' AND n.scheduled_for <= ? ORDER BY n.scheduled_for LIMIT ?",
            (utc_now_iso(), limit),
        ).fetchall()
    return [_row_to_record(r) for r in rows]


def log_delivery(
    notification_id: str,
    channel: str,
    status: str,
    connections: int = 0,
    error: str | None = None,
) -> None:
    """Append a delivery attempt to the log."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO notification_delivery_log (notification_id, channel, status, connections, error, attempted_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (notification_id, channel, status, connections, error, utc_now_iso()),
        )


def list_delivery_log(notification_id: str) -> list[dict[str, Any]]:
    """Delivery attempts of a notification, oldest first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM notification_delivery_log WHERE notification_id = ? ORDER BY id",
            (notification_id,),
        ).fetchall()
    return [dict(r) for r in rows]


# =============================================================================
# PREFERENCES
# =============================================================================


def get_preferences(user_id: str, role: str) -> list[NotificationPreference]:
    """Effective preferences for every type targeting the role."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT t.type_key, t.name, t.category, t.default_enabled, t.target_roles,
                   t.channels AS default_channels,
                   p.enabled, p.channels, p.frequency
            FROM notification_types t
            LEFT JOIN notification_preferences p
                ON p.type_key = t.type_key AND p.user_id = ?
            ORDER BY t.category, t.type_key
            """,
            (user_id,),
        ).fetchall()

    prefs = []
    for r in rows:
        if role != "admin" and role not in json.loads(r["target_roles"]):
            continue
        has_pref = r["enabled"] is not None
        prefs.append(
            NotificationPreference(
                type_key=r["type_key"],
                name=r["name"],
                category=r["category"],
                enabled=bool(r["enabled"]) if has_pref else bool(r["default_enabled"]),
                channels=json.loads(r["channels"] if has_pref else r["default_channels"]),
                frequency=r["frequency"] if has_pref else "immediate",
                is_default=not has_pref,
            )
        )
    return prefs


def update_preference(
    user_id: str,
    type_key: str,
    enabled: bool,
    channels: list[str] | None = None,
    frequency: str = "immediate",
) -> None:
    """Upsert a user's preference for one type.

    Raises:
        UnknownNotificationTypeError: If type_key is not in the catalog
        ValueError: On unknown frequency
    """
    if frequency not in FREQUENCIES:
        raise ValueError(f"Unknown frequency: {frequency}")
    with get_db() as conn:
        if conn.execute(
            "SELECT 1 FROM notification_types WHERE type_key = ?", (type_key,)
        ).fetchone() is None:
            raise UnknownNotificationTypeError(type_key)
        conn.execute(
            """
            INSERT INTO notification_preferences (user_id, type_key, enabled, channels, frequency, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, type_key) DO UPDATE SET
                enabled = excluded.enabled, channels = excluded.channels,
                frequency = excluded.frequency, updated_at = excluded.updated_at
            """,
            (user_id, type_key, int(enabled), json.dumps(channels or ["in_app"]), frequency, utc_now_iso()),
        )


def delivery_settings(user_id: str, type_key: str) -> tuple[bool, list[str]]:
    """(enabled, channels) for a user and type, falling back to type defaults."""
    with get_db() as conn:
        row = conn.execute(
            """
            SELECT t.default_enabled, t.channels AS default_channels,
                   p.enabled, p.channels, p.frequency
            FROM notification_types t
            LEFT JOIN notification_preferences p
                ON p.type_key = t.type_key AND p.user_id = ?
            WHERE t.type_key = ?
            """,
            (user_id, type_key),
        ).fetchone()
    if row is None:
        raise UnknownNotificationTypeError(type_key)
    if row["enabled"] is None:
        return bool(row["default_enabled"]), json.loads(row["default_channels"])
    enabled = bool(row["enabled"]) and row["frequency"] != "never"
    return enabled, json.loads(row["channels"])


# =============================================================================
# MAINTENANCE AND ANALYTICS
# =============================================================================


def cleanup_old_notifications(read_retention_days: int = 90, dismissed_retention_days: int = 30) -> int:
    """Delete expired, old read and old dismissed notifications.

    Returns:
        Total number of deleted notifications
    """
    now = utc_now_iso()
    with get_db() as conn:
        expired = conn.execute(
            "DELETE FROM notifications WHERE expires_at IS NOT NULL AND expires_at < ?", (now,)
        ).rowcount
        read = conn.execute(
            "DELETE FROM notifications WHERE status = 'read' AND read_at < ?",
            (iso_days_ago(read_retention_days),),
        ).rowcount
        dismissed = conn.execute(
            "DELETE FROM notifications WHERE status = 'dismissed' AND dismissed_at < ?",
            (iso_days_ago(dismissed_retention_days),),
        ).rowcount

    total = expired + read + dismissed
    logger.info("notifications.cleanup", expired=expired, read=read, dismissed=dismissed)
    return total


def notification_analytics(since: str, until: str | None = None) -> dict[str, Any]:
    """Counts by type and status plus read rate in a window."""
    until = until or utc_now_iso()
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT type_key, status, COUNT(*) AS count FROM notifications
            WHERE created_at >= ? AND created_at <= ?
            GROUP BY type_key, status
            """,
            (since, until),
        ).fetchall()

    by_type: dict[str, dict[str, int]] = {}
    by_status: dict[str, int] = {}
    for r in rows:
        by_type.setdefault(r["type_key"], {})[r["status"]] = r["count"]
        by_status[r["status"]] = by_status.get(r["status"], 0) + r["count"]

    total = sum(by_status.values())
    read = by_status.get("read", 0)
    return {
        "since": since,
        "until": until,
        "total": total,
        "by_status": by_status,
        "by_type": by_type,
        "read_rate": round(read / total, 3) if total else 0.0,
    }


def _row_to_record(row) -> NotificationRecord:
    """Convert database row to NotificationRecord."""
    return NotificationRecord(
        id=row["id"],
        type_key=row["type_key"],
        category=row["category"],
        recipient_id=row["recipient_id"],
        sender_id=row["sender_id"],
        title=row["title"],
        message=row["message"],
        data=json.loads(row["data"]),
        priority=row["priority"],
        status=row["status"],
        action_required=bool(row["action_required"]),
        action_url=row["action_url"],
        action_text=row["action_text"],
        action_completed_at=row["action_completed_at"],
        scheduled_for=row["scheduled_for"],
        sent_at=row["sent_at"],
        delivered_at=row["delivered_at"],
        read_at=row["read_at"],
        dismissed_at=row["dismissed_at"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )
