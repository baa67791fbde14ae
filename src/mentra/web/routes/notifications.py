"""Notification endpoints and the notification socket."""

import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from mentra.db import notifications_repository, users_repository
from mentra.db.notifications_repository import NotificationRecord, UnknownNotificationTypeError
from mentra.db.users_repository import UserRecord
from mentra.notifications.hub import get_notification_hub, make_message
from mentra.notifications.service import get_notification_service
from mentra.utils.timeutil import iso_days_ago
from mentra.web.auth import authenticate_token, get_current_user, require_role
from mentra.web.schemas import (
    AssignmentReminderRequest,
    BulkReadRequest,
    BulkReadResponse,
    DeliverDueResponse,
    NotificationCreate,
    NotificationListResponse,
    NotificationPreferenceResponse,
    NotificationPreferenceUpdate,
    NotificationResponse,
    SuccessResponse,
    TeacherMessageHelperRequest,
    UnreadCountResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])
ws_router = APIRouter(tags=["notifications"])


def _require_recipient_access(sender: UserRecord, recipient_id: str) -> None:
    """Teachers may only address their own students."""
    if users_repository.get_user_by_id(recipient_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User '{recipient_id}' not found")
    if sender.role == "teacher" and not users_repository.is_teacher_of(sender.id, recipient_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Student is not assigned to you")


def _get_own_notification(notification_id: str, user: UserRecord) -> NotificationRecord:
    record = notifications_repository.get_notification(notification_id, recipient_id=user.id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification '{notification_id}' not found",
        )
    return record


# =============================================================================
# READ MODEL
# =============================================================================


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    notification_status: str | None = Query(default=None, alias="status"),
    category: str | None = None,
    priority: str | None = None,
    unread_only: bool = False,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: UserRecord = Depends(get_current_user),
) -> NotificationListResponse:
    """The caller's notifications, newest first."""
    records, total = notifications_repository.list_notifications(
        user.id,
        status=notification_status,
        category=category,
        priority=priority,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(r) for r in records],
        total=total,
        unread_count=notifications_repository.unread_count(user.id),
        limit=limit,
        offset=offset,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(user: UserRecord = Depends(get_current_user)) -> UnreadCountResponse:
    return UnreadCountResponse(count=notifications_repository.unread_count(user.id))


@router.get("/preferences", response_model=list[NotificationPreferenceResponse])
async def get_preferences(user: UserRecord = Depends(get_current_user)) -> list[NotificationPreferenceResponse]:
    """Preferences for every type that targets the caller's role."""
    prefs = notifications_repository.get_preferences(user.id, user.role)
    return [NotificationPreferenceResponse.model_validate(p) for p in prefs]


@router.put("/preferences/{type_key}", response_model=SuccessResponse)
async def update_preference(
    type_key: str,
    request: NotificationPreferenceUpdate,
    user: UserRecord = Depends(get_current_user),
) -> SuccessResponse:
    try:
        notifications_repository.update_preference(
            user.id, type_key, request.enabled, request.channels, request.frequency
        )
    except UnknownNotificationTypeError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return SuccessResponse(message="Preference updated")


@router.get("/analytics")
async def analytics(
    days: int = Query(default=30, ge=1, le=365),
    user: UserRecord = Depends(require_role("admin")),
) -> dict:
    """Counts by type and status plus read rate."""
    return notifications_repository.notification_analytics(iso_days_ago(days))


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(notification_id: str, user: UserRecord = Depends(get_current_user)) -> NotificationResponse:
    return NotificationResponse.model_validate(_get_own_notification(notification_id, user))


# =============================================================================
# STATE CHANGES
# =============================================================================


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    request: NotificationCreate,
    user: UserRecord = Depends(require_role("teacher")),
) -> NotificationResponse:
    """Send a notification to a user."""
    _require_recipient_access(user, request.recipient_id)
    try:
        record = await get_notification_service().notify(
            request.type_key,
            request.recipient_id,
            request.title,
            request.message,
            data=request.data,
            sender_id=user.id,
            priority=request.priority,
            action_url=request.action_url,
            action_text=request.action_text,
            scheduled_for=request.scheduled_for,
            expires_at=request.expires_at,
        )
    except UnknownNotificationTypeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return NotificationResponse.model_validate(notifications_repository.get_notification(record.id))


@router.post("/{notification_id}/read", response_model=SuccessResponse)
async def mark_read(notification_id: str, user: UserRecord = Depends(get_current_user)) -> SuccessResponse:
    _get_own_notification(notification_id, user)
    changed = notifications_repository.mark_read(notification_id, user.id)
    if changed:
        await get_notification_service().push_unread_count(user.id)
    return SuccessResponse(success=changed, message=None if changed else "Notification already read")


@router.post("/{notification_id}/dismiss", response_model=SuccessResponse)
async def dismiss(notification_id: str, user: UserRecord = Depends(get_current_user)) -> SuccessResponse:
    _get_own_notification(notification_id, user)
    changed = notifications_repository.mark_dismissed(notification_id, user.id)
    if changed:
        await get_notification_service().push_unread_count(user.id)
    return SuccessResponse(success=changed)


@router.post("/{notification_id}/action-completed", response_model=SuccessResponse)
async def action_completed(notification_id: str, user: UserRecord = Depends(get_current_user)) -> SuccessResponse:
    """Record that the notification's requested action was taken."""
    record = _get_own_notification(notification_id, user)
    if not record.action_required:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Notification requires no action")
    changed = notifications_repository.mark_action_completed(notification_id, user.id)
    if changed:
        await get_notification_service().push_unread_count(user.id)
    return SuccessResponse(success=changed)


@router.post("/bulk-read", response_model=BulkReadResponse)
async def bulk_read(request: BulkReadRequest, user: UserRecord = Depends(get_current_user)) -> BulkReadResponse:
    """Mark the given notifications (or all) read."""
    updated = notifications_repository.bulk_mark_read(user.id, request.notification_ids)
    count = await get_notification_service().push_unread_count(user.id)
    return BulkReadResponse(updated=updated, unread_count=count)


# =============================================================================
# HELPERS
# =============================================================================


@router.post("/helpers/teacher-message", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def teacher_message(
    request: TeacherMessageHelperRequest,
    user: UserRecord = Depends(require_role("teacher")),
) -> NotificationResponse:
    _require_recipient_access(user, request.student_id)
    record = await get_notification_service().send_teacher_message(user, request.student_id, request.message)
    return NotificationResponse.model_validate(notifications_repository.get_notification(record.id))


@router.post(
    "/helpers/assignment-reminder",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assignment_reminder(
    request: AssignmentReminderRequest,
    user: UserRecord = Depends(require_role("teacher")),
) -> NotificationResponse:
    """Remind a student of an assignment, now or at scheduled_for."""
    _require_recipient_access(user, request.student_id)
    record = await get_notification_service().send_assignment_reminder(
        request.student_id,
        request.assignment_title,
        request.due_date,
        sender_id=user.id,
        scheduled_for=request.scheduled_for,
    )
    return NotificationResponse.model_validate(notifications_repository.get_notification(record.id))


@router.post("/deliver-due", response_model=DeliverDueResponse)
async def deliver_due(user: UserRecord = Depends(require_role("admin"))) -> DeliverDueResponse:
    return DeliverDueResponse(delivered=await get_notification_service().deliver_due())


# =============================================================================
# SOCKET
# =============================================================================


@ws_router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str | None = None) -> None:
    """Push notifications and unread counts; answer ping and mark_read."""
    user = authenticate_token(token) if token else None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    hub = get_notification_hub()
    await hub.connect(user.id, websocket)
    try:
        await websocket.send_json(
            make_message("unread_count", {"count": notifications_repository.unread_count(user.id)})
        )
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await websocket.send_json(make_message("error", {"message": "Invalid JSON"}))
                continue
            await _handle_socket_message(websocket, user, message)
    except WebSocketDisconnect:
        logger.debug("notifications.socket_closed", user_id=user.id)
    finally:
        await hub.disconnect(user.id, websocket)


async def _handle_socket_message(websocket: WebSocket, user: UserRecord, message: dict) -> None:
    if not isinstance(message, dict):
        message = {}
    message_type = message.get("type")
    data = message.get("data")
    if not isinstance(data, dict):
        data = {}

    if message_type == "ping":
        await websocket.send_json(make_message("pong", {}))
    elif message_type == "mark_read":
        notification_id = data.get("notification_id") or data.get("notificationId")
        success = bool(notification_id) and notifications_repository.mark_read(notification_id, user.id)
        await websocket.send_json(
            make_message("mark_read_response", {"notification_id": notification_id, "success": success})
        )
        await websocket.send_json(
            make_message("unread_count", {"count": notifications_repository.unread_count(user.id)})
        )
    else:
        logger.debug("notifications.socket_unknown_message", message_type=message_type)
        await websocket.send_json(make_message("error", {"message": f"Unknown message type: {message_type}"}))
