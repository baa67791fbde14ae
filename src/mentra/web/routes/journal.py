"""Journal endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from mentra.core import rewards
from mentra.core.access import can_view_entry, journal_audience
from mentra.db import journal_repository
from mentra.db.journal_repository import JournalEntryRecord
from mentra.db.users_repository import UserRecord
from mentra.notifications.service import get_notification_service
from mentra.web.auth import get_current_user, require_role
from mentra.web.schemas import (
    JournalEntryCreate,
    JournalEntryCreated,
    JournalEntryResponse,
    JournalEntryUpdate,
    JournalListResponse,
    SuccessResponse,
    SuggestionsResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/journal", tags=["journal"])


def _get_visible_entry(entry_id: str, user: UserRecord) -> JournalEntryRecord:
    entry = journal_repository.get_entry(entry_id)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Journal entry '{entry_id}' not found",
        )
    if not can_view_entry(user, entry):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return entry


def _get_own_entry(entry_id: str, user: UserRecord) -> JournalEntryRecord:
    entry = _get_visible_entry(entry_id, user)
    if entry.student_id != user.id and user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author may change an entry")
    return entry


@router.post("/entries", response_model=JournalEntryCreated, status_code=status.HTTP_201_CREATED)
async def create_entry(
    request: JournalEntryCreate,
    user: UserRecord = Depends(require_role("student")),
) -> JournalEntryCreated:
    """Write a journal entry; updates streaks and achievements."""
    try:
        entry = journal_repository.create_entry(
            student_id=user.id,
            title=request.title,
            content=request.content,
            mood=request.mood,
            emotions=[e.model_dump() for e in request.emotions],
            tags=request.tags,
            privacy_level=request.privacy_level,
            share_with_teacher=request.share_with_teacher,
            share_with_parent=request.share_with_parent,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    earned = rewards.record_journal_activity(user.id, entry.id, entry.title)
    service = get_notification_service()
    for achievement in earned:
        await service.notify_achievement(user.id, achievement)

    return JournalEntryCreated(
        **JournalEntryResponse.model_validate(entry).model_dump(),
        achievements_earned=[a.achievement_id for a in earned],
    )


@router.get("/entries", response_model=JournalListResponse)
async def list_entries(
    student_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    tags: list[str] | None = Query(default=None),
    emotions: list[str] | None = Query(default=None),
    query: str | None = None,
    include_private: bool = True,
    sort_by: str = "created_at",
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: UserRecord = Depends(get_current_user),
) -> JournalListResponse:
    """List entries. Teachers and parents only see entries shared with them."""
    owner_id = student_id or user.id
    audience = journal_audience(user, owner_id)
    if audience is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    page = journal_repository.list_entries(
        owner_id,
        start_date=start_date,
        end_date=end_date,
        tags=tags,
        emotions=emotions,
        query=query,
        include_private=include_private if audience == "owner" else False,
        shared_with=None if audience == "owner" else audience,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return JournalListResponse(
        entries=[JournalEntryResponse.model_validate(e) for e in page.entries],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.get("/entries/{entry_id}", response_model=JournalEntryResponse)
async def get_entry(entry_id: str, user: UserRecord = Depends(get_current_user)) -> JournalEntryResponse:
    """Get one entry."""
    return JournalEntryResponse.model_validate(_get_visible_entry(entry_id, user))


@router.put("/entries/{entry_id}", response_model=JournalEntryResponse)
async def update_entry(
    entry_id: str,
    request: JournalEntryUpdate,
    user: UserRecord = Depends(get_current_user),
) -> JournalEntryResponse:
    """Update an entry's fields."""
    _get_own_entry(entry_id, user)
    try:
        entry = journal_repository.update_entry(
            entry_id,
            title=request.title,
            content=request.content,
            mood=request.mood,
            emotions=[e.model_dump() for e in request.emotions] if request.emotions is not None else None,
            tags=request.tags,
            privacy_level=request.privacy_level,
            share_with_teacher=request.share_with_teacher,
            share_with_parent=request.share_with_parent,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Journal entry '{entry_id}' not found")
    return JournalEntryResponse.model_validate(entry)


@router.delete("/entries/{entry_id}", response_model=SuccessResponse)
async def delete_entry(entry_id: str, user: UserRecord = Depends(get_current_user)) -> SuccessResponse:
    """Delete an entry."""
    _get_own_entry(entry_id, user)
    journal_repository.delete_entry(entry_id)
    return SuccessResponse(message="Journal entry deleted")


@router.get("/stats")
async def journal_stats(
    student_id: str | None = None,
    days: int = Query(default=30, ge=1, le=365),
    user: UserRecord = Depends(get_current_user),
) -> dict:
    """Totals, top tags and emotion distribution."""
    owner_id = student_id or user.id
    if journal_audience(user, owner_id) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return journal_repository.get_journal_stats(owner_id, days)


@router.get("/tags/suggestions", response_model=SuggestionsResponse)
async def tag_suggestions(
    prefix: str = "",
    limit: int = Query(default=10, ge=1, le=50),
    user: UserRecord = Depends(get_current_user),
) -> SuggestionsResponse:
    """Popular tags starting with the prefix."""
    return SuggestionsResponse(suggestions=journal_repository.suggest_tags(prefix, limit))


@router.get("/search/suggestions", response_model=SuggestionsResponse)
async def search_suggestions(
    q: str = Query(..., min_length=1),
    limit: int = Query(default=5, ge=1, le=20),
    user: UserRecord = Depends(get_current_user),
) -> SuggestionsResponse:
    """Titles and tags of the caller's entries matching the query."""
    return SuggestionsResponse(suggestions=journal_repository.search_suggestions(user.id, q, limit))
