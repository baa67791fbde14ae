"""Student goal endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from mentra.core import rewards
from mentra.db import dashboard_repository
from mentra.db.dashboard_repository import GoalRecord
from mentra.db.users_repository import UserRecord
from mentra.notifications.service import get_notification_service
from mentra.web.auth import get_current_user, require_role, resolve_student_id
from mentra.web.schemas import (
    GoalCreate,
    GoalListResponse,
    GoalProgressResponse,
    GoalResponse,
    GoalUpdate,
    MilestoneCreate,
    SuccessResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/dashboard/student/goals", tags=["goals"])


def _get_goal(goal_id: str, user: UserRecord, owner_only: bool = False) -> GoalRecord:
    goal = dashboard_repository.get_goal(goal_id)
    if goal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Goal '{goal_id}' not found")
    if owner_only:
        if goal.student_id != user.id and user.role != "admin":
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the student may change a goal")
    else:
        resolve_student_id(user, goal.student_id)
    return goal


async def _progress_response(before: GoalRecord, goal: GoalRecord) -> GoalProgressResponse:
    """Run rewards for a goal change and announce a fresh completion."""
    earned = rewards.record_goal_progress(goal)
    if earned and before.status != "completed":
        service = get_notification_service()
        await service.notify_goal_completed(goal)
        for achievement in earned:
            await service.notify_achievement(goal.student_id, achievement)
    return GoalProgressResponse(
        goal=GoalResponse.model_validate(goal),
        achievements_earned=[a.achievement_id for a in earned],
    )


@router.get("", response_model=GoalListResponse)
async def list_goals(
    student_id: str | None = None,
    goal_status: str | None = None,
    user: UserRecord = Depends(get_current_user),
) -> GoalListResponse:
    owner_id = resolve_student_id(user, student_id)
    goals = dashboard_repository.list_goals(owner_id, goal_status)
    return GoalListResponse(
        goals=[GoalResponse.model_validate(g) for g in goals],
        summary=dashboard_repository.goal_summary(owner_id),
    )


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def create_goal(request: GoalCreate, user: UserRecord = Depends(require_role("student"))) -> GoalResponse:
    """Create a goal, optionally with milestones."""
    goal = dashboard_repository.create_goal(
        user.id,
        request.title,
        description=request.description,
        category=request.category,
        target_date=request.target_date,
        milestones=request.milestones,
    )
    return GoalResponse.model_validate(goal)


@router.get("/{goal_id}", response_model=GoalResponse)
async def get_goal(goal_id: str, user: UserRecord = Depends(get_current_user)) -> GoalResponse:
    return GoalResponse.model_validate(_get_goal(goal_id, user))


@router.put("/{goal_id}", response_model=GoalProgressResponse)
async def update_goal(
    goal_id: str,
    request: GoalUpdate,
    user: UserRecord = Depends(get_current_user),
) -> GoalProgressResponse:
    """Update a goal. Setting status to completed awards the goal achievement."""
    before = _get_goal(goal_id, user, owner_only=True)
    goal = dashboard_repository.update_goal(goal_id, **request.model_dump(exclude_none=True))
    if goal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Goal '{goal_id}' not found")
    return await _progress_response(before, goal)


@router.delete("/{goal_id}", response_model=SuccessResponse)
async def delete_goal(goal_id: str, user: UserRecord = Depends(get_current_user)) -> SuccessResponse:
    _get_goal(goal_id, user, owner_only=True)
    dashboard_repository.delete_goal(goal_id)
    return SuccessResponse(message="Goal deleted")


@router.post("/{goal_id}/milestones", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def add_milestone(
    goal_id: str,
    request: MilestoneCreate,
    user: UserRecord = Depends(get_current_user),
) -> GoalResponse:
    _get_goal(goal_id, user, owner_only=True)
    goal = dashboard_repository.add_milestone(goal_id, request.title)
    if goal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Goal '{goal_id}' not found")
    return GoalResponse.model_validate(goal)


@router.post("/{goal_id}/milestones/{milestone_id}/complete", response_model=GoalProgressResponse)
async def complete_milestone(
    goal_id: str,
    milestone_id: str,
    user: UserRecord = Depends(get_current_user),
) -> GoalProgressResponse:
    """Complete a milestone. The last one completes the goal."""
    before = _get_goal(goal_id, user, owner_only=True)
    goal = dashboard_repository.complete_milestone(goal_id, milestone_id)
    if goal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Milestone '{milestone_id}' not found",
        )
    return await _progress_response(before, goal)
