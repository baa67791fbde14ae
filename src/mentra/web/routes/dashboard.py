"""Dashboard endpoints for students, teachers and parents."""

from datetime import date

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from mentra.core import difficulty, engagement
from mentra.db import (
    analytics_repository,
    dashboard_repository,
    journal_repository,
    problems_repository,
    users_repository,
)
from mentra.db.dashboard_repository import DashboardPreferences
from mentra.db.users_repository import StudentSummary, UserRecord
from mentra.notifications.service import get_notification_service
from mentra.utils.timeutil import iso_days_ago
from mentra.web.auth import get_current_user, require_role, resolve_student_id
from mentra.web.routes.problems import session_to_response
from mentra.web.schemas import (
    AchievementListResponse,
    AchievementResponse,
    ActivityFeedResponse,
    ActivityResponse,
    DashboardPreferencesRequest,
    DashboardPreferencesResponse,
    FamilyWeeklySummaryResponse,
    GoalResponse,
    InterventionCreate,
    InterventionResponse,
    InterventionUpdate,
    JournalEntryResponse,
    ParentOverviewResponse,
    PerformanceProfileResponse,
    ProgressResponse,
    StreakResponse,
    StudentAlertResponse,
    StudentDetailResponse,
    StudentOverviewResponse,
    StudentSummaryResponse,
    SuccessResponse,
    TeacherMessageRequest,
    TeacherNoteRequest,
    TeacherOverviewResponse,
    TrajectoryResponse,
    WeeklyReportResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

TIMEFRAME_DAYS = {"7d": 7, "30d": 30, "90d": 90, "all": None}
PROGRESS_CACHE_HOURS = 1


def summary_to_response(student: StudentSummary) -> StudentSummaryResponse:
    return StudentSummaryResponse(
        id=student.id,
        email=student.email,
        first_name=student.first_name,
        last_name=student.last_name,
        grade_level=student.grade_level,
        total_points=student.total_points,
        current_streak=student.current_streak,
        best_streak=student.best_streak,
        last_activity_date=student.last_activity_date,
        engagement_level=engagement.engagement_level(student.current_streak, student.last_activity_date),
    )


def _get_student_summary(student_id: str) -> StudentSummary:
    student = users_repository.get_student_summary(student_id)
    if student is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Student '{student_id}' not found")
    return student


def _student_detail(student_id: str, audience: str, note: str | None = None) -> StudentDetailResponse:
    student = _get_student_summary(student_id)
    trajectory = analytics_repository.get_trajectory(student_id)
    shared = journal_repository.list_entries(student_id, shared_with=audience, limit=10)
    return StudentDetailResponse(
        student=summary_to_response(student),
        metrics=engagement.engagement_metrics(student),
        shared_journal_entries=[JournalEntryResponse.model_validate(e) for e in shared.entries],
        recent_sessions=[session_to_response(s) for s in problems_repository.list_sessions(student_id, limit=10)],
        achievements=[AchievementResponse.model_validate(a) for a in dashboard_repository.list_achievements(student_id)],
        goals=[GoalResponse.model_validate(g) for g in dashboard_repository.list_goals(student_id)],
        profiles=[PerformanceProfileResponse.model_validate(p) for p in analytics_repository.list_profiles(student_id)],
        trajectory=TrajectoryResponse.model_validate(trajectory) if trajectory else None,
        note=note,
    )


# =============================================================================
# STUDENT
# =============================================================================


@router.get("/student/overview", response_model=StudentOverviewResponse)
async def student_overview(
    student_id: str | None = None,
    user: UserRecord = Depends(get_current_user),
) -> StudentOverviewResponse:
    """Points, streaks, recent achievements, goals and journal totals."""
    owner_id = resolve_student_id(user, student_id)
    student = _get_student_summary(owner_id)
    stats = journal_repository.get_journal_stats(owner_id, days=7)

    return StudentOverviewResponse(
        student_id=owner_id,
        name=f"{student.first_name} {student.last_name}".strip(),
        grade_level=student.grade_level,
        total_points=student.total_points,
        current_streak=student.current_streak,
        best_streak=student.best_streak,
        last_activity_date=student.last_activity_date,
        engagement_level=engagement.engagement_level(student.current_streak, student.last_activity_date),
        streaks=[StreakResponse.model_validate(s) for s in dashboard_repository.list_streaks(owner_id)],
        recent_achievements=[
            AchievementResponse.model_validate(a) for a in dashboard_repository.list_achievements(owner_id)[:5]
        ],
        goals=dashboard_repository.goal_summary(owner_id),
        journal={
            "total_entries": stats["total_entries"],
            "entries_this_week": stats["recent_entries"],
            "total_words": stats["total_words"],
        },
        recommended_difficulty=difficulty.recommend_optimal_difficulty(owner_id),
    )


@router.get("/student/achievements", response_model=AchievementListResponse)
async def student_achievements(
    student_id: str | None = None,
    category: str | None = None,
    user: UserRecord = Depends(get_current_user),
) -> AchievementListResponse:
    owner_id = resolve_student_id(user, student_id)
    achievements = dashboard_repository.list_achievements(owner_id, category)
    return AchievementListResponse(
        achievements=[AchievementResponse.model_validate(a) for a in achievements],
        count=len(achievements),
        total_points=sum(a.points for a in achievements),
    )


@router.get("/student/activity-feed", response_model=ActivityFeedResponse)
async def activity_feed(
    student_id: str | None = None,
    activity_type: str | None = Query(default=None, alias="type"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: UserRecord = Depends(get_current_user),
) -> ActivityFeedResponse:
    owner_id = resolve_student_id(user, student_id)
    activities = dashboard_repository.list_activities(owner_id, limit, offset, activity_type)
    return ActivityFeedResponse(
        activities=[ActivityResponse.model_validate(a) for a in activities],
        count=len(activities),
    )


@router.get("/student/progress", response_model=ProgressResponse)
async def student_progress(
    student_id: str | None = None,
    timeframe: str = Query(default="7d", pattern="^(7d|30d|90d|all)$"),
    user: UserRecord = Depends(get_current_user),
) -> ProgressResponse:
    """Activity and accuracy over a timeframe; cached for an hour."""
    owner_id = resolve_student_id(user, student_id)
    cache_key = f"student:{owner_id}:progress:{timeframe}"
    cached = analytics_repository.get_cached_analytics(cache_key)
    if cached is not None:
        return ProgressResponse(**cached)

    days = TIMEFRAME_DAYS[timeframe]
    since = iso_days_ago(days) if days is not None else None
    achievements, points = dashboard_repository.count_achievements(owner_id, since)
    trajectory = analytics_repository.get_trajectory(owner_id)

    progress = ProgressResponse(
        student_id=owner_id,
        timeframe=timeframe,
        journal_entries=journal_repository.count_entries(owner_id, since),
        problem_sessions=problems_repository.count_sessions(owner_id, since=since),
        completed_sessions=problems_repository.count_sessions(owner_id, status="completed", since=since),
        average_accuracy=problems_repository.average_accuracy(owner_id, since or ""),
        achievements_earned=achievements,
        points_earned=points,
        trajectory=TrajectoryResponse.model_validate(trajectory) if trajectory else None,
    )
    analytics_repository.cache_analytics_result(cache_key, progress.model_dump(), PROGRESS_CACHE_HOURS)
    return progress


# =============================================================================
# PREFERENCES
# =============================================================================


@router.get("/preferences", response_model=DashboardPreferencesResponse)
async def get_preferences(user: UserRecord = Depends(get_current_user)) -> DashboardPreferencesResponse:
    return DashboardPreferencesResponse.model_validate(dashboard_repository.get_dashboard_preferences(user.id))


@router.put("/preferences", response_model=DashboardPreferencesResponse)
async def save_preferences(
    request: DashboardPreferencesRequest,
    user: UserRecord = Depends(get_current_user),
) -> DashboardPreferencesResponse:
    prefs = dashboard_repository.save_dashboard_preferences(
        DashboardPreferences(user_id=user.id, **request.model_dump())
    )
    return DashboardPreferencesResponse.model_validate(prefs)


# =============================================================================
# TEACHER
# =============================================================================


def _require_assigned(teacher: UserRecord, student_id: str) -> None:
    if teacher.role != "admin" and not users_repository.is_teacher_of(teacher.id, student_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Student is not assigned to you")


@router.get("/teacher/overview", response_model=TeacherOverviewResponse)
async def teacher_overview(user: UserRecord = Depends(require_role("teacher"))) -> TeacherOverviewResponse:
    """Assigned students with engagement levels and open alerts."""
    students = [summary_to_response(s) for s in users_repository.list_teacher_students(user.id)]
    distribution = {level: 0 for level in engagement.ENGAGEMENT_LEVELS}
    for s in students:
        distribution[s.engagement_level] += 1

    return TeacherOverviewResponse(
        teacher_id=user.id,
        students=students,
        total_students=len(students),
        engagement_distribution=distribution,
        alerts=[StudentAlertResponse.model_validate(a) for a in engagement.detect_student_alerts(user.id)],
    )


@router.get("/teacher/alerts", response_model=list[StudentAlertResponse])
async def teacher_alerts(
    notify: bool = False,
    user: UserRecord = Depends(require_role("teacher")),
) -> list[StudentAlertResponse]:
    """Students needing attention; optionally notify the teacher of high-priority ones."""
    alerts = engagement.detect_student_alerts(user.id)
    if notify:
        service = get_notification_service()
        for alert in alerts:
            if alert.priority == "high":
                await service.notify_student_alert(user.id, alert)
    return [StudentAlertResponse.model_validate(a) for a in alerts]


@router.get("/teacher/weekly-report", response_model=WeeklyReportResponse)
async def weekly_report(user: UserRecord = Depends(require_role("teacher"))) -> WeeklyReportResponse:
    report = engagement.weekly_class_report(user.id)
    return WeeklyReportResponse(
        **{k: v for k, v in report.items() if k != "alerts"},
        alerts=[StudentAlertResponse.model_validate(a) for a in report["alerts"]],
    )


@router.get("/teacher/students/{student_id}", response_model=StudentDetailResponse)
async def teacher_student_detail(
    student_id: str, user: UserRecord = Depends(require_role("teacher"))
) -> StudentDetailResponse:
    """Everything a teacher may see about one student."""
    _require_assigned(user, student_id)
    return _student_detail(student_id, "teacher", users_repository.get_teacher_note(user.id, student_id))


@router.put("/teacher/students/{student_id}/notes", response_model=SuccessResponse)
async def save_note(
    student_id: str,
    request: TeacherNoteRequest,
    user: UserRecord = Depends(require_role("teacher")),
) -> SuccessResponse:
    """Private note about a student, visible only to its author."""
    _require_assigned(user, student_id)
    users_repository.save_teacher_note(user.id, student_id, request.note)
    return SuccessResponse(message="Note saved")


@router.post("/teacher/students/{student_id}/message", response_model=SuccessResponse)
async def message_student(
    student_id: str,
    request: TeacherMessageRequest,
    user: UserRecord = Depends(require_role("teacher")),
) -> SuccessResponse:
    _require_assigned(user, student_id)
    await get_notification_service().send_teacher_message(user, student_id, request.message)
    return SuccessResponse(message="Message sent")


@router.post(
    "/teacher/students/{student_id}/interventions",
    response_model=InterventionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_intervention(
    student_id: str,
    request: InterventionCreate,
    user: UserRecord = Depends(require_role("teacher")),
) -> InterventionResponse:
    _require_assigned(user, student_id)
    intervention = users_repository.create_intervention(
        user.id, student_id, request.intervention_type, request.description, request.scheduled_for
    )
    return InterventionResponse.model_validate(intervention)


@router.get("/teacher/interventions", response_model=list[InterventionResponse])
async def list_interventions(
    student_id: str | None = None,
    user: UserRecord = Depends(require_role("teacher")),
) -> list[InterventionResponse]:
    return [InterventionResponse.model_validate(i) for i in users_repository.list_interventions(user.id, student_id)]


@router.put("/teacher/interventions/{intervention_id}", response_model=InterventionResponse)
async def update_intervention(
    intervention_id: str,
    request: InterventionUpdate,
    user: UserRecord = Depends(require_role("teacher")),
) -> InterventionResponse:
    intervention = users_repository.update_intervention_status(
        intervention_id, user.id, request.status, request.outcome
    )
    if intervention is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Intervention '{intervention_id}' not found",
        )
    return InterventionResponse.model_validate(intervention)


# =============================================================================
# PARENT
# =============================================================================


def _require_child(parent: UserRecord, child_id: str) -> None:
    if parent.role != "admin" and not users_repository.is_parent_of(parent.id, child_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your child")


@router.get("/parent/overview", response_model=ParentOverviewResponse)
async def parent_overview(user: UserRecord = Depends(require_role("parent"))) -> ParentOverviewResponse:
    children = users_repository.list_parent_children(user.id)
    return ParentOverviewResponse(parent_id=user.id, children=[summary_to_response(c) for c in children])


@router.get("/parent/children/{child_id}", response_model=StudentDetailResponse)
async def child_detail(child_id: str, user: UserRecord = Depends(require_role("parent"))) -> StudentDetailResponse:
    _require_child(user, child_id)
    return _student_detail(child_id, "parent")


@router.get("/parent/children/{child_id}/engagement")
async def child_engagement(
    child_id: str,
    days: int = Query(default=30, ge=1, le=365),
    user: UserRecord = Depends(require_role("parent")),
) -> dict:
    """Engagement metrics of one child over a window."""
    _require_child(user, child_id)
    return engagement.engagement_metrics(_get_student_summary(child_id), days)


@router.get("/parent/weekly-summary", response_model=FamilyWeeklySummaryResponse)
async def weekly_summary(
    week_start: date | None = None,
    user: UserRecord = Depends(require_role("parent")),
) -> FamilyWeeklySummaryResponse:
    """Per-child activity for a week (Monday to Sunday)."""
    return FamilyWeeklySummaryResponse.model_validate(engagement.weekly_family_summary(user.id, week_start))
