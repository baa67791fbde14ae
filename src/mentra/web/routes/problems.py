"""Problem-solving endpoints: templates, sessions and difficulty."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from mentra.core import difficulty, problem_solving, session_analytics
from mentra.core.problem_solving import ProblemSessionError
from mentra.db import analytics_repository, problems_repository
from mentra.db.problems_repository import ProblemSessionRecord, ProblemTemplateRecord, ScaffoldingStep
from mentra.db.users_repository import UserRecord
from mentra.notifications.service import get_notification_service
from mentra.web.auth import get_current_user, require_role, resolve_student_id
from mentra.web.schemas import (
    AdaptationResponse,
    AdaptDifficultyRequest,
    CompletionResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    HintResponse,
    PerformanceProfileResponse,
    ProblemSessionResponse,
    ProblemTemplateCreate,
    ProblemTemplateListResponse,
    ProblemTemplateResponse,
    RecommendedDifficultyResponse,
    SessionFeedbackRequest,
    SessionListResponse,
    SessionStartRequest,
    SessionStepResponse,
    StepResponseRequest,
    StepResultResponse,
    SuccessResponse,
    TrajectoryResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/problems", tags=["problems"])

_ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_active": status.HTTP_409_CONFLICT,
    "template_inactive": status.HTTP_409_CONFLICT,
}


def _http_error(error: ProblemSessionError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS[error.kind], detail=error.message)


def template_to_response(template: ProblemTemplateRecord) -> ProblemTemplateResponse:
    return ProblemTemplateResponse(
        id=template.id,
        title=template.title,
        description=template.description,
        problem_type=template.problem_type,
        subject=template.subject,
        difficulty_level=template.difficulty_level,
        problem_statement=template.problem_statement,
        step_count=len(template.scaffolding_steps),
        estimated_time_minutes=template.estimated_time_minutes,
        usage_count=template.usage_count,
        success_rate=template.success_rate,
        average_completion_time=template.average_completion_time,
        is_active=template.is_active,
    )


def session_to_response(session: ProblemSessionRecord) -> ProblemSessionResponse:
    return ProblemSessionResponse(
        id=session.id,
        student_id=session.student_id,
        template_id=session.template_id,
        session_status=session.session_status,
        started_at=session.started_at,
        completed_at=session.completed_at,
        current_step=session.current_step,
        total_steps=session.total_steps,
        steps_completed=session.steps_completed,
        progress=round(session_analytics.session_progress(session.steps_completed, session.total_steps), 3),
        hints_requested=session.hints_requested,
        mistakes_made=session.mistakes_made,
        accuracy_score=session.accuracy_score,
        completion_time_minutes=session.completion_time_minutes,
        steps=[SessionStepResponse.model_validate(s) for s in session.steps],
    )


def _get_viewable_session(session_id: str, user: UserRecord) -> ProblemSessionRecord:
    session = problems_repository.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found")
    resolve_student_id(user, session.student_id)
    return session


# =============================================================================
# TEMPLATES
# =============================================================================


@router.get("/templates", response_model=ProblemTemplateListResponse)
async def list_templates(
    subject: str | None = None,
    difficulty_level: str | None = None,
    problem_type: str | None = None,
    user: UserRecord = Depends(get_current_user),
) -> ProblemTemplateListResponse:
    """List active templates."""
    templates = problems_repository.list_templates(subject, difficulty_level, problem_type)
    return ProblemTemplateListResponse(
        templates=[template_to_response(t) for t in templates],
        count=len(templates),
    )


@router.get("/templates/{template_id}", response_model=ProblemTemplateResponse)
async def get_template(template_id: str, user: UserRecord = Depends(get_current_user)) -> ProblemTemplateResponse:
    template = problems_repository.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Template '{template_id}' not found")
    return template_to_response(template)


@router.post("/templates", response_model=ProblemTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    request: ProblemTemplateCreate,
    user: UserRecord = Depends(require_role("teacher")),
) -> ProblemTemplateResponse:
    """Create a template (teachers)."""
    template = problems_repository.create_template(
        title=request.title,
        problem_statement=request.problem_statement,
        scaffolding_steps=[ScaffoldingStep(**s.model_dump()) for s in request.scaffolding_steps],
        subject=request.subject,
        difficulty_level=request.difficulty_level,
        problem_type=request.problem_type,
        description=request.description,
        hint_system=request.hint_system,
        estimated_time_minutes=request.estimated_time_minutes,
        created_by=user.id,
    )
    return template_to_response(template)


# =============================================================================
# SESSIONS
# =============================================================================


@router.post("/sessions", response_model=ProblemSessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    request: SessionStartRequest,
    user: UserRecord = Depends(require_role("student")),
) -> ProblemSessionResponse:
    """Start a session on a template."""
    try:
        session = problem_solving.start_problem_session(user.id, request.template_id)
    except ProblemSessionError as e:
        raise _http_error(e) from e
    return session_to_response(session)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    student_id: str | None = None,
    session_status: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: UserRecord = Depends(get_current_user),
) -> SessionListResponse:
    owner_id = resolve_student_id(user, student_id)
    sessions = problems_repository.list_sessions(owner_id, session_status, limit, offset)
    return SessionListResponse(sessions=[session_to_response(s) for s in sessions], count=len(sessions))


@router.get("/sessions/{session_id}", response_model=ProblemSessionResponse)
async def get_session(session_id: str, user: UserRecord = Depends(get_current_user)) -> ProblemSessionResponse:
    return session_to_response(_get_viewable_session(session_id, user))


@router.post("/sessions/{session_id}/respond", response_model=StepResultResponse)
async def submit_response(
    session_id: str,
    request: StepResponseRequest,
    user: UserRecord = Depends(require_role("student")),
) -> StepResultResponse:
    """Submit a response to the current step."""
    try:
        outcome = problem_solving.submit_step_response(session_id, user.id, request.response)
    except ProblemSessionError as e:
        raise _http_error(e) from e

    completion = None
    if outcome.completion is not None:
        service = get_notification_service()
        for achievement in outcome.completion.achievements:
            await service.notify_achievement(user.id, achievement)
        completion = CompletionResponse(
            accuracy_score=outcome.completion.accuracy_score,
            completion_time_minutes=outcome.completion.completion_time_minutes,
            recommended_difficulty=outcome.completion.recommended_difficulty,
            anomaly_detected=outcome.completion.anomaly_detected,
            trajectory=outcome.completion.trajectory,
            achievements_earned=[a.achievement_id for a in outcome.completion.achievements],
        )

    return StepResultResponse(
        step_number=outcome.step_number,
        quality=outcome.analysis.quality,
        accuracy=outcome.analysis.accuracy,
        feedback=outcome.analysis.feedback,
        is_correct=outcome.analysis.is_correct,
        scaffolding=outcome.scaffolding,
        next_step=SessionStepResponse.model_validate(outcome.next_step) if outcome.next_step else None,
        session_completed=outcome.session_completed,
        completion=completion,
        session=session_to_response(outcome.session),
    )


@router.post("/sessions/{session_id}/hint", response_model=HintResponse)
async def request_hint(session_id: str, user: UserRecord = Depends(require_role("student"))) -> HintResponse:
    try:
        result = problem_solving.request_hint(session_id, user.id)
    except ProblemSessionError as e:
        raise _http_error(e) from e
    return HintResponse(hint=result.hint, hints_used=result.hints_used, source=result.source)


@router.post("/sessions/{session_id}/abandon", response_model=ProblemSessionResponse)
async def abandon_session(
    session_id: str, user: UserRecord = Depends(require_role("student"))
) -> ProblemSessionResponse:
    try:
        session = problem_solving.abandon_session(session_id, user.id)
    except ProblemSessionError as e:
        raise _http_error(e) from e
    return session_to_response(session)


@router.post("/sessions/{session_id}/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    session_id: str,
    request: HeartbeatRequest,
    user: UserRecord = Depends(require_role("student")),
) -> HeartbeatResponse:
    try:
        score = problem_solving.record_heartbeat(session_id, user.id, request.engagement_level)
    except ProblemSessionError as e:
        raise _http_error(e) from e
    return HeartbeatResponse(engagement_score=round(score, 3))


@router.post("/sessions/{session_id}/feedback", response_model=SuccessResponse)
async def session_feedback(
    session_id: str,
    request: SessionFeedbackRequest,
    user: UserRecord = Depends(require_role("student")),
) -> SuccessResponse:
    """Store how the student felt about the session."""
    session = _get_viewable_session(session_id, user)
    problems_repository.record_session_feedback(session.id, request.emotional_state, request.difficulty_perception)
    return SuccessResponse()


@router.get("/sessions/{session_id}/analytics")
async def session_analytics_summary(session_id: str, user: UserRecord = Depends(get_current_user)) -> dict:
    """Progress and engagement of one session."""
    session = _get_viewable_session(session_id, user)
    return session_analytics.session_analysis(session)


# =============================================================================
# DIFFICULTY
# =============================================================================


@router.get("/recommended-difficulty", response_model=RecommendedDifficultyResponse)
async def recommended_difficulty(
    subject: str = "general",
    student_id: str | None = None,
    user: UserRecord = Depends(get_current_user),
) -> RecommendedDifficultyResponse:
    """Difficulty the student should attempt next."""
    owner_id = resolve_student_id(user, student_id)
    return RecommendedDifficultyResponse(
        student_id=owner_id,
        subject=subject,
        recommended_difficulty=difficulty.recommend_optimal_difficulty(owner_id, subject),
        has_profile=analytics_repository.get_profile(owner_id, subject) is not None,
    )


@router.get("/profile", response_model=PerformanceProfileResponse)
async def performance_profile(
    subject: str = "general",
    student_id: str | None = None,
    refresh: bool = False,
    user: UserRecord = Depends(get_current_user),
) -> PerformanceProfileResponse:
    owner_id = resolve_student_id(user, student_id)
    if refresh:
        difficulty.update_student_performance_profile(owner_id, subject)
    profile = analytics_repository.get_profile(owner_id, subject)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No performance profile yet")
    return PerformanceProfileResponse.model_validate(profile)


@router.post("/adapt-difficulty", response_model=AdaptationResponse)
async def adapt_difficulty(
    request: AdaptDifficultyRequest,
    user: UserRecord = Depends(get_current_user),
) -> AdaptationResponse:
    """Run strategy-based adaptation for a student and subject."""
    owner_id = resolve_student_id(user, request.student_id)
    result = difficulty.adapt_difficulty(
        owner_id,
        subject=request.subject,
        strategy=request.strategy,
        window_days=request.window_days,
        apply=request.apply,
    )
    return AdaptationResponse.model_validate(result)


@router.get("/trajectory", response_model=TrajectoryResponse)
async def learning_trajectory(
    subject: str = "general",
    student_id: str | None = None,
    user: UserRecord = Depends(get_current_user),
) -> TrajectoryResponse:
    owner_id = resolve_student_id(user, student_id)
    trajectory = session_analytics.update_learning_trajectory(owner_id, subject)
    if trajectory is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No trajectory available")
    return TrajectoryResponse.model_validate(trajectory)
