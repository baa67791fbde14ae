"""Pydantic schemas for the Web API.

Request bodies and response models for auth, journal, problems,
dashboards, goals and notifications.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["student", "teacher", "parent", "admin"]
PrivacyLevel = Literal["private", "teacher_shareable", "parent_shareable", "public"]


# =============================================================================
# COMMON
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    database: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: str | None = None


# =============================================================================
# AUTH SCHEMAS
# =============================================================================


class RegisterRequest(BaseModel):
    """Request body for registering a user."""

    email: str = Field(..., min_length=3, max_length=200, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    role: Literal["student", "teacher", "parent"] = "student"
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    grade_level: int | None = Field(default=None, ge=1, le=12)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    email: str
    role: Role
    first_name: str
    last_name: str
    status: str
    timezone: str
    last_login_at: str | None
    created_at: str

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# =============================================================================
# JOURNAL SCHEMAS
# =============================================================================


class EmotionInput(BaseModel):
    emotion: str
    intensity: int = Field(default=5, ge=1, le=10)


class JournalEntryCreate(BaseModel):
    """Request body for creating a journal entry."""

    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    mood: str | None = Field(default=None, max_length=50)
    emotions: list[EmotionInput] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list, max_length=20)
    privacy_level: PrivacyLevel = "private"
    share_with_teacher: bool | None = None
    share_with_parent: bool | None = None


class JournalEntryUpdate(BaseModel):
    """Request body for updating an entry. Omitted fields stay unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = Field(default=None, min_length=1)
    mood: str | None = Field(default=None, max_length=50)
    emotions: list[EmotionInput] | None = None
    tags: list[str] | None = None
    privacy_level: PrivacyLevel | None = None
    share_with_teacher: bool | None = None
    share_with_parent: bool | None = None


class JournalEntryResponse(BaseModel):
    id: str
    student_id: str
    title: str
    content: str
    content_hash: str
    word_count: int
    reading_time_minutes: int
    mood: str | None
    privacy_level: str
    is_private: bool
    is_shareable_with_teacher: bool
    is_shareable_with_parent: bool
    emotions: list[dict[str, Any]]
    tags: list[str]
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class JournalEntryCreated(JournalEntryResponse):
    """Created entry plus any achievements it unlocked."""

    achievements_earned: list[str] = Field(default_factory=list)


class JournalListResponse(BaseModel):
    entries: list[JournalEntryResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class SuggestionsResponse(BaseModel):
    suggestions: list[str]


# =============================================================================
# PROBLEM SCHEMAS
# =============================================================================


class ScaffoldingStepInput(BaseModel):
    title: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    step_type: str = "response"
    expected_response: str | None = None
    scaffolding_guidance: str | None = None


class ProblemTemplateCreate(BaseModel):
    """Request body for creating a problem template."""

    title: str = Field(..., min_length=1, max_length=200)
    problem_statement: str = Field(..., min_length=1)
    scaffolding_steps: list[ScaffoldingStepInput] = Field(..., min_length=1)
    subject: str = "general"
    difficulty_level: Literal["easy", "medium", "hard", "advanced"] = "medium"
    problem_type: Literal["math", "science", "logic", "reading", "writing", "general"] = "general"
    description: str = ""
    hint_system: list[str] = Field(default_factory=list)
    estimated_time_minutes: int | None = Field(default=None, ge=1)


class ProblemTemplateResponse(BaseModel):
    id: str
    title: str
    description: str
    problem_type: str
    subject: str
    difficulty_level: str
    problem_statement: str
    step_count: int
    estimated_time_minutes: int | None
    usage_count: int
    success_rate: float | None
    average_completion_time: float | None
    is_active: bool


class ProblemTemplateListResponse(BaseModel):
    templates: list[ProblemTemplateResponse]
    count: int


class SessionStartRequest(BaseModel):
    template_id: str


class SessionStepResponse(BaseModel):
    """A session step as the student sees it (no expected answer)."""

    step_number: int
    title: str
    step_type: str
    prompt: str
    student_response: str | None
    attempts_count: int
    accuracy_score: float | None
    response_quality: str | None
    feedback: str | None
    is_completed: bool

    model_config = {"from_attributes": True}


class ProblemSessionResponse(BaseModel):
    id: str
    student_id: str
    template_id: str
    session_status: str
    started_at: str
    completed_at: str | None
    current_step: int
    total_steps: int
    steps_completed: int
    progress: float
    hints_requested: int
    mistakes_made: int
    accuracy_score: float | None
    completion_time_minutes: float | None
    steps: list[SessionStepResponse] = Field(default_factory=list)


class SessionListResponse(BaseModel):
    sessions: list[ProblemSessionResponse]
    count: int


class StepResponseRequest(BaseModel):
    response: str = Field(..., min_length=1)


class CompletionResponse(BaseModel):
    accuracy_score: float
    completion_time_minutes: float
    recommended_difficulty: str
    anomaly_detected: bool
    trajectory: str | None
    achievements_earned: list[str]


class StepResultResponse(BaseModel):
    """Outcome of a submitted step."""

    step_number: int
    quality: str
    accuracy: float
    feedback: str
    is_correct: bool
    scaffolding: str | None
    next_step: SessionStepResponse | None
    session_completed: bool
    completion: CompletionResponse | None
    session: ProblemSessionResponse


class HintResponse(BaseModel):
    hint: str
    hints_used: int
    source: str


class HeartbeatRequest(BaseModel):
    engagement_level: Literal["high", "medium", "low"] = "medium"


class HeartbeatResponse(BaseModel):
    engagement_score: float


class SessionFeedbackRequest(BaseModel):
    emotional_state: str | None = Field(default=None, max_length=50)
    difficulty_perception: int | None = Field(default=None, ge=1, le=5)


class RecommendedDifficultyResponse(BaseModel):
    student_id: str
    subject: str
    recommended_difficulty: str
    has_profile: bool


class PerformanceProfileResponse(BaseModel):
    student_id: str
    subject: str
    easy_performance: float | None
    medium_performance: float | None
    hard_performance: float | None
    very_hard_performance: float | None
    overall_performance: float
    accuracy_trend: float
    speed_trend: float
    consistency_score: float
    profile_confidence: float
    sessions_analyzed: int
    optimal_difficulty_level: str | None
    last_updated: str | None

    model_config = {"from_attributes": True}


class AdaptDifficultyRequest(BaseModel):
    subject: str = "general"
    strategy: Literal["conservative", "moderate", "aggressive", "personalized"] | None = None
    window_days: int | None = Field(default=None, ge=1, le=90)
    apply: bool = True
    student_id: str | None = None


class AdaptationAnalysisResponse(BaseModel):
    performance_category: str
    base_adjustment: float
    strategy_multiplier: float
    trend_adjustment: float
    recent_trend_adjustment: float
    final_adjustment: float
    confidence: float
    recommended_action: str
    reason: str

    model_config = {"from_attributes": True}


class AdaptationResponse(BaseModel):
    status: str
    previous_difficulty: str
    new_difficulty: str
    difficulty_change: float
    sessions_analyzed: int
    analysis: AdaptationAnalysisResponse | None
    recommendations: list[dict[str, Any]]

    model_config = {"from_attributes": True}


class TrajectoryResponse(BaseModel):
    student_id: str
    subject: str
    trend_direction: str
    trend_strength: float
    confidence_level: float
    data_points: list[dict[str, Any]]
    sessions_analyzed: int
    updated_at: str

    model_config = {"from_attributes": True}


# =============================================================================
# DASHBOARD SCHEMAS
# =============================================================================


class StreakResponse(BaseModel):
    streak_type: str
    current_count: int
    best_count: int
    last_activity_date: str
    started_at: str

    model_config = {"from_attributes": True}


class AchievementResponse(BaseModel):
    id: str
    achievement_id: str
    title: str
    description: str
    category: str
    points: int
    metadata: dict[str, Any]
    earned_at: str

    model_config = {"from_attributes": True}


class AchievementListResponse(BaseModel):
    achievements: list[AchievementResponse]
    count: int
    total_points: int


class ActivityResponse(BaseModel):
    id: int
    activity_type: str
    title: str
    description: str
    metadata: dict[str, Any]
    created_at: str

    model_config = {"from_attributes": True}


class ActivityFeedResponse(BaseModel):
    activities: list[ActivityResponse]
    count: int


class StudentOverviewResponse(BaseModel):
    student_id: str
    name: str
    grade_level: int | None
    total_points: int
    current_streak: int
    best_streak: int
    last_activity_date: str | None
    engagement_level: str
    streaks: list[StreakResponse]
    recent_achievements: list[AchievementResponse]
    goals: dict[str, Any]
    journal: dict[str, Any]
    recommended_difficulty: str


class ProgressResponse(BaseModel):
    student_id: str
    timeframe: str
    journal_entries: int
    problem_sessions: int
    completed_sessions: int
    average_accuracy: float | None
    achievements_earned: int
    points_earned: int
    trajectory: TrajectoryResponse | None


class DashboardPreferencesRequest(BaseModel):
    widget_layout: list[dict[str, Any]] = Field(default_factory=list)
    default_timeframe: Literal["7d", "30d", "90d", "all"] = "7d"
    theme: Literal["light", "dark", "auto"] = "auto"
    show_achievements: bool = True


class DashboardPreferencesResponse(DashboardPreferencesRequest):
    user_id: str

    model_config = {"from_attributes": True}


# =============================================================================
# GOAL SCHEMAS
# =============================================================================


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: Literal["academic", "personal", "skill", "habit", "other"] = "academic"
    target_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    milestones: list[str] = Field(default_factory=list)


class GoalUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category: Literal["academic", "personal", "skill", "habit", "other"] | None = None
    target_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    status: Literal["active", "completed", "paused", "cancelled"] | None = None


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class MilestoneResponse(BaseModel):
    id: str
    title: str
    position: int
    completed_at: str | None
    is_completed: bool

    model_config = {"from_attributes": True}


class GoalResponse(BaseModel):
    id: str
    student_id: str
    title: str
    description: str
    category: str
    target_date: str | None
    status: str
    progress_percentage: float
    completed_at: str | None
    created_at: str
    updated_at: str
    milestones: list[MilestoneResponse]

    model_config = {"from_attributes": True}


class GoalListResponse(BaseModel):
    goals: list[GoalResponse]
    summary: dict[str, Any]


class GoalProgressResponse(BaseModel):
    goal: GoalResponse
    achievements_earned: list[str]


# =============================================================================
# TEACHER / PARENT SCHEMAS
# =============================================================================


class StudentSummaryResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    grade_level: int | None
    total_points: int
    current_streak: int
    best_streak: int
    last_activity_date: str | None
    engagement_level: str


class StudentAlertResponse(BaseModel):
    student_id: str
    student_name: str
    alert_types: list[str]
    priority: str
    current_streak: int
    best_streak: int
    last_activity_date: str | None
    recent_score: float | None

    model_config = {"from_attributes": True}


class TeacherOverviewResponse(BaseModel):
    teacher_id: str
    students: list[StudentSummaryResponse]
    total_students: int
    engagement_distribution: dict[str, int]
    alerts: list[StudentAlertResponse]


class WeeklyReportResponse(BaseModel):
    report_date: str
    total_students: int
    active_students: int
    engagement_rate: float | None
    average_streak: float
    total_activities: int
    alerts: list[StudentAlertResponse]


class StudentDetailResponse(BaseModel):
    student: StudentSummaryResponse
    metrics: dict[str, Any]
    shared_journal_entries: list[JournalEntryResponse]
    recent_sessions: list[ProblemSessionResponse]
    achievements: list[AchievementResponse]
    goals: list[GoalResponse]
    profiles: list[PerformanceProfileResponse]
    trajectory: TrajectoryResponse | None
    note: str | None = None


class InterventionCreate(BaseModel):
    intervention_type: Literal[
        "check_in", "encouragement", "academic_support", "parent_contact", "other"
    ] = "check_in"
    description: str = Field(..., min_length=1)
    scheduled_for: str | None = None


class InterventionUpdate(BaseModel):
    status: Literal["planned", "in_progress", "completed", "cancelled"]
    outcome: str | None = None


class InterventionResponse(BaseModel):
    id: str
    teacher_id: str
    student_id: str
    intervention_type: str
    description: str
    status: str
    scheduled_for: str | None
    completed_at: str | None
    outcome: str | None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class TeacherNoteRequest(BaseModel):
    note: str = Field(..., max_length=5000)


class TeacherMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class ParentOverviewResponse(BaseModel):
    parent_id: str
    children: list[StudentSummaryResponse]


class ChildWeeklySummaryResponse(BaseModel):
    child_id: str
    name: str
    journal_entries: int
    problem_sessions: int
    completed_sessions: int
    achievements_earned: int
    points_earned: int
    current_streak: int
    engagement_level: str

    model_config = {"from_attributes": True}


class FamilyWeeklySummaryResponse(BaseModel):
    week_start: str
    week_end: str
    children: list[ChildWeeklySummaryResponse]
    totals: dict[str, int]

    model_config = {"from_attributes": True}


# =============================================================================
# NOTIFICATION SCHEMAS
# =============================================================================


class NotificationCreate(BaseModel):
    """Request body for sending a notification."""

    type_key: str
    recipient_id: str
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    priority: Literal["low", "normal", "high", "urgent"] | None = None
    action_url: str | None = None
    action_text: str | None = None
    scheduled_for: str | None = None
    expires_at: str | None = None


class NotificationResponse(BaseModel):
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

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    limit: int
    offset: int


class UnreadCountResponse(BaseModel):
    count: int


class BulkReadRequest(BaseModel):
    notification_ids: list[str] | None = None


class BulkReadResponse(BaseModel):
    updated: int
    unread_count: int


class NotificationPreferenceResponse(BaseModel):
    type_key: str
    name: str
    category: str
    enabled: bool
    channels: list[str]
    frequency: str
    is_default: bool

    model_config = {"from_attributes": True}


class NotificationPreferenceUpdate(BaseModel):
    enabled: bool
    channels: list[str] = Field(default_factory=lambda: ["in_app"])
    frequency: Literal["immediate", "daily", "weekly", "never"] = "immediate"


class AssignmentReminderRequest(BaseModel):
    student_id: str
    assignment_title: str = Field(..., min_length=1)
    due_date: str
    scheduled_for: str | None = None


class TeacherMessageHelperRequest(BaseModel):
    student_id: str
    message: str = Field(..., min_length=1, max_length=2000)


class DeliverDueResponse(BaseModel):
    delivered: int
