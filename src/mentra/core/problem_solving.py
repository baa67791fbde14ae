"""Scaffolded problem-solving sessions.

Responsibilities:
- Start sessions from templates
- Analyze step responses and advance through the scaffolding
- Progressive hints
- Completion pipeline: template stats, performance profile, anomaly
  detection, learning trajectory, streaks and achievements
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

import structlog

from mentra.core import difficulty, rewards, session_analytics
from mentra.core.rewards import AchievementDefinition
from mentra.core.scoring import GENERIC_HINT, StepAnalysis, analyze_step_response, mean
from mentra.db import analytics_repository, problems_repository
from mentra.db.problems_repository import ProblemSessionRecord, ProblemTemplateRecord, SessionStepRecord
from mentra.utils.timeutil import parse_timestamp, to_iso, utc_now

logger = structlog.get_logger(__name__)

ErrorKind = Literal["not_found", "forbidden", "not_active", "template_inactive"]

REPEATED_MISTAKE_ATTEMPTS = 3


class ProblemSessionError(Exception):
    """Raised when a session operation cannot proceed."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class StepOutcome:
    """Result of submitting a response to the current step."""

    session: ProblemSessionRecord
    step_number: int
    analysis: StepAnalysis
    scaffolding: str | None = None
    next_step: SessionStepRecord | None = None
    completion: CompletionSummary | None = None

    @property
    def session_completed(self) -> bool:
        return self.completion is not None


@dataclass
class CompletionSummary:
    """What happened when a session finished."""

    accuracy_score: float
    completion_time_minutes: float
    recommended_difficulty: str
    anomaly_detected: bool
    trajectory: str | None
    achievements: list[AchievementDefinition] = field(default_factory=list)


@dataclass
class HintResult:
    hint: str
    hints_used: int
    source: Literal["template", "guidance", "generic"]


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================


def _load_owned_session(session_id: str, student_id: str) -> ProblemSessionRecord:
    session = _reload_session(session_id)
    if session.student_id != student_id:
        raise ProblemSessionError("forbidden", "Access denied")
    return session


def _reload_session(session_id: str) -> ProblemSessionRecord:
    session = problems_repository.get_session(session_id)
    if session is None:
        raise ProblemSessionError("not_found", "Session not found")
    return session


def _require_active(session: ProblemSessionRecord) -> None:
    if session.session_status != "active":
        raise ProblemSessionError("not_active", f"Session is {session.session_status}")


def start_problem_session(student_id: str, template_id: str) -> ProblemSessionRecord:
    """Start a session on an active template.

    Raises:
        ProblemSessionError: If the template is missing or inactive
    """
    template = problems_repository.get_template(template_id)
    if template is None:
        raise ProblemSessionError("not_found", "Problem template not found")
    if not template.is_active:
        raise ProblemSessionError("template_inactive", "Problem template is not active")
    return problems_repository.create_session(student_id, template)


def current_step(session: ProblemSessionRecord) -> SessionStepRecord | None:
    for step in session.steps:
        if step.step_number == session.current_step:
            return step
    return None


def submit_step_response(session_id: str, student_id: str, response: str) -> StepOutcome:
    """Analyze the response to the current step and advance on success.

    An excellent or good answer completes the step; an incorrect one counts
    a mistake. Scaffolding is returned whenever the analysis asks for it.
    Completing the last step finishes the session.
    """
    session = _load_owned_session(session_id, student_id)
    _require_active(session)
    step = current_step(session)
    if step is None:
        raise ProblemSessionError("not_active", "Session has no remaining steps")

    analysis = analyze_step_response(response, step.expected_response)
    completed = analysis.is_correct
    problems_repository.record_step_response(
        session.id,
        step.step_number,
        response,
        analysis.accuracy,
        analysis.quality,
        analysis.feedback,
        completed,
    )

    steps_completed = session.steps_completed + (1 if completed else 0)
    next_number = step.step_number + 1 if completed else step.step_number
    problems_repository.update_session_progress(
        session.id,
        current_step=min(next_number, session.total_steps),
        steps_completed=steps_completed,
        add_mistakes=1 if analysis.quality == "incorrect" else 0,
    )

    if not completed and step.attempts_count + 1 >= REPEATED_MISTAKE_ATTEMPTS:
        session_analytics.generate_session_alert(
            session,
            "repeated_mistakes",
            f"Step {step.step_number} attempted {step.attempts_count + 1} times without success",
            "warning",
        )

    scaffolding = None
    if analysis.needs_scaffolding:
        scaffolding = step.scaffolding_guidance or GENERIC_HINT

    completion = None
    if completed and steps_completed >= session.total_steps:
        completion = complete_problem_session(session.id)

    refreshed = _reload_session(session.id)
    logger.debug(
        "problems.step_submitted",
        session_id=session.id,
        step=step.step_number,
        quality=analysis.quality,
    )
    return StepOutcome(
        session=refreshed,
        step_number=step.step_number,
        analysis=analysis,
        scaffolding=scaffolding,
        next_step=None if completion else current_step(refreshed),
        completion=completion,
    )


def request_hint(session_id: str, student_id: str) -> HintResult:
    """Next progressive hint: template hints, then step guidance, then generic."""
    session = _load_owned_session(session_id, student_id)
    _require_active(session)
    template = problems_repository.get_template(session.template_id)

    hints = template.hint_system if template else []
    step = current_step(session)
    if session.hints_requested < len(hints):
        result = HintResult(hints[session.hints_requested], session.hints_requested + 1, "template")
    elif step is not None and step.scaffolding_guidance:
        result = HintResult(step.scaffolding_guidance, session.hints_requested + 1, "guidance")
    else:
        result = HintResult(GENERIC_HINT, session.hints_requested + 1, "generic")

    problems_repository.update_session_progress(session.id, add_hints=1)
    return result


def abandon_session(session_id: str, student_id: str) -> ProblemSessionRecord:
    session = _load_owned_session(session_id, student_id)
    _require_active(session)
    problems_repository.set_session_status(session.id, "abandoned")
    logger.info("problems.session_abandoned", session_id=session.id)
    refreshed = _reload_session(session.id)
    return refreshed


def record_heartbeat(session_id: str, student_id: str, engagement_level: str = "medium") -> float:
    """Store a heartbeat and return the session's engagement score."""
    session = _load_owned_session(session_id, student_id)
    problems_repository.add_heartbeat(session.id, engagement_level)
    return session_analytics.calculate_engagement_score(session)


# =============================================================================
# COMPLETION PIPELINE
# =============================================================================


def _subjects(template: ProblemTemplateRecord) -> list[str]:
    return ["general"] if template.subject == "general" else [template.subject, "general"]


def complete_problem_session(session_id: str, now: datetime | None = None) -> CompletionSummary:
    """Finish a session and refresh everything that depends on it."""
    now = now or utc_now()
    session = problems_repository.get_session(session_id)
    if session is None:
        raise ProblemSessionError("not_found", "Session not found")
    template = problems_repository.get_template(session.template_id)
    if template is None:
        raise ProblemSessionError("not_found", "Problem template not found")

    step_scores = [s.accuracy_score for s in session.steps if s.accuracy_score is not None]
    accuracy = round(mean(step_scores) or 0.0, 3)
    minutes = round((now - parse_timestamp(session.started_at)).total_seconds() / 60, 2)

    # Baseline excludes the session being completed
    anomaly = session_analytics.detect_performance_anomaly(
        session.student_id, accuracy, template.subject, now
    )
    problems_repository.complete_session(session.id, accuracy, minutes, to_iso(now))
    problems_repository.update_template_usage_stats(template.id)

    for subject in _subjects(template):
        difficulty.update_student_performance_profile(session.student_id, subject, now)
    recommended = difficulty.recommend_optimal_difficulty(session.student_id, template.subject)

    trajectory = session_analytics.update_learning_trajectory(session.student_id, template.subject, now)
    analytics_repository.invalidate_analytics(f"student:{session.student_id}")

    achievements = rewards.record_problem_completion(
        session.student_id, session.id, template.title, accuracy, now.date()
    )

    logger.info(
        "problems.pipeline_done",
        session_id=session.id,
        accuracy=accuracy,
        recommended=recommended,
        anomaly=anomaly,
    )
    return CompletionSummary(
        accuracy_score=accuracy,
        completion_time_minutes=minutes,
        recommended_difficulty=recommended,
        anomaly_detected=anomaly,
        trajectory=trajectory.trend_direction if trajectory else None,
        achievements=achievements,
    )
