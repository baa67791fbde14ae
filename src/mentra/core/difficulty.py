"""Difficulty adaptation.

Two layers:

- Performance profile: composite scores of the last completed sessions
  (30-day window, at most 20) bucketed by template difficulty. The
  recommended difficulty is the bucket whose mean sits in the optimal
  challenge range [0.6, 0.8], falling back to thresholds on the overall
  mean.
- Strategy-based adaptation: moves a stored difficulty preference up or
  down from the performance category, trend and recent-vs-older change
  over a shorter window, scaled by a strategy multiplier.

Pure functions take plain values; the student-facing functions read and
write through the repositories.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from mentra.config.app_config import AdaptationConfig, load_app_config
from mentra.core.scoring import composite_performance_score, mean, pearson, sample_stdev
from mentra.db import analytics_repository, problems_repository
from mentra.db.analytics_repository import PerformanceProfile
from mentra.db.problems_repository import CompletedSessionSample
from mentra.utils.timeutil import iso_days_ago, parse_timestamp, utc_now

logger = structlog.get_logger(__name__)

DIFFICULTY_LEVELS = {
    "very_easy": 1,
    "easy": 2,
    "medium": 3,
    "hard": 4,
    "very_hard": 5,
}
DEFAULT_DIFFICULTY = "medium"

# Template difficulty -> profile bucket
TEMPLATE_BUCKETS = {
    "easy": "easy",
    "medium": "medium",
    "hard": "hard",
    "advanced": "very_hard",
}

# Buckets checked for the optimal range, in order
BUCKET_PREFERENCE = ("hard", "medium", "easy", "very_hard")

# (category, minimum average score, base adjustment), best first
PERFORMANCE_CATEGORIES = (
    ("EXCELLENT", 0.9, 0.5),
    ("GOOD", 0.75, 0.2),
    ("SATISFACTORY", 0.6, 0.0),
    ("STRUGGLING", 0.4, -0.3),
    ("FAILING", 0.0, -0.6),
)

STRATEGIES = ("conservative", "moderate", "aggressive", "personalized")

MIN_APPLY_CHANGE = 0.1


def difficulty_value(name: str) -> int:
    """Numeric level of a difficulty name (templates' 'advanced' maps to 5)."""
    name = TEMPLATE_BUCKETS.get(name, name)
    return DIFFICULTY_LEVELS.get(name, DIFFICULTY_LEVELS[DEFAULT_DIFFICULTY])


def difficulty_name(value: float) -> str:
    """Difficulty name for a (possibly fractional) level; halves round up."""
    rounded = math.floor(value + 0.5)
    for name, level in DIFFICULTY_LEVELS.items():
        if level == rounded:
            return name
    return DEFAULT_DIFFICULTY


def _timestamp(value: str) -> float:
    return parse_timestamp(value).timestamp()


# =============================================================================
# PERFORMANCE PROFILE
# =============================================================================


def build_performance_profile(
    student_id: str,
    subject: str,
    samples: list[CompletedSessionSample],
) -> PerformanceProfile | None:
    """Aggregate completed sessions into a profile. None without sessions."""
    if not samples:
        return None

    scores = [
        composite_performance_score(
            s.accuracy_score, s.completion_time_minutes, s.hints_requested, s.mistakes_made
        )
        for s in samples
    ]

    buckets: dict[str, list[float]] = {b: [] for b in TEMPLATE_BUCKETS.values()}
    for sample, score in zip(samples, scores):
        buckets[TEMPLATE_BUCKETS.get(sample.difficulty_level, "medium")].append(score)

    accuracy_pairs = [
        (_timestamp(s.started_at), s.accuracy_score)
        for s in samples if s.accuracy_score is not None
    ]
    speed_pairs = [
        (_timestamp(s.started_at), s.completion_time_minutes)
        for s in samples if s.completion_time_minutes is not None
    ]
    accuracy_trend = pearson([p[0] for p in accuracy_pairs], [p[1] for p in accuracy_pairs])
    speed_trend = pearson([p[0] for p in speed_pairs], [p[1] for p in speed_pairs])
    stdev = sample_stdev(scores)

    return PerformanceProfile(
        student_id=student_id,
        subject=subject,
        easy_performance=mean(buckets["easy"]),
        medium_performance=mean(buckets["medium"]),
        hard_performance=mean(buckets["hard"]),
        very_hard_performance=mean(buckets["very_hard"]),
        overall_performance=mean(scores) or 0.0,
        accuracy_trend=accuracy_trend or 0.0,
        speed_trend=speed_trend or 0.0,
        consistency_score=max(0.0, 1.0 - (stdev if stdev is not None else 1.0)),
        profile_confidence=min(1.0, len(samples) / 10.0),
        sessions_analyzed=len(samples),
    )


def choose_optimal_difficulty(
    profile: PerformanceProfile,
    config: AdaptationConfig | None = None,
) -> str:
    """Pick the difficulty that keeps the student in the optimal challenge range."""
    config = config or AdaptationConfig()
    low, high = config.optimal_range

    bucket_scores = {
        "hard": profile.hard_performance,
        "medium": profile.medium_performance,
        "easy": profile.easy_performance,
        "very_hard": profile.very_hard_performance,
    }
    for bucket in BUCKET_PREFERENCE:
        score = bucket_scores[bucket]
        if score is not None and low <= score <= high:
            return bucket

    hard_cut, medium_cut, easy_cut = config.fallback_thresholds
    overall = profile.overall_performance
    if overall > hard_cut:
        return "hard"
    if overall > medium_cut:
        return "medium"
    if overall > easy_cut:
        return "easy"
    return "very_easy"


def update_student_performance_profile(
    student_id: str,
    subject: str = "general",
    now: datetime | None = None,
) -> PerformanceProfile | None:
    """Rebuild and store the profile from recent completed sessions."""
    config = load_app_config().adaptation
    samples = problems_repository.list_completed_samples(
        student_id,
        since=iso_days_ago(config.profile_window_days, now),
        subject=subject,
        limit=config.profile_session_cap,
    )
    profile = build_performance_profile(student_id, subject, samples)
    if profile is None:
        logger.debug("difficulty.profile_skipped", student_id=student_id, subject=subject)
        return None

    analytics_repository.upsert_profile(profile)
    logger.info(
        "difficulty.profile_updated",
        student_id=student_id,
        subject=subject,
        sessions=profile.sessions_analyzed,
        overall=round(profile.overall_performance, 3),
    )
    return profile


def recommend_optimal_difficulty(student_id: str, subject: str = "general") -> str:
    """Recommended difficulty from the stored profile; 'medium' without one."""
    profile = analytics_repository.get_profile(student_id, subject)
    if profile is None:
        return DEFAULT_DIFFICULTY

    level = choose_optimal_difficulty(profile, load_app_config().adaptation)
    analytics_repository.set_optimal_difficulty(student_id, subject, level)
    return level


# =============================================================================
# STRATEGY-BASED ADAPTATION
# =============================================================================


@dataclass
class PerformanceWindow:
    """Composite-score statistics over the adaptation window."""

    total_sessions: int
    average_score: float
    stability: float
    trend: float
    recent_score: float | None
    older_score: float | None


@dataclass
class AdaptationAnalysis:
    """How far and why the difficulty should move."""

    performance_category: str
    base_adjustment: float
    strategy_multiplier: float
    trend_adjustment: float
    recent_trend_adjustment: float
    final_adjustment: float
    confidence: float
    recommended_action: str
    reason: str


@dataclass
class AdaptationResult:
    """Outcome of an adaptation run."""

    status: str  # adjusted | proposed | maintained | insufficient_data
    previous_difficulty: str
    new_difficulty: str
    difficulty_change: float = 0.0
    sessions_analyzed: int = 0
    analysis: AdaptationAnalysis | None = None
    recommendations: list[dict[str, Any]] = field(default_factory=list)


def summarize_window(
    samples: list[CompletedSessionSample],
    window_days: int,
    now: datetime | None = None,
) -> PerformanceWindow:
    """Composite-score statistics; sessions after the window midpoint count as recent."""
    now = now or utc_now()
    midpoint = now.timestamp() - math.ceil(window_days / 2) * 86400

    points = [
        (
            _timestamp(s.started_at),
            composite_performance_score(
                s.accuracy_score, s.completion_time_minutes, s.hints_requested, s.mistakes_made
            ),
        )
        for s in samples
    ]
    scores = [p[1] for p in points]
    recent = [score for ts, score in points if ts >= midpoint]
    older = [score for ts, score in points if ts < midpoint]

    return PerformanceWindow(
        total_sessions=len(points),
        average_score=mean(scores) or 0.0,
        stability=sample_stdev(scores) or 0.0,
        trend=pearson([p[0] for p in points], scores) or 0.0,
        recent_score=mean(recent),
        older_score=mean(older),
    )


def categorize_performance(average_score: float) -> tuple[str, float]:
    """(category, base adjustment) for an average composite score."""
    for category, minimum, adjustment in PERFORMANCE_CATEGORIES:
        if average_score >= minimum:
            return category, adjustment
    return "FAILING", PERFORMANCE_CATEGORIES[-1][2]


def strategy_multiplier(strategy: str, stability: float) -> float:
    if strategy == "conservative":
        return 0.5
    if strategy == "aggressive":
        return 1.5
    if strategy == "personalized":
        return max(0.3, 1.0 - stability)
    return 1.0


def adaptation_confidence(window: PerformanceWindow) -> float:
    """Confidence grows with data, shrinks with volatility and extreme scores."""
    confidence = min(1.0, window.total_sessions / 10.0)
    if window.stability < 1.0:
        confidence *= 1.0 - min(0.5, window.stability)
    if window.average_score < 0.1 or window.average_score > 0.95:
        confidence *= 0.8
    return round(confidence, 3)


def recommended_action(adjustment: float) -> str:
    if abs(adjustment) < 0.1:
        return "maintain_current_level"
    if adjustment > 0.3:
        return "increase_difficulty_significantly"
    if adjustment > 0:
        return "increase_difficulty_gradually"
    if adjustment < -0.3:
        return "decrease_difficulty_significantly"
    return "decrease_difficulty_gradually"


def analyze_adaptation(window: PerformanceWindow, strategy: str = "moderate") -> AdaptationAnalysis:
    """Compute the difficulty adjustment for a performance window."""
    category, base = categorize_performance(window.average_score)
    multiplier = strategy_multiplier(strategy, window.stability)
    trend_adjustment = window.trend * 0.2

    recent_trend_adjustment = 0.0
    if window.recent_score is not None and window.older_score is not None:
        recent_trend_adjustment = (window.recent_score - window.older_score) * 0.3

    final = (base + trend_adjustment + recent_trend_adjustment) * multiplier

    reason = f"Performance {category.lower()} (avg {window.average_score:.2f})"
    if abs(recent_trend_adjustment) > 0.1:
        reason += ", improving recently" if recent_trend_adjustment > 0 else ", declining recently"

    return AdaptationAnalysis(
        performance_category=category,
        base_adjustment=base,
        strategy_multiplier=multiplier,
        trend_adjustment=round(trend_adjustment, 3),
        recent_trend_adjustment=round(recent_trend_adjustment, 3),
        final_adjustment=round(final, 3),
        confidence=adaptation_confidence(window),
        recommended_action=recommended_action(final),
        reason=reason,
    )


def build_recommendations(analysis: AdaptationAnalysis) -> list[dict[str, Any]]:
    """Teacher-facing suggestions derived from an analysis."""
    recommendations = []
    if analysis.performance_category == "EXCELLENT":
        recommendations.append({
            "type": "challenge",
            "title": "Ready for More Challenge",
            "description": "Student is excelling and ready for harder problems",
            "priority": "medium",
            "actions": ["Introduce advanced concepts", "Provide enrichment activities"],
        })
    elif analysis.performance_category in ("STRUGGLING", "FAILING"):
        recommendations.append({
            "type": "support",
            "title": "Additional Support Needed",
            "description": "Student may benefit from review and easier problems",
            "priority": "high",
            "actions": ["Review fundamental concepts", "Provide additional scaffolding", "Consider peer tutoring"],
        })
    elif analysis.performance_category == "GOOD":
        recommendations.append({
            "type": "maintain",
            "title": "Steady Progress",
            "description": "Student is making good progress at current level",
            "priority": "low",
            "actions": ["Continue current approach", "Monitor for consistency"],
        })

    if analysis.recent_trend_adjustment < -0.2:
        recommendations.append({
            "type": "intervention",
            "title": "Performance Declining",
            "description": "Recent performance shows concerning decline",
            "priority": "high",
            "actions": ["Schedule check-in", "Review recent challenges", "Adjust study approach"],
        })

    if analysis.confidence < 0.5:
        recommendations.append({
            "type": "caution",
            "title": "Insufficient Data",
            "description": "More practice sessions needed for reliable adaptation",
            "priority": "medium",
            "actions": ["Encourage regular practice", "Monitor closely", "Delay major changes"],
        })

    return recommendations


def get_current_difficulty(student_id: str, subject: str = "general", now: datetime | None = None) -> str:
    """Stored preference, else most common recent difficulty, else medium."""
    preference = analytics_repository.get_difficulty_preference(student_id, subject)
    if preference is not None:
        return preference.current_difficulty

    recent = problems_repository.recent_difficulty_levels(
        student_id, since=iso_days_ago(30, now), subject=subject, limit=5
    )
    if recent:
        most_common = Counter(recent).most_common(1)[0][0]
        return TEMPLATE_BUCKETS.get(most_common, most_common)
    return DEFAULT_DIFFICULTY


def adapt_difficulty(
    student_id: str,
    subject: str = "general",
    strategy: str | None = None,
    window_days: int | None = None,
    min_sessions: int | None = None,
    apply: bool = True,
    now: datetime | None = None,
) -> AdaptationResult:
    """Analyze recent performance and move the stored difficulty.

    The change is applied when it is at least 0.1 levels; the confidence
    only feeds the analysis and the recommendations.

    Raises:
        ValueError: On unknown strategy
    """
    config = load_app_config().adaptation
    strategy = strategy or config.default_strategy
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy}")
    window_days = window_days or config.adaptation_window_days
    min_sessions = config.min_sessions if min_sessions is None else min_sessions

    current = get_current_difficulty(student_id, subject, now)
    samples = problems_repository.list_completed_samples(
        student_id, since=iso_days_ago(window_days, now), subject=subject
    )

    if len(samples) < min_sessions:
        logger.debug("difficulty.insufficient_data", student_id=student_id, sessions=len(samples))
        return AdaptationResult(
            status="insufficient_data",
            previous_difficulty=current,
            new_difficulty=current,
            sessions_analyzed=len(samples),
        )

    window = summarize_window(samples, window_days, now)
    analysis = analyze_adaptation(window, strategy)

    current_value = difficulty_value(current)
    new_value = max(1.0, min(5.0, current_value + analysis.final_adjustment))
    change = round(new_value - current_value, 3)
    new_difficulty = difficulty_name(new_value)

    should_apply = abs(change) >= MIN_APPLY_CHANGE
    if should_apply and apply:
        analytics_repository.record_difficulty_adjustment(
            student_id=student_id,
            subject=subject,
            previous_difficulty=current,
            new_difficulty=new_difficulty,
            adjustment_value=change,
            strategy=strategy,
            performance_score=round(window.average_score, 3),
            confidence=analysis.confidence,
            reason=analysis.reason,
        )

    if not should_apply:
        status = "maintained"
    else:
        status = "adjusted" if apply else "proposed"

    return AdaptationResult(
        status=status,
        previous_difficulty=current,
        new_difficulty=new_difficulty if should_apply else current,
        difficulty_change=change if should_apply else 0.0,
        sessions_analyzed=window.total_sessions,
        analysis=analysis,
        recommendations=build_recommendations(analysis),
    )
