"""Display helpers for dashboard data."""

from __future__ import annotations

from datetime import datetime, timezone

from mentra.utils.timeutil import parse_timestamp, utc_now

ENGAGEMENT_COLORS = {
    "excellent": "#4CAF50",
    "good": "#8BC34A",
    "fair": "#FF9800",
    "needs_attention": "#F44336",
}

ENGAGEMENT_ICONS = {
    "excellent": "🌟",
    "good": "👍",
    "fair": "📈",
    "needs_attention": "💙",
}

ENGAGEMENT_MESSAGES = {
    "excellent": "Fantastic! Highly engaged with learning.",
    "good": "Great work! Consistently engaged.",
    "fair": "Making progress. Consider additional encouragement.",
    "needs_attention": "May need extra support and motivation.",
}

PRIORITY_COLORS = {
    "low": "#4CAF50",
    "normal": "#2196F3",
    "medium": "#FF9800",
    "high": "#F44336",
    "urgent": "#9C27B0",
}

DIFFICULTY_LABELS = {
    "very_easy": "Very easy",
    "easy": "Easy",
    "medium": "Medium",
    "hard": "Hard",
    "very_hard": "Very hard",
    "advanced": "Advanced",
}

TIMEFRAME_LABELS = {
    "7d": "Last 7 days",
    "30d": "Last 30 days",
    "90d": "Last 90 days",
    "all": "All time",
}

HIGH_SCHOOL_YEARS = {9: "Freshman", 10: "Sophomore", 11: "Junior", 12: "Senior"}


def format_duration(minutes: float | None) -> str:
    """'45 min', '1h 30m', '2h'."""
    if minutes is None:
        return "-"
    total = round(minutes)
    if total < 1:
        return "< 1 min"
    if total < 60:
        return f"{total} min"
    hours, rest = divmod(total, 60)
    return f"{hours}h {rest}m" if rest else f"{hours}h"


def format_relative_time(timestamp: str | datetime, now: datetime | None = None) -> str:
    """Human distance from now: 'just now', '5 minutes ago', 'Yesterday', '3 weeks ago'."""
    moment = parse_timestamp(timestamp) if isinstance(timestamp, str) else timestamp
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    seconds = max(0.0, ((now or utc_now()) - moment).total_seconds())

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        minutes = int(seconds // 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return f"{hours} hour{'s' if hours != 1 else ''} ago"

    days = int(seconds // 86400)
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        weeks = days // 7
        return f"{weeks} week{'s' if weeks != 1 else ''} ago"
    if days < 365:
        months = days // 30
        return f"{months} month{'s' if months != 1 else ''} ago"
    years = days // 365
    return f"{years} year{'s' if years != 1 else ''} ago"


def format_percentage(value: float | None, decimals: int = 0) -> str:
    """Format a 0-1 ratio as a percentage."""
    if value is None:
        return "-"
    return f"{value * 100:.{decimals}f}%"


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def format_grade_level(grade_level: int | None) -> str:
    if grade_level is None:
        return "-"
    if grade_level <= 0:
        return "Pre-K"
    if grade_level > 12:
        return f"Grade {grade_level}"
    label = f"{_ordinal(grade_level)} Grade"
    if grade_level in HIGH_SCHOOL_YEARS:
        label += f" ({HIGH_SCHOOL_YEARS[grade_level]})"
    return label


def engagement_color(level: str) -> str:
    return ENGAGEMENT_COLORS.get(level, "#757575")


def engagement_icon(level: str) -> str:
    return ENGAGEMENT_ICONS.get(level, "📋")


def engagement_message(level: str) -> str:
    return ENGAGEMENT_MESSAGES.get(level, "")


def difficulty_label(level: str) -> str:
    return DIFFICULTY_LABELS.get(level, level.replace("_", " ").capitalize())


def timeframe_label(timeframe: str) -> str:
    return TIMEFRAME_LABELS.get(timeframe, timeframe)


def priority_color(priority: str) -> str:
    return PRIORITY_COLORS.get(priority, "#757575")


def truncate(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Cut text to max_length characters, breaking at a word when possible."""
    if len(text) <= max_length:
        return text
    cut = text[: max_length - len(suffix)]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip() + suffix
