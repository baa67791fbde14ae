"""Timestamp helpers.

All timestamps are stored as ISO-8601 UTC strings with microsecond
precision so that lexical order matches chronological order.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format a datetime in the storage format."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now_iso() -> str:
    """Current UTC time in the storage format."""
    return to_iso(utc_now())


def iso_days_ago(days: float, now: datetime | None = None) -> str:
    """Storage-format timestamp `days` before now."""
    return to_iso((now or utc_now()) - timedelta(days=days))


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def today() -> date:
    """Current UTC date."""
    return utc_now().date()


def start_of_week(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())
