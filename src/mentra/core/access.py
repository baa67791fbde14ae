"""Who may see which student's data."""

from __future__ import annotations

from mentra.db import users_repository
from mentra.db.journal_repository import JournalEntryRecord
from mentra.db.users_repository import UserRecord


def can_access_student(viewer: UserRecord, student_id: str) -> bool:
    """Self, admins, assigned teachers and linked parents."""
    if viewer.id == student_id or viewer.role == "admin":
        return True
    if viewer.role == "teacher":
        return users_repository.is_teacher_of(viewer.id, student_id)
    if viewer.role == "parent":
        return users_repository.is_parent_of(viewer.id, student_id)
    return False


def journal_audience(viewer: UserRecord, student_id: str) -> str | None:
    """Sharing filter to apply when viewer reads student_id's journal.

    Returns:
        "owner" for full access, "teacher" or "parent" for shared entries
        only, None when the viewer may not read the journal at all
    """
    if viewer.id == student_id or viewer.role == "admin":
        return "owner"
    if not can_access_student(viewer, student_id):
        return None
    if viewer.role in ("teacher", "parent"):
        return viewer.role
    return None


def can_view_entry(viewer: UserRecord, entry: JournalEntryRecord) -> bool:
    audience = journal_audience(viewer, entry.student_id)
    if audience == "owner":
        return True
    if audience == "teacher":
        return entry.is_shareable_with_teacher or entry.privacy_level in ("teacher_shareable", "public")
    if audience == "parent":
        return entry.is_shareable_with_parent or entry.privacy_level in ("parent_shareable", "public")
    return False
