"""Repository functions for journal entries.

Entries carry emotions (with intensity) and tags; tag usage counters are
maintained by triggers in the schema.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from mentra.db.database import get_db
from mentra.utils.text_utils import content_hash, count_words, reading_time_minutes
from mentra.utils.timeutil import iso_days_ago, utc_now_iso

logger = structlog.get_logger(__name__)

EMOTIONS = (
    "happy", "sad", "angry", "anxious", "excited", "calm", "frustrated",
    "proud", "confused", "motivated", "tired", "grateful", "curious",
)
PRIVACY_LEVELS = ("private", "teacher_shareable", "parent_shareable", "public")
SORT_FIELDS = {"created_at", "updated_at", "title"}


@dataclass
class JournalEntryRecord:
    """Journal entry with emotions and tags."""

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
    created_at: str
    updated_at: str
    emotions: list[dict[str, Any]] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


@dataclass
class JournalPage:
    """One page of a filtered entry listing."""

    entries: list[JournalEntryRecord]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.entries) < self.total


def _sharing_flags(
    privacy_level: str,
    share_with_teacher: bool | None,
    share_with_parent: bool | None,
) -> tuple[int, int, int]:
    """Derive is_private and sharing flags from the privacy level."""
    if share_with_teacher is None:
        share_with_teacher = privacy_level in ("teacher_shareable", "public")
    if share_with_parent is None:
        share_with_parent = privacy_level in ("parent_shareable", "public")
    is_private = privacy_level == "private" and not (share_with_teacher or share_with_parent)
    return int(is_private), int(share_with_teacher), int(share_with_parent)


def create_entry(
    student_id: str,
    title: str,
    content: str,
    mood: str | None = None,
    emotions: list[dict[str, Any]] | None = None,
    tags: list[str] | None = None,
    privacy_level: str = "private",
    share_with_teacher: bool | None = None,
    share_with_parent: bool | None = None,
) -> JournalEntryRecord:
    """Insert a journal entry with its emotions and tags.

    Args:
        emotions: [{"emotion": "happy", "intensity": 7}, ...]
        tags: Tag names; created on first use

    Raises:
        ValueError: On unknown privacy level or emotion
    """
    if privacy_level not in PRIVACY_LEVELS:
        raise ValueError(f"Unknown privacy level: {privacy_level}")

    entry_id = str(uuid.uuid4())
    now = utc_now_iso()
    is_private, to_teacher, to_parent = _sharing_flags(
        privacy_level, share_with_teacher, share_with_parent
    )

    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO journal_entries (
                id, student_id, title, content, content_hash, word_count,
                reading_time_minutes, mood, privacy_level, is_private,
                is_shareable_with_teacher, is_shareable_with_parent,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry_id, student_id, title, content, content_hash(content),
                count_words(content), reading_time_minutes(content), mood,
                privacy_level, is_private, to_teacher, to_parent, now, now,
            ),
        )
        _replace_emotions(conn, entry_id, emotions or [])
        _replace_tags(conn, entry_id, tags or [])
        row = conn.execute("SELECT * FROM journal_entries WHERE id = ?", (entry_id,)).fetchone()
        entry = _hydrate(conn, [row])[0]

    logger.info("journal.entry_created", entry_id=entry_id, student_id=student_id)
    return entry


def get_entry(entry_id: str) -> JournalEntryRecord | None:
    """Get entry by ID, with emotions and tags."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM journal_entries WHERE id = ?", (entry_id,)
        ).fetchone()
        if row is None:
            return None
        return _hydrate(conn, [row])[0]


def update_entry(
    entry_id: str,
    title: str | None = None,
    content: str | None = None,
    mood: str | None = None,
    emotions: list[dict[str, Any]] | None = None,
    tags: list[str] | None = None,
    privacy_level: str | None = None,
    share_with_teacher: bool | None = None,
    share_with_parent: bool | None = None,
) -> JournalEntryRecord | None:
    """Update the given fields of an entry. None leaves a field unchanged.

    Returns:
        Updated entry, or None if not found
    """
    existing = get_entry(entry_id)
    if existing is None:
        return None

    if privacy_level is not None and privacy_level not in PRIVACY_LEVELS:
        raise ValueError(f"Unknown privacy level: {privacy_level}")

    new_content = content if content is not None else existing.content
    new_privacy = privacy_level or existing.privacy_level
    is_private, to_teacher, to_parent = _sharing_flags(
        new_privacy,
        share_with_teacher if share_with_teacher is not None
        else (None if privacy_level else existing.is_shareable_with_teacher),
        share_with_parent if share_with_parent is not None
        else (None if privacy_level else existing.is_shareable_with_parent),
    )

    with get_db() as conn:
        conn.execute(
            """
            UPDATE journal_entries SET
                title = ?, content = ?, content_hash = ?, word_count = ?,
                reading_time_minutes = ?, mood = ?, privacy_level = ?,
                is_private = ?, is_shareable_with_teacher = ?,
                is_shareable_with_parent = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                title if title is not None else existing.title,
                new_content,
                content_hash(new_content),
                count_words(new_content),
                reading_time_minutes(new_content),
                mood if mood is not None else existing.mood,
                new_privacy,
                is_private,
                to_teacher,
                to_parent,
                utc_now_iso(),
                entry_id,
            ),
        )
        if emotions is not None:
            _replace_emotions(conn, entry_id, emotions)
        if tags is not None:
            _replace_tags(conn, entry_id, tags)

    logger.debug("journal.entry_updated", entry_id=entry_id)
    return get_entry(entry_id)


def delete_entry(entry_id: str) -> bool:
    """Delete entry by ID.

    Returns:
        True if deleted, False if not found
    """
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM journal_entries WHERE id = ?", (entry_id,))

    deleted = cursor.rowcount > 0
    if deleted:
        logger.info("journal.entry_deleted", entry_id=entry_id)
    return deleted


def list_entries(
    student_id: str,
    start_date: str | None = None,
    end_date: str | None = None,
    tags: list[str] | None = None,
    emotions: list[str] | None = None,
    query: str | None = None,
    include_private: bool = True,
    shared_with: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = 20,
    offset: int = 0,
) -> JournalPage:
    """List a student's entries with filters and paging.

    Args:
        shared_with: "teacher" or "parent" restricts to entries shared with that role
        sort_by: created_at, updated_at or title
    """
    where = ["e.student_id = ?"]
    params: list[Any] = [student_id]

    if start_date:
        where.append("e.created_at >= ?")
        params.append(start_date)
    if end_date:
        where.append("e.created_at <= ?")
        params.append(end_date)
    if not include_private:
        where.append("e.is_private = 0")
    if shared_with == "teacher":
        where.append("(e.is_shareable_with_teacher = 1 OR e.privacy_level IN ('teacher_shareable', 'public'))")
    elif shared_with == "parent":
        where.append("(e.is_shareable_with_parent = 1 OR e.privacy_level IN ('parent_shareable', 'public'))")
    if query:
        where.append("(e.title LIKE ? OR e.content LIKE ?)")
        params.extend([f"%{query}%", f"%{query}%"])
    if tags:
        placeholders = ",".join("?" * len(tags))
        where.append(
            f"""e.id IN (
                SELECT et.entry_id FROM journal_entry_tags et
                JOIN journal_tags t ON t.id = et.tag_id
                WHERE t.name IN ({placeholders})
            )"""
        )
        params.extend(_normalize_tag(t) for t in tags)
    if emotions:
        placeholders = ",".join("?" * len(emotions))
        where.append(
            f"e.id IN (SELECT entry_id FROM journal_emotions WHERE emotion IN ({placeholders}))"
        )
        params.extend(emotions)

    column = sort_by if sort_by in SORT_FIELDS else "created_at"
    direction = "ASC" if sort_order.lower() == "asc" else "DESC"
    where_sql = " AND ".join(where)

    with get_db() as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM journal_entries e WHERE {where_sql}", params
        ).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT e.* FROM journal_entries e
            WHERE {where_sql}
            ORDER BY e.{column} {direction}
            LIMIT ? OFFSET ?
            """,
            [*params, limit, offset],
        ).fetchall()
        entries = _hydrate(conn, rows)

    return JournalPage(entries=entries, total=total, limit=limit, offset=offset)


def get_journal_stats(student_id: str, days: int = 30) -> dict[str, Any]:
    """Aggregate statistics over a student's journal."""
    since = iso_days_ago(days)
    with get_db() as conn:
        totals = conn.execute(
            """
            SELECT COUNT(*) AS total_entries,
                   COALESCE(SUM(word_count), 0) AS total_words,
                   COALESCE(AVG(word_count), 0) AS average_words,
                   SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) AS recent_entries,
                   MIN(created_at) AS first_entry_at,
                   MAX(created_at) AS last_entry_at
            FROM journal_entries WHERE student_id = ?
            """,
            (since, student_id),
        ).fetchone()
        top_tags = conn.execute(
            """
            SELECT t.name, COUNT(*) AS count
            FROM journal_entry_tags et
            JOIN journal_tags t ON t.id = et.tag_id
            JOIN journal_entries e ON e.id = et.entry_id
            WHERE e.student_id = ?
            GROUP BY t.name ORDER BY count DESC, t.name LIMIT 10
            """,
            (student_id,),
        ).fetchall()
        emotions = conn.execute(
            """
            SELECT em.emotion, COUNT(*) AS count, AVG(em.intensity) AS average_intensity
            FROM journal_emotions em
            JOIN journal_entries e ON e.id = em.entry_id
            WHERE e.student_id = ? AND e.created_at >= ?
            GROUP BY em.emotion ORDER BY count DESC
            """,
            (student_id, since),
        ).fetchall()

    return {
        "total_entries": totals["total_entries"],
        "total_words": totals["total_words"],
        "average_words": round(totals["average_words"] or 0, 1),
        "recent_entries": totals["recent_entries"] or 0,
        "window_days": days,
        "first_entry_at": totals["first_entry_at"],
        "last_entry_at": totals["last_entry_at"],
        "top_tags": [{"name": r["name"], "count": r["count"]} for r in top_tags],
        "emotion_distribution": [
            {
                "emotion": r["emotion"],
                "count": r["count"],
                "average_intensity": round(r["average_intensity"], 1),
            }
            for r in emotions
        ],
    }


def suggest_tags(prefix: str = "", limit: int = 10) -> list[str]:
    """Most used tags starting with the prefix."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT name FROM journal_tags
            WHERE name LIKE ? AND usage_count > 0
            ORDER BY usage_count DESC, name LIMIT ?
            """,
            (f"{_normalize_tag(prefix)}%", limit),
        ).fetchall()
    return [row["name"] for row in rows]


def search_suggestions(student_id: str, query: str, limit: int = 5) -> list[str]:
    """Entry titles and tag names of the student matching the query."""
    pattern = f"%{query}%"
    with get_db() as conn:
        titles = conn.execute(
            """
            SELECT DISTINCT title FROM journal_entries
            WHERE student_id = ? AND title LIKE ?
            ORDER BY created_at DESC LIMIT ?
            """,
            (student_id, pattern, limit),
        ).fetchall()
        tags = conn.execute(
            """
            SELECT DISTINCT t.name FROM journal_tags t
            JOIN journal_entry_tags et ON et.tag_id = t.id
            JOIN journal_entries e ON e.id = et.entry_id
            WHERE e.student_id = ? AND t.name LIKE ?
            LIMIT ?
            """,
            (student_id, pattern, limit),
        ).fetchall()

    suggestions = [r["title"] for r in titles] + [f"#{r['name']}" for r in tags]
    return suggestions[:limit]


def count_entries(student_id: str, since: str | None = None, until: str | None = None) -> int:
    """Number of entries in an optional [since, until) window."""
    query = "SELECT COUNT(*) FROM journal_entries WHERE student_id = ?"
    params: list[Any] = [student_id]
    if since:
        query += " AND created_at >= ?"
        params.append(since)
    if until:
        query += " AND created_at < ?"
        params.append(until)
    with get_db() as conn:
        return conn.execute(query, params).fetchone()[0]


def _normalize_tag(name: str) -> str:
    return name.strip().lstrip("#").lower()


def _replace_emotions(conn: sqlite3.Connection, entry_id: str, emotions: list[dict[str, Any]]) -> None:
    conn.execute("DELETE FROM journal_emotions WHERE entry_id = ?", (entry_id,))
    for item in emotions:
        emotion = item["emotion"]
        if emotion not in EMOTIONS:
            raise ValueError(f"Unknown emotion: {emotion}")
        conn.execute(
            """
            INSERT INTO journal_emotions (entry_id, emotion, intensity) VALUES (?, ?, ?)
            ON CONFLICT(entry_id, emotion) DO UPDATE SET intensity = excluded.intensity
            """,
            (entry_id, emotion, int(item.get("intensity", 5))),
        )


def _replace_tags(conn: sqlite3.Connection, entry_id: str, tags: list[str]) -> None:
    conn.execute("DELETE FROM journal_entry_tags WHERE entry_id = ?", (entry_id,))
    for name in dict.fromkeys(_normalize_tag(t) for t in tags if t.strip()):
        conn.execute("INSERT OR IGNORE INTO journal_tags (name) VALUES (?)", (name,))
        tag_id = conn.execute(
            "SELECT id FROM journal_tags WHERE name = ?", (name,)
        ).fetchone()["id"]
        conn.execute(
            "INSERT OR IGNORE INTO journal_entry_tags (entry_id, tag_id) VALUES (?, ?)",
            (entry_id, tag_id),
        )


def _hydrate(conn: sqlite3.Connection, rows: list) -> list[JournalEntryRecord]:
    """Attach emotions and tags to entry rows."""
    if not rows:
        return []

    ids = [row["id"] for row in rows]
    placeholders = ",".join("?" * len(ids))
    emotion_rows = conn.execute(
        f"SELECT entry_id, emotion, intensity FROM journal_emotions WHERE entry_id IN ({placeholders}) ORDER BY id",
        ids,
    ).fetchall()
    tag_rows = conn.execute(
        f"""
        SELECT et.entry_id, t.name FROM journal_entry_tags et
        JOIN journal_tags t ON t.id = et.tag_id
        WHERE et.entry_id IN ({placeholders}) ORDER BY t.name
        """,
        ids,
    ).fetchall()

    emotions: dict[str, list[dict[str, Any]]] = {i: [] for i in ids}
    for r in emotion_rows:
        emotions[r["entry_id"]].append({"emotion": r["emotion"], "intensity": r["intensity"]})
    tags: dict[str, list[str]] = {i: [] for i in ids}
    for r in tag_rows:
        tags[r["entry_id"]].append(r["name"])

    return [
        JournalEntryRecord(
            id=row["id"],
            student_id=row["student_id"],
            title=row["title"],
            content=row["content"],
            content_hash=row["content_hash"],
            word_count=row["word_count"],
            reading_time_minutes=row["reading_time_minutes"],
            mood=row["mood"],
            privacy_level=row["privacy_level"],
            is_private=bool(row["is_private"]),
            is_shareable_with_teacher=bool(row["is_shareable_with_teacher"]),
            is_shareable_with_parent=bool(row["is_shareable_with_parent"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            emotions=emotions[row["id"]],
            tags=tags[row["id"]],
        )
        for row in rows
    ]
