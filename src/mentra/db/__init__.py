"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization (tables, indexes, triggers, seed data)
- Repository functions per feature: users, journal, problems,
  dashboard, analytics, notifications
"""

from mentra.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
