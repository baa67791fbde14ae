"""Tests for users, relationships and cascade deletes (F1)."""

import sqlite3

import pytest

from mentra.db import dashboard_repository, journal_repository, problems_repository, users_repository
from mentra.db.database import get_db
from mentra.db.problems_repository import ScaffoldingStep


class TestCreateUser:
    """Tests for create_user."""

    def test_student_gets_profile(self, make_user):
        """Students get a zeroed student profile."""
        user = make_user("student", grade_level=5)
        profile = users_repository.get_student_profile(user.id)
        assert profile is not None
        assert profile.grade_level == 5
        assert profile.total_points == 0
        assert profile.current_streak == 0

    def test_teacher_has_no_profile(self, teacher):
        """Only students get a profile row."""
        assert users_repository.get_student_profile(teacher.id) is None

    def test_email_is_normalized(self, make_user):
        """Emails are stored lowercase and trimmed."""
        user = make_user("student", email="  Ana@Example.COM ")
        assert user.email == "ana@example.com"
        assert users_repository.get_user_by_email("ana@example.com").id == user.id

    def test_duplicate_email_rejected(self, make_user):
        """A second account with the same email fails."""
        make_user("student", email="dup@example.com")
        with pytest.raises(sqlite3.IntegrityError):
            make_user("teacher", email="dup@example.com")

    def test_unknown_role_rejected(self, make_user):
        """Roles are validated."""
        with pytest.raises(ValueError):
            make_user("principal")

    def test_full_name(self, make_user):
        """full_name joins first and last name."""
        user = make_user("student", "Ana", last_name="García")
        assert user.full_name == "Ana García"


class TestRelationships:
    """Tests for teacher and parent links."""

    def test_assign_teacher(self, teacher, student):
        """Assigned students are listed for the teacher."""
        assert not users_repository.is_teacher_of(teacher.id, student.id)
        users_repository.assign_student_to_teacher(teacher.id, student.id, "math")
        assert users_repository.is_teacher_of(teacher.id, student.id)
        students = users_repository.list_teacher_students(teacher.id)
        assert [s.id for s in students] == [student.id]

    def test_assign_twice_is_idempotent(self, teacher, student):
        """Re-assigning keeps a single active link."""
        users_repository.assign_student_to_teacher(teacher.id, student.id)
        users_repository.assign_student_to_teacher(teacher.id, student.id, "science")
        assert len(users_repository.list_teacher_students(teacher.id)) == 1

    def test_link_parent(self, parent, student):
        """Linked children are listed for the parent."""
        users_repository.link_parent_to_child(parent.id, student.id, "mother")
        assert users_repository.is_parent_of(parent.id, student.id)
        children = users_repository.list_parent_children(parent.id)
        assert children[0].first_name == "Ana"


class TestDeleteUser:
    """Deleting a user removes everything the user owns."""

    def test_delete_missing_user(self):
        """Deleting an unknown ID returns False."""
        assert users_repository.delete_user("nope") is False

    def test_delete_cascades(self, student, teacher):
        """Entries, sessions, achievements and the profile go with the user."""
        entry = journal_repository.create_entry(student.id, "Day one", "Learned fractions today.")
        template = problems_repository.create_template(
            "Fractions",
            "Add 1/2 and 1/3",
            [ScaffoldingStep(title="Common denominator", prompt="Find it")],
            created_by=teacher.id,
        )
        session = problems_repository.create_session(student.id, template)
        dashboard_repository.award_achievement(
            student.id, "first_journal_entry", "First Reflection", "Wrote an entry", "reflection", 10
        )

        assert users_repository.delete_user(student.id) is True

        assert users_repository.get_user_by_id(student.id) is None
        assert users_repository.get_student_profile(student.id) is None
        assert journal_repository.get_entry(entry.id) is None
        assert problems_repository.get_session(session.id) is None
        assert dashboard_repository.list_achievements(student.id) == []
        with get_db() as conn:
            emotions = conn.execute(
                "SELECT COUNT(*) FROM journal_emotions WHERE entry_id = ?", (entry.id,)
            ).fetchone()[0]
        assert emotions == 0

    def test_deleting_author_keeps_template(self, student, teacher):
        """Templates outlive their author."""
        template = problems_repository.create_template(
            "Ratios", "Simplify 4:6", [], created_by=teacher.id
        )
        users_repository.delete_user(teacher.id)
        kept = problems_repository.get_template(template.id)
        assert kept is not None
        assert kept.created_by is None


class TestInterventionsAndNotes:
    """Tests for teacher interventions and private notes."""

    def test_intervention_lifecycle(self, teacher, student):
        """Interventions start planned and can be completed."""
        intervention = users_repository.create_intervention(
            teacher.id, student.id, "academic_support", "Review fractions"
        )
        assert intervention.status == "planned"

        updated = users_repository.update_intervention_status(
            intervention.id, teacher.id, "completed", "Much better"
        )
        assert updated.status == "completed"
        assert updated.outcome == "Much better"
        assert len(users_repository.list_interventions(teacher.id, student.id)) == 1

    def test_note_upsert(self, teacher, student):
        """Saving a note twice keeps the latest text."""
        assert users_repository.get_teacher_note(teacher.id, student.id) is None
        users_repository.save_teacher_note(teacher.id, student.id, "Quiet today")
        users_repository.save_teacher_note(teacher.id, student.id, "More engaged")
        assert users_repository.get_teacher_note(teacher.id, student.id) == "More engaged"
