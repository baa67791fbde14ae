"""Tests for who may see a student's data (F4)."""

import pytest

from mentra.core.access import can_access_student, can_view_entry, journal_audience
from mentra.db import journal_repository, users_repository


@pytest.fixture
def linked(student, teacher, parent):
    users_repository.assign_student_to_teacher(teacher.id, student.id)
    users_repository.link_parent_to_child(parent.id, student.id)


class TestCanAccessStudent:
    def test_self(self, student):
        assert can_access_student(student, student.id)

    def test_admin(self, make_user, student):
        assert can_access_student(make_user("admin"), student.id)

    def test_linked_teacher_and_parent(self, student, teacher, parent, linked):
        assert can_access_student(teacher, student.id)
        assert can_access_student(parent, student.id)

    def test_unlinked(self, student, teacher, parent, make_user):
        assert not can_access_student(teacher, student.id)
        assert not can_access_student(parent, student.id)
        assert not can_access_student(make_user("student"), student.id)


class TestJournalVisibility:
    """Tests for journal_audience and can_view_entry."""

    def test_audiences(self, student, teacher, parent, linked, make_user):
        assert journal_audience(student, student.id) == "owner"
        assert journal_audience(teacher, student.id) == "teacher"
        assert journal_audience(parent, student.id) == "parent"
        assert journal_audience(make_user("teacher"), student.id) is None

    def test_private_entry_owner_only(self, student, teacher, parent, linked):
        entry = journal_repository.create_entry(student.id, "Mine", "Private thoughts")
        assert can_view_entry(student, entry)
        assert not can_view_entry(teacher, entry)
        assert not can_view_entry(parent, entry)

    def test_shared_entries(self, student, teacher, parent, linked):
        for_teacher = journal_repository.create_entry(
            student.id, "Class", "x", privacy_level="teacher_shareable"
        )
        for_parent = journal_repository.create_entry(
            student.id, "Home", "x", privacy_level="parent_shareable"
        )
        assert can_view_entry(teacher, for_teacher)
        assert not can_view_entry(parent, for_teacher)
        assert can_view_entry(parent, for_parent)
        assert not can_view_entry(teacher, for_parent)
