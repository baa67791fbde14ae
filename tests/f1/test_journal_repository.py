"""Tests for journal repository (F1)."""

import pytest

from mentra.db import journal_repository
from mentra.utils.text_utils import content_hash


class TestCreateEntry:
    """Tests for create_entry and get_entry."""

    def test_round_trip(self, student):
        """Stored fields come back unchanged, with derived metrics."""
        content = "Today I finally understood how fractions add up. " * 3
        created = journal_repository.create_entry(
            student.id,
            "Fractions click",
            content,
            mood="proud",
            emotions=[{"emotion": "proud", "intensity": 8}, {"emotion": "curious", "intensity": 4}],
            tags=["Math", "#fractions"],
        )

        fetched = journal_repository.get_entry(created.id)
        assert fetched is not None
        assert fetched.title == "Fractions click"
        assert fetched.content == content
        assert fetched.mood == "proud"
        assert fetched.content_hash == content_hash(content)
        assert fetched.word_count == 24
        assert fetched.reading_time_minutes == 1
        assert {e["emotion"]: e["intensity"] for e in fetched.emotions} == {"proud": 8, "curious": 4}
        assert sorted(fetched.tags) == ["fractions", "math"]

    def test_private_by_default(self, student):
        """A new entry is private and shared with nobody."""
        entry = journal_repository.create_entry(student.id, "Secret", "Only mine")
        assert entry.privacy_level == "private"
        assert entry.is_private is True
        assert entry.is_shareable_with_teacher is False
        assert entry.is_shareable_with_parent is False

    def test_teacher_shareable_flags(self, student):
        """teacher_shareable implies sharing with the teacher only."""
        entry = journal_repository.create_entry(
            student.id, "For class", "Shared", privacy_level="teacher_shareable"
        )
        assert entry.is_private is False
        assert entry.is_shareable_with_teacher is True
        assert entry.is_shareable_with_parent is False

    def test_unknown_privacy_level(self, student):
        """Unknown privacy levels are rejected."""
        with pytest.raises(ValueError):
            journal_repository.create_entry(student.id, "T", "C", privacy_level="secret")

    def test_unknown_emotion(self, student):
        """Emotions outside the catalog are rejected."""
        with pytest.raises(ValueError):
            journal_repository.create_entry(
                student.id, "T", "C", emotions=[{"emotion": "hangry", "intensity": 3}]
            )

    def test_get_missing(self):
        """Unknown IDs return None."""
        assert journal_repository.get_entry("missing") is None


class TestUpdateAndDelete:
    """Tests for update_entry and delete_entry."""

    def test_update_content_recomputes_metrics(self, student):
        """Changing content refreshes hash and word count."""
        entry = journal_repository.create_entry(student.id, "Draft", "one two")
        updated = journal_repository.update_entry(entry.id, content="one two three four")
        assert updated.title == "Draft"
        assert updated.word_count == 4
        assert updated.content_hash != entry.content_hash

    def test_update_replaces_tags(self, student):
        """Passing tags replaces the full set."""
        entry = journal_repository.create_entry(student.id, "T", "C", tags=["a", "b"])
        updated = journal_repository.update_entry(entry.id, tags=["c"])
        assert updated.tags == ["c"]

    def test_update_missing(self):
        """Updating an unknown entry returns None."""
        assert journal_repository.update_entry("missing", title="x") is None

    def test_delete(self, student):
        """Deleted entries are gone."""
        entry = journal_repository.create_entry(student.id, "T", "C")
        assert journal_repository.delete_entry(entry.id) is True
        assert journal_repository.get_entry(entry.id) is None
        assert journal_repository.delete_entry(entry.id) is False


class TestListEntries:
    """Tests for list_entries filters and paging."""

    @pytest.fixture
    def entries(self, student):
        return [
            journal_repository.create_entry(student.id, "Math test", "Nervous about algebra", tags=["math"],
                                            emotions=[{"emotion": "anxious", "intensity": 6}]),
            journal_repository.create_entry(student.id, "Art class", "Painted a tree", tags=["art"],
                                            privacy_level="parent_shareable"),
            journal_repository.create_entry(student.id, "Science fair", "Volcano worked", tags=["science"],
                                            privacy_level="public"),
        ]

    def test_paging(self, student, entries):
        """limit and offset page through entries, has_more tells if more remain."""
        page = journal_repository.list_entries(student.id, limit=2)
        assert page.total == 3
        assert len(page.entries) == 2
        assert page.has_more is True

        last = journal_repository.list_entries(student.id, limit=2, offset=2)
        assert len(last.entries) == 1
        assert last.has_more is False

    def test_filter_by_tag(self, student, entries):
        """Tag filter matches normalized names."""
        page = journal_repository.list_entries(student.id, tags=["#Math"])
        assert [e.title for e in page.entries] == ["Math test"]

    def test_filter_by_emotion(self, student, entries):
        page = journal_repository.list_entries(student.id, emotions=["anxious"])
        assert page.total == 1

    def test_text_query(self, student, entries):
        """Query searches title and content."""
        page = journal_repository.list_entries(student.id, query="volcano")
        assert [e.title for e in page.entries] == ["Science fair"]

    def test_shared_with_parent(self, student, entries):
        """Parents see parent_shareable and public entries only."""
        page = journal_repository.list_entries(student.id, shared_with="parent")
        assert sorted(e.title for e in page.entries) == ["Art class", "Science fair"]

    def test_shared_with_teacher(self, student, entries):
        page = journal_repository.list_entries(student.id, shared_with="teacher")
        assert [e.title for e in page.entries] == ["Science fair"]

    def test_sort_by_title(self, student, entries):
        page = journal_repository.list_entries(student.id, sort_by="title", sort_order="asc")
        assert [e.title for e in page.entries] == ["Art class", "Math test", "Science fair"]


class TestStatsAndSuggestions:
    """Tests for journal stats, tag and search suggestions."""

    def test_stats(self, student):
        """Stats aggregate words, tags and emotions."""
        journal_repository.create_entry(student.id, "A", "one two three", tags=["math"],
                                        emotions=[{"emotion": "happy", "intensity": 6}])
        journal_repository.create_entry(student.id, "B", "one", tags=["math", "art"],
                                        emotions=[{"emotion": "happy", "intensity": 8}])

        stats = journal_repository.get_journal_stats(student.id)
        assert stats["total_entries"] == 2
        assert stats["total_words"] == 4
        assert stats["average_words"] == 2.0
        assert stats["recent_entries"] == 2
        assert stats["top_tags"][0] == {"name": "math", "count": 2}
        assert stats["emotion_distribution"] == [
            {"emotion": "happy", "count": 2, "average_intensity": 7.0}
        ]

    def test_stats_empty(self, student):
        """A student without entries gets zeros."""
        stats = journal_repository.get_journal_stats(student.id)
        assert stats["total_entries"] == 0
        assert stats["top_tags"] == []

    def test_suggest_tags_by_usage(self, student):
        """Tags are suggested by prefix, most used first."""
        journal_repository.create_entry(student.id, "A", "x", tags=["math", "music"])
        journal_repository.create_entry(student.id, "B", "x", tags=["music"])
        assert journal_repository.suggest_tags("m") == ["music", "math"]

    def test_tag_usage_drops_on_delete(self, student):
        """Deleting the only entry hides its tags from suggestions."""
        entry = journal_repository.create_entry(student.id, "A", "x", tags=["chess"])
        journal_repository.delete_entry(entry.id)
        assert journal_repository.suggest_tags("ch") == []

    def test_search_suggestions(self, student):
        """Titles and #tags matching the query."""
        journal_repository.create_entry(student.id, "Geometry homework", "x", tags=["geometry"])
        suggestions = journal_repository.search_suggestions(student.id, "geo")
        assert "Geometry homework" in suggestions
        assert "#geometry" in suggestions
