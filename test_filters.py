"""
Tests for filter validation and where-clause construction.

Run with: pytest test_filters.py -v
"""

from datetime import datetime, timezone

import pytest

from semantic_store import IDEAS, MEMORIES, IdeaCategory, RecordFilter, ValidationError
from semantic_store.filters import build_predicate, escape
from semantic_store.models import parse_model


def predicate(kind, **fields):
    flt = parse_model(RecordFilter, fields)
    kind.validate_filter(flt)
    return build_predicate(kind, flt)


class TestBuildPredicate:
    """Tests for SQL predicate construction."""

    def test_empty_filter_matches_everything(self):
        assert predicate(IDEAS) is None
        assert build_predicate(IDEAS, None) is None

    def test_owner(self):
        assert predicate(IDEAS, owner_id="alice") == "owner_id = 'alice'"

    def test_conversation_is_point_range(self):
        assert predicate(MEMORIES, conversation_id=42) == "(conversation_id >= 42 AND conversation_id <= 42)"

    def test_tags_any(self):
        assert predicate(IDEAS, tags=["a", "b"]) == "array_has_any(tags, ['a', 'b'])"

    def test_enum_member_accepted(self):
        assert predicate(IDEAS, category=IdeaCategory.SALES) == "category = 'sales'"

    def test_conjunction(self):
        where = predicate(IDEAS, owner_id="alice", category="sales", priority="high", status="active")
        assert where == (
            "owner_id = 'alice' AND category = 'sales' AND priority = 'high' AND status = 'active'"
        )

    def test_created_range(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        end = datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert predicate(MEMORIES, created_after=start, created_before=end) == (
            "created_at >= 1704067200000 AND created_at <= 1704153600000"
        )

    def test_quotes_escaped(self):
        assert escape("o'brien") == "o''brien"
        assert predicate(IDEAS, owner_id="x' OR '1'='1") == "owner_id = 'x'' OR ''1''=''1'"

    def test_memory_free_form_category(self):
        assert predicate(MEMORIES, category="anything-goes") == "category = 'anything-goes'"


class TestValidateFilter:
    """Tests for rejecting filters a kind cannot evaluate."""

    def test_unknown_key(self):
        with pytest.raises(ValidationError):
            predicate(IDEAS, colour="blue")

    def test_field_not_on_kind(self):
        with pytest.raises(ValidationError) as exc:
            predicate(MEMORIES, status="active")
        assert exc.value.field == "status"

    def test_invalid_choice(self):
        with pytest.raises(ValidationError) as exc:
            predicate(IDEAS, priority="critical")
        assert "Valid" in str(exc.value)

    def test_blank_tag(self):
        with pytest.raises(ValidationError):
            predicate(IDEAS, tags=["ok", " "])

    def test_wrong_type(self):
        with pytest.raises(ValidationError):
            predicate(IDEAS, conversation_id="not-a-number")
