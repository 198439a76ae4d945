"""Tests for the card/category schema, validation and typed patches."""
import re
from datetime import datetime, timezone, timedelta

import pytest

from cardkeep.errors import ValidationError
from cardkeep.schema import (
    Card,
    CardPatch,
    Category,
    CategoryPatch,
    Priority,
    SortKey,
    SortOrder,
    default_categories,
    new_id,
    next_timestamp,
    parse_datetime,
)


class TestIdentity:

    def test_new_id_shape(self):
        assert re.match(r"^\d{13}-[0-9a-z]{9}$", new_id())

    def test_new_ids_do_not_collide(self):
        ids = {new_id() for _ in range(2000)}
        assert len(ids) == 2000

    def test_next_timestamp_is_strictly_later(self):
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        assert next_timestamp(future) > future


class TestCardCreate:

    def test_create_stamps_identity_and_times(self):
        before = datetime.now(timezone.utc)
        card = Card.create({"title": "Write report", "category": "work"})
        assert card.id
        assert card.created_at == card.updated_at
        assert card.created_at >= before
        assert card.priority == Priority.MEDIUM
        assert card.tags == []
        assert card.completed is False
        assert card.due_date is None

    def test_create_ignores_caller_identity(self):
        card = Card.create({
            "id": "forged",
            "title": "T",
            "category": "work",
            "createdAt": "2000-01-01T00:00:00+00:00",
        })
        assert card.id != "forged"
        assert card.created_at.year != 2000

    def test_create_accepts_due_date_text(self):
        card = Card.create({"title": "T", "category": "work", "dueDate": "2024-01-01"})
        assert card.due_date == datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("data,field", [
        ({"title": "", "category": "work"}, "title"),
        ({"title": "   ", "category": "work"}, "title"),
        ({"title": "x" * 101, "category": "work"}, "title"),
        ({"title": "ok", "category": "work", "description": "d" * 501}, "description"),
        ({"title": "ok", "category": ""}, "category"),
        ({"title": "ok"}, "category"),
        ({"title": "ok", "category": "work", "priority": "urgent"}, "priority"),
        ({"title": "ok", "category": "work", "tags": "not-a-list"}, "tags"),
        ({"title": "ok", "category": "work", "dueDate": "someday"}, "due_date"),
    ])
    def test_create_rejects_invalid_fields(self, data, field):
        with pytest.raises(ValidationError) as exc:
            Card.create(data)
        assert exc.value.field == field

    def test_title_at_limit_is_accepted(self):
        card = Card.create({"title": "x" * 100, "category": "work", "description": "d" * 500})
        assert len(card.title) == 100

    @pytest.mark.parametrize("value,expected", [
        (True, True), (False, False), (None, False),
        ("false", False), ("False", False), ("0", False), ("no", False),
        ("true", True), ("1", True), ("yes", True),
    ])
    def test_completed_spellings(self, value, expected):
        card = Card.create({"title": "T", "category": "work", "completed": value})
        assert card.completed is expected
        assert CardPatch(completed=value).changes() == {"completed": expected}

    @pytest.mark.parametrize("value", ["maybe", 2, [True]])
    def test_completed_rejects_other_values(self, value):
        with pytest.raises(ValidationError) as exc:
            Card.create({"title": "T", "category": "work", "completed": value})
        assert exc.value.field == "completed"
        with pytest.raises(ValueError):
            Card.from_dict({"id": "1", "title": "T", "category": "w", "completed": value})


class TestCategoryCreate:

    def test_valid_category(self):
        cat = Category.create({"name": "Errands", "color": "#A1b2C3"})
        assert cat.id
        assert cat.color == "#A1b2C3"

    @pytest.mark.parametrize("color", ["red", "#12345", "#1234567", "123456", "#GGGGGG", None])
    def test_bad_color(self, color):
        with pytest.raises(ValidationError, match="Invalid color format"):
            Category.create({"name": "Errands", "color": color})

    def test_name_too_long(self):
        with pytest.raises(ValidationError) as exc:
            Category.create({"name": "n" * 51, "color": "#000000"})
        assert exc.value.field == "name"

    def test_default_categories(self):
        cats = default_categories()
        assert [c.id for c in cats] == ["work", "personal", "projects", "ideas"]
        assert [c.name for c in cats] == ["Work", "Personal", "Projects", "Ideas"]
        assert all(re.match(r"^#[0-9a-f]{6}$", c.color) for c in cats)


class TestCodec:

    def test_card_to_dict_uses_iso_dates(self):
        card = Card.create({"title": "T", "category": "work", "due_date": "2024-03-05T10:00:00Z"})
        data = card.to_dict()
        assert data["dueDate"] == "2024-03-05T10:00:00+00:00"
        assert data["createdAt"] == card.created_at.isoformat()
        assert data["priority"] == "medium"

    def test_card_from_dict_restores_exactly(self):
        card = Card.create({"title": "T", "category": "work", "tags": ["a", "b"], "priority": "high"})
        assert Card.from_dict(card.to_dict()) == card

    def test_from_dict_clamps_updated_before_created(self):
        card = Card.from_dict({
            "id": "1", "title": "T", "category": "work",
            "createdAt": "2024-02-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
        })
        assert card.updated_at == card.created_at

    def test_from_dict_rejects_unknown_priority(self):
        with pytest.raises(ValueError):
            Card.from_dict({"id": "1", "title": "T", "category": "w", "priority": "huge"})

    def test_parse_datetime_naive_is_utc(self):
        assert parse_datetime("2024-01-01T12:00:00").tzinfo == timezone.utc
        assert parse_datetime(None) is None
        assert parse_datetime("") is None


class TestPatches:

    def test_card_patch_only_reports_set_fields(self):
        patch = CardPatch.from_dict({"title": "X", "dueDate": None})
        assert patch.changes() == {"title": "X", "due_date": None}

    @pytest.mark.parametrize("key", ["id", "createdAt", "updatedAt", "created_at", "colour"])
    def test_card_patch_rejects_protected_and_unknown(self, key):
        with pytest.raises(ValidationError):
            CardPatch.from_dict({key: "x"})

    def test_card_patch_validates_values(self):
        with pytest.raises(ValidationError):
            CardPatch(title="").changes()

    def test_category_patch(self):
        assert CategoryPatch.from_dict({"color": "#ffffff"}).changes() == {"color": "#ffffff"}
        with pytest.raises(ValidationError):
            CategoryPatch.from_dict({"createdAt": "2024-01-01"})


def test_sort_enums_fall_back_to_defaults():
    assert SortKey.from_str("dueDate") == SortKey.DUE_DATE
    assert SortKey.from_str("bogus") == SortKey.UPDATED_AT
    assert SortOrder.from_str("ASC") == SortOrder.ASC
    assert SortOrder.from_str("sideways") == SortOrder.DESC


def test_priority_rank_order():
    ranks = [p.rank for p in (Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL)]
    assert ranks == [1, 2, 3, 4]
