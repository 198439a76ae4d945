"""Tests for the query engine (filter, sort, aggregates)."""
from datetime import datetime, timezone, timedelta

import pytest

from cardkeep.query import (
    active_filter_count,
    board_stats,
    count_by_category,
    count_by_priority,
    count_by_tag,
    filter_cards,
    query_cards,
    sort_cards,
    unique_tags,
)
from cardkeep.schema import (
    Card,
    FilterSpec,
    Priority,
    SortKey,
    SortOrder,
    SortSpec,
    default_categories,
)

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_card(card_id, title="Card", **kwargs):
    kwargs.setdefault("category", "work")
    kwargs.setdefault("created_at", BASE)
    kwargs.setdefault("updated_at", kwargs["created_at"])
    return Card(id=card_id, title=title, **kwargs)


@pytest.fixture
def cards():
    return [
        make_card("1", "Buy Milk", category="personal", tags=["home", "shopping"],
                  priority=Priority.LOW, due_date=BASE + timedelta(days=2)),
        make_card("2", "Quarterly report", description="numbers for the board",
                  tags=["finance"], priority=Priority.CRITICAL,
                  created_at=BASE + timedelta(days=1)),
        make_card("3", "fix bike", category="personal", tags=["Outdoor"],
                  priority=Priority.MEDIUM, completed=True,
                  due_date=BASE + timedelta(days=10), created_at=BASE + timedelta(days=2)),
        make_card("4", "Plan trip", category="ideas", priority=Priority.HIGH,
                  due_date=BASE + timedelta(days=5), created_at=BASE + timedelta(days=3)),
    ]


def ids(cards):
    return [c.id for c in cards]


class TestFiltering:

    def test_search_is_case_insensitive_on_title(self, cards):
        assert ids(filter_cards(cards, FilterSpec(search="milk"))) == ["1"]

    def test_search_matches_description_and_tags(self, cards):
        assert ids(filter_cards(cards, FilterSpec(search="BOARD"))) == ["2"]
        assert ids(filter_cards(cards, FilterSpec(search="outdoor"))) == ["3"]
        assert ids(filter_cards(cards, FilterSpec(search="shop"))) == ["1"]

    def test_category_membership_is_or(self, cards):
        result = filter_cards(cards, FilterSpec(categories=["ideas", "work"]))
        assert ids(result) == ["2", "4"]

    def test_tag_membership_any(self, cards):
        result = filter_cards(cards, FilterSpec(tags=["finance", "home"]))
        assert ids(result) == ["1", "2"]

    def test_tag_membership_is_exact(self, cards):
        assert filter_cards(cards, FilterSpec(tags=["outdoor"])) == []

    def test_priorities_accept_strings(self, cards):
        result = filter_cards(cards, FilterSpec(priorities=["high", Priority.LOW]))
        assert ids(result) == ["1", "4"]

    def test_hide_completed(self, cards):
        assert "3" not in ids(filter_cards(cards, FilterSpec(show_completed=False)))
        assert "3" in ids(filter_cards(cards, FilterSpec(show_completed=True)))

    def test_due_range_is_inclusive(self, cards):
        spec = FilterSpec(due_from=BASE + timedelta(days=2), due_to=BASE + timedelta(days=5))
        assert ids(filter_cards(cards, spec)) == ["1", "4"]

    def test_open_ended_range_drops_cards_without_due_date(self, cards):
        assert ids(filter_cards(cards, FilterSpec(due_from=BASE))) == ["1", "3", "4"]
        assert ids(filter_cards(cards, FilterSpec(due_to=BASE + timedelta(days=3)))) == ["1"]

    def test_naive_bounds_are_treated_as_utc(self, cards):
        spec = FilterSpec(due_from=datetime(2024, 1, 7))
        assert ids(filter_cards(cards, spec)) == ["3"]

    def test_predicates_combine_with_and(self, cards):
        spec = FilterSpec(categories=["personal"], show_completed=False)
        assert ids(filter_cards(cards, spec)) == ["1"]

    def test_empty_spec_keeps_everything(self, cards):
        assert ids(filter_cards(cards, FilterSpec())) == ["1", "2", "3", "4"]

    def test_narrowing_never_grows_result(self, cards):
        specs = [
            FilterSpec(),
            FilterSpec(categories=["personal"]),
            FilterSpec(categories=["personal"], tags=["home", "Outdoor"]),
            FilterSpec(categories=["personal"], tags=["home", "Outdoor"], show_completed=False),
            FilterSpec(categories=["personal"], tags=["home", "Outdoor"], show_completed=False,
                       search="milk"),
        ]
        counts = [len(filter_cards(cards, s)) for s in specs]
        assert counts == sorted(counts, reverse=True)


class TestSorting:

    def test_priority_desc(self):
        cards = [
            make_card("a", priority=Priority.LOW),
            make_card("b", priority=Priority.CRITICAL),
            make_card("c", priority=Priority.MEDIUM),
        ]
        result = sort_cards(cards, SortSpec(SortKey.PRIORITY, SortOrder.DESC))
        assert [c.priority for c in result] == [Priority.CRITICAL, Priority.MEDIUM, Priority.LOW]

    def test_missing_due_date_sorts_earliest(self):
        a = make_card("A", due_date=None)
        b = make_card("B", due_date=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert ids(sort_cards([b, a], SortSpec(SortKey.DUE_DATE, SortOrder.ASC))) == ["A", "B"]
        assert ids(sort_cards([a, b], SortSpec(SortKey.DUE_DATE, SortOrder.DESC))) == ["B", "A"]

    def test_title_is_case_insensitive(self):
        cards = [make_card("1", "banana"), make_card("2", "Apple"), make_card("3", "cherry")]
        result = sort_cards(cards, SortSpec(SortKey.TITLE, SortOrder.ASC))
        assert [c.title for c in result] == ["Apple", "banana", "cherry"]

    def test_created_at_chronological(self, cards):
        asc = sort_cards(cards, SortSpec(SortKey.CREATED_AT, SortOrder.ASC))
        assert ids(asc) == ["1", "2", "3", "4"]
        desc = sort_cards(cards, SortSpec(SortKey.CREATED_AT, SortOrder.DESC))
        assert ids(desc) == ["4", "3", "2", "1"]

    def test_default_sort_is_updated_desc(self, cards):
        cards[0].updated_at = BASE + timedelta(days=30)
        assert query_cards(cards)[0].id == "1"

    def test_query_is_deterministic(self, cards):
        spec = FilterSpec(search="r")
        sort = SortSpec(SortKey.DUE_DATE, SortOrder.ASC)
        assert ids(query_cards(cards, spec, sort)) == ids(query_cards(cards, spec, sort))

    def test_query_does_not_mutate_input(self, cards):
        original = ids(cards)
        query_cards(cards, FilterSpec(), SortSpec(SortKey.TITLE, SortOrder.DESC))
        assert ids(cards) == original


class TestAggregates:

    def test_unique_tags_sorted(self, cards):
        assert unique_tags(cards) == ["Outdoor", "finance", "home", "shopping"]

    def test_counts(self, cards):
        assert count_by_category(cards) == {"personal": 2, "work": 1, "ideas": 1}
        assert count_by_priority(cards) == {"low": 1, "medium": 1, "high": 1, "critical": 1}
        assert count_by_tag([make_card("x", tags=["a", "a", "b"])]) == {"a": 1, "b": 1}

    def test_active_filter_count(self):
        assert active_filter_count(FilterSpec()) == 0
        spec = FilterSpec(search="x", categories=["a", "b"], tags=["t"],
                          priorities=[Priority.HIGH], show_completed=False, due_to=BASE)
        assert active_filter_count(spec) == 7

    def test_board_stats(self, cards):
        stats = board_stats(cards, default_categories())
        assert stats == {"total": 4, "completed": 1, "pending": 3, "categories": 4, "tags": 4}
