"""
Card query engine: filtering, sorting and sidebar aggregates.

Everything here is a pure function of its arguments. The working set is
expected to be thousands of cards at most, so every call is a linear scan.
"""
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .schema import Card, Category, FilterSpec, Priority, SortKey, SortOrder, SortSpec

# Cards without a due date sort as if due at the epoch, so they cluster at
# the "earliest" end: first when ascending, last when descending.
_NO_DUE_DATE = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ── Filtering ────────────────────────────────────────────────────────────────


def matches_search(card: Card, term: str) -> bool:
    """Case-insensitive substring match on title, description or any tag."""
    needle = term.lower()
    return (
        needle in card.title.lower()
        or needle in card.description.lower()
        or any(needle in tag.lower() for tag in card.tags)
    )


def filter_cards(cards: Iterable[Card], filters: FilterSpec) -> List[Card]:
    """Apply each predicate of `filters` as a narrowing pass."""
    result = list(cards)

    if filters.search:
        result = [c for c in result if matches_search(c, filters.search)]

    if filters.categories:
        wanted = set(filters.categories)
        result = [c for c in result if c.category in wanted]

    if filters.tags:
        wanted = set(filters.tags)
        result = [c for c in result if any(t in wanted for t in c.tags)]

    if filters.priorities:
        wanted = {Priority.parse(p) for p in filters.priorities}
        result = [c for c in result if c.priority in wanted]

    if not filters.show_completed:
        result = [c for c in result if not c.completed]

    if filters.due_from is not None or filters.due_to is not None:
        result = [c for c in result if _in_due_range(c, filters.due_from, filters.due_to)]

    return result


def _in_due_range(card: Card, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if card.due_date is None:
        return False
    start, end = _aware(start), _aware(end)
    if start is not None and card.due_date < start:
        return False
    if end is not None and card.due_date > end:
        return False
    return True


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Sorting ──────────────────────────────────────────────────────────────────


def _sort_value(card: Card, key: SortKey):
    if key == SortKey.TITLE:
        return card.title.lower()
    if key == SortKey.PRIORITY:
        return card.priority.rank
    if key == SortKey.DUE_DATE:
        return card.due_date or _NO_DUE_DATE
    if key == SortKey.CREATED_AT:
        return card.created_at
    return card.updated_at


def sort_cards(cards: Iterable[Card], sort: SortSpec) -> List[Card]:
    """Order cards by `sort.key`. Tie order is unspecified."""
    return sorted(
        cards,
        key=lambda c: _sort_value(c, sort.key),
        reverse=sort.order == SortOrder.DESC,
    )


def query_cards(
    cards: Iterable[Card],
    filters: Optional[FilterSpec] = None,
    sort: Optional[SortSpec] = None,
) -> List[Card]:
    """The visible, ordered subset of `cards`."""
    filtered = filter_cards(cards, filters or FilterSpec())
    return sort_cards(filtered, sort or SortSpec())


# ── Aggregates ───────────────────────────────────────────────────────────────


def unique_tags(cards: Iterable[Card]) -> List[str]:
    """Every tag used by any card, sorted."""
    tags = set()
    for card in cards:
        tags.update(card.tags)
    return sorted(tags)


def count_by_category(cards: Iterable[Card]) -> Dict[str, int]:
    return dict(Counter(c.category for c in cards))


def count_by_tag(cards: Iterable[Card]) -> Dict[str, int]:
    # a card counts once per tag even if the tag is repeated on it
    return dict(Counter(tag for c in cards for tag in set(c.tags)))


def count_by_priority(cards: Iterable[Card]) -> Dict[str, int]:
    counts = {p.value: 0 for p in Priority}
    for card in cards:
        counts[card.priority.value] += 1
    return counts


def active_filter_count(filters: FilterSpec) -> int:
    """How many filter constraints are currently narrowing the view."""
    count = len(filters.categories) + len(filters.tags) + len(filters.priorities)
    if filters.search:
        count += 1
    if not filters.show_completed:
        count += 1
    if filters.due_from is not None or filters.due_to is not None:
        count += 1
    return count


def board_stats(cards: Sequence[Card], categories: Sequence[Category]) -> Dict[str, int]:
    completed = sum(1 for c in cards if c.completed)
    return {
        "total": len(cards),
        "completed": completed,
        "pending": len(cards) - completed,
        "categories": len(categories),
        "tags": len(unique_tags(cards)),
    }
