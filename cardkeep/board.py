"""
CardBoard: the application-level state container.

Holds the in-memory working copy of cards and categories plus the view
state (filters, sort, view mode, selection) and exposes the operations the
presentation layer calls. The board is built by the entry point around an
injected CardStore; there is no module-level instance.

Every mutating call goes through the store first and then updates the
working copy, so the two stay consistent.
"""
import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from . import query, transfer
from .errors import PersistenceFailed
from .schema import (
    Card,
    CardPatch,
    Category,
    CategoryPatch,
    FilterSpec,
    SortKey,
    SortOrder,
    SortSpec,
    ViewMode,
)
from .store import CardStore
from .transfer import ImportResult

logger = logging.getLogger(__name__)

MSG_IMPORT_BUSY = "An import is already in progress"


class CardBoard:
    """Working copy + view state over a CardStore."""

    def __init__(self, store: CardStore, sort: Optional[SortSpec] = None):
        self.store = store
        self.cards: List[Card] = []
        self.categories: List[Category] = []
        self.filters = FilterSpec()
        self.sort = sort or SortSpec()
        self.view_mode = ViewMode.GRID
        self.selected: List[str] = []
        self._import_lock = asyncio.Lock()
        self._restore_settings()
        self.reload()

    # ──────────────────────────────────────────
    # Loading
    # ──────────────────────────────────────────

    def reload(self) -> Tuple[List[Card], List[Category]]:
        """Re-read persisted state into the working copy."""
        self.cards = self.store.load_cards()
        self.categories = self.store.load_categories()
        known = {c.id for c in self.cards}
        self.selected = [cid for cid in self.selected if cid in known]
        return self.cards, self.categories

    def _reload_after_failure(self) -> None:
        """Resync with whatever the store holds after a failed multi-key write."""
        try:
            self.reload()
        except PersistenceFailed as e:
            logger.error("Could not reload after failed write: %s", e)

    def _restore_settings(self) -> None:
        settings = self.store.load_settings()
        if "viewMode" in settings:
            try:
                self.view_mode = ViewMode(settings["viewMode"])
            except ValueError:
                logger.warning("Ignoring stored view mode %r", settings["viewMode"])
        if "sortBy" in settings:
            self.sort = SortSpec(
                key=SortKey.from_str(settings["sortBy"]),
                order=SortOrder.from_str(settings.get("sortOrder", "desc")),
            )

    def _save_settings(self) -> None:
        self.store.save_settings({
            "viewMode": self.view_mode.value,
            "sortBy": self.sort.key.value,
            "sortOrder": self.sort.order.value,
        })

    # ──────────────────────────────────────────
    # Cards
    # ──────────────────────────────────────────

    def get_card(self, card_id: str) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def create_card(self, data: Dict[str, Any]) -> Card:
        card = self.store.add_card(data)
        self.cards.append(card)
        return card

    def update_card(self, card_id: str, patch: Union[CardPatch, Dict[str, Any]]) -> Optional[Card]:
        updated = self.store.update_card(card_id, patch)
        if updated is not None:
            self.cards = [updated if c.id == card_id else c for c in self.cards]
        return updated

    def delete_card(self, card_id: str) -> bool:
        deleted = self.store.delete_card(card_id)
        if deleted:
            self.cards = [c for c in self.cards if c.id != card_id]
            self.selected = [cid for cid in self.selected if cid != card_id]
        return deleted

    def delete_cards(self, card_ids: Iterable[str]) -> int:
        ids = set(card_ids)
        count = self.store.delete_cards(ids)
        if count:
            self.cards = [c for c in self.cards if c.id not in ids]
            self.selected = []
        return count

    def delete_selected(self) -> int:
        return self.delete_cards(self.selected)

    # ──────────────────────────────────────────
    # Categories
    # ──────────────────────────────────────────

    def create_category(self, data: Dict[str, Any]) -> Category:
        category = self.store.add_category(data)
        self.categories.append(category)
        return category

    def update_category(
        self, category_id: str, patch: Union[CategoryPatch, Dict[str, Any]]
    ) -> Optional[Category]:
        updated = self.store.update_category(category_id, patch)
        if updated is not None:
            self.categories = [updated if c.id == category_id else c for c in self.categories]
        return updated

    def delete_category(self, category_id: str) -> bool:
        deleted = self.store.delete_category(category_id)
        if deleted:
            self.categories = [c for c in self.categories if c.id != category_id]
        return deleted

    def category_for(self, card: Card) -> Optional[Category]:
        """The card's category, or None for a dangling reference."""
        for category in self.categories:
            if category.id == card.category:
                return category
        return None

    # ──────────────────────────────────────────
    # Query & view state
    # ──────────────────────────────────────────

    def query(
        self, filters: Optional[FilterSpec] = None, sort: Optional[SortSpec] = None
    ) -> List[Card]:
        """Visible cards. Defaults to the board's current filters and sort."""
        return query.query_cards(self.cards, filters or self.filters, sort or self.sort)

    def set_filters(self, **changes) -> FilterSpec:
        """Merge changes into the current filters (unknown names raise TypeError)."""
        self.filters = replace(self.filters, **changes)
        return self.filters

    def reset_filters(self) -> FilterSpec:
        self.filters = FilterSpec()
        return self.filters

    def set_sort(self, sort: SortSpec) -> None:
        self.sort = sort
        self._save_settings()

    def set_view_mode(self, mode: Union[ViewMode, str]) -> None:
        self.view_mode = ViewMode(mode)
        self._save_settings()

    def toggle_selection(self, card_id: str) -> bool:
        """Flip selection of one card; return whether it is now selected."""
        if card_id in self.selected:
            self.selected = [cid for cid in self.selected if cid != card_id]
            return False
        self.selected = self.selected + [card_id]
        return True

    def select_all(self) -> List[str]:
        """Select every card currently visible under the active filters."""
        self.selected = [c.id for c in self.query()]
        return self.selected

    def clear_selection(self) -> None:
        self.selected = []

    @property
    def unique_tags(self) -> List[str]:
        return query.unique_tags(self.cards)

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = query.board_stats(self.cards, self.categories)
        out["by_category"] = query.count_by_category(self.cards)
        out["by_priority"] = query.count_by_priority(self.cards)
        out["by_tag"] = query.count_by_tag(self.cards)
        out["active_filters"] = query.active_filter_count(self.filters)
        return out

    # ──────────────────────────────────────────
    # Import / export
    # ──────────────────────────────────────────

    def export_document(self) -> Dict[str, Any]:
        return transfer.export_document(self.store)

    def import_document(self, raw_text: str) -> ImportResult:
        result = transfer.import_document(self.store, raw_text)
        if result.success:
            self.reload()
        elif result.message == transfer.MSG_SAVE_FAILED:
            self._reload_after_failure()
        return result

    async def import_file(self, path: Union[str, Path]) -> ImportResult:
        """Read a backup file off the event loop, then merge it.

        Only one import runs at a time; a concurrent call gets a failure
        result immediately. The caller always receives exactly one result.
        """
        if self._import_lock.locked():
            return ImportResult(False, MSG_IMPORT_BUSY)
        async with self._import_lock:
            try:
                raw = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.error("Cannot read import file %s: %s", path, e)
                return ImportResult(False, transfer.MSG_READ_FAILED)
            return self.import_document(raw)

    def clear_all_data(self) -> None:
        """Wipe persisted data, then reload (which re-seeds default categories)."""
        try:
            self.store.clear_all_data()
        except PersistenceFailed:
            self._reload_after_failure()
            raise
        self.selected = []
        self.reload()
