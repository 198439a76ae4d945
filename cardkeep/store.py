"""
Card storage gateway.

Every operation loads the whole collection from the key-value backend,
modifies it, and writes the whole collection back (last write wins).
Dates cross this boundary as ISO-8601 text; Card/Category.to_dict() and
from_dict() are the codec.

Storage failures are logged. In strict mode a failed write raises
PersistenceFailed; otherwise the in-memory result is returned as if the
write had succeeded.
"""
import json
import logging
from dataclasses import replace
from typing import List, Optional, Dict, Any, Iterable, Union

from .errors import StorageError, PersistenceFailed
from .schema import (
    Card,
    Category,
    CardPatch,
    CategoryPatch,
    default_categories,
    next_timestamp,
)

logger = logging.getLogger(__name__)

CARDS_KEY = "card-management-cards"
CATEGORIES_KEY = "card-management-categories"
SETTINGS_KEY = "card-management-settings"


class CardStore:
    """Persistence gateway for cards, categories and settings."""

    def __init__(self, storage, strict: bool = False):
        """
        Args:
            storage: a backend with get/set/remove/clear (see storage.py)
            strict: raise PersistenceFailed instead of only logging failed writes
        """
        self.storage = storage
        self.strict = strict

    # ──────────────────────────────────────────
    # Raw access
    # ──────────────────────────────────────────

    def _read(self, key: str) -> Optional[Any]:
        """Return the decoded JSON under `key`, or None if absent/unreadable."""
        try:
            raw = self.storage.get(key)
        except StorageError as e:
            logger.error("Error reading %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error("Stored payload under %s is not valid JSON: %s", key, e)
            return None

    def _write(self, key: str, payload: Any) -> bool:
        try:
            self.storage.set(key, json.dumps(payload))
            return True
        except StorageError as e:
            logger.error("Error writing %s: %s", key, e)
            if self.strict:
                raise PersistenceFailed(f"could not persist {key}: {e}") from e
            return False

    def _remove(self, key: str) -> None:
        try:
            self.storage.remove(key)
        except StorageError as e:
            logger.error("Error removing %s: %s", key, e)
            if self.strict:
                raise PersistenceFailed(f"could not remove {key}: {e}") from e

    # ──────────────────────────────────────────
    # Cards
    # ──────────────────────────────────────────

    def load_cards(self) -> List[Card]:
        """All stored cards; empty when nothing is stored or the payload is bad."""
        data = self._read(CARDS_KEY)
        if not isinstance(data, list):
            if data is not None:
                logger.error("Stored cards payload is not a list; ignoring it")
            return []
        cards = []
        for raw in data:
            try:
                cards.append(Card.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping undecodable stored card: %s", e)
        return cards

    def save_cards(self, cards: Iterable[Card]) -> bool:
        return self._write(CARDS_KEY, [c.to_dict() for c in cards])

    def get_card(self, card_id: str) -> Optional[Card]:
        for card in self.load_cards():
            if card.id == card_id:
                return card
        return None

    def add_card(self, data: Dict[str, Any]) -> Card:
        """Validate, stamp, append and persist a new card."""
        card = Card.create(data)
        cards = self.load_cards()
        cards.append(card)
        self.save_cards(cards)
        logger.info("Added card %s", card.id)
        return card

    def update_card(self, card_id: str, patch: Union[CardPatch, Dict[str, Any]]) -> Optional[Card]:
        """Merge `patch` over the card and bump updated_at.

        Returns None (and writes nothing) if the id is unknown. id and
        created_at can never change because CardPatch has no such fields.
        """
        if isinstance(patch, dict):
            patch = CardPatch.from_dict(patch)
        changes = patch.changes()
        cards = self.load_cards()
        for index, existing in enumerate(cards):
            if existing.id == card_id:
                updated = replace(
                    existing,
                    **changes,
                    updated_at=next_timestamp(existing.updated_at),
                )
                cards[index] = updated
                self.save_cards(cards)
                return updated
        return None

    def delete_card(self, card_id: str) -> bool:
        cards = self.load_cards()
        remaining = [c for c in cards if c.id != card_id]
        if len(remaining) == len(cards):
            return False
        self.save_cards(remaining)
        logger.info("Deleted card %s", card_id)
        return True

    def delete_cards(self, card_ids: Iterable[str]) -> int:
        """Delete every card whose id is in `card_ids`; return how many went."""
        wanted = set(card_ids)
        cards = self.load_cards()
        remaining = [c for c in cards if c.id not in wanted]
        deleted = len(cards) - len(remaining)
        if deleted:
            self.save_cards(remaining)
            logger.info("Deleted %d cards", deleted)
        return deleted

    def clear_cards(self) -> None:
        self._remove(CARDS_KEY)

    # ──────────────────────────────────────────
    # Categories
    # ──────────────────────────────────────────

    def load_categories(self) -> List[Category]:
        """All categories. Seeds and persists the defaults on first run."""
        data = self._read(CATEGORIES_KEY)
        if data is None:
            defaults = default_categories()
            self.save_categories(defaults)
            logger.info("Seeded %d default categories", len(defaults))
            return defaults
        if not isinstance(data, list):
            logger.error("Stored categories payload is not a list; ignoring it")
            return []
        categories = []
        for raw in data:
            try:
                categories.append(Category.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping undecodable stored category: %s", e)
        return categories

    def save_categories(self, categories: Iterable[Category]) -> bool:
        return self._write(CATEGORIES_KEY, [c.to_dict() for c in categories])

    def get_category(self, category_id: str) -> Optional[Category]:
        for category in self.load_categories():
            if category.id == category_id:
                return category
        return None

    def add_category(self, data: Dict[str, Any]) -> Category:
        category = Category.create(data)
        categories = self.load_categories()
        categories.append(category)
        self.save_categories(categories)
        logger.info("Added category %s (%s)", category.id, category.name)
        return category

    def update_category(
        self, category_id: str, patch: Union[CategoryPatch, Dict[str, Any]]
    ) -> Optional[Category]:
        if isinstance(patch, dict):
            patch = CategoryPatch.from_dict(patch)
        changes = patch.changes()
        categories = self.load_categories()
        for index, existing in enumerate(categories):
            if existing.id == category_id:
                updated = replace(existing, **changes)
                categories[index] = updated
                self.save_categories(categories)
                return updated
        return None

    def delete_category(self, category_id: str) -> bool:
        """Remove a category. Cards that reference it are left dangling."""
        categories = self.load_categories()
        remaining = [c for c in categories if c.id != category_id]
        if len(remaining) == len(categories):
            return False
        self.save_categories(remaining)
        logger.info("Deleted category %s", category_id)
        return True

    # ──────────────────────────────────────────
    # Settings & housekeeping
    # ──────────────────────────────────────────

    def load_settings(self) -> Dict[str, Any]:
        data = self._read(SETTINGS_KEY)
        return data if isinstance(data, dict) else {}

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        return self._write(SETTINGS_KEY, settings)

    def clear_all_data(self) -> None:
        """Remove cards, categories and settings. Irreversible.

        Every key is attempted even if an earlier one fails; in strict mode
        the failed keys are reported together afterwards.
        """
        failed = []
        for key in (CARDS_KEY, CATEGORIES_KEY, SETTINGS_KEY):
            try:
                self._remove(key)
            except PersistenceFailed:
                failed.append(key)
        if failed:
            raise PersistenceFailed(f"could not remove {', '.join(failed)}")
        logger.warning("All card data cleared")
