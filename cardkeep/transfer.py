"""
Backup export and merge-on-import.

Export document shape:
    {"cards": [...], "categories": [...], "exportedAt": <iso>, "version": "1.0.0"}

Import treats the document as untrusted: records without the minimal shape
are dropped silently, records whose id already exists locally are skipped
(local copy wins), and every failure comes back as an ImportResult instead
of an exception.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import PersistenceFailed
from .schema import Card, Category, format_datetime, utc_now
from .store import CardStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"

MSG_INVALID_JSON = "Failed to parse file: Invalid JSON format"
MSG_MISSING_CARDS = "Invalid file format: missing cards array"
MSG_NO_VALID_CARDS = "No valid cards found in file"
MSG_READ_FAILED = "Failed to read file"
MSG_SAVE_FAILED = "Failed to save imported data"


@dataclass
class ImportResult:
    success: bool
    message: str
    data: Optional[Dict[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            out["data"] = dict(self.data)
        return out


# ── Export ───────────────────────────────────────────────────────────────────


def export_document(store: CardStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "cards": [c.to_dict() for c in store.load_cards()],
        "categories": [c.to_dict() for c in store.load_categories()],
        "exportedAt": format_datetime(now or utc_now()),
        "version": EXPORT_VERSION,
    }


def export_text(store: CardStore, now: Optional[datetime] = None) -> str:
    return json.dumps(export_document(store, now), indent=2)


def backup_filename(now: Optional[datetime] = None) -> str:
    """cards-backup-YYYY-MM-DD.json"""
    return f"cards-backup-{(now or utc_now()).date().isoformat()}.json"


def write_backup(store: CardStore, directory: str, now: Optional[datetime] = None) -> Path:
    """Write the export document into `directory`; return the file path."""
    now = now or utc_now()
    out_dir = Path(directory).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / backup_filename(now)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(export_text(store, now), encoding="utf-8")
    tmp.replace(path)
    logger.info("Exported backup to %s", path)
    return path


# ── Import ───────────────────────────────────────────────────────────────────


def _has_fields(record: Any, *names: str) -> bool:
    return isinstance(record, dict) and all(record.get(n) for n in names)


def _decode_cards(records: List[Any]) -> List[Card]:
    cards = []
    for raw in records:
        if not _has_fields(raw, "id", "title", "category"):
            continue
        try:
            cards.append(Card.from_dict(raw))
        except (KeyError, TypeError, ValueError, AttributeError):
            continue
    return cards


def _decode_categories(records: Any) -> List[Category]:
    if not isinstance(records, list):
        return []
    categories = []
    for raw in records:
        if not _has_fields(raw, "id", "name", "color"):
            continue
        try:
            categories.append(Category.from_dict(raw))
        except (KeyError, TypeError, ValueError, AttributeError):
            continue
    return categories


def _unseen(incoming: List[Any], existing: List[Any]) -> List[Any]:
    """Incoming records whose id is new; the first of any duplicate wins."""
    seen = {r.id for r in existing}
    fresh = []
    for record in incoming:
        if record.id not in seen:
            seen.add(record.id)
            fresh.append(record)
    return fresh


def import_document(store: CardStore, raw_text: str) -> ImportResult:
    """Validate `raw_text` and merge its new cards/categories into the store.

    Nothing is written unless at least one valid card survives. Categories
    are saved before cards; if the cards write fails the previous categories
    are restored, so a failed import leaves the stored collections as they
    were.
    """
    try:
        document = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return ImportResult(False, MSG_INVALID_JSON)

    if not isinstance(document, dict) or not isinstance(document.get("cards"), list):
        return ImportResult(False, MSG_MISSING_CARDS)

    incoming_cards = _decode_cards(document["cards"])
    if not incoming_cards:
        return ImportResult(False, MSG_NO_VALID_CARDS)

    incoming_categories = _decode_categories(document.get("categories"))

    try:
        existing_cards = store.load_cards()
        existing_categories = store.load_categories()
        new_cards = _unseen(incoming_cards, existing_cards)
        new_categories = _unseen(incoming_categories, existing_categories)

        if new_categories:
            store.save_categories(existing_categories + new_categories)
        try:
            store.save_cards(existing_cards + new_cards)
        except PersistenceFailed:
            if new_categories:
                store.save_categories(existing_categories)
            raise
    except PersistenceFailed as e:
        logger.error("Import not persisted: %s", e)
        return ImportResult(False, MSG_SAVE_FAILED)

    logger.info("Imported %d cards and %d categories", len(new_cards), len(new_categories))
    return ImportResult(
        True,
        f"Successfully imported {len(new_cards)} cards and {len(new_categories)} categories",
        {"cards": len(new_cards), "categories": len(new_categories)},
    )
