"""
Card and category schema.

Records:
  Card      - a task/idea with category, tags, priority, due date, completion
  Category  - a named, coloured grouping referenced by Card.category

Cards and categories are plain dataclasses. to_dict()/from_dict() are the
storage codec: dates become ISO-8601 text on the way out and datetimes on
the way back in. Only the store and the transfer module call them.
"""
import random
import re
import string
import time
from enum import Enum
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone, timedelta
from collections.abc import Iterable
from typing import Optional, List, Dict, Any

from .errors import ValidationError


TITLE_MAX = 100
DESCRIPTION_MAX = 500
CATEGORY_NAME_MAX = 50
COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

_ID_ALPHABET = string.digits + string.ascii_lowercase
_TRUE_WORDS = {"true", "1", "yes", "on"}
_FALSE_WORDS = {"false", "0", "no", "off", ""}


class Priority(Enum):
    """Card priority, ranked low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Accept a Priority or its string value; anything else is invalid."""
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError("priority", f"Invalid priority: {value!r}") from None


_PRIORITY_RANK = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.CRITICAL: 4,
}


class SortKey(Enum):
    """Sortable card fields (values are the persisted/API names)."""
    TITLE = "title"
    PRIORITY = "priority"
    DUE_DATE = "dueDate"
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"

    @classmethod
    def from_str(cls, value: str) -> "SortKey":
        try:
            return cls(value)
        except ValueError:
            return cls.UPDATED_AT


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def from_str(cls, value: str) -> "SortOrder":
        try:
            return cls(value.lower())
        except (ValueError, AttributeError):
            return cls.DESC


class ViewMode(Enum):
    """Presentation mode of the card list."""
    GRID = "grid"
    LIST = "list"


# ── Identity & time ──────────────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Millisecond timestamp plus a 9 char base36 suffix."""
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current time, forced strictly after `previous` on a coarse clock."""
    now = utc_now()
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def parse_datetime(value: Any) -> Optional[datetime]:
    """Decode an ISO-8601 string (or pass through a datetime). Naive -> UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        # fromisoformat() before 3.11 rejects the trailing Z
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ── Validation ───────────────────────────────────────────────────────────────


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title", "Title is required")
    if len(title) > TITLE_MAX:
        raise ValidationError("title", "Title must be less than 100 characters")
    return title


def validate_description(description: Any) -> str:
    if description is None:
        return ""
    if not isinstance(description, str):
        raise ValidationError("description", "Description must be text")
    if len(description) > DESCRIPTION_MAX:
        raise ValidationError("description", "Description must be less than 500 characters")
    return description


def validate_category_ref(category: Any) -> str:
    if not isinstance(category, str) or not category:
        raise ValidationError("category", "Category is required")
    return category


def validate_tags(tags: Any) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, Iterable):
        raise ValidationError("tags", "Tags must be a list of strings")
    tags = list(tags)
    if not all(isinstance(t, str) for t in tags):
        raise ValidationError("tags", "Tags must be a list of strings")
    return tags


def validate_category_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name", "Category name is required")
    if len(name) > CATEGORY_NAME_MAX:
        raise ValidationError("name", "Category name must be less than 50 characters")
    return name


def validate_color(color: Any) -> str:
    if not isinstance(color, str) or not COLOR_RE.match(color):
        raise ValidationError("color", "Invalid color format")
    return color


def parse_completed(value: Any) -> bool:
    """Real booleans, or the usual string spellings ("false" stays False)."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValidationError("completed", f"Invalid completed flag: {value!r}")


def _coerce_due_date(value: Any) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError("due_date", f"Invalid due date: {value!r}") from None


# ── Records ──────────────────────────────────────────────────────────────────


@dataclass
class Card:
    """A user-created task/idea record."""

    id: str
    title: str
    category: str
    description: str = ""
    tags: List[str] = field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    completed: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(cls, data: Dict[str, Any]) -> "Card":
        """Validate user input and stamp a brand new card.

        Any id/createdAt/updatedAt in `data` is ignored.
        """
        now = utc_now()
        return cls(
            id=new_id(),
            title=validate_title(data.get("title")),
            description=validate_description(data.get("description", "")),
            category=validate_category_ref(data.get("category")),
            tags=validate_tags(data.get("tags")),
            priority=Priority.parse(data.get("priority", Priority.MEDIUM)),
            due_date=_coerce_due_date(data.get("due_date", data.get("dueDate"))),
            completed=parse_completed(data.get("completed")),
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys and ISO-8601 dates."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "priority": self.priority.value,
            "dueDate": format_datetime(self.due_date),
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        """Deserialize a stored/imported card.

        Missing timestamps fall back to now; updatedAt is clamped so it is
        never earlier than createdAt. Raises ValueError/TypeError/KeyError on
        records that cannot be decoded.
        """
        created_at = parse_datetime(data.get("createdAt")) or utc_now()
        updated_at = parse_datetime(data.get("updatedAt")) or created_at
        if updated_at < created_at:
            updated_at = created_at
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise TypeError("tags must be a list")
        try:
            completed = parse_completed(data.get("completed"))
        except ValidationError as e:
            raise ValueError(e.message) from None
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            description=str(data.get("description") or ""),
            category=str(data["category"]),
            tags=[str(t) for t in tags],
            priority=Priority(data.get("priority") or "medium"),
            due_date=parse_datetime(data.get("dueDate")),
            completed=completed,
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass
class Category:
    """A named, coloured grouping of cards."""

    id: str
    name: str
    color: str
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=new_id(),
            name=validate_category_name(data.get("name")),
            color=validate_color(data.get("color")),
            created_at=utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "createdAt": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            color=str(data["color"]),
            created_at=parse_datetime(data.get("createdAt")) or utc_now(),
        )


def default_categories() -> List[Category]:
    """The four categories seeded on first run."""
    now = utc_now()
    return [
        Category(id="work", name="Work", color="#3b82f6", created_at=now),
        Category(id="personal", name="Personal", color="#10b981", created_at=now),
        Category(id="projects", name="Projects", color="#8b5cf6", created_at=now),
        Category(id="ideas", name="Ideas", color="#f59e0b", created_at=now),
    ]


# ── Typed patches ────────────────────────────────────────────────────────────

# Sentinel for "field not present in the patch" (None is a real due_date value)
UNSET: Any = object()

# Accepted wire spellings for patch keys
_PATCH_ALIASES = {"dueDate": "due_date"}


def _patch_keys(data: Dict[str, Any], allowed: Iterable[str], kind: str) -> Dict[str, Any]:
    allowed = set(allowed)
    normalized = {}
    for key, value in data.items():
        name = _PATCH_ALIASES.get(key, key)
        if name not in allowed:
            raise ValidationError(key, f"Unknown {kind} field: {key}")
        normalized[name] = value
    return normalized


@dataclass
class CardPatch:
    """Partial update of a card. Only mutable fields exist here."""

    title: Any = UNSET
    description: Any = UNSET
    category: Any = UNSET
    tags: Any = UNSET
    priority: Any = UNSET
    due_date: Any = UNSET
    completed: Any = UNSET

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CardPatch":
        """Build a patch, rejecting id/createdAt/updatedAt and unknown keys."""
        names = [f.name for f in fields(cls)]
        return cls(**_patch_keys(data, names, "card"))

    def changes(self) -> Dict[str, Any]:
        """Validated {field: value} for every field that was set."""
        out: Dict[str, Any] = {}
        if self.title is not UNSET:
            out["title"] = validate_title(self.title)
        if self.description is not UNSET:
            out["description"] = validate_description(self.description)
        if self.category is not UNSET:
            out["category"] = validate_category_ref(self.category)
        if self.tags is not UNSET:
            out["tags"] = validate_tags(self.tags)
        if self.priority is not UNSET:
            out["priority"] = Priority.parse(self.priority)
        if self.due_date is not UNSET:
            out["due_date"] = _coerce_due_date(self.due_date)
        if self.completed is not UNSET:
            out["completed"] = parse_completed(self.completed)
        return out


@dataclass
class CategoryPatch:
    """Partial update of a category (name and colour only)."""

    name: Any = UNSET
    color: Any = UNSET

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryPatch":
        return cls(**_patch_keys(data, ("name", "color"), "category"))

    def changes(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.name is not UNSET:
            out["name"] = validate_category_name(self.name)
        if self.color is not UNSET:
            out["color"] = validate_color(self.color)
        return out


# ── Query specs ──────────────────────────────────────────────────────────────


@dataclass
class FilterSpec:
    """Which cards are visible. Fields AND together; sets are OR inside."""

    search: str = ""
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    priorities: List[Priority] = field(default_factory=list)
    show_completed: bool = True
    due_from: Optional[datetime] = None
    due_to: Optional[datetime] = None


@dataclass
class SortSpec:
    key: SortKey = SortKey.UPDATED_AT
    order: SortOrder = SortOrder.DESC
