"""
Task board schema.

Board columns:
  todo → in_progress → done   (configurable, see ColumnSet)

Any column-to-column move is legal; the column set only bounds which
status values exist. Records are immutable: stores replace them whole.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, FrozenSet, Tuple


DEFAULT_COLUMNS = ("todo", "in_progress", "done")


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    # Naive timestamps are taken as UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ColumnSet:
    """Ordered, finite set of Kanban columns (task statuses)."""

    def __init__(self, names: Iterable[str] = DEFAULT_COLUMNS):
        self.names: Tuple[str, ...] = tuple(names)
        if not self.names:
            raise ValueError("A board needs at least one column")
        if len(set(self.names)) != len(self.names):
            raise ValueError(f"Duplicate column names: {list(self.names)}")
        self._order = {name: i for i, name in enumerate(self.names)}

    def __contains__(self, status: object) -> bool:
        return status in self._order

    def __iter__(self):
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)

    def __repr__(self) -> str:
        return f"ColumnSet({list(self.names)!r})"

    @property
    def first(self) -> str:
        return self.names[0]

    @property
    def last(self) -> str:
        return self.names[-1]

    def index(self, status: str) -> int:
        """Position of a column; unknown statuses sort after every column."""
        return self._order.get(status, len(self.names))


class TaskPriority(Enum):
    """Task urgency, most urgent first."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_str(cls, value: str) -> "TaskPriority":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.MEDIUM

    @property
    def rank(self) -> int:
        return list(TaskPriority).index(self)


class ContactRole(Enum):
    """Who a contact is to the committee."""
    VOLUNTEER = "volunteer"
    VENDOR = "vendor"
    SPONSOR = "sponsor"
    COMMITTEE = "committee"
    EXTERNAL = "external"

    @classmethod
    def from_str(cls, value: str) -> "ContactRole":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.EXTERNAL


@dataclass(frozen=True)
class ChecklistItem:
    id: str
    text: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        return cls(
            id=data.get("id", ""),
            text=data.get("text", ""),
            completed=bool(data.get("completed", False)),
        )


@dataclass(frozen=True)
class Task:
    """A unit of committee work shown as one card on the board."""

    id: str
    title: str
    description: str = ""
    status: str = DEFAULT_COLUMNS[0]
    priority: TaskPriority = TaskPriority.MEDIUM

    # References (may dangle)
    category_id: Optional[str] = None
    assignee_ids: FrozenSet[str] = frozenset()

    due_date: Optional[datetime] = None
    checklist: Tuple[ChecklistItem, ...] = ()

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_unassigned(self) -> bool:
        return not self.assignee_ids

    def with_changes(self, **changes) -> "Task":
        """Copy with changes applied and updated_at bumped."""
        changes.setdefault("updated_at", utc_now())
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority.value,
            "category_id": self.category_id,
            "assignee_ids": sorted(self.assignee_ids),
            "due_date": _format_dt(self.due_date),
            "checklist": [item.to_dict() for item in self.checklist],
            "created_at": _format_dt(self.created_at),
            "updated_at": _format_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        now = utc_now()
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            description=data.get("description") or "",
            status=data.get("status") or DEFAULT_COLUMNS[0],
            priority=TaskPriority.from_str(data.get("priority") or "medium"),
            category_id=data.get("category_id") or None,
            assignee_ids=frozenset(data.get("assignee_ids") or ()),
            due_date=_parse_dt(data.get("due_date")),
            checklist=tuple(ChecklistItem.from_dict(i) for i in data.get("checklist") or ()),
            created_at=_parse_dt(data.get("created_at")) or now,
            updated_at=_parse_dt(data.get("updated_at")) or now,
        )


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            color=data.get("color", ""),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class Contact:
    id: str
    name: str
    role: ContactRole = ContactRole.VOLUNTEER
    email: str = ""
    phone: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "email": self.email,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contact":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            role=ContactRole.from_str(data.get("role") or "external"),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
        )


@dataclass(frozen=True)
class Reminder:
    """One-shot due-date alert for a task. `sent` only ever goes False → True."""

    id: str
    task_id: str
    date: datetime
    sent: bool = False

    def is_due(self, now: datetime) -> bool:
        return not self.sent and self.date <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "date": _format_dt(self.date),
            "sent": self.sent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reminder":
        return cls(
            id=data.get("id", ""),
            task_id=data.get("task_id", ""),
            date=_parse_dt(data.get("date")) or utc_now(),
            sent=bool(data.get("sent", False)),
        )


# Seeded when a category backend is empty
DEFAULT_CATEGORIES: List[Dict[str, str]] = [
    {"name": "Venue & Logistics", "color": "#3B82F6",
     "description": "Venue booking, setup, and logistics coordination"},
    {"name": "Teams & Registration", "color": "#10B981",
     "description": "Team registration, rosters, and player management"},
    {"name": "Equipment & Supplies", "color": "#F59E0B",
     "description": "Sports equipment, supplies, and inventory"},
    {"name": "Volunteers & Staff", "color": "#8B5CF6",
     "description": "Volunteer recruitment, scheduling, and coordination"},
    {"name": "Marketing & Promotion", "color": "#EC4899",
     "description": "Marketing campaigns, social media, and promotion"},
    {"name": "Finance & Sponsors", "color": "#14B8A6",
     "description": "Budget management, sponsorships, and fundraising"},
    {"name": "Food & Refreshments", "color": "#F97316",
     "description": "Catering, food vendors, and refreshment planning"},
    {"name": "Awards & Ceremonies", "color": "#EAB308",
     "description": "Trophies, medals, certificates, and ceremonies"},
]
