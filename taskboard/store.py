"""
Entity stores for tasks, categories, contacts and reminders.

Stores keep records in memory and write every committed change through a
KeyValueBackend. Subscribers are notified synchronously, once per
mutation, after the new state has been swapped in.
"""
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from .schema import (
    Category,
    ChecklistItem,
    ColumnSet,
    Contact,
    ContactRole,
    DEFAULT_CATEGORIES,
    Reminder,
    Task,
    TaskPriority,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreUnavailable(Exception):
    """Raised when the persistence backend fails to load or save."""
    pass


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Backends
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class KeyValueBackend(ABC):
    """Narrow persistence interface: one list of plain dicts per key."""

    @abstractmethod
    def load(self, key: str) -> List[dict]:
        ...

    @abstractmethod
    def save(self, key: str, rows: List[dict]) -> None:
        ...


class MemoryBackend(KeyValueBackend):
    """Process-local backend. Rows are copied in and out."""

    def __init__(self, initial: Optional[Dict[str, List[dict]]] = None):
        self._data: Dict[str, List[dict]] = {
            k: [dict(r) for r in rows] for k, rows in (initial or {}).items()
        }

    def load(self, key: str) -> List[dict]:
        return [dict(r) for r in self._data.get(key, [])]

    def save(self, key: str, rows: List[dict]) -> None:
        self._data[key] = [dict(r) for r in rows]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Base store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class EntityStore(Generic[T]):
    """Ordered id → record collection with subscribe/notify."""

    key: str = ""
    id_prefix: str = ""
    record_type: Type = object

    def __init__(self, backend: Optional[KeyValueBackend] = None):
        self.backend = backend or MemoryBackend()
        self._subscribers: List[Callable] = []
        self._records: "OrderedDict[str, T]" = OrderedDict()
        for row in self._load_rows():
            record = self.record_type.from_dict(row)
            self._records[record.id] = record

    def _load_rows(self) -> List[dict]:
        try:
            return self.backend.load(self.key)
        except Exception as e:
            raise StoreUnavailable(f"Cannot load '{self.key}': {e}") from e

    # ── Subscription ──────────────────────────

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """Register a change callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Error in {self.key} subscriber {callback!r}: {e}")

    # ── Commit ────────────────────────────────

    def _commit(self, records: "OrderedDict[str, T]") -> None:
        """Persist a complete new record set, then swap it in and notify."""
        try:
            self.backend.save(self.key, [r.to_dict() for r in records.values()])
        except Exception as e:
            raise StoreUnavailable(f"Cannot save '{self.key}': {e}") from e
        self._records = records
        self._emit()

    def _replace(self, record: T) -> None:
        records = OrderedDict(self._records)
        records[record.id] = record
        self._commit(records)

    # ── Reads ─────────────────────────────────

    def list(self) -> List[T]:
        """Snapshot of all records in insertion order."""
        return list(self._records.values())

    def get(self, record_id: str) -> Optional[T]:
        return self._records.get(record_id)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # ── Writes ────────────────────────────────

    def next_id(self) -> str:
        """Next sequential id, e.g. TSK-007."""
        highest = 0
        for record_id in self._records:
            try:
                highest = max(highest, int(record_id.split("-")[1]))
            except (IndexError, ValueError):
                continue
        return f"{self.id_prefix}-{highest + 1:03d}"

    def add(self, record: T) -> T:
        self._replace(record)
        return record

    def delete(self, record_id: str) -> bool:
        if record_id not in self._records:
            return False
        records = OrderedDict(self._records)
        del records[record_id]
        self._commit(records)
        return True


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Concrete stores
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TaskStore(EntityStore[Task]):
    """Tasks, constrained to a fixed column set."""

    key = "tasks"
    id_prefix = "TSK"
    record_type = Task

    def __init__(self, backend: Optional[KeyValueBackend] = None, columns: Optional[ColumnSet] = None):
        self.columns = columns or ColumnSet()
        super().__init__(backend)
        for task in self._records.values():
            if task.status not in self.columns:
                logger.warning(
                    f"Task {task.id} loaded with status '{task.status}' outside columns {list(self.columns)}"
                )

    def _check_status(self, status: str) -> None:
        if status not in self.columns:
            raise ValueError(f"Invalid status '{status}'. Columns: {list(self.columns)}")

    def list_tasks(self) -> List[Task]:
        return self.list()

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.get(task_id)

    def add_task(
        self,
        title: str,
        description: str = "",
        status: Optional[str] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        category_id: Optional[str] = None,
        assignee_ids: Iterable[str] = (),
        due_date: Optional[datetime] = None,
        checklist: Iterable[str] = (),
    ) -> Task:
        status = status or self.columns.first
        self._check_status(status)
        task_id = self.next_id()
        now = utc_now()
        task = Task(
            id=task_id,
            title=title,
            description=description,
            status=status,
            priority=priority,
            category_id=category_id,
            assignee_ids=frozenset(assignee_ids),
            due_date=due_date,
            checklist=tuple(
                ChecklistItem(id=f"{task_id}.{i + 1}", text=text)
                for i, text in enumerate(checklist)
            ),
            created_at=now,
            updated_at=now,
        )
        return self.add(task)

    def update_task(self, task_id: str, **changes) -> Optional[Task]:
        """Apply field changes to one task. Returns None if it doesn't exist."""
        task = self.get(task_id)
        if task is None:
            return None
        changes.pop("id", None)
        changes.pop("created_at", None)
        if "status" in changes:
            self._check_status(changes["status"])
        if "assignee_ids" in changes:
            changes["assignee_ids"] = frozenset(changes["assignee_ids"])
        updated = task.with_changes(**changes)
        self._replace(updated)
        return updated

    def set_task_status(self, task_id: str, status: str) -> Optional[Task]:
        """Set one task's status in a single committed update."""
        self._check_status(status)
        return self.update_task(task_id, status=status)

    def delete_task(self, task_id: str) -> bool:
        return self.delete(task_id)

    def toggle_checklist_item(self, task_id: str, item_id: str) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None
        checklist = tuple(
            ChecklistItem(id=i.id, text=i.text, completed=not i.completed) if i.id == item_id else i
            for i in task.checklist
        )
        return self.update_task(task_id, checklist=checklist)

    def tasks_by_status(self, status: str) -> List[Task]:
        return [t for t in self._records.values() if t.status == status]

    def tasks_by_category(self, category_id: str) -> List[Task]:
        return [t for t in self._records.values() if t.category_id == category_id]

    def tasks_by_assignee(self, contact_id: str) -> List[Task]:
        return [t for t in self._records.values() if contact_id in t.assignee_ids]


class CategoryStore(EntityStore[Category]):
    key = "categories"
    id_prefix = "CAT"
    record_type = Category

    def __init__(self, backend: Optional[KeyValueBackend] = None, seed: bool = True):
        super().__init__(backend)
        if seed and not self._records:
            records = OrderedDict()
            for i, data in enumerate(DEFAULT_CATEGORIES):
                category = Category(id=f"{self.id_prefix}-{i + 1:03d}", **data)
                records[category.id] = category
            self._commit(records)

    def list_categories(self) -> List[Category]:
        return self.list()

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.get(category_id)

    def add_category(self, name: str, color: str = "", description: str = "") -> Category:
        return self.add(Category(id=self.next_id(), name=name, color=color, description=description))

    def delete_category(self, category_id: str) -> bool:
        # Tasks keep the dangling reference
        return self.delete(category_id)


class ContactStore(EntityStore[Contact]):
    key = "contacts"
    id_prefix = "CON"
    record_type = Contact

    def list_contacts(self) -> List[Contact]:
        return self.list()

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        return self.get(contact_id)

    def add_contact(
        self,
        name: str,
        role: ContactRole = ContactRole.VOLUNTEER,
        email: str = "",
        phone: str = "",
    ) -> Contact:
        return self.add(Contact(id=self.next_id(), name=name, role=role, email=email, phone=phone))

    def delete_contact(self, contact_id: str) -> bool:
        return self.delete(contact_id)

    def contacts_by_role(self, role: ContactRole) -> List[Contact]:
        return [c for c in self._records.values() if c.role == role]

    def contacts_by_ids(self, contact_ids: Iterable[str]) -> List[Contact]:
        wanted = set(contact_ids)
        return [c for c in self._records.values() if c.id in wanted]


class ReminderStore(EntityStore[Reminder]):
    key = "reminders"
    id_prefix = "REM"
    record_type = Reminder

    def list_reminders(self) -> List[Reminder]:
        return self.list()

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        return self.get(reminder_id)

    def add_reminder(self, task_id: str, date: datetime) -> Reminder:
        return self.add(Reminder(id=self.next_id(), task_id=task_id, date=date))

    def delete_reminder(self, reminder_id: str) -> bool:
        return self.delete(reminder_id)

    def mark_reminder_sent(self, reminder_id: str) -> bool:
        """Flip sent to True. Returns False if the reminder doesn't exist."""
        reminder = self.get(reminder_id)
        if reminder is None:
            return False
        if reminder.sent:
            return True
        self._replace(Reminder(id=reminder.id, task_id=reminder.task_id, date=reminder.date, sent=True))
        return True

    def upcoming(self, now: Optional[datetime] = None) -> List[Reminder]:
        """Unsent reminders strictly in the future, soonest first."""
        now = now or utc_now()
        pending = [r for r in self._records.values() if not r.sent and r.date > now]
        return sorted(pending, key=lambda r: r.date)

    def due(self, now: Optional[datetime] = None) -> List[Reminder]:
        now = now or utc_now()
        return [r for r in self._records.values() if r.is_due(now)]
