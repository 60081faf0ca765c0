"""
Task filtering and sorting for the board view.

filter_tasks() is pure: it never touches the input list and keeps the
relative order of the tasks it retains.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .schema import ColumnSet, Contact, ContactRole, Task, TaskPriority

# Assignee filter value meaning "tasks with nobody assigned"
UNASSIGNED = "unassigned"

ASSIGNABLE_ROLES = (ContactRole.COMMITTEE, ContactRole.VOLUNTEER)


@dataclass(frozen=True)
class FilterCriteria:
    """Active board filters. None / empty means "any"."""
    search_query: str = ""
    category_id: Optional[str] = None
    assignee_id: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_from: Optional[datetime] = None
    due_to: Optional[datetime] = None

    def update(self, **changes) -> "FilterCriteria":
        return replace(self, **changes)

    @classmethod
    def cleared(cls) -> "FilterCriteria":
        return cls()


def has_active_filters(criteria: FilterCriteria) -> bool:
    return criteria != FilterCriteria.cleared()


def _matches(task: Task, criteria: FilterCriteria, query: str) -> bool:
    if query and query not in task.title.lower() and query not in task.description.lower():
        return False

    if criteria.category_id and task.category_id != criteria.category_id:
        return False

    if criteria.assignee_id:
        if criteria.assignee_id == UNASSIGNED:
            if task.assignee_ids:
                return False
        elif criteria.assignee_id not in task.assignee_ids:
            return False

    if criteria.status and task.status != criteria.status:
        return False

    if criteria.priority and task.priority != criteria.priority:
        return False

    if criteria.due_from or criteria.due_to:
        if task.due_date is None:
            return False
        if criteria.due_from and task.due_date < criteria.due_from:
            return False
        if criteria.due_to and task.due_date > criteria.due_to:
            return False

    return True


def filter_tasks(tasks: Sequence[Task], criteria: Optional[FilterCriteria] = None) -> List[Task]:
    """Tasks matching every active criterion, in input order."""
    criteria = criteria or FilterCriteria()
    query = criteria.search_query.lower()
    return [task for task in tasks if _matches(task, criteria, query)]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Sorting
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

SORT_FIELDS = ("due_date", "priority", "status", "title", "created_at")


@dataclass(frozen=True)
class SortConfig:
    field: str = "due_date"
    direction: str = "asc"  # "asc" | "desc"

    def __post_init__(self):
        if self.field not in SORT_FIELDS:
            raise ValueError(f"Cannot sort by '{self.field}'. Options: {SORT_FIELDS}")
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Invalid sort direction: {self.direction}")


def sort_tasks(
    tasks: Iterable[Task],
    config: SortConfig = SortConfig(),
    columns: Optional[ColumnSet] = None,
) -> List[Task]:
    """Stable sort. Tasks without a due date always come last."""
    columns = columns or ColumnSet()
    reverse = config.direction == "desc"
    tasks = list(tasks)

    if config.field == "due_date":
        dated = [t for t in tasks if t.due_date is not None]
        undated = [t for t in tasks if t.due_date is None]
        return sorted(dated, key=lambda t: t.due_date, reverse=reverse) + undated

    keys = {
        "priority": lambda t: t.priority.rank,
        "status": lambda t: columns.index(t.status),
        "title": lambda t: t.title.lower(),
        "created_at": lambda t: t.created_at,
    }
    return sorted(tasks, key=keys[config.field], reverse=reverse)


def assignable_contacts(
    contacts: Iterable[Contact],
    roles: Iterable[ContactRole] = ASSIGNABLE_ROLES,
) -> List[Contact]:
    """Contacts offered in the assignee filter."""
    roles = set(roles)
    return [c for c in contacts if c.role in roles]
