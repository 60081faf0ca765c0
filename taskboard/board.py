"""
Kanban status machine and board view model.

Any column-to-column move is allowed; the only guard is that the target
status is one of the board's columns. A failed move never raises into the
caller's event handler: it comes back as a MoveResult.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .filters import FilterCriteria, filter_tasks
from .schema import ColumnSet, Task
from .store import StoreUnavailable, TaskStore

logger = logging.getLogger(__name__)


class MoveError(Enum):
    UNKNOWN_TASK = "unknown_task"
    INVALID_STATUS = "invalid_status"
    STORE_UNAVAILABLE = "store_unavailable"


class InvalidTransition(Exception):
    """Raised by MoveResult.raise_for_error() for a failed move."""

    def __init__(self, result: "MoveResult"):
        super().__init__(result.message)
        self.result = result


@dataclass(frozen=True)
class MoveResult:
    task_id: str
    status: str
    ok: bool
    error: Optional[MoveError] = None
    message: str = ""

    def raise_for_error(self) -> None:
        if not self.ok:
            raise InvalidTransition(self)


def move_task(tasks: TaskStore, task_id: str, new_status: str) -> MoveResult:
    """Put one task in a new column. No other task is touched."""
    if new_status not in tasks.columns:
        logger.warning(f"Rejected move of {task_id}: '{new_status}' is not a column")
        return MoveResult(
            task_id, new_status, ok=False, error=MoveError.INVALID_STATUS,
            message=f"Invalid status '{new_status}'. Columns: {', '.join(tasks.columns)}",
        )

    task = tasks.get_task(task_id)
    if task is None:
        logger.info(f"Move ignored: task {task_id} not found")
        return MoveResult(
            task_id, new_status, ok=False, error=MoveError.UNKNOWN_TASK,
            message=f"Task {task_id} not found",
        )

    if task.status == new_status:
        return MoveResult(task_id, new_status, ok=True, message="Already in column")

    try:
        tasks.set_task_status(task_id, new_status)
    except StoreUnavailable as e:
        logger.warning(f"Move of {task_id} failed: {e}")
        return MoveResult(
            task_id, new_status, ok=False, error=MoveError.STORE_UNAVAILABLE, message=str(e),
        )

    logger.info(f"Moved {task_id}: {task.status} → {new_status}")
    return MoveResult(task_id, new_status, ok=True)


class KanbanBoard:
    """
    Filtered board view over a task store.

    filtered_tasks is derived from the store contents and the criteria and
    is recomputed lazily after either changes.
    """

    def __init__(self, tasks: TaskStore, criteria: Optional[FilterCriteria] = None):
        self.tasks = tasks
        self.columns: ColumnSet = tasks.columns
        self._criteria = criteria or FilterCriteria()
        self._filtered: Optional[List[Task]] = None
        self._unsubscribe = tasks.subscribe(self._on_store_change)

    def _on_store_change(self, _store) -> None:
        self._filtered = None

    # ── Criteria ──────────────────────────────

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @criteria.setter
    def criteria(self, value: FilterCriteria) -> None:
        self._criteria = value
        self._filtered = None

    def update_criteria(self, **changes) -> FilterCriteria:
        self.criteria = self._criteria.update(**changes)
        return self._criteria

    def clear_filters(self) -> None:
        self.criteria = FilterCriteria.cleared()

    # ── Derived view ──────────────────────────

    @property
    def filtered_tasks(self) -> List[Task]:
        if self._filtered is None:
            self._filtered = filter_tasks(self.tasks.list_tasks(), self._criteria)
        return list(self._filtered)

    def columns_view(self) -> "OrderedDict[str, List[Task]]":
        """Filtered tasks grouped by column, in column order."""
        grouped: Dict[str, List[Task]] = OrderedDict((name, []) for name in self.columns)
        for task in self.filtered_tasks:
            # Statuses outside the column set (legacy rows) trail the board
            grouped.setdefault(task.status, []).append(task)
        return grouped

    def counts(self) -> Tuple[int, int]:
        """(shown, total) task counts."""
        return len(self.filtered_tasks), len(self.tasks)

    # ── Drop handling ─────────────────────────

    def on_task_move(self, task_id: str, new_status: str) -> MoveResult:
        return move_task(self.tasks, task_id, new_status)

    def toggle_done(self, task_id: str) -> MoveResult:
        """Move a task to the last column, or back to the first if already there."""
        task = self.tasks.get_task(task_id)
        if task is None:
            return move_task(self.tasks, task_id, self.columns.last)
        target = self.columns.first if task.status == self.columns.last else self.columns.last
        return move_task(self.tasks, task_id, target)

    def close(self) -> None:
        self._unsubscribe()
