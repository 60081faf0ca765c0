"""
Tests for the Kanban status machine and board view model.
"""
import pytest

from taskboard.board import InvalidTransition, KanbanBoard, MoveError, move_task
from taskboard.filters import UNASSIGNED, FilterCriteria
from taskboard.schema import ColumnSet
from taskboard.store import MemoryBackend, TaskStore


@pytest.fixture
def two_todo(tasks):
    first = tasks.add_task("Buy chairs")
    second = tasks.add_task("Order tents")
    return first, second


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# move_task
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMoveTask:

    def test_only_named_task_changes(self, tasks, two_todo):
        first, second = two_todo
        result = move_task(tasks, first.id, "done")
        assert result.ok
        assert tasks.get_task(first.id).status == "done"
        assert tasks.get_task(second.id).status == "todo"
        assert tasks.get_task(second.id) == second

    def test_move_bumps_updated_at(self, tasks, two_todo):
        first, _ = two_todo
        move_task(tasks, first.id, "in_progress")
        assert tasks.get_task(first.id).updated_at >= first.updated_at

    def test_any_column_to_any_column(self, tasks, two_todo):
        first, _ = two_todo
        assert move_task(tasks, first.id, "done").ok
        assert move_task(tasks, first.id, "todo").ok
        assert move_task(tasks, first.id, "in_progress").ok
        assert tasks.get_task(first.id).status == "in_progress"

    def test_single_notification_per_move(self, tasks, two_todo):
        first, _ = two_todo
        seen = []
        tasks.subscribe(lambda store: seen.append(store.get_task(first.id).status))
        move_task(tasks, first.id, "done")
        assert seen == ["done"]

    def test_unknown_task_is_noop(self, tasks, two_todo):
        before = tasks.list_tasks()
        result = move_task(tasks, "TSK-999", "done")
        assert not result.ok
        assert result.error == MoveError.UNKNOWN_TASK
        assert tasks.list_tasks() == before

    def test_invalid_status_rejected(self, tasks, two_todo):
        first, _ = two_todo
        result = move_task(tasks, first.id, "archived")
        assert not result.ok
        assert result.error == MoveError.INVALID_STATUS
        assert tasks.get_task(first.id).status == "todo"

    def test_same_column_does_not_notify(self, tasks, two_todo):
        first, _ = two_todo
        seen = []
        tasks.subscribe(seen.append)
        result = move_task(tasks, first.id, "todo")
        assert result.ok
        assert seen == []

    def test_store_unavailable_reports_failure(self, backend, tasks, two_todo):
        first, _ = two_todo
        backend.fail_saves = True
        result = move_task(tasks, first.id, "done")
        assert result.error == MoveError.STORE_UNAVAILABLE
        assert tasks.get_task(first.id).status == "todo"

    def test_raise_for_error(self, tasks):
        result = move_task(tasks, "TSK-404", "done")
        with pytest.raises(InvalidTransition) as exc:
            result.raise_for_error()
        assert exc.value.result is result
        move_task(tasks, tasks.add_task("x").id, "done").raise_for_error()

    def test_custom_columns(self):
        store = TaskStore(columns=ColumnSet(["backlog", "doing", "review", "shipped"]))
        task = store.add_task("Sponsor banner")
        assert task.status == "backlog"
        assert move_task(store, task.id, "review").ok
        assert move_task(store, task.id, "done").error == MoveError.INVALID_STATUS


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# KanbanBoard
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestKanbanBoard:

    def test_filtered_tasks_follow_store_changes(self, tasks):
        board = KanbanBoard(tasks)
        assert board.filtered_tasks == []
        task = tasks.add_task("Buy chairs")
        assert board.filtered_tasks == [task]
        tasks.delete_task(task.id)
        assert board.filtered_tasks == []

    def test_filtered_tasks_follow_criteria(self, tasks):
        chairs = tasks.add_task("Buy chairs")
        tents = tasks.add_task("Order tents", assignee_ids=["CON-001"])
        board = KanbanBoard(tasks)
        board.update_criteria(search_query="CHAIRS")
        assert board.filtered_tasks == [chairs]
        board.update_criteria(search_query="", assignee_id=UNASSIGNED)
        assert board.filtered_tasks == [chairs]
        board.criteria = FilterCriteria(assignee_id="CON-001")
        assert board.filtered_tasks == [tents]
        board.clear_filters()
        assert board.filtered_tasks == [chairs, tents]

    def test_columns_view_and_counts(self, tasks):
        a = tasks.add_task("A")
        b = tasks.add_task("B", status="done")
        c = tasks.add_task("C search")
        board = KanbanBoard(tasks)
        assert board.columns_view() == {"todo": [a, c], "in_progress": [], "done": [b]}
        assert list(board.columns_view()) == ["todo", "in_progress", "done"]
        board.update_criteria(search_query="search")
        assert board.counts() == (1, 3)

    def test_on_task_move_updates_view(self, tasks):
        task = tasks.add_task("A")
        board = KanbanBoard(tasks)
        assert board.on_task_move(task.id, "in_progress").ok
        assert [t.id for t in board.columns_view()["in_progress"]] == [task.id]

    def test_unknown_status_trails_columns(self):
        backend = MemoryBackend({"tasks": [
            {"id": "TSK-001", "title": "Old", "status": "archived"},
            {"id": "TSK-002", "title": "New", "status": "todo"},
        ]})
        view = KanbanBoard(TaskStore(backend)).columns_view()
        assert list(view) == ["todo", "in_progress", "done", "archived"]
        assert [t.id for t in view["archived"]] == ["TSK-001"]

    def test_toggle_done(self, tasks):
        task = tasks.add_task("A", status="in_progress")
        board = KanbanBoard(tasks)
        assert board.toggle_done(task.id).status == "done"
        assert board.toggle_done(task.id).status == "todo"
        assert board.toggle_done("TSK-404").error == MoveError.UNKNOWN_TASK

    def test_close_unsubscribes(self, tasks):
        board = KanbanBoard(tasks)
        assert board.filtered_tasks == []
        board.close()
        tasks.add_task("A")
        # Cached view no longer invalidated by the store
        assert board.filtered_tasks == []
