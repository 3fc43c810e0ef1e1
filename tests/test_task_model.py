"""Tests for the task model (task_engine/model.py)."""

from __future__ import annotations

import pytest

from taskforest.errors import InvalidTransitionError
from taskforest.task_engine.model import (
    Assignee,
    Task,
    TaskCollection,
    TaskPriority,
    TaskStatus,
    TaskType,
    assert_status_transition,
    create_empty_task,
    create_empty_task_collection,
    find_task,
    generate_task_id,
    is_valid_status_transition,
    iter_tasks,
    max_depth,
    normalize_status,
    parse_task_id,
    remove_task,
)
from taskforest.utils import natural_id_key


def _tree() -> list[Task]:
    return [
        Task(id="1", title="One", subtasks=[
            Task(id="1.1", title="One.one", subtasks=[Task(id="1.1.1", title="Deep")]),
            Task(id="1.2", title="One.two"),
        ]),
        Task(id="2", title="Two"),
    ]


class TestEnums:
    def test_status_values(self) -> None:
        assert [s.value for s in TaskStatus] == [
            "pending", "in-progress", "blocked", "review", "done", "deferred", "cancelled",
        ]

    def test_priority_rank(self) -> None:
        assert TaskPriority.CRITICAL.rank == 4
        assert TaskPriority.HIGH.rank == 3
        assert TaskPriority.MEDIUM.rank == 2
        assert TaskPriority.LOW.rank == 1

    def test_normalize_aliases(self) -> None:
        assert normalize_status("completed") is TaskStatus.DONE
        assert normalize_status("in_progress") is TaskStatus.IN_PROGRESS
        assert normalize_status("todo") is TaskStatus.PENDING
        assert normalize_status("in_review") is TaskStatus.REVIEW
        assert normalize_status("Done") is TaskStatus.DONE

    def test_normalize_unknown_passthrough(self) -> None:
        assert normalize_status("someday") == "someday"


class TestStatusMachine:
    @pytest.mark.parametrize("src,dst", [
        ("pending", "in-progress"),
        ("pending", "deferred"),
        ("in-progress", "review"),
        ("in-progress", "done"),
        ("review", "done"),
        ("blocked", "pending"),
        ("deferred", "pending"),
        ("done", "in-progress"),
    ])
    def test_allowed(self, src: str, dst: str) -> None:
        assert is_valid_status_transition(src, dst)

    @pytest.mark.parametrize("src,dst", [
        ("pending", "done"),
        ("deferred", "done"),
        ("review", "blocked"),
        ("done", "pending"),
        ("cancelled", "pending"),
        ("cancelled", "in-progress"),
    ])
    def test_rejected(self, src: str, dst: str) -> None:
        assert not is_valid_status_transition(src, dst)

    def test_unknown_status_is_rejected(self) -> None:
        assert not is_valid_status_transition("pending", "someday")

    def test_assert_names_pair(self) -> None:
        with pytest.raises(InvalidTransitionError) as excinfo:
            assert_status_transition(TaskStatus.DEFERRED, TaskStatus.DONE, task_id="2")
        err = excinfo.value
        assert err.from_status == "deferred"
        assert err.to_status == "done"
        assert "'2'" in str(err)

    def test_cancelled_is_terminal(self) -> None:
        assert not any(is_valid_status_transition("cancelled", status) for status in TaskStatus)
        assert [s.value for s in TaskStatus if is_valid_status_transition("done", s)] == ["in-progress"]


class TestIds:
    def test_top_level_smallest_unused(self) -> None:
        assert generate_task_id(None, []) == "1"
        assert generate_task_id(None, ["1", "2", "4"]) == "3"

    def test_subtask_ids(self) -> None:
        assert generate_task_id("5", ["5"]) == "5.1"
        assert generate_task_id("5", ["5", "5.1"]) == "5.2"
        assert generate_task_id("5.2", ["5.2", "5.2.1"]) == "5.2.2"

    def test_parse(self) -> None:
        parsed = parse_task_id("5.2.3")
        assert parsed["depth"] == 3
        assert parsed["parent_id"] == "5.2"
        assert parsed["root_id"] == "5"
        assert parsed["leaf_id"] == "3"
        assert parse_task_id("7")["parent_id"] is None

    def test_natural_order(self) -> None:
        ids = ["10", "2", "5.10", "5.2", "1"]
        assert sorted(ids, key=natural_id_key) == ["1", "2", "5.2", "5.10", "10"]


class TestFactories:
    def test_empty_collection_has_main(self) -> None:
        collection = create_empty_task_collection()
        assert list(collection.tags) == ["main"]
        assert collection.tags["main"].tasks == []
        assert collection.metadata.version == "1.0.0"

    def test_empty_task_defaults(self) -> None:
        task = create_empty_task(title="Write docs")
        assert task.id == ""
        assert task.title == "Write docs"
        assert task.status is TaskStatus.PENDING
        assert task.priority is TaskPriority.MEDIUM
        assert task.task_type is TaskType.FEATURE
        assert task.dependencies == [] and task.subtasks == []
        assert task.metadata.created

    def test_empty_task_accepts_partial(self) -> None:
        task = create_empty_task({"priority": "high", "due_date": "2030-01-01"})
        assert task.priority is TaskPriority.HIGH
        assert task.due_date == "2030-01-01"


class TestSerialization:
    def test_to_dict_uses_document_keys(self) -> None:
        task = Task(id="1", title="T", blocked_by=["2"], due_date="2030-01-01",
                    assignee=Assignee(id="a1", name="Ada"))
        data = task.to_dict()
        assert data["blockedBy"] == ["2"]
        assert data["dueDate"] == "2030-01-01"
        assert data["type"] == "feature"
        assert data["assignee"] == {"type": "agent", "id": "a1", "name": "Ada"}
        assert "completedDate" not in data

    def test_round_trip(self) -> None:
        task = Task(id="1", title="T", dependencies=["3"], blocked_by=["3"], subtasks=[Task(id="1.1", title="S")])
        restored = Task.from_dict(task.to_dict())
        assert restored == task

    def test_from_dict_lenient_enums(self) -> None:
        task = Task.from_dict({"id": 4, "title": "x", "status": "completed", "priority": "urgent"})
        assert task.id == "4"
        assert task.status is TaskStatus.DONE
        assert task.priority is TaskPriority.MEDIUM

    def test_collection_refresh_counts(self) -> None:
        collection = create_empty_task_collection()
        collection.tags["main"].tasks = _tree()
        collection.refresh_counts()
        assert collection.tags["main"].metadata.task_count == 5
        assert collection.metadata.total_tasks == 5
        assert collection.metadata.max_depth == 3
        restored = TaskCollection.from_dict(collection.to_dict())
        assert restored.metadata.total_tasks == 5


class TestTreeHelpers:
    def test_iter_is_depth_first(self) -> None:
        assert [t.id for t in iter_tasks(_tree())] == ["1", "1.1", "1.1.1", "1.2", "2"]

    def test_find_nested(self) -> None:
        tree = _tree()
        assert find_task(tree, "1.1.1").title == "Deep"
        assert find_task(tree, "9") is None

    def test_remove_nested(self) -> None:
        tree = _tree()
        removed = remove_task(tree, "1.1")
        assert removed is not None
        assert [t.id for t in removed.walk()] == ["1.1", "1.1.1"]
        assert [t.id for t in iter_tasks(tree)] == ["1", "1.2", "2"]
        assert remove_task(tree, "1.1") is None

    def test_max_depth(self) -> None:
        assert max_depth([]) == 0
        assert max_depth([Task(id="1")]) == 1
        assert max_depth(_tree()) == 3
