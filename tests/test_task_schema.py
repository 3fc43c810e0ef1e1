"""Tests for task and collection validation (task_engine/schema.py)."""

from __future__ import annotations

import pytest

from taskforest.errors import ValidationError
from taskforest.task_engine.model import Task, TaskStatus, create_empty_task_collection
from taskforest.task_engine.schema import validate_task, validate_task_collection


class TestValidateTask:
    def test_minimal_task(self) -> None:
        task = validate_task({"id": "1", "title": "Ship it"})
        assert isinstance(task, Task)
        assert task.status is TaskStatus.PENDING
        assert task.description == ""

    def test_accepts_task_instance(self) -> None:
        task = validate_task(Task(id="3", title="From object", status=TaskStatus.REVIEW))
        assert task.id == "3"
        assert task.status is TaskStatus.REVIEW

    def test_status_alias_normalized(self) -> None:
        task = validate_task({"id": "1", "title": "x", "status": "completed"})
        assert task.status is TaskStatus.DONE

    def test_collects_every_violation(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            validate_task({"id": "1", "title": "", "status": "someday", "priority": "urgent", "type": "chore"})
        errors = excinfo.value.errors
        joined = " ".join(errors)
        assert len(errors) == 4
        for field_name in ("title", "status", "priority", "type"):
            assert field_name in joined

    def test_missing_required_fields(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            validate_task({"description": "no id or title"})
        joined = " ".join(excinfo.value.errors)
        assert "id" in joined
        assert "title" in joined

    def test_wrong_types(self) -> None:
        with pytest.raises(ValidationError):
            validate_task({"id": "1", "title": "x", "dependencies": "2"})
        with pytest.raises(ValidationError):
            validate_task({"id": "1", "title": "x", "complexity": 11})
        with pytest.raises(ValidationError):
            validate_task({"id": "1", "title": "x", "estimatedHours": -1})

    def test_bad_date(self) -> None:
        with pytest.raises(ValidationError, match="dueDate"):
            validate_task({"id": "1", "title": "x", "dueDate": "next tuesday"})

    def test_title_length_limit(self) -> None:
        with pytest.raises(ValidationError):
            validate_task({"id": "1", "title": "x" * 201})

    def test_recurses_into_subtasks(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            validate_task({"id": "1", "title": "parent", "subtasks": [{"id": "1.1", "title": "ok"}, {"id": "1.2"}]})
        assert any(err.startswith("subtasks.1.title") for err in excinfo.value.errors)

    def test_duplicate_ids_in_subtree(self) -> None:
        with pytest.raises(ValidationError, match="duplicate task id '1.1'"):
            validate_task({"id": "1", "title": "p", "subtasks": [
                {"id": "1.1", "title": "a"}, {"id": "1.1", "title": "b"},
            ]})

    def test_unknown_keys_dropped(self) -> None:
        task = validate_task({"id": "1", "title": "x", "color": "blue"})
        assert "color" not in task.to_dict()

    def test_snake_case_keys_accepted(self) -> None:
        task = validate_task({"id": "1", "title": "x", "due_date": "2030-05-01", "task_type": "bug"})
        assert task.due_date == "2030-05-01"
        assert task.task_type.value == "bug"


class TestValidateCollection:
    def test_empty_document_gets_main(self) -> None:
        collection = validate_task_collection({})
        assert "main" in collection.tags

    def test_adds_missing_main(self) -> None:
        collection = validate_task_collection({"tags": {"feature-x": {"name": "Feature X", "tasks": []}}})
        assert set(collection.tags) == {"feature-x", "main"}

    def test_round_trip_of_factory(self) -> None:
        empty = create_empty_task_collection()
        validated = validate_task_collection(empty)
        assert validated.to_dict()["tags"]["main"]["name"] == "Main Tasks"

    def test_aggregates_errors_across_tags(self) -> None:
        doc = {
            "tags": {
                "main": {"name": "Main", "tasks": [{"id": "1", "title": "ok"}, {"id": "2", "status": "bogus"}]},
                "other": {"name": "Other", "tasks": [{"id": "1", "title": "x", "priority": "extreme"}]},
            }
        }
        with pytest.raises(ValidationError) as excinfo:
            validate_task_collection(doc)
        errors = excinfo.value.errors
        assert any(e.startswith("tags.main.tasks.1") for e in errors)
        assert any(e.startswith("tags.other.tasks.0.priority") for e in errors)
        assert str(excinfo.value).startswith("Task collection validation failed")

    def test_duplicate_ids_per_tag(self) -> None:
        doc = {"tags": {"main": {"name": "Main", "tasks": [
            {"id": "1", "title": "a", "subtasks": [{"id": "2", "title": "nested"}]},
            {"id": "2", "title": "b"},
        ]}}}
        with pytest.raises(ValidationError) as excinfo:
            validate_task_collection(doc)
        assert excinfo.value.errors == ["tags.main: duplicate task id '2'"]

    def test_same_id_in_different_tags_is_fine(self) -> None:
        doc = {"tags": {
            "main": {"name": "Main", "tasks": [{"id": "1", "title": "a"}]},
            "other": {"name": "Other", "tasks": [{"id": "1", "title": "b"}]},
        }}
        collection = validate_task_collection(doc)
        assert collection.tags["other"].tasks[0].title == "b"
