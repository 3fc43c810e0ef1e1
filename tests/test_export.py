"""Tests for task export (task_engine/export.py)."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

import pytest

from taskforest.errors import NotFoundError, ValidationError
from taskforest.task_engine.export import CSV_HEADER, export_collection
from taskforest.task_engine.manager import TaskManager


@pytest.fixture
def tm(tmp_path: Path) -> TaskManager:
    manager = TaskManager(tmp_path)
    manager.initialize()
    manager.create_task({"title": "Hello, world", "description": "Greets", "dueDate": "2030-06-01T09:00:00Z",
                         "assignee": {"type": "human", "id": "u1", "name": "Robin"}})
    manager.create_task({"title": "Plain", "priority": "high", "status": "done", "dependencies": ["1"]})
    manager.create_task({"title": 'Quote "me"', "details": "Edge case"})
    return manager


class TestCsv:
    def test_header_and_rows(self, tm: TaskManager) -> None:
        text = tm.export_tasks("csv")
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == CSV_HEADER
        assert len(rows) == 4
        assert rows[1][:2] == ["1", "Hello, world"]
        assert rows[1][6] == "Robin"
        assert rows[1][8] == "2030-06-01"
        assert rows[3][1] == 'Quote "me"'
        assert '"Hello, world"' in text

    def test_includes_subtasks(self, tm: TaskManager) -> None:
        tm.create_subtask("1", {"title": "Nested"})
        rows = list(csv.reader(io.StringIO(tm.export_tasks("csv"))))
        assert [r[0] for r in rows[1:]] == ["1", "1.1", "2", "3"]


class TestMarkdown:
    def test_grouped_by_status(self, tm: TaskManager) -> None:
        text = tm.export_tasks("markdown")
        assert text.startswith("# Tasks - main\n")
        assert "## Pending (2)" in text
        assert "## Done (1)" in text
        assert "## Blocked" not in text
        assert text.index("## Pending") < text.index("## Done")
        assert "### 1: Hello, world" in text
        assert "**Priority:** high | **Type:** feature" in text
        assert "**Assignee:** Robin" in text
        assert "**Dependencies:** 1" in text
        assert "**Details:** Edge case" in text

    def test_md_alias(self, tm: TaskManager) -> None:
        assert tm.export_tasks("md") == tm.export_tasks("markdown")


class TestJson:
    def test_whole_collection(self, tm: TaskManager) -> None:
        data = json.loads(tm.export_tasks())
        assert set(data) >= {"tags", "metadata"}
        assert [t["id"] for t in data["tags"]["main"]["tasks"]] == ["1", "2", "3"]

    def test_single_tag(self, tm: TaskManager) -> None:
        tm.create_tag("empty")
        data = json.loads(tm.export_tasks("json", tag="empty"))
        assert list(data) == ["empty"]
        assert data["empty"]["tasks"] == []


class TestErrors:
    def test_unsupported_format(self, tm: TaskManager) -> None:
        with pytest.raises(ValidationError, match="unsupported export format"):
            tm.export_tasks("xml")

    def test_unknown_tag(self, tm: TaskManager) -> None:
        with pytest.raises(NotFoundError):
            tm.export_tasks("csv", tag="missing")

    def test_tabular_formats_need_tag(self, tm: TaskManager) -> None:
        with pytest.raises(ValidationError, match="required"):
            export_collection(tm.collection, "csv")
