"""Tests for the file layer (task_engine/store.py)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from taskforest.errors import PersistenceError
from taskforest.task_engine.store import TaskStore


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    d = tmp_path / ".taskforest"
    d.mkdir()
    return d


class TestTaskStore:
    def test_missing_file_loads_none(self, data_dir: Path) -> None:
        store = TaskStore(data_dir)
        assert not store.exists()
        assert store.load_raw() is None

    def test_save_and_load(self, data_dir: Path) -> None:
        store = TaskStore(data_dir)
        store.save_raw({"tags": {"main": {"name": "Main", "tasks": []}}})
        assert store.exists()
        assert store.load_raw() == {"tags": {"main": {"name": "Main", "tasks": []}}}
        assert not list(data_dir.glob("*.tmp"))

    def test_first_save_makes_no_backup(self, data_dir: Path) -> None:
        store = TaskStore(data_dir)
        store.save_raw({"n": 1})
        assert store.list_backups() == []

    def test_backup_holds_previous_content(self, data_dir: Path) -> None:
        store = TaskStore(data_dir)
        store.save_raw({"n": 1})
        store.save_raw({"n": 2})
        backups = store.list_backups()
        assert len(backups) == 1
        assert json.loads(backups[0].read_text(encoding="utf-8")) == {"n": 1}
        assert backups[0].parent == data_dir / "backups"

    def test_prunes_oldest_backups(self, data_dir: Path) -> None:
        store = TaskStore(data_dir, backup_limit=3)
        for n in range(6):
            store.save_raw({"n": n})
        backups = store.list_backups()
        assert len(backups) == 3
        contents = [json.loads(p.read_text(encoding="utf-8"))["n"] for p in backups]
        assert contents == [4, 3, 2]

    def test_default_limit_is_ten(self, data_dir: Path) -> None:
        store = TaskStore(data_dir)
        for n in range(13):
            store.save_raw({"n": n})
        assert len(store.list_backups()) == 10

    def test_zero_limit_disables_backups(self, data_dir: Path) -> None:
        store = TaskStore(data_dir, backup_limit=0)
        store.save_raw({"n": 1})
        store.save_raw({"n": 2})
        assert store.list_backups() == []
        assert not (data_dir / "backups").exists()

    def test_corrupt_file_raises(self, data_dir: Path) -> None:
        (data_dir / "tasks.json").write_text("{not json", encoding="utf-8")
        store = TaskStore(data_dir)
        with pytest.raises(PersistenceError, match="JSONDecodeError"):
            store.load_raw()

    def test_non_object_document_raises(self, data_dir: Path) -> None:
        (data_dir / "tasks.json").write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(PersistenceError, match="expected object"):
            TaskStore(data_dir).load_raw()

    def test_yaml_store(self, data_dir: Path) -> None:
        store = TaskStore(data_dir, tasks_file="tasks.yaml")
        store.save_raw({"tags": {"main": {"name": "Main"}}})
        store.save_raw({"tags": {"main": {"name": "Main", "description": "second"}}})
        raw = yaml.safe_load((data_dir / "tasks.yaml").read_text(encoding="utf-8"))
        assert raw["tags"]["main"]["description"] == "second"
        assert store.list_backups()[0].suffix == ".yaml"

    def test_write_failure_raises_persistence_error(self, data_dir: Path) -> None:
        store = TaskStore(data_dir)
        with pytest.raises(PersistenceError):
            store.save_raw({"bad": {1, 2}})
        assert not list(data_dir.glob("*.tmp"))
        assert not store.exists()
