"""Tests for logging_utils module."""

from __future__ import annotations

import io
import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from loguru import logger

from taskforest.logging_utils import configure_logging, pretty
from taskforest.task_engine.manager import TaskManager


@pytest.fixture
def stream() -> Iterator[io.StringIO]:
    buffer = io.StringIO()
    handler_id = configure_logging("INFO", sink=buffer)
    yield buffer
    logger.remove(handler_id)


class TestConfigureLogging:
    def test_filters_below_level(self, stream: io.StringIO) -> None:
        logger.debug("hidden detail")
        logger.info("visible {}", "message")
        output = stream.getvalue()
        assert "hidden detail" not in output
        assert "visible message" in output
        assert "INFO" in output

    def test_level_is_case_insensitive(self) -> None:
        buffer = io.StringIO()
        handler_id = configure_logging("debug", sink=buffer)
        try:
            logger.debug("now shown")
        finally:
            logger.remove(handler_id)
        assert "now shown" in buffer.getvalue()

    def test_manager_logs_mutations(self, stream: io.StringIO, tmp_path: Path) -> None:
        tm = TaskManager(tmp_path)
        tm.initialize()
        tm.create_task({"title": "Observable"})
        output = stream.getvalue()
        assert "Initialized empty task collection" in output
        assert "Created task 1 in 'main': Observable" in output

    def test_from_project_applies_config_level(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        state = tmp_path / ".taskforest"
        state.mkdir()
        (state / "config.yaml").write_text("logging:\n  level: warning\n", encoding="utf-8")
        levels: list[str] = []
        monkeypatch.setattr("taskforest.task_engine.manager.configure_logging", levels.append)
        TaskManager.from_project(tmp_path)
        assert levels == []
        TaskManager.from_project(tmp_path, configure_logs=True)
        assert levels == ["WARNING"]


class TestPretty:
    def test_dict(self) -> None:
        data = {"errors": ["a", "b"], "count": 2}
        assert pretty(data) == json.dumps(data, indent=2)

    def test_indent(self) -> None:
        assert pretty([1], indent=0) == "[\n1\n]"

    def test_non_serializable_uses_str(self) -> None:
        assert pretty({"path": Path("x")}) == json.dumps({"path": "x"}, indent=2)

    def test_circular_falls_back(self) -> None:
        data: list = []
        data.append(data)
        assert pretty(data) == str(data)
