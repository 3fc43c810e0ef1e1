"""Lifecycle events for task and dependency mutations.

Callers opt in by subscribing to an :class:`EventHub`.  Delivery is a side
channel: a failing subscriber is logged and never aborts the mutation that
produced the event.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from loguru import logger

from ..io_utils import _append_event, _read_jsonl_tail
from ..utils import _now_iso

TASKS_LOADED = "tasks.loaded"
TASKS_CREATED = "tasks.created"
TASKS_MIGRATED = "tasks.migrated"
TASKS_SAVED = "tasks.saved"
TASK_CREATED = "task.created"
SUBTASK_CREATED = "subtask.created"
TASK_UPDATED = "task.updated"
TASK_DELETED = "task.deleted"
TAG_CREATED = "tag.created"
TAG_DELETED = "tag.deleted"
TAG_CHANGED = "tag.changed"
DEPENDENCY_ADDED = "dependency.added"
DEPENDENCY_REMOVED = "dependency.removed"


@dataclass
class TaskEvent:
    """A structured lifecycle notification."""

    type: str
    tag: Optional[str] = None
    task_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    ts: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


Subscriber = Callable[[TaskEvent], None]


class EventHub:
    """Fan out :class:`TaskEvent` objects to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[Subscriber, Optional[frozenset[str]]]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber, event_types: Optional[Iterable[str]] = None) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        types = frozenset(event_types) if event_types is not None else None
        entry = (callback, types)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, event: TaskEvent) -> None:
        with self._lock:
            targets = list(self._subscribers)
        for callback, types in targets:
            if types is not None and event.type not in types:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Task event subscriber failed for {}", event.type)


class JsonlEventLog:
    """Subscriber that appends every event to a JSON Lines file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __call__(self, event: TaskEvent) -> None:
        _append_event(self.path, event.to_dict())

    def recent(self, limit: int = 100) -> list[dict[str, Any]]:
        """Return the last *limit* events, or ``[]`` when no log exists yet."""
        return _read_jsonl_tail(self.path, limit)

    def for_task(self, task_id: str, limit: int = 100) -> list[dict[str, Any]]:
        events = self.recent(limit=max(limit * 5, limit))
        filtered = [e for e in events if str(e.get("task_id")) == task_id]
        return filtered[-limit:]
