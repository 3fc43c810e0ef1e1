"""Task model for the tag-namespaced task forest.

This module defines the in-memory shapes (task, tag, collection), the status
state machine, ID generation and the factories that fill in defaults.  Strict
validation lives in :mod:`taskforest.task_engine.schema`; ``from_dict`` here is
lenient and only used for data that has already been validated.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from ..constants import (
    DEFAULT_TAG,
    DEFAULT_TAG_DESCRIPTION,
    DEFAULT_TAG_NAME,
    SCHEMA_VERSION,
)
from ..errors import InvalidTransitionError
from ..utils import _coerce_int, _now_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Canonical task status vocabulary."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    REVIEW = "review"
    DONE = "done"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Priority level, ``critical`` is most urgent."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3, "critical": 4}[self.value]


class TaskType(str, Enum):
    """The kind of work a task represents."""

    FEATURE = "feature"
    BUG = "bug"
    TASK = "task"
    EPIC = "epic"
    ENHANCEMENT = "enhancement"
    DOCUMENTATION = "documentation"
    INFRASTRUCTURE = "infrastructure"
    RESEARCH = "research"
    MAINTENANCE = "maintenance"
    REFACTOR = "refactor"


class AssigneeType(str, Enum):
    AGENT = "agent"
    HUMAN = "human"
    TEAM = "team"


# Status names used by external tool adapters, mapped onto the canonical set.
STATUS_ALIASES: dict[str, TaskStatus] = {
    "completed": TaskStatus.DONE,
    "complete": TaskStatus.DONE,
    "in_progress": TaskStatus.IN_PROGRESS,
    "in_review": TaskStatus.REVIEW,
    "todo": TaskStatus.PENDING,
}


def normalize_status(value: Any) -> Any:
    """Map an adapter status alias onto the canonical vocabulary.

    Unknown values are returned unchanged so that validation can report them.
    """
    if isinstance(value, TaskStatus):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in STATUS_ALIASES:
            return STATUS_ALIASES[raw]
        try:
            return TaskStatus(raw)
        except ValueError:
            return value
    return value


# ---------------------------------------------------------------------------
# Status state machine
# ---------------------------------------------------------------------------

_VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.DEFERRED, TaskStatus.CANCELLED}
    ),
    TaskStatus.IN_PROGRESS: frozenset(
        {TaskStatus.REVIEW, TaskStatus.BLOCKED, TaskStatus.DONE, TaskStatus.CANCELLED}
    ),
    TaskStatus.REVIEW: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DONE}),
    TaskStatus.BLOCKED: frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.DEFERRED: frozenset({TaskStatus.PENDING, TaskStatus.CANCELLED}),
    TaskStatus.DONE: frozenset({TaskStatus.IN_PROGRESS}),  # allow reopening
    TaskStatus.CANCELLED: frozenset(),
}


def is_valid_status_transition(from_status: Any, to_status: Any) -> bool:
    src = normalize_status(from_status)
    dst = normalize_status(to_status)
    if not isinstance(src, TaskStatus) or not isinstance(dst, TaskStatus):
        return False
    return dst in _VALID_TRANSITIONS[src]


def assert_status_transition(from_status: Any, to_status: Any, task_id: Optional[str] = None) -> None:
    """Raise :class:`InvalidTransitionError` unless *from_status* -> *to_status* is allowed."""
    if not is_valid_status_transition(from_status, to_status):
        raise InvalidTransitionError(
            getattr(from_status, "value", str(from_status)),
            getattr(to_status, "value", str(to_status)),
            task_id=task_id,
        )


# ---------------------------------------------------------------------------
# Key mapping between Python attributes and the persisted document
# ---------------------------------------------------------------------------

FIELD_ALIASES: dict[str, str] = {
    "task_type": "type",
    "test_strategy": "testStrategy",
    "acceptance_criteria": "acceptanceCriteria",
    "estimated_hours": "estimatedHours",
    "actual_hours": "actualHours",
    "blocked_by": "blockedBy",
    "due_date": "dueDate",
    "start_date": "startDate",
    "completed_date": "completedDate",
}


def to_document_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Rename snake_case attribute keys to their persisted camelCase names."""
    return {FIELD_ALIASES.get(k, k): v for k, v in data.items()}


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class Assignee:
    id: Optional[str] = None
    name: Optional[str] = None
    type: AssigneeType = AssigneeType.AGENT

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.id is not None:
            data["id"] = self.id
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Assignee":
        try:
            kind = AssigneeType(str(data.get("type") or "agent"))
        except ValueError:
            kind = AssigneeType.AGENT
        return cls(id=data.get("id"), name=data.get("name"), type=kind)

    @property
    def display_name(self) -> str:
        return self.name or self.id or ""


@dataclass
class TaskMetadata:
    created: str = field(default_factory=_now_iso)
    modified: str = field(default_factory=_now_iso)
    version: str = SCHEMA_VERSION
    source: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "created": self.created,
            "modified": self.modified,
            "version": self.version,
        }
        if self.source is not None:
            data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "TaskMetadata":
        data = data or {}
        now = _now_iso()
        return cls(
            created=str(data.get("created") or now),
            modified=str(data.get("modified") or now),
            version=str(data.get("version") or SCHEMA_VERSION),
            source=data.get("source"),
        )


@dataclass
class Task:
    """A node in a tag's task forest.

    Subtasks are owned by containment (``subtasks``); dependency edges are a
    separate flat relation of task IDs (``dependencies`` and its mirrors).
    """

    # Identity
    id: str = ""
    title: str = ""
    description: str = ""
    details: Optional[str] = None
    notes: Optional[str] = None
    test_strategy: Optional[str] = None

    # Classification
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    task_type: TaskType = TaskType.FEATURE
    complexity: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)

    # Assignment and effort
    assignee: Optional[Assignee] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None

    # Dependencies (flat ID relation)
    dependencies: list[str] = field(default_factory=list)
    blocked_by: list[str] = field(default_factory=list)
    blocks: list[str] = field(default_factory=list)

    # Hierarchy (containment)
    subtasks: list["Task"] = field(default_factory=list)

    # Dates
    due_date: Optional[str] = None
    start_date: Optional[str] = None
    completed_date: Optional[str] = None

    metadata: TaskMetadata = field(default_factory=TaskMetadata)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase document shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "type": self.task_type.value,
        }
        for key in ("details", "notes", "test_strategy", "complexity"):
            value = getattr(self, key)
            if value is not None:
                data[FIELD_ALIASES.get(key, key)] = value
        if self.assignee is not None:
            data["assignee"] = self.assignee.to_dict()
        for key in ("estimated_hours", "actual_hours"):
            value = getattr(self, key)
            if value is not None:
                data[FIELD_ALIASES[key]] = value
        data["tags"] = list(self.tags)
        data["labels"] = list(self.labels)
        data["acceptanceCriteria"] = list(self.acceptance_criteria)
        data["dependencies"] = list(self.dependencies)
        data["blockedBy"] = list(self.blocked_by)
        data["blocks"] = list(self.blocks)
        for key in ("due_date", "start_date", "completed_date"):
            value = getattr(self, key)
            if value is not None:
                data[FIELD_ALIASES[key]] = value
        data["subtasks"] = [s.to_dict() for s in self.subtasks]
        data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing enums gracefully."""
        d = to_document_keys(dict(data))

        def _enum(enum_cls: type[Enum], key: str, default: Enum) -> Any:
            raw = d.get(key)
            if raw is None:
                return default
            if isinstance(raw, enum_cls):
                return raw
            if enum_cls is TaskStatus:
                raw = normalize_status(raw)
                return raw if isinstance(raw, TaskStatus) else default
            try:
                return enum_cls(str(raw))
            except ValueError:
                return default

        assignee_raw = d.get("assignee")
        assignee: Optional[Assignee] = None
        if isinstance(assignee_raw, Assignee):
            assignee = assignee_raw
        elif isinstance(assignee_raw, dict):
            assignee = Assignee.from_dict(assignee_raw)

        complexity = d.get("complexity")
        return cls(
            id=str(d.get("id") or ""),
            title=str(d.get("title") or ""),
            description=str(d.get("description") or ""),
            details=d.get("details"),
            notes=d.get("notes"),
            test_strategy=d.get("testStrategy"),
            status=_enum(TaskStatus, "status", TaskStatus.PENDING),
            priority=_enum(TaskPriority, "priority", TaskPriority.MEDIUM),
            task_type=_enum(TaskType, "type", TaskType.FEATURE),
            complexity=_coerce_int(complexity) if complexity is not None else None,
            tags=list(d.get("tags") or []),
            labels=list(d.get("labels") or []),
            acceptance_criteria=list(d.get("acceptanceCriteria") or []),
            assignee=assignee,
            estimated_hours=d.get("estimatedHours"),
            actual_hours=d.get("actualHours"),
            dependencies=[str(x) for x in d.get("dependencies") or []],
            blocked_by=[str(x) for x in d.get("blockedBy") or []],
            blocks=[str(x) for x in d.get("blocks") or []],
            subtasks=[
                s if isinstance(s, Task) else cls.from_dict(s)
                for s in d.get("subtasks") or []
            ],
            due_date=d.get("dueDate"),
            start_date=d.get("startDate"),
            completed_date=d.get("completedDate"),
            metadata=(
                d["metadata"] if isinstance(d.get("metadata"), TaskMetadata)
                else TaskMetadata.from_dict(d.get("metadata"))
            ),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Bump ``metadata.modified`` to now."""
        self.metadata.modified = _now_iso()

    def walk(self) -> Iterator["Task"]:
        """Yield this task and every descendant, depth-first."""
        yield self
        for sub in self.subtasks:
            yield from sub.walk()

    @property
    def is_complete(self) -> bool:
        """True for statuses that satisfy a dependency."""
        return self.status in (TaskStatus.DONE, TaskStatus.CANCELLED)


@dataclass
class TagMetadata:
    created: str = field(default_factory=_now_iso)
    modified: str = field(default_factory=_now_iso)
    task_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"created": self.created, "modified": self.modified, "taskCount": self.task_count}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "TagMetadata":
        data = data or {}
        now = _now_iso()
        return cls(
            created=str(data.get("created") or now),
            modified=str(data.get("modified") or now),
            task_count=_coerce_int(data.get("taskCount"), 0),
        )


@dataclass
class Tag:
    """A named namespace holding an independent task forest."""

    name: str
    description: str = ""
    tasks: list[Task] = field(default_factory=list)
    metadata: TagMetadata = field(default_factory=TagMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "tasks": [t.to_dict() for t in self.tasks],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tag":
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            tasks=[t if isinstance(t, Task) else Task.from_dict(t) for t in data.get("tasks") or []],
            metadata=TagMetadata.from_dict(data.get("metadata")),
        )


@dataclass
class CollectionMetadata:
    version: str = SCHEMA_VERSION
    created: str = field(default_factory=_now_iso)
    modified: str = field(default_factory=_now_iso)
    total_tasks: int = 0
    max_depth: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "created": self.created,
            "modified": self.modified,
            "totalTasks": self.total_tasks,
            "maxDepth": self.max_depth,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "CollectionMetadata":
        data = data or {}
        now = _now_iso()
        return cls(
            version=str(data.get("version") or SCHEMA_VERSION),
            created=str(data.get("created") or now),
            modified=str(data.get("modified") or now),
            total_tasks=_coerce_int(data.get("totalTasks"), 0),
            max_depth=_coerce_int(data.get("maxDepth"), 0),
        )


@dataclass
class TaskCollection:
    """The whole persisted document: every tag plus aggregate metadata."""

    tags: dict[str, Tag] = field(default_factory=dict)
    metadata: CollectionMetadata = field(default_factory=CollectionMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "tags": {key: tag.to_dict() for key, tag in self.tags.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskCollection":
        tags = {
            str(key): tag if isinstance(tag, Tag) else Tag.from_dict(tag)
            for key, tag in (data.get("tags") or {}).items()
        }
        return cls(tags=tags, metadata=CollectionMetadata.from_dict(data.get("metadata")))

    def copy(self) -> "TaskCollection":
        return copy.deepcopy(self)

    def refresh_counts(self) -> None:
        """Recompute per-tag ``taskCount`` plus ``totalTasks`` and ``maxDepth``."""
        total = 0
        deepest = 0
        for tag in self.tags.values():
            count = count_tasks(tag.tasks)
            tag.metadata.task_count = count
            total += count
            deepest = max(deepest, max_depth(tag.tasks))
        self.metadata.total_tasks = total
        self.metadata.max_depth = deepest


# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------

def iter_tasks(tasks: Iterable[Task]) -> Iterator[Task]:
    """Depth-first pre-order walk over a forest."""
    for task in tasks:
        yield from task.walk()


def find_task(tasks: Iterable[Task], task_id: str) -> Optional[Task]:
    for task in iter_tasks(tasks):
        if task.id == task_id:
            return task
    return None


def remove_task(tasks: list[Task], task_id: str) -> Optional[Task]:
    """Detach *task_id* from wherever it sits in the forest and return it."""
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return tasks.pop(index)
        removed = remove_task(task.subtasks, task_id)
        if removed is not None:
            task.touch()
            return removed
    return None


def count_tasks(tasks: Iterable[Task]) -> int:
    return sum(1 for _ in iter_tasks(tasks))


def max_depth(tasks: Iterable[Task], current: int = 1) -> int:
    """Depth of the deepest task; an empty forest has depth 0."""
    deepest = 0
    for task in tasks:
        deepest = max(deepest, current, max_depth(task.subtasks, current + 1))
    return deepest


# ---------------------------------------------------------------------------
# IDs and factories
# ---------------------------------------------------------------------------

def generate_task_id(parent_id: Optional[str] = None, existing_ids: Iterable[str] = ()) -> str:
    """Return the smallest unused ID at the requested level.

    Top-level IDs are positive integers (``"1"``, ``"2"``, ...); subtask IDs
    extend the parent path (``"5.1"``, ``"5.2"``, ...).
    """
    taken = set(existing_ids)
    prefix = f"{parent_id}." if parent_id else ""
    n = 1
    while f"{prefix}{n}" in taken:
        n += 1
    return f"{prefix}{n}"


def parse_task_id(task_id: str) -> dict[str, Any]:
    """Split a dotted task ID into its hierarchy components."""
    parts = str(task_id).split(".")
    return {
        "parts": parts,
        "depth": len(parts),
        "parent_id": ".".join(parts[:-1]) if len(parts) > 1 else None,
        "root_id": parts[0],
        "leaf_id": parts[-1],
    }


def default_task_dict() -> dict[str, Any]:
    """The default field values of a new task, in document shape."""
    now = _now_iso()
    return {
        "id": "",
        "title": "",
        "description": "",
        "status": TaskStatus.PENDING.value,
        "priority": TaskPriority.MEDIUM.value,
        "type": TaskType.FEATURE.value,
        "tags": [],
        "labels": [],
        "acceptanceCriteria": [],
        "dependencies": [],
        "blockedBy": [],
        "blocks": [],
        "subtasks": [],
        "metadata": {"created": now, "modified": now, "version": SCHEMA_VERSION},
    }


def create_empty_task(partial: Optional[dict[str, Any]] = None, **overrides: Any) -> Task:
    """Return a task with defaults filled in; no ID is assigned."""
    data = default_task_dict()
    data.update(to_document_keys(dict(partial or {})))
    data.update(to_document_keys(overrides))
    return Task.from_dict(data)


def create_empty_tag(name: str, description: str = "") -> Tag:
    return Tag(name=name, description=description)


def create_empty_task_collection() -> TaskCollection:
    """Return a collection holding a single empty ``main`` tag."""
    return TaskCollection(
        tags={DEFAULT_TAG: create_empty_tag(DEFAULT_TAG_NAME, DEFAULT_TAG_DESCRIPTION)},
    )
