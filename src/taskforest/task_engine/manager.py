"""Task store: CRUD over the tag-namespaced task forest.

This is the entry point for every task mutation.  It wraps
:class:`TaskStore` with business logic (ID assignment, status transitions,
dependency mirroring, reference purging on delete, legacy migration) and
runs each mutation inside :meth:`TaskManager.transaction`, which serializes
writers and rolls back memory when anything raises.
"""

from __future__ import annotations

import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from loguru import logger

from ..config import get_events_log_path, get_log_level, get_store_config, load_engine_config
from ..constants import (
    DEFAULT_BACKUP_LIMIT,
    DEFAULT_TAG,
    SCHEMA_VERSION,
    STATE_DIR_NAME,
    TASKS_FILE,
)
from ..errors import (
    ConflictError,
    CycleError,
    NotFoundError,
    TaskEngineError,
    ValidationError,
)
from ..logging_utils import configure_logging
from ..utils import _now_iso, _parse_iso, natural_id_key
from . import events as ev
from .events import EventHub, JsonlEventLog, TaskEvent
from .export import export_collection
from .graph import DependencyGraph, find_cycle_through
from .model import (
    Tag,
    Task,
    TaskCollection,
    TaskPriority,
    TaskStatus,
    TaskType,
    assert_status_transition,
    create_empty_tag,
    create_empty_task_collection,
    default_task_dict,
    find_task,
    generate_task_id,
    iter_tasks,
    normalize_status,
    remove_task,
    to_document_keys,
)
from .schema import validate_task, validate_task_collection
from .store import TaskStore

# Keys owned by dedicated operations (create/delete, add/remove dependency).
_PROTECTED_FIELDS = ("id", "subtasks", "dependencies", "blockedBy", "blocks", "metadata")


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def _date_only(value: str) -> bool:
    return len(value.strip()) == 10


@dataclass
class TaskFilters:
    """AND-combined predicates for :meth:`TaskManager.list_tasks`.

    ``created_from`` / ``created_to`` are inclusive; a bare ``YYYY-MM-DD``
    upper bound covers the whole day.
    """

    status: Optional[str] = None
    priority: Optional[str] = None
    task_type: Optional[str] = None
    assignee: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    search: Optional[str] = None
    created_from: Optional[str] = None
    created_to: Optional[str] = None

    @classmethod
    def from_value(cls, value: Union["TaskFilters", dict[str, Any], None]) -> "TaskFilters":
        if value is None:
            return cls()
        if isinstance(value, TaskFilters):
            return value
        data = dict(value)
        if "type" in data:
            data["task_type"] = data.pop("type")
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            raise ValidationError([f"{k}: unknown filter" for k in unknown], subject="Filter")
        tags = data.get("tags")
        if isinstance(tags, str):
            data["tags"] = [tags]
        elif tags is None:
            data["tags"] = []
        return cls(**data)

    def matches(self, task: Task) -> bool:
        if self.status is not None:
            wanted = normalize_status(self.status)
            if getattr(wanted, "value", wanted) != task.status.value:
                return False
        if self.priority is not None and task.priority.value != str(self.priority):
            return False
        if self.task_type is not None and task.task_type.value != str(self.task_type):
            return False
        if self.assignee is not None:
            if task.assignee is None or task.assignee.id != self.assignee:
                return False
        if self.tags and not set(self.tags) & set(task.tags):
            return False
        if self.search:
            needle = self.search.lower()
            haystack = (task.title, task.description, task.details or "", task.notes or "")
            if not any(needle in text.lower() for text in haystack):
                return False
        if self.created_from or self.created_to:
            created = _parse_iso(task.metadata.created)
            if created is None:
                return False
            if self.created_from:
                lower = _parse_iso(self.created_from)
                if lower is not None and created < lower:
                    return False
            if self.created_to:
                upper = _parse_iso(self.created_to)
                if upper is not None:
                    if _date_only(self.created_to):
                        upper = upper + timedelta(days=1)
                        if created >= upper:
                            return False
                    elif created > upper:
                        return False
        return True


# ---------------------------------------------------------------------------
# Legacy migration
# ---------------------------------------------------------------------------

def _stringify_ids(task: dict[str, Any]) -> dict[str, Any]:
    out = dict(task)
    if "id" in out and out["id"] is not None:
        out["id"] = str(out["id"])
    for key in ("dependencies", "blockedBy", "blocks"):
        if isinstance(out.get(key), list):
            out[key] = [str(x) for x in out[key]]
    if isinstance(out.get("subtasks"), list):
        out["subtasks"] = [_stringify_ids(s) if isinstance(s, dict) else s for s in out["subtasks"]]
    return out


def migrate_legacy_document(raw: dict[str, Any]) -> dict[str, Any]:
    """Upgrade a flat ``{"tasks": [...]}`` document into the tagged shape.

    Every task lands under ``main``; integer IDs are converted to strings.
    """
    collection = create_empty_task_collection().to_dict()
    tasks = [_stringify_ids(t) for t in raw.get("tasks") or [] if isinstance(t, dict)]
    collection["tags"][DEFAULT_TAG]["tasks"] = tasks
    return collection


def is_legacy_document(raw: dict[str, Any]) -> bool:
    return "tags" not in raw and isinstance(raw.get("tasks"), list)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class TaskManager:
    """Own the persisted task collection and every mutation on it.

    Parameters
    ----------
    data_dir:
        Directory holding the task file and its ``backups/`` directory.
    tasks_file:
        File name of the collection; a ``.yaml`` suffix selects YAML.
    auto_persist:
        Write the file after every committed mutation.
    backup_limit:
        Number of rotating backups kept next to the task file.
    default_tag:
        Tag used when an operation does not name one.
    event_hub:
        Hub receiving lifecycle events; a private hub is created if omitted.
    events_log:
        Optional JSON Lines file that records every event.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        tasks_file: str = TASKS_FILE,
        auto_persist: bool = True,
        backup_limit: int = DEFAULT_BACKUP_LIMIT,
        default_tag: str = DEFAULT_TAG,
        event_hub: Optional[EventHub] = None,
        events_log: Optional[Path] = None,
    ) -> None:
        self.store = TaskStore(Path(data_dir), tasks_file=tasks_file, backup_limit=backup_limit)
        self.auto_persist = auto_persist
        self.events = event_hub if event_hub is not None else EventHub()
        self.event_log: Optional[JsonlEventLog] = None
        self._unsubscribe_log: Optional[Callable[[], None]] = None
        if events_log is not None:
            self.event_log = JsonlEventLog(Path(events_log))
            self._unsubscribe_log = self.events.subscribe(self.event_log)

        self.revision = 0
        self._lock = threading.RLock()
        self._collection: Optional[TaskCollection] = None
        self._default_tag = default_tag
        self._current_tag = default_tag
        self._depth = 0
        self._pending: list[TaskEvent] = []

    @classmethod
    def from_project(cls, project_dir: Path, *, configure_logs: bool = False, **overrides: Any) -> "TaskManager":
        """Build a manager from ``<project_dir>/.taskforest/config.yaml``.

        Invalid or unreadable config falls back to defaults with a warning.
        With *configure_logs* the loguru sink is reset to the configured
        ``logging.level``.
        """
        project_dir = Path(project_dir).resolve()
        state_dir = project_dir / STATE_DIR_NAME
        config, err = load_engine_config(project_dir)
        if configure_logs:
            configure_logging(get_log_level(config))
        if err:
            logger.warning("Ignoring unreadable engine config: {}", err)
        store_cfg = get_store_config(config)
        options: dict[str, Any] = {
            "tasks_file": store_cfg["tasks_file"],
            "auto_persist": store_cfg["auto_persist"],
            "backup_limit": store_cfg["backup_limit"],
            "default_tag": store_cfg["default_tag"],
            "events_log": get_events_log_path(config, state_dir),
        }
        options.update(overrides)
        return cls(state_dir, **options)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def is_initialized(self) -> bool:
        return self._collection is not None

    def initialize(self) -> TaskCollection:
        """Load the collection from disk, creating or migrating it as needed.

        Raises:
            PersistenceError: the file exists but cannot be parsed.
            ValidationError: the document does not match the schema.
        """
        with self._lock:
            raw = self.store.load_raw()
            if raw is None:
                collection = create_empty_task_collection()
                collection.refresh_counts()
                self._collection = collection
                if self.auto_persist:
                    self._write()
                logger.info("Initialized empty task collection at {}", self.store.path)
                event_type = ev.TASKS_CREATED
            elif is_legacy_document(raw):
                collection = validate_task_collection(migrate_legacy_document(raw))
                collection.refresh_counts()
                self._collection = collection
                if self.auto_persist:
                    self._write()
                logger.info(
                    "Migrated legacy task file {} ({} tasks moved to '{}')",
                    self.store.path,
                    collection.metadata.total_tasks,
                    DEFAULT_TAG,
                )
                event_type = ev.TASKS_MIGRATED
            else:
                collection = validate_task_collection(raw)
                collection.refresh_counts()
                self._collection = collection
                event_type = ev.TASKS_LOADED

            if self._current_tag not in collection.tags:
                logger.warning("Default tag '{}' does not exist; using '{}'", self._current_tag, DEFAULT_TAG)
                self._current_tag = DEFAULT_TAG
            self.revision += 1
            self.emit_event(event_type, total_tasks=collection.metadata.total_tasks)
        return collection

    def close(self) -> None:
        """Detach the event log and every subscriber."""
        if self._unsubscribe_log is not None:
            self._unsubscribe_log()
            self._unsubscribe_log = None
        self.events.clear()

    def _require_collection(self) -> TaskCollection:
        if self._collection is None:
            raise TaskEngineError("TaskManager is not initialized; call initialize() first")
        return self._collection

    @property
    def collection(self) -> TaskCollection:
        return self._require_collection()

    def _write(self) -> None:
        collection = self._require_collection()
        collection.refresh_counts()
        collection.metadata.modified = _now_iso()
        self.store.save_raw(collection.to_dict())

    def persist(self) -> None:
        """Write the collection now, regardless of ``auto_persist``."""
        with self._lock:
            self._write()
            self.emit_event(ev.TASKS_SAVED)

    def emit_event(
        self, event_type: str, tag: Optional[str] = None, task_id: Optional[str] = None, **details: Any
    ) -> None:
        """Publish an event, or queue it until the current transaction commits.

        Queued events are dropped if the transaction rolls back.
        """
        event = TaskEvent(event_type, tag=tag, task_id=task_id, details=details)
        with self._lock:
            if self._depth:
                self._pending.append(event)
                return
        self.events.emit(event)

    @contextmanager
    def transaction(self) -> Iterator[TaskCollection]:
        """Hold the writer lock, yield the live collection, commit on exit.

        On exit the derived counts are recomputed and, with ``auto_persist``,
        the file is rewritten.  If the block (or the write) raises, the
        in-memory collection is restored from a snapshot and no event is
        delivered.  Nested transactions join the outermost one.

        Usage::

            with manager.transaction() as collection:
                collection.tags["main"].tasks.append(task)
        """
        with self._lock:
            collection = self._require_collection()
            if self._depth:
                self._depth += 1
                try:
                    yield collection
                finally:
                    self._depth -= 1
                return

            snapshot = collection.copy()
            self._depth = 1
            self._pending = []
            try:
                yield collection
                collection.refresh_counts()
                collection.metadata.modified = _now_iso()
                if self.auto_persist:
                    self._write()
            except BaseException:
                self._collection = snapshot
                self._pending = []
                self.revision += 1
                raise
            finally:
                self._depth = 0
            self.revision += 1
            delivered, self._pending = self._pending, []

        for event in delivered:
            self.events.emit(event)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    @property
    def current_tag(self) -> str:
        return self._current_tag

    def resolve_tag(self, tag: Optional[str] = None) -> str:
        """Return the tag key an operation targets, checking that it exists."""
        key = tag or self._current_tag
        if key not in self._require_collection().tags:
            raise NotFoundError(f"Tag '{key}' not found", tag=key)
        return key

    def get_tag(self, tag: Optional[str] = None) -> Tag:
        return self._require_collection().tags[self.resolve_tag(tag)]

    def set_current_tag(self, tag: str) -> str:
        with self._lock:
            self.resolve_tag(tag)
            previous, self._current_tag = self._current_tag, tag
            if previous != tag:
                logger.info("Switched current tag from '{}' to '{}'", previous, tag)
                self.emit_event(ev.TAG_CHANGED, tag=tag, previous=previous)
        return tag

    def create_tag(self, tag: str, description: str = "", *, name: Optional[str] = None) -> Tag:
        key = (tag or "").strip()
        if not key:
            raise ValidationError(["tag: must not be empty"], subject="Tag")
        with self.transaction() as collection:
            if key in collection.tags:
                raise ConflictError(f"Tag '{key}' already exists")
            created = create_empty_tag(name or key, description)
            collection.tags[key] = created
            self.emit_event(ev.TAG_CREATED, tag=key, description=description)
        logger.info("Created tag '{}'", key)
        return created

    def delete_tag(self, tag: str) -> Tag:
        """Delete a tag and its tasks; the active tag falls back to ``main``."""
        if tag == DEFAULT_TAG:
            raise ConflictError(f"The '{DEFAULT_TAG}' tag cannot be deleted")
        switched = False
        with self.transaction() as collection:
            if tag not in collection.tags:
                raise NotFoundError(f"Tag '{tag}' not found", tag=tag)
            removed = collection.tags.pop(tag)
            self.emit_event(ev.TAG_DELETED, tag=tag, task_count=removed.metadata.task_count)
            if self._current_tag == tag:
                self._current_tag = DEFAULT_TAG
                switched = True
                self.emit_event(ev.TAG_CHANGED, tag=DEFAULT_TAG, previous=tag)
        logger.info("Deleted tag '{}'{}", tag, f"; current tag reset to '{DEFAULT_TAG}'" if switched else "")
        return removed

    def list_tags(self) -> list[dict[str, Any]]:
        with self._lock:
            collection = self._require_collection()
            return [
                {
                    "key": key,
                    "name": tag.name,
                    "description": tag.description,
                    "task_count": tag.metadata.task_count,
                    "current": key == self._current_tag,
                }
                for key, tag in collection.tags.items()
            ]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def _build_task(self, data: Union[Task, dict[str, Any]], tag: Tag, parent_id: Optional[str]) -> Task:
        partial = data.to_dict() if isinstance(data, Task) else to_document_keys(dict(data))
        existing = {t.id for t in iter_tasks(tag.tasks)}

        supplied = str(partial.get("id") or "").strip()
        if supplied and supplied in existing:
            raise ConflictError(f"Task '{supplied}' already exists")
        task_id = supplied or generate_task_id(parent_id, existing)

        now = _now_iso()
        doc = default_task_dict()
        doc.update(partial)
        doc["id"] = task_id
        deps: list[str] = []
        for dep in doc.get("dependencies") or []:
            if str(dep) not in deps:
                deps.append(str(dep))
        doc["dependencies"] = deps
        doc["blockedBy"] = list(deps)
        doc["blocks"] = []
        meta = partial.get("metadata") if isinstance(partial.get("metadata"), dict) else {}
        doc["metadata"] = {"created": now, "modified": now, "version": SCHEMA_VERSION}
        if meta.get("source"):
            doc["metadata"]["source"] = meta["source"]
        if normalize_status(doc.get("status")) is TaskStatus.DONE and not doc.get("completedDate"):
            doc["completedDate"] = now

        task = validate_task(doc)
        for node in task.walk():
            if node.id in existing:
                raise ConflictError(f"Task '{node.id}' already exists")
            if node.id in node.dependencies:
                raise ConflictError(f"Task '{node.id}' cannot depend on itself")
        return task

    def _link_new_subtree(self, tag: Tag, task: Task) -> None:
        """Mirror the new subtree's edges and reject any cycle it closes."""
        new_ids = [node.id for node in task.walk()]
        for node in task.walk():
            node.blocked_by = list(node.dependencies)
            for dep_id in node.dependencies:
                target = find_task(tag.tasks, dep_id)
                if target is not None and node.id not in target.blocks:
                    target.blocks.append(node.id)
                    target.touch()
        for other in iter_tasks(tag.tasks):
            for dep_id in other.dependencies:
                if dep_id in new_ids:
                    owner = find_task(tag.tasks, dep_id)
                    if owner is not None and other.id not in owner.blocks:
                        owner.blocks.append(other.id)

        graph = DependencyGraph.from_tasks(tag.tasks)
        for node_id in new_ids:
            cycle = find_cycle_through(node_id, graph.dependencies_of)
            if cycle:
                raise CycleError(
                    f"Creating task '{node_id}' would create a circular dependency: {' -> '.join(cycle)}",
                    cycle=cycle,
                )

    def create_task(self, data: Union[Task, dict[str, Any]], tag: Optional[str] = None) -> Task:
        """Validate and append a new top-level task.

        Raises:
            NotFoundError: the tag does not exist.
            ConflictError: the supplied ID is already taken.
            ValidationError: the data violates the schema.
            CycleError: the task closes a loop with existing references.
        """
        with self.transaction() as collection:
            key = self.resolve_tag(tag)
            target = collection.tags[key]
            task = self._build_task(data, target, parent_id=None)
            target.tasks.append(task)
            self._link_new_subtree(target, task)
            target.metadata.modified = task.metadata.created
            self.emit_event(ev.TASK_CREATED, tag=key, task_id=task.id, title=task.title, priority=task.priority.value)
        logger.info("Created task {} in '{}': {}", task.id, key, task.title)
        return task

    def create_subtask(self, parent_id: str, data: Union[Task, dict[str, Any]], tag: Optional[str] = None) -> Task:
        """Validate and nest a new task under *parent_id*.

        The generated ID extends the parent path (``5`` -> ``5.1``, ``5.2``).
        """
        with self.transaction() as collection:
            key = self.resolve_tag(tag)
            target = collection.tags[key]
            parent = find_task(target.tasks, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent task '{parent_id}' not found in tag '{key}'", task_id=parent_id, tag=key)
            task = self._build_task(data, target, parent_id=parent.id)
            parent.subtasks.append(task)
            parent.touch()
            self._link_new_subtree(target, task)
            target.metadata.modified = task.metadata.created
            self.emit_event(ev.SUBTASK_CREATED, tag=key, task_id=task.id, parent_id=parent.id, title=task.title)
        logger.info("Created subtask {} under {} in '{}': {}", task.id, parent_id, key, task.title)
        return task

    def get_task(self, task_id: str, tag: Optional[str] = None) -> Optional[Task]:
        """Depth-first lookup; returns ``None`` when the ID does not resolve."""
        with self._lock:
            return find_task(self.get_tag(tag).tasks, str(task_id))

    def update_task(self, task_id: str, updates: dict[str, Any], tag: Optional[str] = None) -> Task:
        """Merge *updates* into a task and re-validate it.

        A status change must follow the state machine.  Entering ``done``
        stamps ``completedDate``; reopening a done task clears it.

        Raises:
            NotFoundError: no such task.
            InvalidTransitionError: the status change is not allowed.
            ValidationError: the merged task violates the schema, or a
                protected field (``id``, ``subtasks``, dependency lists,
                ``metadata``) was supplied.
        """
        changes = to_document_keys(dict(updates))
        protected = [k for k in _PROTECTED_FIELDS if k in changes]
        if protected:
            raise ValidationError([f"{k}: cannot be changed with update_task" for k in protected])

        with self.transaction() as collection:
            key = self.resolve_tag(tag)
            task = find_task(collection.tags[key].tasks, str(task_id))
            if task is None:
                raise NotFoundError(f"Task '{task_id}' not found in tag '{key}'", task_id=str(task_id), tag=key)

            previous = task.status
            status = previous
            if "status" in changes:
                status = normalize_status(changes["status"])
                if not isinstance(status, TaskStatus):
                    raise ValidationError([f"status: unknown status '{changes['status']}'"])
                if status is not previous:
                    assert_status_transition(previous, status, task_id=task.id)
                changes["status"] = status.value

            now = _now_iso()
            merged = task.to_dict()
            merged.update(changes)
            if status is TaskStatus.DONE and previous is not TaskStatus.DONE and not merged.get("completedDate"):
                merged["completedDate"] = now
            elif previous is TaskStatus.DONE and status is not TaskStatus.DONE:
                merged.pop("completedDate", None)
            merged["metadata"]["modified"] = now

            validated = validate_task(merged)
            for f in fields(Task):
                if f.name != "subtasks":
                    setattr(task, f.name, getattr(validated, f.name))
            collection.tags[key].metadata.modified = now

            details: dict[str, Any] = {"fields": sorted(updates.keys())}
            if status is not previous:
                details["from_status"] = previous.value
                details["to_status"] = status.value
            self.emit_event(ev.TASK_UPDATED, tag=key, task_id=task.id, **details)
        return task

    def delete_task(self, task_id: str, tag: Optional[str] = None) -> Task:
        """Remove a task and its subtree, purging the removed IDs from the tag.

        Raises:
            NotFoundError: no such task.
        """
        with self.transaction() as collection:
            key = self.resolve_tag(tag)
            target = collection.tags[key]
            removed = remove_task(target.tasks, str(task_id))
            if removed is None:
                raise NotFoundError(f"Task '{task_id}' not found in tag '{key}'", task_id=str(task_id), tag=key)
            removed_ids = {t.id for t in removed.walk()}
            purged = 0
            for other in iter_tasks(target.tasks):
                changed = False
                for attr in ("dependencies", "blocked_by", "blocks"):
                    current = getattr(other, attr)
                    kept = [ref for ref in current if ref not in removed_ids]
                    if len(kept) != len(current):
                        setattr(other, attr, kept)
                        changed = True
                if changed:
                    other.touch()
                    purged += 1
            target.metadata.modified = _now_iso()
            self.emit_event(
                ev.TASK_DELETED,
                tag=key,
                task_id=removed.id,
                removed_ids=sorted(removed_ids, key=natural_id_key),
                references_purged=purged,
            )
        logger.info("Deleted task {} from '{}' ({} tasks removed)", removed.id, key, len(removed_ids))
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_tasks(self, tag: Optional[str] = None) -> list[Task]:
        """Every task in the tag, flattened depth-first."""
        with self._lock:
            return list(iter_tasks(self.get_tag(tag).tasks))

    def list_tasks(
        self,
        filters: Union[TaskFilters, dict[str, Any], None] = None,
        tag: Optional[str] = None,
    ) -> list[Task]:
        criteria = TaskFilters.from_value(filters)
        return [t for t in self.get_all_tasks(tag) if criteria.matches(t)]

    def get_all_task_ids(self, tag: Optional[str] = None) -> list[str]:
        return [t.id for t in self.get_all_tasks(tag)]

    def get_total_task_count(self, tag: Optional[str] = None) -> int:
        return len(self.get_all_tasks(tag))

    def get_stats(self, tag: Optional[str] = None, now: Optional[datetime] = None) -> dict[str, Any]:
        """Aggregate counts for one tag.

        ``overdue`` counts tasks whose due date has passed and that are not done.
        """
        now = now or datetime.now(timezone.utc)
        tasks = self.get_all_tasks(tag)
        by_status = {s.value: 0 for s in TaskStatus}
        by_priority = {p.value: 0 for p in TaskPriority}
        by_type = {t.value: 0 for t in TaskType}
        by_assignee: Counter[str] = Counter()
        overdue = 0
        for task in tasks:
            by_status[task.status.value] += 1
            by_priority[task.priority.value] += 1
            by_type[task.task_type.value] += 1
            assignee = task.assignee.display_name if task.assignee else ""
            by_assignee[assignee or "unassigned"] += 1
            due = _parse_iso(task.due_date)
            if due is not None and due < now and task.status is not TaskStatus.DONE:
                overdue += 1
        return {
            "tag": self.resolve_tag(tag),
            "total": len(tasks),
            "by_status": by_status,
            "by_priority": by_priority,
            "by_type": by_type,
            "by_assignee": dict(by_assignee),
            "completed": by_status[TaskStatus.DONE.value],
            "in_progress": by_status[TaskStatus.IN_PROGRESS.value],
            "blocked": by_status[TaskStatus.BLOCKED.value],
            "overdue": overdue,
        }

    def export_tasks(self, format: str = "json", tag: Optional[str] = None) -> str:
        """Serialize tasks as ``json``, ``csv`` or ``markdown``.

        JSON without a tag exports the whole collection; the other formats
        default to the current tag.
        """
        with self._lock:
            collection = self._require_collection()
            if tag is None and format.lower() == "json":
                return export_collection(collection, format)
            key = self.resolve_tag(tag)
            return export_collection(collection, format, tag=key)

    # ------------------------------------------------------------------
    # Event history
    # ------------------------------------------------------------------

    def get_recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        """Return logged events, or ``[]`` when no event log is configured."""
        if self.event_log is None:
            return []
        return self.event_log.recent(limit)

    def get_task_events(self, task_id: str, limit: int = 100) -> list[dict[str, Any]]:
        if self.event_log is None:
            return []
        return self.event_log.for_task(task_id, limit)
