"""Dependency graph engine on top of :class:`TaskManager`.

One :class:`DependencyGraph` is cached per tag.  The cache is dropped
whenever ``TaskManager.revision`` moves (any commit or rollback), and
edge edits made here patch the cached graph in place instead.  Queries and
edits hold the manager's writer lock, so a query never observes a
half-applied edge change.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger

from ..constants import URGENCY_DUE_WITHIN, URGENCY_OVERDUE
from ..errors import ConflictError, CycleError, IntegrityError, NotFoundError, ValidationError
from ..logging_utils import pretty
from ..utils import _parse_iso, natural_id_key
from . import events as ev
from .graph import (
    DependencyGraph,
    detect_cycles,
    longest_path,
    topological_order,
    transitive_dependents,
    would_create_cycle,
)
from .manager import TaskManager
from .model import Task, TaskStatus, find_task
from .render import RENDERERS, render_mermaid

_READY_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


@dataclass
class TaskRef:
    """An adjacent task ID with its resolved task, if any."""

    id: str
    task: Optional[Task] = None
    status: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.task.title if self.task else None, "status": self.status}


@dataclass
class DependencyReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "cycles": [list(c) for c in self.cycles],
        }


@dataclass
class ImpactAnalysis:
    task: Task
    directly_affected: int
    total_affected: int
    affected_tasks: list[str]
    on_critical_path: bool
    risk_level: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task.id,
            "directly_affected": self.directly_affected,
            "total_affected": self.total_affected,
            "affected_tasks": list(self.affected_tasks),
            "on_critical_path": self.on_critical_path,
            "risk_level": self.risk_level,
        }


def calculate_risk_level(total_affected: int) -> str:
    if total_affected >= 10:
        return "critical"
    if total_affected >= 5:
        return "high"
    if total_affected >= 2:
        return "medium"
    return "low"


def due_date_urgency(due_date: Optional[str], now: datetime) -> int:
    """Urgency points for due-date proximity, counted in whole days (rounded up)."""
    due = _parse_iso(due_date)
    if due is None:
        return 0
    days = math.ceil((due - now).total_seconds() / 86400)
    if days < 0:
        return URGENCY_OVERDUE
    for limit, points in URGENCY_DUE_WITHIN:
        if days <= limit:
            return points
    return 0


class TaskDependencyManager:
    """Dependency queries, cycle prevention, scheduling and visualization.

    Parameters
    ----------
    task_manager:
        Initialized store whose tasks form the graph.  ``dependency.*``
        events go through its transaction so a rollback discards them.
    """

    def __init__(self, task_manager: TaskManager) -> None:
        self.task_manager = task_manager
        self._graphs: dict[str, DependencyGraph] = {}
        self._revision = -1

    def initialize(self) -> None:
        """Build the graph of every tag up front."""
        with self.task_manager.lock:
            for tag in self.task_manager.collection.tags:
                self._graph(tag)
            logger.debug("Built dependency graphs for {} tags", len(self._graphs))

    def close(self) -> None:
        self._graphs.clear()
        self._revision = -1

    # ------------------------------------------------------------------
    # Graph cache
    # ------------------------------------------------------------------

    def _graph(self, tag: Optional[str] = None) -> DependencyGraph:
        key = self.task_manager.resolve_tag(tag)
        if self._revision != self.task_manager.revision:
            self._graphs.clear()
            self._revision = self.task_manager.revision
        graph = self._graphs.get(key)
        if graph is None:
            graph = DependencyGraph.from_tasks(self.task_manager.get_tag(key).tasks)
            self._graphs[key] = graph
        return graph

    def build_graph(self, tag: Optional[str] = None) -> DependencyGraph:
        """Rebuild and return the graph for *tag* from the store."""
        with self.task_manager.lock:
            key = self.task_manager.resolve_tag(tag)
            self._graphs.pop(key, None)
            return self._graph(key)

    def _refs(self, graph: DependencyGraph, ids: list[str]) -> list[TaskRef]:
        refs = []
        for task_id in ids:
            node = graph.get(task_id)
            task = node.task if node is not None else None
            refs.append(TaskRef(task_id, task, task.status.value if task is not None else "unknown"))
        return refs

    def _require_node(self, graph: DependencyGraph, task_id: str, tag: Optional[str]) -> Task:
        node = graph.get(task_id)
        if node is None or node.task is None:
            key = self.task_manager.resolve_tag(tag)
            raise NotFoundError(f"Task '{task_id}' not found in tag '{key}'", task_id=task_id, tag=key)
        return node.task

    # ------------------------------------------------------------------
    # Edge edits
    # ------------------------------------------------------------------

    def add_dependency(self, task_id: str, depends_on_id: str, tag: Optional[str] = None) -> None:
        """Make *task_id* depend on *depends_on_id*.

        Raises:
            NotFoundError: either task does not exist.
            ConflictError: self-dependency or the edge already exists.
            CycleError: the edge would close a loop.
        """
        tm = self.task_manager
        with tm.lock:
            key = tm.resolve_tag(tag)
            graph = self._graph(key)
            with tm.transaction() as collection:
                tasks = collection.tags[key].tasks
                task = find_task(tasks, task_id)
                if task is None:
                    raise NotFoundError(f"Task '{task_id}' not found in tag '{key}'", task_id=task_id, tag=key)
                dependency = find_task(tasks, depends_on_id)
                if dependency is None:
                    raise NotFoundError(
                        f"Dependency task '{depends_on_id}' not found in tag '{key}'", task_id=depends_on_id, tag=key
                    )
                if task_id == depends_on_id:
                    raise ConflictError(f"Task '{task_id}' cannot depend on itself")
                if depends_on_id in task.dependencies:
                    raise ConflictError(f"Dependency '{depends_on_id}' already exists for task '{task_id}'")
                cycle = would_create_cycle(graph, task_id, depends_on_id)
                if cycle:
                    raise CycleError(
                        f"Adding dependency '{depends_on_id}' to task '{task_id}' would create a circular "
                        f"dependency: {' -> '.join(cycle)}",
                        cycle=cycle,
                    )

                task.dependencies.append(depends_on_id)
                if depends_on_id not in task.blocked_by:
                    task.blocked_by.append(depends_on_id)
                task.touch()
                if task_id not in dependency.blocks:
                    dependency.blocks.append(task_id)
                    dependency.touch()
                tm.emit_event(ev.DEPENDENCY_ADDED, tag=key, task_id=task_id, depends_on=depends_on_id)

            graph.add_edge(task_id, depends_on_id)
            self._revision = tm.revision

        logger.info("Task {} now depends on {} in '{}'", task_id, depends_on_id, key)

    def remove_dependency(self, task_id: str, depends_on_id: str, tag: Optional[str] = None) -> None:
        """Drop the edge *task_id* -> *depends_on_id*.

        Raises:
            NotFoundError: the task or the edge does not exist.
        """
        tm = self.task_manager
        with tm.lock:
            key = tm.resolve_tag(tag)
            graph = self._graph(key)
            with tm.transaction() as collection:
                tasks = collection.tags[key].tasks
                task = find_task(tasks, task_id)
                if task is None:
                    raise NotFoundError(f"Task '{task_id}' not found in tag '{key}'", task_id=task_id, tag=key)
                if depends_on_id not in task.dependencies:
                    raise NotFoundError(
                        f"Dependency '{depends_on_id}' does not exist for task '{task_id}'", task_id=task_id, tag=key
                    )
                task.dependencies = [d for d in task.dependencies if d != depends_on_id]
                task.blocked_by = [d for d in task.blocked_by if d != depends_on_id]
                task.touch()
                dependency = find_task(tasks, depends_on_id)
                if dependency is not None:
                    dependency.blocks = [b for b in dependency.blocks if b != task_id]
                    dependency.touch()
                tm.emit_event(ev.DEPENDENCY_REMOVED, tag=key, task_id=task_id, depends_on=depends_on_id)

            graph.remove_edge(task_id, depends_on_id)
            self._revision = tm.revision

        logger.info("Task {} no longer depends on {} in '{}'", task_id, depends_on_id, key)

    # ------------------------------------------------------------------
    # Adjacency queries
    # ------------------------------------------------------------------

    def get_dependencies(self, task_id: str, tag: Optional[str] = None) -> list[TaskRef]:
        with self.task_manager.lock:
            graph = self._graph(tag)
            return self._refs(graph, graph.dependencies_of(task_id))

    def get_dependents(self, task_id: str, tag: Optional[str] = None) -> list[TaskRef]:
        with self.task_manager.lock:
            graph = self._graph(tag)
            return self._refs(graph, graph.dependents_of(task_id))

    def get_blocking_tasks(self, task_id: str, tag: Optional[str] = None) -> list[TaskRef]:
        """Tasks listed in *task_id*'s ``blockedBy`` set."""
        with self.task_manager.lock:
            graph = self._graph(tag)
            return self._refs(graph, graph.blockers_of(task_id))

    def get_blocked_tasks(self, task_id: str, tag: Optional[str] = None) -> list[TaskRef]:
        """Tasks that *task_id* blocks."""
        with self.task_manager.lock:
            graph = self._graph(tag)
            return self._refs(graph, graph.blocked_by_this(task_id))

    # ------------------------------------------------------------------
    # Cycles and integrity
    # ------------------------------------------------------------------

    def would_create_cycle(self, task_id: str, depends_on_id: str, tag: Optional[str] = None) -> bool:
        """Pre-flight check for :meth:`add_dependency`; never mutates the graph."""
        with self.task_manager.lock:
            return would_create_cycle(self._graph(tag), task_id, depends_on_id) is not None

    def detect_cycles(self, tag: Optional[str] = None) -> list[list[str]]:
        """Every cycle in one tag, or in all tags when *tag* is ``None``."""
        with self.task_manager.lock:
            keys = [self.task_manager.resolve_tag(tag)] if tag else list(self.task_manager.collection.tags)
            cycles: list[list[str]] = []
            for key in keys:
                graph = self._graph(key)
                cycles.extend(detect_cycles(list(graph), graph.dependencies_of))
            return cycles

    def validate_dependencies(self, tag: Optional[str] = None) -> DependencyReport:
        """Cross-check references, mirrors and acyclicity.

        Dangling references, unresolved graph nodes, broken ``blockedBy`` /
        ``blocks`` mirrors and cycles are errors; depending on a cancelled
        task is a warning.
        """
        errors: list[str] = []
        warnings: list[str] = []
        with self.task_manager.lock:
            keys = [self.task_manager.resolve_tag(tag)] if tag else list(self.task_manager.collection.tags)
            for key in keys:
                graph = self._graph(key)
                for task_id in sorted(graph, key=natural_id_key):
                    node = graph.nodes[task_id]
                    if not node.is_complete:
                        errors.append(f"[{key}] Task node '{task_id}' exists in dependency graph but task not found")
                        continue
                    for dep_id in sorted(node.task.dependencies, key=natural_id_key):
                        dep = graph.get(dep_id)
                        if dep is None or not dep.is_complete:
                            errors.append(f"[{key}] Task '{task_id}' depends on non-existent task '{dep_id}'")
                        elif dep.task.status is TaskStatus.CANCELLED:
                            warnings.append(f"[{key}] Task '{task_id}' depends on cancelled task '{dep_id}'")
                    for blocker_id in node.task.blocked_by:
                        blocker = graph.get(blocker_id)
                        if blocker is None or not blocker.is_complete:
                            errors.append(f"[{key}] Task '{task_id}' is blocked by non-existent task '{blocker_id}'")
                errors.extend(f"[{key}] {problem}" for problem in graph.asymmetries())
            cycles = self.detect_cycles(tag)

        for cycle in cycles:
            errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")
        if errors:
            logger.warning("Dependency validation found {} errors:\n{}", len(errors), pretty(errors))
        return DependencyReport(is_valid=not errors, errors=errors, warnings=warnings, cycles=cycles)

    def assert_valid(self, tag: Optional[str] = None) -> DependencyReport:
        """Like :meth:`validate_dependencies` but raise :class:`IntegrityError` on errors."""
        report = self.validate_dependencies(tag)
        if not report.is_valid:
            raise IntegrityError(report.errors)
        return report

    # ------------------------------------------------------------------
    # Ordering and scheduling
    # ------------------------------------------------------------------

    def _topological_ids(self, tag: Optional[str]) -> list[str]:
        key = self.task_manager.resolve_tag(tag)
        graph = self._graph(key)
        ids = self.task_manager.get_all_task_ids(key)
        order, stuck = topological_order(ids, graph.dependencies_of)
        if stuck:
            cycles = detect_cycles(stuck, graph.dependencies_of)
            logger.error(
                "Topological sort of tag '{}' failed: {} of {} tasks are on or behind a cycle",
                key,
                len(stuck),
                len(ids),
            )
            raise CycleError(
                f"Cannot create topological sort of tag '{key}' due to circular dependencies",
                cycle=cycles[0] if cycles else stuck,
            )
        return order

    def get_topological_sort(self, tag: Optional[str] = None) -> list[Task]:
        """Tasks of one tag with every dependency before its dependents.

        Raises:
            CycleError: the tag contains a cycle.
        """
        with self.task_manager.lock:
            graph = self._graph(tag)
            return [graph.nodes[task_id].task for task_id in self._topological_ids(tag)]

    def calculate_task_priority(self, task: Task) -> int:
        return task.priority.rank

    def calculate_task_urgency(self, task: Task, tag: Optional[str] = None, now: Optional[datetime] = None) -> int:
        """Due-date points plus one per direct dependent."""
        now = now or datetime.now(timezone.utc)
        with self.task_manager.lock:
            dependents = len(self._graph(tag).dependents_of(task.id))
        return due_date_urgency(task.due_date, now) + dependents

    def get_ready_tasks(self, tag: Optional[str] = None, now: Optional[datetime] = None) -> list[Task]:
        """Pending or in-progress tasks whose dependencies are all done or cancelled.

        Ordered by urgency, then priority rank (both descending), then task ID.
        """
        now = now or datetime.now(timezone.utc)
        with self.task_manager.lock:
            graph = self._graph(tag)
            ranked: list[tuple[int, int, tuple[Any, ...], Task]] = []
            for task in self.task_manager.get_all_tasks(tag):
                if task.status not in _READY_STATUSES:
                    continue
                deps = self._refs(graph, graph.dependencies_of(task.id))
                if all(ref.task is not None and ref.task.is_complete for ref in deps):
                    urgency = due_date_urgency(task.due_date, now) + len(graph.dependents_of(task.id))
                    ranked.append((urgency, task.priority.rank, natural_id_key(task.id), task))
        ranked.sort(key=lambda item: (-item[0], -item[1], item[2]))
        return [item[3] for item in ranked]

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def get_dependency_chain(self, task_id: str, tag: Optional[str] = None) -> list[dict[str, str]]:
        """Transitive dependency edges as ``{from, to, status}``, deepest first.

        An edge is recorded once the subtree below its dependency has been
        fully expanded.
        """
        with self.task_manager.lock:
            graph = self._graph(tag)
            self._require_node(graph, task_id, tag)
            chain: list[dict[str, str]] = []
            visited: set[str] = {task_id}
            # Frames are [task id, remaining dependency refs, ref whose subtree is being expanded].
            stack: list[list[Any]] = [[task_id, iter(self._refs(graph, graph.dependencies_of(task_id))), None]]
            while stack:
                frame = stack[-1]
                current, refs, expanding = frame
                if expanding is not None:
                    chain.append({"from": expanding.id, "to": current, "status": expanding.status})
                    frame[2] = None
                dep = next(refs, None)
                if dep is None:
                    stack.pop()
                    continue
                if dep.id in visited:
                    chain.append({"from": dep.id, "to": current, "status": dep.status})
                    continue
                visited.add(dep.id)
                frame[2] = dep
                stack.append([dep.id, iter(self._refs(graph, graph.dependencies_of(dep.id))), None])
            return chain

    def find_longest_path(self, tag: Optional[str] = None) -> list[str]:
        """The critical path of one tag; ``[]`` when there are no edges."""
        with self.task_manager.lock:
            graph = self._graph(tag)
            return longest_path(self._topological_ids(tag), graph.dependencies_of)

    def is_on_critical_path(self, task_id: str, tag: Optional[str] = None) -> bool:
        return task_id in self.find_longest_path(tag)

    def analyze_dependency_impact(self, task_id: str, tag: Optional[str] = None) -> ImpactAnalysis:
        """How much downstream work a task holds up.

        Raises:
            NotFoundError: the task does not exist.
        """
        with self.task_manager.lock:
            graph = self._graph(tag)
            task = self._require_node(graph, task_id, tag)
            affected = transitive_dependents(graph, task_id)
            return ImpactAnalysis(
                task=task,
                directly_affected=len(graph.dependents_of(task_id)),
                total_affected=len(affected),
                affected_tasks=affected,
                on_critical_path=self.is_on_critical_path(task_id, tag),
                risk_level=calculate_risk_level(len(affected)),
            )

    def visualize_dependencies(
        self,
        task_id: str,
        format: str = "ascii",
        tag: Optional[str] = None,
        max_depth: int = 0,
    ) -> str:
        """Render the dependency subtree below *task_id*.

        Formats: ``ascii``, ``json``, ``dot`` and ``mermaid``.

        Raises:
            ValidationError: unsupported format.
            NotFoundError: the task does not exist.
        """
        fmt = (format or "").strip().lower()
        if fmt not in RENDERERS:
            raise ValidationError([f"format: unsupported visualization format '{format}'"], subject="Visualization")
        with self.task_manager.lock:
            graph = self._graph(tag)
            self._require_node(graph, task_id, tag)
            if fmt == "mermaid":
                return render_mermaid(graph, task_id, max_depth, critical_path=self.find_longest_path(tag))
            return RENDERERS[fmt](graph, task_id, max_depth)
