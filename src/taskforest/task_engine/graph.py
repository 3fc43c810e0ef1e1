"""In-memory dependency graph over one tag's tasks.

Nodes are keyed by task ID and hold four ID sets.  ``dependencies`` /
``dependents`` and ``blocked_by`` / ``blocks`` are transposes of each other;
every edge mutation goes through :meth:`DependencyGraph.add_edge` or
:meth:`DependencyGraph.remove_edge` so both sides stay in step.  The graph
never holds pointers between nodes, only IDs.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional

from ..utils import natural_id_key
from .model import Task, iter_tasks

Neighbours = Callable[[str], Iterable[str]]


@dataclass
class DependencyNode:
    task_id: str
    task: Optional[Task] = None
    dependencies: set[str] = field(default_factory=set)
    dependents: set[str] = field(default_factory=set)
    blocked_by: set[str] = field(default_factory=set)
    blocks: set[str] = field(default_factory=set)

    @property
    def is_complete(self) -> bool:
        """False for IDs that are referenced but have no task record."""
        return self.task is not None

    @property
    def status(self) -> str:
        return self.task.status.value if self.task is not None else "unknown"


def _sorted(ids: Iterable[str]) -> list[str]:
    return sorted(ids, key=natural_id_key)


class DependencyGraph:
    """Symmetric adjacency maps for one tag."""

    def __init__(self) -> None:
        self.nodes: dict[str, DependencyNode] = {}

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "DependencyGraph":
        """Build a graph from a forest, flattening subtasks depth-first."""
        graph = cls()
        flat = list(iter_tasks(tasks))
        for task in flat:
            graph.ensure_node(task.id).task = task
        for task in flat:
            node = graph.nodes[task.id]
            for dep_id in task.dependencies:
                node.dependencies.add(dep_id)
                graph.ensure_node(dep_id).dependents.add(task.id)
            for blocker_id in task.blocked_by:
                node.blocked_by.add(blocker_id)
                graph.ensure_node(blocker_id).blocks.add(task.id)
            for blocked_id in task.blocks:
                node.blocks.add(blocked_id)
                graph.ensure_node(blocked_id).blocked_by.add(task.id)
        return graph

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.nodes)

    def ensure_node(self, task_id: str) -> DependencyNode:
        node = self.nodes.get(task_id)
        if node is None:
            node = DependencyNode(task_id)
            self.nodes[task_id] = node
        return node

    def get(self, task_id: str) -> Optional[DependencyNode]:
        return self.nodes.get(task_id)

    def add_edge(self, task_id: str, depends_on_id: str) -> None:
        """Record that *task_id* depends on *depends_on_id*."""
        node = self.ensure_node(task_id)
        target = self.ensure_node(depends_on_id)
        node.dependencies.add(depends_on_id)
        node.blocked_by.add(depends_on_id)
        target.dependents.add(task_id)
        target.blocks.add(task_id)

    def remove_edge(self, task_id: str, depends_on_id: str) -> None:
        node = self.nodes.get(task_id)
        target = self.nodes.get(depends_on_id)
        if node is not None:
            node.dependencies.discard(depends_on_id)
            node.blocked_by.discard(depends_on_id)
        if target is not None:
            target.dependents.discard(task_id)
            target.blocks.discard(task_id)

    def dependencies_of(self, task_id: str) -> list[str]:
        node = self.nodes.get(task_id)
        return _sorted(node.dependencies) if node else []

    def dependents_of(self, task_id: str) -> list[str]:
        node = self.nodes.get(task_id)
        return _sorted(node.dependents) if node else []

    def blockers_of(self, task_id: str) -> list[str]:
        node = self.nodes.get(task_id)
        return _sorted(node.blocked_by) if node else []

    def blocked_by_this(self, task_id: str) -> list[str]:
        node = self.nodes.get(task_id)
        return _sorted(node.blocks) if node else []

    def asymmetries(self) -> list[str]:
        """Describe every task whose ``blockedBy`` / ``blocks`` lists disagree with ``dependencies``.

        The adjacency sets are built symmetric, so the check reads the task
        records themselves.  Referenced IDs without a task are skipped here.
        """
        problems: list[str] = []
        for task_id in _sorted(self.nodes):
            task = self.nodes[task_id].task
            if task is None:
                continue
            if sorted(task.blocked_by) != sorted(task.dependencies):
                problems.append(f"Task '{task_id}' blockedBy does not mirror its dependencies")
            for blocked_id in task.blocks:
                blocked = self.nodes.get(blocked_id)
                if blocked is not None and blocked.task is not None and task_id not in blocked.task.dependencies:
                    problems.append(f"Task '{task_id}' blocks '{blocked_id}' which does not depend on it")
        return problems


# ---------------------------------------------------------------------------
# Algorithms
# ---------------------------------------------------------------------------

def find_cycle_through(start: str, neighbours: Neighbours) -> Optional[list[str]]:
    """Return a path ``start -> ... -> start`` if one exists, else ``None``.

    Depth-first search over *neighbours*; only cycles that pass through
    *start* are reported.
    """
    visited: set[str] = set()
    stack: list[tuple[str, Iterator[str]]] = [(start, iter(neighbours(start)))]
    path = [start]
    while stack:
        node_id, children = stack[-1]
        advanced = False
        for child in children:
            if child == start:
                return path + [start]
            if child in visited:
                continue
            visited.add(child)
            stack.append((child, iter(neighbours(child))))
            path.append(child)
            advanced = True
            break
        if not advanced:
            stack.pop()
            path.pop()
    return None


def would_create_cycle(graph: DependencyGraph, task_id: str, depends_on_id: str) -> Optional[list[str]]:
    """Simulate ``task_id -> depends_on_id`` and return the cycle it would close.

    The real graph is not mutated.
    """
    def neighbours(node_id: str) -> list[str]:
        deps = graph.dependencies_of(node_id)
        if node_id == task_id and depends_on_id not in deps:
            deps = deps + [depends_on_id]
        return deps

    return find_cycle_through(task_id, neighbours)


def detect_cycles(node_ids: Iterable[str], neighbours: Neighbours) -> list[list[str]]:
    """Find cycles with a full-graph depth-first search.

    Every time the search reaches a node that is still on the recursion
    stack, the stack slice from that node onward (plus the node again) is
    recorded.  Cycles may overlap.
    """
    visited: set[str] = set()
    cycles: list[list[str]] = []
    for root in node_ids:
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_path = {root}
        stack: list[Iterator[str]] = [iter(neighbours(root))]
        while stack:
            advanced = False
            for child in stack[-1]:
                if child in on_path:
                    cycles.append(path[path.index(child):] + [child])
                    continue
                if child in visited:
                    continue
                visited.add(child)
                on_path.add(child)
                path.append(child)
                stack.append(iter(neighbours(child)))
                advanced = True
                break
            if not advanced:
                stack.pop()
                on_path.discard(path.pop())
    return cycles


def topological_order(node_ids: list[str], dependencies: Neighbours) -> tuple[list[str], list[str]]:
    """Kahn's algorithm restricted to *node_ids*.

    Dependencies outside *node_ids* are ignored.  Returns ``(order, stuck)``
    where *stuck* lists the nodes that could not be placed because they sit on
    or behind a cycle.
    """
    members = set(node_ids)
    in_degree: dict[str, int] = {nid: 0 for nid in node_ids}
    forward: dict[str, list[str]] = {nid: [] for nid in node_ids}
    for nid in node_ids:
        for dep in dependencies(nid):
            if dep in members:
                forward[dep].append(nid)
                in_degree[nid] += 1

    queue: deque[str] = deque(nid for nid in node_ids if in_degree[nid] == 0)
    order: list[str] = []
    while queue:
        nid = queue.popleft()
        order.append(nid)
        for dependent in forward[nid]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    stuck = [nid for nid in node_ids if in_degree[nid] > 0]
    return order, stuck


def longest_path(order: list[str], dependencies: Neighbours) -> list[str]:
    """Longest dependency chain over a topological *order*.

    ``distance[v] = max(distance[u] + 1)`` over the dependencies ``u`` of
    ``v``; the path is rebuilt from back-pointers starting at the node with
    the greatest distance.  An edgeless graph yields ``[]``.
    """
    distance: dict[str, int] = {nid: 0 for nid in order}
    previous: dict[str, str] = {}
    for nid in order:
        for dep in dependencies(nid):
            if dep not in distance:
                continue
            candidate = distance[dep] + 1
            if candidate > distance[nid]:
                distance[nid] = candidate
                previous[nid] = dep

    end: Optional[str] = None
    best = 0
    for nid in order:
        if distance[nid] > best:
            best = distance[nid]
            end = nid

    path: list[str] = []
    while end is not None:
        path.append(end)
        end = previous.get(end)
    path.reverse()
    return path


def transitive_dependents(graph: DependencyGraph, task_id: str) -> list[str]:
    """Every task that directly or indirectly depends on *task_id*."""
    seen: set[str] = {task_id}
    ordered: list[str] = []
    queue: deque[str] = deque(graph.dependents_of(task_id))
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        ordered.append(current)
        queue.extend(graph.dependents_of(current))
    return ordered
