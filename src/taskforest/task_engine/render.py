"""Text renderings of the dependency subtree below one task.

Each renderer walks ``dependencies`` edges from the root and visits every
node at most once.  ``max_depth`` limits how many levels below the root are
expanded; ``0`` means unlimited.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Iterator, Optional

from .graph import DependencyGraph

STATUS_ICONS = {
    "pending": "⏳",
    "in-progress": "🔄",
    "blocked": "🚫",
    "review": "👀",
    "done": "✅",
    "deferred": "⏸️",
    "cancelled": "❌",
    "unknown": "❓",
}

STATUS_COLORS = {
    "pending": "lightgray",
    "in-progress": "lightblue",
    "blocked": "salmon",
    "review": "yellow",
    "done": "lightgreen",
    "deferred": "orange",
    "cancelled": "red",
    "unknown": "white",
}

_MERMAID_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def _title(graph: DependencyGraph, task_id: str) -> str:
    node = graph.get(task_id)
    if node is None or node.task is None:
        return "Unknown"
    return node.task.title


def _status(graph: DependencyGraph, task_id: str) -> str:
    node = graph.get(task_id)
    return node.status if node is not None else "unknown"


def _expand(max_depth: int, depth: int) -> bool:
    return max_depth <= 0 or depth < max_depth


def render_ascii(graph: DependencyGraph, task_id: str, max_depth: int = 0) -> str:
    visited: set[str] = set()
    lines: list[str] = []
    # (node, prefix, is_last, depth); children are pushed reversed so they pop in order
    stack: list[tuple[str, str, bool, int]] = [(task_id, "", True, 0)]
    while stack:
        current, prefix, is_last, depth = stack.pop()
        connector = "└── " if is_last else "├── "
        if current in visited:
            lines.append(f"{prefix}{connector}{current} (already shown)")
            continue
        visited.add(current)
        icon = STATUS_ICONS.get(_status(graph, current), STATUS_ICONS["unknown"])
        lines.append(f"{prefix}{connector}{icon} {current}: {_title(graph, current)}")
        if not _expand(max_depth, depth):
            continue
        deps = graph.dependencies_of(current)
        child_prefix = prefix + ("    " if is_last else "│   ")
        for index in range(len(deps) - 1, -1, -1):
            stack.append((deps[index], child_prefix, index == len(deps) - 1, depth + 1))
    return "\n".join(lines)


def build_json_tree(graph: DependencyGraph, task_id: str, max_depth: int = 0) -> dict[str, Any]:
    """Nested ``{id, title, status, dependencies}``; repeats become ``{id, circular: true}``."""
    visited: set[str] = set()
    root: list[dict[str, Any]] = []
    stack: list[tuple[str, int, list[dict[str, Any]]]] = [(task_id, 0, root)]
    while stack:
        current, depth, siblings = stack.pop()
        if current in visited:
            siblings.append({"id": current, "circular": True})
            continue
        visited.add(current)
        children: list[dict[str, Any]] = []
        siblings.append(
            {
                "id": current,
                "title": _title(graph, current),
                "status": _status(graph, current),
                "dependencies": children,
            }
        )
        if _expand(max_depth, depth):
            for dep in reversed(graph.dependencies_of(current)):
                stack.append((dep, depth + 1, children))
    return root[0]


def render_json(graph: DependencyGraph, task_id: str, max_depth: int = 0) -> str:
    """Same text as ``json.dumps(tree, indent=2)``, written without recursion."""
    chunks: list[str] = []
    stack: list[tuple[Any, int]] = [(build_json_tree(graph, task_id, max_depth), 0)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, str):
            chunks.append(item)
            continue
        pad = "  " * level
        inner = pad + "  "
        children = item.get("dependencies")
        fields = [
            f"{inner}{json.dumps(key)}: {json.dumps(value, ensure_ascii=False)}"
            for key, value in item.items()
            if key != "dependencies"
        ]
        chunks.append("{\n" + ",\n".join(fields))
        if children is None:
            chunks.append(f"\n{pad}}}")
        elif not children:
            chunks.append(f',\n{inner}"dependencies": []\n{pad}}}')
        else:
            chunks.append(f',\n{inner}"dependencies": [')
            stack.append((f"\n{inner}]\n{pad}}}", 0))
            child_pad = inner + "  "
            for index in range(len(children) - 1, -1, -1):
                stack.append((children[index], level + 2))
                stack.append(((",\n" if index else "\n") + child_pad, 0))
    return "".join(chunks)


def _reachable(graph: DependencyGraph, task_id: str, max_depth: int) -> tuple[list[str], list[tuple[str, str]]]:
    """Nodes in visit order and ``(dependency, dependent)`` edges."""
    visited: set[str] = {task_id}
    nodes: list[str] = [task_id]
    edges: list[tuple[str, str]] = []
    stack: list[tuple[str, Iterator[str], int]] = []
    if _expand(max_depth, 0):
        stack.append((task_id, iter(graph.dependencies_of(task_id)), 0))
    while stack:
        current, deps, depth = stack[-1]
        dep = next(deps, None)
        if dep is None:
            stack.pop()
            continue
        edges.append((dep, current))
        if dep in visited:
            continue
        visited.add(dep)
        nodes.append(dep)
        if _expand(max_depth, depth + 1):
            stack.append((dep, iter(graph.dependencies_of(dep)), depth + 1))
    return nodes, edges


def _dot_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def render_dot(graph: DependencyGraph, task_id: str, max_depth: int = 0) -> str:
    nodes, edges = _reachable(graph, task_id, max_depth)
    lines = ["digraph TaskDependencies {", "  node [shape=box];"]
    for node_id in nodes:
        color = STATUS_COLORS.get(_status(graph, node_id), STATUS_COLORS["unknown"])
        label = f"{_dot_escape(node_id)}\\n{_dot_escape(_title(graph, node_id))}"
        lines.append(f'  "{_dot_escape(node_id)}" [label="{label}" fillcolor="{color}" style="filled"];')
    for source, target in edges:
        lines.append(f'  "{_dot_escape(source)}" -> "{_dot_escape(target)}";')
    lines.append("}")
    return "\n".join(lines)


def _mermaid_id(task_id: str) -> str:
    return "T" + _MERMAID_UNSAFE.sub("_", task_id)


def render_mermaid(
    graph: DependencyGraph,
    task_id: str,
    max_depth: int = 0,
    critical_path: Optional[Iterable[str]] = None,
) -> str:
    """Mermaid flowchart; nodes on *critical_path* get the ``critical`` class."""
    critical = set(critical_path or ())
    nodes, edges = _reachable(graph, task_id, max_depth)
    lines = ["graph TD"]
    for node_id in nodes:
        label = f"{node_id}: {_title(graph, node_id)}".replace('"', "#quot;")
        suffix = ":::critical" if node_id in critical else ""
        lines.append(f'    {_mermaid_id(node_id)}["{label}"]{suffix}')
    for source, target in edges:
        lines.append(f"    {_mermaid_id(source)} --> {_mermaid_id(target)}")
    lines.append("    classDef critical fill:#ff9999,stroke:#333,stroke-width:2px")
    return "\n".join(lines)


RENDERERS = {
    "ascii": render_ascii,
    "json": render_json,
    "dot": render_dot,
    "mermaid": render_mermaid,
}
