"""Tag-namespaced task store and dependency graph engine.

This package provides the task model and schema, the file-backed
:class:`TaskManager` and the :class:`TaskDependencyManager` that derives a
dependency graph from it.
"""

from __future__ import annotations

from .dependencies import TaskDependencyManager
from .events import EventHub, TaskEvent
from .manager import TaskFilters, TaskManager

__all__ = ["EventHub", "TaskDependencyManager", "TaskEvent", "TaskFilters", "TaskManager"]
