"""Provide the public `taskforest` package exports."""

from __future__ import annotations

from .errors import (
    ConflictError,
    CycleError,
    IntegrityError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    TaskEngineError,
    ValidationError,
)
from .task_engine import TaskDependencyManager, TaskManager

__all__ = [
    "ConflictError",
    "CycleError",
    "IntegrityError",
    "InvalidTransitionError",
    "NotFoundError",
    "PersistenceError",
    "TaskDependencyManager",
    "TaskEngineError",
    "TaskManager",
    "ValidationError",
]
