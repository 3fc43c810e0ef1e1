"""Exception taxonomy shared by the task store and the dependency engine.

Every error is raised synchronously by the operation that detects it.  The
core never formats user-facing prose beyond the exception message; callers
decide how to present each kind.
"""

from __future__ import annotations

from typing import Iterable, Optional


class TaskEngineError(Exception):
    """Base class for all task engine failures."""


class ValidationError(TaskEngineError):
    """A task, tag or collection violates the schema."""

    def __init__(self, errors: Iterable[str], subject: str = "Task") -> None:
        self.errors = list(errors)
        self.subject = subject
        super().__init__(f"{subject} validation failed: {'; '.join(self.errors)}")


class NotFoundError(TaskEngineError):
    """A task or tag ID does not resolve."""

    def __init__(self, message: str, *, task_id: Optional[str] = None, tag: Optional[str] = None) -> None:
        self.task_id = task_id
        self.tag = tag
        super().__init__(message)


class ConflictError(TaskEngineError):
    """Duplicate ID, duplicate edge, self-dependency or protected tag."""


class InvalidTransitionError(TaskEngineError):
    """A status change that the state machine does not allow."""

    def __init__(self, from_status: str, to_status: str, task_id: Optional[str] = None) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.task_id = task_id
        subject = f"task '{task_id}'" if task_id else "task"
        super().__init__(
            f"Invalid status transition for {subject} from '{from_status}' to '{to_status}'"
        )


class CycleError(TaskEngineError):
    """An edge would create (or has created) a circular dependency."""

    def __init__(self, message: str, cycle: Optional[list[str]] = None) -> None:
        self.cycle = list(cycle or [])
        super().__init__(message)


class PersistenceError(TaskEngineError):
    """Backup, read or write of the task file failed."""


class IntegrityError(TaskEngineError):
    """Dangling reference or unresolved node found by validation."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors = list(errors)
        super().__init__("Dependency integrity check failed: " + "; ".join(self.errors))
