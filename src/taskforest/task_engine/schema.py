"""Pydantic schemas for validating tasks and task collections.

Every object is checked here before it enters the store.  Validation errors
are collected in full (not fail-fast) and re-raised as
:class:`taskforest.errors.ValidationError` with one entry per violation.
Unknown keys are dropped.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..constants import (
    DEFAULT_TAG,
    DEFAULT_TAG_DESCRIPTION,
    DEFAULT_TAG_NAME,
    DESCRIPTION_MAX_LENGTH,
    SCHEMA_VERSION,
    TITLE_MAX_LENGTH,
)
from ..errors import ValidationError
from ..utils import _parse_iso
from .model import (
    AssigneeType,
    Task,
    TaskCollection,
    TaskPriority,
    TaskStatus,
    TaskType,
    iter_tasks,
    normalize_status,
    to_document_keys,
)


def _check_timestamp(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if not isinstance(value, str) or _parse_iso(value) is None:
        raise ValueError("must be an ISO-8601 date or timestamp")
    return value


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AssigneePayload(_Document):
    type: AssigneeType = AssigneeType.AGENT
    id: Optional[str] = None
    name: Optional[str] = None


class TaskMetadataPayload(_Document):
    created: Optional[str] = None
    modified: Optional[str] = None
    version: str = SCHEMA_VERSION
    source: Optional[str] = None

    @field_validator("created", "modified", mode="before")
    @classmethod
    def check_timestamps(cls, value: Any) -> Any:
        return _check_timestamp(value)


class TaskPayload(_Document):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)
    details: Optional[str] = None
    notes: Optional[str] = None
    test_strategy: Optional[str] = Field(default=None, alias="testStrategy")

    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    task_type: TaskType = Field(default=TaskType.FEATURE, alias="type")
    complexity: Optional[int] = Field(default=None, ge=1, le=10)
    tags: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    acceptance_criteria: list[str] = Field(default_factory=list, alias="acceptanceCriteria")

    assignee: Optional[AssigneePayload] = None
    estimated_hours: Optional[float] = Field(default=None, gt=0, alias="estimatedHours")
    actual_hours: Optional[float] = Field(default=None, gt=0, alias="actualHours")

    dependencies: list[str] = Field(default_factory=list)
    blocked_by: list[str] = Field(default_factory=list, alias="blockedBy")
    blocks: list[str] = Field(default_factory=list)
    subtasks: list[TaskPayload] = Field(default_factory=list)

    due_date: Optional[str] = Field(default=None, alias="dueDate")
    start_date: Optional[str] = Field(default=None, alias="startDate")
    completed_date: Optional[str] = Field(default=None, alias="completedDate")

    metadata: TaskMetadataPayload = Field(default_factory=TaskMetadataPayload)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status_alias(cls, value: Any) -> Any:
        return normalize_status(value)

    @field_validator("due_date", "start_date", "completed_date", mode="before")
    @classmethod
    def check_dates(cls, value: Any) -> Any:
        return _check_timestamp(value)


class TagMetadataPayload(_Document):
    created: Optional[str] = None
    modified: Optional[str] = None
    task_count: int = Field(default=0, ge=0, alias="taskCount")

    @field_validator("created", "modified", mode="before")
    @classmethod
    def check_timestamps(cls, value: Any) -> Any:
        return _check_timestamp(value)


class TagPayload(_Document):
    name: str = Field(min_length=1)
    description: str = ""
    tasks: list[TaskPayload] = Field(default_factory=list)
    metadata: TagMetadataPayload = Field(default_factory=TagMetadataPayload)


class CollectionMetadataPayload(_Document):
    version: str = SCHEMA_VERSION
    created: Optional[str] = None
    modified: Optional[str] = None
    total_tasks: int = Field(default=0, ge=0, alias="totalTasks")
    max_depth: int = Field(default=0, ge=0, alias="maxDepth")

    @field_validator("created", "modified", mode="before")
    @classmethod
    def check_timestamps(cls, value: Any) -> Any:
        return _check_timestamp(value)


def _default_tags() -> dict[str, TagPayload]:
    return {DEFAULT_TAG: TagPayload(name=DEFAULT_TAG_NAME, description=DEFAULT_TAG_DESCRIPTION)}


class CollectionPayload(_Document):
    metadata: CollectionMetadataPayload = Field(default_factory=CollectionMetadataPayload)
    tags: dict[str, TagPayload] = Field(default_factory=_default_tags)


TaskPayload.model_rebuild()


def _format_errors(exc: PydanticValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        messages.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return messages


def _duplicate_ids(tasks: list[Task]) -> list[str]:
    counts = Counter(t.id for t in iter_tasks(tasks))
    return sorted(task_id for task_id, n in counts.items() if n > 1)


def validate_task(task: Union[Task, dict[str, Any]]) -> Task:
    """Validate *task* and return a normalized :class:`Task`.

    Raises:
        ValidationError: listing every structural violation, including those
            found in nested subtasks.
    """
    data = task.to_dict() if isinstance(task, Task) else to_document_keys(dict(task))
    try:
        payload = TaskPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_format_errors(exc), subject="Task") from exc

    validated = Task.from_dict(payload.model_dump(mode="json", by_alias=True, exclude_none=True))
    duplicates = _duplicate_ids([validated])
    if duplicates:
        raise ValidationError([f"duplicate task id '{d}' in subtree" for d in duplicates], subject="Task")
    return validated


def validate_task_collection(doc: Union[TaskCollection, dict[str, Any]]) -> TaskCollection:
    """Validate every tag and task of a collection document.

    A missing ``main`` tag is added; duplicate task IDs within a tag are
    reported alongside the schema violations.

    Raises:
        ValidationError: with the aggregated list of violations.
    """
    data = doc.to_dict() if isinstance(doc, TaskCollection) else dict(doc)
    try:
        payload = CollectionPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_format_errors(exc), subject="Task collection") from exc

    if DEFAULT_TAG not in payload.tags:
        payload.tags[DEFAULT_TAG] = _default_tags()[DEFAULT_TAG]

    collection = TaskCollection.from_dict(payload.model_dump(mode="json", by_alias=True, exclude_none=True))
    errors: list[str] = []
    for key, tag in collection.tags.items():
        for dup in _duplicate_ids(tag.tasks):
            errors.append(f"tags.{key}: duplicate task id '{dup}'")
    if errors:
        raise ValidationError(errors, subject="Task collection")
    return collection
