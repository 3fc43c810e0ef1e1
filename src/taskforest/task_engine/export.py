"""Serialize tasks as JSON, CSV or Markdown."""

from __future__ import annotations

import csv
import io
import json
from typing import Optional

from ..errors import ValidationError
from ..utils import _iso_date
from .model import TaskCollection, TaskStatus, iter_tasks

EXPORT_FORMATS = ("json", "csv", "markdown")

CSV_HEADER = ["ID", "Title", "Description", "Status", "Priority", "Type", "Assignee", "Created", "Due Date"]

_STATUS_HEADINGS = {
    TaskStatus.PENDING: "Pending",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.BLOCKED: "Blocked",
    TaskStatus.REVIEW: "Review",
    TaskStatus.DONE: "Done",
    TaskStatus.DEFERRED: "Deferred",
    TaskStatus.CANCELLED: "Cancelled",
}


def export_json(collection: TaskCollection, tag: Optional[str] = None) -> str:
    """The whole collection, or ``{tag: <tag document>}`` for a single tag."""
    if tag is None:
        payload = collection.to_dict()
    else:
        payload = {tag: collection.tags[tag].to_dict()}
    return json.dumps(payload, indent=2, ensure_ascii=False)


def export_csv(collection: TaskCollection, tag: str) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for task in iter_tasks(collection.tags[tag].tasks):
        writer.writerow([
            task.id,
            task.title,
            task.description,
            task.status.value,
            task.priority.value,
            task.task_type.value,
            task.assignee.display_name if task.assignee else "",
            _iso_date(task.metadata.created),
            _iso_date(task.due_date),
        ])
    return buffer.getvalue()


def export_markdown(collection: TaskCollection, tag: str) -> str:
    """Tasks grouped under one heading per status, empty groups omitted."""
    tasks = list(iter_tasks(collection.tags[tag].tasks))
    lines = [f"# Tasks - {tag}", ""]
    for status in TaskStatus:
        group = [t for t in tasks if t.status is status]
        if not group:
            continue
        lines.append(f"## {_STATUS_HEADINGS[status]} ({len(group)})")
        lines.append("")
        for task in group:
            lines.append(f"### {task.id}: {task.title}")
            lines.append("")
            lines.append(f"**Priority:** {task.priority.value} | **Type:** {task.task_type.value}")
            if task.assignee is not None and task.assignee.display_name:
                lines.append(f"**Assignee:** {task.assignee.display_name}")
            if task.due_date:
                lines.append(f"**Due:** {_iso_date(task.due_date)}")
            lines.append("")
            if task.description:
                lines.append(task.description)
                lines.append("")
            if task.details:
                lines.append(f"**Details:** {task.details}")
                lines.append("")
            if task.dependencies:
                lines.append(f"**Dependencies:** {', '.join(task.dependencies)}")
                lines.append("")
            lines.append("---")
            lines.append("")
    return "\n".join(lines)


def export_collection(collection: TaskCollection, format: str, tag: Optional[str] = None) -> str:
    """Dispatch on *format* (``md`` is accepted for Markdown); CSV and Markdown require a tag.

    Raises:
        ValidationError: unsupported format.
    """
    fmt = (format or "").strip().lower()
    if fmt == "md":
        fmt = "markdown"
    if fmt not in EXPORT_FORMATS:
        raise ValidationError([f"format: unsupported export format '{format}'"], subject="Export")
    if fmt == "json":
        return export_json(collection, tag)
    if tag is None:
        raise ValidationError([f"tag: required for {fmt} export"], subject="Export")
    if fmt == "csv":
        return export_csv(collection, tag)
    return export_markdown(collection, tag)
