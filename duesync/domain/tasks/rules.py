from __future__ import annotations

from typing import Any, Dict, Optional

from duesync.constants import TASK_STATUS_COMPLETE, TASK_STATUSES, TASK_TYPES
from duesync.domain.common.errors import ValidationError
from duesync.domain.common.time import parse_due
from duesync.domain.tasks.models import Task

# Fields a PATCH may touch. id/external_id/timestamps are owned by the store.
MUTABLE_TASK_FIELDS = frozenset(
    {
        "title",
        "due_date",
        "category_id",
        "task_type",
        "status",
        "notes",
        "url",
        "description",
        "points_possible",
        "due_date_override",
        "status_override",
    }
)


def validate_title(title: Optional[str]) -> None:
    if not title or not title.strip():
        raise ValidationError("Title is required.")
    if len(title.strip()) > 500:
        raise ValidationError("Title is too long (max 500 chars).")


def validate_due_date(due_date: Optional[str]) -> None:
    if not due_date:
        raise ValidationError("Due date is required.")
    if parse_due(due_date) is None:
        raise ValidationError(f"Due date is not an ISO date: {due_date!r}")


def validate_status(status: str) -> None:
    if status not in TASK_STATUSES:
        raise ValidationError(f"Unknown status: {status!r}")


def validate_task_type(task_type: str) -> None:
    if task_type not in TASK_TYPES:
        raise ValidationError(f"Unknown task type: {task_type!r}")


def validate_task(task: Task) -> None:
    validate_title(task.title)
    validate_due_date(task.due_date)
    validate_status(task.status)
    validate_task_type(task.task_type)


def validate_changes(changes: Dict[str, Any]) -> None:
    if not changes:
        raise ValidationError("No fields to update.")
    unknown = set(changes) - MUTABLE_TASK_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    if "title" in changes:
        validate_title(changes["title"])
    if "due_date" in changes:
        validate_due_date(changes["due_date"])
    if "status" in changes:
        validate_status(changes["status"])
    if "task_type" in changes:
        validate_task_type(changes["task_type"])


def can_auto_complete(task: Task) -> bool:
    """
    Automatic transitions only move forward to complete and never touch a task whose
    status the user pinned. complete -> incomplete is a user edit only.
    """
    return task.status != TASK_STATUS_COMPLETE and not task.status_override
