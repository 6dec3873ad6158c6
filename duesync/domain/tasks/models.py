from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from duesync.constants import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_UNASSIGNED_COLOR,
    TASK_STATUS_INCOMPLETE,
    TASK_TYPE_ASSIGNMENT,
)


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    due_date: str  # ISO date or datetime (UTC) as received
    category_id: Optional[str] = None  # None = uncategorized
    task_type: str = TASK_TYPE_ASSIGNMENT
    status: str = TASK_STATUS_INCOMPLETE
    notes: str = ""
    url: Optional[str] = None
    description: Optional[str] = None
    external_id: Optional[str] = None  # "<course>-<assignment>", None for local tasks
    points_possible: Optional[float] = None
    due_date_override: bool = False  # pinned: sync must not touch due_date
    status_override: bool = False  # pinned: sync must not auto-complete
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(**_known(cls, data))


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    external_course_id: Optional[str] = None
    sync_enabled: bool = True
    sort_order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(**_known(cls, data))


@dataclass(frozen=True)
class RejectionRecord:
    external_id: str
    rejected_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UserSettings:
    lms_url: str = ""
    lms_token: str = ""
    unassigned_color: str = DEFAULT_UNASSIGNED_COLOR

    @property
    def has_credentials(self) -> bool:
        return bool(self.lms_url) and bool(self.lms_token)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSettings":
        return cls(**_known(cls, data))


@dataclass(frozen=True)
class MergeAuditRecord:
    session_id: Optional[str]
    merged_tasks: int
    merged_categories: int
    created_at: str
