from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CandidateAssignment:
    """An LMS assignment that is not (yet) a local task. Rebuilt on every fetch."""

    external_id: str  # "<course_id>-<assignment_id>"
    course_id: str
    title: str
    due_date: str
    course_name: str = ""
    url: Optional[str] = None
    description: Optional[str] = None
    points_possible: Optional[float] = None
    quiz_id: Optional[str] = None
    has_submitted: bool = False
    unlock_at: Optional[str] = None
    locked_for_user: bool = False
    pending_key: Optional[str] = None  # render key; refreshed when an item is restored

    @property
    def is_quiz(self) -> bool:
        return self.quiz_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateAssignment":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class CourseRef:
    course_id: str
    name: str


@dataclass(frozen=True)
class CollectionResult:
    candidates: Tuple[CandidateAssignment, ...]
    courses: Tuple[CourseRef, ...]


def split_external_id(external_id: Optional[str]) -> Optional[Tuple[str, str]]:
    if not external_id or not isinstance(external_id, str):
        return None
    course_id, _, assignment_id = external_id.partition("-")
    if not course_id or not assignment_id:
        return None
    return course_id, assignment_id


@dataclass(frozen=True)
class AssignmentDetail:
    assignment_id: str
    name: str
    description: Optional[str] = None
    submission_types: List[str] = field(default_factory=list)
    allowed_extensions: List[str] = field(default_factory=list)
    locked_for_user: bool = False
    lock_explanation: Optional[str] = None
    quiz_id: Optional[str] = None
    due_at: Optional[str] = None


@dataclass(frozen=True)
class ReconcileReport:
    due_date_updates: int = 0
    auto_completed: int = 0


@dataclass(frozen=True)
class SyncReport:
    pending: Tuple[CandidateAssignment, ...] = ()
    fetched: int = 0
    auto_approved: int = 0
    categories_changed: bool = False
    reconcile: ReconcileReport = ReconcileReport()
    credentials_error: Optional[str] = None
    credentials_reason: Optional[str] = None
