from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Generic, Optional, Tuple, TypeVar

from duesync.domain.tasks.models import Category, Task, UserSettings

T = TypeVar("T")


class MergeResolution(str, Enum):
    """
    What to do with a local task that duplicates an account task.
    MINE: overwrite the account copy with the local one.
    THEIRS: keep the account copy as is (default).
    BOTH: keep both; the local copy is inserted without its external id.
    """

    MINE = "mine"
    THEIRS = "theirs"
    BOTH = "both"


DEFAULT_RESOLUTION = MergeResolution.THEIRS


@dataclass(frozen=True)
class DuplicatePair(Generic[T]):
    local: T
    remote: T
    rule: str

    @property
    def key(self) -> str:
        return f"{self.local.id}-{self.remote.id}"


@dataclass(frozen=True)
class MergeRequest:
    session_id: Optional[str]
    tasks: Tuple[Task, ...] = ()
    categories: Tuple[Category, ...] = ()
    settings: Optional[UserSettings] = None
    # keyed by local task id
    resolutions: Dict[str, MergeResolution] = field(default_factory=dict)

    def resolution_for(self, task_id: str) -> MergeResolution:
        value = self.resolutions.get(task_id)
        if value is None:
            return DEFAULT_RESOLUTION
        return MergeResolution(value)

    @property
    def is_empty(self) -> bool:
        return not self.tasks and not self.categories


@dataclass(frozen=True)
class MergeResult:
    success: bool
    merged_tasks: int = 0
    merged_categories: int = 0
    credentials_copied: bool = False


@dataclass(frozen=True)
class MergePreview:
    task_duplicates: Tuple[DuplicatePair[Task], ...]
    category_duplicates: Tuple[DuplicatePair[Category], ...]
    unique_tasks: Tuple[Task, ...]
    unique_categories: Tuple[Category, ...]
