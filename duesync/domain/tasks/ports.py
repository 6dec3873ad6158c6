from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Set

from duesync.domain.common.models import Principal
from duesync.domain.tasks.models import Category, MergeAuditRecord, RejectionRecord, Task, UserSettings


class ScopedRepository(ABC):
    """Every repository is bound to one authenticated principal at construction."""

    @property
    @abstractmethod
    def principal(self) -> Principal: ...


class TaskRepository(ScopedRepository):
    @abstractmethod
    async def list(self) -> Sequence[Task]: ...

    @abstractmethod
    async def get(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def find_by_external_id(self, external_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def create(self, task: Task) -> Task:
        """Insert; the repository assigns id and timestamps."""

    @abstractmethod
    async def update(self, task_id: str, changes: Dict[str, Any]) -> Task: ...

    @abstractmethod
    async def delete(self, task_id: str) -> None: ...


class CategoryRepository(ScopedRepository):
    @abstractmethod
    async def list(self) -> Sequence[Category]: ...

    @abstractmethod
    async def find_by_course(self, course_id: str) -> Optional[Category]: ...

    @abstractmethod
    async def create(self, category: Category) -> Category: ...

    @abstractmethod
    async def update(self, category_id: str, changes: Dict[str, Any]) -> Category: ...

    @abstractmethod
    async def delete(self, category_id: str) -> None:
        """Deletes the category and every task in it."""


class RejectionRepository(ScopedRepository):
    @abstractmethod
    async def list_ids(self) -> Set[str]: ...

    @abstractmethod
    async def add(self, external_id: str) -> RejectionRecord: ...


class SettingsRepository(ScopedRepository):
    @abstractmethod
    async def get(self) -> UserSettings: ...

    @abstractmethod
    async def save_credentials(self, lms_url: str, lms_token: str) -> None: ...


class MergeAuditRepository(ScopedRepository):
    @abstractmethod
    async def add(self, session_id: Optional[str], merged_tasks: int, merged_categories: int) -> MergeAuditRecord: ...
