from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Optional, Sequence

from duesync.domain.common.errors import NotFoundError, ValidationError
from duesync.domain.common.models import Principal
from duesync.domain.common.ports import Clock, IdGenerator
from duesync.domain.common.time import to_iso
from duesync.domain.tasks.models import Task
from duesync.domain.tasks.ports import TaskRepository
from duesync.domain.tasks.rules import validate_changes, validate_task
from duesync.infra.db.connection import Database

_COLUMNS = (
    "id",
    "user_id",
    "title",
    "due_date",
    "category_id",
    "task_type",
    "status",
    "notes",
    "url",
    "description",
    "external_id",
    "points_possible",
    "due_date_override",
    "status_override",
    "created_at",
    "updated_at",
)


class TasksSqliteRepo(TaskRepository):
    def __init__(self, db: Database, principal: Principal, ids: IdGenerator, clock: Clock) -> None:
        self._db = db
        self._principal = principal
        self._ids = ids
        self._clock = clock

    @property
    def principal(self) -> Principal:
        return self._principal

    @property
    def _uid(self) -> str:
        return self._principal.user_id

    async def list(self) -> Sequence[Task]:
        rows = await self._db.fetchall(
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY due_date ASC, created_at ASC;",
            (self._uid,),
        )
        return [self._row_to_task(r) for r in rows]

    async def get(self, task_id: str) -> Optional[Task]:
        row = await self._db.fetchone("SELECT * FROM tasks WHERE id = ? AND user_id = ?;", (task_id, self._uid))
        return self._row_to_task(row) if row else None

    async def find_by_external_id(self, external_id: str) -> Optional[Task]:
        row = await self._db.fetchone(
            "SELECT * FROM tasks WHERE external_id = ? AND user_id = ?;",
            (external_id, self._uid),
        )
        return self._row_to_task(row) if row else None

    async def create(self, task: Task) -> Task:
        validate_task(task)
        await self._check_category(task.category_id)
        now_iso = to_iso(self._clock.now())
        stored = replace(task, id=self._ids.new_id(), title=task.title.strip(), created_at=now_iso, updated_at=now_iso)

        values = self._task_to_values(stored)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        await self._db.execute(
            f"INSERT INTO tasks({', '.join(_COLUMNS)}) VALUES ({placeholders});",
            values,
        )
        return stored

    async def update(self, task_id: str, changes: Dict[str, Any]) -> Task:
        validate_changes(changes)
        if "category_id" in changes:
            await self._check_category(changes["category_id"])

        sets = dict(changes)
        for flag in ("due_date_override", "status_override"):
            if flag in sets:
                sets[flag] = int(bool(sets[flag]))
        sets["updated_at"] = to_iso(self._clock.now())

        assignments = ", ".join(f"{k} = ?" for k in sets)
        count = await self._db.execute(
            f"UPDATE tasks SET {assignments} WHERE id = ? AND user_id = ?;",
            (*sets.values(), task_id, self._uid),
        )
        if count == 0:
            raise NotFoundError(f"Task not found: {task_id}")

        updated = await self.get(task_id)
        if updated is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return updated

    async def delete(self, task_id: str) -> None:
        count = await self._db.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?;", (task_id, self._uid))
        if count == 0:
            raise NotFoundError(f"Task not found: {task_id}")

    async def _check_category(self, category_id: Optional[str]) -> None:
        if category_id is None:
            return
        row = await self._db.fetchone(
            "SELECT id FROM categories WHERE id = ? AND user_id = ?;",
            (category_id, self._uid),
        )
        if not row:
            raise ValidationError(f"Unknown category: {category_id}")

    def _task_to_values(self, task: Task) -> tuple:
        return (
            task.id,
            self._uid,
            task.title,
            task.due_date,
            task.category_id,
            task.task_type,
            task.status,
            task.notes,
            task.url,
            task.description,
            task.external_id,
            task.points_possible,
            int(task.due_date_override),
            int(task.status_override),
            task.created_at,
            task.updated_at,
        )

    def _row_to_task(self, row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            due_date=row["due_date"],
            category_id=row["category_id"],
            task_type=row["task_type"],
            status=row["status"],
            notes=row["notes"] or "",
            url=row["url"],
            description=row["description"],
            external_id=row["external_id"],
            points_possible=row["points_possible"],
            due_date_override=bool(row["due_date_override"]),
            status_override=bool(row["status_override"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
