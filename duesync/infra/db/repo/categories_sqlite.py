from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Optional, Sequence

from duesync.domain.common.errors import NotFoundError, ValidationError
from duesync.domain.common.models import Principal
from duesync.domain.common.ports import Clock, IdGenerator
from duesync.domain.common.time import to_iso
from duesync.domain.tasks.models import Category
from duesync.domain.tasks.ports import CategoryRepository
from duesync.infra.db.connection import Database

_MUTABLE = frozenset({"name", "color", "external_course_id", "sync_enabled", "sort_order"})


class CategoriesSqliteRepo(CategoryRepository):
    def __init__(self, db: Database, principal: Principal, ids: IdGenerator, clock: Clock) -> None:
        self._db = db
        self._principal = principal
        self._ids = ids
        self._clock = clock

    @property
    def principal(self) -> Principal:
        return self._principal

    async def list(self) -> Sequence[Category]:
        rows = await self._db.fetchall(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY sort_order ASC, name ASC;",
            (self._principal.user_id,),
        )
        return [self._row_to_category(r) for r in rows]

    async def find_by_course(self, course_id: str) -> Optional[Category]:
        row = await self._db.fetchone(
            "SELECT * FROM categories WHERE external_course_id = ? AND user_id = ?;",
            (course_id, self._principal.user_id),
        )
        return self._row_to_category(row) if row else None

    async def create(self, category: Category) -> Category:
        name = (category.name or "").strip()
        if not name:
            raise ValidationError("Category name is required.")
        stored = replace(category, id=self._ids.new_id(), name=name)
        await self._db.execute(
            """
            INSERT INTO categories(id, user_id, name, color, external_course_id, sync_enabled, sort_order, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                stored.id,
                self._principal.user_id,
                stored.name,
                stored.color,
                stored.external_course_id,
                int(stored.sync_enabled),
                stored.sort_order,
                to_iso(self._clock.now()),
            ),
        )
        return stored

    async def update(self, category_id: str, changes: Dict[str, Any]) -> Category:
        if not changes:
            raise ValidationError("No fields to update.")
        unknown = set(changes) - _MUTABLE
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Category name is required.")

        sets = dict(changes)
        if "sync_enabled" in sets:
            sets["sync_enabled"] = int(bool(sets["sync_enabled"]))
        assignments = ", ".join(f"{k} = ?" for k in sets)
        count = await self._db.execute(
            f"UPDATE categories SET {assignments} WHERE id = ? AND user_id = ?;",
            (*sets.values(), category_id, self._principal.user_id),
        )
        if count == 0:
            raise NotFoundError(f"Category not found: {category_id}")

        row = await self._db.fetchone(
            "SELECT * FROM categories WHERE id = ? AND user_id = ?;",
            (category_id, self._principal.user_id),
        )
        if not row:
            raise NotFoundError(f"Category not found: {category_id}")
        return self._row_to_category(row)

    async def delete(self, category_id: str) -> None:
        # tasks go with it via ON DELETE CASCADE
        count = await self._db.execute(
            "DELETE FROM categories WHERE id = ? AND user_id = ?;",
            (category_id, self._principal.user_id),
        )
        if count == 0:
            raise NotFoundError(f"Category not found: {category_id}")

    def _row_to_category(self, row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            external_course_id=row["external_course_id"],
            sync_enabled=bool(row["sync_enabled"]),
            sort_order=int(row["sort_order"] or 0),
        )
