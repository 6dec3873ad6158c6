from __future__ import annotations

from typing import Optional

from duesync.domain.common.models import Principal
from duesync.domain.common.ports import Clock
from duesync.domain.common.time import to_iso
from duesync.domain.tasks.models import MergeAuditRecord
from duesync.domain.tasks.ports import MergeAuditRepository
from duesync.infra.db.connection import Database


class MergeAuditSqliteRepo(MergeAuditRepository):
    def __init__(self, db: Database, principal: Principal, clock: Clock) -> None:
        self._db = db
        self._principal = principal
        self._clock = clock

    @property
    def principal(self) -> Principal:
        return self._principal

    async def add(self, session_id: Optional[str], merged_tasks: int, merged_categories: int) -> MergeAuditRecord:
        now_iso = to_iso(self._clock.now())
        await self._db.execute(
            """
            INSERT INTO merge_audit(user_id, guest_session_id, merged_tasks_count, merged_categories_count, created_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (self._principal.user_id, session_id, merged_tasks, merged_categories, now_iso),
        )
        return MergeAuditRecord(
            session_id=session_id,
            merged_tasks=merged_tasks,
            merged_categories=merged_categories,
            created_at=now_iso,
        )
