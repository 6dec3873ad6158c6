from __future__ import annotations

from typing import Set

from duesync.domain.common.models import Principal
from duesync.domain.common.ports import Clock
from duesync.domain.common.time import to_iso
from duesync.domain.tasks.models import RejectionRecord
from duesync.domain.tasks.ports import RejectionRepository
from duesync.infra.db.connection import Database


class RejectionsSqliteRepo(RejectionRepository):
    def __init__(self, db: Database, principal: Principal, clock: Clock) -> None:
        self._db = db
        self._principal = principal
        self._clock = clock

    @property
    def principal(self) -> Principal:
        return self._principal

    async def list_ids(self) -> Set[str]:
        rows = await self._db.fetchall(
            "SELECT external_id FROM rejected_items WHERE user_id = ?;",
            (self._principal.user_id,),
        )
        return {r["external_id"] for r in rows}

    async def add(self, external_id: str) -> RejectionRecord:
        now_iso = to_iso(self._clock.now())
        # rejecting twice keeps the first timestamp
        await self._db.execute(
            "INSERT OR IGNORE INTO rejected_items(user_id, external_id, rejected_at) VALUES (?, ?, ?);",
            (self._principal.user_id, external_id, now_iso),
        )
        row = await self._db.fetchone(
            "SELECT rejected_at FROM rejected_items WHERE user_id = ? AND external_id = ?;",
            (self._principal.user_id, external_id),
        )
        return RejectionRecord(external_id=external_id, rejected_at=row["rejected_at"] if row else now_iso)
