from __future__ import annotations

from duesync.domain.common.models import Principal
from duesync.domain.common.ports import Clock
from duesync.domain.common.time import to_iso
from duesync.domain.tasks.models import UserSettings
from duesync.domain.tasks.ports import SettingsRepository
from duesync.infra.db.connection import Database


class SettingsSqliteRepo(SettingsRepository):
    def __init__(self, db: Database, principal: Principal, clock: Clock) -> None:
        self._db = db
        self._principal = principal
        self._clock = clock

    @property
    def principal(self) -> Principal:
        return self._principal

    async def get(self) -> UserSettings:
        row = await self._db.fetchone("SELECT * FROM settings WHERE user_id = ?;", (self._principal.user_id,))
        if not row:
            return UserSettings()
        return UserSettings(
            lms_url=row["lms_url"] or "",
            lms_token=row["lms_token"] or "",
            unassigned_color=row["unassigned_color"],
        )

    async def save_credentials(self, lms_url: str, lms_token: str) -> None:
        await self._db.execute(
            """
            INSERT INTO settings(user_id, lms_url, lms_token, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
              lms_url = excluded.lms_url,
              lms_token = excluded.lms_token,
              updated_at = excluded.updated_at;
            """,
            (self._principal.user_id, lms_url, lms_token, to_iso(self._clock.now())),
        )
