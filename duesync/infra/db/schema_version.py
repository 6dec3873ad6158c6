from __future__ import annotations

from pathlib import Path
from typing import Optional

from duesync.infra.db.connection import Database

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


async def apply_migrations(db: Database, now_iso: str, migrations_dir: Optional[str] = None) -> int:
    """Applies NNN_name.sql files in order; returns how many were new."""
    await db.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL);"
    )

    dir_path = Path(migrations_dir) if migrations_dir else MIGRATIONS_DIR
    files = sorted([p for p in dir_path.glob("*.sql") if p.is_file()])

    applied = 0
    for p in files:
        version = int(p.stem.split("_")[0])

        row = await db.fetchone("SELECT version FROM schema_migrations WHERE version = ?;", (version,))
        if row:
            continue

        sql = p.read_text(encoding="utf-8")
        await db.executescript(sql)

        await db.execute(
            "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?);",
            (version, now_iso),
        )
        applied += 1
    return applied
