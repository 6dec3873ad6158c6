# duesync/infra/db/connection.py
from __future__ import annotations

import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

import aiosqlite

from duesync.domain.common.errors import ConflictError, PersistenceError


class Database:
    """
    Async SQLite helper. Every call opens its own connection with
    aiosqlite.Row rows and foreign keys on; WAL is switched on by executescript,
    which is what migrations go through.

    sqlite3 errors never leave this class: constraint violations surface as
    ConflictError, everything else as PersistenceError.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    @asynccontextmanager
    async def _connect(self, wal: bool = False) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self._path) as conn:
                conn.row_factory = aiosqlite.Row
                if wal:
                    await conn.execute("PRAGMA journal_mode=WAL;")
                await conn.execute("PRAGMA foreign_keys=ON;")
                yield conn
        except sqlite3.IntegrityError as e:
            raise ConflictError(str(e)) from e
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e

    async def executescript(self, sql: str) -> None:
        async with self._connect(wal=True) as conn:
            await conn.executescript(sql)
            await conn.commit()

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Returns the number of affected rows."""
        async with self._connect() as conn:
            cur = await conn.execute(sql, params)
            await conn.commit()
            return cur.rowcount

    async def executemany(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> None:
        async with self._connect() as conn:
            await conn.executemany(sql, seq_of_params)
            await conn.commit()

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        async with self._connect() as conn:
            cur = await conn.execute(sql, params)
            return await cur.fetchone()

    async def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[aiosqlite.Row]:
        async with self._connect() as conn:
            cur = await conn.execute(sql, params)
            return list(await cur.fetchall())
