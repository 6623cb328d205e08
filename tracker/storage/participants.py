import logging
from typing import List, Optional

import aiosqlite

logger = logging.getLogger("storage")

_SELECT = (
    "SELECT address, authorised, is_active, last_activated_at, created_at, updated_at "
    "FROM participants"
)


def _row_to_dict(row) -> dict:
    return {
        "address": row[0],
        "authorised": row[1],
        "is_active": bool(row[2]),
        "last_activated_at": row[3],
        "created_at": row[4],
        "updated_at": row[5],
    }


class ParticipantRepo:
    """Queries and writes for the participants table.

    Write methods do not commit; run them inside StorageManager.transaction().
    """

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get(self, address: str) -> Optional[dict]:
        async with self._db.execute(_SELECT + " WHERE address = ?", (address,)) as cursor:
            row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def list_active(self) -> List[dict]:
        results = []
        async with self._db.execute(
            _SELECT + " WHERE is_active = 1 ORDER BY address"
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def count(self, active_only: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM participants"
        if active_only:
            sql += " WHERE is_active = 1"
        async with self._db.execute(sql) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def insert(self, address: str, authorised: str, now: float):
        await self._db.execute(
            "INSERT INTO participants (address, authorised, is_active, last_activated_at, "
            "created_at, updated_at) VALUES (?, ?, 1, ?, ?, ?)",
            (address, authorised, now, now, now),
        )

    async def mark_seen(self, address: str, authorised: str, now: float):
        """Store a changed authorised value and flip the row back to active."""
        await self._db.execute(
            "UPDATE participants SET authorised = ?, is_active = 1, updated_at = ? "
            "WHERE address = ?",
            (authorised, now, address),
        )

    async def set_active(self, address: str, active: bool, now: float) -> int:
        cursor = await self._db.execute(
            "UPDATE participants SET is_active = ?, updated_at = ? WHERE address = ?",
            (1 if active else 0, now, address),
        )
        return cursor.rowcount

    async def reactivate(self, address: str, now: float) -> int:
        cursor = await self._db.execute(
            "UPDATE participants SET is_active = 1, last_activated_at = ?, updated_at = ? "
            "WHERE address = ?",
            (now, now, address),
        )
        return cursor.rowcount

    async def backfill_last_activated_at(self) -> int:
        cursor = await self._db.execute(
            "UPDATE participants SET last_activated_at = created_at "
            "WHERE last_activated_at IS NULL"
        )
        return cursor.rowcount
