import logging
from typing import List, Mapping, Optional

import aiosqlite

logger = logging.getLogger("storage")

TRACKED_COLUMNS = (
    "user_agent",
    "user_agent_raw",
    "hashrate_1m",
    "hashrate_5m",
    "hashrate_1hr",
    "hashrate_1d",
    "hashrate_7d",
    "shares",
    "best_share",
    "best_ever",
    "last_update",
)

_SELECT = (
    "SELECT id, address, name, user_agent, user_agent_raw, hashrate_1m, hashrate_5m, "
    "hashrate_1hr, hashrate_1d, hashrate_7d, shares, best_share, best_ever, "
    "last_update, created_at, updated_at FROM workers"
)


def _row_to_dict(row) -> dict:
    return {
        "id": row[0],
        "address": row[1],
        "name": row[2],
        "user_agent": row[3],
        "user_agent_raw": row[4],
        "hashrate_1m": row[5],
        "hashrate_5m": row[6],
        "hashrate_1hr": row[7],
        "hashrate_1d": row[8],
        "hashrate_7d": row[9],
        "shares": row[10],
        "best_share": row[11],
        "best_ever": row[12],
        "last_update": row[13],
        "created_at": row[14],
        "updated_at": row[15],
    }


class WorkerRepo:
    """Queries and writes for the workers table (unique on address + name).

    Write methods do not commit; run them inside StorageManager.transaction().
    """

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def get(self, address: str, name: str) -> Optional[dict]:
        async with self._db.execute(
            _SELECT + " WHERE address = ? AND name = ?", (address, name)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_dict(row) if row else None

    async def list_for_address(self, address: str) -> List[dict]:
        results = []
        async with self._db.execute(
            _SELECT + " WHERE address = ? ORDER BY name", (address,)
        ) as cursor:
            async for row in cursor:
                results.append(_row_to_dict(row))
        return results

    async def insert(self, address: str, name: str, values: Mapping, now: float) -> int:
        tracked = [c for c in TRACKED_COLUMNS if c in values]
        cols = ["address", "name", *tracked, "created_at", "updated_at"]
        cursor = await self._db.execute(
            f"INSERT INTO workers ({', '.join(cols)}) "
            f"VALUES ({', '.join('?' for _ in cols)})",
            (address, name, *[values[c] for c in tracked], now, now),
        )
        return cursor.lastrowid

    async def update_fields(self, worker_id: int, changes: Mapping, now: float):
        """Write only the given tracked columns."""
        unknown = set(changes) - set(TRACKED_COLUMNS)
        if unknown:
            raise ValueError(f"Untracked worker columns: {sorted(unknown)}")
        if not changes:
            return
        cols = list(changes)
        assignments = ", ".join(f"{c} = ?" for c in cols)
        await self._db.execute(
            f"UPDATE workers SET {assignments}, updated_at = ? WHERE id = ?",
            (*[changes[c] for c in cols], now, worker_id),
        )

    async def count(self, address: Optional[str] = None) -> int:
        if address is None:
            sql, params = "SELECT COUNT(*) FROM workers", ()
        else:
            sql, params = "SELECT COUNT(*) FROM workers WHERE address = ?", (address,)
        async with self._db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0
