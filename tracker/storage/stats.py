import time
from typing import List, Mapping, Optional

import aiosqlite

_PARTICIPANT_COLS = (
    "hashrate_1m", "hashrate_5m", "hashrate_1hr", "hashrate_1d", "hashrate_7d",
    "last_share", "worker_count", "shares", "best_share", "best_ever",
)

_WORKER_COLS = (
    "hashrate_1m", "hashrate_5m", "hashrate_1hr", "hashrate_1d", "hashrate_7d",
    "shares", "best_share", "best_ever", "started",
)


class StatsRepo:
    """Append-only participant and worker time series.

    Inserts do not commit; run them inside StorageManager.transaction().
    """

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def add_participant_point(self, address: str, values: Mapping, now: float) -> int:
        cursor = await self._db.execute(
            f"INSERT INTO participant_stats (address, {', '.join(_PARTICIPANT_COLS)}, timestamp) "
            f"VALUES (?, {', '.join('?' for _ in _PARTICIPANT_COLS)}, ?)",
            (address, *[values[c] for c in _PARTICIPANT_COLS], now),
        )
        return cursor.lastrowid

    async def add_worker_point(self, worker_id: int, values: Mapping, now: float) -> int:
        cursor = await self._db.execute(
            f"INSERT INTO worker_stats (worker_id, {', '.join(_WORKER_COLS)}, timestamp) "
            f"VALUES (?, {', '.join('?' for _ in _WORKER_COLS)}, ?)",
            (worker_id, *[values[c] for c in _WORKER_COLS], now),
        )
        return cursor.lastrowid

    async def participant_history(
        self, address: str, hours: Optional[float] = None
    ) -> List[dict]:
        sql = (
            f"SELECT {', '.join(_PARTICIPANT_COLS)}, timestamp "
            "FROM participant_stats WHERE address = ?"
        )
        params: tuple = (address,)
        if hours is not None:
            sql += " AND timestamp >= ?"
            params = (address, time.time() - hours * 3600)
        sql += " ORDER BY timestamp, id"
        results = []
        async with self._db.execute(sql, params) as cursor:
            async for row in cursor:
                point = dict(zip(_PARTICIPANT_COLS, row))
                point["timestamp"] = row[-1]
                results.append(point)
        return results

    async def worker_history(self, worker_id: int) -> List[dict]:
        results = []
        async with self._db.execute(
            f"SELECT {', '.join(_WORKER_COLS)}, timestamp FROM worker_stats "
            "WHERE worker_id = ? ORDER BY timestamp, id",
            (worker_id,),
        ) as cursor:
            async for row in cursor:
                point = dict(zip(_WORKER_COLS, row))
                point["timestamp"] = row[-1]
                results.append(point)
        return results

    async def count_participant_points(self, address: Optional[str] = None) -> int:
        if address is None:
            sql, params = "SELECT COUNT(*) FROM participant_stats", ()
        else:
            sql, params = "SELECT COUNT(*) FROM participant_stats WHERE address = ?", (address,)
        async with self._db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def count_worker_points(self, worker_id: Optional[int] = None) -> int:
        if worker_id is None:
            sql, params = "SELECT COUNT(*) FROM worker_stats", ()
        else:
            sql, params = "SELECT COUNT(*) FROM worker_stats WHERE worker_id = ?", (worker_id,)
        async with self._db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_participant_points_older_than(self, hours: float) -> int:
        cutoff = time.time() - hours * 3600
        cursor = await self._db.execute(
            "DELETE FROM participant_stats WHERE timestamp < ?", (cutoff,)
        )
        return cursor.rowcount

    async def delete_worker_points_older_than(self, hours: float) -> int:
        cutoff = time.time() - hours * 3600
        cursor = await self._db.execute(
            "DELETE FROM worker_stats WHERE timestamp < ?", (cutoff,)
        )
        return cursor.rowcount
