import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Optional

try:
    import aiosqlite
except ImportError:
    raise ImportError(
        "aiosqlite is required for the storage layer. "
        "Install with: pip install aiosqlite"
    )

from tracker.errors import TransactionError

from ._migrate import run_migrations
from .participants import ParticipantRepo
from .stats import StatsRepo
from .workers import WorkerRepo

logger = logging.getLogger("storage")


class StorageManager:
    """Top-level manager: opens the database, runs migrations, exposes repos."""

    def __init__(self, db_path: str = "tracker.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        # One connection is shared by every coroutine, so writers take turns
        self._write_lock = asyncio.Lock()
        self.participants: Optional[ParticipantRepo] = None
        self.workers: Optional[WorkerRepo] = None
        self.stats: Optional[StatsRepo] = None

    async def initialize(self):
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await run_migrations(self._db, logger)

        self.participants = ParticipantRepo(self._db)
        self.workers = WorkerRepo(self._db)
        self.stats = StatsRepo(self._db)

        logger.info("Storage initialized: %s", self.db_path)

    @asynccontextmanager
    async def transaction(self):
        """All-or-nothing unit of work.

        sqlite errors are rolled back and re-raised as TransactionError; any
        other exception is rolled back and propagates unchanged.
        """
        if self._db is None:
            raise RuntimeError("StorageManager.initialize() has not been called")
        async with self._write_lock:
            await self._db.execute("BEGIN IMMEDIATE")
            try:
                yield self._db
                await self._db.commit()
            except sqlite3.Error as exc:
                await self._rollback()
                raise TransactionError(f"Transaction rolled back: {exc}") from exc
            except BaseException:
                await self._rollback()
                raise

    @asynccontextmanager
    async def read(self):
        """Read that never observes another coroutine's open transaction.

        The connection is shared, so uncommitted rows are visible to every
        coroutine until the writer commits or rolls back; readers queue on the
        same lock as writers. Do not nest inside transaction().
        """
        if self._db is None:
            raise RuntimeError("StorageManager.initialize() has not been called")
        async with self._write_lock:
            yield self._db

    async def _rollback(self):
        try:
            await self._db.rollback()
        except sqlite3.Error:
            logger.exception("Rollback failed")

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Storage closed")
