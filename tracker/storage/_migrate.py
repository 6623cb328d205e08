import logging
import sqlite3
import time

from ._schema import SCHEMA_SQL, SCHEMA_VERSION

logger = logging.getLogger("storage")


async def _add_column(db, table: str, col: str, typedef: str, log) -> None:
    try:
        await db.execute(f"ALTER TABLE {table} ADD COLUMN {col} {typedef}")
    except sqlite3.OperationalError as exc:
        # Fresh databases already have the column from SCHEMA_SQL
        log.debug("Skipping %s.%s: %s", table, col, exc)


async def run_migrations(db, logger_override=None):
    log = logger_override or logger
    current_version = 0
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cursor:
            row = await cursor.fetchone()
            if row and row[0] is not None:
                current_version = row[0]
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < SCHEMA_VERSION:
        log.info("Migrating database from v%d to v%d", current_version, SCHEMA_VERSION)
        await db.executescript(SCHEMA_SQL)

        if current_version < 2:
            for col, typedef in [
                ("user_agent", "TEXT NOT NULL DEFAULT ''"),
                ("user_agent_raw", "TEXT"),
            ]:
                await _add_column(db, "workers", col, typedef, log)

        if current_version < 3:
            await _add_column(db, "participants", "last_activated_at", "REAL", log)
            await _add_column(db, "worker_stats", "started", "TEXT NOT NULL DEFAULT '0'", log)
            await db.execute(
                "UPDATE participants SET last_activated_at = created_at "
                "WHERE last_activated_at IS NULL"
            )

        await db.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION, time.time()),
        )
        await db.commit()
        log.info("Migration complete (v%d)", SCHEMA_VERSION)
    else:
        log.debug("Database schema up to date (v%d)", current_version)
