SCHEMA_VERSION = 3

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at REAL NOT NULL
);

-- Participants: tracked pool addresses
CREATE TABLE IF NOT EXISTS participants (
    address           TEXT PRIMARY KEY,
    authorised        TEXT NOT NULL DEFAULT '0',
    is_active         INTEGER NOT NULL DEFAULT 1,
    last_activated_at REAL,
    created_at        REAL NOT NULL,
    updated_at        REAL NOT NULL
);

-- Participant stats: append-only time series, one row per cycle
CREATE TABLE IF NOT EXISTS participant_stats (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    address      TEXT NOT NULL,
    hashrate_1m  REAL NOT NULL DEFAULT 0.0,
    hashrate_5m  REAL NOT NULL DEFAULT 0.0,
    hashrate_1hr REAL NOT NULL DEFAULT 0.0,
    hashrate_1d  REAL NOT NULL DEFAULT 0.0,
    hashrate_7d  REAL NOT NULL DEFAULT 0.0,
    last_share   TEXT NOT NULL DEFAULT '0',
    worker_count INTEGER NOT NULL DEFAULT 0,
    shares       REAL NOT NULL DEFAULT 0.0,
    best_share   REAL NOT NULL DEFAULT 0.0,
    best_ever    REAL NOT NULL DEFAULT 0.0,
    timestamp    REAL NOT NULL,
    FOREIGN KEY (address) REFERENCES participants(address)
);

-- Workers: one row per (address, derived name)
CREATE TABLE IF NOT EXISTS workers (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    address        TEXT NOT NULL,
    name           TEXT NOT NULL DEFAULT '',
    hashrate_1m    REAL NOT NULL DEFAULT 0.0,
    hashrate_5m    REAL NOT NULL DEFAULT 0.0,
    hashrate_1hr   REAL NOT NULL DEFAULT 0.0,
    hashrate_1d    REAL NOT NULL DEFAULT 0.0,
    hashrate_7d    REAL NOT NULL DEFAULT 0.0,
    shares         TEXT NOT NULL DEFAULT '0',
    best_share     REAL NOT NULL DEFAULT 0.0,
    best_ever      REAL NOT NULL DEFAULT 0.0,
    last_update    INTEGER NOT NULL DEFAULT 0,
    user_agent     TEXT NOT NULL DEFAULT '',
    user_agent_raw TEXT,
    created_at     REAL NOT NULL,
    updated_at     REAL NOT NULL,
    UNIQUE (address, name),
    FOREIGN KEY (address) REFERENCES participants(address)
);

-- Worker stats: append-only, one row per worker per cycle
CREATE TABLE IF NOT EXISTS worker_stats (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    worker_id    INTEGER NOT NULL,
    hashrate_1m  REAL NOT NULL DEFAULT 0.0,
    hashrate_5m  REAL NOT NULL DEFAULT 0.0,
    hashrate_1hr REAL NOT NULL DEFAULT 0.0,
    hashrate_1d  REAL NOT NULL DEFAULT 0.0,
    hashrate_7d  REAL NOT NULL DEFAULT 0.0,
    shares       TEXT NOT NULL DEFAULT '0',
    best_share   REAL NOT NULL DEFAULT 0.0,
    best_ever    REAL NOT NULL DEFAULT 0.0,
    started      TEXT NOT NULL DEFAULT '0',
    timestamp    REAL NOT NULL,
    FOREIGN KEY (worker_id) REFERENCES workers(id)
);

CREATE INDEX IF NOT EXISTS idx_participants_active ON participants(is_active);
CREATE INDEX IF NOT EXISTS idx_participant_stats_addr_ts ON participant_stats(address, timestamp);
CREATE INDEX IF NOT EXISTS idx_participant_stats_ts ON participant_stats(timestamp);
CREATE INDEX IF NOT EXISTS idx_workers_address ON workers(address);
CREATE INDEX IF NOT EXISTS idx_worker_stats_worker_ts ON worker_stats(worker_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_worker_stats_ts ON worker_stats(timestamp);
"""
