"""Runtime configuration: defaults, overridden by environment, then CLI flags."""

import os
from dataclasses import dataclass, fields, replace
from typing import Any

DEFAULT_API_URL = "https://solo.ckpool.org"


@dataclass(frozen=True)
class TrackerConfig:
    # Remote base URL, or a local directory holding users/<address> files
    api_url: str = DEFAULT_API_URL
    db_path: str = "data/tracker.db"
    batch_size: int = 10
    max_retries: int = 3
    retry_delay_sec: float = 1.0
    local_read_retries: int = 5
    local_read_backoff_sec: float = 0.05
    http_timeout_sec: float = 10.0
    update_interval_sec: float = 60.0
    api_port: int = 8080
    participant_stats_retention_hours: float = 72.0
    worker_stats_retention_hours: float = 24.0

    @classmethod
    def from_env(cls, environ=None) -> "TrackerConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        overrides: dict = {}
        if env.get("API_URL"):
            overrides["api_url"] = env["API_URL"]
        if env.get("DB_PATH"):
            overrides["db_path"] = env["DB_PATH"]
        if env.get("BATCH_SIZE"):
            overrides["batch_size"] = int(env["BATCH_SIZE"])
        if env.get("UPDATE_INTERVAL_SEC"):
            overrides["update_interval_sec"] = float(env["UPDATE_INTERVAL_SEC"])
        return replace(cfg, **overrides)

    def with_overrides(self, **values: Any) -> "TrackerConfig":
        """Apply non-None overrides (typically parsed CLI flags)."""
        known = {f.name for f in fields(self)}
        picked = {k: v for k, v in values.items() if k in known and v is not None}
        if picked.get("batch_size") is not None and picked["batch_size"] < 1:
            raise ValueError("batch_size must be >= 1")
        return replace(self, **picked)
