"""
retention.py - Prune historical stats points past their retention window.
"""

import logging
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from tracker.storage import StorageManager

logger = logging.getLogger("retention")

PARTICIPANT_STATS_RETENTION_HOURS = 72.0
WORKER_STATS_RETENTION_HOURS = 24.0


async def prune_stats(
    storage: "StorageManager",
    participant_hours: float = PARTICIPANT_STATS_RETENTION_HOURS,
    worker_hours: float = WORKER_STATS_RETENTION_HOURS,
) -> Dict[str, int]:
    if participant_hours <= 0 or worker_hours <= 0:
        raise ValueError("retention windows must be positive")
    async with storage.transaction():
        participant_deleted = await storage.stats.delete_participant_points_older_than(participant_hours)
        worker_deleted = await storage.stats.delete_worker_points_older_than(worker_hours)
    logger.info(
        "Pruned %d participant stats point(s) older than %gh, %d worker stats point(s) older than %gh",
        participant_deleted, participant_hours, worker_deleted, worker_hours,
    )
    return {"participant_stats": participant_deleted, "worker_stats": worker_deleted}
