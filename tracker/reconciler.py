"""
reconciler.py - Diff a normalized snapshot against stored state.

One participant is reconciled inside one transaction:

  1. upsert the participant row (only when authorised or is_active differs)
  2. append a participant stats point (always)
  3. insert new workers, update existing ones only on a real field change
  4. append one worker stats point per worker entry (always)

The return value says whether any participant or worker row was mutated.
With ``dry_run`` the same comparison runs against stored rows and nothing is
written.
"""

import logging
import time
from typing import TYPE_CHECKING, Dict, Optional

from tracker.normalize import NormalizedSnapshot, NormalizedWorker

if TYPE_CHECKING:
    from tracker.cache import CacheInvalidator
    from tracker.storage import StorageManager

logger = logging.getLogger("reconciler")

_HASHRATE_COLUMNS = ("hashrate_1m", "hashrate_5m", "hashrate_1hr", "hashrate_1d", "hashrate_7d")


def worker_values(worker: NormalizedWorker) -> Dict[str, object]:
    """Tracked worker columns for a fetched worker entry."""
    values: Dict[str, object] = dict(zip(_HASHRATE_COLUMNS, worker.hashrates.as_tuple()))
    values.update({
        "user_agent": worker.user_agent,
        "user_agent_raw": worker.user_agent_raw,
        "shares": worker.shares,
        "best_share": worker.best_share,
        "best_ever": worker.best_ever,
        "last_update": worker.last_update,
    })
    return values


def _num(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def worker_changes(existing: dict, worker: NormalizedWorker) -> Dict[str, object]:
    """Columns whose fetched value differs from the stored row."""
    new = worker_values(worker)
    changes: Dict[str, object] = {}
    if (existing.get("user_agent") or "") != (new["user_agent"] or ""):
        changes["user_agent"] = new["user_agent"]
    if (existing.get("user_agent_raw") or "") != (new["user_agent_raw"] or ""):
        changes["user_agent_raw"] = new["user_agent_raw"]
    for col in _HASHRATE_COLUMNS + ("best_share", "best_ever"):
        if _num(existing.get(col)) != _num(new[col]):
            changes[col] = new[col]
    # Counters are compared as exact integers, never through a float
    if _int(existing.get("shares")) != _int(new["shares"]):
        changes["shares"] = new["shares"]
    if _int(existing.get("last_update")) != _int(new["last_update"]):
        changes["last_update"] = new["last_update"]
    return changes


def participant_needs_update(existing: Optional[dict], snapshot: NormalizedSnapshot) -> bool:
    if existing is None:
        return True
    return str(existing["authorised"]) != snapshot.authorised or not existing["is_active"]


def participant_point(snapshot: NormalizedSnapshot) -> Dict[str, object]:
    values: Dict[str, object] = dict(zip(_HASHRATE_COLUMNS, snapshot.hashrates.as_tuple()))
    values.update({
        "last_share": snapshot.last_share_epoch,
        "worker_count": snapshot.worker_count,
        "shares": snapshot.shares,
        "best_share": snapshot.best_share,
        "best_ever": snapshot.best_ever,
    })
    return values


def worker_point(worker: NormalizedWorker) -> Dict[str, object]:
    values: Dict[str, object] = dict(zip(_HASHRATE_COLUMNS, worker.hashrates.as_tuple()))
    values.update({
        "shares": worker.shares,
        "best_share": worker.best_share,
        "best_ever": worker.best_ever,
        "started": worker.started,
    })
    return values


class Reconciler:
    """Minimal-write persistence of normalized snapshots."""

    def __init__(
        self,
        storage: "StorageManager",
        invalidator: Optional["CacheInvalidator"] = None,
    ):
        self._storage = storage
        self._invalidator = invalidator

    async def reconcile(
        self,
        address: str,
        snapshot: NormalizedSnapshot,
        dry_run: bool = False,
        now: Optional[float] = None,
    ) -> bool:
        if dry_run:
            return await self._would_change(address, snapshot)

        now = time.time() if now is None else now
        participants = self._storage.participants
        workers = self._storage.workers
        stats = self._storage.stats
        changed = False
        updated_workers = 0

        async with self._storage.transaction():
            existing = await participants.get(address)
            if existing is None:
                await participants.insert(address, snapshot.authorised, now)
                changed = True
            elif participant_needs_update(existing, snapshot):
                await participants.mark_seen(address, snapshot.authorised, now)
                changed = True

            await stats.add_participant_point(address, participant_point(snapshot), now)

            for worker in snapshot.workers:
                row = await workers.get(address, worker.name)
                if row is None:
                    worker_id = await workers.insert(address, worker.name, worker_values(worker), now)
                    changed = True
                    updated_workers += 1
                else:
                    worker_id = row["id"]
                    diff = worker_changes(row, worker)
                    if diff:
                        await workers.update_fields(worker_id, diff, now)
                        changed = True
                        updated_workers += 1
                await stats.add_worker_point(worker_id, worker_point(worker), now)

        logger.info(
            "Reconciled %s: %d worker(s), %d row(s) written, changed=%s",
            address, len(snapshot.workers), updated_workers, changed,
        )
        # Every committed cycle appends to the historical series
        if self._invalidator is not None:
            self._invalidator.invalidate_participant(address)
        return changed

    async def _would_change(self, address: str, snapshot: NormalizedSnapshot) -> bool:
        async with self._storage.read():
            existing = await self._storage.participants.get(address)
            if participant_needs_update(existing, snapshot):
                return True
            for worker in snapshot.workers:
                row = await self._storage.workers.get(address, worker.name)
                if row is None or worker_changes(row, worker):
                    return True
        return False
