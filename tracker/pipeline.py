"""
pipeline.py - One reconciliation cycle for one participant.

fetch -> normalize -> lifecycle check -> deactivate or reconcile.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from tracker import lifecycle
from tracker.fetcher import validate_address
from tracker.normalize import normalize_snapshot

if TYPE_CHECKING:
    from tracker.fetcher import SnapshotFetcher
    from tracker.lifecycle import LifecycleManager
    from tracker.reconciler import Reconciler
    from tracker.storage import StorageManager

logger = logging.getLogger("pipeline")


class Outcome(str, Enum):
    UPDATED = "updated"
    GRACE_HOLD = "grace_hold"
    DEACTIVATED = "deactivated"
    ERROR = "error"


@dataclass
class CycleResult:
    address: str
    outcome: Outcome
    changed: bool = False
    worker_count: int = 0
    days_remaining: Optional[int] = None
    error: Optional[str] = None


class ParticipantPipeline:

    def __init__(
        self,
        storage: "StorageManager",
        fetcher: "SnapshotFetcher",
        reconciler: "Reconciler",
        lifecycle_manager: "LifecycleManager",
    ):
        self._storage = storage
        self._fetcher = fetcher
        self._reconciler = reconciler
        self._lifecycle = lifecycle_manager

    @property
    def lifecycle(self) -> "LifecycleManager":
        return self._lifecycle

    async def update(self, participant: dict, now: Optional[float] = None) -> CycleResult:
        """Run one cycle for a stored participant.

        SnapshotFileNotFoundError and the other fetch errors propagate to the
        caller untouched.
        """
        now = time.time() if now is None else now
        address = participant["address"]
        raw = await self._fetcher.fetch(address)
        snapshot = normalize_snapshot(address, raw)

        decision = lifecycle.evaluate(
            snapshot.last_share_seconds,
            participant.get("last_activated_at"),
            participant["created_at"],
            now,
        )
        if decision.should_mark_inactive:
            await self._lifecycle.deactivate(address, now)
            return CycleResult(address, Outcome.DEACTIVATED)

        changed = await self._reconciler.reconcile(address, snapshot, now=now)
        if decision.in_grace_period:
            logger.info(
                "Participant %s has stale shares, within grace period (%d day(s) remaining)",
                address, decision.days_remaining,
            )
            return CycleResult(
                address, Outcome.GRACE_HOLD, changed=changed,
                worker_count=len(snapshot.workers),
                days_remaining=decision.days_remaining,
            )
        return CycleResult(
            address, Outcome.UPDATED, changed=changed, worker_count=len(snapshot.workers),
        )

    async def update_single(self, address: str, dry_run: bool = False) -> CycleResult:
        """On-demand update of one address, creating it when unknown."""
        validate_address(address)
        async with self._storage.read():
            existing = await self._storage.participants.get(address)
        if existing is not None and not dry_run:
            return await self.update(existing)

        raw = await self._fetcher.fetch(address)
        snapshot = normalize_snapshot(address, raw)
        changed = await self._reconciler.reconcile(address, snapshot, dry_run=dry_run)
        return CycleResult(
            address, Outcome.UPDATED, changed=changed, worker_count=len(snapshot.workers),
        )
