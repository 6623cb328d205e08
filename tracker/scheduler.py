"""
scheduler.py - Batch scheduler.

Drives every Active participant through the pipeline in fixed-size batches.
All participants of a batch run concurrently; the next batch starts only once
the previous one has fully settled. A failure is confined to its own
participant.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from tracker.errors import ErrorKind, SnapshotFileNotFoundError, classify_error
from tracker.pipeline import CycleResult, Outcome

if TYPE_CHECKING:
    from tracker.pipeline import ParticipantPipeline
    from tracker.storage import StorageManager

logger = logging.getLogger("scheduler")

BATCH_SIZE = 10


@dataclass
class RunSummary:
    batches: int = 0
    users: int = 0
    workers: int = 0
    deactivations: int = 0
    grace_holds: int = 0
    errors: int = 0
    repaired: int = 0
    success: List[str] = field(default_factory=list)
    deactivated: List[str] = field(default_factory=list)
    grace_period: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    finished_at: Optional[float] = None

    def record(self, result: CycleResult):
        if result.outcome in (Outcome.UPDATED, Outcome.GRACE_HOLD):
            self.users += 1
            self.workers += result.worker_count
            self.success.append(result.address)
        if result.outcome == Outcome.GRACE_HOLD:
            self.grace_holds += 1
            self.grace_period.append(result.address)
        elif result.outcome == Outcome.DEACTIVATED:
            self.deactivations += 1
            self.deactivated.append(result.address)
        elif result.outcome == Outcome.ERROR:
            self.errors += 1
            self.failed.append(result.address)

    def as_dict(self) -> dict:
        return {
            "batches": self.batches,
            "users": self.users,
            "workers": self.workers,
            "deactivations": self.deactivations,
            "grace_holds": self.grace_holds,
            "errors": self.errors,
            "repaired": self.repaired,
            "summary": format_summary(self),
            "finished_at": self.finished_at,
        }


def format_summary(summary: RunSummary) -> str:
    noun = "batch" if summary.batches == 1 else "batches"
    return f"Processed {summary.batches} {noun}, {summary.users} users, {summary.workers} workers"


class BatchScheduler:

    def __init__(
        self,
        storage: "StorageManager",
        pipeline: "ParticipantPipeline",
        batch_size: int = BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._storage = storage
        self._pipeline = pipeline
        self.batch_size = batch_size
        self.last_summary: Optional[RunSummary] = None

    async def run(self, now: Optional[float] = None) -> RunSummary:
        """One full pass over all Active participants."""
        summary = RunSummary()
        summary.repaired = await self._pipeline.lifecycle.repair_missing_activation()

        async with self._storage.read():
            participants = await self._storage.participants.list_active()
        if not participants:
            logger.info("No active participants found")

        total_batches = (len(participants) + self.batch_size - 1) // self.batch_size
        for start in range(0, len(participants), self.batch_size):
            batch = participants[start:start + self.batch_size]
            summary.batches += 1
            logger.info("Processing batch %d of %d", summary.batches, total_batches)
            results = await asyncio.gather(*(self._run_one(p, now) for p in batch))
            for result in results:
                summary.record(result)

        summary.finished_at = time.time()
        self.last_summary = summary
        logger.info(
            "%s (deactivated=%d grace=%d errors=%d)",
            format_summary(summary), summary.deactivations, summary.grace_holds, summary.errors,
        )
        return summary

    async def _run_one(self, participant: dict, now: Optional[float]) -> CycleResult:
        address = participant["address"]
        try:
            return await self._pipeline.update(participant, now)
        except SnapshotFileNotFoundError:
            return await self._handle_missing_source(participant, now)
        except Exception as exc:
            kind = classify_error(exc)
            if kind is None:
                logger.exception("Failed to update participant %s", address)
            else:
                logger.warning("Failed to update participant %s [%s]: %s", address, kind.value, exc)
            return CycleResult(address, Outcome.ERROR, error=str(exc))

    async def _handle_missing_source(self, participant: dict, now: Optional[float]) -> CycleResult:
        address = participant["address"]
        try:
            decision = await self._pipeline.lifecycle.handle_missing_source(participant, now)
        except Exception as exc:
            logger.warning("Grace check failed for %s [%s]: %s", address,
                           (classify_error(exc) or ErrorKind.TRANSACTION).value, exc)
            return CycleResult(address, Outcome.ERROR, error=str(exc))
        if decision.should_mark_inactive:
            return CycleResult(address, Outcome.DEACTIVATED)
        return CycleResult(address, Outcome.GRACE_HOLD, days_remaining=decision.days_remaining)
