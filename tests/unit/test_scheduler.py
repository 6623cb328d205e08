"""
test_scheduler.py - Unit tests for the batch scheduler.

Participants are seeded directly into in-memory SQLite and served by a
ScriptedFetcher, so each test controls exactly which fetches succeed, fail
or report a missing source file.
"""

import time

import pytest

from factories import DAY, ScriptedFetcher, make_snapshot, seed_participant

from tracker.errors import SnapshotFileNotFoundError, TransientFetchError
from tracker.pipeline import ParticipantPipeline
from tracker.scheduler import BatchScheduler, RunSummary, format_summary

pytestmark = pytest.mark.asyncio


def _addr(i: int) -> str:
    return f"bc1qaddr{i:03d}"


async def _seed_many(storage, fetcher, count, created_at=None):
    for i in range(count):
        await seed_participant(storage, _addr(i), created_at=created_at)
        fetcher.set(_addr(i), make_snapshot())


# ── Summary formatting ────────────────────────────────────────────────────

class TestSummary:

    async def test_singular_batch(self):
        assert format_summary(RunSummary(batches=1, users=2, workers=3)) == \
            "Processed 1 batch, 2 users, 3 workers"

    async def test_plural_batches(self):
        assert format_summary(RunSummary(batches=3, users=25, workers=25)) == \
            "Processed 3 batches, 25 users, 25 workers"

    async def test_invalid_batch_size(self, storage, pipeline):
        with pytest.raises(ValueError):
            BatchScheduler(storage, pipeline, batch_size=0)


# ── Batching ──────────────────────────────────────────────────────────────

class TestBatching:

    async def test_no_participants(self, scheduler):
        summary = await scheduler.run()
        assert summary.batches == 0
        assert format_summary(summary) == "Processed 0 batches, 0 users, 0 workers"
        assert scheduler.last_summary is summary

    async def test_batches_are_bounded(self, storage, reconciler, lifecycle_manager):
        fetcher = ScriptedFetcher(delay=0.01)
        pipeline = ParticipantPipeline(storage, fetcher, reconciler, lifecycle_manager)
        await _seed_many(storage, fetcher, 25)

        summary = await BatchScheduler(storage, pipeline, batch_size=10).run()

        assert summary.batches == 3
        assert summary.users == 25
        assert summary.workers == 25
        assert summary.errors == 0
        assert 1 < fetcher.max_in_flight <= 10
        assert sorted(fetcher.calls) == [_addr(i) for i in range(25)]

    async def test_inactive_participants_skipped(self, storage, fetcher, scheduler):
        await _seed_many(storage, fetcher, 3)
        async with storage.transaction():
            await storage.participants.set_active(_addr(1), False, time.time())

        summary = await scheduler.run()
        assert summary.users == 2
        assert _addr(1) not in fetcher.calls


# ── Isolation ─────────────────────────────────────────────────────────────

class TestIsolation:

    async def test_failures_do_not_abort_batch(self, storage, fetcher, scheduler):
        await _seed_many(storage, fetcher, 5)
        fetcher.set(_addr(1), TransientFetchError("HTTP error! status: 502"))
        fetcher.set(_addr(3), RuntimeError("unexpected"))

        summary = await scheduler.run()

        assert summary.errors == 2
        assert summary.users == 3
        assert sorted(summary.failed) == [_addr(1), _addr(3)]
        assert await storage.stats.count_participant_points(_addr(0)) == 1
        assert await storage.stats.count_participant_points(_addr(1)) == 0

    async def test_missing_source_within_grace(self, storage, fetcher, scheduler):
        await seed_participant(storage, _addr(0), created_at=time.time() - DAY)
        fetcher.set(_addr(0), SnapshotFileNotFoundError("User file not found"))

        summary = await scheduler.run()

        assert summary.grace_holds == 1
        assert summary.deactivations == 0
        assert summary.users == 0
        assert (await storage.participants.get(_addr(0)))["is_active"] is True

    async def test_missing_source_after_grace(self, storage, fetcher, scheduler):
        await seed_participant(storage, _addr(0), created_at=time.time() - 8 * DAY)
        fetcher.set(_addr(0), SnapshotFileNotFoundError("User file not found"))

        summary = await scheduler.run()

        assert summary.deactivations == 1
        assert summary.deactivated == [_addr(0)]
        assert (await storage.participants.get(_addr(0)))["is_active"] is False


# ── Lifecycle inside a run ────────────────────────────────────────────────

class TestLifecycleInRun:

    async def test_stale_share_old_activation_deactivates(self, storage, fetcher, scheduler):
        await seed_participant(storage, _addr(0), created_at=time.time() - 10 * DAY)
        fetcher.set(_addr(0), make_snapshot(lastshare=int(time.time() - 9 * DAY)))

        summary = await scheduler.run()

        assert summary.deactivations == 1
        assert (await storage.participants.get(_addr(0)))["is_active"] is False
        assert await storage.stats.count_participant_points(_addr(0)) == 0

    async def test_stale_share_recent_activation_holds(self, storage, fetcher, scheduler):
        await seed_participant(storage, _addr(0), created_at=time.time() - 2 * DAY)
        fetcher.set(_addr(0), make_snapshot(lastshare=int(time.time() - 9 * DAY)))

        summary = await scheduler.run()

        assert summary.grace_holds == 1
        assert summary.users == 1
        assert summary.grace_period == [_addr(0)]
        assert await storage.stats.count_participant_points(_addr(0)) == 1

    async def test_repairs_missing_activation_first(self, storage, fetcher, scheduler):
        await _seed_many(storage, fetcher, 2)
        async with storage.transaction() as db:
            await db.execute("UPDATE participants SET last_activated_at = NULL")

        summary = await scheduler.run()

        assert summary.repaired == 2
        for i in range(2):
            row = await storage.participants.get(_addr(i))
            assert row["last_activated_at"] == row["created_at"]
