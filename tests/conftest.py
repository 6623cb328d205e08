"""Shared fixtures for the tracker test suite."""

import os
import sys

import pytest
import pytest_asyncio

sys.path.insert(0, os.path.dirname(__file__))

from factories import ScriptedFetcher  # noqa: E402

from tracker.cache import CacheInvalidator, ReadCache  # noqa: E402
from tracker.lifecycle import LifecycleManager  # noqa: E402
from tracker.pipeline import ParticipantPipeline  # noqa: E402
from tracker.reconciler import Reconciler  # noqa: E402
from tracker.scheduler import BatchScheduler  # noqa: E402
from tracker.storage import StorageManager  # noqa: E402


# ── Storage ───────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def storage():
    sm = StorageManager(":memory:")
    await sm.initialize()
    yield sm
    await sm.close()


# ── Services ──────────────────────────────────────────────────────────────

@pytest.fixture
def cache():
    return ReadCache()


@pytest.fixture
def invalidator(cache):
    return CacheInvalidator(cache)


@pytest.fixture
def fetcher():
    return ScriptedFetcher()


@pytest.fixture
def reconciler(storage, invalidator):
    return Reconciler(storage, invalidator)


@pytest.fixture
def lifecycle_manager(storage, invalidator):
    return LifecycleManager(storage, invalidator)


@pytest.fixture
def pipeline(storage, fetcher, reconciler, lifecycle_manager):
    return ParticipantPipeline(storage, fetcher, reconciler, lifecycle_manager)


@pytest.fixture
def scheduler(storage, pipeline):
    return BatchScheduler(storage, pipeline, batch_size=10)
