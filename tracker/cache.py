"""
cache.py - Read-side response cache and the invalidation hooks the update
pipeline calls into.

ReadCache entries expire after a jittered TTL; concurrent loads of the same key
share a single loader call. A background task sweeps expired entries in
bounded batches.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger("cache")

JITTER_MIN = 0.9
JITTER_RANGE = 0.2
SWEEP_INTERVAL_SEC = 60.0
SWEEP_BATCH = 500

PARTICIPANT_KEY = "participant:{address}"
PARTICIPANT_HISTORY_KEY = "participantHistory:{address}"
WORKER_PREFIX = "workerWithStats:{address}:"
GLOBAL_PREFIXES = ("leaderboard:", "onlineDevices:")


class ReadCache:

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        # Invalidations seen per in-flight key; only tracked while a load runs
        self._generations: Dict[str, int] = {}
        self._clock = clock
        self._sweep_task: Optional[asyncio.Task] = None

    def _expiry(self, ttl: float) -> float:
        jitter = JITTER_MIN + random.random() * JITTER_RANGE
        return self._clock() + ttl * jitter

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[0] <= self._clock():
            del self._entries[key]
            return None
        return entry[1]

    def set(self, key: str, value: Any, ttl: float):
        self._entries[key] = (self._expiry(ttl), value)

    async def get_or_load(self, key: str, ttl: float, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or run ``loader`` once for all concurrent callers."""
        while True:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > self._clock():
                return entry[1]

            pending = self._pending.get(key)
            if pending is None:
                break
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # The leading caller was cancelled, not us: take over the load
                if pending.cancelled() and self._pending.get(key) is not pending:
                    continue
                raise

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        self._generations[key] = 0
        try:
            value = await loader()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unawaited failure doesn't warn
            future.exception()
            raise
        else:
            # Not stored if invalidated mid-load; the value may predate the write
            if self._generations.get(key) == 0:
                self._entries[key] = (self._expiry(ttl), value)
            future.set_result(value)
            return value
        finally:
            self._pending.pop(key, None)
            self._generations.pop(key, None)

    def _bump(self, key: str):
        if key in self._generations:
            self._generations[key] += 1

    def invalidate(self, key: str):
        self._entries.pop(key, None)
        self._bump(key)

    def invalidate_prefix(self, prefix: str):
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]
        for key in [k for k in self._generations if k.startswith(prefix)]:
            self._bump(key)

    def sweep(self, batch: int = SWEEP_BATCH) -> int:
        """Drop up to ``batch`` expired entries; returns how many went."""
        now = self._clock()
        expired = []
        for key, (expires, _) in self._entries.items():
            if expires <= now:
                expired.append(key)
                if len(expired) >= batch:
                    break
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "pending_loads": len(self._pending)}

    async def _sweep_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep()
            if removed:
                logger.debug("Swept %d expired cache entries", removed)

    def start(self, interval: float = SWEEP_INTERVAL_SEC):
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop(interval))

    async def stop(self):
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None


class CacheInvalidator:
    """Tells the read cache which keys a participant update made stale."""

    def __init__(self, cache: Optional[ReadCache] = None):
        self._cache = cache

    def invalidate(self, key: str):
        if self._cache is not None:
            self._cache.invalidate(key)

    def invalidate_prefix(self, prefix: str):
        if self._cache is not None:
            self._cache.invalidate_prefix(prefix)

    def invalidate_participant(self, address: str):
        self.invalidate(PARTICIPANT_KEY.format(address=address))
        self.invalidate(PARTICIPANT_HISTORY_KEY.format(address=address))
        self.invalidate_prefix(WORKER_PREFIX.format(address=address))
        for prefix in GLOBAL_PREFIXES:
            self.invalidate_prefix(prefix)
        logger.debug("Invalidated cache keys for %s", address)
