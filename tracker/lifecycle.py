"""
lifecycle.py - Participant liveness state machine.

States are Active and Inactive. A participant whose last share is older than
the grace period is deactivated only once its last (re)activation is also at
least that old; fresh share activity always keeps it Active.

  Active --(share stale AND activation age >= 7d)--> Inactive
  Active --(source file gone AND no grace days left)--> Inactive
  Inactive --(explicit reset)--> Active (grace window restarts)
"""

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from tracker.cache import CacheInvalidator
    from tracker.storage import StorageManager

logger = logging.getLogger("lifecycle")

DAY_SEC = 24 * 60 * 60
GRACE_PERIOD_SEC = 7 * DAY_SEC


class LifecycleState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class LifecycleDecision:
    state: LifecycleState
    should_mark_inactive: bool
    # Set only while a stale participant is held Active by the grace period
    days_remaining: Optional[int] = None

    @property
    def in_grace_period(self) -> bool:
        return self.days_remaining is not None


def activation_reference(last_activated_at: Optional[float], created_at: float) -> float:
    return last_activated_at if last_activated_at is not None else created_at


def grace_days_remaining(activation_at: float, now: float) -> int:
    """Whole days of grace left, rounded up; 0 once the window has elapsed."""
    age = now - activation_at
    if age >= GRACE_PERIOD_SEC:
        return 0
    return math.ceil((GRACE_PERIOD_SEC - age) / DAY_SEC)


def evaluate(
    last_share_epoch: int,
    last_activated_at: Optional[float],
    created_at: float,
    now: float,
) -> LifecycleDecision:
    """Decide the participant's state before any stats are written.

    ``last_share_epoch`` is in epoch seconds, the other times in epoch seconds
    as stored.
    """
    share_age = now - int(last_share_epoch)
    if share_age <= GRACE_PERIOD_SEC:
        return LifecycleDecision(LifecycleState.ACTIVE, should_mark_inactive=False)

    activation_age = now - activation_reference(last_activated_at, created_at)
    if activation_age >= GRACE_PERIOD_SEC:
        return LifecycleDecision(LifecycleState.INACTIVE, should_mark_inactive=True)

    return LifecycleDecision(
        LifecycleState.ACTIVE,
        should_mark_inactive=False,
        days_remaining=math.ceil((GRACE_PERIOD_SEC - activation_age) / DAY_SEC),
    )


def evaluate_missing_source(
    last_activated_at: Optional[float], created_at: float, now: float
) -> LifecycleDecision:
    """Decision when the participant's source file has disappeared."""
    remaining = grace_days_remaining(activation_reference(last_activated_at, created_at), now)
    if remaining > 0:
        return LifecycleDecision(LifecycleState.ACTIVE, False, days_remaining=remaining)
    return LifecycleDecision(LifecycleState.INACTIVE, should_mark_inactive=True)


class LifecycleManager:
    """Persists lifecycle transitions and keeps the read cache in step."""

    def __init__(
        self,
        storage: "StorageManager",
        invalidator: Optional["CacheInvalidator"] = None,
    ):
        self._storage = storage
        self._invalidator = invalidator

    async def repair_missing_activation(self) -> int:
        """Backfill NULL last_activated_at from created_at in one statement."""
        async with self._storage.transaction():
            repaired = await self._storage.participants.backfill_last_activated_at()
        if repaired:
            logger.info("Backfilled last_activated_at for %d participant(s)", repaired)
        return repaired

    async def deactivate(self, address: str, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        async with self._storage.transaction():
            updated = await self._storage.participants.set_active(address, False, now)
        if updated:
            logger.info("Marked participant %s as inactive", address)
            self._invalidate(address)
        return bool(updated)

    async def handle_missing_source(
        self, participant: dict, now: Optional[float] = None
    ) -> LifecycleDecision:
        now = time.time() if now is None else now
        decision = evaluate_missing_source(
            participant.get("last_activated_at"), participant["created_at"], now,
        )
        if decision.should_mark_inactive:
            await self.deactivate(participant["address"], now)
        else:
            logger.info(
                "Source file for %s missing, within grace period (%d day(s) remaining)",
                participant["address"], decision.days_remaining,
            )
        return decision

    async def reactivate(self, address: str, now: Optional[float] = None) -> Optional[dict]:
        """Explicit reset: Active again with a fresh grace window."""
        now = time.time() if now is None else now
        async with self._storage.transaction():
            updated = await self._storage.participants.reactivate(address, now)
        if not updated:
            return None
        logger.info("Reactivated participant %s", address)
        self._invalidate(address)
        async with self._storage.read():
            return await self._storage.participants.get(address)

    def _invalidate(self, address: str):
        if self._invalidator is not None:
            self._invalidator.invalidate_participant(address)
