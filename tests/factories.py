"""
factories.py - Payload builders and a scripted fetcher shared by the test suite.

Payloads mirror the JSON served at ``{api_url}/users/{address}``.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from tracker.fetcher import validate_address
from tracker.models import RawSnapshot

ADDRESS = "bc1qtestparticipant000"
OTHER_ADDRESS = "bc1qsecondparticipant1"

DAY = 24 * 60 * 60


def make_worker(suffix: str = "rig1",
                address: str = ADDRESS,
                hashrate1m: str = "1.5T",
                shares: Any = 1000.0,
                bestshare: Any = 52301.2,
                bestever: Any = 98000.5,
                lastshare: Optional[int] = None,
                useragent: Optional[str] = "cgminer/4.11.1",
                started: Any = None) -> dict:
    """Build one ``worker[]`` entry; ``suffix=""`` names the bare-address worker."""
    now = int(time.time())
    return {
        "workername": f"{address}.{suffix}" if suffix else address,
        "hashrate1m": hashrate1m,
        "hashrate5m": "1.4T",
        "hashrate1hr": "1.2T",
        "hashrate1d": "1.1T",
        "hashrate7d": "1T",
        "lastshare": now - 30 if lastshare is None else lastshare,
        "shares": shares,
        "bestshare": bestshare,
        "bestever": bestever,
        "useragent": useragent,
        "started": now - DAY if started is None else started,
    }


def make_snapshot(workers: Optional[List[dict]] = None,
                  lastshare: Optional[int] = None,
                  authorised: Any = 1700000000,
                  hashrate1m: str = "3T",
                  shares: Any = 2000.0) -> dict:
    """Build a ``/users/{address}`` body; ``lastshare`` defaults to 30s ago."""
    if workers is None:
        workers = [make_worker()]
    return {
        "hashrate1m": hashrate1m,
        "hashrate5m": "2.9T",
        "hashrate1hr": "2.5T",
        "hashrate1d": "2.2T",
        "hashrate7d": "2T",
        "lastshare": int(time.time()) - 30 if lastshare is None else lastshare,
        "workers": len(workers),
        "shares": shares,
        "bestshare": 52301.2,
        "bestever": 98000.5,
        "authorised": authorised,
        "worker": workers,
    }


class ScriptedFetcher:
    """Stands in for SnapshotFetcher: serves payloads or raises scripted errors.

    Tracks call counts and the peak number of overlapping fetches.
    """

    def __init__(self, delay: float = 0.0):
        self.responses: Dict[str, Any] = {}
        self.calls: List[str] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def set(self, address: str, response: Any):
        self.responses[address] = response

    async def fetch(self, address: str) -> RawSnapshot:
        validate_address(address)
        self.calls.append(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses[address]
            if isinstance(response, BaseException):
                raise response
            return RawSnapshot.model_validate(response)
        finally:
            self.in_flight -= 1

    async def aclose(self):
        pass


async def seed_participant(storage, address: str = ADDRESS,
                           created_at: Optional[float] = None,
                           authorised: str = "0") -> dict:
    """Insert a bare participant row activated at ``created_at``."""
    created_at = time.time() if created_at is None else created_at
    async with storage.transaction():
        await storage.participants.insert(address, authorised, created_at)
    return await storage.participants.get(address)
