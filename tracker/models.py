"""Pydantic models for the upstream snapshot payload and the operator API."""

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

Numeric = Union[int, float, str]


class RawWorker(BaseModel):
    """One ``worker[]`` entry of ``GET /users/{address}``."""

    model_config = ConfigDict(extra="ignore")

    workername: str = ""
    useragent: Optional[str] = None
    lastshare: Numeric = 0
    shares: Numeric = 0
    bestshare: Numeric = "0"
    bestever: Numeric = "0"
    hashrate1m: Numeric = "0"
    hashrate5m: Numeric = "0"
    hashrate1hr: Numeric = "0"
    hashrate1d: Numeric = "0"
    hashrate7d: Numeric = "0"
    started: Optional[Numeric] = None


class RawSnapshot(BaseModel):
    """Body of ``GET {baseURL}/users/{address}``."""

    model_config = ConfigDict(extra="ignore")

    authorised: Numeric
    lastshare: Numeric = 0
    workers: int = 0
    shares: Numeric = 0
    bestshare: Numeric = "0"
    bestever: Numeric = "0"
    hashrate1m: Numeric = "0"
    hashrate5m: Numeric = "0"
    hashrate1hr: Numeric = "0"
    hashrate1d: Numeric = "0"
    hashrate7d: Numeric = "0"
    worker: List[RawWorker] = []


class ResetResponse(BaseModel):
    address: str
    is_active: bool
    last_activated_at: float


class RefreshResponse(BaseModel):
    address: str
    outcome: str
    changed: bool
    dry_run: bool = False


class SummaryResponse(BaseModel):
    batches: int = 0
    users: int = 0
    workers: int = 0
    deactivations: int = 0
    grace_holds: int = 0
    errors: int = 0
    repaired: int = 0
    summary: str = ""
    finished_at: Optional[float] = None
    cache: Dict[str, int] = {}
