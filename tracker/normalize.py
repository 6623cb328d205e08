"""
normalize.py - Snapshot normalizer.

Pure, deterministic conversions from the raw upstream fields (hashrates with
unit suffixes, float-like share counters, device identifiers) into canonical
typed values. No I/O happens here.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from tracker.models import RawSnapshot, RawWorker

logger = logging.getLogger("normalize")

UNIT_MULTIPLIERS = {
    "Z": 1e21,
    "E": 1e18,
    "P": 1e15,
    "T": 1e12,
    "G": 1e9,
    "M": 1e6,
    "k": 1e3,
    "K": 1e3,
    "m": 1e-3,
    "u": 1e-6,
    "µ": 1e-6,
}

# Exact powers for the integer conversion
_UNIT_EXPONENTS = {
    "Z": 21, "E": 18, "P": 15, "T": 12, "G": 9, "M": 6,
    "k": 3, "K": 3, "m": -3, "u": -6, "µ": -6,
}

_NUMBER = r"[+-]?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?"
_SUFFIXED_RE = re.compile(r"^(" + _NUMBER + r")([ZEPTGMKkmuµ])$")
_PLAIN_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_BARE_INT_RE = re.compile(r"^[+-]?\d+$")
_WHITESPACE_RE = re.compile(r"\s")

USER_AGENT_MAX_CODEPOINTS = 256


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float):
        return repr(value)
    return str(value).strip()


def _finite_float(value) -> float:
    try:
        result = float(value)
    except OverflowError:
        # Integers past the double range (JSON allows any digit count)
        return 0.0
    return result if math.isfinite(result) else 0.0


def convert_hashrate_float(value: Any) -> float:
    """Convert ``"2.5M"``, ``"370u"``, ``"1e3"`` or a bare number to H/s.

    Unparsable or non-finite input yields 0.0.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _finite_float(value)
    text = _as_text(value)
    if not text:
        return 0.0
    match = _SUFFIXED_RE.match(text)
    if match:
        result = float(match.group(1)) * UNIT_MULTIPLIERS[match.group(2)]
    elif _PLAIN_NUMBER_RE.match(text):
        result = float(text)
    else:
        return 0.0
    return result if math.isfinite(result) else 0.0


def convert_hashrate_int(value: Any) -> int:
    """Exact integer form of a hashrate or counter.

    Same unit table as :func:`convert_hashrate_float`, but values below 1 become
    0 and the result is floored. Bare integer strings never go through a float.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value if value >= 1 else 0
    text = _as_text(value)
    if not text:
        return 0
    if _BARE_INT_RE.match(text):
        parsed = int(text)
        return parsed if parsed >= 1 else 0
    match = _SUFFIXED_RE.match(text)
    try:
        if match:
            number = Decimal(match.group(1)).scaleb(_UNIT_EXPONENTS[match.group(2)])
        elif _PLAIN_NUMBER_RE.match(text):
            number = Decimal(text)
        else:
            return 0
    except InvalidOperation:
        return 0
    if not number.is_finite() or number < 1:
        return 0
    return int(number.to_integral_value(rounding=ROUND_FLOOR))


def big_int_from_float_like(value: Any) -> str:
    """Integer part of a float-like counter as a decimal string.

    ``190827.81 -> "190827"``; ``"9007199254740993.5" -> "9007199254740993"``.
    Fractions are dropped, never rounded.
    """
    if isinstance(value, bool) or value is None:
        return "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return "0"
        return str(int(value))
    text = str(value).strip()
    if not text:
        return "0"
    if _BARE_INT_RE.match(text):
        return str(int(text))
    head = re.match(r"^([+-]?\d+)\.\d*$", text)
    if head:
        return str(int(head.group(1)))
    try:
        number = Decimal(text)
    except InvalidOperation:
        return "0"
    if not number.is_finite():
        return "0"
    return str(int(number))


def to_float(value: Any) -> float:
    """Leading-number float parse for share difficulties; bad input is 0.0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _finite_float(value)
    match = _LEADING_NUMBER_RE.match(_as_text(value))
    if not match:
        return 0.0
    result = float(match.group(0))
    return result if math.isfinite(result) else 0.0


def normalize_user_agent(raw: Optional[str]) -> str:
    """Reduce a device identifier to a short printable token.

    Cut at the first ``/`` and the first whitespace, drop anything outside
    printable ASCII, then cap at 256 code points.
    """
    if not raw:
        return ""
    token = raw.strip().split("/", 1)[0]
    token = _WHITESPACE_RE.split(token, 1)[0]
    token = "".join(ch for ch in token if " " <= ch <= "~")
    return token[:USER_AGENT_MAX_CODEPOINTS]


def derive_worker_name(raw_name: str, address: str) -> str:
    """Worker name relative to its participant address.

    ``"abc" -> ""``, ``"abc.rig1" -> "rig1"``, ``"abc_rig1" -> "rig1"``,
    anything else verbatim.
    """
    raw_name = raw_name or ""
    if raw_name == address:
        return ""
    for sep in (".", "_"):
        prefix = address + sep
        if raw_name.startswith(prefix):
            return raw_name[len(prefix):]
    return raw_name


@dataclass(frozen=True)
class HashrateSet:
    hashrate_1m: float = 0.0
    hashrate_5m: float = 0.0
    hashrate_1hr: float = 0.0
    hashrate_1d: float = 0.0
    hashrate_7d: float = 0.0

    def as_tuple(self) -> tuple:
        return (
            self.hashrate_1m, self.hashrate_5m, self.hashrate_1hr,
            self.hashrate_1d, self.hashrate_7d,
        )


@dataclass(frozen=True)
class NormalizedWorker:
    name: str
    hashrates: HashrateSet
    shares: str
    best_share: float
    best_ever: float
    last_update: int
    user_agent: str
    user_agent_raw: Optional[str]
    started: str


@dataclass(frozen=True)
class NormalizedSnapshot:
    address: str
    authorised: str
    hashrates: HashrateSet
    last_share_epoch: str
    worker_count: int
    shares: float
    best_share: float
    best_ever: float
    workers: List[NormalizedWorker] = field(default_factory=list)

    @property
    def last_share_seconds(self) -> int:
        return int(self.last_share_epoch)


def _hashrates(src: Any) -> HashrateSet:
    return HashrateSet(
        hashrate_1m=convert_hashrate_float(src.hashrate1m),
        hashrate_5m=convert_hashrate_float(src.hashrate5m),
        hashrate_1hr=convert_hashrate_float(src.hashrate1hr),
        hashrate_1d=convert_hashrate_float(src.hashrate1d),
        hashrate_7d=convert_hashrate_float(src.hashrate7d),
    )


def normalize_worker(raw: "RawWorker", address: str) -> NormalizedWorker:
    raw_ua = (raw.useragent or "").strip()
    return NormalizedWorker(
        name=derive_worker_name(raw.workername, address),
        hashrates=_hashrates(raw),
        shares=big_int_from_float_like(raw.shares),
        best_share=to_float(raw.bestshare),
        best_ever=to_float(raw.bestever),
        last_update=int(big_int_from_float_like(raw.lastshare)),
        user_agent=normalize_user_agent(raw_ua),
        user_agent_raw=raw_ua or None,
        started=big_int_from_float_like(raw.started),
    )


def normalize_snapshot(address: str, raw: "RawSnapshot") -> NormalizedSnapshot:
    """Canonicalize one fetched snapshot for ``address``."""
    workers = [normalize_worker(w, address) for w in raw.worker]
    snapshot = NormalizedSnapshot(
        address=address,
        authorised=big_int_from_float_like(raw.authorised),
        hashrates=_hashrates(raw),
        last_share_epoch=big_int_from_float_like(raw.lastshare),
        worker_count=int(raw.workers or 0),
        shares=to_float(raw.shares),
        best_share=to_float(raw.bestshare),
        best_ever=to_float(raw.bestever),
        workers=workers,
    )
    logger.debug("Normalized %s: %d workers", address, len(workers))
    return snapshot
