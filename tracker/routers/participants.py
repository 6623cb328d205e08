"""Participants router: /api/participants/* endpoints."""

from fastapi import APIRouter, HTTPException, Query
from starlette.requests import Request

from tracker.cache import PARTICIPANT_HISTORY_KEY, PARTICIPANT_KEY, WORKER_PREFIX
from tracker.deps import get_server
from tracker.errors import (
    AddressValidationError,
    SnapshotFileNotFoundError,
    TrackerError,
    TransientFetchError,
)
from tracker.fetcher import validate_address
from tracker.models import RefreshResponse, ResetResponse

router = APIRouter()

PARTICIPANT_TTL_SEC = 30.0
HISTORY_TTL_SEC = 60.0


def _checked_address(address: str) -> str:
    try:
        return validate_address(address)
    except AddressValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/api/participants/{address}")
async def get_participant(request: Request, address: str):
    srv = get_server(request)
    address = _checked_address(address)

    async def load():
        async with srv.storage.read():
            participant = await srv.storage.participants.get(address)
            if participant is None:
                # Raised inside the loader so misses are never cached
                raise HTTPException(status_code=404, detail="Participant not found")
            participant["workers"] = await srv.storage.workers.list_for_address(address)
        return participant

    return await srv.cache.get_or_load(
        PARTICIPANT_KEY.format(address=address), PARTICIPANT_TTL_SEC, load,
    )


@router.get("/api/participants/{address}/history")
async def get_participant_history(request: Request, address: str):
    """Retained participant stats points, oldest first."""
    srv = get_server(request)
    address = _checked_address(address)

    async def load():
        async with srv.storage.read():
            if await srv.storage.participants.get(address) is None:
                raise HTTPException(status_code=404, detail="Participant not found")
            points = await srv.storage.stats.participant_history(address)
        return {"address": address, "points": points}

    return await srv.cache.get_or_load(
        PARTICIPANT_HISTORY_KEY.format(address=address), HISTORY_TTL_SEC, load,
    )


@router.get("/api/participants/{address}/workers")
async def get_worker(request: Request, address: str, name: str = Query(default="")):
    """One worker row with its stats points; ``name`` is the stored worker name."""
    srv = get_server(request)
    address = _checked_address(address)

    async def load():
        async with srv.storage.read():
            worker = await srv.storage.workers.get(address, name)
            if worker is None:
                raise HTTPException(status_code=404, detail="Worker not found")
            worker["points"] = await srv.storage.stats.worker_history(worker["id"])
        return worker

    key = WORKER_PREFIX.format(address=address) + name
    return await srv.cache.get_or_load(key, HISTORY_TTL_SEC, load)


@router.post("/api/participants/{address}/reset", response_model=ResetResponse)
async def reset_participant(request: Request, address: str):
    srv = get_server(request)
    address = _checked_address(address)
    participant = await srv.lifecycle.reactivate(address)
    if participant is None:
        raise HTTPException(status_code=404, detail="Participant not found")
    return ResetResponse(
        address=participant["address"],
        is_active=participant["is_active"],
        last_activated_at=participant["last_activated_at"],
    )


@router.post("/api/participants/{address}/refresh", response_model=RefreshResponse)
async def refresh_participant(
    request: Request,
    address: str,
    dry_run: bool = Query(default=False),
):
    srv = get_server(request)
    address = _checked_address(address)
    try:
        result = await srv.pipeline.update_single(address, dry_run=dry_run)
    except SnapshotFileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except TransientFetchError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    except TrackerError as exc:
        raise HTTPException(status_code=500, detail=f"{exc.kind.value}: {exc}")
    return RefreshResponse(
        address=address,
        outcome=result.outcome.value,
        changed=result.changed,
        dry_run=dry_run,
    )
