"""Monitoring router: /api/status and /api/debug/* endpoints."""

from fastapi import APIRouter
from starlette.requests import Request

from tracker.deps import get_server
from tracker.models import SummaryResponse

router = APIRouter()


@router.get("/api/status")
async def server_status(request: Request):
    srv = get_server(request)
    summary = srv.scheduler.last_summary
    last_run = SummaryResponse(**summary.as_dict()) if summary is not None else SummaryResponse()
    last_run.cache = srv.cache.stats()
    return {
        "participants": await srv.storage.participants.count(),
        "active_participants": await srv.storage.participants.count(active_only=True),
        "workers": await srv.storage.workers.count(),
        "last_run": last_run.model_dump(),
    }


@router.get("/api/debug/cache")
async def debug_cache(request: Request):
    srv = get_server(request)
    return srv.cache.stats()
