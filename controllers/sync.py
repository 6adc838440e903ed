from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from db.session import get_db
from helpers import cache_clear_prefix, cache_get
from schemas.responses import ApiResponse
from services.sync_status import STATUS_CACHE_KEY, build_status

router = APIRouter(prefix="/sync", tags=["sync"])


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.post("/run", response_model=ApiResponse[dict])
async def run_sync(
    request: Request,
    since: datetime | None = Query(None, description="Start of the window; required for the very first run"),
):
    """
    Run one sync pass manually (no-op if one is already running).
    After sync, we clear TTL cached invoice endpoints (status etc.)
    """
    scheduler = request.app.state.scheduler
    res = await scheduler.trigger_now(since=_naive_utc(since))

    # Invalidate cached status after sync
    try:
        cache = request.app.state.ttl_cache
        res["ttl_cache_cleared_keys"] = cache_clear_prefix(cache, "invoices:")
    except Exception:
        # Cache is optional; don't break sync response
        pass

    return ApiResponse(data=res)


@router.get("/status", response_model=ApiResponse[dict])
def sync_status(request: Request, db: Session = Depends(get_db)):
    """
    Last sync info + unseen incoming invoices.
    Served from the status-refresh snapshot when fresh.
    """
    cache = request.app.state.ttl_cache
    data = cache_get(cache, STATUS_CACHE_KEY)
    if data is None:
        data = build_status(db)

    return ApiResponse(data={**data, "syncing": request.app.state.scheduler.syncing})
