"""Health check and clock synchronization API."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from otpclock.clock import ClockSynchronizer
from otpclock.dashboard.deps import get_synchronizer

router = APIRouter(tags=["clock"])


@router.api_route("/", methods=["GET", "HEAD"])
async def health_check():
    """Also serves as the own-origin Date header source."""
    return {"status": "ok"}


@router.get("/api/clock")
async def clock_status(synchronizer: ClockSynchronizer = Depends(get_synchronizer)):
    state = synchronizer.context.state
    return {
        "synchronized": state.synchronized,
        "offset_ms": state.offset_ms,
        "source": state.source,
        "synced_at_ms": state.synced_at_ms,
        "synced_time_ms": synchronizer.synced_time(),
    }


@router.post("/api/clock/sync")
async def clock_sync(synchronizer: ClockSynchronizer = Depends(get_synchronizer)):
    """Manual re-sync."""
    result = await synchronizer.sync()
    return {"ok": result.success, **result.model_dump()}
