"""Code evaluation API. The secret travels in the body, never the URL."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from otpclock.clock import ClockSynchronizer
from otpclock.dashboard.deps import get_synchronizer
from otpclock.models import WindowCodes
from otpclock.window import WindowCodeProducer

router = APIRouter(tags=["codes"])


class CodesRequest(BaseModel):
    secret: str
    timestamp_ms: int | None = None
    adjacent: bool = False


@router.post("/api/codes", response_model=WindowCodes)
async def window_codes(payload: CodesRequest, synchronizer: ClockSynchronizer = Depends(get_synchronizer)):
    producer = WindowCodeProducer(synchronizer.context)
    return producer.produce(payload.secret, adjacent=payload.adjacent, timestamp_ms=payload.timestamp_ms)
