"""FastAPI application — clock status and code endpoints for a display client."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from otpclock import __version__
from otpclock.clock import ClockSynchronizer
from otpclock.dashboard.routes import clock, codes

logger = logging.getLogger(__name__)


def create_app(synchronizer: ClockSynchronizer | None = None, sync_on_startup: bool = True) -> FastAPI:
    """Build the app around one session-owned synchronizer."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.synchronizer = synchronizer or ClockSynchronizer()
        if sync_on_startup:
            result = await app.state.synchronizer.sync()
            if not result.success:
                logger.warning("Startup time sync failed, serving codes on local time")
        yield

    app = FastAPI(
        title="otpclock",
        description="TOTP codes on a network-synchronized clock",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(clock.router)
    app.include_router(codes.router)
    return app


app = create_app()
