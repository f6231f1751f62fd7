"""Request dependencies shared by the route modules."""

from __future__ import annotations

from fastapi import Request

from otpclock.clock import ClockSynchronizer


def get_synchronizer(request: Request) -> ClockSynchronizer:
    return request.app.state.synchronizer
