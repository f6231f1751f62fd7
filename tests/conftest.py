from __future__ import annotations

import httpx
import pytest

from otpclock.clock import ClockSynchronizer, JsonTimeProbe

SERVER_TIME = "2024-01-01T00:00:00+00:00"
SERVER_MS = 1_704_067_200_000


@pytest.fixture
def fake_synchronizer():
    """Synchronizer whose single provider answers from a MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"datetime": SERVER_TIME})

    ticks = iter(range(0, 1_000_000, 100))
    return ClockSynchronizer(
        [JsonTimeProbe("https://time.test/now")],
        probe_timeout_s=1.0,
        transport=httpx.MockTransport(handler),
        monotonic=lambda: next(ticks),
        wall_clock=lambda: SERVER_MS - 2000.0,
    )


@pytest.fixture
def failing_synchronizer():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    return ClockSynchronizer(
        [JsonTimeProbe("https://time.test/now")],
        probe_timeout_s=1.0,
        transport=httpx.MockTransport(handler),
    )
