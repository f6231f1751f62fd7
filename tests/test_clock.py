"""Tests for HTTP clock synchronization."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import httpx
import pytest

from otpclock.clock import (
    ClockSynchronizer,
    DateHeaderProbe,
    JsonTimeProbe,
    SyncContext,
    SyncProbe,
    default_probes,
    parse_http_date,
    parse_iso_timestamp,
)
from otpclock.config import DEFAULT_TIME_PROVIDERS

SERVER_MS = datetime(2024, 1, 1, tzinfo=UTC).timestamp() * 1000
LOCAL_MS = SERVER_MS - 5000  # local clock runs 5 seconds slow

PRIMARY = "https://time-a.test/api/now"
SECONDARY = "https://time-b.test/api/now"
ORIGIN = "https://app.test/"


def fake_monotonic(*values: float):
    ticks = iter(values)
    return lambda: next(ticks)


def make_synchronizer(handler, probes, *, monotonic=None, timeout=1.0):
    return ClockSynchronizer(
        probes,
        probe_timeout_s=timeout,
        transport=httpx.MockTransport(handler),
        monotonic=monotonic or fake_monotonic(*range(0, 10_000, 100)),
        wall_clock=lambda: LOCAL_MS,
    )


def test_sync_probe_midpoint():
    probe = SyncProbe(url=PRIMARY, send_time=1000, recv_time=1200, server_time=SERVER_MS)
    assert probe.rtt == 200
    assert probe.estimated_now == SERVER_MS + 100


def test_parse_iso_timestamp_variants():
    assert parse_iso_timestamp("2024-01-01T00:00:00+00:00") == SERVER_MS
    assert parse_iso_timestamp("2024-01-01T00:00:00Z") == SERVER_MS
    # zone-less, seven fractional digits (timeapi.io style)
    assert parse_iso_timestamp("2024-01-01T00:00:00.0000000") == SERVER_MS
    assert parse_iso_timestamp("2024-01-01T07:00:00+07:00") == SERVER_MS


def test_parse_http_date():
    assert parse_http_date("Mon, 01 Jan 2024 00:00:00 GMT") == SERVER_MS


def test_first_provider_fails_second_wins():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.host)
        if request.url.host == "time-a.test":
            return httpx.Response(500)
        return httpx.Response(200, json={"datetime": "2024-01-01T00:00:00+00:00"})

    sync = make_synchronizer(
        handler,
        [JsonTimeProbe(PRIMARY), JsonTimeProbe(SECONDARY)],
        monotonic=fake_monotonic(0, 50, 1000, 1200),
    )
    result = asyncio.run(sync.sync())

    assert seen == ["time-a.test", "time-b.test"]
    assert result.success
    assert result.source == SECONDARY
    assert result.rtt_ms == 200
    assert result.offset_ms == 5100
    assert sync.synchronized
    assert sync.synced_time() == LOCAL_MS + 5100


def test_first_success_wins_without_averaging():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        return httpx.Response(200, json={"dateTime": "2024-01-01T00:00:00"})

    sync = make_synchronizer(handler, [JsonTimeProbe(PRIMARY), JsonTimeProbe(SECONDARY)])
    result = asyncio.run(sync.sync())

    assert result.success
    assert calls == ["time-a.test"]


def test_requests_bypass_cache():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"datetime": "2024-01-01T00:00:00Z"})

    sync = make_synchronizer(handler, [JsonTimeProbe("https://time-a.test/api?timeZone=UTC")])
    asyncio.run(sync.sync())

    request = captured[0]
    assert request.headers["cache-control"] == "no-cache"
    assert "t" in request.url.params
    assert request.url.params["timeZone"] == "UTC"


def test_default_provider_keeps_its_query():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json={"dateTime": "2024-01-01T00:00:00"})

    sync = make_synchronizer(handler, [JsonTimeProbe(DEFAULT_TIME_PROVIDERS[0])])
    assert asyncio.run(sync.sync()).success

    url = seen[0]
    assert url.path == "/api/Time/current/zone"
    assert url.params["timeZone"] == "UTC"
    assert "t" in url.params


def test_missing_field_moves_on():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "time-a.test":
            return httpx.Response(200, json={"unixtime": 1704067200})
        return httpx.Response(200, json={"utc_datetime": "2024-01-01T00:00:00+00:00"})

    sync = make_synchronizer(handler, [JsonTimeProbe(PRIMARY), JsonTimeProbe(SECONDARY)])
    result = asyncio.run(sync.sync())
    assert result.source == SECONDARY


def test_transport_errors_and_bad_json_are_absorbed():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "time-a.test":
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.host == "time-b.test":
            return httpx.Response(200, text="<html>not json</html>")
        return httpx.Response(200, headers={"Date": "Mon, 01 Jan 2024 00:00:00 GMT"})

    sync = make_synchronizer(
        handler,
        [JsonTimeProbe(PRIMARY), JsonTimeProbe(SECONDARY), DateHeaderProbe(ORIGIN)],
        monotonic=fake_monotonic(0, 10, 20, 100, 300),
    )
    result = asyncio.run(sync.sync())

    assert result.success
    assert result.source == ORIGIN
    assert result.offset_ms == 5100


def test_fallback_uses_head():
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append((request.method, request.url.host))
        if request.method == "HEAD":
            return httpx.Response(404, headers={"Date": "Mon, 01 Jan 2024 00:00:00 GMT"})
        return httpx.Response(503)

    sync = make_synchronizer(handler, default_probes([PRIMARY], ORIGIN))
    result = asyncio.run(sync.sync())

    assert methods == [("GET", "time-a.test"), ("HEAD", "app.test")]
    assert result.success


def test_hung_provider_is_abandoned():
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "time-a.test":
            await asyncio.sleep(5)
        return httpx.Response(200, json={"datetime": "2024-01-01T00:00:00Z"})

    sync = make_synchronizer(handler, [JsonTimeProbe(PRIMARY), JsonTimeProbe(SECONDARY)], timeout=0.05)
    result = asyncio.run(sync.sync())

    assert result.success
    assert result.source == SECONDARY


def test_total_failure_keeps_previous_offset():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    sync = make_synchronizer(handler, default_probes([PRIMARY, SECONDARY], ORIGIN))
    sync.context.apply(1234, "https://earlier.test")

    result = asyncio.run(sync.sync())

    assert not result.success
    assert result.offset_ms == 1234
    assert sync.context.offset_ms == 1234
    assert not sync.synchronized
    # unsynchronized: plain local time
    assert sync.synced_time() == int(LOCAL_MS)


def test_failure_without_prior_sync_reports_zero():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    sync = make_synchronizer(handler, [JsonTimeProbe(PRIMARY)])
    result = asyncio.run(sync.sync())

    assert not result.success
    assert result.offset_ms == 0
    assert sync.synced_time() == int(LOCAL_MS)


def test_reentrant_sync_does_not_probe_again():
    calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"datetime": "2024-01-01T00:00:00Z"})

    sync = make_synchronizer(handler, [JsonTimeProbe(PRIMARY)])

    async def both():
        return await asyncio.gather(sync.sync(), sync.sync())

    first, second = asyncio.run(both())

    assert first.success
    assert not second.success
    assert calls == ["time-a.test"]


def test_context_swaps_state_together():
    context = SyncContext(wall_clock=lambda: 1000.0)
    assert not context.synchronized
    assert context.synced_time() == 1000

    state = context.apply(-250, PRIMARY)
    assert state.synchronized and state.offset_ms == -250
    assert context.synced_time() == 750

    after = context.mark_unsynchronized()
    assert after.offset_ms == -250
    assert after.source == PRIMARY
    assert context.synced_time() == 1000


def test_default_probes_skip_fallback_without_origin():
    probes = default_probes([PRIMARY, SECONDARY], "")
    assert [type(p) for p in probes] == [JsonTimeProbe, JsonTimeProbe]
    probes = default_probes([PRIMARY], ORIGIN)
    assert isinstance(probes[-1], DateHeaderProbe)


@pytest.mark.parametrize("payload", [[], "2024-01-01T00:00:00Z", {"datetime": ""}])
def test_unusable_payloads(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    sync = make_synchronizer(handler, [JsonTimeProbe(PRIMARY)])
    assert not asyncio.run(sync.sync()).success


def test_offset_measured_against_context_clock():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"datetime": "2024-01-01T00:00:00Z"})

    context = SyncContext(wall_clock=lambda: SERVER_MS - 3000)
    sync = ClockSynchronizer(
        [JsonTimeProbe(PRIMARY)],
        context=context,
        probe_timeout_s=1.0,
        transport=httpx.MockTransport(handler),
        monotonic=fake_monotonic(0, 200),
        wall_clock=lambda: LOCAL_MS,  # ignored: the context brings its own clock
    )
    result = asyncio.run(sync.sync())

    assert result.offset_ms == 3100
    assert context.synced_time() == SERVER_MS + 100
