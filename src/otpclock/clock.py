"""Network time estimation over plain HTTP.

No NTP socket is used. Each provider is asked for its current time, the
round trip is timed with a monotonic clock, and the server timestamp is
assumed to have been taken halfway through the round trip:

    estimated_now = server_time + rtt / 2
    offset        = estimated_now - local_wall_clock

Providers are tried strictly in order and the first usable answer wins.
If all of them fail, a HEAD request to our own origin is read for its
``Date`` header. Failure is never fatal: the stored offset is kept and
callers fall back to local time.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Protocol

import httpx

from otpclock.config import settings
from otpclock.models import ClockState, SyncResult

logger = logging.getLogger(__name__)

# Field names used by the supported JSON time APIs
TIMESTAMP_FIELDS = ("datetime", "dateTime", "utc_datetime")

_NO_CACHE = {"Cache-Control": "no-cache", "Pragma": "no-cache"}

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0


@dataclass
class SyncProbe:
    """One timed provider answer. Discarded once the offset is derived."""
    url: str
    send_time: float  # monotonic ms
    recv_time: float  # monotonic ms
    server_time: float  # epoch ms

    @property
    def rtt(self) -> float:
        return self.recv_time - self.send_time

    @property
    def estimated_now(self) -> float:
        return self.server_time + self.rtt / 2


def parse_iso_timestamp(value: str) -> float:
    """ISO-8601 string to epoch ms. Zone-less values are read as UTC."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp() * 1000.0


def parse_http_date(value: str) -> float:
    """RFC 7231 HTTP-date to epoch ms."""
    dt = parsedate_to_datetime(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp() * 1000.0


class TimeProbe(Protocol):
    url: str

    async def attempt(self, client: httpx.AsyncClient, monotonic: Clock) -> SyncProbe | None:
        """Return a timed answer, None if the response carries no usable time.

        Transport errors propagate; the synchronizer absorbs them.
        """
        ...


@dataclass
class JsonTimeProbe:
    """GET a JSON time API and read the first known ISO-8601 field."""
    url: str
    fields: Sequence[str] = TIMESTAMP_FIELDS

    async def attempt(self, client: httpx.AsyncClient, monotonic: Clock) -> SyncProbe | None:
        send_time = monotonic()
        # merge, keeping any query the provider URL already carries
        url = httpx.URL(self.url).copy_merge_params({"t": f"{send_time:.0f}"})
        resp = await client.get(url, headers=_NO_CACHE)
        recv_time = monotonic()
        if resp.is_error:
            logger.warning("Time provider %s answered HTTP %d", self.url, resp.status_code)
            return None

        data = resp.json()
        if not isinstance(data, dict):
            return None
        raw = next((data[f] for f in self.fields if data.get(f)), None)
        if not raw:
            logger.warning("Time provider %s returned no timestamp field", self.url)
            return None

        return SyncProbe(
            url=self.url,
            send_time=send_time,
            recv_time=recv_time,
            server_time=parse_iso_timestamp(str(raw)),
        )


@dataclass
class DateHeaderProbe:
    """HEAD our own origin and read the standard Date response header."""
    url: str

    async def attempt(self, client: httpx.AsyncClient, monotonic: Clock) -> SyncProbe | None:
        send_time = monotonic()
        resp = await client.head(self.url, headers=_NO_CACHE)
        recv_time = monotonic()

        date_header = resp.headers.get("date")
        if not date_header:
            logger.warning("No Date header from %s", self.url)
            return None

        return SyncProbe(
            url=self.url,
            send_time=send_time,
            recv_time=recv_time,
            server_time=parse_http_date(date_header),
        )


class SyncContext:
    """Session-owned offset state, read on every tick.

    Offset and flag live in one immutable ClockState swapped under a lock,
    so readers never see a half-written pair.
    """

    def __init__(self, wall_clock: Clock = wall_clock_ms) -> None:
        self._wall_clock = wall_clock
        self._state = ClockState()
        self._lock = threading.Lock()

    @property
    def state(self) -> ClockState:
        with self._lock:
            return self._state

    @property
    def synchronized(self) -> bool:
        return self.state.synchronized

    @property
    def offset_ms(self) -> int:
        return self.state.offset_ms

    def local_time(self) -> int:
        return int(self._wall_clock())

    def synced_time(self) -> int:
        """Epoch ms corrected by the offset, or plain local time when unsynchronized."""
        state = self.state
        now = self._wall_clock()
        if not state.synchronized:
            return int(now)
        return int(now + state.offset_ms)

    def apply(self, offset_ms: int, source: str) -> ClockState:
        new = ClockState(
            offset_ms=offset_ms,
            synchronized=True,
            source=source,
            synced_at_ms=int(self._wall_clock()),
        )
        with self._lock:
            self._state = new
        return new

    def mark_unsynchronized(self) -> ClockState:
        """Keep the last offset on record but stop applying it."""
        with self._lock:
            self._state = self._state.model_copy(update={"synchronized": False})
            return self._state


def default_probes(
    providers: Sequence[str] | None = None,
    fallback_origin: str | None = None,
) -> list[TimeProbe]:
    """Build the ordered probe list from settings (or explicit overrides)."""
    urls = settings.time_providers if providers is None else providers
    origin = settings.fallback_origin if fallback_origin is None else fallback_origin
    probes: list[TimeProbe] = [JsonTimeProbe(url) for url in urls]
    if origin:
        probes.append(DateHeaderProbe(origin))
    return probes


class ClockSynchronizer:
    """Estimates the local clock offset from an ordered list of probes.

    The last probe in the list is treated as the fallback only by position;
    every probe goes through the same attempt/absorb loop.
    """

    def __init__(
        self,
        probes: Sequence[TimeProbe] | None = None,
        *,
        context: SyncContext | None = None,
        probe_timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        monotonic: Clock = monotonic_ms,
        wall_clock: Clock = wall_clock_ms,
    ) -> None:
        """`wall_clock` only seeds a new context; an explicit `context` keeps its own clock."""
        self.probes = list(default_probes() if probes is None else probes)
        self.context = context or SyncContext(wall_clock=wall_clock)
        self.probe_timeout_s = settings.probe_timeout_s if probe_timeout_s is None else probe_timeout_s
        self._transport = transport
        self._monotonic = monotonic
        self._sync_lock = asyncio.Lock()

    @property
    def synchronized(self) -> bool:
        return self.context.synchronized

    def synced_time(self) -> int:
        return self.context.synced_time()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.probe_timeout_s,
            follow_redirects=True,
        )

    async def _attempt(self, client: httpx.AsyncClient, probe: TimeProbe) -> SyncProbe | None:
        try:
            async with asyncio.timeout(self.probe_timeout_s):
                return await probe.attempt(client, self._monotonic)
        except TimeoutError:
            logger.warning("Time provider %s timed out after %.1fs", probe.url, self.probe_timeout_s)
        except (httpx.HTTPError, ValueError):
            logger.warning("Failed to sync with %s", probe.url, exc_info=True)
        return None

    async def sync(self) -> SyncResult:
        """Run one synchronization round.

        A call made while another round is in flight returns the current
        state without probing.
        """
        if self._sync_lock.locked():
            state = self.context.state
            return SyncResult(success=state.synchronized, offset_ms=state.offset_ms, source=state.source)

        async with self._sync_lock:
            async with self._client() as client:
                for probe in self.probes:
                    result = await self._attempt(client, probe)
                    if result is None:
                        continue

                    offset = round(result.estimated_now - self.context.local_time())
                    self.context.apply(offset, result.url)
                    logger.info("Synced via %s", result.url)
                    logger.info("RTT: %.2fms | Offset: %dms", result.rtt, offset)
                    return SyncResult(success=True, offset_ms=offset, source=result.url, rtt_ms=result.rtt)

            state = self.context.mark_unsynchronized()
            logger.error("All time sync methods failed, using local time")
            return SyncResult(success=False, offset_ms=state.offset_ms)
