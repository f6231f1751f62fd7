"""CLI entry point for otpclock."""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from otpclock.clock import ClockSynchronizer, default_probes
from otpclock.config import settings
from otpclock.models import SyncResult, TokenResult, WindowCodes
from otpclock.window import CodeTicker, WindowCodeProducer

console = Console()


def _synchronizer(providers: tuple[str, ...], origin: str | None, timeout: float | None) -> ClockSynchronizer:
    probes = default_probes(list(providers) or None, origin)
    return ClockSynchronizer(probes, probe_timeout_s=timeout)


def _sync_badge(synchronized: bool) -> Text:
    if synchronized:
        return Text("NTP SYNCED", style="bold green")
    return Text("LOCAL TIME", style="bold yellow")


def _token_text(result: TokenResult | None, style: str) -> Text:
    if result is None:
        return Text("")
    return Text(result.display, style=style if result.valid else "red")


def render_codes(codes: WindowCodes) -> Group:
    """Build the display for one tick."""
    current = codes.current
    header = Text.assemble(_sync_badge(codes.synchronized), "  ", Text(f"changes in {current.remaining}s", style="dim"))

    table = Table(show_header=True, box=None, pad_edge=False)
    if codes.previous is not None:
        table.add_column("previous (-30s)", justify="center")
    table.add_column("current", justify="center")
    if codes.next is not None:
        table.add_column("next (+30s)", justify="center")

    row = [_token_text(current, "bold cyan")]
    if codes.previous is not None:
        row.insert(0, _token_text(codes.previous, "dim"))
    if codes.next is not None:
        row.append(_token_text(codes.next, "dim"))
    table.add_row(*row)
    return Group(header, table)


def _print_sync(result: SyncResult) -> None:
    if result.success:
        console.print(f"[green]Synced[/green] via {result.source}")
        console.print(f"  Offset: {result.offset_ms:+d} ms")
        if result.rtt_ms is not None:
            console.print(f"  RTT: {result.rtt_ms:.1f} ms")
    else:
        console.print("[yellow]Time sync failed, using local time[/yellow]")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log sync attempts.")
def main(verbose: bool) -> None:
    """otpclock — TOTP codes on a network-synchronized clock."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")


def sync_options(f):
    f = click.option("--provider", "providers", multiple=True, help="Time API URL (repeatable, ordered).")(f)
    f = click.option("--origin", default=None, help="Own origin to read a Date header from as last resort.")(f)
    f = click.option("--timeout", type=float, default=None, help="Per-provider deadline in seconds.")(f)
    return f


@main.command()
@sync_options
def sync(providers: tuple[str, ...], origin: str | None, timeout: float | None) -> None:
    """Run one clock synchronization round."""
    synchronizer = _synchronizer(providers, origin, timeout)
    result = asyncio.run(synchronizer.sync())
    _print_sync(result)
    if not result.success:
        raise SystemExit(1)


@main.command()
@click.argument("secret")
@click.option("--at", "at_ms", type=int, default=None, help="Evaluate at this epoch time (ms) instead of now.")
@click.option("--window", is_flag=True, help="Also show the previous and next codes.")
@click.option("--no-sync", is_flag=True, help="Skip network sync and use local time.")
@sync_options
def code(
    secret: str,
    at_ms: int | None,
    window: bool,
    no_sync: bool,
    providers: tuple[str, ...],
    origin: str | None,
    timeout: float | None,
) -> None:
    """Print the code(s) for SECRET once."""
    synchronizer = _synchronizer(providers, origin, timeout)
    if at_ms is None and not no_sync:
        asyncio.run(synchronizer.sync())

    codes = WindowCodeProducer(synchronizer.context).produce(secret, adjacent=window, timestamp_ms=at_ms)
    console.print(render_codes(codes))
    if not codes.current.valid:
        raise SystemExit(1)


@main.command()
@click.argument("secret")
@click.option("--window", is_flag=True, help="Also show the previous and next codes.")
@click.option("--resync-every", type=int, default=0, help="Re-sync the clock every N ticks (0 = only at start).")
@click.option("--duration", type=float, default=0.0, help="Stop after this many seconds (0 = until Ctrl-C).")
@sync_options
def watch(
    secret: str,
    window: bool,
    resync_every: int,
    duration: float,
    providers: tuple[str, ...],
    origin: str | None,
    timeout: float | None,
) -> None:
    """Sync once, then show live codes for SECRET until Ctrl-C."""
    synchronizer = _synchronizer(providers, origin, timeout)
    producer = WindowCodeProducer(synchronizer.context)

    async def _watch() -> None:
        _print_sync(await synchronizer.sync())
        pending: set[asyncio.Task] = set()
        ticks = 0

        with Live(render_codes(producer.produce(secret, adjacent=window)), console=console, auto_refresh=False) as live:
            def tick() -> None:
                nonlocal ticks
                ticks += 1
                if resync_every and ticks % resync_every == 0:
                    # overlapping rounds are no-ops inside sync()
                    task = asyncio.get_running_loop().create_task(synchronizer.sync())
                    pending.add(task)
                    task.add_done_callback(pending.discard)
                live.update(render_codes(producer.produce(secret, adjacent=window)), refresh=True)

            ticker = CodeTicker(tick)
            ticker.start()
            try:
                if duration > 0:
                    await asyncio.sleep(duration)
                else:
                    await asyncio.Event().wait()
            finally:
                await ticker.stop()
                for task in list(pending):
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        pass


@main.command()
@click.option("--host", default=None)
@click.option("--port", type=int, default=None)
def server(host: str | None, port: int | None) -> None:
    """Start the HTTP API (FastAPI)."""
    import uvicorn

    uvicorn.run(
        "otpclock.dashboard.app:app",
        host=host or settings.dashboard_host,
        port=port or settings.dashboard_port,
    )


if __name__ == "__main__":
    main()
