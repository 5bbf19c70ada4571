"""Command line interface for udpscrape.

Provides a ``scrape`` command that queries a UDP tracker and prints a table
of results, and a ``serve`` command running the in-memory dev tracker.
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.table import Table

from udpscrape import __version__
from udpscrape.client import ScrapeResult, UDPScrapeClient
from udpscrape.config import get_config, init_config
from udpscrape.exceptions import ScrapeError
from udpscrape.logging_config import log_exception
from udpscrape.models import LogLevel, TrackerConfig
from udpscrape.protocol import infohash_to_bytes
from udpscrape.tracker_server import InMemoryStatsStore, run_udp_tracker

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(__version__, prog_name="udpscrape")
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a udpscrape.toml configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Log at INFO level")
@click.option("--debug", "-d", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def cli(ctx, config_file, verbose, debug):
    """Scrape UDP BitTorrent trackers (BEP 15)."""
    ctx.ensure_object(dict)
    try:
        manager = init_config(config_file)
    except ScrapeError as e:
        raise click.ClickException(str(e)) from e

    if debug or verbose:
        level = LogLevel.DEBUG if debug else LogLevel.INFO
        manager.config.observability.log_level = level
        manager._setup_logging()  # noqa: SLF001

    ctx.obj["config"] = manager.config


def _render_table(results: list[ScrapeResult], tracker: str) -> Table:
    table = Table(title=f"Scrape Results ({tracker})")
    table.add_column("Info Hash", style="cyan")
    table.add_column("Seeders", style="green", justify="right")
    table.add_column("Completed", style="blue", justify="right")
    table.add_column("Leechers", style="yellow", justify="right")

    for result in results:
        infohash = result.infohash
        if isinstance(infohash, bytes) and len(infohash) == 20:
            infohash = infohash.hex()
        elif isinstance(infohash, bytes):
            infohash = infohash.decode("ascii")
        table.add_row(
            infohash,
            str(result.seeders),
            str(result.completed),
            str(result.leechers),
        )
    return table


@cli.command("scrape")
@click.argument("tracker_url", type=str)
@click.argument("infohashes", nargs=-1, required=True)
@click.option("--timeout", type=float, help="Read deadline per attempt in seconds")
@click.option("--retries", type=int, help="Additional attempts after a timeout")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def scrape_command(ctx, tracker_url, infohashes, timeout, retries, as_json):
    """Scrape TRACKER_URL for up to 74 INFOHASHES (40 hex characters each)."""
    console = Console()
    config = (ctx.obj or {}).get("config") or get_config()

    updates = {}
    if timeout is not None:
        updates["timeout"] = timeout
    if retries is not None:
        updates["retries"] = retries

    async def _scrape(tracker_config: TrackerConfig) -> list[ScrapeResult]:
        async with UDPScrapeClient(tracker_url, tracker_config) as client:
            return await client.scrape(*infohashes)

    try:
        tracker_config = TrackerConfig(**{**config.tracker.model_dump(), **updates})
        results = asyncio.run(_scrape(tracker_config))
    except (ScrapeError, OSError, ValueError) as e:
        log_exception(logger, e, f"Scrape of {tracker_url} failed")
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "infohash": infohash,
                        "seeders": r.seeders,
                        "completed": r.completed,
                        "leechers": r.leechers,
                    }
                    for infohash, r in zip(infohashes, results)
                ],
                indent=2,
            )
        )
        return

    console.print(_render_table(results, tracker_url))


def _parse_stats(value: str) -> tuple[bytes, int, int, int]:
    try:
        infohash, seeders, completed, leechers = value.split(":")
        return infohash_to_bytes(infohash), int(seeders), int(completed), int(leechers)
    except (ValueError, ScrapeError) as e:
        msg = f"Expected INFOHASH:SEEDERS:COMPLETED:LEECHERS, got {value!r}"
        raise click.BadParameter(msg) from e


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Address to bind")
@click.option("--port", default=6969, show_default=True, type=int, help="UDP port to bind")
@click.option(
    "--stats",
    "stats",
    multiple=True,
    help="Seed statistics as INFOHASH:SEEDERS:COMPLETED:LEECHERS (repeatable)",
)
def serve_command(host, port, stats):
    """Run a minimal in-memory UDP tracker for local testing."""
    console = Console()
    store = InMemoryStatsStore()
    for value in stats:
        store.set(*_parse_stats(value))

    console.print(f"[green]Serving UDP tracker on udp://{host}:{port}[/green]")
    try:
        asyncio.run(run_udp_tracker(host, port, store))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
    except OSError as e:
        raise click.ClickException(str(e)) from e


def main() -> None:
    """Entry point for the ``udpscrape`` console script."""
    cli(obj={})
