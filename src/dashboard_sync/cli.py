# SPDX-License-Identifier: MIT
"""Command-line interface for the dashboard sync layer."""

import asyncio
import functools
import json
import sys
import traceback
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from . import __version__
from .cache import CacheStore, SQLitePersistenceMedium
from .config import get_config_manager
from .logging_config import get_status_logger, setup_logging
from .session import DashboardSession


F = TypeVar("F", bound=Callable[..., Any])


def handle_cli_errors(func: F) -> F:
    """Decorator to handle common CLI error patterns.

    Wraps CLI command functions with consistent error handling, logging,
    and exit behavior. Catches exceptions and logs them appropriately
    based on verbosity, then exits with status code 1.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        status_logger = get_status_logger()
        verbose = kwargs.get("verbose", False)

        try:
            return func(*args, **kwargs)
        except Exception as e:
            if verbose:
                status_logger.error(f"Error in {func.__name__}: {e}")
                traceback.print_exc()
            else:
                status_logger.error(f"Error: {e}")
            sys.exit(1)

    return wrapper  # type: ignore


def print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Print version and exit if requested."""
    if value:
        # Ensure logging is set up before using it (--version is eager)
        setup_logging()
        status_logger = get_status_logger()
        status_logger.info(f"Dashboard-Sync version {__version__}")
        ctx.exit(0)


def ring_bell() -> None:
    """Terminal bell, used as the audio alert for new feed items."""
    click.echo("\a", nl=False)


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version information and exit",
)
def main() -> None:
    """Dashboard-Sync - Live feed polling, cached insights and notification badges."""
    # Initialize logging on first command invocation
    detail_logger, status_logger = setup_logging()
    detail_logger.debug("CLI initialized")


@main.command()
@handle_cli_errors
def config() -> None:
    """Show the complete current configuration."""
    config_output = get_config_manager().show_config()
    print(config_output)


@main.command(name="watch-feed")
@click.option(
    "--period", default="today", show_default=True, help="Date window to watch"
)
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between polls (default: polling.live_feed_interval)",
)
@click.option("--unmute", is_flag=True, help="Highlight and ring for new items")
@click.option(
    "--ticks", type=int, default=0, help="Stop after this many polls (0 = run forever)"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@handle_cli_errors
def watch_feed(
    period: str, interval: float | None, unmute: bool, ticks: int, verbose: bool
) -> None:
    """Poll the live sales feed and print transactions as they arrive."""
    try:
        asyncio.run(_async_watch_feed(period, interval, unmute, ticks, verbose))
    except KeyboardInterrupt:
        get_status_logger().info("Stopped watching.")


@main.command()
@click.option(
    "--format",
    "output_format",
    default="text",
    type=click.Choice(["text", "json"]),
    help="Output format",
)
@handle_cli_errors
def badge(output_format: str) -> None:
    """Show the unread notification count and the count per category."""
    asyncio.run(_async_badge(output_format))


@main.command(name="mark-read")
@click.argument("notification_id")
@click.option("--unread", is_flag=True, help="Mark as unread instead")
@handle_cli_errors
def mark_read(notification_id: str, unread: bool) -> None:
    """Mark one notification as read.

    NOTIFICATION_ID: The notification uuid
    """
    asyncio.run(_async_mark_read(notification_id, unread))


@main.command(name="mark-all-read")
@handle_cli_errors
def mark_all_read() -> None:
    """Mark every notification as read."""
    asyncio.run(_async_mark_all_read())


@main.group()
def cache() -> None:
    """Inspect and maintain the local cache."""


@cache.command()
@handle_cli_errors
def stats() -> None:
    """Show the number of fresh and expired cache entries."""
    status_logger = get_status_logger()
    with _open_cache_store() as store:
        keys = store.keys()
        now = store.clock()
        expired = 0
        for key in keys:
            entry = store.peek(key)
            if entry is not None and not entry.is_fresh(now):
                expired += 1

    status_logger.info("Cache Statistics")
    status_logger.info("=" * 40)
    status_logger.info(f"Entries: {len(keys)}")
    status_logger.info(f"Fresh: {len(keys) - expired}")
    status_logger.info(f"Expired: {expired}")


@cache.command()
@handle_cli_errors
def cleanup() -> None:
    """Remove expired cache entries."""
    with _open_cache_store() as store:
        removed = store.cleanup_expired()
    noun = "entry" if removed == 1 else "entries"
    get_status_logger().info(f"Removed {removed} expired cache {noun}.")


@cache.command()
@click.option("--confirm", is_flag=True, help="Skip confirmation prompt")
@handle_cli_errors
def clear(confirm: bool) -> None:
    """Remove every cache entry."""
    status_logger = get_status_logger()

    if not confirm:
        click.confirm("This will clear all cached data. Continue?", abort=True)

    with _open_cache_store() as store:
        count = len(store.keys())
        if count == 0:
            status_logger.info("Cache is already empty.")
            return
        store.clear()

    status_logger.info(f"Cleared {count} cache entr{'y' if count == 1 else 'ies'}.")


def _open_cache_store() -> CacheStore:
    cache_config = get_config_manager().load_config().cache
    return CacheStore(SQLitePersistenceMedium(Path(cache_config.db_path)))


async def _async_watch_feed(
    period: str, interval: float | None, unmute: bool, ticks: int, verbose: bool
) -> None:
    """Drive the live feed poll by poll and print what each poll adds."""
    status_logger = get_status_logger()
    settings = get_config_manager().load_config()
    poll_interval = (
        settings.polling.live_feed_interval if interval is None else interval
    )

    async with DashboardSession(settings, audio_alert=ring_bell) as session:
        # The loop below is the timer, so the subscription gets none of its own
        feed = session.live_feed(
            query_params={"period": period}, interval=0, muted=not unmute
        )
        feed.start()
        await feed.wait_idle()
        snapshot = feed.snapshot()
        if snapshot.last_error:
            status_logger.warning(f"Initial load failed: {snapshot.last_error}")
        else:
            status_logger.info(f"Loaded {len(snapshot.items)} transactions")

        polls = 1
        while not ticks or polls < ticks:
            await asyncio.sleep(poll_interval)
            if not feed.tick():
                if verbose:
                    status_logger.info(f"Period '{period}' is not live, not polling")
                break
            await feed.wait_idle()
            polls += 1
            snapshot = feed.snapshot()
            if snapshot.last_error:
                status_logger.warning(f"Poll failed: {snapshot.last_error}")
                continue
            for item in feed.last_added:
                marker = "*" if item.id in snapshot.highlighted_ids else "+"
                print(f"{marker} {item.id} {json.dumps(item.payload, default=str)}")


async def _async_badge(output_format: str) -> None:
    async with DashboardSession() as session:
        badge_service = session.notification_badge()
        badge_service.start()
        await badge_service.wait_idle()
        snapshot = badge_service.snapshot()

    if output_format == "json":
        print(json.dumps(snapshot.model_dump(exclude={"is_loading"}), indent=2))
        return

    if snapshot.last_error:
        get_status_logger().warning(f"Last poll failed: {snapshot.last_error}")
    print(f"Unread notifications: {snapshot.unread_count}")
    for category, count in sorted(snapshot.counts_by_category.items()):
        print(f"  {category}: {count}")


async def _async_mark_read(notification_id: str, unread: bool) -> None:
    async with DashboardSession() as session:
        sync = session.notification_sync
        await sync.resync()
        if unread:
            await sync.mark_unread(notification_id)
        else:
            await sync.mark_read(notification_id)
        state = "unread" if unread else "read"
        get_status_logger().info(
            f"Marked {notification_id} as {state} ({sync.unread_count} unread)"
        )


async def _async_mark_all_read() -> None:
    async with DashboardSession() as session:
        await session.notification_sync.mark_all_read()
        get_status_logger().info("Marked all notifications as read")


if __name__ == "__main__":
    main()
