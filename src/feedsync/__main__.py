"""Entry point for the feed sync engine: python -m feedsync"""

import argparse
import asyncio
import json
import logging
import sys

from feedsync.actions import discover, get_items, list_feeds, refresh_feed, subscribe
from feedsync.config import Settings
from feedsync.database import Database
from feedsync.discovery import DiscoveryError
from feedsync.feed_parser import FetchError
from feedsync.poller import FeedScheduler
from feedsync.sync import sync_active_feeds
from feedsync.transport import create_http_client


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="feedsync",
        description="Discover, fetch and keep RSS/Atom feeds in sync.",
    )
    parser.add_argument("--db", help="SQLite database path (default: FEEDSYNC_DB_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the scheduler until interrupted.")
    run.add_argument("--interval", type=positive_int, help="Polling interval in minutes.")

    sub.add_parser("sync-once", help="Sync all active feeds once and exit.")

    add = sub.add_parser("add", help="Discover a feed for URL and subscribe to it.")
    add.add_argument("url")

    disc = sub.add_parser("discover", help="Print the feed URL behind URL.")
    disc.add_argument("url")

    refresh = sub.add_parser("refresh", help="Force a sync of one feed.")
    refresh.add_argument("feed_id", type=int)

    lst = sub.add_parser("list", help="List feeds and their health.")
    lst.add_argument("--active", action="store_true", help="Only active feeds.")

    items = sub.add_parser("items", help="Show the latest items of a feed.")
    items.add_argument("feed_id", type=int)
    items.add_argument("--limit", type=int, default=20)

    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_scheduler(db: Database, settings: Settings) -> None:
    """Run the scheduler for the lifetime of the process."""
    async with create_http_client(settings.user_agent) as client:
        scheduler = FeedScheduler(
            db,
            client,
            interval_minutes=settings.poll_interval_minutes,
            warmup_seconds=settings.warmup_seconds,
            max_concurrency=settings.max_concurrency,
        )
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()


async def run_command(args: argparse.Namespace, db: Database, settings: Settings) -> dict | None:
    if args.command == "run":
        await run_scheduler(db, settings)
        return None
    if args.command == "list":
        return list_feeds(db, active_only=args.active)
    if args.command == "items":
        return get_items(db, args.feed_id, limit=args.limit)

    async with create_http_client(settings.user_agent) as client:
        if args.command == "sync-once":
            summary = await sync_active_feeds(db, client, settings.max_concurrency)
            return {
                "success": summary.success,
                "failed": summary.failed,
                "items_added": summary.items_added,
                "deactivated": [feed.feed_url for feed in summary.deactivated],
            }
        if args.command == "add":
            return await subscribe(db, client, args.url)
        if args.command == "discover":
            return {"feed_url": await discover(client, args.url)}
        if args.command == "refresh":
            return await refresh_feed(db, client, args.feed_id)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Initialize the database and dispatch the chosen command."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    settings = Settings.from_env()
    if args.db:
        settings.db_path = args.db
    if args.command == "run" and args.interval is not None:
        settings.poll_interval_minutes = args.interval

    db = Database(settings.db_path)
    db.connect()
    try:
        result = asyncio.run(run_command(args, db, settings))
    except KeyboardInterrupt:
        print("\nGoodbye!")
        return 0
    except (DiscoveryError, FetchError, LookupError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    if result is not None:
        print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
